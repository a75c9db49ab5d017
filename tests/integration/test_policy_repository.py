"""Integration tests for policy resolution and policy writes."""

from datetime import date

import pytest
from sqlalchemy import select

from drd.engines.incentives.policy_resolver import PolicyRepository, windows_overlap
from drd.kernel.models.counter import Counter
from drd.kernel.models.policy import PolicyScope
from drd.orchestration.errors import (
    NoApplicablePolicy,
    NotFound,
    PolicyInUse,
    PolicyOverlap,
    ValidationError,
)
from drd.orchestration.state_machine import WorkflowEngine
from drd.orchestration.transitions import WorkflowAction as A

from tests.factories import file_patent

PATENT = PolicyScope("ipr", "patent")


async def patent_policy(repo, effective_from, effective_to=None, is_active=True, base_amount=50000):
    return await repo.create_policy(
        policy_name=f"Patent {effective_from.year}",
        scope=PATENT,
        effective_from=effective_from,
        effective_to=effective_to,
        is_active=is_active,
        distribution_method="equal_split",
        base_amount=base_amount,
        base_points=50,
    )


class TestWindows:

    def test_overlap_inclusive(self):
        assert windows_overlap(date(2025, 1, 1), date(2025, 12, 31), date(2025, 12, 31), None)

    def test_adjacent_do_not_overlap(self):
        assert not windows_overlap(date(2025, 1, 1), date(2025, 12, 31), date(2026, 1, 1), None)

    def test_open_ended_both(self):
        assert windows_overlap(date(2025, 1, 1), None, date(2030, 1, 1), None)


class TestResolution:
    """Active policy lookup by scope and date."""

    @pytest.mark.asyncio
    async def test_boundaries_inclusive(self, db_session):
        repo = PolicyRepository(db_session)
        policy = await patent_policy(repo, date(2025, 1, 1), date(2025, 12, 31))

        assert (await repo.resolve_active_policy(PATENT, date(2025, 1, 1))).id == policy.id
        assert (await repo.resolve_active_policy(PATENT, date(2025, 12, 31))).id == policy.id
        with pytest.raises(NoApplicablePolicy):
            await repo.resolve_active_policy(PATENT, date(2026, 1, 1))
        with pytest.raises(NoApplicablePolicy):
            await repo.resolve_active_policy(PATENT, date(2024, 12, 31))

    @pytest.mark.asyncio
    async def test_consecutive_versions(self, db_session):
        repo = PolicyRepository(db_session)
        old = await patent_policy(repo, date(2024, 1, 1), date(2024, 12, 31), base_amount=40000)
        new = await patent_policy(repo, date(2025, 1, 1))

        assert (old.version, new.version) == (1, 2)
        assert (await repo.resolve_active_policy(PATENT, date(2024, 6, 1))).id == old.id
        assert (await repo.resolve_active_policy(PATENT, date(2031, 6, 1))).id == new.id

    @pytest.mark.asyncio
    async def test_inactive_ignored(self, db_session):
        repo = PolicyRepository(db_session)
        await patent_policy(repo, date(2025, 1, 1), is_active=False)

        with pytest.raises(NoApplicablePolicy):
            await repo.resolve_active_policy(PATENT, date(2025, 6, 1))

    @pytest.mark.asyncio
    async def test_other_scope_ignored(self, db_session):
        repo = PolicyRepository(db_session)
        await patent_policy(repo, date(2025, 1, 1))

        with pytest.raises(NoApplicablePolicy):
            await repo.resolve_active_policy(PolicyScope("ipr", "copyright"), date(2025, 6, 1))


class TestWrites:
    """Validation and overlap checks on create, update and reactivation."""

    @pytest.mark.asyncio
    async def test_overlap_rejected(self, db_session):
        repo = PolicyRepository(db_session)
        await patent_policy(repo, date(2025, 1, 1), date(2025, 12, 31))

        with pytest.raises(PolicyOverlap) as exc_info:
            await patent_policy(repo, date(2025, 12, 31))
        assert "conflicting_policy_id" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_inactive_may_overlap_until_reactivated(self, db_session):
        repo = PolicyRepository(db_session)
        await patent_policy(repo, date(2025, 1, 1))
        draft = await patent_policy(repo, date(2025, 6, 1), is_active=False)

        with pytest.raises(PolicyOverlap):
            await repo.update_policy(draft.id, {"is_active": True})

    @pytest.mark.asyncio
    async def test_closing_window_allows_successor(self, db_session):
        repo = PolicyRepository(db_session)
        current = await patent_policy(repo, date(2025, 1, 1))
        await repo.update_policy(current.id, {"effective_to": date(2025, 12, 31)})

        successor = await patent_policy(repo, date(2026, 1, 1))
        assert successor.version == 2

    @pytest.mark.asyncio
    async def test_inverted_window(self, db_session):
        with pytest.raises(ValidationError):
            await patent_policy(PolicyRepository(db_session), date(2025, 6, 1), date(2025, 1, 1))

    @pytest.mark.asyncio
    async def test_active_writes_take_scope_lock(self, db_session):
        repo = PolicyRepository(db_session)
        policy = await patent_policy(repo, date(2025, 1, 1), date(2025, 12, 31))
        await repo.update_policy(policy.id, {"effective_to": date(2025, 6, 30)})

        lock = await db_session.scalar(
            select(Counter.last_value).where(Counter.key == f"policy:{PATENT}")
        )
        assert lock == 2

    @pytest.mark.asyncio
    async def test_second_writer_sees_committed_policy(self, session_maker):
        async with session_maker() as one:
            await patent_policy(PolicyRepository(one), date(2025, 1, 1))
            await one.commit()

        async with session_maker() as two:
            with pytest.raises(PolicyOverlap):
                await patent_policy(PolicyRepository(two), date(2025, 6, 1))

    @pytest.mark.asyncio
    async def test_invalid_terms_rejected(self, db_session):
        repo = PolicyRepository(db_session)
        with pytest.raises(ValidationError):
            await repo.create_policy(
                policy_name="Broken",
                scope=PATENT,
                effective_from=date(2025, 1, 1),
                distribution_method="author_position_based",
                position_based_distribution={"1": 80, "2": 40},
            )
        with pytest.raises(ValidationError):
            await repo.create_policy(
                policy_name="Broken",
                scope=PATENT,
                effective_from=date(2025, 1, 1),
                distribution_method="lottery",
            )

    @pytest.mark.asyncio
    async def test_terms_stored_normalised(self, db_session):
        repo = PolicyRepository(db_session)
        policy = await repo.create_policy(
            policy_name="Rows",
            scope=PATENT,
            effective_from=date(2025, 1, 1),
            position_based_distribution=[{"position": 1, "percentage": 70}, {"position": 2, "percentage": 30}],
        )
        assert set(policy.position_based_distribution) == {"1", "2"}

    @pytest.mark.asyncio
    async def test_unknown_update_field(self, db_session):
        repo = PolicyRepository(db_session)
        policy = await patent_policy(repo, date(2025, 1, 1))
        with pytest.raises(ValidationError):
            await repo.update_policy(policy.id, {"version": 7})

    @pytest.mark.asyncio
    async def test_deactivate(self, db_session):
        repo = PolicyRepository(db_session)
        policy = await patent_policy(repo, date(2025, 1, 1))

        deactivated = await repo.deactivate_policy(policy.id)
        assert deactivated.is_active is False
        assert deactivated.deactivated_at is not None
        with pytest.raises(NoApplicablePolicy):
            await repo.resolve_active_policy(PATENT, date(2025, 6, 1))

    @pytest.mark.asyncio
    async def test_delete_unreferenced(self, db_session):
        repo = PolicyRepository(db_session)
        policy = await patent_policy(repo, date(2025, 1, 1))
        await repo.delete_policy(policy.id)

        with pytest.raises(NotFound):
            await repo.get_policy(policy.id)

    @pytest.mark.asyncio
    async def test_referenced_policy_cannot_be_deleted(
        self, db_session, filer, assigned_reviewer, head, school_id
    ):
        repo = PolicyRepository(db_session)
        policy = await patent_policy(repo, date(2020, 1, 1))
        await db_session.commit()

        submission = await file_patent(db_session, filer, school_id)
        engine = WorkflowEngine(db_session, missing_policy_mode="zero")
        await engine.transition(submission.id, A.SUBMIT, filer)
        await engine.transition(submission.id, A.START_REVIEW, assigned_reviewer)
        await engine.transition(submission.id, A.RECOMMEND, assigned_reviewer)
        approved = await engine.transition(submission.id, A.APPROVE, head)

        assert approved.incentive_policy_id == policy.id
        assert approved.incentive_result["total_amount"] == 50000
        assert [a["amount_share"] for a in approved.incentive_result["per_author"]] == [25000, 25000]
        with pytest.raises(PolicyInUse):
            await repo.delete_policy(policy.id)
