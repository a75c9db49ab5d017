"""
Integration tests for the workflow engine.

Runs the full unit of work (re-read, checks, pricing, conditional update,
history, audit, notify) against a SQLite database.
"""

from datetime import date

import pytest
from sqlalchemy import func, select

from drd.engines.incentives.policy_resolver import PolicyRepository
from drd.kernel.identity.actor import UserRole
from drd.kernel.events.event_store import EventStore
from drd.kernel.models.event_log import EventType
from drd.kernel.models.notification import Notification
from drd.kernel.models.permission import Capability
from drd.kernel.models.policy import PolicyScope
from drd.kernel.models.submission import SubmissionStatus as S
from drd.orchestration.errors import (
    AlreadyTerminal,
    ConcurrentModification,
    InvalidStateTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from drd.orchestration.notifications import DatabaseNotifier, RecordingNotifier
from drd.orchestration.state_machine import (
    WARNING_DEFAULT_POLICY,
    WARNING_NO_POLICY,
    WorkflowEngine,
)
from drd.orchestration.submission_service import SubmissionService
from drd.orchestration.transitions import WorkflowAction as A
from drd.schemas.submission import SubmissionUpdate

from tests.factories import authors, file_patent, file_research_paper, make_actor


class FailingNotifier:
    async def emit(self, event):
        raise RuntimeError("mail server down")


async def research_policy(session, effective_from=date(2025, 1, 1), effective_to=None, name="Research 2025"):
    policy = await PolicyRepository(session).create_policy(
        policy_name=name,
        scope=PolicyScope("research", "research_paper"),
        effective_from=effective_from,
        effective_to=effective_to,
        distribution_method="author_role_based",
        role_percentages={"first_author": 50, "corresponding_author": 50},
        indexing_bonuses={
            "sjr_ranges": [
                {"min": 1.0, "max": 1.99, "amount": 30000, "points": 30},
            ],
        },
    )
    await session.commit()
    return policy


async def to_recommended(engine, submission, filer, reviewer):
    await engine.transition(submission.id, A.SUBMIT, filer)
    await engine.transition(submission.id, A.START_REVIEW, reviewer)
    return await engine.transition(submission.id, A.RECOMMEND, reviewer)


async def history_actions(session, submission_id):
    entries = await SubmissionService(session).get_history(submission_id)
    return [e.action for e in entries]


class TestResearchFlow:
    """Filing to payout for a research paper."""

    @pytest.mark.asyncio
    async def test_full_flow_prices_on_approval(
        self, db_session, filer, assigned_reviewer, head, finance, school_id
    ):
        policy = await research_policy(db_session)
        submission = await file_research_paper(db_session, filer, school_id, sjr=1.5)
        engine = WorkflowEngine(db_session, missing_policy_mode="zero")

        await to_recommended(engine, submission, filer, assigned_reviewer)
        approved = await engine.transition(submission.id, A.APPROVE, head, expected_status=S.RECOMMENDED)

        assert approved.status == S.APPROVED.value
        assert approved.incentive_policy_id == policy.id
        assert approved.incentive_warning is None
        result = approved.incentive_result
        assert result["total_amount"] == 30000
        assert [a["amount_share"] for a in result["per_author"]] == [15000, 15000]

        completed = await engine.transition(submission.id, A.COMPLETE, finance)
        assert completed.status == S.COMPLETED.value

        entries = await engine.get_history(submission.id)
        assert [e.sequence for e in entries] == [1, 2, 3, 4, 5]
        assert [e.action for e in entries] == ["submit", "start_review", "recommend", "approve", "complete"]
        assert entries[3].details["incentive"]["total_amount"] == 30000

    @pytest.mark.asyncio
    async def test_submit_sets_submitted_at_once(self, db_session, filer, assigned_reviewer, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session, missing_policy_mode="zero")

        submitted = await engine.transition(submission.id, A.SUBMIT, filer)
        assert submitted.submitted_at is not None
        assert submitted.status_changed_by == filer.id

    @pytest.mark.asyncio
    async def test_audit_events_written(self, db_session, filer, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        await WorkflowEngine(db_session, missing_policy_mode="zero").transition(submission.id, A.SUBMIT, filer)

        events = await EventStore(db_session).get_entity_history("submission", submission.id)
        types = {event.event_type for event in events}
        assert EventType.SUBMISSION_CREATED.value in types
        assert EventType.SUBMISSION_STATUS_CHANGED.value in types


class TestGates:
    """Actor gates and legality checks."""

    @pytest.mark.asyncio
    async def test_unassigned_reviewer_denied(self, db_session, filer, assigned_reviewer, school_id):
        """A reviewer with the capability but no school assignment cannot recommend."""
        submission = await file_patent(db_session, filer, school_id)
        engine = WorkflowEngine(db_session, missing_policy_mode="zero")
        await engine.transition(submission.id, A.SUBMIT, filer)
        await engine.transition(submission.id, A.START_REVIEW, assigned_reviewer)

        outsider = make_actor(UserRole.STAFF, [Capability.IPR_REVIEW])
        with pytest.raises(PermissionDenied):
            await engine.transition(submission.id, A.RECOMMEND, outsider)

        current = await SubmissionService(db_session).get_submission(submission.id, refresh=True)
        assert current.status == S.UNDER_DRD_REVIEW.value
        assert await history_actions(db_session, submission.id) == ["submit", "start_review"]

    @pytest.mark.asyncio
    async def test_only_filer_submits(self, db_session, filer, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        someone = make_actor(UserRole.FACULTY, [Capability.RESEARCH_FILE_NEW])

        with pytest.raises(PermissionDenied):
            await WorkflowEngine(db_session).transition(submission.id, A.SUBMIT, someone)

    @pytest.mark.asyncio
    async def test_illegal_action_lists_allowed(self, db_session, filer, head, school_id):
        submission = await file_research_paper(db_session, filer, school_id)

        with pytest.raises(InvalidStateTransition) as exc_info:
            await WorkflowEngine(db_session).transition(submission.id, A.APPROVE, head)

        assert exc_info.value.details["allowed_actions"] == ["submit"]
        assert await history_actions(db_session, submission.id) == []

    @pytest.mark.asyncio
    async def test_unknown_action(self, db_session, filer, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        with pytest.raises(InvalidStateTransition):
            await WorkflowEngine(db_session).transition(submission.id, "teleport", filer)

    @pytest.mark.asyncio
    async def test_reject_requires_comments(self, db_session, filer, assigned_reviewer, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session)
        await engine.transition(submission.id, A.SUBMIT, filer)
        await engine.transition(submission.id, A.START_REVIEW, assigned_reviewer)

        with pytest.raises(ValidationError):
            await engine.transition(submission.id, A.REJECT, assigned_reviewer, comments="   ")

        rejected = await engine.transition(submission.id, A.REJECT, assigned_reviewer, comments="Out of scope")
        assert rejected.status == S.REJECTED.value

    @pytest.mark.asyncio
    async def test_terminal_submission_refuses_actions(self, db_session, filer, assigned_reviewer, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session)
        await engine.transition(submission.id, A.SUBMIT, filer)
        await engine.transition(submission.id, A.START_REVIEW, assigned_reviewer)
        await engine.transition(submission.id, A.REJECT, assigned_reviewer, comments="Duplicate")

        with pytest.raises(AlreadyTerminal):
            await engine.transition(submission.id, A.RESUBMIT, filer)

    @pytest.mark.asyncio
    async def test_govt_filing_requires_application_id(
        self, db_session, filer, assigned_reviewer, head, school_id
    ):
        submission = await file_patent(db_session, filer, school_id)
        engine = WorkflowEngine(db_session, missing_policy_mode="zero")
        await to_recommended(engine, submission, filer, assigned_reviewer)
        await engine.transition(submission.id, A.APPROVE, head)
        await engine.transition(submission.id, A.SUBMIT_TO_GOVT, head)

        with pytest.raises(ValidationError):
            await engine.transition(submission.id, A.RECORD_GOVT_FILING, head, payload={})

        filed = await engine.transition(
            submission.id, A.RECORD_GOVT_FILING, head, payload={"govt_application_id": " IN2026/0042 "}
        )
        assert filed.status == S.GOVT_APPLICATION_FILED.value
        assert filed.govt_application_id == "IN2026/0042"


class TestMentorBranch:

    @pytest.mark.asyncio
    async def test_student_with_mentor_waits_for_mentor(self, db_session, student_filer, mentor, school_id):
        submission = await file_patent(db_session, student_filer, school_id, mentor_uid=mentor.uid)
        notifier = RecordingNotifier()
        engine = WorkflowEngine(db_session, notifier=notifier)

        pending = await engine.transition(submission.id, A.SUBMIT, student_filer)
        assert pending.status == S.PENDING_MENTOR_APPROVAL.value
        assert f"uid:{mentor.uid}" in notifier.last().target_refs

        approved = await engine.transition(submission.id, A.MENTOR_APPROVE, mentor)
        assert approved.status == S.SUBMITTED.value

    @pytest.mark.asyncio
    async def test_mentor_reject_returns_to_draft(self, db_session, student_filer, mentor, school_id):
        submission = await file_patent(db_session, student_filer, school_id, mentor_uid=mentor.uid)
        engine = WorkflowEngine(db_session)
        await engine.transition(submission.id, A.SUBMIT, student_filer)

        with pytest.raises(ValidationError):
            await engine.transition(submission.id, A.MENTOR_REJECT, mentor)
        rejected = await engine.transition(submission.id, A.MENTOR_REJECT, mentor, comments="Claims too broad")
        assert rejected.status == S.DRAFT.value

    @pytest.mark.asyncio
    async def test_other_actor_cannot_act_as_mentor(self, db_session, student_filer, mentor, school_id):
        submission = await file_patent(db_session, student_filer, school_id, mentor_uid=mentor.uid)
        engine = WorkflowEngine(db_session)
        await engine.transition(submission.id, A.SUBMIT, student_filer)

        with pytest.raises(PermissionDenied):
            await engine.transition(submission.id, A.MENTOR_APPROVE, make_actor(UserRole.FACULTY))

    @pytest.mark.asyncio
    async def test_faculty_with_mentor_skips_mentor_step(self, db_session, filer, mentor, school_id):
        submission = await file_patent(db_session, filer, school_id, mentor_uid=mentor.uid)
        submitted = await WorkflowEngine(db_session).transition(submission.id, A.SUBMIT, filer)
        assert submitted.status == S.SUBMITTED.value


class TestEditLock:

    @pytest.mark.asyncio
    async def test_edit_allowed_in_draft_only(self, db_session, filer, assigned_reviewer, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        service = SubmissionService(db_session)

        updated = await service.update_submission(submission.id, filer, SubmissionUpdate(title="Revised title"))
        assert updated.title == "Revised title"
        await db_session.commit()

        await WorkflowEngine(db_session).transition(submission.id, A.SUBMIT, filer)
        with pytest.raises(InvalidStateTransition):
            await service.update_submission(submission.id, filer, SubmissionUpdate(title="Too late"))

    @pytest.mark.asyncio
    async def test_changes_required_reopens_editing(self, db_session, filer, assigned_reviewer, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session)
        await engine.transition(submission.id, A.SUBMIT, filer)
        await engine.transition(submission.id, A.START_REVIEW, assigned_reviewer)
        await engine.transition(submission.id, A.REQUEST_CHANGES, assigned_reviewer, comments="Add DOI")

        service = SubmissionService(db_session)
        await service.update_submission(
            submission.id, filer, SubmissionUpdate(authors=authors("first_and_corresponding_author"))
        )
        await db_session.commit()

        resubmitted = await engine.transition(submission.id, A.RESUBMIT, filer)
        assert resubmitted.status == S.RESUBMITTED.value
        assert len(resubmitted.authors) == 1

    @pytest.mark.asyncio
    async def test_only_filer_edits(self, db_session, filer, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        with pytest.raises(PermissionDenied):
            await SubmissionService(db_session).update_submission(
                submission.id, make_actor(), SubmissionUpdate(title="Mine now")
            )


class TestConcurrency:
    """Stale reads and lost races."""

    @pytest.mark.asyncio
    async def test_stale_expected_status(self, db_session, filer, assigned_reviewer, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session)
        await engine.transition(submission.id, A.SUBMIT, filer)

        with pytest.raises(ConcurrentModification):
            await engine.transition(submission.id, A.START_REVIEW, assigned_reviewer, expected_status="draft")

        assert await history_actions(db_session, submission.id) == ["submit"]

    @pytest.mark.asyncio
    async def test_conditional_update_loses_race(
        self, db_session, session_maker, filer, assigned_reviewer, school_id
    ):
        """A write keyed on a status another session already changed matches no row."""
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session)
        await engine.transition(submission.id, A.SUBMIT, filer)

        stale = await engine.submissions.get_submission(submission.id, refresh=True)
        assert stale.status == S.SUBMITTED.value

        async with session_maker() as other:
            await WorkflowEngine(other).transition(submission.id, A.START_REVIEW, assigned_reviewer)

        with pytest.raises(ConcurrentModification):
            await engine._compare_and_swap(stale, S.SUBMITTED, {"status": S.UNDER_REVIEW.value})
        await db_session.rollback()

        current = await engine.submissions.get_submission(submission.id, refresh=True)
        assert current.status == S.UNDER_REVIEW.value
        assert await history_actions(db_session, submission.id) == ["submit", "start_review"]


class TestPricing:
    """Missing policies and incentive maintenance."""

    @pytest.mark.asyncio
    async def test_missing_policy_zero(self, db_session, filer, assigned_reviewer, head, school_id):
        submission = await file_research_paper(db_session, filer, school_id, sjr=1.5)
        engine = WorkflowEngine(db_session, missing_policy_mode="zero")
        await to_recommended(engine, submission, filer, assigned_reviewer)

        approved = await engine.transition(submission.id, A.APPROVE, head)

        assert approved.status == S.APPROVED.value
        assert approved.incentive_warning == WARNING_NO_POLICY
        assert approved.incentive_policy_id is None
        assert approved.incentive_result["total_amount"] == 0
        assert len(approved.incentive_result["per_author"]) == 2

        missing = await EventStore(db_session).get_entity_history(
            "submission", submission.id, event_types=[EventType.INCENTIVE_POLICY_MISSING]
        )
        assert len(missing) == 1

    @pytest.mark.asyncio
    async def test_missing_policy_default_table(self, db_session, filer, assigned_reviewer, head, school_id):
        submission = await file_research_paper(db_session, filer, school_id, sjr=1.5)
        engine = WorkflowEngine(db_session, missing_policy_mode="default_table")
        await to_recommended(engine, submission, filer, assigned_reviewer)

        approved = await engine.transition(submission.id, A.APPROVE, head)

        assert approved.incentive_warning == WARNING_DEFAULT_POLICY
        assert approved.incentive_result["pool_amount"] == 30000
        assert approved.incentive_result["total_amount"] == 24000
        assert WARNING_DEFAULT_POLICY in approved.incentive_result["warnings"]

    @pytest.mark.asyncio
    async def test_policy_outside_window_not_applied(self, db_session, filer, assigned_reviewer, head, school_id):
        """Publication date before the policy's window falls back."""
        await research_policy(db_session, effective_from=date(2026, 1, 1))
        submission = await file_research_paper(db_session, filer, school_id, sjr=1.5)
        engine = WorkflowEngine(db_session, missing_policy_mode="zero")
        await to_recommended(engine, submission, filer, assigned_reviewer)

        approved = await engine.transition(submission.id, A.APPROVE, head)
        assert approved.incentive_warning == WARNING_NO_POLICY

    @pytest.mark.asyncio
    async def test_clear_and_recompute(self, db_session, filer, assigned_reviewer, head, school_id):
        submission = await file_research_paper(db_session, filer, school_id, sjr=1.5)
        engine = WorkflowEngine(db_session, missing_policy_mode="zero")
        await to_recommended(engine, submission, filer, assigned_reviewer)
        await engine.transition(submission.id, A.APPROVE, head)

        with pytest.raises(InvalidStateTransition):
            await engine.recompute_incentive(submission.id, head)
        with pytest.raises(ValidationError):
            await engine.clear_incentive(submission.id, head, comments=None)

        cleared = await engine.clear_incentive(submission.id, head, comments="Policy published late")
        assert cleared.incentive_result is None
        assert cleared.incentive_warning is None
        assert cleared.status == S.APPROVED.value

        policy = await research_policy(db_session)
        recomputed = await engine.recompute_incentive(submission.id, head)
        assert recomputed.incentive_policy_id == policy.id
        assert recomputed.incentive_result["total_amount"] == 30000

        entries = await engine.get_history(submission.id)
        assert [e.action for e in entries][-2:] == ["clear_incentive", "recompute_incentive"]
        assert entries[-2].details["cleared"]["total_amount"] == 0
        assert entries[-2].from_status == entries[-2].to_status == S.APPROVED.value

    @pytest.mark.asyncio
    async def test_clear_requires_approver(self, db_session, filer, assigned_reviewer, head, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session, missing_policy_mode="zero")
        await to_recommended(engine, submission, filer, assigned_reviewer)
        await engine.transition(submission.id, A.APPROVE, head)

        with pytest.raises(PermissionDenied):
            await engine.clear_incentive(submission.id, assigned_reviewer, comments="Recheck")

    @pytest.mark.asyncio
    async def test_clear_before_approval_refused(self, db_session, filer, head, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        with pytest.raises(InvalidStateTransition):
            await WorkflowEngine(db_session).clear_incentive(submission.id, head, comments="Recheck")

    @pytest.mark.asyncio
    async def test_completed_incentive_is_immutable(
        self, db_session, filer, assigned_reviewer, head, finance, school_id
    ):
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session, missing_policy_mode="zero")
        await to_recommended(engine, submission, filer, assigned_reviewer)
        await engine.transition(submission.id, A.APPROVE, head)
        await engine.transition(submission.id, A.COMPLETE, finance)

        with pytest.raises(AlreadyTerminal):
            await engine.clear_incentive(submission.id, head, comments="Too late")

    @pytest.mark.asyncio
    async def test_reapproval_keeps_existing_incentive(
        self, db_session, filer, assigned_reviewer, head, admin, school_id
    ):
        """Forcing back and re-approving does not overwrite a stored result."""
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session, missing_policy_mode="zero")
        await to_recommended(engine, submission, filer, assigned_reviewer)
        await engine.transition(submission.id, A.APPROVE, head)
        await engine.override_status(submission.id, admin, S.RECOMMENDED, comments="Re-run approval")

        with pytest.raises(InvalidStateTransition):
            await engine.transition(submission.id, A.APPROVE, head)

    @pytest.mark.asyncio
    async def test_clear_after_override_allows_reapproval(
        self, db_session, filer, assigned_reviewer, head, admin, school_id
    ):
        submission = await file_research_paper(db_session, filer, school_id, sjr=1.5)
        engine = WorkflowEngine(db_session, missing_policy_mode="zero")
        await to_recommended(engine, submission, filer, assigned_reviewer)
        first = await engine.transition(submission.id, A.APPROVE, head)
        assert first.incentive_warning == WARNING_NO_POLICY

        await engine.override_status(submission.id, admin, S.RECOMMENDED, comments="Policy was missing")
        cleared = await engine.clear_incentive(submission.id, head, comments="Re-price under new policy")
        assert cleared.status == S.RECOMMENDED.value
        assert cleared.incentive_result is None

        policy = await research_policy(db_session)
        approved = await engine.transition(submission.id, A.APPROVE, head)

        assert approved.status == S.APPROVED.value
        assert approved.incentive_policy_id == policy.id
        assert approved.incentive_warning is None
        assert approved.incentive_result["total_amount"] == 30000

        entries = await engine.get_history(submission.id)
        assert [e.action for e in entries][-3:] == ["override", "clear_incentive", "approve"]
        assert entries[-2].from_status == entries[-2].to_status == S.RECOMMENDED.value

    @pytest.mark.asyncio
    async def test_recompute_still_needs_approval(
        self, db_session, filer, assigned_reviewer, head, admin, school_id
    ):
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session, missing_policy_mode="zero")
        await to_recommended(engine, submission, filer, assigned_reviewer)
        await engine.transition(submission.id, A.APPROVE, head)
        await engine.override_status(submission.id, admin, S.RECOMMENDED, comments="Back to the head")
        await engine.clear_incentive(submission.id, head, comments="Re-price")

        with pytest.raises(InvalidStateTransition):
            await engine.recompute_incentive(submission.id, head)


class TestIprFlow:
    """Patent filing priced against a stored IPR policy, through to payout."""

    @pytest.mark.asyncio
    async def test_patent_priced_by_policy_and_completed(
        self, db_session, filer, assigned_reviewer, head, finance, school_id
    ):
        policy = await PolicyRepository(db_session).create_policy(
            policy_name="Patent 2025",
            scope=PolicyScope("ipr", "patent"),
            effective_from=date(2020, 1, 1),
            distribution_method="equal_split",
            base_amount=50000,
            base_points=50,
        )
        await db_session.commit()

        submission = await file_patent(
            db_session, filer, school_id, author_list=authors("first_author", "co_author", "co_author")
        )
        engine = WorkflowEngine(db_session, missing_policy_mode="zero")
        await to_recommended(engine, submission, filer, assigned_reviewer)
        approved = await engine.transition(submission.id, A.APPROVE, head, expected_status=S.RECOMMENDED_TO_HEAD)

        assert approved.status == S.DRD_HEAD_APPROVED.value
        assert approved.incentive_policy_id == policy.id
        assert approved.incentive_warning is None
        result = approved.incentive_result
        shares = [a["amount_share"] for a in result["per_author"]]
        assert shares == [16668, 16666, 16666]
        assert sum(shares) == result["total_amount"] == 50000
        points = [a["points_share"] for a in result["per_author"]]
        assert points == [18, 16, 16]
        assert sum(points) == result["total_points"] == 50

        await engine.transition(submission.id, A.SUBMIT_TO_GOVT, head)
        await engine.transition(
            submission.id, A.RECORD_GOVT_FILING, head, payload={"govt_application_id": "IN2026/0107"}
        )
        await engine.transition(submission.id, A.PUBLISH, head, payload={"publication_id": "J-2026-88"})
        completed = await engine.transition(submission.id, A.COMPLETE, finance)

        assert completed.status == S.COMPLETED.value
        assert completed.incentive_result == result
        assert await history_actions(db_session, submission.id) == [
            "submit",
            "start_review",
            "recommend",
            "approve",
            "submit_to_govt",
            "record_govt_filing",
            "publish",
            "complete",
        ]


class TestNotifications:

    @pytest.mark.asyncio
    async def test_failing_notifier_keeps_transition(self, db_session, session_maker, filer, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session, notifier=FailingNotifier())

        submitted = await engine.transition(submission.id, A.SUBMIT, filer)
        assert submitted.status == S.SUBMITTED.value

        async with session_maker() as fresh:
            stored = await SubmissionService(fresh).get_submission(submission.id)
            assert stored.status == S.SUBMITTED.value

    @pytest.mark.asyncio
    async def test_targets_exclude_actor(self, db_session, filer, assigned_reviewer, school_id):
        author_list = authors("first_author", "co_author")
        submission = await file_research_paper(db_session, filer, school_id, author_list=author_list)
        notifier = RecordingNotifier()

        await WorkflowEngine(db_session, notifier=notifier).transition(submission.id, A.SUBMIT, filer)

        event = notifier.last()
        assert event.event_type == "submission.submit"
        assert filer.ref not in event.target_refs
        assert str(assigned_reviewer.id) in event.target_refs
        assert {str(a.person_ref) for a in author_list} <= set(event.target_refs)

    @pytest.mark.asyncio
    async def test_database_notifier_stores_rows(self, db_session, session_maker, filer, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session, notifier=DatabaseNotifier(session_maker))
        await engine.transition(submission.id, A.SUBMIT, filer)

        result = await db_session.execute(
            select(func.count(Notification.id)).where(Notification.submission_id == submission.id)
        )
        assert result.scalar_one() == 2


class TestOverride:

    @pytest.mark.asyncio
    async def test_override_out_of_terminal(self, db_session, filer, assigned_reviewer, admin, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session)
        await engine.transition(submission.id, A.SUBMIT, filer)
        await engine.transition(submission.id, A.START_REVIEW, assigned_reviewer)
        await engine.transition(submission.id, A.REJECT, assigned_reviewer, comments="Wrong school")

        reopened = await engine.override_status(
            submission.id, admin, S.UNDER_REVIEW, comments="Rejected in error", expected_status="rejected"
        )
        assert reopened.status == S.UNDER_REVIEW.value

        last = (await engine.get_history(submission.id))[-1]
        assert last.action == "override"
        assert last.details == {"system_override": True, "original_status": "rejected"}

    @pytest.mark.asyncio
    async def test_override_needs_capability_and_comments(self, db_session, filer, head, admin, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session)

        with pytest.raises(PermissionDenied):
            await engine.override_status(submission.id, head, S.SUBMITTED, comments="Because")
        with pytest.raises(ValidationError):
            await engine.override_status(submission.id, admin, S.SUBMITTED, comments="")

    @pytest.mark.asyncio
    async def test_override_target_must_belong_to_workflow(self, db_session, filer, admin, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session)

        with pytest.raises(InvalidStateTransition):
            await engine.override_status(submission.id, admin, S.SUBMITTED_TO_GOVT, comments="Wrong kind")
        with pytest.raises(InvalidStateTransition):
            await engine.override_status(submission.id, admin, S.DRAFT, comments="No-op")


class TestDeletion:

    @pytest.mark.asyncio
    async def test_soft_delete_keeps_history(self, db_session, filer, admin, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        await WorkflowEngine(db_session).transition(submission.id, A.SUBMIT, filer)

        service = SubmissionService(db_session)
        await service.delete_submission(submission.id, admin)
        await db_session.commit()

        with pytest.raises(NotFound):
            await service.get_submission(submission.id)
        assert await history_actions(db_session, submission.id) == ["submit"]

    @pytest.mark.asyncio
    async def test_delete_rules(self, db_session, filer, assigned_reviewer, head, finance, admin, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        engine = WorkflowEngine(db_session, missing_policy_mode="zero")
        service = SubmissionService(db_session)

        with pytest.raises(PermissionDenied):
            await service.delete_submission(submission.id, filer)

        await to_recommended(engine, submission, filer, assigned_reviewer)
        await engine.transition(submission.id, A.APPROVE, head)
        with pytest.raises(InvalidStateTransition):
            await service.delete_submission(submission.id, admin)

        await engine.transition(submission.id, A.COMPLETE, finance)
        with pytest.raises(AlreadyTerminal):
            await service.delete_submission(submission.id, admin)

    @pytest.mark.asyncio
    async def test_deleted_submission_cannot_transition(self, db_session, filer, admin, school_id):
        submission = await file_research_paper(db_session, filer, school_id)
        await SubmissionService(db_session).delete_submission(submission.id, admin)
        await db_session.commit()

        with pytest.raises(NotFound):
            await WorkflowEngine(db_session).transition(submission.id, A.SUBMIT, filer)
