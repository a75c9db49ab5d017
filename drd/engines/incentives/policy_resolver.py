"""
Policy Repository

Resolves the policy in force for a scope on a date, and owns every write to
the policy table. Windows are inclusive on both ends; effective_to NULL is
open-ended. Per scope, no two active policies may have intersecting windows:
this is checked on create, update and re-activation rather than repaired
after the fact. Writes in one scope are serialised through the scope's
counter row, so two writers cannot both pass the check.
"""

import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, and_, or_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from drd.engines.incentives.types import PolicyTerms
from drd.kernel.events.event_store import EventStore
from drd.kernel.events.event_types import PolicyEvent
from drd.kernel.models.base import utcnow
from drd.kernel.models.counter import next_value
from drd.kernel.models.event_log import EventType
from drd.kernel.models.policy import IncentivePolicy, PolicyScope
from drd.kernel.models.submission import Submission
from drd.logging_config import get_logger
from drd.orchestration.errors import (
    ConcurrentModification,
    NoApplicablePolicy,
    NotFound,
    PolicyInUse,
    PolicyOverlap,
    ValidationError,
)

logger = get_logger(__name__)

_TERM_FIELDS = (
    "distribution_method",
    "base_amount",
    "base_points",
    "position_based_distribution",
    "role_percentages",
    "indexing_bonuses",
)
_UPDATABLE_FIELDS = ("policy_name", "effective_from", "effective_to", "is_active") + _TERM_FIELDS


def _scope_filter(scope: PolicyScope):
    return and_(
        IncentivePolicy.submission_kind == scope.submission_kind,
        IncentivePolicy.sub_type == scope.sub_type,
        IncentivePolicy.variant == (scope.variant or ""),
    )


def windows_overlap(
    a_from: date,
    a_to: Optional[date],
    b_from: date,
    b_to: Optional[date],
) -> bool:
    """Inclusive interval intersection; None means open-ended."""
    a_starts_before_b_ends = b_to is None or a_from <= b_to
    b_starts_before_a_ends = a_to is None or b_from <= a_to
    return a_starts_before_b_ends and b_starts_before_a_ends


def validate_terms(values: Dict[str, Any]) -> Dict[str, Any]:
    """Validate the pricing fields; returns them normalised for JSON storage."""
    try:
        terms = PolicyTerms(**{k: values[k] for k in _TERM_FIELDS if k in values})
    except PydanticValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise ValidationError(
            f"Invalid policy terms: {errors[0]['field']}: {errors[0]['message']}",
            details={"errors": errors},
        ) from e
    dumped = terms.model_dump(mode="json", by_alias=True)
    return {k: dumped[k] for k in _TERM_FIELDS}


class PolicyRepository:
    """Reads and writes incentive policies."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.event_store = EventStore(session)

    async def resolve_active_policy(self, scope: PolicyScope, reference_date: date) -> IncentivePolicy:
        """
        The active policy for `scope` whose window contains `reference_date`.

        Raises:
            NoApplicablePolicy: nothing covers the date
        """
        query = (
            select(IncentivePolicy)
            .where(
                and_(
                    _scope_filter(scope),
                    IncentivePolicy.is_active.is_(True),
                    IncentivePolicy.effective_from <= reference_date,
                    or_(
                        IncentivePolicy.effective_to.is_(None),
                        IncentivePolicy.effective_to >= reference_date,
                    ),
                )
            )
            .order_by(IncentivePolicy.effective_from.desc(), IncentivePolicy.version.desc())
            .limit(1)
        )
        result = await self.session.execute(query)
        policy = result.scalars().first()
        if policy is None:
            raise NoApplicablePolicy(
                f"No active incentive policy for {scope} on {reference_date.isoformat()}",
                details={"scope": str(scope), "reference_date": reference_date.isoformat()},
            )
        return policy

    async def get_policy(self, policy_id: uuid.UUID) -> IncentivePolicy:
        policy = await self.session.get(IncentivePolicy, policy_id)
        if policy is None:
            raise NotFound("Incentive policy not found", details={"policy_id": str(policy_id)})
        return policy

    async def list_policies(
        self,
        submission_kind: Optional[str] = None,
        sub_type: Optional[str] = None,
        include_inactive: bool = True,
    ) -> List[IncentivePolicy]:
        query = select(IncentivePolicy)
        if submission_kind:
            query = query.where(IncentivePolicy.submission_kind == submission_kind)
        if sub_type:
            query = query.where(IncentivePolicy.sub_type == sub_type)
        if not include_inactive:
            query = query.where(IncentivePolicy.is_active.is_(True))
        query = query.order_by(
            IncentivePolicy.submission_kind,
            IncentivePolicy.sub_type,
            IncentivePolicy.variant,
            IncentivePolicy.effective_from.desc(),
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create_policy(
        self,
        *,
        policy_name: str,
        scope: PolicyScope,
        effective_from: date,
        effective_to: Optional[date] = None,
        is_active: bool = True,
        created_by: Optional[uuid.UUID] = None,
        **terms: Any,
    ) -> IncentivePolicy:
        """
        Store a new policy version for a scope.

        Raises:
            ValidationError: malformed terms or an inverted window
            PolicyOverlap: an active policy of the same scope covers part of the window
        """
        self._check_window(effective_from, effective_to)
        stored_terms = validate_terms(terms)
        await self._lock_scope(scope)
        if is_active:
            await self._ensure_no_overlap(scope, effective_from, effective_to)

        policy = IncentivePolicy(
            policy_name=policy_name,
            submission_kind=scope.submission_kind,
            sub_type=scope.sub_type,
            variant=scope.variant or "",
            version=await self._next_version(scope),
            is_active=is_active,
            effective_from=effective_from,
            effective_to=effective_to,
            created_by=created_by,
            updated_by=created_by,
            **stored_terms,
        )
        self.session.add(policy)
        await self.session.flush()

        await self._log(EventType.POLICY_CREATED, policy, created_by)
        logger.info(
            "Incentive policy created",
            extra={"policy_id": str(policy.id), "scope": str(scope), "version": policy.version},
        )
        return policy

    async def update_policy(
        self,
        policy_id: uuid.UUID,
        changes: Dict[str, Any],
        updated_by: Optional[uuid.UUID] = None,
    ) -> IncentivePolicy:
        """Apply field changes; the resulting window is re-checked for overlap."""
        policy = await self.get_policy(policy_id)
        unknown = sorted(set(changes) - set(_UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")

        effective_from = changes.get("effective_from", policy.effective_from)
        effective_to = changes["effective_to"] if "effective_to" in changes else policy.effective_to
        is_active = changes.get("is_active", policy.is_active)
        self._check_window(effective_from, effective_to)

        if any(k in changes for k in _TERM_FIELDS):
            merged = {k: getattr(policy, k) for k in _TERM_FIELDS}
            merged.update({k: v for k, v in changes.items() if k in _TERM_FIELDS})
            changes = {**changes, **validate_terms(merged)}

        if is_active:
            await self._lock_scope(policy.scope)
            await self._ensure_no_overlap(policy.scope, effective_from, effective_to, exclude_id=policy.id)

        for key, value in changes.items():
            setattr(policy, key, value)
        policy.updated_by = updated_by
        if "is_active" in changes:
            policy.deactivated_at = None if is_active else utcnow()
        await self.session.flush()

        await self._log(EventType.POLICY_UPDATED, policy, updated_by, changed_fields=sorted(changes))
        return policy

    async def deactivate_policy(
        self,
        policy_id: uuid.UUID,
        updated_by: Optional[uuid.UUID] = None,
    ) -> IncentivePolicy:
        policy = await self.get_policy(policy_id)
        if policy.is_active:
            policy.is_active = False
            policy.deactivated_at = utcnow()
            policy.updated_by = updated_by
            await self.session.flush()
            await self._log(EventType.POLICY_DEACTIVATED, policy, updated_by)
        return policy

    async def delete_policy(
        self,
        policy_id: uuid.UUID,
        deleted_by: Optional[uuid.UUID] = None,
    ) -> None:
        """
        Physically delete an unreferenced policy.

        Raises:
            PolicyInUse: a submission's incentive was priced with it
        """
        policy = await self.get_policy(policy_id)
        result = await self.session.execute(
            select(func.count(Submission.id)).where(Submission.incentive_policy_id == policy.id)
        )
        if result.scalar_one():
            raise PolicyInUse(
                "Policy is referenced by priced submissions; deactivate it instead",
                details={"policy_id": str(policy.id)},
            )

        await self._log(EventType.POLICY_DELETED, policy, deleted_by)
        await self.session.delete(policy)
        await self.session.flush()

    # ------------------------------------------------------------------

    @staticmethod
    def _check_window(effective_from: date, effective_to: Optional[date]) -> None:
        if effective_to is not None and effective_to < effective_from:
            raise ValidationError("effective_to is before effective_from")

    async def _lock_scope(self, scope: PolicyScope) -> None:
        """
        Serialise policy writes within a scope until this transaction ends.

        Bumping the scope counter takes its row lock, so a concurrent writer
        waits here and then sees this transaction's committed rows in its
        own overlap check.
        """
        try:
            await next_value(self.session, f"policy:{scope}")
        except IntegrityError as exc:
            raise ConcurrentModification(
                f"Another policy write for {scope} is in progress; retry",
                details={"scope": str(scope)},
            ) from exc

    async def _ensure_no_overlap(
        self,
        scope: PolicyScope,
        effective_from: date,
        effective_to: Optional[date],
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(IncentivePolicy).where(
            and_(_scope_filter(scope), IncentivePolicy.is_active.is_(True))
        )
        if exclude_id is not None:
            query = query.where(IncentivePolicy.id != exclude_id)
        result = await self.session.execute(query)
        for other in result.scalars().all():
            if windows_overlap(effective_from, effective_to, other.effective_from, other.effective_to):
                raise PolicyOverlap(
                    f"Window overlaps active policy '{other.policy_name}' (v{other.version}) for {scope}",
                    details={
                        "conflicting_policy_id": str(other.id),
                        "effective_from": other.effective_from.isoformat(),
                        "effective_to": other.effective_to.isoformat() if other.effective_to else None,
                    },
                )

    async def _next_version(self, scope: PolicyScope) -> int:
        result = await self.session.execute(
            select(func.max(IncentivePolicy.version)).where(_scope_filter(scope))
        )
        return (result.scalar_one_or_none() or 0) + 1

    async def _log(
        self,
        event_type: EventType,
        policy: IncentivePolicy,
        user_id: Optional[uuid.UUID],
        changed_fields: Optional[List[str]] = None,
    ) -> None:
        await self.event_store.log_from_model(
            event_type=event_type,
            entity_type="incentive_policy",
            entity_id=policy.id,
            user_id=user_id,
            payload_model=PolicyEvent(
                scope=str(policy.scope),
                version=policy.version,
                is_active=policy.is_active,
                effective_from=policy.effective_from.isoformat(),
                effective_to=policy.effective_to.isoformat() if policy.effective_to else None,
                changed_fields=changed_fields or [],
            ),
        )
