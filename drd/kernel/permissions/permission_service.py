"""
Permission service: capability grants and reviewer school assignments.
"""

import uuid
from typing import FrozenSet, List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from drd.kernel.events.event_store import EventStore
from drd.kernel.identity.actor import Actor
from drd.kernel.models.base import utcnow
from drd.kernel.models.event_log import EventType
from drd.kernel.models.permission import (
    AssignmentScope,
    Capability,
    CapabilityGrant,
    ReviewerSchoolAssignment,
    ScopedVerb,
    scoped_capability,
)
from drd.logging_config import get_logger

logger = get_logger(__name__)


class PermissionService:
    """
    Service for checking and managing access.

    Two independent sources:
    - capability grants (what an actor may do at all)
    - school assignments (which schools a reviewer covers, per scope)
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.event_store = EventStore(session)

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def get_capabilities(self, actor_id: uuid.UUID) -> FrozenSet[Capability]:
        """All non-revoked capabilities held by an actor. Unknown keys are dropped."""
        result = await self.session.execute(
            select(CapabilityGrant.capability).where(
                and_(
                    CapabilityGrant.actor_id == actor_id,
                    CapabilityGrant.revoked.is_(False),
                )
            )
        )
        capabilities = set()
        for value in result.scalars().all():
            try:
                capabilities.add(Capability(value))
            except ValueError:
                logger.warning("Ignoring unknown capability key", extra={"capability": value})
        return frozenset(capabilities)

    def has_permission(self, actor: Actor, scope: AssignmentScope, verb: ScopedVerb) -> bool:
        """Exact capability check for a verb within a scope."""
        return actor.has(scoped_capability(scope, verb))

    async def grant(
        self,
        actor_id: uuid.UUID,
        capability: Capability,
        granted_by: Optional[uuid.UUID] = None,
    ) -> CapabilityGrant:
        """Grant a capability; returns the existing grant if already held."""
        existing = await self._active_grant(actor_id, capability)
        if existing:
            return existing

        grant = CapabilityGrant(
            actor_id=actor_id,
            capability=capability.value,
            granted_by=granted_by,
        )
        self.session.add(grant)
        await self.session.flush()

        await self.event_store.log(
            event_type=EventType.CAPABILITY_GRANTED,
            entity_type="capability_grant",
            entity_id=grant.id,
            user_id=granted_by,
            payload={"actor_id": actor_id, "capability": capability},
        )
        return grant

    async def revoke(
        self,
        actor_id: uuid.UUID,
        capability: Capability,
        revoked_by: Optional[uuid.UUID] = None,
    ) -> bool:
        """Revoke a capability. Returns False if it was not held."""
        grant = await self._active_grant(actor_id, capability)
        if not grant:
            return False

        grant.revoked = True
        grant.revoked_at = utcnow()

        await self.event_store.log(
            event_type=EventType.CAPABILITY_REVOKED,
            entity_type="capability_grant",
            entity_id=grant.id,
            user_id=revoked_by,
            payload={"actor_id": actor_id, "capability": capability},
        )
        return True

    async def _active_grant(self, actor_id: uuid.UUID, capability: Capability) -> Optional[CapabilityGrant]:
        result = await self.session.execute(
            select(CapabilityGrant).where(
                and_(
                    CapabilityGrant.actor_id == actor_id,
                    CapabilityGrant.capability == capability.value,
                    CapabilityGrant.revoked.is_(False),
                )
            )
        )
        return result.scalars().first()

    # ------------------------------------------------------------------
    # School assignments
    # ------------------------------------------------------------------

    async def is_assigned(
        self,
        reviewer_id: uuid.UUID,
        scope: AssignmentScope,
        school_id: uuid.UUID,
    ) -> bool:
        result = await self.session.execute(
            select(ReviewerSchoolAssignment.id).where(
                and_(
                    ReviewerSchoolAssignment.reviewer_id == reviewer_id,
                    ReviewerSchoolAssignment.scope == scope.value,
                    ReviewerSchoolAssignment.school_id == school_id,
                )
            )
        )
        return result.first() is not None

    async def assign_school(
        self,
        reviewer_id: uuid.UUID,
        scope: AssignmentScope,
        school_id: uuid.UUID,
        assigned_by: Optional[uuid.UUID] = None,
    ) -> ReviewerSchoolAssignment:
        """Idempotent: returns the existing assignment if present."""
        result = await self.session.execute(
            select(ReviewerSchoolAssignment).where(
                and_(
                    ReviewerSchoolAssignment.reviewer_id == reviewer_id,
                    ReviewerSchoolAssignment.scope == scope.value,
                    ReviewerSchoolAssignment.school_id == school_id,
                )
            )
        )
        existing = result.scalars().first()
        if existing:
            return existing

        assignment = ReviewerSchoolAssignment(
            reviewer_id=reviewer_id,
            scope=scope.value,
            school_id=school_id,
            assigned_by=assigned_by,
        )
        self.session.add(assignment)
        await self.session.flush()

        await self.event_store.log(
            event_type=EventType.SCHOOL_ASSIGNED,
            entity_type="reviewer_assignment",
            entity_id=assignment.id,
            user_id=assigned_by,
            payload={"reviewer_id": reviewer_id, "scope": scope, "school_id": school_id},
        )
        return assignment

    async def unassign_school(
        self,
        reviewer_id: uuid.UUID,
        scope: AssignmentScope,
        school_id: uuid.UUID,
        unassigned_by: Optional[uuid.UUID] = None,
    ) -> bool:
        result = await self.session.execute(
            select(ReviewerSchoolAssignment).where(
                and_(
                    ReviewerSchoolAssignment.reviewer_id == reviewer_id,
                    ReviewerSchoolAssignment.scope == scope.value,
                    ReviewerSchoolAssignment.school_id == school_id,
                )
            )
        )
        assignment = result.scalars().first()
        if not assignment:
            return False

        await self.event_store.log(
            event_type=EventType.SCHOOL_UNASSIGNED,
            entity_type="reviewer_assignment",
            entity_id=assignment.id,
            user_id=unassigned_by,
            payload={"reviewer_id": reviewer_id, "scope": scope, "school_id": school_id},
        )
        await self.session.delete(assignment)
        await self.session.flush()
        return True

    async def list_assignments(
        self,
        reviewer_id: Optional[uuid.UUID] = None,
        scope: Optional[AssignmentScope] = None,
    ) -> List[ReviewerSchoolAssignment]:
        query = select(ReviewerSchoolAssignment)
        if reviewer_id is not None:
            query = query.where(ReviewerSchoolAssignment.reviewer_id == reviewer_id)
        if scope is not None:
            query = query.where(ReviewerSchoolAssignment.scope == scope.value)
        query = query.order_by(ReviewerSchoolAssignment.created_at)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def assigned_reviewer_ids(
        self,
        scope: AssignmentScope,
        school_id: uuid.UUID,
    ) -> List[uuid.UUID]:
        result = await self.session.execute(
            select(ReviewerSchoolAssignment.reviewer_id).where(
                and_(
                    ReviewerSchoolAssignment.scope == scope.value,
                    ReviewerSchoolAssignment.school_id == school_id,
                )
            )
        )
        return list(result.scalars().all())
