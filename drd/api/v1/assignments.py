"""Reviewer school assignment endpoints."""

import uuid
from typing import List, Optional

from fastapi import APIRouter, status

from drd.api.deps import CurrentActor, DbSession
from drd.kernel.identity.actor import Actor
from drd.kernel.models.permission import AssignmentScope, ScopedVerb, scoped_capability
from drd.kernel.permissions.permission_service import PermissionService
from drd.orchestration.errors import NotFound, PermissionDenied
from drd.schemas.access import AssignmentRequest, AssignmentResponse
from drd.schemas.common import ApiResponse, ok

router = APIRouter()


def _require_assign(service: PermissionService, actor: Actor, scope: AssignmentScope) -> None:
    if not service.has_permission(actor, scope, ScopedVerb.ASSIGN_SCHOOL):
        capability = scoped_capability(scope, ScopedVerb.ASSIGN_SCHOOL)
        raise PermissionDenied(
            f"Missing capability {capability.value}",
            details={"required": capability.value},
        )


def _dump(assignment) -> dict:
    return AssignmentResponse.model_validate(assignment).model_dump(mode="json")


@router.get("", response_model=ApiResponse[List[AssignmentResponse]])
async def list_assignments(
    actor: CurrentActor,
    db: DbSession,
    reviewer_id: Optional[uuid.UUID] = None,
    scope: Optional[AssignmentScope] = None,
):
    """Reviewers may list their own assignments; other listings need assign rights."""
    service = PermissionService(db)
    if reviewer_id != actor.id:
        scopes = [scope] if scope else list(AssignmentScope)
        if not any(service.has_permission(actor, s, ScopedVerb.ASSIGN_SCHOOL) for s in scopes):
            raise PermissionDenied("Listing other reviewers' assignments requires an assign_school capability")
    assignments = await service.list_assignments(reviewer_id=reviewer_id, scope=scope)
    return ok([_dump(a) for a in assignments])


@router.post("", response_model=ApiResponse[AssignmentResponse], status_code=status.HTTP_201_CREATED)
async def assign_school(data: AssignmentRequest, actor: CurrentActor, db: DbSession):
    """Assign a reviewer to a school for a scope. Idempotent."""
    service = PermissionService(db)
    _require_assign(service, actor, data.scope)
    assignment = await service.assign_school(
        data.reviewer_id,
        data.scope,
        data.school_id,
        assigned_by=actor.id,
    )
    return ok(_dump(assignment))


@router.delete("", response_model=ApiResponse[dict])
async def unassign_school(
    reviewer_id: uuid.UUID,
    scope: AssignmentScope,
    school_id: uuid.UUID,
    actor: CurrentActor,
    db: DbSession,
):
    service = PermissionService(db)
    _require_assign(service, actor, scope)
    removed = await service.unassign_school(reviewer_id, scope, school_id, unassigned_by=actor.id)
    if not removed:
        raise NotFound("Assignment not found")
    return ok({"removed": True})
