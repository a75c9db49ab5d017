"""Capability grant endpoints (system_override)."""

import uuid

from fastapi import APIRouter, status

from drd.api.deps import DbSession, OverrideActor
from drd.kernel.models.permission import Capability
from drd.kernel.permissions.permission_service import PermissionService
from drd.orchestration.errors import NotFound
from drd.schemas.access import GrantRequest, GrantResponse
from drd.schemas.common import ApiResponse, ok

router = APIRouter()


@router.post("/grants", response_model=ApiResponse[GrantResponse], status_code=status.HTTP_201_CREATED)
async def grant_capability(data: GrantRequest, actor: OverrideActor, db: DbSession):
    grant = await PermissionService(db).grant(data.actor_id, data.capability, granted_by=actor.id)
    return ok(GrantResponse.model_validate(grant).model_dump(mode="json"))


@router.delete("/grants", response_model=ApiResponse[dict])
async def revoke_capability(
    actor_id: uuid.UUID,
    capability: Capability,
    actor: OverrideActor,
    db: DbSession,
):
    revoked = await PermissionService(db).revoke(actor_id, capability, revoked_by=actor.id)
    if not revoked:
        raise NotFound("Capability is not held", details={"capability": capability.value})
    return ok({"revoked": True})
