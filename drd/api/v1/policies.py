"""Incentive policy endpoints."""

import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Query, status

from drd.api.deps import CurrentActor, DbSession, PolicyManager
from drd.engines.incentives.policy_resolver import PolicyRepository
from drd.kernel.models.policy import PolicyScope
from drd.kernel.models.submission import SubmissionKind
from drd.schemas.common import ApiResponse, ok
from drd.schemas.policy import PolicyCreate, PolicyResponse, PolicyUpdate

router = APIRouter()


def _dump(policy) -> dict:
    return PolicyResponse.model_validate(policy).model_dump(mode="json")


@router.get("", response_model=ApiResponse[List[PolicyResponse]])
async def list_policies(
    actor: CurrentActor,
    db: DbSession,
    kind: Optional[SubmissionKind] = None,
    sub_type: Optional[str] = None,
    include_inactive: bool = True,
):
    policies = await PolicyRepository(db).list_policies(
        submission_kind=kind.value if kind else None,
        sub_type=sub_type,
        include_inactive=include_inactive,
    )
    return ok([_dump(p) for p in policies])


@router.post("", response_model=ApiResponse[PolicyResponse], status_code=status.HTTP_201_CREATED)
async def create_policy(data: PolicyCreate, actor: PolicyManager, db: DbSession):
    """Create a new policy version for a scope. Overlapping active windows are rejected."""
    terms = data.model_dump(
        include={
            "distribution_method",
            "base_amount",
            "base_points",
            "position_based_distribution",
            "role_percentages",
            "indexing_bonuses",
        }
    )
    policy = await PolicyRepository(db).create_policy(
        policy_name=data.policy_name,
        scope=PolicyScope(data.submission_kind.value, data.sub_type, data.variant),
        effective_from=data.effective_from,
        effective_to=data.effective_to,
        is_active=data.is_active,
        created_by=actor.id,
        **terms,
    )
    return ok(_dump(policy))


@router.get("/resolve", response_model=ApiResponse[PolicyResponse])
async def resolve_policy(
    actor: CurrentActor,
    db: DbSession,
    kind: SubmissionKind,
    sub_type: str,
    reference_date: date,
    variant: str = "",
):
    """The active policy covering a scope on a date."""
    policy = await PolicyRepository(db).resolve_active_policy(
        PolicyScope(kind.value, sub_type, variant),
        reference_date,
    )
    return ok(_dump(policy))


@router.get("/{policy_id}", response_model=ApiResponse[PolicyResponse])
async def get_policy(policy_id: uuid.UUID, actor: CurrentActor, db: DbSession):
    return ok(_dump(await PolicyRepository(db).get_policy(policy_id)))


@router.patch("/{policy_id}", response_model=ApiResponse[PolicyResponse])
async def update_policy(policy_id: uuid.UUID, data: PolicyUpdate, actor: PolicyManager, db: DbSession):
    changes = data.model_dump(exclude_unset=True)
    policy = await PolicyRepository(db).update_policy(policy_id, changes, updated_by=actor.id)
    return ok(_dump(policy))


@router.post("/{policy_id}/deactivate", response_model=ApiResponse[PolicyResponse])
async def deactivate_policy(policy_id: uuid.UUID, actor: PolicyManager, db: DbSession):
    policy = await PolicyRepository(db).deactivate_policy(policy_id, updated_by=actor.id)
    return ok(_dump(policy))


@router.delete("/{policy_id}", response_model=ApiResponse[dict])
async def delete_policy(policy_id: uuid.UUID, actor: PolicyManager, db: DbSession):
    """Delete an unreferenced policy; referenced ones must be deactivated."""
    await PolicyRepository(db).delete_policy(policy_id, deleted_by=actor.id)
    return ok({"id": str(policy_id), "deleted": True})
