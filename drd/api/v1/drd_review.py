"""
DRD review endpoints: reviewer, approver and finance actions, admin
override, incentive maintenance and review history.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter

from drd.api.deps import CurrentActor, DbSession, Engine
from drd.orchestration.errors import InvalidStateTransition
from drd.orchestration.submission_service import SubmissionService
from drd.orchestration.transitions import WorkflowAction
from drd.schemas.common import ApiResponse, ok
from drd.schemas.submission import (
    HistoryEntryResponse,
    IncentiveActionRequest,
    OverrideRequest,
    SubmissionResponse,
    TransitionRequest,
)

router = APIRouter()

# Filer and mentor moves have their own routes under /ipr and /research
_REVIEW_ACTIONS = frozenset({
    WorkflowAction.START_REVIEW,
    WorkflowAction.RECOMMEND,
    WorkflowAction.REQUEST_CHANGES,
    WorkflowAction.REJECT,
    WorkflowAction.APPROVE,
    WorkflowAction.SUBMIT_TO_GOVT,
    WorkflowAction.RECORD_GOVT_FILING,
    WorkflowAction.PUBLISH,
    WorkflowAction.GOVT_REJECT,
    WorkflowAction.COMPLETE,
})


def _dump(submission) -> dict:
    return SubmissionResponse.model_validate(submission).model_dump(mode="json")


def _review_action(name: str) -> WorkflowAction:
    try:
        action = WorkflowAction(name.replace("-", "_"))
    except ValueError:
        action = None
    if action not in _REVIEW_ACTIONS:
        raise InvalidStateTransition(
            f"Unknown review action: {name}",
            details={"allowed_actions": sorted(a.value for a in _REVIEW_ACTIONS)},
        )
    return action


@router.post("/drd-review/override/{submission_id}", response_model=ApiResponse[SubmissionResponse])
async def override_status(
    submission_id: uuid.UUID,
    data: OverrideRequest,
    actor: CurrentActor,
    engine: Engine,
):
    """Force a submission into any status of its workflow (system_override)."""
    submission = await engine.override_status(
        submission_id,
        actor,
        data.to_status,
        data.comments,
        expected_status=data.expected_status,
    )
    return ok(_dump(submission))


@router.post("/drd-review/incentive/clear/{submission_id}", response_model=ApiResponse[SubmissionResponse])
async def clear_incentive(
    submission_id: uuid.UUID,
    data: IncentiveActionRequest,
    actor: CurrentActor,
    engine: Engine,
):
    """Empty the stored incentive so it can be recomputed."""
    submission = await engine.clear_incentive(submission_id, actor, data.comments)
    return ok(_dump(submission))


@router.post("/drd-review/incentive/recompute/{submission_id}", response_model=ApiResponse[SubmissionResponse])
async def recompute_incentive(
    submission_id: uuid.UUID,
    actor: CurrentActor,
    engine: Engine,
    data: Optional[IncentiveActionRequest] = None,
):
    submission = await engine.recompute_incentive(
        submission_id,
        actor,
        comments=data.comments if data else None,
    )
    return ok(_dump(submission))


@router.post("/drd-review/{action}/{submission_id}", response_model=ApiResponse[SubmissionResponse])
async def review_action(
    action: str,
    submission_id: uuid.UUID,
    actor: CurrentActor,
    engine: Engine,
    data: Optional[TransitionRequest] = None,
):
    """
    Apply a reviewer, approver or finance action.

    Actions accept either spelling, e.g. start-review or start_review.
    """
    data = data or TransitionRequest()
    submission = await engine.transition(
        submission_id,
        _review_action(action),
        actor,
        comments=data.comments,
        expected_status=data.expected_status,
        payload={
            "govt_application_id": data.govt_application_id,
            "publication_id": data.publication_id,
        },
    )
    return ok(_dump(submission))


@router.get("/submissions/{submission_id}/history", response_model=ApiResponse[List[HistoryEntryResponse]])
async def get_history(submission_id: uuid.UUID, actor: CurrentActor, db: DbSession):
    """Review history in append order."""
    service = SubmissionService(db)
    await service.get_for_actor(submission_id, actor)
    entries = await service.get_history(submission_id)
    return ok([HistoryEntryResponse.model_validate(e).model_dump(mode="json") for e in entries])
