"""
Filer-side submission endpoints, mounted once per kind (/ipr, /research).
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Query, status

from drd.api.deps import CurrentActor, DbSession, Engine
from drd.kernel.models.submission import SubmissionKind, SubmissionStatus
from drd.orchestration.submission_service import SubmissionService
from drd.orchestration.transitions import WorkflowAction
from drd.schemas.common import ApiResponse, PaginatedData, ok
from drd.schemas.submission import (
    IprCreate,
    ResearchCreate,
    SubmissionResponse,
    SubmissionUpdate,
    TransitionRequest,
)


def _dump(submission) -> dict:
    return SubmissionResponse.model_validate(submission).model_dump(mode="json")


def build_router(kind: SubmissionKind) -> APIRouter:
    """CRUD plus the filer and mentor transitions for one submission kind."""
    router = APIRouter()
    create_model = IprCreate if kind == SubmissionKind.IPR else ResearchCreate

    @router.post("", response_model=ApiResponse[SubmissionResponse], status_code=status.HTTP_201_CREATED)
    async def create_submission(data: create_model, actor: CurrentActor, db: DbSession):
        """File a new draft."""
        sub_type = data.ipr_type if kind == SubmissionKind.IPR else data.publication_type
        submission = await SubmissionService(db).create_submission(actor, kind, sub_type.value, data)
        return ok(_dump(submission))

    @router.get("", response_model=ApiResponse[PaginatedData[SubmissionResponse]])
    async def list_submissions(
        actor: CurrentActor,
        db: DbSession,
        status_filter: Optional[SubmissionStatus] = Query(None, alias="status"),
        school_id: Optional[uuid.UUID] = None,
        filer_id: Optional[uuid.UUID] = None,
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
    ):
        """List visible submissions of this kind, newest first."""
        items, total = await SubmissionService(db).list_submissions(
            actor,
            kind,
            status=status_filter,
            school_id=school_id,
            filer_id=filer_id,
            limit=limit,
            offset=offset,
        )
        page = PaginatedData.create([_dump(s) for s in items], total=total, limit=limit, offset=offset)
        return ok(page.model_dump(mode="json"))

    @router.get("/{submission_id}", response_model=ApiResponse[SubmissionResponse])
    async def get_submission(submission_id: uuid.UUID, actor: CurrentActor, db: DbSession):
        submission = await SubmissionService(db).get_for_actor(submission_id, actor, kind=kind)
        return ok(_dump(submission))

    @router.patch("/{submission_id}", response_model=ApiResponse[SubmissionResponse])
    async def update_submission(
        submission_id: uuid.UUID,
        data: SubmissionUpdate,
        actor: CurrentActor,
        db: DbSession,
    ):
        """Edit a draft or a submission returned for changes."""
        submission = await SubmissionService(db).update_submission(submission_id, actor, data, kind=kind)
        return ok(_dump(submission))

    @router.delete("/{submission_id}", response_model=ApiResponse[dict])
    async def delete_submission(submission_id: uuid.UUID, actor: CurrentActor, db: DbSession):
        """Soft-delete a pre-approval submission (system_override)."""
        service = SubmissionService(db)
        await service.get_submission(submission_id, kind=kind)
        submission = await service.delete_submission(submission_id, actor)
        return ok({"id": str(submission.id), "deleted": True})

    async def _transition(
        submission_id: uuid.UUID,
        action: WorkflowAction,
        data: Optional[TransitionRequest],
        actor,
        engine,
    ) -> dict:
        data = data or TransitionRequest()
        # Path kind must match the stored kind
        await engine.submissions.get_submission(submission_id, kind=kind)
        submission = await engine.transition(
            submission_id,
            action,
            actor,
            comments=data.comments,
            expected_status=data.expected_status,
        )
        return ok(_dump(submission))

    @router.post("/{submission_id}/submit", response_model=ApiResponse[SubmissionResponse])
    async def submit(
        submission_id: uuid.UUID,
        actor: CurrentActor,
        engine: Engine,
        data: Optional[TransitionRequest] = None,
    ):
        """Send a draft for review, or to the mentor for mentored filers."""
        return await _transition(submission_id, WorkflowAction.SUBMIT, data, actor, engine)

    @router.post("/{submission_id}/resubmit", response_model=ApiResponse[SubmissionResponse])
    async def resubmit(
        submission_id: uuid.UUID,
        actor: CurrentActor,
        engine: Engine,
        data: Optional[TransitionRequest] = None,
    ):
        return await _transition(submission_id, WorkflowAction.RESUBMIT, data, actor, engine)

    @router.post("/{submission_id}/mentor-approve", response_model=ApiResponse[SubmissionResponse])
    async def mentor_approve(
        submission_id: uuid.UUID,
        actor: CurrentActor,
        engine: Engine,
        data: Optional[TransitionRequest] = None,
    ):
        return await _transition(submission_id, WorkflowAction.MENTOR_APPROVE, data, actor, engine)

    @router.post("/{submission_id}/mentor-reject", response_model=ApiResponse[SubmissionResponse])
    async def mentor_reject(
        submission_id: uuid.UUID,
        actor: CurrentActor,
        engine: Engine,
        data: Optional[TransitionRequest] = None,
    ):
        """Return a submission to draft. Comments required."""
        return await _transition(submission_id, WorkflowAction.MENTOR_REJECT, data, actor, engine)

    return router


ipr_router = build_router(SubmissionKind.IPR)
research_router = build_router(SubmissionKind.RESEARCH)
