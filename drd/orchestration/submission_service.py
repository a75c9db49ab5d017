"""
Submission service: filer-side lifecycle around the workflow.

Creation, edits while editable, soft deletion and reads. Status changes are
never made here; they go through WorkflowEngine.
"""

import uuid
from typing import Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from drd.engines.incentives.calculator import validate_authors
from drd.engines.incentives.types import AuthorInput, IncentiveInput, IndexingMetadata
from drd.kernel.events.event_store import EventStore
from drd.kernel.events.event_types import SubmissionEvent
from drd.kernel.identity.actor import Actor
from drd.kernel.models.base import utcnow
from drd.kernel.models.counter import next_value
from drd.kernel.models.event_log import EventType
from drd.kernel.models.permission import AssignmentScope, Capability, ScopedVerb, scoped_capability
from drd.kernel.models.review_history import ReviewHistoryEntry
from drd.kernel.models.submission import (
    APPLICATION_PREFIXES,
    Submission,
    SubmissionAuthor,
    SubmissionKind,
    SubmissionStatus,
    assignment_scope_for,
)
from drd.logging_config import get_logger
from drd.orchestration.errors import (
    AlreadyTerminal,
    ConcurrentModification,
    InvalidStateTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from drd.orchestration.transitions import EDITABLE_STATES, workflow_for
from drd.schemas.submission import AuthorIn, SubmissionBase, SubmissionUpdate

logger = get_logger(__name__)

# Verbs that let an actor see submissions they did not file
_STAFF_VERBS = (ScopedVerb.REVIEW, ScopedVerb.APPROVE, ScopedVerb.ASSIGN_SCHOOL)


def check_author_list(authors: Sequence[AuthorIn]) -> None:
    """Position rules the calculator enforces, applied at write time."""
    validate_authors([
        AuthorInput(author_ref=str(i), position=a.position, author_role=a.author_role.value)
        for i, a in enumerate(authors)
    ])


def incentive_input(submission: Submission) -> IncentiveInput:
    """Calculator input built from a stored submission."""
    try:
        metadata = IndexingMetadata.model_validate(submission.indexing_metadata or {})
    except PydanticValidationError as e:
        raise ValidationError(
            "Stored indexing metadata is invalid",
            details={"errors": [err["msg"] for err in e.errors()]},
        ) from e
    return IncentiveInput(
        authors=[
            AuthorInput(
                author_ref=str(author.id),
                person_ref=str(author.person_ref) if author.person_ref else None,
                author_role=author.author_role,
                position=author.position,
                is_internal=author.is_internal,
                is_international=author.is_international,
                is_student=author.is_student,
            )
            for author in submission.authors
        ],
        metadata=metadata,
    )


class SubmissionService:
    """Reads and filer-side writes for submissions."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.event_store = EventStore(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_submission(
        self,
        submission_id: uuid.UUID,
        kind: Optional[SubmissionKind] = None,
        refresh: bool = False,
    ) -> Submission:
        """
        Load a live submission.

        With refresh=True the row is re-read even if already in the session,
        so callers about to mutate see the current status.
        """
        query = select(Submission).where(
            and_(Submission.id == submission_id, Submission.deleted_at.is_(None))
        )
        if kind is not None:
            query = query.where(Submission.kind == SubmissionKind(kind).value)
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        submission = result.scalars().first()
        if submission is None:
            raise NotFound("Submission not found", details={"submission_id": str(submission_id)})
        return submission

    def can_view(self, actor: Actor, submission: Submission) -> bool:
        if actor.id == submission.filer_id:
            return True
        if submission.mentor_uid and actor.uid == submission.mentor_uid:
            return True
        if any(a.person_ref == actor.id for a in submission.authors):
            return True
        if actor.has(Capability.FINANCE_PROCESS) or actor.has(Capability.SYSTEM_OVERRIDE):
            return True
        scope = submission.assignment_scope
        return any(actor.has(scoped_capability(scope, verb)) for verb in _STAFF_VERBS)

    async def get_for_actor(
        self,
        submission_id: uuid.UUID,
        actor: Actor,
        kind: Optional[SubmissionKind] = None,
    ) -> Submission:
        submission = await self.get_submission(submission_id, kind=kind)
        if not self.can_view(actor, submission):
            # Not revealing existence to unrelated actors
            raise NotFound("Submission not found", details={"submission_id": str(submission_id)})
        return submission

    async def list_submissions(
        self,
        actor: Actor,
        kind: SubmissionKind,
        status: Optional[SubmissionStatus] = None,
        school_id: Optional[uuid.UUID] = None,
        filer_id: Optional[uuid.UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Submission], int]:
        """
        Submissions of a kind visible to the actor.

        Staff (review/approve/assign in any scope of the kind, finance,
        override) see all; everyone else sees what they filed.
        """
        conditions = [Submission.kind == SubmissionKind(kind).value, Submission.deleted_at.is_(None)]
        if status is not None:
            conditions.append(Submission.status == SubmissionStatus(status).value)
        if school_id is not None:
            conditions.append(Submission.school_id == school_id)
        if filer_id is not None:
            conditions.append(Submission.filer_id == filer_id)
        if not self._is_staff_for(actor, kind):
            conditions.append(Submission.filer_id == actor.id)

        total = await self.session.execute(select(func.count(Submission.id)).where(and_(*conditions)))
        result = await self.session.execute(
            select(Submission)
            .where(and_(*conditions))
            .order_by(Submission.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total.scalar_one()

    async def get_history(self, submission_id: uuid.UUID) -> List[ReviewHistoryEntry]:
        """Review history in append order. Soft-deleted submissions keep theirs."""
        exists = await self.session.get(Submission, submission_id)
        if exists is None:
            raise NotFound("Submission not found", details={"submission_id": str(submission_id)})
        result = await self.session.execute(
            select(ReviewHistoryEntry)
            .where(ReviewHistoryEntry.submission_id == submission_id)
            .order_by(ReviewHistoryEntry.sequence)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_submission(
        self,
        actor: Actor,
        kind: SubmissionKind,
        sub_type: str,
        data: SubmissionBase,
    ) -> Submission:
        """
        File a new draft.

        Raises:
            PermissionDenied: actor lacks <scope>_file_new
            ValidationError: malformed author list
        """
        kind = SubmissionKind(kind)
        scope = assignment_scope_for(kind, sub_type)
        capability = scoped_capability(scope, ScopedVerb.FILE_NEW)
        if not actor.has(capability):
            raise PermissionDenied(
                f"Missing capability {capability.value}",
                details={"required": capability.value},
            )
        check_author_list(data.authors)

        try:
            application_number = await self._next_application_number(sub_type)
        except IntegrityError as exc:
            # Two first filings of the year raced to create the counter row
            raise ConcurrentModification(
                "Application number allocation clashed with another filing; retry"
            ) from exc

        submission = Submission(
            kind=kind.value,
            application_number=application_number,
            title=data.title.strip(),
            sub_type=sub_type,
            school_id=data.school_id,
            department_id=data.department_id,
            filer_id=actor.id,
            filer_role=actor.role.value,
            mentor_uid=data.mentor_uid or None,
            status=SubmissionStatus.DRAFT.value,
            publication_date=data.publication_date,
            indexing_metadata=data.indexing_metadata.model_dump(mode="json", exclude_none=True),
            document_paths=list(data.document_paths),
            authors=self._author_rows(data.authors),
        )
        self.session.add(submission)
        await self.session.flush()

        await self._log(EventType.SUBMISSION_CREATED, submission, actor)
        logger.info(
            "Submission created",
            extra={
                "submission_id": str(submission.id),
                "application_number": submission.application_number,
                "kind": kind.value,
            },
        )
        return submission

    async def update_submission(
        self,
        submission_id: uuid.UUID,
        actor: Actor,
        data: SubmissionUpdate,
        kind: Optional[SubmissionKind] = None,
    ) -> Submission:
        """
        Apply filer edits.

        Raises:
            PermissionDenied: actor is not the filer
            InvalidStateTransition: submission is not in an editable state
        """
        submission = await self.get_submission(submission_id, kind=kind, refresh=True)
        if actor.id != submission.filer_id:
            raise PermissionDenied("Only the filer can edit a submission")
        if submission.status_enum not in EDITABLE_STATES:
            raise InvalidStateTransition(
                f"Submission is locked for edits in status {submission.status}",
                details={"status": submission.status},
            )

        changes = data.model_dump(exclude_unset=True)
        if changes.get("authors") is not None:
            check_author_list(data.authors)
            submission.authors = self._author_rows(data.authors)
        if "indexing_metadata" in changes:
            submission.indexing_metadata = (
                data.indexing_metadata.model_dump(mode="json", exclude_none=True)
                if data.indexing_metadata is not None else {}
            )
        if "document_paths" in changes:
            submission.document_paths = list(data.document_paths or [])
        if changes.get("title"):
            submission.title = data.title.strip()
        for key in ("department_id", "mentor_uid", "publication_date"):
            if key in changes:
                setattr(submission, key, changes[key] or None)
        await self.session.flush()

        await self._log(EventType.SUBMISSION_UPDATED, submission, actor, changed_fields=sorted(changes))
        return submission

    async def delete_submission(self, submission_id: uuid.UUID, actor: Actor) -> Submission:
        """
        Soft-delete a pre-approval submission.

        Raises:
            PermissionDenied: actor lacks system_override
            AlreadyTerminal: submission is in a terminal status
            InvalidStateTransition: submission is approved or past approval
        """
        submission = await self.get_submission(submission_id, refresh=True)
        if not actor.has(Capability.SYSTEM_OVERRIDE):
            raise PermissionDenied(
                "Deleting submissions requires system_override",
                details={"required": Capability.SYSTEM_OVERRIDE.value},
            )
        workflow = workflow_for(submission.kind_enum)
        status = submission.status_enum
        if workflow.is_terminal(status):
            raise AlreadyTerminal(
                f"Submission is {status.value} and cannot be deleted",
                details={"status": status.value},
            )
        if status not in workflow.deletable_states():
            raise InvalidStateTransition(
                f"Approved submissions cannot be deleted (status {status.value})",
                details={"status": status.value},
            )

        submission.deleted_at = utcnow()
        await self.session.flush()
        await self._log(EventType.SUBMISSION_DELETED, submission, actor)
        logger.info("Submission deleted", extra={"submission_id": str(submission.id)})
        return submission

    # ------------------------------------------------------------------

    def _is_staff_for(self, actor: Actor, kind: SubmissionKind) -> bool:
        if actor.has(Capability.FINANCE_PROCESS) or actor.has(Capability.SYSTEM_OVERRIDE):
            return True
        scopes: Iterable[AssignmentScope]
        if SubmissionKind(kind) == SubmissionKind.IPR:
            scopes = (AssignmentScope.IPR,)
        else:
            scopes = [s for s in AssignmentScope if s != AssignmentScope.IPR]
        return any(actor.has(scoped_capability(s, verb)) for s in scopes for verb in _STAFF_VERBS)

    @staticmethod
    def _author_rows(authors: Sequence[AuthorIn]) -> List[SubmissionAuthor]:
        return [
            SubmissionAuthor(
                person_ref=a.person_ref,
                name=a.name.strip(),
                author_role=a.author_role.value,
                position=a.position,
                is_internal=a.is_internal,
                is_international=a.is_international,
                is_student=a.is_student,
                designation=a.designation,
                affiliation=a.affiliation,
            )
            for a in sorted(authors, key=lambda a: a.position)
        ]

    async def _next_application_number(self, sub_type: str) -> str:
        """
        PREFIX-YYYY-NNNN, numbered per prefix and year. Deleted rows keep their numbers.

        Concurrent filers queue on the counter row, so each gets its own value.
        """
        key = f"{APPLICATION_PREFIXES[sub_type]}-{utcnow().year}"
        return f"{key}-{await next_value(self.session, key):04d}"

    async def _log(
        self,
        event_type: EventType,
        submission: Submission,
        actor: Actor,
        changed_fields: Optional[List[str]] = None,
    ) -> None:
        payload = SubmissionEvent(
            application_number=submission.application_number,
            kind=submission.kind_enum.value,
            sub_type=submission.sub_type,
            school_id=submission.school_id,
        )
        if changed_fields:
            payload.metadata["changed_fields"] = changed_fields
        await self.event_store.log_from_model(
            event_type=event_type,
            entity_type="submission",
            entity_id=submission.id,
            user_id=actor.id,
            payload_model=payload,
        )
