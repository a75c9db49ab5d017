"""
Workflow engine: the only code path that changes a submission's status.

Every change follows the same unit of work:
    re-read -> check (terminal, legal, gate, payload) -> price if approving
    -> conditional UPDATE keyed on the expected status -> history row
    -> audit event -> commit -> notify

The conditional UPDATE is the race guard. If another actor moved the
submission first, it matches no row and ConcurrentModification is raised
before anything is written. Notification runs after commit; a failure there
is logged and never undoes the transition.
"""

import uuid
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from drd.config import get_settings
from drd.engines.incentives.calculator import WARNING_ZERO_POOL, compute, validate_authors, zero_result
from drd.engines.incentives.defaults import default_policy_terms
from drd.engines.incentives.policy_resolver import PolicyRepository
from drd.engines.incentives.types import IncentiveResult, PolicyTerms
from drd.kernel.events.event_store import EventStore
from drd.kernel.events.event_types import IncentiveEvent, NotificationEvent, TransitionEvent
from drd.kernel.identity.actor import MENTORED_ROLES, Actor, UserRole
from drd.kernel.models.base import coerce_enum, utcnow
from drd.kernel.models.event_log import EventType
from drd.kernel.models.permission import Capability, ScopedVerb, scoped_capability
from drd.kernel.models.review_history import ReviewHistoryEntry
from drd.kernel.models.submission import Submission, SubmissionStatus
from drd.kernel.permissions.permission_service import PermissionService
from drd.logging_config import get_logger
from drd.orchestration.errors import (
    AlreadyTerminal,
    ConcurrentModification,
    InvalidStateTransition,
    NoApplicablePolicy,
    PermissionDenied,
    ValidationError,
)
from drd.orchestration.notifications import Notifier
from drd.orchestration.submission_service import SubmissionService, incentive_input
from drd.orchestration.transitions import ActorGate, Transition, WorkflowAction, workflow_for

logger = get_logger(__name__)

WARNING_NO_POLICY = "no_applicable_policy"
WARNING_DEFAULT_POLICY = "default_policy_applied"

_INCENTIVE_FIELDS = ("incentive_result", "incentive_policy_id", "incentive_warning", "incentive_calculated_at")


class WorkflowEngine:
    """Applies transitions, overrides and incentive maintenance to submissions."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: Optional[Notifier] = None,
        missing_policy_mode: Optional[str] = None,
    ):
        self.session = session
        self.notifier = notifier
        self.missing_policy_mode = missing_policy_mode or get_settings().incentive_missing_policy_mode
        self.event_store = EventStore(session)
        self.permissions = PermissionService(session)
        self.policies = PolicyRepository(session)
        self.submissions = SubmissionService(session)

    # ------------------------------------------------------------------
    # Table-driven transitions
    # ------------------------------------------------------------------

    async def transition(
        self,
        submission_id: uuid.UUID,
        action: Union[WorkflowAction, str],
        actor: Actor,
        comments: Optional[str] = None,
        expected_status: Optional[Union[SubmissionStatus, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Submission:
        """
        Apply a named action to a submission.

        Args:
            submission_id: Target submission
            action: Workflow action name
            actor: Authenticated caller
            comments: Required for rejections and change requests
            expected_status: The status the caller last saw
            payload: Action inputs such as govt_application_id

        Raises:
            NotFound, AlreadyTerminal, InvalidStateTransition,
            ConcurrentModification, PermissionDenied, ValidationError
        """
        action = self._action(action)
        submission = await self.submissions.get_submission(submission_id, refresh=True)
        workflow = workflow_for(submission.kind_enum)
        current = submission.status_enum

        if workflow.is_terminal(current):
            raise AlreadyTerminal(
                f"Submission is already {current.value}",
                details={"status": current.value},
            )
        self._check_expected(current, expected_status)

        transition = workflow.find(action, current)
        if transition is None:
            raise InvalidStateTransition(
                f"Cannot {action.value} a submission in status {current.value}",
                details={
                    "status": current.value,
                    "allowed_actions": [a.value for a in workflow.actions_from(current)],
                },
            )
        await self._authorize(transition, submission, actor)

        comments = self._clean(comments)
        if transition.requires_comments and not comments:
            raise ValidationError(f"Comments are required to {action.value}")
        payload = payload or {}
        now = utcnow()
        to_state = transition.to_state
        values: Dict[str, Any] = {
            "status_changed_at": now,
            "status_changed_by": actor.id,
        }
        for key in transition.required_payload:
            value = self._clean(payload.get(key))
            if not value:
                raise ValidationError(f"{key} is required to {action.value}", details={"field": key})
            values[key] = value

        if action in (WorkflowAction.SUBMIT, WorkflowAction.RESUBMIT):
            validate_authors(incentive_input(submission).authors)
        if action == WorkflowAction.SUBMIT:
            if submission.submitted_at is None:
                values["submitted_at"] = now
            if submission.mentor_uid and coerce_enum(UserRole, submission.filer_role) in MENTORED_ROLES:
                to_state = workflow.mentor_state
        values["status"] = to_state.value

        details: Dict[str, Any] = {}
        if transition.computes_incentive:
            if submission.incentive_result is not None:
                raise InvalidStateTransition(
                    "An incentive is already recorded; clear it before re-approving",
                    details={"status": current.value},
                )
            result, policy_id, warning = await self._price(submission)
            values.update(
                incentive_result=result.model_dump(mode="json"),
                incentive_policy_id=policy_id,
                incentive_warning=warning,
                incentive_calculated_at=now,
            )
            details["incentive"] = {"total_amount": result.total_amount, "total_points": result.total_points}

        await self._compare_and_swap(
            submission,
            current,
            values,
            incentive_present=False if transition.computes_incentive else None,
        )
        entry = await self._append_history(submission, action, current, to_state, actor, comments, details)
        await self._log_transition(EventType.SUBMISSION_STATUS_CHANGED, submission, action, current, to_state, actor, comments, entry)
        if transition.computes_incentive:
            await self._log_incentive(EventType.INCENTIVE_CALCULATED, submission, actor)
        await self.session.commit()

        logger.info(
            "Submission transitioned",
            extra={
                "submission_id": str(submission.id),
                "action": action.value,
                "from_status": current.value,
                "to_status": to_state.value,
            },
        )
        await self._notify(submission, action, current, to_state, actor, comments)
        return submission

    def allowed_actions(self, submission: Submission) -> List[WorkflowAction]:
        workflow = workflow_for(submission.kind_enum)
        return workflow.actions_from(submission.status_enum)

    # ------------------------------------------------------------------
    # Override
    # ------------------------------------------------------------------

    async def override_status(
        self,
        submission_id: uuid.UUID,
        actor: Actor,
        to_status: Union[SubmissionStatus, str],
        comments: Optional[str],
        expected_status: Optional[Union[SubmissionStatus, str]] = None,
    ) -> Submission:
        """
        Force a submission into any state of its workflow.

        Requires system_override and comments. Recorded in history with
        system_override=True. The stored incentive is left as is.
        """
        submission = await self.submissions.get_submission(submission_id, refresh=True)
        if not actor.has(Capability.SYSTEM_OVERRIDE):
            raise PermissionDenied(
                "Status override requires system_override",
                details={"required": Capability.SYSTEM_OVERRIDE.value},
            )
        comments = self._clean(comments)
        if not comments:
            raise ValidationError("Comments are required for a status override")

        workflow = workflow_for(submission.kind_enum)
        current = submission.status_enum
        target = coerce_enum(SubmissionStatus, to_status)
        if target not in workflow.states:
            raise InvalidStateTransition(
                f"{target.value} is not a {submission.kind_enum.value} status",
                details={"to_status": target.value},
            )
        if target == current:
            raise InvalidStateTransition(
                f"Submission is already {current.value}",
                details={"status": current.value},
            )
        self._check_expected(current, expected_status)

        now = utcnow()
        await self._compare_and_swap(
            submission,
            current,
            {"status": target.value, "status_changed_at": now, "status_changed_by": actor.id},
        )
        entry = await self._append_history(
            submission,
            WorkflowAction.OVERRIDE,
            current,
            target,
            actor,
            comments,
            {"system_override": True, "original_status": current.value},
        )
        await self._log_transition(
            EventType.SUBMISSION_STATUS_OVERRIDDEN, submission, WorkflowAction.OVERRIDE, current, target, actor, comments, entry
        )
        await self.session.commit()

        logger.warning(
            "Submission status overridden",
            extra={
                "submission_id": str(submission.id),
                "from_status": current.value,
                "to_status": target.value,
                "actor_id": str(actor.id),
            },
        )
        await self._notify(submission, WorkflowAction.OVERRIDE, current, target, actor, comments)
        return submission

    # ------------------------------------------------------------------
    # Incentive maintenance
    # ------------------------------------------------------------------

    async def clear_incentive(
        self,
        submission_id: uuid.UUID,
        actor: Actor,
        comments: Optional[str],
    ) -> Submission:
        """Empty a stored incentive so it can be recomputed. Status is unchanged."""
        submission = await self.submissions.get_submission(submission_id, refresh=True)
        current = self._check_incentive_maintenance(submission, actor, require_approved=False)
        comments = self._clean(comments)
        if not comments:
            raise ValidationError("Comments are required to clear an incentive")
        if submission.incentive_result is None:
            raise InvalidStateTransition("No incentive is recorded for this submission")

        cleared = {
            "total_amount": submission.incentive_result.get("total_amount"),
            "total_points": submission.incentive_result.get("total_points"),
            "policy_id": str(submission.incentive_policy_id) if submission.incentive_policy_id else None,
        }
        await self._compare_and_swap(
            submission,
            current,
            {field: None for field in _INCENTIVE_FIELDS},
            incentive_present=True,
        )
        await self._append_history(
            submission, WorkflowAction.CLEAR_INCENTIVE, current, current, actor, comments, {"cleared": cleared}
        )
        await self._log_incentive(EventType.INCENTIVE_CLEARED, submission, actor, cleared=cleared)
        await self.session.commit()

        logger.info("Incentive cleared", extra={"submission_id": str(submission.id)})
        return submission

    async def recompute_incentive(
        self,
        submission_id: uuid.UUID,
        actor: Actor,
        comments: Optional[str] = None,
    ) -> Submission:
        """Price a cleared, approved submission against the policy now in force for it."""
        submission = await self.submissions.get_submission(submission_id, refresh=True)
        current = self._check_incentive_maintenance(submission, actor)
        if submission.incentive_result is not None:
            raise InvalidStateTransition("An incentive is already recorded; clear it first")

        result, policy_id, warning = await self._price(submission)
        await self._compare_and_swap(
            submission,
            current,
            {
                "incentive_result": result.model_dump(mode="json"),
                "incentive_policy_id": policy_id,
                "incentive_warning": warning,
                "incentive_calculated_at": utcnow(),
            },
            incentive_present=False,
        )
        await self._append_history(
            submission,
            WorkflowAction.RECOMPUTE_INCENTIVE,
            current,
            current,
            actor,
            self._clean(comments),
            {"incentive": {"total_amount": result.total_amount, "total_points": result.total_points}},
        )
        await self._log_incentive(EventType.INCENTIVE_CALCULATED, submission, actor)
        await self.session.commit()

        logger.info(
            "Incentive recomputed",
            extra={"submission_id": str(submission.id), "total_amount": result.total_amount},
        )
        return submission

    def _check_incentive_maintenance(
        self,
        submission: Submission,
        actor: Actor,
        require_approved: bool = True,
    ) -> SubmissionStatus:
        capability = scoped_capability(submission.assignment_scope, ScopedVerb.APPROVE)
        if not actor.has(capability):
            raise PermissionDenied(
                f"Missing capability {capability.value}",
                details={"required": capability.value},
            )
        workflow = workflow_for(submission.kind_enum)
        current = submission.status_enum
        if workflow.is_terminal(current):
            raise AlreadyTerminal(
                f"Submission is already {current.value}",
                details={"status": current.value},
            )
        # Clearing is allowed wherever a result is stored, including after an
        # override sent an approved submission back for review
        if require_approved and current not in workflow.post_approval_states():
            raise InvalidStateTransition(
                f"Submission has not been approved (status {current.value})",
                details={"status": current.value},
            )
        return current

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def get_history(self, submission_id: uuid.UUID) -> List[ReviewHistoryEntry]:
        return await self.submissions.get_history(submission_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _action(action: Union[WorkflowAction, str]) -> WorkflowAction:
        try:
            return WorkflowAction(action)
        except ValueError:
            raise InvalidStateTransition(f"Unknown action: {action}", details={"action": str(action)})

    @staticmethod
    def _clean(value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @staticmethod
    def _check_expected(
        current: SubmissionStatus,
        expected_status: Optional[Union[SubmissionStatus, str]],
    ) -> None:
        if expected_status is None:
            return
        expected = coerce_enum(SubmissionStatus, expected_status)
        if expected != current:
            raise ConcurrentModification(
                f"Submission moved from {expected.value} to {current.value} since it was read",
                details={"expected_status": expected.value, "status": current.value},
            )

    async def _authorize(self, transition: Transition, submission: Submission, actor: Actor) -> None:
        gate = transition.gate
        scope = submission.assignment_scope
        reason: Optional[str] = None

        if gate == ActorGate.FILER:
            if actor.id != submission.filer_id:
                reason = "Only the filer can perform this action"
        elif gate == ActorGate.MENTOR:
            if not submission.mentor_uid or actor.uid != submission.mentor_uid:
                reason = "Only the named mentor can perform this action"
        elif gate == ActorGate.REVIEWER:
            capability = scoped_capability(scope, ScopedVerb.REVIEW)
            if not actor.has(capability):
                reason = f"Missing capability {capability.value}"
            elif not await self.permissions.is_assigned(actor.id, scope, submission.school_id):
                reason = "Reviewer is not assigned to this school"
        elif gate == ActorGate.APPROVER:
            capability = scoped_capability(scope, ScopedVerb.APPROVE)
            if not actor.has(capability):
                reason = f"Missing capability {capability.value}"
        elif gate == ActorGate.FINANCE:
            if not actor.has(Capability.FINANCE_PROCESS):
                reason = f"Missing capability {Capability.FINANCE_PROCESS.value}"

        if reason is not None:
            logger.warning(
                "Transition denied",
                extra={
                    "submission_id": str(submission.id),
                    "action": transition.action.value,
                    "actor_id": str(actor.id),
                    "gate": gate.value,
                },
            )
            raise PermissionDenied(reason, details={"action": transition.action.value, "gate": gate.value})

    async def _price(
        self,
        submission: Submission,
    ) -> Tuple[IncentiveResult, Optional[uuid.UUID], Optional[str]]:
        """
        Price against the active policy for the submission's scope and reference date.

        Without an applicable policy, falls back to a zero result or the
        built-in table (missing_policy_mode) and flags it in the warning.
        """
        inputs = incentive_input(submission)
        reference_date = submission.reference_date
        if reference_date is None:
            # Submissions forced into approval without ever being submitted
            reference_date = utcnow().date()
        scope = submission.policy_scope

        try:
            policy = await self.policies.resolve_active_policy(scope, reference_date)
        except NoApplicablePolicy:
            logger.warning(
                "No incentive policy applies; using fallback",
                extra={
                    "submission_id": str(submission.id),
                    "scope": str(scope),
                    "reference_date": reference_date.isoformat(),
                    "mode": self.missing_policy_mode,
                },
            )
            await self.event_store.log(
                event_type=EventType.INCENTIVE_POLICY_MISSING,
                entity_type="submission",
                entity_id=submission.id,
                payload={"scope": str(scope), "reference_date": reference_date, "mode": self.missing_policy_mode},
            )
            if self.missing_policy_mode == "default_table":
                terms = default_policy_terms(scope)
                if terms is not None:
                    return compute(inputs, terms).with_warning(WARNING_DEFAULT_POLICY), None, WARNING_DEFAULT_POLICY
            return zero_result(inputs, WARNING_NO_POLICY), None, WARNING_NO_POLICY

        try:
            terms = PolicyTerms.from_policy(policy)
        except ValueError as e:
            raise ValidationError(
                f"Policy {policy.id} has invalid terms",
                details={"policy_id": str(policy.id)},
            ) from e
        result = compute(inputs, terms)
        if WARNING_ZERO_POOL in result.warnings:
            logger.warning(
                "Policy matched but no bonus applies",
                extra={"submission_id": str(submission.id), "policy_id": str(policy.id)},
            )
        return result, policy.id, result.warnings[0] if result.warnings else None

    async def _compare_and_swap(
        self,
        submission: Submission,
        expected: SubmissionStatus,
        values: Dict[str, Any],
        incentive_present: Optional[bool] = None,
    ) -> None:
        """
        Conditional UPDATE keyed on the expected status.

        incentive_present=False additionally requires no stored incentive,
        True requires one. Raises ConcurrentModification if no row matched.
        """
        stmt = update(Submission).where(
            Submission.id == submission.id,
            Submission.status == expected.value,
            Submission.deleted_at.is_(None),
        )
        if incentive_present is True:
            stmt = stmt.where(Submission.incentive_result.is_not(None))
        elif incentive_present is False:
            stmt = stmt.where(Submission.incentive_result.is_(None))
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            logger.warning(
                "Conditional update lost a race",
                extra={"submission_id": str(submission.id), "expected_status": expected.value},
            )
            raise ConcurrentModification(
                "Submission was modified by another request",
                details={"expected_status": expected.value},
            )
        await self.session.refresh(submission)

    async def _append_history(
        self,
        submission: Submission,
        action: WorkflowAction,
        from_status: SubmissionStatus,
        to_status: SubmissionStatus,
        actor: Actor,
        comments: Optional[str],
        details: Dict[str, Any],
    ) -> ReviewHistoryEntry:
        result = await self.session.execute(
            select(func.max(ReviewHistoryEntry.sequence)).where(
                ReviewHistoryEntry.submission_id == submission.id
            )
        )
        entry = ReviewHistoryEntry(
            submission_id=submission.id,
            sequence=(result.scalar_one_or_none() or 0) + 1,
            action=action.value,
            from_status=from_status.value,
            to_status=to_status.value,
            actor_id=actor.id,
            comments=comments,
            details=details,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def _log_transition(
        self,
        event_type: EventType,
        submission: Submission,
        action: WorkflowAction,
        from_status: SubmissionStatus,
        to_status: SubmissionStatus,
        actor: Actor,
        comments: Optional[str],
        entry: ReviewHistoryEntry,
    ) -> None:
        await self.event_store.log_from_model(
            event_type=event_type,
            entity_type="submission",
            entity_id=submission.id,
            user_id=actor.id,
            payload_model=TransitionEvent(
                application_number=submission.application_number,
                kind=submission.kind_enum.value,
                sub_type=submission.sub_type,
                school_id=submission.school_id,
                action=action.value,
                from_status=from_status.value,
                to_status=to_status.value,
                comments=comments,
                history_sequence=entry.sequence,
            ),
        )

    async def _log_incentive(
        self,
        event_type: EventType,
        submission: Submission,
        actor: Actor,
        cleared: Optional[Dict[str, Any]] = None,
    ) -> None:
        result = submission.incentive_result or {}
        payload = IncentiveEvent(
            application_number=submission.application_number,
            kind=submission.kind_enum.value,
            sub_type=submission.sub_type,
            school_id=submission.school_id,
            total_amount=result.get("total_amount", 0),
            total_points=result.get("total_points", 0),
            policy_id=submission.incentive_policy_id,
            policy_version=result.get("policy_version"),
            warnings=result.get("warnings", []),
        )
        if cleared:
            payload.metadata["cleared"] = cleared
        await self.event_store.log_from_model(
            event_type=event_type,
            entity_type="submission",
            entity_id=submission.id,
            user_id=actor.id,
            payload_model=payload,
        )

    async def _notification_targets(
        self,
        submission: Submission,
        to_status: SubmissionStatus,
        actor: Actor,
    ) -> List[str]:
        refs = [str(submission.filer_id)]
        refs += [str(a.person_ref) for a in submission.authors if a.is_internal and a.person_ref]
        if to_status == SubmissionStatus.PENDING_MENTOR_APPROVAL and submission.mentor_uid:
            refs.append(f"uid:{submission.mentor_uid}")
        if to_status in (SubmissionStatus.SUBMITTED, SubmissionStatus.RESUBMITTED):
            reviewers = await self.permissions.assigned_reviewer_ids(
                submission.assignment_scope, submission.school_id
            )
            refs += [str(r) for r in reviewers]

        targets: List[str] = []
        for ref in refs:
            if ref != actor.ref and ref not in targets:
                targets.append(ref)
        return targets

    async def _notify(
        self,
        submission: Submission,
        action: WorkflowAction,
        from_status: SubmissionStatus,
        to_status: SubmissionStatus,
        actor: Actor,
        comments: Optional[str],
    ) -> None:
        """Fire-and-forget; the transition is already committed."""
        if self.notifier is None:
            return
        try:
            event = NotificationEvent(
                event_type=f"submission.{action.value}",
                submission_id=submission.id,
                application_number=submission.application_number,
                actor_ref=actor.ref,
                target_refs=await self._notification_targets(submission, to_status, actor),
                from_status=from_status.value,
                to_status=to_status.value,
                comments=comments,
            )
            await self.notifier.emit(event)
        except Exception:
            logger.warning(
                "Notification failed; transition kept",
                exc_info=True,
                extra={"submission_id": str(submission.id), "action": action.value},
            )
