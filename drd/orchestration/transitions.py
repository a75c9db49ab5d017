"""
Transition tables for the IPR and research workflows.

Each legal move is declared once: (action, from_state) -> to_state plus the
actor gate that may trigger it. Anything not in a table is illegal.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from drd.kernel.models.submission import SubmissionKind, SubmissionStatus as S


class WorkflowAction(str, Enum):
    SUBMIT = "submit"
    MENTOR_APPROVE = "mentor_approve"
    MENTOR_REJECT = "mentor_reject"
    START_REVIEW = "start_review"
    RECOMMEND = "recommend"
    REQUEST_CHANGES = "request_changes"
    RESUBMIT = "resubmit"
    REJECT = "reject"
    APPROVE = "approve"
    SUBMIT_TO_GOVT = "submit_to_govt"
    RECORD_GOVT_FILING = "record_govt_filing"
    PUBLISH = "publish"
    GOVT_REJECT = "govt_reject"
    COMPLETE = "complete"

    # Not table-driven; recorded in review history
    OVERRIDE = "override"
    CLEAR_INCENTIVE = "clear_incentive"
    RECOMPUTE_INCENTIVE = "recompute_incentive"


class ActorGate(str, Enum):
    FILER = "filer"          # the submission's filer
    MENTOR = "mentor"        # actor UID == submission.mentor_uid
    REVIEWER = "reviewer"    # <scope>_review + school assignment
    APPROVER = "approver"    # <scope>_approve
    FINANCE = "finance"      # finance_process


@dataclass(frozen=True)
class Transition:
    action: WorkflowAction
    from_state: S
    to_state: S
    gate: ActorGate
    requires_comments: bool = False
    computes_incentive: bool = False
    required_payload: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Workflow:
    kind: SubmissionKind
    transitions: Tuple[Transition, ...]
    terminal_states: FrozenSet[S]
    approval_state: S
    # Entered instead of `submitted` when a mentored filer names a mentor
    mentor_state: S = S.PENDING_MENTOR_APPROVAL
    _index: Dict[Tuple[WorkflowAction, S], Transition] = field(default_factory=dict, init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        index: Dict[Tuple[WorkflowAction, S], Transition] = {}
        for t in self.transitions:
            key = (t.action, t.from_state)
            if key in index:
                raise ValueError(f"Duplicate transition {t.action.value} from {t.from_state.value}")
            index[key] = t
        object.__setattr__(self, "_index", index)

    @property
    def states(self) -> FrozenSet[S]:
        found = set()
        for t in self.transitions:
            found.add(t.from_state)
            found.add(t.to_state)
        return frozenset(found)

    def is_terminal(self, state: S) -> bool:
        return state in self.terminal_states

    def find(self, action: WorkflowAction, from_state: S) -> Optional[Transition]:
        return self._index.get((action, from_state))

    def actions_from(self, from_state: S) -> List[WorkflowAction]:
        return sorted({t.action for t in self.transitions if t.from_state == from_state}, key=lambda a: a.value)

    def post_approval_states(self) -> FrozenSet[S]:
        """The approval state and every state reachable from it without rejection."""
        reached = {self.approval_state}
        frontier = [self.approval_state]
        while frontier:
            state = frontier.pop()
            for t in self.transitions:
                if t.from_state == state and t.to_state not in reached and t.to_state not in self.rejection_states:
                    reached.add(t.to_state)
                    frontier.append(t.to_state)
        return frozenset(reached)

    @property
    def rejection_states(self) -> FrozenSet[S]:
        return frozenset(s for s in self.terminal_states if s not in (S.COMPLETED,))

    def deletable_states(self) -> FrozenSet[S]:
        """Pre-approval, non-terminal states."""
        return frozenset(self.states - self.post_approval_states() - self.terminal_states)


def _shared_front(review_state: S) -> Tuple[Transition, ...]:
    """Filing, mentor and revision moves common to both kinds."""
    return (
        Transition(WorkflowAction.SUBMIT, S.DRAFT, S.SUBMITTED, ActorGate.FILER),
        Transition(WorkflowAction.MENTOR_APPROVE, S.PENDING_MENTOR_APPROVAL, S.SUBMITTED, ActorGate.MENTOR),
        Transition(WorkflowAction.MENTOR_REJECT, S.PENDING_MENTOR_APPROVAL, S.DRAFT, ActorGate.MENTOR, requires_comments=True),
        Transition(WorkflowAction.START_REVIEW, S.SUBMITTED, review_state, ActorGate.REVIEWER),
        Transition(WorkflowAction.START_REVIEW, S.RESUBMITTED, review_state, ActorGate.REVIEWER),
        Transition(WorkflowAction.RESUBMIT, S.CHANGES_REQUIRED, S.RESUBMITTED, ActorGate.FILER),
    )


IPR_WORKFLOW = Workflow(
    kind=SubmissionKind.IPR,
    transitions=_shared_front(S.UNDER_DRD_REVIEW) + (
        Transition(WorkflowAction.RECOMMEND, S.UNDER_DRD_REVIEW, S.RECOMMENDED_TO_HEAD, ActorGate.REVIEWER),
        Transition(WorkflowAction.REQUEST_CHANGES, S.UNDER_DRD_REVIEW, S.CHANGES_REQUIRED, ActorGate.REVIEWER, requires_comments=True),
        Transition(WorkflowAction.REQUEST_CHANGES, S.RECOMMENDED_TO_HEAD, S.CHANGES_REQUIRED, ActorGate.APPROVER, requires_comments=True),
        Transition(WorkflowAction.REJECT, S.UNDER_DRD_REVIEW, S.DRD_REJECTED, ActorGate.REVIEWER, requires_comments=True),
        Transition(WorkflowAction.REJECT, S.RECOMMENDED_TO_HEAD, S.DRD_REJECTED, ActorGate.APPROVER, requires_comments=True),
        Transition(WorkflowAction.APPROVE, S.RECOMMENDED_TO_HEAD, S.DRD_HEAD_APPROVED, ActorGate.APPROVER, computes_incentive=True),
        Transition(WorkflowAction.SUBMIT_TO_GOVT, S.DRD_HEAD_APPROVED, S.SUBMITTED_TO_GOVT, ActorGate.APPROVER),
        Transition(
            WorkflowAction.RECORD_GOVT_FILING, S.SUBMITTED_TO_GOVT, S.GOVT_APPLICATION_FILED, ActorGate.APPROVER,
            required_payload=("govt_application_id",),
        ),
        Transition(
            WorkflowAction.PUBLISH, S.GOVT_APPLICATION_FILED, S.PUBLISHED, ActorGate.APPROVER,
            required_payload=("publication_id",),
        ),
        Transition(WorkflowAction.GOVT_REJECT, S.GOVT_APPLICATION_FILED, S.REJECTED, ActorGate.APPROVER, requires_comments=True),
        Transition(WorkflowAction.COMPLETE, S.PUBLISHED, S.COMPLETED, ActorGate.FINANCE),
    ),
    terminal_states=frozenset({S.COMPLETED, S.REJECTED, S.DRD_REJECTED}),
    approval_state=S.DRD_HEAD_APPROVED,
)

RESEARCH_WORKFLOW = Workflow(
    kind=SubmissionKind.RESEARCH,
    transitions=_shared_front(S.UNDER_REVIEW) + (
        Transition(WorkflowAction.RECOMMEND, S.UNDER_REVIEW, S.RECOMMENDED, ActorGate.REVIEWER),
        Transition(WorkflowAction.REQUEST_CHANGES, S.UNDER_REVIEW, S.CHANGES_REQUIRED, ActorGate.REVIEWER, requires_comments=True),
        Transition(WorkflowAction.REQUEST_CHANGES, S.RECOMMENDED, S.CHANGES_REQUIRED, ActorGate.APPROVER, requires_comments=True),
        Transition(WorkflowAction.REJECT, S.UNDER_REVIEW, S.REJECTED, ActorGate.REVIEWER, requires_comments=True),
        Transition(WorkflowAction.REJECT, S.RECOMMENDED, S.REJECTED, ActorGate.APPROVER, requires_comments=True),
        Transition(WorkflowAction.APPROVE, S.RECOMMENDED, S.APPROVED, ActorGate.APPROVER, computes_incentive=True),
        Transition(WorkflowAction.COMPLETE, S.APPROVED, S.COMPLETED, ActorGate.FINANCE),
    ),
    terminal_states=frozenset({S.COMPLETED, S.REJECTED}),
    approval_state=S.APPROVED,
)

WORKFLOWS: Dict[SubmissionKind, Workflow] = {
    SubmissionKind.IPR: IPR_WORKFLOW,
    SubmissionKind.RESEARCH: RESEARCH_WORKFLOW,
}

# Filer-editable states
EDITABLE_STATES = frozenset({S.DRAFT, S.CHANGES_REQUIRED})


def workflow_for(kind: SubmissionKind) -> Workflow:
    return WORKFLOWS[SubmissionKind(kind)]
