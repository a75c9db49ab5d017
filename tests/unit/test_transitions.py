"""Unit tests for the workflow transition tables."""

import pytest

from drd.kernel.models.submission import SubmissionKind, SubmissionStatus as S
from drd.orchestration.transitions import (
    IPR_WORKFLOW,
    RESEARCH_WORKFLOW,
    ActorGate,
    Transition,
    Workflow,
    WorkflowAction,
    workflow_for,
)

TABLE_ACTIONS = [
    a for a in WorkflowAction
    if a not in (WorkflowAction.OVERRIDE, WorkflowAction.CLEAR_INCENTIVE, WorkflowAction.RECOMPUTE_INCENTIVE)
]


class TestTables:
    """Legal and illegal moves."""

    @pytest.mark.parametrize("workflow", [IPR_WORKFLOW, RESEARCH_WORKFLOW])
    def test_only_declared_moves_exist(self, workflow):
        """Any (action, state) pair not in the table has no transition."""
        declared = {(t.action, t.from_state) for t in workflow.transitions}
        for action in TABLE_ACTIONS:
            for state in S:
                found = workflow.find(action, state)
                if (action, state) in declared:
                    assert found is not None
                else:
                    assert found is None

    @pytest.mark.parametrize("workflow", [IPR_WORKFLOW, RESEARCH_WORKFLOW])
    def test_terminal_states_have_no_exits(self, workflow):
        for state in workflow.terminal_states:
            assert workflow.actions_from(state) == []

    def test_ipr_happy_path(self):
        path = [
            (WorkflowAction.SUBMIT, S.DRAFT, S.SUBMITTED),
            (WorkflowAction.START_REVIEW, S.SUBMITTED, S.UNDER_DRD_REVIEW),
            (WorkflowAction.RECOMMEND, S.UNDER_DRD_REVIEW, S.RECOMMENDED_TO_HEAD),
            (WorkflowAction.APPROVE, S.RECOMMENDED_TO_HEAD, S.DRD_HEAD_APPROVED),
            (WorkflowAction.SUBMIT_TO_GOVT, S.DRD_HEAD_APPROVED, S.SUBMITTED_TO_GOVT),
            (WorkflowAction.RECORD_GOVT_FILING, S.SUBMITTED_TO_GOVT, S.GOVT_APPLICATION_FILED),
            (WorkflowAction.PUBLISH, S.GOVT_APPLICATION_FILED, S.PUBLISHED),
            (WorkflowAction.COMPLETE, S.PUBLISHED, S.COMPLETED),
        ]
        for action, from_state, to_state in path:
            assert IPR_WORKFLOW.find(action, from_state).to_state == to_state

    def test_research_approve_computes_incentive(self):
        approve = RESEARCH_WORKFLOW.find(WorkflowAction.APPROVE, S.RECOMMENDED)
        assert approve.computes_incentive
        assert approve.gate == ActorGate.APPROVER

    def test_research_has_no_government_states(self):
        assert S.SUBMITTED_TO_GOVT not in RESEARCH_WORKFLOW.states
        assert RESEARCH_WORKFLOW.find(WorkflowAction.PUBLISH, S.APPROVED) is None

    def test_govt_filing_requires_application_id(self):
        t = IPR_WORKFLOW.find(WorkflowAction.RECORD_GOVT_FILING, S.SUBMITTED_TO_GOVT)
        assert t.required_payload == ("govt_application_id",)

    def test_rejections_require_comments(self):
        for workflow in (IPR_WORKFLOW, RESEARCH_WORKFLOW):
            for t in workflow.transitions:
                if t.action in (WorkflowAction.REJECT, WorkflowAction.REQUEST_CHANGES, WorkflowAction.MENTOR_REJECT):
                    assert t.requires_comments, t

    def test_mentor_reject_returns_to_draft(self):
        t = IPR_WORKFLOW.find(WorkflowAction.MENTOR_REJECT, S.PENDING_MENTOR_APPROVAL)
        assert t.to_state == S.DRAFT

    def test_duplicate_transition_rejected(self):
        t = Transition(WorkflowAction.SUBMIT, S.DRAFT, S.SUBMITTED, ActorGate.FILER)
        with pytest.raises(ValueError):
            Workflow(
                kind=SubmissionKind.IPR,
                transitions=(t, t),
                terminal_states=frozenset(),
                approval_state=S.SUBMITTED,
            )


class TestDerivedStateSets:

    def test_ipr_post_approval_states(self):
        assert IPR_WORKFLOW.post_approval_states() == frozenset({
            S.DRD_HEAD_APPROVED,
            S.SUBMITTED_TO_GOVT,
            S.GOVT_APPLICATION_FILED,
            S.PUBLISHED,
            S.COMPLETED,
        })

    def test_research_post_approval_states(self):
        assert RESEARCH_WORKFLOW.post_approval_states() == frozenset({S.APPROVED, S.COMPLETED})

    def test_deletable_states_are_pre_approval(self):
        deletable = RESEARCH_WORKFLOW.deletable_states()
        assert S.DRAFT in deletable
        assert S.UNDER_REVIEW in deletable
        assert S.APPROVED not in deletable
        assert S.REJECTED not in deletable

    def test_workflow_for_accepts_strings(self):
        assert workflow_for("ipr") is IPR_WORKFLOW
        assert workflow_for(SubmissionKind.RESEARCH) is RESEARCH_WORKFLOW

    def test_actions_from_draft(self):
        assert IPR_WORKFLOW.actions_from(S.DRAFT) == [WorkflowAction.SUBMIT]
