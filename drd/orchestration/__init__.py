"""
Orchestration - workflow tables, domain errors and the services that drive
submissions through them.

Services are imported from their modules (drd.orchestration.state_machine,
drd.orchestration.submission_service); only the dependency-free pieces are
re-exported here.
"""

from drd.orchestration.errors import (
    AlreadyTerminal,
    ConcurrentModification,
    InvalidStateTransition,
    NoApplicablePolicy,
    NotFound,
    PermissionDenied,
    PolicyInUse,
    PolicyOverlap,
    ValidationError,
    WorkflowError,
)
from drd.orchestration.transitions import (
    EDITABLE_STATES,
    IPR_WORKFLOW,
    RESEARCH_WORKFLOW,
    ActorGate,
    Transition,
    Workflow,
    WorkflowAction,
    workflow_for,
)

__all__ = [
    "AlreadyTerminal",
    "ConcurrentModification",
    "InvalidStateTransition",
    "NoApplicablePolicy",
    "NotFound",
    "PermissionDenied",
    "PolicyInUse",
    "PolicyOverlap",
    "ValidationError",
    "WorkflowError",
    "EDITABLE_STATES",
    "IPR_WORKFLOW",
    "RESEARCH_WORKFLOW",
    "ActorGate",
    "Transition",
    "Workflow",
    "WorkflowAction",
    "workflow_for",
]
