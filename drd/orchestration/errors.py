"""
Domain errors raised by the workflow engine, the calculator and the policy
repository. Each carries a stable machine code and the HTTP status the API
renders it with, so callers can tell "nothing to do" from "not allowed"
from "someone else got there first".
"""

from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """Base class for all domain errors."""

    code = "workflow_error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(WorkflowError):
    code = "not_found"
    status_code = 404


class InvalidStateTransition(WorkflowError):
    code = "invalid_state_transition"
    status_code = 409


class ConcurrentModification(InvalidStateTransition):
    """The status changed between the actor's read and the conditional write."""

    code = "concurrent_modification"


class PermissionDenied(WorkflowError):
    code = "permission_denied"
    status_code = 403


class AlreadyTerminal(WorkflowError):
    code = "already_terminal"
    status_code = 409


class ValidationError(WorkflowError):
    code = "validation_error"
    status_code = 422


class PolicyOverlap(ValidationError):
    code = "policy_overlap"
    status_code = 409


class PolicyInUse(WorkflowError):
    code = "policy_in_use"
    status_code = 409


class NoApplicablePolicy(WorkflowError):
    """No active policy covers the reference date for the submission's scope."""

    code = "no_applicable_policy"
    status_code = 404
