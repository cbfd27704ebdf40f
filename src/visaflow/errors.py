"""Workflow error taxonomy. Each error maps to an HTTP status in the API layer."""

from __future__ import annotations


class WorkflowError(ValueError):
    """Base class for errors raised by the workflow services."""

    kind = "WorkflowError"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(WorkflowError):
    kind = "NotFound"
    status_code = 404


class ConflictError(WorkflowError):
    kind = "Conflict"
    status_code = 409


class InUseError(WorkflowError):
    kind = "InUse"
    status_code = 409


class InvalidTransitionError(WorkflowError):
    kind = "InvalidTransition"
    status_code = 422


class IllegalStateDeletionError(WorkflowError):
    kind = "IllegalStateDeletion"
    status_code = 409


class UnauthorizedError(WorkflowError):
    kind = "Unauthorized"
    status_code = 403


class ValidationFailedError(WorkflowError):
    kind = "ValidationFailed"
    status_code = 400
