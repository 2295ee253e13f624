from __future__ import annotations


class WorkflowError(Exception):
    pass


class ValidationError(WorkflowError, ValueError):
    pass


class NotFoundError(WorkflowError, LookupError):
    pass


class ConflictError(WorkflowError):
    pass


class StoreError(WorkflowError):
    """The durable store rejected a write; the enclosing transaction was rolled back."""
