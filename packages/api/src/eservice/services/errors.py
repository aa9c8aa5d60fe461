# This project was developed with assistance from AI tools.
"""Workflow engine error taxonomy.

Routes translate these into HTTP status codes; the overdue sweep catches
them per item so a single bad request never aborts a pass.
"""

from dataclasses import dataclass


class WorkflowError(Exception):
    """Base class for every error the workflow engine raises."""

    pass


class InvalidTransitionError(WorkflowError, ValueError):
    """Edge/role mismatch, or the request no longer sits in the expected status."""

    pass


class InvalidTaskTransitionError(WorkflowError, ValueError):
    """Task status move outside pending -> in_progress -> completed/cancelled."""

    pass


class NotFoundError(WorkflowError, LookupError):
    pass


class PersistenceError(WorkflowError):
    """Storage failed; the engine does not retry."""

    pass


@dataclass
class PartialSideEffectFailure:
    """A secondary step failed after the status change was committed.

    Never raised. Collected on the transition result and logged; the
    status change stays authoritative.
    """

    step: str
    error: str
