# This project was developed with assistance from AI tools.
"""License request transition graph and per-status metadata.

Pure data and lookups -- no DB access, no mutable state. ``build_transition_table``
builds one from the configured deadline lengths for the services that need it.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from types import MappingProxyType

from db.enums import DeadlineType, RequestStatus, UserRole

S = RequestStatus
R = UserRole


@dataclass(frozen=True)
class TransitionEdge:
    """One permitted move. Auto-allowed edges carry no role."""

    from_status: RequestStatus
    to_status: RequestStatus
    required_role: UserRole | None
    action: str
    description: str
    auto_allowed: bool = False


@dataclass(frozen=True)
class StatusInfo:
    status: RequestStatus
    description: str
    progress: int
    is_terminal: bool
    next_action: str


# Canonical happy path, draft to approved.
WORKFLOW_PATH: tuple[RequestStatus, ...] = (
    S.DRAFT,
    S.NEW_REQUEST,
    S.ACCEPTED,
    S.FORWARDED,
    S.ASSIGNED,
    S.APPOINTMENT,
    S.INSPECTING,
    S.INSPECTION_DONE,
    S.DOCUMENT_EDIT,
    S.REPORT_APPROVED,
    S.APPROVED,
)

_EDGES: tuple[TransitionEdge, ...] = (
    TransitionEdge(S.DRAFT, S.NEW_REQUEST, R.USER, "submit", "Submit request for review"),
    TransitionEdge(S.NEW_REQUEST, S.ACCEPTED, R.ADMIN, "accept", "Accept request for processing"),
    TransitionEdge(S.NEW_REQUEST, S.REJECTED, R.ADMIN, "reject", "Reject request"),
    TransitionEdge(S.NEW_REQUEST, S.RETURNED, R.ADMIN, "return", "Return to user for corrections"),
    TransitionEdge(S.ACCEPTED, S.FORWARDED, R.ADMIN, "forward", "Forward to DEDE Head"),
    TransitionEdge(S.FORWARDED, S.ASSIGNED, R.DEDE_HEAD, "assign", "Assign to DEDE Staff/Consult"),
    TransitionEdge(S.FORWARDED, S.REJECTED, R.DEDE_HEAD, "reject", "Reject request"),
    TransitionEdge(S.ASSIGNED, S.APPOINTMENT, R.DEDE_HEAD, "schedule", "Schedule appointment"),
    TransitionEdge(S.ASSIGNED, S.APPOINTMENT, R.DEDE_STAFF, "schedule", "Schedule appointment"),
    TransitionEdge(
        S.APPOINTMENT, S.INSPECTING, R.DEDE_CONSULT, "start_inspection", "Start site inspection"
    ),
    TransitionEdge(
        S.APPOINTMENT, S.INSPECTING, R.DEDE_STAFF, "start_inspection", "Start site inspection"
    ),
    TransitionEdge(
        S.INSPECTING,
        S.INSPECTION_DONE,
        R.DEDE_CONSULT,
        "complete_inspection",
        "Complete inspection",
    ),
    TransitionEdge(
        S.INSPECTING, S.INSPECTION_DONE, R.DEDE_STAFF, "complete_inspection", "Complete inspection"
    ),
    TransitionEdge(
        S.INSPECTION_DONE, S.DOCUMENT_EDIT, R.DEDE_CONSULT, "submit_report", "Submit audit report"
    ),
    TransitionEdge(
        S.INSPECTION_DONE, S.DOCUMENT_EDIT, R.DEDE_STAFF, "submit_report", "Submit audit report"
    ),
    TransitionEdge(
        S.DOCUMENT_EDIT, S.REPORT_APPROVED, R.DEDE_STAFF, "approve_report", "Approve audit report"
    ),
    TransitionEdge(
        S.DOCUMENT_EDIT, S.RETURNED, R.DEDE_STAFF, "reject_report", "Reject report for revision"
    ),
    TransitionEdge(
        S.REPORT_APPROVED, S.APPROVED, R.DEDE_STAFF, "approve_license", "Approve license"
    ),
    TransitionEdge(
        S.REPORT_APPROVED, S.APPROVED, R.DEDE_HEAD, "approve_license", "Approve license"
    ),
    # Sweep-driven
    TransitionEdge(
        S.APPOINTMENT,
        S.OVERDUE,
        None,
        "auto_overdue",
        "Auto-cancel due to missed appointment",
        True,
    ),
    TransitionEdge(
        S.DOCUMENT_EDIT, S.OVERDUE, None, "auto_overdue", "Auto-cancel due to 14+ day delay", True
    ),
)

_PROGRESS: dict[RequestStatus, int] = {
    S.DRAFT: 0,
    S.NEW_REQUEST: 10,
    S.RETURNED: 15,
    S.ACCEPTED: 20,
    S.FORWARDED: 30,
    S.ASSIGNED: 40,
    S.APPOINTMENT: 50,
    S.INSPECTING: 60,
    S.INSPECTION_DONE: 70,
    S.DOCUMENT_EDIT: 80,
    S.REPORT_APPROVED: 90,
    S.APPROVED: 100,
    S.REJECTED: 0,
    S.REJECTED_FINAL: 0,
    S.OVERDUE: 0,
}

_DESCRIPTIONS: dict[RequestStatus, str] = {
    S.DRAFT: "Request is being prepared by user",
    S.NEW_REQUEST: "Request submitted and waiting for DEDE Admin review",
    S.ACCEPTED: "Request accepted by DEDE Admin",
    S.FORWARDED: "Request forwarded to DEDE Head",
    S.ASSIGNED: "Request assigned to DEDE Staff/Consult",
    S.APPOINTMENT: "Appointment scheduled with factory",
    S.INSPECTING: "Site inspection in progress",
    S.INSPECTION_DONE: "Inspection completed, preparing report",
    S.DOCUMENT_EDIT: "Audit report submitted for review",
    S.REPORT_APPROVED: "Audit report approved, pending final approval",
    S.APPROVED: "License approved and issued",
    S.REJECTED: "Request rejected, can be resubmitted",
    S.REJECTED_FINAL: "Request permanently rejected",
    S.RETURNED: "Request returned to user for corrections",
    S.OVERDUE: "Request auto-cancelled due to timeout",
}

_NEXT_ACTIONS: dict[RequestStatus, str] = {
    S.DRAFT: "Submit request for review",
    S.NEW_REQUEST: "DEDE Admin: Accept, Reject, or Return request",
    S.ACCEPTED: "DEDE Admin: Forward to DEDE Head",
    S.FORWARDED: "DEDE Head: Assign to staff or reject",
    S.ASSIGNED: "Schedule appointment with factory",
    S.APPOINTMENT: "Conduct site inspection",
    S.INSPECTING: "Complete inspection and submit report",
    S.INSPECTION_DONE: "Submit audit report for review",
    S.DOCUMENT_EDIT: "DEDE Staff: Review and approve/reject report",
    S.REPORT_APPROVED: "Final license approval",
    S.RETURNED: "User: Update and resubmit documents",
    S.OVERDUE: "Request auto-cancelled",
    S.APPROVED: "Process completed",
    S.REJECTED: "Request rejected",
    S.REJECTED_FINAL: "Request rejected",
}

_ROLE_DISPLAY_NAMES: dict[UserRole, str] = {
    R.ADMIN: "DEDE Admin",
    R.DEDE_HEAD: "DEDE Head",
    R.DEDE_STAFF: "DEDE Staff",
    R.DEDE_CONSULT: "DEDE Consult",
    R.AUDITOR: "Auditor",
    R.USER: "User",
}

_DEADLINE_TYPES: dict[RequestStatus, DeadlineType] = {
    S.APPOINTMENT: DeadlineType.APPOINTMENT,
    S.DOCUMENT_EDIT: DeadlineType.DOCUMENT_REVIEW,
}


class TransitionTable:
    """Immutable transition graph plus status metadata.

    ``can_transition`` is true iff an edge ``(from, to)`` exists and is either
    auto-allowed or requires exactly ``role``.
    """

    def __init__(
        self,
        edges: Iterable[TransitionEdge],
        *,
        deadline_days: Mapping[RequestStatus, int],
        progress: Mapping[RequestStatus, int] = _PROGRESS,
        descriptions: Mapping[RequestStatus, str] = _DESCRIPTIONS,
        next_actions: Mapping[RequestStatus, str] = _NEXT_ACTIONS,
    ):
        self._edges = tuple(edges)
        outgoing: dict[RequestStatus, list[TransitionEdge]] = {}
        for edge in self._edges:
            outgoing.setdefault(edge.from_status, []).append(edge)
        self._outgoing = MappingProxyType({k: tuple(v) for k, v in outgoing.items()})
        self._deadline_days = MappingProxyType(dict(deadline_days))
        self._progress = MappingProxyType(dict(progress))
        self._descriptions = MappingProxyType(dict(descriptions))
        self._next_actions = MappingProxyType(dict(next_actions))

    @property
    def edges(self) -> tuple[TransitionEdge, ...]:
        return self._edges

    def valid_transitions(
        self, status: RequestStatus, role: UserRole | None
    ) -> list[TransitionEdge]:
        """Every edge out of ``status`` usable by ``role`` (auto edges always included)."""
        return [
            edge
            for edge in self._outgoing.get(status, ())
            if edge.auto_allowed or edge.required_role == role
        ]

    def can_transition(
        self, from_status: RequestStatus, to_status: RequestStatus, role: UserRole | None
    ) -> bool:
        return self.find_edge(from_status, to_status, role) is not None

    def find_edge(
        self, from_status: RequestStatus, to_status: RequestStatus, role: UserRole | None
    ) -> TransitionEdge | None:
        for edge in self.valid_transitions(from_status, role):
            if edge.to_status == to_status:
                return edge
        return None

    def default_deadline(self, status: RequestStatus, start: datetime) -> datetime | None:
        """Deadline implied by entering ``status`` at ``start``, if the status tracks one."""
        days = self._deadline_days.get(status)
        if days is None:
            return None
        return start + timedelta(days=days)

    def deadline_type(self, status: RequestStatus) -> DeadlineType | None:
        if status not in self._deadline_days:
            return None
        return _DEADLINE_TYPES.get(status)

    def progress(self, status: RequestStatus) -> int:
        return self._progress.get(status, 0)

    def is_terminal(self, status: RequestStatus) -> bool:
        return status in RequestStatus.terminal_statuses()

    def description(self, status: RequestStatus) -> str:
        return self._descriptions.get(status, "Unknown status")

    def next_action(self, status: RequestStatus) -> str:
        return self._next_actions.get(status, "No action required")

    def status_info(self, status: RequestStatus) -> StatusInfo:
        return StatusInfo(
            status=status,
            description=self.description(status),
            progress=self.progress(status),
            is_terminal=self.is_terminal(status),
            next_action=self.next_action(status),
        )

    @staticmethod
    def role_display_name(role: UserRole) -> str:
        return _ROLE_DISPLAY_NAMES.get(role, role.value)

    @staticmethod
    def workflow_path() -> tuple[RequestStatus, ...]:
        return WORKFLOW_PATH


def build_transition_table(
    *, appointment_days: int = 7, document_review_days: int = 14
) -> TransitionTable:
    """Build the DEDE license table with the given deadline windows."""
    return TransitionTable(
        _EDGES,
        deadline_days={
            S.APPOINTMENT: appointment_days,
            S.DOCUMENT_EDIT: document_review_days,
        },
    )
