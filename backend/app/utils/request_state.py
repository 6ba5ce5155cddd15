from app.exceptions import InvalidTransition
from app.models.enums import RequestStatus

# Defines all valid status transitions for a service request
ALLOWED_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.PENDING: {
        RequestStatus.ACCEPTED,
        RequestStatus.DENIED,
        RequestStatus.CANCELLED,
    },
    RequestStatus.ACCEPTED: {
        RequestStatus.COMPLETED,
    },
    RequestStatus.DENIED: set(),  # Terminal state
    RequestStatus.COMPLETED: set(),  # Terminal state
    RequestStatus.CANCELLED: set(),  # Terminal state
}

TERMINAL_STATUSES: frozenset[RequestStatus] = frozenset(
    s for s, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def source_status(new: RequestStatus) -> RequestStatus:
    """Return the single status a request must be in to move to ``new``.

    Every target status in the machine has exactly one source, which is what
    lets each transition be written as one conditional UPDATE.
    """
    sources = [s for s, targets in ALLOWED_TRANSITIONS.items() if new in targets]
    if len(sources) != 1:
        raise ValueError(f"'{new.value}' is not reachable from exactly one status")
    return sources[0]


def can_transition(current: RequestStatus, new: RequestStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


def validate_transition(current: RequestStatus, new: RequestStatus, action: str | None = None) -> None:
    """Raise InvalidTransition if ``current -> new`` is not allowed."""
    current = RequestStatus(current)
    if can_transition(current, new):
        return
    verb = action or f"move to '{new.value}'"
    raise InvalidTransition(
        f"Cannot {verb} a request that is '{current.value}'",
        current_status=current.value,
    )
