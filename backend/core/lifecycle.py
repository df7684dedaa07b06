"""
Replenishment lifecycle states and their allowed transitions.

Alerts, stock requests, and restock tasks each move through a small state
machine. The active tables only ever hold non-terminal states; terminal
rows are copied into the archive tables and deleted.

  Alert:        open → completed → (archived)
                open → (archived, resolved)        stock recovered on its own
                completed → open                   warehouse cancelled the request
  StockRequest: requested → in_transit → delivered | cancelled
                requested → delivered | cancelled
  RestockTask:  pending | in_progress | delayed → completed
"""

import enum

from core.errors import PreconditionError


class Urgency(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(str, enum.Enum):
    OPEN = "open"
    COMPLETED = "completed"


class ClosedAlertStatus(str, enum.Enum):
    COMPLETED = "completed"
    RESOLVED = "resolved"


class WarehouseStatus(str, enum.Enum):
    """Side annotation copied onto an alert by warehouse actions."""

    IN_TRANSIT = "in_transit"
    CANCELLED = "cancelled"


class RequestStatus(str, enum.Enum):
    REQUESTED = "requested"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELAYED = "delayed"


ACTIVE_REQUEST_STATUSES = (RequestStatus.REQUESTED, RequestStatus.IN_TRANSIT)

ALERT_TRANSITIONS: dict[AlertStatus, set[AlertStatus]] = {
    AlertStatus.OPEN: {AlertStatus.COMPLETED},
    AlertStatus.COMPLETED: {AlertStatus.OPEN},
}

# Active status an alert must be in to be archived with a given final status
ALERT_ARCHIVE_SOURCES: dict[ClosedAlertStatus, set[AlertStatus]] = {
    ClosedAlertStatus.COMPLETED: {AlertStatus.COMPLETED},
    ClosedAlertStatus.RESOLVED: {AlertStatus.OPEN},
}

REQUEST_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.REQUESTED: {RequestStatus.IN_TRANSIT, RequestStatus.DELIVERED, RequestStatus.CANCELLED},
    RequestStatus.IN_TRANSIT: {RequestStatus.DELIVERED, RequestStatus.CANCELLED},
    RequestStatus.DELIVERED: set(),
    RequestStatus.CANCELLED: set(),
}

TASK_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.IN_PROGRESS, TaskStatus.DELAYED, TaskStatus.COMPLETED},
    TaskStatus.IN_PROGRESS: {TaskStatus.DELAYED, TaskStatus.COMPLETED},
    TaskStatus.DELAYED: {TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED},
    TaskStatus.COMPLETED: set(),
}


def ensure_request_transition(current: RequestStatus, target: RequestStatus) -> None:
    if target == current:
        raise PreconditionError(f"Stock request is already {current.value}.")
    if target not in REQUEST_TRANSITIONS[current]:
        raise PreconditionError(f"Cannot move stock request from '{current.value}' to '{target.value}'.")


def ensure_task_transition(current: TaskStatus, target: TaskStatus) -> None:
    if target == current:
        raise PreconditionError(f"Restock task is already {current.value}.")
    if target not in TASK_TRANSITIONS[current]:
        raise PreconditionError(f"Cannot move restock task from '{current.value}' to '{target.value}'.")


def ensure_alert_transition(current: AlertStatus, target: AlertStatus) -> None:
    # Both status enums are str-valued, so "completed" compares equal across them
    if not isinstance(target, AlertStatus):
        raise PreconditionError(f"'{target.value}' is not an active alert status.")
    if target == current:
        raise PreconditionError(f"Alert is already {current.value}.")
    if target not in ALERT_TRANSITIONS[current]:
        raise PreconditionError(f"Cannot move alert from '{current.value}' to '{target.value}'.")


def ensure_alert_archivable(current: AlertStatus, final_status: ClosedAlertStatus) -> None:
    if not isinstance(final_status, ClosedAlertStatus):
        raise PreconditionError(f"'{final_status.value}' is not an archive status.")
    if current not in ALERT_ARCHIVE_SOURCES[final_status]:
        raise PreconditionError(f"Cannot archive a '{current.value}' alert as '{final_status.value}'.")
