# fleetops/fsm/task_fsm.py
"""Fleet task lifecycle.

    PLANNED -> ONGOING -> COMPLETED
    PLANNED | ONGOING -> CANCELLED

COMPLETED and CANCELLED are terminal. Moving a task into the status it
already has is rejected, as is any move back to PLANNED.
"""
from __future__ import annotations

from typing import Any

from fleetops.errors import InvalidTransition
from fleetops.models.fleet_task import TaskStatus


INITIAL = TaskStatus.PLANNED

TERMINAL = {
    TaskStatus.COMPLETED,
    TaskStatus.CANCELLED,
}

# from status -> statuses it may move to
TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PLANNED: {TaskStatus.ONGOING, TaskStatus.CANCELLED},
    TaskStatus.ONGOING: {TaskStatus.COMPLETED, TaskStatus.CANCELLED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.CANCELLED: set(),
}

# free-text fragments -> canonical status, checked in order
_SYNONYMS: list[tuple[tuple[str, ...], TaskStatus]] = [
    (("PLAN", "SCHEDULE"), TaskStatus.PLANNED),
    (("PROGRESS", "ONGOING", "ACTIVE"), TaskStatus.ONGOING),
    (("COMPLETE", "DONE", "FINISH"), TaskStatus.COMPLETED),
    (("CANCEL",), TaskStatus.CANCELLED),
]


def normalize_status(value: Any) -> TaskStatus:
    """Map free text ("in progress", "scheduled", "done", ...) to a TaskStatus.

    Anything unrecognised, including empty input, becomes PLANNED.
    """
    if isinstance(value, TaskStatus):
        return value
    if value is None:
        return TaskStatus.PLANNED

    text = str(value).strip().upper().replace("_", " ").replace("-", " ")
    if not text:
        return TaskStatus.PLANNED

    try:
        return TaskStatus(text)
    except ValueError:
        pass

    for fragments, status in _SYNONYMS:
        if any(fragment in text for fragment in fragments):
            return status
    return TaskStatus.PLANNED


def can_transition(current: TaskStatus, requested: TaskStatus) -> bool:
    return requested in TRANSITIONS.get(current, set())


def transition(current: Any, requested: Any) -> TaskStatus:
    """Return the new status or raise InvalidTransition."""
    current_status = normalize_status(current)
    requested_status = normalize_status(requested)

    if requested_status == current_status:
        raise InvalidTransition(
            current_status.value,
            requested_status.value,
            f"Fleet task is already '{current_status.value}'",
        )

    if current_status in TERMINAL:
        raise InvalidTransition(
            current_status.value,
            requested_status.value,
            f"Status '{current_status.value}' is terminal; "
            f"cannot move to '{requested_status.value}'",
        )

    if not can_transition(current_status, requested_status):
        allowed = ", ".join(sorted(s.value for s in TRANSITIONS[current_status]))
        raise InvalidTransition(
            current_status.value,
            requested_status.value,
            f"Transition '{current_status.value}' -> '{requested_status.value}' "
            f"not allowed. Allowed: {allowed}.",
        )

    return requested_status
