from __future__ import annotations

from ...constants import (
    JOB_STATUS_FLOW,
    JOB_STATUSES,
    STATUS_CANCELLED,
    TERMINAL_STATUSES,
)
from ...errors import InvalidTransition, ValidationError


def is_closed(status: str) -> bool:
    return status in TERMINAL_STATUSES


def check_transition(current: str, target: str) -> bool:
    """
    Validate a status change.

    Returns False when `target` equals `current` (nothing to do), True for a
    legal move. Forward moves along Pending -> In-Progress -> Repaired ->
    Delivered may skip steps; Cancelled is reachable from any open status.
    Everything else raises InvalidTransition.
    """
    if target not in JOB_STATUSES:
        raise ValidationError(f"Unknown job status: {target!r}.")
    if target == current:
        return False
    if is_closed(current):
        raise InvalidTransition(f"Job is {current}; its status cannot change.")
    if target == STATUS_CANCELLED:
        return True
    if JOB_STATUS_FLOW.index(target) < JOB_STATUS_FLOW.index(current):
        raise InvalidTransition(f"Cannot move a job back from {current} to {target}.")
    return True
