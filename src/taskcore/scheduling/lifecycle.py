"""Task lifecycle states and the legal transitions between them."""

import logging
from enum import Enum

from taskcore.scheduling.exceptions import InvalidTransitionError

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    """Task status enumeration."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is allowed out of this status."""
        return not LEGAL_TRANSITIONS[self]


# Every lifecycle edge the system accepts. Anything not listed here is rejected.
LEGAL_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.ASSIGNED, TaskStatus.CANCELLED}),
    TaskStatus.ASSIGNED: frozenset(
        {TaskStatus.PROCESSING, TaskStatus.PENDING, TaskStatus.CANCELLED}
    ),
    TaskStatus.PROCESSING: frozenset(
        {TaskStatus.DONE, TaskStatus.FAILED, TaskStatus.CANCELLED}
    ),
    TaskStatus.DONE: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


def can_transition(current: TaskStatus, requested: TaskStatus) -> bool:
    """Check whether moving from current to requested is a legal edge."""
    return requested in LEGAL_TRANSITIONS[current]


def transition(current: TaskStatus, requested: TaskStatus) -> TaskStatus:
    """
    Validate a status change.

    Args:
        current: Status the task is in now
        requested: Status the caller wants to move to

    Returns:
        The new status (always ``requested``)

    Raises:
        InvalidTransitionError: If the edge is not in LEGAL_TRANSITIONS
    """
    if not can_transition(current, requested):
        logger.debug(f"Rejected transition {current.value} -> {requested.value}")
        raise InvalidTransitionError(current, requested)
    return requested
