"""Data models for task scheduling functionality."""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID, uuid4

from taskcore.scheduling.exceptions import InvalidTransitionError
from taskcore.scheduling.lifecycle import TaskStatus, transition

__all__ = ["Task", "TaskStatus", "normalize_datetime"]


def normalize_datetime(value: datetime) -> datetime:
    """
    Convert a timezone-aware datetime to naive local time.

    Every timestamp in the project is naive local time, so aware values are
    converted on the way in. Naive values pass through unchanged.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


@dataclass
class Task:
    """
    Represents a schedulable unit of work.

    A task always starts out PENDING, whichever way it is constructed. Its
    identifier and status are not constructor arguments: the identifier is
    generated here, and status only changes through the lifecycle helpers
    below (or through ``from_record`` when the store rehydrates a row).
    A timezone-aware due date is stored as naive local time.
    """

    name: str = ""
    description: str = ""
    due_date: datetime | None = None
    priority: int = 0
    id: UUID = field(default_factory=uuid4, init=False)
    status: TaskStatus = field(default=TaskStatus.PENDING, init=False)
    created_at: datetime = field(default_factory=datetime.now, init=False)
    updated_at: datetime = field(default_factory=datetime.now, init=False)

    def __post_init__(self) -> None:
        if self.due_date is not None:
            self.due_date = normalize_datetime(self.due_date)

    @classmethod
    def from_record(
        cls,
        *,
        id: UUID,
        name: str,
        description: str,
        due_date: datetime | None,
        priority: int,
        status: TaskStatus,
        created_at: datetime,
        updated_at: datetime,
    ) -> "Task":
        """
        Rebuild a task from a stored record.

        Reserved for the persistence layer, which owns identifiers and the
        last known status of long-lived records.
        """
        task = cls(name, description, due_date, priority)
        task.id = id
        task.status = status
        task.created_at = created_at
        task.updated_at = updated_at
        return task

    def transition_to(self, status: TaskStatus) -> None:
        """
        Move the task to a new status.

        Raises:
            InvalidTransitionError: If the change is not a legal lifecycle edge
        """
        self.status = transition(self.status, status)
        self.updated_at = datetime.now()

    def _try_transition(self, status: TaskStatus) -> bool:
        try:
            self.transition_to(status)
        except InvalidTransitionError:
            return False
        return True

    def assign_task(self) -> bool:
        """Claim a PENDING task for a worker. Returns False if already claimed or finished."""
        return self._try_transition(TaskStatus.ASSIGNED)

    def start_processing(self) -> bool:
        return self._try_transition(TaskStatus.PROCESSING)

    def mark_as_done(self) -> bool:
        """Mark a PROCESSING task as successfully completed."""
        return self._try_transition(TaskStatus.DONE)

    def mark_as_failed(self) -> bool:
        return self._try_transition(TaskStatus.FAILED)

    def cancel(self) -> bool:
        return self._try_transition(TaskStatus.CANCELLED)

    def release(self) -> bool:
        """Hand an ASSIGNED task back so it can be scheduled again."""
        return self._try_transition(TaskStatus.PENDING)
