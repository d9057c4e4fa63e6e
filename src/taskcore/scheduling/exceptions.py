"""Custom exceptions for task scheduling functionality."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from taskcore.scheduling.models import TaskStatus


class SchedulingError(Exception):
    """Base exception for task scheduling errors."""

    pass


class InvalidTransitionError(SchedulingError):
    """Exception raised when a status change is not a legal lifecycle edge."""

    def __init__(self, current: TaskStatus, requested: TaskStatus) -> None:
        self.current = current
        self.requested = requested
        super().__init__(
            f"Invalid transition from {current.value} to {requested.value}"
        )


class DatabaseError(SchedulingError):
    """Exception raised for database related errors."""

    pass


class SchemaError(DatabaseError):
    """Exception raised for database schema errors."""

    pass


class TaskNotFoundError(SchedulingError):
    """Exception raised when a task is not found."""

    pass
