"""Task scheduling: lifecycle, priority ordering, persistence and dispatch."""

from .dispatcher import TaskDispatcher
from .exceptions import (
    DatabaseError,
    InvalidTransitionError,
    SchedulingError,
    TaskNotFoundError,
)
from .lifecycle import LEGAL_TRANSITIONS, TaskStatus
from .models import Task
from .ordering import compare_tasks, scheduling_key, sort_tasks
from .scheduler import DuplicatePolicy, PriorityScheduler

__all__ = [
    "Task",
    "TaskStatus",
    "LEGAL_TRANSITIONS",
    "PriorityScheduler",
    "DuplicatePolicy",
    "TaskDispatcher",
    "compare_tasks",
    "scheduling_key",
    "sort_tasks",
    "SchedulingError",
    "InvalidTransitionError",
    "DatabaseError",
    "TaskNotFoundError",
]
