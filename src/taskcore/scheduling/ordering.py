"""
Ordering policy for scheduled tasks.

Tasks are served by priority, highest first. Among tasks of equal priority
the earliest due date wins, and a task without a due date comes after every
task that has one. Two tasks with the same priority and the same (or no) due
date have no defined order relative to each other.
"""

from datetime import datetime
from typing import TypeAlias

from taskcore.scheduling.models import Task, normalize_datetime

SchedulingKey: TypeAlias = tuple[int, bool, datetime | None]


def scheduling_key(task: Task) -> SchedulingKey:
    """
    Build the sort key for a task; smaller keys are served first.

    The middle element pushes missing due dates behind present ones, so the
    due dates themselves are only compared when both are set. Aware due dates
    are compared as naive local time, like every other timestamp.
    """
    if task.due_date is None:
        return (-task.priority, True, None)
    return (-task.priority, False, normalize_datetime(task.due_date))


def compare_tasks(first: Task, second: Task) -> int:
    """
    Compare two tasks by scheduling order.

    Returns:
        Negative if ``first`` is served before ``second``, positive if after,
        and 0 when the policy does not distinguish them.
    """
    first_key = scheduling_key(first)
    second_key = scheduling_key(second)
    if first_key == second_key:
        return 0
    return -1 if first_key < second_key else 1


def sort_tasks(tasks: list[Task]) -> list[Task]:
    """Return a new list of tasks in scheduling order."""
    return sorted(tasks, key=scheduling_key)
