"""In-memory priority scheduler for tasks awaiting dispatch."""

import heapq
import itertools
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from .models import Task
from .ordering import SchedulingKey, scheduling_key

logger = logging.getLogger(__name__)


class DuplicatePolicy(str, Enum):
    """What add_task does with a task whose id is already queued."""

    ALLOW = "allow"
    REJECT = "reject"
    REPLACE = "replace"


@dataclass(order=True)
class _QueueEntry:
    """Heap entry. Only the key and sequence take part in comparisons."""

    key: SchedulingKey
    sequence: int
    task: Task = field(compare=False)
    removed: bool = field(default=False, compare=False)


class PriorityScheduler:
    """
    Ordered holding area for tasks that have not been dispatched yet.

    Tasks come out highest priority first, then earliest due date, with
    undated tasks after dated ones (see ``ordering``). The scheduler is a
    transient structure: it owns no persistent state and forgets a task as
    soon as it is popped.

    By convention only PENDING tasks are queued; the scheduler does not check
    a task's status.

    Internally a binary heap is paired with an index from task id to its live
    heap entries. Removal marks an entry dead and unlinks it from the index;
    dead entries are dropped when they surface at the top of the heap, and the
    heap is rebuilt from its live entries once dead ones outnumber them. All
    operations are serialized through a single lock.

    A task's key is captured when it is queued. Changing ``priority`` or
    ``due_date`` on a queued task does not move it; queue it again under the
    REPLACE policy instead.
    """

    def __init__(self, duplicate_policy: DuplicatePolicy = DuplicatePolicy.ALLOW) -> None:
        """
        Initialize the scheduler.

        Args:
            duplicate_policy: How to treat a task whose id is already queued.
                ALLOW keeps both entries, REJECT refuses the new one and
                REPLACE swaps the queued entry for the new one.
        """
        self._duplicate_policy = DuplicatePolicy(duplicate_policy)
        self._heap: list[_QueueEntry] = []
        self._index: dict[UUID, list[_QueueEntry]] = {}
        self._counter = itertools.count()
        self._size = 0
        self._removed = 0
        self._lock = threading.Lock()

    @property
    def duplicate_policy(self) -> DuplicatePolicy:
        return self._duplicate_policy

    def add_task(self, task: Task) -> bool:
        """
        Insert a task according to the ordering policy.

        Args:
            task: Task to queue

        Returns:
            True if the task was queued, False if the REJECT policy refused it
        """
        entry_key = scheduling_key(task)
        with self._lock:
            if task.id in self._index:
                if self._duplicate_policy is DuplicatePolicy.REJECT:
                    logger.debug(f"Rejected duplicate task {task.id}")
                    return False
                if self._duplicate_policy is DuplicatePolicy.REPLACE:
                    for entry in self._index.pop(task.id):
                        self._mark_removed(entry)
                    logger.debug(f"Replacing queued task {task.id}")

            entry = _QueueEntry(entry_key, next(self._counter), task)
            heapq.heappush(self._heap, entry)
            self._index.setdefault(task.id, []).append(entry)
            self._size += 1
            self._compact()
            return True

    def peek_next_task(self) -> Task | None:
        """Return the task that would be dispatched next without removing it."""
        with self._lock:
            self._discard_removed()
            return self._heap[0].task if self._heap else None

    def get_next_task(self) -> Task | None:
        """
        Remove and return the task that sorts first.

        Returns:
            The next task, or None if the scheduler is empty
        """
        with self._lock:
            self._discard_removed()
            if not self._heap:
                return None
            entry = heapq.heappop(self._heap)
            self._unlink(entry)
            self._size -= 1
            self._compact()
            return entry.task

    def get_all_tasks(self) -> list[Task]:
        """Return a snapshot of every queued task in dispatch order."""
        with self._lock:
            return [e.task for e in sorted(e for e in self._heap if not e.removed)]

    def remove_task(self, task: Task) -> bool:
        """
        Remove one queued entry with the same id as the given task.

        When the id is queued more than once, the earliest inserted entry is
        removed, whatever its position in dispatch order.

        Args:
            task: Task whose id should be removed

        Returns:
            True if an entry was removed, False if the id was not queued
        """
        with self._lock:
            entries = self._index.get(task.id)
            if not entries:
                return False
            entry = entries.pop(0)
            if not entries:
                del self._index[task.id]
            self._mark_removed(entry)
            self._compact()
            return True

    def size(self) -> int:
        with self._lock:
            return self._size

    def is_empty(self) -> bool:
        return self.size() == 0

    def clear(self) -> None:
        """Drop every queued task. Stored records are not touched."""
        with self._lock:
            self._heap.clear()
            self._index.clear()
            self._size = 0
            self._removed = 0

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, task: object) -> bool:
        if not isinstance(task, Task):
            return False
        with self._lock:
            return task.id in self._index

    def _discard_removed(self) -> None:
        # Caller holds the lock.
        while self._heap and self._heap[0].removed:
            heapq.heappop(self._heap)
            self._removed -= 1

    def _mark_removed(self, entry: _QueueEntry) -> None:
        # Caller holds the lock and has unlinked the entry from the index.
        entry.removed = True
        self._size -= 1
        self._removed += 1

    def _compact(self) -> None:
        # Caller holds the lock.
        if self._removed <= self._size:
            return
        self._heap = [e for e in self._heap if not e.removed]
        heapq.heapify(self._heap)
        self._removed = 0

    def _unlink(self, entry: _QueueEntry) -> None:
        # Caller holds the lock.
        entries = self._index[entry.task.id]
        entries.remove(entry)
        if not entries:
            del self._index[entry.task.id]
