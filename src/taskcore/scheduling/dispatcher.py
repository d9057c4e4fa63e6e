"""Task dispatcher coordinating the priority scheduler with task persistence."""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from .config import DEFAULT_PRIORITY, DEFAULT_STUCK_TASK_TIMEOUT
from .database import TaskDatabase
from .exceptions import InvalidTransitionError, TaskNotFoundError
from .models import Task, TaskStatus
from .scheduler import PriorityScheduler

logger = logging.getLogger(__name__)


class TaskDispatcher:
    """
    Hands out queued tasks to workers and records their progress.

    The scheduler holds the PENDING tasks waiting for a worker; the database
    is the system of record for every task. Lifecycle reports load the stored
    record, validate the change through the task's state machine and persist
    the result with a write conditional on the status they validated against.

    Dispatch, submission, lifecycle reports and deletion run one at a time
    under a single asyncio lock, so the queue and the store change together.
    """

    def __init__(
        self,
        database: TaskDatabase,
        scheduler: PriorityScheduler | None = None,
        stuck_task_timeout: float = DEFAULT_STUCK_TASK_TIMEOUT,
    ) -> None:
        """
        Initialize Task Dispatcher.

        Args:
            database: Database instance for task persistence
            scheduler: Scheduler to queue pending tasks in (a new one if omitted)
            stuck_task_timeout: Seconds a task may stay PROCESSING before it
                is reported as stuck
        """
        self._database = database
        self._scheduler = scheduler if scheduler is not None else PriorityScheduler()
        self._stuck_task_timeout = stuck_task_timeout
        self._lock = asyncio.Lock()
        self._initialized = False

    @property
    def scheduler(self) -> PriorityScheduler:
        return self._scheduler

    async def initialize(self) -> None:
        """
        Initialize the database and queue every stored PENDING task.
        """
        logger.info("Initializing Task Dispatcher")

        await self._database.initialize()

        self._scheduler.clear()
        pending = await self._database.find_by_status_ordered(TaskStatus.PENDING)
        for task in pending:
            self._scheduler.add_task(task)

        self._initialized = True
        logger.info(f"Task Dispatcher initialized with {len(pending)} queued tasks")

    async def submit_task(
        self,
        name: str,
        description: str = "",
        due_date: datetime | None = None,
        priority: int = DEFAULT_PRIORITY,
    ) -> Task:
        """
        Create a task, store it and queue it.

        Args:
            name: Task name
            description: Task description
            due_date: Optional deadline
            priority: Higher values are dispatched first

        Returns:
            The new PENDING task

        Raises:
            DatabaseError: If the task cannot be stored
        """
        task = Task(name, description, due_date, priority)
        async with self._lock:
            self._scheduler.add_task(task)
            try:
                await self._database.insert_task(task)
            except Exception:
                self._scheduler.remove_task(task)
                raise

        logger.info(f"Submitted task {task.id}: {name} (priority={priority})")
        return task

    def peek_next_task(self) -> Task | None:
        return self._scheduler.peek_next_task()

    def list_queued_tasks(self) -> list[Task]:
        return self._scheduler.get_all_tasks()

    def queue_size(self) -> int:
        return self._scheduler.size()

    async def dispatch_next(self) -> Task | None:
        """
        Pop the next task, assign it and persist the assignment.

        Queued tasks that are no longer PENDING (in memory or in the store) or
        that are gone from the store are dropped with a warning. If the
        assignment cannot be stored the task is put back in the queue and the
        error propagates.

        Returns:
            The assigned task, or None when nothing is queued
        """
        async with self._lock:
            while (task := self._scheduler.get_next_task()) is not None:
                if not task.assign_task():
                    logger.warning(
                        f"Skipping queued task {task.id} in status {task.status.value}"
                    )
                    continue
                try:
                    await self._database.update_task_status(
                        task.id, task.status, expected_status=TaskStatus.PENDING
                    )
                except (InvalidTransitionError, TaskNotFoundError) as e:
                    logger.warning(f"Skipping queued task {task.id}: {e}")
                    continue
                except Exception:
                    task.release()
                    self._scheduler.add_task(task)
                    raise
                logger.info(f"Dispatched task {task.id}: {task.name}")
                return task
        return None

    async def start_task(self, task_id: uuid.UUID) -> Task:
        """
        Report that a worker started an ASSIGNED task.

        Raises:
            TaskNotFoundError: If task not found
            InvalidTransitionError: If the task is not ASSIGNED
        """
        async with self._lock:
            return await self._apply_status(task_id, TaskStatus.PROCESSING)

    async def complete_task(self, task_id: uuid.UUID) -> Task:
        async with self._lock:
            return await self._apply_status(task_id, TaskStatus.DONE)

    async def fail_task(self, task_id: uuid.UUID) -> Task:
        async with self._lock:
            return await self._apply_status(task_id, TaskStatus.FAILED)

    async def cancel_task(self, task_id: uuid.UUID) -> Task:
        """
        Cancel a task and drop it from the queue if it is still waiting.

        Raises:
            TaskNotFoundError: If task not found
            InvalidTransitionError: If the task already finished
        """
        async with self._lock:
            task = await self._apply_status(task_id, TaskStatus.CANCELLED)
            self._scheduler.remove_task(task)
        return task

    async def release_task(self, task_id: uuid.UUID) -> Task:
        """
        Return an ASSIGNED task to the queue.

        Raises:
            TaskNotFoundError: If task not found
            InvalidTransitionError: If the task is not ASSIGNED
        """
        async with self._lock:
            task = await self._apply_status(task_id, TaskStatus.PENDING)
            self._scheduler.add_task(task)
        return task

    async def get_task(self, task_id: uuid.UUID) -> Task:
        return await self._database.get_task(task_id)

    async def delete_task(self, task_id: uuid.UUID) -> None:
        """
        Delete a task from the store and the queue.

        Raises:
            TaskNotFoundError: If task not found
        """
        async with self._lock:
            task = await self._database.get_task(task_id)
            await self._database.delete_task(task_id)
            self._scheduler.remove_task(task)
        logger.info(f"Deleted task {task_id}")

    async def get_task_history(self, task_id: uuid.UUID) -> list[dict[str, Any]]:
        return await self._database.get_task_history(task_id)

    async def get_statistics(self) -> dict[str, int]:
        """
        Get task statistics.

        Returns:
            Dictionary with:
            - total: Number of stored tasks
            - one count per status value (pending, assigned, ...)
            - queued: Number of tasks waiting in the scheduler
        """
        counts = await self._database.get_status_counts()
        return {"total": sum(counts.values()), **counts, "queued": self._scheduler.size()}

    async def find_stuck_tasks(self, max_age: timedelta | None = None) -> list[Task]:
        """
        Find tasks that have been PROCESSING for longer than max_age.

        Args:
            max_age: Allowed processing time; defaults to the dispatcher's
                stuck task timeout

        Returns:
            Stuck tasks, oldest update first
        """
        if max_age is None:
            max_age = timedelta(seconds=self._stuck_task_timeout)
        stuck = await self._database.find_stuck_tasks(datetime.now() - max_age)
        if stuck:
            logger.warning(f"Found {len(stuck)} stuck tasks (older than {max_age})")
        return stuck

    async def shutdown(self) -> None:
        """
        Shutdown the dispatcher and close the database connection.

        Queued tasks stay PENDING in the store and are queued again on the
        next initialize().
        """
        logger.info("Shutting down Task Dispatcher")
        try:
            await self._database.close()
        except Exception as e:
            logger.error(f"Error closing database: {e}")

        self._scheduler.clear()
        self._initialized = False

    async def _apply_status(self, task_id: uuid.UUID, status: TaskStatus) -> Task:
        # Caller holds the lock.
        task = await self._database.get_task(task_id)
        previous = task.status
        task.transition_to(status)
        await self._database.update_task_status(
            task_id, status, expected_status=previous
        )
        logger.info(f"Task {task_id}: {previous.value} -> {status.value}")
        return task
