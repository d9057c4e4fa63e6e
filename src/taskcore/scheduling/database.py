"""Database layer for task records using SQLite."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

import aiosqlite

from taskcore.scheduling.config import SCHEMA_VERSION
from taskcore.scheduling.exceptions import (
    DatabaseError,
    InvalidTransitionError,
    SchemaError,
    TaskNotFoundError,
)
from taskcore.scheduling.models import Task, TaskStatus, normalize_datetime

# Same order the scheduler serves tasks in: undated tasks last within a priority.
# Timestamps are stored as naive local ISO strings, which sort chronologically.
_DISPATCH_ORDER = "priority DESC, due_date IS NULL, due_date ASC"


class TaskDatabase:
    """SQLite database for task storage and lookup."""

    def __init__(self, db_path: str, wal_mode: bool = True) -> None:
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file (use ":memory:" for in-memory)
            wal_mode: Enable WAL mode for concurrent access
        """
        self.db_path = db_path
        self.wal_mode = wal_mode
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Initialize database schema and connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
            self._connection.row_factory = aiosqlite.Row

            # WAL is not supported for :memory:
            if self.wal_mode and self.db_path != ":memory:":
                await self._connection.execute("PRAGMA journal_mode=WAL")

        await self._create_schema()

    async def _create_schema(self) -> None:
        """Create database schema with tables and indexes."""
        async with self._get_connection() as conn:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
                """
            )

            cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
            result = await cursor.fetchone()
            current_version = result[0] if result and result[0] is not None else 0

            if current_version > SCHEMA_VERSION:
                raise SchemaError(
                    f"Database schema version {current_version} is newer than "
                    f"supported version {SCHEMA_VERSION}"
                )

            if current_version < SCHEMA_VERSION:
                await self._apply_migrations(conn, current_version)

            await conn.commit()

    async def _apply_migrations(
        self, conn: aiosqlite.Connection, from_version: int
    ) -> None:
        """
        Apply database migrations.

        Args:
            conn: Database connection
            from_version: Current schema version
        """
        if from_version < 1:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL,
                    status TEXT NOT NULL,
                    priority INTEGER NOT NULL,
                    due_date TIMESTAMP,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )

            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)"
            )
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_priority ON tasks(priority)"
            )
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_due_date ON tasks(due_date)"
            )
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_status_updated "
                "ON tasks(status, updated_at)"
            )

            # No foreign key so history survives deletion
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS task_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id TEXT NOT NULL,
                    timestamp TIMESTAMP NOT NULL,
                    action TEXT NOT NULL,
                    old_status TEXT,
                    new_status TEXT
                )
                """
            )
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_history_task_id ON task_history(task_id)"
            )

            await conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )

    @asynccontextmanager
    async def _get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Get database connection context manager.

        Yields:
            Database connection

        Raises:
            DatabaseError: If connection is not initialized
        """
        if self._connection is None:
            raise DatabaseError("Database not initialized")
        yield self._connection

    async def get_schema_version(self) -> int:
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
            result = await cursor.fetchone()
            return result[0] if result and result[0] is not None else 0

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def insert_task(self, task: Task) -> None:
        """
        Insert a new task into the database.

        Args:
            task: Task to insert

        Raises:
            DatabaseError: If task already exists or insertion fails
        """
        try:
            async with self._get_connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO tasks (
                        id, name, description, status, priority,
                        due_date, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        str(task.id),
                        task.name,
                        task.description,
                        task.status.value,
                        task.priority,
                        (
                            normalize_datetime(task.due_date).isoformat()
                            if task.due_date
                            else None
                        ),
                        task.created_at.isoformat(),
                        task.updated_at.isoformat(),
                    ),
                )
                await self._record_history(
                    conn, task.id, "created", new_status=task.status
                )
                await conn.commit()
        except aiosqlite.IntegrityError as e:
            raise DatabaseError(f"Task with ID {task.id} already exists") from e
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(f"Failed to insert task: {e}") from e

    async def get_task(self, task_id: UUID) -> Task:
        """
        Get a task by ID.

        Raises:
            TaskNotFoundError: If task not found
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM tasks WHERE id = ?", (str(task_id),)
            )
            row = await cursor.fetchone()

            if row is None:
                raise TaskNotFoundError(f"Task with ID {task_id} not found")

            return self._row_to_task(row)

    async def list_tasks(self, status: TaskStatus | None = None) -> list[Task]:
        """
        List tasks, optionally filtered by status.

        Args:
            status: Filter by status

        Returns:
            List of tasks in creation order
        """
        query = "SELECT * FROM tasks WHERE 1=1"
        params: list[Any] = []

        if status is not None:
            query += " AND status = ?"
            params.append(TaskStatus(status).value)

        query += " ORDER BY created_at ASC"
        return await self._fetch_tasks(query, params)

    async def find_by_status(self, status: TaskStatus) -> list[Task]:
        return await self.list_tasks(status=status)

    async def find_by_priority_at_least(self, min_priority: int) -> list[Task]:
        """Tasks with priority greater than or equal to min_priority."""
        return await self._fetch_tasks(
            f"SELECT * FROM tasks WHERE priority >= ? ORDER BY {_DISPATCH_ORDER}",
            [min_priority],
        )

    async def find_by_status_ordered(self, status: TaskStatus) -> list[Task]:
        """
        Tasks in the given status, in dispatch order.

        Used to hydrate the scheduler from stored PENDING tasks.
        """
        return await self._fetch_tasks(
            f"SELECT * FROM tasks WHERE status = ? ORDER BY {_DISPATCH_ORDER}",
            [TaskStatus(status).value],
        )

    async def find_due_before(self, cutoff: datetime) -> list[Task]:
        """Tasks with a due date strictly before cutoff. Undated tasks never match."""
        return await self._fetch_tasks(
            "SELECT * FROM tasks WHERE due_date IS NOT NULL AND due_date < ? "
            "ORDER BY due_date ASC",
            [normalize_datetime(cutoff).isoformat()],
        )

    async def find_by_status_and_priority(
        self, status: TaskStatus, priority: int
    ) -> list[Task]:
        return await self._fetch_tasks(
            "SELECT * FROM tasks WHERE status = ? AND priority = ? "
            "ORDER BY created_at ASC",
            [TaskStatus(status).value, priority],
        )

    async def find_high_priority_tasks(
        self, status: TaskStatus, min_priority: int
    ) -> list[Task]:
        """
        Next batch of work: tasks in a status at or above a priority threshold.

        Args:
            status: Status to match
            min_priority: Lowest priority to include

        Returns:
            Matching tasks in dispatch order
        """
        return await self._fetch_tasks(
            f"SELECT * FROM tasks WHERE status = ? AND priority >= ? "
            f"ORDER BY {_DISPATCH_ORDER}",
            [TaskStatus(status).value, min_priority],
        )

    async def find_stuck_tasks(self, cutoff: datetime) -> list[Task]:
        """
        Tasks still PROCESSING whose last update is older than cutoff.

        Args:
            cutoff: Tasks updated before this moment are considered stuck

        Returns:
            Stuck tasks, oldest update first
        """
        return await self._fetch_tasks(
            "SELECT * FROM tasks WHERE status = ? AND updated_at < ? "
            "ORDER BY updated_at ASC",
            [TaskStatus.PROCESSING.value, normalize_datetime(cutoff).isoformat()],
        )

    async def update_task_status(
        self,
        task_id: UUID,
        status: TaskStatus,
        expected_status: TaskStatus | None = None,
    ) -> None:
        """
        Update task status.

        The edge is not validated here; callers check it against the task's
        lifecycle first. Passing ``expected_status`` makes the write
        conditional, so a caller that validated a stale copy cannot overwrite
        a status another caller changed in the meantime.

        Args:
            task_id: Task ID
            status: New status
            expected_status: Status the stored task must still have

        Raises:
            TaskNotFoundError: If task not found
            InvalidTransitionError: If the stored status is not expected_status
        """
        current_task = await self.get_task(task_id)

        query = "UPDATE tasks SET status = ?, updated_at = ? WHERE id = ?"
        params: list[Any] = [status.value, datetime.now().isoformat(), str(task_id)]
        if expected_status is not None:
            query += " AND status = ?"
            params.append(TaskStatus(expected_status).value)

        async with self._get_connection() as conn:
            cursor = await conn.execute(query, params)
            if cursor.rowcount == 0:
                await conn.rollback()
                raise InvalidTransitionError(current_task.status, status)
            await self._record_history(
                conn,
                task_id,
                "status_updated",
                old_status=current_task.status,
                new_status=status,
            )
            await conn.commit()

    async def delete_task(self, task_id: UUID) -> None:
        """
        Delete a task.

        Raises:
            TaskNotFoundError: If task not found
        """
        current_task = await self.get_task(task_id)

        async with self._get_connection() as conn:
            await self._record_history(
                conn, task_id, "deleted", old_status=current_task.status
            )
            await conn.execute("DELETE FROM tasks WHERE id = ?", (str(task_id),))
            await conn.commit()

    async def get_task_history(self, task_id: UUID) -> list[dict[str, Any]]:
        """
        Get task history.

        Returns:
            List of history entries, oldest first
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                """
                SELECT timestamp, action, old_status, new_status
                FROM task_history
                WHERE task_id = ?
                ORDER BY id ASC
                """,
                (str(task_id),),
            )
            rows = await cursor.fetchall()

            return [
                {
                    "timestamp": row[0],
                    "action": row[1],
                    "old_status": row[2],
                    "new_status": row[3],
                }
                for row in rows
            ]

    async def get_status_counts(self) -> dict[str, int]:
        """
        Count tasks grouped by status.

        Returns:
            Mapping of every status value to its task count (0 when absent)
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT status, COUNT(*) FROM tasks GROUP BY status"
            )
            found = {row[0]: row[1] for row in await cursor.fetchall()}

        return {status.value: found.get(status.value, 0) for status in TaskStatus}

    async def _fetch_tasks(self, query: str, params: list[Any]) -> list[Task]:
        async with self._get_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return [self._row_to_task(row) for row in rows]

    async def _record_history(
        self,
        conn: aiosqlite.Connection,
        task_id: UUID,
        action: str,
        old_status: TaskStatus | None = None,
        new_status: TaskStatus | None = None,
    ) -> None:
        await conn.execute(
            """
            INSERT INTO task_history (
                task_id, timestamp, action, old_status, new_status
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (
                str(task_id),
                datetime.now().isoformat(),
                action,
                old_status.value if old_status else None,
                new_status.value if new_status else None,
            ),
        )

    def _row_to_task(self, row: aiosqlite.Row) -> Task:
        """Convert database row to Task object."""
        return Task.from_record(
            id=UUID(row["id"]),
            name=row["name"],
            description=row["description"],
            status=TaskStatus(row["status"]),
            priority=row["priority"],
            due_date=(
                datetime.fromisoformat(row["due_date"]) if row["due_date"] else None
            ),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
