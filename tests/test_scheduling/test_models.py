"""Tests for the Task entity and its lifecycle helpers."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from taskcore.scheduling.exceptions import InvalidTransitionError
from taskcore.scheduling.models import Task, TaskStatus, normalize_datetime


def processing_task() -> Task:
    """Create a task that has been assigned and started."""
    task = Task("Render report", "Nightly render", None, 3)
    task.assign_task()
    task.start_processing()
    return task


@pytest.mark.unit
class TestTaskConstruction:
    """Test task construction paths."""

    def test_construct_with_arguments_is_pending(self) -> None:
        """Test that a task built with arguments starts PENDING."""
        due = datetime(2026, 1, 1, 12, 0)
        task = Task("Build", "Compile sources", due, 7)

        assert task.status == TaskStatus.PENDING
        assert task.name == "Build"
        assert task.description == "Compile sources"
        assert task.due_date == due
        assert task.priority == 7

    def test_construct_without_arguments_is_pending(self) -> None:
        """Test the zero-value construction path used for deserialization."""
        task = Task()

        assert task.status == TaskStatus.PENDING
        assert task.name == ""
        assert task.description == ""
        assert task.due_date is None
        assert task.priority == 0

    def test_status_is_not_a_constructor_argument(self) -> None:
        """Test that callers cannot construct a task in another status."""
        with pytest.raises(TypeError):
            Task("Build", status=TaskStatus.DONE)  # type: ignore[call-arg]

    def test_each_task_gets_unique_id(self) -> None:
        """Test that identifiers are generated per task."""
        first = Task("a")
        second = Task("a")

        assert isinstance(first.id, uuid.UUID)
        assert first.id != second.id

    def test_from_record_restores_stored_fields(self) -> None:
        """Test that the persistence path restores id and status."""
        task_id = uuid.uuid4()
        created = datetime(2026, 3, 1, 8, 0)
        updated = created + timedelta(hours=1)

        task = Task.from_record(
            id=task_id,
            name="Stored",
            description="From the database",
            due_date=None,
            priority=2,
            status=TaskStatus.PROCESSING,
            created_at=created,
            updated_at=updated,
        )

        assert task.id == task_id
        assert task.status == TaskStatus.PROCESSING
        assert task.created_at == created
        assert task.updated_at == updated

    def test_aware_due_date_becomes_local_time(self) -> None:
        """Test that timezone-aware due dates are converted to naive local time."""
        aware = datetime(2026, 7, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))

        task = Task("Offset", due_date=aware)

        assert task.due_date is not None
        assert task.due_date.tzinfo is None
        assert task.due_date == aware.astimezone().replace(tzinfo=None)

    def test_naive_due_date_is_kept(self) -> None:
        """Test that naive due dates pass through unchanged."""
        due = datetime(2026, 7, 1, 12, 0)

        assert normalize_datetime(due) is due
        assert Task("Local", due_date=due).due_date is due


@pytest.mark.unit
class TestAssignTask:
    """Test the guarded PENDING -> ASSIGNED transition."""

    def test_assign_pending_task_succeeds(self) -> None:
        """Test that assigning a fresh task reports success."""
        task = Task("Deploy")

        assert task.assign_task() is True
        assert task.status == TaskStatus.ASSIGNED

    def test_assign_twice_fails_and_keeps_status(self) -> None:
        """Test that a second assignment is refused without changing status."""
        task = Task("Deploy")
        task.assign_task()

        assert task.assign_task() is False
        assert task.status == TaskStatus.ASSIGNED

    def test_assign_finished_task_fails(self) -> None:
        """Test that a completed task cannot be claimed again."""
        task = processing_task()
        task.mark_as_done()

        assert task.assign_task() is False
        assert task.status == TaskStatus.DONE


@pytest.mark.unit
class TestLifecycleHelpers:
    """Test the remaining lifecycle helpers."""

    def test_full_successful_lifecycle(self) -> None:
        """Test PENDING -> ASSIGNED -> PROCESSING -> DONE."""
        task = Task("Index")

        assert task.assign_task()
        assert task.start_processing()
        assert task.mark_as_done()
        assert task.status == TaskStatus.DONE

    def test_mark_as_done_requires_processing(self) -> None:
        """Test that a pending task cannot jump straight to DONE."""
        task = Task("Index")

        assert task.mark_as_done() is False
        assert task.status == TaskStatus.PENDING

    def test_mark_as_done_does_not_overwrite_terminal_status(self) -> None:
        """Test that a failed task stays failed."""
        task = processing_task()
        task.mark_as_failed()

        assert task.mark_as_done() is False
        assert task.status == TaskStatus.FAILED

    def test_cancel_pending_task(self) -> None:
        """Test cancelling a task that has not been assigned."""
        task = Task("Index")

        assert task.cancel() is True
        assert task.status == TaskStatus.CANCELLED

    def test_release_assigned_task(self) -> None:
        """Test returning an assigned task to PENDING."""
        task = Task("Index")
        task.assign_task()

        assert task.release() is True
        assert task.status == TaskStatus.PENDING
        assert task.assign_task() is True

    def test_release_requires_assigned(self) -> None:
        """Test that a processing task cannot be released."""
        task = processing_task()

        assert task.release() is False
        assert task.status == TaskStatus.PROCESSING

    def test_transition_to_raises_on_illegal_edge(self) -> None:
        """Test the strict transition form."""
        task = Task("Index")

        with pytest.raises(InvalidTransitionError) as exc_info:
            task.transition_to(TaskStatus.PROCESSING)

        assert exc_info.value.current == TaskStatus.PENDING
        assert exc_info.value.requested == TaskStatus.PROCESSING
        assert task.status == TaskStatus.PENDING

    def test_transition_refreshes_updated_at(self) -> None:
        """Test that a successful change touches updated_at."""
        task = Task("Index")
        task.updated_at = datetime(2000, 1, 1)

        task.assign_task()

        assert task.updated_at > datetime(2000, 1, 1)

    def test_failed_transition_keeps_updated_at(self) -> None:
        """Test that a refused change leaves updated_at alone."""
        task = Task("Index")
        task.updated_at = datetime(2000, 1, 1)

        task.mark_as_done()

        assert task.updated_at == datetime(2000, 1, 1)
