"""Tests for the in-memory priority scheduler."""

import random
import threading
from datetime import datetime, timedelta, timezone

import pytest

from taskcore.scheduling.models import Task, TaskStatus
from taskcore.scheduling.scheduler import DuplicatePolicy, PriorityScheduler

T = datetime(2026, 6, 1, 9, 0)


def drain(scheduler: PriorityScheduler) -> list[Task]:
    """Pop every task from the scheduler."""
    tasks = []
    while (task := scheduler.get_next_task()) is not None:
        tasks.append(task)
    return tasks


@pytest.fixture
def scheduler() -> PriorityScheduler:
    """Create an empty scheduler."""
    return PriorityScheduler()


@pytest.mark.unit
class TestEmptyScheduler:
    """Test behaviour with no queued tasks."""

    def test_new_scheduler_is_empty(self, scheduler: PriorityScheduler) -> None:
        """Test initial occupancy."""
        assert scheduler.size() == 0
        assert len(scheduler) == 0
        assert scheduler.is_empty()
        assert scheduler.get_all_tasks() == []

    def test_peek_and_pop_return_none(self, scheduler: PriorityScheduler) -> None:
        """Test the empty-queue sentinel."""
        assert scheduler.peek_next_task() is None
        assert scheduler.get_next_task() is None

    def test_remove_absent_task(self, scheduler: PriorityScheduler) -> None:
        """Test removing from an empty scheduler."""
        assert scheduler.remove_task(Task("ghost")) is False
        assert scheduler.size() == 0


@pytest.mark.unit
class TestOrdering:
    """Test retrieval order."""

    def test_scenario_priority_then_due_date(self, scheduler: PriorityScheduler) -> None:
        """Test the three task scenario."""
        early = Task("p3-early", priority=3, due_date=T + timedelta(hours=1))
        late = Task("p3-late", priority=3, due_date=T + timedelta(hours=2))
        urgent = Task("p7", priority=7, due_date=T + timedelta(hours=5))
        for task in (early, late, urgent):
            scheduler.add_task(task)

        assert drain(scheduler) == [urgent, early, late]

    def test_undated_task_after_dated_at_equal_priority(
        self, scheduler: PriorityScheduler
    ) -> None:
        """Test the position of tasks without a due date."""
        undated = Task("undated", priority=2)
        dated = Task("dated", priority=2, due_date=T + timedelta(days=90))
        lower = Task("lower", priority=1, due_date=T)
        for task in (undated, lower, dated):
            scheduler.add_task(task)

        assert drain(scheduler) == [dated, undated, lower]

    def test_random_inserts_pop_in_order(self, scheduler: PriorityScheduler) -> None:
        """Test the ordering property over a random workload."""
        rng = random.Random(1234)
        for i in range(200):
            due = None if rng.random() < 0.2 else T + timedelta(minutes=rng.randint(0, 500))
            scheduler.add_task(Task(f"t{i}", priority=rng.randint(0, 5), due_date=due))

        popped = drain(scheduler)

        assert len(popped) == 200
        for prev, cur in zip(popped, popped[1:]):
            assert prev.priority >= cur.priority
            if prev.priority == cur.priority:
                if prev.due_date is None:
                    assert cur.due_date is None
                elif cur.due_date is not None:
                    assert prev.due_date <= cur.due_date

    def test_peek_matches_next_pop(self, scheduler: PriorityScheduler) -> None:
        """Test pop/peek consistency."""
        for priority in (4, 9, 1):
            scheduler.add_task(Task(f"p{priority}", priority=priority))

        while not scheduler.is_empty():
            peeked = scheduler.peek_next_task()
            assert scheduler.get_next_task() is peeked

    def test_peek_does_not_remove(self, scheduler: PriorityScheduler) -> None:
        """Test that peek leaves occupancy unchanged."""
        scheduler.add_task(Task("only"))

        scheduler.peek_next_task()

        assert scheduler.size() == 1

    def test_get_all_tasks_is_sorted_snapshot(self, scheduler: PriorityScheduler) -> None:
        """Test full listing order and isolation from internals."""
        tasks = [Task(f"p{p}", priority=p) for p in (2, 8, 5, 1)]
        for task in tasks:
            scheduler.add_task(task)

        snapshot = scheduler.get_all_tasks()
        assert [t.priority for t in snapshot] == [8, 5, 2, 1]

        snapshot.clear()
        assert scheduler.size() == 4
        assert scheduler.get_next_task().priority == 8

    def test_snapshot_uses_queued_key(self, scheduler: PriorityScheduler) -> None:
        """Test that editing a queued task moves neither the snapshot nor the head."""
        a = Task("a", priority=1)
        b = Task("b", priority=5)
        scheduler.add_task(a)
        scheduler.add_task(b)

        a.priority = 10

        assert [t.name for t in scheduler.get_all_tasks()] == ["b", "a"]
        assert scheduler.peek_next_task() is b
        assert drain(scheduler) == [b, a]

    def test_aware_and_naive_due_dates_mix(self, scheduler: PriorityScheduler) -> None:
        """Test that aware due dates order against naive local ones."""
        naive = Task("naive", due_date=T, priority=3)
        aware = Task("aware", priority=3)
        aware.due_date = (T + timedelta(hours=1)).astimezone(timezone.utc)
        earlier = Task("earlier", priority=3)
        earlier.due_date = (T - timedelta(hours=1)).astimezone(timezone.utc)

        for task in (aware, naive, earlier):
            assert scheduler.add_task(task) is True

        assert scheduler.size() == 3
        assert [t.name for t in scheduler.get_all_tasks()] == ["earlier", "naive", "aware"]
        assert drain(scheduler) == [earlier, naive, aware]

    def test_scheduler_does_not_check_status(self, scheduler: PriorityScheduler) -> None:
        """Test that queuing a non-PENDING task is accepted."""
        task = Task("claimed")
        task.assign_task()

        assert scheduler.add_task(task) is True
        assert scheduler.get_next_task().status == TaskStatus.ASSIGNED


@pytest.mark.unit
class TestSizeAndClear:
    """Test occupancy tracking."""

    def test_size_follows_operations(self, scheduler: PriorityScheduler) -> None:
        """Test the size invariant across adds, pops and removals."""
        a, b, c = Task("a", priority=1), Task("b", priority=2), Task("c", priority=3)
        for task in (a, b, c):
            scheduler.add_task(task)
        assert scheduler.size() == 3

        scheduler.get_next_task()
        assert scheduler.size() == 2

        assert scheduler.remove_task(a)
        assert scheduler.size() == 1

        assert not scheduler.remove_task(a)
        assert scheduler.size() == 1

        scheduler.get_next_task()
        scheduler.get_next_task()
        assert scheduler.size() == 0

    def test_clear_empties_scheduler(self, scheduler: PriorityScheduler) -> None:
        """Test clear()."""
        for i in range(5):
            scheduler.add_task(Task(f"t{i}", priority=i))

        scheduler.clear()

        assert scheduler.is_empty()
        assert scheduler.peek_next_task() is None
        assert scheduler.get_all_tasks() == []

    def test_usable_after_clear(self, scheduler: PriorityScheduler) -> None:
        """Test that the scheduler keeps working after being cleared."""
        scheduler.add_task(Task("old"))
        scheduler.clear()
        fresh = Task("fresh")

        scheduler.add_task(fresh)

        assert scheduler.get_next_task() is fresh


@pytest.mark.unit
class TestRemoveTask:
    """Test removal by identifier."""

    def test_remove_middle_task(self, scheduler: PriorityScheduler) -> None:
        """Test removal correctness with equal priorities."""
        a = Task("A", priority=5)
        b = Task("B", priority=5)
        c = Task("C", priority=1)
        for task in (a, b, c):
            scheduler.add_task(task)

        assert scheduler.remove_task(b) is True
        assert scheduler.size() == 2

        remaining = drain(scheduler)
        assert remaining == [a, c]
        assert b not in remaining

    def test_remove_matches_by_id_not_identity(self, scheduler: PriorityScheduler) -> None:
        """Test that a different object with the same id is removed."""
        original = Task("original", priority=2)
        scheduler.add_task(original)
        copy = Task.from_record(
            id=original.id,
            name="copy",
            description="",
            due_date=None,
            priority=0,
            status=TaskStatus.PENDING,
            created_at=original.created_at,
            updated_at=original.updated_at,
        )

        assert scheduler.remove_task(copy) is True
        assert scheduler.is_empty()

    def test_remove_head_then_peek(self, scheduler: PriorityScheduler) -> None:
        """Test that a removed head is never returned."""
        head = Task("head", priority=9)
        tail = Task("tail", priority=1)
        scheduler.add_task(head)
        scheduler.add_task(tail)

        scheduler.remove_task(head)

        assert scheduler.peek_next_task() is tail
        assert scheduler.get_next_task() is tail
        assert scheduler.get_next_task() is None

    def test_remove_excluded_from_snapshot(self, scheduler: PriorityScheduler) -> None:
        """Test that removed entries disappear from get_all_tasks()."""
        keep = Task("keep")
        gone = Task("gone")
        scheduler.add_task(keep)
        scheduler.add_task(gone)

        scheduler.remove_task(gone)

        assert scheduler.get_all_tasks() == [keep]
        assert gone not in scheduler
        assert keep in scheduler

    def test_duplicate_entries_removed_one_at_a_time(
        self, scheduler: PriorityScheduler
    ) -> None:
        """Test that each call removes a single entry for a duplicated id."""
        task = Task("dup", priority=3)
        scheduler.add_task(task)
        scheduler.add_task(task)
        assert scheduler.size() == 2

        assert scheduler.remove_task(task) is True
        assert scheduler.size() == 1
        assert task in scheduler

        assert scheduler.remove_task(task) is True
        assert scheduler.size() == 0
        assert scheduler.remove_task(task) is False

    def test_duplicate_removal_takes_earliest_inserted(
        self, scheduler: PriorityScheduler
    ) -> None:
        """Test which entry goes when an id is queued twice."""
        task = Task("dup", priority=1)
        scheduler.add_task(task)
        # Raise the priority and queue the same task again: the second entry
        # now sorts first, but the first inserted one is the one removed.
        task.priority = 10
        scheduler.add_task(task)
        other = Task("other", priority=5)
        scheduler.add_task(other)

        scheduler.remove_task(task)

        assert drain(scheduler) == [task, other]

    def test_heap_stays_bounded_under_churn(self, scheduler: PriorityScheduler) -> None:
        """Test that removed entries below a long-lived head are reclaimed."""
        head = Task("head", priority=100)
        scheduler.add_task(head)

        for i in range(10_000):
            task = Task(f"churn{i}", priority=i % 7)
            scheduler.add_task(task)
            scheduler.remove_task(task)

        assert scheduler.size() == 1
        assert len(scheduler._heap) <= 3
        assert scheduler.get_all_tasks() == [head]
        assert drain(scheduler) == [head]

    def test_compaction_keeps_dispatch_order(self, scheduler: PriorityScheduler) -> None:
        """Test that rebuilding the heap does not disturb the remaining order."""
        keep = [Task(f"keep{p}", priority=p) for p in (4, 9, 1, 6)]
        drop = [Task(f"drop{i}", priority=i) for i in range(10)]
        for task in keep + drop:
            scheduler.add_task(task)

        for task in drop:
            scheduler.remove_task(task)

        assert len(scheduler._heap) <= 2 * scheduler.size()
        assert [t.priority for t in drain(scheduler)] == [9, 6, 4, 1]


@pytest.mark.unit
class TestDuplicatePolicy:
    """Test insertion of an id that is already queued."""

    def test_allow_keeps_both_entries(self) -> None:
        """Test the default no-deduplication behaviour."""
        scheduler = PriorityScheduler()
        task = Task("dup")

        assert scheduler.add_task(task) is True
        assert scheduler.add_task(task) is True
        assert scheduler.duplicate_policy is DuplicatePolicy.ALLOW
        assert drain(scheduler) == [task, task]

    def test_reject_refuses_second_insert(self) -> None:
        """Test the REJECT policy."""
        scheduler = PriorityScheduler(DuplicatePolicy.REJECT)
        task = Task("dup")

        assert scheduler.add_task(task) is True
        assert scheduler.add_task(task) is False
        assert scheduler.size() == 1

    def test_reject_allows_requeue_after_pop(self) -> None:
        """Test that a popped task may be queued again."""
        scheduler = PriorityScheduler(DuplicatePolicy.REJECT)
        task = Task("dup")
        scheduler.add_task(task)
        scheduler.get_next_task()

        assert scheduler.add_task(task) is True

    def test_replace_swaps_entry(self) -> None:
        """Test the REPLACE policy reorders an updated task."""
        scheduler = PriorityScheduler(DuplicatePolicy.REPLACE)
        task = Task("bumped", priority=1)
        other = Task("other", priority=5)
        scheduler.add_task(task)
        scheduler.add_task(other)

        task.priority = 9
        assert scheduler.add_task(task) is True

        assert scheduler.size() == 2
        assert drain(scheduler) == [task, other]

    def test_repeated_replace_stays_bounded(self) -> None:
        """Test that re-queuing one task many times does not grow the heap."""
        scheduler = PriorityScheduler(DuplicatePolicy.REPLACE)
        head = Task("head", priority=100)
        task = Task("bumped")
        scheduler.add_task(head)

        for priority in range(1_000):
            task.priority = priority
            scheduler.add_task(task)

        assert scheduler.size() == 2
        assert len(scheduler._heap) <= 4
        assert drain(scheduler) == [head, task]

    def test_policy_accepts_string_value(self) -> None:
        """Test construction from the config value."""
        assert PriorityScheduler("reject").duplicate_policy is DuplicatePolicy.REJECT


@pytest.mark.unit
class TestConcurrency:
    """Test access from several threads."""

    def test_concurrent_consumers_never_share_a_task(self) -> None:
        """Test that each queued task is popped exactly once."""
        scheduler = PriorityScheduler()
        tasks = [Task(f"t{i}", priority=i % 7) for i in range(500)]
        for task in tasks:
            scheduler.add_task(task)

        popped: list[Task] = []
        popped_lock = threading.Lock()

        def consume() -> None:
            while (task := scheduler.get_next_task()) is not None:
                with popped_lock:
                    popped.append(task)

        workers = [threading.Thread(target=consume) for _ in range(8)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        assert len(popped) == 500
        assert len({task.id for task in popped}) == 500
        assert scheduler.is_empty()

    def test_concurrent_producers(self) -> None:
        """Test that concurrent inserts are all counted."""
        scheduler = PriorityScheduler()

        def produce(offset: int) -> None:
            for i in range(100):
                scheduler.add_task(Task(f"t{offset}-{i}", priority=i))

        producers = [threading.Thread(target=produce, args=(n,)) for n in range(4)]
        for producer in producers:
            producer.start()
        for producer in producers:
            producer.join()

        assert scheduler.size() == 400
        assert len(drain(scheduler)) == 400
