"""Example demonstrating the dispatch flow through the MCP tool implementations."""

import asyncio
import logging

from taskcore.scheduling import mcp_server
from taskcore.scheduling.database import TaskDatabase
from taskcore.scheduling.dispatcher import TaskDispatcher

logging.basicConfig(level=logging.INFO)


async def main() -> None:
    """Queue a few tasks, dispatch one and walk it to completion."""
    dispatcher = TaskDispatcher(TaskDatabase(":memory:"))
    await dispatcher.initialize()
    mcp_server.set_dispatcher(dispatcher)

    print(mcp_server._greet_impl("example"))
    print()

    # Example 1: Queue tasks
    print("=== Queueing tasks ===")
    for name, priority, due_date in [
        ("Write release notes", 3, "2026-07-01T12:00:00"),
        ("Fix production outage", 9, None),
        ("Update dependencies", 3, "2026-06-28T09:00:00"),
    ]:
        result = await mcp_server._enqueue_task_impl(
            name=name, priority=priority, due_date=due_date
        )
        print(f"Queued: {result['task']['name']} (priority={priority})")
    print()

    # Example 2: Inspect the queue
    print("=== Queue in dispatch order ===")
    result = await mcp_server._list_queued_tasks_impl()
    for task in result["tasks"]:
        print(f"  {task['priority']:>2}  {task['due_date'] or '-':<20} {task['name']}")
    print()

    # Example 3: Dispatch and complete
    print("=== Dispatching next task ===")
    result = await mcp_server._next_task_impl()
    task_id = result["task"]["id"]
    print(f"Assigned: {result['task']['name']}")
    print(await mcp_server._start_task_impl(task_id))
    print(await mcp_server._complete_task_impl(task_id))
    print()

    # Example 4: Completed tasks cannot be completed again
    print("=== Invalid transition ===")
    print(await mcp_server._complete_task_impl(task_id))
    print()

    # Example 5: Statistics
    print("=== Statistics ===")
    print(await mcp_server._get_task_statistics_impl())

    await dispatcher.shutdown()
    mcp_server.set_dispatcher(None)


if __name__ == "__main__":
    asyncio.run(main())
