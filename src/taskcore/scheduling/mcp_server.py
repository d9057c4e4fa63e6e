"""MCP Server exposing the task dispatcher using FastMCP."""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from fastmcp import FastMCP

from .config import (
    DEFAULT_DATABASE_PATH,
    DEFAULT_MCP_HOST,
    DEFAULT_MCP_PORT,
    DEFAULT_MCP_SERVER_NAME,
)
from .database import TaskDatabase
from .dispatcher import TaskDispatcher
from .exceptions import InvalidTransitionError, TaskNotFoundError
from .models import Task

logger = logging.getLogger(__name__)

# Create FastMCP server instance
mcp = FastMCP(DEFAULT_MCP_SERVER_NAME)

# Global dispatcher (initialized in main())
_dispatcher: TaskDispatcher | None = None


def get_dispatcher() -> TaskDispatcher:
    """Get the global dispatcher instance."""
    if _dispatcher is None:
        raise RuntimeError("Task dispatcher not initialized")
    return _dispatcher


def set_dispatcher(dispatcher: TaskDispatcher | None) -> None:
    """Set the global dispatcher instance (also used by tests)."""
    global _dispatcher
    _dispatcher = dispatcher


def task_to_dict(task: Task) -> dict[str, Any]:
    """Serialize a task for tool responses."""
    return {
        "id": str(task.id),
        "name": task.name,
        "description": task.description,
        "status": task.status.value,
        "priority": task.priority,
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "created_at": task.created_at.isoformat(),
        "updated_at": task.updated_at.isoformat(),
    }


def _greet_impl(name: str = "world") -> dict[str, Any]:
    return {"success": True, "message": f"Hello, {name}!"}


async def _enqueue_task_impl(
    name: str,
    description: str = "",
    priority: int = 0,
    due_date: str | None = None,
) -> dict[str, Any]:
    """Implementation of enqueue_task tool."""
    try:
        dispatcher = get_dispatcher()

        if not name or not name.strip():
            return {"success": False, "error": "Task name is required"}

        try:
            parsed_priority = int(priority)
        except (TypeError, ValueError):
            return {"success": False, "error": f"Invalid priority: {priority}"}

        parsed_due_date = None
        if due_date:
            try:
                parsed_due_date = datetime.fromisoformat(due_date)
            except ValueError:
                return {"success": False, "error": f"Invalid date format: {due_date}"}

        task = await dispatcher.submit_task(
            name=name.strip(),
            description=description,
            due_date=parsed_due_date,
            priority=parsed_priority,
        )

        return {"success": True, "task": task_to_dict(task)}

    except Exception as e:
        logger.error(f"Error enqueueing task: {e}")
        return {"success": False, "error": str(e)}


async def _peek_next_task_impl() -> dict[str, Any]:
    try:
        task = get_dispatcher().peek_next_task()
        return {"success": True, "task": task_to_dict(task) if task else None}
    except Exception as e:
        logger.error(f"Error peeking next task: {e}")
        return {"success": False, "error": str(e)}


async def _next_task_impl() -> dict[str, Any]:
    """Implementation of next_task tool. An empty queue is not an error."""
    try:
        task = await get_dispatcher().dispatch_next()
        return {"success": True, "task": task_to_dict(task) if task else None}
    except Exception as e:
        logger.error(f"Error dispatching next task: {e}")
        return {"success": False, "error": str(e)}


async def _list_queued_tasks_impl() -> dict[str, Any]:
    try:
        tasks = get_dispatcher().list_queued_tasks()
        return {"tasks": [task_to_dict(task) for task in tasks]}
    except Exception as e:
        logger.error(f"Error listing queued tasks: {e}")
        return {"success": False, "error": str(e)}


async def _report_impl(task_id: str, action: str) -> dict[str, Any]:
    """
    Shared body of the lifecycle report tools.

    Args:
        task_id: Task UUID as given by the caller
        action: Lifecycle verb; the dispatcher method is "<action>_task"

    Returns:
        Dictionary with success status and the updated task
    """
    try:
        dispatcher = get_dispatcher()

        try:
            parsed_task_id = uuid.UUID(task_id)
        except ValueError:
            return {"success": False, "error": f"Invalid UUID format: {task_id}"}

        report = getattr(dispatcher, f"{action}_task")
        task = await report(parsed_task_id)
        return {"success": True, "task": task_to_dict(task)}

    except (TaskNotFoundError, InvalidTransitionError) as e:
        logger.warning(f"Cannot {action} task {task_id}: {e}")
        return {"success": False, "error": str(e)}
    except Exception as e:
        logger.error(f"Error trying to {action} task {task_id}: {e}")
        return {"success": False, "error": str(e)}


async def _start_task_impl(task_id: str) -> dict[str, Any]:
    return await _report_impl(task_id, "start")


async def _complete_task_impl(task_id: str) -> dict[str, Any]:
    return await _report_impl(task_id, "complete")


async def _fail_task_impl(task_id: str) -> dict[str, Any]:
    return await _report_impl(task_id, "fail")


async def _cancel_task_impl(task_id: str) -> dict[str, Any]:
    return await _report_impl(task_id, "cancel")


async def _release_task_impl(task_id: str) -> dict[str, Any]:
    return await _report_impl(task_id, "release")


async def _delete_task_impl(task_id: str) -> dict[str, Any]:
    """
    Delete a task.

    Args:
        task_id: Task UUID

    Returns:
        Dictionary with success status
    """
    try:
        dispatcher = get_dispatcher()

        try:
            parsed_task_id = uuid.UUID(task_id)
        except ValueError:
            return {"success": False, "error": f"Invalid UUID format: {task_id}"}

        await dispatcher.delete_task(parsed_task_id)

        return {"success": True}

    except TaskNotFoundError as e:
        logger.warning(f"Task not found: {e}")
        return {"success": False, "error": str(e)}
    except Exception as e:
        logger.error(f"Error deleting task: {e}")
        return {"success": False, "error": str(e)}


async def _get_task_statistics_impl() -> dict[str, Any]:
    try:
        return await get_dispatcher().get_statistics()
    except Exception as e:
        logger.error(f"Error getting task statistics: {e}")
        return {"success": False, "error": str(e)}


async def _find_stuck_tasks_impl(max_age_minutes: float | None = None) -> dict[str, Any]:
    """Implementation of find_stuck_tasks tool."""
    try:
        dispatcher = get_dispatcher()

        max_age = None
        if max_age_minutes is not None:
            if max_age_minutes < 0:
                return {
                    "success": False,
                    "error": f"Invalid max age: {max_age_minutes}",
                }
            max_age = timedelta(minutes=max_age_minutes)

        tasks = await dispatcher.find_stuck_tasks(max_age)
        return {"tasks": [task_to_dict(task) for task in tasks]}

    except Exception as e:
        logger.error(f"Error finding stuck tasks: {e}")
        return {"success": False, "error": str(e)}


# FastMCP decorated wrappers (for actual MCP server)
@mcp.tool()
def greet(name: str = "world") -> dict[str, Any]:
    """
    Health check: greet the caller.

    Args:
        name: Who to greet

    Returns:
        Dictionary with a greeting message
    """
    return _greet_impl(name)


@mcp.tool()
async def enqueue_task(
    name: str,
    description: str = "",
    priority: int = 0,
    due_date: str | None = None,
) -> dict[str, Any]:
    """
    Create a task and queue it for dispatch.

    Args:
        name: Task name (required)
        description: Task description
        priority: Integer priority, higher values are dispatched first
        due_date: Due date in ISO format (optional)

    Returns:
        Dictionary with the created task and success status
    """
    return await _enqueue_task_impl(
        name=name, description=description, priority=priority, due_date=due_date
    )


@mcp.tool()
async def peek_next_task() -> dict[str, Any]:
    """
    Show the task that would be dispatched next, without dispatching it.

    Returns:
        Dictionary with the task, or task=None when the queue is empty
    """
    return await _peek_next_task_impl()


@mcp.tool()
async def next_task() -> dict[str, Any]:
    """
    Dispatch the highest priority queued task to the caller.

    Returns:
        Dictionary with the assigned task, or task=None when the queue is empty
    """
    return await _next_task_impl()


@mcp.tool()
async def list_queued_tasks() -> dict[str, Any]:
    """
    List queued tasks in dispatch order.

    Returns:
        Dictionary with tasks list
    """
    return await _list_queued_tasks_impl()


@mcp.tool()
async def start_task(task_id: str) -> dict[str, Any]:
    """Report that work on an assigned task has started."""
    return await _start_task_impl(task_id)


@mcp.tool()
async def complete_task(task_id: str) -> dict[str, Any]:
    """Report that a task finished successfully."""
    return await _complete_task_impl(task_id)


@mcp.tool()
async def fail_task(task_id: str) -> dict[str, Any]:
    """Report that a task finished unsuccessfully."""
    return await _fail_task_impl(task_id)


@mcp.tool()
async def cancel_task(task_id: str) -> dict[str, Any]:
    """Cancel a task that has not finished yet."""
    return await _cancel_task_impl(task_id)


@mcp.tool()
async def release_task(task_id: str) -> dict[str, Any]:
    """Hand an assigned task back to the queue."""
    return await _release_task_impl(task_id)


@mcp.tool()
async def delete_task(task_id: str) -> dict[str, Any]:
    """
    Delete a task.

    Args:
        task_id: Task UUID

    Returns:
        Dictionary with success status
    """
    return await _delete_task_impl(task_id=task_id)


@mcp.tool()
async def get_task_statistics() -> dict[str, Any]:
    """
    Get task statistics (counts by status and queue size).

    Returns:
        Dictionary with task counts
    """
    return await _get_task_statistics_impl()


@mcp.tool()
async def find_stuck_tasks(max_age_minutes: float | None = None) -> dict[str, Any]:
    """
    List tasks that have been processing for too long.

    Args:
        max_age_minutes: Allowed processing time (server default if omitted)

    Returns:
        Dictionary with tasks list
    """
    return await _find_stuck_tasks_impl(max_age_minutes=max_age_minutes)


async def create_dispatcher(db_path: str = DEFAULT_DATABASE_PATH) -> TaskDispatcher:
    """
    Build and initialize a dispatcher backed by the given database.

    Args:
        db_path: Path to the SQLite database file

    Returns:
        Initialized dispatcher
    """
    dispatcher = TaskDispatcher(TaskDatabase(db_path))
    await dispatcher.initialize()
    return dispatcher


def run_server(
    transport: str = "stdio",
    host: str = DEFAULT_MCP_HOST,
    port: int = DEFAULT_MCP_PORT,
) -> None:
    """
    Run the MCP server. A dispatcher must already be set.

    Args:
        transport: "stdio" for stdio, "sse" for HTTP/SSE
        host: Host to bind for the SSE transport
        port: Port to bind for the SSE transport
    """
    logger.info(f"MCP Server starting (transport={transport})")

    # FastMCP's run() manages its own event loop
    if transport == "stdio":
        mcp.run(transport="stdio")
    else:
        logger.info(f"Server will listen on http://{host}:{port}")
        mcp.run(transport="sse", host=host, port=port)
