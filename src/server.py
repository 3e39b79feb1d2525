"""MCP server exposing session-gated task search."""
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# Add project root to Python path for absolute imports
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from src.activity import ActivityEvents
from src.config import get_config
from src.dashboard import TaskDashboard, TaskFilters, SORT_OPTIONS
from src.notification_history import get_notification_history
from src.notifications import TaskAutomation, TaskNotifier
from src.scheduler import LoopScheduler, Scheduler
from src.search import TaskSearchEngine
from src.session import SessionManager
from src.session_storage import SessionStorage
from src.tasks_client import TaskClient


class TaskManagerApp:
    """Everything one client connection owns: session, dashboard, notifier."""

    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        storage: Optional[SessionStorage] = None,
        client: Optional[TaskClient] = None,
        engine: Optional[TaskSearchEngine] = None,
        notifier: Optional[TaskNotifier] = None,
    ):
        self.scheduler = scheduler or LoopScheduler()
        self.storage = storage if storage is not None else SessionStorage()
        self.engine = engine or TaskSearchEngine()
        self.activity = ActivityEvents()
        self.session = SessionManager(self.storage, self.scheduler)
        self.dashboard = TaskDashboard(
            self.session,
            self.scheduler,
            engine=self.engine,
            client=client if client is not None else TaskClient(),
        )
        self.notifier = notifier
        self._started = False

    def start(self) -> None:
        """Restore the session and begin monitoring it."""
        if not self._started:
            self.session.start(self.activity)
            self._started = True

    def close(self) -> None:
        self.dashboard.close()
        self.session.close()
        self._started = False

    async def get_notifier(self) -> TaskNotifier:
        if self.notifier is None:
            self.notifier = TaskNotifier(history=await get_notification_history())
        return self.notifier


# Global state
_app: Optional[TaskManagerApp] = None


def get_app() -> TaskManagerApp:
    """Get or create the global app (must be called inside the event loop)."""
    global _app

    if _app is None:
        _app = TaskManagerApp()
    _app.start()

    return _app


def _text(payload: Any) -> List[TextContent]:
    if isinstance(payload, str):
        return [TextContent(type="text", text=payload)]
    return [TextContent(type="text", text=json.dumps(payload, indent=2, default=str))]


def _session_status(app: TaskManagerApp) -> Dict[str, Any]:
    info = app.session.get_session_info() if app.session.is_authenticated else None
    return {
        "state": app.session.state.value,
        "is_authenticated": app.session.is_authenticated,
        "loading": app.session.loading,
        "session_expiring": app.session.session_expiring,
        "session_time_left": app.session.session_time_left,
        "expiry_notice": app.session.expiry_notice,
        "user": app.session.user,
        "session": info.to_dict() if info else None,
    }


def _require_session(app: TaskManagerApp, event: str = "click") -> Optional[List[TextContent]]:
    """Count the call as activity, then refuse it unless the session is valid."""
    app.activity.emit(event)
    if app.session.is_authenticated and app.session.is_session_valid():
        return None
    notice = app.session.expiry_notice or "Not logged in. Call 'login' first."
    return _text(f"Error: {notice}")


def _parse_fields(fields: Any) -> Optional[Tuple[str, ...]]:
    """Accept a list of field names or a single name.

    Raises:
        ValueError: for anything else
    """
    if fields is None:
        return None
    if isinstance(fields, str):
        return (fields,)
    if isinstance(fields, (list, tuple)) and all(isinstance(f, str) for f in fields):
        return tuple(fields)
    raise ValueError("'fields' must be a list of field names")


def _backend_error(app: TaskManagerApp, default: str) -> List[TextContent]:
    return _text(f"Error: {app.dashboard.error.message or default}")


# ----------------------------------------------------------------------
# Tool handlers
# ----------------------------------------------------------------------

async def login_tool(email: str, name: Optional[str] = None) -> List[TextContent]:
    app = get_app()
    if not email:
        return _text("Error: 'email' parameter is required")

    user = {"email": email, "name": name or email.split("@")[0]}
    if not app.session.login(user):
        return _text("Error: Login failed")

    status = _session_status(app)
    if await app.dashboard.refresh_tasks():
        status["total_tasks"] = len(app.dashboard.tasks)
    else:
        status["tasks_error"] = app.dashboard.error.message
    return _text(status)


async def logout_tool() -> List[TextContent]:
    app = get_app()
    app.session.logout()
    app.dashboard.refresh_results()
    return _text(_session_status(app))


async def extend_session_tool() -> List[TextContent]:
    app = get_app()
    if not app.session.extend_session():
        return _text("Error: No active session to extend")
    return _text(_session_status(app))


async def get_session_info_tool() -> List[TextContent]:
    return _text(_session_status(get_app()))


async def update_profile_tool(name: str) -> List[TextContent]:
    app = get_app()
    denied = _require_session(app)
    if denied:
        return denied
    if not name:
        return _text("Error: 'name' parameter is required")

    if not app.session.update_user({"name": name}):
        return _text("Error: Could not update profile")
    return _text(_session_status(app))


async def refresh_tasks_tool() -> List[TextContent]:
    app = get_app()
    denied = _require_session(app)
    if denied:
        return denied

    if not await app.dashboard.refresh_tasks():
        return _backend_error(app, "Could not load tasks")

    return _text({"status": "ok", "total_tasks": len(app.dashboard.tasks)})


async def create_task_tool(
    title: str,
    description: str = "",
    priority: str = "Medium",
    due_date: Optional[str] = None,
) -> List[TextContent]:
    app = get_app()
    denied = _require_session(app)
    if denied:
        return denied
    if not title:
        return _text("Error: 'title' parameter is required")

    task = {"title": title, "description": description, "priority": priority, "dueDate": due_date}
    created = await app.dashboard.create_task(task)
    if created is None:
        return _backend_error(app, "Could not create task")
    return _text(created)


async def update_task_tool(task_id: str, changes: Dict[str, Any]) -> List[TextContent]:
    app = get_app()
    denied = _require_session(app)
    if denied:
        return denied

    if not any(t.get("_id") == task_id for t in app.dashboard.tasks):
        return _text(f"Error: Task not found: {task_id}")

    updated = await app.dashboard.update_task(task_id, changes)
    if updated is None:
        return _backend_error(app, "Could not update task")
    return _text(updated)


async def toggle_task_tool(task_id: str) -> List[TextContent]:
    app = get_app()
    denied = _require_session(app)
    if denied:
        return denied

    updated = await app.dashboard.toggle_task(task_id)
    if updated is None:
        return _backend_error(app, "Could not update task status")
    return _text(updated)


async def delete_task_tool(task_id: str) -> List[TextContent]:
    app = get_app()
    denied = _require_session(app)
    if denied:
        return denied

    if not await app.dashboard.delete_task(task_id):
        return _backend_error(app, "Could not delete task")
    return _text({"status": "deleted", "task_id": task_id})


async def search_tasks_tool(
    query: str = "",
    fields: Optional[List[str]] = None,
    min_score: float = 0.0,
    include_highlights: bool = False,
    priority: str = "All",
    status: str = "All",
    sort: Optional[str] = None,
    limit: int = 20,
) -> List[TextContent]:
    """Immediate ranked search over the loaded tasks.

    Without ``sort`` the results are ordered by relevance; with it, the
    user sort is applied after filtering.
    """
    app = get_app()
    denied = _require_session(app, "keydown")
    if denied:
        return denied

    if sort is not None and sort not in SORT_OPTIONS:
        return _text(f"Error: Unknown sort option '{sort}'. Use one of: {', '.join(SORT_OPTIONS)}")
    try:
        search_fields = _parse_fields(fields)
    except ValueError as e:
        return _text(f"Error: {e}")

    results = app.dashboard.run_search(
        query,
        filters=TaskFilters(priority=priority, status=status, sort=sort or "relevance"),
        fields=search_fields,
        min_score=min_score,
        include_highlights=include_highlights,
    )

    if not results:
        return _text(f"No tasks found matching query: {query}")

    return _text([r.to_dict() for r in results[:limit]])


async def set_search_query_tool(
    query: str,
    priority: Optional[str] = None,
    status: Optional[str] = None,
    sort: Optional[str] = None,
) -> List[TextContent]:
    """Type into the dashboard search box; results update after the debounce delay."""
    app = get_app()
    denied = _require_session(app, "keydown")
    if denied:
        return denied

    changes = {k: v for k, v in (("priority", priority), ("status", status), ("sort", sort)) if v is not None}
    if changes:
        try:
            app.dashboard.set_filters(**changes)
        except ValueError as e:
            return _text(f"Error: {e}")

    app.dashboard.set_query(query)
    return _text({
        "query": query,
        "pending": app.dashboard.search_pending,
        "filters": asdict(app.dashboard.filters),
    })


async def get_search_results_tool(limit: int = 20) -> List[TextContent]:
    """Current dashboard results for the last debounced query."""
    app = get_app()
    denied = _require_session(app)
    if denied:
        return denied

    results = app.dashboard.results
    return _text({
        "query": app.dashboard.debounced_query,
        "pending": app.dashboard.search_pending,
        "total": len(results),
        "results": [r.to_dict() for r in results[:limit]],
    })


async def multi_match_tasks_tool(
    query: str,
    field_weights: Optional[Dict[str, float]] = None,
    limit: int = 20,
) -> List[TextContent]:
    app = get_app()
    denied = _require_session(app, "keydown")
    if denied:
        return denied

    results = app.dashboard.multi_match(query, field_weights)
    if not results:
        return _text(f"No tasks found matching query: {query}")

    return _text([r.to_dict() for r in results[:limit]])


async def fuzzy_search_tasks_tool(
    query: str,
    max_distance: int = 2,
    fields: Optional[List[str]] = None,
) -> List[TextContent]:
    """Typo-tolerant search: tasks with any field fuzzy-matching the query."""
    app = get_app()
    denied = _require_session(app, "keydown")
    if denied:
        return denied

    try:
        search_fields = _parse_fields(fields) or app.dashboard.fields
    except ValueError as e:
        return _text(f"Error: {e}")

    matches = [
        task for task in app.dashboard.tasks
        if any(app.engine.fuzzy_match(task.get(f), query, max_distance) for f in search_fields)
    ]
    if not matches:
        return _text(f"No tasks found matching query: {query}")

    return _text(matches)


async def suggest_terms_tool(query: str, max_suggestions: int = 5) -> List[TextContent]:
    app = get_app()
    denied = _require_session(app, "keydown")
    if denied:
        return denied

    return _text({"query": query, "suggestions": app.dashboard.suggestions(query, max_suggestions)})


async def check_notifications_tool() -> List[TextContent]:
    app = get_app()
    denied = _require_session(app)
    if denied:
        return denied

    notifier = await app.get_notifier()
    user_email = (app.session.user or {}).get("email")
    summary = await notifier.check_tasks_and_notify(app.dashboard.tasks, user_email)
    return _text(summary)


async def send_reminder_tool(task_id: str) -> List[TextContent]:
    app = get_app()
    denied = _require_session(app)
    if denied:
        return denied

    task = next((t for t in app.dashboard.tasks if t.get("_id") == task_id), None)
    if task is None:
        return _text(f"Error: Task not found: {task_id}")

    notifier = await app.get_notifier()
    user_email = (app.session.user or {}).get("email")
    return _text(await notifier.send_reminder(task, user_email))


async def get_notification_history_tool(limit: int = 20) -> List[TextContent]:
    app = get_app()
    denied = _require_session(app)
    if denied:
        return denied

    notifier = await app.get_notifier()
    if notifier.history is None:
        return _text({"total": 0, "notifications": []})
    return _text({
        "total": await notifier.history.count(),
        "notifications": await notifier.history.get_history(limit=limit),
    })


# ----------------------------------------------------------------------
# Server
# ----------------------------------------------------------------------

_QUERY_PROPERTY = {"type": "string", "description": "Search query (empty shows all tasks)"}
_FIELDS_PROPERTY = {
    "type": "array",
    "items": {"type": "string"},
    "description": "Task fields to search (default: title, description)",
}
_TASK_ID_PROPERTY = {"type": "string", "description": "Task _id"}
_PRIORITY_PROPERTY = {"type": "string", "enum": ["High", "Medium", "Low"]}
_PRIORITY_FILTER_PROPERTY = {"type": "string", "enum": ["All", "High", "Medium", "Low"]}
_STATUS_FILTER_PROPERTY = {"type": "string", "enum": ["All", "Pending", "Completed"]}
_SORT_PROPERTY = {"type": "string", "enum": list(SORT_OPTIONS)}
_NO_ARGS = {"type": "object", "properties": {}}


def create_server() -> Server:
    """Create and configure the MCP server.

    Returns:
        Configured Server instance
    """
    server = Server("tasks-aware-mcp")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List available tools."""
        return [
            Tool(
                name="login",
                description="Start a local session. Task tools require an active session.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "email": {"type": "string", "description": "User email"},
                        "name": {"type": "string", "description": "Display name"},
                    },
                    "required": ["email"],
                },
            ),
            Tool(
                name="logout",
                description="End the session and clear all stored session data.",
                inputSchema=_NO_ARGS,
            ),
            Tool(
                name="extend_session",
                description="Reset the inactivity timer of the current session.",
                inputSchema=_NO_ARGS,
            ),
            Tool(
                name="get_session_info",
                description="Session state, time until expiry and expiry warnings.",
                inputSchema=_NO_ARGS,
            ),
            Tool(
                name="update_profile",
                description="Change the display name of the logged-in user.",
                inputSchema={
                    "type": "object",
                    "properties": {"name": {"type": "string", "description": "New display name"}},
                    "required": ["name"],
                },
            ),
            Tool(
                name="refresh_tasks",
                description="Reload the task list from the task backend.",
                inputSchema=_NO_ARGS,
            ),
            Tool(
                name="create_task",
                description="Create a task on the backend.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "title": {"type": "string"},
                        "description": {"type": "string"},
                        "priority": _PRIORITY_PROPERTY,
                        "due_date": {"type": "string", "description": "ISO-8601 due date"},
                    },
                    "required": ["title"],
                },
            ),
            Tool(
                name="update_task",
                description="Edit a task's title, description, priority or due date.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "task_id": _TASK_ID_PROPERTY,
                        "title": {"type": "string"},
                        "description": {"type": "string"},
                        "priority": _PRIORITY_PROPERTY,
                        "due_date": {"type": "string", "description": "ISO-8601 due date"},
                    },
                    "required": ["task_id"],
                },
            ),
            Tool(
                name="toggle_task",
                description="Mark a task completed or pending.",
                inputSchema={
                    "type": "object",
                    "properties": {"task_id": _TASK_ID_PROPERTY},
                    "required": ["task_id"],
                },
            ),
            Tool(
                name="delete_task",
                description="Delete a task.",
                inputSchema={
                    "type": "object",
                    "properties": {"task_id": _TASK_ID_PROPERTY},
                    "required": ["task_id"],
                },
            ),
            Tool(
                name="search_tasks",
                description=(
                    "Search tasks with case-insensitive partial matching and relevance "
                    "scoring. Optionally filter by priority/status, sort, and highlight matches."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": _QUERY_PROPERTY,
                        "fields": _FIELDS_PROPERTY,
                        "min_score": {"type": "number", "description": "Minimum relevance score (0-100)"},
                        "include_highlights": {"type": "boolean"},
                        "priority": _PRIORITY_FILTER_PROPERTY,
                        "status": _STATUS_FILTER_PROPERTY,
                        "sort": _SORT_PROPERTY,
                        "limit": {"type": "integer", "description": "Maximum results (default 20)"},
                    },
                },
            ),
            Tool(
                name="set_search_query",
                description=(
                    "Update the dashboard search box and filters. Results are computed "
                    "once the query has been stable for the debounce delay; read them "
                    "with get_search_results."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": _QUERY_PROPERTY,
                        "priority": _PRIORITY_FILTER_PROPERTY,
                        "status": _STATUS_FILTER_PROPERTY,
                        "sort": _SORT_PROPERTY,
                    },
                    "required": ["query"],
                },
            ),
            Tool(
                name="get_search_results",
                description="Dashboard results for the last debounced query, with highlights.",
                inputSchema={
                    "type": "object",
                    "properties": {"limit": {"type": "integer"}},
                },
            ),
            Tool(
                name="multi_match_tasks",
                description="Search tasks across weighted fields (title x2, priority x1.5, description x1).",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": _QUERY_PROPERTY,
                        "field_weights": {
                            "type": "object",
                            "additionalProperties": {"type": "number"},
                            "description": "Per-field weight overrides",
                        },
                        "limit": {"type": "integer"},
                    },
                    "required": ["query"],
                },
            ),
            Tool(
                name="fuzzy_search_tasks",
                description="Typo-tolerant task search using edit distance on individual words.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": _QUERY_PROPERTY,
                        "max_distance": {"type": "integer", "description": "Maximum edit distance (default 2)"},
                        "fields": _FIELDS_PROPERTY,
                    },
                    "required": ["query"],
                },
            ),
            Tool(
                name="suggest_terms",
                description="'Did you mean?' suggestions drawn from words in the loaded tasks.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": _QUERY_PROPERTY,
                        "max_suggestions": {"type": "integer"},
                    },
                    "required": ["query"],
                },
            ),
            Tool(
                name="check_notifications",
                description="Check tasks for overdue, due-soon and high priority items and send mock emails.",
                inputSchema=_NO_ARGS,
            ),
            Tool(
                name="send_reminder",
                description="Send a mock reminder email for one task.",
                inputSchema={
                    "type": "object",
                    "properties": {"task_id": _TASK_ID_PROPERTY},
                    "required": ["task_id"],
                },
            ),
            Tool(
                name="get_notification_history",
                description="Recently sent mock notifications, newest first.",
                inputSchema={
                    "type": "object",
                    "properties": {"limit": {"type": "integer"}},
                },
            ),
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: Any) -> list[TextContent]:
        """Handle tool calls."""
        arguments = arguments or {}
        if name == "login":
            return await login_tool(arguments.get("email", ""), arguments.get("name"))
        elif name == "logout":
            return await logout_tool()
        elif name == "extend_session":
            return await extend_session_tool()
        elif name == "get_session_info":
            return await get_session_info_tool()
        elif name == "update_profile":
            return await update_profile_tool(arguments.get("name", ""))
        elif name == "refresh_tasks":
            return await refresh_tasks_tool()
        elif name == "create_task":
            return await create_task_tool(
                arguments.get("title", ""),
                arguments.get("description", ""),
                arguments.get("priority", "Medium"),
                arguments.get("due_date"),
            )
        elif name == "update_task":
            changes = {
                key: arguments[arg]
                for arg, key in (("title", "title"), ("description", "description"),
                                 ("priority", "priority"), ("due_date", "dueDate"))
                if arg in arguments
            }
            return await update_task_tool(arguments.get("task_id", ""), changes)
        elif name == "toggle_task":
            return await toggle_task_tool(arguments.get("task_id", ""))
        elif name == "delete_task":
            return await delete_task_tool(arguments.get("task_id", ""))
        elif name == "search_tasks":
            return await search_tasks_tool(
                query=arguments.get("query", ""),
                fields=arguments.get("fields"),
                min_score=float(arguments.get("min_score", 0.0)),
                include_highlights=bool(arguments.get("include_highlights", False)),
                priority=arguments.get("priority", "All"),
                status=arguments.get("status", "All"),
                sort=arguments.get("sort"),
                limit=int(arguments.get("limit", 20)),
            )
        elif name == "set_search_query":
            return await set_search_query_tool(
                arguments.get("query", ""),
                arguments.get("priority"),
                arguments.get("status"),
                arguments.get("sort"),
            )
        elif name == "get_search_results":
            return await get_search_results_tool(int(arguments.get("limit", 20)))
        elif name == "multi_match_tasks":
            return await multi_match_tasks_tool(
                arguments.get("query", ""),
                arguments.get("field_weights"),
                int(arguments.get("limit", 20)),
            )
        elif name == "fuzzy_search_tasks":
            return await fuzzy_search_tasks_tool(
                arguments.get("query", ""),
                int(arguments.get("max_distance", 2)),
                arguments.get("fields"),
            )
        elif name == "suggest_terms":
            return await suggest_terms_tool(
                arguments.get("query", ""),
                int(arguments.get("max_suggestions", 5)),
            )
        elif name == "check_notifications":
            return await check_notifications_tool()
        elif name == "send_reminder":
            return await send_reminder_tool(arguments.get("task_id", ""))
        elif name == "get_notification_history":
            return await get_notification_history_tool(int(arguments.get("limit", 20)))
        else:
            raise ValueError(f"Unknown tool: {name}")

    return server


async def main():
    """Main entry point for the MCP server."""
    server = create_server()
    app = get_app()

    notifier = await app.get_notifier()
    automation = TaskAutomation(
        notifier,
        get_tasks=lambda: app.dashboard.tasks if app.session.is_authenticated else [],
        interval_minutes=get_config().notifications.interval_minutes,
    )
    automation.start()

    try:
        async with stdio_server() as (read_stream, write_stream):
            initialization_options = server.create_initialization_options()
            await server.run(read_stream, write_stream, initialization_options)
    finally:
        await automation.stop()
        app.close()
        history = await get_notification_history()
        await history.close()
