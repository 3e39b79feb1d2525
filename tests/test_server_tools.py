"""Tests for server tool registration and session-gated tool calls."""
import asyncio
import json
from datetime import datetime, timezone

import pytest
import pytest_asyncio

import src.server as server_module
from src.notification_history import NotificationHistory
from src.notifications import TaskNotifier
from src.scheduler import ManualScheduler
from src.server import (
    TaskManagerApp,
    check_notifications_tool,
    create_server,
    create_task_tool,
    delete_task_tool,
    extend_session_tool,
    fuzzy_search_tasks_tool,
    get_notification_history_tool,
    get_search_results_tool,
    get_session_info_tool,
    login_tool,
    logout_tool,
    multi_match_tasks_tool,
    refresh_tasks_tool,
    search_tasks_tool,
    send_reminder_tool,
    set_search_query_tool,
    suggest_terms_tool,
    toggle_task_tool,
    update_profile_tool,
    update_task_tool,
)
from src.session_storage import SessionStorage
from src.tasks_client import TaskBackendError


START_TIME = 1_700_000_000.0


class FakeClient:
    """In-memory stand-in for TaskClient."""

    def __init__(self, tasks):
        self.tasks = tasks
        self.error = None

    def _check(self):
        if self.error is not None:
            raise self.error

    async def list_tasks(self):
        self._check()
        return self.tasks

    async def create_task(self, task):
        self._check()
        return {**task, "_id": "new", "completed": False}

    async def update_task(self, task_id, task):
        self._check()
        return {**task, "_id": task_id}

    async def toggle_task(self, task_id):
        self._check()
        task = next(t for t in self.tasks if t["_id"] == task_id)
        return {**task, "completed": not task["completed"]}

    async def delete_task(self, task_id):
        self._check()


async def no_sleep(seconds):
    return None


def payload(result):
    return json.loads(result[0].text)


class TestServerTools:
    def test_server_creates(self):
        server = create_server()
        assert server.name == "tasks-aware-mcp"

    def test_all_tools_registered(self):
        from mcp.types import ListToolsRequest

        server = create_server()

        async def check():
            result = await server.request_handlers[ListToolsRequest](None)
            return result.root.tools

        tools = asyncio.run(check())
        tool_names = [t.name for t in tools]

        expected = [
            "login",
            "logout",
            "extend_session",
            "get_session_info",
            "update_profile",
            "refresh_tasks",
            "create_task",
            "update_task",
            "toggle_task",
            "delete_task",
            "search_tasks",
            "set_search_query",
            "get_search_results",
            "multi_match_tasks",
            "fuzzy_search_tasks",
            "suggest_terms",
            "check_notifications",
            "send_reminder",
            "get_notification_history",
        ]

        assert len(tools) == 19
        for name in expected:
            assert name in tool_names, f"Missing tool: {name}"

    def test_entry_point_runs_server(self, monkeypatch):
        import src.main as main_module

        calls = []

        async def fake_main():
            calls.append("served")

        monkeypatch.setattr(main_module, "main", fake_main)
        main_module.run()
        assert calls == ["served"]

    def test_entry_point_handles_interrupt(self, monkeypatch):
        import src.main as main_module

        async def interrupted():
            raise KeyboardInterrupt

        monkeypatch.setattr(main_module, "main", interrupted)
        main_module.run()


@pytest_asyncio.fixture
async def app(monkeypatch, sample_tasks, notifications_db_path):
    """Install a test app with a virtual clock as the server's global app."""
    history = NotificationHistory(notifications_db_path)
    await history.initialize()

    scheduler = ManualScheduler(start=START_TIME)
    notifier = TaskNotifier(
        history=history,
        sleep=no_sleep,
        clock=lambda: datetime.fromtimestamp(scheduler.now(), tz=timezone.utc),
    )
    test_app = TaskManagerApp(
        scheduler=scheduler,
        storage=SessionStorage(),
        client=FakeClient(sample_tasks),
        notifier=notifier,
    )
    monkeypatch.setattr(server_module, "_app", test_app)

    yield test_app

    test_app.close()
    await history.close()


@pytest.mark.asyncio
class TestSessionTools:
    async def test_login_loads_tasks(self, app):
        status = payload(await login_tool("ada@example.com"))
        assert status["state"] == "authenticated"
        assert status["user"] == {"email": "ada@example.com", "name": "ada"}
        assert status["total_tasks"] == 4

    async def test_login_requires_email(self, app):
        result = await login_tool("")
        assert "email" in result[0].text

    async def test_login_reports_backend_error(self, app):
        app.dashboard.client.error = TaskBackendError("Failed to load tasks.")
        status = payload(await login_tool("ada@example.com"))
        assert status["is_authenticated"] is True
        assert status["tasks_error"] == "Failed to load tasks."

    async def test_logout(self, app):
        await login_tool("ada@example.com")
        status = payload(await logout_tool())
        assert status["state"] == "unauthenticated"
        assert len(app.storage) == 0

    async def test_session_info(self, app):
        await login_tool("ada@example.com", "Ada")
        app.scheduler.advance(26 * 60)

        status = payload(await get_session_info_tool())
        assert status["session_expiring"] is True
        assert status["session"]["time_until_expiry"] == 4

    async def test_extend_session(self, app):
        await login_tool("ada@example.com")
        app.scheduler.advance(26 * 60)

        status = payload(await extend_session_tool())
        assert status["session_expiring"] is False
        assert status["session"]["time_until_expiry"] == 30

    async def test_extend_without_session(self, app):
        result = await extend_session_tool()
        assert result[0].text.startswith("Error:")


@pytest.mark.asyncio
class TestGatedTools:
    async def test_search_requires_login(self, app):
        result = await search_tasks_tool("meeting")
        assert "Not logged in" in result[0].text

    async def test_search_after_expiry_reports_notice(self, app):
        await login_tool("ada@example.com")
        app.scheduler.advance(31 * 60)

        result = await search_tasks_tool("meeting")
        assert "expired due to inactivity" in result[0].text

    async def test_search_ranked(self, app):
        await login_tool("ada@example.com")
        results = payload(await search_tasks_tool("meeting", include_highlights=True))
        assert [r["_id"] for r in results] == ["t3", "t1"]
        assert results[0]["_score"] > results[1]["_score"]
        assert results[0]["_highlights"]["title"]["highlighted"] == "<mark>Meeting</mark> notes"

    async def test_search_with_filters_and_sort(self, app):
        await login_tool("ada@example.com")
        results = payload(await search_tasks_tool("", priority="High", sort="dueDate-desc"))
        assert [r["_id"] for r in results] == ["t4", "t1"]

    async def test_search_rejects_unknown_sort(self, app):
        await login_tool("ada@example.com")
        result = await search_tasks_tool("meeting", sort="alphabetical")
        assert "Unknown sort option" in result[0].text

    async def test_search_no_results(self, app):
        await login_tool("ada@example.com")
        result = await search_tasks_tool("xyznonexistent")
        assert "No tasks found" in result[0].text

    async def test_search_counts_as_activity(self, app):
        await login_tool("ada@example.com")
        app.scheduler.advance(20 * 60)
        await search_tasks_tool("meeting")
        assert app.session.get_session_info().time_until_expiry == 30

        app.scheduler.advance(9 * 60)
        assert app.session.is_authenticated
        assert not app.session.session_expiring

    async def test_multi_match(self, app):
        await login_tool("ada@example.com")
        results = payload(await multi_match_tasks_tool("high"))
        assert {r["_id"] for r in results} == {"t1", "t4"}

    async def test_fuzzy_search(self, app):
        await login_tool("ada@example.com")
        results = payload(await fuzzy_search_tasks_tool("meetnig"))
        assert {r["_id"] for r in results} == {"t1", "t3"}

    async def test_suggest_terms(self, app):
        await login_tool("ada@example.com")
        result = payload(await suggest_terms_tool("meetnig"))
        assert "meeting" in result["suggestions"]

    async def test_refresh_tasks(self, app):
        await login_tool("ada@example.com")
        app.dashboard.client.tasks = app.dashboard.client.tasks[:2]
        result = payload(await refresh_tasks_tool())
        assert result == {"status": "ok", "total_tasks": 2}

    async def test_notifications(self, app):
        await login_tool("ada@example.com")
        summary = payload(await check_notifications_tool())
        assert summary["total_tasks"] == 4
        assert summary["notifications_sent"] == summary["overdue_tasks"] + summary["due_soon_tasks"] + summary["high_priority_tasks"]
        assert all(n["to"] == "ada@example.com" for n in summary["notifications"])

        history = payload(await get_notification_history_tool())
        assert history["total"] == summary["notifications_sent"]
        assert len(history["notifications"]) == summary["notifications_sent"]

    async def test_search_accepts_single_field_name(self, app):
        await login_tool("ada@example.com")
        results = payload(await search_tasks_tool("high", fields="priority"))
        assert {r["_id"] for r in results} == {"t1", "t4"}

    async def test_search_rejects_bad_fields(self, app):
        await login_tool("ada@example.com")
        result = await search_tasks_tool("meeting", fields=5)
        assert "'fields' must be a list" in result[0].text

    async def test_fuzzy_search_rejects_bad_fields(self, app):
        await login_tool("ada@example.com")
        result = await fuzzy_search_tasks_tool("meetnig", fields={"title": True})
        assert "'fields' must be a list" in result[0].text

    async def test_search_min_score(self, app):
        await login_tool("ada@example.com")
        results = payload(await search_tasks_tool("meeting", min_score=60))
        assert [r["_id"] for r in results] == ["t3"]

    async def test_multi_match_uses_configured_weights(self, app):
        await login_tool("ada@example.com")
        default = payload(await multi_match_tasks_tool("high"))
        assert default[0]["_score"] == 150

        app.dashboard.field_weights["priority"] = 3.0
        boosted = payload(await multi_match_tasks_tool("high"))
        assert boosted[0]["_score"] == 300

    async def test_multi_match_call_overrides_config(self, app):
        await login_tool("ada@example.com")
        results = payload(await multi_match_tasks_tool("high", {"priority": 0.5}))
        assert results[0]["_score"] == 50

    async def test_send_reminder(self, app):
        await login_tool("ada@example.com")
        notification = payload(await send_reminder_tool("t2"))
        assert notification["type"] == "reminder"
        assert notification["subject"] == "Task Reminder: Shopping"
        assert notification["to"] == "ada@example.com"

    async def test_send_reminder_unknown_task(self, app):
        await login_tool("ada@example.com")
        result = await send_reminder_tool("missing")
        assert "Task not found" in result[0].text

    async def test_update_profile(self, app):
        await login_tool("ada@example.com")
        status = payload(await update_profile_tool("Ada Lovelace"))
        assert status["user"] == {"email": "ada@example.com", "name": "Ada Lovelace"}

    async def test_update_profile_requires_login(self, app):
        result = await update_profile_tool("Ada")
        assert "Not logged in" in result[0].text


@pytest.mark.asyncio
class TestDebouncedSearch:
    async def test_results_arrive_after_delay(self, app):
        await login_tool("ada@example.com")

        status = payload(await set_search_query_tool("meet"))
        assert status["pending"] is True

        before = payload(await get_search_results_tool())
        assert before["query"] == ""
        assert before["total"] == 4

        app.scheduler.advance(0.3)
        after = payload(await get_search_results_tool())
        assert after["query"] == "meet"
        assert after["pending"] is False
        assert [r["_id"] for r in after["results"]] == ["t3", "t1"]
        assert after["results"][0]["_highlights"]["title"]["highlighted"] == "<mark>Meet</mark>ing notes"

    async def test_burst_runs_one_search(self, app):
        await login_tool("ada@example.com")
        seen = []
        app.dashboard.on_results = lambda results: seen.append(len(results))

        for query in ("m", "me", "mee", "meet"):
            await set_search_query_tool(query)
            app.scheduler.advance(0.1)
        app.scheduler.advance(0.3)

        assert seen == [2]

    async def test_filters_apply_to_debounced_results(self, app):
        await login_tool("ada@example.com")
        status = payload(await set_search_query_tool("meeting", status="Pending"))
        assert status["filters"]["status"] == "Pending"

        app.scheduler.advance(0.3)
        results = payload(await get_search_results_tool())
        assert [r["_id"] for r in results["results"]] == ["t1"]

    async def test_unknown_sort_rejected(self, app):
        await login_tool("ada@example.com")
        result = await set_search_query_tool("meet", sort="alphabetical")
        assert "Unknown sort option" in result[0].text

    async def test_query_firing_after_logout_returns_nothing(self, app):
        await login_tool("ada@example.com")
        await set_search_query_tool("meet")
        await logout_tool()

        app.scheduler.advance(0.3)
        assert app.dashboard.debounced_query == "meet"
        assert app.dashboard.results == []

    async def test_results_require_login(self, app):
        result = await get_search_results_tool()
        assert "Not logged in" in result[0].text


@pytest.mark.asyncio
class TestTaskCrudTools:
    async def test_create_task(self, app):
        await login_tool("ada@example.com")
        created = payload(await create_task_tool("Book flights", "Trip to Izmir", "High", "2023-11-16T09:00:00Z"))
        assert created["_id"] == "new"
        assert app.dashboard.tasks[0]["title"] == "Book flights"

        results = payload(await search_tasks_tool("flights"))
        assert [r["_id"] for r in results] == ["new"]

    async def test_create_requires_title(self, app):
        await login_tool("ada@example.com")
        result = await create_task_tool("")
        assert "'title' parameter is required" in result[0].text

    async def test_create_failure_reports_backend_message(self, app):
        await login_tool("ada@example.com")
        app.dashboard.client.error = TaskBackendError("Failed to create task. Please try again.")
        result = await create_task_tool("Book flights")
        assert result[0].text == "Error: Failed to create task. Please try again."

    async def test_update_task_keeps_completed(self, app):
        await login_tool("ada@example.com")
        updated = payload(await update_task_tool("t3", {"title": "Meeting minutes", "completed": False}))
        assert updated["title"] == "Meeting minutes"
        assert updated["completed"] is True
        assert payload(await search_tasks_tool("minutes"))[0]["_id"] == "t3"

    async def test_update_unknown_task(self, app):
        await login_tool("ada@example.com")
        result = await update_task_tool("missing", {"title": "x"})
        assert "Task not found" in result[0].text

    async def test_toggle_task(self, app):
        await login_tool("ada@example.com")
        toggled = payload(await toggle_task_tool("t1"))
        assert toggled["completed"] is True

        results = payload(await search_tasks_tool("", status="Completed"))
        assert {r["_id"] for r in results} == {"t1", "t3"}

    async def test_delete_task(self, app):
        await login_tool("ada@example.com")
        result = payload(await delete_task_tool("t2"))
        assert result == {"status": "deleted", "task_id": "t2"}
        assert [t["_id"] for t in app.dashboard.tasks] == ["t1", "t3", "t4"]

    async def test_crud_requires_login(self, app):
        result = await delete_task_tool("t2")
        assert "Not logged in" in result[0].text
