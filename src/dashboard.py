"""Task dashboard pipeline: debounced query -> search -> filter -> sort.

The dashboard owns the task collection and hands the search engine
copies. Searches only run for an authenticated session, checked again
when a debounced query fires, so a query typed before logout or expiry
never produces results afterwards.
"""
import sys
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from src.config import get_config
from src.dates import parse_date
from src.debounce import Debouncer
from src.scheduler import Scheduler, TimerHandle
from src.search import ScoredResult, SearchOptions, TaskSearchEngine, collect_terms
from src.session import SessionManager
from src.tasks_client import TaskBackendError, TaskClient


PRIORITY_ORDER = {"High": 3, "Medium": 2, "Low": 1}

SORT_OPTIONS = (
    "dueDate-asc",
    "dueDate-desc",
    "priority-high",
    "priority-low",
    "createdAt-desc",
    "createdAt-asc",
    "relevance",
)

ERROR_DISPLAY_SECONDS = 3.0


@dataclass(frozen=True)
class TaskFilters:
    """User filter and sort preferences."""
    priority: str = "All"  # All, High, Medium, Low
    status: str = "All"  # All, Pending, Completed
    sort: str = "dueDate-asc"


def _sort_by_date(results: List[ScoredResult], field_name: str, descending: bool) -> List[ScoredResult]:
    dated = [r for r in results if parse_date(r.get(field_name)) is not None]
    undated = [r for r in results if parse_date(r.get(field_name)) is None]
    dated.sort(key=lambda r: parse_date(r.get(field_name)), reverse=descending)
    return dated + undated


def sort_tasks(results: Iterable[ScoredResult], sort: str) -> List[ScoredResult]:
    """Sort results by a user sort key. Unknown keys keep the current order.

    Tasks without a usable date, or with an unknown priority, go last.
    """
    results = list(results)

    if sort == "dueDate-asc":
        return _sort_by_date(results, "dueDate", descending=False)
    if sort == "dueDate-desc":
        return _sort_by_date(results, "dueDate", descending=True)
    if sort == "createdAt-desc":
        return _sort_by_date(results, "createdAt", descending=True)
    if sort == "createdAt-asc":
        return _sort_by_date(results, "createdAt", descending=False)
    if sort == "priority-high":
        return sorted(results, key=lambda r: -PRIORITY_ORDER.get(r.get("priority"), 0))
    if sort == "priority-low":
        return sorted(results, key=lambda r: PRIORITY_ORDER.get(r.get("priority"), len(PRIORITY_ORDER) + 1))
    if sort == "relevance":
        return sorted(results, key=lambda r: r.score, reverse=True)

    return results


def apply_filters(results: Iterable[ScoredResult], filters: TaskFilters) -> List[ScoredResult]:
    """Apply the priority and status filters."""
    filtered = list(results)

    if filters.priority != "All":
        filtered = [r for r in filtered if r.get("priority") == filters.priority]

    if filters.status == "Pending":
        filtered = [r for r in filtered if not r.get("completed")]
    elif filters.status == "Completed":
        filtered = [r for r in filtered if r.get("completed")]

    return filtered


class ErrorNotice:
    """A user-visible error message that clears itself after a while."""

    def __init__(self, scheduler: Scheduler, duration: float = ERROR_DISPLAY_SECONDS):
        self._scheduler = scheduler
        self.duration = duration
        self.message: Optional[str] = None
        self._timer: Optional[TimerHandle] = None

    def show(self, message: str) -> None:
        self._cancel_timer()
        self.message = message
        self._timer = self._scheduler.call_later(self.duration, self.clear)

    def clear(self) -> None:
        self._cancel_timer()
        self.message = None

    def close(self) -> None:
        self._cancel_timer()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class TaskDashboard:
    """Headless task dashboard driving search for one session."""

    def __init__(
        self,
        session: SessionManager,
        scheduler: Scheduler,
        engine: Optional[TaskSearchEngine] = None,
        client: Optional[TaskClient] = None,
        debounce_delay: Optional[float] = None,
        fields: Optional[Sequence[str]] = None,
        field_weights: Optional[Mapping[str, float]] = None,
        on_results: Optional[Callable[[List[ScoredResult]], Any]] = None,
    ):
        search_config = get_config().search
        self.session = session
        self.engine = engine or TaskSearchEngine()
        self.client = client
        self.fields = tuple(fields or search_config.fields)
        self.field_weights = dict(search_config.field_weights if field_weights is None else field_weights)
        self.on_results = on_results

        self.filters = TaskFilters()
        self.query = ""
        self.results: List[ScoredResult] = []
        self.error = ErrorNotice(scheduler)

        self._tasks: List[Dict[str, Any]] = []
        delay = search_config.debounce_delay if debounce_delay is None else debounce_delay
        self._debouncer: Debouncer[str] = Debouncer(delay, scheduler, initial="", on_emit=self._on_query)

    # ------------------------------------------------------------------
    # Task collection
    # ------------------------------------------------------------------

    @property
    def tasks(self) -> List[Dict[str, Any]]:
        """A copy of the current task collection."""
        return [dict(task) for task in self._tasks]

    def set_tasks(self, tasks: Iterable[Mapping[str, Any]]) -> None:
        """Replace the task collection and refresh the current results."""
        self._tasks = [dict(task) for task in tasks if isinstance(task, Mapping)]
        self.refresh_results()

    def refresh_results(self) -> None:
        """Recompute results for the last debounced query."""
        self._publish(self.debounced_query or "")

    async def refresh_tasks(self) -> bool:
        """Reload tasks from the backend.

        Returns:
            True on success; on failure the error notice is shown
        """
        if self.client is None:
            return False

        try:
            tasks = await self.client.list_tasks()
        except TaskBackendError as e:
            self.error.show(e.message)
            return False

        self.set_tasks(tasks)
        return True

    def _replace_task(self, updated: Mapping[str, Any]) -> None:
        self._tasks = [
            dict(updated) if task.get("_id") == updated.get("_id") else task
            for task in self._tasks
        ]
        self.refresh_results()

    def _find_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        for task in self._tasks:
            if task.get("_id") == task_id:
                return task
        return None

    async def create_task(self, task: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Create a task on the backend and put it at the top of the collection.

        Returns:
            The stored task, or None on failure (the error notice is shown)
        """
        if self.client is None:
            return None
        try:
            created = await self.client.create_task(dict(task))
        except TaskBackendError as e:
            self.error.show(e.message)
            return None

        self._tasks.insert(0, dict(created))
        self.refresh_results()
        return dict(created)

    async def update_task(self, task_id: str, changes: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Edit a task. The completed flag is kept as it is.

        Returns:
            The stored task, or None if the task is unknown or the call failed
        """
        current = self._find_task(task_id)
        if self.client is None or current is None:
            return None

        body = {**current, **changes, "completed": current.get("completed", False)}
        body.pop("_id", None)
        try:
            updated = await self.client.update_task(task_id, body)
        except TaskBackendError as e:
            self.error.show(e.message)
            return None

        self._replace_task(updated)
        return dict(updated)

    async def toggle_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        """Flip a task's completed flag."""
        if self.client is None:
            return None
        try:
            updated = await self.client.toggle_task(task_id)
        except TaskBackendError as e:
            self.error.show(e.message)
            return None

        self._replace_task(updated)
        return dict(updated)

    async def delete_task(self, task_id: str) -> bool:
        """Delete a task on the backend and drop it from the collection."""
        if self.client is None:
            return False
        try:
            await self.client.delete_task(task_id)
        except TaskBackendError as e:
            self.error.show(e.message)
            return False

        self._tasks = [task for task in self._tasks if task.get("_id") != task_id]
        self.refresh_results()
        return True

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    @property
    def debounced_query(self) -> Optional[str]:
        """The query the current results were computed for."""
        return self._debouncer.value

    @property
    def search_pending(self) -> bool:
        return self._debouncer.pending

    def _authorized(self) -> bool:
        return self.session.is_authenticated and self.session.is_session_valid()

    def set_filters(self, **changes: str) -> TaskFilters:
        """Update filter preferences and refresh the current results."""
        sort = changes.get("sort")
        if sort is not None and sort not in SORT_OPTIONS:
            raise ValueError(f"Unknown sort option: {sort}")
        self.filters = replace(self.filters, **changes)
        self.refresh_results()
        return self.filters

    def run_search(
        self,
        query: Optional[str],
        filters: Optional[TaskFilters] = None,
        fields: Optional[Sequence[str]] = None,
        min_score: float = 0.0,
        include_highlights: bool = True,
    ) -> List[ScoredResult]:
        """Search, filter and sort the collection right now.

        Args:
            query: Search query
            filters: Filter and sort preferences (defaults to :attr:`filters`)
            fields: Fields to search (defaults to :attr:`fields`)
            min_score: Relevance floor for matched tasks
            include_highlights: Attach highlight spans to results

        Returns:
            Results, or an empty list when the session is not valid
        """
        if not self._authorized():
            return []

        filters = filters or self.filters
        options = SearchOptions(
            fields=tuple(fields or self.fields),
            min_score=min_score,
            sort_by_relevance=False,
            include_highlights=include_highlights,
        )
        results = self.engine.search(self.tasks, query, options)
        results = apply_filters(results, filters)
        return sort_tasks(results, filters.sort)

    def multi_match(
        self,
        query: Optional[str],
        field_weights: Optional[Mapping[str, float]] = None,
    ) -> List[ScoredResult]:
        """Weighted search using the configured weights plus ``field_weights`` overrides."""
        if not self._authorized():
            return []
        weights = {**self.field_weights, **(field_weights or {})}
        return self.engine.multi_match(self.tasks, query, weights)

    def set_query(self, query: str) -> None:
        """Feed a keystroke-level query change through the debouncer."""
        self.query = query
        self._debouncer.push(query)

    def _on_query(self, query: str) -> None:
        if not self._authorized():
            print("[Dashboard] Discarding search, session is not authenticated", file=sys.stderr)
        self._publish(query)

    def _publish(self, query: str) -> None:
        self.results = self.run_search(query)
        if self.on_results is not None:
            self.on_results(self.results)

    def suggestions(self, query: Optional[str], max_suggestions: int = 5) -> List[str]:
        """Suggest "did you mean" terms drawn from the current collection."""
        if not self._authorized():
            return []
        dictionary = collect_terms(self._tasks, self.fields + ("priority",))
        return self.engine.suggest(query, dictionary, max_suggestions)

    def close(self) -> None:
        """Cancel pending searches and error timers."""
        self._debouncer.close()
        self.error.close()
