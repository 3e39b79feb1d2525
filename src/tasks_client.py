"""HTTP client for the task CRUD backend."""
import sys
from typing import Any, Dict, List, Optional

import httpx

from src.config import get_config


class TaskBackendError(Exception):
    """A backend call failed. ``message`` is safe to show to the user."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class TaskClient:
    """Thin async wrapper around the ``/api/tasks`` REST resource.

    Each call is a single request; failures are reported once as
    :class:`TaskBackendError` and never retried.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = get_config()
        self.base_url = (base_url or config.api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else config.request_timeout
        self._transport = transport

    async def _request(self, method: str, path: str, error_message: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={"User-Agent": "TasksMCP/1.0"},
            ) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                if not response.content:
                    return None
                return response.json()
        except httpx.HTTPError as e:
            print(f"HTTP error on {method} {url}: {e}", file=sys.stderr)
            raise TaskBackendError(error_message, e)
        except ValueError as e:
            print(f"Invalid response from {method} {url}: {e}", file=sys.stderr)
            raise TaskBackendError(error_message, e)

    async def list_tasks(self) -> List[Dict[str, Any]]:
        """Fetch all tasks."""
        data = await self._request(
            "GET", "",
            "Failed to load tasks. Please make sure the backend server is running.",
        )
        if not isinstance(data, list):
            raise TaskBackendError("Failed to load tasks. Unexpected response from the backend.")
        return [task for task in data if isinstance(task, dict)]

    async def create_task(self, task: Dict[str, Any]) -> Dict[str, Any]:
        """Create a task and return the stored record."""
        return await self._request("POST", "", "Failed to create task. Please try again.", json=task)

    async def update_task(self, task_id: str, task: Dict[str, Any]) -> Dict[str, Any]:
        """Replace a task and return the stored record."""
        return await self._request(
            "PUT", f"/{task_id}", "Failed to update task. Please try again.", json=task,
        )

    async def toggle_task(self, task_id: str) -> Dict[str, Any]:
        """Flip a task's completed flag."""
        return await self._request(
            "PATCH", f"/{task_id}/toggle", "Failed to update task status. Please try again.",
        )

    async def delete_task(self, task_id: str) -> None:
        """Delete a task."""
        await self._request("DELETE", f"/{task_id}", "Failed to delete task. Please try again.")
