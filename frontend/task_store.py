# frontend/task_store.py

"""
Client-side task store.

Holds the tasks a UI is showing, plus ``loading`` and ``error`` flags, and
keeps them in step with the Task Manager API. UI code subscribes to state
changes instead of polling the attributes.

Calls are not coordinated: if two requests are in flight (e.g. from two
threads), whichever finishes last decides the local state.
"""

import os
import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

import requests
import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TaskFilters:
    """Listing parameters; ``None`` leaves the server default in place."""

    status: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None
    page: Optional[int] = None
    limit: Optional[int] = None

    def to_params(self) -> dict[str, Any]:
        params = {
            "status": self.status,
            "sortBy": self.sort_by,
            "sortOrder": self.sort_order,
            "page": self.page,
            "limit": self.limit,
        }
        return {key: value for key, value in params.items() if value not in (None, "")}


@dataclass(frozen=True)
class TaskState:
    tasks: tuple = ()
    pagination: Optional[dict[str, Any]] = None
    loading: bool = False
    error: Optional[str] = None
    cached: bool = False


Listener = Callable[[TaskState], None]


def error_message(exc: Exception, fallback: str) -> str:
    """First field error from the API's error envelope, else ``fallback``."""
    if not isinstance(exc, requests.HTTPError) or exc.response is None:
        return fallback
    try:
        body = exc.response.json()
    except ValueError:
        return fallback
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors and isinstance(errors[0], dict) and errors[0].get("message"):
        return errors[0]["message"]
    return fallback


def same_id(a: str, b: str) -> bool:
    """Compare task ids the way the server does, as UUIDs when they parse."""
    try:
        return uuid.UUID(a) == uuid.UUID(b)
    except (ValueError, TypeError, AttributeError):
        return a == b


class TaskStore:
    """Observable mirror of the server's tasks for one UI."""

    def __init__(self, base_url: str | None = None, session: requests.Session | None = None, timeout: float = 10):
        """Initialize the store.

        Args:
            base_url: API URL. If None, reads from API_BASE_URL env var.
            session: HTTP session to use, a new one by default.
            timeout: Per-request timeout in seconds.
        """
        self.base_url = (base_url or os.getenv("API_BASE_URL", "http://localhost:8000")).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self._state = TaskState()
        self._listeners: list[Listener] = []

    # state

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def tasks(self) -> tuple:
        return self._state.tasks

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    @property
    def pagination(self) -> Optional[dict[str, Any]]:
        return self._state.pagination

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with the new state after every change.

        Returns a function that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, **changes) -> None:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            listener(self._state)

    # HTTP

    def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        url = f"{self.base_url}/api/tasks{path}"
        response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        response.raise_for_status()
        return response.json()

    # operations

    def fetch_tasks(self, filters: TaskFilters | None = None) -> None:
        """Load a page of tasks. Failures are recorded in ``error``, not raised."""
        filters = filters or TaskFilters()
        self._set(loading=True, error=None)
        try:
            body = self._request("GET", "", params=filters.to_params())
            self._set(
                tasks=tuple(body["data"]),
                pagination=body.get("pagination"),
                cached=bool(body.get("cached")),
            )
        except requests.RequestException as e:
            logger.error("Failed to fetch tasks", error=str(e))
            self._set(error=error_message(e, "Failed to fetch tasks"))
        finally:
            self._set(loading=False)

    def create_task(self, task_data: dict[str, Any]) -> dict[str, Any]:
        self._set(loading=True, error=None)
        try:
            task = self._request("POST", "", json=task_data)["data"]
            self._set(tasks=self._state.tasks + (task,))
            logger.info("Task created", task_id=task["id"])
            return task
        except requests.RequestException as e:
            self._set(error=error_message(e, "Failed to create task"))
            raise
        finally:
            self._set(loading=False)

    def update_task(self, task_id: str, task_data: dict[str, Any]) -> dict[str, Any]:
        self._set(loading=True, error=None)
        try:
            task = self._request("PUT", f"/{task_id}", json=task_data)["data"]
            self._set(tasks=tuple(task if t["id"] == task["id"] else t for t in self._state.tasks))
            return task
        except requests.RequestException as e:
            self._set(error=error_message(e, "Failed to update task"))
            raise
        finally:
            self._set(loading=False)

    def delete_task(self, task_id: str) -> None:
        self._set(loading=True, error=None)
        try:
            self._request("DELETE", f"/{task_id}")
            self._set(tasks=tuple(t for t in self._state.tasks if not same_id(t["id"], task_id)))
        except requests.RequestException as e:
            logger.error("Failed to delete task", task_id=task_id, error=str(e))
            self._set(error=error_message(e, "Failed to delete task"))
            raise
        finally:
            self._set(loading=False)
