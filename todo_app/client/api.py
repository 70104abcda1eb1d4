"""HTTP client for the todo API.

The client keeps the session cookie issued by ``/login`` in its cookie jar,
so every later call is sent with credentials. Non-2xx responses are raised
as :class:`ApiError`.
"""

from typing import Any, Optional

import httpx

from todo_app.config import get_settings
from todo_app.logger import logger


class ApiError(Exception):
    """An error response from the API.

    ``field_errors`` maps field names to messages for validation failures
    and is empty otherwise.
    """

    def __init__(self, status_code: int, message: str, field_errors: Optional[dict[str, str]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.field_errors = field_errors or {}

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        detail = body.get("detail") or response.reason_phrase or "Request failed"
        field_errors = {
            error["field"]: error["message"]
            for error in body.get("errors", [])
            if isinstance(error, dict) and "field" in error and "message" in error
        }
        return cls(response.status_code, str(detail), field_errors)


class TodoApiClient:
    """Async client for the task and auth endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        if client is None:
            client = httpx.AsyncClient(
                base_url=(base_url or settings.api_base_url).rstrip("/"),
                timeout=timeout if timeout is not None else settings.client_timeout,
            )
        self._client = client

    async def __aenter__(self) -> "TodoApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    @property
    def has_session(self) -> bool:
        return get_settings().session_cookie_name in self._client.cookies

    async def _request(self, method: str, path: str, *, json: Optional[dict[str, Any]] = None,
                       params: Optional[dict[str, Any]] = None) -> httpx.Response:
        response = await self._client.request(method, path, json=json, params=params)
        if response.is_error:
            error = ApiError.from_response(response)
            logger.debug(f"{method} {path} failed with {error.status_code}: {error.message}")
            raise error
        return response

    # Auth
    async def register(self, username: str, password: str) -> dict:
        response = await self._request("POST", "/register", json={"username": username, "password": password})
        return response.json()

    async def login(self, username: str, password: str) -> dict:
        response = await self._request("POST", "/login", json={"username": username, "password": password})
        return response.json()

    async def logout(self) -> dict:
        response = await self._request("POST", "/logout")
        # The server expires the cookie too; drop it locally either way
        self._client.cookies.clear()
        return response.json()

    async def me(self) -> dict:
        response = await self._request("GET", "/me")
        return response.json()

    # Tasks
    async def list_tasks(self, ordering: Optional[str] = None, completed: Optional[bool] = None) -> list[dict]:
        params: dict[str, Any] = {}
        if ordering:
            params["ordering"] = ordering
        if completed is not None:
            params["completed"] = str(completed).lower()
        response = await self._request("GET", "/tasks", params=params or None)
        return response.json()

    async def get_task(self, task_id: int) -> dict:
        response = await self._request("GET", f"/tasks/{task_id}")
        return response.json()

    async def create_task(self, title: str, completed: bool = False) -> dict:
        response = await self._request("POST", "/tasks", json={"title": title, "completed": completed})
        return response.json()

    async def replace_task(self, task_id: int, title: str, completed: bool) -> dict:
        response = await self._request("PUT", f"/tasks/{task_id}", json={"title": title, "completed": completed})
        return response.json()

    async def update_task(self, task_id: int, **fields: Any) -> dict:
        response = await self._request("PATCH", f"/tasks/{task_id}", json=fields)
        return response.json()

    async def delete_task(self, task_id: int) -> None:
        await self._request("DELETE", f"/tasks/{task_id}")
