"""Headless client views.

Each view performs at most one network call per user action and reports the
outcome as a :class:`ViewResult`. On failure the view's rendered state is
left untouched.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from pydantic import ValidationError

from todo_app import schemas
from todo_app.client.api import ApiError, TodoApiClient
from todo_app.client.undo import UndoBuffer
from todo_app.logger import logger

LIST_ROUTE = "/"
LOGIN_ROUTE = "/login"
REGISTER_ROUTE = "/register"


@dataclass
class ViewResult:
    ok: bool
    redirect: Optional[str] = None
    message: Optional[str] = None
    errors: dict[str, str] = field(default_factory=dict)

    @classmethod
    def failure(cls, error: ApiError) -> "ViewResult":
        redirect = LOGIN_ROUTE if error.is_auth_error else None
        return cls(ok=False, redirect=redirect, message=error.message, errors=dict(error.field_errors))


def validation_errors(exc: ValidationError) -> dict[str, str]:
    errors = {}
    for error in exc.errors():
        name = ".".join(str(part) for part in error["loc"]) or "non_field_errors"
        errors.setdefault(name, error["msg"])
    return errors


class TaskListView:
    def __init__(self, api: TodoApiClient, undo: Optional[UndoBuffer] = None, ordering: str = "-created_at"):
        self.api = api
        self.undo_buffer = undo if undo is not None else UndoBuffer()
        self.ordering = ordering
        self.tasks: list[dict] = []
        self.error: Optional[str] = None

    async def load(self) -> ViewResult:
        try:
            tasks = await self.api.list_tasks(ordering=self.ordering)
        except ApiError as e:
            self.error = e.message
            return ViewResult.failure(e)
        self.tasks = tasks
        self.error = None
        return ViewResult(ok=True)

    def find(self, task_id: int) -> Optional[dict]:
        return next((task for task in self.tasks if task["id"] == task_id), None)

    async def delete(self, task_id: int) -> ViewResult:
        task = self.find(task_id)
        if task is None:
            return ViewResult(ok=False, message=f"Task with ID {task_id} not found")

        # Copy before the call; the server deletion is permanent
        self.undo_buffer.remember(task)
        try:
            await self.api.delete_task(task_id)
        except ApiError as e:
            self.undo_buffer.clear()
            self.error = e.message
            return ViewResult.failure(e)
        self.tasks = [t for t in self.tasks if t["id"] != task_id]
        return ViewResult(ok=True, message=f"Deleted \"{task['title']}\"")

    @property
    def can_undo(self) -> bool:
        return self.undo_buffer.available

    async def undo(self) -> ViewResult:
        """Re-create the last deleted task. The new task gets a new id."""
        held = self.undo_buffer.peek()
        if held is None:
            return ViewResult(ok=False, message="Nothing to undo")
        try:
            task = await self.api.create_task(held.title, held.completed)
        except ApiError as e:
            self.error = e.message
            return ViewResult.failure(e)
        # Only consumed once the task exists again, so a failed undo can be retried
        self.undo_buffer.clear()
        logger.debug(f"Restored deleted task as ID {task['id']}")
        self.tasks = self._ordered(self.tasks + [task])
        return ViewResult(ok=True, message=f"Restored \"{task['title']}\"")

    async def toggle(self, task_id: int) -> ViewResult:
        task = self.find(task_id)
        if task is None:
            return ViewResult(ok=False, message=f"Task with ID {task_id} not found")
        try:
            updated = await self.api.replace_task(task_id, task["title"], not task["completed"])
        except ApiError as e:
            self.error = e.message
            return ViewResult.failure(e)
        self.tasks = [updated if t["id"] == task_id else t for t in self.tasks]
        return ViewResult(ok=True)

    def leave(self) -> None:
        """Navigating away from the list drops any pending undo"""
        self.undo_buffer.clear()

    def _ordered(self, tasks: list[dict]) -> list[dict]:
        if self.ordering == "-created_at":
            return sorted(tasks, key=lambda t: (t["created_at"], t["id"]), reverse=True)
        if self.ordering == "created_at":
            return sorted(tasks, key=lambda t: (t["created_at"], t["id"]))
        return sorted(tasks, key=lambda t: t["id"])

    def render(self) -> str:
        lines = []
        if self.error:
            lines.append(f"! {self.error}")
        if not self.tasks:
            lines.append("No tasks yet.")
        for task in self.tasks:
            mark = "x" if task["completed"] else " "
            lines.append(f"[{mark}] {task['id']}: {task['title']}")
        held = self.undo_buffer.peek()
        if held is not None:
            lines.append(f"Deleted \"{held.title}\" (undo available)")
        return "\n".join(lines)


class TaskFormView:
    """Create form when ``task`` is None, edit form otherwise"""

    def __init__(self, api: TodoApiClient, task: Optional[dict] = None):
        self.api = api
        self.task = task
        self.errors: dict[str, str] = {}

    @property
    def is_edit(self) -> bool:
        return self.task is not None

    def initial(self) -> dict:
        if self.task is None:
            return {"title": "", "completed": False}
        return {"title": self.task["title"], "completed": self.task["completed"]}

    def validate(self, data: dict) -> Optional[schemas.TaskReplace]:
        try:
            return schemas.TaskReplace(
                title=data.get("title") or "",
                completed=data.get("completed", False),
            )
        except ValidationError as e:
            self.errors = validation_errors(e)
            return None

    async def submit(self, data: dict) -> ViewResult:
        cleaned = self.validate(data)
        if cleaned is None:
            return ViewResult(ok=False, errors=dict(self.errors))
        try:
            if self.is_edit:
                saved = await self.api.replace_task(self.task["id"], cleaned.title, cleaned.completed)
            else:
                saved = await self.api.create_task(cleaned.title, cleaned.completed)
        except ApiError as e:
            self.errors = dict(e.field_errors)
            return ViewResult.failure(e)
        self.errors = {}
        self.task = saved
        return ViewResult(ok=True, redirect=LIST_ROUTE)


class _CredentialsForm(ABC):
    success_route = LIST_ROUTE

    def __init__(self, api: TodoApiClient):
        self.api = api
        self.errors: dict[str, str] = {}

    def validate(self, data: dict) -> Optional[schemas.UserCredentials]:
        try:
            return schemas.UserCredentials(
                username=data.get("username") or "",
                password=data.get("password") or "",
            )
        except ValidationError as e:
            self.errors = validation_errors(e)
            return None

    @abstractmethod
    async def _call(self, credentials: schemas.UserCredentials) -> dict:
        """Perform the form's single API call"""

    async def submit(self, data: dict) -> ViewResult:
        credentials = self.validate(data)
        if credentials is None:
            return ViewResult(ok=False, errors=dict(self.errors))
        try:
            body = await self._call(credentials)
        except ApiError as e:
            self.errors = dict(e.field_errors)
            # A failed login is never an auth redirect; stay on the form
            return ViewResult(ok=False, message=e.message, errors=dict(e.field_errors))
        self.errors = {}
        return ViewResult(ok=True, redirect=self.success_route, message=body.get("message"))


class LoginView(_CredentialsForm):
    success_route = LIST_ROUTE

    async def _call(self, credentials: schemas.UserCredentials) -> dict:
        return await self.api.login(credentials.username, credentials.password)


class RegisterView(_CredentialsForm):
    success_route = LOGIN_ROUTE

    async def _call(self, credentials: schemas.UserCredentials) -> dict:
        return await self.api.register(credentials.username, credentials.password)
