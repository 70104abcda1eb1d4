from todo_app.client.api import ApiError, TodoApiClient
from todo_app.client.undo import DeletedTask, UndoBuffer
from todo_app.client.views import (
    LoginView,
    RegisterView,
    TaskFormView,
    TaskListView,
    ViewResult,
)

__all__ = [
    "ApiError",
    "TodoApiClient",
    "DeletedTask",
    "UndoBuffer",
    "LoginView",
    "RegisterView",
    "TaskFormView",
    "TaskListView",
    "ViewResult",
]
