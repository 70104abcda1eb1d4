import time
from dataclasses import dataclass
from typing import Callable, Optional

from todo_app.config import get_settings


@dataclass(frozen=True)
class DeletedTask:
    """Displayable fields of a deleted task. The id is deliberately not kept."""
    title: str
    completed: bool
    deleted_at: float


class UndoBuffer:
    """Holds the most recently deleted task for a single undo.

    The held task is dropped when another task is deleted, when it is
    taken for undo, when ``ttl_seconds`` have passed, or on ``clear()``.
    Nothing is persisted.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else get_settings().undo_ttl_seconds
        self._clock = clock
        self._held: Optional[DeletedTask] = None

    def remember(self, task: dict) -> DeletedTask:
        self._held = DeletedTask(
            title=task["title"],
            completed=bool(task.get("completed", False)),
            deleted_at=self._clock(),
        )
        return self._held

    def peek(self) -> Optional[DeletedTask]:
        if self._held is not None and self._clock() - self._held.deleted_at > self.ttl_seconds:
            self._held = None
        return self._held

    def take(self) -> Optional[DeletedTask]:
        held = self.peek()
        self._held = None
        return held

    def clear(self) -> None:
        self._held = None

    @property
    def available(self) -> bool:
        return self.peek() is not None
