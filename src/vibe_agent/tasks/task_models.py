# src/vibe_agent/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    pending -> in_progress -> completed | failed

    completed/failed are terminal under normal flow; only stop (in_progress -> failed)
    and restart (any -> failed) move a task out of band.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


class ActorType(StrEnum):
    COMPOSER = "composer"
    PLANNER = "planner"
    RESEARCHER = "researcher"
    ANALYST = "analyst"
    CODER = "coder"
    WRITER = "writer"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, raw: str | None) -> ActorType | None:
        if not raw:
            return None
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return None


# Actor types a Composer may spawn unless the task says otherwise.
DEFAULT_ENABLED_ACTORS: tuple[ActorType, ...] = (
    ActorType.COMPOSER,
    ActorType.PLANNER,
    ActorType.RESEARCHER,
    ActorType.ANALYST,
    ActorType.CODER,
    ActorType.WRITER,
)


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Lower rank dispatches first."""
        return _PRIORITY_RANK[self]

    @classmethod
    def parse(cls, raw: str | None) -> TaskPriority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.MEDIUM


_PRIORITY_RANK = {
    TaskPriority.CRITICAL: 0,
    TaskPriority.HIGH: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 3,
}


@dataclass(slots=True)
class TaskSpec:
    """Caller-provided fields of a new task (status/timestamps are store-owned; id only when pre-allocated)."""

    title: str
    description: str
    actor_type: ActorType
    dependencies: list[str] = field(default_factory=list)
    priority: TaskPriority = TaskPriority.MEDIUM
    metadata: dict[str, Any] = field(default_factory=dict)
    custom_actor_id: str | None = None
    id: str | None = None


@dataclass(slots=True)
class Task:
    id: str
    board_id: str
    title: str
    description: str
    actor_type: ActorType
    status: TaskStatus
    dependencies: list[str]
    priority: TaskPriority
    metadata: dict[str, Any]
    created_at: float
    updated_at: float

    custom_actor_id: str | None = None
    result: Any = None
    error: str | None = None
    started_at: float | None = None
    completed_at: float | None = None


@dataclass(slots=True)
class Board:
    id: str
    title: str
    created_at: float
    updated_at: float
    tasks: list[Task] = field(default_factory=list)
    jupyter_config: dict[str, Any] | None = None

    def task_by_id(self, task_id: str) -> Task | None:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None
