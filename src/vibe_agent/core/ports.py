# src/vibe_agent/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the store and model providers swappable and makes testing easier.
"""

from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

from ..actors.actor_models import ActorConfig, ActorResult, CustomActor
from ..tasks.task_models import ActorType, Board, Task, TaskSpec, TaskStatus


@dataclass(slots=True, frozen=True)
class ModelRequest:
    prompt: str
    max_tokens: int
    temperature: float
    model: str | None = None
    system_prompt: str | None = None


@dataclass(slots=True, frozen=True)
class Credentials:
    api_key: str | None
    base_url: str | None = None


class ModelInvoker(Protocol):
    """
    Model-invocation boundary: text in, text out.

    Raises ModelInvocationError on any failure (missing credentials, provider error, timeout).
    Blocking; callers run it in a worker thread.
    """

    def invoke(self, provider_id: str, credentials: Credentials, request: ModelRequest) -> str: ...


class TaskRepo(Protocol):
    # Boards
    def create_board(self, query: str, jupyter_config: dict[str, Any] | None = None) -> Board: ...
    def get_board(self, board_id: str) -> Board | None: ...
    def delete_board(self, board_id: str) -> bool: ...

    # Tasks
    def create_task(self, board_id: str, spec: TaskSpec) -> str: ...
    def get_task_from_board(self, board_id: str, task_id: str) -> Task | None: ...
    def update_task(
            self,
            board_id: str,
            task_id: str,
            /,
            *,
            expected: Iterable[TaskStatus] | None = None,
            **fields: Any,
    ) -> bool: ...
    def try_claim_task(self, board_id: str, task_id: str) -> bool: ...
    def save(self) -> Future[None]: ...

    # Actor configuration
    def get_actor_config(self, actor_type: ActorType) -> ActorConfig: ...
    def get_custom_actor(self, actor_id: str) -> CustomActor | None: ...
    def update_custom_actor(
            self,
            actor_id: str,
            *,
            name: str | None = None,
            description: str | None = None,
            config: dict[str, Any] | None = None,
    ) -> bool: ...


class TaskActor(Protocol):
    """What the executor needs from the actor registry."""

    async def execute(self, task: Task) -> ActorResult: ...
