# src/vibe_agent/core/state.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .events import EventBus
from .ports import TaskActor, TaskRepo

if TYPE_CHECKING:
    from ..tasks.task_scheduler import TaskExecutor


@dataclass
class Session:
    """
    Everything one orchestration session needs, passed explicitly instead of living in globals.

    Created on session start (cli/bootstrap.py), disposed on session end.
    """

    settings: Any
    store: TaskRepo
    registry: TaskActor
    events: EventBus = field(default_factory=EventBus)

    board_id: str | None = None
    executor: TaskExecutor | None = None
    query_input: str = ""

    # Background execution started by restart_agent().
    background_run: asyncio.Task[Any] | None = None
