# tests/conftest.py

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from types import SimpleNamespace

import pytest

from vibe_agent.actors.registry import ActorRegistry
from vibe_agent.core.events import EventBus
from vibe_agent.core.lifecycle import LifecycleController
from vibe_agent.core.state import Session
from vibe_agent.tasks.task_store import TaskStore

from .fakes import FakeInvoker


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with Session and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="vibe-test",
        data_dir=tmp_path,
        db_path=tmp_path / "vibe.sqlite3",
        provider_id="openrouter",
        api_key="test-key",
        base_url="",
        llm_models=["test/model"],
        extra_headers={},
        llm_connect_timeout_seconds=1.0,
        llm_read_timeout_seconds=1.0,
        max_concurrency=3,
        failed_dependency_policy="fail",
        visibility_attempts=2,
        visibility_delay_seconds=0.01,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> Iterator[TaskStore]:
    """
    NOTE: We keep a real SQLite store here because its consistency model
    (queued inserts, guarded writes) is part of what we want to test.
    """
    s = TaskStore(settings.db_path)
    yield s
    s.close()


@pytest.fixture()
def invoker() -> FakeInvoker:
    return FakeInvoker()


@pytest.fixture()
def events() -> EventBus:
    return EventBus()


@pytest.fixture()
def session(settings: SimpleNamespace, store: TaskStore, invoker: FakeInvoker, events: EventBus) -> Session:
    return Session(
        settings=settings,
        store=store,
        registry=ActorRegistry(store, invoker, settings),
        events=events,
    )


@pytest.fixture()
def controller(session: Session) -> LifecycleController:
    return LifecycleController(session)
