# src/vibe_agent/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into a Session (store/invoker/actors/events),
- runs the asyncio loop that owns execution in a background thread.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Coroutine
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, TypeVar

from ..actors.registry import ActorRegistry
from ..config import get_settings
from ..core.events import EventBus
from ..core.lifecycle import LifecycleController
from ..core.ports import ModelInvoker
from ..core.state import Session
from ..errors import ConfigurationError
from ..llm.client import PROVIDER_BASE_URLS, OpenAICompatibleInvoker
from ..llm.offline import OfflineInvoker
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def create_session(*, settings=None, invoker: ModelInvoker | None = None) -> Session:
    """
    Build a Session from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    provider_id = str(getattr(settings, "provider_id", "openrouter"))
    if provider_id not in PROVIDER_BASE_URLS and not getattr(settings, "base_url", ""):
        raise ConfigurationError("VIBE_PROVIDER_ID", f"unknown provider {provider_id!r} and no VIBE_BASE_URL set")

    _ensure_local_dirs(settings)

    if invoker is None:
        if getattr(settings, "api_key", None):
            invoker = OpenAICompatibleInvoker(settings)
        else:
            # Demos / local runs without external services.
            logger.info("No API key configured; using the offline model invoker.")
            invoker = OfflineInvoker()

    store = TaskStore(settings.db_path)
    return Session(
        settings=settings,
        store=store,
        registry=ActorRegistry(store, invoker, settings),
        events=EventBus(),
    )


@dataclass
class AppRuntime:
    """A Session plus the event loop (in its own thread) that runs every lifecycle operation."""

    session: Session
    controller: LifecycleController
    loop: asyncio.AbstractEventLoop
    thread: threading.Thread
    pending: set[Future[Any]] = field(default_factory=set)

    def submit(self, coro: Coroutine[Any, Any, T]) -> Future[T]:
        """Schedule a coroutine on the loop thread without waiting for it."""
        fut = asyncio.run_coroutine_threadsafe(coro, self.loop)
        self.pending.add(fut)
        fut.add_done_callback(self.pending.discard)
        return fut

    def run(self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
        """Run a coroutine on the loop thread and wait for its result."""
        return self.submit(coro).result(timeout)

    def busy(self) -> bool:
        return any(not f.done() for f in self.pending)

    def close(self, timeout: float = 10.0) -> None:
        executor = self.session.executor
        if executor is not None:
            executor.dispose()
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout=timeout)
        close_store = getattr(self.session.store, "close", None)
        if callable(close_store):
            close_store()


def start_runtime(session: Session) -> AppRuntime:
    loop = asyncio.new_event_loop()

    def _run() -> None:
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        finally:
            loop.close()

    thread = threading.Thread(target=_run, name="vibe-loop", daemon=True)
    thread.start()
    return AppRuntime(
        session=session,
        controller=LifecycleController(session),
        loop=loop,
        thread=thread,
    )
