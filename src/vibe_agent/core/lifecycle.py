# src/vibe_agent/core/lifecycle.py

from __future__ import annotations

"""
Session-level operations: create a board, submit a query, start/stop/restart execution,
delete the session. Everything goes through the Session passed in; no module state.
"""

import asyncio
import logging
import time

from ..errors import IntegrityError
from ..tasks.task_models import DEFAULT_ENABLED_ACTORS, ActorType, Board, Task, TaskPriority, TaskSpec, TaskStatus
from ..tasks.task_scheduler import DependencyPolicy, ExecutionReport, StopReason, TaskExecutor
from ..tasks.visibility import await_visible
from .events import EventType
from .state import Session

logger = logging.getLogger(__name__)

STOPPED_BY_USER = "Execution manually stopped by user"
RESTARTED_BY_USER = "Agent restarted by user"


class LifecycleController:
    def __init__(self, session: Session) -> None:
        self.session = session

    # ---- helpers ----

    @property
    def _store(self):
        return self.session.store

    def _require_board(self) -> Board:
        board_id = self.session.board_id
        if not board_id:
            raise IntegrityError("No board exists for this session")
        board = self._store.get_board(board_id)
        if board is None:
            raise IntegrityError(f"Board {board_id} not found", board_id=board_id)
        return board

    def _enabled_actors(self) -> list[str]:
        enabled = [a.value for a in DEFAULT_ENABLED_ACTORS]
        list_custom = getattr(self._store, "list_custom_actors", None)
        if list_custom is not None and list_custom():
            enabled.append(ActorType.CUSTOM.value)
        return enabled

    async def _seed_baseline(self, board_id: str, query: str) -> list[Task]:
        """Create the Composer + Planner pair and return them once both are readable."""
        settings = self.session.settings
        specs = [
            TaskSpec(
                title="Compose workflow",
                description=query,
                actor_type=ActorType.COMPOSER,
                priority=TaskPriority.HIGH,
                metadata={"enabled_actors": self._enabled_actors(), "baseline": True},
            ),
            TaskSpec(
                title="Create execution plan",
                description=query,
                actor_type=ActorType.PLANNER,
                priority=TaskPriority.HIGH,
                metadata={"baseline": True},
            ),
        ]
        ids = [self._store.create_task(board_id, spec) for spec in specs]

        tasks: list[Task] = []
        for task_id in ids:
            task = await await_visible(
                lambda task_id=task_id: self._store.get_task_from_board(board_id, task_id),
                max_attempts=int(getattr(settings, "visibility_attempts", 2)),
                delay_seconds=float(getattr(settings, "visibility_delay_seconds", 0.1)),
                what=f"task {task_id}",
            )
            if task.board_id != board_id:
                logger.warning("Task %s has board id %s, correcting to %s", task_id, task.board_id, board_id)
                self._store.update_task(board_id, task_id, board_id=board_id)
                task.board_id = board_id
            tasks.append(task)
            self.session.events.emit(
                EventType.TASK_CREATED,
                board_id,
                task_id=task.id,
                actor_type=task.actor_type.value,
            )

        await asyncio.wrap_future(self._store.save())
        logger.info("Baseline tasks seeded board=%s ids=%s", board_id, [t.id for t in tasks])
        return tasks

    async def _run_execution(self, board_id: str) -> ExecutionReport:
        current = self.session.executor
        if current is not None and current.running and not current.disposed:
            raise RuntimeError(f"Execution is already running for board {board_id}")

        settings = self.session.settings
        executor = TaskExecutor(
            board_id,
            self._store,
            self.session.registry,
            self.session.events,
            max_concurrency=int(getattr(settings, "max_concurrency", 3)),
            dependency_policy=DependencyPolicy.parse(getattr(settings, "failed_dependency_policy", "fail")),
        )
        self.session.executor = executor
        return await executor.run()

    def _start_background(self, board_id: str) -> asyncio.Task[ExecutionReport]:
        job = asyncio.create_task(self._run_execution(board_id), name=f"vibe-run-{board_id}")
        job.add_done_callback(self._background_done)
        self.session.background_run = job
        return job

    @staticmethod
    def _background_done(job: asyncio.Task[ExecutionReport]) -> None:
        if job.cancelled():
            return
        exc = job.exception()
        if exc is not None:
            logger.error("Background execution failed: %s", exc)

    # ---- operations ----

    async def create_new_vibe_agent(self, query: str | None = None, jupyter_config: dict | None = None) -> str:
        """Return the session's board id, creating the board only if there is none yet."""
        board_id = self.session.board_id
        if board_id and self._store.get_board(board_id) is not None:
            return board_id

        title = query if query is not None else self.session.query_input
        board = self._store.create_board(title, jupyter_config)
        self.session.board_id = board.id
        self.session.executor = None
        self.session.events.emit(EventType.BOARD_CREATED, board.id, title=board.title)
        return board.id

    async def submit_query(self, text: str | None = None) -> ExecutionReport:
        """Seed the baseline pair for a query and run execution to fixpoint."""
        query = (text if text is not None else self.session.query_input or "").strip()
        if not query:
            raise ValueError("Query must not be empty")
        board = self._require_board()

        await self._seed_baseline(board.id, query)
        # Cleared only once the tasks exist.
        self.session.query_input = ""
        return await self._run_execution(board.id)

    async def manually_start_execution(self) -> ExecutionReport:
        board = self._require_board()
        if not board.tasks:
            logger.info("Board %s has no tasks; nothing to execute", board.id)
            return ExecutionReport(board_id=board.id, reason=StopReason.EMPTY, finished_at=time.time())
        return await self._run_execution(board.id)

    def stop_execution(self) -> int:
        """
        Fail every in_progress task and dispose the executor.

        Returns the number of tasks stopped; 0 means nothing was running.
        """
        board = self._require_board()
        running = [t for t in board.tasks if t.status == TaskStatus.IN_PROGRESS]
        if not running:
            logger.info("Stop requested for board %s: nothing running", board.id)
            return 0

        if self.session.executor is not None:
            self.session.executor.dispose()

        stopped = 0
        now = time.time()
        for t in running:
            ok = self._store.update_task(
                board.id,
                t.id,
                expected=[TaskStatus.IN_PROGRESS],
                status=TaskStatus.FAILED,
                error=STOPPED_BY_USER,
                completed_at=now,
            )
            if ok:
                stopped += 1
                self.session.events.emit(
                    EventType.TASK_STATUS_CHANGED,
                    board.id,
                    task_id=t.id,
                    status=TaskStatus.FAILED.value,
                    error=STOPPED_BY_USER,
                )
        logger.info("Stopped %d task(s) on board %s", stopped, board.id)
        return stopped

    async def restart_agent(self) -> list[Task]:
        """
        Fail every existing task, seed a fresh baseline pair from the board title and start
        execution in the background. Returns the new tasks; wait_idle() awaits the run.
        """
        board = self._require_board()
        if self.session.executor is not None:
            self.session.executor.dispose()

        now = time.time()
        for t in board.tasks:
            changed = self._store.update_task(
                board.id,
                t.id,
                status=TaskStatus.FAILED,
                error=RESTARTED_BY_USER,
                completed_at=now,
            )
            if changed:
                self.session.events.emit(
                    EventType.TASK_STATUS_CHANGED,
                    board.id,
                    task_id=t.id,
                    status=TaskStatus.FAILED.value,
                    error=RESTARTED_BY_USER,
                )
        logger.info("Restart: failed %d existing task(s) on board %s", len(board.tasks), board.id)

        tasks = await self._seed_baseline(board.id, board.title)
        self._start_background(board.id)
        return tasks

    async def wait_idle(self) -> ExecutionReport | None:
        job = self.session.background_run
        if job is None:
            return None
        return await job

    async def delete_agent(self) -> bool:
        if self.session.executor is not None:
            self.session.executor.dispose()

        board_id = self.session.board_id
        deleted = False
        if board_id:
            deleted = self._store.delete_board(board_id)
            self.session.events.emit(EventType.BOARD_DELETED, board_id)

        self.session.board_id = None
        self.session.executor = None
        self.session.query_input = ""
        return deleted

    def list_tasks(self) -> list[Task]:
        board_id = self.session.board_id
        if not board_id:
            return []
        board = self._store.get_board(board_id)
        return list(board.tasks) if board is not None else []
