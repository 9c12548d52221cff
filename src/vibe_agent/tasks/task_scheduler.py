# src/vibe_agent/tasks/task_scheduler.py

from __future__ import annotations

"""
Task executor.

A coordinating loop per board run that repeats a scheduling pass until fixpoint:
- reloads the board (stops cleanly if it was deleted),
- fails tasks that can never run (integrity problems, dependency cycles, failed dependencies
  under the "fail" policy),
- claims eligible tasks (pending -> in_progress, guarded in the store) up to the free slots,
- runs their actors concurrently and writes each outcome back for that task id only,
- creates the follow-up tasks a completed actor returned (composer plans), after its own
  completion was accepted.

Cancellation is cooperative: dispose() wakes the loop and makes it exit; actor calls that are
already in flight keep running, and their late results are discarded by the guarded write.
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from ..core.events import EventBus, EventType
from ..core.ports import TaskActor, TaskRepo
from ..errors import CycleDetectedError, PersistenceError
from .task_graph import blocked_by_failure, build_graph, eligible_tasks, find_cycles, find_integrity_issues
from .task_models import Board, Task, TaskSpec, TaskStatus

logger = logging.getLogger(__name__)


class DependencyPolicy(StrEnum):
    """What happens to a pending task when something in its dependency chain failed."""

    FAIL = "fail"  # fail it too, with "Dependency <id> failed"
    WAIT = "wait"  # leave it pending; the run still reaches a fixpoint

    @classmethod
    def parse(cls, raw: str | None) -> DependencyPolicy:
        try:
            return cls(str(raw or "").strip().lower())
        except ValueError:
            return cls.FAIL


class StopReason(StrEnum):
    IDLE = "idle"
    DISPOSED = "disposed"
    BOARD_DELETED = "board_deleted"
    EMPTY = "empty"


@dataclass(slots=True)
class ExecutionReport:
    board_id: str
    reason: StopReason = StopReason.IDLE
    passes: int = 0
    dispatched: int = 0
    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    discarded: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None


class TaskExecutor:
    def __init__(
        self,
        board_id: str,
        store: TaskRepo,
        registry: TaskActor,
        events: EventBus,
        *,
        max_concurrency: int = 3,
        dependency_policy: DependencyPolicy = DependencyPolicy.FAIL,
    ) -> None:
        self.board_id = board_id
        self._store = store
        self._registry = registry
        self._events = events
        self._max_concurrency = max(1, int(max_concurrency))
        self._policy = dependency_policy

        self._disposed = False
        self._running = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wake: asyncio.Event | None = None
        self._known_ids: set[str] = set()
        # In-flight actor runs left behind by dispose(); kept referenced until they finish.
        self._orphans: set[asyncio.Task[bool]] = set()

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def running(self) -> bool:
        return self._running

    def dispose(self) -> None:
        """Stop scheduling. Safe to call from any thread, before, during or after run()."""
        if self._disposed:
            return
        self._disposed = True
        logger.info("Executor disposed board=%s", self.board_id)
        if self._loop is not None and self._wake is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._wake.set)

    async def run(self) -> ExecutionReport:
        if self._running:
            raise RuntimeError(f"Executor for board {self.board_id} is already running")
        self._running = True
        self._loop = asyncio.get_running_loop()
        self._wake = asyncio.Event()

        report = ExecutionReport(board_id=self.board_id)
        inflight: dict[asyncio.Task[bool], str] = {}

        self._events.emit(EventType.EXECUTION_STARTED, self.board_id)
        logger.info(
            "Execution started board=%s max_concurrency=%s policy=%s",
            self.board_id,
            self._max_concurrency,
            self._policy.value,
        )

        try:
            while True:
                if self._disposed:
                    report.reason = StopReason.DISPOSED
                    break

                board = self._store.get_board(self.board_id)
                if board is None:
                    logger.info("Board %s no longer exists; stopping", self.board_id)
                    report.reason = StopReason.BOARD_DELETED
                    break

                report.passes += 1
                self._note_new_tasks(board)

                if self._fail_unrunnable(board, report):
                    # Failures can unblock or doom other tasks; re-read before dispatching.
                    continue

                running_ids = set(inflight.values())
                free = self._max_concurrency - len(inflight)
                for task in eligible_tasks(board.tasks):
                    if free <= 0:
                        break
                    if task.id in running_ids:
                        continue
                    if not self._store.try_claim_task(self.board_id, task.id):
                        logger.debug("Task %s was claimed elsewhere; skipping", task.id)
                        continue
                    self._status_event(task.id, TaskStatus.IN_PROGRESS)
                    job = asyncio.create_task(self._run_one(task, report), name=f"vibe-task-{task.id}")
                    inflight[job] = task.id
                    report.dispatched += 1
                    free -= 1

                if not inflight:
                    report.reason = StopReason.IDLE
                    break

                waker = asyncio.create_task(self._wake.wait())
                try:
                    done, _ = await asyncio.wait([*inflight, waker], return_when=asyncio.FIRST_COMPLETED)
                finally:
                    if not waker.done():
                        waker.cancel()
                self._wake.clear()

                for job in done:
                    if job is waker:
                        continue
                    inflight.pop(job, None)
                    # Re-raises PersistenceError from the completion write.
                    job.result()

        except PersistenceError as e:
            logger.error("Execution aborted board=%s: %s", self.board_id, e.message)
            self._events.emit(
                EventType.PERSISTENCE_ERROR,
                self.board_id,
                operation=e.operation,
                message=e.message,
            )
            raise

        finally:
            for job in inflight:
                self._orphans.add(job)
                job.add_done_callback(self._orphan_done)
            self._running = False
            report.finished_at = time.time()
            self._events.emit(
                EventType.EXECUTION_STOPPED,
                self.board_id,
                reason=report.reason.value,
                completed=len(report.completed),
                failed=len(report.failed),
            )
            logger.info(
                "Execution finished board=%s reason=%s passes=%s dispatched=%s completed=%s failed=%s",
                self.board_id,
                report.reason.value,
                report.passes,
                report.dispatched,
                len(report.completed),
                len(report.failed),
            )

        return report

    # ---- pass helpers ----

    def _note_new_tasks(self, board: Board) -> None:
        for t in board.tasks:
            if t.id in self._known_ids:
                continue
            self._known_ids.add(t.id)
            if t.metadata.get("spawned_by"):
                self._events.emit(
                    EventType.TASK_CREATED,
                    board.id,
                    task_id=t.id,
                    actor_type=t.actor_type.value,
                    spawned_by=t.metadata["spawned_by"],
                )

    def _fail_pending(self, task_id: str, error: str, report: ExecutionReport) -> bool:
        ok = self._store.update_task(
            self.board_id,
            task_id,
            expected=[TaskStatus.PENDING],
            status=TaskStatus.FAILED,
            error=error,
            completed_at=time.time(),
        )
        if ok:
            report.failed.append(task_id)
            self._status_event(task_id, TaskStatus.FAILED, error=error)
        return ok

    def _fail_unrunnable(self, board: Board, report: ExecutionReport) -> bool:
        """Fail every pending task that can never run. Returns True if anything changed."""
        changed = False

        issues = find_integrity_issues(board.id, board.tasks)
        for issue in issues:
            changed |= self._fail_pending(issue.task_id, f"IntegrityError: {issue.reason}", report)
        if issues:
            self._events.emit(
                EventType.BOARD_WARNING,
                board.id,
                kind="integrity",
                task_ids=[i.task_id for i in issues],
                message="; ".join(f"{i.task_id}: {i.reason}" for i in issues),
            )
            logger.warning("Board %s integrity problems: %s", board.id, [i.task_id for i in issues])

        # Cycle members can never become eligible; failing them prevents a livelock.
        pending = [t for t in board.tasks if t.status == TaskStatus.PENDING and t.id not in {i.task_id for i in issues}]
        for component in find_cycles(build_graph(pending)):
            err = CycleDetectedError(component)
            for task_id in component:
                changed |= self._fail_pending(task_id, f"CycleDetectedError: {err.message}", report)
            self._events.emit(
                EventType.BOARD_WARNING,
                board.id,
                kind="cycle",
                task_ids=list(component),
                message=err.message,
            )
            logger.warning("Board %s: %s", board.id, err.message)

        if changed:
            return True

        if self._policy == DependencyPolicy.FAIL:
            for task_id, failed_id in blocked_by_failure(board.tasks).items():
                changed |= self._fail_pending(task_id, f"Dependency {failed_id} failed", report)

        return changed

    def _status_event(self, task_id: str, status: TaskStatus, *, error: str | None = None) -> None:
        self._events.emit(
            EventType.TASK_STATUS_CHANGED,
            self.board_id,
            task_id=task_id,
            status=status.value,
            error=error,
        )

    async def _run_one(self, task: Task, report: ExecutionReport) -> bool:
        logger.info("Task %s (%s) -> in_progress", task.id, task.actor_type.value)
        result = await self._registry.execute(task)

        if result.ok:
            fields = {"status": TaskStatus.COMPLETED, "result": result.output, "error": None}
        else:
            fields = {"status": TaskStatus.FAILED, "error": result.error}

        # Only meaningful while still in_progress: a stop/restart/delete in the meantime wins.
        applied = self._store.update_task(
            self.board_id,
            task.id,
            expected=[TaskStatus.IN_PROGRESS],
            completed_at=time.time(),
            **fields,
        )
        if not applied:
            logger.info("Discarding late completion of task %s", task.id)
            report.discarded.append(task.id)
            return False

        status = fields["status"]
        if status == TaskStatus.COMPLETED:
            report.completed.append(task.id)
            logger.info("Task %s -> completed", task.id)
        else:
            report.failed.append(task.id)
            logger.info("Task %s -> failed: %s", task.id, result.error)
        self._status_event(task.id, status, error=result.error)
        if status == TaskStatus.COMPLETED and result.spawn:
            await self._create_follow_ups(task, result.spawn)
        return True

    async def _create_follow_ups(self, task: Task, specs: Sequence[TaskSpec]) -> None:
        """Insert the tasks a completed actor asked for; they join the run on the next pass."""
        for spec in specs:
            self._store.create_task(self.board_id, spec)
        # Raises PersistenceError, which aborts the run like any other failed write.
        await asyncio.wrap_future(self._store.save())
        logger.info("Task %s spawned %d follow-up task(s)", task.id, len(specs))

    def _orphan_done(self, job: asyncio.Task[bool]) -> None:
        self._orphans.discard(job)
        if job.cancelled():
            return
        exc = job.exception()
        if exc is not None:
            logger.error("In-flight task finished with an error after the run ended: %s", exc)
