# src/vibe_agent/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import threading
import time
import uuid
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, TypeVar

from ..actors.actor_models import ActorConfig, CustomActor
from ..actors.defaults import default_actor_config
from ..errors import IntegrityError, PersistenceError
from .task_models import ActorType, Board, Task, TaskPriority, TaskSpec, TaskStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Columns update_task() may touch. Everything else is store-owned.
_UPDATABLE_FIELDS = frozenset(
    {
        "board_id",
        "title",
        "description",
        "actor_type",
        "custom_actor_id",
        "status",
        "dependencies",
        "priority",
        "metadata",
        "result",
        "error",
        "started_at",
        "completed_at",
    }
)
_JSON_FIELDS = frozenset({"dependencies", "metadata", "result"})


def _custom_actor_base() -> ActorConfig:
    """Custom actors start without instructions: their prompt is synthesised from name + description."""
    base = default_actor_config(ActorType.CUSTOM)
    base.instructions = ""
    return base


class TaskStore:
    """
    SQLite board/task store.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Consistency model:
    - every mutation runs on a single writer thread, so writes are serialized
      (no two updates race on the same field)
    - create_task() only *queues* the insert and returns the new id immediately;
      a read issued right after may not see the row yet (see visibility.await_visible)
    - update_task() writes only the given columns (per-field merge) and waits for
      every earlier queued write, so it never overtakes a pending insert
    - save() returns a Future that resolves once everything queued so far is applied

    Each method opens its own SQLite connection.
    """

    def __init__(self, db_path: str | Path = "vibe.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vibe-store-writer")
        self._errors_lock = threading.Lock()
        self._write_errors: list[BaseException] = []
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except PersistenceError:
            total = -1
        logger.info("TaskStore ready db=%s total_tasks=%s", self._db_path, total)

    def close(self) -> None:
        """Drain queued writes and stop the writer thread."""
        self._writer.shutdown(wait=True)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    @contextlib.contextmanager
    def _connection(self, operation: str) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise PersistenceError(operation, str(e)) from e
        try:
            yield conn
        except sqlite3.Error as e:
            raise PersistenceError(operation, str(e)) from e
        finally:
            conn.close()

    def _write(self, fn: Callable[..., T], *args: Any) -> T:
        """Run fn on the writer thread and wait for it (keeps FIFO order with queued inserts)."""
        try:
            return self._writer.submit(fn, *args).result()
        except RuntimeError as e:
            # Executor already shut down.
            raise PersistenceError(getattr(fn, "__name__", "write"), str(e)) from e

    def _ensure_schema(self) -> None:
        with self._connection("ensure_schema") as conn:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS boards (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    jupyter_config TEXT
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    board_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    actor_type TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    dependencies TEXT NOT NULL DEFAULT '[]',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    metadata TEXT NOT NULL DEFAULT '{}',
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            # Membership + insertion order. tasks.board_id is the record's own field and
            # may disagree with the owning board (it is corrected before execution).
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS board_tasks (
                    board_id TEXT NOT NULL,
                    task_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    PRIMARY KEY (board_id, task_id)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS custom_actors (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    config TEXT NOT NULL DEFAULT '{}',
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS actor_configs (
                    actor_type TEXT PRIMARY KEY,
                    config TEXT NOT NULL DEFAULT '{}',
                    updated_at REAL NOT NULL
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("custom_actor_id", "TEXT")
            add_col("result", "TEXT")
            add_col("error", "TEXT")
            add_col("started_at", "REAL")
            add_col("completed_at", "REAL")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_board_tasks_order ON board_tasks(board_id, position)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)")

            conn.commit()

    @staticmethod
    def _to_json(value: Any) -> str | None:
        if value is None:
            return None
        try:
            return json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError):
            logger.exception("Failed to JSON-encode value; storing its repr.")
            return json.dumps(repr(value), ensure_ascii=False)

    @staticmethod
    def _from_json(s: str | None, default: Any = None) -> Any:
        if s is None or s == "":
            return default
        try:
            return json.loads(s)
        except ValueError:
            return default

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        deps = self._from_json(row["dependencies"], [])
        meta = self._from_json(row["metadata"], {})
        return Task(
            id=str(row["id"]),
            board_id=str(row["board_id"]),
            title=str(row["title"] or ""),
            description=str(row["description"] or ""),
            actor_type=ActorType.parse(row["actor_type"]) or ActorType.CUSTOM,
            status=TaskStatus.from_db(row["status"]),
            dependencies=[str(d) for d in deps] if isinstance(deps, list) else [],
            priority=TaskPriority.parse(row["priority"]),
            metadata=meta if isinstance(meta, dict) else {},
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
            custom_actor_id=row["custom_actor_id"],
            result=self._from_json(row["result"]),
            error=row["error"],
            started_at=float(row["started_at"]) if row["started_at"] is not None else None,
            completed_at=float(row["completed_at"]) if row["completed_at"] is not None else None,
        )

    def _record_write_error(self, exc: BaseException) -> None:
        with self._errors_lock:
            self._write_errors.append(exc)

    def _drain_write_errors(self) -> list[BaseException]:
        with self._errors_lock:
            errs = list(self._write_errors)
            self._write_errors.clear()
        return errs

    # ---- boards ----

    def create_board(self, query: str, jupyter_config: dict[str, Any] | None = None) -> Board:
        title = (query or "").strip() or "New Vibe Session"
        now = time.time()
        board_id = uuid.uuid4().hex

        def _insert() -> None:
            with self._connection("create_board") as conn:
                conn.execute(
                    "INSERT INTO boards(id, title, created_at, updated_at, jupyter_config) VALUES (?, ?, ?, ?, ?)",
                    (board_id, title, now, now, self._to_json(jupyter_config)),
                )
                conn.commit()

        self._write(_insert)
        logger.info("Board created id=%s title=%r", board_id, title)
        return Board(
            id=board_id,
            title=title,
            created_at=now,
            updated_at=now,
            tasks=[],
            jupyter_config=jupyter_config,
        )

    def get_board(self, board_id: str) -> Board | None:
        if not board_id:
            return None
        with self._connection("get_board") as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM boards WHERE id = ?", (board_id,))
            row = cur.fetchone()
            if row is None:
                return None
            cur.execute(
                """
                SELECT t.*
                FROM board_tasks bt
                JOIN tasks t ON t.id = bt.task_id
                WHERE bt.board_id = ?
                ORDER BY bt.position ASC
                """,
                (board_id,),
            )
            tasks = [self._row_to_task(r) for r in cur.fetchall()]
            cfg = self._from_json(row["jupyter_config"])
            return Board(
                id=str(row["id"]),
                title=str(row["title"] or ""),
                created_at=float(row["created_at"] or 0.0),
                updated_at=float(row["updated_at"] or 0.0),
                tasks=tasks,
                jupyter_config=cfg if isinstance(cfg, dict) else None,
            )

    def list_boards(self) -> list[Board]:
        """Boards without their tasks, newest first."""
        with self._connection("list_boards") as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM boards ORDER BY created_at DESC")
            out: list[Board] = []
            for row in cur.fetchall():
                cfg = self._from_json(row["jupyter_config"])
                out.append(
                    Board(
                        id=str(row["id"]),
                        title=str(row["title"] or ""),
                        created_at=float(row["created_at"] or 0.0),
                        updated_at=float(row["updated_at"] or 0.0),
                        jupyter_config=cfg if isinstance(cfg, dict) else None,
                    )
                )
            return out

    def delete_board(self, board_id: str) -> bool:
        """Delete a board and every task under it. Safe while a scheduler run is in flight."""

        def _delete() -> bool:
            with self._connection("delete_board") as conn:
                cur = conn.cursor()
                cur.execute(
                    "DELETE FROM tasks WHERE id IN (SELECT task_id FROM board_tasks WHERE board_id = ?)",
                    (board_id,),
                )
                n_tasks = cur.rowcount
                cur.execute("DELETE FROM board_tasks WHERE board_id = ?", (board_id,))
                cur.execute("DELETE FROM boards WHERE id = ?", (board_id,))
                deleted = cur.rowcount == 1
                conn.commit()
                logger.info("Board deleted id=%s tasks=%s found=%s", board_id, n_tasks, deleted)
                return deleted

        return self._write(_delete)

    # ---- tasks ----

    def count_tasks(self) -> int:
        with self._connection("count_tasks") as conn:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM tasks")
            (n,) = cur.fetchone()
            return int(n)

    def create_task(self, board_id: str, spec: TaskSpec) -> str:
        """
        Allocate an id (unless the spec carries one) and queue the insert.

        Returns before the row is guaranteed to be readable. Raises IntegrityError if the
        board does not exist.
        """
        if not spec.title or not spec.title.strip():
            raise ValueError("title is required")
        if self.get_board_title(board_id) is None:
            raise IntegrityError(f"Board {board_id} not found", board_id=board_id)

        task_id = spec.id or uuid.uuid4().hex
        deps = [str(d) for d in spec.dependencies if d]

        now = time.time()
        row = (
            task_id,
            board_id,
            spec.title.strip(),
            (spec.description or "").strip(),
            spec.actor_type.value,
            spec.custom_actor_id,
            TaskStatus.PENDING.value,
            self._to_json(deps),
            spec.priority.value,
            self._to_json(dict(spec.metadata or {})),
            now,
            now,
        )

        def _insert() -> None:
            try:
                with self._connection("create_task") as conn:
                    cur = conn.cursor()
                    cur.execute(
                        """
                        INSERT INTO tasks(
                            id, board_id, title, description, actor_type, custom_actor_id,
                            status, dependencies, priority, metadata, created_at, updated_at
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        row,
                    )
                    cur.execute(
                        """
                        INSERT INTO board_tasks(board_id, task_id, position)
                        VALUES (?, ?, (SELECT COALESCE(MAX(position), -1) + 1 FROM board_tasks WHERE board_id = ?))
                        """,
                        (board_id, task_id, board_id),
                    )
                    cur.execute("UPDATE boards SET updated_at = ? WHERE id = ?", (now, board_id))
                    conn.commit()
            except PersistenceError as e:
                logger.exception("Queued insert failed task_id=%s board_id=%s", task_id, board_id)
                self._record_write_error(e)

        try:
            self._writer.submit(_insert)
        except RuntimeError as e:
            raise PersistenceError("create_task", str(e)) from e
        logger.debug(
            "Task queued id=%s board=%s actor=%s deps=%s",
            task_id,
            board_id,
            spec.actor_type.value,
            deps,
        )
        return task_id

    def get_board_title(self, board_id: str) -> str | None:
        with self._connection("get_board_title") as conn:
            cur = conn.cursor()
            cur.execute("SELECT title FROM boards WHERE id = ?", (board_id,))
            row = cur.fetchone()
            return str(row["title"]) if row else None

    def get_task_from_board(self, board_id: str, task_id: str) -> Task | None:
        """Read one task of a board. Returns None (never raises) when it is not visible."""
        with self._connection("get_task_from_board") as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT t.*
                FROM board_tasks bt
                JOIN tasks t ON t.id = bt.task_id
                WHERE bt.board_id = ? AND bt.task_id = ?
                """,
                (board_id, task_id),
            )
            row = cur.fetchone()
            return self._row_to_task(row) if row else None

    def update_task(
        self,
        board_id: str,
        task_id: str,
        /,
        *,
        expected: Iterable[TaskStatus] | None = None,
        **fields: Any,
    ) -> bool:
        """
        Per-field merge update.

        board_id and task_id are positional-only so `board_id=` can be passed as a field
        (used to correct a task whose own board id disagrees with its board).

        Only the given columns are written; updated_at is always bumped.
        With `expected`, the write applies only while the current status is one of them
        (claims and late completions use this so a stopped task is not overwritten).

        Returns True if a row was changed.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {sorted(unknown)}")
        if not fields:
            return False

        assignments: list[str] = []
        params: list[Any] = []
        for name, value in fields.items():
            if name in _JSON_FIELDS:
                value = self._to_json(value)
            elif hasattr(value, "value") and name in ("status", "priority", "actor_type"):
                value = value.value
            assignments.append(f"{name} = ?")
            params.append(value)

        now = time.time()
        assignments.append("updated_at = ?")
        params.append(now)

        where = "id = ? AND id IN (SELECT task_id FROM board_tasks WHERE board_id = ?)"
        params.extend([task_id, board_id])

        exp = [e.value for e in expected] if expected is not None else None
        if exp is not None:
            if not exp:
                return False
            where += f" AND status IN ({','.join('?' for _ in exp)})"
            params.extend(exp)

        sql = f"UPDATE tasks SET {', '.join(assignments)} WHERE {where}"

        def _update() -> bool:
            with self._connection("update_task") as conn:
                cur = conn.cursor()
                cur.execute(sql, params)
                changed = cur.rowcount == 1
                if changed:
                    cur.execute("UPDATE boards SET updated_at = ? WHERE id = ?", (now, board_id))
                conn.commit()
                return changed

        return self._write(_update)

    def try_claim_task(self, board_id: str, task_id: str) -> bool:
        """
        Atomically transition pending -> in_progress.

        Returns True if the row was claimed by this caller.
        """
        return self.update_task(
            board_id,
            task_id,
            expected=[TaskStatus.PENDING],
            status=TaskStatus.IN_PROGRESS,
            started_at=time.time(),
        )

    def save(self) -> Future[None]:
        """
        Barrier: resolves once every write queued before this call has been applied.

        Fails with PersistenceError if any queued insert since the last save() failed.
        """

        def _barrier() -> None:
            errs = self._drain_write_errors()
            if errs:
                raise PersistenceError("save", f"{len(errs)} queued write(s) failed: {errs[0]}")

        try:
            return self._writer.submit(_barrier)
        except RuntimeError as e:
            raise PersistenceError("save", str(e)) from e

    # ---- built-in actor configs ----

    def get_actor_config(self, actor_type: ActorType) -> ActorConfig:
        base = default_actor_config(actor_type)
        with self._connection("get_actor_config") as conn:
            cur = conn.cursor()
            cur.execute("SELECT config FROM actor_configs WHERE actor_type = ?", (actor_type.value,))
            row = cur.fetchone()
        if row is None:
            return base
        return ActorConfig.from_dict(self._from_json(row["config"], {}), base=base)

    def update_actor_config(self, actor_type: ActorType, **fields: Any) -> ActorConfig:
        merged = ActorConfig.from_dict(fields, base=self.get_actor_config(actor_type))
        now = time.time()

        def _upsert() -> None:
            with self._connection("update_actor_config") as conn:
                conn.execute(
                    """
                    INSERT INTO actor_configs(actor_type, config, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(actor_type) DO UPDATE SET config = excluded.config, updated_at = excluded.updated_at
                    """,
                    (actor_type.value, self._to_json(merged.to_dict()), now),
                )
                conn.commit()

        self._write(_upsert)
        return merged

    def restore_actor_defaults(self) -> None:
        def _clear() -> None:
            with self._connection("restore_actor_defaults") as conn:
                conn.execute("DELETE FROM actor_configs")
                conn.commit()

        self._write(_clear)
        logger.info("Built-in actor configs restored to defaults")

    # ---- custom actors ----

    def _row_to_custom_actor(self, row: sqlite3.Row) -> CustomActor:
        return CustomActor(
            id=str(row["id"]),
            name=str(row["name"] or ""),
            description=str(row["description"] or ""),
            config=ActorConfig.from_dict(self._from_json(row["config"], {}), base=_custom_actor_base()),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
        )

    def create_custom_actor(
        self,
        *,
        name: str,
        description: str = "",
        config: ActorConfig | dict[str, Any] | None = None,
    ) -> str:
        if not name or not name.strip():
            raise ValueError("name is required")
        if isinstance(config, ActorConfig):
            cfg = config
        else:
            cfg = ActorConfig.from_dict(config, base=_custom_actor_base())
        actor_id = uuid.uuid4().hex
        now = time.time()

        def _insert() -> None:
            with self._connection("create_custom_actor") as conn:
                conn.execute(
                    """
                    INSERT INTO custom_actors(id, name, description, config, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (actor_id, name.strip(), (description or "").strip(), self._to_json(cfg.to_dict()), now, now),
                )
                conn.commit()

        self._write(_insert)
        logger.info("Custom actor created id=%s name=%r", actor_id, name)
        return actor_id

    def get_custom_actor(self, actor_id: str) -> CustomActor | None:
        with self._connection("get_custom_actor") as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM custom_actors WHERE id = ?", (actor_id,))
            row = cur.fetchone()
            return self._row_to_custom_actor(row) if row else None

    def list_custom_actors(self) -> list[CustomActor]:
        with self._connection("list_custom_actors") as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM custom_actors ORDER BY created_at ASC")
            return [self._row_to_custom_actor(r) for r in cur.fetchall()]

    def update_custom_actor(
        self,
        actor_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> bool:
        """Merge the given fields (config key by key) into a custom actor. Returns False if missing."""

        def _update() -> bool:
            with self._connection("update_custom_actor") as conn:
                cur = conn.cursor()
                cur.execute("SELECT * FROM custom_actors WHERE id = ?", (actor_id,))
                row = cur.fetchone()
                if row is None:
                    return False
                current = self._row_to_custom_actor(row)
                merged = ActorConfig.from_dict(config, base=current.config)
                cur.execute(
                    """
                    UPDATE custom_actors
                    SET name = ?, description = ?, config = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        name.strip() if name else current.name,
                        description.strip() if description is not None else current.description,
                        self._to_json(merged.to_dict()),
                        time.time(),
                        actor_id,
                    ),
                )
                conn.commit()
                return True

        return self._write(_update)
