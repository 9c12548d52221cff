# tests/test_task_store.py

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from vibe_agent.actors.actor_models import ActorConfig
from vibe_agent.errors import IntegrityError, PersistenceError
from vibe_agent.tasks.task_models import ActorType, TaskPriority, TaskSpec, TaskStatus
from vibe_agent.tasks.task_store import TaskStore

from .fakes import add_task


def test_board_and_task_roundtrip(store: TaskStore) -> None:
    board = store.create_board("Compare sorting algorithms", {"kernel": "python3"})
    assert board.title == "Compare sorting algorithms"
    assert board.tasks == []

    task_id = store.create_task(
        board.id,
        TaskSpec(
            title="Research",
            description="Find benchmarks",
            actor_type=ActorType.RESEARCHER,
            priority=TaskPriority.HIGH,
            metadata={"k": "v"},
        ),
    )
    store.save().result()

    task = store.get_task_from_board(board.id, task_id)
    assert task is not None
    assert task.id == task_id
    assert task.board_id == board.id
    assert task.status == TaskStatus.PENDING
    assert task.priority == TaskPriority.HIGH
    assert task.metadata == {"k": "v"}
    assert task.created_at > 0 and task.updated_at >= task.created_at

    loaded = store.get_board(board.id)
    assert loaded is not None
    assert loaded.jupyter_config == {"kernel": "python3"}
    assert [t.id for t in loaded.tasks] == [task_id]


def test_reads_return_none_for_missing(store: TaskStore) -> None:
    board = store.create_board("q")
    assert store.get_board("nope") is None
    assert store.get_task_from_board(board.id, "nope") is None
    assert store.get_task_from_board("nope", "nope") is None


def test_create_task_requires_existing_board(store: TaskStore) -> None:
    with pytest.raises(IntegrityError):
        store.create_task("missing", TaskSpec(title="t", description="", actor_type=ActorType.CODER))


def test_create_task_keeps_preallocated_id(store: TaskStore) -> None:
    board = store.create_board("q")
    later = "f" * 32
    first = store.create_task(
        board.id,
        TaskSpec(title="first", description="", actor_type=ActorType.RESEARCHER, dependencies=[later]),
    )
    assert store.create_task(board.id, TaskSpec(title="later", description="", actor_type=ActorType.WRITER, id=later)) == later
    store.save().result()

    assert store.get_task_from_board(board.id, later).title == "later"
    assert store.get_task_from_board(board.id, first).dependencies == [later]


def test_board_keeps_insertion_order(store: TaskStore) -> None:
    board = store.create_board("q")
    ids = [add_task(store, board.id, f"t{i}") for i in range(5)]
    loaded = store.get_board(board.id)
    assert loaded is not None
    assert [t.id for t in loaded.tasks] == ids


def test_update_merges_per_field(store: TaskStore) -> None:
    board = store.create_board("q")
    task_id = add_task(store, board.id, "a")

    assert store.update_task(board.id, task_id, result={"content": "x"})
    assert store.update_task(board.id, task_id, error="late note")

    task = store.get_task_from_board(board.id, task_id)
    assert task is not None
    assert task.result == {"content": "x"}
    assert task.error == "late note"
    assert task.title == "a"
    assert task.status == TaskStatus.PENDING


def test_guarded_update_and_claim(store: TaskStore) -> None:
    board = store.create_board("q")
    task_id = add_task(store, board.id, "a")

    assert not store.update_task(board.id, task_id, expected=[TaskStatus.IN_PROGRESS], status=TaskStatus.COMPLETED)

    assert store.try_claim_task(board.id, task_id)
    assert not store.try_claim_task(board.id, task_id)

    task = store.get_task_from_board(board.id, task_id)
    assert task is not None
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.started_at is not None


def test_update_rejects_unknown_fields(store: TaskStore) -> None:
    board = store.create_board("q")
    task_id = add_task(store, board.id, "a")
    with pytest.raises(ValueError):
        store.update_task(board.id, task_id, id="other")


def test_update_can_correct_board_id(store: TaskStore) -> None:
    board = store.create_board("q")
    task_id = add_task(store, board.id, "a")
    store.update_task(board.id, task_id, board_id="stale")
    assert store.get_task_from_board(board.id, task_id).board_id == "stale"

    store.update_task(board.id, task_id, board_id=board.id)
    assert store.get_task_from_board(board.id, task_id).board_id == board.id


def test_delete_board_cascades(store: TaskStore) -> None:
    board = store.create_board("q")
    other = store.create_board("other")
    task_id = add_task(store, board.id, "a")
    other_task = add_task(store, other.id, "b")

    assert store.delete_board(board.id)
    assert store.get_board(board.id) is None
    assert store.get_task_from_board(board.id, task_id) is None
    assert store.count_tasks() == 1
    assert store.get_task_from_board(other.id, other_task) is not None

    assert not store.delete_board(board.id)


def test_update_after_board_deleted_is_a_noop(store: TaskStore) -> None:
    board = store.create_board("q")
    task_id = add_task(store, board.id, "a")
    store.delete_board(board.id)
    assert not store.update_task(board.id, task_id, status=TaskStatus.COMPLETED)


def test_save_reports_failed_queued_insert(store: TaskStore, settings) -> None:
    board = store.create_board("q")
    conn = sqlite3.connect(str(settings.db_path))
    conn.execute("CREATE TRIGGER refuse_tasks BEFORE INSERT ON tasks BEGIN SELECT RAISE(ABORT, 'disk says no'); END")
    conn.commit()
    conn.close()

    task_id = store.create_task(board.id, TaskSpec(title="t", description="", actor_type=ActorType.WRITER))
    assert task_id

    with pytest.raises(PersistenceError):
        store.save().result()

    # Errors are reported once.
    store.save().result()


def test_actor_config_defaults_update_restore(store: TaskStore) -> None:
    cfg = store.get_actor_config(ActorType.PLANNER)
    assert cfg.enabled
    assert cfg.temperature == pytest.approx(0.2)
    assert cfg.instructions

    updated = store.update_actor_config(ActorType.PLANNER, enabled=False, max_tokens=100)
    assert not updated.enabled
    again = store.get_actor_config(ActorType.PLANNER)
    assert not again.enabled
    assert again.max_tokens == 100
    assert again.temperature == pytest.approx(0.2)

    store.restore_actor_defaults()
    assert store.get_actor_config(ActorType.PLANNER).enabled


def test_custom_actor_crud_merges_config(store: TaskStore) -> None:
    actor_id = store.create_custom_actor(
        name="Poet",
        description="Writes haiku",
        config={"customInstructions": "Haiku about {task}", "temperature": 0.9},
    )
    actor = store.get_custom_actor(actor_id)
    assert actor is not None
    assert actor.config.instructions == "Haiku about {task}"
    assert actor.config.temperature == pytest.approx(0.9)

    assert store.update_custom_actor(actor_id, config={"instructions": "Limerick about {task}"})
    actor = store.get_custom_actor(actor_id)
    assert actor.config.instructions == "Limerick about {task}"
    assert actor.config.temperature == pytest.approx(0.9)
    assert actor.name == "Poet"

    assert [a.id for a in store.list_custom_actors()] == [actor_id]
    assert not store.update_custom_actor("missing", name="x")


def test_custom_actor_without_instructions(store: TaskStore) -> None:
    actor_id = store.create_custom_actor(name="Plain", config=ActorConfig(max_tokens=50))
    actor = store.get_custom_actor(actor_id)
    assert actor is not None
    assert actor.config.instructions == ""
    assert actor.config.max_tokens == 50


def test_schema_migration_adds_missing_columns(tmp_path: Path) -> None:
    db = tmp_path / "old.sqlite3"
    conn = sqlite3.connect(str(db))
    conn.execute(
        """
        CREATE TABLE tasks (
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
    conn.commit()
    conn.close()

    s = TaskStore(db)
    try:
        conn = sqlite3.connect(str(db))
        cols = {row[1] for row in conn.execute("PRAGMA table_info(tasks)")}
        conn.close()
        assert {"custom_actor_id", "result", "error", "started_at", "completed_at"} <= cols
    finally:
        s.close()
