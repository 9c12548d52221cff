# tests/test_actor_registry.py

from __future__ import annotations

from types import SimpleNamespace

import pytest

from vibe_agent.actors.registry import ActorRegistry
from vibe_agent.errors import ModelInvocationError, PersistenceError
from vibe_agent.llm.client import OpenAICompatibleInvoker
from vibe_agent.tasks.task_models import ActorType, TaskPriority, TaskSpec, TaskStatus
from vibe_agent.tasks.task_store import TaskStore

from .fakes import FakeInvoker, add_task


def _task(store: TaskStore, board_id: str, task_id: str):
    task = store.get_task_from_board(board_id, task_id)
    assert task is not None
    return task


@pytest.mark.asyncio
async def test_researcher_sees_dependency_results(store: TaskStore, settings) -> None:
    invoker = FakeInvoker("Findings: quicksort wins")
    registry = ActorRegistry(store, invoker, settings)
    board = store.create_board("q")
    dep = add_task(store, board.id, "Gather data")
    store.update_task(board.id, dep, status=TaskStatus.COMPLETED, result={"content": "n=10^6 samples"})
    t = add_task(store, board.id, "Research", [dep], description="Which sort is fastest?")

    result = await registry.execute(_task(store, board.id, t))

    assert result.ok
    assert result.output == {"content": "Findings: quicksort wins"}
    req = invoker.requests[-1]
    assert "Which sort is fastest?" in req.prompt
    assert "n=10^6 samples" in req.prompt
    assert req.system_prompt and "research" in req.system_prompt.lower()
    assert req.temperature == pytest.approx(0.3)
    assert req.max_tokens == 8000
    assert invoker.providers[-1][0] == "openrouter"
    assert invoker.providers[-1][1].api_key == "test-key"


@pytest.mark.asyncio
async def test_coder_extracts_first_code_block(store: TaskStore, settings) -> None:
    text = "Here you go:\n```python\nprint('hi')\n```\nand\n```js\nx()\n```"
    registry = ActorRegistry(store, FakeInvoker(text), settings)
    board = store.create_board("q")
    t = add_task(store, board.id, "Code it", actor_type=ActorType.CODER)

    result = await registry.execute(_task(store, board.id, t))

    assert result.ok
    assert result.output["language"] == "python"
    assert result.output["code"] == "print('hi')"


@pytest.mark.asyncio
async def test_writer_uses_all_completed_results(store: TaskStore, settings) -> None:
    invoker = FakeInvoker("# Report")
    registry = ActorRegistry(store, invoker, settings)
    board = store.create_board("q")
    r = add_task(store, board.id, "Research")
    a = add_task(store, board.id, "Analyse")
    store.update_task(board.id, r, status=TaskStatus.COMPLETED, result={"content": "fact one"})
    store.update_task(board.id, a, status=TaskStatus.COMPLETED, result={"content": "insight two"})
    w = add_task(store, board.id, "Write report", actor_type=ActorType.WRITER)

    result = await registry.execute(_task(store, board.id, w))

    assert result.output == {"content": "# Report", "format": "markdown"}
    assert "fact one" in invoker.requests[-1].prompt
    assert "insight two" in invoker.requests[-1].prompt


@pytest.mark.asyncio
async def test_planner_returns_plan_and_summary(store: TaskStore, settings) -> None:
    plan = {
        "mainGoal": "Explain sorting",
        "tasks": [
            {"title": "Research", "description": "r", "actorType": "researcher", "dependencies": []},
            {"title": "Write", "description": "w", "actorType": "writer", "dependencies": [0], "priority": "high"},
        ],
    }
    registry = ActorRegistry(store, FakeInvoker(plan=plan), settings)
    board = store.create_board("q")
    t = add_task(store, board.id, "Plan", actor_type=ActorType.PLANNER)

    result = await registry.execute(_task(store, board.id, t))

    assert result.ok
    assert result.output["summary"].startswith("Planned 2 task(s)")
    assert [p["title"] for p in result.output["plan"]["tasks"]] == ["Research", "Write"]
    assert result.output["plan"]["tasks"][1]["dependencies"] == [0]
    # A planner does not spawn tasks itself.
    assert len(store.get_board(board.id).tasks) == 1


@pytest.mark.asyncio
async def test_composer_returns_planned_tasks_with_wired_dependencies(store: TaskStore, settings) -> None:
    plan = {
        "mainGoal": "Explain sorting",
        "tasks": [
            # 0 <-> 1 is a cycle: the closing edge 1 -> 0 goes, 0 keeps its dependency on 1.
            {"title": "Research", "actorType": "researcher", "dependencies": [1, 7, 0]},
            {"title": "Analyse", "actorType": "analyst", "dependencies": [0]},
            {"title": "Code", "actorType": "coder", "dependencies": []},
            {"title": "Report", "actorType": "writer", "dependencies": [0, 1, 2], "priority": "critical"},
        ],
    }
    registry = ActorRegistry(store, FakeInvoker(plan=plan), settings)
    board = store.create_board("q")
    c = add_task(
        store,
        board.id,
        "Compose",
        actor_type=ActorType.COMPOSER,
        metadata={"enabled_actors": ["composer", "planner", "researcher", "analyst", "writer"]},
    )

    result = await registry.execute(_task(store, board.id, c))

    assert result.ok, result.error
    assert result.output["tasks_created"] == 4
    ids = result.output["task_ids"]
    by_id = {s.id: s for s in result.spawn}
    research, analyse, code, report = (by_id[i] for i in ids)

    assert research.dependencies == [analyse.id]
    assert analyse.dependencies == []
    # coder is not enabled for this composer: reassigned to a researcher.
    assert code.actor_type == ActorType.RESEARCHER
    assert sorted(report.dependencies) == sorted([research.id, analyse.id, code.id])
    assert report.priority == TaskPriority.CRITICAL
    assert all(s.metadata.get("spawned_by") == c for s in result.spawn)
    # Dependencies come before their dependents.
    order = [s.id for s in result.spawn]
    assert all(order.index(d) < order.index(s.id) for s in result.spawn for d in s.dependencies)
    # The executor creates them; executing the actor alone writes nothing.
    assert [t.id for t in store.get_board(board.id).tasks] == [c]


@pytest.mark.asyncio
async def test_model_failure_becomes_result_error(store: TaskStore, settings) -> None:
    invoker = FakeInvoker(error=ModelInvocationError("provider exploded", provider_id="openrouter"))
    registry = ActorRegistry(store, invoker, settings)
    board = store.create_board("q")
    t = add_task(store, board.id, "Research")

    result = await registry.execute(_task(store, board.id, t))

    assert not result.ok
    assert result.error == "provider exploded"


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_result_error(store: TaskStore, settings) -> None:
    registry = ActorRegistry(store, FakeInvoker(error=KeyError("boom")), settings)
    board = store.create_board("q")
    t = add_task(store, board.id, "Research")

    result = await registry.execute(_task(store, board.id, t))

    assert not result.ok
    assert "KeyError" in result.error


@pytest.mark.asyncio
async def test_missing_credentials_is_a_task_failure(store: TaskStore, settings) -> None:
    no_key = SimpleNamespace(**{**vars(settings), "api_key": None})
    registry = ActorRegistry(store, OpenAICompatibleInvoker(no_key), no_key)
    board = store.create_board("q")
    t = add_task(store, board.id, "Research")

    result = await registry.execute(_task(store, board.id, t))

    assert not result.ok
    assert "API key is not set" in result.error


@pytest.mark.asyncio
async def test_disabled_actor_fails(store: TaskStore, settings) -> None:
    invoker = FakeInvoker()
    registry = ActorRegistry(store, invoker, settings)
    store.update_actor_config(ActorType.ANALYST, enabled=False)
    board = store.create_board("q")
    t = add_task(store, board.id, "Analyse", actor_type=ActorType.ANALYST)

    result = await registry.execute(_task(store, board.id, t))

    assert not result.ok
    assert "disabled" in result.error
    assert invoker.requests == []


@pytest.mark.asyncio
async def test_actor_config_overrides_generation_settings(store: TaskStore, settings) -> None:
    invoker = FakeInvoker()
    registry = ActorRegistry(store, invoker, settings)
    store.update_actor_config(ActorType.RESEARCHER, model_id="special/model", temperature=0.0, max_tokens=10)
    board = store.create_board("q")
    t = add_task(store, board.id, "Research")

    await registry.execute(_task(store, board.id, t))

    req = invoker.requests[-1]
    assert (req.model, req.temperature, req.max_tokens) == ("special/model", 0.0, 10)


@pytest.mark.asyncio
async def test_custom_actor_live_edit(store: TaskStore, settings) -> None:
    invoker = FakeInvoker("custom output")
    registry = ActorRegistry(store, invoker, settings)
    actor_id = store.create_custom_actor(name="Greeter", config={"instructions": "Hello {task}"})
    board = store.create_board("q")
    t = add_task(
        store,
        board.id,
        "Greet",
        description="world",
        actor_type=ActorType.CUSTOM,
        custom_actor_id=actor_id,
    )

    first = await registry.execute(_task(store, board.id, t))
    assert first.ok
    assert invoker.requests[-1].prompt == "Hello world"
    assert invoker.requests[-1].system_prompt is None
    assert first.output == {"content": "custom output", "actor_name": "Greeter"}

    assert registry.update_instructions(actor_id, "Goodbye {taskDescription} / {description}")

    await registry.execute(_task(store, board.id, t))
    assert invoker.requests[-1].prompt == "Goodbye world / world"
    assert "Hello" not in invoker.requests[-1].prompt


@pytest.mark.asyncio
async def test_custom_actor_default_prompt(store: TaskStore, settings) -> None:
    invoker = FakeInvoker()
    registry = ActorRegistry(store, invoker, settings)
    actor_id = store.create_custom_actor(name="Critic", description="Finds flaws in arguments.")
    board = store.create_board("q")
    t = add_task(store, board.id, "Critique", description="the essay", actor_type=ActorType.CUSTOM, custom_actor_id=actor_id)

    await registry.execute(_task(store, board.id, t))

    prompt = invoker.requests[-1].prompt
    assert "Critic" in prompt
    assert "Finds flaws in arguments." in prompt
    assert "the essay" in prompt


@pytest.mark.asyncio
async def test_custom_actor_missing(store: TaskStore, settings) -> None:
    registry = ActorRegistry(store, FakeInvoker(), settings)
    board = store.create_board("q")
    t = add_task(store, board.id, "Ghost", actor_type=ActorType.CUSTOM, custom_actor_id="nope")

    result = await registry.execute(_task(store, board.id, t))

    assert not result.ok
    assert "not found" in result.error


def test_update_instructions_reports_failure(store: TaskStore, settings) -> None:
    registry = ActorRegistry(store, FakeInvoker(), settings)
    assert not registry.update_instructions("missing", "text")

    class DownStore:
        def update_custom_actor(self, *a, **kw):
            raise PersistenceError("update_custom_actor", "unavailable")

    assert not ActorRegistry(DownStore(), FakeInvoker(), settings).update_instructions("x", "text")


def test_spec_fields_roundtrip_custom_id(store: TaskStore) -> None:
    board = store.create_board("q")
    t = store.create_task(
        board.id,
        TaskSpec(title="c", description="", actor_type=ActorType.CUSTOM, custom_actor_id="abc"),
    )
    store.save().result()
    assert store.get_task_from_board(board.id, t).custom_actor_id == "abc"
