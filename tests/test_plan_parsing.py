# tests/test_plan_parsing.py

from __future__ import annotations

from vibe_agent.actors.plan_parsing import (
    extract_code_block,
    extract_json_object,
    normalize_dependencies,
    parse_plan,
)
from vibe_agent.tasks.task_models import ActorType, TaskPriority


def test_extract_json_from_tags_fences_and_prose() -> None:
    assert extract_json_object('<plan_json>{"a": 1}</plan_json>') == {"a": 1}
    assert extract_json_object('Sure!\n```json\n{"a": 2}\n```') == {"a": 2}
    assert extract_json_object('The plan is {"a": {"b": "}"}} hope it helps') == {"a": {"b": "}"}}
    assert extract_json_object("no json here") is None
    assert extract_json_object("[1, 2]") is None


def test_parse_plan_falls_back_to_empty() -> None:
    plan = parse_plan("I cannot help with that.")
    assert plan.tasks == []
    assert plan.main_goal == ""


def test_parse_plan_reads_fields_and_remaps_dropped_tasks() -> None:
    text = """
    {"mainGoal": "g", "tasks": [
        {"title": "", "actorType": "researcher"},
        {"title": "R", "description": "research", "actorType": "Researcher", "priority": "HIGH"},
        {"title": "W", "actorType": "writer", "dependencies": [1, "x"]}
    ]}
    """
    plan = parse_plan(text)
    assert plan.main_goal == "g"
    assert [t.title for t in plan.tasks] == ["R", "W"]
    assert plan.tasks[0].priority == TaskPriority.HIGH
    assert plan.tasks[0].actor_type == ActorType.RESEARCHER
    assert plan.tasks[1].dependencies == [0]
    assert plan.tasks[1].description == "W"


def test_parse_plan_restricts_actor_types() -> None:
    text = '{"tasks": [{"title": "C", "actorType": "coder"}, {"title": "X", "actorType": "custom"}]}'
    plan = parse_plan(text, allowed_actors={ActorType.RESEARCHER, ActorType.WRITER})
    assert [t.actor_type for t in plan.tasks] == [ActorType.RESEARCHER, ActorType.RESEARCHER]

    plan = parse_plan(text, allowed_actors={ActorType.WRITER})
    assert plan.tasks == []


def test_normalize_dependencies() -> None:
    # self, out-of-range and duplicate indices are dropped
    assert normalize_dependencies([[0, 5, -1], [0, 0]]) == [[], [0]]
    # 0 -> 1 -> 2 -> 0: the closing edge 2 -> 0 goes
    assert normalize_dependencies([[1], [2], [0]]) == [[1], [2], []]
    # acyclic input is untouched
    assert normalize_dependencies([[], [0], [0, 1]]) == [[], [0], [0, 1]]


def test_extract_code_block() -> None:
    assert extract_code_block("```py\nx = 1\n```") == ("py", "x = 1")
    assert extract_code_block("```\nplain\n```") == ("text", "plain")
    assert extract_code_block("no code") is None
