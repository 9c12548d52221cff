# src/vibe_agent/actors/prompts.py

from __future__ import annotations

"""
Per-actor prompt builders and result shapers.

Built-in actors differ only here: how the task is turned into a prompt and how the model
text is turned into a result payload. The registry owns the shared model call path.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..tasks.task_models import ActorType, Task
from .actor_models import ActorConfig, CustomActor
from .defaults import ACTOR_DESCRIPTIONS
from .plan_parsing import TaskPlan, extract_code_block, parse_plan

MAX_CONTEXT_CHARS = 4000

_PLACEHOLDERS = ("{task}", "{taskDescription}", "{description}")


@dataclass(slots=True)
class PromptContext:
    config: ActorConfig
    dependency_results: list[tuple[Task, Any]] = field(default_factory=list)
    board_results: list[tuple[Task, Any]] = field(default_factory=list)
    enabled_actors: list[ActorType] = field(default_factory=list)
    custom_actor: CustomActor | None = None
    custom_actors: list[CustomActor] = field(default_factory=list)


PromptBuilder = Callable[[Task, PromptContext], str]
ResultShaper = Callable[[Task, str, PromptContext], Any]


def result_text(result: Any, limit: int = MAX_CONTEXT_CHARS) -> str:
    """Readable text of a stored task result, for feeding into downstream prompts."""
    if result is None:
        return ""
    if isinstance(result, dict):
        for key in ("content", "summary"):
            v = result.get(key)
            if isinstance(v, str) and v.strip():
                text = v
                break
        else:
            text = json.dumps(result, ensure_ascii=False)
    else:
        text = str(result)
    text = text.strip()
    if len(text) > limit:
        text = text[:limit].rstrip() + " ..."
    return text


def _results_section(title: str, items: list[tuple[Task, Any]]) -> str:
    if not items:
        return ""
    parts = [f"{title}:"]
    for t, res in items:
        parts.append(f"### {t.title} ({t.actor_type.value})\n{result_text(res)}")
    return "\n\n".join(parts)


def _join(*blocks: str) -> str:
    return "\n\n".join(b.strip() for b in blocks if b and b.strip())


def _task_block(task: Task) -> str:
    desc = task.description.strip() or task.title
    return f"Task: {task.title}\n\n{desc}"


# ---- planning (planner + composer) ----


def _actor_menu(ctx: PromptContext) -> str:
    lines = ["Available actor types:"]
    for a in ctx.enabled_actors:
        if a in (ActorType.COMPOSER, ActorType.PLANNER, ActorType.CUSTOM):
            continue
        lines.append(f"- {a.value}: {ACTOR_DESCRIPTIONS[a]}")
    for ca in ctx.custom_actors:
        lines.append(f"- custom (customActorId={ca.id}): {ca.name}. {ca.description}")
    return "\n".join(lines)


_PLAN_FORMAT = (
    "Respond with a JSON object wrapped in <plan_json></plan_json> tags:\n"
    '{"mainGoal": "...", "tasks": [{"title": "...", "description": "...", '
    '"actorType": "researcher", "dependencies": [0], "priority": "high"}]}\n'
    "dependencies are 0-based indices into the tasks array. priority is one of "
    "low, medium, high, critical. Keep the plan short and end with a writer task "
    "when a final report is useful."
)


def build_planning_prompt(task: Task, ctx: PromptContext) -> str:
    return _join(
        "Break the request below into a plan of specialist tasks.",
        _task_block(task),
        _actor_menu(ctx),
        _PLAN_FORMAT,
    )


def _allowed(ctx: PromptContext) -> set[ActorType]:
    allowed = {a for a in ctx.enabled_actors if a not in (ActorType.COMPOSER, ActorType.PLANNER)}
    if ctx.custom_actors:
        allowed.add(ActorType.CUSTOM)
    return allowed


def shape_plan(task: Task, text: str, ctx: PromptContext) -> TaskPlan:
    return parse_plan(text, allowed_actors=_allowed(ctx))


def shape_planner_result(task: Task, text: str, ctx: PromptContext) -> dict[str, Any]:
    plan = shape_plan(task, text, ctx)
    summary = f"Planned {len(plan.tasks)} task(s)"
    if plan.main_goal:
        summary += f" for: {plan.main_goal}"
    return {"plan": plan.to_dict(), "summary": summary}


# ---- specialists ----


def build_specialist_prompt(task: Task, ctx: PromptContext) -> str:
    return _join(
        _task_block(task),
        _results_section("Results of the tasks this one depends on", ctx.dependency_results),
    )


def shape_content(task: Task, text: str, ctx: PromptContext) -> dict[str, Any]:
    return {"content": text.strip()}


def shape_code(task: Task, text: str, ctx: PromptContext) -> dict[str, Any]:
    out: dict[str, Any] = {"content": text.strip(), "code": None, "language": None}
    block = extract_code_block(text)
    if block is not None:
        out["language"], out["code"] = block
    return out


def build_writer_prompt(task: Task, ctx: PromptContext) -> str:
    return _join(
        _task_block(task),
        _results_section("Findings from the completed tasks on this board", ctx.board_results),
        "Write the final report in markdown.",
    )


def shape_report(task: Task, text: str, ctx: PromptContext) -> dict[str, Any]:
    return {"content": text.strip(), "format": "markdown"}


# ---- custom ----


def render_custom_instructions(template: str, task: Task) -> str:
    desc = task.description.strip() or task.title
    out = template
    for ph in _PLACEHOLDERS:
        out = out.replace(ph, desc)
    return out


def build_custom_prompt(task: Task, ctx: PromptContext) -> str:
    actor = ctx.custom_actor
    instructions = (ctx.config.instructions or "").strip()
    if instructions:
        return render_custom_instructions(instructions, task)

    name = actor.name if actor else "Custom actor"
    about = actor.description if actor else ""
    desc = task.description.strip() or task.title
    return _join(
        f"You are {name}." + (f" {about}" if about else ""),
        f"Complete this task: {desc}",
        _results_section("Results of the tasks this one depends on", ctx.dependency_results),
    )


def shape_custom(task: Task, text: str, ctx: PromptContext) -> dict[str, Any]:
    out: dict[str, Any] = {"content": text.strip()}
    if ctx.custom_actor is not None:
        out["actor_name"] = ctx.custom_actor.name
    return out


@dataclass(slots=True, frozen=True)
class ActorSpec:
    build_prompt: PromptBuilder
    shape_result: ResultShaper
    uses_role_preamble: bool = True
    spawns_tasks: bool = False


ACTOR_SPECS: dict[ActorType, ActorSpec] = {
    ActorType.COMPOSER: ActorSpec(build_planning_prompt, shape_plan, spawns_tasks=True),
    ActorType.PLANNER: ActorSpec(build_planning_prompt, shape_planner_result),
    ActorType.RESEARCHER: ActorSpec(build_specialist_prompt, shape_content),
    ActorType.ANALYST: ActorSpec(build_specialist_prompt, shape_content),
    ActorType.CODER: ActorSpec(build_specialist_prompt, shape_code),
    ActorType.WRITER: ActorSpec(build_writer_prompt, shape_report),
    ActorType.CUSTOM: ActorSpec(build_custom_prompt, shape_custom, uses_role_preamble=False),
}
