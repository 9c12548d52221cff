# src/vibe_agent/actors/plan_parsing.py

from __future__ import annotations

"""
Parsing of model-produced task plans.

Models wrap JSON in prose, code fences or <plan_json> tags; extract_json_object() finds the
first JSON object regardless. Dependencies in a plan are 0-based indices into the plan's own
task list and are normalised (invalid/self indices dropped, cycles broken) before any task
is created from them.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from ..tasks.task_models import ActorType, TaskPriority

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_TAG_RE = re.compile(r"<plan_json>(.*?)</plan_json>", re.DOTALL | re.IGNORECASE)
_CODE_RE = re.compile(r"```([\w+#.-]*)[ \t]*\n(.*?)```", re.DOTALL)


@dataclass(slots=True)
class PlannedTask:
    title: str
    description: str
    actor_type: ActorType
    dependencies: list[int] = field(default_factory=list)
    priority: TaskPriority = TaskPriority.MEDIUM
    custom_actor_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "actorType": self.actor_type.value,
            "dependencies": list(self.dependencies),
            "priority": self.priority.value,
            "customActorId": self.custom_actor_id,
        }


@dataclass(slots=True)
class TaskPlan:
    main_goal: str = ""
    tasks: list[PlannedTask] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"mainGoal": self.main_goal, "tasks": [t.to_dict() for t in self.tasks]}


def _balanced_object(text: str) -> str | None:
    """First balanced {...} span, string-aware."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_str = False
        escape = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_str:
                if escape:
                    escape = False
                elif ch == "\\":
                    escape = True
                elif ch == '"':
                    in_str = False
                continue
            if ch == '"':
                in_str = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str) -> dict[str, Any] | None:
    if not text:
        return None

    candidates: list[str] = []
    for rx in (_TAG_RE, _FENCE_RE):
        candidates.extend(m.group(1) for m in rx.finditer(text))
    candidates.append(text)

    for cand in candidates:
        cand = cand.strip()
        try:
            data = json.loads(cand)
        except ValueError:
            span = _balanced_object(cand)
            if span is None:
                continue
            try:
                data = json.loads(span)
            except ValueError:
                continue
        if isinstance(data, dict):
            return data
    return None


def _as_index_list(raw: Any) -> list[int]:
    if not isinstance(raw, list):
        return []
    out: list[int] = []
    for x in raw:
        try:
            out.append(int(x))
        except (TypeError, ValueError):
            continue
    return out


def parse_plan(
    text: str,
    *,
    allowed_actors: set[ActorType] | None = None,
    fallback_actor: ActorType = ActorType.RESEARCHER,
) -> TaskPlan:
    """
    Parse a plan from model output. Never raises; unusable output gives an empty plan.

    Tasks with an actor type outside `allowed_actors` are reassigned to `fallback_actor`
    (or dropped when the fallback is not allowed either). Indices keep pointing at the
    original positions, so dropping re-maps them.
    """
    data = extract_json_object(text)
    if data is None:
        logger.info("Plan output had no JSON object; using an empty plan")
        return TaskPlan()

    raw_tasks = data.get("tasks")
    if not isinstance(raw_tasks, list):
        raw_tasks = []

    kept: list[tuple[int, PlannedTask]] = []
    for i, raw in enumerate(raw_tasks):
        if not isinstance(raw, dict):
            continue
        title = str(raw.get("title") or "").strip()
        if not title:
            continue
        actor = ActorType.parse(raw.get("actorType") or raw.get("actor_type")) or fallback_actor
        if allowed_actors is not None and actor not in allowed_actors:
            if fallback_actor not in allowed_actors:
                logger.info("Dropping planned task %r: actor %s not enabled", title, actor.value)
                continue
            actor = fallback_actor
        custom_id = raw.get("customActorId") or raw.get("custom_actor_id")
        if actor == ActorType.CUSTOM and not custom_id:
            actor = fallback_actor
        kept.append(
            (
                i,
                PlannedTask(
                    title=title,
                    description=str(raw.get("description") or title).strip(),
                    actor_type=actor,
                    dependencies=_as_index_list(raw.get("dependencies")),
                    priority=TaskPriority.parse(raw.get("priority")),
                    custom_actor_id=str(custom_id) if actor == ActorType.CUSTOM else None,
                ),
            )
        )

    remap = {orig: new for new, (orig, _) in enumerate(kept)}
    tasks: list[PlannedTask] = []
    for _, pt in kept:
        pt.dependencies = [remap[d] for d in pt.dependencies if d in remap]
        tasks.append(pt)

    return TaskPlan(main_goal=str(data.get("mainGoal") or "").strip(), tasks=tasks)


def normalize_dependencies(deps: list[list[int]]) -> list[list[int]]:
    """
    Clean plan dependency indices.

    - out-of-range and self indices are dropped, duplicates collapsed
    - cycles are broken by removing the edge that closes them (DFS back edge),
      visiting tasks in plan order so earlier tasks keep their dependencies
    """
    n = len(deps)
    clean: list[list[int]] = []
    for i, row in enumerate(deps):
        seen: list[int] = []
        for d in row:
            if 0 <= d < n and d != i and d not in seen:
                seen.append(d)
        clean.append(seen)

    WHITE, GREY, BLACK = 0, 1, 2
    color = [WHITE] * n
    for root in range(n):
        if color[root] != WHITE:
            continue
        color[root] = GREY
        stack: list[tuple[int, int]] = [(root, 0)]
        while stack:
            node, k = stack[-1]
            if k < len(clean[node]):
                stack[-1] = (node, k + 1)
                dep = clean[node][k]
                if color[dep] == GREY:
                    # Back edge: node -> dep closes a cycle.
                    clean[node].pop(k)
                    stack[-1] = (node, k)
                    logger.info("Plan dependency cycle broken: %d -> %d removed", node, dep)
                elif color[dep] == WHITE:
                    color[dep] = GREY
                    stack.append((dep, 0))
                continue
            color[node] = BLACK
            stack.pop()
    return clean


def extract_code_block(text: str) -> tuple[str, str] | None:
    """(language, code) of the first fenced code block, if any."""
    m = _CODE_RE.search(text or "")
    if not m:
        return None
    return (m.group(1) or "text").strip().lower() or "text", m.group(2).strip("\n")
