# src/vibe_agent/actors/registry.py

from __future__ import annotations

"""
Actor registry.

One entry point, execute(task) -> ActorResult, over a closed dispatch table (see prompts.ACTOR_SPECS).
execute() never raises: credentials, provider, parsing and store problems all come back as
ActorResult.failure(...), which the executor copies into task.error.
"""

import asyncio
import logging
import uuid
from typing import Any

from ..core.ports import Credentials, ModelInvoker, ModelRequest, TaskRepo
from ..errors import ActorExecutionError, VibeError
from ..tasks.task_models import DEFAULT_ENABLED_ACTORS, ActorType, Task, TaskSpec, TaskStatus
from .actor_models import ActorConfig, ActorResult, CustomActor
from .plan_parsing import TaskPlan, normalize_dependencies
from .prompts import ACTOR_SPECS, PromptContext

logger = logging.getLogger(__name__)


def _enabled_actors(task: Task) -> list[ActorType]:
    raw = (task.metadata or {}).get("enabled_actors")
    if not isinstance(raw, list):
        return list(DEFAULT_ENABLED_ACTORS)
    out: list[ActorType] = []
    for r in raw:
        a = ActorType.parse(r)
        if a is not None and a not in out:
            out.append(a)
    return out


class ActorRegistry:
    def __init__(self, store: TaskRepo, invoker: ModelInvoker, settings: Any) -> None:
        self._store = store
        self._invoker = invoker
        self._provider_id = str(getattr(settings, "provider_id", "openrouter"))
        self._credentials = Credentials(
            api_key=getattr(settings, "api_key", None),
            base_url=(getattr(settings, "base_url", "") or None),
        )

    async def execute(self, task: Task) -> ActorResult:
        try:
            return await self._execute(task)
        except VibeError as e:
            logger.info("Actor %s failed task=%s: %s", task.actor_type.value, task.id, e.message)
            return ActorResult.failure(e.message)
        except Exception as e:
            logger.exception("Actor %s crashed task=%s", task.actor_type.value, task.id)
            return ActorResult.failure(f"{e.__class__.__name__}: {e}")

    def update_instructions(self, custom_id: str, text: str) -> bool:
        """Persist a custom actor's instruction template. Picked up on its next execution."""
        try:
            ok = self._store.update_custom_actor(custom_id, config={"instructions": text})
        except Exception:
            logger.exception("update_instructions failed custom_id=%s", custom_id)
            return False
        if not ok:
            logger.info("update_instructions: custom actor %s not found", custom_id)
        return ok

    # ---- internals ----

    def _load_config(self, task: Task) -> tuple[ActorConfig, CustomActor | None]:
        if task.actor_type != ActorType.CUSTOM:
            return self._store.get_actor_config(task.actor_type), None

        if not task.custom_actor_id:
            raise ActorExecutionError(task.actor_type.value, "Custom task has no custom actor id", task_id=task.id)
        # Re-read on every execution so saved instruction edits apply to the next run.
        actor = self._store.get_custom_actor(task.custom_actor_id)
        if actor is None:
            raise ActorExecutionError(
                task.actor_type.value,
                f"Custom actor {task.custom_actor_id} not found",
                task_id=task.id,
            )
        return actor.config, actor

    def _build_context(self, task: Task, config: ActorConfig, custom: CustomActor | None) -> PromptContext:
        ctx = PromptContext(config=config, custom_actor=custom, enabled_actors=_enabled_actors(task))

        board = self._store.get_board(task.board_id)
        if board is None:
            return ctx

        deps = set(task.dependencies)
        for t in board.tasks:
            if t.id == task.id or t.status != TaskStatus.COMPLETED:
                continue
            if t.id in deps:
                ctx.dependency_results.append((t, t.result))
            if t.actor_type not in (ActorType.COMPOSER, ActorType.PLANNER):
                ctx.board_results.append((t, t.result))

        if task.actor_type in (ActorType.COMPOSER, ActorType.PLANNER) and ActorType.CUSTOM in ctx.enabled_actors:
            list_custom = getattr(self._store, "list_custom_actors", None)
            if list_custom is not None:
                ctx.custom_actors = list(list_custom())
        return ctx

    async def _execute(self, task: Task) -> ActorResult:
        spec = ACTOR_SPECS.get(task.actor_type)
        if spec is None:
            raise ActorExecutionError(str(task.actor_type), "Unknown actor type", task_id=task.id)

        config, custom = self._load_config(task)
        if not config.enabled:
            raise ActorExecutionError(task.actor_type.value, f"Actor {task.actor_type.value} is disabled", task_id=task.id)

        ctx = self._build_context(task, config, custom)
        prompt = spec.build_prompt(task, ctx)
        request = ModelRequest(
            prompt=prompt,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            model=config.model_id,
            system_prompt=config.instructions if spec.uses_role_preamble and config.instructions else None,
        )

        logger.debug("Actor %s invoking model task=%s prompt_chars=%d", task.actor_type.value, task.id, len(prompt))
        text = await asyncio.to_thread(self._invoker.invoke, self._provider_id, self._credentials, request)
        if not text or not text.strip():
            raise ActorExecutionError(task.actor_type.value, "Model returned an empty response", task_id=task.id)

        output = spec.shape_result(task, text, ctx)
        if spec.spawns_tasks:
            output, follow_ups = self._plan_follow_ups(task, output)
            return ActorResult.success(output, prompt=prompt, spawn=follow_ups)
        return ActorResult.success(output, prompt=prompt)

    def _plan_follow_ups(self, task: Task, plan: TaskPlan) -> tuple[dict[str, Any], list[TaskSpec]]:
        """
        Turn a composer's plan into task specs with pre-allocated ids and wired dependencies.

        Nothing is written here: the executor creates the tasks once the composer's own
        completion is accepted, so a stopped or restarted composer leaves no tasks behind.
        """
        deps = normalize_dependencies([pt.dependencies for pt in plan.tasks])
        ids = [uuid.uuid4().hex for _ in plan.tasks]

        # Dependencies before dependents, so each insert only references queued rows.
        specs: list[TaskSpec] = []
        for i in _topological_order(deps):
            pt = plan.tasks[i]
            specs.append(
                TaskSpec(
                    title=pt.title,
                    description=pt.description,
                    actor_type=pt.actor_type,
                    dependencies=[ids[d] for d in deps[i]],
                    priority=pt.priority,
                    metadata={"spawned_by": task.id},
                    custom_actor_id=pt.custom_actor_id,
                    id=ids[i],
                )
            )

        summary = f"Created {len(ids)} task(s) from plan."
        if plan.main_goal:
            summary += f" Goal: {plan.main_goal}"
        logger.info("Composer %s planned %d task(s) on board %s", task.id, len(ids), task.board_id)
        output = {
            "summary": summary,
            "tasks_created": len(ids),
            "task_ids": ids,
            "plan": plan.to_dict(),
        }
        return output, specs


def _topological_order(deps: list[list[int]]) -> list[int]:
    """Dependencies before dependents; ties in index order. Input must be acyclic."""
    n = len(deps)
    done: set[int] = set()
    order: list[int] = []
    while len(order) < n:
        progressed = False
        for i in range(n):
            if i in done:
                continue
            if all(d in done for d in deps[i]):
                done.add(i)
                order.append(i)
                progressed = True
        if not progressed:
            # Unreachable after normalize_dependencies; keep whatever is left in index order.
            remaining = [i for i in range(n) if i not in done]
            for i in remaining:
                deps[i] = [d for d in deps[i] if d in done]
                done.add(i)
                order.append(i)
    return order
