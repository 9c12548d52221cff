# src/vibe_agent/actors/defaults.py

"""Default role preambles and generation settings for the built-in actors."""

from __future__ import annotations

from ..tasks.task_models import ActorType
from .actor_models import ActorConfig

DEFAULT_PROMPTS: dict[ActorType, str] = {
    ActorType.PLANNER: (
        "You are a strategic planning assistant. You break large objectives into small, "
        "concrete subtasks with explicit dependencies, a priority and the specialist best "
        "suited to each one."
    ),
    ActorType.COMPOSER: (
        "You are an orchestration assistant. You decide which specialist tasks are needed "
        "to answer a request and how they depend on each other, keeping the workflow short "
        "and free of redundant steps."
    ),
    ActorType.RESEARCHER: (
        "You are a research assistant. Gather the relevant facts on the topic, organise "
        "them clearly, explain difficult concepts and cite sources when they are known."
    ),
    ActorType.ANALYST: (
        "You are an analytical assistant. Examine the material critically, identify "
        "patterns and trends, apply appropriate quantitative reasoning and finish with "
        "actionable conclusions."
    ),
    ActorType.CODER: (
        "You are a coding assistant. Produce clean, runnable, well-commented code that "
        "follows the conventions of the language. Put the code in a single fenced block."
    ),
    ActorType.WRITER: (
        "You are a report writer. Combine the findings you are given into one coherent "
        "markdown report with a clear structure and a professional tone."
    ),
    ActorType.CUSTOM: (
        "You are a custom assistant. Follow the instructions you were configured with "
        "precisely and answer with the result of your work."
    ),
}

ACTOR_DESCRIPTIONS: dict[ActorType, str] = {
    ActorType.PLANNER: "Creates task plans with dependencies and priorities",
    ActorType.COMPOSER: "Orchestrates the session and spawns specialist tasks",
    ActorType.RESEARCHER: "Gathers and synthesises information",
    ActorType.ANALYST: "Analyses data and draws conclusions",
    ActorType.CODER: "Writes and fixes code",
    ActorType.WRITER: "Writes the final markdown report",
    ActorType.CUSTOM: "User-defined actor with its own instructions",
}

_GENERATION: dict[ActorType, tuple[float, int]] = {
    ActorType.PLANNER: (0.2, 4000),
    ActorType.COMPOSER: (0.1, 2000),
    ActorType.RESEARCHER: (0.3, 8000),
    ActorType.ANALYST: (0.2, 4000),
    ActorType.CODER: (0.1, 4000),
    ActorType.WRITER: (0.5, 6000),
    ActorType.CUSTOM: (0.5, 4000),
}


def default_actor_config(actor_type: ActorType) -> ActorConfig:
    temperature, max_tokens = _GENERATION[actor_type]
    return ActorConfig(
        enabled=True,
        model_id=None,
        temperature=temperature,
        max_tokens=max_tokens,
        instructions=DEFAULT_PROMPTS[actor_type],
    )
