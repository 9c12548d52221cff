# src/vibe_agent/actors/actor_models.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass, field, fields
from typing import Any

from ..tasks.task_models import TaskSpec


@dataclass(slots=True)
class ActorConfig:
    enabled: bool = True
    model_id: str | None = None
    temperature: float = 0.7
    max_tokens: int = 2000
    instructions: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None, base: ActorConfig | None = None) -> ActorConfig:
        """
        Build a config from a stored dict, filling missing keys from `base`.

        Accepts the camelCase `customInstructions` key used by older exports.
        """
        out = cls(**(base.to_dict() if base is not None else {}))
        if not raw:
            return out
        data = dict(raw)
        if "customInstructions" in data and "instructions" not in data:
            data["instructions"] = data.pop("customInstructions")
        known = {f.name for f in fields(cls)}
        for key, value in data.items():
            if key in known and value is not None:
                setattr(out, key, value)
        out.temperature = float(out.temperature)
        out.max_tokens = int(out.max_tokens)
        out.enabled = bool(out.enabled)
        return out


@dataclass(slots=True)
class CustomActor:
    """User-defined actor; its config is re-read from the store before every execution."""

    id: str
    name: str
    description: str
    config: ActorConfig
    created_at: float
    updated_at: float


@dataclass(slots=True, frozen=True)
class ActorResult:
    """
    Outcome of one actor execution. Exactly one of output/error is meaningful.

    `spawn` lists follow-up tasks (ids pre-allocated, dependencies already wired). They are
    created by the executor only once this result has been accepted for the task.
    """

    output: Any = None
    error: str | None = None
    prompt: str | None = field(default=None, repr=False)
    spawn: tuple[TaskSpec, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, output: Any, *, prompt: str | None = None, spawn: Iterable[TaskSpec] = ()) -> ActorResult:
        return cls(output=output, error=None, prompt=prompt, spawn=tuple(spawn))

    @classmethod
    def failure(cls, error: str, *, prompt: str | None = None) -> ActorResult:
        return cls(output=None, error=error or "Unknown actor error", prompt=prompt)
