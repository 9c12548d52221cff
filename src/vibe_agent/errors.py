# src/vibe_agent/errors.py

"""
Error taxonomy for the orchestration engine.

- IntegrityError: missing board, unknown dependency, board id mismatch
- RetrievalGapError: a freshly created task is still not readable after the bounded retry
- CycleDetectedError: dependency cycle (tasks in the cycle are failed, never run)
- ActorExecutionError / ModelInvocationError: actor or model failures
  (always folded into task.error by the scheduler)
- PersistenceError: the durable store is unavailable
- ConfigurationError: invalid or missing settings
"""

from __future__ import annotations

from typing import Any


class VibeError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return self.message


class ConfigurationError(VibeError):
    def __init__(self, setting_name: str, message: str) -> None:
        super().__init__(
            f"Configuration error for '{setting_name}': {message}",
            details={"setting_name": setting_name},
        )
        self.setting_name = setting_name


class IntegrityError(VibeError):
    """Board/task graph is inconsistent (missing board, unknown dependency, wrong board id)."""

    def __init__(
        self,
        message: str,
        *,
        board_id: str | None = None,
        task_ids: list[str] | None = None,
    ) -> None:
        super().__init__(message, details={"board_id": board_id, "task_ids": list(task_ids or [])})
        self.board_id = board_id
        self.task_ids = list(task_ids or [])


class RetrievalGapError(VibeError):
    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message, details={"attempts": attempts})
        self.attempts = attempts


class CycleDetectedError(VibeError):
    def __init__(self, task_ids: list[str]) -> None:
        ids = list(task_ids)
        super().__init__(
            f"Dependency cycle detected among tasks: {', '.join(ids)}",
            details={"task_ids": ids},
        )
        self.task_ids = ids


class ActorExecutionError(VibeError):
    def __init__(self, actor_type: str, message: str, *, task_id: str | None = None) -> None:
        super().__init__(message, details={"actor_type": actor_type, "task_id": task_id})
        self.actor_type = actor_type
        self.task_id = task_id


class ModelInvocationError(ActorExecutionError):
    """Failure at the model boundary (credentials, provider, timeout, empty output)."""

    def __init__(self, message: str, *, provider_id: str | None = None) -> None:
        super().__init__("model", message)
        self.details["provider_id"] = provider_id
        self.provider_id = provider_id


class PersistenceError(VibeError):
    def __init__(self, operation: str, message: str) -> None:
        super().__init__(
            f"Persistence failure during {operation}: {message}",
            details={"operation": operation},
        )
        self.operation = operation
