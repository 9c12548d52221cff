# src/vibe_agent/llm/offline.py

from __future__ import annotations

from ..core.ports import Credentials, ModelRequest


class OfflineInvoker:
    """
    Offline deterministic model invoker used for demos when no external API is configured.

    Behavior:
    - Planning prompts (they ask for a JSON plan) -> an empty plan, so nothing is spawned
    - Everything else -> a short echo of the prompt
    """

    def __init__(self) -> None:
        self.calls: int = 0

    def invoke(self, provider_id: str, credentials: Credentials, request: ModelRequest) -> str:
        self.calls += 1
        prompt = request.prompt or ""

        if "<plan_json>" in prompt.lower():
            return '{"mainGoal": "", "tasks": []}'

        last_line = prompt.strip().splitlines()[-1] if prompt.strip() else ""
        return (
            "Offline demo mode: no external LLM is configured.\n"
            "Set VIBE_API_KEY (and VIBE_LLM_MODELS) to enable real responses.\n\n"
            f"Last prompt line: {last_line[:200]}"
        )
