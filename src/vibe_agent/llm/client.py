# src/vibe_agent/llm/client.py

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import httpx
import openai
from openai import OpenAI

from ..core.ports import Credentials, ModelRequest
from ..errors import ModelInvocationError

logger = logging.getLogger(__name__)

PROVIDER_BASE_URLS: dict[str, str] = {
    "openrouter": "https://openrouter.ai/api/v1",
    "openai": "https://api.openai.com/v1",
}

_BAD_MODEL_TTL_SECONDS = 3600.0


def _is_auth_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return True
    return exc.__class__.__name__ in {"UnauthorizedError"}


def _is_rate_limit_error(exc: Exception) -> bool:
    return isinstance(exc, openai.RateLimitError)


def _is_connection_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError, httpx.TimeoutException))


def _is_not_found_error(exc: Exception) -> bool:
    return isinstance(exc, openai.NotFoundError)


def friendly_llm_error_message(err: Exception) -> str:
    msg = str(err).strip() or "LLM error."
    if "API key is not set" in msg:
        return "LLM is not configured (missing API key). Set VIBE_API_KEY in .env (see .env.example)."
    if "model list is empty" in msg:
        return "LLM is not configured (no models). Set VIBE_LLM_MODELS in .env (see .env.example)."
    return msg


class OpenAICompatibleInvoker:
    """
    Model-invocation boundary over any OpenAI-compatible chat completions API.

    Behavior:
    - Tries the request's model first, then the configured models in order.
    - 404 (model not available) -> remember it for an hour, try next.
    - Rate limit / network issues -> try next.
    - Auth issues -> fail fast (no retries across models).
    - SDK retries are disabled so fallback across models is quick.
    Every failure surfaces as ModelInvocationError.
    """

    def __init__(self, settings: Any) -> None:
        self._models: list[str] = [m.strip() for m in (getattr(settings, "llm_models", []) or []) if m.strip()]
        self._headers: dict[str, str] = dict(getattr(settings, "extra_headers", {}) or {})
        connect_s = float(getattr(settings, "llm_connect_timeout_seconds", 5.0))
        read_s = float(getattr(settings, "llm_read_timeout_seconds", 120.0))
        self._timeout = httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s)
        self._default_base_url = str(getattr(settings, "base_url", "") or "")

        self._clients: dict[tuple[str, str], OpenAI] = {}
        self._bad_models: dict[str, float] = {}  # model -> retry_at (monotonic)
        self._lock = threading.Lock()

    def _base_url_for(self, provider_id: str, credentials: Credentials) -> str:
        if credentials.base_url:
            return credentials.base_url
        if self._default_base_url:
            return self._default_base_url
        url = PROVIDER_BASE_URLS.get(provider_id)
        if url is None:
            raise ModelInvocationError(f"Unknown provider: {provider_id}", provider_id=provider_id)
        return url

    def _get_client(self, provider_id: str, credentials: Credentials) -> OpenAI:
        api_key = (credentials.api_key or "").strip()
        if not api_key:
            raise ModelInvocationError(
                f"LLM API key is not set for provider {provider_id}.",
                provider_id=provider_id,
            )
        base_url = self._base_url_for(provider_id, credentials)
        key = (base_url, api_key)
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                client = OpenAI(base_url=base_url, api_key=api_key, timeout=self._timeout, max_retries=0)
                self._clients[key] = client
            return client

    def _candidate_models(self, request: ModelRequest) -> list[str]:
        out: list[str] = []
        for m in [request.model, *self._models]:
            m = (m or "").strip()
            if m and m not in out:
                out.append(m)
        return out

    def invoke(self, provider_id: str, credentials: Credentials, request: ModelRequest) -> str:
        models = self._candidate_models(request)
        if not models:
            raise ModelInvocationError("LLM model list is empty.", provider_id=provider_id)

        client = self._get_client(provider_id, credentials)

        messages: list[dict[str, str]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        last_error: Exception | None = None
        now = time.monotonic()

        for model in models:
            retry_at = self._bad_models.get(model)
            if retry_at is not None and retry_at > now:
                continue

            logger.info("LLM: trying provider=%s model=%s max_tokens=%s", provider_id, model, request.max_tokens)
            t0 = time.monotonic()
            try:
                resp = client.chat.completions.create(
                    model=model,
                    messages=messages,
                    max_tokens=request.max_tokens,
                    temperature=request.temperature,
                    extra_headers=self._headers or None,
                    timeout=self._timeout,
                )
            except Exception as e:
                last_error = e

                if _is_auth_error(e):
                    raise ModelInvocationError(
                        f"LLM authentication failed for provider {provider_id}. Check your API key.",
                        provider_id=provider_id,
                    ) from e

                if _is_not_found_error(e):
                    self._bad_models[model] = time.monotonic() + _BAD_MODEL_TTL_SECONDS
                    logger.info("LLM: model not available (404): %s", model)
                    continue

                if _is_rate_limit_error(e):
                    logger.info("LLM: rate-limited on model=%s, trying next", model)
                    continue

                if _is_connection_error(e):
                    logger.info("LLM: network/timeout error on model=%s, trying next", model)
                    continue

                logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

            content = ""
            if resp.choices:
                content = resp.choices[0].message.content or ""
            if content.strip():
                logger.info("LLM: completed with model=%s (%.2fs)", model, time.monotonic() - t0)
                return content

            last_error = RuntimeError(f"Model returned no content: {model}")

        if last_error is not None:
            if _is_rate_limit_error(last_error):
                raise ModelInvocationError("LLM is rate-limited. Try again later.", provider_id=provider_id) from last_error
            if _is_connection_error(last_error):
                raise ModelInvocationError(
                    "LLM network/timeout error. Try again later or change models.",
                    provider_id=provider_id,
                ) from last_error
            raise ModelInvocationError(f"All LLM models failed: {last_error}", provider_id=provider_id) from last_error

        raise ModelInvocationError("All LLM models failed.", provider_id=provider_id)
