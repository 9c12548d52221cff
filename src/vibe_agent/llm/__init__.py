"""Model-invocation boundary clients (OpenAI-compatible + offline)."""
