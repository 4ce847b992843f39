"""
Groq Provider – Llama 3.3 70B
==============================
Groq serves an OpenAI-compatible chat completions API, so this provider is
a :class:`~humanizer.providers.openai_provider.ChatCompletionsProvider`
pointed at Groq's base URL.  It is the default oracle.
"""

from __future__ import annotations

from typing import Any

from humanizer.providers.factory import register
from humanizer.providers.openai_provider import ChatCompletionsProvider

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


@register("groq")
class GroqProvider(ChatCompletionsProvider):
    """Groq-hosted models (default ``llama-3.3-70b-versatile``, 8192 tokens)."""

    api_key_env = "GROQ_API_KEY"
    key_prefix = "gsk_"
    default_model = "llama-3.3-70b-versatile"
    default_base_url = GROQ_BASE_URL

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("max_tokens", 8192)
        super().__init__(**kwargs)
