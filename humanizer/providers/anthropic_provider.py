"""
Anthropic Provider – Claude
============================
Async wrapper around the ``anthropic`` Python SDK.

The Messages API takes instructions through a separate ``system`` field
and requires ``max_tokens``; the response is a list of content blocks of
which only ``text`` blocks carry the rewrite.
"""

from __future__ import annotations

import os
from typing import Any

import anthropic

from humanizer.providers.base import ModelProvider
from humanizer.providers.factory import register

# The Messages API rejects temperatures above this.
MAX_TEMPERATURE = 1.0


@register("anthropic")
class AnthropicProvider(ModelProvider):
    """Strategy implementation for Anthropic Claude models.

    Parameters
    ----------
    api_key : str, optional
        Falls back to the ``ANTHROPIC_API_KEY`` environment variable.
    model : str
        Model identifier (default ``"claude-3-5-sonnet-latest"``).
    temperature : float
        Sampling temperature, capped at :data:`MAX_TEMPERATURE`.
    top_p : float, optional
        Nucleus sampling cut-off; omitted from the request when ``None``.
    max_tokens : int
        Maximum tokens to generate (default ``8192``).
    system_prompt : str, optional
        Passed as the ``system`` field when given.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-3-5-sonnet-latest",
        temperature: float = 0.9,
        top_p: float | None = None,
        max_tokens: int = 8192,
        system_prompt: str | None = None,
    ) -> None:
        self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY", "")
        self._client = anthropic.AsyncAnthropic(api_key=self._api_key or None)
        self._model = model
        self._temperature = min(temperature, MAX_TEMPERATURE)
        self._top_p = top_p
        self._max_tokens = max_tokens
        self._system_prompt = system_prompt

    async def is_available(self) -> bool:
        return self._api_key.startswith("sk-ant-")

    def _request(self, prompt: str) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if self._top_p is not None:
            params["top_p"] = self._top_p
        if self._system_prompt:
            params["system"] = self._system_prompt
        return params

    async def _call(self, prompt: str) -> tuple[str, dict[str, Any]]:
        response = await self._client.messages.create(**self._request(prompt))
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        return text, {
            "stop_reason": response.stop_reason,
            "input_tokens": response.usage.input_tokens,
            "output_tokens": response.usage.output_tokens,
            "model": response.model,
        }
