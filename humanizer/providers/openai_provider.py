"""
OpenAI-Compatible Providers – Chat Completions
===============================================
Async wrapper around the ``openai`` Python SDK.  :class:`ChatCompletionsProvider`
holds the request/response handling shared by every backend that speaks the
OpenAI chat completions protocol; concrete providers only declare where to
connect, which environment variable holds the key and which model to use.

* ``openai`` – api.openai.com (``OPENAI_API_KEY``; the SDK honours ``OPENAI_BASE_URL``)
* ``groq``   – see :mod:`humanizer.providers.groq_provider`
"""

from __future__ import annotations

import os
from typing import Any

import openai

from humanizer.providers.base import ModelProvider
from humanizer.providers.factory import register


class ChatCompletionsProvider(ModelProvider):
    """Strategy implementation for OpenAI-compatible chat endpoints.

    Subclasses set the class attributes below.

    Parameters
    ----------
    api_key : str, optional
        Falls back to the environment variable named by :attr:`api_key_env`.
    model : str, optional
        Model identifier (default :attr:`default_model`).
    temperature, top_p : float
        Sampling parameters.  The humanizer samples hot (``0.9`` / ``0.95``)
        so rewrites do not converge on the most probable phrasing.
    max_tokens : int, optional
        Completion budget; ``None`` leaves it to the server.
    base_url : str, optional
        Endpoint override (default :attr:`default_base_url`).
    system_prompt : str, optional
        Sent as a ``system`` message ahead of the prompt when given.
    """

    api_key_env: str = ""
    key_prefix: str = ""
    default_model: str = ""
    default_base_url: str | None = None

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float = 0.9,
        top_p: float = 0.95,
        max_tokens: int | None = None,
        base_url: str | None = None,
        system_prompt: str | None = None,
    ) -> None:
        self._api_key = api_key or os.getenv(self.api_key_env, "")
        self._base_url = base_url or self.default_base_url
        self._client = openai.AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)
        self._model = model or self.default_model
        self._temperature = temperature
        self._top_p = top_p
        self._max_tokens = max_tokens
        self._system_prompt = system_prompt

    @property
    def model(self) -> str:
        return self._model

    async def is_available(self) -> bool:
        """A key is configured and carries the backend's usual prefix."""
        return bool(self._api_key and self._api_key.startswith(self.key_prefix))

    def _messages(self, prompt: str) -> list[dict[str, str]]:
        messages = []
        if self._system_prompt:
            messages.append({"role": "system", "content": self._system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    async def _call(self, prompt: str) -> tuple[str, dict[str, Any]]:
        params: dict[str, Any] = {
            "model": self._model,
            "messages": self._messages(prompt),
            "temperature": self._temperature,
            "top_p": self._top_p,
        }
        if self._max_tokens is not None:
            params["max_tokens"] = self._max_tokens

        response = await self._client.chat.completions.create(**params)
        if not response.choices:
            return "", {"model": response.model}
        choice = response.choices[0]
        meta = {
            "finish_reason": choice.finish_reason,
            "usage": response.usage.model_dump() if response.usage else {},
            "model": response.model,
        }
        return choice.message.content or "", meta


@register("openai")
class OpenAIProvider(ChatCompletionsProvider):
    """OpenAI hosted models (default ``gpt-4o-mini``)."""

    api_key_env = "OPENAI_API_KEY"
    key_prefix = "sk-"
    default_model = "gpt-4o-mini"
