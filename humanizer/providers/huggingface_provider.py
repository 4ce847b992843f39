"""
Hugging Face Provider – Inference Router
=========================================
Calls the Hugging Face inference router's OpenAI-style chat completions
endpoint directly over HTTP with ``httpx``.
"""

from __future__ import annotations

import os
from typing import Any

import httpx

from humanizer.providers.base import ModelProvider
from humanizer.providers.factory import register

HF_API_URL = "https://router.huggingface.co/novita/v3/openai/chat/completions"


@register("huggingface")
class HuggingFaceProvider(ModelProvider):
    """Strategy implementation for the Hugging Face inference router.

    Parameters
    ----------
    api_key : str, optional
        Falls back to the ``HUGGINGFACE_API_KEY`` environment variable.
    model : str
        Model identifier (default ``"openai/gpt-oss-20b"``).
    api_url : str
        Chat completions endpoint.
    timeout : float
        HTTP timeout in seconds (default ``120``).
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "openai/gpt-oss-20b",
        api_url: str = HF_API_URL,
        temperature: float = 0.9,
        top_p: float = 0.95,
        max_tokens: int = 4096,
        timeout: float = 120.0,
    ) -> None:
        self._api_key = api_key or os.getenv("HUGGINGFACE_API_KEY", "")
        self._model = model
        self._api_url = api_url
        self._temperature = temperature
        self._top_p = top_p
        self._max_tokens = max_tokens
        self._timeout = timeout

    async def is_available(self) -> bool:
        """Check if a Hugging Face token is configured."""
        return bool(self._api_key and self._api_key.startswith("hf_"))

    async def _call(self, prompt: str) -> tuple[str, dict[str, Any]]:
        if not self._api_key:
            raise PermissionError("Hugging Face API key is not set (HUGGINGFACE_API_KEY)")

        payload = {
            "model": self._model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self._temperature,
            "top_p": self._top_p,
            "max_tokens": self._max_tokens,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(self._api_url, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()

        choices = data.get("choices") or [{}]
        message = choices[0].get("message") or {}
        meta = {
            "model": data.get("model", self._model),
            "usage": data.get("usage", {}),
            "finish_reason": choices[0].get("finish_reason"),
        }
        return message.get("content") or "", meta
