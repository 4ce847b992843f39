"""
Ollama Provider – Local LLMs
==============================
Async wrapper around a locally-running Ollama server via its HTTP API.

Any model tag installed locally can be targeted (``"llama3.1"``,
``"mistral"``, ``"qwen2.5:14b"``).  The provider name becomes
``ollama:<tag>`` so runs and history rows record which local model
produced the text.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from humanizer.providers.base import ModelProvider
from humanizer.providers.factory import register

logger = logging.getLogger(__name__)


def _ollama_base_url() -> str:
    """Resolve the Ollama base URL from env or default."""
    return os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")


@register("ollama")
class OllamaProvider(ModelProvider):
    """Strategy implementation for a local Ollama instance.

    Parameters
    ----------
    base_url : str, optional
        Ollama HTTP endpoint (default from ``OLLAMA_BASE_URL`` env var or
        ``http://localhost:11434``).
    model : str
        Model tag to use (default ``"llama3.1"``).
    temperature : float
        Sampling temperature passed through ``options`` (default ``0.9``).
    timeout : float
        Request timeout in seconds (default ``300``).  Local models can be
        slow on long inputs.
    """

    def __init__(
        self,
        base_url: str | None = None,
        model: str = "llama3.1",
        temperature: float = 0.9,
        timeout: float = 300.0,
    ) -> None:
        self._base_url = base_url or _ollama_base_url()
        self._model = model
        self._temperature = temperature
        self._timeout = timeout
        self.name = f"ollama:{model}"

    async def _call(self, prompt: str) -> tuple[str, dict[str, Any]]:
        payload = {
            "model": self._model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": self._temperature},
        }
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(f"{self._base_url}/api/generate", json=payload)
            resp.raise_for_status()
            data = resp.json()

        meta = {
            "model": data.get("model", self._model),
            "total_duration": data.get("total_duration"),
            "eval_count": data.get("eval_count"),
        }
        return data.get("response", ""), meta

    async def is_available(self) -> bool:
        """Check if the Ollama server is reachable and the model is pulled."""
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                resp = await client.get(f"{self._base_url}/api/tags")
        except (httpx.ConnectError, httpx.TimeoutException):
            logger.debug("Ollama not reachable at %s", self._base_url)
            return False
        if resp.status_code != 200:
            return False
        tags = {m.get("name", "") for m in resp.json().get("models", [])}
        base_tags = {t.split(":")[0] for t in tags}
        return self._model in tags or self._model.split(":")[0] in base_tags
