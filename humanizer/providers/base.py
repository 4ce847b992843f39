"""
Model Provider – Strategy Interface (Abstract Base)
====================================================
Every LLM backend implements this interface so the orchestrator can treat
them interchangeably (Strategy Pattern).

Failures raised by a backend are wrapped in :class:`ProviderError` so
callers can tell an oracle fault apart from a bug in the pipeline itself.
The original exception stays reachable through ``__cause__``.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod

from humanizer.schemas import FailureCategory, ModelResponse


def classify_failure(exc: BaseException) -> FailureCategory:
    """Categorise an exception into a failure bucket."""
    name = type(exc).__name__.lower()
    msg = str(exc).lower()

    # Timeout
    if isinstance(exc, asyncio.TimeoutError):
        return FailureCategory.TIMEOUT
    if "timeout" in name or "timeout" in msg or "timed out" in msg:
        return FailureCategory.TIMEOUT

    # Auth
    if "auth" in name or "auth" in msg or "401" in msg or "403" in msg:
        return FailureCategory.AUTH
    if "permission" in msg or "api key" in msg or "invalid key" in msg:
        return FailureCategory.AUTH

    # Quota / rate-limit
    if "ratelimit" in name or "429" in msg or "rate limit" in msg or "quota" in msg:
        return FailureCategory.QUOTA

    # Non-retryable
    if "400" in msg or "404" in msg or "invalid" in name:
        return FailureCategory.PERMANENT

    return FailureCategory.TRANSIENT


class ProviderError(Exception):
    """An oracle call failed (network, auth, quota, timeout, …).

    Attributes
    ----------
    provider : str
        Name of the provider that failed.
    category : FailureCategory
        Result of :func:`classify_failure` on the underlying exception.
    """

    def __init__(self, provider: str, category: FailureCategory, message: str) -> None:
        super().__init__(f"{provider} failed [{category.name}]: {message}")
        self.provider = provider
        self.category = category

    @classmethod
    def wrap(cls, provider: str, exc: BaseException) -> ProviderError:
        return cls(provider, classify_failure(exc), f"{type(exc).__name__}: {exc}")


class ModelProvider(ABC):
    """Abstract async LLM provider.

    Subclasses must implement :meth:`_call` which performs the raw API
    request and returns the generated text.  The public :meth:`generate`
    method wraps ``_call`` with latency measurement, error wrapping and
    uniform :class:`ModelResponse` construction.

    Attributes
    ----------
    name : str
        Canonical provider name used in logs, events and history.
    """

    name: str = "base"

    @abstractmethod
    async def _call(self, prompt: str) -> tuple[str, dict]:
        """Perform the actual API call.

        Returns
        -------
        tuple[str, dict]
            ``(generated_text, metadata_dict)``
        """
        ...

    async def generate(self, prompt: str, phase: str = "transform") -> ModelResponse:
        """Send one prompt and return the response.

        Raises
        ------
        ProviderError
            If the backend raised for any reason.
        """
        t0 = time.perf_counter()
        try:
            text, meta = await self._call(prompt)
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError.wrap(self.name, exc) from exc
        elapsed = time.perf_counter() - t0
        return ModelResponse(
            provider_name=self.name,
            phase=phase,
            text=text or "",
            latency=elapsed,
            metadata=meta,
        )

    async def is_available(self) -> bool:
        """Quick health-check – override for providers that may be offline."""
        return True
