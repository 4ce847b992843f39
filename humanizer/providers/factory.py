"""
Provider Factory – Registration & Creation
===========================================
Uses a module-level registry so each concrete provider can self-register
with a ``@register("name")`` decorator.  Callers use
``ProviderFactory.create("groq", api_key="…")`` without importing
concrete classes, or ``ProviderFactory.create_default()`` to honour the
``HUMANIZER_PROVIDER`` environment variable.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Type

from humanizer.providers.base import ModelProvider

logger = logging.getLogger(__name__)

_REGISTRY: dict[str, Type[ModelProvider]] = {}

DEFAULT_PROVIDER = "groq"


def register(name: str):
    """Class decorator that registers a :class:`ModelProvider` subclass."""

    def decorator(cls: Type[ModelProvider]):
        cls.name = name
        _REGISTRY[name] = cls
        return cls

    return decorator


def default_provider_name() -> str:
    """Resolve the default oracle from ``HUMANIZER_PROVIDER`` (or ``groq``)."""
    return os.getenv("HUMANIZER_PROVIDER", "").strip() or DEFAULT_PROVIDER


class ProviderFactory:
    """Factory for constructing :class:`ModelProvider` instances by name."""

    @staticmethod
    def available_names() -> list[str]:
        """Return the names of all registered providers."""
        return list(_REGISTRY.keys())

    @staticmethod
    def create(name: str, **kwargs: Any) -> ModelProvider:
        """Instantiate a registered provider.

        Supports the ``ollama:<model_tag>`` shorthand, e.g.
        ``ProviderFactory.create("ollama:mistral")`` creates an
        :class:`OllamaProvider` targeting the ``mistral`` model.

        Raises
        ------
        KeyError
            If *name* has not been registered (and is not an ``ollama:``
            prefixed shorthand).
        """
        if name.startswith("ollama:") and "ollama" in _REGISTRY:
            model_tag = name[len("ollama:"):]
            if model_tag:
                kwargs.setdefault("model", model_tag)
                return _REGISTRY["ollama"](**kwargs)

        if name not in _REGISTRY:
            raise KeyError(
                f"Unknown provider '{name}'. "
                f"Available: {ProviderFactory.available_names()}"
            )
        logger.debug("Creating provider %s", name)
        return _REGISTRY[name](**kwargs)

    @staticmethod
    def create_default(**kwargs: Any) -> ModelProvider:
        """Create the provider named by :func:`default_provider_name`."""
        return ProviderFactory.create(default_provider_name(), **kwargs)
