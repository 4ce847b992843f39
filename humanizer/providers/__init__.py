"""
Providers package – auto-imports all concrete providers to trigger
``@register(...)`` decorators.
"""

from humanizer.providers.base import ModelProvider, ProviderError, classify_failure
from humanizer.providers.factory import ProviderFactory, default_provider_name, register

# Import concrete providers so they self-register via @register(...)
from humanizer.providers import (  # noqa: F401
    groq_provider,
    huggingface_provider,
    openai_provider,
    anthropic_provider,
    gemini_provider,
    ollama_provider,
)

__all__ = [
    "ModelProvider",
    "ProviderError",
    "ProviderFactory",
    "classify_failure",
    "default_provider_name",
    "register",
]
