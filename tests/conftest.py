"""
Shared fixtures for the Humanizer test suite.
"""
from __future__ import annotations

import json
import random
from typing import Any, Sequence

import pytest

from humanizer.observer import EventBus
from humanizer.providers.base import ModelProvider
from humanizer.sanitizer import Sanitizer
from humanizer.schemas import TransformRequest


# ---------------------------------------------------------------------------
# Mock providers – canned responses, no network calls
# ---------------------------------------------------------------------------

class ScriptedProvider(ModelProvider):
    """Returns queued responses in order and records every prompt.

    When the script runs out the last response is repeated.
    """

    def __init__(self, responses: Sequence[str], name: str = "scripted") -> None:
        self.name = name
        self._responses = list(responses)
        self.prompts: list[str] = []

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    async def _call(self, prompt: str) -> tuple[str, dict[str, Any]]:
        index = min(len(self.prompts), len(self._responses) - 1)
        self.prompts.append(prompt)
        return self._responses[index], {"mock": True}


class FailingProvider(ModelProvider):
    """Succeeds for ``fail_on - 1`` calls, then raises *exc*."""

    def __init__(
        self,
        exc: Exception | None = None,
        fail_on: int = 1,
        response_text: str = "Fine text.",
        name: str = "failing",
    ) -> None:
        self.name = name
        self._exc = exc or ConnectionError("connection reset by peer")
        self._fail_on = fail_on
        self._response_text = response_text
        self.call_count = 0

    async def _call(self, prompt: str) -> tuple[str, dict[str, Any]]:
        self.call_count += 1
        if self.call_count >= self._fail_on:
            raise self._exc
        return self._response_text, {}


def verdict_json(score: float, **extra: Any) -> str:
    """Verifier output in the shape the verification prompt asks for."""
    body = {
        "score": score,
        "passed": score >= 0.75,
        "overallAssessment": f"Scored {score}",
        "detectedIssues": [],
        "improvementSuggestions": [],
        "positiveAspects": [],
        "confidenceLevel": "high",
    }
    body.update(extra)
    return json.dumps(body)


def script_for_scores(scores: Sequence[float]) -> list[str]:
    """Oracle script for a full run: de-AI, then (candidate, verdict) per score.

    Candidate *n* is the text ``"Candidate number n."``.
    """
    script = ["Plain rewrite of the input."]
    for n, score in enumerate(scores, 1):
        script.append(f"Candidate number {n}.")
        script.append(verdict_json(score))
    return script


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def seeded_sanitizer() -> Sanitizer:
    return Sanitizer(rng=random.Random(42))


@pytest.fixture
def sample_request() -> TransformRequest:
    return TransformRequest(
        text=(
            "Furthermore, it is important to note that leveraging robust "
            "frameworks facilitates comprehensive outcomes."
        ),
        mode="casual",
        intensity="medium",
    )


@pytest.fixture
def long_comma_text() -> str:
    """Over 300 characters with well over ten comma-space pairs."""
    return " ".join(
        f"We walked to the shop, bought bread, and went home number {i}."
        for i in range(8)
    )
