"""
Humanizer Data Schemas
======================
Typed dataclasses that carry data between every pipeline phase.
Records handed back to callers (:class:`Attempt`, :class:`Verdict`,
:class:`RunResult`) are frozen so a finished run can never be altered
after the orchestrator returns it.

The ``passed`` flag on :class:`Verdict` and :class:`Attempt` is always
derived from ``score`` and the fixed :data:`VERIFICATION_THRESHOLD`; it is
never accepted from the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Sequence

VERIFICATION_THRESHOLD = 0.75
MAX_ATTEMPTS = 4  # 1 initial transform + 3 improvement rounds
MAX_STYLE_SAMPLES = 5


def clamp_score(value: float) -> float:
    """Clamp *value* into ``[0, 1]``."""
    return min(1.0, max(0.0, float(value)))


class Mode(str, Enum):
    """Target register of the rewritten text."""

    CASUAL = "casual"
    PROFESSIONAL = "professional"
    ACADEMIC = "academic"
    CREATIVE = "creative"
    CONVERSATIONAL = "conversational"


class Intensity(str, Enum):
    """How aggressively the text is restructured."""

    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ProcessingStatus(str, Enum):
    """Phase reported through :class:`ProgressUpdate`."""

    DEAI = "deai"
    TRANSFORMING = "transforming"
    VERIFYING = "verifying"
    IMPROVING = "improving"
    COMPLETED = "completed"
    ERROR = "error"


class FailureCategory(Enum):
    """Bucket for oracle transport failures (see ``classify_failure``)."""

    TIMEOUT = auto()
    AUTH = auto()
    QUOTA = auto()
    TRANSIENT = auto()
    PERMANENT = auto()


@dataclass(frozen=True)
class TransformRequest:
    """Immutable input of one pipeline run.

    Attributes:
        text:                The text to transform (must not be blank).
        mode:                Target register.
        intensity:           How far the rewrite may stray from the input.
        preserve_key_points: Keep every fact exactly when ``True``.
        target_audience:     Optional free-text audience description.
        style_samples:       Prior accepted outputs, most-recent-last.  Only
                             the last :data:`MAX_STYLE_SAMPLES` are kept.
    """

    text: str
    mode: Mode = Mode.CASUAL
    intensity: Intensity = Intensity.MEDIUM
    preserve_key_points: bool = True
    target_audience: str | None = None
    style_samples: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.text, str) or not self.text.strip():
            raise ValueError("TransformRequest.text must be a non-empty string")
        object.__setattr__(self, "mode", Mode(self.mode))
        object.__setattr__(self, "intensity", Intensity(self.intensity))
        samples = tuple(str(s) for s in self.style_samples if s)
        object.__setattr__(self, "style_samples", samples[-MAX_STYLE_SAMPLES:])


@dataclass
class ModelResponse:
    """Single oracle response.

    Attributes:
        provider_name:  Canonical name of the provider (e.g. ``"groq"``).
        phase:          Pipeline phase that issued the call (``"deai"``,
                        ``"transform"``, ``"verify"``, ``"improve"``).
        text:           The generated text (may be empty).
        latency:        Wall-clock seconds for the API call.
        metadata:       Provider-specific metadata (token counts, model, …).
    """

    provider_name: str
    phase: str
    text: str
    latency: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DetectedIssue:
    """One problem the verifier found in a candidate text."""

    category: str
    severity: Severity = Severity.MEDIUM
    description: str = ""
    examples: tuple[str, ...] = ()
    suggested_fix: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "severity": self.severity.value,
            "description": self.description,
            "examples": list(self.examples),
            "suggested_fix": self.suggested_fix,
        }


@dataclass(frozen=True)
class Verdict:
    """Structured result of verifying one candidate.

    ``score`` is clamped into ``[0, 1]`` on construction and ``passed`` is
    recomputed from it, so ``passed == (score >= VERIFICATION_THRESHOLD)``
    holds for every instance regardless of how it was built.
    """

    score: float
    overall_assessment: str = ""
    detected_issues: tuple[DetectedIssue, ...] = ()
    improvement_suggestions: tuple[str, ...] = ()
    positive_aspects: tuple[str, ...] = ()
    confidence_level: ConfidenceLevel = ConfidenceLevel.MEDIUM
    passed: bool = field(init=False)

    def __post_init__(self) -> None:
        score = clamp_score(self.score)
        object.__setattr__(self, "score", score)
        object.__setattr__(self, "passed", score >= VERIFICATION_THRESHOLD)
        object.__setattr__(self, "detected_issues", tuple(self.detected_issues))
        object.__setattr__(
            self, "improvement_suggestions", tuple(self.improvement_suggestions)
        )
        object.__setattr__(self, "positive_aspects", tuple(self.positive_aspects))

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "passed": self.passed,
            "overall_assessment": self.overall_assessment,
            "detected_issues": [i.to_dict() for i in self.detected_issues],
            "improvement_suggestions": list(self.improvement_suggestions),
            "positive_aspects": list(self.positive_aspects),
            "confidence_level": self.confidence_level.value,
        }


@dataclass(frozen=True)
class Attempt:
    """One scored transform-and-verify cycle."""

    attempt_number: int
    candidate_text: str
    score: float
    feedback: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    passed: bool = field(init=False)

    def __post_init__(self) -> None:
        score = clamp_score(self.score)
        object.__setattr__(self, "score", score)
        object.__setattr__(self, "passed", score >= VERIFICATION_THRESHOLD)

    @classmethod
    def from_verdict(cls, attempt_number: int, candidate_text: str, verdict: Verdict) -> Attempt:
        return cls(
            attempt_number=attempt_number,
            candidate_text=candidate_text,
            score=verdict.score,
            feedback=verdict.overall_assessment,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt_number": self.attempt_number,
            "candidate_text": self.candidate_text,
            "score": self.score,
            "passed": self.passed,
            "feedback": self.feedback,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class ProgressUpdate:
    """Observation emitted at every phase transition.

    Attributes:
        status:          Current phase.
        current_attempt: Attempt counter (0 during the de-AI phase).
        max_attempts:    The attempt budget.
        message:         Human-readable status line.
        score:           Latest or final score, when one is known.
    """

    status: ProcessingStatus
    current_attempt: int
    max_attempts: int
    message: str
    score: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "current_attempt": self.current_attempt,
            "max_attempts": self.max_attempts,
            "score": self.score,
            "message": self.message,
        }


@dataclass(frozen=True)
class RunResult:
    """Final output of one pipeline execution.

    Attributes:
        success:               ``final_score >= VERIFICATION_THRESHOLD``.
        original_text:         The request text.
        final_text:            Best-scoring candidate (not necessarily the last).
        final_score:           Score of ``final_text``.
        attempts:              Full ordered attempt history.
        total_processing_time: Wall-clock seconds for the whole run.
        mode:                  Echo of the request mode.
        intensity:             Echo of the request intensity.
        run_id:                Short identifier used in events and history.
    """

    success: bool
    original_text: str
    final_text: str
    final_score: float
    attempts: tuple[Attempt, ...]
    total_processing_time: float
    mode: Mode = Mode.CASUAL
    intensity: Intensity = Intensity.MEDIUM
    run_id: str = ""

    @classmethod
    def from_attempts(
        cls,
        request: TransformRequest,
        attempts: Sequence[Attempt],
        final_text: str,
        final_score: float,
        total_processing_time: float,
        run_id: str = "",
    ) -> RunResult:
        return cls(
            success=final_score >= VERIFICATION_THRESHOLD,
            original_text=request.text,
            final_text=final_text,
            final_score=final_score,
            attempts=tuple(attempts),
            total_processing_time=total_processing_time,
            mode=request.mode,
            intensity=request.intensity,
            run_id=run_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "original_text": self.original_text,
            "final_text": self.final_text,
            "final_score": self.final_score,
            "attempts": [a.to_dict() for a in self.attempts],
            "total_processing_time": self.total_processing_time,
            "mode": self.mode.value,
            "intensity": self.intensity.value,
            "run_id": self.run_id,
        }
