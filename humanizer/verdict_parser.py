"""
Verdict Parser – Defensive Reading of Verifier Output
======================================================
The verification oracle is asked for a JSON object but frequently wraps it
in prose, leaves trailing commas, or answers in plain English.  This module
turns whatever came back into a well-formed :class:`Verdict` through an
ordered fallback chain; the first strategy that yields a result wins:

1. **Direct parse** – the trimmed text starts with ``{``.
2. **Extraction parse** – first ``{`` to last ``}``, repaired, then parsed.
3. **Score-only** – a bare ``"score": <number>`` anywhere in the text.
4. **Keyword heuristic** – phrases like "excellent" or "ai-like".

:func:`parse_verdict` never raises.  A text that defeats every strategy
still produces a low-confidence verdict scored 0.5 ("needs improvement"),
so the orchestrator always has a basis for its accept/retry decision.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Callable

from humanizer.schemas import (
    ConfidenceLevel,
    DetectedIssue,
    Severity,
    Verdict,
    clamp_score,
)

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 0.5

PARSE_ERROR_ISSUE = DetectedIssue(
    category="Parse Error",
    severity=Severity.MEDIUM,
    description="Verification response could not be parsed",
    examples=(),
    suggested_fix="Re-run with cleaner output",
)

DEFAULT_VERDICT = Verdict(
    score=DEFAULT_SCORE,
    overall_assessment="Unable to parse verification. Assuming needs improvement.",
    detected_issues=(PARSE_ERROR_ISSUE,),
    improvement_suggestions=("Re-process the text",),
    positive_aspects=(),
    confidence_level=ConfidenceLevel.LOW,
)

# Checked top to bottom; the first rung with a matching phrase sets the score.
KEYWORD_LADDER: tuple[tuple[tuple[str, ...], float], ...] = (
    (("excellent", "very human"), 0.85),
    (("good", "mostly human"), 0.75),
    (("needs work", "ai patterns"), 0.55),
    (("ai-like", "detected"), 0.40),
)

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")
_SCORE_FIELD = re.compile(r'"score"\s*:\s*"?(\d*\.?\d+)')
_CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F]")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_MULTI_SPACE = re.compile(r" {2,}")


class VerdictParseError(ValueError):
    """Raised internally when a strategy cannot produce a verdict."""


# ------------------------------------------------------------------ #
#  Normalization                                                      #
# ------------------------------------------------------------------ #

def _coerce_score(value: Any) -> float:
    if isinstance(value, bool):
        return DEFAULT_SCORE
    if isinstance(value, (int, float)):
        try:
            score = float(value)
        except OverflowError:
            return 1.0 if value > 0 else 0.0
    elif isinstance(value, str):
        try:
            score = float(value.strip())
        except ValueError:
            return DEFAULT_SCORE
    else:
        return DEFAULT_SCORE
    if math.isnan(score):
        return DEFAULT_SCORE
    return clamp_score(score)


def _coerce_enum(value: Any, enum_cls: type, default: Any) -> Any:
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass
    return default


def _coerce_str(value: Any, default: str) -> str:
    if value is None or value == "":
        return default
    return str(value)


def _coerce_str_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(v) for v in value)


def _normalize_issue(raw: Any) -> DetectedIssue:
    data = raw if isinstance(raw, dict) else {}
    return DetectedIssue(
        category=_coerce_str(data.get("category"), "Unknown"),
        severity=_coerce_enum(data.get("severity"), Severity, Severity.MEDIUM),
        description=_coerce_str(data.get("description"), "No description"),
        examples=_coerce_str_list(data.get("examples")),
        suggested_fix=_coerce_str(
            data.get("suggestedFix", data.get("suggested_fix")), "No fix provided"
        ),
    )


def normalize_verdict(parsed: Any) -> Verdict:
    """Build a :class:`Verdict` from a decoded JSON value.

    Accepts the camelCase keys the verification prompt asks for as well as
    their snake_case spellings.  ``passed`` in the payload is ignored: it is
    recomputed from the clamped score.

    Raises
    ------
    VerdictParseError
        If *parsed* is not a JSON object.
    """
    if not isinstance(parsed, dict):
        raise VerdictParseError(f"expected a JSON object, got {type(parsed).__name__}")

    def pick(camel: str, snake: str) -> Any:
        return parsed.get(camel, parsed.get(snake))

    score = _coerce_score(parsed.get("score"))
    issues = pick("detectedIssues", "detected_issues")

    return Verdict(
        score=score,
        overall_assessment=_coerce_str(
            pick("overallAssessment", "overall_assessment"),
            f"Score: {score * 100:.1f}%",
        ),
        detected_issues=tuple(
            _normalize_issue(i) for i in issues
        ) if isinstance(issues, list) else (),
        improvement_suggestions=_coerce_str_list(
            pick("improvementSuggestions", "improvement_suggestions")
        ),
        positive_aspects=_coerce_str_list(pick("positiveAspects", "positive_aspects")),
        confidence_level=_coerce_enum(
            pick("confidenceLevel", "confidence_level"),
            ConfidenceLevel,
            ConfidenceLevel.MEDIUM,
        ),
    )


# ------------------------------------------------------------------ #
#  Strategies                                                         #
# ------------------------------------------------------------------ #

def repair_json(fragment: str) -> str:
    """Fix the JSON mistakes models make most often."""
    fixed = _CONTROL_CHARS.sub(" ", fragment)
    fixed = fixed.replace("\n", " ").replace("\r", " ").replace("\t", " ")
    fixed = _TRAILING_COMMA.sub(r"\1", fixed)
    return _MULTI_SPACE.sub(" ", fixed)


def _direct_parse(raw: str) -> Verdict | None:
    trimmed = raw.strip()
    if not trimmed.startswith("{"):
        return None
    try:
        return normalize_verdict(json.loads(trimmed))
    except (json.JSONDecodeError, VerdictParseError):
        return None


def _extraction_parse(raw: str) -> Verdict | None:
    match = _JSON_BLOCK.search(raw)
    if not match:
        return None
    try:
        return normalize_verdict(json.loads(repair_json(match.group(0))))
    except (json.JSONDecodeError, VerdictParseError):
        return None


def _score_only(raw: str) -> Verdict | None:
    match = _SCORE_FIELD.search(raw)
    if not match:
        return None
    try:
        score = float(match.group(1))
    except ValueError:
        return None
    score = clamp_score(score)
    return Verdict(
        score=score,
        overall_assessment=f"Score extracted: {score * 100:.1f}%",
        detected_issues=DEFAULT_VERDICT.detected_issues,
        improvement_suggestions=DEFAULT_VERDICT.improvement_suggestions,
        positive_aspects=(),
        confidence_level=ConfidenceLevel.LOW,
    )


def _keyword_heuristic(raw: str) -> Verdict | None:
    lowered = raw.lower()
    score = DEFAULT_SCORE
    for phrases, rung_score in KEYWORD_LADDER:
        if any(p in lowered for p in phrases):
            score = rung_score
            break
    return Verdict(
        score=score,
        overall_assessment=f"Estimated score from response analysis: {score * 100:.1f}%",
        detected_issues=DEFAULT_VERDICT.detected_issues,
        improvement_suggestions=DEFAULT_VERDICT.improvement_suggestions,
        positive_aspects=(),
        confidence_level=ConfidenceLevel.LOW,
    )


STRATEGIES: tuple[tuple[str, Callable[[str], Verdict | None]], ...] = (
    ("direct", _direct_parse),
    ("extraction", _extraction_parse),
    ("score_only", _score_only),
    ("keyword", _keyword_heuristic),
)


def parse_verdict(raw: str | None) -> Verdict:
    """Turn raw verifier output into a :class:`Verdict`.  Never raises."""
    if not isinstance(raw, str):
        logger.warning("Verifier returned %s instead of text", type(raw).__name__)
        return DEFAULT_VERDICT

    for name, strategy in STRATEGIES:
        try:
            verdict = strategy(raw)
        except Exception:
            logger.warning("Verdict %s strategy failed", name, exc_info=True)
            continue
        if verdict is not None:
            logger.debug("Verdict parsed via %s strategy (score=%.2f)", name, verdict.score)
            return verdict

    return DEFAULT_VERDICT
