"""
Prompt Builders
===============
Every oracle call in the pipeline receives exactly one prompt string built
here.  Templates are module-level constants; ``{placeholders}`` are filled
at runtime so the wording can change without touching control flow.

* :func:`build_deai_prompt` – phase 1, strip machine-typical patterns.
* :func:`build_transform_prompt` + :func:`build_input_block` – phase 2,
  rewrite in the requested mode and intensity.
* :func:`build_verification_prompt` – ask for a JSON verdict.
* :func:`build_improvement_prompt` – retry with the verifier's feedback.

The improvement prompt adds targeted rewrite rules chosen from
:data:`REWRITE_DIRECTIVES`, a static table of ``(predicate, directive)``
pairs evaluated against each detected issue's category.
"""

from __future__ import annotations

from typing import Callable, Sequence

from humanizer.schemas import (
    MAX_STYLE_SAMPLES,
    VERIFICATION_THRESHOLD,
    DetectedIssue,
    Intensity,
    Mode,
    TransformRequest,
    Verdict,
)

_RULE = "=" * 77

# ──────────────────────────────────────────────────────────────────────
# Phase 1 – De-AI
# ──────────────────────────────────────────────────────────────────────

DEAI_TEMPLATE = (
    "You are a text cleaning agent. Your only job is to REMOVE the patterns "
    "that AI detectors look for. Do not add personality yet.\n\n"
    "Remove or rewrite:\n"
    "- Every em dash and en dash. Use a comma, a period, or restructure.\n"
    "- Inflated vocabulary: utilize, leverage, facilitate, comprehensive, "
    "robust, innovative, delve, crucial, furthermore, moreover, additionally, "
    "subsequently, paradigm, endeavor. Use the plain word instead.\n"
    "- Stock phrases: \"It is important to note that\", \"In order to\", "
    "\"Due to the fact that\", \"At this point in time\", \"In terms of\", "
    "\"A wide variety of\". Just say the thing.\n"
    "- Uniform sentence length. Mix short, medium and long sentences.\n"
    "- Overused starters (This, It, The, There is) in more than 30% of "
    "sentences.\n"
    "- Preview introductions and summarizing conclusions.\n\n"
    "Keep the meaning 100% intact. The output should be slightly shorter "
    "than the input.\n\n"
    f"{_RULE}\n"
    "TEXT TO CLEAN\n"
    f"{_RULE}\n\n"
    "{text}\n\n"
    f"{_RULE}\n"
    "OUTPUT (cleaned text only, no explanations)\n"
    f"{_RULE}\n"
)

# ──────────────────────────────────────────────────────────────────────
# Phase 2 – Transform
# ──────────────────────────────────────────────────────────────────────

TRANSFORM_TEMPLATE = (
    "You are a text transformation expert. Rewrite the text so it reads as "
    "if a person wrote it and passes AI detectors.\n\n"
    "Absolute rules:\n"
    "1. No em dashes, ever.\n"
    "2. Simple words over fancy ones.\n"
    "3. Vary sentence length dramatically (3-word and 30-word sentences).\n"
    "4. Use contractions.\n"
    "5. Natural speech markers where they fit: so, well, honestly, kind of.\n"
    "6. No previews, no summaries, uneven paragraph lengths.\n"
    "7. One or two missing spaces after commas in longer texts is fine.\n"
    "8. Return only the rewritten text, with no meta-commentary.\n\n"
    f"{_RULE}\n"
    "CURRENT CONFIGURATION\n"
    f"{_RULE}\n\n"
    "{mode_instruction}\n\n"
    "{intensity_instruction}\n\n"
    "{preservation_instruction}\n"
    "{audience_instruction}"
)

MODE_INSTRUCTIONS: dict[Mode, str] = {
    Mode.CASUAL: (
        "MODE: CASUAL - Very informal, slang okay, lots of contractions, "
        "first person, like texting a friend."
    ),
    Mode.PROFESSIONAL: (
        "MODE: PROFESSIONAL - Warm but appropriate, still use contractions, "
        "friendly colleague tone."
    ),
    Mode.ACADEMIC: (
        "MODE: ACADEMIC - More formal but not stiff, can use \"I\", show "
        "genuine curiosity, good professor style."
    ),
    Mode.CREATIVE: (
        "MODE: CREATIVE - Maximum variety, emotional depth, unconventional "
        "allowed, natural storyteller."
    ),
    Mode.CONVERSATIONAL: (
        "MODE: CONVERSATIONAL - Direct address, questions, stream of "
        "consciousness, podcast or chat feel."
    ),
}

INTENSITY_INSTRUCTIONS: dict[Intensity, str] = {
    Intensity.LIGHT: (
        "INTENSITY: Light - Subtle changes, keep the structure mostly, just "
        "fix obvious AI patterns."
    ),
    Intensity.MEDIUM: (
        "INTENSITY: Medium - Noticeable changes, reorganize some, add personality."
    ),
    Intensity.HEAVY: (
        "INTENSITY: Heavy - Major transformation, completely restructure, "
        "full personality."
    ),
}

STYLE_SAMPLES_TEMPLATE = (
    f"\n{_RULE}\n"
    "USER WRITING SAMPLES (match this style)\n"
    f"{_RULE}\n\n"
    "{samples}\n\n"
    "Match this user's natural patterns while rewriting.\n"
)

INPUT_TEMPLATE = (
    f"\n{_RULE}\n"
    "TEXT TO HUMANIZE\n"
    f"{_RULE}\n\n"
    "{text}\n\n"
    f"{_RULE}\n"
    "OUTPUT (humanized text only)\n"
    f"{_RULE}\n"
)

# ──────────────────────────────────────────────────────────────────────
# Verification
# ──────────────────────────────────────────────────────────────────────

VERIFICATION_TEMPLATE = (
    "You are an AI detection expert. Predict whether the text below would be "
    "flagged by AI detectors (perplexity, burstiness, n-gram frequency and "
    "stylometric analysis).\n\n"
    "Start at 1.0 and subtract:\n"
    "- each em dash: 0.05\n"
    "- each inflated word (utilize, leverage, delve, crucial, moreover): 0.02\n"
    "- each stock AI phrase: 0.03\n"
    "- uniform sentence lengths: 0.15\n"
    "- no contractions in 100+ words: 0.10\n"
    "- no spacing typos in 200+ words: 0.02\n"
    "- 30%+ of sentences starting with This/It/The: 0.05\n"
    "- uniform paragraphs, no hedging, overly formal: 0.05 each\n\n"
    "A score of {threshold:.2f} or higher passes.\n\n"
    "Return ONLY this JSON, with no text before or after it and no newlines "
    "inside string values:\n"
    "{{\n"
    '  "score": 0.XX,\n'
    '  "passed": true,\n'
    '  "overallAssessment": "1-2 sentence summary",\n'
    '  "detectedIssues": [\n'
    "    {{\n"
    '      "category": "Category Name",\n'
    '      "severity": "high",\n'
    '      "description": "What the issue is",\n'
    '      "examples": ["exact quote from the text"],\n'
    '      "suggestedFix": "How to fix it"\n'
    "    }}\n"
    "  ],\n"
    '  "improvementSuggestions": ["Specific action"],\n'
    '  "positiveAspects": ["What works well"],\n'
    '  "confidenceLevel": "high"\n'
    "}}\n\n"
    "TEXT TO ANALYZE:\n"
    "---\n"
    "{text}\n"
    "---\n\n"
    "ANALYSIS (valid JSON only):"
)

# ──────────────────────────────────────────────────────────────────────
# Improvement
# ──────────────────────────────────────────────────────────────────────

IMPROVEMENT_TEMPLATE = (
    f"\n{_RULE}\n"
    "IMPROVEMENT ROUND {attempt_number} - SCORE: {score_pct:.1f}% "
    "(Need {threshold_pct:.0f}%+)\n"
    f"{_RULE}\n\n"
    "FAILED TEXT:\n"
    "---\n"
    "{failed_text}\n"
    "---\n\n"
    "ISSUES TO FIX:\n"
    "{issues}\n\n"
    "KEY IMPROVEMENTS NEEDED:\n"
    "{suggestions}\n\n"
    "WHAT TO KEEP (these work well):\n"
    "{positives}\n\n"
    f"{_RULE}\n"
    "REWRITE RULES FOR THIS ROUND\n"
    f"{_RULE}\n\n"
    "{directives}\n\n"
    "ORIGINAL TEXT TO RE-HUMANIZE:\n"
    "---\n"
    "{original_text}\n"
    "---\n\n"
    "OUTPUT (improved humanized text only, no explanations):\n"
)


def _category_mentions(*keywords: str) -> Callable[[str], bool]:
    """Predicate over a lower-cased issue category."""

    def predicate(category: str) -> bool:
        return any(k in category for k in keywords)

    return predicate


REWRITE_DIRECTIVES: tuple[tuple[Callable[[str], bool], str], ...] = (
    (
        _category_mentions("em dash"),
        "REMOVE ALL EM DASHES (—). Replace them with commas or periods.",
    ),
    (
        _category_mentions("vocabulary", "word"),
        "REPLACE FANCY WORDS with simple alternatives (utilize→use, "
        "comprehensive→full, etc.).",
    ),
    (
        _category_mentions("sentence", "burst"),
        "VARY SENTENCE LENGTH. Mix very short (3-5 words) with medium and "
        "long sentences.",
    ),
    (
        _category_mentions("contraction"),
        "ADD CONTRACTIONS. Use don't, won't, it's, that's, etc.",
    ),
    (
        _category_mentions("spacing", "typo"),
        "ADD 1-2 MISSING SPACES after commas (like this,example).",
    ),
)


def select_directives(issues: Sequence[DetectedIssue]) -> list[str]:
    """Return the directives triggered by *issues*, in table order."""
    categories = [issue.category.lower() for issue in issues]
    return [
        directive
        for predicate, directive in REWRITE_DIRECTIVES
        if any(predicate(c) for c in categories)
    ]


def _bullets(items: Sequence[str], empty: str = "- (none)") -> str:
    return "\n".join(f"- {item}" for item in items) if items else empty


def _format_issue(issue: DetectedIssue) -> str:
    examples = ""
    if issue.examples:
        quoted = '", "'.join(issue.examples[:2])
        examples = f'\n     Examples: "{quoted}"'
    return (
        f"  - [{issue.severity.value.upper()}] {issue.category}: "
        f"{issue.description}{examples}\n     Fix: {issue.suggested_fix}"
    )


# ──────────────────────────────────────────────────────────────────────
# Builders
# ──────────────────────────────────────────────────────────────────────

def build_deai_prompt(text: str) -> str:
    return DEAI_TEMPLATE.format(text=text)


def build_transform_prompt(
    request: TransformRequest,
    style_samples: Sequence[str] | None = None,
) -> str:
    """Configuration block for the transform and improvement phases.

    *style_samples* overrides ``request.style_samples`` when given; only the
    most recent :data:`MAX_STYLE_SAMPLES` are embedded.
    """
    samples = list(style_samples if style_samples is not None else request.style_samples)
    prompt = TRANSFORM_TEMPLATE.format(
        mode_instruction=MODE_INSTRUCTIONS[request.mode],
        intensity_instruction=INTENSITY_INSTRUCTIONS[request.intensity],
        preservation_instruction=(
            "Keep all key facts and information exactly."
            if request.preserve_key_points
            else "Slight rephrasing of facts is okay for flow."
        ),
        audience_instruction=(
            f"\nAudience: {request.target_audience}\n" if request.target_audience else ""
        ),
    )
    recent = samples[-MAX_STYLE_SAMPLES:]
    if recent:
        prompt += STYLE_SAMPLES_TEMPLATE.format(
            samples="\n\n".join(
                f"Sample {i}:\n{text}" for i, text in enumerate(recent, 1)
            )
        )
    return prompt


def build_input_block(text: str) -> str:
    return INPUT_TEMPLATE.format(text=text)


def build_verification_prompt(text: str) -> str:
    return VERIFICATION_TEMPLATE.format(text=text, threshold=VERIFICATION_THRESHOLD)


def build_improvement_prompt(
    original_text: str,
    failed_text: str,
    verdict: Verdict,
    attempt_number: int,
) -> str:
    """Feedback block for an improvement round (appended to the transform prompt)."""
    directives = select_directives(verdict.detected_issues)
    return IMPROVEMENT_TEMPLATE.format(
        attempt_number=attempt_number,
        score_pct=verdict.score * 100,
        threshold_pct=VERIFICATION_THRESHOLD * 100,
        failed_text=failed_text,
        issues="\n\n".join(_format_issue(i) for i in verdict.detected_issues)
        or "  - (none reported)",
        suggestions=_bullets(verdict.improvement_suggestions),
        positives=_bullets(verdict.positive_aspects),
        directives="\n".join(f"{n}. {d}" for n, d in enumerate(directives, 1))
        or "Apply the fixes listed above.",
        original_text=original_text,
    )
