"""
Sanitizer – Post-Processing of Oracle Output
=============================================
Every oracle output passes through this module before it is scored or
returned.  Three steps run in a fixed order:

1. **Meta-commentary stripping** – drop the lead-ins models love to prepend
   ("Sure,", "Here's the humanized version:") plus wrapping code fences and
   quotes.
2. **Dash normalization** – em dashes, en dashes and ``--`` become ``", "``.
   The cleanup patterns run until the text stops changing so no
   ``", ,"`` / ``", ."`` / ``" ,"`` artifact survives.
3. **Imperfection injection** – in texts longer than 300 characters, drop
   the space after one or two commas, the kind of slip a human makes.

Steps 1 and 2 are deterministic.  Step 3 draws from a ``random.Random``
that callers inject, so tests can seed it.
"""

from __future__ import annotations

import logging
import random
import re

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────
# Patterns
# ──────────────────────────────────────────────────────────────────────

META_PREFIXES: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^Here'?s? (?:is )?(?:the )?(?:humanized|de-AI'd|cleaned|improved|rewritten) (?:version|text):?\s*",
        r"^(?:Humanized|De-AI'd|Cleaned|Improved|Rewritten) (?:version|text):?\s*",
        r"^Here you go:?\s*",
        r"^Sure\b[,!]?\s*",
        r"^Okay\b[,!]?\s*",
        r"^Certainly\b[,!]?\s*",
        r"^Of course\b[,!]?\s*",
        r"^Absolutely\b[,!]?\s*",
        r"^I've (?:humanized|processed|transformed|rewritten).*?:\s*",
    )
)

_FENCE_OPEN = re.compile(r"^```[\w-]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```$")
_DASHES = re.compile(r"—|–|--")
# A double quote always closes; a single quote only when it is not an
# apostrophe inside a word.
_INNER_CLOSING_QUOTE = {
    "\"": re.compile(r"\""),
    "'": re.compile(r"(?<!\w)'|'(?!\w)"),
}

# Ordered cleanup pairs; applied together until a fixed point is reached.
_DASH_ARTIFACTS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r",\s*,"), ","),
    (re.compile(r",\s*\."), "."),
    (re.compile(r"\s+,"), ","),
)

IMPERFECTION_MIN_LENGTH = 300
IMPERFECTION_MIN_COMMAS = 5
MAX_IMPERFECTIONS = 2


# ──────────────────────────────────────────────────────────────────────
# Steps
# ──────────────────────────────────────────────────────────────────────

def _is_wholly_quoted(text: str) -> bool:
    """True when the opening quote is closed only by the last character."""
    if len(text) < 2 or text[0] != text[-1] or text[0] not in _INNER_CLOSING_QUOTE:
        return False
    return not _INNER_CLOSING_QUOTE[text[0]].search(text[1:-1])


def strip_meta_commentary(text: str) -> str:
    """Remove lead-in boilerplate, wrapping code fences and wrapping quotes."""
    cleaned = text.strip()
    for prefix in META_PREFIXES:
        cleaned = prefix.sub("", cleaned, count=1)

    cleaned = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", cleaned, count=1), count=1)

    if _is_wholly_quoted(cleaned):
        cleaned = cleaned[1:-1]

    return cleaned.strip()


def normalize_dashes(text: str) -> str:
    """Replace every dash with ``", "`` and collapse the resulting artifacts.

    Idempotent: ``normalize_dashes(normalize_dashes(x)) == normalize_dashes(x)``.
    """
    result = _DASHES.sub(", ", text)
    while True:
        before = result
        for pattern, replacement in _DASH_ARTIFACTS:
            result = pattern.sub(replacement, result)
        if result == before:
            return result


def inject_imperfections(text: str, rng: random.Random) -> str:
    """Drop the space after up to two randomly chosen ``", "`` occurrences.

    Only texts longer than :data:`IMPERFECTION_MIN_LENGTH` characters with
    more than :data:`IMPERFECTION_MIN_COMMAS` comma-space pairs are touched.
    """
    if len(text) <= IMPERFECTION_MIN_LENGTH:
        return text

    positions = [m.start() for m in re.finditer(", ", text)]
    if len(positions) <= IMPERFECTION_MIN_COMMAS:
        return text

    count = min(MAX_IMPERFECTIONS, len(positions) // 10)
    if count == 0:
        return text

    chosen = rng.sample(range(len(positions)), count)
    # Highest offset first so earlier removals never shift pending ones.
    for idx in sorted(chosen, reverse=True):
        pos = positions[idx]
        text = text[:pos] + "," + text[pos + 2:]
    return text


# ──────────────────────────────────────────────────────────────────────
# Public API
# ──────────────────────────────────────────────────────────────────────

class Sanitizer:
    """Apply all sanitization steps to raw oracle output.

    Parameters
    ----------
    rng : random.Random, optional
        Source of randomness for imperfection injection.  A fresh,
        OS-seeded ``random.Random`` is created when omitted.
    enable_imperfections : bool
        Set ``False`` to make the sanitizer fully deterministic.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        enable_imperfections: bool = True,
    ) -> None:
        self._rng = rng if rng is not None else random.Random()
        self._enable_imperfections = enable_imperfections

    def sanitize(self, raw_text: str | None, with_imperfections: bool = True) -> str:
        """Return the sanitized text.  Never raises."""
        if not raw_text:
            return ""
        text = normalize_dashes(strip_meta_commentary(str(raw_text)))
        if with_imperfections and self._enable_imperfections:
            text = inject_imperfections(text, self._rng)
        return text

    __call__ = sanitize


def sanitize(
    raw_text: str | None,
    rng: random.Random | None = None,
    with_imperfections: bool = True,
) -> str:
    """Functional shortcut for :meth:`Sanitizer.sanitize`."""
    return Sanitizer(rng=rng).sanitize(raw_text, with_imperfections=with_imperfections)
