"""
Humanizer Package
==================
Rewrites machine-sounding text into natural human prose through a
de-AI → transform → verify → improve loop driven by a text oracle.
"""

from humanizer.orchestrator import Humanizer
from humanizer.sanitizer import sanitize
from humanizer.schemas import RunResult, TransformRequest, Verdict
from humanizer.verdict_parser import parse_verdict

__all__ = [
    "Humanizer",
    "RunResult",
    "TransformRequest",
    "Verdict",
    "parse_verdict",
    "sanitize",
]
