"""
Humanizer: AI Text Humanizer
==============================
CLI entry point.  Run with::

    python main.py "Furthermore, it is important to note that..."
    python main.py --file draft.txt --mode professional --intensity heavy
    cat draft.txt | python main.py --quick

Environment variables (set the one for the provider you use):
    HUMANIZER_PROVIDER  (default: groq)
    GROQ_API_KEY
    HUGGINGFACE_API_KEY
    OPENAI_API_KEY
    ANTHROPIC_API_KEY
    GOOGLE_API_KEY
    OLLAMA_BASE_URL  (default: http://localhost:11434)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import textwrap
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()  # Load .env file if present

from humanizer.orchestrator import Humanizer
from humanizer.providers import ProviderError, ProviderFactory
from humanizer.schemas import Intensity, Mode, ProgressUpdate, RunResult, TransformRequest, Verdict


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Humanizer: rewrite AI-generated text so it reads as human-written",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python main.py "Moreover, leveraging synergies is crucial."
              python main.py --file essay.txt --mode academic --intensity light
              python main.py --provider ollama:mistral --quick "Some text..."
              python main.py --verify-only --file candidate.txt
        """),
    )
    parser.add_argument("text", nargs="?", default=None,
                        help="Text to humanize (default: read --file or stdin).")
    parser.add_argument("--file", type=Path, default=None, help="Read the text from a file.")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in Mode],
        default=Mode.CASUAL.value,
        help="Target register (default: casual).",
    )
    parser.add_argument(
        "--intensity",
        choices=[i.value for i in Intensity],
        default=Intensity.MEDIUM.value,
        help="How aggressively to restructure (default: medium).",
    )
    parser.add_argument(
        "--provider",
        type=str,
        default=None,
        help=(
            "Oracle to use (default: $HUMANIZER_PROVIDER or groq). "
            "Use 'ollama:modelname' to target a specific local model."
        ),
    )
    parser.add_argument("--no-preserve", action="store_true",
                        help="Allow slight rephrasing of facts for flow.")
    parser.add_argument("--audience", type=str, default=None,
                        help="Optional description of the target audience.")
    parser.add_argument("--quick", action="store_true",
                        help="De-AI and transform once, without verification.")
    parser.add_argument("--verify-only", action="store_true",
                        help="Only score the text; do not rewrite it.")
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable DEBUG logging.",
    )
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )


def _read_text(args: argparse.Namespace) -> str:
    if args.text:
        return args.text
    if args.file:
        return args.file.read_text(encoding="utf-8")
    return sys.stdin.read()


def _print_progress(update: ProgressUpdate) -> None:
    score = f" ({update.score:.0%})" if update.score is not None else ""
    print(f"  [{update.current_attempt}/{update.max_attempts}] "
          f"{update.status.value:<12} {update.message}{score}", file=sys.stderr)


def _print_result(result: RunResult) -> None:
    sep = "=" * 72
    print(f"\n{sep}")
    print("  HUMANIZED TEXT")
    print(sep)
    print(f"\n{result.final_text}\n")
    print(sep)
    print(f"  Score      : {result.final_score:.2%} "
          f"({'passed' if result.success else 'below threshold'})")
    print(f"  Attempts   : {len(result.attempts)}")
    print(f"  Time       : {result.total_processing_time:.1f}s")
    for attempt in result.attempts:
        print(f"    • #{attempt.attempt_number}: {attempt.score:.2f} {attempt.feedback}")
    print(sep)


def _print_verdict(verdict: Verdict) -> None:
    print(f"Score: {verdict.score:.2%} ({'passed' if verdict.passed else 'failed'})")
    print(f"Assessment: {verdict.overall_assessment}")
    for issue in verdict.detected_issues:
        print(f"  - [{issue.severity.value}] {issue.category}: {issue.description}")
    for suggestion in verdict.improvement_suggestions:
        print(f"  * {suggestion}")


async def _main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    text = _read_text(args)
    if not text.strip():
        print("ERROR: no text given (pass TEXT, --file or pipe stdin).", file=sys.stderr)
        return 2

    try:
        provider = (
            ProviderFactory.create(args.provider)
            if args.provider
            else ProviderFactory.create_default()
        )
    except KeyError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    humanizer = Humanizer(provider=provider, enable_logging_observer=args.verbose)
    print(f"Using provider: {provider.name}", file=sys.stderr)

    try:
        if args.verify_only:
            _print_verdict(await humanizer.verify_only(text))
        elif args.quick:
            print(await humanizer.quick_humanize(text, args.mode, args.intensity))
        else:
            request = TransformRequest(
                text=text,
                mode=args.mode,
                intensity=args.intensity,
                preserve_key_points=not args.no_preserve,
                target_audience=args.audience,
            )
            _print_result(await humanizer.run(request, on_progress=_print_progress))
    except ProviderError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(_main()))
