"""
Humanizer Orchestrator – The Async Pipeline
=============================================
The :class:`Humanizer` class wires every stage together and exposes a single
``await humanizer.run(request)`` entry point.

Pipeline
--------
1. **De-AI**: one oracle call strips machine-typical phrasing from the
   input.  The output is sanitized but never scored.
2. **Transform**: the de-AI'd text is rewritten for the requested mode and
   intensity (optionally biased by style samples), sanitized, and
   verified.  This is attempt #1.
3. **Verify**: a separate oracle call judges the candidate and returns a
   JSON verdict, parsed by :func:`~humanizer.verdict_parser.parse_verdict`
   which never fails.
4. **Improve**: while the latest verdict has not passed and the budget of
   :data:`~humanizer.schemas.MAX_ATTEMPTS` attempts is not exhausted, the
   verifier's feedback is turned into an improvement prompt and the cycle
   repeats.

Best-of-N retention
-------------------
The run keeps the highest-scoring candidate seen so far, not the latest
one.  A later attempt replaces the best only when its score is strictly
greater, so an improvement round that makes things worse can never lower
the returned score.

Failure semantics
-----------------
Oracle faults are *not* retried: a :class:`ProviderError` from any phase
aborts the run and propagates to the caller unchanged.  Only failed
verification scores trigger another round.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from humanizer.observer import Event, EventBus, EventType, LoggingObserver
from humanizer.prompts import (
    build_deai_prompt,
    build_improvement_prompt,
    build_input_block,
    build_transform_prompt,
    build_verification_prompt,
)
from humanizer.providers.base import ModelProvider, ProviderError
from humanizer.providers.factory import ProviderFactory
from humanizer.sanitizer import Sanitizer
from humanizer.schemas import (
    MAX_ATTEMPTS,
    Attempt,
    FailureCategory,
    Intensity,
    Mode,
    ModelResponse,
    ProcessingStatus,
    ProgressUpdate,
    RunResult,
    TransformRequest,
    Verdict,
)
from humanizer.verdict_parser import parse_verdict

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressUpdate], Any]


@dataclass
class _RunState:
    """Per-run bookkeeping that must survive a failed phase."""

    attempt: int = 0


class Humanizer:
    """Multi-phase text humanizer with verifier-driven improvement.

    Parameters
    ----------
    provider : ModelProvider, optional
        Pre-built oracle.  If ``None``, the factory creates *provider_name*
        (or the default from ``HUMANIZER_PROVIDER``).
    provider_name : str, optional
        Registered provider name used when *provider* is not given.
    sanitizer : Sanitizer, optional
        Post-processor applied to every oracle output (default: a
        :class:`Sanitizer` with an unseeded RNG).
    request_timeout : float, optional
        Per-call timeout in seconds.  ``None`` (default) disables it.
    enable_logging_observer : bool
        Attach a :class:`LoggingObserver` to the event bus (default ``True``).
    history_db : RunHistoryDB, optional
        When given, every completed run is saved to it (best-effort).
    """

    def __init__(
        self,
        provider: ModelProvider | None = None,
        provider_name: str | None = None,
        sanitizer: Sanitizer | None = None,
        request_timeout: float | None = None,
        enable_logging_observer: bool = True,
        history_db: Any | None = None,
    ) -> None:
        # --- Event bus ---
        self._bus = EventBus()
        if enable_logging_observer:
            self._bus.subscribe_all(LoggingObserver())

        # --- Oracle ---
        if provider is None:
            provider = (
                ProviderFactory.create(provider_name)
                if provider_name
                else ProviderFactory.create_default()
            )
        self._provider = provider

        self._sanitizer = sanitizer or Sanitizer()
        self._request_timeout = request_timeout
        self._history_db = history_db

    @property
    def event_bus(self) -> EventBus:
        """Expose the bus so callers can subscribe to pipeline events."""
        return self._bus

    @property
    def provider(self) -> ModelProvider:
        return self._provider

    # ------------------------------------------------------------------ #
    #  Stage helpers                                                      #
    # ------------------------------------------------------------------ #

    async def _generate(self, prompt: str, phase: str, run_id: str = "") -> ModelResponse:
        """One oracle call, optionally bounded by ``request_timeout``."""
        coro = self._provider.generate(prompt, phase=phase)
        if self._request_timeout is None:
            response = await coro
        else:
            try:
                response = await asyncio.wait_for(coro, timeout=self._request_timeout)
            except asyncio.TimeoutError as exc:
                raise ProviderError(
                    self._provider.name,
                    FailureCategory.TIMEOUT,
                    f"no response within {self._request_timeout}s",
                ) from exc

        self._bus.publish(
            Event(
                EventType.ORACLE_RESPONSE,
                message=f"{phase}: {len(response.text)} chars from "
                f"{response.provider_name} in {response.latency:.2f}s",
                payload={
                    "provider": response.provider_name,
                    "phase": phase,
                    "chars": len(response.text),
                    "latency": round(response.latency, 2),
                },
                run_id=run_id,
            )
        )
        return response

    async def _deai(self, text: str, run_id: str = "") -> str:
        response = await self._generate(build_deai_prompt(text), "deai", run_id)
        return self._sanitizer.sanitize(response.text, with_imperfections=False)

    async def _verify(self, text: str, run_id: str = "") -> Verdict:
        response = await self._generate(build_verification_prompt(text), "verify", run_id)
        return parse_verdict(response.text)

    def _emit(
        self,
        on_progress: ProgressCallback | None,
        run_id: str,
        status: ProcessingStatus,
        attempt: int,
        message: str,
        score: float | None = None,
    ) -> None:
        """Deliver a progress update to the callback and the bus."""
        update = ProgressUpdate(
            status=status,
            current_attempt=attempt,
            max_attempts=MAX_ATTEMPTS,
            message=message,
            score=score,
        )
        if on_progress is not None:
            try:
                on_progress(update)
            except Exception:
                logger.warning("Progress callback raised for %s", status.value, exc_info=True)
        self._bus.publish(
            Event(EventType.PROGRESS, message=message, payload=update.to_dict(), run_id=run_id)
        )

    def _record(self, run_id: str, attempt: Attempt, verdict: Verdict) -> None:
        self._bus.publish(
            Event(
                EventType.ATTEMPT_SCORED,
                message=f"Attempt {attempt.attempt_number}: score={attempt.score:.2f} "
                f"passed={attempt.passed}",
                payload={
                    "attempt": attempt.attempt_number,
                    "score": attempt.score,
                    "passed": attempt.passed,
                    "issues": [i.category for i in verdict.detected_issues],
                },
                run_id=run_id,
            )
        )

    # ------------------------------------------------------------------ #
    #  Main entry point                                                   #
    # ------------------------------------------------------------------ #

    async def run(
        self,
        request: TransformRequest,
        style_samples: Sequence[str] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> RunResult:
        """Execute the full de-AI → transform → verify → improve pipeline.

        Parameters
        ----------
        request : TransformRequest
            Text plus mode, intensity and preservation options.
        style_samples : Sequence[str], optional
            Prior accepted outputs, most-recent-last.  Overrides
            ``request.style_samples`` when given.
        on_progress : callable, optional
            Receives a :class:`ProgressUpdate` at every phase transition.

        Returns
        -------
        RunResult
            The best-scoring candidate and the full attempt history.

        Raises
        ------
        ProviderError
            If any oracle call fails.  No partial result is returned.
        """
        run_id = uuid.uuid4().hex[:12]
        t_start = time.perf_counter()
        logger.info(
            "Run %s started (mode=%s, intensity=%s, %d chars)",
            run_id, request.mode.value, request.intensity.value, len(request.text),
        )

        state = _RunState()
        try:
            result = await self._run(request, style_samples, on_progress, run_id, t_start, state)
        except Exception as exc:
            self._emit(on_progress, run_id, ProcessingStatus.ERROR, state.attempt, f"Error: {exc}")
            self._bus.publish(
                Event(
                    EventType.RUN_FAILED,
                    message=f"{type(exc).__name__}: {exc}",
                    payload={"error": str(exc), "type": type(exc).__name__},
                    run_id=run_id,
                )
            )
            raise

        self._bus.publish(
            Event(
                EventType.RUN_COMPLETED,
                message=f"Run finished: score={result.final_score:.2f}, "
                f"attempts={len(result.attempts)}, success={result.success}",
                payload={
                    "success": result.success,
                    "final_score": result.final_score,
                    "attempts": len(result.attempts),
                    "total_processing_time": round(result.total_processing_time, 3),
                },
                run_id=run_id,
            )
        )

        if self._history_db:
            try:
                await self._history_db.save_run(request, result)
            except Exception:
                logger.warning("Failed to save run to history DB", exc_info=True)

        return result

    async def _run(
        self,
        request: TransformRequest,
        style_samples: Sequence[str] | None,
        on_progress: ProgressCallback | None,
        run_id: str,
        t_start: float,
        state: _RunState,
    ) -> RunResult:
        attempts: list[Attempt] = []

        # 1. De-AI
        self._emit(on_progress, run_id, ProcessingStatus.DEAI, 0,
                   "Removing AI patterns from the input...")
        deaid = await self._deai(request.text, run_id)

        # 2. Transform (attempt 1)
        transform_prompt = build_transform_prompt(request, style_samples)
        state.attempt = 1
        self._emit(on_progress, run_id, ProcessingStatus.TRANSFORMING, 1,
                   f"Transforming text ({request.mode.value} mode)...")
        response = await self._generate(
            transform_prompt + build_input_block(deaid), "transform", run_id
        )
        candidate = self._sanitizer.sanitize(response.text)

        self._emit(on_progress, run_id, ProcessingStatus.VERIFYING, 1,
                   "Verifying attempt 1...")
        verdict = await self._verify(candidate, run_id)
        attempt = Attempt.from_verdict(1, candidate, verdict)
        attempts.append(attempt)
        self._record(run_id, attempt, verdict)

        best_text, best_score = candidate, attempt.score

        # 3. Improve loop
        while not verdict.passed and len(attempts) < MAX_ATTEMPTS:
            number = len(attempts) + 1
            state.attempt = number
            self._emit(
                on_progress, run_id, ProcessingStatus.IMPROVING, number,
                f"Score {verdict.score:.0%} below threshold, improving "
                f"(attempt {number}/{MAX_ATTEMPTS})...",
                score=verdict.score,
            )
            prompt = transform_prompt + build_improvement_prompt(
                request.text, candidate, verdict, number
            )
            response = await self._generate(prompt, "improve", run_id)
            candidate = self._sanitizer.sanitize(response.text)

            self._emit(on_progress, run_id, ProcessingStatus.VERIFYING, number,
                       f"Verifying attempt {number}...")
            verdict = await self._verify(candidate, run_id)
            attempt = Attempt.from_verdict(number, candidate, verdict)
            attempts.append(attempt)
            self._record(run_id, attempt, verdict)

            if attempt.score > best_score:
                best_text, best_score = candidate, attempt.score

        # 4. Done
        result = RunResult.from_attempts(
            request,
            attempts,
            final_text=best_text,
            final_score=best_score,
            total_processing_time=time.perf_counter() - t_start,
            run_id=run_id,
        )
        self._emit(
            on_progress, run_id, ProcessingStatus.COMPLETED, len(attempts),
            "Humanization complete" if result.success
            else f"Best score {best_score:.0%} after {len(attempts)} attempts",
            score=best_score,
        )
        logger.info(
            "Run %s finished: score=%.2f attempts=%d success=%s",
            run_id, best_score, len(attempts), result.success,
        )
        return result

    # ------------------------------------------------------------------ #
    #  Single-phase operations                                            #
    # ------------------------------------------------------------------ #

    async def quick_humanize(
        self,
        text: str,
        mode: Mode | str = Mode.CASUAL,
        intensity: Intensity | str = Intensity.MEDIUM,
    ) -> str:
        """De-AI and transform once, without verification."""
        request = TransformRequest(text=text, mode=mode, intensity=intensity)
        deaid = await self._deai(request.text)
        response = await self._generate(
            build_transform_prompt(request) + build_input_block(deaid), "transform"
        )
        return self._sanitizer.sanitize(response.text)

    async def verify_only(self, text: str) -> Verdict:
        """Score *text* with a single verification call."""
        return await self._verify(text)

    async def deai_only(self, text: str) -> str:
        """Run only the de-AI phase over *text*."""
        return await self._deai(text)
