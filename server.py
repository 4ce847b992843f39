"""
Humanizer Web Server
=====================
FastAPI backend exposing REST + SSE endpoints for the humanizer pipeline
and its run history.

Run with:
    python server.py
    # or: uvicorn server:app --reload --port 8000
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Literal

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from humanizer.history import RunHistoryDB
from humanizer.observer import Event
from humanizer.orchestrator import Humanizer
from humanizer.providers import ModelProvider, ProviderError, ProviderFactory
from humanizer.schemas import TransformRequest

# ------------------------------------------------------------------ #
#  Logging
# ------------------------------------------------------------------ #
LOG_FILE = Path(__file__).parent / "humanizer.log"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler(LOG_FILE, encoding="utf-8"),
    ],
)
logger = logging.getLogger("humanizer.server")
logger.info("Humanizer server starting, log file: %s", LOG_FILE)

MIN_TEXT_LENGTH = 10
MAX_TEXT_LENGTH = 50_000

# ------------------------------------------------------------------ #
#  FastAPI app
# ------------------------------------------------------------------ #
app = FastAPI(title="Humanizer", version="1.0.0")

# ------------------------------------------------------------------ #
#  History database
# ------------------------------------------------------------------ #
history_db = RunHistoryDB()

# ------------------------------------------------------------------ #
#  Pydantic request models
# ------------------------------------------------------------------ #


class HumanizeRequest(BaseModel):
    text: Any = None
    mode: str = "casual"
    intensity: str = "medium"
    preserve_key_points: bool = True
    target_audience: str | None = None
    provider: str | None = None
    style_samples: list[str] | None = None
    use_history: bool = True
    save_history: bool = True
    request_timeout: float | None = None


class QuickHumanizeRequest(BaseModel):
    text: Any = None
    mode: str = "casual"
    intensity: str = "medium"
    provider: str | None = None


class TextRequest(BaseModel):
    text: Any = None
    provider: str | None = None


class FeedbackUpdate(BaseModel):
    feedback: Literal["positive", "negative"] | None = None


# ------------------------------------------------------------------ #
#  Helpers
# ------------------------------------------------------------------ #


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _validate_text(text: Any, max_length: int | None = MAX_TEXT_LENGTH) -> str | None:
    """Return an error message for unacceptable input, or ``None``."""
    if not text or not isinstance(text, str):
        return "Text is required and must be a string"
    if len(text.strip()) < MIN_TEXT_LENGTH:
        return f"Text must be at least {MIN_TEXT_LENGTH} characters long"
    if max_length is not None and len(text) > max_length:
        return f"Text must be less than {max_length:,} characters"
    return None


def create_provider(name: str | None) -> ModelProvider:
    """Build the oracle for a request (``None`` = configured default)."""
    return ProviderFactory.create(name) if name else ProviderFactory.create_default()


async def _style_samples(req: HumanizeRequest) -> list[str]:
    if req.style_samples is not None:
        return req.style_samples
    if not req.use_history:
        return []
    try:
        return await history_db.learning_samples()
    except Exception:
        logger.warning("Could not load learning samples from history", exc_info=True)
        return []


def _prepare(req: HumanizeRequest) -> tuple[Humanizer, TransformRequest] | JSONResponse:
    """Validate a humanize request and build the pipeline for it."""
    problem = _validate_text(req.text)
    if problem:
        return _error(400, problem)
    try:
        request = TransformRequest(
            text=req.text.strip(),
            mode=req.mode,
            intensity=req.intensity,
            preserve_key_points=req.preserve_key_points,
            target_audience=req.target_audience or None,
        )
        provider = create_provider(req.provider)
    except (ValueError, KeyError) as e:
        return _error(400, str(e))
    humanizer = Humanizer(
        provider=provider,
        request_timeout=req.request_timeout,
        enable_logging_observer=False,
        history_db=history_db if req.save_history else None,
    )
    return humanizer, request


def _sse(data: dict[str, Any]) -> str:
    return f"data: {json.dumps(data, default=str)}\n\n"


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(400, "Invalid request body")


# ------------------------------------------------------------------ #
#  API endpoints
# ------------------------------------------------------------------ #


@app.get("/api/providers")
async def list_providers():
    """Return registered providers with availability status."""
    statuses = []
    for name in ProviderFactory.available_names():
        try:
            p = ProviderFactory.create(name)
            avail = await p.is_available()
        except Exception:
            logger.debug("Availability check failed for %s", name, exc_info=True)
            avail = False
        statuses.append({"name": name, "available": avail})
    return {"providers": statuses}


@app.post("/api/humanize")
async def humanize(req: HumanizeRequest):
    """Run the full pipeline and return the result in one response."""
    prepared = _prepare(req)
    if isinstance(prepared, JSONResponse):
        return prepared
    humanizer, request = prepared

    samples = await _style_samples(req)
    try:
        result = await humanizer.run(request, style_samples=samples)
    except ProviderError as e:
        logger.error("Humanize failed: %s", e)
        return _error(502, str(e))

    pct = result.final_score * 100
    return {
        "success": True,
        "data": result.to_dict(),
        "message": (
            f"Successfully humanized with score {pct:.1f}%"
            if result.success
            else f"Best result achieved: {pct:.1f}%"
        ),
    }


@app.post("/api/humanize/stream")
async def humanize_stream(req: HumanizeRequest):
    """Run the full pipeline and stream its events via SSE."""
    prepared = _prepare(req)
    if isinstance(prepared, JSONResponse):
        return prepared
    humanizer, request = prepared
    samples = await _style_samples(req)

    async def event_stream():
        events_queue: asyncio.Queue[dict] = asyncio.Queue()

        def on_event(event: Event):
            events_queue.put_nowait({
                "type": event.event_type.name,
                "message": event.message,
                "payload": event.payload or {},
                "timestamp": time.time(),
                "run_id": event.run_id,
            })

        humanizer.event_bus.subscribe_all(on_event)
        logger.info("=== NEW RUN === mode=%s intensity=%s provider=%s chars=%d",
                    request.mode.value, request.intensity.value,
                    humanizer.provider.name, len(request.text))

        result_holder: dict[str, Any] = {}

        async def _run():
            try:
                result = await humanizer.run(request, style_samples=samples)
                result_holder["result"] = result.to_dict()
            except Exception as e:
                logger.error("Pipeline _run() failed: %s: %s", type(e).__name__, e, exc_info=True)
                result_holder["error"] = f"{type(e).__name__}: {e}"

        task = asyncio.create_task(_run())

        while not task.done() or not events_queue.empty():
            try:
                event_data = await asyncio.wait_for(events_queue.get(), timeout=0.5)
                yield _sse(event_data)
            except asyncio.TimeoutError:
                yield _sse({"type": "HEARTBEAT", "message": "", "payload": {}})

        if "result" in result_holder:
            yield _sse({"type": "RUN_COMPLETE", "message": "Run complete.",
                        "payload": result_holder["result"]})
        else:
            error = result_holder.get("error", "Run finished without producing a result.")
            yield _sse({"type": "RUN_ERROR", "message": error, "payload": {}})

    return StreamingResponse(event_stream(), media_type="text/event-stream")


@app.post("/api/quick-humanize")
async def quick_humanize(req: QuickHumanizeRequest):
    """De-AI and transform once, without the verification loop."""
    problem = _validate_text(req.text)
    if problem:
        return _error(400, problem)
    text = req.text.strip()
    try:
        humanizer = Humanizer(provider=create_provider(req.provider), enable_logging_observer=False)
        humanized = await humanizer.quick_humanize(text, req.mode, req.intensity)
    except (ValueError, KeyError) as e:
        return _error(400, str(e))
    except ProviderError as e:
        logger.error("Quick humanize failed: %s", e)
        return _error(502, str(e))
    return {
        "success": True,
        "data": {
            "humanized_text": humanized,
            "original_length": len(text),
            "humanized_length": len(humanized),
        },
        "message": "Text humanized (quick mode, no verification)",
    }


@app.post("/api/verify")
async def verify(req: TextRequest):
    """Score a text without rewriting it."""
    problem = _validate_text(req.text)
    if problem:
        return _error(400, problem)
    try:
        humanizer = Humanizer(provider=create_provider(req.provider), enable_logging_observer=False)
        verdict = await humanizer.verify_only(req.text.strip())
    except KeyError as e:
        return _error(400, str(e))
    except ProviderError as e:
        logger.error("Verify failed: %s", e)
        return _error(502, str(e))
    pct = verdict.score * 100
    return {
        "success": True,
        "data": verdict.to_dict(),
        "message": (
            f"Text appears human! Score: {pct:.1f}%"
            if verdict.passed
            else f"Text may be detected as AI. Score: {pct:.1f}%"
        ),
    }


@app.post("/api/deai")
async def deai(req: TextRequest):
    """Strip AI patterns from a text without the full pipeline."""
    problem = _validate_text(req.text)
    if problem:
        return _error(400, problem)
    try:
        humanizer = Humanizer(provider=create_provider(req.provider), enable_logging_observer=False)
        text = await humanizer.deai_only(req.text.strip())
    except KeyError as e:
        return _error(400, str(e))
    except ProviderError as e:
        logger.error("De-AI failed: %s", e)
        return _error(502, str(e))
    return {"success": True, "data": {"text": text}, "message": "AI patterns removed"}


# ------------------------------------------------------------------ #
#  History API
# ------------------------------------------------------------------ #


@app.get("/api/history")
async def list_history(limit: int = 50, offset: int = 0):
    """Return a paginated list of past runs (newest first)."""
    runs = await history_db.list_runs(limit=limit, offset=offset)
    total = await history_db.count_runs()
    return {"runs": runs, "total": total}


@app.get("/api/history/stats")
async def history_stats():
    """Aggregate statistics over all stored runs."""
    return await history_db.stats()


@app.get("/api/history/{run_id}")
async def get_history_run(run_id: str):
    """Return full details for a single historical run."""
    run = await history_db.get_run(run_id)
    if run is None:
        return JSONResponse(status_code=404, content={"error": "Run not found"})
    return run


@app.post("/api/history/{run_id}/feedback")
async def set_feedback(run_id: str, update: FeedbackUpdate):
    """Rate a run; rated runs steer which outputs become style samples."""
    found = await history_db.update_feedback(run_id, update.feedback)
    if not found:
        return JSONResponse(status_code=404, content={"error": "Run not found"})
    return {"status": "ok", "feedback": update.feedback}


@app.delete("/api/history/{run_id}")
async def delete_history_run(run_id: str):
    """Delete a single historical run."""
    deleted = await history_db.delete_run(run_id)
    if not deleted:
        return JSONResponse(status_code=404, content={"error": "Run not found"})
    return {"status": "ok", "message": f"Run {run_id} deleted."}


@app.delete("/api/history")
async def clear_history():
    """Delete all historical runs."""
    count = await history_db.clear_all()
    return {"status": "ok", "deleted": count}


# ------------------------------------------------------------------ #
#  Run
# ------------------------------------------------------------------ #
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=True)
