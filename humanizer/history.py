"""
Run History – SQLite Persistence
=================================
Stores finished humanizer runs (original text, best candidate, score,
attempt trail, user feedback) in a local SQLite database so they can be
browsed, rated, and fed back into later runs as style samples.

All operations are async via ``aiosqlite``.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from humanizer.schemas import VERIFICATION_THRESHOLD, RunResult, TransformRequest

logger = logging.getLogger(__name__)

MAX_HISTORY_ENTRIES = 100
LEARNING_SCORE_FLOOR = 0.8
FEEDBACK_VALUES = ("positive", "negative", None)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS runs (
    id              TEXT PRIMARY KEY,
    original_text   TEXT NOT NULL,
    humanized_text  TEXT NOT NULL,
    final_score     REAL NOT NULL,
    success         INTEGER NOT NULL,   -- 0/1
    mode            TEXT NOT NULL,
    intensity       TEXT NOT NULL,
    attempt_count   INTEGER NOT NULL,
    attempts        TEXT NOT NULL,      -- JSON array
    processing_time REAL NOT NULL,
    feedback        TEXT,               -- 'positive' | 'negative' | NULL
    created_at      TEXT NOT NULL       -- ISO-8601
);

CREATE INDEX IF NOT EXISTS idx_runs_created ON runs(created_at);
"""


def _default_db_path() -> Path:
    return Path(os.getenv("HUMANIZER_HISTORY_DB", "humanizer_history.db"))


class RunHistoryDB:
    """Async SQLite store for humanizer runs.

    Parameters
    ----------
    db_path : str or Path
        Path to the SQLite file.  Created automatically on first use.
        Defaults to ``humanizer_history.db`` in the working directory
        (overridable via ``HUMANIZER_HISTORY_DB`` env var).
    max_entries : int
        Oldest runs beyond this count are pruned after each save
        (default ``100``).
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        max_entries: int = MAX_HISTORY_ENTRIES,
    ) -> None:
        self._db_path = str(db_path or _default_db_path())
        self._max_entries = max_entries
        self._initialised = False

    @property
    def path(self) -> str:
        return self._db_path

    async def _ensure_schema(self) -> None:
        if self._initialised:
            return
        async with aiosqlite.connect(self._db_path) as db:
            await db.executescript(_SCHEMA)
            await db.commit()
        self._initialised = True
        logger.info("History DB ready: %s", self._db_path)

    # ------------------------------------------------------------------ #
    #  Write
    # ------------------------------------------------------------------ #

    async def save_run(self, request: TransformRequest, result: RunResult) -> str:
        """Persist a finished run.  Returns its ID (the run's own ID when set)."""
        await self._ensure_schema()
        run_id = result.run_id or uuid.uuid4().hex[:12]
        now = datetime.now(timezone.utc).isoformat()

        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO runs (id, original_text, humanized_text, "
                "final_score, success, mode, intensity, attempt_count, attempts, "
                "processing_time, feedback, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, ?)",
                (
                    run_id,
                    request.text,
                    result.final_text,
                    result.final_score,
                    1 if result.success else 0,
                    result.mode.value,
                    result.intensity.value,
                    len(result.attempts),
                    json.dumps([a.to_dict() for a in result.attempts]),
                    result.total_processing_time,
                    now,
                ),
            )
            # Keep only the newest ``max_entries`` rows.
            await db.execute(
                "DELETE FROM runs WHERE id NOT IN ("
                "SELECT id FROM runs ORDER BY created_at DESC, rowid DESC LIMIT ?)",
                (self._max_entries,),
            )
            await db.commit()

        logger.info("Saved run %s (score=%.2f, %d attempts)",
                    run_id, result.final_score, len(result.attempts))
        return run_id

    async def update_feedback(self, run_id: str, feedback: str | None) -> bool:
        """Set user feedback on a run.  Returns ``True`` if the run exists.

        Raises
        ------
        ValueError
            If *feedback* is not ``"positive"``, ``"negative"`` or ``None``.
        """
        if feedback not in FEEDBACK_VALUES:
            raise ValueError(f"feedback must be one of {FEEDBACK_VALUES}, got {feedback!r}")
        await self._ensure_schema()
        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute(
                "UPDATE runs SET feedback = ? WHERE id = ?", (feedback, run_id)
            )
            await db.commit()
            return cursor.rowcount > 0

    # ------------------------------------------------------------------ #
    #  Read
    # ------------------------------------------------------------------ #

    async def list_runs(
        self, limit: int = 50, offset: int = 0
    ) -> list[dict[str, Any]]:
        """Return a paginated list of past runs (newest first)."""
        await self._ensure_schema()
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT id, original_text, humanized_text, final_score, success, "
                "mode, intensity, attempt_count, processing_time, feedback, "
                "created_at FROM runs "
                "ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )
            rows = await cursor.fetchall()
        runs = [dict(r) for r in rows]
        for run in runs:
            run["success"] = bool(run["success"])
        return runs

    async def get_run(self, run_id: str) -> dict[str, Any] | None:
        """Return full details for a single run, including its attempts."""
        await self._ensure_schema()
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM runs WHERE id = ?", (run_id,))
            row = await cursor.fetchone()
        if not row:
            return None
        result = dict(row)
        result["attempts"] = json.loads(result["attempts"])
        result["success"] = bool(result["success"])
        return result

    async def count_runs(self) -> int:
        """Return total number of stored runs."""
        await self._ensure_schema()
        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM runs")
            row = await cursor.fetchone()
            return row[0] if row else 0

    async def learning_samples(self, limit: int = 5) -> list[str]:
        """Humanized texts worth imitating, most-recent-last.

        A run qualifies when the user rated it positive, or when it was
        not rated negative and scored at least ``0.8``.
        """
        await self._ensure_schema()
        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute(
                "SELECT humanized_text FROM runs "
                "WHERE feedback = 'positive' "
                "OR (feedback IS NULL AND final_score >= ?) "
                "ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (LEARNING_SCORE_FLOOR, limit),
            )
            rows = await cursor.fetchall()
        return [r[0] for r in reversed(rows)]

    async def stats(self) -> dict[str, Any]:
        """Aggregate statistics over every stored run."""
        await self._ensure_schema()
        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute(
                "SELECT COUNT(*), AVG(final_score), AVG(attempt_count), "
                "SUM(CASE WHEN final_score >= ? THEN 1 ELSE 0 END) FROM runs",
                (VERIFICATION_THRESHOLD,),
            )
            total, avg_score, avg_attempts, successes = await cursor.fetchone()

            cursor = await db.execute("SELECT mode, COUNT(*) FROM runs GROUP BY mode")
            modes = {mode: n for mode, n in await cursor.fetchall()}
            cursor = await db.execute(
                "SELECT intensity, COUNT(*) FROM runs GROUP BY intensity"
            )
            intensities = {intensity: n for intensity, n in await cursor.fetchall()}
            cursor = await db.execute(
                "SELECT feedback, COUNT(*) FROM runs "
                "WHERE feedback IS NOT NULL GROUP BY feedback"
            )
            feedback = {value: n for value, n in await cursor.fetchall()}

        total = total or 0
        return {
            "total_entries": total,
            "average_score": avg_score or 0.0,
            "success_rate": (successes or 0) / total if total else 0.0,
            "average_attempts": avg_attempts or 0.0,
            "mode_distribution": modes,
            "intensity_distribution": intensities,
            "feedback": {"positive": feedback.get("positive", 0),
                         "negative": feedback.get("negative", 0)},
        }

    # ------------------------------------------------------------------ #
    #  Delete
    # ------------------------------------------------------------------ #

    async def delete_run(self, run_id: str) -> bool:
        """Delete a single run. Returns True if found."""
        await self._ensure_schema()
        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute("DELETE FROM runs WHERE id = ?", (run_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def clear_all(self) -> int:
        """Delete all runs. Returns the number deleted."""
        await self._ensure_schema()
        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM runs")
            row = await cursor.fetchone()
            count = row[0] if row else 0
            await db.execute("DELETE FROM runs")
            await db.commit()
            return count
