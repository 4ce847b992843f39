"""
Tests for the run history store and its pipeline hook:
  - RunHistoryDB CRUD, feedback, learning samples, stats
  - Humanizer → RunHistoryDB persistence

Run with:  pytest tests/test_features.py -v
"""
from __future__ import annotations

import pytest

from humanizer.history import RunHistoryDB
from humanizer.orchestrator import Humanizer
from humanizer.sanitizer import Sanitizer
from humanizer.schemas import Attempt, RunResult, TransformRequest
from tests.conftest import ScriptedProvider, script_for_scores


def _result(
    request: TransformRequest,
    score: float,
    text: str = "Humanized output.",
    run_id: str = "",
) -> RunResult:
    attempts = [Attempt(1, text, score)]
    return RunResult.from_attempts(request, attempts, text, score, 0.5, run_id=run_id)


# =====================================================================
# History DB
# =====================================================================


class TestHistoryDB:
    @pytest.fixture
    def db(self, tmp_path):
        return RunHistoryDB(db_path=tmp_path / "history.db")

    @pytest.fixture
    def request_(self) -> TransformRequest:
        return TransformRequest(text="Original machine-ish text.", mode="professional")

    @pytest.mark.asyncio
    async def test_save_and_list(self, db, request_):
        run_id = await db.save_run(request_, _result(request_, 0.82, run_id="abc123"))
        assert run_id == "abc123"

        runs = await db.list_runs()
        assert len(runs) == 1
        assert runs[0]["id"] == "abc123"
        assert runs[0]["original_text"] == request_.text
        assert runs[0]["humanized_text"] == "Humanized output."
        assert runs[0]["mode"] == "professional"
        assert runs[0]["success"] is True
        assert runs[0]["feedback"] is None

    @pytest.mark.asyncio
    async def test_generates_id_when_missing(self, db, request_):
        run_id = await db.save_run(request_, _result(request_, 0.5))
        assert len(run_id) == 12

    @pytest.mark.asyncio
    async def test_get_run_detail(self, db, request_):
        run_id = await db.save_run(request_, _result(request_, 0.6))
        detail = await db.get_run(run_id)
        assert detail is not None
        assert detail["attempt_count"] == 1
        assert detail["attempts"][0]["score"] == pytest.approx(0.6)
        assert detail["success"] is False

    @pytest.mark.asyncio
    async def test_get_run_not_found(self, db):
        assert await db.get_run("nonexistent") is None

    @pytest.mark.asyncio
    async def test_delete_run(self, db, request_):
        run_id = await db.save_run(request_, _result(request_, 0.6))
        assert await db.delete_run(run_id) is True
        assert await db.count_runs() == 0

    @pytest.mark.asyncio
    async def test_delete_nonexistent(self, db):
        assert await db.delete_run("nonexistent") is False

    @pytest.mark.asyncio
    async def test_clear_all(self, db, request_):
        for _ in range(3):
            await db.save_run(request_, _result(request_, 0.6))
        assert await db.clear_all() == 3
        assert await db.count_runs() == 0

    @pytest.mark.asyncio
    async def test_list_pagination(self, db, request_):
        for i in range(5):
            await db.save_run(request_, _result(request_, 0.6, text=f"out {i}"))
        page = await db.list_runs(limit=2, offset=0)
        assert [r["humanized_text"] for r in page] == ["out 4", "out 3"]
        page = await db.list_runs(limit=2, offset=4)
        assert [r["humanized_text"] for r in page] == ["out 0"]

    @pytest.mark.asyncio
    async def test_prunes_beyond_max_entries(self, tmp_path, request_):
        db = RunHistoryDB(db_path=tmp_path / "small.db", max_entries=3)
        for i in range(5):
            await db.save_run(request_, _result(request_, 0.6, text=f"out {i}"))
        runs = await db.list_runs()
        assert [r["humanized_text"] for r in runs] == ["out 4", "out 3", "out 2"]

    @pytest.mark.asyncio
    async def test_update_feedback(self, db, request_):
        run_id = await db.save_run(request_, _result(request_, 0.6))
        assert await db.update_feedback(run_id, "positive") is True
        assert (await db.get_run(run_id))["feedback"] == "positive"
        assert await db.update_feedback(run_id, None) is True
        assert (await db.get_run(run_id))["feedback"] is None
        assert await db.update_feedback("missing", "negative") is False

    @pytest.mark.asyncio
    async def test_update_feedback_rejects_unknown_value(self, db):
        with pytest.raises(ValueError):
            await db.update_feedback("any", "meh")

    @pytest.mark.asyncio
    async def test_learning_samples_honor_feedback_and_score(self, db, request_):
        low_liked = await db.save_run(request_, _result(request_, 0.4, text="low but liked"))
        await db.save_run(request_, _result(request_, 0.5, text="low unrated"))
        high_disliked = await db.save_run(request_, _result(request_, 0.95, text="high but disliked"))
        await db.save_run(request_, _result(request_, 0.85, text="high unrated"))

        await db.update_feedback(low_liked, "positive")
        await db.update_feedback(high_disliked, "negative")

        samples = await db.learning_samples()
        assert samples == ["low but liked", "high unrated"]

    @pytest.mark.asyncio
    async def test_learning_samples_limit_keeps_most_recent(self, db, request_):
        for i in range(7):
            await db.save_run(request_, _result(request_, 0.9, text=f"good {i}"))
        samples = await db.learning_samples(limit=5)
        assert samples == ["good 2", "good 3", "good 4", "good 5", "good 6"]

    @pytest.mark.asyncio
    async def test_stats(self, db, request_):
        casual = TransformRequest(text="Other text.", mode="casual", intensity="heavy")
        await db.save_run(request_, _result(request_, 0.9))
        run_id = await db.save_run(casual, _result(casual, 0.5))
        await db.update_feedback(run_id, "negative")

        stats = await db.stats()
        assert stats["total_entries"] == 2
        assert stats["average_score"] == pytest.approx(0.7)
        assert stats["success_rate"] == pytest.approx(0.5)
        assert stats["average_attempts"] == pytest.approx(1.0)
        assert stats["mode_distribution"] == {"professional": 1, "casual": 1}
        assert stats["intensity_distribution"] == {"medium": 1, "heavy": 1}
        assert stats["feedback"] == {"positive": 0, "negative": 1}

    @pytest.mark.asyncio
    async def test_stats_empty(self, db):
        stats = await db.stats()
        assert stats["total_entries"] == 0
        assert stats["success_rate"] == 0.0
        assert stats["mode_distribution"] == {}

    def test_default_path_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HUMANIZER_HISTORY_DB", str(tmp_path / "env.db"))
        assert RunHistoryDB().path == str(tmp_path / "env.db")


# =====================================================================
# Pipeline → History integration
# =====================================================================


class TestPipelineHistoryIntegration:
    @pytest.mark.asyncio
    async def test_pipeline_saves_to_history_db(self, tmp_path, sample_request):
        db = RunHistoryDB(db_path=tmp_path / "pipeline.db")
        provider = ScriptedProvider(script_for_scores([0.5, 0.85]))
        humanizer = Humanizer(
            provider=provider,
            sanitizer=Sanitizer(enable_imperfections=False),
            enable_logging_observer=False,
            history_db=db,
        )

        result = await humanizer.run(sample_request)

        detail = await db.get_run(result.run_id)
        assert detail is not None
        assert detail["humanized_text"] == result.final_text
        assert detail["final_score"] == pytest.approx(0.85)
        assert detail["attempt_count"] == 2
        assert await db.learning_samples() == [result.final_text]
