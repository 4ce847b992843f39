"""
Unit tests for Humanizer core components.
Run with:  pytest tests/test_unit.py -v
"""
from __future__ import annotations

import asyncio
import random
from types import SimpleNamespace
from typing import Any

import pytest

from humanizer.observer import Event, EventBus, EventType, LoggingObserver
from humanizer.prompts import (
    REWRITE_DIRECTIVES,
    build_deai_prompt,
    build_improvement_prompt,
    build_transform_prompt,
    build_verification_prompt,
    select_directives,
)
from humanizer.providers import ProviderError, ProviderFactory, classify_failure
from humanizer.providers.anthropic_provider import AnthropicProvider
from humanizer.providers.factory import default_provider_name
from humanizer.providers.groq_provider import GroqProvider
from humanizer.providers.openai_provider import ChatCompletionsProvider, OpenAIProvider
from humanizer.sanitizer import (
    Sanitizer,
    inject_imperfections,
    normalize_dashes,
    sanitize,
    strip_meta_commentary,
)
from humanizer.schemas import (
    Attempt,
    ConfidenceLevel,
    DetectedIssue,
    FailureCategory,
    Intensity,
    Mode,
    ProcessingStatus,
    ProgressUpdate,
    RunResult,
    Severity,
    TransformRequest,
    Verdict,
)
from humanizer.verdict_parser import DEFAULT_VERDICT, parse_verdict, repair_json
from tests.conftest import FailingProvider, verdict_json

# =====================================================================
# Schema tests
# =====================================================================


class TestTransformRequest:
    def test_defaults(self):
        r = TransformRequest(text="Some text here.")
        assert r.mode is Mode.CASUAL
        assert r.intensity is Intensity.MEDIUM
        assert r.preserve_key_points is True
        assert r.target_audience is None
        assert r.style_samples == ()

    def test_string_enums_are_coerced(self):
        r = TransformRequest(text="x", mode="academic", intensity="heavy")
        assert r.mode is Mode.ACADEMIC
        assert r.intensity is Intensity.HEAVY

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_blank_text_rejected(self, text):
        with pytest.raises(ValueError):
            TransformRequest(text=text)

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError):
            TransformRequest(text="x", mode="shouty")

    def test_keeps_last_five_style_samples(self):
        r = TransformRequest(text="x", style_samples=[f"s{i}" for i in range(8)])
        assert r.style_samples == ("s3", "s4", "s5", "s6", "s7")

    def test_frozen(self):
        r = TransformRequest(text="x")
        with pytest.raises(AttributeError):
            r.text = "changed"  # type: ignore[misc]


class TestVerdict:
    @pytest.mark.parametrize(
        "score, passed",
        [(0.75, True), (0.7499, False), (1.0, True), (0.0, False)],
    )
    def test_passed_derived_from_threshold(self, score, passed):
        assert Verdict(score=score).passed is passed

    def test_score_clamped(self):
        assert Verdict(score=1.7).score == 1.0
        assert Verdict(score=-2).score == 0.0

    def test_to_dict(self):
        issue = DetectedIssue(category="Em dash", severity=Severity.HIGH)
        d = Verdict(score=0.6, detected_issues=[issue]).to_dict()
        assert d["passed"] is False
        assert d["detected_issues"][0]["category"] == "Em dash"
        assert d["detected_issues"][0]["severity"] == "high"
        assert d["confidence_level"] == "medium"


class TestAttempt:
    def test_from_verdict(self):
        v = Verdict(score=0.8, overall_assessment="Reads naturally")
        a = Attempt.from_verdict(2, "text", v)
        assert a.attempt_number == 2
        assert a.score == 0.8
        assert a.passed is True
        assert a.feedback == "Reads naturally"

    def test_to_dict_has_iso_timestamp(self):
        d = Attempt(attempt_number=1, candidate_text="t", score=0.2).to_dict()
        assert d["passed"] is False
        assert "T" in d["timestamp"]


class TestRunResult:
    def test_success_follows_final_score(self):
        req = TransformRequest(text="x", mode="creative")
        attempts = [Attempt(1, "a", 0.5), Attempt(2, "b", 0.76)]
        result = RunResult.from_attempts(req, attempts, "b", 0.76, 1.5, run_id="abc")
        assert result.success is True
        assert result.mode is Mode.CREATIVE
        assert result.attempts == tuple(attempts)
        d = result.to_dict()
        assert d["mode"] == "creative"
        assert len(d["attempts"]) == 2
        assert d["run_id"] == "abc"


class TestProgressUpdate:
    def test_to_dict(self):
        u = ProgressUpdate(ProcessingStatus.IMPROVING, 2, 4, "msg", score=0.5)
        assert u.to_dict() == {
            "status": "improving",
            "current_attempt": 2,
            "max_attempts": 4,
            "score": 0.5,
            "message": "msg",
        }


# =====================================================================
# Sanitizer tests
# =====================================================================


class TestStripMetaCommentary:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Here's the humanized version: Hello there.", "Hello there."),
            ("Sure, Hello there.", "Hello there."),
            ("Certainly! Hello there.", "Hello there."),
            ("I've rewritten the text as requested: Hello there.", "Hello there."),
            ("```\nHello there.\n```", "Hello there."),
            ('"Hello there."', "Hello there."),
        ],
    )
    def test_strips_prefixes_fences_and_quotes(self, raw, expected):
        assert strip_meta_commentary(raw) == expected

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ('"Hi" she said, "bye"', '"Hi" she said, "bye"'),
            ("'Hi' she said, 'bye'", "'Hi' she said, 'bye'"),
            ("'It's fine, we're done.'", "It's fine, we're done."),
        ],
    )
    def test_quotes_stripped_only_when_whole_text_is_quoted(self, raw, expected):
        assert strip_meta_commentary(raw) == expected

    def test_word_boundary_preserved(self):
        assert strip_meta_commentary("Surely this stays.") == "Surely this stays."


class TestNormalizeDashes:
    @pytest.mark.parametrize("raw", ["a—b", "a–b", "a--b"])
    def test_dash_becomes_comma(self, raw):
        assert normalize_dashes(raw) == "a, b"

    def test_no_double_comma_artifact(self):
        out = normalize_dashes("a—, —b")
        assert ", ," not in out
        assert ",," not in out

    def test_comma_before_period_collapsed(self):
        assert normalize_dashes("end—.") == "end."

    @pytest.mark.parametrize("raw", ["x — y — z", "wait--, what—.", "a ,b"])
    def test_idempotent(self, raw):
        once = normalize_dashes(raw)
        assert normalize_dashes(once) == once


class TestInjectImperfections:
    def test_short_text_untouched(self):
        text = "One, two, three, four, five, six, seven."
        assert inject_imperfections(text, random.Random(0)) == text

    def test_long_text_drops_one_space(self, long_comma_text):
        out = inject_imperfections(long_comma_text, random.Random(1))
        assert len(out) == len(long_comma_text) - 1
        assert out.count(", ") == long_comma_text.count(", ") - 1

    @pytest.mark.parametrize("seed", range(50))
    def test_drops_two_distinct_spaces(self, seed):
        clauses = [f"clause number {i:02d}" for i in range(25)]
        text = ", ".join(clauses) + "."
        out = inject_imperfections(text, random.Random(seed))

        assert out.count(", ") == text.count(", ") - 2
        pieces = out.split(",")
        assert [p.lstrip() for p in pieces] == clauses[:-1] + [clauses[-1] + "."]
        tight = {i - 1 for i, p in enumerate(pieces) if i > 0 and not p.startswith(" ")}
        assert tight == set(random.Random(seed).sample(range(24), 2))

    def test_seeded_rng_is_deterministic(self, long_comma_text):
        a = inject_imperfections(long_comma_text, random.Random(7))
        b = inject_imperfections(long_comma_text, random.Random(7))
        assert a == b


class TestSanitize:
    def test_empty_input(self):
        assert sanitize("") == ""
        assert sanitize(None) == ""

    def test_examples(self):
        assert sanitize("a—b") == "a, b"
        assert sanitize("a--b") == "a, b"
        assert ", ," not in sanitize("a—, —b")

    def test_output_never_contains_dashes(self, long_comma_text):
        raw = "Sure! " + long_comma_text.replace(", and", " — and").replace("bread", "bread--")
        out = Sanitizer(rng=random.Random(3)).sanitize(raw)
        assert "—" not in out and "–" not in out and "--" not in out

    def test_without_imperfections_is_deterministic(self, long_comma_text):
        out = sanitize(long_comma_text, with_imperfections=False)
        assert out == long_comma_text

    def test_disabled_sanitizer_skips_injection(self, long_comma_text):
        assert Sanitizer(enable_imperfections=False)(long_comma_text) == long_comma_text


# =====================================================================
# Verdict parser tests
# =====================================================================


class TestParseVerdict:
    def test_direct_json(self):
        v = parse_verdict('{"score": 0.9, "passed": true}')
        assert v.score == pytest.approx(0.9)
        assert v.passed is True

    def test_passed_field_is_ignored(self):
        v = parse_verdict('{"score": 0.4, "passed": true}')
        assert v.passed is False

    def test_full_camel_case_payload(self):
        raw = verdict_json(
            0.62,
            detectedIssues=[
                {"category": "Em Dash Usage", "severity": "HIGH", "description": "d",
                 "examples": ["x—y"], "suggestedFix": "use commas"}
            ],
            improvementSuggestions=["vary sentences"],
            positiveAspects=["good tone"],
            confidenceLevel="Low",
        )
        v = parse_verdict(raw)
        assert v.score == pytest.approx(0.62)
        assert v.detected_issues[0].severity is Severity.HIGH
        assert v.detected_issues[0].suggested_fix == "use commas"
        assert v.improvement_suggestions == ("vary sentences",)
        assert v.positive_aspects == ("good tone",)
        assert v.confidence_level is ConfidenceLevel.LOW

    def test_snake_case_payload(self):
        v = parse_verdict('{"score": 0.8, "overall_assessment": "ok", "positive_aspects": ["a"]}')
        assert v.overall_assessment == "ok"
        assert v.positive_aspects == ("a",)

    def test_extraction_with_string_score(self):
        v = parse_verdict('garbage {"score": "0.6"} trailing')
        assert v.score == pytest.approx(0.6)

    def test_extraction_repairs_trailing_comma(self):
        v = parse_verdict('Analysis:\n{"score": 0.81,\n "detectedIssues": [],}\nDone')
        assert v.score == pytest.approx(0.81)

    def test_score_only_fallback(self):
        v = parse_verdict('{"score": 0.7, "overallAssessment": "unterminated')
        assert v.score == pytest.approx(0.7)
        assert v.overall_assessment == "Score extracted: 70.0%"
        assert v.confidence_level is ConfidenceLevel.LOW

    @pytest.mark.parametrize(
        "raw, score",
        [
            ("not json at all but contains excellent human writing", 0.85),
            ("This is mostly human.", 0.75),
            ("Needs work, several tells.", 0.55),
            ("Clearly AI-like phrasing.", 0.40),
            ("No signal here whatsoever.", 0.5),
        ],
    )
    def test_keyword_ladder(self, raw, score):
        assert parse_verdict(raw).score == pytest.approx(score)

    def test_keyword_result_passed(self):
        assert parse_verdict("not json at all but contains excellent human writing").passed

    def test_non_string_returns_default(self):
        assert parse_verdict(None) is DEFAULT_VERDICT  # type: ignore[arg-type]
        assert DEFAULT_VERDICT.score == 0.5
        assert DEFAULT_VERDICT.passed is False

    @pytest.mark.parametrize(
        "raw",
        ['{"score": 7}', '{"score": -1}', '{"score": "NaN"}', "[1, 2]", "{", "", "\x00"],
    )
    def test_score_always_in_range(self, raw):
        v = parse_verdict(raw)
        assert 0.0 <= v.score <= 1.0
        assert v.passed == (v.score >= 0.75)

    def test_huge_integer_score_is_clamped(self):
        v = parse_verdict('{"score": 1' + "0" * 400 + "}")
        assert v.score == pytest.approx(1.0)
        assert v.overall_assessment == "Score: 100.0%"

    def test_huge_negative_integer_score_is_clamped(self):
        assert parse_verdict('{"score": -1' + "0" * 400 + "}").score == 0.0

    def test_failing_strategy_falls_through_to_next(self):
        nested = "[" * 50_000 + "]" * 50_000
        v = parse_verdict('Result {"score": 0.9, "x": ' + nested + "}")
        assert v.score == pytest.approx(0.9)
        assert v.overall_assessment == "Score extracted: 90.0%"


class TestRepairJson:
    def test_repairs(self):
        assert repair_json('{"a": 1,\n}') == '{"a": 1}'
        assert repair_json('{"a":  [1,]}') == '{"a": [1]}'


# =====================================================================
# Prompt tests
# =====================================================================


class TestPrompts:
    def test_deai_prompt_embeds_text(self):
        assert "leverage synergies" in build_deai_prompt("leverage synergies")

    def test_transform_prompt_includes_only_recent_samples(self):
        req = TransformRequest(text="x", mode="professional", target_audience="CFOs")
        prompt = build_transform_prompt(req, [f"sample-{i}" for i in range(7)])
        assert "sample-6" in prompt and "sample-2" in prompt
        assert "sample-1" not in prompt
        assert "CFOs" in prompt

    def test_transform_prompt_without_samples(self):
        prompt = build_transform_prompt(TransformRequest(text="x"))
        assert "Sample 1:" not in prompt

    def test_verification_prompt_embeds_text(self):
        assert "candidate body" in build_verification_prompt("candidate body")

    def test_improvement_prompt(self):
        v = Verdict(
            score=0.6,
            detected_issues=[DetectedIssue(category="Missing Contractions")],
            improvement_suggestions=["Use don't"],
            positive_aspects=["Tone"],
        )
        prompt = build_improvement_prompt("orig text", "failed text", v, 2)
        assert "IMPROVEMENT ROUND 2" in prompt
        assert "60.0%" in prompt
        assert "failed text" in prompt and "orig text" in prompt
        assert "ADD CONTRACTIONS" in prompt
        assert "Use don't" in prompt and "Tone" in prompt


class TestSelectDirectives:
    def test_table_order_and_dedup(self):
        issues = [
            DetectedIssue(category="Sentence Uniformity"),
            DetectedIssue(category="Em Dash Usage"),
            DetectedIssue(category="Burstiness"),
        ]
        directives = select_directives(issues)
        assert directives == [REWRITE_DIRECTIVES[0][1], REWRITE_DIRECTIVES[2][1]]

    def test_vocabulary_and_typos(self):
        issues = [DetectedIssue(category="Word Choice"), DetectedIssue(category="No typos")]
        assert select_directives(issues) == [REWRITE_DIRECTIVES[1][1], REWRITE_DIRECTIVES[4][1]]

    def test_no_match(self):
        assert select_directives([DetectedIssue(category="Tone")]) == []


# =====================================================================
# EventBus tests
# =====================================================================


class TestEventBus:
    def test_subscribe_and_publish(self, event_bus):
        received: list[Event] = []
        event_bus.subscribe(EventType.PROGRESS, received.append)
        event_bus.publish(Event(EventType.PROGRESS, message="hi"))
        event_bus.publish(Event(EventType.RUN_FAILED, message="ignored"))
        assert [e.message for e in received] == ["hi"]

    def test_subscribe_all(self, event_bus):
        received: list[EventType] = []
        event_bus.subscribe_all(lambda e: received.append(e.event_type))
        for et in EventType:
            event_bus.publish(Event(et))
        assert received == list(EventType)

    def test_observer_protocol(self, event_bus, caplog):
        event_bus.subscribe_all(LoggingObserver())
        with caplog.at_level("INFO", logger="humanizer.observer"):
            event_bus.publish(Event(EventType.ATTEMPT_SCORED, message="scored", run_id="r1"))
        assert "ATTEMPT_SCORED" in caplog.text
        assert "r1" in caplog.text

    def test_subscriber_exception_is_isolated(self, event_bus):
        received: list[Event] = []

        def boom(event: Event) -> None:
            raise RuntimeError("subscriber bug")

        event_bus.subscribe(EventType.PROGRESS, boom)
        event_bus.subscribe(EventType.PROGRESS, received.append)
        event_bus.publish(Event(EventType.PROGRESS))
        assert len(received) == 1

    def test_unsubscribe(self, event_bus):
        received: list[Event] = []
        event_bus.subscribe(EventType.PROGRESS, received.append)
        event_bus.unsubscribe(EventType.PROGRESS, received.append)
        event_bus.publish(Event(EventType.PROGRESS))
        assert received == []


# =====================================================================
# Provider tests
# =====================================================================


class TestClassifyFailure:
    @pytest.mark.parametrize(
        "exc, category",
        [
            (asyncio.TimeoutError(), FailureCategory.TIMEOUT),
            (RuntimeError("Request timed out"), FailureCategory.TIMEOUT),
            (RuntimeError("Error code: 401 - unauthorized"), FailureCategory.AUTH),
            (PermissionError("Hugging Face API key is not set"), FailureCategory.AUTH),
            (RuntimeError("Error code: 429"), FailureCategory.QUOTA),
            (RuntimeError("You exceeded your current quota"), FailureCategory.QUOTA),
            (RuntimeError("Error code: 404 - model not found"), FailureCategory.PERMANENT),
            (ConnectionError("connection reset by peer"), FailureCategory.TRANSIENT),
        ],
    )
    def test_buckets(self, exc, category):
        assert classify_failure(exc) is category


class TestModelProviderGenerate:
    @pytest.mark.asyncio
    async def test_wraps_exceptions(self):
        provider = FailingProvider(exc=RuntimeError("Error code: 401"))
        with pytest.raises(ProviderError) as info:
            await provider.generate("prompt", phase="verify")
        assert info.value.provider == "failing"
        assert info.value.category is FailureCategory.AUTH
        assert isinstance(info.value.__cause__, RuntimeError)


class TestProviderFactory:
    def test_registered_names(self):
        names = ProviderFactory.available_names()
        for expected in ("groq", "huggingface", "openai", "anthropic", "gemini", "ollama"):
            assert expected in names

    def test_unknown_provider(self):
        with pytest.raises(KeyError, match="Unknown provider"):
            ProviderFactory.create("nope")

    def test_ollama_shorthand(self):
        provider = ProviderFactory.create("ollama:mistral")
        assert provider.name == "ollama:mistral"

    def test_groq_created_with_explicit_key(self):
        provider = ProviderFactory.create("groq", api_key="gsk_test")
        assert provider.name == "groq"
        assert asyncio.run(provider.is_available()) is True

    def test_default_provider_from_env(self, monkeypatch):
        monkeypatch.delenv("HUMANIZER_PROVIDER", raising=False)
        assert default_provider_name() == "groq"
        monkeypatch.setenv("HUMANIZER_PROVIDER", "openai")
        assert default_provider_name() == "openai"


class _RecordingCreate:
    """Stands in for an SDK ``create`` coroutine and remembers its kwargs."""

    def __init__(self, response: Any) -> None:
        self.response = response
        self.kwargs: dict[str, Any] = {}

    async def __call__(self, **kwargs: Any) -> Any:
        self.kwargs = kwargs
        return self.response


def _chat_response(content: str | None, finish_reason: str = "stop") -> SimpleNamespace:
    message = SimpleNamespace(content=content)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=None,
        model="stub-model",
    )


class TestChatCompletionsProviders:
    def _stub(self, provider: ChatCompletionsProvider, response: Any) -> _RecordingCreate:
        create = _RecordingCreate(response)
        provider._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
        return create

    @pytest.mark.asyncio
    async def test_groq_defaults(self):
        provider = GroqProvider(api_key="gsk_test")
        create = self._stub(provider, _chat_response("Rewritten."))

        response = await provider.generate("Rewrite this.", phase="transform")

        assert response.text == "Rewritten."
        assert response.provider_name == "groq"
        assert create.kwargs["model"] == "llama-3.3-70b-versatile"
        assert create.kwargs["temperature"] == 0.9
        assert create.kwargs["top_p"] == 0.95
        assert create.kwargs["max_tokens"] == 8192
        assert create.kwargs["messages"] == [{"role": "user", "content": "Rewrite this."}]

    @pytest.mark.asyncio
    async def test_openai_system_prompt_and_no_token_cap(self):
        provider = OpenAIProvider(api_key="sk-test", system_prompt="Reply with the text only.")
        create = self._stub(provider, _chat_response("Done."))

        await provider.generate("Rewrite this.")

        assert provider.model == "gpt-4o-mini"
        assert "max_tokens" not in create.kwargs
        assert create.kwargs["messages"][0] == {"role": "system", "content": "Reply with the text only."}
        assert create.kwargs["messages"][1]["role"] == "user"

    @pytest.mark.asyncio
    async def test_empty_choices_and_null_content(self):
        provider = OpenAIProvider(api_key="sk-test")
        self._stub(provider, SimpleNamespace(choices=[], usage=None, model="m"))
        assert (await provider.generate("p")).text == ""

        self._stub(provider, _chat_response(None))
        assert (await provider.generate("p")).text == ""

    @pytest.mark.parametrize(
        "cls, key, expected",
        [
            (GroqProvider, "gsk_abc", True),
            (GroqProvider, "sk-abc", False),
            (OpenAIProvider, "sk-abc", True),
        ],
    )
    def test_availability_checks_key_prefix(self, cls, key, expected):
        assert asyncio.run(cls(api_key=key).is_available()) is expected


class TestAnthropicProvider:
    def _stub(self, provider: AnthropicProvider, content: list[Any]) -> _RecordingCreate:
        create = _RecordingCreate(
            SimpleNamespace(
                content=content,
                stop_reason="end_turn",
                usage=SimpleNamespace(input_tokens=3, output_tokens=4),
                model="claude-stub",
            )
        )
        provider._client = SimpleNamespace(messages=SimpleNamespace(create=create))
        return create

    @pytest.mark.asyncio
    async def test_joins_only_text_blocks(self):
        provider = AnthropicProvider(api_key="sk-ant-test")
        self._stub(
            provider,
            [
                SimpleNamespace(type="thinking", thinking="hmm"),
                SimpleNamespace(type="text", text="First half, "),
                SimpleNamespace(type="text", text="second half."),
            ],
        )
        response = await provider.generate("p")
        assert response.text == "First half, second half."
        assert response.metadata["output_tokens"] == 4

    @pytest.mark.asyncio
    async def test_request_shape(self):
        provider = AnthropicProvider(api_key="sk-ant-test", temperature=1.4, system_prompt="Be plain.")
        create = self._stub(provider, [SimpleNamespace(type="text", text="ok")])

        await provider.generate("p")

        assert create.kwargs["temperature"] == 1.0
        assert create.kwargs["system"] == "Be plain."
        assert create.kwargs["max_tokens"] == 8192
        assert "top_p" not in create.kwargs
