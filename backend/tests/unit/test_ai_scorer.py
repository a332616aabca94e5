"""
Unit tests for the AI batch scorer, its retry helper and circuit breaker.
"""
import json
from types import SimpleNamespace

import pytest

from audit_engine.errors import AIScorerError
from audit_engine.services import ai_scorer
from audit_engine.services.ai_scorer import (
    ClaudeBatchScorer,
    PageForAnalysis,
    batch_cost,
    build_prompt,
    chunk,
    extract_page_text,
    parse_response,
)
from audit_engine.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from audit_engine.services.retry import retry_async


def analysis(url, score=80):
    return {
        "url": url,
        "scores": {
            "dataQuality": score,
            "expertCredibility": score,
            "comprehensiveness": score,
            "citability": score,
            "authority": score,
            "overall": score,
        },
        "findings": {"strengths": ["clear definitions"]},
        "recommendations": [
            {"priority": "high", "category": "data", "issue": "No sources", "recommendation": "Cite studies"}
        ],
    }


class FakeMessages:
    """Stands in for ``AsyncAnthropic().messages``."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.prompts = []

    async def create(self, **kwargs):
        self.prompts.append(kwargs["messages"][0]["content"])
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(
            content=[SimpleNamespace(type="text", text=reply)],
            usage=SimpleNamespace(input_tokens=1000, output_tokens=200),
        )


def fake_client(*replies):
    return SimpleNamespace(messages=FakeMessages(replies))


def scorer(client, **kwargs):
    return ClaudeBatchScorer(client=client, model="test-model", breaker=CircuitBreaker("test"), **kwargs)


PAGES = [
    PageForAnalysis(url="https://example.com/", html="<main><p>Home</p></main>", importance_score=100),
    PageForAnalysis(url="https://example.com/docs", html="<main><p>Docs</p></main>", importance_score=90),
]


class TestParseResponse:
    """Test JSON parsing and schema validation."""

    def test_plain_json(self):
        payload = parse_response(json.dumps({"analyses": [analysis("https://example.com/")]}))

        assert payload.analyses[0].scores.data_quality == 80
        assert payload.analyses[0].recommendations[0].issue == "No sources"

    def test_code_fenced_json(self):
        text = "```json\n" + json.dumps({"analyses": []}) + "\n```"
        assert parse_response(text).analyses == []

    def test_not_json(self):
        with pytest.raises(AIScorerError, match="Failed to parse"):
            parse_response("Here are my thoughts")

    def test_bare_array_rejected(self):
        with pytest.raises(AIScorerError, match="expected schema"):
            parse_response(json.dumps([analysis("https://example.com/")]))

    def test_out_of_range_score(self):
        with pytest.raises(AIScorerError):
            parse_response(json.dumps({"analyses": [analysis("https://example.com/", score=140)]}))


class TestHelpers:
    """Test prompt and cost helpers."""

    def test_extract_page_text_skips_chrome(self):
        html = "<nav>Menu</nav><main><h1>Title</h1>\n<p>Body   text</p></main><footer>Foot</footer>"
        assert extract_page_text(html) == "Title Body text"

    def test_extract_page_text_truncates(self):
        html = "<p>" + "word " * (ai_scorer.MAX_PAGE_WORDS + 10) + "</p>"
        assert extract_page_text(html).endswith("...[content truncated]")

    def test_prompt_lists_every_page(self):
        prompt = build_prompt(PAGES)

        assert "### Page 1: https://example.com/" in prompt
        assert "### Page 2: https://example.com/docs" in prompt

    def test_batch_cost(self):
        assert batch_cost(1_000_000, 0) == pytest.approx(15.0)
        assert batch_cost(0, 1_000_000) == pytest.approx(75.0)

    def test_chunk(self):
        assert [len(c) for c in chunk(list(range(7)), 3)] == [3, 3, 1]


class TestClaudeBatchScorer:
    """Test the scorer against a fake Anthropic client."""

    async def test_analyze_single_batch(self):
        reply = json.dumps({"analyses": [analysis(p.url) for p in PAGES]})
        result = await scorer(fake_client(reply)).analyze(PAGES)

        assert [a.url for a in result.analyses] == [p.url for p in PAGES]
        assert result.input_tokens == 1000
        assert result.output_tokens == 200
        assert result.cost == pytest.approx(batch_cost(1000, 200))
        assert result.analyses[0].importance_score == 100
        assert result.analyses[0].input_tokens == 500

    async def test_analyze_in_batches(self, monkeypatch):
        monkeypatch.setattr(ai_scorer, "BATCH_PAUSE_SECONDS", 0)
        client = fake_client(
            json.dumps({"analyses": [analysis(PAGES[0].url)]}),
            json.dumps({"analyses": [analysis(PAGES[1].url, 60)]}),
        )
        result = await scorer(client, batch_size=1).analyze(PAGES)

        assert len(client.messages.prompts) == 2
        assert result.input_tokens == 2000
        assert result.analyses[1].to_record("audit-1").overall == 60

    async def test_no_pages(self):
        client = fake_client()
        result = await scorer(client).analyze([])

        assert result.analyses == []
        assert client.messages.prompts == []

    async def test_malformed_reply_raises(self):
        breaker = CircuitBreaker("test")
        client = fake_client("not json")

        with pytest.raises(AIScorerError):
            await ClaudeBatchScorer(client=client, breaker=breaker).analyze(PAGES)
        assert breaker.consecutive_failures == 1

    async def test_open_breaker_blocks_calls(self):
        breaker = CircuitBreaker("test", CircuitBreakerConfig(failure_threshold=1))
        breaker.record_failure()
        client = fake_client()

        with pytest.raises(AIScorerError, match="unavailable"):
            await ClaudeBatchScorer(client=client, breaker=breaker).analyze(PAGES)
        assert client.messages.prompts == []

    async def test_missing_api_key(self, monkeypatch):
        monkeypatch.setattr(ai_scorer.settings, "ANTHROPIC_API_KEY", "")

        with pytest.raises(AIScorerError, match="ANTHROPIC_API_KEY"):
            await ClaudeBatchScorer(breaker=CircuitBreaker("test")).analyze(PAGES)

    def test_to_record_rounds_half_up(self):
        payload = parse_response(json.dumps({"analyses": [analysis("https://example.com/", 72.5)]}))
        page = ai_scorer.ScoredPage(url="https://example.com/", scores=payload.analyses[0].scores)

        assert page.to_record("audit-1").citability == 73


class TestRetryAsync:
    """Test the backoff decorator."""

    async def test_retries_then_succeeds(self):
        calls = []

        @retry_async(max_attempts=3, base_delay=0, jitter=0, exceptions=(ConnectionError,))
        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("reset")
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 3

    async def test_gives_up(self):
        @retry_async(max_attempts=2, base_delay=0, jitter=0, exceptions=(ConnectionError,))
        async def down():
            raise ConnectionError("reset")

        with pytest.raises(ConnectionError):
            await down()

    async def test_other_errors_not_retried(self):
        calls = []

        @retry_async(max_attempts=3, base_delay=0, jitter=0, exceptions=(ConnectionError,))
        async def broken():
            calls.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await broken()
        assert len(calls) == 1


class TestCircuitBreaker:
    """Test breaker state transitions."""

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker("test", CircuitBreakerConfig(failure_threshold=2))
        breaker.record_failure()
        assert breaker.can_call()[0]

        breaker.record_failure()
        allowed, reason = breaker.can_call()

        assert breaker.state == CircuitState.OPEN
        assert not allowed
        assert reason.startswith("circuit_open_cooldown")

    def test_half_open_recovers(self):
        breaker = CircuitBreaker("test", CircuitBreakerConfig(failure_threshold=1, cooldown_seconds=0))
        breaker.record_failure()

        assert breaker.can_call() == (True, "circuit_half_open")
        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_status()["consecutive_failures"] == 0
