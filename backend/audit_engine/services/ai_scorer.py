"""
AI Batch Scorer - Judges content quality of sampled pages with Claude.

Pages are sent in small batches; the model must answer with a JSON object
that is validated with pydantic before anything is persisted. Any failure
(transport, quota, malformed JSON, open circuit) raises ``AIScorerError``,
which fails the AIO audit rather than leaving it without a strategic score.
"""
import asyncio
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

import anthropic
from anthropic import AsyncAnthropic
from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from audit_engine.config import settings
from audit_engine.errors import AIScorerError
from audit_engine.logger import get_logger
from audit_engine.models import AIAnalysis, Recommendation, new_id
from audit_engine.services.circuit_breaker import CircuitBreaker, get_circuit_breaker
from audit_engine.services.retry import retry_async
from audit_engine.services.scoring.aggregator import round_score

logger = get_logger("ai_scorer")

# USD per token
INPUT_TOKEN_COST = 15 / 1_000_000
OUTPUT_TOKEN_COST = 75 / 1_000_000

MAX_PAGE_WORDS = 8000
MAX_PROMPT_CHARS_PER_PAGE = 6000
MAX_RECOMMENDATIONS = 10
BATCH_PAUSE_SECONDS = 0.5

NON_CONTENT_TAGS = ["nav", "header", "footer", "aside", "script", "style", "noscript", "iframe"]

RETRYABLE_ERRORS = (
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)

QUALITY_PROMPT = """You are analyzing web content for AI Optimization (AIO): how likely AI search engines
such as ChatGPT, Claude, Perplexity and Gemini are to cite it.

Technical and structural checks were already run programmatically. Judge CONTENT QUALITY only.

Score each page from 0 to 100 on:
1. dataQuality - statistics and data points are specific, recent and sourced
2. expertCredibility - named experts with credentials, attributed quotes, author bylines
3. comprehensiveness - depth, multiple angles, edge cases, not surface-level
4. citability - clear, quotable, unique statements an AI engine would cite
5. authority - E-E-A-T signals: expertise, author bio, dates, trust signals
plus an overall score.

Bands: 80-100 strong, 60-79 solid, 40-59 basic, 20-39 weak, 0-19 absent.

For each page return:
- url
- scores: dataQuality, expertCredibility, comprehensiveness, citability, authority, overall
- findings: an object with specific examples from the content
- recommendations: up to 10 items with priority (critical/high/medium/low), category,
  issue, recommendation and optionally expectedImpact

Be objective and specific, cite examples from the content, and do not penalize
brevity when the content is high quality."""

RESPONSE_INSTRUCTIONS = """Analyze each page and provide scores, findings and recommendations.

Your response must be a JSON object with this exact structure:
{"analyses": [ one object per page ], "batchMetadata": { optional }}

Do not return a bare array. Do not wrap the response in markdown code blocks.
Return ONLY the JSON object."""


# --- Response schema ---

class DimensionScores(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data_quality: float = Field(alias="dataQuality", ge=0, le=100)
    expert_credibility: float = Field(alias="expertCredibility", ge=0, le=100)
    comprehensiveness: float = Field(ge=0, le=100)
    citability: float = Field(ge=0, le=100)
    authority: float = Field(ge=0, le=100)
    overall: float = Field(ge=0, le=100)


class RecommendationPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    priority: str
    category: str
    issue: str
    recommendation: str
    expected_impact: Optional[str] = Field(default=None, alias="expectedImpact")
    learn_more_url: Optional[str] = Field(default=None, alias="learnMoreUrl")


class PageAnalysisPayload(BaseModel):
    url: str
    scores: DimensionScores
    findings: Any = None
    recommendations: List[RecommendationPayload] = Field(default_factory=list, max_length=MAX_RECOMMENDATIONS)


class BatchPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    analyses: List[PageAnalysisPayload]
    batch_metadata: Optional[Dict[str, Any]] = Field(default=None, alias="batchMetadata")


# --- Collaborator contract ---

@dataclass
class PageForAnalysis:
    url: str
    html: str
    importance_score: Optional[int] = None


@dataclass
class ScoredPage:
    """One validated page judgement, not yet bound to an audit."""
    url: str
    scores: DimensionScores
    findings: Dict[str, Any] = field(default_factory=dict)
    recommendations: List[Recommendation] = field(default_factory=list)
    importance_score: Optional[int] = None
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0

    def to_record(self, audit_id: str) -> AIAnalysis:
        s = self.scores
        return AIAnalysis(
            id=new_id(),
            audit_id=audit_id,
            page_url=self.url,
            data_quality=round_score(s.data_quality),
            expert_credibility=round_score(s.expert_credibility),
            comprehensiveness=round_score(s.comprehensiveness),
            citability=round_score(s.citability),
            authority=round_score(s.authority),
            overall=round_score(s.overall),
            findings=self.findings,
            recommendations=self.recommendations,
            importance_score=self.importance_score,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cost=self.cost,
        )


@dataclass
class BatchAnalysisResult:
    analyses: List[ScoredPage] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    model: Optional[str] = None


class AIBatchScorer(Protocol):
    async def analyze(self, pages: Sequence[PageForAnalysis]) -> BatchAnalysisResult: ...


# --- Helpers ---

def extract_page_text(html: str) -> str:
    """Visible main-content text, whitespace-normalized and capped at 8000 words."""
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup.find_all(NON_CONTENT_TAGS):
        tag.decompose()

    main = soup.select_one('main, article, [role="main"]') or soup.body or soup
    text = re.sub(r"\s+", " ", main.get_text(" ")).strip()

    words = text.split(" ")
    if len(words) > MAX_PAGE_WORDS:
        return " ".join(words[:MAX_PAGE_WORDS]) + "...[content truncated]"
    return text


def build_prompt(pages: Sequence[PageForAnalysis]) -> str:
    sections = []
    for i, page in enumerate(pages, start=1):
        content = extract_page_text(page.html)
        truncated = "\n...[truncated for brevity]" if len(content) > MAX_PROMPT_CHARS_PER_PAGE else ""
        sections.append(f"### Page {i}: {page.url}\n\n{content[:MAX_PROMPT_CHARS_PER_PAGE]}{truncated}")
    return "## Pages to Analyze\n\n" + "\n\n".join(sections) + "\n\n" + RESPONSE_INSTRUCTIONS


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    match = re.match(r"^```(?:json)?\s*\n(.*?)\n?```$", cleaned, re.DOTALL)
    return match.group(1).strip() if match else cleaned


def parse_response(text: str) -> BatchPayload:
    """Parse and validate the model's JSON answer.

    Raises:
        AIScorerError: not JSON, or does not match the expected schema
    """
    try:
        data = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse AI response as JSON: {text[:500]}")
        raise AIScorerError(f"Failed to parse AI response as JSON: {e}") from e

    try:
        return BatchPayload.model_validate(data)
    except ValidationError as e:
        raise AIScorerError(f"AI response did not match the expected schema: {e.error_count()} error(s)") from e


def batch_cost(input_tokens: int, output_tokens: int) -> float:
    return input_tokens * INPUT_TOKEN_COST + output_tokens * OUTPUT_TOKEN_COST


def chunk(pages: Sequence[PageForAnalysis], size: int) -> List[List[PageForAnalysis]]:
    return [list(pages[i:i + size]) for i in range(0, len(pages), size)]


class ClaudeBatchScorer:
    """AIBatchScorer backed by the Anthropic Messages API."""

    def __init__(
        self,
        client: Optional[AsyncAnthropic] = None,
        model: Optional[str] = None,
        batch_size: Optional[int] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self._client = client
        self.model = model or settings.AI_MODEL
        self.batch_size = batch_size or settings.AI_BATCH_SIZE
        self.breaker = breaker or get_circuit_breaker()

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            if not settings.ANTHROPIC_API_KEY:
                raise AIScorerError("ANTHROPIC_API_KEY is not configured")
            self._client = AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
        return self._client

    async def analyze(self, pages: Sequence[PageForAnalysis]) -> BatchAnalysisResult:
        result = BatchAnalysisResult(model=self.model)
        if not pages:
            return result

        logger.info(f"Starting AI analysis of {len(pages)} pages")
        batches = chunk(pages, self.batch_size)
        for index, batch in enumerate(batches):
            scored, input_tokens, output_tokens = await self._analyze_batch(batch)
            result.analyses.extend(scored)
            result.input_tokens += input_tokens
            result.output_tokens += output_tokens

            if index < len(batches) - 1:
                await asyncio.sleep(BATCH_PAUSE_SECONDS)

        result.cost = batch_cost(result.input_tokens, result.output_tokens)
        logger.info(
            f"Completed AI analysis: {len(result.analyses)} pages, "
            f"{result.input_tokens}/{result.output_tokens} tokens, ${result.cost:.4f}"
        )
        return result

    async def _analyze_batch(self, batch: List[PageForAnalysis]):
        allowed, reason = self.breaker.can_call()
        if not allowed:
            raise AIScorerError(f"AI scorer unavailable ({reason})")

        try:
            text, input_tokens, output_tokens = await self._complete(build_prompt(batch))
            payload = parse_response(text)
        except AIScorerError:
            self.breaker.record_failure()
            raise
        except anthropic.APIError as e:
            self.breaker.record_failure()
            raise AIScorerError(f"AI analysis failed: {e}") from e
        self.breaker.record_success()

        logger.info(f"Analyzed {len(batch)} pages, tokens: {input_tokens}/{output_tokens}")
        importance = {page.url: page.importance_score for page in batch}
        share = max(len(payload.analyses), 1)
        cost = batch_cost(input_tokens, output_tokens)

        scored = [
            ScoredPage(
                url=item.url,
                scores=item.scores,
                findings=item.findings if isinstance(item.findings, dict) else {"notes": item.findings},
                recommendations=[
                    Recommendation(
                        priority=r.priority,
                        category=r.category,
                        issue=r.issue,
                        recommendation=r.recommendation,
                        expected_impact=r.expected_impact,
                        learn_more_url=r.learn_more_url,
                    )
                    for r in item.recommendations
                ],
                importance_score=importance.get(item.url),
                input_tokens=input_tokens // share,
                output_tokens=output_tokens // share,
                cost=cost / share,
            )
            for item in payload.analyses
        ]
        return scored, input_tokens, output_tokens

    @retry_async(
        max_attempts=settings.AI_MAX_RETRIES,
        base_delay=settings.AI_RETRY_BASE_DELAY,
        exceptions=RETRYABLE_ERRORS,
    )
    async def _complete(self, prompt: str):
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=settings.AI_MAX_TOKENS,
            temperature=0.3,
            system=QUALITY_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        return text, response.usage.input_tokens, response.usage.output_tokens
