"""
Shared fixtures for engine unit tests.

Collaborators that would touch the network (crawler, AI scorer, PageSpeed)
are replaced with in-process fakes; the check catalog is a small set of
pure checks so state machine tests never leave the process.
"""
from dataclasses import replace
from datetime import timedelta
from typing import Dict, List, Optional

import httpx
import pytest

from audit_engine.errors import PageSpeedError
from audit_engine.models import (
    AIAnalysis,
    Audit,
    AuditKind,
    AuditStatus,
    CheckCategory,
    CheckPriority,
    CheckRecord,
    CheckStatus,
    Device,
    PerformanceResult,
    new_id,
    utcnow,
)
from audit_engine.services import http_client
from audit_engine.services.ai_scorer import BatchAnalysisResult, DimensionScores, ScoredPage
from audit_engine.services.check_runner import CheckRunner
from audit_engine.services.checks.base import CheckContext, check, failed, passed
from audit_engine.services.collectors.pagespeed_collector import PageSpeedMetrics
from audit_engine.services.crawler import DiscoveredPage
from audit_engine.services.state_machine import AuditStateMachine
from audit_engine.store import InMemoryAuditStore


# ═══════════════════════════════════════════════════════
# PURE TEST CHECKS
# ═══════════════════════════════════════════════════════

@check("uses_https", CheckCategory.TECHNICAL_FOUNDATION, CheckPriority.CRITICAL, site_wide=True)
async def uses_https(context: CheckContext):
    if context.url.startswith("https://"):
        return passed("HTTPS")
    return failed("Not HTTPS")


@check("has_title", CheckCategory.CONTENT_STRUCTURE, CheckPriority.CRITICAL)
async def has_title(context: CheckContext):
    if "<title>" in context.html:
        return passed("Title present")
    return failed("Title missing")


@check("has_list", CheckCategory.CONTENT_QUALITY, CheckPriority.RECOMMENDED)
async def has_list(context: CheckContext):
    if "<ul>" in context.html:
        return passed("List present")
    return failed("No list")


TEST_CHECKS = (uses_https, has_title, has_list)

# Same checks filed under the site audit categories
SITE_TEST_CHECKS = (
    replace(uses_https, category=CheckCategory.TECHNICAL),
    replace(has_title, category=CheckCategory.SEO),
    replace(has_list, category=CheckCategory.AI_READINESS),
)


def catalog_by_kind(kind):
    return SITE_TEST_CHECKS if kind == AuditKind.SITE else TEST_CHECKS


def page_html(title: str = "Page", with_list: bool = True) -> str:
    body = "<ul><li>one</li></ul>" if with_list else "<p>text</p>"
    return f"<html><head><title>{title}</title></head><body>{body}</body></html>"


# ═══════════════════════════════════════════════════════
# FAKE COLLABORATORS
# ═══════════════════════════════════════════════════════

class FakeCrawler:
    """Yields a fixed page list; records every discover call."""

    def __init__(self, pages: Optional[List[DiscoveredPage]] = None, error: Optional[Exception] = None):
        self.pages = pages if pages is not None else [
            DiscoveredPage(url="https://example.com/", html=page_html("Home"), depth=0),
            DiscoveredPage(url="https://example.com/blog", html=page_html("Blog", with_list=False), depth=1),
            DiscoveredPage(url="https://example.com/about", html=page_html("About"), depth=1),
        ]
        self.error = error
        self.calls = []
        self.on_page = None

    async def discover(self, root_url, max_pages, should_stop, skip_urls=()):
        self.calls.append({"root_url": root_url, "max_pages": max_pages, "skip_urls": list(skip_urls)})
        if self.error is not None:
            raise self.error
        yielded = 0
        for page in self.pages:
            if yielded >= max_pages or await should_stop():
                return
            if page.url in skip_urls:
                continue
            yielded += 1
            yield page
            if self.on_page is not None:
                await self.on_page(page)


class FakeAIScorer:
    """Returns the same dimension scores for every page."""

    def __init__(self, scores=(80, 70, 90, 60, 100), error: Optional[Exception] = None):
        self.scores = scores
        self.error = error
        self.calls = []

    async def analyze(self, pages):
        self.calls.append([p.url for p in pages])
        if self.error is not None:
            raise self.error
        data_quality, expert_credibility, comprehensiveness, citability, authority = self.scores
        analyses = [
            ScoredPage(
                url=p.url,
                scores=DimensionScores(
                    data_quality=data_quality,
                    expert_credibility=expert_credibility,
                    comprehensiveness=comprehensiveness,
                    citability=citability,
                    authority=authority,
                    overall=75,
                ),
                importance_score=p.importance_score,
                input_tokens=100,
                output_tokens=50,
            )
            for p in pages
        ]
        return BatchAnalysisResult(
            analyses=analyses,
            input_tokens=100 * len(pages),
            output_tokens=50 * len(pages),
            cost=0.01 * len(pages),
            model="test-model",
        )


class FakePageSpeed:
    """Performance score per device; URLs in ``failing`` raise PageSpeedError."""

    def __init__(self, scores: Optional[Dict[Device, int]] = None, failing=()):
        self.scores = scores or {Device.MOBILE: 60, Device.DESKTOP: 90}
        self.failing = set(failing)
        self.calls = []

    async def run(self, url, device):
        self.calls.append((url, device))
        if url in self.failing:
            raise PageSpeedError("PageSpeed API error (500)")
        return PageSpeedMetrics(performance_score=self.scores[device], accessibility_score=95, seo_score=100)


# ═══════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════

@pytest.fixture
def store():
    return InMemoryAuditStore()


@pytest.fixture
def crawler():
    return FakeCrawler()


@pytest.fixture
def ai_scorer():
    return FakeAIScorer()


@pytest.fixture
def pagespeed():
    return FakePageSpeed()


def build_machine(store, crawler=None, ai_scorer=None, pagespeed=None, worker_id="worker-a", **kwargs):
    return AuditStateMachine(
        store,
        crawler=crawler or FakeCrawler(),
        check_runner=CheckRunner(timeout=2),
        ai_scorer=ai_scorer or FakeAIScorer(),
        pagespeed=pagespeed or FakePageSpeed(),
        concurrency=2,
        worker_id=worker_id,
        catalogs=catalog_by_kind,
        **kwargs,
    )


@pytest.fixture
def machine(store, crawler, ai_scorer, pagespeed):
    return build_machine(store, crawler, ai_scorer, pagespeed)


# ═══════════════════════════════════════════════════════
# RECORD FACTORIES
# ═══════════════════════════════════════════════════════

def make_audit(kind=AuditKind.SITE, url="https://example.com/", status=AuditStatus.COMPLETED,
               overall_score: Optional[int] = 80, days_ago: float = 0, **fields) -> Audit:
    return Audit(
        id=new_id(),
        kind=kind,
        url=url,
        status=status,
        overall_score=overall_score,
        created_at=utcnow() - timedelta(days=days_ago),
        **fields,
    )


def make_check(name="has_title", status=CheckStatus.PASSED, priority=CheckPriority.CRITICAL,
               category=CheckCategory.SEO, audit_id="audit-1", page_id="page-1", **fields) -> CheckRecord:
    return CheckRecord(
        id=new_id(),
        audit_id=audit_id,
        page_id=page_id,
        page_url="https://example.com/",
        check_name=name,
        category=category,
        priority=priority,
        status=status,
        **fields,
    )


def make_analysis(scores=(80, 70, 90, 60, 100), audit_id="audit-1") -> AIAnalysis:
    data_quality, expert_credibility, comprehensiveness, citability, authority = scores
    return AIAnalysis(
        id=new_id(),
        audit_id=audit_id,
        page_url="https://example.com/",
        data_quality=data_quality,
        expert_credibility=expert_credibility,
        comprehensiveness=comprehensiveness,
        citability=citability,
        authority=authority,
        overall=75,
    )


def make_performance(score: Optional[int], device=Device.MOBILE, audit_id="audit-1",
                     url="https://example.com/", **fields) -> PerformanceResult:
    return PerformanceResult(
        id=new_id(), audit_id=audit_id, url=url, device=device, performance_score=score, **fields
    )


@pytest.fixture
def mock_http(monkeypatch):
    """Route every check/collector request through a handler ``(request) -> Response``."""
    original = http_client.build_client

    def install(handler):
        def build(**overrides):
            return original(transport=httpx.MockTransport(handler), **overrides)
        monkeypatch.setattr(http_client, "build_client", build)

    return install
