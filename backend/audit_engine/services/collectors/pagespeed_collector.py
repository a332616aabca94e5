"""
PageSpeed Collector - Lighthouse scores and Core Web Vitals from the
PageSpeed Insights v5 API.
"""
from dataclasses import dataclass
from typing import Optional

import httpx

from audit_engine.config import settings
from audit_engine.errors import PageSpeedError
from audit_engine.logger import get_logger
from audit_engine.models import CWVRating, Device, PerformanceResult, new_id
from audit_engine.services.circuit_breaker import CircuitBreaker, get_circuit_breaker
from audit_engine.services.retry import retry_async

logger = get_logger("pagespeed")

PAGESPEED_API = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
CATEGORIES = ["performance", "accessibility", "best-practices", "seo"]

FIELD_RATINGS = {
    "FAST": CWVRating.GOOD,
    "AVERAGE": CWVRating.NEEDS_IMPROVEMENT,
    "SLOW": CWVRating.POOR,
}

# (good up to, needs improvement up to)
LCP_THRESHOLDS = (2500, 4000)
INP_THRESHOLDS = (200, 500)
CLS_THRESHOLDS = (0.1, 0.25)


class RetryablePageSpeedError(PageSpeedError):
    """Rate limited or server-side failure; worth another attempt."""


@dataclass
class PageSpeedMetrics:
    """Parsed PageSpeed data for one URL on one device."""
    performance_score: Optional[int] = None
    accessibility_score: Optional[int] = None
    best_practices_score: Optional[int] = None
    seo_score: Optional[int] = None
    lcp_ms: Optional[int] = None
    lcp_rating: Optional[CWVRating] = None
    inp_ms: Optional[int] = None
    inp_rating: Optional[CWVRating] = None
    cls_score: Optional[float] = None
    cls_rating: Optional[CWVRating] = None

    def to_record(self, audit_id: str, url: str, device: Device) -> PerformanceResult:
        return PerformanceResult(id=new_id(), audit_id=audit_id, url=url, device=device, **self.__dict__)


def rate(value: Optional[float], thresholds) -> Optional[CWVRating]:
    if value is None:
        return None
    good, needs_improvement = thresholds
    if value <= good:
        return CWVRating.GOOD
    if value <= needs_improvement:
        return CWVRating.NEEDS_IMPROVEMENT
    return CWVRating.POOR


def _category_score(categories: dict, name: str) -> Optional[int]:
    score = (categories.get(name) or {}).get("score")
    return round(score * 100) if score is not None else None


def _field(metrics: dict, name: str) -> dict:
    return metrics.get(name) or {}


def extract_metrics(data: dict) -> PageSpeedMetrics:
    """
    Map a PageSpeed API response onto scores and Core Web Vitals.

    Field data (CrUX) wins over lab data; CrUX reports CLS multiplied by 100.
    INP has no lab equivalent besides the experimental audit.
    """
    lighthouse = data.get("lighthouseResult") or {}
    categories = lighthouse.get("categories") or {}
    audits = lighthouse.get("audits") or {}
    field_metrics = (data.get("loadingExperience") or {}).get("metrics") or {}

    lcp_field = _field(field_metrics, "LARGEST_CONTENTFUL_PAINT_MS")
    cls_field = _field(field_metrics, "CUMULATIVE_LAYOUT_SHIFT_SCORE")
    inp_field = _field(field_metrics, "INTERACTION_TO_NEXT_PAINT")

    lcp = lcp_field.get("percentile")
    if lcp is None:
        lcp = (audits.get("largest-contentful-paint") or {}).get("numericValue")

    cls = cls_field.get("percentile")
    if cls is not None:
        cls = cls / 100
    else:
        cls = (audits.get("cumulative-layout-shift") or {}).get("numericValue")

    inp = inp_field.get("percentile")
    if inp is None:
        inp = (audits.get("experimental-interaction-to-next-paint") or {}).get("numericValue")

    lcp_ms = round(lcp) if lcp is not None else None
    inp_ms = round(inp) if inp is not None else None
    cls_score = round(cls, 3) if cls is not None else None

    return PageSpeedMetrics(
        performance_score=_category_score(categories, "performance"),
        accessibility_score=_category_score(categories, "accessibility"),
        best_practices_score=_category_score(categories, "best-practices"),
        seo_score=_category_score(categories, "seo"),
        lcp_ms=lcp_ms,
        lcp_rating=FIELD_RATINGS.get(lcp_field.get("category")) or rate(lcp_ms, LCP_THRESHOLDS),
        inp_ms=inp_ms,
        inp_rating=FIELD_RATINGS.get(inp_field.get("category")) or rate(inp_ms, INP_THRESHOLDS),
        cls_score=cls_score,
        cls_rating=FIELD_RATINGS.get(cls_field.get("category")) or rate(cls_score, CLS_THRESHOLDS),
    )


class PageSpeedCollector:
    """Fetches PageSpeed Insights data."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: Optional[int] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.PAGESPEED_API_KEY
        self.timeout = timeout or settings.PAGESPEED_TIMEOUT
        self.breaker = breaker or get_circuit_breaker("pagespeed")

    async def run(self, url: str, device: Device) -> PageSpeedMetrics:
        """
        Run Lighthouse for ``url`` on ``device``.

        Raises:
            PageSpeedError: disabled, API error after retries, or unreadable response
        """
        if not settings.PAGESPEED_ENABLED:
            raise PageSpeedError("PageSpeed collection is disabled")

        allowed, reason = self.breaker.can_call()
        if not allowed:
            raise PageSpeedError(f"PageSpeed API unavailable ({reason})")

        logger.info(f"Auditing {url} ({Device(device).value})")
        try:
            data = await self._fetch(url, Device(device))
        except RetryablePageSpeedError:
            self.breaker.record_failure()
            raise
        except httpx.HTTPError as e:
            self.breaker.record_failure()
            raise PageSpeedError(f"PageSpeed request failed: {str(e) or e.__class__.__name__}") from e
        self.breaker.record_success()

        try:
            return extract_metrics(data)
        except (AttributeError, TypeError, ValueError) as e:
            raise PageSpeedError(f"Unreadable PageSpeed response: {e}") from e

    @retry_async(max_attempts=3, base_delay=2.0, exceptions=(RetryablePageSpeedError, httpx.TransportError))
    async def _fetch(self, url: str, device: Device) -> dict:
        params = [("url", url), ("strategy", device.value)]
        params += [("category", c) for c in CATEGORIES]
        if self.api_key:
            params.append(("key", self.api_key))

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(PAGESPEED_API, params=params, headers={"Accept": "application/json"})

        if response.status_code == 429 or response.status_code >= 500:
            raise RetryablePageSpeedError(f"PageSpeed API error ({response.status_code})")
        if response.status_code != 200:
            raise PageSpeedError(f"PageSpeed API error ({response.status_code}): {response.text[:200]}")
        try:
            return response.json()
        except ValueError as e:
            raise PageSpeedError(f"PageSpeed response is not JSON: {e}") from e
