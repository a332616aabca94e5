"""
Unit tests for the PageSpeed Insights collector.
"""
import httpx
import pytest

from audit_engine.errors import PageSpeedError
from audit_engine.models import CWVRating, Device
from audit_engine.services import retry
from audit_engine.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from audit_engine.services.collectors import pagespeed_collector
from audit_engine.services.collectors.pagespeed_collector import (
    CLS_THRESHOLDS,
    LCP_THRESHOLDS,
    PageSpeedCollector,
    extract_metrics,
    rate,
)

LAB_RESPONSE = {
    "lighthouseResult": {
        "categories": {
            "performance": {"score": 0.62},
            "accessibility": {"score": 0.95},
            "best-practices": {"score": 1.0},
            "seo": {"score": 0.915},
        },
        "audits": {
            "largest-contentful-paint": {"numericValue": 3120.4},
            "cumulative-layout-shift": {"numericValue": 0.31234},
            "experimental-interaction-to-next-paint": {"numericValue": 150},
        },
    }
}


@pytest.fixture
def pagespeed_api(monkeypatch):
    """Route the collector's AsyncClient through a MockTransport handler."""
    original = httpx.AsyncClient

    def install(handler):
        def client(**kwargs):
            return original(transport=httpx.MockTransport(handler), **kwargs)
        monkeypatch.setattr(pagespeed_collector.httpx, "AsyncClient", client)

    return install


class TestExtractMetrics:
    """Test response mapping."""

    def test_lab_data(self):
        metrics = extract_metrics(LAB_RESPONSE)

        assert metrics.performance_score == 62
        assert metrics.best_practices_score == 100
        assert metrics.lcp_ms == 3120
        assert metrics.lcp_rating == CWVRating.NEEDS_IMPROVEMENT
        assert metrics.cls_score == 0.312
        assert metrics.cls_rating == CWVRating.POOR
        assert metrics.inp_rating == CWVRating.GOOD

    def test_field_data_wins(self):
        """CrUX values and categories override lab data; CLS is reported x100."""
        data = dict(LAB_RESPONSE)
        data["loadingExperience"] = {
            "metrics": {
                "LARGEST_CONTENTFUL_PAINT_MS": {"percentile": 1800, "category": "FAST"},
                "CUMULATIVE_LAYOUT_SHIFT_SCORE": {"percentile": 5, "category": "FAST"},
                "INTERACTION_TO_NEXT_PAINT": {"percentile": 640, "category": "SLOW"},
            }
        }
        metrics = extract_metrics(data)

        assert metrics.lcp_ms == 1800
        assert metrics.lcp_rating == CWVRating.GOOD
        assert metrics.cls_score == 0.05
        assert metrics.inp_ms == 640
        assert metrics.inp_rating == CWVRating.POOR

    def test_empty_response(self):
        metrics = extract_metrics({})

        assert metrics.performance_score is None
        assert metrics.lcp_rating is None

    @pytest.mark.parametrize("value,thresholds,expected", [
        (2500, LCP_THRESHOLDS, CWVRating.GOOD),
        (2501, LCP_THRESHOLDS, CWVRating.NEEDS_IMPROVEMENT),
        (4001, LCP_THRESHOLDS, CWVRating.POOR),
        (0.25, CLS_THRESHOLDS, CWVRating.NEEDS_IMPROVEMENT),
        (None, CLS_THRESHOLDS, None),
    ])
    def test_rate(self, value, thresholds, expected):
        assert rate(value, thresholds) == expected

    def test_to_record(self):
        record = extract_metrics(LAB_RESPONSE).to_record("audit-1", "https://example.com/", Device.MOBILE)

        assert record.audit_id == "audit-1"
        assert record.device == Device.MOBILE
        assert record.performance_score == 62


class TestPageSpeedCollector:
    """Test the HTTP side of the collector."""

    async def test_run(self, pagespeed_api):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=LAB_RESPONSE)

        pagespeed_api(handler)
        metrics = await PageSpeedCollector(api_key="secret", breaker=CircuitBreaker("test")).run("https://example.com/", Device.DESKTOP)

        assert metrics.performance_score == 62
        params = requests[0].url.params
        assert params["strategy"] == "desktop"
        assert params["key"] == "secret"
        assert params.get_list("category") == ["performance", "accessibility", "best-practices", "seo"]

    async def test_client_error_not_retried(self, pagespeed_api):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, text="Invalid URL")

        pagespeed_api(handler)
        with pytest.raises(PageSpeedError, match=r"\(400\)"):
            await PageSpeedCollector(api_key="", breaker=CircuitBreaker("test")).run("https://example.com/", Device.MOBILE)
        assert len(calls) == 1

    async def test_disabled(self, monkeypatch):
        monkeypatch.setattr(pagespeed_collector.settings, "PAGESPEED_ENABLED", False)

        with pytest.raises(PageSpeedError, match="disabled"):
            await PageSpeedCollector().run("https://example.com/", Device.MOBILE)

    async def test_not_json(self, pagespeed_api):
        pagespeed_api(lambda request: httpx.Response(200, text="<html>quota page</html>"))

        with pytest.raises(PageSpeedError, match="not JSON"):
            await PageSpeedCollector(breaker=CircuitBreaker("test")).run("https://example.com/", Device.MOBILE)

    async def test_transport_failure_trips_breaker(self, pagespeed_api, monkeypatch):
        async def no_sleep(delay):
            return None

        monkeypatch.setattr(retry.asyncio, "sleep", no_sleep)

        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        pagespeed_api(refuse)
        breaker = CircuitBreaker("test", CircuitBreakerConfig(failure_threshold=1))
        collector = PageSpeedCollector(breaker=breaker)

        with pytest.raises(PageSpeedError, match="request failed"):
            await collector.run("https://example.com/", Device.MOBILE)
        with pytest.raises(PageSpeedError, match="unavailable"):
            await collector.run("https://example.com/", Device.DESKTOP)
