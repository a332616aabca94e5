"""
Unit tests for executive summaries and the report service.
"""
import pytest

from audit_engine.errors import ReportNotFoundError, ReportValidationError
from audit_engine.models import AuditKind, CheckPriority, CheckStatus, CWVRating, Device
from audit_engine.services.reports.service import ReportService
from audit_engine.services.reports.summary import (
    audit_summary,
    count_critical_failures,
    health_phrase,
    performance_overview,
    report_summary,
    top_opportunities,
)

from conftest import make_analysis, make_audit, make_check, make_performance


def failure(name, priority=CheckPriority.CRITICAL, **fields):
    return make_check(name, CheckStatus.FAILED, priority, display_name=name.replace("_", " ").title(), **fields)


class TestHealthPhrase:
    """Test score bands."""

    @pytest.mark.parametrize("score,phrase", [
        (None, "could not be scored"),
        (80, "is performing well"),
        (60, "has room for improvement"),
        (59, "requires immediate attention"),
    ])
    def test_bands(self, score, phrase):
        assert health_phrase(score) == phrase


class TestTopOpportunities:
    """Test improvement area selection."""

    def test_mix_of_sources(self):
        site = [failure("a"), failure("b"), failure("c"), failure("d")]
        aio = [failure("x"), failure("y", CheckPriority.RECOMMENDED), failure("z")]
        results = [make_performance(45)]

        assert top_opportunities(site, results, aio) == ["A", "B", "C", "Page load performance", "X"]

    def test_optional_failures_ignored(self):
        site = [failure("minor", CheckPriority.OPTIONAL)]
        assert top_opportunities(site, [], []) == []

    def test_poor_vital_flags_page_load(self):
        results = [make_performance(85, lcp_rating=CWVRating.POOR)]
        assert top_opportunities([], results, []) == ["Page load performance"]

    def test_duplicate_labels_collapsed(self):
        site = [failure("missing_title", page_id="p1"), failure("missing_title", page_id="p2")]
        assert top_opportunities(site, [], []) == ["Missing Title"]


class TestAuditSummary:
    """Test per-kind completion summaries."""

    def test_site_audit_with_critical_failures(self):
        audit = make_audit(AuditKind.SITE, overall_score=55, pages_checked=3)
        checks = [
            failure("missing_sitemap"),
            make_check("heading_hierarchy", CheckStatus.WARNING),
            make_check("canonical_validation", CheckStatus.PASSED),
        ]
        text = audit_summary(audit, checks)

        assert text.startswith("https://example.com/ requires immediate attention with an overall score of 55/100")
        assert "across 3 pages" in text
        assert "1 checks passed, 1 raised warnings and 1 failed." in text
        assert "1 critical issue should be fixed first. Start with: Missing Sitemap." in text

    def test_aio_audit_mentions_strategic_score(self):
        audit = make_audit(AuditKind.AIO, overall_score=82, strategic_score=77, pages_checked=1)
        text = audit_summary(audit, [make_check()], [make_analysis(), make_analysis()])

        assert "is performing well" in text
        assert "AI content analysis of 2 pages produced a strategic score of 77/100." in text

    def test_performance_audit(self):
        audit = make_audit(AuditKind.PERFORMANCE, overall_score=75)
        results = [
            make_performance(60, Device.MOBILE),
            make_performance(90, Device.DESKTOP),
            make_performance(None, Device.MOBILE, url="https://example.com/blog", error_message="500"),
        ]
        text = audit_summary(audit, performance=results)

        assert "has room for improvement on page speed with a score of 75/100" in text
        assert "2 measurements collected (Mobile: 60/100, Desktop: 90/100)." in text
        assert text.endswith("1 measurement could not be collected.")

    def test_performance_overview_empty(self):
        assert performance_overview([]) == "No performance data available"


class TestReportSummary:
    """Test the three-paragraph report summary."""

    def test_critical_issues_paragraph(self):
        site = make_audit(pages_crawled=12)
        text = report_summary("example.com", 70, 80, 45, 85, site, [failure("a")], [failure("b")])
        paragraphs = text.split("\n\n")

        assert len(paragraphs) == 3
        assert paragraphs[0].startswith("example.com has room for improvement")
        assert "across 12 pages" in paragraphs[0]
        assert paragraphs[1].startswith("2 critical issues were identified")
        assert "PageSpeed is the area requiring the most attention with a score of 45/100" in paragraphs[1]
        assert paragraphs[2] == "Priority: Focus on improving PageSpeed to maximize overall marketing performance."

    def test_healthy_site(self):
        site = make_audit(pages_crawled=1)
        text = report_summary("example.com", 90, 90, 90, 88, site, [], [])

        assert "no critical issues identified" in text
        assert text.endswith("consider optimization opportunities in lower-scoring areas.")

    def test_no_critical_but_weak(self):
        site = make_audit(pages_crawled=2)
        text = report_summary("example.com", 65, 70, 60, 50, site, [], [])
        assert "particularly in AI Optimization." in text

    def test_count_critical_failures(self):
        checks = [failure("a"), failure("b", CheckPriority.RECOMMENDED), make_check("c")]
        assert count_critical_failures(checks, [failure("d")]) == 2


class TestReportService:
    """Test report generation against the in-memory store."""

    async def seed(self, store, aio_url="https://example.com/"):
        site = await store.insert_audit(make_audit(AuditKind.SITE, overall_score=80, pages_crawled=3,
                                                   organization_id="org-1"))
        performance = await store.insert_audit(make_audit(AuditKind.PERFORMANCE, overall_score=75))
        aio = await store.insert_audit(make_audit(AuditKind.AIO, aio_url, overall_score=90))
        await store.insert_performance_results([
            make_performance(60, Device.MOBILE, audit_id=performance.id),
            make_performance(90, Device.DESKTOP, audit_id=performance.id),
        ])
        await store.insert_checks([failure("missing_sitemap", audit_id=site.id)])
        return site, performance, aio

    async def test_generate_report(self, store):
        site, performance, aio = await self.seed(store)
        report = await ReportService(store).generate_report(site.id, performance.id, aio.id)

        assert report.combined_score == 81
        assert report.domain == "example.com"
        assert report.organization_id == "org-1"
        assert report.breakdown["top_opportunities"] == ["Missing Sitemap"]
        assert report.executive_summary.count("\n\n") == 2
        assert (await ReportService(store).get_report(report.id)).id == report.id

    async def test_inputs_untouched(self, store):
        site, performance, aio = await self.seed(store)
        await ReportService(store).generate_report(site.id, performance.id, aio.id)

        stored = await store.get_audit(site.id)
        assert stored.version == site.version
        assert stored.overall_score == 80

    async def test_ineligible_writes_nothing(self, store):
        site, performance, aio = await self.seed(store, aio_url="https://other.com/")

        with pytest.raises(ReportValidationError) as exc:
            await ReportService(store).generate_report(site.id, performance.id, aio.id)

        assert "other.com" in exc.value.errors[0]

    async def test_validate_unknown_audit(self, store):
        site, performance, _ = await self.seed(store)
        validation = await ReportService(store).validate(site.id, performance.id, "missing")

        assert not validation.is_valid
        assert validation.errors == ["No AIO audit found"]

    async def test_get_missing_report(self, store):
        with pytest.raises(ReportNotFoundError):
            await ReportService(store).get_report("nope")
