"""
Unit tests for the scoring aggregator and weight tables.
"""
import pytest

from audit_engine.models import AuditKind, CheckCategory, CheckPriority, CheckStatus, Device
from audit_engine.services.scoring import weights
from audit_engine.services.scoring.aggregator import (
    ScoringAggregator,
    blended_overall,
    category_scores,
    performance_score,
    round_score,
    strategic_score,
    technical_score,
    top_failures,
)

from conftest import make_analysis, make_audit, make_check, make_performance


class TestRounding:
    """Half-up rounding used by every score."""

    @pytest.mark.parametrize("value,expected", [(2.5, 3), (3.5, 4), (76.5, 77), (76.49, 76), (0.0, 0)])
    def test_round_half_up(self, value, expected):
        assert round_score(value) == expected


class TestTechnicalScore:
    """Test the priority-weighted technical formula."""

    def test_no_checks_scores_zero(self):
        assert technical_score([]) == 0

    def test_all_passed(self):
        checks = [make_check(status=CheckStatus.PASSED) for _ in range(3)]
        assert technical_score(checks) == 100

    def test_weighted_mix(self):
        """Critical passed (3), recommended warning (2 * 0.5), optional failed (0) of 6."""
        checks = [
            make_check("a", CheckStatus.PASSED, CheckPriority.CRITICAL),
            make_check("b", CheckStatus.WARNING, CheckPriority.RECOMMENDED),
            make_check("c", CheckStatus.FAILED, CheckPriority.OPTIONAL),
        ]
        assert technical_score(checks) == 67

    def test_critical_failure_dominates(self):
        checks = [
            make_check("a", CheckStatus.FAILED, CheckPriority.CRITICAL),
            make_check("b", CheckStatus.PASSED, CheckPriority.OPTIONAL),
        ]
        assert technical_score(checks) == 25


class TestCategoryScores:
    """Test per-category scores."""

    def test_empty_listed_category_scores_100(self):
        checks = [make_check(category=CheckCategory.SEO, status=CheckStatus.FAILED)]
        scores = category_scores(checks, [CheckCategory.SEO, CheckCategory.TECHNICAL])

        assert scores == {"seo": 0, "technical": 100}

    def test_present_categories_only(self):
        checks = [
            make_check("a", category=CheckCategory.SEO),
            make_check("b", category=CheckCategory.AI_READINESS, status=CheckStatus.WARNING),
        ]
        assert category_scores(checks) == {"seo": 100, "ai_readiness": 50}


class TestStrategicScore:
    """Test AI dimension weighting."""

    def test_weighted_mean(self):
        """80*.25 + 70*.20 + 90*.20 + 60*.25 + 100*.10 = 77."""
        assert strategic_score([make_analysis()]) == 77

    def test_mean_over_pages(self):
        analyses = [make_analysis((100,) * 5), make_analysis((50,) * 5)]
        assert strategic_score(analyses) == 75

    def test_no_analyses_scores_zero(self):
        assert strategic_score([]) == 0

    def test_blend(self):
        """40% technical, 60% strategic."""
        assert blended_overall(89, 77) == 82


class TestPerformanceScore:
    """Test PageSpeed aggregation."""

    def test_mean_ignores_failed_runs(self):
        results = [
            make_performance(60, Device.MOBILE),
            make_performance(90, Device.DESKTOP),
            make_performance(None, Device.MOBILE, error_message="timeout"),
        ]
        assert performance_score(results) == 75

    def test_nothing_measured(self):
        assert performance_score([make_performance(None)]) is None


class TestScoringAggregator:
    """Test the per-kind score fields written on completion."""

    def test_site_audit(self):
        audit = make_audit(AuditKind.SITE)
        checks = [
            make_check("a", category=CheckCategory.SEO),
            make_check("b", category=CheckCategory.TECHNICAL, status=CheckStatus.FAILED),
        ]
        scores = ScoringAggregator().score(audit, checks)

        assert scores.technical == 0
        assert scores.overall == 67
        assert scores.strategic is None
        assert scores.categories == {"seo": 100, "technical": 0, "ai_readiness": 100}

    def test_site_overall_averages_categories_not_checks(self):
        """A large category does not outweigh a small one in the site overall."""
        audit = make_audit(AuditKind.SITE)
        checks = [make_check("title", CheckStatus.FAILED, CheckPriority.CRITICAL, CheckCategory.SEO)]
        checks += [
            make_check(f"tech_{i}", priority=CheckPriority.OPTIONAL, category=CheckCategory.TECHNICAL)
            for i in range(5)
        ]
        scores = ScoringAggregator().score(audit, checks)

        # pooled over all checks this would be 5 / 8 = 63
        assert scores.categories == {"seo": 0, "technical": 100, "ai_readiness": 100}
        assert scores.technical == 100
        assert scores.overall == 67

    def test_aio_audit_with_ai_phase(self):
        audit = make_audit(AuditKind.AIO, ai_analysis_enabled=True, sample_size=3)
        checks = [make_check(category=CheckCategory.TECHNICAL_FOUNDATION)]
        scores = ScoringAggregator().score(audit, checks, [make_analysis()])

        assert scores.technical == 100
        assert scores.strategic == 77
        assert scores.overall == 86
        assert set(scores.categories) == {"technical_foundation", "content_structure", "content_quality"}

    def test_aio_audit_ai_disabled(self):
        """Without the AI phase, overall is the technical score."""
        audit = make_audit(AuditKind.AIO, ai_analysis_enabled=False)
        checks = [make_check(category=CheckCategory.CONTENT_QUALITY, status=CheckStatus.WARNING)]
        scores = ScoringAggregator().score(audit, checks, [make_analysis()])

        assert scores.strategic is None
        assert scores.overall == 50

    def test_performance_audit(self):
        audit = make_audit(AuditKind.PERFORMANCE)
        results = [
            make_performance(60, Device.MOBILE, accessibility_score=95),
            make_performance(90, Device.DESKTOP, accessibility_score=96),
        ]
        scores = ScoringAggregator().score(audit, performance=results)

        assert scores.overall == 75
        assert scores.categories == {"performance": 75, "accessibility": 96}


class TestTopFailures:
    """Test failure ordering for summaries."""

    def test_critical_first_and_unique(self):
        checks = [
            make_check("optional_one", CheckStatus.FAILED, CheckPriority.OPTIONAL),
            make_check("critical_one", CheckStatus.FAILED, CheckPriority.CRITICAL, page_id="p1"),
            make_check("critical_one", CheckStatus.FAILED, CheckPriority.CRITICAL, page_id="p2"),
            make_check("passing", CheckStatus.PASSED, CheckPriority.CRITICAL),
        ]
        names = [r.check_name for r in top_failures(checks)]
        assert names == ["critical_one", "optional_one"]

    def test_orders_by_priority_weight_and_skips_warnings(self):
        checks = [
            make_check("optional_one", CheckStatus.FAILED, CheckPriority.OPTIONAL),
            make_check("recommended_one", CheckStatus.FAILED, CheckPriority.RECOMMENDED),
            make_check("warned", CheckStatus.WARNING, CheckPriority.CRITICAL),
            make_check("critical_one", CheckStatus.FAILED, CheckPriority.CRITICAL),
        ]
        names = [r.check_name for r in top_failures(checks, limit=2)]
        assert names == ["critical_one", "recommended_one"]


class TestWeights:
    """Weight tables stay consistent."""

    def test_report_weights_sum(self):
        w = weights.REPORT_WEIGHTS
        assert w.seo + w.page_speed + w.aio == 100

    def test_priority_lookup(self):
        assert weights.PRIORITY_WEIGHTS.of(CheckPriority.CRITICAL) == 3
        assert weights.STATUS_POINTS.of(CheckStatus.WARNING) == 0.5
