"""
Scoring Aggregator - Turns persisted check results, AI analyses and
PageSpeed results into audit scores.

All functions are pure; the state machine calls ``ScoringAggregator.score``
exactly once, on the transition to ``completed``.
"""
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from audit_engine.models import (
    AIAnalysis,
    Audit,
    AuditKind,
    CheckCategory,
    CheckRecord,
    CheckStatus,
    PerformanceResult,
)
from audit_engine.services.scoring.weights import (
    AIO_BLEND_WEIGHTS,
    PRIORITY_WEIGHTS,
    STATUS_POINTS,
    STRATEGIC_WEIGHTS,
)

SITE_CATEGORIES = [CheckCategory.SEO, CheckCategory.TECHNICAL, CheckCategory.AI_READINESS]
AIO_CATEGORIES = [
    CheckCategory.TECHNICAL_FOUNDATION,
    CheckCategory.CONTENT_STRUCTURE,
    CheckCategory.CONTENT_QUALITY,
]


def round_score(value: float) -> int:
    """Round half up (2.5 -> 3), unlike Python's banker's rounding."""
    return int(math.floor(value + 0.5))


def technical_score(checks: Iterable[CheckRecord]) -> int:
    """Priority-weighted share of points earned, 0-100. No checks scores 0."""
    total_weight = 0
    earned = 0.0
    for record in checks:
        weight = PRIORITY_WEIGHTS.of(record.priority)
        total_weight += weight
        earned += weight * STATUS_POINTS.of(record.status)
    if total_weight == 0:
        return 0
    return round_score(100 * earned / total_weight)


def category_scores(
    checks: Sequence[CheckRecord],
    categories: Optional[Iterable[CheckCategory]] = None,
) -> Dict[str, int]:
    """Technical formula per category.

    With ``categories`` given, every listed category gets a score and a
    category without results scores 100 (nothing found wrong). Otherwise
    only categories present in ``checks`` are scored.
    """
    if categories is None:
        categories = list(dict.fromkeys(CheckCategory(r.category) for r in checks))

    scores = {}
    for category in categories:
        in_category = [r for r in checks if r.category == category]
        scores[CheckCategory(category).value] = technical_score(in_category) if in_category else 100
    return scores


def analysis_score(analysis: AIAnalysis) -> float:
    w = STRATEGIC_WEIGHTS
    return (
        analysis.data_quality * w.data_quality
        + analysis.expert_credibility * w.expert_credibility
        + analysis.comprehensiveness * w.comprehensiveness
        + analysis.citability * w.citability
        + analysis.authority * w.authority
    ) / 100


def strategic_score(analyses: Sequence[AIAnalysis]) -> int:
    """Mean weighted AI dimension score; 0 (not None) when nothing was analyzed."""
    if not analyses:
        return 0
    return round_score(sum(analysis_score(a) for a in analyses) / len(analyses))


def blended_overall(technical: int, strategic: int) -> int:
    return round_score(
        (technical * AIO_BLEND_WEIGHTS.technical + strategic * AIO_BLEND_WEIGHTS.strategic) / 100
    )


def mean_score(values: Iterable[Optional[int]]) -> Optional[int]:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return round_score(sum(present) / len(present))


def performance_score(results: Sequence[PerformanceResult]) -> Optional[int]:
    """Rounded mean of non-null Lighthouse performance scores."""
    return mean_score(r.performance_score for r in results)


@dataclass
class AuditScores:
    technical: Optional[int] = None
    strategic: Optional[int] = None
    overall: Optional[int] = None
    categories: Dict[str, int] = field(default_factory=dict)


class ScoringAggregator:
    """Computes the score fields written on completion."""

    def score(
        self,
        audit: Audit,
        checks: Sequence[CheckRecord] = (),
        analyses: Sequence[AIAnalysis] = (),
        performance: Sequence[PerformanceResult] = (),
    ) -> AuditScores:
        if audit.kind == AuditKind.PERFORMANCE:
            return self._score_performance(performance)

        if audit.kind == AuditKind.SITE:
            return self._score_site(checks)

        technical = technical_score(checks)
        scores = AuditScores(
            technical=technical,
            overall=technical,
            categories=category_scores(checks, AIO_CATEGORIES),
        )

        if audit.runs_ai_phase:
            scores.strategic = strategic_score(analyses)
            scores.overall = blended_overall(technical, scores.strategic)
        return scores

    def _score_site(self, checks: Sequence[CheckRecord]) -> AuditScores:
        """Technical is the technical category alone; overall is the mean of the three categories."""
        categories = category_scores(checks, SITE_CATEGORIES)
        return AuditScores(
            technical=categories[CheckCategory.TECHNICAL.value],
            overall=round_score(sum(categories.values()) / len(categories)),
            categories=categories,
        )

    def _score_performance(self, results: Sequence[PerformanceResult]) -> AuditScores:
        categories = {
            "performance": mean_score(r.performance_score for r in results),
            "accessibility": mean_score(r.accessibility_score for r in results),
            "best_practices": mean_score(r.best_practices_score for r in results),
            "seo": mean_score(r.seo_score for r in results),
        }
        return AuditScores(
            overall=categories["performance"],
            categories={k: v for k, v in categories.items() if v is not None},
        )


def top_failures(checks: Sequence[CheckRecord], limit: int = 5) -> List[CheckRecord]:
    """Failed checks, critical first, one per check name."""
    seen = set()
    failures = []
    for record in sorted(checks, key=lambda r: -PRIORITY_WEIGHTS.of(r.priority)):
        if record.status != CheckStatus.FAILED or record.check_name in seen:
            continue
        seen.add(record.check_name)
        failures.append(record)
    return failures[:limit]
