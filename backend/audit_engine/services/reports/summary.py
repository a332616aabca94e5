"""
Executive summaries for audits and combined reports.

Summaries are built from the persisted results only; they never invent
scores that the aggregator did not produce.
"""
from typing import List, Optional, Sequence

from audit_engine.models import (
    AIAnalysis,
    Audit,
    AuditKind,
    CheckPriority,
    CheckRecord,
    CheckStatus,
    CWVRating,
    Device,
    PerformanceResult,
)
from audit_engine.services.scoring.aggregator import mean_score, top_failures

ACTIONABLE_PRIORITIES = (CheckPriority.CRITICAL, CheckPriority.RECOMMENDED)


def _label(record: CheckRecord) -> str:
    return record.display_name or record.check_name.replace("_", " ")


def _plural(count: int, singular: str, plural: Optional[str] = None) -> str:
    return f"{count} {singular if count == 1 else (plural or singular + 's')}"


def health_phrase(score: Optional[int]) -> str:
    if score is None:
        return "could not be scored"
    if score >= 80:
        return "is performing well"
    if score >= 60:
        return "has room for improvement"
    return "requires immediate attention"


def count_critical_failures(*check_lists: Sequence[CheckRecord]) -> int:
    return sum(
        1
        for checks in check_lists
        for c in checks
        if c.priority == CheckPriority.CRITICAL and c.status == CheckStatus.FAILED
    )


def _actionable_failures(checks: Sequence[CheckRecord], limit: int) -> List[str]:
    names = []
    for record in checks:
        if record.priority in ACTIONABLE_PRIORITIES and record.status == CheckStatus.FAILED:
            label = _label(record)
            if label not in names:
                names.append(label)
    return names[:limit]


def top_opportunities(
    site_checks: Sequence[CheckRecord],
    performance_results: Sequence[PerformanceResult],
    aio_checks: Sequence[CheckRecord],
) -> List[str]:
    """Up to five improvement areas: three SEO, page load, two AIO."""
    opportunities = _actionable_failures(site_checks, 3)

    slow = any(
        CWVRating.POOR in (r.lcp_rating, r.cls_rating, r.inp_rating)
        or (r.performance_score is not None and r.performance_score < 50)
        for r in performance_results
    )
    if slow:
        opportunities.append("Page load performance")

    opportunities.extend(_actionable_failures(aio_checks, 2))
    return opportunities[:5]


def performance_overview(results: Sequence[PerformanceResult]) -> str:
    if not results:
        return "No performance data available"
    parts = []
    for device, label in ((Device.MOBILE, "Mobile"), (Device.DESKTOP, "Desktop")):
        score = mean_score(r.performance_score for r in results if r.device == device)
        if score is not None:
            parts.append(f"{label}: {score}/100")
    return ", ".join(parts) or "No performance scores available"


def audit_summary(
    audit: Audit,
    checks: Sequence[CheckRecord] = (),
    analyses: Sequence[AIAnalysis] = (),
    performance: Sequence[PerformanceResult] = (),
) -> str:
    """Short plain-text summary written when an audit completes."""
    host = audit.url
    if audit.kind == AuditKind.PERFORMANCE:
        measured = [r for r in performance if r.error_message is None]
        failed = len(performance) - len(measured)
        text = (
            f"{host} {health_phrase(audit.overall_score)} on page speed"
            f"{f' with a score of {audit.overall_score}/100' if audit.overall_score is not None else ''}. "
            f"{_plural(len(measured), 'measurement')} collected ({performance_overview(measured)})."
        )
        if failed:
            text += f" {_plural(failed, 'measurement')} could not be collected."
        return text

    passed = sum(1 for c in checks if c.status == CheckStatus.PASSED)
    warnings = sum(1 for c in checks if c.status == CheckStatus.WARNING)
    failed = sum(1 for c in checks if c.status == CheckStatus.FAILED)
    critical = count_critical_failures(checks)

    text = (
        f"{host} {health_phrase(audit.overall_score)} with an overall score of {audit.overall_score}/100 "
        f"across {_plural(audit.pages_checked, 'page')}. "
        f"{passed} checks passed, {warnings} raised warnings and {failed} failed."
    )
    if critical:
        text += f" {_plural(critical, 'critical issue')} should be fixed first."
        worst = [_label(r) for r in top_failures(checks, 3)]
        text += f" Start with: {', '.join(worst)}."
    if audit.strategic_score is not None:
        text += (
            f" AI content analysis of {_plural(len(analyses), 'page')} produced a strategic score "
            f"of {audit.strategic_score}/100."
        )
    return text


def report_summary(
    domain: str,
    combined_score: int,
    seo_score: int,
    page_speed_score: int,
    aio_score: int,
    site_audit: Audit,
    site_checks: Sequence[CheckRecord],
    aio_checks: Sequence[CheckRecord],
) -> str:
    """Three-paragraph executive summary for a combined report."""
    critical = count_critical_failures(site_checks, aio_checks)
    areas = [("SEO", seo_score), ("PageSpeed", page_speed_score), ("AI Optimization", aio_score)]
    weakest_name, weakest_score = min(areas, key=lambda area: area[1])

    summary = (
        f"{domain} {health_phrase(combined_score)} with an overall marketing performance score of "
        f"{combined_score}/100. The analysis covers SEO ({seo_score}/100), PageSpeed ({page_speed_score}/100), "
        f"and AI Optimization ({aio_score}/100) across {_plural(site_audit.pages_crawled, 'page')}.\n\n"
    )

    if critical:
        verb = "was" if critical == 1 else "were"
        summary += (
            f"{_plural(critical, 'critical issue')} {verb} identified that may be impacting search visibility "
            f"and user experience. {weakest_name} is the area requiring the most attention with a score of "
            f"{weakest_score}/100.\n\n"
        )
    elif combined_score < 80:
        summary += (
            "While no critical issues were found, there are opportunities to improve performance, "
            f"particularly in {weakest_name}.\n\n"
        )
    else:
        summary += "The website is performing well across all areas with no critical issues identified.\n\n"

    if combined_score >= 80:
        summary += "Continue monitoring performance and consider optimization opportunities in lower-scoring areas."
    else:
        summary += f"Priority: Focus on improving {weakest_name} to maximize overall marketing performance."
    return summary
