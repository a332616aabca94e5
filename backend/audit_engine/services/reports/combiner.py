"""
Report Score Combiner - Validates that a Site, a Performance and an AIO audit
can be combined and computes the weighted combined score.

Validation never stops at the first problem: every violated rule is
reported so the caller can fix them all at once.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlparse

from audit_engine.errors import ReportValidationError
from audit_engine.models import Audit, AuditStatus, PerformanceResult
from audit_engine.services.scoring.aggregator import performance_score, round_score
from audit_engine.services.scoring.weights import (
    MAX_REPORT_DAY_SPREAD,
    REPORT_WEIGHTS,
    WARN_REPORT_DAY_SPREAD,
    ReportWeights,
)

SECONDS_PER_DAY = 60 * 60 * 24


class AuditSource(str, Enum):
    SEO = "seo"
    PAGE_SPEED = "page_speed"
    AIO = "aio"


SOURCE_LABELS = {
    AuditSource.SEO: "SEO",
    AuditSource.PAGE_SPEED: "PageSpeed",
    AuditSource.AIO: "AIO",
}


class ScoreStatus(str, Enum):
    GOOD = "good"
    NEEDS_IMPROVEMENT = "needs_improvement"
    POOR = "poor"


@dataclass
class AuditEligibility:
    audit_type: AuditSource
    audit_id: Optional[str] = None
    score: Optional[int] = None
    created_at: Optional[datetime] = None
    domain: Optional[str] = None
    is_eligible: bool = False
    reason: Optional[str] = None


@dataclass
class ReportValidation:
    is_valid: bool
    audits: Dict[str, AuditEligibility]
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class CombinedScore:
    """Validated inputs and the weighted result."""
    domain: str
    seo_score: int
    page_speed_score: int
    aio_score: int
    combined_score: int
    contributions: Dict[str, Dict[str, int]]
    warnings: List[str] = field(default_factory=list)
    weights: ReportWeights = REPORT_WEIGHTS

    @property
    def breakdown(self) -> dict:
        return {
            "seo_score": self.seo_score,
            "seo_weight": self.weights.seo / 100,
            "page_speed_score": self.page_speed_score,
            "page_speed_weight": self.weights.page_speed / 100,
            "aio_score": self.aio_score,
            "aio_weight": self.weights.aio / 100,
            "combined_score": self.combined_score,
        }


def normalize_domain(url: str) -> str:
    """Lowercase host without ``www.``; a missing scheme is assumed https."""
    value = (url or "").strip()
    with_scheme = value if value.lower().startswith("http") else f"https://{value}"
    host = urlparse(with_scheme).hostname
    if not host:
        host = value.split("://", 1)[-1].split("/", 1)[0]
    host = host.lower().rstrip("/")
    return host[4:] if host.startswith("www.") else host


def _days_between(first: datetime, second: datetime) -> int:
    return math.ceil(abs((second - first).total_seconds()) / SECONDS_PER_DAY)


def _check_completed(source: AuditSource, audit: Optional[Audit]) -> Optional[AuditEligibility]:
    """Shared missing / not-completed rules; None when the audit passes them."""
    label = SOURCE_LABELS[source]
    if audit is None:
        return AuditEligibility(audit_type=source, reason=f"No {label} audit found")
    if audit.status != AuditStatus.COMPLETED:
        return AuditEligibility(
            audit_type=source,
            audit_id=audit.id,
            score=audit.overall_score,
            created_at=audit.created_at,
            domain=normalize_domain(audit.url),
            reason=f"{label} audit is not completed (status: {AuditStatus(audit.status).value})",
        )
    return None


def _validate_scored_audit(source: AuditSource, audit: Optional[Audit]) -> AuditEligibility:
    ineligible = _check_completed(source, audit)
    if ineligible:
        return ineligible

    eligibility = AuditEligibility(
        audit_type=source,
        audit_id=audit.id,
        score=audit.overall_score,
        created_at=audit.created_at,
        domain=normalize_domain(audit.url),
        is_eligible=audit.overall_score is not None,
    )
    if audit.overall_score is None:
        eligibility.reason = f"{SOURCE_LABELS[source]} audit has no score"
    return eligibility


def validate_site_audit(audit: Optional[Audit]) -> AuditEligibility:
    return _validate_scored_audit(AuditSource.SEO, audit)


def validate_aio_audit(audit: Optional[Audit]) -> AuditEligibility:
    # A zero strategic score still counts as a score here.
    return _validate_scored_audit(AuditSource.AIO, audit)


def validate_performance_audit(
    audit: Optional[Audit],
    results: Sequence[PerformanceResult] = (),
) -> AuditEligibility:
    """Eligible when completed with at least one scored PageSpeed result."""
    ineligible = _check_completed(AuditSource.PAGE_SPEED, audit)
    if ineligible:
        ineligible.score = None
        return ineligible

    score = performance_score(results)
    domain_source = results[0].url if results else audit.url
    eligibility = AuditEligibility(
        audit_type=AuditSource.PAGE_SPEED,
        audit_id=audit.id,
        score=score,
        created_at=audit.created_at,
        domain=normalize_domain(domain_source),
        is_eligible=score is not None,
    )
    if score is None:
        eligibility.reason = "PageSpeed audit has no performance scores"
    return eligibility


def validate_report_audits(
    site_audit: Optional[Audit],
    performance_audit: Optional[Audit],
    performance_results: Sequence[PerformanceResult],
    aio_audit: Optional[Audit],
) -> ReportValidation:
    """
    Check every rule for combining three audits into one report.

    Rules:
    - each audit exists, is completed and has a score
    - all audits resolve to the same normalized domain
    - all audits were created within 7 days of each other (warn above 3)
    """
    audits = {
        "site_audit": validate_site_audit(site_audit),
        "performance_audit": validate_performance_audit(performance_audit, performance_results),
        "aio_audit": validate_aio_audit(aio_audit),
    }
    errors = [e.reason for e in audits.values() if not e.is_eligible]
    warnings = []

    domains = list(dict.fromkeys(e.domain for e in audits.values() if e.domain))
    if len(domains) > 1:
        errors.append(f"All audits must be for the same domain. Found: {', '.join(domains)}")

    dates = [e.created_at for e in audits.values() if e.created_at is not None]
    if len(dates) == 3:
        max_days = max(
            _days_between(dates[i], dates[j])
            for i in range(len(dates))
            for j in range(i + 1, len(dates))
        )
        if max_days > MAX_REPORT_DAY_SPREAD:
            errors.append(
                f"All audits must be within {MAX_REPORT_DAY_SPREAD} days of each other. "
                f"Maximum difference found: {max_days} days"
            )
        elif max_days > WARN_REPORT_DAY_SPREAD:
            warnings.append(
                f"Audits are {max_days} days apart. Consider running fresh audits for the most accurate report."
            )

    return ReportValidation(is_valid=not errors, audits=audits, errors=errors, warnings=warnings)


def calculate_combined_score(
    seo: Optional[int],
    page_speed: Optional[int],
    aio: Optional[int],
    weights: ReportWeights = REPORT_WEIGHTS,
) -> Optional[int]:
    """Weighted combined score; None when any input is missing or out of range."""
    scores = [seo, page_speed, aio]
    if any(s is None or s < 0 or s > 100 for s in scores):
        return None
    return round_score((seo * weights.seo + page_speed * weights.page_speed + aio * weights.aio) / 100)


def score_contributions(
    seo: Optional[int],
    page_speed: Optional[int],
    aio: Optional[int],
    weights: ReportWeights = REPORT_WEIGHTS,
) -> Dict[str, Dict[str, int]]:
    """Points each category adds to the combined score and its share in percent."""
    combined = calculate_combined_score(seo, page_speed, aio, weights)
    parts = {
        "seo": (seo or 0) * weights.seo / 100,
        "page_speed": (page_speed or 0) * weights.page_speed / 100,
        "aio": (aio or 0) * weights.aio / 100,
    }
    if not combined:
        return {name: {"points": 0, "percent": 0} for name in parts}
    return {
        name: {"points": round_score(points), "percent": round_score(points / combined * 100)}
        for name, points in parts.items()
    }


def score_status(score: Optional[int]) -> ScoreStatus:
    if score is None or score < 60:
        return ScoreStatus.POOR
    if score >= 80:
        return ScoreStatus.GOOD
    return ScoreStatus.NEEDS_IMPROVEMENT


def score_grade(score: Optional[int]) -> str:
    if score is None:
        return "-"
    for threshold, grade in ((90, "A"), (80, "B"), (70, "C"), (60, "D")):
        if score >= threshold:
            return grade
    return "F"


def potential_improvement(
    seo: Optional[int],
    page_speed: Optional[int],
    aio: Optional[int],
    category: str,
    target: int,
) -> dict:
    """Combined score if ``category`` (seo, page_speed or aio) reached ``target``."""
    current = {"seo": seo, "page_speed": page_speed, "aio": aio}
    if category not in current:
        raise ValueError(f"Unknown report category: {category}")
    improved = dict(current, **{category: target})

    current_combined = calculate_combined_score(**current)
    target_combined = calculate_combined_score(**improved)
    improvement = None
    if current_combined is not None and target_combined is not None:
        improvement = target_combined - current_combined
    return {"current": current_combined, "target": target_combined, "improvement": improvement}


def missing_audits(validation: ReportValidation) -> List[AuditSource]:
    """Audit types that must be (re)run before a report can be generated."""
    return [e.audit_type for e in validation.audits.values() if not e.is_eligible]


def format_missing_audits(missing: Sequence[AuditSource]) -> str:
    names = [f"{SOURCE_LABELS[s]} Audit" for s in missing]
    if len(names) <= 1:
        return "".join(names)
    if len(names) == 2:
        return f"{names[0]} and {names[1]}"
    return f"{', '.join(names[:-1])}, and {names[-1]}"


class ReportScoreCombiner:
    """All-or-nothing combination of three audits."""

    def __init__(self, weights: ReportWeights = REPORT_WEIGHTS):
        self.weights = weights

    def combine(
        self,
        site_audit: Optional[Audit],
        performance_audit: Optional[Audit],
        performance_results: Sequence[PerformanceResult],
        aio_audit: Optional[Audit],
    ) -> CombinedScore:
        """
        Raises:
            ReportValidationError: with every violated rule; no partial result
        """
        validation = validate_report_audits(site_audit, performance_audit, performance_results, aio_audit)
        if not validation.is_valid:
            raise ReportValidationError(validation.errors, validation.warnings)

        seo = validation.audits["site_audit"].score
        page_speed = validation.audits["performance_audit"].score
        aio = validation.audits["aio_audit"].score
        combined = calculate_combined_score(seo, page_speed, aio, self.weights)
        if combined is None:
            raise ReportValidationError(
                [f"Audit scores must be between 0 and 100 (SEO {seo}, PageSpeed {page_speed}, AIO {aio})"],
                validation.warnings,
            )

        return CombinedScore(
            domain=validation.audits["site_audit"].domain,
            seo_score=seo,
            page_speed_score=page_speed,
            aio_score=aio,
            combined_score=combined,
            contributions=score_contributions(seo, page_speed, aio, self.weights),
            warnings=validation.warnings,
            weights=self.weights,
        )
