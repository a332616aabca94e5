"""
Scoring Weights Configuration.

Weight tables are expressed in percent so drift is caught with integer sums.
"""

from dataclasses import dataclass

from audit_engine.models import CheckPriority, CheckStatus


@dataclass(frozen=True)
class PriorityWeights:
    """Relative weight of a check by priority."""
    critical: int = 3
    recommended: int = 2
    optional: int = 1

    def of(self, priority: CheckPriority) -> int:
        return getattr(self, CheckPriority(priority).value)


@dataclass(frozen=True)
class StatusPoints:
    """Share of a check's weight earned per status (percent)."""
    passed: int = 100
    warning: int = 50
    failed: int = 0

    def of(self, status: CheckStatus) -> float:
        return getattr(self, CheckStatus(status).value) / 100


@dataclass(frozen=True)
class StrategicWeights:
    """AI analysis dimensions (must sum to 100)."""
    data_quality: int = 25
    expert_credibility: int = 20
    comprehensiveness: int = 20
    citability: int = 25
    authority: int = 10


@dataclass(frozen=True)
class AIOBlendWeights:
    """AIO overall = technical and strategic blend (must sum to 100)."""
    technical: int = 40
    strategic: int = 60


@dataclass(frozen=True)
class ReportWeights:
    """Combined report weights (must sum to 100)."""
    seo: int = 50
    page_speed: int = 30
    aio: int = 20


# Default weight instances
PRIORITY_WEIGHTS = PriorityWeights()
STATUS_POINTS = StatusPoints()
STRATEGIC_WEIGHTS = StrategicWeights()
AIO_BLEND_WEIGHTS = AIOBlendWeights()
REPORT_WEIGHTS = ReportWeights()

# Report date-spread rules (days)
MAX_REPORT_DAY_SPREAD = 7
WARN_REPORT_DAY_SPREAD = 3


# --- Validation (Prevent Drift) ---
def _validate_weights():
    """Ensure every percent table sums to exactly 100."""
    w_str = STRATEGIC_WEIGHTS
    total_str = (w_str.data_quality + w_str.expert_credibility + w_str.comprehensiveness +
                 w_str.citability + w_str.authority)
    if total_str != 100:
        raise ValueError(f"CRITICAL: Strategic weights sum to {total_str}, expected 100")

    total_blend = AIO_BLEND_WEIGHTS.technical + AIO_BLEND_WEIGHTS.strategic
    if total_blend != 100:
        raise ValueError(f"CRITICAL: AIO blend weights sum to {total_blend}, expected 100")

    total_report = REPORT_WEIGHTS.seo + REPORT_WEIGHTS.page_speed + REPORT_WEIGHTS.aio
    if total_report != 100:
        raise ValueError(f"CRITICAL: Report weights sum to {total_report}, expected 100")

    if not (STATUS_POINTS.failed <= STATUS_POINTS.warning <= STATUS_POINTS.passed == 100):
        raise ValueError("CRITICAL: Status points must be ordered failed <= warning <= passed == 100")

_validate_weights()
