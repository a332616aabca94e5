"""
Domain records for audits, crawled pages, check results, AI analyses,
performance measurements and combined reports.

Records are plain dataclasses; the store hands out copies, so mutating a
record never changes persisted state until it is written back.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class AuditKind(str, Enum):
    """The three audit variants."""
    SITE = "site"
    PERFORMANCE = "performance"
    AIO = "aio"


class AuditStatus(str, Enum):
    """Audit lifecycle states."""
    PENDING = "pending"
    CRAWLING = "crawling"  # discovery for site / AIO audits
    RUNNING = "running"  # discovery for performance audits
    CHECKING = "checking"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


TERMINAL_STATUSES = frozenset({AuditStatus.COMPLETED, AuditStatus.FAILED, AuditStatus.STOPPED})
DISCOVERY_STATUSES = frozenset({AuditStatus.CRAWLING, AuditStatus.RUNNING})
IN_PROGRESS_STATUSES = frozenset({AuditStatus.CRAWLING, AuditStatus.RUNNING, AuditStatus.CHECKING})


class CheckCategory(str, Enum):
    # AIO catalog
    TECHNICAL_FOUNDATION = "technical_foundation"
    CONTENT_STRUCTURE = "content_structure"
    CONTENT_QUALITY = "content_quality"
    # Site catalog
    SEO = "seo"
    TECHNICAL = "technical"
    AI_READINESS = "ai_readiness"


class CheckPriority(str, Enum):
    CRITICAL = "critical"
    RECOMMENDED = "recommended"
    OPTIONAL = "optional"


class CheckStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    WARNING = "warning"


class Device(str, Enum):
    MOBILE = "mobile"
    DESKTOP = "desktop"


class CWVRating(str, Enum):
    """Core Web Vitals rating buckets."""
    GOOD = "good"
    NEEDS_IMPROVEMENT = "needs_improvement"
    POOR = "poor"


@dataclass
class Audit:
    """One audit run of any kind.

    Score fields stay ``None`` until the audit reaches ``completed``.
    ``version`` is bumped by the store on every write and is used for
    compare-and-swap updates.
    """
    id: str
    kind: AuditKind
    url: str
    organization_id: Optional[str] = None
    status: AuditStatus = AuditStatus.PENDING

    # Progress counters
    pages_crawled: int = 0
    pages_checked: int = 0
    pages_analyzed: int = 0
    pages_total: Optional[int] = None
    current_url: Optional[str] = None

    # Run settings
    max_pages: int = 50
    target_urls: List[str] = field(default_factory=list)
    ai_analysis_enabled: bool = False
    sample_size: int = 0

    # Scores (null until completed)
    technical_score: Optional[int] = None
    strategic_score: Optional[int] = None
    overall_score: Optional[int] = None
    category_scores: Optional[Dict[str, int]] = None

    # AI telemetry
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost: float = 0.0
    model_used: Optional[str] = None

    error_message: Optional[str] = None
    executive_summary: Optional[str] = None

    # Timestamps
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    execution_time_ms: Optional[int] = None

    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def runs_ai_phase(self) -> bool:
        return self.kind == AuditKind.AIO and self.ai_analysis_enabled and self.sample_size > 0

    @property
    def discovery_status(self) -> AuditStatus:
        if self.kind == AuditKind.PERFORMANCE:
            return AuditStatus.RUNNING
        return AuditStatus.CRAWLING


@dataclass
class CrawledPage:
    """A discovered page and its raw HTML."""
    id: str
    audit_id: str
    url: str
    html: str = ""
    status_code: Optional[int] = 200
    title: Optional[str] = None
    meta_description: Optional[str] = None
    depth: int = 0
    crawled_at: datetime = field(default_factory=utcnow)


@dataclass
class CheckRecord:
    """Persisted outcome of one check against one page.

    ``page_id`` is None for site-wide checks. Unique per
    ``(audit_id, page_id, check_name)``.
    """
    id: str
    audit_id: str
    page_id: Optional[str]
    page_url: str
    check_name: str
    category: CheckCategory
    priority: CheckPriority
    status: CheckStatus
    details: Dict[str, Any] = field(default_factory=dict)
    display_name: str = ""
    display_name_passed: str = ""
    description: str = ""
    learn_more_url: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def key(self) -> tuple:
        return (self.audit_id, self.page_id, self.check_name)


@dataclass
class Recommendation:
    priority: str
    category: str
    issue: str
    recommendation: str
    expected_impact: Optional[str] = None
    learn_more_url: Optional[str] = None


@dataclass
class AIAnalysis:
    """LLM judgement of one sampled page."""
    id: str
    audit_id: str
    page_url: str
    data_quality: int
    expert_credibility: int
    comprehensiveness: int
    citability: int
    authority: int
    overall: int
    findings: Dict[str, Any] = field(default_factory=dict)
    recommendations: List[Recommendation] = field(default_factory=list)
    importance_score: Optional[int] = None
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class PerformanceResult:
    """Lighthouse scores and Core Web Vitals for one URL on one device."""
    id: str
    audit_id: str
    url: str
    device: Device
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
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class GeneratedReport:
    """Combined report over one site, one performance and one AIO audit."""
    id: str
    site_audit_id: str
    performance_audit_id: str
    aio_audit_id: str
    domain: str
    combined_score: int
    breakdown: Dict[str, Any] = field(default_factory=dict)
    contributions: Dict[str, Dict[str, int]] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    executive_summary: Optional[str] = None
    organization_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
