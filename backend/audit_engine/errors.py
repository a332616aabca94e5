"""
Engine exceptions.

The API layer maps these onto HTTP status codes; everything else inside a
phase is caught by the state machine and turned into a failed audit.
"""
from typing import List, Optional


class AuditEngineError(Exception):
    """Base class for all engine errors."""


class AuditNotFoundError(AuditEngineError):
    def __init__(self, audit_id: str):
        super().__init__(f"Audit not found: {audit_id}")
        self.audit_id = audit_id


class ReportNotFoundError(AuditEngineError):
    def __init__(self, report_id: str):
        super().__init__(f"Report not found: {report_id}")
        self.report_id = report_id


class InvalidTransitionError(AuditEngineError):
    """Requested lifecycle operation is not allowed from the current status."""


class NothingToResumeError(AuditEngineError):
    """Resume requested for an audit that never crawled a page."""


class AuditBusyError(AuditEngineError):
    """Another worker holds the lease for this audit."""


class ConcurrentModificationError(AuditEngineError):
    """Audit record changed between read and write."""


class InvalidCheckContextError(AuditEngineError):
    """Check context URL is not an absolute http(s) URL."""


class CrawlError(AuditEngineError):
    """Discovery could not fetch the site."""


class AIScorerError(AuditEngineError):
    """AI batch scorer failed after retries."""


class PageSpeedError(AuditEngineError):
    """PageSpeed Insights request failed."""


class ReportValidationError(AuditEngineError):
    """Audits are not eligible for a combined report.

    Carries every violated rule, not only the first.
    """

    def __init__(self, errors: List[str], warnings: Optional[List[str]] = None):
        super().__init__("; ".join(errors) if errors else "Report validation failed")
        self.errors = list(errors)
        self.warnings = list(warnings or [])
