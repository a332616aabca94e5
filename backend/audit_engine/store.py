"""
Audit persistence.

``AuditStore`` is the storage contract the engine depends on; the in-memory
implementation keeps everything in dicts behind an asyncio lock and copies
records in and out so callers never share state with the store.
"""
import asyncio
import copy
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from audit_engine.errors import (
    AuditBusyError,
    AuditNotFoundError,
    ConcurrentModificationError,
    ReportNotFoundError,
)
from audit_engine.models import (
    AIAnalysis,
    Audit,
    AuditKind,
    AuditStatus,
    CheckRecord,
    CrawledPage,
    GeneratedReport,
    PerformanceResult,
    utcnow,
)


@dataclass
class Lease:
    owner: str
    expires_at: float


class AuditStore(ABC):
    """Storage contract for audits and their child records."""

    # --- audits ---
    @abstractmethod
    async def insert_audit(self, audit: Audit) -> Audit: ...

    @abstractmethod
    async def get_audit(self, audit_id: str) -> Audit: ...

    @abstractmethod
    async def update_audit(self, audit: Audit) -> Audit:
        """Write ``audit`` if the stored version still equals ``audit.version``.

        Raises ConcurrentModificationError otherwise. Returns the stored copy
        with the bumped version.
        """

    @abstractmethod
    async def list_audits(
        self,
        kind: Optional[AuditKind] = None,
        statuses: Optional[Iterable[AuditStatus]] = None,
        organization_id: Optional[str] = None,
    ) -> List[Audit]: ...

    # --- pages ---
    @abstractmethod
    async def insert_page(self, page: CrawledPage) -> bool:
        """Insert a page; returns False if the URL is already stored for the audit."""

    @abstractmethod
    async def list_pages(self, audit_id: str) -> List[CrawledPage]: ...

    # --- checks (append-only) ---
    @abstractmethod
    async def insert_checks(self, records: List[CheckRecord]) -> int:
        """Insert records atomically, skipping keys that already exist."""

    @abstractmethod
    async def list_checks(
        self,
        audit_id: str,
        page_id: Optional[str] = None,
        site_wide_only: bool = False,
    ) -> List[CheckRecord]: ...

    @abstractmethod
    async def recent_checks(self, audit_id: str, limit: int) -> List[CheckRecord]: ...

    @abstractmethod
    async def checked_page_ids(self, audit_id: str) -> Set[str]: ...

    # --- AI analyses ---
    @abstractmethod
    async def insert_analyses(self, analyses: List[AIAnalysis]) -> None: ...

    @abstractmethod
    async def list_analyses(self, audit_id: str) -> List[AIAnalysis]: ...

    # --- performance ---
    @abstractmethod
    async def insert_performance_results(self, results: List[PerformanceResult]) -> None: ...

    @abstractmethod
    async def list_performance_results(self, audit_id: str) -> List[PerformanceResult]: ...

    # --- reports ---
    @abstractmethod
    async def insert_report(self, report: GeneratedReport) -> GeneratedReport: ...

    @abstractmethod
    async def get_report(self, report_id: str) -> GeneratedReport: ...

    # --- leases ---
    @abstractmethod
    async def acquire_lease(self, audit_id: str, owner: str, ttl_seconds: float) -> None:
        """Claim exclusive work on an audit.

        Not re-entrant: raises AuditBusyError while any unexpired lease exists,
        including one held by the same owner.
        """

    @abstractmethod
    async def release_lease(self, audit_id: str, owner: str) -> None: ...


class InMemoryAuditStore(AuditStore):
    """Process-local store used by the API and the tests."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._audits: Dict[str, Audit] = {}
        self._pages: Dict[str, List[CrawledPage]] = {}
        self._checks: Dict[str, List[CheckRecord]] = {}
        self._check_keys: Set[Tuple] = set()
        self._analyses: Dict[str, List[AIAnalysis]] = {}
        self._performance: Dict[str, List[PerformanceResult]] = {}
        self._reports: Dict[str, GeneratedReport] = {}
        self._leases: Dict[str, Lease] = {}

    async def insert_audit(self, audit: Audit) -> Audit:
        async with self._lock:
            stored = copy.deepcopy(audit)
            stored.version = 1
            stored.updated_at = utcnow()
            self._audits[audit.id] = stored
            return copy.deepcopy(stored)

    async def get_audit(self, audit_id: str) -> Audit:
        async with self._lock:
            if audit_id not in self._audits:
                raise AuditNotFoundError(audit_id)
            return copy.deepcopy(self._audits[audit_id])

    async def update_audit(self, audit: Audit) -> Audit:
        async with self._lock:
            current = self._audits.get(audit.id)
            if current is None:
                raise AuditNotFoundError(audit.id)
            if current.version != audit.version:
                raise ConcurrentModificationError(
                    f"Audit {audit.id} changed (expected version {audit.version}, found {current.version})"
                )
            stored = copy.deepcopy(audit)
            stored.version = current.version + 1
            stored.updated_at = utcnow()
            self._audits[audit.id] = stored
            return copy.deepcopy(stored)

    async def list_audits(self, kind=None, statuses=None, organization_id=None) -> List[Audit]:
        wanted = set(statuses) if statuses is not None else None
        async with self._lock:
            audits = [
                copy.deepcopy(a) for a in self._audits.values()
                if (kind is None or a.kind == kind)
                and (wanted is None or a.status in wanted)
                and (organization_id is None or a.organization_id == organization_id)
            ]
        return sorted(audits, key=lambda a: a.created_at, reverse=True)

    async def insert_page(self, page: CrawledPage) -> bool:
        async with self._lock:
            pages = self._pages.setdefault(page.audit_id, [])
            if any(p.url == page.url for p in pages):
                return False
            pages.append(copy.deepcopy(page))
            return True

    async def list_pages(self, audit_id: str) -> List[CrawledPage]:
        async with self._lock:
            return copy.deepcopy(self._pages.get(audit_id, []))

    async def insert_checks(self, records: List[CheckRecord]) -> int:
        inserted = 0
        async with self._lock:
            for record in records:
                if record.key in self._check_keys:
                    continue
                self._check_keys.add(record.key)
                self._checks.setdefault(record.audit_id, []).append(copy.deepcopy(record))
                inserted += 1
        return inserted

    async def list_checks(self, audit_id: str, page_id=None, site_wide_only: bool = False) -> List[CheckRecord]:
        async with self._lock:
            records = self._checks.get(audit_id, [])
            if site_wide_only:
                records = [r for r in records if r.page_id is None]
            elif page_id is not None:
                records = [r for r in records if r.page_id == page_id]
            return copy.deepcopy(records)

    async def recent_checks(self, audit_id: str, limit: int) -> List[CheckRecord]:
        async with self._lock:
            records = self._checks.get(audit_id, [])
            return copy.deepcopy(list(reversed(records[-limit:]))) if limit > 0 else []

    async def checked_page_ids(self, audit_id: str) -> Set[str]:
        async with self._lock:
            return {r.page_id for r in self._checks.get(audit_id, []) if r.page_id is not None}

    async def insert_analyses(self, analyses: List[AIAnalysis]) -> None:
        async with self._lock:
            for analysis in analyses:
                self._analyses.setdefault(analysis.audit_id, []).append(copy.deepcopy(analysis))

    async def list_analyses(self, audit_id: str) -> List[AIAnalysis]:
        async with self._lock:
            return copy.deepcopy(self._analyses.get(audit_id, []))

    async def insert_performance_results(self, results: List[PerformanceResult]) -> None:
        async with self._lock:
            for result in results:
                self._performance.setdefault(result.audit_id, []).append(copy.deepcopy(result))

    async def list_performance_results(self, audit_id: str) -> List[PerformanceResult]:
        async with self._lock:
            return copy.deepcopy(self._performance.get(audit_id, []))

    async def insert_report(self, report: GeneratedReport) -> GeneratedReport:
        async with self._lock:
            self._reports[report.id] = copy.deepcopy(report)
            return copy.deepcopy(report)

    async def get_report(self, report_id: str) -> GeneratedReport:
        async with self._lock:
            if report_id not in self._reports:
                raise ReportNotFoundError(report_id)
            return copy.deepcopy(self._reports[report_id])

    async def acquire_lease(self, audit_id: str, owner: str, ttl_seconds: float) -> None:
        now = time.monotonic()
        async with self._lock:
            lease = self._leases.get(audit_id)
            if lease and lease.expires_at > now:
                raise AuditBusyError(f"Audit {audit_id} is already being processed")
            self._leases[audit_id] = Lease(owner=owner, expires_at=now + ttl_seconds)

    async def release_lease(self, audit_id: str, owner: str) -> None:
        async with self._lock:
            lease = self._leases.get(audit_id)
            if lease and lease.owner == owner:
                del self._leases[audit_id]
