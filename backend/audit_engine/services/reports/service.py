"""
Report Service - Combines a site, a performance and an AIO audit into one
persisted report.
"""
from typing import List, Optional

from audit_engine.errors import AuditNotFoundError
from audit_engine.logger import get_logger
from audit_engine.models import Audit, GeneratedReport, PerformanceResult, new_id
from audit_engine.services.reports.combiner import (
    ReportScoreCombiner,
    ReportValidation,
    validate_report_audits,
)
from audit_engine.services.reports.summary import report_summary, top_opportunities
from audit_engine.store import AuditStore

logger = get_logger("reports")


class ReportService:
    """Reads audits without touching them and writes a report record."""

    def __init__(self, store: AuditStore, combiner: Optional[ReportScoreCombiner] = None):
        self.store = store
        self.combiner = combiner or ReportScoreCombiner()

    async def _load(self, audit_id: Optional[str]) -> Optional[Audit]:
        if not audit_id:
            return None
        try:
            return await self.store.get_audit(audit_id)
        except AuditNotFoundError:
            return None

    async def _load_performance(self, audit: Optional[Audit]) -> List[PerformanceResult]:
        if audit is None:
            return []
        return await self.store.list_performance_results(audit.id)

    async def validate(self, site_audit_id: str, performance_audit_id: str, aio_audit_id: str) -> ReportValidation:
        site = await self._load(site_audit_id)
        performance = await self._load(performance_audit_id)
        aio = await self._load(aio_audit_id)
        results = await self._load_performance(performance)
        return validate_report_audits(site, performance, results, aio)

    async def generate_report(
        self,
        site_audit_id: str,
        performance_audit_id: str,
        aio_audit_id: str,
    ) -> GeneratedReport:
        """
        Raises:
            ReportValidationError: the audits are not eligible; nothing is written
        """
        site = await self._load(site_audit_id)
        performance = await self._load(performance_audit_id)
        aio = await self._load(aio_audit_id)
        results = await self._load_performance(performance)

        combined = self.combiner.combine(site, performance, results, aio)

        site_checks = await self.store.list_checks(site.id)
        aio_checks = await self.store.list_checks(aio.id)
        summary = report_summary(
            combined.domain,
            combined.combined_score,
            combined.seo_score,
            combined.page_speed_score,
            combined.aio_score,
            site,
            site_checks,
            aio_checks,
        )

        breakdown = dict(combined.breakdown)
        breakdown["top_opportunities"] = top_opportunities(site_checks, results, aio_checks)

        report = GeneratedReport(
            id=new_id(),
            site_audit_id=site.id,
            performance_audit_id=performance.id,
            aio_audit_id=aio.id,
            domain=combined.domain,
            combined_score=combined.combined_score,
            breakdown=breakdown,
            contributions=combined.contributions,
            warnings=combined.warnings,
            executive_summary=summary,
            organization_id=site.organization_id,
        )
        stored = await self.store.insert_report(report)
        logger.info(f"Report {stored.id} for {stored.domain}: combined score {stored.combined_score}")
        return stored

    async def get_report(self, report_id: str) -> GeneratedReport:
        return await self.store.get_report(report_id)
