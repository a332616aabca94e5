"""
Audit State Machine - Drives an audit from creation to a terminal state.

Lifecycle:
    pending -> crawling|running -> checking -> completed
    any in-progress state -> stopped   (user stop)
    any non-terminal state -> failed   (phase fault)
    failed -> checking                 (resume, when pages were crawled)

Every phase runs under a per-audit lease, and every write to the audit
record is a compare-and-swap on ``Audit.version``. On a conflict the record
is re-read and the change re-evaluated, so a concurrent stop always wins.
"""
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence
from urllib.parse import urlparse

from audit_engine.config import settings
from audit_engine.errors import (
    AIScorerError,
    ConcurrentModificationError,
    CrawlError,
    InvalidTransitionError,
    NothingToResumeError,
    PageSpeedError,
)
from audit_engine.logger import get_logger
from audit_engine.models import (
    DISCOVERY_STATUSES,
    IN_PROGRESS_STATUSES,
    Audit,
    AuditKind,
    AuditStatus,
    CheckRecord,
    CrawledPage,
    Device,
    PerformanceResult,
    new_id,
    utcnow,
)
from audit_engine.services.check_runner import CheckRunner
from audit_engine.services.checks.base import CheckContext, CheckDefinition
from audit_engine.services.checks.registry import catalog_for, page_specific_checks, site_wide_checks
from audit_engine.services.collectors.pagespeed_collector import PageSpeedCollector
from audit_engine.services.crawler import Crawler, HttpCrawler, normalize_url
from audit_engine.services.ai_scorer import AIBatchScorer, ClaudeBatchScorer, PageForAnalysis
from audit_engine.services.importance import select_top_pages
from audit_engine.services.reports.summary import audit_summary
from audit_engine.services.scoring.aggregator import ScoringAggregator
from audit_engine.store import AuditStore

logger = get_logger("state_machine")

MAX_CAS_ATTEMPTS = 5
CRAWL_FAILED_MESSAGE = "Could not crawl the website. The site may be unreachable or blocking our crawler."
STALE_MESSAGE = "Audit timed out - the runner stopped responding"

# Returning False from a mutation means "nothing to write".
Mutation = Callable[[Audit], Optional[bool]]


@dataclass
class RecentCheck:
    check_name: str
    display_name: str
    page_url: str
    status: str
    category: str
    priority: str
    message: str
    created_at: datetime


@dataclass
class ProgressSnapshot:
    audit_id: str
    status: AuditStatus
    pages_crawled: int
    pages_checked: int
    pages_total: Optional[int]
    current_url: Optional[str]
    checks: List[RecentCheck] = field(default_factory=list)
    error_message: Optional[str] = None


def _recent(record: CheckRecord) -> RecentCheck:
    return RecentCheck(
        check_name=record.check_name,
        display_name=record.display_name or record.check_name,
        page_url=record.page_url,
        status=record.status.value,
        category=record.category.value,
        priority=record.priority.value,
        message=str(record.details.get("message", "")),
        created_at=record.created_at,
    )


def _root_page(pages: Sequence[CrawledPage]) -> CrawledPage:
    """The page site-wide checks run against: path ``/``, else the first page."""
    for page in pages:
        if urlparse(page.url).path in ("", "/"):
            return page
    return pages[0]


def _elapsed_ms(start: Optional[datetime], end: datetime) -> Optional[int]:
    if start is None:
        return None
    return int((end - start).total_seconds() * 1000)


class AuditStateMachine:
    """Pull-based driver for audits of every kind."""

    def __init__(
        self,
        store: AuditStore,
        crawler: Optional[Crawler] = None,
        check_runner: Optional[CheckRunner] = None,
        ai_scorer: Optional[AIBatchScorer] = None,
        pagespeed: Optional[PageSpeedCollector] = None,
        aggregator: Optional[ScoringAggregator] = None,
        concurrency: Optional[int] = None,
        worker_id: Optional[str] = None,
        lease_ttl: Optional[float] = None,
        catalogs: Optional[Callable[[AuditKind], Sequence[CheckDefinition]]] = None,
    ):
        self.store = store
        self.crawler = crawler or HttpCrawler()
        self.check_runner = check_runner or CheckRunner()
        self.ai_scorer = ai_scorer or ClaudeBatchScorer()
        self.pagespeed = pagespeed or PageSpeedCollector()
        self.aggregator = aggregator or ScoringAggregator()
        self.concurrency = max(1, concurrency or settings.CHECK_CONCURRENCY)
        self.worker_id = worker_id or f"worker-{new_id()}"
        self.lease_ttl = lease_ttl or settings.LEASE_TTL_SECONDS
        self.catalogs = catalogs or catalog_for

    # --- plumbing ---

    async def _mutate(self, audit_id: str, change: Mutation) -> Audit:
        """Apply ``change`` to a fresh copy of the audit and CAS it back."""
        for attempt in range(MAX_CAS_ATTEMPTS):
            audit = await self.store.get_audit(audit_id)
            if change(audit) is False:
                return audit
            try:
                return await self.store.update_audit(audit)
            except ConcurrentModificationError:
                logger.debug(f"Audit {audit_id} changed underneath us, retrying (attempt {attempt + 1})")
        raise ConcurrentModificationError(f"Audit {audit_id} kept changing; gave up after {MAX_CAS_ATTEMPTS} attempts")

    @asynccontextmanager
    async def _lease(self, audit_id: str):
        # one token per phase call, so a phase only ever releases its own lease
        token = f"{self.worker_id}:{new_id()}"
        await self.store.acquire_lease(audit_id, token, self.lease_ttl)
        try:
            yield
        finally:
            await self.store.release_lease(audit_id, token)

    async def _halted(self, audit_id: str) -> bool:
        """True once the audit reached a terminal state (stop, fail)."""
        return (await self.store.get_audit(audit_id)).is_terminal

    async def _record_failure(self, audit_id: str, message: str) -> Audit:
        """Fail the audit unless it is already terminal."""
        def mark_failed(audit: Audit):
            if audit.is_terminal:
                return False
            audit.status = AuditStatus.FAILED
            audit.error_message = message
            audit.current_url = None

        audit = await self._mutate(audit_id, mark_failed)
        if audit.status == AuditStatus.FAILED and audit.error_message == message:
            logger.error(f"Audit {audit_id} failed: {message}")
        return audit

    # --- lifecycle ---

    async def create_audit(
        self,
        kind: AuditKind,
        url: str,
        organization_id: Optional[str] = None,
        max_pages: Optional[int] = None,
        target_urls: Optional[Sequence[str]] = None,
        ai_analysis_enabled: bool = False,
        sample_size: Optional[int] = None,
    ) -> Audit:
        kind = AuditKind(kind)
        if not url or not url.strip():
            raise ValueError("URL is required")
        max_pages = settings.CRAWL_MAX_PAGES if max_pages is None else max_pages
        if max_pages < 1:
            raise ValueError("max_pages must be at least 1")

        root = normalize_url(url.strip())
        targets = []
        if kind == AuditKind.PERFORMANCE:
            targets = list(dict.fromkeys(normalize_url(u) for u in (target_urls or [root])))

        if not ai_analysis_enabled:
            sample_size = 0
        elif sample_size is None:
            sample_size = settings.DEFAULT_SAMPLE_SIZE

        audit = Audit(
            id=new_id(),
            kind=kind,
            url=root,
            organization_id=organization_id,
            max_pages=max_pages,
            target_urls=targets,
            ai_analysis_enabled=ai_analysis_enabled,
            sample_size=max(0, sample_size),
        )
        audit = await self.store.insert_audit(audit)
        logger.info(f"Created {kind.value} audit {audit.id} for {root}")
        return audit

    async def start_discovery(self, audit_id: str) -> Audit:
        """
        pending -> crawling|running -> checking.

        Raises:
            InvalidTransitionError: audit is not pending
            AuditBusyError: another phase holds the lease
        """
        async with self._lease(audit_id):
            def begin(audit: Audit):
                if audit.status != AuditStatus.PENDING:
                    raise InvalidTransitionError(
                        f"Discovery can only start from pending (status: {audit.status.value})"
                    )
                audit.status = audit.discovery_status
                audit.started_at = audit.started_at or utcnow()
                if audit.kind == AuditKind.PERFORMANCE:
                    audit.pages_total = len(audit.target_urls)
                else:
                    audit.pages_total = audit.max_pages

            audit = await self._mutate(audit_id, begin)
            logger.info(f"Audit {audit_id}: discovery started ({audit.status.value})")

            try:
                if audit.kind == AuditKind.PERFORMANCE:
                    await self._register_targets(audit)
                else:
                    await self._crawl(audit)
            except CrawlError as e:
                logger.warning(f"Audit {audit_id}: crawl failed: {e}")
                return await self._record_failure(audit_id, f"Could not crawl the website: {e}")
            except Exception as e:
                logger.exception(f"Audit {audit_id}: discovery failed")
                return await self._record_failure(audit_id, str(e) or e.__class__.__name__)

            audit = await self.store.get_audit(audit_id)
            if audit.is_terminal:
                logger.info(f"Audit {audit_id}: discovery ended early ({audit.status.value})")
                return audit
            if audit.pages_crawled == 0:
                return await self._record_failure(audit_id, CRAWL_FAILED_MESSAGE)

            def to_checking(audit: Audit):
                if audit.status not in DISCOVERY_STATUSES:
                    return False
                audit.status = AuditStatus.CHECKING
                audit.pages_total = audit.pages_crawled
                audit.current_url = None

            audit = await self._mutate(audit_id, to_checking)
            logger.info(f"Audit {audit_id}: discovered {audit.pages_crawled} pages")
            return audit

    async def _page_stored(self, audit_id: str, page: CrawledPage) -> bool:
        """Persist a page, then count it. False once the audit left discovery."""
        if not await self.store.insert_page(page):
            return True

        def count(audit: Audit):
            if audit.status not in DISCOVERY_STATUSES:
                return False
            audit.pages_crawled += 1
            audit.current_url = page.url

        audit = await self._mutate(audit_id, count)
        return audit.status in DISCOVERY_STATUSES

    async def _crawl(self, audit: Audit) -> None:
        existing = await self.store.list_pages(audit.id)
        remaining = audit.max_pages - len(existing)
        if remaining <= 0:
            return

        async def should_stop() -> bool:
            return await self._halted(audit.id)

        async for found in self.crawler.discover(
            audit.url, remaining, should_stop, skip_urls=[p.url for p in existing]
        ):
            page = CrawledPage(
                id=new_id(),
                audit_id=audit.id,
                url=found.url,
                html=found.html,
                status_code=found.status_code,
                title=found.title,
                meta_description=found.meta_description,
                depth=found.depth,
            )
            if not await self._page_stored(audit.id, page):
                break

    async def _register_targets(self, audit: Audit) -> None:
        for url in audit.target_urls:
            if await self._halted(audit.id):
                return
            page = CrawledPage(id=new_id(), audit_id=audit.id, url=url, html="", status_code=None)
            if not await self._page_stored(audit.id, page):
                return

    async def run_checks(self, audit_id: str) -> Audit:
        """
        Run the checking phase and complete the audit.

        Re-entrant: pages whose results are already stored are skipped.

        Raises:
            InvalidTransitionError: audit is not in checking
            AuditBusyError: another phase holds the lease
        """
        async with self._lease(audit_id):
            audit = await self.store.get_audit(audit_id)
            if audit.status != AuditStatus.CHECKING:
                raise InvalidTransitionError(f"Checks can only run while checking (status: {audit.status.value})")

            logger.info(f"Audit {audit_id}: checking {audit.pages_crawled} pages")
            try:
                if audit.kind == AuditKind.PERFORMANCE:
                    await self._measure_performance(audit)
                else:
                    await self._check_pages(audit)

                if await self._halted(audit_id):
                    return await self.store.get_audit(audit_id)
                if audit.runs_ai_phase:
                    await self._analyze(audit)
                if await self._halted(audit_id):
                    return await self.store.get_audit(audit_id)
                return await self._complete(audit_id)
            except AIScorerError as e:
                logger.error(f"Audit {audit_id}: AI analysis failed: {e}")
                return await self._record_failure(audit_id, f"AI analysis failed: {e}")
            except Exception as e:
                logger.exception(f"Audit {audit_id}: checking failed")
                return await self._record_failure(audit_id, str(e) or e.__class__.__name__)

    async def _count_checked(self, audit: Audit, url: str) -> None:
        """Move ``pages_checked`` to the number of pages with stored results."""
        checked = await self._checked_count(audit)

        def count(current: Audit):
            if current.status != AuditStatus.CHECKING:
                return False
            current.pages_checked = max(current.pages_checked, checked)
            current.current_url = url

        await self._mutate(audit.id, count)

    async def _check_pages(self, audit: Audit) -> None:
        pages = await self.store.list_pages(audit.id)
        if not pages:
            return
        catalog = tuple(self.catalogs(audit.kind))

        site_wide = site_wide_checks(catalog)
        if site_wide and not await self.store.list_checks(audit.id, site_wide_only=True):
            root = _root_page(pages)
            outcomes = await self.check_runner.run(CheckContext(url=root.url, html=root.html), site_wide)
            await self.store.insert_checks([o.to_record(audit.id, None, root.url) for o in outcomes])

        page_checks = page_specific_checks(catalog)
        if not page_checks:
            return
        done = await self.store.checked_page_ids(audit.id)
        pending = [p for p in pages if p.id not in done]
        semaphore = asyncio.Semaphore(self.concurrency)

        async def check_page(page: CrawledPage) -> None:
            async with semaphore:
                if await self._halted(audit.id):
                    return
                outcomes = await self.check_runner.run(CheckContext(url=page.url, html=page.html), page_checks)
                await self.store.insert_checks([o.to_record(audit.id, page.id, page.url) for o in outcomes])
                await self._count_checked(audit, page.url)

        results = await asyncio.gather(*(check_page(p) for p in pending), return_exceptions=True)
        errors = [r for r in results if isinstance(r, Exception)]
        if errors:
            raise errors[0]

    async def _measure_performance(self, audit: Audit) -> None:
        pages = await self.store.list_pages(audit.id)
        measured = {(r.url, r.device) for r in await self.store.list_performance_results(audit.id)}

        for page in pages:
            if all((page.url, device) in measured for device in Device):
                continue
            for device in Device:
                if (page.url, device) in measured:
                    continue
                if await self._halted(audit.id):
                    return
                try:
                    metrics = await self.pagespeed.run(page.url, device)
                    result = metrics.to_record(audit.id, page.url, device)
                except PageSpeedError as e:
                    logger.warning(f"PageSpeed failed for {page.url} ({device.value}): {e}")
                    result = PerformanceResult(
                        id=new_id(), audit_id=audit.id, url=page.url, device=device, error_message=str(e)
                    )
                await self.store.insert_performance_results([result])
            await self._count_checked(audit, page.url)

    async def _analyze(self, audit: Audit) -> None:
        if await self.store.list_analyses(audit.id):
            return
        pages = await self.store.list_pages(audit.id)
        selected = select_top_pages(pages, audit.sample_size)
        if not selected:
            return

        logger.info(f"Audit {audit.id}: AI analysis of {len(selected)} pages")
        result = await self.ai_scorer.analyze(
            [PageForAnalysis(url=s.url, html=s.page.html, importance_score=s.score) for s in selected]
        )
        records = [scored.to_record(audit.id) for scored in result.analyses]
        await self.store.insert_analyses(records)

        def record_usage(current: Audit):
            current.pages_analyzed = len(records)
            current.total_input_tokens += result.input_tokens
            current.total_output_tokens += result.output_tokens
            current.total_cost = round(current.total_cost + result.cost, 6)
            current.model_used = result.model or current.model_used

        await self._mutate(audit.id, record_usage)

    async def _complete(self, audit_id: str) -> Audit:
        """Score once and move to completed."""
        audit = await self.store.get_audit(audit_id)
        checks = await self.store.list_checks(audit_id)
        analyses = await self.store.list_analyses(audit_id)
        performance = await self.store.list_performance_results(audit_id)

        scores = self.aggregator.score(audit, checks, analyses, performance)
        if audit.kind == AuditKind.PERFORMANCE and scores.overall is None:
            raise PageSpeedError("No PageSpeed measurement succeeded")

        def finish(current: Audit):
            if current.status != AuditStatus.CHECKING:
                return False
            now = utcnow()
            current.status = AuditStatus.COMPLETED
            current.technical_score = scores.technical
            current.strategic_score = scores.strategic
            current.overall_score = scores.overall
            current.category_scores = dict(scores.categories)
            current.current_url = None
            current.completed_at = now
            current.execution_time_ms = _elapsed_ms(current.started_at, now)
            current.executive_summary = audit_summary(current, checks, analyses, performance)

        audit = await self._mutate(audit_id, finish)
        if audit.status == AuditStatus.COMPLETED:
            logger.info(f"Audit {audit_id} completed: overall score {audit.overall_score}")
        return audit

    async def advance(self, audit_id: str) -> Audit:
        """Run the next phase for the current status and return the audit."""
        audit = await self.store.get_audit(audit_id)
        if audit.status == AuditStatus.PENDING:
            return await self.start_discovery(audit_id)
        if audit.status == AuditStatus.CHECKING:
            return await self.run_checks(audit_id)
        return audit

    async def drive(self, audit_id: str) -> Audit:
        """Advance until the audit is terminal or no phase can run."""
        while True:
            before = await self.store.get_audit(audit_id)
            audit = await self.advance(audit_id)
            if audit.is_terminal or audit.status == before.status:
                return audit

    async def stop(self, audit_id: str) -> Audit:
        """In-progress -> stopped. Terminal audits are returned unchanged."""
        def mark_stopped(audit: Audit):
            if audit.is_terminal:
                return False
            audit.status = AuditStatus.STOPPED
            audit.current_url = None
            audit.completed_at = utcnow()

        audit = await self._mutate(audit_id, mark_stopped)
        logger.info(f"Audit {audit_id} stop requested (status: {audit.status.value})")
        return audit

    async def fail(self, audit_id: str, message: str) -> Audit:
        """
        Raises:
            ValueError: empty message
            InvalidTransitionError: audit is already terminal
        """
        if not message or not message.strip():
            raise ValueError("A failure message is required")

        def mark_failed(audit: Audit):
            if audit.is_terminal:
                raise InvalidTransitionError(f"Audit is already {audit.status.value}")
            audit.status = AuditStatus.FAILED
            audit.error_message = message.strip()
            audit.current_url = None

        audit = await self._mutate(audit_id, mark_failed)
        logger.error(f"Audit {audit_id} failed: {audit.error_message}")
        return audit

    async def _checked_count(self, audit: Audit) -> int:
        if audit.kind == AuditKind.PERFORMANCE:
            results = await self.store.list_performance_results(audit.id)
            measured = {(r.url, r.device) for r in results}
            return len({url for url, _ in measured if all((url, d) in measured for d in Device)})
        return len(await self.store.checked_page_ids(audit.id))

    async def resume(self, audit_id: str) -> Audit:
        """
        failed -> checking, reusing the pages already discovered.

        Raises:
            InvalidTransitionError: audit is not failed
            NothingToResumeError: no page was crawled
        """
        async with self._lease(audit_id):
            audit = await self.store.get_audit(audit_id)
            if audit.status != AuditStatus.FAILED:
                raise InvalidTransitionError(f"Only failed audits can be resumed (status: {audit.status.value})")
            if audit.pages_crawled == 0:
                raise NothingToResumeError("No pages were crawled - nothing to analyze")
            checked = await self._checked_count(audit)

            def reopen(current: Audit):
                if current.status != AuditStatus.FAILED:
                    raise InvalidTransitionError(
                        f"Only failed audits can be resumed (status: {current.status.value})"
                    )
                current.status = AuditStatus.CHECKING
                current.error_message = None
                current.completed_at = None
                current.pages_total = current.pages_crawled
                current.pages_checked = checked

            audit = await self._mutate(audit_id, reopen)
            logger.info(f"Audit {audit_id} resumed at {checked}/{audit.pages_crawled} pages checked")
            return audit

    async def recover(self, audit_id: str) -> Audit:
        """Re-derive ``pages_checked`` from stored results after a crash."""
        audit = await self.store.get_audit(audit_id)
        checked = await self._checked_count(audit)

        def recount(current: Audit):
            if current.pages_checked == checked:
                return False
            current.pages_checked = checked

        audit = await self._mutate(audit_id, recount)
        logger.info(f"Audit {audit_id} recovered: {checked} pages checked")
        return audit

    async def fail_stale_audits(self, max_idle_minutes: Optional[float] = None) -> List[Audit]:
        """Fail in-progress audits that have not been updated for a while."""
        idle = settings.STALE_AUDIT_MINUTES if max_idle_minutes is None else max_idle_minutes
        cutoff = utcnow() - timedelta(minutes=idle)

        failed = []
        for audit in await self.store.list_audits(statuses=IN_PROGRESS_STATUSES):
            if audit.updated_at >= cutoff:
                continue

            def mark_stale(current: Audit):
                if current.status not in IN_PROGRESS_STATUSES or current.updated_at >= cutoff:
                    return False
                current.status = AuditStatus.FAILED
                current.error_message = STALE_MESSAGE
                current.current_url = None

            updated = await self._mutate(audit.id, mark_stale)
            if updated.status == AuditStatus.FAILED and updated.error_message == STALE_MESSAGE:
                logger.warning(f"Audit {audit.id} marked failed: no update since {audit.updated_at.isoformat()}")
                failed.append(updated)
        return failed

    # --- read side ---

    async def get_audit(self, audit_id: str) -> Audit:
        return await self.store.get_audit(audit_id)

    async def list_checks(self, audit_id: str) -> List[CheckRecord]:
        await self.store.get_audit(audit_id)
        return await self.store.list_checks(audit_id)

    async def progress(self, audit_id: str) -> ProgressSnapshot:
        audit = await self.store.get_audit(audit_id)
        recent = await self.store.recent_checks(audit_id, settings.PROGRESS_RECENT_CHECKS)
        return ProgressSnapshot(
            audit_id=audit.id,
            status=audit.status,
            pages_crawled=audit.pages_crawled,
            pages_checked=audit.pages_checked,
            pages_total=audit.pages_total,
            current_url=audit.current_url,
            checks=[_recent(r) for r in recent],
            error_message=audit.error_message,
        )
