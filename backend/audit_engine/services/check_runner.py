"""
Check Runner - Executes check definitions against one page.

A check that raises or times out is contained: it produces a synthetic
``warning`` result and the remaining checks still run.
"""
import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence
from urllib.parse import urlparse

from audit_engine.config import settings
from audit_engine.errors import InvalidCheckContextError
from audit_engine.logger import get_logger
from audit_engine.models import CheckRecord, CheckStatus, new_id
from audit_engine.services.checks.base import CheckContext, CheckDefinition, CheckResult

logger = get_logger("check_runner")


@dataclass
class CheckOutcome:
    """Result of one check paired with the definition that produced it."""
    definition: CheckDefinition
    result: CheckResult

    def to_record(self, audit_id: str, page_id: Optional[str], page_url: str) -> CheckRecord:
        definition = self.definition
        return CheckRecord(
            id=new_id(),
            audit_id=audit_id,
            page_id=page_id,
            page_url=page_url,
            check_name=definition.name,
            category=definition.category,
            priority=definition.priority,
            status=self.result.status,
            details=dict(self.result.details),
            display_name=definition.display_name,
            display_name_passed=definition.display_name_passed,
            description=definition.description,
            learn_more_url=definition.learn_more_url,
        )


def validate_context(context: CheckContext) -> None:
    parsed = urlparse(context.url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidCheckContextError(f"Check context URL must be absolute http(s): {context.url!r}")


class CheckRunner:
    """Runs checks sequentially, in the order given."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else settings.CHECK_TIMEOUT_SECONDS

    async def run(self, context: CheckContext, checks: Sequence[CheckDefinition]) -> List[CheckOutcome]:
        """
        Run every check against the context.

        Args:
            context: Page URL and HTML
            checks: Definitions to execute

        Returns:
            One outcome per check, same order as ``checks``

        Raises:
            InvalidCheckContextError: URL is not absolute http(s); no check runs
        """
        validate_context(context)

        outcomes = []
        for definition in checks:
            outcomes.append(CheckOutcome(definition, await self._run_one(context, definition)))
        return outcomes

    async def _run_one(self, context: CheckContext, definition: CheckDefinition) -> CheckResult:
        try:
            result = await asyncio.wait_for(definition.run(context), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Check {definition.name} timed out after {self.timeout}s on {context.url}")
            return CheckResult(
                CheckStatus.WARNING,
                {"message": f"Check failed: timed out after {self.timeout:g}s", "error": "timeout"},
            )
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.warning(f"Check {definition.name} failed on {context.url}: {error}")
            return CheckResult(CheckStatus.WARNING, {"message": f"Check failed: {error}", "error": error})

        if not isinstance(result, CheckResult):
            logger.warning(f"Check {definition.name} returned {type(result).__name__}, expected CheckResult")
            return CheckResult(
                CheckStatus.WARNING,
                {"message": "Check failed: invalid result", "error": "invalid result"},
            )
        return result
