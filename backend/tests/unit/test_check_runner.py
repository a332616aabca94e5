"""
Unit tests for the check runner: ordering, fault containment, timeouts.
"""
import asyncio

import pytest

from audit_engine.errors import InvalidCheckContextError
from audit_engine.models import CheckCategory, CheckPriority, CheckStatus
from audit_engine.services.check_runner import CheckRunner, validate_context
from audit_engine.services.checks.base import CheckContext, check, passed

from conftest import TEST_CHECKS, page_html


@check("boom", CheckCategory.SEO, CheckPriority.CRITICAL)
async def boom(context: CheckContext):
    raise RuntimeError("parser exploded")


@check("slow", CheckCategory.SEO, CheckPriority.RECOMMENDED)
async def slow(context: CheckContext):
    await asyncio.sleep(5)
    return passed("never")


@check("not_a_result", CheckCategory.SEO, CheckPriority.OPTIONAL)
async def not_a_result(context: CheckContext):
    return {"status": "passed"}


CONTEXT = CheckContext(url="https://example.com/", html=page_html())


class TestCheckRunner:
    """Test sequential execution and containment."""

    async def test_results_in_order(self):
        outcomes = await CheckRunner().run(CONTEXT, TEST_CHECKS)

        assert [o.definition.name for o in outcomes] == ["uses_https", "has_title", "has_list"]
        assert all(o.result.status == CheckStatus.PASSED for o in outcomes)

    async def test_exception_becomes_warning(self):
        """A raising check yields a warning and the next check still runs."""
        outcomes = await CheckRunner().run(CONTEXT, [boom, TEST_CHECKS[1]])

        assert outcomes[0].result.status == CheckStatus.WARNING
        assert outcomes[0].result.message == "Check failed: parser exploded"
        assert outcomes[0].result.details["error"] == "parser exploded"
        assert outcomes[1].result.status == CheckStatus.PASSED

    async def test_timeout_becomes_warning(self):
        outcomes = await CheckRunner(timeout=0.05).run(CONTEXT, [slow])

        assert outcomes[0].result.status == CheckStatus.WARNING
        assert outcomes[0].result.details["error"] == "timeout"

    async def test_invalid_result_becomes_warning(self):
        outcomes = await CheckRunner().run(CONTEXT, [not_a_result])
        assert outcomes[0].result.message == "Check failed: invalid result"

    async def test_relative_url_rejected(self):
        """No check runs when the context URL is not absolute."""
        with pytest.raises(InvalidCheckContextError):
            await CheckRunner().run(CheckContext(url="/about", html=""), TEST_CHECKS)

    @pytest.mark.parametrize("url", ["ftp://example.com/", "example.com", "", "https://"])
    def test_validate_context_rejects(self, url):
        with pytest.raises(InvalidCheckContextError):
            validate_context(CheckContext(url=url, html=""))

    async def test_outcome_to_record(self):
        outcomes = await CheckRunner().run(CONTEXT, [TEST_CHECKS[0]])
        record = outcomes[0].to_record("audit-1", None, CONTEXT.url)

        assert record.key == ("audit-1", None, "uses_https")
        assert record.category == CheckCategory.TECHNICAL_FOUNDATION
        assert record.details["message"] == "HTTPS"
