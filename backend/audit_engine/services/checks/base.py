"""
Check definitions.

A check is metadata plus an async ``run(context) -> CheckResult`` function.
Definitions are built once at import time with the ``@check`` decorator and
never mutated.
"""
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from audit_engine.models import CheckCategory, CheckPriority, CheckStatus


@dataclass(frozen=True)
class CheckContext:
    """Input for one check invocation: absolute page URL and raw HTML."""
    url: str
    html: str


@dataclass
class CheckResult:
    status: CheckStatus
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return self.details.get("message", "")


def passed(message: str, **metrics) -> CheckResult:
    return CheckResult(CheckStatus.PASSED, {"message": message, **metrics})


def warning(message: str, fix_guidance: Optional[str] = None, **metrics) -> CheckResult:
    details = {"message": message, **metrics}
    if fix_guidance:
        details["fix_guidance"] = fix_guidance
    return CheckResult(CheckStatus.WARNING, details)


def failed(message: str, fix_guidance: Optional[str] = None, **metrics) -> CheckResult:
    details = {"message": message, **metrics}
    if fix_guidance:
        details["fix_guidance"] = fix_guidance
    return CheckResult(CheckStatus.FAILED, details)


RunFn = Callable[[CheckContext], Awaitable[CheckResult]]


@dataclass(frozen=True)
class CheckDefinition:
    name: str
    category: CheckCategory
    priority: CheckPriority
    run: RunFn = field(repr=False, compare=False)
    is_site_wide: bool = False
    display_name: str = ""
    display_name_passed: str = ""
    description: str = ""
    learn_more_url: Optional[str] = None


def check(
    name: str,
    category: CheckCategory,
    priority: CheckPriority,
    *,
    site_wide: bool = False,
    display_name: str = "",
    display_name_passed: str = "",
    description: str = "",
    learn_more_url: Optional[str] = None,
) -> Callable[[RunFn], CheckDefinition]:
    """Turn an async function into a CheckDefinition."""
    def decorator(func: RunFn) -> CheckDefinition:
        return CheckDefinition(
            name=name,
            category=category,
            priority=priority,
            run=func,
            is_site_wide=site_wide,
            display_name=display_name or name.replace("_", " ").title(),
            display_name_passed=display_name_passed or display_name or name.replace("_", " ").title(),
            description=description or (func.__doc__ or "").strip(),
            learn_more_url=learn_more_url,
        )
    return decorator
