"""
Check catalogs.

Two immutable catalogs are built at import time: the AIO catalog (technical
foundation, content structure, content quality) and the Site catalog (SEO,
technical, AI readiness). Performance audits run no DOM checks.
"""
from typing import List, Optional, Tuple

from audit_engine.models import AuditKind, CheckCategory
from audit_engine.services.checks import content_quality, content_structure, site, technical_foundation
from audit_engine.services.checks.base import CheckDefinition

AIO_CHECKS: Tuple[CheckDefinition, ...] = tuple(
    technical_foundation.CHECKS + content_structure.CHECKS + content_quality.CHECKS
)

SITE_CHECKS: Tuple[CheckDefinition, ...] = tuple(site.CHECKS)


def _assert_unique(catalog: Tuple[CheckDefinition, ...]) -> None:
    names = [c.name for c in catalog]
    duplicates = {n for n in names if names.count(n) > 1}
    if duplicates:
        raise ValueError(f"CRITICAL: duplicate check names in catalog: {sorted(duplicates)}")


_assert_unique(AIO_CHECKS)
_assert_unique(SITE_CHECKS)


def list_checks(
    category: Optional[CheckCategory] = None,
    catalog: Tuple[CheckDefinition, ...] = AIO_CHECKS,
) -> List[CheckDefinition]:
    """Checks in catalog order, optionally filtered by category."""
    if category is None:
        return list(catalog)
    return [c for c in catalog if c.category == category]


def site_wide_checks(catalog: Tuple[CheckDefinition, ...] = AIO_CHECKS) -> List[CheckDefinition]:
    return [c for c in catalog if c.is_site_wide]


def page_specific_checks(catalog: Tuple[CheckDefinition, ...] = AIO_CHECKS) -> List[CheckDefinition]:
    return [c for c in catalog if not c.is_site_wide]


def catalog_for(kind: AuditKind) -> Tuple[CheckDefinition, ...]:
    if kind == AuditKind.AIO:
        return AIO_CHECKS
    if kind == AuditKind.SITE:
        return SITE_CHECKS
    return ()


def get_check(name: str) -> Optional[CheckDefinition]:
    for definition in AIO_CHECKS + SITE_CHECKS:
        if definition.name == name:
            return definition
    return None
