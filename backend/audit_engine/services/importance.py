"""
Page importance ranking used to pick which crawled pages the AI scorer sees.
"""
import re
from dataclasses import dataclass, field
from typing import List, Sequence
from urllib.parse import urlparse

from audit_engine.models import CrawledPage

IMPORTANT_PATTERNS = [
    (re.compile(r"/(about|services|products|features)", re.IGNORECASE), 30, "Core service page"),
    (re.compile(r"/(blog|articles|resources)", re.IGNORECASE), 25, "Content hub"),
    (re.compile(r"/(pricing|plans)", re.IGNORECASE), 20, "Pricing page"),
    (re.compile(r"/(docs|documentation|guide)", re.IGNORECASE), 35, "Documentation"),
    (re.compile(r"/(faq|help|support)", re.IGNORECASE), 30, "Help content"),
    (re.compile(r"/(case-studies|customers|testimonials)", re.IGNORECASE), 25, "Social proof"),
]

LOW_PRIORITY_PATTERNS = [
    re.compile(r"/(privacy|terms|legal)", re.IGNORECASE),
    re.compile(r"/(login|signup|register)", re.IGNORECASE),
    re.compile(r"/(admin|dashboard)", re.IGNORECASE),
    re.compile(r"/(archive|old|legacy)", re.IGNORECASE),
]


@dataclass
class PageImportance:
    page: CrawledPage
    score: int
    reasons: List[str] = field(default_factory=list)

    @property
    def url(self) -> str:
        return self.page.url


def _depth_score(depth: int):
    if depth == 0:
        return 100, "Homepage"
    if depth == 1:
        return 80, "Top-level page"
    if depth == 2:
        return 50, "Second-level page"
    return 20, f"Deep page (depth: {depth})"


def score_page_importance(page: CrawledPage, all_pages: Sequence[CrawledPage]) -> PageImportance:
    """Heuristic 0-100 importance from URL shape, metadata and status."""
    path = urlparse(page.url).path
    depth = len([segment for segment in path.split("/") if segment])

    score, reason = _depth_score(depth)
    reasons = [reason]

    # Without link extraction every other crawled page counts as a potential inbound link.
    others = sum(1 for p in all_pages if p.url != page.url)
    score += min(others * 5, 50)
    if others > 5:
        reasons.append("Highly linked internally")

    for pattern, boost, label in IMPORTANT_PATTERNS:
        if pattern.search(path):
            score += boost
            reasons.append(label)
            break

    for pattern in LOW_PRIORITY_PATTERNS:
        if pattern.search(path):
            score = max(10, score - 40)
            reasons.append("Low priority page type")
            break

    if page.title:
        if 30 <= len(page.title) <= 70:
            score += 10
            reasons.append("Well-optimized title")
    else:
        score -= 20
        reasons.append("Missing title")

    if page.meta_description:
        score += 10
        reasons.append("Has meta description")

    if page.status_code != 200:
        score = max(0, score - 80)
        reasons.append(f"Non-200 status ({page.status_code})")

    return PageImportance(page=page, score=max(0, min(100, score)), reasons=reasons)


def _is_homepage(url: str) -> bool:
    return urlparse(url).path in ("", "/")


def select_top_pages(pages: Sequence[CrawledPage], sample_size: int) -> List[PageImportance]:
    """Top ``sample_size`` pages by importance, homepage always included."""
    if sample_size <= 0:
        return []

    ranked = sorted(
        (score_page_importance(page, pages) for page in pages),
        key=lambda p: p.score,
        reverse=True,
    )
    top = ranked[:sample_size]

    homepage = next((p for p in ranked if _is_homepage(p.url)), None)
    if homepage is not None and homepage not in top:
        top = [homepage] + top[: sample_size - 1]
    return top
