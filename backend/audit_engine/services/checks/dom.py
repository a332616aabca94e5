"""
HTML helpers shared by the checks.
"""
import re
from typing import List
from urllib.parse import urlparse

from bs4 import BeautifulSoup

CHROME_TAGS = ["nav", "header", "footer", "aside", "script", "style", "noscript"]
HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]


def parse(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def strip_chrome(soup: BeautifulSoup, tags: List[str] = CHROME_TAGS) -> BeautifulSoup:
    """Remove navigation and non-content elements in place."""
    for tag in soup.find_all(tags):
        tag.decompose()
    return soup


def main_text(soup: BeautifulSoup) -> str:
    """Text of the main content region, falling back to <body>."""
    node = soup.select_one("main, article, [role=main]") or soup.body or soup
    return node.get_text(" ")


def words(text: str) -> List[str]:
    return [w for w in text.split() if w]


def headings(soup: BeautifulSoup):
    return soup.find_all(HEADING_TAGS)


def headings_matching(soup: BeautifulSoup, pattern: str) -> list:
    regex = re.compile(pattern, re.IGNORECASE)
    return [h for h in headings(soup) if regex.search(h.get_text(" ").strip())]


def hostname(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


def is_internal_href(href: str, current_host: str) -> bool:
    """Relative links and absolute links to the same host count as internal."""
    if not href.startswith("http"):
        return bool(href) and not href.startswith(("#", "mailto:", "tel:"))
    return hostname(href) == current_host


def is_external_href(href: str, current_host: str) -> bool:
    return href.startswith("http") and hostname(href) not in ("", current_host)
