"""
Crawler - Discovers pages of a site for the checking phase.

Architecture:
1. URL normalization
2. SSRF protection check
3. HTTP fetch with retries (429 honours Retry-After)
4. Same-host breadth-first link discovery
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Iterable, Optional, Protocol
from urllib.parse import parse_qs, urldefrag, urlencode, urljoin, urlparse, urlunparse

import httpx
from bs4 import BeautifulSoup

from audit_engine.config import settings
from audit_engine.errors import CrawlError
from audit_engine.logger import get_logger
from audit_engine.services.http_client import USER_AGENT
from audit_engine.services.ssrf_protection import SSRFProtection

logger = get_logger("crawler")

TRACKING_PARAMS = {
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
    "fbclid", "gclid", "msclkid", "mc_cid", "mc_eid",
    "_ga", "_gl", "gad_source", "gbraid", "wbraid",
}

SKIPPED_EXTENSIONS = (
    ".pdf", ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".ico",
    ".css", ".js", ".zip", ".gz", ".mp4", ".mp3", ".woff", ".woff2", ".xml", ".txt",
)

StopCheck = Callable[[], Awaitable[bool]]


@dataclass
class DiscoveredPage:
    """A fetched HTML page, ready to be persisted."""
    url: str
    html: str
    status_code: int = 200
    title: Optional[str] = None
    meta_description: Optional[str] = None
    depth: int = 0
    links: list[str] = field(default_factory=list, repr=False)


@dataclass
class FetchResult:
    url: str
    final_url: str
    status_code: Optional[int] = None
    content_type: str = ""
    html: str = ""
    error: Optional[str] = None

    @property
    def is_html(self) -> bool:
        return self.status_code == 200 and ("html" in self.content_type or not self.content_type)


class Crawler(Protocol):
    def discover(
        self,
        root_url: str,
        max_pages: int,
        should_stop: StopCheck,
        skip_urls: Iterable[str] = (),
    ) -> AsyncIterator[DiscoveredPage]:
        ...


def normalize_url(url: str) -> str:
    """Canonical form used to de-duplicate crawl targets.

    Adds https when no scheme is given, lowercases scheme and host, drops
    tracking params, fragment and trailing slash (except the root path).
    """
    if not url.startswith(("http://", "https://")):
        url = "https://" + url

    parsed = urlparse(url)
    query = ""
    if parsed.query:
        params = parse_qs(parsed.query, keep_blank_values=True)
        clean = {k: v for k, v in params.items() if k.lower() not in TRACKING_PARAMS}
        query = urlencode(clean, doseq=True) if clean else ""

    path = parsed.path.rstrip("/") or "/"
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, query, ""))


def site_host(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def parse_page(html: str, base_url: str):
    """Title, meta description and absolute links (fragments dropped)."""
    soup = BeautifulSoup(html or "", "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else None

    meta = soup.find("meta", attrs={"name": "description"})
    description = (meta.get("content") or "").strip() if meta else ""

    links = []
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if not href or href.startswith(("mailto:", "tel:", "javascript:", "#")):
            continue
        links.append(urldefrag(urljoin(base_url, href))[0])
    return title or None, description or None, links


class HttpCrawler:
    """Crawler backed by httpx."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        max_redirects: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        url_guard: Callable[[str], tuple] = SSRFProtection.validate_url,
    ):
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self.max_retries = settings.HTTP_MAX_RETRIES if max_retries is None else max_retries
        self.max_redirects = max_redirects or settings.HTTP_MAX_REDIRECTS
        self.transport = transport
        self.url_guard = url_guard

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            max_redirects=self.max_redirects,
            timeout=self.timeout,
            transport=self.transport,
            headers={
                "User-Agent": USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            },
        )

    async def discover(
        self,
        root_url: str,
        max_pages: int,
        should_stop: StopCheck,
        skip_urls: Iterable[str] = (),
    ) -> AsyncIterator[DiscoveredPage]:
        """
        Breadth-first crawl of ``root_url``'s host.

        Args:
            root_url: Where to start
            max_pages: Upper bound on pages yielded
            should_stop: Polled before every fetch; True ends discovery
            skip_urls: Already-stored URLs; followed for links but not yielded again

        Raises:
            CrawlError: the root page could not be fetched
        """
        root = normalize_url(root_url)
        host = site_host(root)
        skipped = {normalize_url(u) for u in skip_urls}
        queue = deque([(root, 0)])
        seen = {root}
        yielded = 0

        async with self._client() as client:
            while queue and yielded < max_pages:
                if await should_stop():
                    logger.info(f"Discovery of {root} stopped after {yielded} pages")
                    return

                url, depth = queue.popleft()
                result = await self.fetch(client, url)

                if url == root and not result.is_html:
                    raise CrawlError(result.error or f"HTTP {result.status_code}")
                if not result.is_html:
                    logger.debug(f"Skipping {url}: {result.error or result.status_code}")
                    continue

                if depth == 0:
                    # Redirects such as example.com -> www.example.com define the crawl host.
                    host = site_host(result.final_url) or host
                title, description, links = parse_page(result.html, result.final_url)

                for link in links:
                    candidate = normalize_url(link)
                    if candidate in seen or site_host(candidate) != host:
                        continue
                    if urlparse(candidate).path.lower().endswith(SKIPPED_EXTENSIONS):
                        continue
                    seen.add(candidate)
                    queue.append((candidate, depth + 1))

                if url in skipped:
                    continue
                yielded += 1
                yield DiscoveredPage(
                    url=url,
                    html=result.html,
                    status_code=result.status_code,
                    title=title,
                    meta_description=description,
                    depth=depth,
                    links=links,
                )

    async def fetch(self, client: httpx.AsyncClient, url: str) -> FetchResult:
        """Fetch one URL with retries on timeouts and rate limiting."""
        is_safe, reason = self.url_guard(url)
        if not is_safe:
            logger.warning(f"SSRF protection blocked {url}: {reason}")
            return FetchResult(url=url, final_url=url, error=f"URL blocked by SSRF protection: {reason}")

        for attempt in range(self.max_retries + 1):
            try:
                response = await client.get(url)
            except httpx.TimeoutException:
                if attempt < self.max_retries:
                    logger.warning(f"HTTP timeout for {url}, retrying (attempt {attempt + 1})")
                    await asyncio.sleep(2 ** attempt)
                    continue
                return FetchResult(url=url, final_url=url, error="HTTP timeout")
            except httpx.HTTPError as e:
                logger.warning(f"HTTP error for {url}: {e}")
                return FetchResult(url=url, final_url=url, error=str(e) or e.__class__.__name__)

            if response.status_code == 429 and attempt < self.max_retries:
                retry_after = response.headers.get("Retry-After", "5")
                wait = int(retry_after) if retry_after.isdigit() else 5
                logger.warning(f"Rate limited on {url}, waiting {wait}s")
                await asyncio.sleep(wait)
                continue

            return FetchResult(
                url=url,
                final_url=str(response.url),
                status_code=response.status_code,
                content_type=response.headers.get("content-type", ""),
                html=response.text if response.status_code == 200 else "",
                error=None if response.status_code == 200 else f"HTTP {response.status_code}",
            )

        return FetchResult(url=url, final_url=url, error="HTTP fetch failed after retries")
