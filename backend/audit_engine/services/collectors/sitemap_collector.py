"""
Sitemap Collector - Detect sitemap.xml.

Looks at the sitemaps declared in robots.txt first, then at the common
locations.
"""
import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urljoin, urlparse

import httpx

from audit_engine.logger import logger
from audit_engine.services import http_client


@dataclass
class SitemapData:
    """Sitemap detection result."""
    exists: bool = False
    url: Optional[str] = None
    source: str = "not_found"  # 'robots', 'common_path', 'not_found'
    url_count: int = 0
    is_index: bool = False
    declared_url: Optional[str] = None  # declared in robots.txt but unreachable
    error: Optional[str] = None


class SitemapCollector:
    """Collector for sitemap.xml."""

    COMMON_PATHS = [
        "/sitemap.xml",
        "/sitemap_index.xml",
        "/sitemap/sitemap.xml",
    ]

    async def fetch(self, url: str, declared: Optional[List[str]] = None) -> SitemapData:
        """Detect the sitemap for the site that ``url`` belongs to.

        Args:
            url: Any URL on the domain
            declared: Sitemap URLs listed in robots.txt
        """
        parsed = urlparse(url)
        base_url = f"{parsed.scheme}://{parsed.netloc}"
        unreachable = None
        error = None

        async with http_client.build_client() as client:
            for sitemap_url in declared or []:
                sitemap_url = urljoin(base_url, sitemap_url)
                result = await self._fetch_sitemap(client, sitemap_url)
                if result.exists:
                    result.source = "robots"
                    return result
                error = error or result.error
                unreachable = unreachable or sitemap_url

            for path in self.COMMON_PATHS:
                result = await self._fetch_sitemap(client, urljoin(base_url, path))
                if result.exists:
                    result.source = "common_path"
                    return result
                error = error or result.error

        return SitemapData(declared_url=unreachable, error=error)

    async def _fetch_sitemap(self, client: httpx.AsyncClient, sitemap_url: str) -> SitemapData:
        try:
            response = await client.get(sitemap_url)
        except httpx.HTTPError as e:
            logger.warning(f"Error fetching sitemap {sitemap_url}: {e}")
            return SitemapData(error=str(e) or e.__class__.__name__)

        if response.status_code != 200:
            return SitemapData()

        content = response.text
        if "<urlset" not in content and "<sitemapindex" not in content:
            return SitemapData()

        return SitemapData(
            exists=True,
            url=sitemap_url,
            is_index="<sitemapindex" in content,
            url_count=len(re.findall(r"<loc>", content)),
        )
