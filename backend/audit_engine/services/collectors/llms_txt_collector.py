"""
LLMs.txt Collector - Fetch llms.txt for AI discoverability.
"""
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin

import httpx

from audit_engine.logger import logger
from audit_engine.services import http_client


@dataclass
class LlmsTxtData:
    """Parsed llms.txt data."""
    url: str = ""
    exists: bool = False
    content: str = ""
    has_title: bool = False
    has_links: bool = False
    error: Optional[str] = None


class LlmsTxtCollector:
    """Fetches and parses llms.txt."""

    async def fetch(self, base_url: str) -> LlmsTxtData:
        llms_url = urljoin(base_url, "/llms.txt")

        try:
            async with http_client.build_client() as client:
                response = await client.get(llms_url)
        except httpx.HTTPError as e:
            logger.debug(f"llms.txt not reachable: {e}")
            return LlmsTxtData(url=llms_url, error=str(e) or e.__class__.__name__)

        if response.status_code != 200:
            return LlmsTxtData(url=llms_url)

        data = self.parse(response.text)
        data.url = llms_url
        return data

    def parse(self, content: str) -> LlmsTxtData:
        """llms.txt is markdown: an H1 title followed by link lists."""
        data = LlmsTxtData(exists=True, content=content)
        data.has_title = any(line.startswith("# ") for line in content.splitlines())
        data.has_links = "](" in content
        return data
