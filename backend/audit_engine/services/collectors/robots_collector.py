"""
Robots.txt Collector - Fetch and parse robots.txt.
"""
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin

import httpx

from audit_engine.logger import logger
from audit_engine.services import http_client


@dataclass
class RobotsGroup:
    """One User-agent block with its rules."""
    agents: List[str] = field(default_factory=list)
    rules: List[tuple] = field(default_factory=list)  # (directive, value)

    @property
    def blocks_root(self) -> bool:
        return any(d == "disallow" and v == "/" for d, v in self.rules)


@dataclass
class RobotsData:
    """Parsed robots.txt data."""
    url: str = ""
    exists: bool = False
    status_code: Optional[int] = None
    content: str = ""
    groups: List[RobotsGroup] = field(default_factory=list)
    sitemaps: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def has_user_agent(self) -> bool:
        return any(g.agents for g in self.groups)

    @property
    def has_crawl_rules(self) -> bool:
        return any(g.rules for g in self.groups)

    def blocked_agents(self, bots: List[str]) -> List[str]:
        """Bots (case-insensitive) whose own group disallows the whole site."""
        blocked = []
        for bot in bots:
            for group in self.groups:
                if group.blocks_root and any(a.lower() == bot.lower() for a in group.agents):
                    blocked.append(bot)
                    break
        return blocked


class RobotsCollector:
    """Fetches and parses robots.txt."""

    async def fetch(self, base_url: str) -> RobotsData:
        """Fetch robots.txt from the domain.

        Transport failures are reported on ``RobotsData.error``; they never raise.
        """
        robots_url = urljoin(base_url, "/robots.txt")

        try:
            async with http_client.build_client() as client:
                response = await client.get(robots_url)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch robots.txt from {robots_url}: {e}")
            return RobotsData(url=robots_url, error=str(e) or e.__class__.__name__)

        if response.status_code != 200:
            return RobotsData(url=robots_url, status_code=response.status_code)

        data = self.parse(response.text)
        data.url = robots_url
        data.status_code = response.status_code
        return data

    def parse(self, content: str) -> RobotsData:
        """Parse robots.txt content into user-agent groups.

        Consecutive User-agent lines share a group; a User-agent line after
        rules starts a new one.
        """
        data = RobotsData(exists=True, content=content)
        current = RobotsGroup()

        for raw in content.splitlines():
            line = raw.split("#", 1)[0].strip()
            if not line or ":" not in line:
                continue

            key, value = line.split(":", 1)
            key = key.strip().lower()
            value = value.strip()

            if key == "user-agent":
                if current.rules:
                    data.groups.append(current)
                    current = RobotsGroup()
                current.agents.append(value)
            elif key in ("disallow", "allow"):
                current.rules.append((key, value))
            elif key == "sitemap":
                data.sitemaps.append(value)

        if current.agents:
            data.groups.append(current)

        return data
