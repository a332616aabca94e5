"""
Shared httpx client factory for secondary requests made by checks and
collectors (robots.txt, sitemap, llms.txt, HEAD timing).
"""
import httpx

from audit_engine.config import settings

USER_AGENT = "Mozilla/5.0 (compatible; AuditEngineBot/1.0)"


def build_client(**overrides) -> httpx.AsyncClient:
    """New AsyncClient with engine defaults; callers use it as a context manager."""
    options = {
        "timeout": settings.CHECK_HTTP_TIMEOUT,
        "follow_redirects": True,
        "max_redirects": settings.HTTP_MAX_REDIRECTS,
        "headers": {"User-Agent": USER_AGENT},
    }
    options.update(overrides)
    return httpx.AsyncClient(**options)
