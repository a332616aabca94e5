"""
Site audit checks (SEO, technical and AI-readiness rules).

Site-wide checks probe well-known files on the origin; they are dispatched
once per audit against the root page.
"""
import re
from urllib.parse import urljoin, urlparse

import httpx

from audit_engine.models import CheckCategory, CheckPriority
from audit_engine.services import http_client
from audit_engine.services.checks import dom
from audit_engine.services.checks.base import CheckContext, check, failed, passed, warning
from audit_engine.services.collectors.llms_txt_collector import LlmsTxtCollector
from audit_engine.services.collectors.robots_collector import RobotsCollector
from audit_engine.services.collectors.schema_collector import SchemaCollector
from audit_engine.services.collectors.sitemap_collector import SitemapCollector

BLOCKABLE_AI_BOTS = ["GPTBot", "PerplexityBot", "ClaudeBot", "ChatGPT-User", "anthropic-ai"]

INSECURE_RESOURCES = [
    ("img[src]", "src", "image"),
    ("script[src]", "src", "script"),
    ("link[href]", "href", "stylesheet"),
    ("iframe[src]", "src", "iframe"),
    ("video[src]", "src", "video"),
    ("audio[src]", "src", "audio"),
    ("source[src]", "src", "media source"),
    ("object[data]", "data", "object"),
    ("embed[src]", "src", "embed"),
]

STYLE_HTTP_URL = re.compile(r"url\s*\(\s*['\"]?(http://[^'\")]+)['\"]?\s*\)", re.IGNORECASE)


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


# --- SEO ---

@check(
    "missing_robots_txt", CheckCategory.SEO, CheckPriority.CRITICAL,
    site_wide=True,
    display_name="Missing robots.txt",
    display_name_passed="robots.txt",
    description="robots.txt helps control how search engines crawl your site",
    learn_more_url="https://developers.google.com/search/docs/crawling-indexing/robots/intro",
)
async def missing_robots_txt(context: CheckContext):
    robots = await RobotsCollector().fetch(_origin(context.url))

    if robots.error:
        return warning(
            "Could not access robots.txt (connection error). Ensure the file exists and is accessible.",
            error=robots.error,
        )
    if not robots.exists:
        return failed(
            f"No robots.txt found (HTTP {robots.status_code}). Create a robots.txt file to control "
            "search engine crawling behavior and point to your sitemap.",
            status_code=robots.status_code,
        )
    if not robots.has_user_agent:
        return warning(
            "robots.txt exists but appears to be empty or malformed. Add User-agent directives to "
            "properly configure crawler behavior.",
            url=robots.url,
        )

    features = []
    if robots.has_crawl_rules:
        features.append("crawl rules")
    if robots.sitemaps:
        features.append("sitemap reference")
    suffix = f" with {' and '.join(features)}" if features else ""
    return passed(
        f"robots.txt is properly configured{suffix}",
        url=robots.url,
        has_sitemap=bool(robots.sitemaps),
        has_crawl_rules=robots.has_crawl_rules,
    )


@check(
    "missing_sitemap", CheckCategory.SEO, CheckPriority.CRITICAL,
    site_wide=True,
    display_name="Missing XML Sitemap",
    display_name_passed="XML Sitemap",
    description="XML sitemap helps search engines discover and index pages",
    learn_more_url="https://developers.google.com/search/docs/crawling-indexing/sitemaps/overview",
)
async def missing_sitemap(context: CheckContext):
    origin = _origin(context.url)
    robots = await RobotsCollector().fetch(origin)
    sitemap = await SitemapCollector().fetch(origin, declared=robots.sitemaps)

    if sitemap.exists:
        return passed(f"XML sitemap found at {sitemap.url}", sitemap_url=sitemap.url, url_count=sitemap.url_count)
    if sitemap.declared_url:
        return warning(f"Sitemap declared in robots.txt ({sitemap.declared_url}) but not accessible")
    if sitemap.error:
        return warning(f"Could not verify sitemap: {sitemap.error}")
    return failed(
        "No XML sitemap found. Create a sitemap.xml file listing all important pages to help search "
        "engines discover your content. Most CMS platforms can generate this automatically.",
    )


@check(
    "http_to_https_redirect", CheckCategory.SEO, CheckPriority.CRITICAL,
    site_wide=True,
    display_name="Missing HTTP to HTTPS Redirect",
    display_name_passed="HTTP to HTTPS Redirect",
    description="HTTP version should redirect to HTTPS to consolidate SEO signals and ensure security",
    learn_more_url="https://developers.google.com/search/docs/crawling-indexing/consolidate-duplicate-urls",
)
async def http_to_https_redirect(context: CheckContext):
    if urlparse(context.url).scheme == "http":
        return passed("Site uses HTTP (SSL check handles this separately)")

    http_url = "http://" + context.url[len("https://"):]
    try:
        async with http_client.build_client(follow_redirects=False) as client:
            response = await client.head(http_url)
    except httpx.HTTPError:
        return passed(
            "HTTP version is not accessible (likely server-level block)",
            note="This is fine as long as all links use HTTPS",
        )

    status = response.status_code
    location = response.headers.get("location")
    if 300 <= status < 400 and location:
        if urlparse(urljoin(http_url, location)).scheme == "https":
            return passed(
                f"HTTP correctly redirects to HTTPS ({status} redirect)",
                redirect_status=status,
                redirect_location=location,
            )
        return warning(
            f"HTTP redirects but not to HTTPS. Location: {location}",
            redirect_status=status,
            redirect_location=location,
        )
    return failed(
        f"HTTP version is accessible without redirecting to HTTPS (returned {status}). Configure a 301 "
        "redirect from HTTP to HTTPS to consolidate SEO signals and ensure security.",
        http_status=status,
    )


@check(
    "meta_description_length", CheckCategory.SEO, CheckPriority.RECOMMENDED,
    display_name="Meta Description Length",
    display_name_passed="Meta Description Length",
    description="Meta description should be between 150-160 characters",
    learn_more_url="https://developers.google.com/search/docs/appearance/snippet",
)
async def meta_description_length(context: CheckContext):
    soup = dom.parse(context.html)
    meta = soup.find("meta", attrs={"name": "description"})
    content = (meta.get("content") or "").strip() if meta else ""

    if not content:
        return warning(
            "Page has no meta description. Search engines and AI answers fall back to arbitrary page text.",
            length=0,
        )
    length = len(content)
    if length < 150 or length > 160:
        return warning(f"Meta description is {length} characters (recommended: 150-160)", length=length)
    return passed(f"Meta description is {length} characters", length=length)


@check(
    "heading_hierarchy", CheckCategory.SEO, CheckPriority.RECOMMENDED,
    display_name="Skipped Heading Levels",
    display_name_passed="Heading Hierarchy",
    description="Heading levels should not be skipped",
    learn_more_url="https://developer.mozilla.org/en-US/docs/Web/HTML/Element/Heading_Elements#usage_notes",
)
async def heading_hierarchy(context: CheckContext):
    levels = [int(h.name[1]) for h in dom.headings(dom.parse(context.html))]
    if not levels:
        return passed("No headings to evaluate")

    skipped = []
    previous = 0
    for level in levels:
        if previous and level > previous + 1:
            skipped.append(f"H{previous} → H{level}")
        previous = level

    if skipped:
        return warning(
            f"Headings should follow a logical order (H1 → H2 → H3). Skipped: {', '.join(skipped)}. "
            "This helps screen readers and search engines understand content structure.",
            skipped_levels=skipped,
        )
    return passed("Headings follow correct hierarchy")


def _normalize_for_canonical(url: str) -> str:
    parsed = urlparse(url)._replace(fragment="")
    normalized = parsed.geturl()
    if normalized.endswith("/") and parsed.path not in ("", "/"):
        normalized = normalized[:-1]
    return normalized


@check(
    "canonical_validation", CheckCategory.SEO, CheckPriority.RECOMMENDED,
    display_name="Invalid Canonical URL",
    display_name_passed="Valid Canonical URLs",
    description="Canonical URLs should be valid, accessible, and self-referencing on unique pages",
    learn_more_url="https://developers.google.com/search/docs/crawling-indexing/consolidate-duplicate-urls",
)
async def canonical_validation(context: CheckContext):
    soup = dom.parse(context.html)
    link = soup.find("link", rel="canonical")
    canonical = (link.get("href") or "").strip() if link else ""
    if not canonical:
        return passed("No canonical tag")

    canonical_url = urljoin(context.url, canonical)
    if urlparse(canonical_url).scheme not in ("http", "https"):
        return failed(
            f'Canonical URL is malformed: "{canonical}". Use absolute URLs for canonical tags.',
            canonical=canonical,
        )

    try:
        async with http_client.build_client(follow_redirects=False) as client:
            response = await client.head(canonical_url)
    except httpx.HTTPError as e:
        return warning(
            f"Could not verify canonical URL ({canonical_url}). Ensure it is accessible.",
            canonical=canonical_url,
            error=str(e) or e.__class__.__name__,
        )

    if response.status_code >= 400:
        return failed(
            f"Canonical URL returns {response.status_code} error. Canonical must point to an accessible page.",
            canonical=canonical_url,
            status=response.status_code,
        )
    if 300 <= response.status_code < 400:
        return warning(
            f"Canonical URL redirects ({response.status_code}). Canonical should point directly to the "
            "final URL, not a redirect.",
            canonical=canonical_url,
            status=response.status_code,
        )
    if _normalize_for_canonical(canonical_url) != _normalize_for_canonical(context.url):
        return warning(
            f"Canonical points to different URL: {canonical_url} (current: {context.url}). "
            "Ensure this is intentional for duplicate content.",
            canonical=canonical_url,
        )
    return passed(f"Canonical URL is valid and accessible: {canonical_url}", canonical=canonical_url)


@check(
    "noindex_on_important_pages", CheckCategory.SEO, CheckPriority.CRITICAL,
    display_name="Noindex Tag on Important Pages",
    display_name_passed="No Noindex Issues",
    description="Noindex meta tags prevent search engines from indexing pages",
    learn_more_url="https://developers.google.com/search/docs/crawling-indexing/block-indexing",
)
async def noindex_on_important_pages(context: CheckContext):
    soup = dom.parse(context.html)
    directives = []
    for name in ("robots", "googlebot"):
        meta = soup.find("meta", attrs={"name": name})
        if meta and "noindex" in (meta.get("content") or "").lower():
            directives.append(meta.get("content").lower())

    if not directives:
        return passed("No noindex directives found on this page")

    path = urlparse(context.url).path
    depth = len([segment for segment in path.split("/") if segment])
    if depth <= 1:
        return failed(
            f"This important page has a noindex directive ({directives[0]}), preventing search engines "
            "from indexing it. Remove the noindex tag unless this is intentional.",
            meta_content=directives[0],
            path=path or "/",
        )
    return warning(
        f"Page has noindex directive ({directives[0]}). Verify this is intentional.",
        meta_content=directives[0],
    )


# --- Technical ---

@check(
    "missing_viewport", CheckCategory.TECHNICAL, CheckPriority.RECOMMENDED,
    display_name="Missing Viewport Meta Tag",
    display_name_passed="Viewport Meta Tag",
    description="Pages without viewport meta tag are not mobile-friendly",
    learn_more_url="https://developers.google.com/search/docs/crawling-indexing/mobile/mobile-sites-mobile-first-indexing",
)
async def missing_viewport(context: CheckContext):
    meta = dom.parse(context.html).find("meta", attrs={"name": "viewport"})
    viewport = meta.get("content") if meta else None
    if not viewport:
        return warning(
            'Add <meta name="viewport" content="width=device-width, initial-scale=1"> to the <head> for '
            "proper mobile display. Without this, your site may not render correctly on mobile devices."
        )
    return passed(viewport)


@check(
    "mixed_content", CheckCategory.TECHNICAL, CheckPriority.RECOMMENDED,
    display_name="Mixed Content",
    display_name_passed="Secure Resources",
    description="HTTP resources on HTTPS pages cause security warnings",
    learn_more_url="https://web.dev/articles/what-is-mixed-content",
)
async def mixed_content(context: CheckContext):
    if urlparse(context.url).scheme != "https":
        return passed("Page is served over HTTP (mixed content check not applicable)")

    soup = dom.parse(context.html)
    insecure = []
    for selector, attr, kind in INSECURE_RESOURCES:
        for element in soup.select(selector):
            url = element.get(attr) or ""
            if url.startswith("http://"):
                insecure.append({"type": kind, "url": url})
    for element in soup.select("[style]"):
        for url in STYLE_HTTP_URL.findall(element.get("style") or ""):
            insecure.append({"type": "inline style", "url": url})

    if not insecure:
        return passed("All resources loaded securely over HTTPS")

    counts = {}
    for resource in insecure:
        counts[resource["type"]] = counts.get(resource["type"], 0) + 1
    summary = ", ".join(f"{n} {kind}{'s' if n != 1 else ''}" for kind, n in counts.items())
    plural = "" if len(insecure) == 1 else "s"
    return failed(
        f"{len(insecure)} insecure HTTP resource{plural} on HTTPS page ({summary}). Update URLs to HTTPS "
        "to prevent browser warnings and blocked content.",
        count=len(insecure),
        resources=insecure[:5],
    )


# --- AI readiness ---

@check(
    "missing_structured_data", CheckCategory.AI_READINESS, CheckPriority.CRITICAL,
    site_wide=True,
    display_name="Missing Structured Data",
    display_name_passed="Structured Data (JSON-LD)",
    description="JSON-LD structured data helps search engines and AI understand your content",
    learn_more_url="https://developers.google.com/search/docs/appearance/structured-data/intro-structured-data",
)
async def missing_structured_data(context: CheckContext):
    schema = SchemaCollector().collect(context.html)
    if not schema.has_any:
        return failed(
            "Add JSON-LD structured data to help search engines and AI understand your content. "
            "Common types include Organization, Article, Product, and FAQ."
        )
    types = schema.types
    return passed(f"Found: {', '.join(types)}" if types else "JSON-LD structured data found", types=types)


@check(
    "ai_crawlers_blocked", CheckCategory.AI_READINESS, CheckPriority.CRITICAL,
    site_wide=True,
    display_name="AI Crawlers Blocked",
    display_name_passed="AI Crawlers Allowed",
    description="robots.txt should not block AI crawlers like GPTBot and ClaudeBot",
    learn_more_url="https://platform.openai.com/docs/gptbot",
)
async def ai_crawlers_blocked(context: CheckContext):
    robots = await RobotsCollector().fetch(_origin(context.url))
    if robots.error:
        return warning(f"Could not verify robots.txt: {robots.error}")
    if not robots.exists:
        return passed("No robots.txt found (AI crawlers allowed by default)")

    blocked = robots.blocked_agents(BLOCKABLE_AI_BOTS)
    if blocked:
        return failed(f"AI crawlers blocked: {', '.join(blocked)}", blocked=blocked)
    return passed("AI crawlers are not blocked")


@check(
    "missing_llms_txt", CheckCategory.AI_READINESS, CheckPriority.CRITICAL,
    site_wide=True,
    display_name="Missing llms.txt File",
    display_name_passed="llms.txt File",
    description="/llms.txt describes your site in a format optimized for language models",
    learn_more_url="https://llmstxt.org/",
)
async def missing_llms_txt(context: CheckContext):
    llms = await LlmsTxtCollector().fetch(_origin(context.url))
    if llms.exists:
        return passed("Found at /llms.txt", has_title=llms.has_title, has_links=llms.has_links)
    if llms.error:
        return warning(f"Could not check /llms.txt: {llms.error}")
    return failed(
        "Create a /llms.txt file to help AI assistants understand your site. This file describes your "
        "content in a format optimized for language models."
    )


CHECKS = [
    missing_robots_txt,
    missing_sitemap,
    http_to_https_redirect,
    noindex_on_important_pages,
    meta_description_length,
    heading_hierarchy,
    canonical_validation,
    missing_viewport,
    mixed_content,
    missing_structured_data,
    ai_crawlers_blocked,
    missing_llms_txt,
]
