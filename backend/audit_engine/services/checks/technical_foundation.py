"""
AIO technical foundation checks: crawler access, structured data, transport
and markup basics that decide whether AI engines can read a page at all.
"""
import re
import time
from urllib.parse import urlparse

import httpx

from audit_engine.models import CheckCategory, CheckPriority
from audit_engine.services import http_client
from audit_engine.services.checks import dom
from audit_engine.services.checks.base import CheckContext, check, failed, passed, warning
from audit_engine.services.collectors.robots_collector import RobotsCollector
from audit_engine.services.collectors.schema_collector import SchemaCollector

CATEGORY = CheckCategory.TECHNICAL_FOUNDATION

AI_CRAWLERS = [
    "GPTBot",
    "ChatGPT-User",
    "ClaudeBot",
    "Claude-Web",
    "anthropic-ai",
    "PerplexityBot",
    "Google-Extended",
    "Applebot-Extended",
]

AIO_RELEVANT_SCHEMAS = ["Article", "FAQPage", "HowTo", "Organization", "Person", "Product", "Review"]

SEMANTIC_TAGS = ["article", "section", "nav", "aside", "header", "footer", "main"]


@check(
    "ai_crawler_access", CATEGORY, CheckPriority.CRITICAL,
    site_wide=True,
    display_name="AI Crawlers Blocked",
    display_name_passed="AI Crawlers Allowed",
    description="AI crawlers must be allowed in robots.txt to index and cite content",
    learn_more_url="https://platform.openai.com/docs/gptbot",
)
async def ai_crawler_access(context: CheckContext):
    robots = await RobotsCollector().fetch(context.url)

    if robots.error:
        return warning(f"Could not verify robots.txt: {robots.error}")
    if not robots.exists:
        return passed("No robots.txt found (AI crawlers allowed by default)")

    blocked = robots.blocked_agents(AI_CRAWLERS)
    if blocked:
        return failed(
            f"Your robots.txt blocks these AI crawlers: {', '.join(blocked)}. "
            "This prevents AI engines from indexing and citing your content.",
            fix_guidance="Remove or comment out Disallow rules for AI crawlers in your robots.txt file.",
            blocked=blocked,
        )
    return passed(f"AI crawlers can access your site ({len(AI_CRAWLERS)} crawlers checked)")


@check(
    "schema_markup", CATEGORY, CheckPriority.CRITICAL,
    display_name="Missing Schema Markup",
    display_name_passed="Schema Markup Present",
    description="Schema.org markup tells AI engines what a page is about",
    learn_more_url="https://developers.google.com/search/docs/appearance/structured-data/intro-structured-data",
)
async def schema_markup(context: CheckContext):
    schema = SchemaCollector().collect(context.html)
    types = schema.types

    if not types:
        return failed(
            "No structured data found. AI engines rely on Schema.org markup to understand "
            "content type and extract key information.",
            fix_guidance="Add JSON-LD structured data for Article, FAQPage, or HowTo depending on your content type.",
        )

    relevant = [t for t in types if any(r in t for r in AIO_RELEVANT_SCHEMAS)]
    if not relevant:
        return warning(
            f"Found structured data ({', '.join(types)}) but none are highly relevant for AIO. "
            "Consider adding Article, FAQPage, or HowTo schemas.",
            found_schemas=types,
        )
    return passed(
        f"Found {len(relevant)} AIO-relevant schema(s): {', '.join(relevant)}",
        found_schemas=types,
    )


@check(
    "ssl_certificate", CATEGORY, CheckPriority.CRITICAL,
    site_wide=True,
    display_name="No HTTPS",
    display_name_passed="HTTPS Enabled",
    description="AI engines prefer content served over secure connections",
    learn_more_url="https://developers.google.com/search/docs/crawling-indexing/http-network-errors",
)
async def ssl_certificate(context: CheckContext):
    scheme = urlparse(context.url).scheme
    if scheme != "https":
        return failed(
            "Site is not using HTTPS. AI engines require secure connections for content indexing.",
            fix_guidance="Enable HTTPS with a valid SSL certificate. Most hosting providers offer "
                         "free certificates via Let's Encrypt.",
            protocol=scheme,
        )
    return passed("Site uses HTTPS with valid SSL certificate", protocol=scheme)


@check(
    "page_speed", CATEGORY, CheckPriority.RECOMMENDED,
    display_name="Slow Response Time",
    display_name_passed="Fast Response Time",
    description="Fast responses let AI crawlers fetch more of your content",
    learn_more_url="https://web.dev/articles/ttfb",
)
async def page_speed(context: CheckContext):
    started = time.perf_counter()
    try:
        async with http_client.build_client() as client:
            response = await client.head(context.url)
    except httpx.HTTPError as e:
        return warning(f"Could not measure page speed: {str(e) or e.__class__.__name__}")

    response_time = int((time.perf_counter() - started) * 1000)

    if not response.is_success:
        return warning(f"Could not measure page speed (HTTP {response.status_code})")
    if response_time < 1000:
        return passed(f"Excellent response time: {response_time}ms", response_time_ms=response_time)
    if response_time < 2500:
        return warning(
            f"Moderate response time: {response_time}ms. Consider optimization for better AI crawler performance.",
            response_time_ms=response_time,
        )
    return failed(
        f"Slow response time: {response_time}ms. This may impact AI crawler efficiency and content indexing.",
        response_time_ms=response_time,
    )


@check(
    "html_structure", CATEGORY, CheckPriority.RECOMMENDED,
    display_name="Poor HTML Structure",
    display_name_passed="Clean HTML Structure",
    description="Semantic HTML helps AI engines understand page layout and content hierarchy",
    learn_more_url="https://developer.mozilla.org/en-US/docs/Glossary/Semantics#semantics_in_html",
)
async def html_structure(context: CheckContext):
    soup = dom.parse(context.html)
    issues = []

    found_semantic = [tag for tag in SEMANTIC_TAGS if soup.find(tag)]
    if not found_semantic:
        issues.append("No semantic HTML5 elements found (article, section, header, etc.)")

    if not dom.headings(soup):
        issues.append("No headings found")

    all_elements = len(soup.find_all(True))
    div_ratio = len(soup.find_all("div")) / all_elements if all_elements else 0
    if div_ratio > 0.4:
        issues.append(f"High div ratio ({div_ratio * 100:.1f}%) suggests non-semantic markup")

    # html.parser does not synthesize missing tags, so absence is real
    if not (soup.find("html") and soup.find("head") and soup.find("body")):
        issues.append("Missing basic HTML structure (html, head, or body tags)")

    if not issues:
        return passed(
            f"Clean HTML structure with {len(found_semantic)} semantic elements",
            semantic_elements=found_semantic,
        )
    if len(issues) <= 2:
        return warning(
            f"HTML structure could be improved: {'; '.join(issues)}",
            fix_guidance="Use semantic HTML5 elements (article, section, header) instead of generic divs where appropriate.",
            issues=issues,
        )
    return failed(
        f"Poor HTML structure: {'; '.join(issues)}",
        fix_guidance="Refactor markup to use semantic HTML5 elements and reduce div soup.",
        issues=issues,
    )


@check(
    "mobile_friendly", CATEGORY, CheckPriority.RECOMMENDED,
    display_name="Not Mobile-Friendly",
    display_name_passed="Mobile-Friendly",
    description="Mobile-friendly pages are favored by AI-powered search",
    learn_more_url="https://developers.google.com/search/docs/crawling-indexing/mobile/mobile-sites-mobile-first-indexing",
)
async def mobile_friendly(context: CheckContext):
    soup = dom.parse(context.html)
    issues = []

    meta = soup.find("meta", attrs={"name": "viewport"})
    viewport = meta.get("content") if meta else None
    if not viewport:
        issues.append("Missing viewport meta tag")
    elif "width=device-width" not in viewport:
        issues.append("Viewport does not include width=device-width")

    if re.search(r"width:\s*\d{4,}px", context.html):
        issues.append("Page may use fixed-width layout (not responsive)")

    if not issues:
        signals = ["viewport"]
        if "@media" in context.html or "media=" in context.html:
            signals.append("media queries")
        if soup.find("meta", attrs={"name": "apple-mobile-web-app-capable"}) or \
                soup.find("meta", attrs={"name": "MobileOptimized"}):
            signals.append("mobile meta tags")
        return passed(f"Mobile-friendly ({', '.join(signals)})", viewport=viewport)
    if len(issues) == 1:
        return warning(
            issues[0],
            fix_guidance='Add <meta name="viewport" content="width=device-width, initial-scale=1"> to the <head> section.',
        )
    return failed(
        f"Mobile optimization issues: {'; '.join(issues)}",
        fix_guidance="Implement responsive design with viewport meta tag and CSS media queries.",
        issues=issues,
    )


@check(
    "javascript_rendering", CATEGORY, CheckPriority.RECOMMENDED,
    display_name="Content Requires JavaScript",
    display_name_passed="Content in Initial HTML",
    description="AI crawlers often do not execute JavaScript; content must be in the initial HTML",
    learn_more_url="https://developers.google.com/search/docs/crawling-indexing/javascript/javascript-seo-basics",
)
async def javascript_rendering(context: CheckContext):
    html = context.html
    soup = dom.parse(html)
    body = soup.body or soup
    word_count = len(dom.words(body.get_text(" ")))

    frameworks = {
        "react": "__NEXT_DATA__" in html or "_reactRoot" in html or soup.find(id="root") is not None,
        "vue": "v-cloak" in html or soup.find(attrs={"v-app": True}) is not None,
        "angular": "ng-version" in html or soup.find(attrs={"ng-app": True}) is not None,
        "svelte": "__SVELTE__" in html,
    }
    detected = [name for name, found in frameworks.items() if found]
    has_ssr = any(marker in html for marker in ("__NEXT_DATA__", "__NUXT__", "prerendered"))

    if word_count < 50:
        return failed(
            f"Very little content in initial HTML ({word_count} words). AI crawlers may not see "
            "your content if it requires JavaScript execution.",
            fix_guidance="Implement server-side rendering (SSR) or static site generation (SSG) to ensure "
                         "content is available in initial HTML.",
            word_count=word_count,
            detected_frameworks=detected,
        )
    if word_count < 200 and detected and not has_ssr:
        return warning(
            f"Limited content in initial HTML ({word_count} words). Framework detected "
            f"({', '.join(detected)}) but SSR not confirmed. AI crawlers may miss dynamically loaded content.",
            fix_guidance="Enable server-side rendering to ensure all content is available to AI crawlers.",
            word_count=word_count,
            detected_frameworks=detected,
        )
    rendering = "Server-rendered" if has_ssr else "Static HTML"
    return passed(
        f"{rendering} content available ({word_count} words in initial HTML)",
        word_count=word_count,
        detected_frameworks=detected,
    )


@check(
    "content_accessibility", CATEGORY, CheckPriority.RECOMMENDED,
    display_name="Accessibility Issues",
    display_name_passed="Accessible Content",
    description="Accessible markup (alt text, landmarks, headings) is easier for AI engines to interpret",
    learn_more_url="https://web.dev/articles/accessibility",
)
async def content_accessibility(context: CheckContext):
    soup = dom.parse(context.html)
    issues = []
    good = []

    images = soup.find_all("img")
    if images:
        missing_alt = sum(1 for img in images if not (img.get("alt") or "").strip())
        coverage = (len(images) - missing_alt) / len(images) * 100
        if coverage < 50:
            issues.append(f"{missing_alt} of {len(images)} images missing alt text ({coverage:.0f}% coverage)")
        elif coverage < 100:
            issues.append(f"{missing_alt} of {len(images)} images missing alt text")
        else:
            good.append(f"All {len(images)} images have alt text")

    landmarks = soup.select(
        '[role="main"], [role="navigation"], [role="banner"], [role="contentinfo"], main, nav, header, footer'
    )
    if landmarks:
        good.append(f"{len(landmarks)} ARIA landmarks found")
    else:
        issues.append("No ARIA landmarks or semantic elements for page structure")

    h1_count = len(soup.find_all("h1"))
    if h1_count == 0:
        issues.append("No H1 heading found")
    elif h1_count > 1:
        issues.append(f"Multiple H1 headings ({h1_count})")
    else:
        good.append("Single H1 heading")

    skip_links = [
        a for a in soup.select('a[href^="#"]')
        if "skip" in a.get_text().lower() and ("content" in a.get_text().lower() or "main" in a.get_text().lower())
    ]
    if skip_links:
        good.append("Skip navigation links present")

    html_tag = soup.find("html")
    lang = html_tag.get("lang") if html_tag else None
    if not lang:
        issues.append("Missing lang attribute on <html> tag")
    else:
        good.append(f"Language declared ({lang})")

    if not issues:
        return passed(f"Excellent accessibility: {', '.join(good)}", good_practices=good)
    if len(issues) <= 2:
        return warning(
            f"Accessibility could be improved: {'; '.join(issues)}",
            fix_guidance="Add descriptive alt text to images and ensure proper heading hierarchy.",
            issues=issues,
            good_practices=good,
        )
    return failed(
        f"Multiple accessibility issues: {'; '.join(issues)}",
        fix_guidance="Implement alt text for all images, use semantic HTML, and add proper ARIA landmarks.",
        issues=issues,
    )


CHECKS = [
    ai_crawler_access,
    schema_markup,
    ssl_certificate,
    page_speed,
    html_structure,
    mobile_friendly,
    javascript_rendering,
    content_accessibility,
]
