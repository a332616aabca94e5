"""
AIO content quality checks.
"""
import re

from audit_engine.models import CheckCategory, CheckPriority
from audit_engine.services.checks import dom
from audit_engine.services.checks.base import CheckContext, check, failed, passed, warning

CATEGORY = CheckCategory.CONTENT_QUALITY

VOWEL_GROUPS = re.compile(r"[aeiouy]+")


def _content_words(html: str, chrome=dom.CHROME_TAGS):
    soup = dom.strip_chrome(dom.parse(html), chrome)
    return soup, dom.words(dom.main_text(soup))


def flesch_reading_ease(text: str) -> tuple:
    """Approximate Flesch score using vowel groups as syllables.

    Returns (score, words, sentences); score is None when there is no text.
    """
    sentences = [s for s in re.split(r"[.!?]+", text) if s.strip()]
    tokens = dom.words(text)
    if not sentences or not tokens:
        return None, tokens, sentences

    syllables = sum(len(VOWEL_GROUPS.findall(w.lower())) or 1 for w in tokens)
    score = 206.835 - 1.015 * (len(tokens) / len(sentences)) - 84.6 * (syllables / len(tokens))
    return score, tokens, sentences


@check(
    "content_depth", CATEGORY, CheckPriority.RECOMMENDED,
    display_name="Thin Content",
    display_name_passed="Comprehensive Content",
    description="In-depth content is more likely to be cited by AI engines",
    learn_more_url="https://developers.google.com/search/docs/fundamentals/creating-helpful-content",
)
async def content_depth(context: CheckContext):
    _, tokens = _content_words(context.html)
    word_count = len(tokens)

    if word_count < 300:
        return failed(
            f"Very thin content ({word_count} words). AI engines prioritize comprehensive content with depth and detail.",
            fix_guidance="Expand content to at least 800-1000 words with detailed explanations, examples, and insights.",
            word_count=word_count,
        )
    if word_count < 800:
        return warning(
            f"Moderate content depth ({word_count} words). Consider adding more detail for better AI engine visibility.",
            fix_guidance="Expand to 1000+ words with additional context, examples, and expert insights.",
            word_count=word_count,
        )
    label = "Good" if word_count < 1500 else "Excellent"
    return passed(f"{label} content depth ({word_count} words)", word_count=word_count)


@check(
    "readability", CATEGORY, CheckPriority.RECOMMENDED,
    display_name="Poor Readability",
    display_name_passed="Good Readability",
    description="Clear, readable content is easier for AI engines to parse and cite",
    learn_more_url="https://en.wikipedia.org/wiki/Flesch%E2%80%93Kincaid_readability_tests",
)
async def readability(context: CheckContext):
    soup = dom.strip_chrome(dom.parse(context.html))
    score, tokens, sentences = flesch_reading_ease(dom.main_text(soup))

    if score is None:
        return failed("No readable content found")

    avg_sentence = len(tokens) / len(sentences)
    metrics = dict(
        flesch_score=round(score),
        avg_sentence_length=round(avg_sentence),
        avg_word_length=round(sum(len(w) for w in tokens) / len(tokens), 1),
        total_sentences=len(sentences),
        total_words=len(tokens),
    )

    if score >= 60:
        return passed(
            f"Good readability (Flesch score: {round(score)}, avg sentence length: {round(avg_sentence)} words)",
            **metrics,
        )
    if score >= 40:
        return warning(
            f"Moderate readability (Flesch score: {round(score)}). Consider simplifying sentence structure.",
            fix_guidance="Break up long sentences (keep under 20 words) and use simpler vocabulary where possible.",
            **metrics,
        )
    return failed(
        f"Poor readability (Flesch score: {round(score)}). Content is too complex for optimal AI extraction.",
        fix_guidance="Significantly simplify language: use shorter sentences (12-15 words), simpler words, and active voice.",
        **metrics,
    )


@check(
    "paragraph_structure", CATEGORY, CheckPriority.RECOMMENDED,
    display_name="Poor Paragraph Structure",
    display_name_passed="Scannable Paragraphs",
    description="Scannable paragraphs improve content extraction by AI engines",
    learn_more_url="https://www.nngroup.com/articles/how-users-read-on-the-web/",
)
async def paragraph_structure(context: CheckContext):
    soup = dom.strip_chrome(dom.parse(context.html))
    paragraphs = soup.find_all("p")

    if not paragraphs:
        return failed(
            "No paragraph elements found. Content should be broken into paragraphs.",
            fix_guidance="Structure content with <p> tags instead of line breaks or divs.",
        )

    lengths = [n for n in (len(dom.words(p.get_text(" "))) for p in paragraphs) if n > 0]
    avg = sum(lengths) / len(lengths) if lengths else 0
    long_count = sum(1 for n in lengths if n > 150)
    short_count = sum(1 for n in lengths if n < 30)

    issues = []
    strengths = []
    if avg > 120:
        issues.append("paragraphs too long on average")
    elif 40 <= avg <= 100:
        strengths.append("ideal average paragraph length")
    if long_count > len(lengths) * 0.2:
        issues.append(f"{long_count} very long paragraphs (150+ words)")
    if short_count > 0 and any(n >= 50 for n in lengths):
        strengths.append("good paragraph variety")

    metrics = dict(
        total_paragraphs=len(paragraphs),
        avg_paragraph_length=round(avg),
        long_paragraphs=long_count,
        short_paragraphs=short_count,
    )

    if not issues:
        summary = ", ".join(strengths) or "no structural issues"
        return passed(
            f"Scannable paragraphs: {summary} ({len(paragraphs)} paragraphs, avg {round(avg)} words)",
            **metrics,
        )
    if len(issues) == 1:
        return warning(
            f"Paragraph structure could be improved: {issues[0]}",
            fix_guidance="Break long paragraphs into 3-5 sentence chunks (40-80 words) for better scannability.",
            **metrics,
        )
    return failed(
        f"Poor paragraph structure: {'; '.join(issues)}",
        fix_guidance="Restructure content into shorter, focused paragraphs (40-80 words each) with clear topic sentences.",
        **metrics,
    )


@check(
    "list_usage", CATEGORY, CheckPriority.RECOMMENDED,
    display_name="No Lists",
    display_name_passed="Lists Present",
    description="Bullet points and numbered lists help AI engines extract key information",
    learn_more_url="https://developers.google.com/search/docs/appearance/featured-snippets",
)
async def list_usage(context: CheckContext):
    soup, tokens = _content_words(context.html)
    word_count = len(tokens)

    lists = soup.find_all(["ul", "ol"])
    total_items = len(soup.select("ul li, ol li"))

    if not lists:
        if word_count > 500:
            return warning(
                "No lists found in substantial content. Lists help AI engines extract key points.",
                fix_guidance="Add bullet points for key takeaways, features, or steps. Lists improve content scannability.",
                word_count=word_count,
            )
        return passed("No lists found (acceptable for short content)", word_count=word_count)

    metrics = dict(
        total_lists=len(lists),
        unordered_lists=len(soup.find_all("ul")),
        ordered_lists=len(soup.find_all("ol")),
        total_items=total_items,
        list_density=round(total_items / word_count * 100, 1) if word_count else 0,
    )

    well_formed = sum(1 for lst in lists if len(lst.find_all("li", recursive=False)) >= 3)
    if well_formed < len(lists) * 0.5:
        return warning(
            f"Found {len(lists)} list(s) but many have few items. Use lists for 3+ related points.",
            fix_guidance="Consolidate short lists or expand them to at least 3 items for better structure.",
            **metrics,
        )
    if len(lists) >= 2 and total_items >= 6:
        return passed(f"Good list usage: {len(lists)} list(s) with {total_items} total items", **metrics)
    return passed(f"Moderate list usage: {len(lists)} list(s) with {total_items} items", **metrics)


@check(
    "internal_linking", CATEGORY, CheckPriority.RECOMMENDED,
    display_name="Poor Internal Linking",
    display_name_passed="Good Internal Linking",
    description="Internal links help AI engines discover and understand content relationships",
    learn_more_url="https://developers.google.com/search/docs/crawling-indexing/links-crawlable",
)
async def internal_linking(context: CheckContext):
    soup = dom.strip_chrome(dom.parse(context.html), ["nav", "header", "footer", "aside"])
    host = dom.hostname(context.url)

    hrefs = [a.get("href", "") for a in soup.find_all("a", href=True)]
    internal = [h for h in hrefs if dom.is_internal_href(h, host)]
    external = [h for h in hrefs if dom.is_external_href(h, host)]
    contextual = [
        a for a in soup.select("p a, article a, main a")
        if dom.is_internal_href(a.get("href", ""), host)
    ]
    word_count = len(dom.words(dom.main_text(soup)))
    density = len(internal) / word_count * 100 if word_count else 0

    metrics = dict(
        internal_links=len(internal),
        contextual_internal_links=len(contextual),
        external_links=len(external),
        internal_link_density=round(density, 1),
        word_count=word_count,
    )

    if not internal:
        return warning(
            "No internal links found. Internal linking helps AI engines discover related content.",
            fix_guidance="Add 2-5 contextual links to related pages within your content.",
            **metrics,
        )
    if not contextual:
        return warning(
            f"Found {len(internal)} internal link(s) but none are contextual (within content). "
            "Add links within paragraphs.",
            fix_guidance="Add contextual internal links within article text to related pages.",
            **metrics,
        )
    if len(contextual) < 2 and word_count > 500:
        return warning(
            f"Limited internal linking ({len(contextual)} contextual links in {word_count} words). "
            "Add more links to related content.",
            fix_guidance="Add 2-5 contextual links to related pages (roughly 1 link per 200-300 words).",
            **metrics,
        )
    if density > 3:
        return warning(
            f"High internal link density ({round(density)}%). Avoid over-linking.",
            fix_guidance="Reduce internal links to 1-3% density (1 link per 200-300 words).",
            **metrics,
        )
    return passed(
        f"Good internal linking: {len(contextual)} contextual link(s) ({round(density)}% density)",
        **metrics,
    )


@check(
    "media_richness", CATEGORY, CheckPriority.OPTIONAL,
    display_name="No Media",
    display_name_passed="Media-Rich Content",
    description="Images with descriptive alt text help AI engines understand visual content",
    learn_more_url="https://developers.google.com/search/docs/appearance/google-images",
)
async def media_richness(context: CheckContext):
    soup, tokens = _content_words(context.html)
    word_count = len(tokens)

    images = soup.find_all("img")
    videos = soup.select('video, iframe[src*="youtube"], iframe[src*="vimeo"]')
    total_media = len(images) + len(videos)

    if total_media == 0:
        if word_count > 800:
            return warning(
                "No images or videos found in long-form content. Visual aids improve engagement and understanding.",
                fix_guidance="Add relevant images, diagrams, or videos to illustrate key concepts.",
                word_count=word_count,
            )
        return passed("No media (acceptable for short content)", word_count=word_count)

    with_alt = [img for img in images if (img.get("alt") or "").strip()]
    good_alt = [img for img in with_alt if 5 <= len(dom.words(img["alt"])) <= 20]
    alt_coverage = len(with_alt) / len(images) * 100 if images else 100
    good_coverage = len(good_alt) / len(images) * 100 if images else 0

    metrics = dict(
        total_media=total_media,
        images=len(images),
        videos=len(videos),
        images_with_alt=len(with_alt),
        images_with_good_alt=len(good_alt),
        alt_text_coverage=round(alt_coverage),
    )

    if alt_coverage < 50:
        return failed(
            f"Found {len(images)} image(s) but only {round(alt_coverage)}% have alt text. "
            "AI engines need descriptions to understand visual content.",
            fix_guidance="Add descriptive alt text (5-15 words) to all images explaining what they show.",
            **metrics,
        )
    if good_coverage < 50:
        return warning(
            f"Media present ({total_media} items) but alt text could be more descriptive "
            f"(only {round(good_coverage)}% have detailed descriptions)",
            fix_guidance="Improve alt text quality with detailed descriptions (5-15 words) rather than short labels.",
            **metrics,
        )
    return passed(
        f"Media-rich content: {total_media} item(s) with {round(good_coverage)}% having descriptive alt text",
        **metrics,
    )


CHECKS = [
    content_depth,
    readability,
    paragraph_structure,
    list_usage,
    internal_linking,
    media_richness,
]
