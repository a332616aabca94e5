"""
AIO content structure checks: formats AI engines can lift answers from
(FAQs, definitions, steps, summaries, citations, tables).
"""
import re

from audit_engine.models import CheckCategory, CheckPriority
from audit_engine.services.checks import dom
from audit_engine.services.checks.base import CheckContext, check, failed, passed, warning
from audit_engine.services.collectors.schema_collector import SchemaCollector

CATEGORY = CheckCategory.CONTENT_STRUCTURE

AUTHORITATIVE_MARKERS = [".edu", ".gov", ".org", "doi.org", "arxiv.org", "pubmed", "scholar.google"]

DEFINITION_PARAGRAPH = re.compile(r"^[A-Z][a-z\s]+ (is (a|an)|refers to|means|defined as)", re.IGNORECASE)


@check(
    "faq_section", CATEGORY, CheckPriority.RECOMMENDED,
    display_name="No FAQ Section",
    display_name_passed="FAQ Section Present",
    description="FAQ sections help AI engines extract Q&A pairs for direct answers",
    learn_more_url="https://developers.google.com/search/docs/appearance/structured-data/faqpage",
)
async def faq_section(context: CheckContext):
    soup = dom.parse(context.html)
    has_schema = SchemaCollector().collect(context.html, soup=soup).has_type("FAQPage")

    indicators = []
    if has_schema:
        indicators.append("FAQPage schema")
    if dom.headings_matching(soup, r"faq|frequently asked|questions|q&a|q & a"):
        indicators.append("FAQ heading")
    dt_count = len(soup.find_all("dt"))
    if dt_count:
        indicators.append(f"{dt_count} definition list items")
    details_count = len(soup.select("details summary"))
    if details_count:
        indicators.append(f"{details_count} details/summary elements")

    if not indicators:
        return failed(
            "No FAQ section detected. AI engines prioritize sites with Q&A content for direct answer citations.",
            fix_guidance="Add a FAQ section with common questions and detailed answers. "
                         "Use FAQPage schema markup for best results.",
        )
    if has_schema:
        return passed(f"FAQ section with structured data: {', '.join(indicators)}", indicators=indicators)
    return warning(
        f"FAQ content detected ({', '.join(indicators)}) but missing FAQPage schema markup",
        fix_guidance="Add FAQPage structured data to help AI engines extract Q&A pairs.",
        indicators=indicators,
    )


@check(
    "definition_boxes", CATEGORY, CheckPriority.RECOMMENDED,
    display_name="No Definition Sections",
    display_name_passed="Definition Sections Present",
    description='"What is X" sections help AI engines provide quick definitions',
    learn_more_url="https://developers.google.com/search/docs/appearance/featured-snippets",
)
async def definition_boxes(context: CheckContext):
    soup = dom.parse(context.html)

    found = []
    definition_headings = dom.headings_matching(soup, r"^(what is|what are|definition|meaning of)")
    if definition_headings:
        found.append(f'{len(definition_headings)} "What is" heading(s)')
    definition_lists = len(soup.find_all("dl"))
    if definition_lists:
        found.append(f"{definition_lists} definition list(s)")
    definition_paragraphs = [
        p for p in soup.find_all("p") if DEFINITION_PARAGRAPH.search(p.get_text(" ").strip())
    ]
    if definition_paragraphs:
        found.append(f"{len(definition_paragraphs)} definition paragraph(s)")

    if not found:
        return warning(
            'No clear definition sections found. AI engines prefer explicit "What is X" content for featured snippets.',
            fix_guidance='Add a "What is [topic]?" section near the top with a concise 2-3 sentence definition.',
        )
    return passed(f"Definition content found: {', '.join(found)}", found_definitions=found)


@check(
    "step_by_step_guides", CATEGORY, CheckPriority.RECOMMENDED,
    display_name="No Step-by-Step Content",
    display_name_passed="Step-by-Step Content Present",
    description="How-to content with clear steps is highly citable by AI engines",
    learn_more_url="https://developers.google.com/search/docs/appearance/structured-data/how-to",
)
async def step_by_step_guides(context: CheckContext):
    soup = dom.parse(context.html)
    has_schema = SchemaCollector().collect(context.html, soup=soup).has_type("HowTo")

    howto_headings = dom.headings_matching(soup, r"^how to|^steps? to|^guide to|steps:|tutorial")
    ordered_lists = len(soup.find_all("ol"))
    ordered_items = len(soup.select("ol li"))
    step_headings = dom.headings_matching(soup, r"^(step\s+)?\d+[.):\s]")

    indicators = []
    if has_schema:
        indicators.append("HowTo schema")
    if howto_headings:
        indicators.append("how-to heading")
    if ordered_lists:
        indicators.append(f"{ordered_lists} ordered list(s)")
    if step_headings:
        indicators.append(f"{len(step_headings)} numbered step heading(s)")

    if not indicators:
        return passed("No procedural content detected (not applicable for this page type)")
    if has_schema:
        return passed(
            f"How-to content with structured data: {', '.join(indicators)}",
            indicators=indicators,
            ordered_list_items=ordered_items,
        )
    if ordered_items >= 3 or len(step_headings) >= 3:
        return warning(
            f"Step-by-step content detected ({', '.join(indicators)}) but missing HowTo schema markup",
            fix_guidance="Add HowTo structured data to help AI engines extract step-by-step instructions.",
            indicators=indicators,
        )
    return passed(f"Some procedural content: {', '.join(indicators)}", indicators=indicators)


@check(
    "summary_sections", CATEGORY, CheckPriority.RECOMMENDED,
    display_name="No Summary Section",
    display_name_passed="Summary Section Present",
    description="TL;DR and summary sections help AI engines extract key takeaways",
    learn_more_url="https://developers.google.com/search/docs/appearance/featured-snippets",
)
async def summary_sections(context: CheckContext):
    soup = dom.parse(context.html)

    summary_headings = dom.headings_matching(
        soup,
        r"^(tl;dr|tldr|summary|key takeaways|key points|in (a )?nutshell|quick summary|executive summary|conclusion)",
    )
    summary_elements = len(soup.find_all("summary"))
    summary_blocks = [
        b for b in soup.find_all(["blockquote", "aside"])
        if re.search(r"summary|key point|takeaway", b.get_text(" "), re.IGNORECASE)
    ]
    summary_items = 0
    for heading in summary_headings:
        for sibling in heading.find_next_siblings(limit=3):
            summary_items += len(sibling.find_all("li"))

    indicators = []
    if summary_headings:
        indicators.append(f"{len(summary_headings)} summary heading(s)")
    if summary_elements:
        indicators.append(f"{summary_elements} summary element(s)")
    if summary_blocks:
        indicators.append(f"{len(summary_blocks)} summary block(s)")
    if summary_items:
        indicators.append(f"{summary_items} key point(s)")

    if not indicators:
        return warning(
            "No summary section found. AI engines prioritize content with clear TL;DR or key takeaways "
            "for quick extraction.",
            fix_guidance='Add a "Summary" or "Key Takeaways" section with 3-5 bullet points of main insights.',
        )
    return passed(f"Summary content found: {', '.join(indicators)}", indicators=indicators)


@check(
    "citation_format", CATEGORY, CheckPriority.RECOMMENDED,
    display_name="No Citation Format",
    display_name_passed="Citations Present",
    description="Proper source attribution increases trustworthiness for AI engines",
    learn_more_url="https://developers.google.com/search/docs/fundamentals/creating-helpful-content",
)
async def citation_format(context: CheckContext):
    soup = dom.parse(context.html)
    host = dom.hostname(context.url)

    external = [a["href"] for a in soup.find_all("a", href=True) if dom.is_external_href(a["href"], host)]
    authoritative = [href for href in external if any(marker in href for marker in AUTHORITATIVE_MARKERS)]
    citation_elements = len(soup.select("cite, blockquote[cite]"))
    reference_headings = dom.headings_matching(
        soup, r"^(references|sources|citations|bibliography|further reading|works cited)"
    )
    citation_markers = len(soup.select('sup a, a.footnote, [id^="fn"], [id^="ref"]'))

    indicators = []
    if authoritative:
        indicators.append(f"{len(authoritative)} authoritative source link(s)")
    if len(external) > len(authoritative):
        indicators.append(f"{len(external) - len(authoritative)} additional external link(s)")
    if citation_elements:
        indicators.append(f"{citation_elements} citation element(s)")
    if reference_headings:
        indicators.append("reference section")
    if citation_markers:
        indicators.append(f"{citation_markers} citation marker(s)")

    if not authoritative and not citation_elements and not reference_headings:
        return warning(
            "No citations or source links found. AI engines prioritize content with clear source attribution.",
            fix_guidance="Add links to authoritative sources (research papers, .edu/.gov sites) and use "
                         "<cite> tags for quotes.",
            external_links=len(external),
        )
    if len(authoritative) >= 3 or reference_headings:
        return passed(
            f"Strong citation format: {', '.join(indicators)}",
            indicators=indicators,
            authoritative_links=len(authoritative),
        )
    return warning(
        f"Some citations found ({', '.join(indicators)}) but could be improved with more authoritative sources",
        fix_guidance="Link to more authoritative sources (.edu, .gov, research papers) to strengthen credibility.",
        indicators=indicators,
        authoritative_links=len(authoritative),
    )


@check(
    "comparison_tables", CATEGORY, CheckPriority.OPTIONAL,
    display_name="No Comparison Tables",
    display_name_passed="Comparison Tables Present",
    description="Structured data tables help AI engines extract comparative information",
    learn_more_url="https://web.dev/articles/accessible-tables",
)
async def comparison_tables(context: CheckContext):
    soup = dom.parse(context.html)
    tables = soup.find_all("table")

    if not tables:
        return passed("No tables found (not applicable for this page type)")

    with_headers = [t for t in tables if t.find("th")]
    if not with_headers:
        return failed(
            f"Found {len(tables)} table(s) but none have header rows (<th>). "
            "AI engines need structured tables to extract data.",
            fix_guidance="Add <th> elements to define column/row headers in your tables.",
            total_tables=len(tables),
        )

    features = [f"{len(with_headers)} table(s) with headers"]
    with_captions = [t for t in tables if t.find("caption")]
    if with_captions:
        features.append(f"{len(with_captions)} with captions")
    if dom.headings_matching(soup, r"comparison|compare|vs|versus|difference|pricing"):
        features.append("comparison context headings")
    return passed(
        f"Structured tables found: {', '.join(features)}",
        total_tables=len(tables),
        tables_with_headers=len(with_headers),
        features=features,
    )


CHECKS = [
    faq_section,
    definition_boxes,
    step_by_step_guides,
    summary_sections,
    citation_format,
    comparison_tables,
]
