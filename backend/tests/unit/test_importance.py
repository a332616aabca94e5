"""
Unit tests for page importance ranking.
"""
from audit_engine.models import CrawledPage, new_id
from audit_engine.services.importance import score_page_importance, select_top_pages

GOOD_TITLE = "A descriptive page title of a sensible length"


def page(path, title=GOOD_TITLE, status_code=200, meta_description=None):
    return CrawledPage(
        id=new_id(),
        audit_id="audit-1",
        url=f"https://example.com{path}",
        title=title,
        meta_description=meta_description,
        status_code=status_code,
    )


class TestScorePageImportance:
    """Test the URL and metadata heuristics."""

    def test_homepage(self):
        home = page("/")
        result = score_page_importance(home, [home])

        assert result.score == 100
        assert result.reasons[0] == "Homepage"

    def test_important_section_boost(self):
        docs = page("/docs/getting-started", title=None)
        result = score_page_importance(docs, [docs])

        # 50 (second level) + 35 (documentation) - 20 (no title)
        assert result.score == 65
        assert "Documentation" in result.reasons
        assert "Missing title" in result.reasons

    def test_low_priority_penalty(self):
        pages = [page("/privacy"), page("/pricing")]
        privacy = score_page_importance(pages[0], pages)
        pricing = score_page_importance(pages[1], pages)

        assert privacy.score < pricing.score
        assert "Low priority page type" in privacy.reasons

    def test_non_200_status(self):
        broken = page("/about", status_code=404)
        result = score_page_importance(broken, [broken])

        assert result.score == 40
        assert "Non-200 status (404)" in result.reasons

    def test_deep_page(self):
        deep = page("/a/b/c/d", title=None, meta_description="Summary")
        result = score_page_importance(deep, [deep])

        assert result.score == 10
        assert result.reasons[0] == "Deep page (depth: 4)"


class TestSelectTopPages:
    """Test sampling for AI analysis."""

    def test_zero_sample(self):
        assert select_top_pages([page("/")], 0) == []

    def test_sample_sorted_by_score(self):
        pages = [page("/a/b/c/old"), page("/docs"), page("/"), page("/login")]
        top = select_top_pages(pages, 2)
        assert [p.url for p in top] == ["https://example.com/docs", "https://example.com/"]

    def test_homepage_always_included(self):
        """A low-scoring homepage displaces the last sampled page."""
        pages = [page("/", status_code=500), page("/docs"), page("/about"), page("/blog")]
        top = select_top_pages(pages, 2)

        assert [p.url for p in top] == ["https://example.com/", "https://example.com/docs"]

    def test_sample_larger_than_site(self):
        pages = [page("/"), page("/about")]
        assert len(select_top_pages(pages, 5)) == 2
