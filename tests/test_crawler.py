"""
Tests for the breadth-first site crawler.

Covers:
  1. Visit order, origin filtering and link canonicalisation
  2. Page budget and the discovered-set bound
  3. Navigation, tab and extraction failures
  4. Configuration validation and progress reporting
"""

import pytest

from conftest import page
from storymapper.crawler import CrawlConfig, SiteCrawler, crawl_site
from storymapper.errors import ExtractionError, NavigationError

ROOT = "https://example.com/"
ABOUT = "https://example.com/about"
PRICING = "https://example.com/pricing"
TEAM = "https://example.com/team"


def _site():
    return {
        ROOT: page("Home", links=["/about", "/pricing", "https://other.com/x", "mailto:hi@example.com", "/about#team"]),
        ABOUT: page("About", links=["/", "/team"]),
        PRICING: ExtractionError(PRICING, "script crashed"),
        TEAM: NavigationError(TEAM, "timeout after 15000ms"),
    }


def _crawl(fake_browser_factory, site, **config):
    factory, browser = fake_browser_factory(site)
    crawler = SiteCrawler(CrawlConfig(**config), browser_factory=factory)
    return crawler, browser


# ====================================================================
# 1. Traversal
# ====================================================================

class TestTraversal:

    def test_breadth_first_order(self, fake_browser_factory):
        crawler, browser = _crawl(fake_browser_factory, _site())
        crawler.crawl("https://Example.com")
        assert browser.navigated == [ROOT, ABOUT, PRICING, TEAM]

    def test_no_url_visited_twice(self, fake_browser_factory):
        crawler, browser = _crawl(fake_browser_factory, _site())
        crawler.crawl(ROOT)
        assert len(browser.navigated) == len(set(browser.navigated))

    def test_cross_origin_links_dropped(self, fake_browser_factory):
        crawler, _ = _crawl(fake_browser_factory, _site())
        result = crawler.crawl(ROOT)
        assert all(target.startswith("https://example.com/") for targets in result.edges.values() for target in targets)

    def test_edges_canonical_and_not_deduplicated(self, fake_browser_factory):
        crawler, _ = _crawl(fake_browser_factory, _site())
        result = crawler.crawl(ROOT)
        assert result.edges[ROOT] == [ABOUT, PRICING, ABOUT]

    def test_every_page_reachable_from_seed(self, fake_browser_factory):
        crawler, _ = _crawl(fake_browser_factory, _site())
        result = crawler.crawl(ROOT)

        reached = {result.base_url}
        frontier = [result.base_url]
        while frontier:
            for target in result.edges.get(frontier.pop(), []):
                if target not in reached:
                    reached.add(target)
                    frontier.append(target)
        assert set(result.pages) <= reached

    def test_cross_origin_followed_when_allowed(self, fake_browser_factory):
        site = _site()
        site["https://other.com/x"] = page("Elsewhere")
        crawler, browser = _crawl(fake_browser_factory, site, same_origin_only=False)
        crawler.crawl(ROOT)
        assert "https://other.com/x" in browser.navigated

    def test_browser_lifecycle(self, fake_browser_factory):
        crawler, browser = _crawl(fake_browser_factory, _site())
        crawler.crawl(ROOT)
        assert browser.started and browser.stopped
        assert all(p.closed for p in browser.pages)


# ====================================================================
# 2. Budget
# ====================================================================

class TestBudget:

    def test_max_pages_bounds_visits(self, fake_browser_factory):
        crawler, browser = _crawl(fake_browser_factory, _site(), max_pages=2)
        result = crawler.crawl(ROOT)
        assert browser.navigated == [ROOT, ABOUT]
        assert set(result.pages) == {ROOT, ABOUT}

    def test_single_page(self, fake_browser_factory):
        crawler, browser = _crawl(fake_browser_factory, _site(), max_pages=1)
        result = crawler.crawl(ROOT)
        assert list(result.pages) == [ROOT]
        assert result.pending_urls == ()
        assert result.edges[ROOT] == [ABOUT, PRICING, ABOUT]


# ====================================================================
# 3. Failures
# ====================================================================

class TestFailures:

    def test_navigation_failure_skipped(self, fake_browser_factory):
        crawler, _ = _crawl(fake_browser_factory, _site())
        result = crawler.crawl(ROOT)
        assert TEAM not in result.pages
        assert TEAM not in result.edges

    def test_extraction_failure_recorded_bare(self, fake_browser_factory):
        crawler, _ = _crawl(fake_browser_factory, _site())
        result = crawler.crawl(ROOT)
        bare = result.pages[PRICING]
        assert bare.status_code == 200
        assert bare.title == ""
        assert result.edges[PRICING] == []

    def test_stats(self, fake_browser_factory):
        crawler, _ = _crawl(fake_browser_factory, _site())
        stats = crawler.crawl(ROOT).stats
        assert stats['pages_crawled'] == 3
        assert stats['pages_failed'] == 1
        assert stats['pages_without_metadata'] == 1

    def test_unsettled_page_still_recorded(self, fake_browser_factory):
        factory, _ = fake_browser_factory(_site(), unsettled={ABOUT})
        result = SiteCrawler(CrawlConfig(), browser_factory=factory).crawl(ROOT)
        assert result.pages[ABOUT].title == "About"
        assert result.edges[ABOUT] == [ROOT, TEAM]
        assert result.stats['pages_failed'] == 1

    def test_tab_crash_skips_page(self, fake_browser_factory):
        factory, browser = fake_browser_factory(_site(), crashed={ABOUT})
        result = SiteCrawler(CrawlConfig(), browser_factory=factory).crawl(ROOT)
        assert ABOUT not in result.pages
        assert PRICING in result.pages
        assert result.stats['pages_failed'] == 1
        assert all(p.closed for p in browser.pages)

    def test_open_page_failure_skips_page(self, fake_browser_factory):
        factory, browser = fake_browser_factory(_site(), failing_opens={2})
        result = SiteCrawler(CrawlConfig(), browser_factory=factory).crawl(ROOT)
        assert set(result.pages) == {ROOT, PRICING}
        assert ABOUT not in browser.navigated
        assert result.stats['pages_failed'] == 1
        assert browser.stopped

    def test_unreachable_seed_gives_empty_map(self, fake_browser_factory):
        crawler, _ = _crawl(fake_browser_factory, {})
        result = crawler.crawl(ROOT)
        assert result.pages == {}
        assert result.edges == {}
        assert result.base_url == ROOT


# ====================================================================
# 4. Configuration and progress
# ====================================================================

class TestConfigAndProgress:

    @pytest.mark.parametrize("max_pages", [0, 201, -5])
    def test_max_pages_out_of_range(self, max_pages):
        with pytest.raises(ValueError):
            SiteCrawler(CrawlConfig(max_pages=max_pages))

    def test_invalid_seed(self, fake_browser_factory):
        crawler, browser = _crawl(fake_browser_factory, _site())
        with pytest.raises(ValueError):
            crawler.crawl("not a url")
        assert browser.navigated == []

    def test_progress_callback(self, fake_browser_factory):
        crawler, _ = _crawl(fake_browser_factory, _site())
        calls = []
        crawler.set_progress_callback(lambda count, url, stats: calls.append((count, url)))
        crawler.crawl(ROOT)
        assert calls == [(1, ROOT), (2, ABOUT), (3, PRICING)]

    def test_crawl_site_helper(self, fake_browser_factory):
        factory, _ = fake_browser_factory(_site())
        result = crawl_site(ROOT, max_pages=3, browser_factory=factory)
        assert set(result.pages) == {ROOT, ABOUT, PRICING}
