"""
Tests for the browser adapters, driven through stand-in Playwright pages and
requests sessions.

Covers:
  1. PlaywrightPage error translation
  2. PlaywrightBrowser tab failures
  3. StaticPage error translation and loading
  4. A crawl that survives a tab closed mid-wait
"""

import pytest
import requests
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from storymapper.browser import BrowserSession, PlaywrightBrowser, PlaywrightPage, StaticPage
from storymapper.crawler import CrawlConfig, SiteCrawler
from storymapper.errors import BrowserError, ExtractionError, NavigationError
from storymapper.extractor import HtmlPageExtractor

CLOSED = "Target page, context or browser has been closed"

HTML = {
    "https://example.com/": (
        '<html><head><title>Home</title></head>'
        '<body><a href="/a">A</a> <a href="/b">B</a></body></html>'
    ),
    "https://example.com/a": '<html><head><title>A</title></head><body><a href="/">Home</a></body></html>',
    "https://example.com/b": '<html><head><title>B</title></head><body></body></html>',
}


class StubResponse:

    def __init__(self, status=200, url="", text="", content_type="text/html; charset=utf-8"):
        self.status = status
        self.status_code = status
        self.url = url
        self.text = text
        self.headers = {'Content-Type': content_type}


class StubPlaywrightPage:
    """Mimics the slice of ``playwright.sync_api.Page`` the adapter uses."""

    def __init__(self, html=None, goto_error=None, wait_errors=None):
        self.html = html or {}
        self.goto_error = goto_error
        self.wait_errors = wait_errors or {}
        self.url = "about:blank"
        self.closed = False

    def goto(self, url, timeout=None, wait_until=None):
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url
        return StubResponse(url=url)

    def wait_for_load_state(self, state=None, timeout=None):
        error = self.wait_errors.get(self.url)
        if error is not None:
            raise error

    def content(self):
        return self.html.get(self.url, "<html></html>")

    def evaluate(self, script):
        return False

    def close(self):
        self.closed = True


class StubContext:

    def __init__(self, error=None):
        self.error = error

    def new_page(self):
        if self.error is not None:
            raise self.error
        return StubPlaywrightPage()


class StubSession:
    """Stands in for ``requests.Session``: raises ``error`` or returns ``response``."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, timeout=None, allow_redirects=True):
        self.requests.append((url, timeout))
        if self.error is not None:
            raise self.error
        return self.response


# ====================================================================
# 1. PlaywrightPage
# ====================================================================

class TestPlaywrightPage:

    def test_navigate_returns_status(self):
        adapter = PlaywrightPage(StubPlaywrightPage(), HtmlPageExtractor())
        assert adapter.navigate("https://example.com/", 1000) == 200

    def test_navigate_timeout(self):
        stub = StubPlaywrightPage(goto_error=PlaywrightTimeout("Timeout 1000ms exceeded"))
        adapter = PlaywrightPage(stub, HtmlPageExtractor())
        with pytest.raises(NavigationError) as excinfo:
            adapter.navigate("https://example.com/", 1000)
        assert "timeout after 1000ms" in str(excinfo.value)
        assert excinfo.value.url == "https://example.com/"

    def test_navigate_error(self):
        stub = StubPlaywrightPage(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
        adapter = PlaywrightPage(stub, HtmlPageExtractor())
        with pytest.raises(NavigationError) as excinfo:
            adapter.navigate("https://example.com/", 1000)
        assert "ERR_NAME_NOT_RESOLVED" in excinfo.value.reason

    @pytest.mark.parametrize("error", [
        PlaywrightTimeout("Timeout 2500ms exceeded"),
        PlaywrightError(CLOSED),
    ])
    def test_wait_quiescent_gives_up_quietly(self, error):
        stub = StubPlaywrightPage(wait_errors={"https://example.com/": error})
        adapter = PlaywrightPage(stub, HtmlPageExtractor())
        adapter.navigate("https://example.com/", 1000)
        assert adapter.wait_quiescent(2500) is False

    def test_wait_quiescent_settled(self):
        adapter = PlaywrightPage(StubPlaywrightPage(), HtmlPageExtractor())
        adapter.navigate("https://example.com/", 1000)
        assert adapter.wait_quiescent(2500) is True

    def test_extract_metadata_reads_rendered_html(self):
        adapter = PlaywrightPage(StubPlaywrightPage(html=HTML), HtmlPageExtractor())
        adapter.navigate("https://example.com/", 1000)
        extraction = adapter.extract_metadata()
        assert extraction.title == "Home"
        assert [link.url for link in extraction.links] == ["https://example.com/a", "https://example.com/b"]


# ====================================================================
# 2. PlaywrightBrowser
# ====================================================================

class TestPlaywrightBrowser:

    def test_open_page_failure_raises_browser_error(self):
        browser = PlaywrightBrowser()
        browser._context = StubContext(error=PlaywrightError(CLOSED))
        with pytest.raises(BrowserError):
            browser.open_page()

    def test_open_page_wraps_new_tab(self):
        browser = PlaywrightBrowser()
        browser._context = StubContext()
        assert isinstance(browser.open_page(), PlaywrightPage)


# ====================================================================
# 3. StaticPage
# ====================================================================

class TestStaticPage:

    def test_timeout(self):
        page = StaticPage(StubSession(error=requests.Timeout("read timed out")), HtmlPageExtractor())
        with pytest.raises(NavigationError) as excinfo:
            page.navigate("https://example.com/", 5000)
        assert "timeout after 5000ms" in str(excinfo.value)

    @pytest.mark.parametrize("error", [
        requests.ConnectionError("connection refused"),
        requests.RequestException("bad response"),
    ])
    def test_request_failure(self, error):
        page = StaticPage(StubSession(error=error), HtmlPageExtractor())
        with pytest.raises(NavigationError):
            page.navigate("https://example.com/", 5000)

    def test_timeout_converted_to_seconds(self):
        session = StubSession(response=StubResponse(url="https://example.com/", text=HTML["https://example.com/"]))
        StaticPage(session, HtmlPageExtractor()).navigate("https://example.com/", 5000)
        assert session.requests == [("https://example.com/", 5.0)]

    def test_load_and_extract(self):
        session = StubSession(response=StubResponse(
            status=203, url="https://example.com/", text=HTML["https://example.com/"],
        ))
        page = StaticPage(session, HtmlPageExtractor())
        assert page.navigate("https://example.com/", 5000) == 203
        assert page.extract_metadata().title == "Home"

    def test_non_html_body_ignored(self):
        session = StubSession(response=StubResponse(
            url="https://example.com/doc.pdf", text="%PDF-1.4", content_type="application/pdf",
        ))
        page = StaticPage(session, HtmlPageExtractor())
        page.navigate("https://example.com/doc.pdf", 5000)
        assert page.extract_metadata().links == ()

    def test_extract_before_load(self):
        page = StaticPage(StubSession(), HtmlPageExtractor())
        with pytest.raises(ExtractionError):
            page.extract_metadata()


# ====================================================================
# 4. Crawl through the Playwright adapter
# ====================================================================

class StubPlaywrightBrowser(BrowserSession):
    """Hands out real ``PlaywrightPage`` adapters around stub pages."""

    def __init__(self, wait_errors):
        self.wait_errors = wait_errors
        self.extractor = HtmlPageExtractor()

    def open_page(self):
        return PlaywrightPage(StubPlaywrightPage(html=HTML, wait_errors=self.wait_errors), self.extractor)


class TestCrawlThroughPlaywrightPage:

    def test_tab_closed_during_wait_does_not_abort_crawl(self):
        browser = StubPlaywrightBrowser({"https://example.com/a": PlaywrightError(CLOSED)})
        crawler = SiteCrawler(CrawlConfig(), browser_factory=lambda config: browser)
        result = crawler.crawl("https://example.com/")

        assert "https://example.com/" in result.pages
        assert "https://example.com/b" in result.pages
        assert result.pages["https://example.com/a"].title == "A"
        assert result.edges["https://example.com/"] == ["https://example.com/a", "https://example.com/b"]
