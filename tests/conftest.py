"""
Shared fixtures: an in-memory browser adapter that serves canned pages.
"""

from typing import Dict, List, Union

import pytest

from storymapper.browser import BrowserPage, BrowserSession
from storymapper.errors import BrowserError, ExtractionError, NavigationError
from storymapper.models import PageExtraction, PageLink

SiteEntry = Union[PageExtraction, NavigationError, ExtractionError]


def page(title: str = "", links=(), **kwargs) -> PageExtraction:
    """Build an extraction whose links are given as plain hrefs."""
    return PageExtraction(title=title, links=tuple(PageLink(url=href) for href in links), **kwargs)


class FakePage(BrowserPage):

    def __init__(self, browser: "FakeBrowser"):
        self._browser = browser
        self._url = None
        self.closed = False

    def navigate(self, url: str, timeout_ms: int) -> int:
        self._browser.navigated.append(url)
        entry = self._browser.site.get(url)
        if entry is None:
            raise NavigationError(url, "not found in fake site")
        if isinstance(entry, NavigationError):
            raise entry
        self._url = url
        return 200

    def wait_quiescent(self, timeout_ms: int) -> bool:
        if self._url in self._browser.crashed:
            raise BrowserError(f"Tab crashed on {self._url}")
        return self._url not in self._browser.unsettled

    def extract_metadata(self) -> PageExtraction:
        entry = self._browser.site[self._url]
        if isinstance(entry, ExtractionError):
            raise entry
        return entry

    def close(self) -> None:
        self.closed = True


class FakeBrowser(BrowserSession):
    """
    Serves ``site[url]`` for each canonical URL the crawler navigates to.

    ``unsettled`` URLs never reach network quiescence, ``crashed`` URLs lose
    their tab while waiting, and ``failing_opens`` lists the 1-based
    ``open_page`` calls that fail.
    """

    def __init__(self, site: Dict[str, SiteEntry], unsettled=(), crashed=(), failing_opens=()):
        self.site = site
        self.unsettled = set(unsettled)
        self.crashed = set(crashed)
        self.failing_opens = set(failing_opens)
        self.open_calls = 0
        self.navigated: List[str] = []
        self.pages: List[FakePage] = []
        self.started = False
        self.stopped = False

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def open_page(self) -> BrowserPage:
        self.open_calls += 1
        if self.open_calls in self.failing_opens:
            raise BrowserError("Browser context has been closed")
        fake = FakePage(self)
        self.pages.append(fake)
        return fake


@pytest.fixture
def fake_browser_factory():
    """Returns ``make(site, **options) -> (factory, browser)`` for ``SiteCrawler``."""

    def make(site: Dict[str, SiteEntry], **options):
        browser = FakeBrowser(site, **options)
        return (lambda config: browser), browser

    return make
