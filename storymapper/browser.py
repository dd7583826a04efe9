"""
Browser Adapters
The crawler talks to a browser through two narrow interfaces,
``BrowserSession`` (one per crawl) and ``BrowserPage`` (one per visited URL).

- ``PlaywrightBrowser``: headless Chromium via the Playwright sync API
- ``StaticBrowser``: plain HTTP via requests, for sites that need no JavaScript

Both hand the rendered HTML to ``HtmlPageExtractor``; library exceptions are
translated into ``NavigationError`` / ``ExtractionError`` / ``BrowserError``.
"""

import json
import logging
import math
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import requests
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout
from playwright.sync_api import sync_playwright

from .errors import BrowserError, ExtractionError, NavigationError
from .extractor import HtmlPageExtractor, PageExtractor
from .models import PageExtraction

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)

# True when any element scrolls its own overflow
_SCROLLABLE_PROBE = """() => Array.from(document.querySelectorAll('body *')).some((el) => {
    const style = window.getComputedStyle(el);
    const overflow = style.overflowY + ' ' + style.overflowX;
    return /(auto|scroll)/.test(overflow)
        && (el.scrollHeight > el.clientHeight || el.scrollWidth > el.clientWidth);
})"""


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------

class BrowserPage(ABC):
    """A single tab. Used for exactly one URL, then closed."""

    @abstractmethod
    def navigate(self, url: str, timeout_ms: int) -> int:
        """
        Load *url* and return the HTTP status code (0 when unknown).

        Raises:
            NavigationError: On timeout, DNS or connection failure
        """

    @abstractmethod
    def wait_quiescent(self, timeout_ms: int) -> bool:
        """
        Wait for network activity to settle. False means the wait timed out
        or was aborted.

        Raises:
            BrowserError: If the tab can no longer be driven
        """

    @abstractmethod
    def extract_metadata(self) -> PageExtraction:
        """
        Raises:
            ExtractionError: If the loaded document cannot be analysed
        """

    @abstractmethod
    def close(self) -> None:
        ...


class BrowserSession(ABC):
    """Owns the browser resources of one crawl."""

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass

    @abstractmethod
    def open_page(self) -> BrowserPage:
        """
        Raises:
            BrowserError: If no new tab can be opened
        """

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False


# ---------------------------------------------------------------------------
# Playwright
# ---------------------------------------------------------------------------

class PlaywrightPage(BrowserPage):

    def __init__(self, page, extractor: PageExtractor):
        self._page = page
        self._extractor = extractor

    def navigate(self, url: str, timeout_ms: int) -> int:
        try:
            response = self._page.goto(url, timeout=timeout_ms, wait_until='domcontentloaded')
        except PlaywrightTimeout as e:
            raise NavigationError(url, f"timeout after {timeout_ms}ms") from e
        except PlaywrightError as e:
            raise NavigationError(url, str(e)) from e
        return response.status if response is not None else 0

    def wait_quiescent(self, timeout_ms: int) -> bool:
        try:
            self._page.wait_for_load_state('networkidle', timeout=timeout_ms)
            return True
        except PlaywrightTimeout:
            logger.debug(f"[CRAWL] Network did not settle within {timeout_ms}ms on {self._page.url}")
            return False
        except PlaywrightError as e:
            logger.debug(f"[CRAWL] Quiescence wait aborted on {self._page.url}: {e}")
            return False

    def _probe_scrollable(self) -> bool:
        try:
            return bool(self._page.evaluate(_SCROLLABLE_PROBE))
        except PlaywrightError as e:
            logger.debug(f"[CRAWL] Scroll probe failed on {self._page.url}: {e}")
            return False

    def extract_metadata(self) -> PageExtraction:
        url = self._page.url
        try:
            html = self._page.content()
        except PlaywrightError as e:
            raise ExtractionError(url, str(e)) from e
        return self._extractor.extract(html, url, has_scrollable_sections=self._probe_scrollable())

    def close(self) -> None:
        try:
            self._page.close()
        except PlaywrightError as e:
            logger.debug(f"[CRAWL] Error closing page: {e}")


class PlaywrightBrowser(BrowserSession):
    """
    Chromium driven through ``playwright.sync_api``.

    One browser context per crawl; cookies are installed on the context
    before the first navigation.
    """

    def __init__(
        self,
        headless: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        cookies: Optional[Iterable[Mapping[str, Any]]] = None,
        extractor: Optional[PageExtractor] = None,
    ):
        self.headless = headless
        self.user_agent = user_agent
        self.cookies = sanitize_cookies(cookies or [])
        self.extractor = extractor or HtmlPageExtractor()
        self._playwright = None
        self._browser = None
        self._context = None

    def start(self) -> None:
        if self._playwright is not None:
            return
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(
            headless=self.headless,
            args=['--disable-gpu', '--no-sandbox', '--disable-dev-shm-usage'],
        )
        self._context = self._browser.new_context(
            user_agent=self.user_agent,
            viewport={'width': 1920, 'height': 1080},
            java_script_enabled=True,
        )
        if self.cookies:
            self._context.add_cookies([_playwright_cookie(c) for c in self.cookies])
            logger.info(f"[CRAWL] Installed {len(self.cookies)} cookies on browser context")
        logger.info("Playwright browser initialized")

    def stop(self) -> None:
        for name in ('_context', '_browser'):
            resource = getattr(self, name)
            if resource is not None:
                try:
                    resource.close()
                except PlaywrightError as e:
                    logger.debug(f"[CRAWL] Error closing {name.strip('_')}: {e}")
                setattr(self, name, None)

        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None

    def open_page(self) -> BrowserPage:
        if self._context is None:
            self.start()
        try:
            return PlaywrightPage(self._context.new_page(), self.extractor)
        except PlaywrightError as e:
            raise BrowserError(f"Could not open a new page: {e}") from e


def _playwright_cookie(cookie: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unset optional keys; Playwright rejects ``None`` values."""
    return {key: value for key, value in cookie.items() if value is not None}


# ---------------------------------------------------------------------------
# requests
# ---------------------------------------------------------------------------

class StaticPage(BrowserPage):

    def __init__(self, session: requests.Session, extractor: PageExtractor):
        self._session = session
        self._extractor = extractor
        self._url: Optional[str] = None
        self._html: Optional[str] = None

    def navigate(self, url: str, timeout_ms: int) -> int:
        try:
            response = self._session.get(url, timeout=timeout_ms / 1000, allow_redirects=True)
        except requests.Timeout as e:
            raise NavigationError(url, f"timeout after {timeout_ms}ms") from e
        except requests.RequestException as e:
            raise NavigationError(url, str(e)) from e

        content_type = response.headers.get('Content-Type', '').lower()
        is_html = 'text/html' in content_type or 'xhtml' in content_type or not content_type
        self._url = response.url or url
        self._html = response.text if is_html else ""
        return response.status_code

    def wait_quiescent(self, timeout_ms: int) -> bool:
        return True

    def extract_metadata(self) -> PageExtraction:
        if self._html is None:
            raise ExtractionError(self._url or "", "page was never loaded")
        return self._extractor.extract(self._html, self._url)

    def close(self) -> None:
        self._html = None


class StaticBrowser(BrowserSession):
    """HTTP-only browser: no JavaScript, no quiescence wait."""

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        cookies: Optional[Iterable[Mapping[str, Any]]] = None,
        extractor: Optional[PageExtractor] = None,
        session: Optional[requests.Session] = None,
    ):
        self.user_agent = user_agent
        self.cookies = sanitize_cookies(cookies or [])
        self.extractor = extractor or HtmlPageExtractor()
        self._session = session
        self._owns_session = session is None

    def start(self) -> None:
        if self._session is None:
            self._session = requests.Session()
            self._owns_session = True
        self._session.headers.update({
            'User-Agent': self.user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.9',
        })
        for cookie in self.cookies:
            self._session.cookies.set(
                cookie['name'], cookie['value'], domain=cookie['domain'], path=cookie['path'],
            )

    def stop(self) -> None:
        if self._session is not None and self._owns_session:
            self._session.close()
            self._session = None

    def open_page(self) -> BrowserPage:
        if self._session is None:
            self.start()
        return StaticPage(self._session, self.extractor)


# ---------------------------------------------------------------------------
# Cookies
# ---------------------------------------------------------------------------

_DOMAIN_RE = re.compile(r'^[a-z0-9.-]+$')
_SAME_SITE_VALUES = ('Strict', 'Lax', 'None')


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def _normalize_domain(value: Any) -> Optional[str]:
    domain = _as_text(value).strip().lower()
    if not domain or '://' in domain or not _DOMAIN_RE.match(domain):
        return None
    return domain


def _normalize_same_site(value: Any) -> Optional[str]:
    if not value:
        return None
    text = str(value)
    candidate = text[:1].upper() + text[1:].lower()
    return candidate if candidate in _SAME_SITE_VALUES else None


def _normalize_cookie(raw: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    name = _as_text(raw.get('name')).strip()
    if not name:
        return None

    domain = _normalize_domain(raw.get('domain'))
    if domain is None:
        return None

    path = _as_text(raw.get('path'))
    if not path.startswith('/') or name.startswith('__Host-'):
        path = '/'

    expires = raw.get('expires')
    if isinstance(expires, bool) or not isinstance(expires, (int, float)) or not math.isfinite(expires):
        expires = None
    else:
        expires = math.floor(expires)

    return {
        'name': name,
        'value': _as_text(raw.get('value')),
        'domain': domain,
        'path': path,
        'sameSite': _normalize_same_site(raw.get('sameSite')),
        'secure': True if name.startswith(('__Secure-', '__Host-')) else bool(raw.get('secure')),
        'httpOnly': bool(raw.get('httpOnly')),
        'expires': expires,
    }


def sanitize_cookies(cookies: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """
    Validate user-supplied cookies before they reach the browser.

    Cookies without a name or with an unusable domain are dropped; invalid
    ``sameSite`` values and non-numeric expiries are cleared. Duplicates
    (same name, domain and path) keep the last value at the first position.
    """
    deduped: Dict[tuple, Dict[str, Any]] = {}
    for raw in cookies:
        if not isinstance(raw, Mapping):
            continue
        cookie = _normalize_cookie(raw)
        if cookie is None:
            continue
        deduped[(cookie['name'], cookie['domain'], cookie['path'])] = cookie
    return list(deduped.values())


def load_cookies(path) -> List[Dict[str, Any]]:
    """
    Read cookies from a JSON file: either a list or ``{"cookies": [...]}``.

    Raises:
        ValueError: If the file does not hold a cookie list
    """
    with open(Path(path), 'r', encoding='utf-8') as f:
        payload = json.load(f)

    if isinstance(payload, Mapping):
        payload = payload.get('cookies')
    if not isinstance(payload, list):
        raise ValueError(f"No cookie list found in {path}")

    cookies = sanitize_cookies(payload)
    logger.info(f"Loaded {len(cookies)} cookies from {path}")
    return cookies
