"""
Site Crawler
Bounded breadth-first exploration of a web site through a browser adapter,
producing a page map and an outbound-link graph keyed by canonical URL.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Set

from .browser import DEFAULT_USER_AGENT, BrowserSession, PlaywrightBrowser, StaticBrowser
from .errors import BrowserError, ExtractionError, NavigationError
from .models import CrawlResult, PageSummary
from .utils import ProgressTracker, is_same_origin, normalize_url, safe_resolve

logger = logging.getLogger(__name__)

MAX_PAGES_LIMIT = 200

ProgressCallback = Callable[[int, str, Dict[str, Any]], None]


@dataclass
class CrawlConfig:
    """
    Configuration for one crawl.
    """
    # Crawl limits
    max_pages: int = 40
    same_origin_only: bool = True

    # Timeouts (milliseconds)
    navigation_timeout_ms: int = 15000
    quiescence_timeout_ms: int = 2500

    # Browser
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    use_browser: bool = True           # False -> StaticBrowser (requests)
    cookies: List[Dict[str, Any]] = field(default_factory=list)

    def validate(self) -> None:
        """
        Raises:
            ValueError: On out-of-range limits
        """
        if not 1 <= self.max_pages <= MAX_PAGES_LIMIT:
            raise ValueError(f"max_pages must be between 1 and {MAX_PAGES_LIMIT}, got {self.max_pages}")
        if self.navigation_timeout_ms <= 0:
            raise ValueError(f"navigation_timeout_ms must be positive, got {self.navigation_timeout_ms}")
        if self.quiescence_timeout_ms < 0:
            raise ValueError(f"quiescence_timeout_ms must not be negative, got {self.quiescence_timeout_ms}")

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            'max_pages': self.max_pages,
            'same_origin_only': self.same_origin_only,
            'navigation_timeout_ms': self.navigation_timeout_ms,
            'quiescence_timeout_ms': self.quiescence_timeout_ms,
            'headless': self.headless,
            'use_browser': self.use_browser,
            'cookies': len(self.cookies),
        }


def default_browser_factory(config: CrawlConfig) -> BrowserSession:
    """Build the browser adapter selected by *config*."""
    if config.use_browser:
        return PlaywrightBrowser(
            headless=config.headless,
            user_agent=config.user_agent,
            cookies=config.cookies,
        )
    return StaticBrowser(user_agent=config.user_agent, cookies=config.cookies)


class SiteCrawler:
    """
    Breadth-first site crawler.

    One crawl drives one browser session and visits one page at a time.
    Per-page navigation and tab failures are logged and skipped; extraction failures
    still record the page (URL and status code only) with no outbound edges.
    """

    def __init__(
        self,
        config: Optional[CrawlConfig] = None,
        browser_factory: Optional[Callable[[CrawlConfig], BrowserSession]] = None,
    ):
        self.config = config or CrawlConfig()
        self.config.validate()
        self._browser_factory = browser_factory or default_browser_factory
        self._progress_callback: Optional[ProgressCallback] = None
        self.progress = ProgressTracker()

    def set_progress_callback(self, callback: ProgressCallback) -> None:
        """
        Set callback for progress updates.

        Args:
            callback: Function(pages_visited, current_url, stats)
        """
        self._progress_callback = callback

    def crawl(self, seed_url: str) -> CrawlResult:
        """
        Crawl a site starting from *seed_url*.

        Returns:
            CrawlResult with pages, edges and the unvisited frontier

        Raises:
            ValueError: If the seed URL is not a valid absolute URL
        """
        base_url = normalize_url(seed_url)

        queue: Deque[str] = deque([base_url])
        discovered: Set[str] = {base_url}
        visited: Set[str] = set()
        pages: Dict[str, PageSummary] = {}
        edges: Dict[str, List[str]] = {}

        self.progress = ProgressTracker()
        self.progress.start()
        logger.info(
            f"[CRAWL] Starting crawl of {base_url} "
            f"(max_pages={self.config.max_pages}, same_origin_only={self.config.same_origin_only})"
        )

        try:
            with self._browser_factory(self.config) as browser:
                while queue and len(visited) < self.config.max_pages:
                    url = queue.popleft()
                    if url in visited:
                        continue
                    visited.add(url)

                    outgoing = self._visit(browser, base_url, url, pages)
                    if outgoing is None:
                        continue
                    edges[url] = outgoing

                    enqueued = 0
                    for target in outgoing:
                        if target not in discovered and len(discovered) < self.config.max_pages:
                            discovered.add(target)
                            queue.append(target)
                            enqueued += 1

                    logger.info(
                        f"[FRONTIER] {url[:60]} -> links={len(outgoing)} "
                        f"enqueued={enqueued} queue_size={len(queue)}"
                    )

                    if self._progress_callback:
                        self._progress_callback(len(visited), url, self.progress.get_stats())
        finally:
            self.progress.finish()

        pending = tuple(u for u in queue if u not in visited)
        result = CrawlResult(
            base_url=base_url,
            pages=pages,
            edges=edges,
            pending_urls=pending,
            stats=self.progress.get_stats(),
        )
        logger.info(f"[CRAWL] Crawl complete. Stats: {result.stats}")
        return result

    def _visit(
        self,
        browser: BrowserSession,
        base_url: str,
        url: str,
        pages: Dict[str, PageSummary],
    ) -> Optional[List[str]]:
        """
        Load and analyse one page.

        Returns:
            Outbound canonical URLs, or None when the page could not be loaded
        """
        logger.info(f"[CRAWL] Visiting {url}")
        try:
            page = browser.open_page()
        except BrowserError as e:
            logger.warning(f"[CRAWL] Skipping {url}: {e}")
            self.progress.increment_failed()
            return None

        try:
            try:
                status_code = page.navigate(url, self.config.navigation_timeout_ms)
                page.wait_quiescent(self.config.quiescence_timeout_ms)
            except (NavigationError, BrowserError) as e:
                logger.warning(f"[CRAWL] Skipping {url}: {e}")
                self.progress.increment_failed()
                return None

            try:
                extraction = page.extract_metadata()
            except ExtractionError as e:
                logger.warning(f"[CRAWL] {e}")
                pages[url] = PageSummary(url=url, status_code=status_code)
                self.progress.increment_crawled()
                self.progress.increment_without_metadata()
                return []
        finally:
            page.close()

        pages[url] = PageSummary.from_extraction(url, status_code, extraction)
        self.progress.increment_crawled()

        outgoing = self._resolve_links(base_url, url, [link.url for link in extraction.links])
        self.progress.add_links(len(outgoing))
        return outgoing

    def _resolve_links(self, base_url: str, page_url: str, hrefs: Sequence[str]) -> List[str]:
        outgoing = []
        for href in hrefs:
            resolved = safe_resolve(page_url, href)
            if resolved is None:
                continue
            if self.config.same_origin_only and not is_same_origin(base_url, resolved):
                continue
            outgoing.append(resolved)
        return outgoing


def crawl_site(
    url: str,
    max_pages: int = 40,
    same_origin_only: bool = True,
    navigation_timeout_ms: int = 15000,
    progress_callback: Optional[ProgressCallback] = None,
    browser_factory: Optional[Callable[[CrawlConfig], BrowserSession]] = None,
    **kwargs
) -> CrawlResult:
    """
    Convenience function to crawl a website.

    Args:
        url: Seed URL
        max_pages: Maximum pages to visit (1..200)
        same_origin_only: Ignore links leaving the seed's origin
        navigation_timeout_ms: Per-page load timeout
        progress_callback: Progress update callback
        browser_factory: Alternative browser adapter factory
        **kwargs: Additional CrawlConfig parameters

    Returns:
        CrawlResult
    """
    config = CrawlConfig(
        max_pages=max_pages,
        same_origin_only=same_origin_only,
        navigation_timeout_ms=navigation_timeout_ms,
        **kwargs
    )
    crawler = SiteCrawler(config, browser_factory=browser_factory)
    if progress_callback:
        crawler.set_progress_callback(progress_callback)
    return crawler.crawl(url)
