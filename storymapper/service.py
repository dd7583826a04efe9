"""
Crawl Service
Runs crawls in worker threads under the admission control of a
``CrawlSessionManager``: each running session gets its own thread, browser
and queue; queued sessions start when a slot frees up.
"""

import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .browser import BrowserSession
from .crawler import CrawlConfig, SiteCrawler
from .models import CrawlResult, UserStory
from .session_manager import CrawlSession, CrawlSessionManager
from .stories import identify_user_stories
from .storage import write_artifacts

logger = logging.getLogger(__name__)


class CrawlService:
    """
    Front door for crawl requests.

    Args:
        config: Template crawl configuration; per-request ``max_pages`` and
            ``same_origin_only`` override it
        output_root: Where artifacts are written (None disables persistence)
        manager: Session manager (a default one is created when omitted)
        browser_factory: Browser adapter factory handed to every crawler
    """

    def __init__(
        self,
        config: Optional[CrawlConfig] = None,
        output_root: Optional[str] = None,
        manager: Optional[CrawlSessionManager] = None,
        browser_factory: Optional[Callable[[CrawlConfig], BrowserSession]] = None,
    ):
        self.config = config or CrawlConfig()
        self.output_root = output_root
        self.manager = manager or CrawlSessionManager()
        self.manager.on_promote = self._start_worker
        self._browser_factory = browser_factory

        self._lock = threading.Lock()
        self._threads: Dict[str, threading.Thread] = {}
        self._results: Dict[str, CrawlResult] = {}
        self._stories: Dict[str, List[UserStory]] = {}
        self._artifact_dirs: Dict[str, Path] = {}

    def submit(self, url: str, max_pages: Optional[int] = None, same_origin_only: Optional[bool] = None) -> CrawlSession:
        """
        Request a crawl. Starts immediately when a slot is free, else queues.

        Raises:
            SessionCapacityError: If the pending queue is full
            ValueError: On invalid limits
        """
        config = replace(
            self.config,
            max_pages=self.config.max_pages if max_pages is None else max_pages,
            same_origin_only=self.config.same_origin_only if same_origin_only is None else same_origin_only,
        )
        config.validate()
        self._forget_expired()

        session, queued = self.manager.create_session(url, config.max_pages, config.same_origin_only)
        if not queued:
            self._start_worker(session)
        return session

    def _forget_expired(self) -> None:
        """Evict expired sessions and drop the results held for them."""
        if not self.manager.cleanup_expired():
            return
        known = {s.id for s in self.manager.list_sessions()}
        with self._lock:
            for store in (self._results, self._stories, self._artifact_dirs):
                for sid in [sid for sid in store if sid not in known]:
                    del store[sid]
            for sid in [sid for sid, t in self._threads.items() if sid not in known and not t.is_alive()]:
                del self._threads[sid]

    def _start_worker(self, session: CrawlSession) -> None:
        thread = threading.Thread(
            target=self._run,
            args=(session,),
            name=f"crawl-{session.id[:8]}",
            daemon=True,
        )
        with self._lock:
            self._threads[session.id] = thread
        thread.start()

    def _run(self, session: CrawlSession) -> None:
        config = replace(
            self.config,
            max_pages=session.max_pages,
            same_origin_only=session.same_origin_only,
        )
        try:
            crawler = SiteCrawler(config, browser_factory=self._browser_factory)
            result = crawler.crawl(session.url)
            stories = identify_user_stories(result)

            artifact_dir = None
            if self.output_root is not None:
                artifact_dir = write_artifacts(result, stories, self.output_root, crawl_id=session.id)

            with self._lock:
                self._results[session.id] = result
                self._stories[session.id] = stories
                if artifact_dir is not None:
                    self._artifact_dirs[session.id] = artifact_dir
            session.metadata.update({'pages': len(result.pages), 'stories': len(stories)})
        except Exception as e:
            logger.error(f"[SESSION] Crawl {session.id[:8]} of {session.url} failed: {e}", exc_info=True)
            self.manager.complete_session(session.id, success=False, error=str(e))
            return

        self.manager.complete_session(session.id, success=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def wait(self, session_id: str, timeout: Optional[float] = None) -> bool:
        """
        Block until the session's worker finishes.

        Returns:
            False on timeout, or when the session never got a worker
        """
        with self._lock:
            thread = self._threads.get(session_id)
        if thread is None:
            return False
        thread.join(timeout)
        return not thread.is_alive()

    def wait_all(self, timeout: Optional[float] = None) -> None:
        """Join workers, including those promoted meanwhile, until none is alive."""
        while True:
            with self._lock:
                threads = [t for t in self._threads.values() if t.is_alive()]
            if not threads:
                return
            for thread in threads:
                thread.join(timeout)
            if timeout is not None and any(t.is_alive() for t in threads):
                return

    def get_result(self, session_id: str) -> Optional[CrawlResult]:
        with self._lock:
            return self._results.get(session_id)

    def get_stories(self, session_id: str) -> Optional[List[UserStory]]:
        with self._lock:
            return self._stories.get(session_id)

    def get_artifact_dir(self, session_id: str) -> Optional[Path]:
        with self._lock:
            return self._artifact_dirs.get(session_id)
