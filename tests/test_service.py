"""
Tests for the threaded crawl service on top of the session manager.
"""

import threading

import pytest

from conftest import FakeBrowser, page
from storymapper.crawler import CrawlConfig
from storymapper.errors import SessionCapacityError
from storymapper.session_manager import CrawlSessionManager, SessionStatus
from storymapper.service import CrawlService

SITE = {
    "https://example.com/": page("Home", links=["/login"]),
    "https://example.com/login": page("Sign in"),
}


class FakeClock:

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class GatedBrowser(FakeBrowser):
    """Blocks every crawl until the test opens the gate."""

    def __init__(self, site, gate: threading.Event):
        super().__init__(site)
        self.gate = gate

    def start(self) -> None:
        self.gate.wait(5)
        super().start()


class TestCrawlService:

    def test_crawl_completes_and_persists(self, tmp_path):
        service = CrawlService(output_root=str(tmp_path), browser_factory=lambda config: FakeBrowser(SITE))
        session = service.submit("https://example.com", max_pages=5)

        assert service.wait(session.id, timeout=5)
        assert session.status is SessionStatus.COMPLETED
        assert set(service.get_result(session.id).pages) == set(SITE)
        assert [s.kind.value for s in service.get_stories(session.id)] == ["authentication", "browsing"]
        assert (service.get_artifact_dir(session.id) / "site-map.json").is_file()
        assert session.metadata == {'pages': 2, 'stories': 2}

    def test_failure_marks_session_failed(self):
        def broken_factory(config):
            raise RuntimeError("browser missing")

        service = CrawlService(browser_factory=broken_factory)
        session = service.submit("https://example.com")

        assert service.wait(session.id, timeout=5)
        assert session.status is SessionStatus.FAILED
        assert session.error == "browser missing"
        assert service.get_result(session.id) is None

    def test_queued_sessions_start_after_completion(self):
        gate = threading.Event()
        manager = CrawlSessionManager(max_concurrent=1)
        service = CrawlService(manager=manager, browser_factory=lambda config: GatedBrowser(SITE, gate))

        first = service.submit("https://example.com")
        second = service.submit("https://example.com")
        assert second.status is SessionStatus.PENDING
        assert service.wait(second.id, timeout=0) is False

        gate.set()
        service.wait_all(timeout=5)

        assert first.status is SessionStatus.COMPLETED
        assert second.status is SessionStatus.COMPLETED
        assert manager.running_count == 0

    def test_capacity_error(self):
        gate = threading.Event()
        manager = CrawlSessionManager(max_concurrent=1, max_queued=0)
        service = CrawlService(manager=manager, browser_factory=lambda config: GatedBrowser(SITE, gate))
        try:
            service.submit("https://example.com")
            with pytest.raises(SessionCapacityError):
                service.submit("https://example.com")
        finally:
            gate.set()
            service.wait_all(timeout=5)

    def test_invalid_max_pages_rejected_before_admission(self):
        service = CrawlService(config=CrawlConfig(), browser_factory=lambda config: FakeBrowser(SITE))
        with pytest.raises(ValueError):
            service.submit("https://example.com", max_pages=0)
        assert service.manager.list_sessions() == []

    def test_expired_sessions_forgotten_on_submit(self):
        clock = FakeClock()
        manager = CrawlSessionManager(retention_seconds=60, clock=clock)
        service = CrawlService(manager=manager, browser_factory=lambda config: FakeBrowser(SITE))

        first = service.submit("https://example.com")
        assert service.wait(first.id, timeout=5)
        assert service.get_result(first.id) is not None

        clock.now += 61
        second = service.submit("https://example.com")
        assert service.wait(second.id, timeout=5)

        assert manager.get_session(first.id) is None
        assert service.get_result(first.id) is None
        assert service.get_stories(first.id) is None
        assert service.wait(first.id, timeout=0) is False
        assert service.get_result(second.id) is not None

    def test_recent_sessions_kept_on_submit(self):
        clock = FakeClock()
        manager = CrawlSessionManager(retention_seconds=60, clock=clock)
        service = CrawlService(manager=manager, browser_factory=lambda config: FakeBrowser(SITE))

        first = service.submit("https://example.com")
        assert service.wait(first.id, timeout=5)

        clock.now += 30
        service.wait(service.submit("https://example.com").id, timeout=5)

        assert manager.get_session(first.id) is first
        assert service.get_result(first.id) is not None
