"""
Tests for crawl session admission control.

Covers:
  1. Concurrency cap and FIFO promotion
  2. Terminal transitions and unknown ids
  3. Queue capacity
  4. Retention-based eviction
"""

import threading

import pytest

from storymapper.errors import SessionCapacityError, SessionNotFoundError
from storymapper.session_manager import CrawlSessionManager, SessionStatus


class FakeClock:

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def _fill(manager, count):
    return [manager.create_session(f"https://example.com/{i}", 10) for i in range(count)]


# ====================================================================
# 1. Concurrency and promotion
# ====================================================================

class TestConcurrency:

    def test_first_three_run_rest_queue(self):
        manager = CrawlSessionManager()
        created = _fill(manager, 5)

        assert [queued for _, queued in created] == [False, False, False, True, True]
        assert manager.running_count == 3
        assert manager.queued_count == 2
        assert created[3][0].status is SessionStatus.PENDING
        assert manager.queue_position(created[3][0].id) == 1
        assert manager.queue_position(created[4][0].id) == 2
        assert manager.queue_position(created[0][0].id) is None

    def test_completion_promotes_oldest_pending(self):
        manager = CrawlSessionManager()
        created = _fill(manager, 5)

        promoted = manager.complete_session(created[1][0].id, success=True)

        assert promoted is created[3][0]
        assert promoted.status is SessionStatus.RUNNING
        assert promoted.started_at is not None
        assert manager.running_count == 3
        assert manager.queued_count == 1

    def test_one_promotion_per_completion(self):
        manager = CrawlSessionManager(max_concurrent=1)
        first, _ = manager.create_session("https://example.com/a", 5)
        _fill(manager, 3)

        manager.complete_session(first.id, success=False, error="boom")

        assert manager.running_count == 1
        assert manager.queued_count == 2

    def test_on_promote_callback(self):
        seen = []
        manager = CrawlSessionManager(max_concurrent=1, on_promote=seen.append)
        first, _ = manager.create_session("https://example.com/a", 5)
        second, _ = manager.create_session("https://example.com/b", 5)

        manager.complete_session(first.id, success=True)
        assert seen == [second]

    def test_running_never_exceeds_cap_under_threads(self):
        manager = CrawlSessionManager(max_concurrent=3, max_queued=100)
        barrier = threading.Barrier(20)
        results = []

        def submit(i):
            barrier.wait()
            results.append(manager.create_session(f"https://example.com/{i}", 5))

        threads = [threading.Thread(target=submit, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert manager.running_count == 3
        assert manager.queued_count == 17
        assert sum(1 for _, queued in results if not queued) == 3


# ====================================================================
# 2. Terminal transitions
# ====================================================================

class TestTerminal:

    def test_failed_session_records_error(self):
        manager = CrawlSessionManager()
        session, _ = manager.create_session("https://example.com", 5)
        manager.complete_session(session.id, success=False, error="Navigation exploded")

        assert session.status is SessionStatus.FAILED
        assert session.error == "Navigation exploded"
        assert session.completed_at is not None

    def test_second_completion_is_noop(self):
        manager = CrawlSessionManager(max_concurrent=1)
        first, _ = manager.create_session("https://example.com/a", 5)
        _fill(manager, 2)

        manager.complete_session(first.id, success=True)
        assert manager.complete_session(first.id, success=False) is None

        assert first.status is SessionStatus.COMPLETED
        assert manager.running_count == 1
        assert manager.queued_count == 1

    def test_completing_pending_session_leaves_queue(self):
        manager = CrawlSessionManager(max_concurrent=1)
        _fill(manager, 1)
        pending, queued = manager.create_session("https://example.com/b", 5)
        assert queued

        assert manager.complete_session(pending.id, success=False, error="cancelled") is None
        assert manager.queued_count == 0
        assert manager.running_count == 1

    def test_unknown_id(self):
        manager = CrawlSessionManager()
        with pytest.raises(SessionNotFoundError):
            manager.complete_session("missing", success=True)

    def test_list_sessions_by_status(self):
        manager = CrawlSessionManager(max_concurrent=1)
        created = _fill(manager, 3)
        manager.complete_session(created[0][0].id, success=True)

        assert [s.id for s in manager.list_sessions(SessionStatus.COMPLETED)] == [created[0][0].id]
        assert [s.id for s in manager.list_sessions(SessionStatus.RUNNING)] == [created[1][0].id]
        assert len(manager.list_sessions()) == 3


# ====================================================================
# 3. Capacity
# ====================================================================

class TestCapacity:

    def test_full_queue_rejects(self):
        manager = CrawlSessionManager(max_concurrent=1, max_queued=2)
        _fill(manager, 3)
        with pytest.raises(SessionCapacityError):
            manager.create_session("https://example.com/overflow", 5)
        assert len(manager.list_sessions()) == 3

    @pytest.mark.parametrize("kwargs", [{"max_concurrent": 0}, {"max_queued": -1}])
    def test_invalid_limits(self, kwargs):
        with pytest.raises(ValueError):
            CrawlSessionManager(**kwargs)


# ====================================================================
# 4. Retention
# ====================================================================

class TestRetention:

    def test_expired_terminal_sessions_evicted(self):
        clock = FakeClock()
        manager = CrawlSessionManager(retention_seconds=3600, clock=clock)
        done, _ = manager.create_session("https://example.com/a", 5)
        active, _ = manager.create_session("https://example.com/b", 5)
        manager.complete_session(done.id, success=True)

        clock.now += 3600
        assert manager.cleanup_expired() == 0

        clock.now += 1
        assert manager.cleanup_expired() == 1
        assert manager.get_session(done.id) is None
        assert manager.get_session(active.id) is active

    def test_running_sessions_never_evicted(self):
        manager = CrawlSessionManager(retention_seconds=0, clock=FakeClock())
        session, _ = manager.create_session("https://example.com", 5)
        assert manager.cleanup_expired(now=10 ** 9) == 0
        assert manager.get_session(session.id) is session

    def test_session_to_dict(self):
        manager = CrawlSessionManager(clock=FakeClock(42.0))
        session, _ = manager.create_session("https://example.com", 7, same_origin_only=False)
        data = session.to_dict()
        assert data['status'] == 'running'
        assert data['maxPages'] == 7
        assert data['sameOriginOnly'] is False
        assert data['createdAt'] == 42.0
