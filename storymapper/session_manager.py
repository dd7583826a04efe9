"""
Crawl Session Manager
=====================
Admission control for concurrent crawls.

Responsibilities:
    1. Register crawl sessions under a generated id.
    2. Run at most ``max_concurrent`` sessions; queue the rest (FIFO).
    3. On completion of a running session, promote exactly one queued session.
    4. Evict terminal sessions once they are older than the retention window.

Every state transition happens under one lock, so the running count is never
observed stale.  Terminal results are expected to be persisted elsewhere
before eviction.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Tuple

from .errors import SessionCapacityError, SessionNotFoundError

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    PENDING = 'pending'
    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED)


@dataclass
class CrawlSession:
    """Lifecycle record of one crawl request."""
    id: str
    url: str
    max_pages: int
    same_origin_only: bool = True
    status: SessionStatus = SessionStatus.PENDING
    created_at: float = 0.0
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    error: Optional[str] = None
    metadata: Dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {
            'id': self.id,
            'url': self.url,
            'maxPages': self.max_pages,
            'sameOriginOnly': self.same_origin_only,
            'status': self.status.value,
            'createdAt': self.created_at,
            'startedAt': self.started_at,
            'completedAt': self.completed_at,
        }
        if self.error:
            data['error'] = self.error
        if self.metadata:
            data['metadata'] = dict(self.metadata)
        return data


class CrawlSessionManager:
    """
    Owns the session map and the pending queue.

    Args:
        max_concurrent: Sessions allowed in ``running`` at once
        retention_seconds: Age after completion at which sessions are evicted
        max_queued: Pending sessions accepted before rejecting new requests
        clock: Time source returning epoch seconds
        on_promote: Called (outside the lock) with each session promoted
            from the queue when a running session completes
    """

    def __init__(
        self,
        max_concurrent: int = 3,
        retention_seconds: float = 3600,
        max_queued: int = 50,
        clock: Callable[[], float] = time.time,
        on_promote: Optional[Callable[[CrawlSession], None]] = None,
    ):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        if max_queued < 0:
            raise ValueError(f"max_queued must be >= 0, got {max_queued}")

        self.max_concurrent = max_concurrent
        self.retention_seconds = retention_seconds
        self.max_queued = max_queued
        self._clock = clock
        self.on_promote = on_promote

        self._lock = threading.Lock()
        self._sessions: Dict[str, CrawlSession] = {}
        self._queue: Deque[str] = deque()
        self._running = 0

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create_session(
        self,
        url: str,
        max_pages: int,
        same_origin_only: bool = True,
    ) -> Tuple[CrawlSession, bool]:
        """
        Register a crawl request.

        Returns:
            (session, queued): ``queued`` is True when the session waits in
            the pending queue, False when it is already running

        Raises:
            SessionCapacityError: If all slots are busy and the queue is full
        """
        with self._lock:
            now = self._clock()
            session = CrawlSession(
                id=uuid.uuid4().hex,
                url=url,
                max_pages=max_pages,
                same_origin_only=same_origin_only,
                created_at=now,
            )

            if self._running < self.max_concurrent:
                session.status = SessionStatus.RUNNING
                session.started_at = now
                self._running += 1
                queued = False
            elif len(self._queue) < self.max_queued:
                self._queue.append(session.id)
                queued = True
            else:
                raise SessionCapacityError(
                    f"{self._running} crawls running and {len(self._queue)} queued; "
                    f"try again later"
                )

            self._sessions[session.id] = session
            running, waiting = self._running, len(self._queue)

        logger.info(
            f"[SESSION] {session.id[:8]} {'queued' if queued else 'running'} "
            f"for {url} (running={running}, queued={waiting})"
        )
        return session, queued

    def complete_session(
        self,
        session_id: str,
        success: bool,
        error: Optional[str] = None,
    ) -> Optional[CrawlSession]:
        """
        Mark a session completed or failed.

        Completing a running session frees its slot and promotes at most one
        pending session. Completing an already terminal session is a no-op.
        A pending session that is completed leaves the queue without a
        promotion.

        Returns:
            The promoted session, if any

        Raises:
            SessionNotFoundError: If the id is unknown
        """
        promoted = None
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if session.status.is_terminal:
                logger.debug(f"[SESSION] {session_id[:8]} already {session.status.value}")
                return None

            was_running = session.status is SessionStatus.RUNNING
            session.status = SessionStatus.COMPLETED if success else SessionStatus.FAILED
            session.completed_at = self._clock()
            session.error = None if success else (error or "Crawl failed")

            if was_running:
                self._running -= 1
                promoted = self._promote_next()
            else:
                self._queue.remove(session_id)

        logger.info(
            f"[SESSION] {session_id[:8]} {session.status.value}"
            + (f": {session.error}" if session.error else "")
        )
        if promoted is not None:
            logger.info(f"[SESSION] {promoted.id[:8]} promoted from queue for {promoted.url}")
            if self.on_promote is not None:
                self.on_promote(promoted)
        return promoted

    def _promote_next(self) -> Optional[CrawlSession]:
        """Move the oldest pending session to running. Caller holds the lock."""
        if self._running >= self.max_concurrent or not self._queue:
            return None
        session = self._sessions[self._queue.popleft()]
        session.status = SessionStatus.RUNNING
        session.started_at = self._clock()
        self._running += 1
        return session

    def cleanup_expired(self, now: Optional[float] = None) -> int:
        """
        Evict terminal sessions completed more than ``retention_seconds`` ago.

        Returns:
            Number of sessions removed
        """
        with self._lock:
            now = self._clock() if now is None else now
            expired = [
                sid for sid, s in self._sessions.items()
                if s.status.is_terminal
                and s.completed_at is not None
                and now - s.completed_at > self.retention_seconds
            ]
            for sid in expired:
                del self._sessions[sid]

        if expired:
            logger.info(f"[SESSION] Evicted {len(expired)} expired sessions")
        return len(expired)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Optional[CrawlSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def list_sessions(self, status: Optional[SessionStatus] = None) -> List[CrawlSession]:
        """Sessions in creation order, optionally filtered by status."""
        with self._lock:
            sessions = list(self._sessions.values())
        if status is not None:
            sessions = [s for s in sessions if s.status is status]
        return sessions

    @property
    def running_count(self) -> int:
        with self._lock:
            return self._running

    @property
    def queued_count(self) -> int:
        with self._lock:
            return len(self._queue)

    def queue_position(self, session_id: str) -> Optional[int]:
        """1-based position in the pending queue, or None if not queued."""
        with self._lock:
            try:
                return self._queue.index(session_id) + 1
            except ValueError:
                return None
