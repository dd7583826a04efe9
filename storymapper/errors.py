"""
Error Taxonomy
Exceptions raised across the crawler, the browser adapters and the session manager.

Per-page failures (navigation, extraction, tab) are recoverable: the crawler logs
them and moves on to the next queued URL.  Capacity errors are surfaced to the
caller that requested a new crawl session.
"""


class StoryMapperError(Exception):
    """Base class for all storymapper errors."""


class NavigationError(StoryMapperError):
    """A page could not be loaded (timeout, DNS failure, connection reset...)."""

    def __init__(self, url: str, reason: str = ""):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to load {url}: {reason}" if reason else f"Failed to load {url}")


class ExtractionError(StoryMapperError):
    """Metadata extraction failed on an already loaded page."""

    def __init__(self, url: str, reason: str = ""):
        self.url = url
        self.reason = reason
        super().__init__(f"Could not extract metadata for {url}: {reason}")


class BrowserError(StoryMapperError):
    """The browser could not open or drive a tab (closed context, crashed page)."""


class SessionCapacityError(StoryMapperError):
    """Raised when both the running slots and the pending queue are full."""


class SessionNotFoundError(StoryMapperError, KeyError):
    """Raised when a crawl session id is unknown to the manager."""
