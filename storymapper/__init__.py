"""
storymapper
Maps a website with a bounded breadth-first crawl and infers prioritized
user stories (candidate regression-test scenarios) from the pages found.
"""

from .crawler import CrawlConfig, SiteCrawler, crawl_site
from .errors import (
    ExtractionError,
    NavigationError,
    SessionCapacityError,
    SessionNotFoundError,
    StoryMapperError,
)
from .models import CrawlResult, PageSummary, StoryKind, UserStory
from .run_config import CrawlerRunConfig
from .session_manager import CrawlSession, CrawlSessionManager, SessionStatus
from .stories import identify_user_stories
from .utils import normalize_url

__version__ = "1.0.0"

__all__ = [
    "CrawlConfig",
    "SiteCrawler",
    "crawl_site",
    "CrawlResult",
    "PageSummary",
    "StoryKind",
    "UserStory",
    "CrawlerRunConfig",
    "CrawlSession",
    "CrawlSessionManager",
    "SessionStatus",
    "identify_user_stories",
    "normalize_url",
    "StoryMapperError",
    "NavigationError",
    "ExtractionError",
    "SessionCapacityError",
    "SessionNotFoundError",
]
