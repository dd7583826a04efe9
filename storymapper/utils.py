"""
Utility Functions
URL normalization, same-origin checks, safe link resolution, text folding
and crawl progress tracking.
"""

import logging
import re
import time
import unicodedata
from threading import Lock
from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

HTTP_SCHEMES = frozenset(('http', 'https'))

_DEFAULT_PORTS = {'http': 80, 'https': 443}

_TRAILING_SLASHES_RE = re.compile(r'/+$')

_ZERO_WIDTH_RE = re.compile(r'[\u200b-\u200d\u2060]')


def _strip_default_port(netloc: str, scheme: str) -> str:
    """Remove ``:80`` for http and ``:443`` for https from *netloc*."""
    if ':' not in netloc or netloc.endswith(']'):
        return netloc
    host, _, port = netloc.rpartition(':')
    if port == str(_DEFAULT_PORTS.get(scheme)):
        return host
    return netloc


def normalize_url(url: str) -> str:
    """
    Canonicalize a URL for use as a page/edge dictionary key.

    - scheme and host are lower-cased, default ports dropped
    - an empty path becomes ``/``
    - a run of trailing slashes collapses to a single ``/``
    - the fragment is removed; the query string is kept as-is

    Args:
        url: Absolute URL

    Returns:
        Canonical URL string

    Raises:
        ValueError: If the URL has no scheme/host or an invalid port
    """
    if not url or not url.strip():
        raise ValueError("Empty URL")

    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    if not scheme or not parts.netloc:
        raise ValueError(f"Invalid URL: {url}")

    # .port raises ValueError when the port is not a number in range
    if parts.port is not None and not parts.hostname:
        raise ValueError(f"Invalid URL: {url}")

    netloc = _strip_default_port(parts.netloc.lower(), scheme)

    path = parts.path or '/'
    if path.endswith('/'):
        path = _TRAILING_SLASHES_RE.sub('/', path)

    return urlunsplit((scheme, netloc, path, parts.query, ''))


def is_http_protocol(url: str) -> bool:
    """Return True if *url* is HTTP(S); relative references count as HTTP."""
    try:
        resolved = urljoin('http://placeholder/', url.strip())
        return urlsplit(resolved).scheme.lower() in HTTP_SCHEMES
    except (ValueError, AttributeError):
        return False


def _origin(url: str) -> tuple:
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    port = parts.port or _DEFAULT_PORTS.get(scheme)
    return scheme, (parts.hostname or '').lower(), port


def is_same_origin(origin: str, candidate: str) -> bool:
    """
    Check whether *candidate* has the same scheme, host and port as *origin*.

    Relative candidates are resolved against *origin* first.
    """
    try:
        resolved = urljoin(origin, candidate)
        return _origin(origin) == _origin(resolved)
    except ValueError:
        return False


def safe_resolve(base: str, href: str) -> Optional[str]:
    """
    Resolve *href* against *base* and normalize the result.

    Returns:
        Canonical absolute URL, or None when the link is unparsable or not
        HTTP(S) (``javascript:``, ``mailto:``, ``tel:``, ``data:`` ...)
    """
    if href is None:
        return None
    try:
        resolved = urljoin(base, href.strip())
        if not is_http_protocol(resolved):
            return None
        return normalize_url(resolved)
    except ValueError:
        return None


def strip_zero_width(text: str) -> str:
    """Remove zero-width spaces/joiners and word joiners."""
    return _ZERO_WIDTH_RE.sub('', text)


def fold_accents(text: str) -> str:
    """Decompose and drop combining marks: ``Réserver`` -> ``Reserver``."""
    decomposed = unicodedata.normalize('NFD', text)
    return ''.join(ch for ch in decomposed if not unicodedata.category(ch).startswith('M'))


def clean_text(text: str) -> str:
    """Clean and normalize text content."""
    if not text:
        return ""

    # Replace multiple whitespace with single space
    text = re.sub(r'\s+', ' ', text)

    return text.strip()


def to_slug(text: str) -> str:
    """Lower-case *text* and collapse every non-alphanumeric run into ``-``."""
    slug = re.sub(r'[^a-z0-9]+', '-', text.lower())
    return re.sub(r'-+', '-', slug.strip())


def sanitize_file_slug(value: Optional[str], fallback: str) -> str:
    """Filesystem-friendly slug with leading/trailing dashes removed."""
    base = value if value and value.strip() else fallback
    slug = re.sub(r'[^a-z0-9]+', '-', base.lower()).strip('-')
    return slug or fallback.lower()


class ProgressTracker:
    """
    Tracks crawling progress for reporting.
    """

    def __init__(self):
        self.pages_crawled = 0
        self.pages_failed = 0
        self.pages_without_metadata = 0
        self.links_discovered = 0
        self.start_time = None
        self.end_time = None
        self._lock = Lock()

    def start(self) -> None:
        """Mark crawl start."""
        self.start_time = time.time()

    def finish(self) -> None:
        """Mark crawl end."""
        self.end_time = time.time()

    def increment_crawled(self) -> int:
        with self._lock:
            self.pages_crawled += 1
            return self.pages_crawled

    def increment_failed(self) -> int:
        with self._lock:
            self.pages_failed += 1
            return self.pages_failed

    def increment_without_metadata(self) -> int:
        with self._lock:
            self.pages_without_metadata += 1
            return self.pages_without_metadata

    def add_links(self, count: int) -> None:
        with self._lock:
            self.links_discovered += count

    @property
    def elapsed_time(self) -> float:
        """Elapsed time in seconds."""
        if self.start_time is None:
            return 0
        end = self.end_time or time.time()
        return end - self.start_time

    @property
    def pages_per_second(self) -> float:
        elapsed = self.elapsed_time
        if elapsed == 0:
            return 0
        return self.pages_crawled / elapsed

    def get_stats(self) -> dict:
        """Get current statistics."""
        return {
            'pages_crawled': self.pages_crawled,
            'pages_failed': self.pages_failed,
            'pages_without_metadata': self.pages_without_metadata,
            'links_discovered': self.links_discovered,
            'elapsed_time': round(self.elapsed_time, 2),
            'pages_per_second': round(self.pages_per_second, 2),
        }
