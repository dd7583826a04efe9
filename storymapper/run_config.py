"""
Unified Run Configuration
=========================
Single source of truth for crawl defaults and runtime limits.

Values are layered: ``_DEFAULTS`` -> ``STORYMAPPER_*`` environment variables
-> command-line flags.  The crawler's own ``CrawlConfig`` is built *from*
this object via ``to_crawl_config()``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .browser import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

ENV_PREFIX = "STORYMAPPER_"


# ---------------------------------------------------------------------------
# Canonical defaults
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "max_pages": 40,
    "navigation_timeout_ms": 15000,
    "quiescence_timeout_ms": 2500,   # soft wait for network idle
    "same_origin_only": True,
    "headless": True,
    "browser": "playwright",         # "playwright" | "static"
    "output_dir": "output",
    "user_agent": DEFAULT_USER_AGENT,
}

BROWSER_MODES = ("playwright", "static")

_TRUE_TOKENS = {"1", "true", "yes", "y", "on"}
_FALSE_TOKENS = {"0", "false", "no", "n", "off"}


def _parse_bool(name: str, raw: str) -> bool:
    token = raw.strip().lower()
    if token in _TRUE_TOKENS:
        return True
    if token in _FALSE_TOKENS:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class CrawlerRunConfig:
    """
    Configuration consumed by the CLI and the crawl service.

    Populate via:
      - ``CrawlerRunConfig()``                 -> all defaults
      - ``CrawlerRunConfig.from_env()``        -> defaults + environment
      - ``CrawlerRunConfig.from_cli_args(ns)`` -> environment + argparse flags
    """

    # ---- Crawl limits ----
    max_pages: int = _DEFAULTS["max_pages"]
    navigation_timeout_ms: int = _DEFAULTS["navigation_timeout_ms"]
    quiescence_timeout_ms: int = _DEFAULTS["quiescence_timeout_ms"]
    same_origin_only: bool = _DEFAULTS["same_origin_only"]

    # ---- Browser ----
    browser: str = _DEFAULTS["browser"]
    headless: bool = _DEFAULTS["headless"]
    user_agent: str = _DEFAULTS["user_agent"]
    cookies_file: Optional[str] = None
    cookies: List[Dict[str, Any]] = field(default_factory=list)

    # ---- Output (None = skip) ----
    output_dir: Optional[str] = _DEFAULTS["output_dir"]
    output_csv: Optional[str] = None
    output_docx: Optional[str] = None

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CrawlerRunConfig":
        """
        Build config from ``STORYMAPPER_*`` variables.

        Raises:
            ValueError: If a variable holds an unparsable value
        """
        env = os.environ if environ is None else environ
        cfg = cls()

        def get(key: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + key.upper())
            return value if value not in (None, "") else None

        if get("max_pages") is not None:
            cfg.max_pages = _parse_int("STORYMAPPER_MAX_PAGES", get("max_pages"))
        if get("navigation_timeout_ms") is not None:
            cfg.navigation_timeout_ms = _parse_int(
                "STORYMAPPER_NAVIGATION_TIMEOUT_MS", get("navigation_timeout_ms"))
        if get("quiescence_timeout_ms") is not None:
            cfg.quiescence_timeout_ms = _parse_int(
                "STORYMAPPER_QUIESCENCE_TIMEOUT_MS", get("quiescence_timeout_ms"))
        if get("same_origin_only") is not None:
            cfg.same_origin_only = _parse_bool("STORYMAPPER_SAME_ORIGIN_ONLY", get("same_origin_only"))
        if get("headless") is not None:
            cfg.headless = _parse_bool("STORYMAPPER_HEADLESS", get("headless"))
        if get("browser") is not None:
            cfg.browser = get("browser").strip().lower()
        if get("user_agent") is not None:
            cfg.user_agent = get("user_agent")
        if get("cookies_file") is not None:
            cfg.cookies_file = get("cookies_file")
        if get("output_dir") is not None:
            cfg.output_dir = get("output_dir")
        return cfg

    @classmethod
    def from_cli_args(cls, args, environ: Optional[Mapping[str, str]] = None) -> "CrawlerRunConfig":
        """Build config from an argparse Namespace (``__main__.py``) on top of the environment."""
        cfg = cls.from_env(environ)

        if getattr(args, "max_pages", None) is not None:
            cfg.max_pages = args.max_pages
        if getattr(args, "navigation_timeout", None) is not None:
            cfg.navigation_timeout_ms = args.navigation_timeout
        if getattr(args, "allow_cross_origin", False):
            cfg.same_origin_only = False
        if getattr(args, "static", False):
            cfg.browser = "static"
        if getattr(args, "headed", False):
            cfg.headless = False
        if getattr(args, "cookies", None):
            cfg.cookies_file = args.cookies
        if getattr(args, "output_dir", None):
            cfg.output_dir = args.output_dir
        cfg.output_csv = getattr(args, "output_csv", None)
        cfg.output_docx = getattr(args, "output_docx", None)
        return cfg

    # -----------------------------------------------------------------------
    # Validation / conversion
    # -----------------------------------------------------------------------
    def validate(self) -> None:
        """
        Raises:
            ValueError: On an unknown browser mode or out-of-range limits
        """
        if self.browser not in BROWSER_MODES:
            raise ValueError(f"browser must be one of {', '.join(BROWSER_MODES)}, got {self.browser!r}")
        self.to_crawl_config().validate()

    def load_cookies(self) -> List[Dict[str, Any]]:
        """Read ``cookies_file`` (if set) into ``cookies``."""
        if self.cookies_file:
            from .browser import load_cookies
            self.cookies = load_cookies(self.cookies_file)
        return self.cookies

    def to_crawl_config(self):
        """Return a ``CrawlConfig`` populated from this run config."""
        # Import here to avoid circular dependency
        from .crawler import CrawlConfig
        return CrawlConfig(
            max_pages=self.max_pages,
            same_origin_only=self.same_origin_only,
            navigation_timeout_ms=self.navigation_timeout_ms,
            quiescence_timeout_ms=self.quiescence_timeout_ms,
            headless=self.headless,
            user_agent=self.user_agent,
            use_browser=self.browser == "playwright",
            cookies=list(self.cookies),
        )

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, url: str) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("CRAWL RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  URL:              {url}")
        logger.info(f"  Browser:          {self.browser} ({'headless' if self.headless else 'headed'})")
        logger.info(f"  Max Pages:        {self.max_pages}")
        logger.info(f"  Nav Timeout:      {self.navigation_timeout_ms}ms per page")
        logger.info(f"  Quiescence Wait:  {self.quiescence_timeout_ms}ms")
        logger.info(f"  Same Origin Only: {self.same_origin_only}")
        if self.cookies_file:
            logger.info(f"  Cookies:          {len(self.cookies)} from {self.cookies_file}")
        logger.info(f"  Output Dir:       {self.output_dir}")
        if self.output_csv:
            logger.info(f"  CSV Report:       {self.output_csv}")
        if self.output_docx:
            logger.info(f"  DOCX Report:      {self.output_docx}")
        logger.info("=" * 60)
