#!/usr/bin/env python3
"""
Command-line entry point
========================
Crawls a site, infers user stories and writes the artifacts.

All configuration flows through ``CrawlerRunConfig``: defaults, then
``STORYMAPPER_*`` environment variables (a ``.env`` file is honoured), then
flags.

Run with: python -m storymapper https://example.com
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from .crawler import SiteCrawler
from .run_config import CrawlerRunConfig
from .storage import export_stories_csv, export_stories_docx, write_artifacts
from .stories import identify_user_stories

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='storymapper',
        description='Map a website and infer regression-test user stories',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m storymapper https://example.com
  python -m storymapper https://example.com --max-pages 80 --output-docx stories.docx
  python -m storymapper https://example.com --static --cookies cookies.json
        """
    )
    parser.add_argument('url', help='Seed URL to crawl')
    parser.add_argument('--max-pages', type=int, help='Maximum pages to visit, 1-200 (default: 40)')
    parser.add_argument('--allow-cross-origin', action='store_true',
                        help='Follow links leaving the seed origin')
    parser.add_argument('--navigation-timeout', type=int, metavar='MS',
                        help='Per-page navigation timeout in ms (default: 15000)')
    parser.add_argument('--cookies', type=str, metavar='FILE',
                        help='JSON file with cookies to pre-seed the browser')
    parser.add_argument('--static', action='store_true',
                        help='Fetch pages over plain HTTP instead of a headless browser')
    parser.add_argument('--headed', action='store_true', help='Show the browser window')
    parser.add_argument('--output-dir', type=str, help='Artifact root directory (default: output)')
    parser.add_argument('--output-csv', type=str, help='CSV story report path')
    parser.add_argument('--output-docx', type=str, help='DOCX story report path')
    return parser


def print_summary(crawl, stories, crawl_dir) -> None:
    """Print crawl summary."""
    stats = crawl.stats
    print("\n" + "=" * 65)
    print("CRAWL COMPLETE")
    print("=" * 65)
    print(f"  Pages crawled:       {stats.get('pages_crawled', len(crawl.pages))}")
    print(f"  Failed pages:        {stats.get('pages_failed', 0)}")
    if stats.get('pages_without_metadata'):
        print(f"  Without metadata:    {stats.get('pages_without_metadata', 0)}")
    print(f"  Pending URLs:        {len(crawl.pending_urls)}")
    print(f"  Total time:          {stats.get('elapsed_time', 0):.1f}s")
    print(f"  User stories:        {len(stories)}")
    for story in stories:
        print(f"    [{story.kind.value:<14}] {story.title[:60]}")
    if crawl_dir:
        print(f"  Artifacts:           {crawl_dir}")
    print("=" * 65)


def main(argv=None) -> int:
    env_path = Path.cwd() / '.env'
    if env_path.exists():
        load_dotenv(env_path)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )

    args = build_parser().parse_args(argv)

    try:
        cfg = CrawlerRunConfig.from_cli_args(args)
        cfg.validate()
        cfg.load_cookies()
    except (ValueError, OSError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    url = args.url
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url
    cfg.log_summary(url)

    crawler = SiteCrawler(cfg.to_crawl_config())
    crawler.set_progress_callback(
        lambda pages, current_url, stats: print(f"[Page {pages}/{cfg.max_pages}] {current_url[:70]}")
    )
    try:
        crawl = crawler.crawl(url)
    except ValueError as e:
        logger.error(f"Invalid URL: {e}")
        return 1

    stories = identify_user_stories(crawl)

    crawl_dir = None
    if cfg.output_dir:
        crawl_dir = write_artifacts(crawl, stories, cfg.output_dir)
    if cfg.output_csv:
        export_stories_csv(stories, cfg.output_csv)
    if cfg.output_docx:
        export_stories_docx(stories, crawl, cfg.output_docx)

    print_summary(crawl, stories, crawl_dir)
    return 0


if __name__ == '__main__':
    sys.exit(main())
