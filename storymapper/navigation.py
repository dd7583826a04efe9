"""
Navigation Index
Maps every URL that appears in a navigation menu to the menu entries that
point at it, so the story scorer can tell menu-reachable pages apart.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from .models import CrawlResult
from .utils import safe_resolve


@dataclass(frozen=True)
class NavReference:
    """One menu entry pointing at a page.

    ``path`` is the human-readable menu trail, e.g. ``"Main -> Pricing"``.
    """
    path: str
    item_label: str
    section_label: Optional[str] = None
    depth: int = 0


def build_navigation_index(crawl: CrawlResult) -> Dict[str, List[NavReference]]:
    """
    Index navigation items by their canonical target URL.

    Item URLs are resolved against the page that declares the menu;
    unresolvable items are skipped. The same URL referenced from many pages
    collects one reference per occurrence.
    """
    index: Dict[str, List[NavReference]] = {}
    for page_url, page in crawl.pages.items():
        for section in page.navigation_sections:
            for item in section.items:
                target = safe_resolve(page_url, item.url)
                if target is None:
                    continue
                path = " -> ".join(part for part in (section.label, item.text) if part) or item.text
                index.setdefault(target, []).append(NavReference(
                    path=path,
                    item_label=item.text,
                    section_label=section.label,
                    depth=item.depth,
                ))
    return index
