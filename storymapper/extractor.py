"""
Page Extractor
Turns a rendered HTML document into a structured ``PageExtraction``:
title, links, forms, landmarks, navigation menus, headings, breadcrumbs,
schema.org types, keywords and call-to-action candidates.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from .errors import ExtractionError
from .models import (
    BreadcrumbEntry,
    CtaCandidate,
    FormField,
    FormSummary,
    HeadingEntry,
    NavigationItem,
    NavigationSection,
    PageExtraction,
    PageLink,
)
from .utils import clean_text

logger = logging.getLogger(__name__)

_BS_PARSER = "lxml"


class PageExtractor(ABC):
    """Produces a ``PageExtraction`` from a loaded document."""

    @abstractmethod
    def extract(self, html: str, url: str, has_scrollable_sections: bool = False) -> PageExtraction:
        """
        Raises:
            ExtractionError: If the document cannot be analysed
        """


class HtmlPageExtractor(PageExtractor):
    """
    Extracts page metadata with BeautifulSoup + CSS selectors.

    Works on the HTML snapshot of a page, so the same extractor serves the
    Playwright adapter (``page.content()``) and the static requests adapter.
    """

    INTERACTIVE_SELECTOR = (
        'button, [role="button"], a[role="button"], '
        'input[type="button"], input[type="submit"], [data-action]'
    )

    LANDMARK_SELECTORS = (
        ('banner', 'header, [role="banner"]'),
        ('navigation', 'nav, [role="navigation"]'),
        ('main', 'main, [role="main"]'),
        ('complementary', 'aside, [role="complementary"]'),
        ('contentinfo', 'footer, [role="contentinfo"]'),
        ('search', 'search, [role="search"]'),
    )

    NAV_ROOT_SELECTOR = 'nav, [role="navigation"]'

    BREADCRUMB_SELECTOR = (
        'nav[aria-label*="breadcrumb" i], [role="navigation"][aria-label*="breadcrumb" i], '
        'nav.breadcrumb, ol.breadcrumb, ul.breadcrumb'
    )

    CTA_SELECTOR = 'button, [role="button"], input[type="submit"], input[type="button"], a[href]'

    # Anchors only count as CTAs when styled like a button
    CTA_CLASS_RE = re.compile(r'\b(btn|button|cta)\b', re.IGNORECASE)

    # Input types that never carry user data
    SKIPPED_INPUT_TYPES = {'hidden', 'submit', 'button', 'reset', 'image'}

    MAX_KEYWORDS = 12
    HEADING_KEYWORDS = 5
    MAX_CTAS = 10
    MAX_CTA_LABEL_LENGTH = 80

    def extract(self, html: str, url: str, has_scrollable_sections: bool = False) -> PageExtraction:
        """
        Extract structured metadata from an HTML document.

        Args:
            html: Document markup
            url: Final page URL, used to resolve relative hrefs
            has_scrollable_sections: Layout hint measured by the browser

        Returns:
            PageExtraction snapshot

        Raises:
            ExtractionError: If the markup cannot be parsed
        """
        try:
            soup = BeautifulSoup(html or "", _BS_PARSER)

            # JSON-LD lives in <script>, read it before scripts are stripped
            schema_types = self._extract_schema_types(soup, url)
            for element in soup.find_all(['script', 'style', 'noscript', 'template']):
                element.decompose()

            headings = self._extract_headings(soup)
            extraction = PageExtraction(
                title=self._extract_title(soup),
                links=tuple(self._extract_links(soup, url)),
                forms=tuple(self._extract_forms(soup, url)),
                interactive_element_count=len(soup.select(self.INTERACTIVE_SELECTOR)),
                has_scrollable_sections=has_scrollable_sections,
                landmarks=tuple(self._extract_landmarks(soup)),
                navigation_sections=tuple(self._extract_navigation(soup, url)),
                heading_outline=tuple(headings),
                breadcrumb_trail=tuple(self._extract_breadcrumbs(soup, url)),
                schema_org_types=tuple(schema_types),
                meta_description=self._extract_meta_description(soup),
                primary_keywords=tuple(self._extract_keywords(soup, headings)),
                primary_ctas=tuple(self._extract_ctas(soup)),
            )
        except Exception as e:
            raise ExtractionError(url, str(e)) from e

        logger.debug(
            f"[EXTRACT] {url[:70]} title='{extraction.title[:50]}', "
            f"links={len(extraction.links)}, forms={len(extraction.forms)}, "
            f"ctas={len(extraction.primary_ctas)}"
        )
        return extraction

    # ------------------------------------------------------------------
    # Text metadata
    # ------------------------------------------------------------------

    def _extract_title(self, soup: BeautifulSoup) -> str:
        title_tag = soup.find('title')
        if title_tag:
            title = clean_text(title_tag.get_text())
            if title:
                return title

        og_title = soup.find('meta', property='og:title')
        if og_title and og_title.get('content'):
            return clean_text(og_title['content'])

        return ""

    def _extract_meta_description(self, soup: BeautifulSoup) -> Optional[str]:
        meta = soup.find('meta', attrs={'name': 'description'})
        if meta and meta.get('content'):
            return clean_text(meta['content'])

        og_desc = soup.find('meta', property='og:description')
        if og_desc and og_desc.get('content'):
            return clean_text(og_desc['content'])

        return None

    def _extract_keywords(self, soup: BeautifulSoup, headings: List[HeadingEntry]) -> List[str]:
        """Meta keywords, or the first few headings when the page declares none."""
        meta = soup.find('meta', attrs={'name': 'keywords'})
        if meta and meta.get('content'):
            keywords = [clean_text(k) for k in meta['content'].split(',')]
            keywords = [k for k in keywords if k]
            if keywords:
                return keywords[:self.MAX_KEYWORDS]

        return [h.text for h in headings[:self.HEADING_KEYWORDS]]

    def _extract_headings(self, soup: BeautifulSoup) -> List[HeadingEntry]:
        headings = []
        for element in soup.find_all(['h1', 'h2', 'h3', 'h4']):
            text = clean_text(element.get_text(' '))
            if text:
                headings.append(HeadingEntry(level=int(element.name[1]), text=text, id=element.get('id')))
        return headings

    def _extract_schema_types(self, soup: BeautifulSoup, url: str) -> List[str]:
        """Collect every ``@type`` declared in JSON-LD blocks, in order, deduplicated."""
        types: List[str] = []
        for script in soup.find_all('script', attrs={'type': 'application/ld+json'}):
            raw = script.string or script.get_text()
            if not raw or not raw.strip():
                continue
            try:
                data = json.loads(raw)
            except ValueError as e:
                logger.debug(f"[EXTRACT] Ignoring malformed JSON-LD on {url}: {e}")
                continue
            for schema_type in _walk_schema_types(data):
                if schema_type not in types:
                    types.append(schema_type)
        return types

    # ------------------------------------------------------------------
    # Links and navigation
    # ------------------------------------------------------------------

    @staticmethod
    def _anchor_text(anchor: Tag) -> str:
        return clean_text(anchor.get_text(' ')) or clean_text(anchor.get('aria-label') or '')

    @staticmethod
    def _absolute(base: str, href: str) -> str:
        try:
            return urljoin(base, href)
        except ValueError:
            return href

    def _iter_anchors(self, root) -> Iterable[Tag]:
        for anchor in root.select('a[href]'):
            href = (anchor.get('href') or '').strip()
            if not href or href.lower().startswith('javascript:'):
                continue
            yield anchor

    def _extract_links(self, soup: BeautifulSoup, url: str) -> List[PageLink]:
        return [
            PageLink(url=self._absolute(url, anchor['href'].strip()), text=self._anchor_text(anchor))
            for anchor in self._iter_anchors(soup)
        ]

    @staticmethod
    def _nav_depth(anchor: Tag, root: Tag) -> int:
        """Nesting level of a menu entry: top-level list items are depth 0."""
        lists = 0
        for parent in anchor.parents:
            if parent is root:
                break
            if parent.name in ('ul', 'ol'):
                lists += 1
        return max(lists - 1, 0)

    def _extract_navigation(self, soup: BeautifulSoup, url: str) -> List[NavigationSection]:
        sections = []
        for root in soup.select(self.NAV_ROOT_SELECTOR):
            label = clean_text(root.get('aria-label') or root.get('data-testid') or '') or None
            items = []
            seen = set()
            for anchor in self._iter_anchors(root):
                text = self._anchor_text(anchor)
                if not text:
                    continue
                item = NavigationItem(
                    url=self._absolute(url, anchor['href'].strip()),
                    text=text,
                    depth=self._nav_depth(anchor, root),
                )
                key = (item.depth, item.url, item.text)
                if key in seen:
                    continue
                seen.add(key)
                items.append(item)
            if items:
                sections.append(NavigationSection(label=label, items=tuple(items)))
        return sections

    def _extract_breadcrumbs(self, soup: BeautifulSoup, url: str) -> List[BreadcrumbEntry]:
        container = soup.select_one(self.BREADCRUMB_SELECTOR)
        if container is None:
            return []

        anchors = list(self._iter_anchors(container))
        if anchors:
            return [
                BreadcrumbEntry(url=self._absolute(url, a['href'].strip()), text=self._anchor_text(a))
                for a in anchors
                if self._anchor_text(a)
            ]

        crumbs = []
        for li in container.find_all('li'):
            text = clean_text(li.get_text(' '))
            if text:
                crumbs.append(BreadcrumbEntry(url=url, text=text))
        return crumbs

    def _extract_landmarks(self, soup: BeautifulSoup) -> List[str]:
        return [kind for kind, selector in self.LANDMARK_SELECTORS if soup.select_one(selector)]

    # ------------------------------------------------------------------
    # Forms
    # ------------------------------------------------------------------

    def _field_label(self, soup: BeautifulSoup, element: Tag) -> Optional[str]:
        element_id = element.get('id')
        if element_id:
            label = soup.find('label', attrs={'for': element_id})
            if label:
                text = clean_text(label.get_text(' '))
                if text:
                    return text

        wrapping = element.find_parent('label')
        if wrapping:
            text = clean_text(wrapping.get_text(' '))
            if text:
                return text

        for attr in ('aria-label', 'placeholder'):
            text = clean_text(element.get(attr) or '')
            if text:
                return text
        return None

    def _extract_forms(self, soup: BeautifulSoup, url: str) -> List[FormSummary]:
        forms = []
        for form in soup.find_all('form'):
            fields = []
            for element in form.find_all(['input', 'textarea', 'select']):
                if element.name == 'input':
                    field_type = (element.get('type') or 'text').strip().lower()
                    if field_type in self.SKIPPED_INPUT_TYPES:
                        continue
                else:
                    field_type = element.name

                name = element.get('name') or element.get('id') or ''
                label = self._field_label(soup, element)
                if not name and not label:
                    continue

                fields.append(FormField(
                    name=name,
                    type=field_type,
                    label=label,
                    required=element.has_attr('required'),
                ))

            action = (form.get('action') or '').strip()
            forms.append(FormSummary(
                action=self._absolute(url, action) if action else url,
                method=(form.get('method') or 'GET').strip().upper(),
                fields=tuple(fields),
            ))
        return forms

    # ------------------------------------------------------------------
    # Calls to action
    # ------------------------------------------------------------------

    def _cta_label(self, element: Tag) -> str:
        if element.name == 'input':
            return clean_text(element.get('value') or element.get('aria-label') or '')
        return clean_text(element.get_text(' ')) or clean_text(element.get('aria-label') or '')

    @staticmethod
    def _in_main_content(element: Tag) -> bool:
        for parent in element.parents:
            if parent.name == 'main' or parent.get('role') == 'main':
                return True
        return False

    def _extract_ctas(self, soup: BeautifulSoup) -> List[CtaCandidate]:
        """
        Collect button-like elements as CTA candidates.

        Candidates inside the main content and real buttons are ranked first
        (stable sort on ``priority``), since the label selector favours
        earlier labels.
        """
        candidates = []
        seen = set()
        for element in soup.select(self.CTA_SELECTOR):
            is_button = element.name in ('button', 'input') or element.get('role') == 'button'
            if not is_button:
                classes = ' '.join(element.get('class') or [])
                if not self.CTA_CLASS_RE.search(classes):
                    continue

            label = self._cta_label(element)
            if not label or len(label) > self.MAX_CTA_LABEL_LENGTH:
                continue
            key = label.lower()
            if key in seen:
                continue
            seen.add(key)

            in_main = self._in_main_content(element)
            candidates.append(CtaCandidate(
                label=label,
                element_type='button' if is_button else 'link',
                is_in_main_content=in_main,
                priority=(10 if in_main else 0) + (2 if is_button else 0),
            ))

        candidates.sort(key=lambda c: -c.priority)
        return candidates[:self.MAX_CTAS]


def _walk_schema_types(node) -> Iterable[str]:
    """Yield ``@type`` values from a JSON-LD tree, depth first."""
    if isinstance(node, list):
        for item in node:
            yield from _walk_schema_types(item)
    elif isinstance(node, dict):
        declared = node.get('@type')
        if isinstance(declared, str):
            yield declared
        elif isinstance(declared, list):
            for value in declared:
                if isinstance(value, str):
                    yield value
        for key, value in node.items():
            if key != '@type' and isinstance(value, (dict, list)):
                yield from _walk_schema_types(value)
