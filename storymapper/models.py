"""
Data Model
===========
Immutable records produced by the crawler and the story assembler.

Every record serialises to the camelCase JSON shape used by the
``site-map.json`` / ``user-stories.json`` artifacts and can be rebuilt from it
(``to_dict`` / ``from_dict``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class StoryKind(str, Enum):
    """Coarse scenario category of a user story."""
    AUTHENTICATION = 'authentication'
    COMPLEX = 'complex'
    INTERACTION = 'interaction'
    BROWSING = 'browsing'


# Output order of the assembled story groups
STORY_KIND_ORDER: Tuple[StoryKind, ...] = (
    StoryKind.AUTHENTICATION,
    StoryKind.BROWSING,
    StoryKind.COMPLEX,
    StoryKind.INTERACTION,
)

LANDMARK_KINDS = ('banner', 'navigation', 'main', 'complementary', 'contentinfo', 'search')


# ---------------------------------------------------------------------------
# Page building blocks
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PageLink:
    url: str
    text: str = ""

    def to_dict(self) -> dict:
        return {'url': self.url, 'text': self.text}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PageLink":
        return cls(url=data.get('url', ''), text=data.get('text', ''))


@dataclass(frozen=True)
class FormField:
    name: str
    type: str = 'text'
    label: Optional[str] = None
    required: bool = False

    def to_dict(self) -> dict:
        data = {'name': self.name, 'type': self.type, 'required': self.required}
        if self.label is not None:
            data['label'] = self.label
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FormField":
        return cls(
            name=data.get('name', ''),
            type=data.get('type', 'text'),
            label=data.get('label'),
            required=bool(data.get('required', False)),
        )


@dataclass(frozen=True)
class FormSummary:
    action: str = ""
    method: str = 'GET'
    fields: Tuple[FormField, ...] = ()

    def to_dict(self) -> dict:
        return {
            'action': self.action,
            'method': self.method,
            'fields': [f.to_dict() for f in self.fields],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FormSummary":
        return cls(
            action=data.get('action', ''),
            method=data.get('method', 'GET'),
            fields=tuple(FormField.from_dict(f) for f in data.get('fields', [])),
        )


@dataclass(frozen=True)
class NavigationItem:
    url: str
    text: str
    depth: int = 0

    def to_dict(self) -> dict:
        return {'url': self.url, 'text': self.text, 'depth': self.depth}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NavigationItem":
        return cls(url=data.get('url', ''), text=data.get('text', ''), depth=int(data.get('depth', 0)))


@dataclass(frozen=True)
class NavigationSection:
    label: Optional[str] = None
    items: Tuple[NavigationItem, ...] = ()

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {'items': [item.to_dict() for item in self.items]}
        if self.label is not None:
            data['label'] = self.label
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NavigationSection":
        return cls(
            label=data.get('label'),
            items=tuple(NavigationItem.from_dict(i) for i in data.get('items', [])),
        )


@dataclass(frozen=True)
class HeadingEntry:
    level: int
    text: str
    id: Optional[str] = None

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {'level': self.level, 'text': self.text}
        if self.id:
            data['id'] = self.id
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HeadingEntry":
        return cls(level=int(data.get('level', 1)), text=data.get('text', ''), id=data.get('id'))


@dataclass(frozen=True)
class BreadcrumbEntry:
    url: str
    text: str

    def to_dict(self) -> dict:
        return {'url': self.url, 'text': self.text}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BreadcrumbEntry":
        return cls(url=data.get('url', ''), text=data.get('text', ''))


@dataclass(frozen=True)
class CtaCandidate:
    """A button or link that looks like a call-to-action."""
    label: str
    element_type: str = 'unknown'    # button | link | unknown
    is_in_main_content: bool = False
    priority: int = 0

    def to_dict(self) -> dict:
        return {
            'label': self.label,
            'elementType': self.element_type,
            'isInMainContent': self.is_in_main_content,
            'priority': self.priority,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "CtaCandidate":
        if isinstance(data, str):
            return cls(label=data)
        return cls(
            label=data.get('label', ''),
            element_type=data.get('elementType', 'unknown'),
            is_in_main_content=bool(data.get('isInMainContent', False)),
            priority=int(data.get('priority', 0)),
        )


# ---------------------------------------------------------------------------
# Page records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PageExtraction:
    """
    Structured snapshot returned by a page extractor.

    Holds everything a ``PageSummary`` carries except the URL and status code,
    which belong to the navigation rather than to the DOM.
    """
    title: str = ""
    links: Tuple[PageLink, ...] = ()
    forms: Tuple[FormSummary, ...] = ()
    interactive_element_count: int = 0
    has_scrollable_sections: bool = False
    landmarks: Tuple[str, ...] = ()
    navigation_sections: Tuple[NavigationSection, ...] = ()
    heading_outline: Tuple[HeadingEntry, ...] = ()
    breadcrumb_trail: Tuple[BreadcrumbEntry, ...] = ()
    schema_org_types: Tuple[str, ...] = ()
    meta_description: Optional[str] = None
    primary_keywords: Tuple[str, ...] = ()
    primary_ctas: Tuple[CtaCandidate, ...] = ()


@dataclass(frozen=True)
class PageSummary:
    """One crawled page, keyed by its canonical URL."""
    url: str
    title: str = ""
    status_code: int = 0
    links: Tuple[PageLink, ...] = ()
    forms: Tuple[FormSummary, ...] = ()
    interactive_element_count: int = 0
    has_scrollable_sections: bool = False
    landmarks: Tuple[str, ...] = ()
    navigation_sections: Tuple[NavigationSection, ...] = ()
    heading_outline: Tuple[HeadingEntry, ...] = ()
    breadcrumb_trail: Tuple[BreadcrumbEntry, ...] = ()
    schema_org_types: Tuple[str, ...] = ()
    meta_description: Optional[str] = None
    primary_keywords: Tuple[str, ...] = ()
    primary_ctas: Tuple[CtaCandidate, ...] = ()

    @classmethod
    def from_extraction(cls, url: str, status_code: int, extraction: PageExtraction) -> "PageSummary":
        return cls(
            url=url,
            status_code=status_code,
            title=extraction.title,
            links=extraction.links,
            forms=extraction.forms,
            interactive_element_count=extraction.interactive_element_count,
            has_scrollable_sections=extraction.has_scrollable_sections,
            landmarks=extraction.landmarks,
            navigation_sections=extraction.navigation_sections,
            heading_outline=extraction.heading_outline,
            breadcrumb_trail=extraction.breadcrumb_trail,
            schema_org_types=extraction.schema_org_types,
            meta_description=extraction.meta_description,
            primary_keywords=extraction.primary_keywords,
            primary_ctas=extraction.primary_ctas,
        )

    @property
    def cta_labels(self) -> List[str]:
        return [cta.label for cta in self.primary_ctas]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON export."""
        data = {
            'url': self.url,
            'title': self.title,
            'statusCode': self.status_code,
            'links': [link.to_dict() for link in self.links],
            'forms': [form.to_dict() for form in self.forms],
            'interactiveElementCount': self.interactive_element_count,
            'hasScrollableSections': self.has_scrollable_sections,
            'landmarks': list(self.landmarks),
            'navigationSections': [section.to_dict() for section in self.navigation_sections],
            'headingOutline': [heading.to_dict() for heading in self.heading_outline],
            'breadcrumbTrail': [crumb.to_dict() for crumb in self.breadcrumb_trail],
            'schemaOrgTypes': list(self.schema_org_types),
            'primaryKeywords': list(self.primary_keywords),
            'primaryCtas': [cta.to_dict() for cta in self.primary_ctas],
        }
        if self.meta_description is not None:
            data['metaDescription'] = self.meta_description
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PageSummary":
        return cls(
            url=data['url'],
            title=data.get('title', ''),
            status_code=int(data.get('statusCode', 0)),
            links=tuple(PageLink.from_dict(l) for l in data.get('links', [])),
            forms=tuple(FormSummary.from_dict(f) for f in data.get('forms', [])),
            interactive_element_count=int(data.get('interactiveElementCount', 0)),
            has_scrollable_sections=bool(data.get('hasScrollableSections', False)),
            landmarks=tuple(data.get('landmarks', [])),
            navigation_sections=tuple(
                NavigationSection.from_dict(s) for s in data.get('navigationSections', [])
            ),
            heading_outline=tuple(HeadingEntry.from_dict(h) for h in data.get('headingOutline', [])),
            breadcrumb_trail=tuple(BreadcrumbEntry.from_dict(b) for b in data.get('breadcrumbTrail', [])),
            schema_org_types=tuple(data.get('schemaOrgTypes', [])),
            meta_description=data.get('metaDescription'),
            primary_keywords=tuple(data.get('primaryKeywords', [])),
            primary_ctas=tuple(CtaCandidate.from_dict(c) for c in data.get('primaryCtas', [])),
        )


@dataclass(frozen=True)
class CrawlResult:
    """
    Result of a crawl operation.

    ``pages`` and ``edges`` are keyed by canonical URL; ``pending_urls`` lists
    URLs that were discovered but never visited before the page budget ran out.
    """
    base_url: str
    pages: Dict[str, PageSummary] = field(default_factory=dict)
    edges: Dict[str, List[str]] = field(default_factory=dict)
    pending_urls: Tuple[str, ...] = ()
    stats: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# User stories
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UserStory:
    """A ranked, deduplicated regression-test scenario."""
    id: str
    kind: StoryKind
    title: str
    entry_url: str
    description: str
    suggested_script_name: str
    supporting_pages: Tuple[str, ...] = ()
    primary_cta_label: Optional[str] = None
    expected_outcome: str = ""
    baseline_assertions: Tuple[str, ...] = ()
    repeatability_notes: Tuple[str, ...] = ()
    playwright_outline: Tuple[str, ...] = ()
    detected_form_field_labels: Tuple[str, ...] = ()
    verification_status: str = 'unverified'

    def to_dict(self) -> dict:
        data = {
            'id': self.id,
            'kind': self.kind.value,
            'title': self.title,
            'entryUrl': self.entry_url,
            'description': self.description,
            'suggestedScriptName': self.suggested_script_name,
            'supportingPages': list(self.supporting_pages),
            'expectedOutcome': self.expected_outcome,
            'baselineAssertions': list(self.baseline_assertions),
            'repeatabilityNotes': list(self.repeatability_notes),
            'playwrightOutline': list(self.playwright_outline),
            'detectedFormFieldLabels': list(self.detected_form_field_labels),
            'verificationStatus': self.verification_status,
        }
        if self.primary_cta_label is not None:
            data['primaryCtaLabel'] = self.primary_cta_label
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserStory":
        return cls(
            id=data['id'],
            kind=StoryKind(data['kind']),
            title=data.get('title', ''),
            entry_url=data['entryUrl'],
            description=data.get('description', ''),
            suggested_script_name=data.get('suggestedScriptName', ''),
            supporting_pages=tuple(data.get('supportingPages', [])),
            primary_cta_label=data.get('primaryCtaLabel'),
            expected_outcome=data.get('expectedOutcome', ''),
            baseline_assertions=tuple(data.get('baselineAssertions', [])),
            repeatability_notes=tuple(data.get('repeatabilityNotes', [])),
            playwright_outline=tuple(data.get('playwrightOutline', [])),
            detected_form_field_labels=tuple(data.get('detectedFormFieldLabels', [])),
            verification_status=data.get('verificationStatus', 'unverified'),
        )
