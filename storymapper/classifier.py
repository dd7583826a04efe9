"""
Story Classifier & Scorer
Assigns each crawled page a story kind, persona and goal, and computes the
relevance score used to rank story candidates.
"""

from typing import Iterable, List, Optional, Sequence

from .models import PageSummary, StoryKind
from .navigation import NavReference
from .rules import DEFAULT_RULES, StoryRules


def _contains_any(haystacks: Iterable[str], keywords: Sequence[str]) -> bool:
    haystacks = list(haystacks)
    return any(keyword in text for keyword in keywords for text in haystacks)


def _has_password_field(page: PageSummary) -> bool:
    return any(f.type == 'password' for form in page.forms for f in form.fields)


def _cta_cue_texts(page: PageSummary, nav_refs: Sequence[NavReference]) -> List[str]:
    return (
        [page.title.lower()]
        + [k.lower() for k in page.primary_keywords]
        + [ref.item_label.lower() for ref in nav_refs]
        + [label.lower() for label in page.cta_labels]
    )


def classify_kind(
    page: PageSummary,
    nav_refs: Sequence[NavReference] = (),
    rules: StoryRules = DEFAULT_RULES,
) -> StoryKind:
    """
    Classify a page; the first matching rule wins.

    1. authentication: a password field, or an auth keyword in the title
    2. the kind implied by a schema.org type
    3. complex: a form with many fields or a select/textarea
    4. interaction: a CTA cue, several interactive elements, or any form
    5. browsing
    """
    title = page.title.lower()
    if _has_password_field(page) or any(k in title for k in rules.auth_keywords):
        return StoryKind.AUTHENTICATION

    for schema_type in page.schema_org_types:
        kind = rules.schema_kind(schema_type)
        if kind is not None:
            return kind

    forms = [form for form in page.forms if form.fields]
    for form in forms:
        if (len(form.fields) >= rules.complex_form_min_fields
                or any(f.type in rules.complex_field_types for f in form.fields)):
            return StoryKind.COMPLEX

    if (_contains_any(_cta_cue_texts(page, nav_refs), rules.cta_keywords)
            or page.interactive_element_count >= rules.interaction_min_elements
            or forms):
        return StoryKind.INTERACTION

    return StoryKind.BROWSING


def detect_persona(page: PageSummary, rules: StoryRules = DEFAULT_RULES) -> Optional[str]:
    """Name of the first persona bucket whose vocabulary appears on the page."""
    haystack = ' '.join(
        [page.title, page.meta_description or ''] + list(page.primary_keywords)
    ).lower()
    for bucket in rules.persona_buckets:
        if any(term in haystack for term in bucket.terms):
            return bucket.name
    return None


def detect_goal(
    page: PageSummary,
    nav_refs: Sequence[NavReference] = (),
    rules: StoryRules = DEFAULT_RULES,
) -> Optional[str]:
    """Short intent phrase such as ``"compare pricing and plan options"``."""
    sources = (
        [page.title, page.meta_description or '']
        + list(page.primary_keywords)
        + [ref.item_label for ref in nav_refs]
        + page.cta_labels
    )
    haystack = ' '.join(sources).lower()
    for rule in rules.goal_rules:
        if any(term in haystack for term in rule.terms):
            return rule.goal

    # first schema type (in page order) that any rule recognises
    for schema_type in (t.lower() for t in page.schema_org_types):
        for rule in rules.schema_goal_rules:
            if any(term in schema_type for term in rule.terms):
                return rule.goal
    return None


def compute_score(
    page: PageSummary,
    kind: StoryKind,
    nav_refs: Sequence[NavReference] = (),
    persona: Optional[str] = None,
    cta_label: Optional[str] = None,
    rules: StoryRules = DEFAULT_RULES,
) -> int:
    """Additive relevance score of a story candidate."""
    weights = rules.score
    score = 0

    if nav_refs:
        score += weights.nav_reference
        if any(ref.depth == 0 for ref in nav_refs):
            score += weights.top_level_nav

    score += weights.kind_bonus.get(kind, 0)

    if page.forms:
        score += weights.has_form
    if page.schema_org_types:
        score += weights.has_schema_type

    cta_texts = [page.title.lower()] + [k.lower() for k in page.primary_keywords] + [
        label.lower() for label in page.cta_labels
    ]
    if _contains_any(cta_texts, rules.cta_keywords):
        score += weights.cta_keyword

    if persona:
        score += weights.persona
    if cta_label:
        score += weights.cta_label

    score += min(page.interactive_element_count, weights.interactive_cap)
    return score
