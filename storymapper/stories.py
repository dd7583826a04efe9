"""
User Story Assembly
====================
Turns a finished crawl into a ranked, deduplicated list of user stories:
candidate regression scenarios with a description, a suggested script name,
baseline assertions and a Playwright step outline.

Pure and synchronous; running it twice over the same crawl gives the same
stories in the same order.
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .classifier import classify_kind, compute_score, detect_goal, detect_persona
from .cta import select_primary_cta
from .models import STORY_KIND_ORDER, CrawlResult, PageSummary, StoryKind, UserStory
from .navigation import NavReference, build_navigation_index
from .rules import DEFAULT_RULES, StoryRules
from .utils import fold_accents, normalize_url, to_slug

logger = logging.getLogger(__name__)

MAX_FORM_FIELD_LABELS = 6
MAX_OUTLINE_FIELD_HINTS = 4


@dataclass(frozen=True)
class StoryCandidate:
    """A page paired with everything inferred about it, before ranking."""
    page: PageSummary
    kind: StoryKind
    score: int
    nav_refs: Tuple[NavReference, ...] = ()
    persona: Optional[str] = None
    goal: Optional[str] = None
    cta_label: Optional[str] = None


def _sentence_case(text: str) -> str:
    text = text.strip()
    return text[:1].upper() + text[1:]


def _unique(values) -> List[str]:
    seen: Set[str] = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _pattern(text: str) -> str:
    return f"re.compile({re.escape(text)!r}, re.IGNORECASE)"


def _field_hints(page: PageSummary) -> List[str]:
    if not page.forms:
        return []
    return _unique(
        (f.label or '').strip() or f.name or f.type for f in page.forms[0].fields
    )


def build_story_id(url: str, kind: StoryKind) -> str:
    """Deterministic id: kind plus a short content hash of URL and kind."""
    digest = hashlib.sha1(f"{url}-{kind.value}".encode('utf-8')).hexdigest()[:8]
    return f"{kind.value}-{digest}"


# ---------------------------------------------------------------------------
# Text templates
# ---------------------------------------------------------------------------

def build_description(candidate: StoryCandidate) -> str:
    page, kind = candidate.page, candidate.kind
    nav = f" via {candidate.nav_refs[0].path}" if candidate.nav_refs else ''
    persona = f" for {candidate.persona} personas" if candidate.persona else ''
    goal = f" to {candidate.goal}" if candidate.goal else ''
    cta = f' using the "{candidate.cta_label}" CTA' if candidate.cta_label else ''
    label = page.title or page.url

    if kind is StoryKind.AUTHENTICATION:
        return (f"Validate authentication on {label}{nav}{persona}, "
                f"ensuring login works with provided test credentials{goal}.")
    if kind is StoryKind.COMPLEX:
        return (f"Complete the key form on {label}{nav}{persona}, "
                f"filling mandatory fields and submitting{goal}{cta}.")
    if kind is StoryKind.INTERACTION:
        return (f"Exercise the primary CTA on {label}{nav}{persona}{goal}{cta}, "
                f"confirming interactive elements behave as expected.")
    return f"Navigate through {label}{nav}{persona}{goal}, verifying the content loads and links resolve."


def derive_script_name(candidate: StoryCandidate) -> str:
    page = candidate.page
    segments = [s for s in page.url.split('/') if s]
    fallback = page.title or (segments[-1] if segments else '') or 'story'
    if candidate.cta_label:
        source = candidate.cta_label
    elif candidate.nav_refs:
        source = candidate.nav_refs[0].item_label
    else:
        source = fallback
    slug = to_slug(fold_accents(source)).strip('-')
    return f"{candidate.kind.value}-{slug or 'flow'}"


def build_expected_outcome(candidate: StoryCandidate) -> str:
    if candidate.goal:
        return _sentence_case(candidate.goal)

    kind = candidate.kind
    if kind is StoryKind.AUTHENTICATION:
        return "Successful authentication using the provided test account without triggering MFA or lockout."
    if kind is StoryKind.COMPLEX:
        return "Form submission succeeds with test data and displays the expected confirmation state."
    if kind is StoryKind.INTERACTION:
        cta = f' by activating "{candidate.cta_label}"' if candidate.cta_label else ''
        return f"Primary interaction completes without errors{cta}."
    return "Page content loads without errors and primary navigation remains accessible."


def build_baseline_assertions(candidate: StoryCandidate) -> List[str]:
    page = candidate.page
    assertions = []
    if page.title:
        assertions.append(f'Title matches "{page.title}".')
    if page.heading_outline and page.heading_outline[0].text:
        assertions.append(f'Primary heading displays "{page.heading_outline[0].text}".')
    if candidate.cta_label:
        assertions.append(f'CTA "{candidate.cta_label}" is visible and interactive.')
    if candidate.nav_refs:
        assertions.append(f'Navigation link "{candidate.nav_refs[0].item_label}" remains visible.')
    if any(form.fields for form in page.forms):
        assertions.append("Key form fields accept input and validation messages remain clear.")
    return _unique(assertions)


def build_repeatability_notes(candidate: StoryCandidate, rules: StoryRules = DEFAULT_RULES) -> List[str]:
    notes = []
    if candidate.kind is StoryKind.AUTHENTICATION:
        notes.append("Use dedicated non-production credentials; ensure account is reset between runs.")
    elif candidate.page.forms:
        notes.append("Provide deterministic test data for form fields and clear submissions after each run.")

    if candidate.cta_label:
        folded = fold_accents(candidate.cta_label).lower()
        if any(term in folded for term in rules.side_effect_cta_terms):
            notes.append("Mock downstream booking/purchase side-effects or run against a sandbox environment.")

    if not notes:
        notes.append("No special setup required; verify target environment stability before regression runs.")
    return notes


def build_playwright_outline(candidate: StoryCandidate, supporting_pages: Sequence[str]) -> List[str]:
    """Step hints for a pytest-playwright script (sync API)."""
    page, kind = candidate.page, candidate.kind
    steps = [f"page.goto({page.url!r}, wait_until=\"networkidle\")"]

    if page.title:
        steps.append(f"expect(page).to_have_title({_pattern(page.title)})")

    if page.heading_outline and page.heading_outline[0].text:
        heading = page.heading_outline[0]
        steps.append(
            f"expect(page.get_by_role(\"heading\", level={heading.level}, "
            f"name={_pattern(heading.text)})).to_be_visible()"
        )

    if candidate.nav_refs:
        steps.append(
            f"expect(page.get_by_role(\"link\", name={_pattern(candidate.nav_refs[0].item_label)}).first)"
            f".to_be_visible()"
        )

    if candidate.persona:
        steps.append(f"# Persona focus: {candidate.persona}.")
    if candidate.goal:
        steps.append(f"# Goal: {_sentence_case(candidate.goal)}.")

    hints = _field_hints(page)[:MAX_OUTLINE_FIELD_HINTS]
    if hints:
        steps.append(f"# Detected form fields: {', '.join(hints)}.")

    if kind is StoryKind.AUTHENTICATION:
        steps.append("# Provide authentication credentials (e.g. TEST_EMAIL / TEST_PASSWORD) before running.")

    if candidate.cta_label:
        pattern = _pattern(candidate.cta_label)
        steps.append(
            f"cta = page.get_by_role(\"button\", name={pattern})"
            f".or_(page.get_by_role(\"link\", name={pattern})).first"
        )
        steps.append("expect(cta).to_be_visible()")
        steps.append("cta.click()")

    if kind is StoryKind.COMPLEX and page.forms:
        steps.append("# Fill in the required form fields and submit the form.")

    if supporting_pages:
        steps.append(f"# Verify navigation to {supporting_pages[0]} if the flow redirects.")

    return _unique(steps)


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

def build_candidate(
    page: PageSummary,
    nav_refs: Sequence[NavReference],
    rules: StoryRules = DEFAULT_RULES,
) -> StoryCandidate:
    kind = classify_kind(page, nav_refs, rules)
    persona = detect_persona(page, rules)
    goal = detect_goal(page, nav_refs, rules)
    cta_label = select_primary_cta(page.primary_ctas, rules)
    score = compute_score(page, kind, nav_refs, persona, cta_label, rules)
    return StoryCandidate(
        page=page,
        kind=kind,
        score=score,
        nav_refs=tuple(nav_refs),
        persona=persona,
        goal=goal,
        cta_label=cta_label,
    )


def _to_story(candidate: StoryCandidate, crawl: CrawlResult, rules: StoryRules) -> UserStory:
    page = candidate.page
    supporting = _unique(crawl.edges.get(page.url, []))[:rules.max_supporting_pages]
    return UserStory(
        id=build_story_id(page.url, candidate.kind),
        kind=candidate.kind,
        title=page.title or page.url,
        entry_url=page.url,
        description=build_description(candidate),
        suggested_script_name=derive_script_name(candidate),
        supporting_pages=tuple(supporting),
        primary_cta_label=candidate.cta_label,
        expected_outcome=build_expected_outcome(candidate),
        baseline_assertions=tuple(build_baseline_assertions(candidate)),
        repeatability_notes=tuple(build_repeatability_notes(candidate, rules)),
        playwright_outline=tuple(build_playwright_outline(candidate, supporting)),
        detected_form_field_labels=tuple(_field_hints(page)[:MAX_FORM_FIELD_LABELS]),
    )


def identify_user_stories(crawl: CrawlResult, rules: StoryRules = DEFAULT_RULES) -> List[UserStory]:
    """
    Rank every crawled page as a story candidate and keep the best ones.

    Candidates are sorted by score (stable, so crawl order breaks ties);
    each (URL, kind) pair is accepted once and each kind keeps at most
    ``rules.story_limit_per_kind`` stories. Output is grouped by kind in
    the order authentication, browsing, complex, interaction.
    """
    index = build_navigation_index(crawl)

    candidates = []
    for page in crawl.pages.values():
        nav_refs = index.get(normalize_url(page.url), [])
        candidates.append(build_candidate(page, nav_refs, rules))
    candidates.sort(key=lambda c: c.score, reverse=True)

    grouped: Dict[StoryKind, List[UserStory]] = {kind: [] for kind in STORY_KIND_ORDER}
    accepted: Set[Tuple[str, StoryKind]] = set()
    for candidate in candidates:
        key = (normalize_url(candidate.page.url), candidate.kind)
        if key in accepted:
            continue
        if len(grouped[candidate.kind]) >= rules.story_limit_per_kind:
            continue
        grouped[candidate.kind].append(_to_story(candidate, crawl, rules))
        accepted.add(key)

    stories = [story for kind in STORY_KIND_ORDER for story in grouped[kind]]
    logger.info(
        f"[STORIES] {len(stories)} stories from {len(candidates)} pages "
        + ", ".join(f"{kind.value}={len(grouped[kind])}" for kind in STORY_KIND_ORDER)
    )
    return stories
