"""
Primary CTA Selection
Picks the call-to-action label a page most wants visitors to act on, with
tolerant matching against canonical CTA vocabulary (English and French).

Matching folds case, accents and whitespace and accepts a single missing
character, which absorbs the common scraping artefacts (``Rserver``,
``Réserver``, ``RESERVER``) without a general edit-distance search.
"""

from typing import Optional, Sequence, Union

from .models import CtaCandidate
from .rules import DEFAULT_RULES, StoryRules
from .utils import fold_accents, strip_zero_width

CtaInput = Union[str, CtaCandidate]


def _collapse(text: str) -> str:
    return ''.join(text.split())


def repair_label(label: str, rules: StoryRules = DEFAULT_RULES) -> str:
    """Strip zero-width characters and fix known garbled tokens."""
    trimmed = strip_zero_width(label).strip()
    folded = fold_accents(_collapse(trimmed)).lower()
    return rules.cta_repairs.get(folded, trimmed)


def approx_contains(haystack: str, needle: str) -> bool:
    """
    True if one string contains the other, or if they differ by exactly one
    deleted character.
    """
    if needle in haystack or haystack in needle:
        return True
    if len(needle) == len(haystack) + 1:
        return _one_deletion(needle, haystack)
    if len(haystack) == len(needle) + 1:
        return _one_deletion(haystack, needle)
    return False


def _one_deletion(longer: str, shorter: str) -> bool:
    return any(longer[:i] + longer[i + 1:] == shorter for i in range(len(longer)))


def _term_matches(lower: str, accent_folded: str, collapsed: str, term: str) -> bool:
    term_lower = term.lower()
    folded_term = fold_accents(term_lower)
    collapsed_term = _collapse(folded_term)
    return (
        term_lower in lower
        or folded_term in accent_folded
        or collapsed_term in collapsed
        or approx_contains(collapsed, collapsed_term)
    )


def _prettify(text: str) -> str:
    return ' '.join(word[:1].upper() + word[1:] for word in text.split(' ') if word)


def _score_label(label: str, index: int, rules: StoryRules):
    """
    Returns:
        (score, display label), or None for labels that are empty once repaired
    """
    weights = rules.cta
    normalized = strip_zero_width(repair_label(label.strip(), rules))
    if not normalized:
        return None

    lower = normalized.lower()
    accent_folded = fold_accents(lower)
    collapsed = _collapse(accent_folded)

    score = 0.0
    canonical = None
    for group in rules.cta_preferred_groups:
        matched = next(
            (term for term in group.terms if _term_matches(lower, accent_folded, collapsed, term)),
            None,
        )
        if matched is not None:
            score += group.weight
            if canonical is None:
                canonical = matched

    if any(_term_matches(lower, accent_folded, collapsed, term) for term in rules.cta_penalty_terms):
        score += weights.penalty

    if len(normalized.split()) <= weights.max_words:
        score += weights.short_label_bonus
    if weights.min_length <= len(normalized) <= weights.max_length:
        score += weights.length_bonus

    score -= index * weights.index_penalty

    if canonical is not None and canonical.lower() not in lower:
        display = _prettify(canonical)
    else:
        display = normalized
    for plain, accented in rules.cta_accent_restorations:
        display = display.replace(plain, accented)

    return score, display


def select_primary_cta(
    candidates: Sequence[CtaInput],
    rules: StoryRules = DEFAULT_RULES,
) -> Optional[str]:
    """
    Choose the primary CTA label among *candidates* (in page order).

    Candidates may be plain labels or ``CtaCandidate`` records; the latter
    also earn the main-content and button bonuses.

    Returns:
        The best display label, the first raw label when nothing scores above
        the floor, or None for an empty input
    """
    if not candidates:
        return None

    weights = rules.cta
    best_label = None
    best_score = weights.floor
    for index, candidate in enumerate(candidates):
        if isinstance(candidate, CtaCandidate):
            label = candidate.label
        else:
            label = candidate

        scored = _score_label(label, index, rules)
        if scored is None:
            continue
        score, display = scored

        if isinstance(candidate, CtaCandidate):
            if candidate.is_in_main_content:
                score += weights.main_content_bonus
            if candidate.element_type == 'button':
                score += weights.button_bonus

        if score > best_score:
            best_score = score
            best_label = display

    if best_label is None:
        first = candidates[0]
        return first.label if isinstance(first, CtaCandidate) else first
    return best_label
