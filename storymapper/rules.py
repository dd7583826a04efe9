"""
Heuristic Rule Tables
======================
Single source of truth for every keyword list and weight used by the story
classifier, the scorer and the CTA label selector.

Tables are immutable (tuples, frozen dataclasses, read-only mappings) and are
passed explicitly into the scoring functions, so tests can substitute smaller
tables and the weights stay inspectable instead of hiding in control flow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from .models import StoryKind


@dataclass(frozen=True)
class KeywordGroup:
    """An ordered set of equivalent terms sharing one weight (or one outcome)."""
    terms: Tuple[str, ...]
    weight: float = 0
    name: str = ""


@dataclass(frozen=True)
class GoalRule:
    """Maps any of ``terms`` found in the page text to a goal phrase."""
    terms: Tuple[str, ...]
    goal: str


@dataclass(frozen=True)
class ScoreWeights:
    """Additive weights of the story relevance score."""
    nav_reference: int = 40
    top_level_nav: int = 20
    kind_bonus: Mapping[StoryKind, int] = field(default_factory=lambda: MappingProxyType({
        StoryKind.AUTHENTICATION: 35,
        StoryKind.COMPLEX: 25,
        StoryKind.INTERACTION: 15,
        StoryKind.BROWSING: 0,
    }))
    has_form: int = 10
    has_schema_type: int = 12
    cta_keyword: int = 18
    persona: int = 8
    cta_label: int = 10
    interactive_cap: int = 10


@dataclass(frozen=True)
class CtaWeights:
    """Scoring constants of the primary CTA label selector."""
    penalty: float = -6
    short_label_bonus: float = 6          # <= max_words words
    max_words: int = 4
    length_bonus: float = 4               # min_length..max_length characters
    min_length: int = 4
    max_length: int = 24
    index_penalty: float = 0.1            # per position, favours earlier labels
    # only applied when candidates carry element metadata (CtaCandidate)
    main_content_bonus: float = 10
    button_bonus: float = 2
    floor: float = float('-inf')


@dataclass(frozen=True)
class StoryRules:
    """Bundle of every table the story inference pass consults."""
    story_limit_per_kind: int = 3
    max_supporting_pages: int = 5
    auth_keywords: Tuple[str, ...] = ('login', 'log in', 'sign in', 'connexion')
    cta_keywords: Tuple[str, ...] = (
        'pricing', 'price', 'contact', 'demo', 'start', 'signup', 'sign up',
        'book', 'trial', 'quote', 'dashboard', 'tableau de bord',
    )
    schema_kind_map: Mapping[str, StoryKind] = field(default_factory=lambda: MappingProxyType({
        'authentication': StoryKind.AUTHENTICATION,
        'loginpage': StoryKind.AUTHENTICATION,
        'contactpage': StoryKind.INTERACTION,
        'product': StoryKind.INTERACTION,
        'faqpage': StoryKind.BROWSING,
        'aboutpage': StoryKind.BROWSING,
        'collectionpage': StoryKind.BROWSING,
    }))
    complex_form_min_fields: int = 4
    complex_field_types: Tuple[str, ...] = ('select', 'textarea')
    interaction_min_elements: int = 3
    persona_buckets: Tuple[KeywordGroup, ...] = (
        KeywordGroup(name='builders', terms=('developer', 'engineer', 'technical', 'api')),
        KeywordGroup(name='design', terms=('designer', 'ui', 'ux', 'creative')),
        KeywordGroup(name='marketing', terms=('marketing', 'growth', 'campaign')),
        KeywordGroup(name='operations', terms=('operations', 'workflow', 'automation')),
        KeywordGroup(name='leadership', terms=('executive', 'founder', 'leadership', 'strategy')),
    )
    goal_rules: Tuple[GoalRule, ...] = (
        GoalRule(('pricing', 'plans'), 'compare pricing and plan options'),
        GoalRule(('contact', 'support'), 'contact the team for support or sales'),
        GoalRule(('demo', 'book'), 'request a product demonstration'),
        GoalRule(('docs', 'documentation'), 'explore product documentation'),
        GoalRule(('blog', 'news'), 'read recent updates and insights'),
    )
    schema_goal_rules: Tuple[GoalRule, ...] = (
        GoalRule(('contactpage',), 'submit a contact request'),
        GoalRule(('product',), 'evaluate the product offering'),
        GoalRule(('faqpage',), 'review frequently asked questions'),
    )
    score: ScoreWeights = field(default_factory=ScoreWeights)
    # CTA vocabulary (accent-folded) that triggers real-world side effects
    side_effect_cta_terms: Tuple[str, ...] = ('reserver', 'reserve', 'book', 'purchase', 'checkout')

    # ---- CTA label selection ----
    cta_preferred_groups: Tuple[KeywordGroup, ...] = (
        KeywordGroup(('reserver', 'reserve', 'book'), 30),
        KeywordGroup(('commencer', 'start', 'get started'), 24),
        KeywordGroup(('essayer', 'try'), 22),
        KeywordGroup(('acheter', 'buy', 'purchase'), 20),
        KeywordGroup(('demander', 'request'), 18),
        KeywordGroup(("s'inscrire", 'inscrire', 'sign up', 'signup', 'register'), 18),
        KeywordGroup(('continuer', 'continue'), 12),
        KeywordGroup(('connexion', 'login', 'sign in'), 8),
        KeywordGroup(('tableau de bord', 'dashboard'), 25),
    )
    cta_penalty_terms: Tuple[str, ...] = ('connexion', 'login', 'sign in', 'sign-in')
    # folded, whitespace-free garbled token -> repaired label
    cta_repairs: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({
        'reserver': 'Réserver',
        'reerver': 'Réserver',
        'poserunequestion': 'Poser une question',
        'poerunequetion': 'Poser une question',
    }))
    # applied to the final display label
    cta_accent_restorations: Tuple[Tuple[str, str], ...] = (('Reserver', 'Réserver'),)
    cta: CtaWeights = field(default_factory=CtaWeights)

    def schema_kind(self, schema_type: str) -> Optional[StoryKind]:
        return self.schema_kind_map.get(schema_type.lower())


DEFAULT_RULES = StoryRules()
