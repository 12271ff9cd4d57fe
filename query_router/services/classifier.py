"""Heuristic query classifier.

Scores a query against three independent pattern sets and decides whether it
is a direct lookup (``simple``), an analytical question (``complex``) or both
(``hybrid``).

Scoring
-------
For each pattern set, every matching pattern contributes a weight of
``min(2 * len(match) / len(query), 1)``.  The set score combines a saturating
match count (three or more matches is maximal) with the mean weight::

    score = 0.6 * min(matches / 3, 1) + 0.4 * mean(weight)

Decision policy, in priority order:

1. combined-intent score > 0.3 and >= 0.5 * simple score -> ``hybrid``
2. no trigger term, simple > 0.2 and complex > 0.2       -> ``hybrid``
3. complex > simple, or any trigger term                  -> ``complex``
4. simple > 0                                             -> ``simple``
5. otherwise                                              -> ``complex`` (0.4)

The classifier is a pure function of its input.  The confidence floor is
applied by the router, so raw output stays inspectable.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from query_router.config.models import ClassifierConfig
from query_router.core.catalog import (
    CATEGORY_PATTERN,
    DEPARTMENT_ACRONYM_PATTERN,
    DEPARTMENT_NAME_PATTERN,
    RELATIVE_YEAR_PATTERN,
    SEVERITY_PATTERN,
    STATUS_PATTERN,
    YEAR_PATTERN,
)
from query_router.models.domain import QueryIntent, QueryKind
from query_router.services.filter_extractor import FilterExtractor

_RECORD_NOUN = r"(?:findings?|issues?|problems?|items?|records?)"


def _compile(patterns: list[str], flags: int = re.IGNORECASE) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, flags) for p in patterns)


SIMPLE_PATTERNS = _compile(
    [
        rf"\b(?:show|list|find|get|display|give me|what are)\b.*\b{_RECORD_NOUN}\b",
        r"\bhow many\b.*\b(?:findings?|issues?|problems?|records?)\b",
        r"\b(?:in|from|during)\s+\d{4}\b",
        r"\b(?:critical|high|medium|low)\s+(?:priority|severity|findings?|issues?)\b",
        r"\b(?:open|closed|in progress|deferred)\s+(?:findings?|status|issues?)\b",
        r"\b(?:all|every)\s+(?:findings?|issues?|records?)\b",
        r"\b(?:findings?|records?)\s+(?:in|from|for|at)\b",
        r"\b(?:hotel|apartment|hospital|school|university|clinic|mall|office|house)\s+"
        r"(?:findings?|issues?|projects?)\b",
        r"\bcount\s+(?:of\s+)?(?:findings?|issues?|records?)\b",
        r"\b(?:filter|search)\s+(?:by|for)\b",
    ]
)

COMPLEX_PATTERNS = _compile(
    [
        r"\b(?:what|why|how)\s+should\b",
        r"\b(?:recommend|suggest|advise|propose)\w*",
        r"\b(?:analyze|analysis|analyse)\b",
        r"\b(?:patterns?|trends?|tendenc(?:y|ies))\b",
        r"\b(?:compare|comparison|versus|vs\.?)(?!\w)",
        r"\b(?:predict|forecast|anticipate|expect)\w*",
        r"\b(?:prioritize|priority|important|focus|urgent)\s+(?:on|for|based)\b",
        r"\bbased on\b.*\b(?:findings?|data|history|historical)\b",
        r"\b(?:insights?|conclusions?|takeaways?)\b",
        r"\b(?:improve|improvement|better|optimize)\b",
        r"\b(?:risk|risks|risky)\s+(?:assessment|analysis|evaluation)\b",
        r"\b(?:root cause|causes?|reasons?)\s+(?:analysis|for|of|behind)\b",
        r"\b(?:summary|summarize|summarise|overview)\b",
        r"\b(?:explain|explanation|elaborate)\b",
        r"\bwhat\s+(?:can|could|would|might)\b",
    ]
)

HYBRID_PATTERNS = _compile(
    [
        r"\b(?:show|list|find|get)\b.*\b(?:and|then)\b.*\b(?:explain|analy[sz]e|summarize)",
        r"\b(?:findings?|issues?)\b.*\b(?:and|then)\b.*\b(?:what|why|how)\b",
        r"\b(?:list|show)\b.*\b(?:with|including)\b.*\b(?:analysis|explanation|summary)\b",
        r"\b(?:get|find)\b.*\band\b.*\b(?:recommend|suggest|advise)",
        r"\b(?:display|show)\b.*\b(?:explain|describe)\b.*\b(?:patterns?|trends?)\b",
    ]
)

# Catalog-derived evidence that a query is a pure filter lookup.  Only used
# when no analytical evidence exists at all.
FILTER_TERM_PATTERNS: tuple[re.Pattern[str], ...] = (
    YEAR_PATTERN,
    RELATIVE_YEAR_PATTERN,
    SEVERITY_PATTERN,
    STATUS_PATTERN,
    CATEGORY_PATTERN,
    DEPARTMENT_NAME_PATTERN,
    DEPARTMENT_ACRONYM_PATTERN,
)

TRIGGER_TERMS: tuple[str, ...] = (
    "recommend",
    "recommendation",
    "recommendations",
    "suggest",
    "suggestions",
    "advise",
    "analyze",
    "analyse",
    "analysis",
    "compare",
    "comparison",
    "pattern",
    "patterns",
    "trend",
    "trends",
    "predict",
    "forecast",
    "prioritize",
    "prioritise",
    "insight",
    "insights",
    "improve",
    "improvement",
    "optimize",
    "summary",
    "summarize",
    "explain",
    "why",
    "how should",
    "what should",
    "based on",
)

_TRIGGER_PATTERNS = tuple(
    (term, re.compile(rf"\b{re.escape(term)}\b", re.IGNORECASE))
    for term in TRIGGER_TERMS
)


@dataclass(frozen=True)
class PatternScores:
    """Raw per-set scores, kept for diagnostics."""

    simple: float
    complex: float
    hybrid: float


def pattern_score(query: str, patterns: tuple[re.Pattern[str], ...]) -> float:
    """Score *query* against one pattern set (0 when nothing matches)."""
    if not query:
        return 0.0
    match_count = 0
    total_weight = 0.0
    for pattern in patterns:
        match = pattern.search(query)
        if match:
            match_count += 1
            total_weight += min(len(match.group(0)) / len(query) * 2, 1.0)
    if match_count == 0:
        return 0.0
    count_score = min(match_count / 3, 1.0)
    return count_score * 0.6 + (total_weight / match_count) * 0.4


def find_trigger_terms(query: str) -> list[str]:
    return [term for term, pattern in _TRIGGER_PATTERNS if pattern.search(query)]


class QueryClassifier:
    """Classifies free-text queries into a :class:`QueryIntent`.

    Usage::

        classifier = QueryClassifier()
        intent = classifier.classify("Show critical findings in 2024")
        intent.kind  # QueryKind.SIMPLE
    """

    def __init__(
        self,
        config: ClassifierConfig | None = None,
        extractor: FilterExtractor | None = None,
    ) -> None:
        self.config = config or ClassifierConfig()
        self.extractor = extractor or FilterExtractor()

    def score(self, text: str) -> PatternScores:
        """Compute simple/complex/hybrid pattern scores for *text*."""
        query = text.strip()
        simple = pattern_score(query, SIMPLE_PATTERNS)
        complex_ = pattern_score(query, COMPLEX_PATTERNS)
        hybrid = pattern_score(query, HYBRID_PATTERNS)
        if complex_ == 0 and hybrid == 0 and not find_trigger_terms(query):
            simple = max(simple, pattern_score(query, FILTER_TERM_PATTERNS))
        return PatternScores(simple=simple, complex=complex_, hybrid=hybrid)

    def classify(self, text: str) -> QueryIntent:
        query = text.strip()
        scores = self.score(query)
        triggers = find_trigger_terms(query)
        kind, confidence = self._decide(scores, bool(triggers))
        confidence = max(0.0, min(confidence, 1.0))

        return QueryIntent(
            kind=kind,
            confidence=confidence,
            filters=self.extractor.extract_pattern(query),
            requires_model=kind is not QueryKind.SIMPLE,
            trigger_terms=tuple(triggers),
        )

    def _decide(self, scores: PatternScores, has_triggers: bool) -> tuple[QueryKind, float]:
        cfg = self.config
        simple, complex_, hybrid = scores.simple, scores.complex, scores.hybrid

        if hybrid > cfg.hybrid_threshold and hybrid >= simple * cfg.hybrid_ratio:
            return QueryKind.HYBRID, hybrid + 0.2

        if (
            not has_triggers
            and simple > cfg.dual_threshold
            and complex_ > cfg.dual_threshold
        ):
            return QueryKind.HYBRID, (simple + complex_) / 2 + 0.1

        if complex_ > simple or has_triggers:
            return QueryKind.COMPLEX, complex_ + 0.3

        if simple > 0:
            return QueryKind.SIMPLE, simple + 0.4

        return QueryKind.COMPLEX, 0.4
