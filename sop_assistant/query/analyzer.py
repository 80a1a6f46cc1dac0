"""
Query Analyzer for the SOP assistant.

Extracts structured intent from a natural-language question: which state
and order type it is about, which SOP topics it touches, whether the user
wants to see an image, what kind of question it is, and the keywords to
search with. The result drives metadata filtering in the ranking engine.

Pure pattern matching over the tables in data/query_patterns.yaml; no
model calls and no side effects.

Usage:
    from sop_assistant.query import QueryAnalyzer

    analyzer = QueryAnalyzer()
    analysis = analyzer.enhance_query("What are the order limits for Ohio?")
    analysis.state        # "OH"
    analysis.topics       # ["ORDER_LIMIT"]
    analysis.to_filters() # SearchFilters(states={"OH"}, topics={"ORDER_LIMIT"})
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from sop_assistant.config import (
    DEBUG_MODE,
    QUERY_BASE_CONFIDENCE,
    QUERY_KEYWORD_LIMIT,
    QUERY_ORDER_TYPE_CONFIDENCE,
    QUERY_STATE_CONFIDENCE,
    QUERY_TOPIC_CONFIDENCE,
    QUERY_TOPIC_CONFIDENCE_MAX_TOPICS,
)
from sop_assistant.logging_config import debug_log
from sop_assistant.query.patterns import PatternTable, QueryPatterns, load_query_patterns
from sop_assistant.retrieval.base import SearchFilters
from sop_assistant.retrieval.tokenizer import tokenize

# Bare two-letter upper-case tokens ("OH", "NJ") in the original query
_STATE_CODE_RE = re.compile(r"\b([A-Z]{2})\b")


class QuestionType(str, Enum):
    """Kind of question being asked."""

    PROCEDURAL = "PROCEDURAL"
    POLICY = "POLICY"
    LOCATION = "LOCATION"
    DEFINITION = "DEFINITION"
    COMPARISON = "COMPARISON"
    GENERAL = "GENERAL"


@dataclass
class QueryAnalysis:
    """
    Structured reading of one query.

    Attributes:
        original_query: The query as given
        state: Two-letter state code, or None
        order_type: "RISE", "REGULAR", or None
        topics: Topic labels in declaration order
        requires_image: The user asked to see something
        question_type: Kind of question
        is_procedural: How-to vocabulary is present
        keywords: First search keywords, in query order
        confidence: How much was recognized, in [0, 1]
    """

    original_query: str
    state: str | None = None
    order_type: str | None = None
    topics: list[str] = field(default_factory=list)
    requires_image: bool = False
    question_type: QuestionType = QuestionType.GENERAL
    is_procedural: bool = False
    keywords: list[str] = field(default_factory=list)
    confidence: float = QUERY_BASE_CONFIDENCE

    def to_filters(self) -> SearchFilters:
        """
        Metadata filters implied by the analysis.

        state -> states, order type -> sections, topics -> topics,
        image intent -> has_images=True.
        """
        return SearchFilters(
            states=frozenset([self.state]) if self.state else frozenset(),
            sections=frozenset([self.order_type]) if self.order_type else frozenset(),
            topics=frozenset(self.topics),
            has_images=True if self.requires_image else None,
        )

    def summary(self) -> str:
        """
        One-sentence description of what was understood.

        Example:
            "Looking for OH state information, related to order limit."
        """
        parts = []

        if self.state:
            parts.append(f"Looking for {self.state} state information")
        if self.order_type:
            parts.append(f"focusing on {self.order_type.lower()} orders")
        if self.topics:
            topics = ", ".join(topic.lower().replace("_", " ") for topic in self.topics)
            parts.append(f"related to {topics}")
        if self.requires_image:
            parts.append("including visual examples")

        if not parts:
            return f'Searching for general information about "{self.original_query}"'
        return ", ".join(parts) + "."

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_query": self.original_query,
            "state": self.state,
            "order_type": self.order_type,
            "topics": list(self.topics),
            "requires_image": self.requires_image,
            "question_type": self.question_type.value,
            "is_procedural": self.is_procedural,
            "keywords": list(self.keywords),
            "confidence": self.confidence,
        }


def _first_match(table: PatternTable, text: str) -> str | None:
    for label, patterns in table:
        if any(pattern.search(text) for pattern in patterns):
            return label
    return None


def _all_matches(table: PatternTable, text: str) -> list[str]:
    return [
        label for label, patterns in table
        if any(pattern.search(text) for pattern in patterns)
    ]


def _word_start_regex(words: tuple[str, ...]) -> re.Pattern | None:
    if not words:
        return None
    alternatives = "|".join(re.escape(word) for word in words)
    return re.compile(rf"\b(?:{alternatives})")


class QueryAnalyzer:
    """
    Pattern-based query understanding.

    Attributes:
        patterns: Compiled pattern tables in use

    Example:
        analyzer = QueryAnalyzer()
        analysis = analyzer.enhance_query("How do I split a batch for NJ rise orders?")
        filters = analyzer.generate_search_filters(analysis)
        print(analyzer.generate_query_summary(analysis))
    """

    def __init__(self, patterns: QueryPatterns | None = None, patterns_path: Path | str | None = None):
        """
        Initialize the analyzer.

        Args:
            patterns: Pre-loaded pattern tables
            patterns_path: YAML file to load when patterns is not given
                           (default: the packaged query_patterns.yaml)
        """
        self.patterns = patterns or load_query_patterns(patterns_path)
        self._image_re = _word_start_regex(self.patterns.image_keywords)
        self._procedural_re = _word_start_regex(self.patterns.procedural_keywords)

    def enhance_query(self, query: str) -> QueryAnalysis:
        """
        Analyze a query.

        Never raises: a query with nothing recognizable yields an analysis
        with no state, order type or topics and the base confidence.

        Args:
            query: Natural-language question

        Returns:
            QueryAnalysis for this query
        """
        query = query if isinstance(query, str) else ("" if query is None else str(query))
        query_lower = query.lower()

        state = self.extract_state(query)
        order_type = _first_match(self.patterns.order_types, query_lower)
        topics = _all_matches(self.patterns.topics, query_lower)
        question_type = _first_match(self.patterns.question_types, query_lower)

        analysis = QueryAnalysis(
            original_query=query,
            state=state,
            order_type=order_type,
            topics=topics,
            requires_image=bool(self._image_re and self._image_re.search(query_lower)),
            question_type=QuestionType(question_type) if question_type else QuestionType.GENERAL,
            is_procedural=bool(self._procedural_re and self._procedural_re.search(query_lower)),
            keywords=tokenize(query)[:QUERY_KEYWORD_LIMIT],
            confidence=self.calculate_confidence(state, order_type, topics),
        )

        if DEBUG_MODE:
            debug_log(
                f"[QueryAnalyzer] '{query[:60]}' -> state={state}, order_type={order_type}, "
                f"topics={topics}, type={analysis.question_type.value}, "
                f"confidence={analysis.confidence:.2f}"
            )

        return analysis

    def extract_state(self, query: str) -> str | None:
        """
        Find the state a query is about.

        Aliases ("ohio", "new jersey", "nj") are tried in declaration order
        on the lower-cased query; the first alias found wins. Failing that,
        bare upper-case two-letter tokens of the original query are checked
        against the known state codes.
        """
        query_lower = query.lower()
        for _alias, code, pattern in self.patterns.state_aliases:
            if pattern.search(query_lower):
                return code

        for match in _STATE_CODE_RE.findall(query):
            if match in self.patterns.state_codes:
                return match
        return None

    def calculate_confidence(self, state: str | None, order_type: str | None, topics: list[str]) -> float:
        """Base confidence plus a bonus for each recognized element, clamped to [0, 1]."""
        confidence = QUERY_BASE_CONFIDENCE
        if state:
            confidence += QUERY_STATE_CONFIDENCE
        if order_type:
            confidence += QUERY_ORDER_TYPE_CONFIDENCE
        if topics:
            confidence += QUERY_TOPIC_CONFIDENCE * min(len(topics), QUERY_TOPIC_CONFIDENCE_MAX_TOPICS)
        # Rounded so repeated 0.1 additions compare cleanly (0.5 + 0.1*3 == 0.8)
        return round(max(0.0, min(confidence, 1.0)), 6)

    def generate_search_filters(self, analysis: QueryAnalysis) -> SearchFilters:
        """Metadata filters for an analysis."""
        return analysis.to_filters()

    def generate_query_summary(self, analysis: QueryAnalysis) -> str:
        """Human-readable description of an analysis."""
        return analysis.summary()
