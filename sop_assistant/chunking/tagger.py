"""
Metadata tagging for SOP chunks.

Tags a piece of SOP text with the states, order-type sections and topics it
mentions, using the same pattern tables the query analyzer reads. Unlike
the analyzer, which keeps the first match, the tagger collects every match.
"""

import re
from dataclasses import dataclass
from pathlib import Path

from sop_assistant.query.patterns import QueryPatterns, load_query_patterns

_STATE_CODE_RE = re.compile(r"\b([A-Z]{2})\b")

# Shortest alias checked in running text; "oh", "ma", "pa" are too ambiguous
# in prose and are picked up through the upper-case code pass instead
_MIN_TEXT_ALIAS_LENGTH = 3


@dataclass(frozen=True)
class ChunkTags:
    """Tags found in one piece of text."""

    states: frozenset[str]
    sections: frozenset[str]
    topics: frozenset[str]


class MetadataTagger:
    """
    Pattern-based chunk tagger.

    Example:
        tagger = MetadataTagger()
        tags = tagger.tag("Ohio (OH) RISE Orders: the unit limit is 10 units.")
        tags.states     # frozenset({"OH"})
        tags.sections   # frozenset({"RISE"})
        tags.topics     # frozenset({"ORDER_LIMIT", "CASE_SIZE"})
    """

    def __init__(self, patterns: QueryPatterns | None = None, patterns_path: Path | str | None = None):
        self.patterns = patterns or load_query_patterns(patterns_path)

    def tag(self, text: str) -> ChunkTags:
        """
        Tag a piece of text.

        Args:
            text: Chunk text

        Returns:
            ChunkTags with every state, section and topic found
        """
        text_lower = text.lower()
        return ChunkTags(
            states=frozenset(self.find_states(text)),
            sections=frozenset(
                label
                for table in (self.patterns.order_types, self.patterns.tagging_sections)
                for label, patterns in table
                if any(pattern.search(text_lower) for pattern in patterns)
            ),
            topics=frozenset(
                label for label, patterns in self.patterns.topics
                if any(pattern.search(text_lower) for pattern in patterns)
            ),
        )

    def find_states(self, text: str) -> list[str]:
        """State codes named in the text, by full name or upper-case code."""
        text_lower = text.lower()
        found: dict[str, None] = {}

        for alias, code, pattern in self.patterns.state_aliases:
            if len(alias) >= _MIN_TEXT_ALIAS_LENGTH and pattern.search(text_lower):
                found[code] = None

        for match in _STATE_CODE_RE.findall(text):
            if match in self.patterns.state_codes:
                found[match] = None

        return list(found)
