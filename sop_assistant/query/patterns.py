"""
Pattern tables for query analysis and chunk tagging.

The state aliases, order-type, topic and question-type regexes live in
data/query_patterns.yaml so they can be extended without touching the
analyzer. This module loads that file with PyYAML and compiles every
pattern once.

Usage:
    from sop_assistant.query.patterns import load_query_patterns

    patterns = load_query_patterns()
    patterns.state_aliases[0]     # ("ohio", "OH", re.compile(r"\\bohio\\b"))
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from sop_assistant.config import DEBUG_MODE, QUERY_PATTERNS_FILE
from sop_assistant.logging_config import debug_log

# Ordered label -> compiled patterns
PatternTable = tuple[tuple[str, tuple[re.Pattern, ...]], ...]


@dataclass(frozen=True)
class QueryPatterns:
    """
    Compiled pattern tables, in declaration order.

    Attributes:
        state_aliases: (alias, state code, word-boundary regex) per alias
        state_codes: Codes accepted as bare upper-case tokens
        order_types: Order type -> patterns
        topics: Topic -> patterns
        question_types: Question type -> patterns
        image_keywords: Visual-reference words, matched at a word start
        procedural_keywords: How-to words, matched at a word start
        tagging_sections: Extra section tags used only when tagging chunks
        source: File the tables were loaded from
    """

    state_aliases: tuple[tuple[str, str, re.Pattern], ...]
    state_codes: frozenset[str]
    order_types: PatternTable
    topics: PatternTable
    question_types: PatternTable
    image_keywords: tuple[str, ...]
    procedural_keywords: tuple[str, ...]
    tagging_sections: PatternTable = ()
    source: Path | None = None

    @property
    def state_names(self) -> tuple[str, ...]:
        """Distinct state codes that have aliases, in declaration order."""
        return tuple(dict.fromkeys(code for _alias, code, _pattern in self.state_aliases))

    @property
    def topic_names(self) -> tuple[str, ...]:
        return tuple(name for name, _patterns in self.topics)

    @property
    def order_type_names(self) -> tuple[str, ...]:
        return tuple(name for name, _patterns in self.order_types)


def _compile_table(raw: Any, table_name: str) -> PatternTable:
    if not isinstance(raw, dict):
        raise ValueError(f"Pattern table '{table_name}' must be a mapping of name -> regex list")

    table = []
    for label, patterns in raw.items():
        if isinstance(patterns, str):
            patterns = [patterns]
        try:
            compiled = tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns)
        except re.error as e:
            raise ValueError(f"Bad regex in '{table_name}.{label}': {e}") from e
        table.append((str(label), compiled))
    return tuple(table)


def _compile_states(raw: Any) -> tuple[tuple[str, str, re.Pattern], ...]:
    if not isinstance(raw, dict):
        raise ValueError("Pattern table 'states' must be a mapping of code -> alias list")

    aliases = []
    for code, names in raw.items():
        for name in names:
            alias = str(name).lower()
            aliases.append((alias, str(code), re.compile(rf"\b{re.escape(alias)}\b")))
    return tuple(aliases)


def parse_query_patterns(data: dict[str, Any], source: Path | None = None) -> QueryPatterns:
    """
    Build QueryPatterns from an already-parsed YAML document.

    Args:
        data: Parsed YAML mapping
        source: Where the data came from (for diagnostics)

    Raises:
        ValueError: If a required table is missing or a regex does not compile
    """
    if not isinstance(data, dict):
        raise ValueError(f"Query patterns file {source} must contain a mapping")

    required = ("states", "order_types", "topics", "question_types")
    missing = [key for key in required if key not in data]
    if missing:
        raise ValueError(f"Query patterns file {source} is missing: {', '.join(missing)}")

    return QueryPatterns(
        state_aliases=_compile_states(data["states"]),
        state_codes=frozenset(str(code).upper() for code in data.get("state_codes", [])),
        order_types=_compile_table(data["order_types"], "order_types"),
        topics=_compile_table(data["topics"], "topics"),
        question_types=_compile_table(data["question_types"], "question_types"),
        image_keywords=tuple(str(word).lower() for word in data.get("image_keywords", [])),
        procedural_keywords=tuple(str(word).lower() for word in data.get("procedural_keywords", [])),
        tagging_sections=_compile_table(data.get("tagging_sections", {}), "tagging_sections"),
        source=source,
    )


@lru_cache(maxsize=8)
def load_query_patterns(path: Path | str | None = None) -> QueryPatterns:
    """
    Load and compile a pattern file (cached per path).

    Args:
        path: YAML file to load (default: the packaged query_patterns.yaml)

    Returns:
        Compiled QueryPatterns

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid YAML or a table is malformed
    """
    path = Path(path) if path is not None else QUERY_PATTERNS_FILE

    with open(path, encoding='utf-8') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"YAML parse error in {path}: {e}") from e

    patterns = parse_query_patterns(data, source=path)

    if DEBUG_MODE:
        debug_log(
            f"[QueryPatterns] Loaded {len(patterns.state_aliases)} state aliases, "
            f"{len(patterns.topics)} topics from {path}"
        )
    return patterns
