"""
Text tokenizer shared by indexing and query analysis.

Corpus vectors and query vectors must come from the same tokenizer,
otherwise a query term can never line up with an indexed term.
"""

import re
from collections import Counter
from collections.abc import Iterable

from sop_assistant.config import MIN_TOKEN_LENGTH, STOPWORDS

_NON_WORD = re.compile(r"[^\w\s]")


def tokenize(text: str, stopwords: Iterable[str] = STOPWORDS) -> list[str]:
    """
    Tokenize text for indexing and search.

    Lower-cases the text, turns punctuation into whitespace, splits on
    whitespace and drops short tokens and stopwords. Underscores and digits
    are word characters, so "image_1" survives as one token.

    Args:
        text: Input text to tokenize
        stopwords: Words to discard (defaults to config.STOPWORDS)

    Returns:
        List of tokens in their original order (duplicates kept)
    """
    if not text:
        return []

    stopword_set = stopwords if isinstance(stopwords, (set, frozenset)) else set(stopwords)
    text = _NON_WORD.sub(" ", text.lower())

    return [
        token for token in text.split()
        if len(token) >= MIN_TOKEN_LENGTH and token not in stopword_set
    ]


def term_frequencies(tokens: Iterable[str]) -> Counter:
    """Count tokens, keeping first-seen order."""
    return Counter(tokens)
