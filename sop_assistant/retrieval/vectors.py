"""
Sparse vector helpers.

Vectors are plain dicts mapping term -> weight. Only non-zero weights are
stored, so an empty dict is the zero vector.
"""

import math
from collections.abc import Iterable, Mapping

from sop_assistant.retrieval.tokenizer import term_frequencies

SparseVector = dict[str, float]


def l2_norm(vector: Mapping[str, float]) -> float:
    """Euclidean length of a sparse vector."""
    return math.sqrt(sum(value * value for value in vector.values()))


def normalized_term_vector(tokens: Iterable[str]) -> SparseVector:
    """
    Bag-of-words vector scaled to unit L2 length.

    Stand-in for a real sentence embedding: any model producing vectors
    compared by cosine similarity can replace it without touching ranking.

    Args:
        tokens: Tokens from tokenize()

    Returns:
        term -> normalized frequency; empty dict when there are no tokens
    """
    counts = term_frequencies(tokens)
    norm = l2_norm(counts)
    if norm == 0:
        return {}
    return {term: count / norm for term, count in counts.items()}


def cosine_similarity(vec1: Mapping[str, float], vec2: Mapping[str, float]) -> float:
    """
    Cosine similarity of two sparse vectors.

    Returns 0.0 when either vector is the zero vector.
    """
    if not vec1 or not vec2:
        return 0.0

    # Iterate over the smaller vector for the dot product
    small, large = (vec1, vec2) if len(vec1) <= len(vec2) else (vec2, vec1)
    dot_product = sum(value * large.get(term, 0.0) for term, value in small.items())
    if dot_product == 0:
        return 0.0

    norm1 = l2_norm(vec1)
    norm2 = l2_norm(vec2)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    # Unit vectors can drift a hair above 1.0 in floating point
    return max(0.0, min(1.0, dot_product / (norm1 * norm2)))
