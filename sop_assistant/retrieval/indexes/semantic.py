"""
Semantic index.

Stores one unit-length bag-of-words vector per chunk and scores chunks by
cosine similarity with the query vector. The bag-of-words vector is a
stand-in for a sentence embedding; swapping in a real embedding model only
changes how vectors are produced, not how they are compared.
"""

from types import MappingProxyType
from typing import Any

from sop_assistant.retrieval.base import BaseIndex, Chunk, QueryContext
from sop_assistant.retrieval.indexes import register_index
from sop_assistant.retrieval.tokenizer import tokenize
from sop_assistant.retrieval.vectors import SparseVector, cosine_similarity, normalized_term_vector


@register_index
class SemanticIndex(BaseIndex):
    """
    Cosine-similarity index over normalized term-frequency vectors.

    A chunk with no qualifying terms gets the zero vector, whose similarity
    with anything is 0.

    Example:
        index = SemanticIndex()
        index.index_chunks(chunks)
        similarity = index.score(chunk.id, QueryContext("ohio order limits"))
    """

    name: str = "semantic"

    def __init__(self):
        self._vectors: dict[int, SparseVector] = {}
        self._indexed = False

    def index_chunks(self, chunks: list[Chunk]) -> None:
        """Vectorize every chunk's text."""
        self._vectors = {
            chunk.id: normalized_term_vector(tokenize(chunk.text))
            for chunk in chunks
        }
        self._indexed = True

    def score(self, chunk_id: int, context: QueryContext) -> float:
        """Cosine similarity between the query vector and the chunk vector."""
        vector = self._vectors.get(chunk_id)
        if not vector:
            return 0.0
        return cosine_similarity(context.vector, vector)

    def get_vector(self, chunk_id: int) -> MappingProxyType:
        """Read-only view of a chunk's vector (empty for unknown ids)."""
        return MappingProxyType(self._vectors.get(chunk_id, {}))

    @property
    def is_indexed(self) -> bool:
        return self._indexed

    def get_stats(self) -> dict[str, Any]:
        stats = super().get_stats()
        stats.update({
            "vectors": len(self._vectors),
            "zero_vectors": sum(1 for vector in self._vectors.values() if not vector),
        })
        return stats
