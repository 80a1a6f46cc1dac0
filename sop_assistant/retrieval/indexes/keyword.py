"""
Keyword (TF-IDF) index.

Implements classic TF-IDF weighting:

    weight(term, chunk) = tf(term, chunk) * ln(N / df(term))

where tf is the raw count of the term in the chunk, N the number of chunks
and df the number of chunks containing the term at least once. A term that
occurs in every chunk gets idf = ln(1) = 0 and therefore zero weight: it
cannot tell chunks apart.

Why unsmoothed IDF:
- Weights stay exactly interpretable (no +1 terms)
- Terms shared by the whole corpus drop out entirely, which is what makes
  state names and section names count in a small SOP document
"""

import math
from collections import Counter
from types import MappingProxyType
from typing import Any

from sop_assistant.config import TOP_TERMS_PER_CHUNK
from sop_assistant.retrieval.base import BaseIndex, Chunk, QueryContext
from sop_assistant.retrieval.indexes import register_index
from sop_assistant.retrieval.tokenizer import term_frequencies, tokenize
from sop_assistant.retrieval.vectors import SparseVector


@register_index
class KeywordIndex(BaseIndex):
    """
    TF-IDF index with a corpus-wide vocabulary.

    Attributes:
        name: Index identifier ("keyword")
        top_k_terms: Number of highest-weight terms cached per chunk

    Example:
        index = KeywordIndex()
        index.index_chunks(chunks)
        index.idf("ohio")            # ln(N / df("ohio"))
        index.top_terms(chunk.id)    # diagnostics
    """

    name: str = "keyword"

    def __init__(self, top_k_terms: int = TOP_TERMS_PER_CHUNK):
        self.top_k_terms = top_k_terms
        self._vectors: dict[int, SparseVector] = {}
        self._vocabulary: dict[str, int] = {}
        self._document_freq: dict[str, int] = {}
        self._top_terms: dict[int, list[str]] = {}
        self._chunk_count = 0
        self._indexed = False

    def index_chunks(self, chunks: list[Chunk]) -> None:
        """
        Build TF-IDF vectors in two passes.

        First pass counts term frequencies per chunk and document frequencies
        across chunks; second pass weights each count by its IDF.
        """
        chunk_term_freqs: list[tuple[int, Counter]] = []
        document_freq: Counter = Counter()
        vocabulary: dict[str, int] = {}

        # First pass: term and document frequencies
        for chunk in chunks:
            counts = term_frequencies(tokenize(chunk.text))
            chunk_term_freqs.append((chunk.id, counts))
            for term in counts:
                document_freq[term] += 1
                if term not in vocabulary:
                    vocabulary[term] = len(vocabulary)

        # Second pass: TF-IDF weights
        total_docs = len(chunks)
        vectors: dict[int, SparseVector] = {}
        top_terms: dict[int, list[str]] = {}

        for chunk_id, counts in chunk_term_freqs:
            vector = {
                term: tf * math.log(total_docs / document_freq[term])
                for term, tf in counts.items()
            }
            vectors[chunk_id] = vector
            # Highest weight first; alphabetical among equal weights
            ranked = sorted(vector.items(), key=lambda item: (-item[1], item[0]))
            top_terms[chunk_id] = [term for term, _ in ranked[:self.top_k_terms]]

        self._vectors = vectors
        self._vocabulary = vocabulary
        self._document_freq = dict(document_freq)
        self._top_terms = top_terms
        self._chunk_count = total_docs
        self._indexed = True

    def score(self, chunk_id: int, context: QueryContext) -> float:
        """
        Mean TF-IDF weight of the query terms in this chunk.

        Terms absent from the chunk contribute 0. Repeated query terms count
        each time they appear. Returns 0 when the query has no terms.
        """
        terms = context.terms
        vector = self._vectors.get(chunk_id)
        if not terms or vector is None:
            return 0.0
        return sum(vector.get(term, 0.0) for term in terms) / len(terms)

    def idf(self, term: str) -> float:
        """Inverse document frequency of a term (0.0 for out-of-vocabulary terms)."""
        df = self._document_freq.get(term, 0)
        if df == 0:
            return 0.0
        return math.log(self._chunk_count / df)

    def get_vector(self, chunk_id: int) -> MappingProxyType:
        """Read-only view of a chunk's TF-IDF vector."""
        return MappingProxyType(self._vectors.get(chunk_id, {}))

    def top_terms(self, chunk_id: int) -> list[str]:
        """Cached highest-weight terms for a chunk."""
        return list(self._top_terms.get(chunk_id, []))

    @property
    def vocabulary(self) -> MappingProxyType:
        """Read-only term -> dimension mapping, in first-seen order."""
        return MappingProxyType(self._vocabulary)

    @property
    def is_indexed(self) -> bool:
        return self._indexed

    def get_stats(self) -> dict[str, Any]:
        stats = super().get_stats()
        stats.update({
            "vocabulary_size": len(self._vocabulary),
            "chunks": self._chunk_count,
            "top_k_terms": self.top_k_terms,
        })
        return stats
