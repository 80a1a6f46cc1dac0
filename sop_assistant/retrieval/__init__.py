"""
Retrieval Package for the SOP assistant.

Multi-strategy chunk retrieval with score fusion.

Architecture:
- BaseIndex: ABC for the semantic, keyword, metadata and image indexes
- ChunkIndexer: Builds all indexes into an immutable IndexSnapshot
- RankingEngine: Narrows, scores and fuses candidates (weighted or RRF)
- SOPRetriever: Facade that owns the current snapshot

Example:
    from sop_assistant.retrieval import SOPRetriever

    retriever = SOPRetriever()
    retriever.build_from_chunks(chunks)
    for result in retriever.search("What are the order limits for Ohio?"):
        print(f"{result.text[:100]}... (score: {result.score:.2f})")
"""

from sop_assistant.retrieval.base import (
    BaseIndex,
    Chunk,
    ChunkMetadata,
    ComponentScores,
    ImageRef,
    QueryContext,
    RankedResult,
    SearchFilters,
)
from sop_assistant.retrieval.exceptions import InvalidInputError, NotReadyError, RetrievalError
from sop_assistant.retrieval.indexer import ChunkIndexer, IndexSnapshot
from sop_assistant.retrieval.ranking import (
    RankingEngine,
    ReciprocalRankFusion,
    WeightedSumFusion,
)
from sop_assistant.retrieval.sop_retriever import SearchResponse, SOPRetriever

__all__ = [
    # Data model
    "Chunk",
    "ChunkMetadata",
    "ImageRef",
    "SearchFilters",
    "QueryContext",
    "ComponentScores",
    "RankedResult",
    # Errors
    "RetrievalError",
    "NotReadyError",
    "InvalidInputError",
    # Indexing
    "BaseIndex",
    "ChunkIndexer",
    "IndexSnapshot",
    # Ranking
    "RankingEngine",
    "WeightedSumFusion",
    "ReciprocalRankFusion",
    # Main retriever
    "SOPRetriever",
    "SearchResponse",
]
