"""
SOP Assistant - query-aware retrieval over standard operating procedures.

Splits an SOP into tagged chunks, indexes them four ways (bag-of-words
semantic, TF-IDF keyword, metadata, image association) and ranks them for
natural-language questions with fused scores.

Example:
    from sop_assistant import SOPRetriever, load_chunks

    retriever = SOPRetriever()
    retriever.build_from_chunks(load_chunks("chunks.json"))
    results = retriever.search("What are the order limits for Ohio?")
"""

# Retrieval is imported first: the query analyzer depends on its data model
from sop_assistant.retrieval import (
    Chunk,
    InvalidInputError,
    NotReadyError,
    RankedResult,
    RetrievalError,
    SearchFilters,
    SearchResponse,
    SOPRetriever,
)
from sop_assistant.query import QueryAnalysis, QueryAnalyzer
from sop_assistant.chunking import ChunkBuilder, MetadataTagger, load_chunks

__version__ = "1.0.0"

__all__ = [
    "SOPRetriever",
    "SearchResponse",
    "SearchFilters",
    "RankedResult",
    "Chunk",
    "QueryAnalyzer",
    "QueryAnalysis",
    "ChunkBuilder",
    "MetadataTagger",
    "load_chunks",
    "RetrievalError",
    "NotReadyError",
    "InvalidInputError",
]
