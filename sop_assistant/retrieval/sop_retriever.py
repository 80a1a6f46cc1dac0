"""
SOP Retriever for the SOP assistant.

Main entry point of the retrieval engine. Builds the four indexes over a
chunk collection, analyzes each query, and ranks chunks with the fused
semantic, keyword, metadata and image scores.

Architecture:
- ChunkIndexer builds an immutable IndexSnapshot from validated chunks
- QueryAnalyzer turns the question into metadata filters
- RankingEngine narrows, scores, fuses and sorts candidates
- The retriever owns the current snapshot and swaps it atomically

Snapshot swapping:
- build_from_chunks() builds a complete new snapshot before touching state
- The swap happens under a lock; searches read the current snapshot once
  and finish against it even if a rebuild lands meanwhile
- A failed build leaves the previous snapshot in place
"""

import threading
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from sop_assistant.config import DEBUG_MODE, DEFAULT_FUSION_STRATEGY, DEFAULT_FUSION_WEIGHTS, RRF_K
from sop_assistant.logging_config import Timer, debug_log, error, info, warning
from sop_assistant.query.analyzer import QueryAnalysis, QueryAnalyzer
from sop_assistant.retrieval.base import RankedResult, SearchFilters
from sop_assistant.retrieval.exceptions import NotReadyError, RetrievalError
from sop_assistant.retrieval.indexer import ChunkIndexer, IndexSnapshot
from sop_assistant.retrieval.ranking import RankingEngine, WeightedSumFusion, get_fusion_strategy


@dataclass
class SearchResponse:
    """
    Ranked results plus everything that went into producing them.

    Attributes:
        query: The query as given
        results: Ranked results, best first
        analysis: What the analyzer understood
        filters: Filters actually applied (derived or explicit)
        total_candidates: Number of chunks scored
        fallback_applied: Filters matched nothing, so all chunks were scored
        processing_time_ms: Wall time for analysis and ranking
        metadata: Fusion configuration and snapshot generation
    """

    query: str
    results: list[RankedResult]
    analysis: QueryAnalysis
    filters: SearchFilters
    total_candidates: int = 0
    fallback_applied: bool = False
    processing_time_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "results": [result.to_dict() for result in self.results],
            "analysis": self.analysis.to_dict(),
            "summary": self.analysis.summary(),
            "filters": self.filters.to_dict(),
            "total_candidates": self.total_candidates,
            "fallback_applied": self.fallback_applied,
            "processing_time_ms": self.processing_time_ms,
            "metadata": dict(self.metadata),
        }


class SOPRetriever:
    """
    Retrieval facade over one SOP chunk collection.

    Attributes:
        analyzer: QueryAnalyzer used to derive filters
        indexer: ChunkIndexer used for builds

    Example:
        retriever = SOPRetriever()
        retriever.build_from_chunks(chunks)
        results = retriever.search("What are the order limits for Ohio?")

        for result in results:
            print(f"[{result.score:.2f}] {result.text[:100]}...")
            print(f"  {result.explanation}")
    """

    def __init__(
        self,
        fusion_strategy: str = DEFAULT_FUSION_STRATEGY,
        weights: Mapping[str, float] | None = None,
        rrf_k: int = RRF_K,
        analyzer: QueryAnalyzer | None = None,
        indexer: ChunkIndexer | None = None,
    ):
        """
        Initialize the retriever (no index yet).

        Args:
            fusion_strategy: "weighted" (default) or "rrf"
            weights: Component weights for the weighted strategy
            rrf_k: Constant for the rrf strategy
            analyzer: Query analyzer (default: packaged pattern tables)
            indexer: Chunk indexer (default: all registered indexes)

        Raises:
            ValueError: If the strategy name or a weight is invalid
        """
        self.analyzer = analyzer or QueryAnalyzer()
        self.indexer = indexer or ChunkIndexer()

        self._weights = dict(DEFAULT_FUSION_WEIGHTS)
        self._rrf_k = rrf_k
        if weights:
            # Validates names and values before anything is stored
            self._weights = WeightedSumFusion(weights).weights

        self._engine = RankingEngine(get_fusion_strategy(fusion_strategy, self._weights, rrf_k))
        self._snapshot: IndexSnapshot | None = None
        self._generation = 0
        self._lock = threading.Lock()

        if DEBUG_MODE:
            debug_log(f"[SOPRetriever] Initialized with fusion={fusion_strategy}")

    def build_from_chunks(self, chunks: Iterable[Any]) -> dict[str, Any]:
        """
        Index a chunk collection, replacing the current index.

        Every record is validated before any index is built. The new
        snapshot becomes current only after the whole build succeeds, and
        only if no later-started build has already replaced the index.

        Args:
            chunks: Chunk objects or chunk records (dicts)

        Returns:
            Statistics of the new snapshot

        Raises:
            InvalidInputError: If any record is malformed or an id repeats
        """
        # Each build reserves its own generation before any work starts
        with self._lock:
            self._generation += 1
            generation = self._generation

        try:
            with Timer("[SOPRetriever] Index build", auto_log=DEBUG_MODE) as timer:
                snapshot = self.indexer.build(chunks, generation=generation)
        except RetrievalError as e:
            error(f"[SOPRetriever] Index build failed, keeping previous index: {e}")
            raise

        with self._lock:
            current = self._snapshot
            superseded = current is not None and current.generation > generation
            if not superseded:
                self._snapshot = snapshot

        stats = snapshot.get_stats()
        if superseded:
            warning(
                f"[SOPRetriever] Build {generation} finished after build {current.generation}; "
                f"keeping the newer index"
            )
            return stats
        if stats["chunk_count"] == 0:
            warning("[SOPRetriever] Indexed an empty chunk collection; searches will return no results")
        else:
            info(
                f"[SOPRetriever] Indexed {stats['chunk_count']} chunks "
                f"({stats['keyword_terms']} terms, {stats['images_indexed']} with images) "
                f"in {timer.get_duration_ms():.0f} ms"
            )
        return stats

    def _resolve_filters(
        self,
        analysis: QueryAnalysis,
        filters: SearchFilters | Mapping[str, Any] | None,
    ) -> SearchFilters:
        """Explicit filters replace the ones derived from the query."""
        if filters is None:
            return self.analyzer.generate_search_filters(analysis)
        if isinstance(filters, SearchFilters):
            return filters
        return SearchFilters.from_mapping(filters)

    def retrieve(
        self,
        query: str,
        filters: SearchFilters | Mapping[str, Any] | None = None,
        max_results: int | None = None,
    ) -> SearchResponse:
        """
        Analyze a query and rank chunks for it.

        Args:
            query: Natural-language question
            filters: Explicit filters; replaces the derived filters when given
            max_results: Number of results (default RETRIEVAL_MAX_RESULTS)

        Returns:
            SearchResponse with results and diagnostics

        Raises:
            NotReadyError: If no index has been built
            ValueError: If max_results is less than 1
        """
        start_time = time.perf_counter()

        # Read shared state once; a concurrent rebuild does not affect this call
        snapshot = self._snapshot
        engine = self._engine
        if snapshot is None:
            raise NotReadyError("Index not built. Call build_from_chunks() first.")

        analysis = self.analyzer.enhance_query(query)
        applied_filters = self._resolve_filters(analysis, filters)

        if DEBUG_MODE:
            debug_log(f"[SOPRetriever] Query: '{analysis.original_query[:50]}' filters={applied_filters.to_dict()}")

        outcome = engine.rank(snapshot, analysis.original_query, applied_filters, max_results)

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        metadata = dict(outcome.metadata)
        metadata["generation"] = snapshot.generation

        if DEBUG_MODE:
            debug_log(f"[SOPRetriever] {len(outcome)} results in {elapsed_ms:.1f}ms")

        return SearchResponse(
            query=analysis.original_query,
            results=outcome.results,
            analysis=analysis,
            filters=applied_filters,
            total_candidates=outcome.total_candidates,
            fallback_applied=outcome.fallback_applied,
            processing_time_ms=elapsed_ms,
            metadata=metadata,
        )

    def search(
        self,
        query: str,
        filters: SearchFilters | Mapping[str, Any] | None = None,
        max_results: int | None = None,
    ) -> list[RankedResult]:
        """
        Rank chunks for a query.

        Returns:
            Ranked results, best first (empty when nothing is indexed)

        Raises:
            NotReadyError: If no index has been built
            ValueError: If max_results is less than 1
        """
        return self.retrieve(query, filters=filters, max_results=max_results).results

    @property
    def is_ready(self) -> bool:
        """True once a build has succeeded (even an empty one)."""
        return self._snapshot is not None

    @property
    def snapshot(self) -> IndexSnapshot | None:
        return self._snapshot

    def get_chunk_count(self) -> int:
        """Number of chunks in the current index (0 before any build)."""
        snapshot = self._snapshot
        return snapshot.chunk_count if snapshot is not None else 0

    def get_stats(self) -> dict[str, Any]:
        """
        Describe the current index and ranking configuration.

        Returns:
            Dictionary with readiness, fusion configuration and, once built,
            the snapshot statistics
        """
        snapshot = self._snapshot
        stats: dict[str, Any] = {
            "ready": snapshot is not None,
            "fusion": self._engine.fusion.get_config(),
        }
        if snapshot is not None:
            stats.update(snapshot.get_stats())
        else:
            stats["chunk_count"] = 0
        return stats

    def update_weights(self, new_weights: Mapping[str, float]) -> None:
        """
        Update component weights used by the weighted strategy.

        Weights not named keep their value. Applies to later searches.

        Raises:
            ValueError: If a weight is negative or a component is unknown
        """
        fusion = WeightedSumFusion(self._weights)
        fusion.update_weights(new_weights)

        with self._lock:
            self._weights = dict(fusion.weights)
            if self._engine.fusion.name == WeightedSumFusion.name:
                self._engine = RankingEngine(fusion, max_results_cap=self._engine.max_results_cap)

        if DEBUG_MODE:
            debug_log(f"[SOPRetriever] Updated weights: {self._weights}")

    def set_fusion_strategy(self, name: str, rrf_k: int | None = None) -> None:
        """
        Switch between weighted-sum and reciprocal-rank fusion.

        Args:
            name: "weighted" or "rrf"
            rrf_k: New RRF constant (keeps the current one when None)

        Raises:
            ValueError: If the name is unknown
        """
        k = self._rrf_k if rrf_k is None else rrf_k
        fusion = get_fusion_strategy(name, self._weights, k)

        with self._lock:
            self._rrf_k = k
            self._engine = RankingEngine(fusion, max_results_cap=self._engine.max_results_cap)

        if DEBUG_MODE:
            debug_log(f"[SOPRetriever] Fusion strategy set to {fusion.get_config()}")
