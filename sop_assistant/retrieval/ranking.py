"""
Ranking Engine for the SOP retrieval engine.

Scores candidate chunks with every index and fuses the component scores
into one ranked list.

Ranking Strategy:
1. Narrow candidates with the metadata filters (fall back to all chunks
   when the filters match nothing)
2. Score each candidate with the semantic, keyword, metadata and image
   indexes independently
3. Fuse component scores (weighted sum or reciprocal-rank fusion)
4. Sort by fused score descending, lower chunk id first on ties
5. Return the top max_results with their component scores

Fallback policy: narrowing must never hide the corpus. If the filters leave
no candidate, the whole collection is scored instead and the metadata score
still reflects how well each chunk matches.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from sop_assistant.config import (
    DEBUG_MODE,
    DEFAULT_FUSION_STRATEGY,
    DEFAULT_FUSION_WEIGHTS,
    EXPLAIN_KEYWORD_THRESHOLD,
    EXPLAIN_METADATA_THRESHOLD,
    EXPLAIN_SEMANTIC_THRESHOLD,
    RETRIEVAL_MAX_RESULTS,
    RETRIEVAL_MAX_RESULTS_CAP,
    RRF_K,
)
from sop_assistant.logging_config import debug_log
from sop_assistant.retrieval.base import ComponentScores, QueryContext, RankedResult, SearchFilters
from sop_assistant.retrieval.exceptions import NotReadyError
from sop_assistant.retrieval.indexer import IndexSnapshot

# Column order of the component score matrix
COMPONENTS = ("semantic", "keyword", "metadata", "image")


def sort_order(chunk_ids: np.ndarray, scores: np.ndarray) -> np.ndarray:
    """
    Indices that sort scores descending, breaking ties by lower chunk id.

    np.lexsort uses the last key as the primary key.
    """
    return np.lexsort((chunk_ids, -scores))


class FusionStrategy(ABC):
    """
    Combines per-index scores into one score per candidate.

    Class Attributes:
        name: Strategy identifier used in configuration ("weighted", "rrf")
    """

    name: str = "base"

    @abstractmethod
    def fuse(
        self,
        chunk_ids: np.ndarray,
        scores: np.ndarray,
        active_components: tuple[str, ...] = COMPONENTS,
    ) -> np.ndarray:
        """
        Fuse a (candidates x components) score matrix.

        Args:
            chunk_ids: Candidate chunk ids, one per row
            scores: Component scores, columns ordered as COMPONENTS
            active_components: Components that carry a signal for this query

        Returns:
            One finite, non-negative fused score per candidate
        """

    def get_config(self) -> dict[str, Any]:
        return {"strategy": self.name}


class WeightedSumFusion(FusionStrategy):
    """
    Fixed-weight linear combination of component scores.

    score = 0.4*semantic + 0.3*keyword + 0.3*metadata + 0.1*image by default.
    Every component contributes, including the neutral metadata score, so a
    chunk's fused score does not depend on the other candidates.

    Example:
        fusion = WeightedSumFusion({"semantic": 0.5, "keyword": 0.5, "metadata": 0.0, "image": 0.0})
    """

    name: str = "weighted"

    def __init__(self, weights: Mapping[str, float] | None = None):
        """
        Initialize with component weights.

        Args:
            weights: Component name -> weight; missing components keep their
                     default weight

        Raises:
            ValueError: If a weight is negative or a component name is unknown
        """
        self.weights = dict(DEFAULT_FUSION_WEIGHTS)
        self.update_weights(weights or {})

    def update_weights(self, new_weights: Mapping[str, float]) -> None:
        """
        Update component weights.

        Raises:
            ValueError: If a weight is negative or a component name is unknown
        """
        for name, weight in new_weights.items():
            if name not in COMPONENTS:
                raise ValueError(f"Unknown score component: {name!r}")
            if weight < 0 or not np.isfinite(weight):
                raise ValueError(f"Weight for {name!r} must be a finite non-negative number")
        self.weights.update({name: float(weight) for name, weight in new_weights.items()})

    def fuse(
        self,
        chunk_ids: np.ndarray,
        scores: np.ndarray,
        active_components: tuple[str, ...] = COMPONENTS,
    ) -> np.ndarray:
        weight_vector = np.array([self.weights[name] for name in COMPONENTS], dtype=float)
        return scores @ weight_vector

    def get_config(self) -> dict[str, Any]:
        config = super().get_config()
        config["weights"] = dict(self.weights)
        return config


class ReciprocalRankFusion(FusionStrategy):
    """
    Reciprocal-rank fusion over each component's own ranking.

    score = sum over components of 1 / (k + rank), where rank is the 1-based
    position of the candidate in that component's ranking. Only candidates
    with a positive component score are ranked for that component, and a
    component that carries no signal for the query (metadata without active
    filters) is left out, so chunk ids alone never decide a ranking.
    """

    name: str = "rrf"

    def __init__(self, k: int = RRF_K):
        """
        Initialize with the RRF constant.

        Raises:
            ValueError: If k is negative
        """
        if k < 0:
            raise ValueError("RRF constant k must be non-negative")
        self.k = k

    def fuse(
        self,
        chunk_ids: np.ndarray,
        scores: np.ndarray,
        active_components: tuple[str, ...] = COMPONENTS,
    ) -> np.ndarray:
        fused = np.zeros(len(chunk_ids), dtype=float)

        for column, name in enumerate(COMPONENTS):
            if name not in active_components:
                continue
            component = scores[:, column]
            order = sort_order(chunk_ids, component)
            ranks = np.empty(len(chunk_ids), dtype=float)
            ranks[order] = np.arange(1, len(chunk_ids) + 1)
            fused += np.where(component > 0, 1.0 / (self.k + ranks), 0.0)

        return fused

    def get_config(self) -> dict[str, Any]:
        config = super().get_config()
        config["k"] = self.k
        return config


def get_fusion_strategy(
    name: str,
    weights: Mapping[str, float] | None = None,
    rrf_k: int = RRF_K,
) -> FusionStrategy:
    """
    Create a fusion strategy by name.

    Args:
        name: "weighted" or "rrf"
        weights: Component weights (weighted strategy only)
        rrf_k: RRF constant (rrf strategy only)

    Raises:
        ValueError: If the name is unknown
    """
    if name == WeightedSumFusion.name:
        return WeightedSumFusion(weights)
    if name == ReciprocalRankFusion.name:
        return ReciprocalRankFusion(rrf_k)
    raise ValueError(f"Unknown fusion strategy: {name!r} (expected 'weighted' or 'rrf')")


@dataclass
class RankingOutcome:
    """
    Ranked results plus the bookkeeping of how they were produced.

    Attributes:
        results: Ranked results, best first
        total_candidates: Number of chunks that were scored
        fallback_applied: True when filters matched nothing and all chunks were scored
        metadata: Fusion configuration and other diagnostics
    """

    results: list[RankedResult]
    total_candidates: int = 0
    fallback_applied: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.results)


def explain_scores(scores: ComponentScores) -> str:
    """
    Short human-readable explanation of component scores.

    Example:
        "High semantic similarity (42.0%), Perfect metadata match"
    """
    explanations = []

    if scores.semantic > EXPLAIN_SEMANTIC_THRESHOLD:
        explanations.append(f"High semantic similarity ({scores.semantic * 100:.1f}%)")
    if scores.keyword > EXPLAIN_KEYWORD_THRESHOLD:
        explanations.append(f"Strong keyword match ({scores.keyword * 100:.1f}%)")
    if scores.metadata > EXPLAIN_METADATA_THRESHOLD:
        explanations.append("Perfect metadata match")
    if scores.image > 0:
        explanations.append("Contains relevant images")

    return ", ".join(explanations) or "General relevance"


class RankingEngine:
    """
    Scores and fuses candidates from an IndexSnapshot.

    The engine holds only configuration; the snapshot to search is passed
    per call, so one engine can serve any number of snapshots.

    Attributes:
        fusion: Active FusionStrategy
        max_results_cap: Upper bound applied to max_results

    Example:
        engine = RankingEngine(fusion="rrf")
        results = engine.search(snapshot, "Ohio order limits", SearchFilters(states={"OH"}))
    """

    def __init__(
        self,
        fusion: FusionStrategy | str = DEFAULT_FUSION_STRATEGY,
        weights: Mapping[str, float] | None = None,
        rrf_k: int = RRF_K,
        max_results_cap: int = RETRIEVAL_MAX_RESULTS_CAP,
    ):
        """
        Initialize the ranking engine.

        Args:
            fusion: Strategy instance or name ("weighted" / "rrf")
            weights: Component weights for the weighted strategy
            rrf_k: Constant for the rrf strategy
            max_results_cap: Hard ceiling for max_results
        """
        if isinstance(fusion, str):
            fusion = get_fusion_strategy(fusion, weights=weights, rrf_k=rrf_k)
        self.fusion = fusion
        self.max_results_cap = max_results_cap

    def narrow_candidates(
        self,
        snapshot: IndexSnapshot,
        filters: SearchFilters,
    ) -> tuple[list[int], bool]:
        """
        Apply metadata filters to the chunk collection.

        Args:
            snapshot: Snapshot to search
            filters: Filters in effect

        Returns:
            (candidate ids in chunk order, whether the full-corpus fallback was used)
        """
        all_ids = snapshot.chunk_ids
        matched = snapshot.metadata.candidates(filters)

        if matched is None:
            return all_ids, False
        if not matched:
            if DEBUG_MODE:
                debug_log(f"[RankingEngine] Filters {filters.to_dict()} matched nothing, scoring all chunks")
            return all_ids, True
        return [chunk_id for chunk_id in all_ids if chunk_id in matched], False

    def score_candidates(
        self,
        snapshot: IndexSnapshot,
        candidate_ids: list[int],
        context: QueryContext,
    ) -> np.ndarray:
        """
        Build the (candidates x components) score matrix.

        Columns follow COMPONENTS. Each index scores independently.
        """
        indexes = [snapshot.indexes[name] for name in COMPONENTS]
        scores = np.zeros((len(candidate_ids), len(COMPONENTS)), dtype=float)
        for row, chunk_id in enumerate(candidate_ids):
            for column, index in enumerate(indexes):
                scores[row, column] = index.score(chunk_id, context)
        return scores

    def resolve_max_results(self, max_results: int | None) -> int:
        """
        Apply the default and the cap to a requested result count.

        Raises:
            ValueError: If max_results is less than 1
        """
        if max_results is None:
            max_results = RETRIEVAL_MAX_RESULTS
        if max_results < 1:
            raise ValueError(f"max_results must be at least 1, got {max_results}")
        return min(max_results, self.max_results_cap)

    def rank(
        self,
        snapshot: IndexSnapshot | None,
        query: str,
        filters: SearchFilters | None = None,
        max_results: int | None = None,
    ) -> RankingOutcome:
        """
        Rank chunks for a query and report how the ranking was produced.

        Args:
            snapshot: Snapshot to search
            query: Free-text query
            filters: Metadata filters (None = no constraint)
            max_results: Number of results (default RETRIEVAL_MAX_RESULTS)

        Returns:
            RankingOutcome with the top results

        Raises:
            NotReadyError: If no snapshot has been built
            ValueError: If max_results is less than 1
        """
        if snapshot is None:
            raise NotReadyError("Index not built. Call build_from_chunks() first.")

        limit = self.resolve_max_results(max_results)
        filters = filters or SearchFilters()
        config = self.fusion.get_config()

        if snapshot.chunk_count == 0:
            return RankingOutcome(results=[], metadata=config)

        candidate_ids, fallback_applied = self.narrow_candidates(snapshot, filters)
        context = QueryContext(query=query, filters=filters)

        ids = np.array(candidate_ids, dtype=np.int64)
        scores = self.score_candidates(snapshot, candidate_ids, context)

        active = tuple(
            name for name in COMPONENTS
            if name != "metadata" or filters.active_dimensions > 0
        )
        fused = self.fusion.fuse(ids, scores, active_components=active)
        order = sort_order(ids, fused)[:limit]

        results = []
        for position, row in enumerate(order, start=1):
            component_scores = ComponentScores(*(float(value) for value in scores[row]))
            results.append(RankedResult(
                chunk=snapshot.get_chunk(int(ids[row])),
                score=float(fused[row]),
                scores=component_scores,
                rank=position,
                explanation=explain_scores(component_scores),
            ))

        if DEBUG_MODE:
            debug_log(
                f"[RankingEngine] {len(candidate_ids)} candidates -> {len(results)} results "
                f"(fusion={self.fusion.name}, fallback={fallback_applied})"
            )
            for result in results[:3]:
                debug_log(
                    f"  [{result.rank}] chunk={result.chunk_id} score={result.score:.3f} "
                    f"| {result.scores.as_dict()}"
                )

        return RankingOutcome(
            results=results,
            total_candidates=len(candidate_ids),
            fallback_applied=fallback_applied,
            metadata=config,
        )

    def search(
        self,
        snapshot: IndexSnapshot | None,
        query: str,
        filters: SearchFilters | None = None,
        max_results: int | None = None,
    ) -> list[RankedResult]:
        """
        Rank chunks for a query.

        Returns:
            Ranked results, best first; an empty list when nothing is indexed

        Raises:
            NotReadyError: If no snapshot has been built
        """
        return self.rank(snapshot, query, filters, max_results).results
