"""
Metadata index.

Four inverted maps from tag value to chunk ids: states, sections, topics
and has_images. Used twice per search: to narrow the candidate set before
scoring, and to score how many active filter dimensions a chunk satisfies.
"""

from typing import Any

from sop_assistant.config import METADATA_NEUTRAL_SCORE
from sop_assistant.retrieval.base import BaseIndex, Chunk, QueryContext, SearchFilters
from sop_assistant.retrieval.indexes import register_index

# Tag dimensions that take part in candidate narrowing and scoring
TAG_DIMENSIONS = ("states", "sections", "topics")


@register_index
class MetadataIndex(BaseIndex):
    """
    Inverted metadata index.

    Each posting list keeps chunk processing order; a chunk appears at most
    once per value because tags are sets.

    Example:
        index = MetadataIndex()
        index.index_chunks(chunks)
        index.postings("states", "OH")          # [0, 7]
        index.candidates(SearchFilters(states={"OH"}))
    """

    name: str = "metadata"

    def __init__(self):
        self._postings: dict[str, dict[Any, list[int]]] = {
            "states": {},
            "sections": {},
            "topics": {},
            "has_images": {},
        }
        self._chunk_tags: dict[int, dict[str, frozenset[str]]] = {}
        self._indexed = False

    def index_chunks(self, chunks: list[Chunk]) -> None:
        """Build the four inverted maps."""
        postings: dict[str, dict[Any, list[int]]] = {
            "states": {},
            "sections": {},
            "topics": {},
            "has_images": {},
        }
        chunk_tags: dict[int, dict[str, frozenset[str]]] = {}

        for chunk in chunks:
            meta = chunk.metadata
            # Sorted so posting-map key order is reproducible across runs
            for dimension in TAG_DIMENSIONS:
                for value in sorted(getattr(meta, dimension)):
                    postings[dimension].setdefault(value, []).append(chunk.id)
            postings["has_images"].setdefault(meta.has_images, []).append(chunk.id)

            chunk_tags[chunk.id] = {
                dimension: getattr(meta, dimension) for dimension in TAG_DIMENSIONS
            }

        self._postings = postings
        self._chunk_tags = chunk_tags
        self._indexed = True

    def postings(self, dimension: str, value: Any) -> list[int]:
        """
        Chunk ids carrying a tag value.

        Args:
            dimension: "states", "sections", "topics" or "has_images"
            value: Tag value (a bool for "has_images")

        Raises:
            KeyError: If the dimension is unknown
        """
        return list(self._postings[dimension].get(value, []))

    def candidates(self, filters: SearchFilters) -> set[int] | None:
        """
        Intersect posting lists for the active filter dimensions.

        Values within one dimension are unioned; dimensions are intersected.

        Args:
            filters: Filters to apply

        Returns:
            Matching chunk ids (possibly empty), or None when no filter
            dimension is active
        """
        candidates: set[int] | None = None

        for dimension in TAG_DIMENSIONS:
            values = getattr(filters, dimension)
            if not values:
                continue
            matched: set[int] = set()
            for value in values:
                matched.update(self._postings[dimension].get(value, ()))
            candidates = matched if candidates is None else candidates & matched

        if filters.has_images is not None:
            matched = set(self._postings["has_images"].get(filters.has_images, ()))
            candidates = matched if candidates is None else candidates & matched

        return candidates

    def score(self, chunk_id: int, context: QueryContext) -> float:
        """
        Fraction of active state/section/topic filters the chunk satisfies.

        A dimension is satisfied when the chunk carries any of its values.
        With no active dimension the score is the neutral METADATA_NEUTRAL_SCORE.
        """
        filters = context.filters
        active = filters.active_dimensions
        if active == 0:
            return METADATA_NEUTRAL_SCORE

        tags = self._chunk_tags.get(chunk_id)
        if tags is None:
            return 0.0

        matched = sum(
            1 for dimension in TAG_DIMENSIONS
            if getattr(filters, dimension) and tags[dimension] & getattr(filters, dimension)
        )
        return matched / active

    def values(self, dimension: str) -> list[Any]:
        """Distinct values seen for a dimension, in first-seen order."""
        return list(self._postings[dimension])

    @property
    def is_indexed(self) -> bool:
        return self._indexed

    def get_stats(self) -> dict[str, Any]:
        stats = super().get_stats()
        stats.update({
            "states": len(self._postings["states"]),
            "sections": len(self._postings["sections"]),
            "topics": len(self._postings["topics"]),
            "chunks_with_images": len(self._postings["has_images"].get(True, [])),
        })
        return stats
