"""
Base classes and data structures for the retrieval engine.

This module defines the chunk data model, the per-query context shared by
all indexes, the ranked result types, and the abstract base class every
index type implements. The engine builds four indexes over one chunk
collection and fuses their scores into a single ranking.

Design Principles:
- Single Responsibility: Each index scores one signal (semantic, keyword,
  metadata, image)
- Open/Closed: Add new index types without modifying existing code
- Immutable inputs: Chunks are frozen once created and never mutated by
  indexing

Example:
    class KeywordIndex(BaseIndex):
        name = "keyword"

        def index_chunks(self, chunks: list[Chunk]) -> None:
            # Build TF-IDF vectors
            ...

        def score(self, chunk_id: int, context: QueryContext) -> float:
            # Mean TF-IDF weight of the query terms
            ...
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any

from sop_assistant.retrieval.exceptions import InvalidInputError
from sop_assistant.retrieval.tokenizer import tokenize
from sop_assistant.retrieval.vectors import SparseVector, normalized_term_vector


def _as_tag_set(values: Any, field_name: str, record_index: int | None = None, chunk_id=None) -> frozenset[str]:
    """Coerce a list/tuple/set of strings into a frozenset, rejecting anything else."""
    if values is None:
        return frozenset()
    if isinstance(values, str) or not isinstance(values, Iterable):
        raise InvalidInputError(
            f"metadata.{field_name} must be a list of strings, got {type(values).__name__}",
            record_index=record_index,
            chunk_id=chunk_id,
        )
    tags = []
    for value in values:
        if not isinstance(value, str):
            raise InvalidInputError(
                f"metadata.{field_name} contains a non-string value {value!r}",
                record_index=record_index,
                chunk_id=chunk_id,
            )
        tags.append(value)
    return frozenset(tags)


def _upper_tags(values: Any) -> frozenset[str]:
    """Caller filter values as an upper-cased frozenset (a bare string is one value)."""
    if not values:
        return frozenset()
    if isinstance(values, str):
        values = [values]
    return frozenset(str(value).upper() for value in values)


@dataclass(frozen=True)
class ImageRef:
    """
    An image associated with a chunk.

    Attributes:
        filename: Image file name (e.g. "image_3.png")
        label: Caption or label text (e.g. "Image 3: Illinois RISE order splitting example")
        path: Optional storage path, carried through untouched
    """

    filename: str
    label: str = ""
    path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {"filename": self.filename, "label": self.label}
        if self.path is not None:
            data["path"] = self.path
        return data


@dataclass(frozen=True)
class ChunkMetadata:
    """
    Tags attached to a chunk when it was created.

    Attributes:
        states: US state codes mentioned by the chunk (e.g. {"OH"})
        sections: Order-type sections the chunk belongs to (e.g. {"RISE"})
        topics: Topic tags (e.g. {"PRICING", "ORDER_LIMIT"})
        has_images: Whether the chunk has associated images
        image_count: Number of associated images
        word_count: Number of whitespace-separated words in the text
    """

    states: frozenset[str] = frozenset()
    sections: frozenset[str] = frozenset()
    topics: frozenset[str] = frozenset()
    has_images: bool = False
    image_count: int = 0
    word_count: int = 0

    def __post_init__(self):
        """Freeze tag collections so metadata can never change after indexing."""
        for name in ("states", "sections", "topics"):
            value = getattr(self, name)
            if not isinstance(value, frozenset):
                object.__setattr__(self, name, _as_tag_set(value, name))

    def to_dict(self) -> dict[str, Any]:
        return {
            "states": sorted(self.states),
            "sections": sorted(self.sections),
            "topics": sorted(self.topics),
            "has_images": self.has_images,
            "image_count": self.image_count,
            "word_count": self.word_count,
        }


@dataclass(frozen=True)
class Chunk:
    """
    Immutable unit of retrievable content.

    If metadata is omitted it is derived from the images and text (no tags,
    image flags from the image list, word count from the text).

    Attributes:
        id: Unique, stable identifier within one collection build
        text: Normalized chunk text
        images: Associated images, in document order
        metadata: Tags and counts (see ChunkMetadata)

    Raises:
        InvalidInputError: If the id is not an integer, the text is not a
                           string, or has_images, image_count and the image
                           list disagree
    """

    id: int
    text: str
    images: tuple[ImageRef, ...] = ()
    metadata: ChunkMetadata | None = None

    def __post_init__(self):
        self.check_fields()

        if not isinstance(self.images, tuple):
            object.__setattr__(self, "images", tuple(self.images))

        if self.metadata is None:
            object.__setattr__(self, "metadata", ChunkMetadata(
                has_images=bool(self.images),
                image_count=len(self.images),
                word_count=len(self.text.split()),
            ))

        meta = self.metadata
        if not (meta.has_images == (meta.image_count > 0) == (len(self.images) > 0)):
            raise InvalidInputError(
                "Inconsistent image metadata: "
                f"has_images={meta.has_images}, image_count={meta.image_count}, "
                f"images={len(self.images)}",
                chunk_id=self.id,
            )
        if meta.image_count != len(self.images):
            raise InvalidInputError(
                f"image_count={meta.image_count} does not match {len(self.images)} images",
                chunk_id=self.id,
            )

    def check_fields(self) -> None:
        """
        Check the id and text types.

        Raises:
            InvalidInputError: If id is not an int (bools excluded) or text is not a str
        """
        if isinstance(self.id, bool) or not isinstance(self.id, int):
            raise InvalidInputError(f"chunk_id must be an integer, got {self.id!r}")
        if not isinstance(self.text, str):
            raise InvalidInputError(
                f"Chunk text must be a string, got {type(self.text).__name__}",
                chunk_id=self.id,
            )

    @classmethod
    def from_record(cls, record: Any, record_index: int | None = None) -> "Chunk":
        """
        Build a Chunk from an external record (JSON/YAML dict).

        Accepts "chunk_id" or "id", and snake_case or camelCase metadata keys
        ("has_images" / "hasImages", "image_count" / "imageCount",
        "word_count" / "wordCount").

        Args:
            record: Mapping with at least an id and a text field
            record_index: Position of the record in its collection (for errors)

        Returns:
            Validated Chunk

        Raises:
            InvalidInputError: If required fields are missing or malformed
        """
        if isinstance(record, Chunk):
            # Frozen fields can still be swapped with object.__setattr__
            try:
                record.check_fields()
            except InvalidInputError as e:
                raise InvalidInputError(e.reason, record_index=record_index, chunk_id=e.chunk_id) from e
            return record
        if not isinstance(record, Mapping):
            raise InvalidInputError(
                f"Chunk record must be a mapping, got {type(record).__name__}",
                record_index=record_index,
            )

        chunk_id = record.get("chunk_id", record.get("id"))
        if chunk_id is None:
            raise InvalidInputError("Chunk record is missing 'chunk_id'", record_index=record_index)
        if isinstance(chunk_id, str) and chunk_id.strip().isdigit():
            chunk_id = int(chunk_id)
        if isinstance(chunk_id, bool) or not isinstance(chunk_id, int):
            raise InvalidInputError(
                f"chunk_id must be an integer, got {chunk_id!r}",
                record_index=record_index,
            )

        text = record.get("text")
        if not isinstance(text, str):
            raise InvalidInputError(
                "Chunk record is missing a string 'text'",
                record_index=record_index,
                chunk_id=chunk_id,
            )

        images = []
        raw_images = record.get("images") or []
        if isinstance(raw_images, (str, Mapping)) or not isinstance(raw_images, Iterable):
            raise InvalidInputError("'images' must be a list", record_index=record_index, chunk_id=chunk_id)
        for image in raw_images:
            if isinstance(image, ImageRef):
                images.append(image)
                continue
            if not isinstance(image, Mapping) or not isinstance(image.get("filename"), str):
                raise InvalidInputError(
                    "Each image needs a string 'filename'",
                    record_index=record_index,
                    chunk_id=chunk_id,
                )
            images.append(ImageRef(
                filename=image["filename"],
                label=str(image.get("label") or ""),
                path=image.get("path"),
            ))

        raw_meta = record.get("metadata") or {}
        if not isinstance(raw_meta, Mapping):
            raise InvalidInputError("'metadata' must be a mapping", record_index=record_index, chunk_id=chunk_id)

        has_images = raw_meta.get("has_images", raw_meta.get("hasImages", bool(images)))
        image_count = raw_meta.get("image_count", raw_meta.get("imageCount", len(images)))
        word_count = raw_meta.get("word_count", raw_meta.get("wordCount", len(text.split())))
        if not isinstance(image_count, int) or not isinstance(word_count, int):
            raise InvalidInputError(
                "image_count and word_count must be integers",
                record_index=record_index,
                chunk_id=chunk_id,
            )

        metadata = ChunkMetadata(
            states=_as_tag_set(raw_meta.get("states"), "states", record_index, chunk_id),
            sections=_as_tag_set(raw_meta.get("sections"), "sections", record_index, chunk_id),
            topics=_as_tag_set(raw_meta.get("topics"), "topics", record_index, chunk_id),
            has_images=bool(has_images),
            image_count=image_count,
            word_count=word_count,
        )

        try:
            return cls(id=chunk_id, text=text, images=tuple(images), metadata=metadata)
        except InvalidInputError as e:
            raise InvalidInputError(e.reason, record_index=record_index, chunk_id=chunk_id) from e

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the external record shape."""
        return {
            "chunk_id": self.id,
            "text": self.text,
            "images": [image.to_dict() for image in self.images],
            "metadata": self.metadata.to_dict(),
        }


@dataclass(frozen=True)
class SearchFilters:
    """
    Metadata constraints for candidate narrowing.

    Values inside one dimension are alternatives (any may match); active
    dimensions must all match. An empty dimension means no constraint, and
    has_images=None means images are not considered.

    Attributes:
        states: Acceptable state codes
        sections: Acceptable order-type sections
        topics: Acceptable topics
        has_images: Require (True) or exclude (False) chunks with images
    """

    states: frozenset[str] = frozenset()
    sections: frozenset[str] = frozenset()
    topics: frozenset[str] = frozenset()
    has_images: bool | None = None

    def __post_init__(self):
        for name in ("states", "sections", "topics"):
            value = getattr(self, name)
            if isinstance(value, str):
                value = [value]
            if not isinstance(value, frozenset):
                object.__setattr__(self, name, frozenset(value or ()))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "SearchFilters":
        """
        Build filters from a caller-supplied dict.

        Accepts "has_images" or "hasImages"; single strings are treated as
        one-element lists. Tag values are upper-cased to match chunk tags
        ("oh" -> "OH").
        """
        if not mapping:
            return cls()
        has_images = mapping.get("has_images", mapping.get("hasImages"))
        return cls(
            states=_upper_tags(mapping.get("states")),
            sections=_upper_tags(mapping.get("sections")),
            topics=_upper_tags(mapping.get("topics")),
            has_images=None if has_images is None else bool(has_images),
        )

    @property
    def active_dimensions(self) -> int:
        """Number of state/section/topic dimensions that constrain results."""
        return sum(1 for values in (self.states, self.sections, self.topics) if values)

    @property
    def is_empty(self) -> bool:
        return self.active_dimensions == 0 and self.has_images is None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.states:
            data["states"] = sorted(self.states)
        if self.sections:
            data["sections"] = sorted(self.sections)
        if self.topics:
            data["topics"] = sorted(self.topics)
        if self.has_images is not None:
            data["has_images"] = self.has_images
        return data


@dataclass
class QueryContext:
    """
    Everything an index needs to score chunks for one query.

    Created once per search and shared by all indexes, so the query is
    tokenized and vectorized only once.

    Attributes:
        query: The original query string
        filters: Metadata filters in effect for this search
    """

    query: str
    filters: SearchFilters = field(default_factory=SearchFilters)

    @cached_property
    def query_lower(self) -> str:
        return self.query.lower()

    @cached_property
    def terms(self) -> list[str]:
        return tokenize(self.query)

    @cached_property
    def vector(self) -> SparseVector:
        return normalized_term_vector(self.terms)


@dataclass(frozen=True)
class ComponentScores:
    """Per-index scores for one chunk, kept for explainability."""

    semantic: float = 0.0
    keyword: float = 0.0
    metadata: float = 0.0
    image: float = 0.0

    def as_dict(self) -> dict[str, float]:
        return {
            "semantic": self.semantic,
            "keyword": self.keyword,
            "metadata": self.metadata,
            "image": self.image,
        }


@dataclass
class RankedResult:
    """
    One entry of a ranked search result list.

    Attributes:
        chunk: The original chunk
        score: Fused score (finite, non-negative)
        scores: Component scores from each index
        rank: 1-based position in the result list
        explanation: Short human-readable reason for the score
    """

    chunk: Chunk
    score: float
    scores: ComponentScores
    rank: int = 0
    explanation: str = ""

    @property
    def chunk_id(self) -> int:
        return self.chunk.id

    @property
    def text(self) -> str:
        return self.chunk.text

    def to_dict(self) -> dict[str, Any]:
        return {
            "rank": self.rank,
            "chunk_id": self.chunk.id,
            "score": self.score,
            "scores": self.scores.as_dict(),
            "explanation": self.explanation,
            "chunk": self.chunk.to_dict(),
        }


class BaseIndex(ABC):
    """
    Abstract base class for the engine's index types.

    All indexes must implement:
    - index_chunks(): Build the index from a chunk collection
    - score(): Score one indexed chunk against a query context
    - is_indexed: Property indicating if the index has been built

    An index is built exactly once. Rebuilding the engine creates new index
    instances instead of mutating existing ones, so a snapshot handed to a
    running search never changes underneath it.

    Class Attributes:
        name: Identifier used for registry lookup, weights and diagnostics
    """

    name: str = "base"

    @abstractmethod
    def index_chunks(self, chunks: list[Chunk]) -> None:
        """
        Build the index from a chunk collection.

        An empty collection is valid and yields an empty index.

        Args:
            chunks: Validated chunks, in processing order
        """

    @abstractmethod
    def score(self, chunk_id: int, context: QueryContext) -> float:
        """
        Score one chunk for a query.

        Args:
            chunk_id: Id of an indexed chunk
            context: Shared per-query context

        Returns:
            Non-negative finite score (0.0 when the chunk is unknown)
        """

    @property
    @abstractmethod
    def is_indexed(self) -> bool:
        """True once index_chunks() has completed."""

    def get_stats(self) -> dict[str, Any]:
        """
        Return index statistics for logging and diagnostics.

        Override in subclass to include index-specific figures.
        """
        return {"name": self.name, "indexed": self.is_indexed}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, indexed={self.is_indexed})"
