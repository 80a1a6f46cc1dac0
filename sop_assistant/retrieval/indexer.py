"""
Chunk Indexer for the SOP retrieval engine.

Builds all registered index types over one chunk collection and packages
them, together with the chunks, into an immutable IndexSnapshot. A build
never modifies an existing snapshot: callers swap the new snapshot in once
it is complete, so a failed build leaves the previous one untouched.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Type

from sop_assistant.config import DEBUG_MODE
from sop_assistant.logging_config import Timer, debug_log
from sop_assistant.retrieval.base import BaseIndex, Chunk
from sop_assistant.retrieval.exceptions import InvalidInputError
from sop_assistant.retrieval.indexes import (
    ImageIndex,
    KeywordIndex,
    MetadataIndex,
    SemanticIndex,
    get_all_indexes,
)


@dataclass(frozen=True)
class IndexSnapshot:
    """
    One complete, immutable build of the engine's indexes.

    Attributes:
        chunks: Indexed chunks in processing order
        indexes: Index name -> built index instance
        generation: Build counter of the owner (0 for standalone builds)
    """

    chunks: tuple[Chunk, ...]
    indexes: Mapping[str, BaseIndex]
    generation: int = 0
    _by_id: Mapping[int, Chunk] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "indexes", MappingProxyType(dict(self.indexes)))
        object.__setattr__(
            self, "_by_id", MappingProxyType({chunk.id: chunk for chunk in self.chunks})
        )

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)

    @property
    def chunk_ids(self) -> list[int]:
        return [chunk.id for chunk in self.chunks]

    def get_chunk(self, chunk_id: int) -> Chunk | None:
        return self._by_id.get(chunk_id)

    @property
    def semantic(self) -> SemanticIndex:
        return self.indexes[SemanticIndex.name]

    @property
    def keyword(self) -> KeywordIndex:
        return self.indexes[KeywordIndex.name]

    @property
    def metadata(self) -> MetadataIndex:
        return self.indexes[MetadataIndex.name]

    @property
    def image(self) -> ImageIndex:
        return self.indexes[ImageIndex.name]

    def get_stats(self) -> dict[str, Any]:
        """
        Summarize the snapshot.

        Returns:
            Dictionary with chunk count, vocabulary size, metadata tag counts,
            image chunk count and per-index statistics
        """
        metadata_stats = self.metadata.get_stats()
        return {
            "chunk_count": self.chunk_count,
            "generation": self.generation,
            "semantic_vectors": self.semantic.get_stats()["vectors"],
            "keyword_terms": len(self.keyword.vocabulary),
            "metadata_filters": {
                "states": metadata_stats["states"],
                "sections": metadata_stats["sections"],
                "topics": metadata_stats["topics"],
                "chunks_with_images": metadata_stats["chunks_with_images"],
            },
            "images_indexed": self.image.get_stats()["chunks_with_images"],
            "indexes": {name: index.get_stats() for name, index in self.indexes.items()},
        }


def validate_chunks(records: Iterable[Any]) -> list[Chunk]:
    """
    Convert and validate a chunk collection.

    Accepts Chunk objects and raw records (dicts) mixed. Fails on the first
    bad record instead of skipping it.

    Args:
        records: Chunk objects or chunk records

    Returns:
        Validated chunks in input order

    Raises:
        InvalidInputError: If a record is malformed or an id is repeated
    """
    if records is None or isinstance(records, (str, bytes, Mapping)):
        raise InvalidInputError("Chunk collection must be a list of chunk records")

    chunks: list[Chunk] = []
    seen_ids: set[int] = set()

    for record_index, record in enumerate(records):
        chunk = Chunk.from_record(record, record_index=record_index)
        if chunk.id in seen_ids:
            raise InvalidInputError(
                "Duplicate chunk id",
                record_index=record_index,
                chunk_id=chunk.id,
            )
        seen_ids.add(chunk.id)
        chunks.append(chunk)

    return chunks


class ChunkIndexer:
    """
    Builds IndexSnapshots from chunk collections.

    Every registered index type is instantiated fresh for each build.

    Example:
        indexer = ChunkIndexer()
        snapshot = indexer.build(chunks)
        snapshot.keyword.idf("ohio")
    """

    def __init__(self, index_types: Mapping[str, Type[BaseIndex]] | None = None):
        """
        Initialize the indexer.

        Args:
            index_types: Index classes to build (default: all registered)
        """
        self.index_types = dict(index_types) if index_types is not None else get_all_indexes()

    def build(self, records: Iterable[Any], generation: int = 0) -> IndexSnapshot:
        """
        Build every index over a chunk collection.

        An empty collection is valid and produces a zero-chunk snapshot.

        Args:
            records: Chunk objects or chunk records
            generation: Build counter stamped onto the snapshot

        Returns:
            Fully built IndexSnapshot

        Raises:
            InvalidInputError: If any record is malformed (nothing is built)
        """
        chunks = validate_chunks(records)

        indexes: dict[str, BaseIndex] = {}
        with Timer(f"[ChunkIndexer] Build of {len(chunks)} chunks", auto_log=DEBUG_MODE):
            for name, index_cls in self.index_types.items():
                index = index_cls()
                index.index_chunks(chunks)
                indexes[name] = index

                if DEBUG_MODE:
                    debug_log(f"[ChunkIndexer] {name} index: {index.get_stats()}")

        return IndexSnapshot(chunks=tuple(chunks), indexes=indexes, generation=generation)
