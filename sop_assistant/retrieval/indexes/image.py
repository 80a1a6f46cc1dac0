"""
Image index.

Maps each chunk that has images to those images plus a keyword list taken
from the image labels and file names. A query that names what an image
shows ("battery invoice example") lifts the chunks carrying that image.
"""

import os
from dataclasses import dataclass
from typing import Any

from sop_assistant.retrieval.base import BaseIndex, Chunk, ImageRef, QueryContext
from sop_assistant.retrieval.indexes import register_index
from sop_assistant.retrieval.tokenizer import tokenize


@dataclass(frozen=True)
class ImageEntry:
    """Images of one chunk and the keywords derived from them."""

    chunk_id: int
    images: tuple[ImageRef, ...]
    keywords: tuple[str, ...]


def extract_image_keywords(images: tuple[ImageRef, ...] | list[ImageRef]) -> tuple[str, ...]:
    """
    Tokenize image labels and extension-stripped file names.

    Args:
        images: Images of one chunk

    Returns:
        Distinct keywords in first-seen order
    """
    keywords: dict[str, None] = {}
    for image in images:
        if image.label:
            keywords.update(dict.fromkeys(tokenize(image.label)))
        if image.filename:
            stem, _ext = os.path.splitext(image.filename)
            keywords.update(dict.fromkeys(tokenize(stem)))
    return tuple(keywords)


@register_index
class ImageIndex(BaseIndex):
    """
    Image-association index.

    Only chunks with has_images=True get an entry; every other chunk scores 0.

    Example:
        index = ImageIndex()
        index.index_chunks(chunks)
        index.get_entry(chunk.id).keywords   # ("ohio", "rise", "order", ...)
    """

    name: str = "image"

    def __init__(self):
        self._entries: dict[int, ImageEntry] = {}
        self._indexed = False

    def index_chunks(self, chunks: list[Chunk]) -> None:
        """Collect images and keywords for chunks with images."""
        self._entries = {
            chunk.id: ImageEntry(
                chunk_id=chunk.id,
                images=chunk.images,
                keywords=extract_image_keywords(chunk.images),
            )
            for chunk in chunks
            if chunk.metadata.has_images
        }
        self._indexed = True

    def score(self, chunk_id: int, context: QueryContext) -> float:
        """
        Fraction of the chunk's image keywords found in the query.

        Matching is a plain substring test against the lower-cased query,
        so "invoice" also matches "invoices".
        """
        entry = self._entries.get(chunk_id)
        if entry is None or not entry.keywords:
            return 0.0

        query_lower = context.query_lower
        matches = sum(1 for keyword in entry.keywords if keyword in query_lower)
        return matches / len(entry.keywords)

    def get_entry(self, chunk_id: int) -> ImageEntry | None:
        return self._entries.get(chunk_id)

    @property
    def is_indexed(self) -> bool:
        return self._indexed

    def get_stats(self) -> dict[str, Any]:
        stats = super().get_stats()
        stats.update({
            "chunks_with_images": len(self._entries),
            "images": sum(len(entry.images) for entry in self._entries.values()),
        })
        return stats
