"""
Chunk Builder for plain-text SOP documents.

Splits document text into overlapping chunks, links each chunk to the
images it refers to, and tags it with states, sections and topics so the
result can go straight into SOPRetriever.build_from_chunks().

Image linking: an image belongs to a chunk when the chunk text names the
image's reference ("Image 3", taken from the start of its label) or its
file name.
"""

import re
from collections.abc import Iterable, Mapping
from typing import Any

from langchain_text_splitters import RecursiveCharacterTextSplitter

from sop_assistant.chunking.tagger import MetadataTagger
from sop_assistant.config import CHUNK_OVERLAP, CHUNK_SIZE, DEBUG_MODE
from sop_assistant.logging_config import debug_log
from sop_assistant.retrieval.base import Chunk, ChunkMetadata, ImageRef

# "Image 3" / "Figure 12" at the start of a label
_IMAGE_REFERENCE_RE = re.compile(r"^\s*((?:image|figure|fig\.?)\s*\d+)\b", re.IGNORECASE)


def image_reference(image: ImageRef) -> str | None:
    """
    Reference text an image is cited by, taken from its label.

    Example:
        image_reference(ImageRef("image_3.png", "Image 3: Illinois RISE order splitting"))
        # "image 3"
    """
    match = _IMAGE_REFERENCE_RE.match(image.label or "")
    if not match:
        return None
    return re.sub(r"\s+", " ", match.group(1).lower())


def _as_image_ref(image: ImageRef | Mapping[str, Any]) -> ImageRef:
    if isinstance(image, ImageRef):
        return image
    return ImageRef(
        filename=str(image["filename"]),
        label=str(image.get("label") or ""),
        path=image.get("path"),
    )


class ChunkBuilder:
    """
    Turns document text plus an image list into tagged Chunk objects.

    Attributes:
        chunk_size: Maximum characters per chunk
        chunk_overlap: Characters shared by consecutive chunks
        tagger: MetadataTagger used for states, sections and topics

    Example:
        builder = ChunkBuilder()
        chunks = builder.build(sop_text, images=[{"filename": "image_1.png",
                                                  "label": "Image 1: Ohio RISE order form"}])
        retriever.build_from_chunks(chunks)
    """

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
        tagger: MetadataTagger | None = None,
    ):
        """
        Initialize the builder.

        Raises:
            ValueError: If chunk_size is not positive or the overlap is not
                        smaller than the chunk size
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= chunk_overlap < chunk_size:
            raise ValueError("chunk_overlap must be non-negative and smaller than chunk_size")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.tagger = tagger or MetadataTagger()
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            length_function=len,
            separators=["\n\n", "\n", ". ", " ", ""],
        )

    def split_text(self, text: str) -> list[str]:
        """Split text into stripped, non-empty pieces."""
        return [piece.strip() for piece in self._splitter.split_text(text) if piece.strip()]

    def find_images(self, text: str, images: Iterable[ImageRef]) -> list[ImageRef]:
        """Images the text refers to, in the order given."""
        text_lower = text.lower()
        text_normalized = re.sub(r"\s+", " ", text_lower)
        found = []
        for image in images:
            reference = image_reference(image)
            if reference and re.search(rf"\b{re.escape(reference)}\b", text_normalized):
                found.append(image)
            elif image.filename and image.filename.lower() in text_lower:
                found.append(image)
        return found

    def build(
        self,
        text: str,
        images: Iterable[ImageRef | Mapping[str, Any]] | None = None,
        start_id: int = 0,
    ) -> list[Chunk]:
        """
        Chunk, link and tag a document.

        Args:
            text: Full document text
            images: Images extracted from the document
            start_id: Id of the first chunk; ids are sequential

        Returns:
            Chunks in document order (empty for blank text)
        """
        image_refs = [_as_image_ref(image) for image in images or []]
        chunks = []

        for offset, piece in enumerate(self.split_text(text or "")):
            chunk_images = tuple(self.find_images(piece, image_refs))
            tags = self.tagger.tag(piece)
            chunks.append(Chunk(
                id=start_id + offset,
                text=piece,
                images=chunk_images,
                metadata=ChunkMetadata(
                    states=tags.states,
                    sections=tags.sections,
                    topics=tags.topics,
                    has_images=bool(chunk_images),
                    image_count=len(chunk_images),
                    word_count=len(piece.split()),
                ),
            ))

        if DEBUG_MODE:
            linked = sum(1 for chunk in chunks if chunk.metadata.has_images)
            debug_log(
                f"[ChunkBuilder] {len(text or '')} chars -> {len(chunks)} chunks "
                f"({linked} with images, {len(image_refs)} images available)"
            )

        return chunks
