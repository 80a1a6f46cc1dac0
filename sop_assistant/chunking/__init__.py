"""
Chunk preparation for the SOP assistant.

Public API:
    ChunkBuilder: Split plain text into tagged chunks with linked images
    MetadataTagger: Tag text with states, sections and topics
    load_chunks: Load validated chunks from a JSON or YAML file
"""

from sop_assistant.chunking.chunk_builder import ChunkBuilder
from sop_assistant.chunking.loader import load_chunks, read_chunk_records
from sop_assistant.chunking.tagger import ChunkTags, MetadataTagger

__all__ = [
    "ChunkBuilder",
    "ChunkTags",
    "MetadataTagger",
    "load_chunks",
    "read_chunk_records",
]
