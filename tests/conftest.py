"""
Shared fixtures for the SOP assistant test suite.

Log files go to a throwaway directory so test runs never write into the
user's application folder. The variable must be set before sop_assistant
is first imported, which is why it happens at module level here.
"""

import os
import tempfile

os.environ.setdefault("SOP_ASSISTANT_HOME", tempfile.mkdtemp(prefix="sop_assistant_tests_"))

import pytest  # noqa: E402

from sop_assistant.retrieval.base import Chunk, ChunkMetadata, ImageRef  # noqa: E402


# Scenario corpus: one chunk per state, tagged the way the SOP sections are
SCENARIO_RECORDS = [
    {
        "chunk_id": 0,
        "text": "Ohio RISE orders: RISE orders in Ohio follow standard menu pricing. "
                "The unit limit is 10 units per order.",
        "images": [],
        "metadata": {"states": ["OH"], "sections": ["RISE"], "topics": []},
    },
    {
        "chunk_id": 1,
        "text": "Maryland regular orders: regular wholesale orders in Maryland require "
                "separate invoicing for batteries.",
        "images": [],
        "metadata": {"states": ["MD"], "sections": ["REGULAR"], "topics": []},
    },
    {
        "chunk_id": 2,
        "text": "New Jersey orders: batch substitutions follow FIFO for regular and RISE orders.",
        "images": [],
        "metadata": {"states": ["NJ"], "sections": ["REGULAR", "RISE"], "topics": []},
    },
]


@pytest.fixture
def scenario_records():
    """Three-chunk OH/RISE, MD/REGULAR, NJ/REGULAR+RISE corpus as raw records."""
    return [dict(record) for record in SCENARIO_RECORDS]


@pytest.fixture
def image_chunk():
    """A chunk carrying one labelled image."""
    image = ImageRef(
        filename="image_1.png",
        label="Image 1: Ohio RISE order form example",
        path="/images/image_1.png",
    )
    return Chunk(
        id=10,
        text="Use the Ohio RISE order form shown in Image 1.",
        images=(image,),
        metadata=ChunkMetadata(
            states=frozenset({"OH"}),
            sections=frozenset({"RISE"}),
            has_images=True,
            image_count=1,
            word_count=10,
        ),
    )
