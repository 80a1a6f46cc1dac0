"""
Tests for LLM context building and source citations.
"""

from sop_assistant.qa import build_context, build_qa_prompt, format_sources
from sop_assistant.retrieval.base import Chunk, ChunkMetadata, ComponentScores, RankedResult


def _result(chunk, score, rank=1):
    return RankedResult(chunk=chunk, score=score, scores=ComponentScores(), rank=rank)


def _plain_chunk(chunk_id, text):
    return Chunk(id=chunk_id, text=text, metadata=ChunkMetadata(word_count=len(text.split())))


class TestBuildContext:
    """Test the context block layout."""

    def test_header_and_sections(self, image_chunk):
        """Sections list tags, content and images under the question."""
        context = build_context("Ohio form?", [_result(image_chunk, 0.614)])
        assert context == "\n".join([
            "USER QUESTION: Ohio form?",
            "",
            "RELEVANT DOCUMENTATION:",
            "",
            "--- Section 1 (Score: 0.61) ---",
            "States: OH",
            "Type: RISE",
            "Content: Use the Ohio RISE order form shown in Image 1.",
            "Images:",
            "- [IMAGE: image_1.png - Image 1: Ohio RISE order form example]",
        ])

    def test_untagged_chunk_has_only_content(self):
        """Empty tag sets are left out of the section."""
        context = build_context("q", [_result(_plain_chunk(3, "Plain text."), 0.1)])
        assert "States:" not in context
        assert "Images:" not in context
        assert "Content: Plain text." in context

    def test_sections_numbered_in_result_order(self):
        """Sections are numbered from 1 in the order given."""
        results = [_result(_plain_chunk(7, "first"), 0.9), _result(_plain_chunk(2, "second"), 0.4, rank=2)]
        context = build_context("q", results)
        assert context.index("Section 1") < context.index("Content: first")
        assert context.index("Section 2") < context.index("Content: second")

    def test_min_score_drops_weak_results(self):
        """Results below min_score are excluded."""
        results = [_result(_plain_chunk(0, "strong"), 0.8), _result(_plain_chunk(1, "weak"), 0.05, rank=2)]
        context = build_context("q", results, min_score=0.1)
        assert "strong" in context
        assert "weak" not in context

    def test_no_results(self):
        """An empty result list says so."""
        context = build_context("q", [])
        assert context.endswith("RELEVANT DOCUMENTATION:\n(no matching documentation found)")


class TestFormatSources:
    """Test citation lines."""

    def test_tagged_citation(self, image_chunk):
        assert format_sources([_result(image_chunk, 0.5)]) == [
            "[1] Chunk 10 (OH, RISE) score 0.50 - Use the Ohio RISE order form shown in Image 1.",
        ]

    def test_long_text_is_shortened(self):
        """Previews are cut to 60 characters."""
        citation = format_sources([_result(_plain_chunk(1, "word " * 30), 0.25)])[0]
        assert citation.startswith("[1] Chunk 1 score 0.25 - word")
        assert citation.endswith("...")
        assert len(citation.split(" - ", 1)[1]) <= 60


class TestQAPrompt:
    """Test the answering prompt."""

    def test_prompt_wraps_context(self):
        """The context is embedded and the prompt ends with the answer cue."""
        context = build_context("Ohio limits?", [])
        prompt = build_qa_prompt("Ohio limits?", context)
        assert context in prompt
        assert prompt.endswith("ANSWER:")
        assert "The SOP does not contain information about this." in prompt
