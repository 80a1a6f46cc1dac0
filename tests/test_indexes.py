"""
Tests for the four index types, the index registry and the Chunk Indexer.
"""

import math

import pytest

from sop_assistant.retrieval.base import Chunk, ChunkMetadata, QueryContext, SearchFilters
from sop_assistant.retrieval.exceptions import InvalidInputError
from sop_assistant.retrieval.indexer import ChunkIndexer, validate_chunks
from sop_assistant.retrieval.indexes import (
    ImageIndex,
    KeywordIndex,
    MetadataIndex,
    SemanticIndex,
    get_all_indexes,
    get_index,
)
from sop_assistant.retrieval.indexes.image import extract_image_keywords


def _chunk(chunk_id, text, states=(), sections=(), topics=()):
    return Chunk(
        id=chunk_id,
        text=text,
        metadata=ChunkMetadata(
            states=frozenset(states),
            sections=frozenset(sections),
            topics=frozenset(topics),
            word_count=len(text.split()),
        ),
    )


class TestIndexRegistry:
    """Test index registration and discovery."""

    def test_all_indexes_registered_in_order(self):
        """The four index types register in scoring order."""
        assert list(get_all_indexes()) == ["semantic", "keyword", "metadata", "image"]

    def test_get_index_by_name(self):
        """Lookup returns the class, or None for unknown names."""
        assert get_index("keyword") is KeywordIndex
        assert get_index("nonexistent") is None


class TestSemanticIndex:
    """Test the bag-of-words cosine index."""

    def test_vectors_are_unit_length(self):
        """Each chunk vector has L2 norm 1."""
        index = SemanticIndex()
        index.index_chunks([_chunk(0, "Ohio rise orders follow menu pricing")])
        vector = index.get_vector(0)
        assert math.isclose(math.sqrt(sum(v * v for v in vector.values())), 1.0)

    def test_zero_vector_scores_zero(self):
        """A chunk with only stopwords never matches."""
        index = SemanticIndex()
        index.index_chunks([_chunk(0, "the and of to"), _chunk(1, "ohio pricing")])
        context = QueryContext("ohio pricing")
        assert index.score(0, context) == 0.0
        assert index.score(1, context) == pytest.approx(1.0)
        assert index.get_stats()["zero_vectors"] == 1

    def test_unknown_chunk_scores_zero(self):
        """Ids that were not indexed score 0."""
        index = SemanticIndex()
        index.index_chunks([])
        assert index.score(99, QueryContext("ohio")) == 0.0
        assert index.is_indexed is True


class TestKeywordIndex:
    """Test the TF-IDF index."""

    CHUNKS = [
        _chunk(0, "apple banana orders"),
        _chunk(1, "cherry orders"),
    ]

    def test_idf_zero_for_terms_in_every_chunk(self):
        """A term found in all chunks carries no weight anywhere."""
        index = KeywordIndex()
        index.index_chunks(self.CHUNKS)
        assert index.idf("orders") == 0.0
        assert index.get_vector(0)["orders"] == 0.0
        assert index.get_vector(1)["orders"] == 0.0

    def test_weights_are_tf_times_ln_idf(self):
        """weight = tf * ln(N / df)."""
        index = KeywordIndex()
        index.index_chunks([_chunk(0, "apple apple"), _chunk(1, "cherry")])
        assert index.get_vector(0)["apple"] == pytest.approx(2 * math.log(2))

    def test_score_is_mean_over_query_terms(self):
        """Repeated query terms count each time; missing terms add 0."""
        index = KeywordIndex()
        index.index_chunks(self.CHUNKS)
        score = index.score(0, QueryContext("apple apple cherry"))
        assert score == pytest.approx((2 * math.log(2)) / 3)

    def test_score_without_terms_is_zero(self):
        """A query of stopwords scores 0 everywhere."""
        index = KeywordIndex()
        index.index_chunks(self.CHUNKS)
        assert index.score(0, QueryContext("what is the")) == 0.0

    def test_vocabulary_in_first_seen_order(self):
        """Vocabulary dimensions follow corpus order."""
        index = KeywordIndex()
        index.index_chunks(self.CHUNKS)
        assert list(index.vocabulary) == ["apple", "banana", "orders", "cherry"]
        assert index.vocabulary["cherry"] == 3

    def test_top_terms_sorted_by_weight_then_term(self):
        """Top terms list highest weight first, alphabetical among ties."""
        index = KeywordIndex(top_k_terms=2)
        index.index_chunks(self.CHUNKS)
        assert index.top_terms(0) == ["apple", "banana"]


class TestMetadataIndex:
    """Test the inverted metadata index."""

    CHUNKS = [
        _chunk(0, "ohio", states=["OH"], sections=["RISE"], topics=["PRICING"]),
        _chunk(1, "maryland", states=["MD"], sections=["REGULAR"]),
        _chunk(2, "new jersey", states=["NJ"], sections=["REGULAR", "RISE"]),
    ]

    @pytest.fixture
    def index(self):
        index = MetadataIndex()
        index.index_chunks(self.CHUNKS)
        return index

    def test_postings_keep_chunk_order(self, index):
        """Posting lists follow processing order."""
        assert index.postings("sections", "RISE") == [0, 2]
        assert index.postings("has_images", False) == [0, 1, 2]

    def test_union_within_dimension(self, index):
        """Several values of one dimension are alternatives."""
        assert index.candidates(SearchFilters(states={"OH", "MD"})) == {0, 1}

    def test_intersection_across_dimensions(self, index):
        """Every active dimension must match."""
        filters = SearchFilters(states={"NJ", "MD"}, sections={"RISE"})
        assert index.candidates(filters) == {2}

    def test_narrowing_subset_invariant(self, index):
        """Every candidate for states={OH} carries OH."""
        candidates = index.candidates(SearchFilters(states={"OH"}))
        assert candidates <= {chunk.id for chunk in self.CHUNKS}
        for chunk in self.CHUNKS:
            if chunk.id in candidates:
                assert "OH" in chunk.metadata.states

    def test_no_filters_means_no_narrowing(self, index):
        """Empty filters return None rather than an empty set."""
        assert index.candidates(SearchFilters()) is None

    def test_has_images_filter(self, index):
        """has_images filters on both True and False."""
        assert index.candidates(SearchFilters(has_images=True)) == set()
        assert index.candidates(SearchFilters(has_images=False)) == {0, 1, 2}

    def test_score_fraction_of_active_dimensions(self, index):
        """Score counts matched state/section/topic dimensions."""
        context = QueryContext("q", SearchFilters(states={"OH"}, topics={"BATTERIES"}))
        assert index.score(0, context) == 0.5
        assert index.score(1, context) == 0.0

    def test_neutral_score_without_filters(self, index):
        """No active dimension gives the neutral score."""
        assert index.score(1, QueryContext("q")) == 0.5

    def test_stats(self, index):
        """Stats count distinct values per dimension."""
        stats = index.get_stats()
        assert stats["states"] == 3
        assert stats["sections"] == 2
        assert stats["topics"] == 1
        assert stats["chunks_with_images"] == 0


class TestImageIndex:
    """Test the image association index."""

    def test_keywords_from_label_and_filename(self, image_chunk):
        """Labels and extension-stripped filenames are tokenized, deduplicated."""
        keywords = extract_image_keywords(image_chunk.images)
        assert keywords == ("image", "ohio", "rise", "order", "form", "example", "image_1")

    def test_score_fraction_of_keywords_in_query(self, image_chunk):
        """Score is the share of image keywords found in the query text."""
        index = ImageIndex()
        index.index_chunks([image_chunk])
        score = index.score(image_chunk.id, QueryContext("Show me the Ohio order form example"))
        assert score == pytest.approx(4 / 7)

    def test_chunks_without_images_score_zero(self):
        """Only chunks with images get an entry."""
        index = ImageIndex()
        index.index_chunks([_chunk(0, "ohio order form")])
        assert index.get_entry(0) is None
        assert index.score(0, QueryContext("ohio order form")) == 0.0


class TestChunkIndexer:
    """Test snapshot builds and record validation."""

    def test_build_snapshot(self, scenario_records):
        """All four indexes are built over the validated chunks."""
        snapshot = ChunkIndexer().build(scenario_records, generation=3)
        assert snapshot.chunk_count == 3
        assert snapshot.generation == 3
        assert snapshot.chunk_ids == [0, 1, 2]
        assert set(snapshot.indexes) == {"semantic", "keyword", "metadata", "image"}
        assert snapshot.get_chunk(1).metadata.states == frozenset({"MD"})

    def test_empty_build(self):
        """An empty collection builds a zero-chunk snapshot."""
        snapshot = ChunkIndexer().build([])
        assert snapshot.chunk_count == 0
        assert snapshot.get_stats()["keyword_terms"] == 0

    def test_stats(self, scenario_records):
        """Snapshot stats summarize every index."""
        stats = ChunkIndexer().build(scenario_records).get_stats()
        assert stats["chunk_count"] == 3
        assert stats["semantic_vectors"] == 3
        assert stats["metadata_filters"]["states"] == 3
        assert stats["metadata_filters"]["sections"] == 2
        assert stats["images_indexed"] == 0
        assert stats["keyword_terms"] > 0

    def test_snapshot_is_read_only(self, scenario_records):
        """Index mappings cannot be swapped out after a build."""
        snapshot = ChunkIndexer().build(scenario_records)
        with pytest.raises(TypeError):
            snapshot.indexes["keyword"] = None

    def test_missing_text_names_record(self, scenario_records):
        """Malformed records fail the whole build with their position."""
        del scenario_records[1]["text"]
        with pytest.raises(InvalidInputError, match="record 1") as exc_info:
            validate_chunks(scenario_records)
        assert exc_info.value.record_index == 1
        assert exc_info.value.chunk_id == 1

    def test_missing_id(self):
        """Records need an id."""
        with pytest.raises(InvalidInputError, match="chunk_id"):
            validate_chunks([{"text": "no id"}])

    def test_duplicate_ids_rejected(self, scenario_records):
        """Ids must be unique within a collection."""
        scenario_records[2]["chunk_id"] = 0
        with pytest.raises(InvalidInputError, match="Duplicate"):
            validate_chunks(scenario_records)

    def test_inconsistent_image_metadata_rejected(self):
        """has_images must agree with the image list."""
        record = {"chunk_id": 0, "text": "x", "images": [], "metadata": {"has_images": True}}
        with pytest.raises(InvalidInputError, match="record 0"):
            validate_chunks([record])

    def test_camel_case_metadata_accepted(self):
        """camelCase metadata keys are understood."""
        record = {
            "id": "4",
            "text": "battery invoice",
            "images": [{"filename": "image_4.png", "label": "Image 4"}],
            "metadata": {"hasImages": True, "imageCount": 1, "wordCount": 2, "states": ["MD"]},
        }
        chunk = validate_chunks([record])[0]
        assert chunk.id == 4
        assert chunk.metadata.has_images is True
        assert chunk.metadata.image_count == 1

    def test_chunk_with_string_id_rejected(self):
        """Chunk objects get the same id check as raw records."""
        with pytest.raises(InvalidInputError, match="chunk_id must be an integer"):
            ChunkIndexer().build([Chunk(id="a", text="ohio order limits apply")])

    def test_chunk_with_missing_text_rejected(self):
        """Chunk objects need string text."""
        with pytest.raises(InvalidInputError, match="text must be a string"):
            ChunkIndexer().build([Chunk(id=1, text=None, metadata=ChunkMetadata())])

    def test_altered_chunk_names_record(self):
        """A Chunk whose id was changed after construction fails with its position."""
        good = _chunk(0, "ohio order limits")
        altered = _chunk(1, "maryland pricing")
        object.__setattr__(altered, "id", "b")
        with pytest.raises(InvalidInputError, match="record 1") as exc_info:
            validate_chunks([good, altered])
        assert exc_info.value.record_index == 1

    def test_string_collection_rejected(self):
        """A bare string is not a chunk collection."""
        with pytest.raises(InvalidInputError):
            validate_chunks("not a list")
