"""
Tests for the SOP Retriever facade.

Covers the end-to-end retrieval flow:
- Query analysis feeding metadata filters
- Snapshot builds and atomic replacement
- Explicit filters, fallback and fusion switching
- The bundled sample SOP
"""

import threading

import pytest

from sop_assistant import SOPRetriever, load_chunks
from sop_assistant.config import SAMPLE_CHUNKS_FILE
from sop_assistant.retrieval.base import SearchFilters
from sop_assistant.retrieval.exceptions import InvalidInputError, NotReadyError
from sop_assistant.retrieval.indexer import ChunkIndexer


@pytest.fixture
def retriever(scenario_records):
    retriever = SOPRetriever()
    retriever.build_from_chunks(scenario_records)
    return retriever


class TestScenarios:
    """End-to-end behaviour on small corpora."""

    def test_scenario_a_state_query(self, retriever):
        """Ohio question ranks the OH/RISE chunk first."""
        response = retriever.retrieve("What are the order limits for Ohio?")
        assert response.analysis.state == "OH"
        assert response.results[0].chunk_id == 0
        assert response.results[0].rank == 1

    def test_scenario_a_falls_back_when_topic_missing(self, retriever):
        """No chunk is tagged ORDER_LIMIT, so all chunks are scored."""
        response = retriever.retrieve("What are the order limits for Ohio?")
        assert response.filters.topics == frozenset({"ORDER_LIMIT"})
        assert response.fallback_applied is True
        assert response.total_candidates == 3

    def test_scenario_b_empty_collection(self):
        """An empty build searches to an empty list."""
        retriever = SOPRetriever()
        stats = retriever.build_from_chunks([])
        assert stats["chunk_count"] == 0
        assert retriever.is_ready is True
        assert retriever.search("anything") == []

    def test_scenario_c_unrecognized_query(self, retriever):
        """A query with nothing recognizable still returns a ranked list."""
        response = retriever.retrieve("hello there")
        assert response.analysis.state is None
        assert response.analysis.order_type is None
        assert response.analysis.topics == []
        assert response.analysis.confidence == 0.5
        assert len(response.results) == 3
        assert all(result.score >= 0 for result in response.results)

    def test_scenario_d_absent_tag_value(self, retriever):
        """A filter value no chunk carries falls back to the full corpus."""
        response = retriever.retrieve("orders", filters={"states": ["ZZ"]})
        assert response.fallback_applied is True
        assert len(response.results) == 3
        assert all(result.scores.metadata == 0.0 for result in response.results)


class TestSearch:
    """Test search options and determinism."""

    def test_search_before_build_raises(self):
        """Searching an unbuilt retriever raises NotReadyError."""
        retriever = SOPRetriever()
        assert retriever.is_ready is False
        with pytest.raises(NotReadyError, match="not built"):
            retriever.search("order limits")

    def test_not_ready_is_runtime_error(self):
        """NotReadyError can be caught as RuntimeError."""
        with pytest.raises(RuntimeError):
            SOPRetriever().retrieve("order limits")

    def test_deterministic(self, retriever):
        """Repeated searches return identical rankings and scores."""
        first = [(r.chunk_id, r.score) for r in retriever.search("regular orders in Maryland")]
        second = [(r.chunk_id, r.score) for r in retriever.search("regular orders in Maryland")]
        assert first == second

    def test_explicit_filters_replace_derived(self, retriever):
        """Caller filters win over what the analyzer found."""
        response = retriever.retrieve("Ohio rise orders", filters=SearchFilters(states={"MD"}))
        assert response.analysis.state == "OH"
        assert response.filters.states == frozenset({"MD"})
        assert [result.chunk_id for result in response.results] == [1]

    def test_filter_mapping_accepted(self, retriever):
        """Plain dict filters are converted, camelCase included."""
        response = retriever.retrieve("orders", filters={"sections": "RISE", "hasImages": False})
        assert response.filters == SearchFilters(sections=frozenset({"RISE"}), has_images=False)
        assert sorted(result.chunk_id for result in response.results) == [0, 2]

    def test_filter_mapping_values_upper_cased(self, retriever):
        """Lower-case filter values match the upper-case chunk tags."""
        response = retriever.retrieve("orders", filters={"states": ["oh"], "sections": "rise"})
        assert response.filters.states == frozenset({"OH"})
        assert response.filters.sections == frozenset({"RISE"})
        assert response.fallback_applied is False
        assert [result.chunk_id for result in response.results] == [0]

    def test_max_results(self, retriever):
        """max_results limits the list; values below 1 are rejected."""
        assert len(retriever.search("orders", max_results=1)) == 1
        with pytest.raises(ValueError):
            retriever.search("orders", max_results=0)

    def test_response_to_dict(self, retriever):
        """Responses serialize with analysis, filters and results."""
        data = retriever.retrieve("What are the order limits for Ohio?").to_dict()
        assert data["analysis"]["state"] == "OH"
        assert data["filters"]["states"] == ["OH"]
        assert data["results"][0]["chunk_id"] == 0
        assert data["summary"].startswith("Looking for OH state information")


class TestBuilds:
    """Test snapshot builds and replacement."""

    def test_build_returns_stats(self, scenario_records):
        """Build statistics describe the new index."""
        stats = SOPRetriever().build_from_chunks(scenario_records)
        assert stats["chunk_count"] == 3
        assert stats["generation"] == 1
        assert stats["metadata_filters"]["states"] == 3

    def test_failed_build_keeps_previous_index(self, retriever, scenario_records):
        """A bad record aborts the build and the old index stays current."""
        with pytest.raises(InvalidInputError, match="record 3"):
            retriever.build_from_chunks(scenario_records + [{"chunk_id": 9}])
        assert retriever.get_chunk_count() == 3
        assert retriever.search("What are the order limits for Ohio?")[0].chunk_id == 0

    def test_rebuild_replaces_snapshot(self, retriever):
        """A successful rebuild swaps in the new collection."""
        old_snapshot = retriever.snapshot
        retriever.build_from_chunks([{"chunk_id": 0, "text": "Nevada RISE pricing uses LT prices"}])
        assert retriever.get_chunk_count() == 1
        assert retriever.snapshot is not old_snapshot
        assert retriever.snapshot.generation == 2
        # The old snapshot is untouched and still searchable on its own
        assert old_snapshot.chunk_count == 3

    def test_each_build_gets_its_own_generation(self, retriever, scenario_records):
        """Generations keep counting up, failed builds included."""
        with pytest.raises(InvalidInputError):
            retriever.build_from_chunks([{"chunk_id": 0}])
        assert retriever.build_from_chunks(scenario_records)["generation"] == 3

    def test_slow_older_build_does_not_replace_newer(self, scenario_records):
        """A build that finishes after a later one leaves the later index current."""
        started = threading.Event()
        release = threading.Event()

        class SlowFirstBuildIndexer(ChunkIndexer):
            def build(self, records, generation=0):
                if generation == 1:
                    started.set()
                    release.wait(timeout=5)
                return super().build(records, generation=generation)

        retriever = SOPRetriever(indexer=SlowFirstBuildIndexer())
        slow_build = threading.Thread(target=retriever.build_from_chunks, args=(scenario_records,))
        slow_build.start()
        assert started.wait(timeout=5)

        retriever.build_from_chunks([{"chunk_id": 0, "text": "Nevada RISE pricing uses LT prices"}])
        release.set()
        slow_build.join(timeout=5)

        assert retriever.snapshot.generation == 2
        assert retriever.get_chunk_count() == 1

    def test_concurrent_searches_during_rebuild(self, retriever, scenario_records):
        """Searches running alongside rebuilds always see a complete index."""
        errors = []

        def search_loop():
            for _ in range(20):
                try:
                    results = retriever.search("regular orders")
                    assert [result.chunk_id for result in results] == [1, 2]
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=search_loop) for _ in range(3)]
        for thread in threads:
            thread.start()
        for _ in range(5):
            retriever.build_from_chunks(scenario_records)
        for thread in threads:
            thread.join()

        assert errors == []


class TestConfiguration:
    """Test fusion configuration on the facade."""

    def test_stats_before_build(self):
        """Stats are available before any build."""
        stats = SOPRetriever().get_stats()
        assert stats["ready"] is False
        assert stats["chunk_count"] == 0
        assert stats["fusion"]["strategy"] == "weighted"

    def test_update_weights(self, retriever):
        """New weights apply to later searches."""
        retriever.update_weights({"semantic": 0.0, "keyword": 0.0, "metadata": 0.0, "image": 0.0})
        assert all(result.score == 0.0 for result in retriever.search("Ohio rise orders"))
        assert retriever.get_stats()["fusion"]["weights"]["semantic"] == 0.0

    def test_update_weights_rejects_negative(self, retriever):
        """Invalid weights leave the configuration unchanged."""
        with pytest.raises(ValueError):
            retriever.update_weights({"keyword": -1.0})
        assert retriever.get_stats()["fusion"]["weights"]["keyword"] == 0.3

    def test_set_fusion_strategy(self, retriever):
        """Switching to RRF changes the scoring."""
        retriever.set_fusion_strategy("rrf")
        assert retriever.get_stats()["fusion"] == {"strategy": "rrf", "k": 60}
        results = retriever.search("What are the order limits for Ohio?")
        assert results[0].chunk_id == 0
        assert all(result.score <= 4 / 61 for result in results)

    def test_unknown_strategy_rejected(self, retriever):
        with pytest.raises(ValueError):
            retriever.set_fusion_strategy("borda")
        with pytest.raises(ValueError):
            SOPRetriever(fusion_strategy="borda")


@pytest.fixture(scope="module")
def sample_retriever():
    retriever = SOPRetriever()
    retriever.build_from_chunks(load_chunks(SAMPLE_CHUNKS_FILE))
    return retriever


class TestSampleSOP:
    """Test retrieval over the bundled sample SOP."""

    def test_sample_loads(self, sample_retriever):
        """All eight sample chunks are indexed."""
        stats = sample_retriever.get_stats()
        assert stats["chunk_count"] == 8
        assert stats["images_indexed"] == 5

    def test_illinois_limit_question(self, sample_retriever):
        """The Illinois order-limit section answers the Illinois question."""
        results = sample_retriever.search("What is the maximum unit limit for Illinois RISE orders?")
        assert results[0].chunk_id == 3

    def test_battery_invoice_image(self, sample_retriever):
        """Asking to see the battery invoice surfaces the chunk with that image."""
        results = sample_retriever.search("Show me the separate battery invoice example")
        assert results[0].chunk_id == 4
        assert results[0].scores.image > 0
