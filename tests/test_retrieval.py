import logging

import numpy as np
import pytest

from tfidf_retrieval.diagnostics import ListSink
from tfidf_retrieval.errors import (
    ConfigurationWarning,
    REASON_DIMENSION_MISMATCH,
    REASON_EMPTY_CORPUS,
    REASON_INVALID_TOP_K,
    REASON_NO_MATCH_ABOVE_THRESHOLD,
    REASON_ZERO_QUERY_VECTOR,
)
from tfidf_retrieval.pipeline import ChunkMetadata, EmbeddedCorpus, EmbeddingPipeline, EmbeddingRecord
from tfidf_retrieval.retrieval import (
    RetrievalOptions,
    Retriever,
    apply_metadata_boost,
    validate_embeddings,
)
from tfidf_retrieval.text_processing import Language


def metadata(word_count=50, ngram_count=50, language=Language.ENGLISH):
    return ChunkMetadata(language=language, word_count=word_count, ngram_count=ngram_count)


def record(text, vector, **kwargs):
    return EmbeddingRecord(text, np.asarray(vector, dtype=np.float64), metadata(**kwargs))


@pytest.fixture
def pipeline():
    return EmbeddingPipeline()


@pytest.fixture
def retriever(pipeline):
    return Retriever(pipeline)


@pytest.fixture
def animals(pipeline):
    return pipeline.embed_chunks(["The cat sat on the mat", "The dog ate the food", "The bird flew away"])


def test_finds_the_matching_chunk(retriever, animals):
    assert retriever.find_most_relevant_chunks("dog", animals, top_k=1) == ["The dog ate the food"]


def test_non_matching_chunks_are_filtered(retriever, animals):
    results = retriever.rank("dog", animals, top_k=3)
    assert [result.chunk for result in results] == ["The dog ate the food"]
    assert 0.0 < results[0].similarity <= 1.0


@pytest.mark.parametrize("min_similarity", [-1.0, 0.0, 0.5])
@pytest.mark.parametrize("top_k", [-1, 0, 1, 3, 10])
def test_no_lexical_overlap_is_always_empty(retriever, animals, top_k, min_similarity):
    results = retriever.rank("zebra", animals, top_k=top_k, min_similarity=min_similarity)
    assert results == []
    assert retriever.last_reason == REASON_ZERO_QUERY_VECTOR


def test_min_similarity_is_strict(retriever, animals):
    assert retriever.rank("dog", animals, min_similarity=1.0) == []
    assert retriever.last_reason == REASON_NO_MATCH_ABOVE_THRESHOLD


def test_empty_corpus(retriever):
    assert retriever.rank("dog", EmbeddedCorpus.empty()) == []
    assert retriever.last_reason == REASON_EMPTY_CORPUS


def test_ordering_regression(retriever, pipeline):
    """
    Closer lexical matches rank first and non-matching chunks are dropped,
    with or without the metadata boost.
    """
    corpus = pipeline.embed_chunks(["api key api key rotation", "api key", "unrelated words here"])

    for use_metadata_boost in (True, False):
        results = retriever.rank("api key", corpus, use_metadata_boost=use_metadata_boost)
        assert [result.chunk for result in results] == ["api key", "api key api key rotation"]
        assert results[0].similarity > results[1].similarity


def test_equal_scores_keep_input_order(retriever):
    records = [
        record("first", [1.0, 0.0]),
        record("second", [1.0, 0.0]),
        record("third", [0.0, 1.0]),
    ]
    options = RetrievalOptions(top_k=3, use_metadata_boost=False)
    results = retriever.rank_vector([1.0, 0.0], records, options)

    assert [result.chunk for result in results] == ["first", "second"]
    assert results[0].similarity == pytest.approx(1.0)


def test_rank_vector_zero_query_short_circuits(retriever):
    records = [record("first", [1.0, 0.0])]
    assert retriever.rank_vector([0.0, 0.0], records) == []
    assert retriever.last_reason == REASON_ZERO_QUERY_VECTOR


def test_rank_vector_skips_mismatched_dimensions(retriever, caplog):
    records = [record("short", [1.0, 0.0]), record("long", [1.0, 0.0, 0.0])]

    with caplog.at_level(logging.WARNING, logger="tfidf_retrieval.retrieval"):
        results = retriever.rank_vector([1.0, 0.0], records)

    assert [result.chunk for result in results] == ["short"]
    assert "does not match query dimension" in caplog.text


def test_rank_vector_all_dimensions_mismatched(retriever):
    records = [record("wide", [1.0, 0.0, 0.0]), record("wider", [1.0, 0.0, 0.0, 0.0])]

    assert retriever.rank_vector([1.0, 0.0], records) == []
    assert retriever.last_reason == REASON_DIMENSION_MISMATCH


def test_rank_vector_zero_magnitude_chunk_scores_zero(retriever):
    records = [record("empty", [0.0, 0.0]), record("match", [0.0, 2.0])]
    results = retriever.rank_vector([0.0, 1.0], records, RetrievalOptions(use_metadata_boost=False))
    assert [result.chunk for result in results] == ["match"]


def test_rank_emits_diagnostics(pipeline, animals):
    sink = ListSink()
    Retriever(pipeline, sink=sink).rank("dog", animals)
    assert sink.operations() == ["rank"]
    assert sink.events[0].output_size == 1


def test_rank_many_matches_single_queries(retriever, animals):
    queries = ["dog", "cat", "bird", "zebra"] * 3
    batched = retriever.rank_many(queries, animals, num_workers=4)

    assert len(batched) == len(queries)
    for query, results in zip(queries, batched):
        assert results == retriever.rank(query, animals)


class TestMetadataBoost:
    def test_optimal_word_count(self):
        assert apply_metadata_boost(0.5, metadata(word_count=50, ngram_count=50)) == pytest.approx(0.55)

    def test_empty_chunk_gets_floor(self):
        assert apply_metadata_boost(0.5, metadata(word_count=0, ngram_count=5)) == pytest.approx(0.45)

    def test_language_preference(self):
        boosted = apply_metadata_boost(0.5, metadata(), language_preference=Language.ENGLISH)
        assert boosted == pytest.approx(0.5 * 1.1 * 1.1)
        not_boosted = apply_metadata_boost(0.5, metadata(), language_preference=Language.PORTUGUESE)
        assert not_boosted == pytest.approx(0.55)

    def test_ngram_richness(self):
        boosted = apply_metadata_boost(0.5, metadata(word_count=10, ngram_count=30))
        assert boosted == pytest.approx(0.5 * 0.94 * 1.05)

    def test_clamped_to_one(self):
        assert apply_metadata_boost(0.99, metadata(), language_preference=Language.ENGLISH) == 1.0

    def test_zero_stays_zero(self):
        assert apply_metadata_boost(0.0, metadata(), language_preference=Language.ENGLISH) == 0.0


class TestRetrievalOptions:
    def test_language_preference_is_coerced(self):
        options = RetrievalOptions(language_preference="pt")
        assert options.language_preference == Language.PORTUGUESE
        assert options.errors == ()

    @pytest.mark.parametrize("top_k", [0, -5])
    def test_non_positive_top_k_is_reported(self, top_k):
        with pytest.warns(ConfigurationWarning, match="top_k"):
            options = RetrievalOptions(top_k=top_k)
        assert options.top_k == top_k
        assert len(options.errors) == 1

    @pytest.mark.parametrize("top_k", [0, -1])
    def test_non_positive_top_k_returns_nothing(self, retriever, animals, top_k):
        with pytest.warns(ConfigurationWarning):
            results = retriever.rank("dog", animals, top_k=top_k)
        assert results == []
        assert retriever.last_reason == REASON_INVALID_TOP_K

    def test_unknown_language_preference_is_ignored(self):
        with pytest.warns(ConfigurationWarning, match="language_preference"):
            options = RetrievalOptions(language_preference="xx")
        assert options.language_preference is None
        assert options.errors == ("unknown language_preference 'xx'; ignoring it",)

    def test_unknown_language_preference_still_ranks(self, retriever, animals):
        with pytest.warns(ConfigurationWarning):
            results = retriever.rank("dog", animals, language_preference="xx")
        assert [result.chunk for result in results] == ["The dog ate the food"]
        assert retriever.last_reason is None

    def test_non_positive_optimal_word_count_falls_back(self):
        with pytest.warns(ConfigurationWarning, match="optimal_word_count"):
            options = RetrievalOptions(optimal_word_count=0)
        assert options.optimal_word_count == 50


def test_validate_embeddings():
    records = [
        record("good", [1.0, 0.0]),
        record("   ", [1.0, 0.0]),
        record("wide", [1.0, 0.0, 0.0]),
        record("nan", [np.nan, 1.0]),
    ]
    validation = validate_embeddings(records)

    assert not validation.is_valid
    assert len(validation.errors) == 3
    assert [r.text for r in validation.valid_records] == ["good"]


def test_validate_embeddings_empty():
    validation = validate_embeddings([])
    assert not validation.is_valid
    assert validation.errors == ("No embeddings provided",)
