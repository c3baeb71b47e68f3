import numpy as np
import pytest

from tfidf_retrieval.config import DEFAULT_EMBEDDING_CONFIG, MINIMAL_EMBEDDING_CONFIG
from tfidf_retrieval.diagnostics import ListSink, OperationTimer
from tfidf_retrieval.errors import (
    REASON_BUDGET_EXCEEDED,
    REASON_EMPTY_INPUT,
    ConfigurationWarning,
    ProcessingBudgetExceeded,
)
from tfidf_retrieval.pipeline import (
    EmbeddedCorpus,
    EmbeddingPipeline,
    chunk_text,
    preprocess_text,
    processing_stats,
)
from tfidf_retrieval.text_processing import Language


@pytest.fixture
def pipeline():
    return EmbeddingPipeline()


@pytest.fixture
def animals():
    return ["The cat sat on the mat", "The dog ate the food", "The bird flew away"]


@pytest.mark.parametrize(
    "text, max_chunk_size, expected",
    [
        ("Hello world. This is a test.", 512, ["Hello world This is a test"]),
        ("aaaa. bbbb. cccc.", 10, ["aaaa bbbb", "cccc"]),
        ("x" * 20, 5, ["x" * 20]),
        ("", 512, []),
        ("...!?", 512, []),
    ],
)
def test_chunk_text(text, max_chunk_size, expected):
    assert chunk_text(text, max_chunk_size) == expected


def test_preprocess_text_cleans_input():
    cleaned, notes = preprocess_text("  a\0b   c\ufffd  ")
    assert cleaned == "ab c"
    assert isinstance(notes, list)


def test_preprocess_text_empty():
    cleaned, notes = preprocess_text("   ")
    assert cleaned == ""
    assert notes == ["Input text is empty or contains only whitespace"]


def test_generate_embeddings_single_chunk(pipeline):
    records = pipeline.generate_embeddings("Hello world. This is a test.")

    assert len(records) == 1
    assert records[0].text == "Hello world This is a test"
    assert np.any(records[0].vector)
    assert records[0].metadata.language == Language.ENGLISH
    assert records[0].metadata.word_count == 4  # hello world this test


def test_generate_embeddings_empty_text(pipeline):
    assert pipeline.generate_embeddings("") == []


def test_embed_chunks_aligns_vectors_to_vocabulary(pipeline, animals):
    corpus = pipeline.embed_chunks(animals)

    assert corpus.texts == tuple(animals)
    assert all(record.vector.shape == (corpus.dimension,) for record in corpus)
    assert corpus.matrix.shape == (3, corpus.dimension)
    corpus.vocabulary.validate()


def test_embedding_is_idempotent(pipeline):
    text = "The cat sat on the mat. The dog ate the food. The bird flew away."
    first = pipeline.embed(text)
    second = pipeline.embed(text)

    assert first.vocabulary.terms == second.vocabulary.terms
    assert dict(first.vocabulary.document_frequency) == dict(second.vocabulary.document_frequency)
    assert first.texts == second.texts
    assert len(first.records) == len(second.records) > 0
    for left, right in zip(first, second):
        assert left.vector.tobytes() == right.vector.tobytes()


def test_zero_vector_chunks_are_dropped(pipeline):
    corpus = pipeline.embed_chunks(["The cat sat", "the and of", "   "])
    assert corpus.texts == ("The cat sat",)


def test_record_vectors_are_read_only(pipeline, animals):
    record = pipeline.embed_chunks(animals)[0]
    with pytest.raises(ValueError):
        record.vector[0] = 42.0


def test_auto_tune_does_not_touch_pipeline_config(pipeline):
    corpus = pipeline.embed_chunks(["alpha beta gamma " * 80])

    assert corpus.config.ngram_sizes == (1, 2, 3)
    assert pipeline.config is DEFAULT_EMBEDDING_CONFIG
    assert pipeline.config.ngram_sizes == (1, 2)


def test_auto_tune_disabled(animals):
    pipeline = EmbeddingPipeline(auto_tune=False)
    assert pipeline.embed_chunks(["alpha beta gamma " * 80]).config == pipeline.config


def test_mapping_config_is_validated():
    with pytest.warns(ConfigurationWarning):
        pipeline = EmbeddingPipeline({"tfidf_weight": 2, "enable_stemming": True})

    assert pipeline.config.tfidf_weight == 0.1
    assert pipeline.config.enable_stemming is True
    assert pipeline.config_errors == ("tfidf_weight must be a number between 0 and 1",)


def test_bag_of_words_variant_counts_terms(animals):
    pipeline = EmbeddingPipeline(MINIMAL_EMBEDDING_CONFIG)
    corpus = pipeline.embed_chunks(["dog dog cat"])
    vector = corpus[0].vector

    assert vector[corpus.vocabulary.index_of("dog")] == 2.0
    assert vector[corpus.vocabulary.index_of("cat")] == 1.0


def test_vectorize_query_ignores_unknown_terms(pipeline, animals):
    corpus = pipeline.embed_chunks(animals)

    assert not np.any(pipeline.vectorize_query("zebra", corpus.vocabulary, corpus.config))
    query = pipeline.vectorize_query("dog", corpus.vocabulary, corpus.config)
    assert query[corpus.vocabulary.index_of("dog")] > 0


class TestGenerateWithLimits:
    def test_empty_input(self, pipeline):
        result = pipeline.generate_with_limits("")
        assert result.records == ()
        assert result.reason == REASON_EMPTY_INPUT
        assert result.warnings

    def test_regular_input(self, pipeline):
        result = pipeline.generate_with_limits("Hello world. This is a test.")
        assert len(result.records) == 1
        assert result.degraded is False
        assert result.reason is None

    def test_large_input_degrades_to_unigrams(self):
        pipeline = EmbeddingPipeline({"processing_limits": {"max_chunk_size": 100}, "chunk_size": 100})
        text = "The quick fox jumps. " * 40

        with pytest.warns(ProcessingBudgetExceeded):
            result = pipeline.generate_with_limits(text)

        assert result.degraded is True
        assert result.reason == REASON_BUDGET_EXCEEDED
        assert result.corpus.config.ngram_sizes == (1,)
        assert result.corpus.config.tfidf_weight == 0.5
        assert len(result.records) > 0

    def test_time_budget_keeps_results(self, pipeline, monkeypatch):
        monkeypatch.setattr(OperationTimer, "elapsed_ms", property(lambda self: 10_000.0))

        with pytest.warns(ProcessingBudgetExceeded):
            result = pipeline.generate_with_limits("Hello world. This is a test.")

        assert len(result.records) == 1
        assert result.reason == REASON_BUDGET_EXCEEDED
        assert any("exceeded limit" in note for note in result.warnings)


def test_generate_batch_tracks_source_index(pipeline):
    pairs = pipeline.generate_batch(["Hello world. Test.", "", "Another doc here."])
    assert [source for source, _ in pairs] == [0, 2]
    assert pairs[1][1].text == "Another doc here"


def test_diagnostics_events_are_emitted(animals):
    sink = ListSink()
    EmbeddingPipeline(sink=sink).embed_chunks(animals)

    assert sink.operations() == ["embed_chunks"]
    event = sink.events[0]
    assert event.output_size == 3
    assert event.details["vectorizer"] == "tfidf"
    assert event.duration_ms >= 0


def test_processing_stats(pipeline, animals):
    stats = processing_stats(pipeline.embed_chunks(animals).records)
    assert stats.total_chunks == 3
    assert stats.average_word_count == pytest.approx(3.0)
    assert stats.language_distribution == {"en": 3}
    assert processing_stats([]).total_chunks == 0


class TestEmbeddedCorpus:
    def test_with_chunks_builds_new_snapshot(self, pipeline):
        corpus = pipeline.embed_chunks(["The cat sat on the mat"])
        grown = corpus.with_chunks(["The dog ate the food"])

        assert len(corpus) == 1
        assert len(grown) == 2
        assert "dog" not in corpus.vocabulary
        assert "dog" in grown.vocabulary
        assert grown.config == corpus.config

    def test_without_chunk(self, pipeline, animals):
        corpus = pipeline.embed_chunks(animals)
        smaller = corpus.without_chunk(0)

        assert smaller.texts == ("The dog ate the food", "The bird flew away")
        assert "cat" not in smaller.vocabulary
        assert len(corpus) == 3

    def test_dict_round_trip(self, pipeline, animals):
        corpus = pipeline.embed_chunks(animals)
        restored = EmbeddedCorpus.from_dict(corpus.to_dict())

        assert restored.texts == corpus.texts
        assert restored.vocabulary.terms == corpus.vocabulary.terms
        assert restored.config == corpus.config
        for left, right in zip(restored, corpus):
            np.testing.assert_array_equal(left.vector, right.vector)

    def test_from_dict_rejects_misaligned_vectors(self, pipeline, animals):
        data = pipeline.embed_chunks(animals).to_dict()
        data["records"][0]["vector"] = [1.0]
        with pytest.raises(ValueError):
            EmbeddedCorpus.from_dict(data)

    def test_empty(self):
        corpus = EmbeddedCorpus.empty()
        assert len(corpus) == 0
        assert corpus.matrix.shape == (0, 0)
