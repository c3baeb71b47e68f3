from dataclasses import replace

import pytest

from tfidf_retrieval.config import (
    DEFAULT_EMBEDDING_CONFIG,
    MINIMAL_EMBEDDING_CONFIG,
    EmbeddingConfig,
    VocabularyOptions,
)
from tfidf_retrieval.optimizer import (
    analyze_corpus,
    apply_delta,
    compare_configurations,
    configuration_recommendations,
    content_tuning_delta,
    optimal_config_for_corpus,
    should_auto_tune,
)


def test_should_auto_tune_only_default_weight_and_ngrams():
    assert should_auto_tune(DEFAULT_EMBEDDING_CONFIG)
    assert not should_auto_tune(replace(DEFAULT_EMBEDDING_CONFIG, tfidf_weight=0.3))
    assert not should_auto_tune(replace(DEFAULT_EMBEDDING_CONFIG, ngram_sizes=(1,)))


def test_no_delta_for_plain_short_chunks():
    assert content_tuning_delta(["short text"], DEFAULT_EMBEDDING_CONFIG) == {}
    assert content_tuning_delta([], DEFAULT_EMBEDDING_CONFIG) == {}


def test_few_chunks_cap_the_weight():
    config = replace(DEFAULT_EMBEDDING_CONFIG, tfidf_weight=0.5)
    assert content_tuning_delta(["one chunk", "two chunk"], config) == {"tfidf_weight": 0.2}


def test_code_disables_stemming_and_grows_vocabulary():
    config = EmbeddingConfig(enable_stemming=True, vocabulary_options=VocabularyOptions(max_vocabulary_size=5000))
    delta = content_tuning_delta(["import numpy as np"], config)

    assert delta["enable_stemming"] is False
    assert delta["vocabulary_options"].max_vocabulary_size == 15000


def test_long_chunks_add_trigrams():
    chunk = "alpha beta gamma " * 80
    assert content_tuning_delta([chunk], DEFAULT_EMBEDDING_CONFIG) == {"ngram_sizes": (1, 2, 3)}


def test_short_chunks_drop_trigrams():
    config = replace(DEFAULT_EMBEDDING_CONFIG, ngram_sizes=(1, 2, 3))
    assert content_tuning_delta(["tiny"], config) == {"ngram_sizes": (1, 2)}


@pytest.mark.parametrize(
    "chunks, config",
    [
        (["import numpy as np"], EmbeddingConfig(enable_stemming=True)),
        (["alpha beta gamma " * 80], DEFAULT_EMBEDDING_CONFIG),
        (["one", "two"], replace(DEFAULT_EMBEDDING_CONFIG, tfidf_weight=0.9)),
    ],
)
def test_tuning_is_idempotent(chunks, config):
    tuned = apply_delta(config, content_tuning_delta(chunks, config))
    assert content_tuning_delta(chunks, tuned) == {}
    assert apply_delta(tuned, content_tuning_delta(chunks, tuned)) == tuned


def test_apply_delta_returns_new_config():
    tuned = apply_delta(DEFAULT_EMBEDDING_CONFIG, {"tfidf_weight": 0.2})
    assert tuned.tfidf_weight == 0.2
    assert DEFAULT_EMBEDDING_CONFIG.tfidf_weight == 0.1
    assert apply_delta(DEFAULT_EMBEDDING_CONFIG, {}) is DEFAULT_EMBEDDING_CONFIG


def test_analyze_corpus():
    analysis = analyze_corpus(["Hello world", "```code``` block"])
    assert analysis.document_count == 2
    assert analysis.total_words == 4
    assert analysis.unique_words == 4
    assert analysis.code_blocks_ratio == pytest.approx(0.5)


def test_analyze_empty_corpus():
    analysis = analyze_corpus([])
    assert analysis.document_count == 0
    assert analysis.average_document_length == 0.0
    assert analysis.technical_terms_ratio == 0.0


def test_optimal_config_for_single_document():
    config = optimal_config_for_corpus(["one doc"])
    assert config.enable_tfidf is MINIMAL_EMBEDDING_CONFIG.enable_tfidf
    assert config.ngram_sizes == (1,)
    assert config.tfidf_weight == 0.0


def test_optimal_config_applies_overrides():
    config = optimal_config_for_corpus(["one doc"], {"enable_stemming": True})
    assert config.enable_stemming is True


def test_configuration_recommendations():
    recommendations = configuration_recommendations(["a single document"])
    assert recommendations[0].startswith("Single document detected")


def test_compare_configurations():
    differences = compare_configurations(DEFAULT_EMBEDDING_CONFIG, MINIMAL_EMBEDDING_CONFIG)
    assert "TF-IDF: Configuration 1 enabled, Configuration 2 disabled" in differences
    assert "N-grams: Configuration 1 [1, 2], Configuration 2 [1]" in differences
    assert compare_configurations(DEFAULT_EMBEDDING_CONFIG, DEFAULT_EMBEDDING_CONFIG) == []
