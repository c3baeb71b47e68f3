"""
Content-driven configuration tuning.

Two independent, pure entry points:

* content_tuning_delta(chunks, config): the bounded adjustment the pipeline
  applies to its own config before embedding (only while the caller kept the
  default weight and n-gram sizes). Returns a delta; apply_delta() turns it
  into a new config. Applying the same delta twice changes nothing.
* optimal_config_for_corpus(documents): picks a preset from corpus statistics
  and adjusts it, for callers choosing a config up front.

All thresholds are tunable constants, not contracts.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any

from tfidf_retrieval.config import (
    BALANCED_EMBEDDING_CONFIG,
    DEFAULT_EMBEDDING_CONFIG,
    MINIMAL_EMBEDDING_CONFIG,
    TECHNICAL_EMBEDDING_CONFIG,
    EmbeddingConfig,
    validate_config,
)

# =============================================================================
# Tunables
# =============================================================================


class TuningThresholds:
    """Thresholds for the in-pipeline content tuning."""

    few_chunks: int = 3
    few_chunks_max_weight: float = 0.2
    technical_min_vocabulary: int = 15000
    long_chunk_chars: int = 1000
    short_chunk_chars: int = 200


class CorpusThresholds:
    """Thresholds for choosing a preset from corpus statistics."""

    single_document: int = 1
    small_corpus: int = 5
    medium_corpus: int = 20
    technical_ratio: float = 0.3
    code_block_ratio: float = 0.2
    large_corpus_weight: float = 0.5
    tiny_corpus: int = 3
    tiny_corpus_max_weight: float = 0.1
    modest_corpus: int = 10
    modest_corpus_max_weight: float = 0.3
    no_stemming_technical_ratio: float = 0.4
    diverse_vocabulary_ratio: float = 0.7
    diverse_vocabulary_growth: float = 1.5
    diverse_vocabulary_cap: int = 25000
    long_document_chars: int = 2000
    short_document_chars: int = 500


_CODE_MARKERS = ("```", "function", "const ", "import ")
_CAMEL_CASE = re.compile(r"[a-z][A-Z]")
_CODE_BLOCK = re.compile(r"```[\s\S]*?```|`[^`]+`")
_ANALYSIS_NON_WORD = re.compile(r"[^\w\s]")


# =============================================================================
# In-pipeline tuning
# =============================================================================


def should_auto_tune(config: EmbeddingConfig) -> bool:
    """Tune only configs that kept the default weight and n-gram sizes."""
    return (
        config.tfidf_weight == DEFAULT_EMBEDDING_CONFIG.tfidf_weight
        and config.ngram_sizes == DEFAULT_EMBEDDING_CONFIG.ngram_sizes
    )


def looks_like_code(chunk: str) -> bool:
    return any(marker in chunk for marker in _CODE_MARKERS)


def looks_technical(chunk: str) -> bool:
    return bool(_CAMEL_CASE.search(chunk)) or "_" in chunk or "." in chunk


def content_tuning_delta(chunks: Sequence[str], config: EmbeddingConfig) -> dict[str, Any]:
    """
    Config changes suggested by coarse chunk statistics.

    Args:
        chunks: Chunk texts about to be embedded.
        config: Config the changes are computed against.

    Returns:
        Mapping of EmbeddingConfig field -> new value. Only fields that
        actually change are included.
    """
    if not chunks:
        return {}

    t = TuningThresholds
    delta: dict[str, Any] = {}
    average_length = sum(len(chunk) for chunk in chunks) / len(chunks)

    if len(chunks) <= t.few_chunks and config.tfidf_weight > t.few_chunks_max_weight:
        delta["tfidf_weight"] = t.few_chunks_max_weight

    if any(looks_like_code(chunk) or looks_technical(chunk) for chunk in chunks):
        if config.enable_stemming:
            delta["enable_stemming"] = False
        if config.vocabulary_options.max_vocabulary_size < t.technical_min_vocabulary:
            delta["vocabulary_options"] = replace(
                config.vocabulary_options, max_vocabulary_size=t.technical_min_vocabulary
            )

    if average_length > t.long_chunk_chars:
        if 3 not in config.ngram_sizes and 3 <= config.processing_limits.max_ngram_size:
            delta["ngram_sizes"] = tuple(sorted((*config.ngram_sizes, 3)))
    elif average_length < t.short_chunk_chars:
        short_sizes = tuple(n for n in config.ngram_sizes if n <= 2)
        if short_sizes and short_sizes != config.ngram_sizes:
            delta["ngram_sizes"] = short_sizes

    return delta


def apply_delta(config: EmbeddingConfig, delta: Mapping[str, Any]) -> EmbeddingConfig:
    """New config with the delta applied; the input config is untouched."""
    return replace(config, **delta) if delta else config


# =============================================================================
# Corpus analysis
# =============================================================================


@dataclass(frozen=True)
class CorpusAnalysis:
    document_count: int
    average_document_length: float
    total_words: int
    unique_words: int
    technical_terms_ratio: float
    code_blocks_ratio: float


def _is_technical_word(word: str) -> bool:
    return (
        "_" in word
        or word.isdigit()
        or len(word) > 15
    )


def analyze_corpus(documents: Sequence[str]) -> CorpusAnalysis:
    document_count = len(documents)
    total_words = 0
    unique_words: set[str] = set()
    technical_terms = 0
    code_blocks = 0
    total_characters = 0

    for document in documents:
        total_characters += len(document)
        code_blocks += len(_CODE_BLOCK.findall(document))

        words = _ANALYSIS_NON_WORD.sub(" ", document.lower()).split()
        total_words += len(words)
        unique_words.update(words)
        technical_terms += sum(1 for word in words if _is_technical_word(word))

    return CorpusAnalysis(
        document_count=document_count,
        average_document_length=total_characters / document_count if document_count else 0.0,
        total_words=total_words,
        unique_words=len(unique_words),
        technical_terms_ratio=technical_terms / total_words if total_words else 0.0,
        code_blocks_ratio=code_blocks / document_count if document_count else 0.0,
    )


def _base_config_for(analysis: CorpusAnalysis) -> EmbeddingConfig:
    t = CorpusThresholds
    if analysis.document_count <= t.single_document:
        return MINIMAL_EMBEDDING_CONFIG
    if analysis.document_count <= t.small_corpus:
        return BALANCED_EMBEDDING_CONFIG
    if analysis.technical_terms_ratio > t.technical_ratio or analysis.code_blocks_ratio > t.code_block_ratio:
        return TECHNICAL_EMBEDDING_CONFIG
    if analysis.document_count <= t.medium_corpus:
        return DEFAULT_EMBEDDING_CONFIG
    return replace(DEFAULT_EMBEDDING_CONFIG, tfidf_weight=t.large_corpus_weight, enable_stopword_removal=True)


def optimal_config_for_corpus(
    documents: Sequence[str],
    overrides: Mapping[str, Any] | None = None,
) -> EmbeddingConfig:
    """
    Preset chosen from corpus statistics, adjusted, then overridden.

    Args:
        documents: Raw document texts.
        overrides: Caller preferences; validated field by field on top of the
            tuned config.
    """
    t = CorpusThresholds
    analysis = analyze_corpus(documents)
    config = _base_config_for(analysis)

    if analysis.document_count <= t.tiny_corpus:
        config = replace(config, tfidf_weight=min(config.tfidf_weight, t.tiny_corpus_max_weight))
    elif analysis.document_count <= t.modest_corpus:
        config = replace(config, tfidf_weight=min(config.tfidf_weight, t.modest_corpus_max_weight))

    if analysis.technical_terms_ratio > t.no_stemming_technical_ratio:
        config = replace(config, enable_stemming=False)

    if analysis.unique_words / max(analysis.total_words, 1) > t.diverse_vocabulary_ratio:
        grown = min(int(config.vocabulary_options.max_vocabulary_size * t.diverse_vocabulary_growth), t.diverse_vocabulary_cap)
        config = replace(config, vocabulary_options=replace(config.vocabulary_options, max_vocabulary_size=grown))

    if analysis.average_document_length > t.long_document_chars:
        if 3 not in config.ngram_sizes:
            config = replace(config, ngram_sizes=tuple(sorted((*config.ngram_sizes, 3))))
    elif analysis.average_document_length < t.short_document_chars:
        config = replace(config, ngram_sizes=tuple(n for n in config.ngram_sizes if n <= 2) or (1,))

    if overrides:
        config = validate_config(overrides, base=config).config
    return config


def configuration_recommendations(documents: Sequence[str]) -> list[str]:
    t = CorpusThresholds
    analysis = analyze_corpus(documents)
    recommendations: list[str] = []

    if analysis.document_count <= t.single_document:
        recommendations.append("Single document detected - using minimal processing to preserve all content")
    elif analysis.document_count <= t.small_corpus:
        recommendations.append("Small corpus detected - using low TF-IDF weight to avoid over-filtering")
    if analysis.technical_terms_ratio > t.technical_ratio:
        recommendations.append("High technical content detected - consider disabling stemming to preserve exact terms")
    if analysis.code_blocks_ratio > t.code_block_ratio:
        recommendations.append("Code blocks detected - using technical configuration optimized for code")
    if analysis.average_document_length > t.long_document_chars:
        recommendations.append("Long documents detected - including 3-grams for better context capture")
    if analysis.unique_words / max(analysis.total_words, 1) > t.diverse_vocabulary_ratio:
        recommendations.append("High vocabulary diversity - increasing vocabulary size limit")
    return recommendations


def compare_configurations(
    first: EmbeddingConfig,
    second: EmbeddingConfig,
    labels: tuple[str, str] = ("Configuration 1", "Configuration 2"),
) -> list[str]:
    """Human-readable differences in the switches that matter most."""

    def on_off(flag: bool) -> str:
        return "enabled" if flag else "disabled"

    a, b = labels
    differences: list[str] = []
    for name, title in (
        ("enable_tfidf", "TF-IDF"),
        ("enable_stemming", "Stemming"),
        ("enable_stopword_removal", "Stopword removal"),
    ):
        left, right = getattr(first, name), getattr(second, name)
        if left != right:
            differences.append(f"{title}: {a} {on_off(left)}, {b} {on_off(right)}")
    if first.tfidf_weight != second.tfidf_weight:
        differences.append(f"TF-IDF weight: {a} {first.tfidf_weight}, {b} {second.tfidf_weight}")
    if first.ngram_sizes != second.ngram_sizes:
        differences.append(f"N-grams: {a} {list(first.ngram_sizes)}, {b} {list(second.ngram_sizes)}")
    return differences


__all__ = [
    "CorpusAnalysis",
    "CorpusThresholds",
    "TuningThresholds",
    "analyze_corpus",
    "apply_delta",
    "compare_configurations",
    "configuration_recommendations",
    "content_tuning_delta",
    "looks_like_code",
    "looks_technical",
    "optimal_config_for_corpus",
    "should_auto_tune",
]
