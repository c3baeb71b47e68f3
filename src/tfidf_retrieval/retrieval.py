"""
Cosine-similarity retrieval over an EmbeddedCorpus.

Ranking for one query:
1. Vectorize the query against the corpus vocabulary and config
2. Zero query vector -> empty result, nothing else is computed
3. Cosine similarity against every chunk via the sparse chunk matrix
4. Optional bounded metadata boost, clamped to <= 1.0
5. Stable descending sort, keep scores > min_similarity, truncate to top_k

Usage:
    from tfidf_retrieval import EmbeddingPipeline, Retriever

    corpus = EmbeddingPipeline().embed_chunks(chunks)
    results = Retriever().rank("dog", corpus, top_k=1)
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

import numpy as np
from scipy.sparse import csr_matrix

from tfidf_retrieval.diagnostics import DiagnosticsSink, timed_operation
from tfidf_retrieval.errors import (
    ConfigurationWarning,
    REASON_DIMENSION_MISMATCH,
    REASON_EMPTY_CORPUS,
    REASON_EMPTY_VOCABULARY,
    REASON_INVALID_TOP_K,
    REASON_NO_MATCH_ABOVE_THRESHOLD,
    REASON_ZERO_QUERY_VECTOR,
)
from tfidf_retrieval.pipeline import ChunkMetadata, EmbeddedCorpus, EmbeddingPipeline, EmbeddingRecord
from tfidf_retrieval.text_processing import Language

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

LANGUAGE_MATCH_BOOST = 1.1

# Word-count multiplier spans [WORD_COUNT_BOOST_FLOOR, FLOOR + SPAN]
WORD_COUNT_BOOST_FLOOR = 0.9
WORD_COUNT_BOOST_SPAN = 0.2

# N-gram richness: ratio capped at 2, each unit above 1 adds 5%
MAX_NGRAM_RATIO = 2.0
NGRAM_RICHNESS_BOOST = 0.05

MAX_BOOSTED_SCORE = 1.0

DEFAULT_NUM_WORKERS = 8
MIN_QUERIES_FOR_PARALLEL = 10

DEFAULT_OPTIMAL_WORD_COUNT = 50


@dataclass(frozen=True)
class RetrievalOptions:
    """
    Per-query ranking options.

    Out-of-range values never raise. Each one is reported in ``errors`` and
    as a ConfigurationWarning:

    * ``top_k < 1`` is kept, and ranking returns [] with REASON_INVALID_TOP_K.
    * An unknown ``language_preference`` is dropped to None.
    * ``optimal_word_count < 1`` falls back to DEFAULT_OPTIMAL_WORD_COUNT.
    """

    top_k: int = 3
    min_similarity: float = 0.0
    use_metadata_boost: bool = True
    language_preference: Language | None = None
    optimal_word_count: int = DEFAULT_OPTIMAL_WORD_COUNT
    errors: tuple[str, ...] = field(default=(), init=False, compare=False)

    def __post_init__(self) -> None:
        errors: list[str] = []
        if self.top_k < 1:
            errors.append(f"top_k must be at least 1, got {self.top_k}; no results will be returned")
        if self.optimal_word_count < 1:
            errors.append(
                f"optimal_word_count must be at least 1, got {self.optimal_word_count}; "
                f"using {DEFAULT_OPTIMAL_WORD_COUNT}"
            )
            object.__setattr__(self, "optimal_word_count", DEFAULT_OPTIMAL_WORD_COUNT)
        if self.language_preference is not None:
            try:
                language = Language(self.language_preference)
            except ValueError:
                errors.append(f"unknown language_preference {self.language_preference!r}; ignoring it")
                language = None
            object.__setattr__(self, "language_preference", language)

        for message in errors:
            warnings.warn(message, ConfigurationWarning, stacklevel=3)
        object.__setattr__(self, "errors", tuple(errors))


@dataclass(frozen=True)
class RelevanceResult:
    chunk: str
    similarity: float
    metadata: ChunkMetadata

    def to_dict(self) -> dict[str, Any]:
        return {"chunk": self.chunk, "similarity": self.similarity, "metadata": self.metadata.to_dict()}


# =============================================================================
# Scoring
# =============================================================================


def apply_metadata_boost(
    similarity: float,
    metadata: ChunkMetadata,
    language_preference: Language | None = None,
    optimal_word_count: int = DEFAULT_OPTIMAL_WORD_COUNT,
) -> float:
    """
    Rescale a similarity by chunk metadata.

    Multipliers:
        language_preference matches the chunk language: x1.1
        word count: 0.9 + min(word_count / optimal, 1) * 0.2, so [0.9, 1.1]
        ngram_count > word_count: 1 + (min(ratio, 2) - 1) * 0.05, up to x1.05

    Returns:
        Boosted score, never above 1.0.
    """
    boosted = similarity

    if language_preference is not None and metadata.language == language_preference:
        boosted *= LANGUAGE_MATCH_BOOST

    word_ratio = min(metadata.word_count / optimal_word_count, 1.0)
    boosted *= WORD_COUNT_BOOST_FLOOR + word_ratio * WORD_COUNT_BOOST_SPAN

    if metadata.word_count > 0 and metadata.ngram_count > metadata.word_count:
        ngram_ratio = min(metadata.ngram_count / metadata.word_count, MAX_NGRAM_RATIO)
        boosted *= 1.0 + (ngram_ratio - 1.0) * NGRAM_RICHNESS_BOOST

    return min(boosted, MAX_BOOSTED_SCORE)


def cosine_scores(query_vector: NDArray[np.float64], matrix: csr_matrix) -> NDArray[np.float64]:
    """
    Cosine similarity of the query against every row of the matrix.

    The query must be non-zero; rows with zero magnitude score 0.
    """
    query_norm = float(np.linalg.norm(query_vector))
    dots = np.asarray(matrix @ query_vector, dtype=np.float64).ravel()
    row_norms = np.sqrt(np.asarray(matrix.multiply(matrix).sum(axis=1), dtype=np.float64).ravel())

    scores = np.zeros(matrix.shape[0], dtype=np.float64)
    nonzero = row_norms > 0
    scores[nonzero] = dots[nonzero] / (row_norms[nonzero] * query_norm)
    return scores


# =============================================================================
# Retriever
# =============================================================================


class Retriever:
    """
    Ranks corpus chunks against natural-language queries.

    Args:
        pipeline: Used to vectorize queries. The corpus config always governs
            query processing, so any pipeline gives the same vectors.
        sink: Receives one "rank" DiagnosticEvent per query.
    """

    def __init__(self, pipeline: EmbeddingPipeline | None = None, *, sink: DiagnosticsSink | None = None):
        self.pipeline = pipeline or EmbeddingPipeline(auto_tune=False)
        self.sink = sink
        self.last_reason: str | None = None

    def rank(
        self,
        query: str,
        corpus: EmbeddedCorpus,
        options: RetrievalOptions | None = None,
        **overrides: Any,
    ) -> list[RelevanceResult]:
        """
        Rank corpus chunks for a query.

        Args:
            query: Natural-language question.
            corpus: Snapshot to search; the query is processed with its config.
            options: Ranking options; keyword overrides are applied on top.

        Returns:
            At most top_k results, best first. Empty when the query shares no
            term with the vocabulary; last_reason then says why.
        """
        options = replace(options or RetrievalOptions(), **overrides)
        results, self.last_reason = self._rank(query, corpus, options)
        return results

    def rank_vector(
        self,
        query_vector: Sequence[float] | NDArray[np.float64],
        records: Sequence[EmbeddingRecord] | EmbeddedCorpus,
        options: RetrievalOptions | None = None,
    ) -> list[RelevanceResult]:
        """Rank records against a ready-made query vector."""
        results, self.last_reason = self._rank_vector(
            np.asarray(query_vector, dtype=np.float64), records, options or RetrievalOptions()
        )
        return results

    def find_most_relevant_chunks(self, query: str, corpus: EmbeddedCorpus, top_k: int = 3) -> list[str]:
        return [result.chunk for result in self.rank(query, corpus, top_k=top_k)]

    def rank_many(
        self,
        queries: Sequence[str],
        corpus: EmbeddedCorpus,
        options: RetrievalOptions | None = None,
        num_workers: int = DEFAULT_NUM_WORKERS,
    ) -> list[list[RelevanceResult]]:
        """
        Rank several queries against one corpus, in parallel for large batches.

        The corpus is read-only, so threads share it safely. last_reason is
        not updated.
        """
        options = options or RetrievalOptions()

        def rank_one(query: str) -> list[RelevanceResult]:
            return self._rank(query, corpus, options)[0]

        if num_workers <= 1 or len(queries) < MIN_QUERIES_FOR_PARALLEL:
            return [rank_one(query) for query in queries]

        _ = corpus.matrix  # build the cached matrix once before fanning out
        with ThreadPoolExecutor(max_workers=num_workers) as executor:
            return list(executor.map(rank_one, queries))

    def _rank(
        self, query: str, corpus: EmbeddedCorpus, options: RetrievalOptions
    ) -> tuple[list[RelevanceResult], str | None]:
        with timed_operation(self.sink, "rank", input_size=len(query)) as timer:
            if not corpus.records:
                timer.details["reason"] = REASON_EMPTY_CORPUS
                return [], REASON_EMPTY_CORPUS
            if not corpus.vocabulary.terms:
                timer.details["reason"] = REASON_EMPTY_VOCABULARY
                return [], REASON_EMPTY_VOCABULARY

            query_vector = self.pipeline.vectorize_query(query, corpus.vocabulary, corpus.config)
            results, reason = self._rank_vector(query_vector, corpus, options)

            timer.output_size = len(results)
            if reason is not None:
                timer.details["reason"] = reason
            return results, reason

    def _rank_vector(
        self,
        query_vector: NDArray[np.float64],
        records: Sequence[EmbeddingRecord] | EmbeddedCorpus,
        options: RetrievalOptions,
    ) -> tuple[list[RelevanceResult], str | None]:
        if not np.any(query_vector != 0):
            return [], REASON_ZERO_QUERY_VECTOR
        if options.top_k < 1:
            return [], REASON_INVALID_TOP_K

        if isinstance(records, EmbeddedCorpus) and records.dimension == query_vector.shape[0]:
            candidates = list(records.records)
            matrix = records.matrix
        else:
            candidates = []
            for idx, record in enumerate(records):
                if record.vector.shape != query_vector.shape:
                    logger.warning(
                        "Skipping record %d: dimension %d does not match query dimension %d",
                        idx,
                        record.vector.shape[0],
                        query_vector.shape[0],
                    )
                    continue
                candidates.append(record)
            if not candidates:
                return [], REASON_DIMENSION_MISMATCH
            matrix = csr_matrix(np.vstack([record.vector for record in candidates]))

        scores = cosine_scores(query_vector, matrix)

        if options.use_metadata_boost:
            scores = np.array(
                [
                    apply_metadata_boost(
                        float(score),
                        record.metadata,
                        options.language_preference,
                        options.optimal_word_count,
                    )
                    for score, record in zip(scores, candidates)
                ],
                dtype=np.float64,
            )

        order = np.argsort(-scores, kind="stable")
        results: list[RelevanceResult] = []
        for idx in order:
            if scores[idx] <= options.min_similarity:
                continue
            record = candidates[idx]
            results.append(RelevanceResult(record.text, float(scores[idx]), record.metadata))
            if len(results) >= options.top_k:
                break

        if not results:
            return [], REASON_NO_MATCH_ABOVE_THRESHOLD
        return results, None


# =============================================================================
# Validation
# =============================================================================


@dataclass(frozen=True)
class EmbeddingValidation:
    is_valid: bool
    errors: tuple[str, ...]
    valid_records: tuple[EmbeddingRecord, ...]


def validate_embeddings(records: Sequence[EmbeddingRecord]) -> EmbeddingValidation:
    """
    Check records before ranking.

    A record is invalid when its text is blank, its vector is empty, not
    finite, or differs in dimension from the first valid record.
    """
    errors: list[str] = []
    valid: list[EmbeddingRecord] = []
    dimension: int | None = None

    if not records:
        errors.append("No embeddings provided")

    for idx, record in enumerate(records):
        if not record.text.strip():
            errors.append(f"Embedding {idx}: invalid or empty chunk text")
            continue
        vector = record.vector
        if vector.ndim != 1 or vector.size == 0:
            errors.append(f"Embedding {idx}: invalid or empty vector")
            continue
        if not np.all(np.isfinite(vector)):
            errors.append(f"Embedding {idx}: vector contains non-finite values")
            continue
        if dimension is None:
            dimension = vector.size
        elif vector.size != dimension:
            errors.append(f"Embedding {idx}: dimension {vector.size} does not match {dimension}")
            continue
        valid.append(record)

    return EmbeddingValidation(is_valid=not errors, errors=tuple(errors), valid_records=tuple(valid))


__all__ = [
    "EmbeddingValidation",
    "RelevanceResult",
    "RetrievalOptions",
    "Retriever",
    "apply_metadata_boost",
    "cosine_scores",
    "validate_embeddings",
]
