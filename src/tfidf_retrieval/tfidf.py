"""
TF-IDF weighting against a fixed Vocabulary.

TF:
    raw: count / total
    log: 1 + ln(count / total)      (0 when count == 0)
    total == 0 always gives 0.

IDF (df = document frequency, N = total documents):
    df == 0 or N == 0 -> 1
    N < 10 (small corpus):
        smoothed:   ln((N + 1) / (df + 1)) + 0.5
        unsmoothed: max(0.1, (N - df + 1) / N)
    N >= 10:
        smoothed:   ln(N / df) + 1
        unsmoothed: ln(N / df)       (exactly 0 when df == N)

Every branch is positive except unsmoothed IDF with N >= 10, which gives 0
for a term present in every document. Only the unweighted count part of
the vector entry survives for such a term.

Vector entry for a term present in the document:
    weight * tf * idf + (1 - weight) * count

The small-corpus branch is tuned for the two-or-three chunk corpora this
library usually sees. Keep the constants as they are.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from scipy.sparse import csr_matrix

from tfidf_retrieval.errors import DimensionMismatchError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from tfidf_retrieval.config import EmbeddingConfig
    from tfidf_retrieval.text_processing import ProcessedText
    from tfidf_retrieval.vocabulary import Vocabulary


# =============================================================================
# Configuration
# =============================================================================

# Below this many documents the small-corpus IDF formulas apply
SMALL_CORPUS_THRESHOLD = 10

# Floor for the unsmoothed small-corpus IDF
MIN_SMALL_CORPUS_IDF = 0.1


# =============================================================================
# Vector helpers
# =============================================================================


def count_terms(ngrams: Iterable[str]) -> Counter[str]:
    """Occurrences of each non-blank n-gram."""
    return Counter(ngram for ngram in ngrams if ngram.strip())


def bag_of_words_vector(processed: ProcessedText, vocabulary: Vocabulary) -> NDArray[np.float64]:
    """Raw n-gram counts aligned to the vocabulary."""
    vector = np.zeros(len(vocabulary), dtype=np.float64)
    for term, count in count_terms(processed.ngrams).items():
        idx = vocabulary.index_of(term)
        if idx is not None:
            vector[idx] = count
    return vector


def normalize_vector(vector: NDArray[np.float64]) -> NDArray[np.float64]:
    """L2-normalize; a zero vector is returned unchanged."""
    vector = np.asarray(vector, dtype=np.float64)
    magnitude = float(np.linalg.norm(vector))
    if magnitude == 0.0:
        return vector
    return vector / magnitude


def cosine_similarity(a: Sequence[float] | NDArray, b: Sequence[float] | NDArray) -> float:
    """
    Cosine similarity of two vectors of equal length.

    Returns 0.0 when either vector has zero magnitude.

    Raises:
        DimensionMismatchError: If the vectors differ in length.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise DimensionMismatchError(a.size, b.size)

    magnitude_a = float(np.linalg.norm(a))
    magnitude_b = float(np.linalg.norm(b))
    if magnitude_a == 0.0 or magnitude_b == 0.0:
        return 0.0
    return float(np.dot(a, b) / (magnitude_a * magnitude_b))


@dataclass(frozen=True)
class MatrixStats:
    average_vector_magnitude: float
    max_value: float
    min_value: float
    sparsity: float  # fraction of zero entries


def matrix_stats(matrix: csr_matrix | NDArray[np.float64]) -> MatrixStats:
    """Summary statistics for a documents x terms weight matrix."""
    dense = matrix.toarray() if hasattr(matrix, "toarray") else np.asarray(matrix, dtype=np.float64)
    if dense.size == 0:
        return MatrixStats(0.0, 0.0, 0.0, 1.0)
    magnitudes = np.linalg.norm(dense, axis=1)
    return MatrixStats(
        average_vector_magnitude=float(np.mean(magnitudes)),
        max_value=float(dense.max()),
        min_value=float(dense.min()),
        sparsity=float(np.count_nonzero(dense == 0) / dense.size),
    )


# =============================================================================
# Engine
# =============================================================================


class TFIDFEngine:
    """
    Computes TF, IDF and blended TF-IDF vectors.

    Args:
        tfidf_weight: Blend between TF-IDF (1.0) and raw counts (0.0).
        use_log_tf: Use 1 + ln(tf) instead of raw tf.
        use_smoothed_idf: Use the smoothed IDF variants.
    """

    def __init__(
        self,
        tfidf_weight: float = 1.0,
        use_log_tf: bool = True,
        use_smoothed_idf: bool = True,
    ):
        self.tfidf_weight = tfidf_weight
        self.use_log_tf = use_log_tf
        self.use_smoothed_idf = use_smoothed_idf

    @classmethod
    def from_config(cls, config: EmbeddingConfig) -> "TFIDFEngine":
        return cls(
            tfidf_weight=config.tfidf_weight,
            use_log_tf=config.tfidf_options.use_log_tf,
            use_smoothed_idf=config.tfidf_options.use_smoothed_idf,
        )

    def tf(self, count: int, total: int) -> float:
        if total == 0:
            return 0.0
        if self.use_log_tf:
            return 1.0 + math.log(count / total) if count > 0 else 0.0
        return count / total

    def idf(self, term: str, vocabulary: Vocabulary) -> float:
        df = vocabulary.document_frequency.get(term, 0)
        n_docs = vocabulary.total_documents

        if df == 0 or n_docs == 0:
            return 1.0

        if n_docs < SMALL_CORPUS_THRESHOLD:
            if self.use_smoothed_idf:
                return math.log((n_docs + 1) / (df + 1)) + 0.5
            return max(MIN_SMALL_CORPUS_IDF, (n_docs - df + 1) / n_docs)

        if self.use_smoothed_idf:
            return math.log(n_docs / df) + 1.0
        return math.log(n_docs / df)

    def idf_weights(self, vocabulary: Vocabulary) -> NDArray[np.float64]:
        """IDF of every vocabulary term, in index order."""
        return np.array([self.idf(term, vocabulary) for term in vocabulary.terms], dtype=np.float64)

    def weighted_vector(
        self,
        processed: ProcessedText,
        vocabulary: Vocabulary,
        weight: float | None = None,
    ) -> NDArray[np.float64]:
        """
        Blend of TF-IDF and raw count for each vocabulary term in the document.

        Args:
            processed: Document or query after normalization.
            vocabulary: Vocabulary the vector is aligned to.
            weight: Overrides tfidf_weight for this call.

        Returns:
            Dense vector of length len(vocabulary); absent terms are 0.
        """
        weight = self.tfidf_weight if weight is None else weight
        vector = np.zeros(len(vocabulary), dtype=np.float64)

        counts = count_terms(processed.ngrams)
        total = len(processed.ngrams)
        for term, count in counts.items():
            idx = vocabulary.index_of(term)
            if idx is None:
                continue
            tfidf = self.tf(count, total) * self.idf(term, vocabulary)
            vector[idx] = weight * tfidf + (1.0 - weight) * count
        return vector

    def matrix(self, processed_texts: Sequence[ProcessedText], vocabulary: Vocabulary) -> csr_matrix:
        """Documents x terms weighted matrix in CSR form."""
        if not processed_texts or not vocabulary.terms:
            return csr_matrix((len(processed_texts), len(vocabulary)), dtype=np.float64)
        rows = [self.weighted_vector(processed, vocabulary) for processed in processed_texts]
        return csr_matrix(np.vstack(rows))


__all__ = [
    "MIN_SMALL_CORPUS_IDF",
    "MatrixStats",
    "SMALL_CORPUS_THRESHOLD",
    "TFIDFEngine",
    "bag_of_words_vector",
    "cosine_similarity",
    "count_terms",
    "matrix_stats",
    "normalize_vector",
]
