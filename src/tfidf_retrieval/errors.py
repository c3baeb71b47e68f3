"""
Error taxonomy for the retrieval core.

Only two conditions are raised as exceptions: an invalid configuration in
strict mode and a similarity comparison between vectors of different length.
Everything else resolves to an empty or degraded result carrying one of the
reason strings below, so callers can branch on them without parsing messages.
"""

from __future__ import annotations


# =============================================================================
# Reason strings
# =============================================================================

REASON_EMPTY_INPUT = "empty_input"
REASON_EMPTY_CORPUS = "empty_corpus"
REASON_EMPTY_VOCABULARY = "empty_vocabulary"
REASON_ZERO_QUERY_VECTOR = "zero_query_vector"
REASON_NO_MATCH_ABOVE_THRESHOLD = "no_match_above_threshold"
REASON_BUDGET_EXCEEDED = "processing_budget_exceeded"
REASON_DIMENSION_MISMATCH = "dimension_mismatch"
REASON_INVALID_TOP_K = "invalid_top_k"


# =============================================================================
# Exceptions
# =============================================================================


class RetrievalError(Exception):
    """Base class for errors raised by tfidf_retrieval."""


class ConfigurationError(RetrievalError, ValueError):
    """
    A configuration field is outside its documented range.

    Only raised by strict validation; the default path rejects the field,
    substitutes the default and reports the message instead.

    Args:
        errors: One message per rejected field.
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "invalid configuration")


class DimensionMismatchError(RetrievalError, ValueError):
    """Two vectors built from different vocabularies were compared."""

    def __init__(self, left: int, right: int):
        self.left = left
        self.right = right
        super().__init__(f"Vectors must have the same length (got {left} and {right})")


# =============================================================================
# Warnings
# =============================================================================


class ConfigurationWarning(UserWarning):
    """A configuration field was rejected and replaced by its default."""


class ProcessingBudgetExceeded(UserWarning):
    """Embedding generation exceeded a size or wall-clock budget."""


__all__ = [
    "ConfigurationError",
    "ConfigurationWarning",
    "DimensionMismatchError",
    "ProcessingBudgetExceeded",
    "REASON_BUDGET_EXCEEDED",
    "REASON_DIMENSION_MISMATCH",
    "REASON_EMPTY_CORPUS",
    "REASON_EMPTY_INPUT",
    "REASON_EMPTY_VOCABULARY",
    "REASON_INVALID_TOP_K",
    "REASON_NO_MATCH_ABOVE_THRESHOLD",
    "REASON_ZERO_QUERY_VECTOR",
    "RetrievalError",
]
