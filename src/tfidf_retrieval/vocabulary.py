"""
Corpus vocabulary: index-stable terms with document frequencies.

A Vocabulary is built once per corpus snapshot and never updated in place.
Adding or removing a chunk means building a new one from the full chunk set.
Term indices follow the final sort order (descending document frequency,
first-seen order on ties), and every vector in the snapshot is positionally
aligned to them.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from tfidf_retrieval.text_processing import DEFAULT_NGRAM_SIZES, ProcessedText, TextProcessor

# =============================================================================
# Configuration
# =============================================================================

DEFAULT_MAX_VOCABULARY_SIZE = 10000

DEFAULT_MIN_DOCUMENT_FREQUENCY = 1

# Minimum documents before term extraction is spread over threads
MIN_DOCUMENTS_FOR_PARALLEL = 64


# =============================================================================
# Vocabulary
# =============================================================================


@dataclass(frozen=True)
class Vocabulary:
    """
    Immutable term index for one corpus snapshot.

    Attributes:
        terms: Unique terms; position is the vector dimension.
        term_to_index: term -> position in terms.
        document_frequency: term -> number of documents containing it.
        total_documents: Number of documents the vocabulary was built from.
    """

    terms: tuple[str, ...]
    term_to_index: Mapping[str, int]
    document_frequency: Mapping[str, int]
    total_documents: int

    @classmethod
    def from_terms(
        cls,
        terms: Sequence[str],
        document_frequency: Mapping[str, int],
        total_documents: int,
    ) -> "Vocabulary":
        terms = tuple(terms)
        return cls(
            terms=terms,
            term_to_index=MappingProxyType({term: idx for idx, term in enumerate(terms)}),
            document_frequency=MappingProxyType({term: int(document_frequency[term]) for term in terms}),
            total_documents=int(total_documents),
        )

    @classmethod
    def empty(cls) -> "Vocabulary":
        return cls.from_terms((), {}, 0)

    def __len__(self) -> int:
        return len(self.terms)

    def __contains__(self, term: object) -> bool:
        return term in self.term_to_index

    def index_of(self, term: str) -> int | None:
        return self.term_to_index.get(term)

    def validate(self) -> None:
        """Raise ValueError if the index/frequency invariants do not hold."""
        if self.total_documents < 0:
            raise ValueError("total_documents must be non-negative")
        if not (len(self.terms) == len(self.term_to_index) == len(self.document_frequency)):
            raise ValueError("terms, term_to_index and document_frequency differ in size")
        for idx, term in enumerate(self.terms):
            if self.term_to_index.get(term) != idx:
                raise ValueError(f"term {term!r} is not indexed at position {idx}")
            df = self.document_frequency.get(term, 0)
            if not 1 <= df <= self.total_documents:
                raise ValueError(
                    f"document frequency {df} of {term!r} outside [1, {self.total_documents}]"
                )

    def to_dict(self) -> dict[str, Any]:
        return {
            "terms": list(self.terms),
            "document_frequency": [self.document_frequency[term] for term in self.terms],
            "total_documents": self.total_documents,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Vocabulary":
        terms = list(data.get("terms", []))
        frequencies = list(data.get("document_frequency", []))
        if len(terms) != len(frequencies):
            raise ValueError("terms and document_frequency must have the same length")
        vocabulary = cls.from_terms(terms, dict(zip(terms, frequencies)), data.get("total_documents", 0))
        vocabulary.validate()
        return vocabulary


@dataclass(frozen=True)
class VocabularyStats:
    total_terms: int
    average_document_frequency: float
    max_document_frequency: int
    min_document_frequency: int


def vocabulary_stats(vocabulary: Vocabulary) -> VocabularyStats:
    if not vocabulary.terms:
        return VocabularyStats(0, 0.0, 0, 0)
    frequencies = list(vocabulary.document_frequency.values())
    return VocabularyStats(
        total_terms=len(vocabulary.terms),
        average_document_frequency=sum(frequencies) / len(frequencies),
        max_document_frequency=max(frequencies),
        min_document_frequency=min(frequencies),
    )


# =============================================================================
# Builder
# =============================================================================


class VocabularyBuilder:
    """
    Builds a frequency-sorted, size-capped Vocabulary from processed texts.

    Args:
        max_vocabulary_size: Keep at most this many terms.
        min_document_frequency: Drop terms found in fewer documents.
        ngram_sizes: N-gram sizes used by build_from_texts.
        num_workers: Threads for per-document term extraction. The document
            frequency reduction always runs on the calling thread.
    """

    def __init__(
        self,
        max_vocabulary_size: int = DEFAULT_MAX_VOCABULARY_SIZE,
        min_document_frequency: int = DEFAULT_MIN_DOCUMENT_FREQUENCY,
        ngram_sizes: Sequence[int] = DEFAULT_NGRAM_SIZES,
        num_workers: int = 1,
    ):
        if max_vocabulary_size < 1:
            raise ValueError("max_vocabulary_size must be greater than 0")
        if min_document_frequency < 1:
            raise ValueError("min_document_frequency must be greater than 0")
        self.max_vocabulary_size = max_vocabulary_size
        self.min_document_frequency = min_document_frequency
        self.ngram_sizes = tuple(ngram_sizes)
        self.num_workers = max(1, num_workers)

    @staticmethod
    def extract_terms(processed: ProcessedText) -> list[str]:
        """Distinct non-blank n-grams of one document, in first-seen order."""
        return list(dict.fromkeys(term for term in processed.ngrams if term.strip()))

    def _extract_all(self, processed_texts: Sequence[ProcessedText]) -> list[list[str]]:
        if self.num_workers == 1 or len(processed_texts) < MIN_DOCUMENTS_FOR_PARALLEL:
            return [self.extract_terms(processed) for processed in processed_texts]
        with ThreadPoolExecutor(max_workers=self.num_workers) as executor:
            # map preserves input order, so the reduction below is deterministic
            return list(executor.map(self.extract_terms, processed_texts))

    def build(self, processed_texts: Sequence[ProcessedText]) -> Vocabulary:
        if not processed_texts:
            return Vocabulary.empty()

        document_frequency: Counter[str] = Counter()
        for document_terms in self._extract_all(processed_texts):
            document_frequency.update(document_terms)

        kept = [term for term, df in document_frequency.items() if df >= self.min_document_frequency]
        # sorted() is stable: equal frequencies keep first-seen order
        kept = sorted(kept, key=lambda term: -document_frequency[term])
        final_terms = kept[: self.max_vocabulary_size]

        return Vocabulary.from_terms(final_terms, document_frequency, len(processed_texts))

    def build_from_texts(
        self,
        texts: Iterable[str],
        processor: TextProcessor | None = None,
    ) -> Vocabulary:
        processor = processor or TextProcessor()
        return self.build([processor.process(text, ngram_sizes=self.ngram_sizes) for text in texts])


__all__ = [
    "DEFAULT_MAX_VOCABULARY_SIZE",
    "DEFAULT_MIN_DOCUMENT_FREQUENCY",
    "MIN_DOCUMENTS_FOR_PARALLEL",
    "Vocabulary",
    "VocabularyBuilder",
    "VocabularyStats",
    "vocabulary_stats",
]
