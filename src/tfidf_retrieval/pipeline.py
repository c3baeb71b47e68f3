"""
Embedding pipeline: raw text -> chunks -> one lexical vector per chunk.

Steps for one batch:
1. Split text into sentence-accumulated chunks (chunk_text)
2. Optionally tune the config from chunk statistics (optimizer)
3. Normalize every chunk (text_processing)
4. Build one shared Vocabulary over the batch (vocabulary)
5. Vectorize each chunk with the configured variant (vectorizers)
6. Drop chunks whose vector is all zeros

The result is an EmbeddedCorpus: an immutable snapshot of records, the
vocabulary they are aligned to and the config that produced them. Adding or
removing chunks builds a new snapshot from the full chunk set.

Usage:
    from tfidf_retrieval.pipeline import EmbeddingPipeline

    corpus = EmbeddingPipeline().embed("Hello world. This is a test.")
    corpus.texts  # ('Hello world This is a test',)
"""

from __future__ import annotations

import logging
import re
import time
import unicodedata
import warnings
from collections import Counter
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, replace
from functools import cached_property
from typing import TYPE_CHECKING, Any

import numpy as np
from scipy.sparse import csr_matrix
from tqdm import tqdm

from tfidf_retrieval.config import (
    DEFAULT_EMBEDDING_CONFIG,
    DEFAULT_PROCESSING_LIMITS,
    EmbeddingConfig,
    ProcessingLimits,
    validate_config,
)
from tfidf_retrieval.diagnostics import DiagnosticsSink, timed_operation
from tfidf_retrieval.errors import REASON_BUDGET_EXCEEDED, REASON_EMPTY_INPUT, ProcessingBudgetExceeded
from tfidf_retrieval.optimizer import apply_delta, content_tuning_delta, should_auto_tune
from tfidf_retrieval.text_processing import Language, ProcessedText, TextProcessor
from tfidf_retrieval.vectorizers import make_vectorizer
from tfidf_retrieval.vocabulary import Vocabulary, VocabularyBuilder

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

# Content longer than max_chunk_size * factor triggers the matching action
LARGE_CONTENT_WARNING_FACTOR = 10
LARGE_CONTENT_DEGRADE_FACTOR = 5
TRUNCATE_CONTENT_FACTOR = 20

# Degraded mode for very large input
DEGRADED_NGRAM_SIZES: tuple[int, ...] = (1,)
DEGRADED_TFIDF_WEIGHT = 0.5

_SENTENCE_TERMINATORS = re.compile(r"[.!?]")
_WHITESPACE = re.compile(r"\s+")


# =============================================================================
# Chunking and preprocessing
# =============================================================================


def chunk_text(text: str, max_chunk_size: int = 512) -> list[str]:
    """
    Split on . ! ? and accumulate sentences into chunks.

    A sentence that would push the current chunk past max_chunk_size starts a
    new chunk. Terminators are dropped and sentences are concatenated as-is,
    so "Hello world. This is a test." becomes "Hello world This is a test".
    Whitespace-only chunks are discarded.
    """
    chunks: list[str] = []
    current = ""
    for sentence in _SENTENCE_TERMINATORS.split(text):
        if len(current) + len(sentence) > max_chunk_size:
            if current.strip():
                chunks.append(current.strip())
            current = sentence
        else:
            current += sentence
    if current.strip():
        chunks.append(current.strip())
    return chunks


def preprocess_text(
    text: str,
    limits: ProcessingLimits = DEFAULT_PROCESSING_LIMITS,
) -> tuple[str, list[str]]:
    """
    Clean raw input before chunking.

    Removes NUL and U+FFFD characters, NFC-normalizes, collapses whitespace
    and truncates text longer than max_chunk_size * 20.

    Returns:
        (cleaned_text, warnings). Empty input gives ("", [warning]).
    """
    notes: list[str] = []
    if not text or not text.strip():
        notes.append("Input text is empty or contains only whitespace")
        return "", notes

    if len(text.strip()) < 3:
        notes.append("Input text is very short (less than 3 characters)")

    cleaned = text
    limit = limits.max_chunk_size * TRUNCATE_CONTENT_FACTOR
    if len(cleaned) > limit:
        notes.append(f"Input text is very long ({len(cleaned)} characters); truncated to {limit}")
        cleaned = cleaned[:limit]

    cleaned = unicodedata.normalize("NFC", cleaned.replace("\0", "").replace("\ufffd", ""))

    before = len(cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    if len(cleaned) < before * 0.5:
        notes.append("Text contained excessive whitespace that was normalized")

    return cleaned, notes


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class ChunkMetadata:
    language: Language
    word_count: int
    ngram_count: int
    processing_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "language": self.language.value,
            "word_count": self.word_count,
            "ngram_count": self.ngram_count,
            "processing_time_ms": self.processing_time_ms,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChunkMetadata":
        return cls(
            language=Language(data["language"]),
            word_count=int(data["word_count"]),
            ngram_count=int(data["ngram_count"]),
            processing_time_ms=float(data.get("processing_time_ms", 0.0)),
        )


@dataclass(frozen=True, eq=False)
class EmbeddingRecord:
    """One chunk, its vector (read-only) and its metadata."""

    text: str
    vector: NDArray[np.float64]
    metadata: ChunkMetadata

    def __post_init__(self) -> None:
        vector = np.array(self.vector, dtype=np.float64)
        vector.setflags(write=False)
        object.__setattr__(self, "vector", vector)

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "vector": self.vector.tolist(), "metadata": self.metadata.to_dict()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EmbeddingRecord":
        return cls(
            text=data["text"],
            vector=np.asarray(data["vector"], dtype=np.float64),
            metadata=ChunkMetadata.from_dict(data["metadata"]),
        )


class EmbeddedCorpus:
    """
    Immutable snapshot: records, the vocabulary they align to, and the config.

    Args:
        records: Embedded chunks, all of dimension len(vocabulary).
        vocabulary: Vocabulary built from the chunk set.
        config: Effective config used to build the snapshot; queries against
            it must be processed with the same config.
    """

    def __init__(
        self,
        records: Iterable[EmbeddingRecord],
        vocabulary: Vocabulary,
        config: EmbeddingConfig = DEFAULT_EMBEDDING_CONFIG,
    ):
        self.records: tuple[EmbeddingRecord, ...] = tuple(records)
        self.vocabulary = vocabulary
        self.config = config

    @classmethod
    def empty(cls, config: EmbeddingConfig = DEFAULT_EMBEDDING_CONFIG) -> "EmbeddedCorpus":
        return cls((), Vocabulary.empty(), config)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[EmbeddingRecord]:
        return iter(self.records)

    def __getitem__(self, index: int) -> EmbeddingRecord:
        return self.records[index]

    @property
    def texts(self) -> tuple[str, ...]:
        return tuple(record.text for record in self.records)

    @property
    def dimension(self) -> int:
        return len(self.vocabulary)

    @cached_property
    def matrix(self) -> csr_matrix:
        """Chunks x terms matrix of all record vectors."""
        if not self.records:
            return csr_matrix((0, self.dimension), dtype=np.float64)
        return csr_matrix(np.vstack([record.vector for record in self.records]))

    def with_chunks(self, chunks: Iterable[str], pipeline: EmbeddingPipeline | None = None) -> "EmbeddedCorpus":
        """New snapshot over the current chunks plus new ones; vocabulary rebuilt."""
        pipeline = pipeline or EmbeddingPipeline(self.config, auto_tune=False)
        return pipeline.embed_chunks([*self.texts, *chunks], config=self.config)

    def without_chunk(self, index: int, pipeline: EmbeddingPipeline | None = None) -> "EmbeddedCorpus":
        """New snapshot without the chunk at index; vocabulary rebuilt."""
        texts = list(self.texts)
        del texts[index]
        pipeline = pipeline or EmbeddingPipeline(self.config, auto_tune=False)
        return pipeline.embed_chunks(texts, config=self.config)

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible form for an external key-value store."""
        return {
            "records": [record.to_dict() for record in self.records],
            "vocabulary": self.vocabulary.to_dict(),
            "config": self.config.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EmbeddedCorpus":
        vocabulary = Vocabulary.from_dict(data["vocabulary"])
        records = [EmbeddingRecord.from_dict(item) for item in data.get("records", [])]
        for idx, record in enumerate(records):
            if record.vector.shape[0] != len(vocabulary):
                raise ValueError(
                    f"record {idx} has dimension {record.vector.shape[0]}, vocabulary has {len(vocabulary)}"
                )
        return cls(records, vocabulary, EmbeddingConfig.from_dict(data.get("config", {})))


@dataclass(frozen=True)
class EmbeddingResult:
    """Best-effort output of generate_with_limits plus advisory warnings."""

    corpus: EmbeddedCorpus
    warnings: tuple[str, ...] = ()
    degraded: bool = False
    processing_time_ms: float = 0.0
    reason: str | None = None

    @property
    def records(self) -> tuple[EmbeddingRecord, ...]:
        return self.corpus.records


@dataclass(frozen=True)
class ProcessingStats:
    total_chunks: int
    average_word_count: float
    average_ngram_count: float
    average_processing_time_ms: float
    language_distribution: dict[str, int]


def processing_stats(records: Sequence[EmbeddingRecord]) -> ProcessingStats:
    if not records:
        return ProcessingStats(0, 0.0, 0.0, 0.0, {})
    n = len(records)
    return ProcessingStats(
        total_chunks=n,
        average_word_count=sum(r.metadata.word_count for r in records) / n,
        average_ngram_count=sum(r.metadata.ngram_count for r in records) / n,
        average_processing_time_ms=sum(r.metadata.processing_time_ms for r in records) / n,
        language_distribution=dict(Counter(r.metadata.language.value for r in records)),
    )


# =============================================================================
# Pipeline
# =============================================================================


class EmbeddingPipeline:
    """
    Turns text into an EmbeddedCorpus.

    Args:
        config: EmbeddingConfig or a mapping of overrides. Either way it is
            validated; rejected fields fall back to defaults and are listed
            in config_errors.
        auto_tune: Let content statistics adjust a default-looking config.
            The caller's config object is never modified.
        sink: Receives one DiagnosticEvent per operation.
        vocabulary_workers: Threads for vocabulary term extraction.
    """

    def __init__(
        self,
        config: EmbeddingConfig | Mapping[str, Any] | None = None,
        *,
        auto_tune: bool = True,
        sink: DiagnosticsSink | None = None,
        vocabulary_workers: int = 1,
    ):
        if config is None:
            self.config = DEFAULT_EMBEDDING_CONFIG
            self.config_errors: tuple[str, ...] = ()
        else:
            validation = validate_config(config)
            self.config = validation.config
            self.config_errors = validation.errors
        self.auto_tune = auto_tune
        self.sink = sink
        self.vocabulary_workers = vocabulary_workers

    def effective_config(self, chunks: Sequence[str]) -> EmbeddingConfig:
        if self.auto_tune and should_auto_tune(self.config):
            return apply_delta(self.config, content_tuning_delta(chunks, self.config))
        return self.config

    def process(self, text: str, config: EmbeddingConfig | None = None) -> ProcessedText:
        config = config or self.config
        return TextProcessor.from_config(config).process_with_config(text, config)

    def embed_chunks(
        self,
        chunks: Iterable[str],
        config: EmbeddingConfig | None = None,
    ) -> EmbeddedCorpus:
        """
        Embed pre-chunked text.

        Args:
            chunks: Chunk texts; whitespace-only entries are discarded.
            config: Use this config as-is instead of the (tuned) pipeline
                config.

        Returns:
            Snapshot with one record per chunk whose vector is non-zero.
        """
        chunks = [chunk.strip() for chunk in chunks if chunk.strip()]

        with timed_operation(self.sink, "embed_chunks", input_size=sum(len(c) for c in chunks)) as timer:
            if not chunks:
                timer.details["reason"] = REASON_EMPTY_INPUT
                return EmbeddedCorpus.empty(config or self.config)

            config = config or self.effective_config(chunks)
            processor = TextProcessor.from_config(config)

            processed: list[ProcessedText] = []
            elapsed: list[float] = []
            for chunk in chunks:
                start = time.perf_counter()
                processed.append(processor.process_with_config(chunk, config))
                elapsed.append((time.perf_counter() - start) * 1000.0)

            builder = VocabularyBuilder(
                max_vocabulary_size=config.effective_vocabulary_size,
                min_document_frequency=config.vocabulary_options.min_document_frequency,
                ngram_sizes=config.ngram_sizes,
                num_workers=self.vocabulary_workers,
            )
            vocabulary = builder.build(processed)
            vectorizer = make_vectorizer(config)

            records: list[EmbeddingRecord] = []
            for chunk, item, spent in zip(chunks, processed, elapsed):
                start = time.perf_counter()
                vector = vectorizer.vectorize(item, vocabulary)
                if not np.any(vector):
                    continue
                metadata = ChunkMetadata(
                    language=item.language,
                    word_count=len(item.words),
                    ngram_count=len(item.ngrams),
                    processing_time_ms=spent + (time.perf_counter() - start) * 1000.0,
                )
                records.append(EmbeddingRecord(chunk, vector, metadata))

            timer.output_size = len(records)
            timer.details.update(
                chunks=len(chunks),
                dropped=len(chunks) - len(records),
                vocabulary_size=len(vocabulary),
                vectorizer=vectorizer.name,
            )
            logger.debug(
                "Embedded %d/%d chunks over %d terms (%s)",
                len(records),
                len(chunks),
                len(vocabulary),
                vectorizer.name,
            )
            return EmbeddedCorpus(records, vocabulary, config)

    def embed(self, text: str) -> EmbeddedCorpus:
        return self.embed_chunks(chunk_text(text, self.config.chunk_size))

    def generate_embeddings(self, text: str) -> list[EmbeddingRecord]:
        """Records for text; empty text gives []."""
        return list(self.embed(text).records)

    def generate_with_limits(self, text: str) -> EmbeddingResult:
        """
        Embed with size and time budgets.

        Oversized input is embedded in a degraded unigram-only mode, and a
        blown wall-clock budget is reported as ProcessingBudgetExceeded.
        Neither discards the records already produced.
        """
        limits = self.config.processing_limits
        notes: list[str] = []
        degraded = False
        reason: str | None = None

        with timed_operation(self.sink, "generate_with_limits", input_size=len(text)) as timer:
            cleaned, preprocess_notes = preprocess_text(text, limits)
            notes.extend(preprocess_notes)
            if not cleaned:
                timer.details["reason"] = REASON_EMPTY_INPUT
                return EmbeddingResult(
                    corpus=EmbeddedCorpus.empty(self.config),
                    warnings=tuple(notes),
                    processing_time_ms=timer.elapsed_ms,
                    reason=REASON_EMPTY_INPUT,
                )

            if len(cleaned) > limits.max_chunk_size * LARGE_CONTENT_WARNING_FACTOR:
                notes.append(f"Content size ({len(cleaned)}) exceeds recommended limit. Processing may be slow.")

            chunks = chunk_text(cleaned, self.config.chunk_size)
            config = self.effective_config(chunks)
            if len(cleaned) > limits.max_chunk_size * LARGE_CONTENT_DEGRADE_FACTOR:
                config = replace(config, ngram_sizes=DEGRADED_NGRAM_SIZES, tfidf_weight=DEGRADED_TFIDF_WEIGHT)
                degraded = True
                reason = REASON_BUDGET_EXCEEDED
                message = "Applied performance optimizations for large content (unigrams only)"
                notes.append(message)
                warnings.warn(message, ProcessingBudgetExceeded, stacklevel=2)

            corpus = self.embed_chunks(chunks, config=config)

            processing_time = timer.elapsed_ms
            if processing_time > limits.max_processing_time_ms:
                reason = REASON_BUDGET_EXCEEDED
                message = (
                    f"Processing time ({processing_time:.0f}ms) exceeded limit "
                    f"({limits.max_processing_time_ms}ms)"
                )
                notes.append(message)
                logger.warning(message)
                warnings.warn(message, ProcessingBudgetExceeded, stacklevel=2)

            timer.output_size = len(corpus)
            timer.details.update(warnings=len(notes), degraded=degraded)

        return EmbeddingResult(
            corpus=corpus,
            warnings=tuple(notes),
            degraded=degraded,
            processing_time_ms=processing_time,
            reason=reason,
        )

    def vectorize_query(
        self,
        query: str,
        vocabulary: Vocabulary,
        config: EmbeddingConfig | None = None,
    ) -> NDArray[np.float64]:
        """Query vector against an existing vocabulary; unknown terms add nothing."""
        config = config or self.config
        return make_vectorizer(config).vectorize(self.process(query, config), vocabulary)

    def generate_batch(
        self,
        contents: Sequence[str],
        show_progress: bool = False,
    ) -> list[tuple[int, EmbeddingRecord]]:
        """
        Embed many documents independently.

        Each document gets its own vocabulary, so vectors are only comparable
        among records sharing a source index.

        Returns:
            (source_index, record) pairs in document order.
        """
        results: list[tuple[int, EmbeddingRecord]] = []
        for source_index, content in enumerate(
            tqdm(contents, desc="Embedding documents", disable=not show_progress)
        ):
            result = self.generate_with_limits(content)
            results.extend((source_index, record) for record in result.records)
        return results


__all__ = [
    "ChunkMetadata",
    "EmbeddedCorpus",
    "EmbeddingPipeline",
    "EmbeddingRecord",
    "EmbeddingResult",
    "ProcessingStats",
    "chunk_text",
    "preprocess_text",
    "processing_stats",
]
