"""
Lexical TF-IDF embeddings and cosine-similarity retrieval.

Usage:
    from tfidf_retrieval import EmbeddingPipeline, Retriever

    pipeline = EmbeddingPipeline()
    corpus = pipeline.embed_chunks(["The cat sat on the mat", "The dog ate the food"])
    Retriever(pipeline).find_most_relevant_chunks("dog", corpus, top_k=1)
"""

from tfidf_retrieval.config import (
    BALANCED_EMBEDDING_CONFIG,
    DEFAULT_EMBEDDING_CONFIG,
    MINIMAL_EMBEDDING_CONFIG,
    PRESETS,
    TECHNICAL_EMBEDDING_CONFIG,
    ConfigValidationResult,
    EmbeddingConfig,
    ProcessingLimits,
    TFIDFOptions,
    VocabularyOptions,
    validate_config,
)
from tfidf_retrieval.diagnostics import DiagnosticEvent, ListSink, LoggingSink, NullSink
from tfidf_retrieval.errors import (
    ConfigurationError,
    ConfigurationWarning,
    DimensionMismatchError,
    ProcessingBudgetExceeded,
    RetrievalError,
)
from tfidf_retrieval.optimizer import optimal_config_for_corpus
from tfidf_retrieval.pipeline import (
    ChunkMetadata,
    EmbeddedCorpus,
    EmbeddingPipeline,
    EmbeddingRecord,
    EmbeddingResult,
    chunk_text,
)
from tfidf_retrieval.retrieval import RelevanceResult, RetrievalOptions, Retriever, validate_embeddings
from tfidf_retrieval.text_processing import Language, TextProcessor, detect_language, tokenize
from tfidf_retrieval.tfidf import TFIDFEngine, cosine_similarity
from tfidf_retrieval.vocabulary import Vocabulary, VocabularyBuilder

__version__ = "0.1.0"

__all__ = [
    "BALANCED_EMBEDDING_CONFIG",
    "ChunkMetadata",
    "ConfigValidationResult",
    "ConfigurationError",
    "ConfigurationWarning",
    "DEFAULT_EMBEDDING_CONFIG",
    "DiagnosticEvent",
    "DimensionMismatchError",
    "EmbeddedCorpus",
    "EmbeddingConfig",
    "EmbeddingPipeline",
    "EmbeddingRecord",
    "EmbeddingResult",
    "Language",
    "ListSink",
    "LoggingSink",
    "MINIMAL_EMBEDDING_CONFIG",
    "NullSink",
    "PRESETS",
    "ProcessingBudgetExceeded",
    "ProcessingLimits",
    "RelevanceResult",
    "RetrievalError",
    "RetrievalOptions",
    "Retriever",
    "TECHNICAL_EMBEDDING_CONFIG",
    "TFIDFEngine",
    "TFIDFOptions",
    "TextProcessor",
    "Vocabulary",
    "VocabularyBuilder",
    "VocabularyOptions",
    "chunk_text",
    "cosine_similarity",
    "detect_language",
    "optimal_config_for_corpus",
    "tokenize",
    "validate_config",
    "validate_embeddings",
]
