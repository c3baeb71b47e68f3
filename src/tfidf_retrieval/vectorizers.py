"""
Vectorizer variants selected once, at construction time.

TFIDFVectorizer and BagOfWordsVectorizer share one interface so the pipeline
and retriever run the same code path whichever is active. The choice comes
from EmbeddingConfig.enable_tfidf, never from catching an error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import numpy as np

from tfidf_retrieval.tfidf import TFIDFEngine, bag_of_words_vector

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from tfidf_retrieval.config import EmbeddingConfig
    from tfidf_retrieval.text_processing import ProcessedText
    from tfidf_retrieval.vocabulary import Vocabulary


class Vectorizer(Protocol):
    name: str

    def vectorize(self, processed: ProcessedText, vocabulary: Vocabulary) -> NDArray[np.float64]: ...


class TFIDFVectorizer:
    name = "tfidf"

    def __init__(self, engine: TFIDFEngine | None = None):
        self.engine = engine or TFIDFEngine()

    def vectorize(self, processed: ProcessedText, vocabulary: Vocabulary) -> NDArray[np.float64]:
        return self.engine.weighted_vector(processed, vocabulary)


class BagOfWordsVectorizer:
    name = "bow"

    def vectorize(self, processed: ProcessedText, vocabulary: Vocabulary) -> NDArray[np.float64]:
        return bag_of_words_vector(processed, vocabulary)


def make_vectorizer(config: EmbeddingConfig) -> Vectorizer:
    if config.enable_tfidf:
        return TFIDFVectorizer(TFIDFEngine.from_config(config))
    return BagOfWordsVectorizer()


__all__ = ["BagOfWordsVectorizer", "TFIDFVectorizer", "Vectorizer", "make_vectorizer"]
