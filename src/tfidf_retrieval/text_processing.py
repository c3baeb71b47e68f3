"""
Text normalization for lexical vectors.

Pipeline per chunk or query:
    tokenize -> detect_language -> remove_stopwords -> apply_stemming -> generate_ngrams

The stopword, indicator and stemming tables below are versioned data. They are
small and conservative (technical words are kept), and the
stemming rules are order-sensitive: the first matching rule wins. Changing any
of them changes every vector built from them, so bump STEMMING_RULES_VERSION
when editing the tables.

Usage:
    from tfidf_retrieval.text_processing import TextProcessor

    processed = TextProcessor().process(
        "The tests are running", enable_stemming=False, ngram_sizes=(1, 2)
    )
    processed.words   # ('tests', 'running')
    processed.ngrams  # ('tests', 'running', 'tests running')
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from tfidf_retrieval.config import EmbeddingConfig


class Language(str, Enum):
    ENGLISH = "en"
    PORTUGUESE = "pt"


DEFAULT_LANGUAGE = Language.ENGLISH

DEFAULT_NGRAM_SIZES: tuple[int, ...] = (1, 2, 3)


# =============================================================================
# Data tables
# =============================================================================

STEMMING_RULES_VERSION = 1

# Common function words only; modal verbs, "this", "which" etc. are kept.
STOPWORDS: dict[Language, frozenset[str]] = {
    Language.ENGLISH: frozenset(
        [
            "a", "an", "and", "are", "as", "at", "be", "by", "for", "from",
            "has", "he", "in", "is", "it", "of", "on", "that", "the", "to",
            "was", "with", "they", "have", "had", "she", "we", "you", "been",
            "were",
        ]
    ),
    Language.PORTUGUESE: frozenset(
        [
            "a", "ao", "aos", "as", "da", "das", "de", "do", "dos", "e", "em",
            "o", "os", "para", "por", "que", "se", "um", "uma",
        ]
    ),
}

LANGUAGE_INDICATORS: dict[Language, tuple[str, ...]] = {
    Language.ENGLISH: ("the", "and", "is", "in", "to", "of", "a", "that", "it", "with"),
    Language.PORTUGUESE: ("de", "a", "o", "que", "e", "do", "da", "em", "um", "para"),
}


class StemmingRule(NamedTuple):
    suffix: str
    replacement: str
    min_length: int


STEMMING_RULES: dict[Language, tuple[StemmingRule, ...]] = {
    Language.ENGLISH: (
        StemmingRule("ing", "", 6),  # testing -> test, ring untouched
        StemmingRule("ed", "", 5),
        StemmingRule("er", "", 6),
        StemmingRule("est", "", 6),
        StemmingRule("ly", "", 6),
        StemmingRule("tion", "te", 7),  # authentication -> authenticate
        StemmingRule("sion", "", 7),
        StemmingRule("ness", "", 7),
        StemmingRule("ment", "", 7),
        StemmingRule("able", "", 7),
        StemmingRule("ible", "", 7),
        StemmingRule("ive", "", 6),
        StemmingRule("ous", "", 6),
        StemmingRule("ful", "", 6),
    ),
    Language.PORTUGUESE: (
        StemmingRule("ando", "ar", 7),  # implementando -> implementar
        StemmingRule("endo", "er", 7),
        StemmingRule("indo", "ir", 7),
        StemmingRule("ado", "ar", 6),
        StemmingRule("ido", "er", 6),
        StemmingRule("ção", "r", 7),  # autenticação -> autenticar
        StemmingRule("mente", "", 8),
        StemmingRule("dade", "", 7),
        StemmingRule("agem", "", 7),
        StemmingRule("ável", "", 7),
        StemmingRule("ível", "", 7),
    ),
}

# ASCII word characters and whitespace survive, plus the Portuguese accented letters.
_NON_WORD_PATTERN = re.compile(r"[^\w\sáàâãéêíóôõúç]", re.ASCII)


# =============================================================================
# Tokenization and language detection
# =============================================================================


def tokenize(text: str) -> list[str]:
    """Lowercase, replace non-word characters with spaces and split."""
    return _NON_WORD_PATTERN.sub(" ", text.lower()).split()


def detect_language(text: str) -> Language:
    """
    Pick the language whose indicator words overlap most with the text.

    Each distinct token counts once. Ties, including no overlap at all,
    resolve to DEFAULT_LANGUAGE.
    """
    distinct = set(tokenize(text))

    best = DEFAULT_LANGUAGE
    best_score = sum(1 for word in LANGUAGE_INDICATORS[best] if word in distinct)
    for language, indicators in LANGUAGE_INDICATORS.items():
        if language is best:
            continue
        score = sum(1 for word in indicators if word in distinct)
        if score > best_score:
            best, best_score = language, score
    return best


# =============================================================================
# Lexical transforms
# =============================================================================


def remove_stopwords(
    words: Sequence[str],
    language: Language,
    extra: Iterable[str] = (),
) -> list[str]:
    stopwords = STOPWORDS[language]
    extra_set = frozenset(extra)
    if extra_set:
        stopwords = stopwords | extra_set
    return [word for word in words if word not in stopwords]


def stem_word(word: str, language: Language) -> str:
    for rule in STEMMING_RULES[language]:
        if len(word) >= rule.min_length and word.endswith(rule.suffix):
            return word[: -len(rule.suffix)] + rule.replacement
    return word


def apply_stemming(words: Sequence[str], language: Language) -> list[str]:
    """Strip the first matching suffix rule from each word."""
    return [stem_word(word, language) for word in words]


def generate_ngrams(words: Sequence[str], sizes: Iterable[int] = DEFAULT_NGRAM_SIZES) -> list[str]:
    """
    Expand words into n-grams.

    Output is grouped by size in the order given; within a size, windows run
    left to right. Sizes larger than the word count contribute nothing.
    """
    ngrams: list[str] = []
    for n in sizes:
        if n == 1:
            ngrams.extend(words)
        elif 1 < n <= len(words):
            ngrams.extend(" ".join(words[i : i + n]) for i in range(len(words) - n + 1))
    return ngrams


# =============================================================================
# Processor
# =============================================================================


@dataclass(frozen=True)
class ProcessedText:
    """Normalized words, their n-gram expansion and the language used."""

    words: tuple[str, ...]
    ngrams: tuple[str, ...]
    language: Language


class TextProcessor:
    """
    Runs the normalization pipeline with a fixed set of custom stopwords.

    Args:
        custom_stopwords: Extra words removed in every language when
            stopword removal is enabled.
    """

    def __init__(self, custom_stopwords: Iterable[str] = ()):
        self.custom_stopwords = frozenset(word.lower().strip() for word in custom_stopwords)

    def process(
        self,
        text: str,
        *,
        enable_stemming: bool = True,
        enable_stopword_removal: bool = True,
        language: Language | None = None,
        ngram_sizes: Sequence[int] = DEFAULT_NGRAM_SIZES,
    ) -> ProcessedText:
        detected = language or detect_language(text)

        words = tokenize(text)
        if enable_stopword_removal:
            words = remove_stopwords(words, detected, self.custom_stopwords)
        if enable_stemming:
            words = apply_stemming(words, detected)

        return ProcessedText(
            words=tuple(words),
            ngrams=tuple(generate_ngrams(words, ngram_sizes)),
            language=detected,
        )

    def process_with_config(
        self,
        text: str,
        config: EmbeddingConfig,
        ngram_sizes: Sequence[int] | None = None,
    ) -> ProcessedText:
        return self.process(
            text,
            enable_stemming=config.enable_stemming,
            enable_stopword_removal=config.enable_stopword_removal,
            language=config.language,
            ngram_sizes=config.ngram_sizes if ngram_sizes is None else ngram_sizes,
        )

    @classmethod
    def from_config(cls, config: EmbeddingConfig) -> "TextProcessor":
        return cls(custom_stopwords=config.custom_stopwords)


__all__ = [
    "DEFAULT_LANGUAGE",
    "DEFAULT_NGRAM_SIZES",
    "LANGUAGE_INDICATORS",
    "Language",
    "ProcessedText",
    "STEMMING_RULES",
    "STEMMING_RULES_VERSION",
    "STOPWORDS",
    "StemmingRule",
    "TextProcessor",
    "apply_stemming",
    "detect_language",
    "generate_ngrams",
    "remove_stopwords",
    "stem_word",
    "tokenize",
]
