"""
Embedding configuration, presets and field-by-field validation.

Configuration is an explicit, immutable value passed to the pipeline; there is
no process-wide config manager. validate_config() takes a partial mapping of
overrides (or a whole EmbeddingConfig), rejects invalid fields one at a time,
keeps the base value for each rejected field and reports a message per
rejection. Nothing out of range is ever accepted silently.

Usage:
    from tfidf_retrieval.config import validate_config

    result = validate_config({"tfidf_weight": 1.5, "ngram_sizes": [2, 1]})
    result.config.ngram_sizes   # (1, 2)
    result.config.tfidf_weight  # 0.1, default kept
    result.errors               # ('tfidf_weight must be a number between 0 and 1',)
"""

from __future__ import annotations

import math
import warnings
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field, fields, replace
from numbers import Integral, Real
from typing import Any

from tfidf_retrieval.errors import ConfigurationError, ConfigurationWarning
from tfidf_retrieval.text_processing import Language

# =============================================================================
# Hard caps
# =============================================================================

NGRAM_SIZE_CEILING = 5
VOCABULARY_SIZE_CAP = 50000
PROCESSING_TIME_CAP_MS = 30000
CHUNK_SIZE_CAP = 8192


# =============================================================================
# Config types
# =============================================================================


@dataclass(frozen=True)
class ProcessingLimits:
    max_vocabulary_size: int = 10000
    max_ngram_size: int = 3
    max_processing_time_ms: int = 5000
    max_chunk_size: int = 2048


@dataclass(frozen=True)
class VocabularyOptions:
    max_vocabulary_size: int = 15000
    min_document_frequency: int = 1


@dataclass(frozen=True)
class TFIDFOptions:
    use_log_tf: bool = False
    use_smoothed_idf: bool = True


@dataclass(frozen=True)
class EmbeddingConfig:
    """
    Settings for one embedding run.

    Attributes:
        enable_tfidf: TF-IDF blend when True, raw bag-of-words counts otherwise.
        enable_stemming: Apply the rule-based suffix stemmer.
        enable_stopword_removal: Drop the language's stopwords.
        ngram_sizes: N-gram sizes used as vector terms.
        tfidf_weight: 1.0 is pure TF-IDF, 0.0 pure raw count.
        language: Fixed language, or None to detect per chunk/query.
        custom_stopwords: Extra stopwords applied in every language.
        chunk_size: Maximum characters accumulated into one chunk.
        processing_limits: Size and time budgets.
        vocabulary_options: Vocabulary size and minimum document frequency.
        tfidf_options: TF and IDF variants.
    """

    enable_tfidf: bool = True
    enable_stemming: bool = False
    enable_stopword_removal: bool = True
    ngram_sizes: tuple[int, ...] = (1, 2)
    tfidf_weight: float = 0.1
    language: Language | None = None
    custom_stopwords: tuple[str, ...] = ()
    chunk_size: int = 512
    processing_limits: ProcessingLimits = field(default_factory=ProcessingLimits)
    vocabulary_options: VocabularyOptions = field(default_factory=VocabularyOptions)
    tfidf_options: TFIDFOptions = field(default_factory=TFIDFOptions)

    def __post_init__(self) -> None:
        object.__setattr__(self, "ngram_sizes", tuple(self.ngram_sizes))
        object.__setattr__(self, "custom_stopwords", tuple(self.custom_stopwords))

    @property
    def effective_vocabulary_size(self) -> int:
        return min(self.vocabulary_options.max_vocabulary_size, self.processing_limits.max_vocabulary_size)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["ngram_sizes"] = list(self.ngram_sizes)
        data["custom_stopwords"] = list(self.custom_stopwords)
        data["language"] = self.language.value if self.language is not None else None
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EmbeddingConfig":
        """Validated config from a mapping; invalid fields fall back to defaults."""
        return validate_config(data).config


# =============================================================================
# Presets
# =============================================================================

DEFAULT_PROCESSING_LIMITS = ProcessingLimits()

DEFAULT_EMBEDDING_CONFIG = EmbeddingConfig()

# Plain unigram counts; equivalent to a classic bag-of-words.
MINIMAL_EMBEDDING_CONFIG = EmbeddingConfig(
    enable_tfidf=False,
    enable_stemming=False,
    enable_stopword_removal=False,
    ngram_sizes=(1,),
    tfidf_weight=0.0,
    vocabulary_options=VocabularyOptions(max_vocabulary_size=5000),
    tfidf_options=TFIDFOptions(use_log_tf=False, use_smoothed_idf=False),
)

TECHNICAL_EMBEDDING_CONFIG = EmbeddingConfig(
    enable_tfidf=True,
    enable_stemming=True,
    enable_stopword_removal=True,
    ngram_sizes=(1, 2, 3),
    tfidf_weight=0.2,
    processing_limits=replace(DEFAULT_PROCESSING_LIMITS, max_vocabulary_size=20000),
    vocabulary_options=VocabularyOptions(max_vocabulary_size=20000),
)

BALANCED_EMBEDDING_CONFIG = EmbeddingConfig(
    vocabulary_options=VocabularyOptions(max_vocabulary_size=12000),
)

PRESETS: dict[str, EmbeddingConfig] = {
    "default": DEFAULT_EMBEDDING_CONFIG,
    "minimal": MINIMAL_EMBEDDING_CONFIG,
    "technical": TECHNICAL_EMBEDDING_CONFIG,
    "balanced": BALANCED_EMBEDDING_CONFIG,
}


# =============================================================================
# Validation
# =============================================================================


@dataclass(frozen=True)
class ConfigValidationResult:
    config: EmbeddingConfig
    errors: tuple[str, ...] = ()
    rejected_fields: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


_BOOL_FIELDS = ("enable_tfidf", "enable_stemming", "enable_stopword_removal")
_KNOWN_FIELDS = frozenset(f.name for f in fields(EmbeddingConfig))


def _is_int(value: Any) -> bool:
    return isinstance(value, Integral) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def _as_mapping(value: Any) -> Mapping[str, Any] | None:
    if isinstance(value, Mapping):
        return value
    if hasattr(value, "__dataclass_fields__"):
        return asdict(value)
    return None


def _validate_limits(value: Any, base: ProcessingLimits) -> tuple[ProcessingLimits, list[tuple[str, str]]]:
    data = _as_mapping(value)
    if data is None:
        return base, [("processing_limits", "processing_limits must be a mapping")]

    errors: list[tuple[str, str]] = []
    updates: dict[str, int] = {}

    for name, cap in (
        ("max_vocabulary_size", VOCABULARY_SIZE_CAP),
        ("max_processing_time_ms", PROCESSING_TIME_CAP_MS),
        ("max_chunk_size", CHUNK_SIZE_CAP),
    ):
        if name not in data:
            continue
        candidate = data[name]
        if _is_int(candidate) and candidate > 0:
            updates[name] = min(int(candidate), cap)
        else:
            errors.append((name, f"{name} must be a positive integer"))

    if "max_ngram_size" in data:
        candidate = data["max_ngram_size"]
        if _is_int(candidate) and 1 <= candidate <= NGRAM_SIZE_CEILING:
            updates["max_ngram_size"] = int(candidate)
        else:
            errors.append(("max_ngram_size", f"max_ngram_size must be an integer between 1 and {NGRAM_SIZE_CEILING}"))

    for name in sorted(set(data) - {f.name for f in fields(ProcessingLimits)}):
        errors.append((name, f"unknown processing limit: {name}"))

    return replace(base, **updates), errors


def _validate_vocabulary_options(
    value: Any, base: VocabularyOptions
) -> tuple[VocabularyOptions, list[tuple[str, str]]]:
    data = _as_mapping(value)
    if data is None:
        return base, [("vocabulary_options", "vocabulary_options must be a mapping")]

    errors: list[tuple[str, str]] = []
    updates: dict[str, int] = {}
    if "max_vocabulary_size" in data:
        candidate = data["max_vocabulary_size"]
        if _is_int(candidate) and candidate > 0:
            updates["max_vocabulary_size"] = min(int(candidate), VOCABULARY_SIZE_CAP)
        else:
            errors.append(("max_vocabulary_size", "max_vocabulary_size must be greater than 0"))
    if "min_document_frequency" in data:
        candidate = data["min_document_frequency"]
        if _is_int(candidate) and candidate > 0:
            updates["min_document_frequency"] = int(candidate)
        else:
            errors.append(("min_document_frequency", "min_document_frequency must be a positive integer"))
    for name in sorted(set(data) - {f.name for f in fields(VocabularyOptions)}):
        errors.append((name, f"unknown vocabulary option: {name}"))
    return replace(base, **updates), errors


def _validate_tfidf_options(value: Any, base: TFIDFOptions) -> tuple[TFIDFOptions, list[tuple[str, str]]]:
    data = _as_mapping(value)
    if data is None:
        return base, [("tfidf_options", "tfidf_options must be a mapping")]

    errors: list[tuple[str, str]] = []
    updates: dict[str, bool] = {}
    for name in ("use_log_tf", "use_smoothed_idf"):
        if name in data:
            if isinstance(data[name], bool):
                updates[name] = data[name]
            else:
                errors.append((name, f"{name} must be a boolean"))
    for name in sorted(set(data) - {f.name for f in fields(TFIDFOptions)}):
        errors.append((name, f"unknown tfidf option: {name}"))
    return replace(base, **updates), errors


def validate_config(
    overrides: Mapping[str, Any] | EmbeddingConfig | None = None,
    base: EmbeddingConfig = DEFAULT_EMBEDDING_CONFIG,
    *,
    strict: bool = False,
) -> ConfigValidationResult:
    """
    Validate overrides on top of a base config, field by field.

    Args:
        overrides: Partial mapping of EmbeddingConfig fields, or a full config.
        base: Values used for every field that is absent or rejected.
        strict: Raise ConfigurationError instead of falling back.

    Returns:
        ConfigValidationResult with the sanitized config, one message per
        rejected field, and the rejected field names (nested ones dotted,
        e.g. "processing_limits.max_chunk_size").

    Raises:
        ConfigurationError: Only when strict is True and a field was rejected.
    """
    if isinstance(overrides, EmbeddingConfig):
        overrides = overrides.to_dict()
    data = dict(overrides or {})

    errors: list[str] = []
    rejected: list[str] = []
    values: dict[str, Any] = {}

    def reject(name: str, message: str) -> None:
        rejected.append(name)
        errors.append(message)

    for name in sorted(set(data) - _KNOWN_FIELDS):
        reject(name, f"unknown configuration field: {name}")

    # Limits first: ngram_sizes and chunk_size are checked against them.
    limits = base.processing_limits
    if "processing_limits" in data:
        limits, nested = _validate_limits(data["processing_limits"], base.processing_limits)
        for name, message in nested:
            reject(f"processing_limits.{name}" if name != "processing_limits" else name, message)
    values["processing_limits"] = limits

    for name in _BOOL_FIELDS:
        if name in data:
            if isinstance(data[name], bool):
                values[name] = data[name]
            else:
                reject(name, f"{name} must be a boolean")

    if "ngram_sizes" in data:
        sizes = data["ngram_sizes"]
        if isinstance(sizes, (str, bytes)) or not isinstance(sizes, Iterable):
            reject("ngram_sizes", "ngram_sizes must be a list of integers")
        else:
            sizes = list(sizes)
            if not sizes:
                reject("ngram_sizes", "ngram_sizes cannot be empty")
            elif not all(_is_int(n) and 1 <= n <= limits.max_ngram_size for n in sizes):
                reject("ngram_sizes", f"ngram_sizes must contain integers between 1 and {limits.max_ngram_size}")
            else:
                values["ngram_sizes"] = tuple(sorted({int(n) for n in sizes}))

    if "tfidf_weight" in data:
        weight = data["tfidf_weight"]
        if _is_number(weight) and 0.0 <= weight <= 1.0:
            values["tfidf_weight"] = float(weight)
        else:
            reject("tfidf_weight", "tfidf_weight must be a number between 0 and 1")

    if "language" in data:
        language = data["language"]
        if language is None:
            values["language"] = None
        else:
            try:
                values["language"] = Language(language)
            except ValueError:
                choices = ", ".join(member.value for member in Language)
                reject("language", f"language must be one of: {choices}")

    if "custom_stopwords" in data:
        words = data["custom_stopwords"]
        if isinstance(words, (str, bytes)) or not isinstance(words, Iterable):
            reject("custom_stopwords", "custom_stopwords must be a list of strings")
        else:
            words = list(words)
            if all(isinstance(word, str) for word in words):
                values["custom_stopwords"] = tuple(word.lower().strip() for word in words)
            else:
                reject("custom_stopwords", "custom_stopwords must contain only strings")

    if "chunk_size" in data:
        chunk_size = data["chunk_size"]
        if _is_int(chunk_size) and 0 < chunk_size <= limits.max_chunk_size:
            values["chunk_size"] = int(chunk_size)
        else:
            reject("chunk_size", f"chunk_size must be a positive integer no larger than {limits.max_chunk_size}")

    if "vocabulary_options" in data:
        options, nested = _validate_vocabulary_options(data["vocabulary_options"], base.vocabulary_options)
        for name, message in nested:
            reject(f"vocabulary_options.{name}" if name != "vocabulary_options" else name, message)
        values["vocabulary_options"] = options

    if "tfidf_options" in data:
        options, nested = _validate_tfidf_options(data["tfidf_options"], base.tfidf_options)
        for name, message in nested:
            reject(f"tfidf_options.{name}" if name != "tfidf_options" else name, message)
        values["tfidf_options"] = options

    config = replace(base, **values)

    # Base values that the new limits no longer allow are replaced, not kept.
    if any(n > limits.max_ngram_size for n in config.ngram_sizes):
        kept = tuple(n for n in config.ngram_sizes if n <= limits.max_ngram_size) or (1,)
        if "ngram_sizes" not in rejected:
            reject("ngram_sizes", f"ngram_sizes {list(config.ngram_sizes)} exceed max_ngram_size {limits.max_ngram_size}")
        config = replace(config, ngram_sizes=kept)
    if config.chunk_size > limits.max_chunk_size:
        if "chunk_size" not in rejected:
            reject("chunk_size", f"chunk_size {config.chunk_size} exceeds max_chunk_size {limits.max_chunk_size}")
        config = replace(config, chunk_size=limits.max_chunk_size)

    if errors and strict:
        raise ConfigurationError(errors)
    for message in errors:
        warnings.warn(message, ConfigurationWarning, stacklevel=2)

    return ConfigValidationResult(config=config, errors=tuple(errors), rejected_fields=tuple(rejected))


__all__ = [
    "BALANCED_EMBEDDING_CONFIG",
    "CHUNK_SIZE_CAP",
    "ConfigValidationResult",
    "DEFAULT_EMBEDDING_CONFIG",
    "DEFAULT_PROCESSING_LIMITS",
    "EmbeddingConfig",
    "MINIMAL_EMBEDDING_CONFIG",
    "NGRAM_SIZE_CEILING",
    "PRESETS",
    "PROCESSING_TIME_CAP_MS",
    "ProcessingLimits",
    "TECHNICAL_EMBEDDING_CONFIG",
    "TFIDFOptions",
    "VOCABULARY_SIZE_CAP",
    "VocabularyOptions",
    "validate_config",
]
