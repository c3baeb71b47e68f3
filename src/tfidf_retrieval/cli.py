"""
Command-line entry point.

Usage:
    tfidf-retrieval embed notes.txt
    tfidf-retrieval query notes.txt "how do I reset the api key" --top-k 5
    python -m tfidf_retrieval query notes.txt "dog" --config '{"ngram_sizes": [1]}'
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from tfidf_retrieval.config import PRESETS, validate_config
from tfidf_retrieval.diagnostics import LoggingSink
from tfidf_retrieval.pipeline import EmbeddingPipeline, processing_stats
from tfidf_retrieval.retrieval import RetrievalOptions, Retriever


def _build_pipeline(args: argparse.Namespace) -> EmbeddingPipeline:
    config = validate_config(args.overrides, base=PRESETS[args.preset]).config
    sink = LoggingSink() if args.verbose else None
    return EmbeddingPipeline(config, sink=sink)


def _run_embed(args: argparse.Namespace, text: str) -> dict:
    pipeline = _build_pipeline(args)
    result = pipeline.generate_with_limits(text)
    return {
        "chunks": len(result.records),
        "vocabulary_size": result.corpus.dimension,
        "degraded": result.degraded,
        "warnings": list(result.warnings),
        "processing_time_ms": result.processing_time_ms,
        "stats": asdict(processing_stats(result.records)),
    }


def _run_query(args: argparse.Namespace, text: str) -> dict:
    pipeline = _build_pipeline(args)
    corpus = pipeline.embed(text)
    retriever = Retriever(pipeline, sink=pipeline.sink)
    options = RetrievalOptions(
        top_k=args.top_k,
        min_similarity=args.min_similarity,
        use_metadata_boost=not args.no_boost,
    )
    results = retriever.rank(args.question, corpus, options)
    return {
        "query": args.question,
        "results": [result.to_dict() for result in results],
        "reason": retriever.last_reason,
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tfidf-retrieval",
        description="Lexical TF-IDF embedding and retrieval over local text files.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log diagnostics to stderr.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("path", type=Path, help="Text file to embed.")
        sub.add_argument(
            "--preset",
            choices=sorted(PRESETS),
            default="default",
            help="Base configuration preset (default: default).",
        )
        sub.add_argument("--config", type=str, default="", help="JSON object of configuration overrides.")

    embed = subparsers.add_parser("embed", help="Embed a file and print processing statistics.")
    add_common(embed)

    query = subparsers.add_parser("query", help="Rank the chunks of a file against a question.")
    add_common(query)
    query.add_argument("question", help="Natural-language query.")
    query.add_argument("--top-k", type=int, default=3, help="Number of chunks to return (default: 3).")
    query.add_argument(
        "--min-similarity",
        type=float,
        default=0.0,
        help="Only return chunks scoring strictly above this (default: 0.0).",
    )
    query.add_argument("--no-boost", action="store_true", help="Disable the metadata boost.")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if not args.path.is_file():
        print(f"error: file not found: {args.path}", file=sys.stderr)
        return 1

    try:
        args.overrides = json.loads(args.config) if args.config else {}
    except json.JSONDecodeError as exc:
        print(f"error: --config is not valid JSON: {exc}", file=sys.stderr)
        return 2
    if not isinstance(args.overrides, dict):
        print("error: --config must be a JSON object", file=sys.stderr)
        return 2

    text = args.path.read_text(encoding="utf-8")
    if args.command == "embed":
        output = _run_embed(args, text)
    else:
        output = _run_query(args, text)

    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
