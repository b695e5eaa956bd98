"""
Trust-Summary — CLI entry point
================================
Run with::

    python main.py report.md
    python main.py --provider anthropic --embedder local report.md
    python main.py --provider ollama:llama3.1 --embedder ollama:nomic-embed-text --json report.md

Environment variables (set the ones for the services you use):
    OPENAI_API_KEY
    AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_API_KEY,
    AZURE_OPENAI_CHAT_DEPLOYMENT, AZURE_OPENAI_EMBEDDING_DEPLOYMENT
    ANTHROPIC_API_KEY
    GOOGLE_API_KEY
    OLLAMA_BASE_URL  (default: http://localhost:11434)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import textwrap
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()  # Load .env file if present

from trustsum.candidate_generator import (
    SUMMARY_TEMPERATURE,
    GenerationFailurePolicy,
)
from trustsum.errors import CandidateGenerationError, InputQualityError
from trustsum.fact_validator import VALIDATION_TEMPERATURE
from trustsum.orchestrator import TrustSummarizer
from trustsum.providers import EmbedderFactory, ProviderFactory
from trustsum.schemas import SummaryResult
from trustsum.source import load_source

EXIT_INPUT_REJECTED = 2
EXIT_PIPELINE_FAILED = 1


def _positive_int(value: str) -> int:
    """argparse type for counts that must be at least 1."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Trust-scored AI summary of a Markdown document",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python main.py report.md
              python main.py --provider azure --embedder azure report.md
              python main.py --provider ollama:mistral --embedder local report.md
              python main.py --validation-runs 5 --failure-policy degrade report.md
        """),
    )
    parser.add_argument(
        "source",
        nargs="?",
        default="report.md",
        help="Markdown document to summarise (default: report.md).",
    )
    parser.add_argument(
        "--provider",
        type=str,
        default="openai",
        help=(
            f"Completion provider: {', '.join(ProviderFactory.available_names())}. "
            "Use '<provider>:<model>' to pick a model (default: openai)."
        ),
    )
    parser.add_argument(
        "--embedder",
        type=str,
        default="local",
        help=(
            f"Embedding provider: {', '.join(EmbedderFactory.available_names())} "
            "(default: local sentence-transformers)."
        ),
    )
    parser.add_argument(
        "--validation-runs",
        type=_positive_int,
        default=3,
        help="Fact-check passes per candidate summary (default: 3).",
    )
    parser.add_argument(
        "--failure-policy",
        choices=[p.value for p in GenerationFailurePolicy],
        default=GenerationFailurePolicy.ABORT.value,
        help="What to do when a candidate summary cannot be generated (default: abort).",
    )
    parser.add_argument(
        "--max-attempts",
        type=_positive_int,
        default=3,
        help="Attempts per external call before giving up (default: 3).",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=120.0,
        help="Per-call deadline in seconds (default: 120).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON instead of a text report.",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable DEBUG logging.",
    )
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )


def format_notice(result: SummaryResult, file_name: str, model: str) -> str:
    """Single-line disclosure shown under the summary."""
    verdict = result.verdict
    return (
        f"File: {file_name} | Model: {model} | "
        f"Temperature: {SUMMARY_TEMPERATURE} (summary), {VALIDATION_TEMPERATURE} (validation) | "
        f"Consistency: {verdict.consistency_level.value} | "
        f"Source Confidence: {verdict.source_confidence_level.value} | "
        f"Trust: {verdict.trust_level.value}. Please review before use."
    )


def _print_result(result: SummaryResult, notice: str) -> None:
    sep = "=" * 72
    print(f"\n{sep}")
    print("  AI SUMMARY (Trust-Enhanced)")
    print(sep)
    print(f"\n{result.best_summary}\n")
    if result.verdict.review_sentences:
        print("Review Needed: The following statements could not be verified in the source:")
        for sentence in result.verdict.review_sentences:
            print(f"  - {sentence}")
        print()
    print(sep)
    print(f"  Trust Level       : {result.verdict.trust_level.value}")
    print(f"  Source Confidence : {result.verdict.source_confidence_level.value}")
    print(f"  Consistency       : {result.verdict.consistency_level.value}")
    print("  Audit Trail       :")
    for line in result.audit_trail:
        print(f"    • {line}")
    print(sep)
    print(notice)


async def _main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    try:
        source_text = load_source(args.source)
    except FileNotFoundError as e:
        print(str(e), file=sys.stderr)
        return EXIT_INPUT_REJECTED
    except InputQualityError as e:
        print(f"AI summary skipped: {e}", file=sys.stderr)
        return EXIT_INPUT_REJECTED

    try:
        engine = TrustSummarizer(
            provider=args.provider,
            embedder=args.embedder,
            validation_runs=args.validation_runs,
            failure_policy=GenerationFailurePolicy(args.failure_policy),
            max_attempts=args.max_attempts,
            request_timeout=args.request_timeout,
            enable_logging_observer=args.verbose,
        )
    except KeyError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_PIPELINE_FAILED

    print(f"Summarising {args.source} with {engine.provider.name} ({engine.provider.model})")

    try:
        result = await engine.run(source_text)
    except CandidateGenerationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_PIPELINE_FAILED

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        notice = format_notice(result, Path(args.source).name, engine.provider.model)
        _print_result(result, notice)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(_main()))
