"""Command line interface for the pollm translator."""

from __future__ import annotations

import argparse
import asyncio
import logging
import pathlib
import sys
from typing import Iterable, Optional

from .configuration import load_config
from .errors import ConfigError
from .gate import ConcurrencyGate
from .orchestrator import EXIT_CONFIG_ERROR, Orchestrator, RunSummary
from .policy import RetryPolicy
from .providers import build_client
from .structures import JobState


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pollm",
        description="Translate gettext catalogs with a language model.",
    )
    parser.add_argument(
        "config_path",
        help="Path to the TOML configuration file.",
    )
    parser.add_argument(
        "-d",
        "--dry-run",
        action="store_true",
        help="Simulate translations without calling the completion service.",
    )
    parser.add_argument(
        "-f",
        "--force-write",
        action="store_true",
        help="Write output catalogs even in dry run mode.",
    )
    parser.add_argument(
        "--file-concurrent",
        type=int,
        default=4,
        help="Number of files to process concurrently (default: 4).",
    )
    parser.add_argument(
        "--lang-concurrent",
        type=int,
        default=2,
        help="Number of languages per file to translate concurrently (default: 2).",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        help="Attempts per batch for rate-limit and transport errors "
        "(default: translation.max_attempts).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    parser.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete provider requests and responses for troubleshooting.",
    )
    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


def execute_run(
    *,
    config_path: str,
    dry_run: bool,
    force_write: bool,
    file_concurrent: int,
    lang_concurrent: int,
    max_attempts: int | None = None,
    provider_debug: bool = False,
) -> tuple[int, RunSummary | None, str | None]:
    """Execute a run and return the exit code, summary, and message."""

    try:
        config = load_config(pathlib.Path(config_path).expanduser())
        retry_policy = RetryPolicy(
            max_attempts=(
                max_attempts if max_attempts is not None else config.translation.max_attempts
            ),
            backoff=config.translation.retry_backoff,
        )
        gate = ConcurrencyGate(
            file_concurrent=file_concurrent,
            lang_concurrent=lang_concurrent,
        )
        client = build_client(config, dry_run=dry_run, debug=provider_debug)
    except ConfigError as exc:
        return EXIT_CONFIG_ERROR, None, str(exc)

    orchestrator = Orchestrator(
        config,
        client=client,
        gate=gate,
        retry_policy=retry_policy,
        dry_run=dry_run,
        force_write=force_write,
    )
    try:
        summary = asyncio.run(orchestrator.run())
    except KeyboardInterrupt:
        return 130, None, "Translation interrupted by user."

    return summary.exit_code, summary, None


def print_summary(summary: RunSummary) -> None:
    """Output a friendly report once processing completes."""

    counts = summary.jobs_by_state
    print("\nSummary" + (" (dry run)" if summary.dry_run else ""))
    print(f"  Files processed:    {summary.files_processed}")
    print(f"  Completed jobs:     {counts[JobState.COMPLETED]}")
    print(f"  Partially failed:   {counts[JobState.PARTIALLY_FAILED]}")
    print(f"  Failed jobs:        {counts[JobState.FAILED]}")
    print(f"  Translated entries: {summary.translated_entries}")
    print(f"  Untranslated:       {summary.untranslated_entries}")
    print(f"  Elapsed time:       {summary.elapsed_seconds:.2f} seconds")
    if summary.failed_jobs:
        print("  Failures:")
        for outcome in summary.failed_jobs:
            reason = outcome.failure_reason or "nothing translated"
            location = summary.display_path(outcome.input_path)
            print(f"    - {location} [{outcome.language}]: {reason}")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_logging(args.verbose or args.debug_provider)

    exit_code, summary, message = execute_run(
        config_path=args.config_path,
        dry_run=args.dry_run,
        force_write=args.force_write,
        file_concurrent=args.file_concurrent,
        lang_concurrent=args.lang_concurrent,
        max_attempts=args.max_attempts,
        provider_debug=args.debug_provider,
    )

    if message:
        print(message)
    if summary:
        print_summary(summary)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
