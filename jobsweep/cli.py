"""Run the ingestion pipeline once from the command line and print the result as JSON."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from typing import Any

from jobsweep.adapters.base import SourceAdapter
from jobsweep.core.config import ConfigurationError, Settings, get_settings
from jobsweep.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from jobsweep.jobs.runner import build_orchestrator, build_stale_checker, get_source_adapters
from jobsweep.services.repository import ListingRepository, PersistenceError, PostgresRepository, get_repository
from jobsweep.services.run_reporter import RunReporter


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jobsweep", description="Job listing ingestion and stale-check pipeline.")
    commands = parser.add_subparsers(dest="command", required=True)

    crawl = commands.add_parser("crawl", help="Crawl every configured source once")
    crawl.add_argument("--max-pages", type=int, default=None, help="Page limit for paginated sources")

    commands.add_parser("stale-check", help="Re-verify live auto-crawled listings once")

    history = commands.add_parser("history", help="Show recent crawl runs, newest first")
    history.add_argument("--limit", type=int, default=20)
    history.add_argument("--type", dest="run_type", choices=["crawl", "stale-check"], default=None)

    commands.add_parser("init-db", help="Create the tables and indexes if they do not exist")
    return parser


async def run_command(
    args: argparse.Namespace,
    *,
    settings: Settings,
    repository: ListingRepository,
    adapters: Sequence[SourceAdapter] | None = None,
) -> Any:
    if args.command == "crawl":
        if args.max_pages is not None and args.max_pages < 1:
            raise ConfigurationError("--max-pages must be at least 1")
        orchestrator = build_orchestrator(settings, repository, adapters if adapters is not None else get_source_adapters())
        results = await orchestrator.run_crawl(max_pages=args.max_pages)
        return [result.model_dump(mode="json") for result in results]

    if args.command == "stale-check":
        checker = build_stale_checker(settings, repository, adapters if adapters is not None else get_source_adapters())
        summary = await checker.run_stale_check()
        return summary.model_dump(mode="json")

    if args.command == "history":
        runs = await RunReporter(repository).list_history(limit=max(1, args.limit), run_type=args.run_type)
        return [run.model_dump(mode="json") for run in runs]

    if args.command == "init-db":
        if not isinstance(repository, PostgresRepository):
            raise ConfigurationError("init-db requires the Postgres repository")
        await repository.ensure_schema()
        return {"status": "ok"}

    raise ConfigurationError(f"unknown command {args.command!r}")


async def _main(args: argparse.Namespace) -> Any:
    settings = get_settings()
    telemetry_runtime = setup_telemetry(settings)
    repository = get_repository()
    try:
        return await run_command(args, settings=settings, repository=repository)
    finally:
        await repository.close()
        shutdown_telemetry(telemetry_runtime)


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging()

    try:
        output = asyncio.run(_main(args))
    except ConfigurationError as exc:
        parser.exit(status=2, message=f"configuration error: {exc}\n")
    except PersistenceError as exc:
        parser.exit(status=1, message=f"persistence error: {exc}\n")

    json.dump(output, sys.stdout, indent=2)
    sys.stdout.write("\n")


if __name__ == "__main__":
    main()
