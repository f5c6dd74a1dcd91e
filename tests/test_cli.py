from __future__ import annotations

import asyncio
import json

import pytest

from jobsweep.adapters.base import SourceAdapter
from jobsweep.cli import build_parser, main, run_command
from jobsweep.core.config import ConfigurationError, Settings, get_settings
from jobsweep.core.sources import SourceConfig
from jobsweep.services.repository import get_repository
from jobsweep.services.store import InMemoryRepository


class OneListingAdapter(SourceAdapter):
    kind = "workable"

    def __init__(self) -> None:
        super().__init__(SourceConfig(key="wk", kind="workable", slug="wk", school_name="Workable School"))

    async def list_postings(self, client, *, max_pages=None):
        yield self.build_listing(external_id="A1", position="Chemistry Teacher", source_url="https://apply.example/A1")


SETTINGS = Settings(crawler_poster_id="crawler-admin", otel_enabled=False)


def test_stale_check_crawl_and_history_commands() -> None:
    repository = InMemoryRepository()
    parser = build_parser()

    async def run():
        stale = await run_command(
            parser.parse_args(["stale-check"]),
            settings=SETTINGS,
            repository=repository,
            adapters=[],
        )
        crawl = await run_command(
            parser.parse_args(["crawl", "--max-pages", "2"]),
            settings=SETTINGS,
            repository=repository,
            adapters=[OneListingAdapter()],
        )
        history = await run_command(
            parser.parse_args(["history", "--type", "crawl"]),
            settings=SETTINGS,
            repository=repository,
        )
        return crawl, stale, history

    crawl, stale, history = asyncio.run(run())

    assert crawl[0]["source"] == "wk"
    assert crawl[0]["jobs_new"] == 1
    assert stale == {"total_checked": 0, "still_live": 0, "marked_taken_down": 0, "failed_checks": 0}
    assert [item["type"] for item in history] == ["crawl"]
    json.dumps(history)


def test_crawl_command_rejects_non_positive_max_pages() -> None:
    args = build_parser().parse_args(["crawl", "--max-pages", "0"])

    with pytest.raises(ConfigurationError):
        asyncio.run(run_command(args, settings=SETTINGS, repository=InMemoryRepository(), adapters=[]))


def test_init_db_requires_postgres_repository() -> None:
    args = build_parser().parse_args(["init-db"])

    with pytest.raises(ConfigurationError, match="Postgres"):
        asyncio.run(run_command(args, settings=SETTINGS, repository=InMemoryRepository()))


def test_main_exits_with_persistence_error_without_database(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.delenv("JOBSWEEP_DATABASE_URL", raising=False)
    monkeypatch.setenv("JOBSWEEP_OTEL_ENABLED", "false")
    get_settings.cache_clear()
    get_repository.cache_clear()

    with pytest.raises(SystemExit) as exc_info:
        main(["history"])

    get_settings.cache_clear()
    get_repository.cache_clear()
    assert exc_info.value.code == 1
    assert "JOBSWEEP_DATABASE_URL is required" in capsys.readouterr().err


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
