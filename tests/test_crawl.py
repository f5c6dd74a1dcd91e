from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import httpx
import pytest

from jobsweep.adapters.base import CandidateListing, FetchError, ParseError, SourceAdapter
from jobsweep.core.config import ConfigurationError, Settings
from jobsweep.core.sources import SourceConfig
from jobsweep.jobs.crawl import CrawlOrchestrator
from jobsweep.jobs.runner import build_orchestrator
from jobsweep.schemas.crawl_runs import CrawlRunOut
from jobsweep.services.fingerprint import fingerprint
from jobsweep.services.repository import JobRecord, RepositoryUnavailableError
from jobsweep.services.store import InMemoryRepository


class StaticAdapter(SourceAdapter):
    kind = "greenhouse"

    def __init__(
        self,
        key: str,
        titles: list[str],
        *,
        error: Exception | None = None,
        delay: float = 0.0,
        tracker: dict[str, int] | None = None,
    ) -> None:
        super().__init__(SourceConfig(key=key, kind="greenhouse", slug=key, school_name=f"{key} school"))
        self.titles = titles
        self.error = error
        self.delay = delay
        self.tracker = tracker
        self.calls = 0

    async def list_postings(
        self,
        client: httpx.AsyncClient,
        *,
        max_pages: int | None = None,
    ) -> AsyncIterator[CandidateListing]:
        self.calls += 1
        if self.tracker is not None:
            self.tracker["active"] += 1
            self.tracker["peak"] = max(self.tracker["peak"], self.tracker["active"])
        try:
            for index, title in enumerate(self.titles):
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield self.build_listing(
                    external_id=index,
                    position=title,
                    source_url=f"https://jobs.example.org/{self.source_key}/{index}",
                )
            if self.error is not None:
                raise self.error
        finally:
            if self.tracker is not None:
                self.tracker["active"] -= 1


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _orchestrator(repository, adapters, **overrides) -> CrawlOrchestrator:
    options = {"poster_id": "crawler-admin"}
    options.update(overrides)
    return CrawlOrchestrator(repository, adapters, **options)


def test_recrawl_is_idempotent() -> None:
    repository = InMemoryRepository()
    adapters = [StaticAdapter("alpha", ["English Teacher", "Maths Teacher"])]

    first = asyncio.run(_orchestrator(repository, adapters).run_crawl())
    second = asyncio.run(_orchestrator(repository, adapters).run_crawl())

    assert (first[0].jobs_found, first[0].jobs_new, first[0].jobs_skipped) == (2, 2, 0)
    assert (second[0].jobs_found, second[0].jobs_new, second[0].jobs_skipped) == (2, 0, 2)
    assert len(repository.jobs) == 2

    record = next(iter(repository.jobs.values()))
    assert record.status == "live"
    assert record.is_auto_crawled is True
    assert record.poster_id == "crawler-admin"
    assert record.stale_check_fail_count == 0
    assert record.crawled_at == record.published_at
    assert record.content_hash == fingerprint(record.position, record.school_name, record.application_url)
    assert record.source_key.startswith("alpha/")

    runs = repository.runs
    assert [run.type for run in runs] == ["crawl", "crawl"]
    assert isinstance(runs[1], CrawlRunOut)
    assert (runs[1].jobs_found, runs[1].jobs_new, runs[1].jobs_skipped) == (2, 0, 2)


def test_existing_manual_record_with_same_fingerprint_is_not_touched() -> None:
    repository = InMemoryRepository()
    adapter = StaticAdapter("alpha", ["English Teacher"])
    url = "https://jobs.example.org/alpha/0"
    repository.add_job(
        JobRecord(
            id="manual-1",
            poster_id="school-admin",
            school_name="alpha school",
            position="English Teacher",
            application_url=url,
            status="approved",
            content_hash=fingerprint("English Teacher", "alpha school", url),
            description="Edited by hand",
        )
    )

    results = asyncio.run(_orchestrator(repository, [adapter]).run_crawl())

    assert results[0].jobs_skipped == 1
    assert repository.jobs["manual-1"].description == "Edited by hand"
    assert repository.jobs["manual-1"].status == "approved"


def test_source_failure_is_isolated() -> None:
    repository = InMemoryRepository()
    adapters = [
        StaticAdapter("broken", [], error=FetchError("HTTP 503 from https://broken.example")),
        StaticAdapter("partial", ["Art Teacher"], error=ParseError("unexpected payload")),
        StaticAdapter("healthy", ["Music Teacher", "Drama Teacher"]),
    ]

    results = asyncio.run(_orchestrator(repository, adapters).run_crawl())

    assert [result.source for result in results] == ["broken", "partial", "healthy"]
    assert results[0].errors == ["HTTP 503 from https://broken.example"]
    assert results[0].completed is False
    assert (results[1].jobs_new, results[1].errors) == (1, ["unexpected payload"])
    assert (results[2].jobs_new, results[2].errors, results[2].completed) == (2, [], True)

    run = repository.runs[-1]
    assert run.crawl_errors == ["broken: HTTP 503 from https://broken.example", "partial: unexpected payload"]
    assert run.jobs_new == 3


def test_unexpected_adapter_exception_is_recorded_not_raised() -> None:
    repository = InMemoryRepository()
    adapters = [StaticAdapter("odd", ["Teacher"], error=KeyError("jobs")), StaticAdapter("fine", ["Tutor"])]

    results = asyncio.run(_orchestrator(repository, adapters).run_crawl())

    assert results[0].errors and results[0].errors[0].startswith("unexpected error: KeyError")
    assert results[1].jobs_new == 1


class UnavailableRepository(InMemoryRepository):
    async def find_by_fingerprint(self, content_hash: str) -> JobRecord | None:
        raise RepositoryUnavailableError("database unavailable")


def test_persistence_error_is_fatal_and_no_run_is_recorded() -> None:
    repository = UnavailableRepository()
    adapters = [StaticAdapter("alpha", ["English Teacher"]), StaticAdapter("beta", ["Maths Teacher"], delay=0.05)]

    with pytest.raises(RepositoryUnavailableError):
        asyncio.run(_orchestrator(repository, adapters).run_crawl())
    assert repository.runs == []


def test_missing_poster_id_fails_before_contacting_sources() -> None:
    repository = InMemoryRepository()
    adapter = StaticAdapter("alpha", ["English Teacher"])

    with pytest.raises(ConfigurationError):
        asyncio.run(_orchestrator(repository, [adapter], poster_id=None).run_crawl())
    with pytest.raises(ConfigurationError):
        build_orchestrator(Settings(crawler_poster_id=None), repository, [adapter])
    assert adapter.calls == 0
    assert repository.runs == []


def test_concurrent_runs_insert_each_listing_once() -> None:
    repository = InMemoryRepository()
    adapters = [StaticAdapter("alpha", ["English Teacher", "Maths Teacher", "Science Teacher"])]

    async def run() -> None:
        await asyncio.gather(
            _orchestrator(repository, adapters).run_crawl(),
            _orchestrator(repository, adapters).run_crawl(),
        )

    asyncio.run(run())

    assert len(repository.jobs) == 3
    first, second = repository.runs
    assert first.jobs_new + second.jobs_new == 3
    assert first.jobs_skipped + second.jobs_skipped == 3


def test_concurrency_never_exceeds_configured_workers() -> None:
    repository = InMemoryRepository()
    tracker = {"active": 0, "peak": 0}
    adapters = [StaticAdapter(f"s{index}", ["Teacher"], delay=0.02, tracker=tracker) for index in range(6)]

    results = asyncio.run(_orchestrator(repository, adapters, concurrency=2).run_crawl())

    assert tracker["peak"] == 2
    assert sum(result.jobs_new for result in results) == 6


def test_deadline_skips_remaining_sources_and_records_truthful_run() -> None:
    repository = InMemoryRepository()
    clock = FakeClock()

    class ClockAdvancingAdapter(StaticAdapter):
        async def list_postings(self, client, *, max_pages=None):
            async for listing in super().list_postings(client, max_pages=max_pages):
                yield listing
            clock.now += 100.0

    adapters = [
        ClockAdvancingAdapter("first", ["English Teacher"]),
        StaticAdapter("second", ["Maths Teacher"]),
    ]
    orchestrator = _orchestrator(
        repository,
        adapters,
        concurrency=1,
        run_deadline_seconds=120.0,
        deadline_safety_margin_seconds=10.0,
        min_source_budget_seconds=15.0,
        clock=clock,
    )

    results = asyncio.run(orchestrator.run_crawl())

    assert (results[0].jobs_new, results[0].completed) == (1, True)
    assert results[1].completed is False
    assert results[1].errors == ["skipped: run deadline reached"]
    assert adapters[1].calls == 0

    run = repository.runs[-1]
    assert run.deadline_reached is True
    assert run.jobs_new == 1
    assert run.crawl_errors == ["second: skipped: run deadline reached"]


def test_slow_source_times_out_but_keeps_committed_listings() -> None:
    repository = InMemoryRepository()
    adapters = [StaticAdapter("slow", ["English Teacher", "Maths Teacher", "Art Teacher"], delay=0.2)]

    results = asyncio.run(_orchestrator(repository, adapters, source_timeout_seconds=0.3).run_crawl())

    assert results[0].completed is False
    assert results[0].jobs_new == 1
    assert results[0].errors[0].startswith("timed out after")
    assert len(repository.jobs) == 1


def test_run_level_max_pages_overrides_source_setting() -> None:
    seen: list[int | None] = []

    class PageRecordingAdapter(StaticAdapter):
        async def list_postings(self, client, *, max_pages=None):
            seen.append(max_pages)
            async for listing in super().list_postings(client, max_pages=max_pages):
                yield listing

    repository = InMemoryRepository()
    adapter = PageRecordingAdapter("alpha", ["Teacher"])

    asyncio.run(_orchestrator(repository, [adapter], default_max_pages=7).run_crawl())
    asyncio.run(_orchestrator(repository, [adapter], default_max_pages=7).run_crawl(max_pages=3))

    assert seen == [7, 3]
