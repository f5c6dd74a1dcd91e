from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TypeVar

from jobsweep.schemas.crawl_runs import (
    CrawlRunOut,
    RunType,
    SourceResult,
    StaleCheckRunOut,
    StaleCheckSummary,
)
from jobsweep.services.repository import ListingRepository, PersistenceError

logger = logging.getLogger(__name__)

RunT = TypeVar("RunT", CrawlRunOut, StaleCheckRunOut)


class RunReporter:
    """Builds the audit record of each pipeline invocation and stores it."""

    def __init__(self, repository: ListingRepository) -> None:
        self.repository = repository

    async def record_crawl(
        self,
        *,
        started_at: datetime,
        source_results: list[SourceResult],
        deadline_reached: bool = False,
        completed_at: datetime | None = None,
    ) -> CrawlRunOut:
        completed = completed_at or datetime.now(timezone.utc)
        jobs_found = sum(result.jobs_found for result in source_results)
        jobs_new = sum(result.jobs_new for result in source_results)
        run = CrawlRunOut(
            started_at=started_at,
            completed_at=completed,
            duration_ms=_duration_ms(started_at, completed),
            deadline_reached=deadline_reached,
            jobs_found=jobs_found,
            jobs_new=jobs_new,
            jobs_skipped=jobs_found - jobs_new,
            crawl_errors=[f"{result.source}: {error}" for result in source_results for error in result.errors],
            source_results=[result.model_copy(deep=True) for result in source_results],
        )
        stored = await self.repository.insert_crawl_run(run)
        logger.info(
            "crawl run recorded id=%s found=%s new=%s skipped=%s errors=%s duration_ms=%s",
            stored.id,
            run.jobs_found,
            run.jobs_new,
            run.jobs_skipped,
            len(run.crawl_errors),
            run.duration_ms,
        )
        return _expect(stored, CrawlRunOut)

    async def record_stale_check(
        self,
        *,
        started_at: datetime,
        summary: StaleCheckSummary,
        deadline_reached: bool = False,
        completed_at: datetime | None = None,
    ) -> StaleCheckRunOut:
        completed = completed_at or datetime.now(timezone.utc)
        run = StaleCheckRunOut(
            started_at=started_at,
            completed_at=completed,
            duration_ms=_duration_ms(started_at, completed),
            deadline_reached=deadline_reached,
            stale_check_results=summary.model_copy(),
        )
        stored = await self.repository.insert_crawl_run(run)
        logger.info(
            "stale-check run recorded id=%s checked=%s live=%s taken_down=%s failed=%s duration_ms=%s",
            stored.id,
            summary.total_checked,
            summary.still_live,
            summary.marked_taken_down,
            summary.failed_checks,
            run.duration_ms,
        )
        return _expect(stored, StaleCheckRunOut)

    async def list_history(
        self,
        *,
        limit: int = 20,
        run_type: RunType | None = None,
    ) -> list[CrawlRunOut | StaleCheckRunOut]:
        return await self.repository.list_crawl_runs(limit=limit, run_type=run_type)


def _duration_ms(started_at: datetime, completed_at: datetime) -> int:
    return max(0, int((completed_at - started_at).total_seconds() * 1000))


def _expect(stored: CrawlRunOut | StaleCheckRunOut, expected: type[RunT]) -> RunT:
    if not isinstance(stored, expected):
        raise PersistenceError(f"stored run has unexpected type {stored.type!r}")
    return stored
