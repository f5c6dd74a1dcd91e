from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from datetime import datetime, timezone

import httpx
from opentelemetry import trace

from jobsweep.adapters.base import ProbeOutcome, SourceAdapter, probe_url
from jobsweep.core.telemetry import record_stale_summary
from jobsweep.jobs.deadline import RunDeadline
from jobsweep.schemas.crawl_runs import StaleCheckSummary
from jobsweep.services.http_client import client_scope
from jobsweep.services.repository import JobRecord, ListingRepository
from jobsweep.services.run_reporter import RunReporter

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def take_down_note(outcome: ProbeOutcome, fail_count: int) -> str:
    returned = outcome.status_code if outcome.status_code is not None else outcome.reason
    return f"Auto taken down: source URL returned {returned} for {fail_count} consecutive checks"


class StaleChecker:
    def __init__(
        self,
        repository: ListingRepository,
        adapters: Sequence[SourceAdapter] = (),
        *,
        client: httpx.AsyncClient | None = None,
        fail_threshold: int = 3,
        concurrency: int = 10,
        probe_timeout_seconds: float = 10.0,
        batch_limit: int | None = None,
        run_deadline_seconds: float = 300.0,
        deadline_safety_margin_seconds: float = 20.0,
        min_probe_budget_seconds: float | None = None,
        user_agent: str = "jobsweep/1.0",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if fail_threshold < 1:
            raise ValueError("fail_threshold must be at least 1")
        self.repository = repository
        self.reporter = RunReporter(repository)
        self.adapters_by_key = {adapter.source_key: adapter for adapter in adapters}
        self.client = client
        self.fail_threshold = fail_threshold
        self.concurrency = max(1, concurrency)
        self.probe_timeout_seconds = probe_timeout_seconds
        self.batch_limit = batch_limit
        self.run_deadline_seconds = run_deadline_seconds
        self.deadline_safety_margin_seconds = deadline_safety_margin_seconds
        self.min_probe_budget_seconds = (
            probe_timeout_seconds if min_probe_budget_seconds is None else min_probe_budget_seconds
        )
        self.user_agent = user_agent
        self.clock = clock

    async def run_stale_check(self) -> StaleCheckSummary:
        started_at = datetime.now(timezone.utc)
        deadline = RunDeadline.from_budget(
            self.run_deadline_seconds,
            self.deadline_safety_margin_seconds,
            self.min_probe_budget_seconds,
            clock=self.clock,
        )
        summary = StaleCheckSummary()
        semaphore = asyncio.Semaphore(self.concurrency)

        with tracer.start_as_current_span("stale_check.run") as span:
            candidates = await self.repository.list_stale_candidates(limit=self.batch_limit)
            span.set_attribute("stale_check.candidates", len(candidates))
            async with client_scope(
                self.client,
                timeout_seconds=self.probe_timeout_seconds,
                user_agent=self.user_agent,
                max_connections=self.concurrency,
            ) as client:
                tasks = [
                    asyncio.create_task(self._check(record, client, semaphore, deadline, summary))
                    for record in candidates
                ]
                try:
                    await asyncio.gather(*tasks)
                except BaseException:
                    for task in tasks:
                        task.cancel()
                    await asyncio.gather(*tasks, return_exceptions=True)
                    raise

            await self.reporter.record_stale_check(
                started_at=started_at,
                summary=summary,
                deadline_reached=deadline.reached,
            )
            record_stale_summary(span, summary, deadline_reached=deadline.reached)
        return summary

    async def _check(
        self,
        record: JobRecord,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        deadline: RunDeadline,
        summary: StaleCheckSummary,
    ) -> None:
        async with semaphore:
            if not deadline.can_start():
                return
            outcome = await self._probe(record, client, deadline)
            if outcome is None:
                logger.info("stale check skipped record=%s reason=deadline", record.id)
                return
            checked_at = datetime.now(timezone.utc)

            if outcome.alive:
                updated = await self.repository.update_staleness(record.id, fail_count=0, last_checked_at=checked_at)
                if not updated:
                    logger.info("stale check skipped record=%s reason=no_longer_live", record.id)
                    return
                summary.total_checked += 1
                summary.still_live += 1
                return

            fail_count = record.stale_check_fail_count + 1
            take_down = fail_count >= self.fail_threshold
            updated = await self.repository.update_staleness(
                record.id,
                fail_count=fail_count,
                last_checked_at=checked_at,
                take_down=take_down,
                admin_note=take_down_note(outcome, fail_count) if take_down else None,
            )
            if not updated:
                logger.info("stale check skipped record=%s reason=no_longer_live", record.id)
                return
            summary.total_checked += 1
            summary.failed_checks += 1
            if take_down:
                summary.marked_taken_down += 1
                logger.info(
                    "listing taken down record=%s source_key=%s reason=%s fail_count=%s",
                    record.id,
                    record.source_key,
                    outcome.reason,
                    fail_count,
                )

    async def _probe(
        self,
        record: JobRecord,
        client: httpx.AsyncClient,
        deadline: RunDeadline,
    ) -> ProbeOutcome | None:
        """Probe outcome, or None when the run deadline cut the probe short."""
        adapter = self._adapter_for(record)
        timeout_seconds = deadline.bound(self.probe_timeout_seconds)
        try:
            if adapter is not None:
                return await asyncio.wait_for(adapter.probe(client, record), timeout=timeout_seconds)
            return await asyncio.wait_for(probe_url(client, record.source_url), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            if timeout_seconds < self.probe_timeout_seconds:
                deadline.reached = True
                return None
            return ProbeOutcome(alive=False, status_code=None, reason="timeout")

    def _adapter_for(self, record: JobRecord) -> SourceAdapter | None:
        if not record.source_key or "/" not in record.source_key:
            return None
        return self.adapters_by_key.get(record.source_key.split("/", maxsplit=1)[0])
