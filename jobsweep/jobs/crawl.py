from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from datetime import datetime, timezone

import httpx
from opentelemetry import trace

from jobsweep.adapters.base import CandidateListing, SourceAdapter, SourceError
from jobsweep.core.config import ConfigurationError
from jobsweep.core.telemetry import record_source_result
from jobsweep.jobs.deadline import RunDeadline
from jobsweep.schemas.crawl_runs import SourceResult
from jobsweep.services.fingerprint import fingerprint
from jobsweep.services.http_client import client_scope
from jobsweep.services.repository import ListingRepository, NewJobRecord, PersistenceError
from jobsweep.services.run_reporter import RunReporter

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CrawlOrchestrator:
    def __init__(
        self,
        repository: ListingRepository,
        adapters: Sequence[SourceAdapter],
        *,
        poster_id: str | None,
        client: httpx.AsyncClient | None = None,
        concurrency: int = 4,
        default_max_pages: int = 10,
        source_timeout_seconds: float = 90.0,
        request_timeout_seconds: float = 15.0,
        run_deadline_seconds: float = 300.0,
        deadline_safety_margin_seconds: float = 20.0,
        min_source_budget_seconds: float = 15.0,
        user_agent: str = "jobsweep/1.0",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.repository = repository
        self.reporter = RunReporter(repository)
        self.adapters = list(adapters)
        self.poster_id = poster_id
        self.client = client
        self.concurrency = max(1, concurrency)
        self.default_max_pages = default_max_pages
        self.source_timeout_seconds = source_timeout_seconds
        self.request_timeout_seconds = request_timeout_seconds
        self.run_deadline_seconds = run_deadline_seconds
        self.deadline_safety_margin_seconds = deadline_safety_margin_seconds
        self.min_source_budget_seconds = min_source_budget_seconds
        self.user_agent = user_agent
        self.clock = clock

    async def run_crawl(self, max_pages: int | None = None) -> list[SourceResult]:
        if not self.poster_id:
            raise ConfigurationError("JOBSWEEP_CRAWLER_POSTER_ID is required to ingest crawled listings")

        started_at = datetime.now(timezone.utc)
        deadline = RunDeadline.from_budget(
            self.run_deadline_seconds,
            self.deadline_safety_margin_seconds,
            self.min_source_budget_seconds,
            clock=self.clock,
        )
        results = [SourceResult(source=adapter.source_key) for adapter in self.adapters]
        semaphore = asyncio.Semaphore(self.concurrency)

        with tracer.start_as_current_span("crawl.run") as span:
            span.set_attribute("crawl.sources", len(self.adapters))
            async with client_scope(
                self.client,
                timeout_seconds=self.request_timeout_seconds,
                user_agent=self.user_agent,
                max_connections=self.concurrency * 2,
            ) as client:
                tasks = [
                    asyncio.create_task(self._run_source(adapter, result, client, semaphore, deadline, max_pages))
                    for adapter, result in zip(self.adapters, results)
                ]
                try:
                    await asyncio.gather(*tasks)
                except BaseException:
                    for task in tasks:
                        task.cancel()
                    await asyncio.gather(*tasks, return_exceptions=True)
                    raise

            run = await self.reporter.record_crawl(
                started_at=started_at,
                source_results=results,
                deadline_reached=deadline.reached,
            )
            span.set_attribute("crawl.jobs_found", run.jobs_found)
            span.set_attribute("crawl.jobs_new", run.jobs_new)
            span.set_attribute("crawl.deadline_reached", run.deadline_reached)
        return results

    async def _run_source(
        self,
        adapter: SourceAdapter,
        result: SourceResult,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        deadline: RunDeadline,
        max_pages: int | None,
    ) -> None:
        async with semaphore:
            if not deadline.can_start():
                result.completed = False
                result.errors.append("skipped: run deadline reached")
                logger.warning("crawl source skipped source=%s reason=deadline", adapter.source_key)
                return

            timeout_seconds = deadline.bound(self.source_timeout_seconds)
            pages = max_pages or adapter.config.max_pages or self.default_max_pages
            started = time.monotonic()
            with tracer.start_as_current_span("crawl.source") as span:
                span.set_attribute("crawl.source_kind", adapter.kind)
                try:
                    await asyncio.wait_for(self._ingest(adapter, client, result, pages), timeout=timeout_seconds)
                except asyncio.TimeoutError:
                    result.completed = False
                    result.errors.append(f"timed out after {timeout_seconds:.1f}s")
                except SourceError as exc:
                    result.completed = False
                    result.errors.append(str(exc))
                except PersistenceError:
                    raise
                except Exception as exc:
                    logger.exception("crawl source failed source=%s", adapter.source_key)
                    result.completed = False
                    result.errors.append(f"unexpected error: {exc.__class__.__name__}: {exc}")
                finally:
                    result.duration_ms = int((time.monotonic() - started) * 1000)
                    result.jobs_skipped = result.jobs_found - result.jobs_new
                    record_source_result(span, result)

            logger.info(
                "crawl source done source=%s found=%s new=%s skipped=%s errors=%s duration_ms=%s",
                adapter.source_key,
                result.jobs_found,
                result.jobs_new,
                result.jobs_skipped,
                len(result.errors),
                result.duration_ms,
            )

    async def _ingest(
        self,
        adapter: SourceAdapter,
        client: httpx.AsyncClient,
        result: SourceResult,
        max_pages: int,
    ) -> None:
        async for listing in adapter.list_postings(client, max_pages=max_pages):
            result.jobs_found += 1
            if await self._store(listing):
                result.jobs_new += 1

    async def _store(self, listing: CandidateListing) -> bool:
        content_hash = fingerprint(listing.position, listing.school_name, listing.application_url)
        if await self.repository.find_by_fingerprint(content_hash) is not None:
            return False

        now = datetime.now(timezone.utc)
        inserted = await self.repository.insert_if_absent(
            NewJobRecord(
                poster_id=self.poster_id or "",
                school_name=listing.school_name,
                position=listing.position,
                application_url=listing.application_url,
                content_hash=content_hash,
                source_key=listing.source_key,
                source_url=listing.source_url,
                crawled_at=now,
                published_at=now,
                position_category=listing.position_category,
                city=listing.city,
                country=listing.country,
                country_code=listing.country_code,
                region=listing.region,
                description=listing.description,
                salary=listing.salary,
                contract_type=listing.contract_type,
                start_date=listing.start_date,
            )
        )
        return inserted is not None
