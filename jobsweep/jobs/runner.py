from __future__ import annotations

from collections.abc import Sequence

import httpx

from jobsweep.adapters.base import SourceAdapter
from jobsweep.adapters.registry import build_adapters
from jobsweep.core.config import ConfigurationError, Settings, get_settings
from jobsweep.core.sources import load_source_configs
from jobsweep.jobs.crawl import CrawlOrchestrator
from jobsweep.jobs.stale_check import StaleChecker
from jobsweep.services.repository import ListingRepository


def get_source_adapters() -> list[SourceAdapter]:
    settings = get_settings()
    return build_adapters(load_source_configs(settings), page_delay_seconds=settings.page_delay_seconds)


def build_orchestrator(
    settings: Settings,
    repository: ListingRepository,
    adapters: Sequence[SourceAdapter],
    *,
    client: httpx.AsyncClient | None = None,
) -> CrawlOrchestrator:
    if not settings.crawler_poster_id:
        raise ConfigurationError("JOBSWEEP_CRAWLER_POSTER_ID is required to ingest crawled listings")
    return CrawlOrchestrator(
        repository,
        adapters,
        poster_id=settings.crawler_poster_id,
        client=client,
        concurrency=settings.crawl_concurrency,
        default_max_pages=settings.default_max_pages,
        source_timeout_seconds=settings.source_timeout_seconds,
        request_timeout_seconds=settings.request_timeout_seconds,
        run_deadline_seconds=settings.run_deadline_seconds,
        deadline_safety_margin_seconds=settings.deadline_safety_margin_seconds,
        min_source_budget_seconds=settings.min_source_budget_seconds,
        user_agent=settings.user_agent,
    )


def build_stale_checker(
    settings: Settings,
    repository: ListingRepository,
    adapters: Sequence[SourceAdapter],
    *,
    client: httpx.AsyncClient | None = None,
) -> StaleChecker:
    return StaleChecker(
        repository,
        adapters,
        client=client,
        fail_threshold=settings.stale_fail_threshold,
        concurrency=settings.stale_check_concurrency,
        probe_timeout_seconds=settings.stale_check_timeout_seconds,
        min_probe_budget_seconds=settings.stale_check_min_probe_budget_seconds,
        batch_limit=settings.stale_check_batch_limit,
        run_deadline_seconds=settings.run_deadline_seconds,
        deadline_safety_margin_seconds=settings.deadline_safety_margin_seconds,
        user_agent=settings.user_agent,
    )


def get_http_client() -> httpx.AsyncClient | None:
    """Shared client override hook; runs open their own client when this returns None."""
    return None
