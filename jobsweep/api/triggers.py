from __future__ import annotations

import logging
from collections.abc import Sequence

import httpx
from fastapi import HTTPException, status as http_status

from jobsweep.adapters.base import SourceAdapter
from jobsweep.core.config import ConfigurationError, Settings
from jobsweep.jobs.runner import build_orchestrator, build_stale_checker
from jobsweep.schemas.crawl_runs import CrawlSummaryOut, CrawlTriggerOut, StaleCheckTriggerOut
from jobsweep.services.repository import ListingRepository, PersistenceError, RepositoryUnavailableError

logger = logging.getLogger(__name__)


async def trigger_crawl(
    settings: Settings,
    repository: ListingRepository,
    adapters: Sequence[SourceAdapter],
    *,
    max_pages: int | None = None,
    client: httpx.AsyncClient | None = None,
) -> CrawlTriggerOut:
    try:
        orchestrator = build_orchestrator(settings, repository, adapters, client=client)
        results = await orchestrator.run_crawl(max_pages=max_pages)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except (PersistenceError, ConfigurationError) as exc:
        logger.exception("crawl trigger failed")
        raise HTTPException(status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    return CrawlTriggerOut(
        summary=CrawlSummaryOut(
            jobs_found=sum(result.jobs_found for result in results),
            jobs_new=sum(result.jobs_new for result in results),
            sources=len(results),
        ),
        results=results,
    )


async def trigger_stale_check(
    settings: Settings,
    repository: ListingRepository,
    adapters: Sequence[SourceAdapter],
    *,
    client: httpx.AsyncClient | None = None,
) -> StaleCheckTriggerOut:
    try:
        checker = build_stale_checker(settings, repository, adapters, client=client)
        summary = await checker.run_stale_check()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except (PersistenceError, ValueError) as exc:
        logger.exception("stale-check trigger failed")
        raise HTTPException(status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    return StaleCheckTriggerOut(result=summary)
