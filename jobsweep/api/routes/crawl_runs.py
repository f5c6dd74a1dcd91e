from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status

from jobsweep.api.triggers import trigger_crawl, trigger_stale_check
from jobsweep.core.config import Settings, get_settings
from jobsweep.core.security import require_trigger_secret
from jobsweep.jobs.runner import get_http_client, get_source_adapters
from jobsweep.schemas.crawl_runs import (
    CrawlRunOut,
    CrawlRunRecord,
    CrawlTriggerOut,
    RunType,
    StaleCheckRunOut,
    StaleCheckTriggerOut,
    TriggerRequest,
)
from jobsweep.services.repository import PersistenceError, RepositoryUnavailableError, get_repository
from jobsweep.services.run_reporter import RunReporter

router = APIRouter(dependencies=[Depends(require_trigger_secret)])


@router.post("", response_model=CrawlTriggerOut | StaleCheckTriggerOut)
async def create_crawl_run(
    payload: TriggerRequest,
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    adapters=Depends(get_source_adapters),
    client=Depends(get_http_client),
) -> CrawlTriggerOut | StaleCheckTriggerOut:
    if payload.action == "stale-check":
        return await trigger_stale_check(settings, repository, adapters, client=client)
    return await trigger_crawl(settings, repository, adapters, max_pages=payload.max_pages, client=client)


@router.get("", response_model=list[CrawlRunRecord])
async def list_crawl_runs(
    limit: int = Query(default=20, ge=1, le=100),
    run_type: RunType | None = Query(default=None, alias="type"),
    repository=Depends(get_repository),
) -> list[CrawlRunOut | StaleCheckRunOut]:
    try:
        return await RunReporter(repository).list_history(limit=limit, run_type=run_type)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
