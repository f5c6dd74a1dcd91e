from fastapi import APIRouter, Depends

from jobsweep.api.triggers import trigger_crawl, trigger_stale_check
from jobsweep.core.config import Settings, get_settings
from jobsweep.core.security import require_trigger_secret
from jobsweep.jobs.runner import get_http_client, get_source_adapters
from jobsweep.schemas.crawl_runs import CrawlTriggerOut, StaleCheckTriggerOut
from jobsweep.services.repository import get_repository

router = APIRouter(dependencies=[Depends(require_trigger_secret)])


@router.get("/crawl", response_model=CrawlTriggerOut)
async def scheduled_crawl(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    adapters=Depends(get_source_adapters),
    client=Depends(get_http_client),
) -> CrawlTriggerOut:
    return await trigger_crawl(settings, repository, adapters, client=client)


@router.get("/stale-check", response_model=StaleCheckTriggerOut)
async def scheduled_stale_check(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    adapters=Depends(get_source_adapters),
    client=Depends(get_http_client),
) -> StaleCheckTriggerOut:
    return await trigger_stale_check(settings, repository, adapters, client=client)
