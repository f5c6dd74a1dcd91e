from fastapi import APIRouter

from jobsweep.api.routes import crawl_runs, cron, health

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(crawl_runs.router, prefix="/crawl-runs", tags=["admin"])
api_router.include_router(cron.router, prefix="/cron", tags=["scheduler"])
