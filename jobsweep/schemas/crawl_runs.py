from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

RunType = Literal["crawl", "stale-check"]
TriggerAction = Literal["crawl", "stale-check"]


class SourceResult(BaseModel):
    source: str
    jobs_found: int = 0
    jobs_new: int = 0
    jobs_skipped: int = 0
    errors: list[str] = Field(default_factory=list)
    duration_ms: int = 0
    completed: bool = True


class StaleCheckSummary(BaseModel):
    total_checked: int = 0
    still_live: int = 0
    marked_taken_down: int = 0
    failed_checks: int = 0


class _CrawlRunBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str | None = None
    started_at: datetime
    completed_at: datetime
    duration_ms: int
    deadline_reached: bool = False


class CrawlRunOut(_CrawlRunBase):
    type: Literal["crawl"] = "crawl"
    jobs_found: int = 0
    jobs_new: int = 0
    jobs_skipped: int = 0
    crawl_errors: list[str] = Field(default_factory=list)
    source_results: list[SourceResult] = Field(default_factory=list)


class StaleCheckRunOut(_CrawlRunBase):
    type: Literal["stale-check"] = "stale-check"
    stale_check_results: StaleCheckSummary


CrawlRunRecord = Annotated[CrawlRunOut | StaleCheckRunOut, Field(discriminator="type")]
CRAWL_RUN_ADAPTER: TypeAdapter[CrawlRunOut | StaleCheckRunOut] = TypeAdapter(CrawlRunRecord)


class TriggerRequest(BaseModel):
    action: TriggerAction
    max_pages: int | None = Field(default=None, ge=1, le=100)


class CrawlSummaryOut(BaseModel):
    jobs_found: int
    jobs_new: int
    sources: int


class CrawlTriggerOut(BaseModel):
    success: bool = True
    summary: CrawlSummaryOut
    results: list[SourceResult]


class StaleCheckTriggerOut(BaseModel):
    success: bool = True
    result: StaleCheckSummary
