from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from jobsweep.schemas.crawl_runs import CrawlRunOut, SourceResult
from jobsweep.services.fingerprint import fingerprint
from jobsweep.services.repository import NewJobRecord, PostgresRepository


@pytest.fixture(scope="module")
def database_url() -> str:
    url = os.getenv("JOBSWEEP_DATABASE_URL")
    if not url:
        pytest.skip("integration tests require JOBSWEEP_DATABASE_URL")
    return url


def _new_record(suffix: str) -> NewJobRecord:
    now = datetime.now(timezone.utc)
    url = f"https://jobs.example.org/{suffix}"
    return NewJobRecord(
        poster_id="crawler-admin",
        school_name="Integration School",
        position="English Teacher",
        application_url=url,
        content_hash=fingerprint("English Teacher", "Integration School", url),
        source_key=f"it/{suffix}",
        source_url=url,
        crawled_at=now,
        published_at=now,
    )


def test_postgres_repository_contract(database_url: str) -> None:
    suffix = uuid4().hex

    async def run():
        repository = PostgresRepository(database_url, min_pool_size=1, max_pool_size=4)
        try:
            await repository.ensure_schema()
            record = _new_record(suffix)
            results = await asyncio.gather(*(repository.insert_if_absent(record) for _ in range(4)))
            inserted = [result for result in results if result is not None]
            found = await repository.find_by_fingerprint(record.content_hash)

            now = datetime.now(timezone.utc)
            first_update = await repository.update_staleness(
                inserted[0].id, fail_count=3, last_checked_at=now, take_down=True, admin_note="gone"
            )
            second_update = await repository.update_staleness(inserted[0].id, fail_count=0, last_checked_at=now)
            taken_down = await repository.find_by_fingerprint(record.content_hash)

            run = CrawlRunOut(
                started_at=now,
                completed_at=now,
                duration_ms=0,
                jobs_found=1,
                jobs_new=1,
                source_results=[SourceResult(source="it", jobs_found=1, jobs_new=1)],
            )
            stored_run = await repository.insert_crawl_run(run)
            history = await repository.list_crawl_runs(limit=5, run_type="crawl")
            return inserted, found, first_update, second_update, taken_down, stored_run, history
        finally:
            await repository.close()

    inserted, found, first_update, second_update, taken_down, stored_run, history = asyncio.run(run())

    assert len(inserted) == 1
    assert found is not None and found.id == inserted[0].id
    assert found.status == "live"
    assert first_update is True
    assert second_update is False
    assert taken_down.status == "taken_down"
    assert taken_down.stale_check_fail_count == 3
    assert taken_down.admin_notes == "gone"
    assert stored_run.id is not None
    assert any(item.id == stored_run.id for item in history)
    assert isinstance(history[0], CrawlRunOut)
