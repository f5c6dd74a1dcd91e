from __future__ import annotations

import asyncio
from dataclasses import fields, replace
from datetime import datetime
from uuid import uuid4

from jobsweep.schemas.crawl_runs import CrawlRunOut, RunType, StaleCheckRunOut
from jobsweep.services.repository import JOB_STATUSES, JobRecord, NewJobRecord, PersistenceError

_NEW_RECORD_FIELDS = [item.name for item in fields(NewJobRecord)]


class InMemoryRepository:
    """Process-local repository for local runs and tests; same contract as the Postgres one."""

    def __init__(self) -> None:
        self.jobs: dict[str, JobRecord] = {}
        self.runs: list[CrawlRunOut | StaleCheckRunOut] = []
        self._hash_index: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def close(self) -> None:
        return None

    def add_job(self, record: JobRecord) -> JobRecord:
        """Seed a record directly, e.g. a manually posted job."""
        if record.status not in JOB_STATUSES:
            raise PersistenceError(f"invalid status {record.status!r}")
        if record.content_hash and record.content_hash in self._hash_index:
            raise PersistenceError("duplicate content_hash")
        self.jobs[record.id] = record
        if record.content_hash:
            self._hash_index[record.content_hash] = record.id
        return record

    async def find_by_fingerprint(self, content_hash: str) -> JobRecord | None:
        record_id = self._hash_index.get(content_hash)
        if record_id is None:
            return None
        return replace(self.jobs[record_id])

    async def insert_if_absent(self, record: NewJobRecord) -> JobRecord | None:
        async with self._lock:
            if record.content_hash in self._hash_index:
                return None
            stored = JobRecord(
                id=str(uuid4()),
                **{name: getattr(record, name) for name in _NEW_RECORD_FIELDS},
            )
            self.add_job(stored)
            return replace(stored)

    async def list_stale_candidates(self, limit: int | None = None) -> list[JobRecord]:
        candidates = [
            replace(record)
            for record in self.jobs.values()
            if record.is_auto_crawled and record.status == "live" and record.source_url
        ]
        candidates.sort(
            key=lambda record: (record.last_checked_at is not None, record.last_checked_at or datetime.min, record.id)
        )
        if limit is not None:
            candidates = candidates[:limit]
        return candidates

    async def update_staleness(
        self,
        record_id: str,
        *,
        fail_count: int,
        last_checked_at: datetime,
        take_down: bool = False,
        admin_note: str | None = None,
    ) -> bool:
        async with self._lock:
            record = self.jobs.get(record_id)
            if record is None or not record.is_auto_crawled or record.status != "live":
                return False
            record.stale_check_fail_count = max(0, fail_count)
            record.last_checked_at = last_checked_at
            if take_down:
                record.status = "taken_down"
            if admin_note is not None:
                record.admin_notes = "\n".join(note for note in (record.admin_notes, admin_note) if note)
            return True

    async def insert_crawl_run(self, run: CrawlRunOut | StaleCheckRunOut) -> CrawlRunOut | StaleCheckRunOut:
        stored = run.model_copy(update={"id": str(uuid4())})
        self.runs.append(stored)
        return stored

    async def list_crawl_runs(
        self,
        *,
        limit: int = 20,
        run_type: RunType | None = None,
    ) -> list[CrawlRunOut | StaleCheckRunOut]:
        rows = [run for run in reversed(self.runs) if run_type is None or run.type == run_type]
        return rows[:limit]
