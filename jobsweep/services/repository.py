from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Protocol

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from jobsweep.core.config import get_settings
from jobsweep.schemas.crawl_runs import CRAWL_RUN_ADAPTER, CrawlRunOut, RunType, StaleCheckRunOut


class PersistenceError(Exception):
    """Base repository error; fatal to the run that hits it."""


class RepositoryUnavailableError(PersistenceError):
    """Raised when the database is unavailable or not configured."""


JOB_STATUSES = {"pending", "approved", "live", "correction_needed", "taken_down"}
_UNAVAILABLE_ERRORS = (OSError, TimeoutError, asyncpg.InterfaceError)

SCHEMA_SQL = """
create table if not exists job_postings (
  id uuid primary key default gen_random_uuid(),
  poster_id text not null,
  school_name text not null,
  position text not null,
  position_category text not null default 'high-school',
  city text not null default '',
  country text not null default '',
  country_code text not null default '',
  region text,
  description text not null default '',
  application_url text not null,
  salary text,
  contract_type text not null default 'Full-time',
  start_date text not null default 'TBD',
  status text not null default 'pending'
    check (status in ('pending', 'approved', 'live', 'correction_needed', 'taken_down')),
  published_at timestamptz,
  admin_notes text,
  source_url text,
  source_key text,
  content_hash text,
  is_auto_crawled boolean not null default false,
  crawled_at timestamptz,
  last_checked_at timestamptz,
  stale_check_fail_count integer not null default 0 check (stale_check_fail_count >= 0),
  created_at timestamptz not null default now(),
  updated_at timestamptz not null default now()
);

create unique index if not exists job_postings_content_hash_key
  on job_postings (content_hash) where content_hash is not null;
create index if not exists job_postings_auto_crawled_status_idx
  on job_postings (is_auto_crawled, status);

create table if not exists crawl_runs (
  id uuid primary key default gen_random_uuid(),
  type text not null check (type in ('crawl', 'stale-check')),
  started_at timestamptz not null,
  completed_at timestamptz not null,
  duration_ms integer not null,
  deadline_reached boolean not null default false,
  payload jsonb not null default '{}'::jsonb,
  created_at timestamptz not null default now()
);

create index if not exists crawl_runs_type_created_idx on crawl_runs (type, created_at desc);
"""

_JOB_COLUMNS = """
  id::text as id,
  poster_id,
  school_name,
  position,
  position_category,
  city,
  country,
  country_code,
  region,
  description,
  application_url,
  salary,
  contract_type,
  start_date,
  status,
  published_at,
  admin_notes,
  source_url,
  source_key,
  content_hash,
  is_auto_crawled,
  crawled_at,
  last_checked_at,
  stale_check_fail_count
"""

_RUN_COLUMNS = "id::text as id, type, started_at, completed_at, duration_ms, deadline_reached, payload"


@dataclass(slots=True)
class NewJobRecord:
    poster_id: str
    school_name: str
    position: str
    application_url: str
    content_hash: str
    source_key: str
    source_url: str
    crawled_at: datetime
    published_at: datetime
    status: str = "live"
    is_auto_crawled: bool = True
    position_category: str = "high-school"
    city: str = ""
    country: str = ""
    country_code: str = ""
    region: str | None = None
    description: str = ""
    salary: str | None = None
    contract_type: str = "Full-time"
    start_date: str = "TBD"


@dataclass(slots=True)
class JobRecord:
    id: str
    poster_id: str
    school_name: str
    position: str
    application_url: str
    status: str
    content_hash: str | None = None
    source_key: str | None = None
    source_url: str | None = None
    is_auto_crawled: bool = False
    crawled_at: datetime | None = None
    published_at: datetime | None = None
    last_checked_at: datetime | None = None
    stale_check_fail_count: int = 0
    position_category: str = "high-school"
    city: str = ""
    country: str = ""
    country_code: str = ""
    region: str | None = None
    description: str = ""
    salary: str | None = None
    contract_type: str = "Full-time"
    start_date: str = "TBD"
    admin_notes: str | None = None


class ListingRepository(Protocol):
    async def find_by_fingerprint(self, content_hash: str) -> JobRecord | None: ...

    async def insert_if_absent(self, record: NewJobRecord) -> JobRecord | None: ...

    async def list_stale_candidates(self, limit: int | None = None) -> list[JobRecord]: ...

    async def update_staleness(
        self,
        record_id: str,
        *,
        fail_count: int,
        last_checked_at: datetime,
        take_down: bool = False,
        admin_note: str | None = None,
    ) -> bool: ...

    async def insert_crawl_run(self, run: CrawlRunOut | StaleCheckRunOut) -> CrawlRunOut | StaleCheckRunOut: ...

    async def list_crawl_runs(
        self,
        *,
        limit: int = 20,
        run_type: RunType | None = None,
    ) -> list[CrawlRunOut | StaleCheckRunOut]: ...

    async def close(self) -> None: ...


class PostgresRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def ensure_schema(self) -> None:
        pool = await self._get_pool()
        try:
            await pool.execute(SCHEMA_SQL)
        except _UNAVAILABLE_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc
        except asyncpg.PostgresError as exc:
            raise PersistenceError(f"schema setup failed: {exc}") from exc

    async def find_by_fingerprint(self, content_hash: str) -> JobRecord | None:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"select {_JOB_COLUMNS} from job_postings where content_hash = $1",
                content_hash,
            )
        except _UNAVAILABLE_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc
        except asyncpg.PostgresError as exc:
            raise PersistenceError(f"fingerprint lookup failed: {exc}") from exc
        return self._job_row_to_record(row) if row else None

    async def insert_if_absent(self, record: NewJobRecord) -> JobRecord | None:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                insert into job_postings (
                  poster_id,
                  school_name,
                  position,
                  position_category,
                  city,
                  country,
                  country_code,
                  region,
                  description,
                  application_url,
                  salary,
                  contract_type,
                  start_date,
                  status,
                  published_at,
                  source_url,
                  source_key,
                  content_hash,
                  is_auto_crawled,
                  crawled_at,
                  stale_check_fail_count
                )
                values ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18, $19, $20, 0)
                on conflict (content_hash) where content_hash is not null do nothing
                returning {_JOB_COLUMNS}
                """,
                record.poster_id,
                record.school_name,
                record.position,
                record.position_category,
                record.city,
                record.country,
                record.country_code,
                record.region,
                record.description,
                record.application_url,
                record.salary,
                record.contract_type,
                record.start_date,
                record.status,
                record.published_at,
                record.source_url,
                record.source_key,
                record.content_hash,
                record.is_auto_crawled,
                record.crawled_at,
            )
        except pg_exc.UniqueViolationError:
            return None
        except _UNAVAILABLE_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc
        except asyncpg.PostgresError as exc:
            raise PersistenceError(f"job insert failed: {exc}") from exc
        return self._job_row_to_record(row) if row else None

    async def list_stale_candidates(self, limit: int | None = None) -> list[JobRecord]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"""
                select {_JOB_COLUMNS}
                from job_postings
                where is_auto_crawled = true
                  and status = 'live'
                  and source_url is not null
                order by last_checked_at asc nulls first, id
                limit $1
                """,
                limit,
            )
        except _UNAVAILABLE_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc
        except asyncpg.PostgresError as exc:
            raise PersistenceError(f"stale candidate query failed: {exc}") from exc
        return [self._job_row_to_record(row) for row in rows]

    async def update_staleness(
        self,
        record_id: str,
        *,
        fail_count: int,
        last_checked_at: datetime,
        take_down: bool = False,
        admin_note: str | None = None,
    ) -> bool:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                update job_postings
                set
                  stale_check_fail_count = $2,
                  last_checked_at = $3,
                  status = case when $4 then 'taken_down' else status end,
                  admin_notes = case
                    when $5::text is null then admin_notes
                    else concat_ws(E'\\n', admin_notes, $5::text)
                  end,
                  updated_at = now()
                where id = $1::uuid
                  and is_auto_crawled = true
                  and status = 'live'
                returning id
                """,
                record_id,
                max(0, fail_count),
                last_checked_at,
                take_down,
                admin_note,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise PersistenceError(f"invalid job id {record_id!r}") from exc
        except _UNAVAILABLE_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc
        except asyncpg.PostgresError as exc:
            raise PersistenceError(f"staleness update failed: {exc}") from exc
        return row is not None

    async def insert_crawl_run(self, run: CrawlRunOut | StaleCheckRunOut) -> CrawlRunOut | StaleCheckRunOut:
        payload = run.model_dump(
            mode="json",
            exclude={"id", "type", "started_at", "completed_at", "duration_ms", "deadline_reached"},
        )
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                insert into crawl_runs (type, started_at, completed_at, duration_ms, deadline_reached, payload)
                values ($1, $2, $3, $4, $5, $6::jsonb)
                returning {_RUN_COLUMNS}
                """,
                run.type,
                run.started_at,
                run.completed_at,
                run.duration_ms,
                run.deadline_reached,
                json.dumps(payload),
            )
        except _UNAVAILABLE_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc
        except asyncpg.PostgresError as exc:
            raise PersistenceError(f"crawl run insert failed: {exc}") from exc
        return self._run_row_to_model(row)

    async def list_crawl_runs(
        self,
        *,
        limit: int = 20,
        run_type: RunType | None = None,
    ) -> list[CrawlRunOut | StaleCheckRunOut]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"""
                select {_RUN_COLUMNS}
                from crawl_runs
                where ($2::text is null or type = $2)
                order by created_at desc, started_at desc
                limit $1
                """,
                limit,
                run_type,
            )
        except _UNAVAILABLE_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc
        except asyncpg.PostgresError as exc:
            raise PersistenceError(f"crawl run query failed: {exc}") from exc
        return [self._run_row_to_model(row) for row in rows]

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("JOBSWEEP_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _job_row_to_record(row: asyncpg.Record) -> JobRecord:
        return JobRecord(
            id=row["id"],
            poster_id=row["poster_id"],
            school_name=row["school_name"],
            position=row["position"],
            application_url=row["application_url"],
            status=row["status"],
            content_hash=row["content_hash"],
            source_key=row["source_key"],
            source_url=row["source_url"],
            is_auto_crawled=bool(row["is_auto_crawled"]),
            crawled_at=row["crawled_at"],
            published_at=row["published_at"],
            last_checked_at=row["last_checked_at"],
            stale_check_fail_count=int(row["stale_check_fail_count"] or 0),
            position_category=row["position_category"],
            city=row["city"],
            country=row["country"],
            country_code=row["country_code"],
            region=row["region"],
            description=row["description"],
            salary=row["salary"],
            contract_type=row["contract_type"],
            start_date=row["start_date"],
            admin_notes=row["admin_notes"],
        )

    @staticmethod
    def _run_row_to_model(row: asyncpg.Record) -> CrawlRunOut | StaleCheckRunOut:
        payload = row["payload"]
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                payload = {}
        if not isinstance(payload, dict):
            payload = {}
        return CRAWL_RUN_ADAPTER.validate_python(
            {
                **payload,
                "id": row["id"],
                "type": row["type"],
                "started_at": row["started_at"],
                "completed_at": row["completed_at"],
                "duration_ms": row["duration_ms"],
                "deadline_reached": row["deadline_reached"],
            }
        )


@lru_cache
def get_repository() -> PostgresRepository:
    settings = get_settings()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
