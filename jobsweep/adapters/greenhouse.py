from __future__ import annotations

from collections.abc import AsyncIterator

import httpx

from jobsweep.adapters.base import (
    JSON_HEADERS,
    CandidateListing,
    ParseError,
    ProbeOutcome,
    SourceAdapter,
    fetch_json,
    probe_url,
)
from jobsweep.adapters.normalize import clean_text, split_location, strip_html
from jobsweep.services.repository import JobRecord

API_BASE = "https://boards-api.greenhouse.io/v1/boards"


class GreenhouseAdapter(SourceAdapter):
    kind = "greenhouse"

    @property
    def board_url(self) -> str:
        return f"{API_BASE}/{self.config.slug}/jobs"

    async def list_postings(
        self,
        client: httpx.AsyncClient,
        *,
        max_pages: int | None = None,
    ) -> AsyncIterator[CandidateListing]:
        payload = await fetch_json(client, self.board_url, params={"content": "true"})
        jobs = payload.get("jobs") if isinstance(payload, dict) else None
        if not isinstance(jobs, list):
            raise ParseError(f"greenhouse board {self.config.slug!r} returned no jobs list")

        for job in jobs:
            if not isinstance(job, dict) or job.get("id") is None:
                continue
            title = clean_text(job.get("title"))
            if not title:
                continue
            location = job.get("location") if isinstance(job.get("location"), dict) else {}
            city, country = split_location(location.get("name"))
            source_url = job.get("absolute_url") or f"https://boards.greenhouse.io/{self.config.slug}/jobs/{job['id']}"
            yield self.build_listing(
                external_id=job["id"],
                position=title,
                source_url=source_url,
                city=city,
                country=country,
                description=strip_html(job.get("content")),
            )

    async def probe(self, client: httpx.AsyncClient, record: JobRecord) -> ProbeOutcome:
        external_id = self.external_id(record)
        if external_id is None:
            return await super().probe(client, record)
        return await probe_url(client, f"{self.board_url}/{external_id}", method="GET", headers=JSON_HEADERS)
