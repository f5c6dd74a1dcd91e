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
from jobsweep.adapters.normalize import clean_text, map_contract_type, split_location, strip_html
from jobsweep.services.repository import JobRecord

API_BASE = "https://api.lever.co/v0/postings"


class LeverAdapter(SourceAdapter):
    kind = "lever"

    @property
    def postings_url(self) -> str:
        return f"{API_BASE}/{self.config.slug}"

    async def list_postings(
        self,
        client: httpx.AsyncClient,
        *,
        max_pages: int | None = None,
    ) -> AsyncIterator[CandidateListing]:
        payload = await fetch_json(client, self.postings_url, params={"mode": "json"})
        if not isinstance(payload, list):
            raise ParseError(f"lever account {self.config.slug!r} did not return a postings list")

        for posting in payload:
            if not isinstance(posting, dict) or not posting.get("id"):
                continue
            title = clean_text(posting.get("text"))
            if not title:
                continue
            categories = posting.get("categories") if isinstance(posting.get("categories"), dict) else {}
            city, country = split_location(categories.get("location") or "")
            commitment = clean_text(categories.get("commitment"))
            yield self.build_listing(
                external_id=posting["id"],
                position=title,
                source_url=posting.get("hostedUrl") or f"https://jobs.lever.co/{self.config.slug}/{posting['id']}",
                city=city,
                country=country,
                description=strip_html(posting.get("descriptionPlain") or posting.get("description")),
                contract_type=map_contract_type([commitment]),
            )

    async def probe(self, client: httpx.AsyncClient, record: JobRecord) -> ProbeOutcome:
        external_id = self.external_id(record)
        if external_id is None:
            return await super().probe(client, record)
        return await probe_url(
            client,
            f"{self.postings_url}/{external_id}?mode=json",
            method="GET",
            headers=JSON_HEADERS,
        )
