from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import httpx

from jobsweep.adapters.base import CandidateListing, ParseError, SourceAdapter, fetch_json
from jobsweep.adapters.normalize import clean_text, map_contract_type, strip_html

API_BASE = "https://apply.workable.com/api/v3/accounts"
DEFAULT_MAX_PAGES = 10


class WorkableAdapter(SourceAdapter):
    """Workable's public widget endpoint; pages are chained with a `nextPage` token."""

    kind = "workable"

    async def list_postings(
        self,
        client: httpx.AsyncClient,
        *,
        max_pages: int | None = None,
    ) -> AsyncIterator[CandidateListing]:
        url = f"{API_BASE}/{self.config.slug}/jobs"
        body: dict[str, Any] = {"query": "", "location": [], "department": [], "worktype": [], "remote": []}
        page_limit = max_pages or self.config.max_pages or DEFAULT_MAX_PAGES

        for page in range(1, page_limit + 1):
            payload = await fetch_json(client, url, method="POST", json=body)
            results = payload.get("results") if isinstance(payload, dict) else None
            if not isinstance(results, list):
                if page == 1:
                    raise ParseError(f"workable account {self.config.slug!r} returned no results list")
                return

            for job in results:
                listing = self._to_listing(job)
                if listing is not None:
                    yield listing

            next_token = payload.get("nextPage")
            if not next_token or not results:
                return
            body = {**body, "token": next_token}

    def _to_listing(self, job: Any) -> CandidateListing | None:
        if not isinstance(job, dict) or not job.get("shortcode"):
            return None
        title = clean_text(job.get("title"))
        if not title:
            return None
        location = job.get("location") if isinstance(job.get("location"), dict) else {}
        shortcode = job["shortcode"]
        return self.build_listing(
            external_id=shortcode,
            position=title,
            source_url=f"https://apply.workable.com/{self.config.slug}/j/{shortcode}/",
            city=clean_text(location.get("city")),
            country=clean_text(location.get("country")),
            description=strip_html(job.get("description")),
            contract_type=map_contract_type([str(job.get("employment_type") or job.get("type") or "")]),
        )
