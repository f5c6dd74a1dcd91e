from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import httpx
from bs4 import BeautifulSoup

from jobsweep.adapters.base import CandidateListing, ParseError, SourceAdapter, fetch_text
from jobsweep.adapters.normalize import clean_text, iso_date, map_contract_type, split_location
from jobsweep.core.sources import SourceConfig

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.tes.com"
DEFAULT_MAX_PAGES = 10


def page_url(search_url: str, page: int) -> str:
    """The search URL as configured for page 1; later pages carry an explicit page parameter."""
    if page <= 1:
        return search_url
    parsed = urlparse(search_url)
    query = [(key, value) for key, value in parse_qsl(parsed.query, keep_blank_values=True) if key != "page"]
    query.append(("page", str(page)))
    return urlunparse(parsed._replace(query=urlencode(query)))


def extract_jobs(html: str) -> list[dict[str, Any]] | None:
    """Jobs embedded in the page's Next.js state; None when the page carries no such state."""
    script = BeautifulSoup(html, "html.parser").find("script", id="__NEXT_DATA__")
    if script is None or not script.string:
        return None
    try:
        data = json.loads(script.string)
    except json.JSONDecodeError as exc:
        raise ParseError("__NEXT_DATA__ is not valid JSON") from exc

    queries = _dig(data, "props", "pageProps", "trpcState", "json", "queries")
    if not isinstance(queries, list):
        return []
    for query in queries:
        jobs = _dig(query, "state", "data", "jobs")
        if isinstance(jobs, list):
            return [job for job in jobs if isinstance(job, dict)]
    return []


def _dig(value: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


class TesAdapter(SourceAdapter):
    kind = "tes"

    def __init__(self, config: SourceConfig, *, page_delay_seconds: float = 2.0) -> None:
        super().__init__(config)
        self.page_delay_seconds = page_delay_seconds

    async def list_postings(
        self,
        client: httpx.AsyncClient,
        *,
        max_pages: int | None = None,
    ) -> AsyncIterator[CandidateListing]:
        page_limit = max_pages or self.config.max_pages or DEFAULT_MAX_PAGES
        search_url = self.config.url or ""

        for page in range(1, page_limit + 1):
            if page > 1 and self.page_delay_seconds > 0:
                await asyncio.sleep(self.page_delay_seconds)

            html = await fetch_text(client, page_url(search_url, page))
            jobs = extract_jobs(html)
            if jobs is None:
                if page == 1:
                    raise ParseError(f"no __NEXT_DATA__ found on {search_url}")
                logger.info("tes pagination stopped source=%s page=%s reason=missing_next_data", self.source_key, page)
                return
            if not jobs:
                return

            for job in jobs:
                listing = self._to_listing(job)
                if listing is not None:
                    yield listing

    def _to_listing(self, job: dict[str, Any]) -> CandidateListing | None:
        title = clean_text(job.get("title"))
        employer = clean_text(_dig(job, "employer", "name"))
        canonical_url = job.get("canonicalUrl")
        if not title or not employer or not isinstance(canonical_url, str) or job.get("id") is None:
            return None

        city, country = split_location(job.get("displayLocation"))
        salary = clean_text(_dig(job, "salary", "description")) or clean_text(_dig(job, "salary", "range"))
        base_url = (self.config.base_url or DEFAULT_BASE_URL).rstrip("/")
        return self.build_listing(
            external_id=job["id"],
            position=title,
            school_name=employer,
            source_url=f"{base_url}{canonical_url}",
            city=city,
            country=country,
            description=clean_text(job.get("shortDescription")),
            salary=salary or None,
            contract_type=map_contract_type(job.get("contractTypes"), job.get("contractTerms")),
            start_date=iso_date(_dig(job, "advert", "startDate")) or "TBD",
        )
