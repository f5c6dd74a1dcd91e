from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

import httpx

from jobsweep.adapters.normalize import (
    infer_category,
    region_for_country_code,
    resolve_country_code,
)
from jobsweep.core.sources import SourceConfig

if TYPE_CHECKING:
    from jobsweep.services.repository import JobRecord

HTML_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}
JSON_HEADERS = {"Accept": "application/json"}
HEAD_REFUSED_STATUS_CODES = {403, 405, 501}


class SourceError(Exception):
    """A single source could not be listed; recovered per source."""


class FetchError(SourceError):
    """Network failure, timeout or non-success HTTP status."""


class ParseError(SourceError):
    """The payload does not have the shape the adapter expects."""


@dataclass(slots=True)
class CandidateListing:
    position: str
    school_name: str
    source_url: str
    source_key: str
    application_url: str = ""
    description: str = ""
    city: str = ""
    country: str = ""
    country_code: str = ""
    region: str | None = None
    salary: str | None = None
    contract_type: str = "Full-time"
    start_date: str = "TBD"
    position_category: str = "high-school"

    def __post_init__(self) -> None:
        if not self.application_url:
            self.application_url = self.source_url


@dataclass(slots=True)
class ProbeOutcome:
    alive: bool
    status_code: int | None
    reason: str


class SourceAdapter(ABC):
    kind: ClassVar[str]

    def __init__(self, config: SourceConfig) -> None:
        self.config = config

    @property
    def source_key(self) -> str:
        return self.config.key

    @abstractmethod
    def list_postings(
        self,
        client: httpx.AsyncClient,
        *,
        max_pages: int | None = None,
    ) -> AsyncIterator[CandidateListing]:
        """Yield the source's current postings; raises FetchError or ParseError."""

    async def probe(self, client: httpx.AsyncClient, record: JobRecord) -> ProbeOutcome:
        return await probe_url(client, record.source_url or record.application_url)

    def listing_key(self, external_id: Any) -> str:
        return f"{self.source_key}/{external_id}"

    def external_id(self, record: JobRecord) -> str | None:
        prefix = f"{self.source_key}/"
        if record.source_key and record.source_key.startswith(prefix):
            return record.source_key[len(prefix) :] or None
        return None

    def build_listing(
        self,
        *,
        external_id: Any,
        position: str,
        source_url: str,
        school_name: str | None = None,
        city: str = "",
        country: str = "",
        **fields: Any,
    ) -> CandidateListing:
        """Fill location and category, falling back to the configured school location."""
        country_code = resolve_country_code(country) or self.config.country_code
        return CandidateListing(
            position=position,
            school_name=school_name or self.config.school_name or self.source_key,
            source_url=source_url,
            source_key=self.listing_key(external_id),
            city=city or self.config.city,
            country=country or self.config.country,
            country_code=country_code,
            region=region_for_country_code(country_code),
            position_category=infer_category(position),
            **fields,
        )


async def fetch_text(
    client: httpx.AsyncClient,
    url: str,
    *,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    **kwargs: Any,
) -> str:
    response = await _send(client, method, url, headers=headers or HTML_HEADERS, **kwargs)
    return response.text


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    **kwargs: Any,
) -> Any:
    response = await _send(client, method, url, headers=headers or JSON_HEADERS, **kwargs)
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ParseError(f"invalid JSON from {url}") from exc


async def probe_url(
    client: httpx.AsyncClient,
    url: str | None,
    *,
    method: str = "HEAD",
    headers: dict[str, str] | None = None,
) -> ProbeOutcome:
    """Lightweight existence check: HEAD, falling back to GET when HEAD is refused."""
    if not url:
        return ProbeOutcome(alive=False, status_code=None, reason="missing_source_url")
    headers = headers or HTML_HEADERS
    try:
        response = await client.request(method, url, headers=headers, follow_redirects=True)
        if method == "HEAD" and response.status_code in HEAD_REFUSED_STATUS_CODES:
            response = await client.get(url, headers=headers, follow_redirects=True)
    except httpx.TimeoutException:
        return ProbeOutcome(alive=False, status_code=None, reason="timeout")
    except httpx.HTTPError as exc:
        return ProbeOutcome(alive=False, status_code=None, reason=f"network_error: {exc.__class__.__name__}")

    if response.is_success:
        return ProbeOutcome(alive=True, status_code=response.status_code, reason="ok")
    return ProbeOutcome(alive=False, status_code=response.status_code, reason=f"http_{response.status_code}")


async def _send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    headers: dict[str, str],
    **kwargs: Any,
) -> httpx.Response:
    try:
        response = await client.request(method, url, headers=headers, **kwargs)
    except httpx.TimeoutException as exc:
        raise FetchError(f"timeout fetching {url}") from exc
    except httpx.HTTPError as exc:
        raise FetchError(f"request to {url} failed: {exc.__class__.__name__}") from exc

    if not response.is_success:
        raise FetchError(f"HTTP {response.status_code} from {url}")
    return response
