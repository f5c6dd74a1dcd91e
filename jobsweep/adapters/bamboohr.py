from __future__ import annotations

import hashlib
import re
from collections.abc import AsyncIterator

import httpx
from bs4 import BeautifulSoup

from jobsweep.adapters.base import CandidateListing, SourceAdapter, fetch_text
from jobsweep.adapters.normalize import clean_text
from jobsweep.core.urls import host_of, resolve_listing_url

EMBED_SUBDOMAIN_PATTERN = re.compile(r"([a-z0-9_-]+)\.bamboohr\.com", re.IGNORECASE)
EMBED_PATH_PATTERN = re.compile(r"bamboohr\.com/(?:jobs/|careers/)?([a-z0-9_-]+)", re.IGNORECASE)
POSTING_ID_PATTERN = re.compile(r"(?:[?&]id=|/careers/|/view/)(\d+)")
IGNORED_SUBDOMAINS = {"www", "static", "assets", "cdn", "js"}


def embed_url(subdomain: str) -> str:
    return f"https://{subdomain}.bamboohr.com/jobs/embed2.php"


def detect_subdomain(html: str) -> str | None:
    """Company subdomain of a BambooHR widget embedded in a career page."""
    for match in EMBED_SUBDOMAIN_PATTERN.finditer(html):
        subdomain = match.group(1).lower()
        if subdomain not in IGNORED_SUBDOMAINS:
            return subdomain
    match = EMBED_PATH_PATTERN.search(html)
    if match and match.group(1).lower() not in {"jobs", "careers", "js"}:
        return match.group(1).lower()
    return None


def parse_embed(html: str, base_url: str) -> list[tuple[str, str]]:
    """(title, url) pairs of the postings linked from a BambooHR embed listing."""
    soup = BeautifulSoup(html, "html.parser")
    seen: set[str] = set()
    postings: list[tuple[str, str]] = []
    for anchor in soup.find_all("a", href=True):
        url = resolve_listing_url(anchor["href"], base_url)
        host = host_of(url)
        if url is None or host is None or not host.endswith("bamboohr.com"):
            continue
        title = clean_text(anchor.get_text(" "))
        if not title or "apply" in title.lower() or url in seen:
            continue
        seen.add(url)
        postings.append((title, url))
    return postings


def posting_id(url: str) -> str:
    match = POSTING_ID_PATTERN.search(url)
    if match:
        return match.group(1)
    return hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]


async def list_embed_postings(
    adapter: SourceAdapter,
    client: httpx.AsyncClient,
    subdomain: str,
) -> AsyncIterator[CandidateListing]:
    url = embed_url(subdomain)
    html = await fetch_text(client, url)
    for title, posting_url in parse_embed(html, url):
        yield adapter.build_listing(
            external_id=posting_id(posting_url),
            position=title,
            source_url=posting_url,
        )


class BambooHRAdapter(SourceAdapter):
    kind = "bamboohr"

    async def list_postings(
        self,
        client: httpx.AsyncClient,
        *,
        max_pages: int | None = None,
    ) -> AsyncIterator[CandidateListing]:
        async for listing in list_embed_postings(self, client, self.config.slug or ""):
            yield listing
