from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import AsyncIterator

import httpx
from bs4 import BeautifulSoup, Tag

from jobsweep.adapters.bamboohr import detect_subdomain, list_embed_postings
from jobsweep.adapters.base import CandidateListing, FetchError, ParseError, SourceAdapter, fetch_text
from jobsweep.adapters.normalize import clean_text
from jobsweep.core.urls import resolve_listing_url

logger = logging.getLogger(__name__)

JOB_TITLE_KEYWORDS = re.compile(
    r"teacher|professor|instructor|principal|director|coordinator|librarian|counselor|coach|administrator"
    r"|faculty|staff|educator|tutor|assistant|position|vacancy|opportunity",
    re.IGNORECASE,
)
NAVIGATION_TEXT = re.compile(
    r"^(home|about|contact|news|events|alumni|admission|parents|students|calendar)",
    re.IGNORECASE,
)
IFRAMED_ATS = re.compile(r"icims\.com|taleo\.net|workday\.com|pageup\.com|successfactors\.com", re.IGNORECASE)
TITLE_TAGS = ["strong", "h1", "h2", "h3", "h4", "h5", "h6", "b", "span"]


def extract_postings(html: str, page_url: str) -> list[tuple[str, str]]:
    """Heuristic (title, url) extraction from a school's own vacancies page."""
    soup = BeautifulSoup(html, "html.parser")
    seen: set[str] = set()
    postings: list[tuple[str, str]] = []

    def _accept(title: str, href: str | None) -> None:
        url = resolve_listing_url(href, page_url)
        if url is None or url in seen:
            return
        seen.add(url)
        postings.append((title, url))

    for anchor in soup.find_all("a", href=True):
        text = clean_text(anchor.get_text(" "))
        if not 5 <= len(text) <= 120:
            continue
        if not JOB_TITLE_KEYWORDS.search(text) or NAVIGATION_TEXT.match(text):
            continue
        _accept(text, anchor["href"])

    for item in soup.find_all(["li", "tr"]):
        if not JOB_TITLE_KEYWORDS.search(item.get_text(" ")):
            continue
        title = _item_title(item)
        link = item.find("a", href=True)
        if title is None or link is None:
            continue
        _accept(title, link["href"])

    return postings


def _item_title(item: Tag) -> str | None:
    for candidate in item.find_all(TITLE_TAGS):
        title = clean_text(candidate.get_text(" "))
        if 5 <= len(title) <= 100 and JOB_TITLE_KEYWORDS.search(title):
            return title
    return None


def _url_id(url: str) -> str:
    return hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]


class CareerPageAdapter(SourceAdapter):
    kind = "career_page"

    async def list_postings(
        self,
        client: httpx.AsyncClient,
        *,
        max_pages: int | None = None,
    ) -> AsyncIterator[CandidateListing]:
        page_url = self.config.url or ""
        html = await fetch_text(client, page_url)

        if "bamboohr.com" in html.lower():
            embedded = await self._embedded_bamboohr(client, html)
            if embedded:
                for listing in embedded:
                    yield listing
                return

        if IFRAMED_ATS.search(html):
            raise ParseError(f"{page_url} embeds an applicant tracking system that cannot be read from the page")

        for title, url in extract_postings(html, page_url):
            yield self.build_listing(external_id=_url_id(url), position=title, source_url=url)

    async def _embedded_bamboohr(self, client: httpx.AsyncClient, html: str) -> list[CandidateListing]:
        subdomain = detect_subdomain(html)
        if subdomain is None:
            return []
        try:
            return [listing async for listing in list_embed_postings(self, client, subdomain)]
        except FetchError as exc:
            logger.warning("bamboohr embed unavailable source=%s subdomain=%s error=%s", self.source_key, subdomain, exc)
            return []
