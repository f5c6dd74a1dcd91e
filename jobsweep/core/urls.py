from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

TRACKING_KEYS = {"ref", "fbclid", "gclid", "mc_cid", "mc_eid"}
HTTP_SCHEMES = {"http", "https"}


def normalize_url(raw_url: str) -> str:
    """Canonical form of a listing URL: lowercase host, no default port, no fragment or tracking params."""
    parsed = urlparse(raw_url.strip())

    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()
    if ":" in netloc:
        host, port = netloc.rsplit(":", maxsplit=1)
        if (scheme == "http" and port == "80") or (scheme == "https" and port == "443"):
            netloc = host

    path = parsed.path or "/"
    if path != "/" and path.endswith("/"):
        path = path[:-1]

    filtered_query_pairs = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if not _is_tracking_param(key.lower())
    ]
    filtered_query_pairs.sort(key=lambda pair: pair[0])
    query = urlencode(filtered_query_pairs, doseq=True)
    return urlunparse((scheme, netloc, path, "", query, ""))


def resolve_listing_url(raw_href: str | None, base_url: str) -> str | None:
    """Resolve an href found on a page against the page URL; None for non-HTTP links."""
    if not raw_href:
        return None
    href = raw_href.strip()
    if not href or href.startswith("#"):
        return None
    absolute = urljoin(base_url, href)
    if urlparse(absolute).scheme.lower() not in HTTP_SCHEMES:
        return None
    return normalize_url(absolute)


def host_of(raw_url: str | None) -> str | None:
    if not raw_url:
        return None
    host = urlparse(raw_url).hostname
    if not host:
        return None
    return host.strip().lower() or None


def _is_tracking_param(key: str) -> bool:
    return key.startswith("utm_") or key in TRACKING_KEYS
