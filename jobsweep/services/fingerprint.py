from __future__ import annotations

import hashlib


def fingerprint(position: str, school_name: str, application_url: str) -> str:
    """Identity hash of a listing.

    Only the title, the school and the application URL participate, so a
    re-crawl that changes description or salary text resolves to the same
    record while a changed title, school or URL yields a new one.
    """
    parts = (_normalize(position), _normalize(school_name), _normalize(application_url))
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def _normalize(value: str | None) -> str:
    if not value:
        return ""
    return value.strip().casefold()
