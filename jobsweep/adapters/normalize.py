from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Literal

from bs4 import BeautifulSoup

PositionCategory = Literal["elementary", "middle-school", "high-school", "admin", "support-staff"]
ContractType = Literal["Full-time", "Part-time", "Contract"]

DEFAULT_DESCRIPTION_LENGTH = 800
DEFAULT_REGION = "europe"

COUNTRY_CODE_MAP: dict[str, str] = {
    "united arab emirates": "AE", "uae": "AE", "dubai": "AE", "abu dhabi": "AE",
    "saudi arabia": "SA", "qatar": "QA", "bahrain": "BH", "oman": "OM", "kuwait": "KW",
    "china": "CN", "hong kong": "HK", "japan": "JP", "south korea": "KR", "korea": "KR",
    "thailand": "TH", "vietnam": "VN", "malaysia": "MY", "singapore": "SG",
    "indonesia": "ID", "philippines": "PH", "taiwan": "TW", "india": "IN",
    "egypt": "EG", "morocco": "MA", "nigeria": "NG", "kenya": "KE", "south africa": "ZA",
    "ghana": "GH", "tanzania": "TZ", "ethiopia": "ET", "uganda": "UG", "rwanda": "RW",
    "united kingdom": "GB", "uk": "GB", "england": "GB", "scotland": "GB", "wales": "GB",
    "germany": "DE", "france": "FR", "spain": "ES", "italy": "IT", "netherlands": "NL",
    "switzerland": "CH", "austria": "AT", "belgium": "BE", "portugal": "PT", "ireland": "IE",
    "sweden": "SE", "norway": "NO", "denmark": "DK", "finland": "FI", "poland": "PL",
    "czech republic": "CZ", "czechia": "CZ", "hungary": "HU", "romania": "RO",
    "greece": "GR", "turkey": "TR", "russia": "RU", "ukraine": "UA",
    "united states": "US", "usa": "US", "canada": "CA", "mexico": "MX",
    "brazil": "BR", "argentina": "AR", "chile": "CL", "colombia": "CO", "peru": "PE",
    "australia": "AU", "new zealand": "NZ",
    "cambodia": "KH", "myanmar": "MM", "laos": "LA", "brunei": "BN",
    "pakistan": "PK", "bangladesh": "BD", "sri lanka": "LK", "nepal": "NP",
    "jordan": "JO", "lebanon": "LB", "iraq": "IQ", "iran": "IR", "israel": "IL",
    "luxembourg": "LU", "monaco": "MC", "malta": "MT", "cyprus": "CY",
    "georgia": "GE", "armenia": "AM", "azerbaijan": "AZ", "uzbekistan": "UZ", "kazakhstan": "KZ",
    "costa rica": "CR", "panama": "PA", "ecuador": "EC", "uruguay": "UY", "paraguay": "PY",
    "bolivia": "BO", "venezuela": "VE", "guatemala": "GT", "honduras": "HN",
    "el salvador": "SV", "nicaragua": "NI", "dominican republic": "DO", "jamaica": "JM",
    "trinidad and tobago": "TT", "puerto rico": "PR", "cuba": "CU", "haiti": "HT",
    "senegal": "SN", "ivory coast": "CI", "cameroon": "CM", "mozambique": "MZ",
    "zambia": "ZM", "zimbabwe": "ZW", "botswana": "BW", "namibia": "NA", "madagascar": "MG",
    "mauritius": "MU", "angola": "AO", "democratic republic of congo": "CD", "congo": "CG",
    "tunisia": "TN", "algeria": "DZ", "libya": "LY", "sudan": "SD",
    "mongolia": "MN", "fiji": "FJ", "papua new guinea": "PG",
}  # fmt: skip

_REGION_COUNTRIES: dict[str, tuple[str, ...]] = {
    "middle-east": ("AE", "SA", "QA", "BH", "OM", "KW", "JO", "LB", "IQ", "IR", "IL"),
    "east-asia": ("CN", "HK", "JP", "KR", "TW", "MN"),
    "southeast-asia": ("TH", "VN", "MY", "SG", "ID", "PH", "KH", "MM", "LA", "BN"),
    "south-asia": ("IN", "PK", "BD", "LK", "NP"),
    "central-asia": ("KZ", "UZ", "GE", "AM", "AZ"),
    "europe": (
        "GB", "DE", "FR", "ES", "IT", "NL", "CH", "AT", "BE", "PT", "IE", "SE", "NO", "DK", "FI", "PL",
        "CZ", "HU", "RO", "GR", "TR", "RU", "UA", "SK", "BG", "LU", "CY", "MT", "MC", "AL",
    ),
    "africa": (
        "EG", "MA", "NG", "KE", "ZA", "GH", "TZ", "ET", "UG", "RW", "SN", "CI", "CM", "MZ", "ZM", "ZW",
        "BW", "NA", "MG", "MU", "AO", "CD", "CG", "TN", "DZ", "LY", "SD",
    ),
    "north-america": ("US", "CA", "MX"),
    "central-south-america": (
        "BR", "AR", "CL", "CO", "PE", "CR", "PA", "EC", "UY", "PY", "BO", "VE", "GT", "HN", "SV", "NI",
    ),
    "caribbean": ("JM", "TT", "DO", "CU", "HT", "PR"),
    "oceania": ("AU", "NZ", "FJ", "PG", "FK"),
}  # fmt: skip

COUNTRY_TO_REGION: dict[str, str] = {
    code: region for region, codes in _REGION_COUNTRIES.items() for code in codes
}

_CATEGORY_PATTERNS: tuple[tuple[PositionCategory, re.Pattern[str]], ...] = (
    (
        "admin",
        re.compile(
            r"\b(principal|director|head of|superintendent|coordinator|counselor|advisor|registrar|admissions"
            r"|dean|deputy head|assistant head|vice principal)\b"
        ),
    ),
    (
        "support-staff",
        re.compile(
            r"\b(technician|accountant|finance|it support|librarian|nurse|chef|driver|maintenance|custodian"
            r"|receptionist|secretary|assistant|aide)\b"
        ),
    ),
    (
        "high-school",
        re.compile(r"\b(high school|secondary|grade (9|10|11|12)|ib diploma|a[- ]level|igcse|sixth form|senior)\b"),
    ),
    ("middle-school", re.compile(r"\b(middle school|grade [678]|junior high|ks3|key stage 3)\b")),
    (
        "elementary",
        re.compile(
            r"\b(elementary|primary|grade [k1-5]|kindergarten|early childhood|early years|pre-?k|reception"
            r"|nursery|ey[fr]s)\b"
        ),
    ),
)

_PART_TIME = {"part time", "part-time", "part_time"}
_CONTRACT_TERMS = {"fixed term", "fixed-term", "casual", "temporary", "contract"}
_WHITESPACE = re.compile(r"\s+")


def clean_text(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return _WHITESPACE.sub(" ", value).strip()


def strip_html(raw: str | None, max_length: int = DEFAULT_DESCRIPTION_LENGTH) -> str:
    """Plain-text description from an HTML fragment; entity-escaped HTML is unescaped first."""
    if not raw:
        return ""
    text = BeautifulSoup(raw, "html.parser").get_text(" ")
    if "<" in text and ">" in text:
        text = BeautifulSoup(text, "html.parser").get_text(" ")
    return clean_text(text)[:max_length]


def split_location(raw: str | None) -> tuple[str, str]:
    """'City, Region, Country' -> (city, country); a single part is treated as the country."""
    parts = [part.strip() for part in (raw or "").split(",") if part.strip()]
    if not parts:
        return "", ""
    if len(parts) == 1:
        return "", parts[0]
    return parts[0], parts[-1]


def resolve_country_code(country: str | None) -> str:
    lowered = (country or "").strip().lower()
    if not lowered:
        return ""
    if lowered in COUNTRY_CODE_MAP:
        return COUNTRY_CODE_MAP[lowered]
    if len(lowered) == 2 and lowered.upper() in COUNTRY_TO_REGION:
        return lowered.upper()
    for name, code in COUNTRY_CODE_MAP.items():
        if len(name) > 3 and name in lowered:
            return code
    return ""


def region_for_country_code(country_code: str | None) -> str | None:
    if not country_code:
        return None
    return COUNTRY_TO_REGION.get(country_code.upper(), DEFAULT_REGION)


def infer_category(title: str) -> PositionCategory:
    lowered = title.lower()
    for category, pattern in _CATEGORY_PATTERNS:
        if pattern.search(lowered):
            return category
    return "high-school"


def map_contract_type(types: Iterable[str] | None = None, terms: Iterable[str] | None = None) -> ContractType:
    lowered_types = {value.strip().lower() for value in types or () if isinstance(value, str)}
    lowered_terms = {value.strip().lower() for value in terms or () if isinstance(value, str)}
    if lowered_types & _PART_TIME:
        return "Part-time"
    if lowered_terms & _CONTRACT_TERMS or lowered_types & _CONTRACT_TERMS:
        return "Contract"
    return "Full-time"


def iso_date(value: Any) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.date().isoformat()
