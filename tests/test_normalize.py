from jobsweep.adapters.normalize import (
    infer_category,
    iso_date,
    map_contract_type,
    region_for_country_code,
    resolve_country_code,
    split_location,
    strip_html,
)
from jobsweep.core.urls import host_of, normalize_url, resolve_listing_url


def test_normalize_url_drops_tracking_params_fragment_and_default_port() -> None:
    normalized = normalize_url("HTTPS://Jobs.Example.org:443/careers/?utm_source=x&b=2&a=1#apply")
    assert normalized == "https://jobs.example.org/careers?a=1&b=2"


def test_resolve_listing_url_handles_relative_and_rejects_non_http() -> None:
    assert resolve_listing_url("/vacancies/12", "https://school.example/careers") == "https://school.example/vacancies/12"
    assert resolve_listing_url("javascript:void(0)", "https://school.example/") is None
    assert resolve_listing_url("mailto:hr@school.example", "https://school.example/") is None
    assert resolve_listing_url("#top", "https://school.example/") is None
    assert host_of("https://Jobs.Example.org/x") == "jobs.example.org"


def test_strip_html_unescapes_and_truncates() -> None:
    assert strip_html("&lt;p&gt;Teach &amp;amp; inspire&lt;/p&gt;") == "Teach & inspire"
    assert strip_html("<ul><li>One</li>\n<li>Two</li></ul>") == "One Two"
    assert len(strip_html("<p>" + "x" * 2000 + "</p>")) == 800
    assert strip_html(None) == ""


def test_location_and_country_resolution() -> None:
    assert split_location("Dubai, United Arab Emirates") == ("Dubai", "United Arab Emirates")
    assert split_location("Bangkok, Bangkok Province, Thailand") == ("Bangkok", "Thailand")
    assert split_location("Japan") == ("", "Japan")
    assert resolve_country_code("United Arab Emirates") == "AE"
    assert resolve_country_code("UK") == "GB"
    assert resolve_country_code("Republic of Korea") == "KR"
    assert resolve_country_code("Atlantis") == ""
    assert region_for_country_code("AE") == "middle-east"
    assert region_for_country_code("XX") == "europe"
    assert region_for_country_code("") is None


def test_infer_category_from_title() -> None:
    assert infer_category("Head of Secondary") == "admin"
    assert infer_category("Teaching Assistant") == "support-staff"
    assert infer_category("Primary Class Teacher") == "elementary"
    assert infer_category("Middle School Science Teacher") == "middle-school"
    assert infer_category("IB Diploma Chemistry Teacher") == "high-school"
    assert infer_category("Teacher of Music") == "high-school"


def test_contract_type_and_dates() -> None:
    assert map_contract_type(["Part Time"], []) == "Part-time"
    assert map_contract_type(["Full Time"], ["Fixed Term"]) == "Contract"
    assert map_contract_type(None, None) == "Full-time"
    assert iso_date("2026-08-15T00:00:00.000Z") == "2026-08-15"
    assert iso_date("not a date") is None
