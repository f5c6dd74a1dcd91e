import hashlib

from jobsweep.services.fingerprint import fingerprint


def test_fingerprint_matches_sha256_of_normalized_triple() -> None:
    expected = hashlib.sha256(b"english teacher|british school of rome|https://jobs.example.org/1").hexdigest()
    assert fingerprint("English Teacher", "British School of Rome", "https://jobs.example.org/1") == expected


def test_fingerprint_ignores_case_and_surrounding_whitespace() -> None:
    base = fingerprint("Maths Teacher", "Acme School", "https://a.example/x")
    assert fingerprint("  maths teacher ", "ACME SCHOOL\n", " https://A.EXAMPLE/x") == base
    assert len(base) == 64


def test_fingerprint_changes_when_any_identity_field_changes() -> None:
    base = fingerprint("Maths Teacher", "Acme School", "https://a.example/x")
    assert fingerprint("Physics Teacher", "Acme School", "https://a.example/x") != base
    assert fingerprint("Maths Teacher", "Other School", "https://a.example/x") != base
    assert fingerprint("Maths Teacher", "Acme School", "https://a.example/y") != base
