"""Unit tests for auth/identity.py -- identifier normalization and origin extraction."""

import pytest
from starlette.datastructures import Headers

from auth.identity import extract_origin, normalize_identifier


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("admin@example.com", "admin@example.com"),
        ("  Admin@Example.COM\t", "admin@example.com"),
        ("", ""),
    ],
)
def test_normalize_identifier(raw, expected):
    assert normalize_identifier(raw) == expected


def test_forwarded_for_first_entry_wins():
    headers = {"x-forwarded-for": " 198.51.100.4 , 10.0.0.1", "x-real-ip": "10.0.0.9"}
    assert extract_origin(headers) == "198.51.100.4"


def test_real_ip_fallback():
    assert extract_origin({"x-real-ip": "10.0.0.9"}) == "10.0.0.9"


def test_empty_forwarded_for_falls_back():
    assert extract_origin({"x-forwarded-for": "", "x-real-ip": "10.0.0.9"}) == "10.0.0.9"


def test_unknown_without_headers():
    assert extract_origin({}) == "unknown"
    assert extract_origin(None) == "unknown"


def test_starlette_headers_are_case_insensitive():
    headers = Headers(raw=[(b"X-Forwarded-For", b"203.0.113.9")])
    assert extract_origin(headers) == "203.0.113.9"
