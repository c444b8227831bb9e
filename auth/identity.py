"""
auth/identity.py -- Identifier normalization and request origin extraction.

Both helpers are pure functions over plain values so they can be shared by
the verifier, the store and the route layer without importing fastapi here.
"""

from __future__ import annotations

from collections.abc import Mapping

UNKNOWN_ORIGIN = "unknown"


def normalize_identifier(raw: str) -> str:
    """Return the canonical form of a login identifier.

    Identifiers are e-mail style strings; comparison is case-insensitive, so
    "Admin@Example.com " and "admin@example.com" address the same principal
    in both the ephemeral limiter and the durable store.
    """
    return raw.strip().casefold()


def extract_origin(headers: Mapping[str, str] | None) -> str:
    """Best-effort client address for last_login_origin and audit records.

    Order: first entry of X-Forwarded-For, then X-Real-IP, then "unknown".
    Header lookups are case-insensitive on Starlette's Headers; plain dicts
    are matched on the lower-cased names.
    """
    if not headers:
        return UNKNOWN_ORIGIN
    forwarded = headers.get("x-forwarded-for") or headers.get("X-Forwarded-For") or ""
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    real_ip = (headers.get("x-real-ip") or headers.get("X-Real-IP") or "").strip()
    return real_ip or UNKNOWN_ORIGIN
