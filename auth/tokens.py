"""
auth/tokens.py -- Secret hashing and signed session claims.

Security design decisions:
  Secrets: bcrypt, used directly (no passlib wrapper). Its cost factor makes
       offline guessing expensive and checkpw() compares in constant time.
       _DUMMY_HASH lets the verifier run a full bcrypt check even when the
       identifier does not exist, so response time does not reveal whether
       an account exists.

  Sessions: python-jose HS256 JWTs signed with SECRET_KEY. Claims carry the
       principal id, identifier, role, issued-at and expiry. decode() returns
       None on any failure -- the route layer turns that into a 401.

       Expiry is checked against the issuer's injected clock rather than
       jose's internal wall clock, so the sliding-session rules can be tested
       with a fake clock. The signature is always verified by jose.

  Sliding re-issue: a session presented more than refresh_after after its
       issued-at is silently re-signed with a fresh issued-at and expiry. A
       principal who keeps making requests inside each refresh window keeps a
       live session; one that goes idle for max_age is logged out.

  Cookie: httponly, samesite=lax, path=/, secure when SECURE_COOKIES=true.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.models import SessionClaims
from core.clock import Clock, utcnow

logger = logging.getLogger("admingate.auth")

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Secret hashing (bcrypt -- direct usage)
# ---------------------------------------------------------------------------


def hash_secret(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext secret.

    Secrets longer than 72 bytes are truncated by bcrypt. The login request
    model caps the field at 255 characters.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_secret(plain: str, hashed: str) -> bool:
    """Return True if the plaintext secret matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the store; treat as a mismatch.
        return False


# Computed once at module load so the first unknown-identifier attempt is not
# measurably slower than later ones.
_DUMMY_HASH: str = hash_secret("admingate_timing_dummy")


def burn_dummy_check(plain: str) -> None:
    """Run a bcrypt comparison whose result is discarded (timing equalization)."""
    verify_secret(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Session issuer
# ---------------------------------------------------------------------------


class SessionIssuer:
    """Mints, validates and re-signs session tokens.

    Usage:
        issuer = SessionIssuer(secret_key)
        token, claims = issuer.issue(principal.id, principal.identifier, principal.role)
        claims = issuer.decode(token)           # None if tampered or expired
        if issuer.needs_refresh(claims):
            token, claims = issuer.refresh(claims)
    """

    def __init__(
        self,
        secret_key: str,
        max_age: timedelta = timedelta(hours=2),
        refresh_after: timedelta = timedelta(minutes=30),
        cookie_name: str = "admin_session",
        secure_cookies: bool = False,
        clock: Clock = utcnow,
    ) -> None:
        self._secret_key = secret_key
        self.max_age = max_age
        self.refresh_after = refresh_after
        self.cookie_name = cookie_name
        self.secure_cookies = secure_cookies
        self._clock = clock

    def issue(self, principal_id: int, identifier: str, role: str) -> tuple[str, SessionClaims]:
        """Sign fresh claims for a verified principal. Returns (token, claims)."""
        # JWT timestamps have one-second resolution; truncate so the returned
        # claims equal what decode() will later produce.
        issued_at = self._clock().replace(microsecond=0)
        claims = SessionClaims(
            principal_id=principal_id,
            identifier=identifier,
            role=role,
            issued_at=issued_at,
            expires_at=issued_at + self.max_age,
        )
        payload = {
            "sub": identifier,
            "pid": principal_id,
            "role": role,
            "iat": int(claims.issued_at.timestamp()),
            "exp": int(claims.expires_at.timestamp()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM), claims

    def decode(self, token: str) -> SessionClaims | None:
        """Verify the signature and expiry of a token. Returns None on any failure."""
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError:
            return None
        try:
            claims = SessionClaims(
                principal_id=int(payload["pid"]),
                identifier=str(payload["sub"]),
                role=str(payload["role"]),
                issued_at=datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc),
                expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError):
            return None
        if claims.expires_at <= self._clock():
            return None
        return claims

    def needs_refresh(self, claims: SessionClaims) -> bool:
        return self._clock() - claims.issued_at > self.refresh_after

    def refresh(self, claims: SessionClaims) -> tuple[str, SessionClaims]:
        """Re-sign existing claims with a fresh issued-at and expiry."""
        return self.issue(claims.principal_id, claims.identifier, claims.role)

    # ------------------------------------------------------------------
    # Cookie transport
    # ------------------------------------------------------------------

    def set_cookie(self, response, token: str) -> None:
        """Write the session token as an httpOnly cookie on the response.

        max_age matches the claim expiry so both lapse together.
        """
        response.set_cookie(
            self.cookie_name,
            value=token,
            httponly=True,
            samesite="lax",
            secure=self.secure_cookies,
            path="/",
            max_age=int(self.max_age.total_seconds()),
        )

    def clear_cookie(self, response) -> None:
        response.delete_cookie(self.cookie_name, path="/")
