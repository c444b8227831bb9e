"""
auth/audit.py -- Login audit records.

Two sinks:
  - the "admingate.audit" logger, written synchronously for every grant and
    denial by the verifier,
  - the auth_events table, written by the route layer as a background task
    once the response is on its way.

Neither sink may fail a login. Errors from either are caught here; a store
error is reported on the operational logger, a logging error is dropped.
The plaintext secret never reaches this module.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from auth.models import AuthEvent, VerificationResult
from auth.store import PrincipalStore

audit_logger = logging.getLogger("admingate.audit")
logger = logging.getLogger("admingate.auth")


class AuditTrail:
    def __init__(self, store: PrincipalStore) -> None:
        self.store = store

    def log_verification(self, result: VerificationResult, at: datetime) -> None:
        """Write one audit line for a verifier outcome."""
        try:
            if result.granted:
                audit_logger.info(
                    "login granted identifier=%s at=%s origin=%s",
                    result.identifier,
                    at.isoformat(),
                    result.origin,
                )
            else:
                audit_logger.warning(
                    "login denied identifier=%s reason=%s origin=%s",
                    result.identifier,
                    result.reason.value,
                    result.origin,
                )
        except Exception:  # noqa: BLE001 -- audit output must never surface to the caller
            pass

    def record(self, identifier: str, action: str, outcome: str, origin: str = "unknown") -> None:
        """Persist one auth event. Store failures are logged and dropped."""
        try:
            self.store.record_event(AuthEvent(identifier=identifier, action=action, outcome=outcome, origin=origin))
        except SQLAlchemyError:
            logger.warning("Could not persist auth event %s/%s for %s", action, outcome, identifier)

    def record_verification(self, result: VerificationResult) -> None:
        self.record(result.identifier, "login", result.outcome, result.origin)
