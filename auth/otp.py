"""
auth/otp.py -- One-time email verification codes.

A code is OTP_LENGTH (6) decimal digits drawn from `secrets`, valid for
otp_ttl_seconds (120 by default) from issuance. At most one code is live
per identity: issue() overwrites whatever was stored before.

verify() semantics:
  - no pending code, wrong code, or now >= expiry -> InvalidOrExpiredOtp
  - a wrong guess never clears the stored code
  - an expired code is also left in place; resend is the recovery path
  - success clears the code and marks the identity verified in one
    conditional UPDATE (IdentityStore.activate), so a code is single-use
    even under concurrent verification

Layer rule: no imports from api/, core/, or realtime/.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from auth.errors import InvalidOrExpiredOtp, NotFound
from auth.models import Identity
from auth.store import IdentityStore

logger = logging.getLogger("samaj.otp")

Clock = Callable[[], datetime]

# api/models.py builds the verify-otp request pattern from this.
OTP_LENGTH = 6


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_code(length: int = OTP_LENGTH) -> str:
    """Return `length` random decimal digits (leading zeros allowed)."""
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


class OtpEngine:
    """Issue and check one-time codes stored on the identity record."""

    def __init__(
        self,
        store: IdentityStore,
        *,
        ttl_seconds: int = 120,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def issue(self, identity: Identity) -> str:
        """Generate, persist and return a fresh code for `identity`."""
        code = generate_code()
        expiry = (self.clock() + timedelta(seconds=self.ttl_seconds)).isoformat()
        if not self.store.set_pending_code(identity.id, code, expiry):
            raise NotFound()
        identity.pending_code = code
        identity.pending_code_expiry = expiry
        logger.info("OTP issued for identity %s", identity.id)
        return code

    def verify(self, identity: Identity, supplied_code: str) -> Identity:
        """Consume `supplied_code` and return the activated identity."""
        if identity.pending_code is None or identity.pending_code_expiry is None:
            raise InvalidOrExpiredOtp()
        if not hmac.compare_digest(identity.pending_code.encode(), supplied_code.encode()):
            logger.info("OTP mismatch for identity %s", identity.id)
            raise InvalidOrExpiredOtp()
        if self.clock() >= datetime.fromisoformat(identity.pending_code_expiry):
            logger.info("Expired OTP presented for identity %s", identity.id)
            raise InvalidOrExpiredOtp()
        if not self.store.activate(identity.id, identity.pending_code):
            # Consumed or replaced since the caller read the record.
            raise InvalidOrExpiredOtp()
        return replace(identity, is_verified=True, pending_code=None, pending_code_expiry=None)
