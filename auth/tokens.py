"""
auth/tokens.py -- Session token codec and password hashing.

Security design decisions:
  JWT: python-jose with HS256. A token carries only the identity id (sub),
       the issue time and a fixed 7-day expiry. It is never stored and never
       revoked server-side -- the authorization gate re-reads the identity on
       every use, so blocking or deleting an account takes effect on the next
       request even though the token itself stays cryptographically valid.

       verify() returns None on any failure (bad structure, bad signature,
       expired, foreign algorithm). Distinct failures are deliberately
       collapsed so callers cannot become a decoding oracle.

  Secret: SessionTokenCodec refuses to be constructed with an empty secret.
       Settings already refuse to load without SECRET_KEY; the codec check
       keeps the guarantee for code that builds a codec directly.

  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization in check_credentials() so response time
       does not reveal whether an email or phone is registered.

Layer rule: no imports from api/, core/, or realtime/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.errors import ConfigurationError

if TYPE_CHECKING:
    from auth.models import Identity
    from auth.store import IdentityStore

logger = logging.getLogger("samaj.auth")

_ALGORITHM = "HS256"
_DEFAULT_EXPIRE_SECONDS = 7 * 24 * 60 * 60

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates input beyond 72 bytes; the API layer caps passwords at
    72 characters so nothing is silently dropped for ASCII passwords.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login is not measurably slower.
_DUMMY_HASH: str = hash_password("samaj_timing_dummy")


def check_credentials(store: IdentityStore, identifier: str, password: str) -> Identity | None:
    """Return the identity if identifier (email or phone) and password match.

    Always runs bcrypt whether or not the identifier exists:
    - Unknown identifier: bcrypt runs against _DUMMY_HASH (same cost)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Lifecycle flags are not inspected here; IdentityLifecycle.login() does that
    after the password has been proven.
    """
    identity = store.get_by_identifier(identifier)
    if identity is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, identity.hashed_password):
        return None
    return identity


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


class SessionTokenCodec:
    """Issue and verify stateless bearer tokens for verified identities."""

    def __init__(self, secret_key: str, expire_seconds: int = _DEFAULT_EXPIRE_SECONDS) -> None:
        if not secret_key:
            raise ConfigurationError("Session tokens require a configured SECRET_KEY.")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds

    def issue(self, identity: Identity, now: datetime | None = None) -> str:
        """Encode a signed JWT for `identity`, valid for expire_seconds.

        Refuses unverified identities: a token must never exist for an account
        that has not confirmed its email.
        """
        if identity.id is None or not identity.is_verified:
            raise ValueError("Session tokens are only issued to verified, persisted identities.")
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "sub": str(identity.id),
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + timedelta(seconds=self.expire_seconds)).timestamp()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> int | None:
        """Return the identity id bound to `token`, or None on any failure."""
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject.isdigit():
            return None
        if "exp" not in payload:
            return None
        return int(subject)
