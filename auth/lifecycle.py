"""
auth/lifecycle.py -- Identity lifecycle: which transitions are legal.

States:
  PENDING_VERIFICATION  registered, email not yet confirmed (is_verified=False)
  ACTIVE                email confirmed
  BLOCKED               ACTIVE with the admin-controlled is_blocked flag set
  (deleted)             record removed; terminal, not representable here

Transitions:
  register           -> PENDING_VERIFICATION    DuplicateIdentity
  resend_otp         PENDING -> PENDING         NotFound, AlreadyVerified
  verify_otp         PENDING -> ACTIVE          NotFound, InvalidOrExpiredOtp
  toggle_block       ACTIVE <-> BLOCKED         NotFound, ProtectedRole
  delete             * -> deleted               NotFound, ProtectedRole

login() is a query, not a transition. Password mismatch and unknown
identifier are collapsed into InvalidCredentials; NotVerified and
AccountBlocked are only reported once the password has been proven, so the
distinguishable messages never leak account existence to a guesser.

The store is the only mutator of persisted state; this class decides whether
a mutation may happen at all.

Layer rule: no imports from api/, core/, or realtime/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    AccountBlocked,
    AlreadyVerified,
    DuplicateIdentity,
    InvalidCredentials,
    NotFound,
    NotVerified,
    ValidationFailed,
)
from auth.gate import ensure_mutable_target
from auth.mailer import redact_email
from auth.models import ROLE_MEMBER, ROLES, Identity
from auth.otp import OtpEngine
from auth.store import IdentityStore
from auth.tokens import SessionTokenCodec, check_credentials, hash_password

logger = logging.getLogger("samaj.auth")


class IdentityState(str, Enum):
    PENDING_VERIFICATION = "pending_verification"
    ACTIVE = "active"
    BLOCKED = "blocked"


def state_of(identity: Identity) -> IdentityState:
    if not identity.is_verified:
        return IdentityState.PENDING_VERIFICATION
    if identity.is_blocked:
        return IdentityState.BLOCKED
    return IdentityState.ACTIVE


class OtpMailer(Protocol):
    def send_otp(self, to_email: str, code: str) -> None: ...


@dataclass
class Session:
    """A freshly issued bearer token and the identity it was issued for."""

    token: str
    identity: Identity
    expires_in: int


class IdentityLifecycle:
    """Registration, verification, login and admin transitions."""

    def __init__(
        self,
        store: IdentityStore,
        otp: OtpEngine,
        codec: SessionTokenCodec,
        mailer: OtpMailer,
    ) -> None:
        self.store = store
        self.otp = otp
        self.codec = codec
        self.mailer = mailer

    # ------------------------------------------------------------------
    # Self-service
    # ------------------------------------------------------------------

    def register(
        self,
        *,
        username: str,
        email: str,
        phone: str,
        membership_no: str,
        password: str,
    ) -> Identity:
        """Create a PENDING_VERIFICATION identity and email it a code.

        If delivery fails the record and its code remain; the caller
        recovers through resend_otp().
        """
        if self.store.find_conflict(username=username, email=email, phone=phone, membership_no=membership_no):
            raise DuplicateIdentity()
        identity = Identity(
            username=username,
            email=email,
            phone=phone,
            membership_no=membership_no,
            hashed_password=hash_password(password),
            role=ROLE_MEMBER,
        )
        try:
            identity.id = self.store.create_identity(identity)
        except IntegrityError as exc:
            raise DuplicateIdentity() from exc
        logger.info("Registered identity %s (%s)", identity.id, redact_email(email))
        code = self.otp.issue(identity)
        self.mailer.send_otp(email, code)
        return identity

    def resend_otp(self, email: str) -> None:
        identity = self.store.get_by_email(email)
        if identity is None:
            raise NotFound()
        if identity.is_verified:
            raise AlreadyVerified()
        code = self.otp.issue(identity)
        self.mailer.send_otp(email, code)

    def verify_otp(self, email: str, code: str) -> Session:
        identity = self.store.get_by_email(email)
        if identity is None:
            raise NotFound()
        activated = self.otp.verify(identity, code)
        logger.info("Identity %s verified", activated.id)
        return self._session_for(activated)

    def login(self, identifier: str, password: str) -> Session:
        identity = check_credentials(self.store, identifier, password)
        if identity is None:
            logger.info("Login failed: invalid credentials")
            raise InvalidCredentials()
        if not identity.is_verified:
            raise NotVerified()
        if identity.is_blocked:
            logger.warning("Login refused for blocked identity %s", identity.id)
            raise AccountBlocked(status_code=401)
        return self._session_for(identity)

    def get_profile(self, identity_id: int) -> Identity:
        identity = self.store.get_by_id(identity_id)
        if identity is None:
            raise NotFound()
        return identity

    def update_profile(self, identity: Identity, **fields) -> Identity:
        """Apply a self-edit of username/email/phone/membership_no."""
        changes = {k: v for k, v in fields.items() if v is not None}
        return self._apply_changes(identity, changes)

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def list_identities(self) -> list[Identity]:
        return self.store.list_identities()

    def toggle_block(self, target_id: int) -> Identity:
        target = ensure_mutable_target(self.get_profile(target_id))
        self.store.update_identity(target.id, is_blocked=not target.is_blocked)
        logger.warning("Identity %s %s", target.id, "unblocked" if target.is_blocked else "blocked")
        return self.get_profile(target.id)

    def admin_update(self, target_id: int, **fields) -> Identity:
        target = ensure_mutable_target(self.get_profile(target_id))
        changes = {k: v for k, v in fields.items() if v is not None}
        if "role" in changes and changes["role"] not in ROLES:
            raise ValidationFailed(detail=[{"field": "role", "message": f"Role must be one of {list(ROLES)}."}])
        return self._apply_changes(target, changes)

    def delete(self, target_id: int) -> None:
        target = ensure_mutable_target(self.get_profile(target_id))
        if not self.store.delete_identity(target.id):
            raise NotFound()
        logger.warning("Identity %s deleted", target.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _session_for(self, identity: Identity) -> Session:
        return Session(
            token=self.codec.issue(identity),
            identity=identity,
            expires_in=self.codec.expire_seconds,
        )

    def _apply_changes(self, identity: Identity, changes: dict) -> Identity:
        if not changes:
            return identity
        unique = {k: changes[k] for k in ("username", "email", "phone", "membership_no") if k in changes}
        if unique and self.store.find_conflict(exclude_id=identity.id, **unique):
            raise DuplicateIdentity()
        try:
            updated = self.store.update_identity(identity.id, **changes)
        except IntegrityError as exc:
            raise DuplicateIdentity() from exc
        if not updated:
            raise NotFound()
        return self.get_profile(identity.id)
