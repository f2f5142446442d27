"""
auth/models.py -- Domain dataclasses for identity entities.

Pattern: Data class (pure data container, almost zero logic). The store owns
persistence, the lifecycle owns transitions; this module owns shape and the
canonical form of the two login identifiers (email, phone).

Layer rule: no imports from api/, core/, or realtime/.
"""

from __future__ import annotations

from dataclasses import dataclass

ROLE_MEMBER = "member"
ROLE_ADMIN = "admin"
ROLES = (ROLE_MEMBER, ROLE_ADMIN)


def normalize_email(value: str) -> str:
    return value.strip().lower()


def normalize_phone(value: str) -> str:
    """Drop spaces, dashes and parentheses so '+1 (555) 010-0000' stores as '+15550100000'."""
    return "".join(ch for ch in value if ch not in " -()")


@dataclass
class Identity:
    """A self-registered community account.

    username, email, phone and membership_no are each unique across the store.
    pending_code / pending_code_expiry hold the live one-time code and are
    either both set or both None. pending_code_expiry and created_at are
    ISO 8601 UTC strings, the same representation the store persists.

    is_verified flips to True exactly once, when the emailed code is
    confirmed. is_blocked is an admin-controlled flag layered on top.
    """

    username: str
    email: str
    phone: str
    membership_no: str
    hashed_password: str
    role: str = ROLE_MEMBER  # "member" or "admin"
    id: int | None = None
    is_verified: bool = False
    is_blocked: bool = False
    pending_code: str | None = None
    pending_code_expiry: str | None = None
    profile_photo: str | None = None  # URL owned by external object storage
    created_at: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
