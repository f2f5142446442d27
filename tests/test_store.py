"""Unit tests for auth/store.py -- identity persistence.

Covers:
- unique constraints on username/email/phone/membership_no
- lookup by email or phone
- conditional activate() consumes a code at most once
- update_identity field whitelist
- find_conflict exclude_id for self-edits
"""

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import Identity
from auth.store import IdentityStore


def _identity(**overrides) -> Identity:
    values = {
        "username": "alice",
        "email": "a@x.com",
        "phone": "+15550100",
        "membership_no": "M001",
        "hashed_password": "not-a-real-hash",
        "role": "member",
    }
    values.update(overrides)
    return Identity(**values)


class TestCreate:
    def test_create_and_read_back(self, store: IdentityStore) -> None:
        identity_id = store.create_identity(_identity())
        stored = store.get_by_id(identity_id)
        assert stored.username == "alice"
        assert stored.is_verified is False
        assert stored.is_blocked is False
        assert stored.pending_code is None
        assert stored.created_at

    @pytest.mark.parametrize("field", ["username", "email", "phone", "membership_no"])
    def test_unique_fields(self, store: IdentityStore, field: str) -> None:
        store.create_identity(_identity())
        clash = _identity(username="bob", email="b@x.com", phone="+15550200", membership_no="M002")
        setattr(clash, field, getattr(_identity(), field))
        with pytest.raises(IntegrityError):
            store.create_identity(clash)

    def test_has_identities(self, store: IdentityStore) -> None:
        assert store.has_identities() is False
        store.create_identity(_identity())
        assert store.has_identities() is True


class TestLookup:
    def test_get_by_identifier_email_or_phone(self, store: IdentityStore) -> None:
        identity_id = store.create_identity(_identity())
        assert store.get_by_identifier("a@x.com").id == identity_id
        assert store.get_by_identifier("+15550100").id == identity_id
        assert store.get_by_identifier("M001") is None

    def test_missing_returns_none(self, store: IdentityStore) -> None:
        assert store.get_by_id(42) is None
        assert store.get_by_email("ghost@x.com") is None

    def test_find_conflict_excludes_self(self, store: IdentityStore) -> None:
        identity_id = store.create_identity(_identity())
        assert store.find_conflict(email="a@x.com").id == identity_id
        assert store.find_conflict(email="a@x.com", exclude_id=identity_id) is None
        assert store.find_conflict() is None

    def test_list_is_oldest_first(self, store: IdentityStore) -> None:
        first = store.create_identity(_identity())
        second = store.create_identity(
            _identity(username="bob", email="b@x.com", phone="+15550200", membership_no="M002")
        )
        assert [i.id for i in store.list_identities()] == [first, second]


class TestActivate:
    def test_activate_with_live_code(self, store: IdentityStore) -> None:
        identity_id = store.create_identity(_identity())
        store.set_pending_code(identity_id, "123456", "2026-01-01T12:02:00+00:00")
        assert store.activate(identity_id, "123456") is True
        stored = store.get_by_id(identity_id)
        assert stored.is_verified is True
        assert stored.pending_code is None
        assert stored.pending_code_expiry is None

    def test_activate_is_single_use(self, store: IdentityStore) -> None:
        identity_id = store.create_identity(_identity())
        store.set_pending_code(identity_id, "123456", "2026-01-01T12:02:00+00:00")
        assert store.activate(identity_id, "123456") is True
        assert store.activate(identity_id, "123456") is False

    def test_activate_with_replaced_code(self, store: IdentityStore) -> None:
        identity_id = store.create_identity(_identity())
        store.set_pending_code(identity_id, "111111", "2026-01-01T12:02:00+00:00")
        store.set_pending_code(identity_id, "222222", "2026-01-01T12:03:00+00:00")
        assert store.activate(identity_id, "111111") is False
        assert store.get_by_id(identity_id).is_verified is False

    def test_set_pending_code_unknown_id(self, store: IdentityStore) -> None:
        assert store.set_pending_code(99, "123456", "2026-01-01T12:02:00+00:00") is False


class TestUpdateAndDelete:
    def test_update_whitelisted_fields(self, store: IdentityStore) -> None:
        identity_id = store.create_identity(_identity())
        assert store.update_identity(identity_id, is_blocked=True, role="admin") is True
        stored = store.get_by_id(identity_id)
        assert stored.is_blocked is True
        assert stored.role == "admin"

    def test_update_rejects_unknown_fields(self, store: IdentityStore) -> None:
        identity_id = store.create_identity(_identity())
        with pytest.raises(ValueError):
            store.update_identity(identity_id, is_verified=True)

    def test_update_collision(self, store: IdentityStore) -> None:
        store.create_identity(_identity())
        other = store.create_identity(
            _identity(username="bob", email="b@x.com", phone="+15550200", membership_no="M002")
        )
        with pytest.raises(IntegrityError):
            store.update_identity(other, email="a@x.com")

    def test_delete(self, store: IdentityStore) -> None:
        identity_id = store.create_identity(_identity())
        assert store.delete_identity(identity_id) is True
        assert store.get_by_id(identity_id) is None
        assert store.delete_identity(identity_id) is False
