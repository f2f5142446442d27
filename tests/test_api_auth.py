"""
tests/test_api_auth.py -- Integration tests for the /api/v1/auth endpoints.

Covers:
  - full journey: register -> resend -> verify -> login -> profile
  - duplicate registration is a 400 and creates nothing
  - request validation returns 400 with per-field detail
  - token responses are never cached
  - the profile never exposes the password hash or OTP state
  - 401 for missing/invalid tokens, 403 for blocked identities
"""

from __future__ import annotations

import pytest

from api.main import build_lifecycle
from api.models import VerifyOtpRequest
from auth.otp import OTP_LENGTH

ALICE = {
    "username": "alice",
    "email": "a@x.com",
    "phone": "+15550100",
    "membership_no": "M001",
    "password": "pw123456",
}


def _register(client, **overrides):
    return client.post("/api/v1/auth/register", json={**ALICE, **overrides})


def test_registration_journey(app_env):
    """Register, resend, verify with the newest code, log in, read profile."""
    client = app_env.client

    resp = _register(client)
    assert resp.status_code == 201
    assert "check your email" in resp.json()["message"]
    first_code = app_env.mailer.last_code("a@x.com")

    resp = client.post("/api/v1/auth/resend-otp", json={"email": "a@x.com"})
    assert resp.status_code == 200
    second_code = app_env.mailer.last_code("a@x.com")

    if first_code != second_code:
        resp = client.post("/api/v1/auth/verify-otp", json={"email": "a@x.com", "otp": first_code})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_otp"

    resp = client.post("/api/v1/auth/verify-otp", json={"email": "a@x.com", "otp": second_code})
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "OTP verified successfully."
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 7 * 24 * 60 * 60
    assert body["user"]["is_active"] is True
    assert resp.headers["cache-control"] == "no-store"

    resp = client.post("/api/v1/auth/login", json={"identifier": "a@x.com", "password": "pw123456"})
    assert resp.status_code == 200
    token = resp.json()["access_token"]
    assert resp.headers["cache-control"] == "no-store"

    resp = client.get("/api/v1/auth/profile", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    profile = resp.json()
    assert profile["username"] == "alice"
    assert profile["role"] == "member"
    for secret in ("password", "hashed_password", "pending_code", "pending_code_expiry", "otp"):
        assert secret not in profile


def test_register_normalizes_email_and_phone(app_env):
    resp = _register(app_env.client, email="  A@X.COM ", phone="+1 (555) 010-0")
    assert resp.status_code == 201
    stored = app_env.store.get_by_email("a@x.com")
    assert stored is not None
    assert stored.phone == "+15550100"


def test_duplicate_registration_rejected(app_env):
    assert _register(app_env.client).status_code == 201
    resp = _register(app_env.client, username="bob", email="b@x.com", phone="+15550200")
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "duplicate_identity"
    assert app_env.store.get_by_email("b@x.com") is None


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"email": "not-an-email"}, "email"),
        ({"phone": "12"}, "phone"),
        ({"password": "123"}, "password"),
        ({"password": "x" * 73}, "password"),
    ],
)
def test_register_validation_is_400_with_fields(app_env, overrides, field):
    resp = _register(app_env.client, **overrides)
    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == "validation_error"
    assert field in [f["field"] for f in error["detail"]]


def test_register_mail_failure_is_502(app_env):
    app_env.mailer.fail = True
    resp = _register(app_env.client)
    assert resp.status_code == 502
    assert resp.json()["error"]["code"] == "upstream_failure"


def test_verify_otp_rejects_malformed_code(app_env):
    _register(app_env.client)
    resp = app_env.client.post("/api/v1/auth/verify-otp", json={"email": "a@x.com", "otp": "12ab"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"


def test_verify_otp_after_expiry(app_env):
    _register(app_env.client)
    app_env.clock.advance(120)
    resp = app_env.client.post(
        "/api/v1/auth/verify-otp",
        json={"email": "a@x.com", "otp": app_env.mailer.last_code("a@x.com")},
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "invalid_otp"


def test_resend_for_verified_and_unknown(app_env):
    identity = app_env.seed()
    resp = app_env.client.post("/api/v1/auth/resend-otp", json={"email": identity.email})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "already_verified"

    resp = app_env.client.post("/api/v1/auth/resend-otp", json={"email": "ghost@x.com"})
    assert resp.status_code == 404


def test_login_by_phone(app_env):
    identity = app_env.seed(phone="+15550999")
    resp = app_env.client.post("/api/v1/auth/login", json={"identifier": "+1 555 0999", "password": "pw123456"})
    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == identity.id


def test_login_failures(app_env):
    unverified = app_env.seed(is_verified=False)
    blocked = app_env.seed(is_blocked=True)
    client = app_env.client

    resp = client.post("/api/v1/auth/login", json={"identifier": "ghost@x.com", "password": "pw123456"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "invalid_credentials"

    resp = client.post("/api/v1/auth/login", json={"identifier": unverified.email, "password": "pw123456"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "not_verified"

    resp = client.post("/api/v1/auth/login", json={"identifier": blocked.email, "password": "pw123456"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "account_blocked"


def test_profile_requires_token(app_env):
    resp = app_env.client.get("/api/v1/auth/profile")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"

    resp = app_env.client.get("/api/v1/auth/profile", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "invalid_token"


def test_profile_for_blocked_identity_is_403(app_env):
    identity = app_env.seed()
    headers = app_env.headers_for(identity)
    app_env.store.update_identity(identity.id, is_blocked=True)
    resp = app_env.client.get("/api/v1/auth/profile", headers=headers)
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "account_blocked"


def test_production_wired_codes_fit_the_verify_schema(store, codec, mailer, seed):
    """The engine build_lifecycle wires by default issues codes verify-otp accepts."""
    lifecycle = build_lifecycle(store, codec, mailer)
    identity = seed(is_verified=False)
    lifecycle.resend_otp(identity.email)
    code = mailer.last_code(identity.email)
    assert len(code) == OTP_LENGTH
    assert VerifyOtpRequest(email=identity.email, otp=code).otp == code


def test_mailed_code_verifies_over_http(app_env):
    _register(app_env.client)
    code = app_env.mailer.last_code("a@x.com")
    assert len(code) == OTP_LENGTH
    resp = app_env.client.post("/api/v1/auth/verify-otp", json={"email": "a@x.com", "otp": code})
    assert resp.status_code == 200
