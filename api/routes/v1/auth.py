"""
api/routes/v1/auth.py -- Registration, verification and login endpoints.

Routes:
  POST /api/v1/auth/register     -- create pending identity, email an OTP; 201
  POST /api/v1/auth/resend-otp   -- replace the pending OTP; 200
  POST /api/v1/auth/verify-otp   -- confirm OTP, activate, issue token; 200
  POST /api/v1/auth/login        -- email or phone + password, issue token; 200
  GET  /api/v1/auth/profile      -- current identity (requires auth)

Security:
  Login uses IdentityLifecycle.login(), which always runs bcrypt (timing
  equalization) and collapses unknown-identifier and wrong-password into one
  invalid_credentials signal. Do NOT inline a lookup + password check here.
  Token-bearing responses carry Cache-Control: no-store.

The register/resend/login handlers are plain `def` so FastAPI runs them in
its thread pool: bcrypt and SMTP are blocking.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.models import (
    AuthResponse,
    IdentityResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResendOtpRequest,
    VerifyOtpRequest,
)
from auth.dependencies import get_current_identity, get_lifecycle
from auth.lifecycle import IdentityLifecycle, Session
from auth.models import Identity

# Auth policy:
# - POST /api/v1/auth/register:    public
# - POST /api/v1/auth/resend-otp:  public
# - POST /api/v1/auth/verify-otp:  public
# - POST /api/v1/auth/login:       public
# - GET  /api/v1/auth/profile:     requires auth (get_current_identity)
router = APIRouter()


def _session_response(session: Session, message: str) -> JSONResponse:
    resp = JSONResponse(
        status_code=200,
        content=AuthResponse(
            message=message,
            access_token=session.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=session.expires_in,
            user=IdentityResponse.from_identity(session.identity),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/register", response_model=MessageResponse, status_code=201)
def register(body: RegisterRequest, lifecycle: IdentityLifecycle = Depends(get_lifecycle)) -> MessageResponse:
    """Create an unverified identity and email it a one-time code."""
    lifecycle.register(
        username=body.username,
        email=body.email,
        phone=body.phone,
        membership_no=body.membership_no,
        password=body.password,
    )
    return MessageResponse(message="Registration successful. Please check your email for OTP verification.")


@router.post("/auth/resend-otp", response_model=MessageResponse)
def resend_otp(body: ResendOtpRequest, lifecycle: IdentityLifecycle = Depends(get_lifecycle)) -> MessageResponse:
    """Issue a new code, invalidating the previous one. Only while unverified."""
    lifecycle.resend_otp(body.email)
    return MessageResponse(message="New OTP sent successfully.")


@router.post("/auth/verify-otp", response_model=AuthResponse)
def verify_otp(body: VerifyOtpRequest, lifecycle: IdentityLifecycle = Depends(get_lifecycle)) -> JSONResponse:
    """Confirm the emailed code; on success the identity is active and gets a token."""
    session = lifecycle.verify_otp(body.email, body.otp)
    return _session_response(session, "OTP verified successfully.")


@router.post("/auth/login", response_model=AuthResponse)
def login(body: LoginRequest, lifecycle: IdentityLifecycle = Depends(get_lifecycle)) -> JSONResponse:
    """Authenticate with email or phone plus password."""
    session = lifecycle.login(body.identifier, body.password)
    return _session_response(session, "Login successful.")


@router.get("/auth/profile", response_model=IdentityResponse)
async def profile(
    identity: Identity = Depends(get_current_identity),
    lifecycle: IdentityLifecycle = Depends(get_lifecycle),
) -> IdentityResponse:
    """Return the public projection of the authenticated identity."""
    return IdentityResponse.from_identity(lifecycle.get_profile(identity.id))
