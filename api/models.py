"""
API request and response models for the Samaj REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

IdentityResponse is the only shape an identity ever leaves the API in: it has
no field for the password hash or the pending one-time code.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Identity, normalize_email, normalize_phone
from auth.otp import OTP_LENGTH

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
# Optional leading +, then 7-15 digits (E.164 length range).
PHONE_PATTERN = r"^\+?[0-9]{7,15}$"
OTP_PATTERN = rf"^[0-9]{{{OTP_LENGTH}}}$"


def _normalize_email(value: Any) -> Any:
    return normalize_email(value) if isinstance(value, str) else value


def _normalize_phone(value: Any) -> Any:
    return normalize_phone(value) if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=3, max_length=64)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    phone: str = Field(pattern=PHONE_PATTERN)
    # bcrypt only reads the first 72 bytes; reject rather than truncate.
    password: str = Field(min_length=6, max_length=72)
    membership_no: str = Field(min_length=1, max_length=64)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return _normalize_email(value)

    @field_validator("phone", mode="before")
    @classmethod
    def normalize_phone(cls, value: Any) -> Any:
        return _normalize_phone(value)


class ResendOtpRequest(BaseModel):
    """Request body for POST /api/v1/auth/resend-otp."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return _normalize_email(value)


class VerifyOtpRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify-otp."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    otp: str = Field(pattern=OTP_PATTERN, description=f"The {OTP_LENGTH}-digit code from the verification email.")

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return _normalize_email(value)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. identifier is an email or phone."""

    model_config = ConfigDict(str_strip_whitespace=True)

    identifier: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)

    @field_validator("identifier", mode="before")
    @classmethod
    def normalize_identifier(cls, value: Any) -> Any:
        """Lowercase emails and strip phone punctuation; both are stored normalized."""
        if not isinstance(value, str):
            return value
        value = value.strip()
        if "@" in value:
            return _normalize_email(value)
        return _normalize_phone(value)


class ProfileUpdate(BaseModel):
    """Request body for PUT /api/v1/users/profile. Omitted fields are unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: Optional[str] = Field(default=None, min_length=3, max_length=64)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    membership_no: Optional[str] = Field(default=None, min_length=1, max_length=64)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return _normalize_email(value)

    @field_validator("phone", mode="before")
    @classmethod
    def normalize_phone(cls, value: Any) -> Any:
        return _normalize_phone(value)


class AdminIdentityUpdate(ProfileUpdate):
    """Request body for PUT /api/v1/users/{id}. Adds the role field."""

    role: Optional[str] = Field(default=None, pattern=r"^(member|admin)$")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class IdentityResponse(BaseModel):
    """Public projection of an identity. Never carries credentials or OTP state."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    phone: str
    membership_no: str
    role: str
    is_active: bool
    is_blocked: bool
    created_at: str
    profile_photo: Optional[str] = None

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityResponse":
        """Factory Method -- the mapping lives beside the output model."""
        return cls(
            id=identity.id,
            username=identity.username,
            email=identity.email,
            phone=identity.phone,
            membership_no=identity.membership_no,
            role=identity.role,
            is_active=identity.is_verified,
            is_blocked=identity.is_blocked,
            created_at=identity.created_at or "",
            profile_photo=identity.profile_photo,
        )


class MessageResponse(BaseModel):
    message: str


class AuthResponse(BaseModel):
    """Returned by verify-otp and login."""

    message: str
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: IdentityResponse


class BlockResponse(BaseModel):
    message: str
    user: IdentityResponse


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class FieldError(BaseModel):
    field: str
    message: str


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Every non-2xx response body: {"error": {"code", "message", "detail"}}."""

    error: ErrorDetail
