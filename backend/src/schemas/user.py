"""Pydantic schemas for account and session endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import EmailStr, field_validator

from schemas.common import ApiModel
from schemas.validators import validate_name, validate_password_strength


class UserRegister(ApiModel):
    """Schema for registering a new account."""

    name: str
    email: EmailStr
    password: str

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        """Require a non-blank name."""
        return validate_name(v)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        """Store and compare e-mail addresses in lower case."""
        return v.lower()

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        """Enforce the password policy."""
        return validate_password_strength(v)


class UserLogin(ApiModel):
    """Schema for logging in."""

    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        """Compare e-mail addresses in lower case."""
        return v.lower()

    @field_validator("password")
    @classmethod
    def require_password(cls, v: str) -> str:
        """Reject an empty password before hitting the database."""
        if not v:
            raise ValueError("Password is required")
        return v


class UserResponse(ApiModel):
    """Public view of an account. Never includes secrets or token hashes."""

    id: UUID
    name: str
    email: str
    is_email_verified: bool
    created_at: datetime


class AuthResponse(ApiModel):
    """Body returned alongside session cookies on register and login."""

    user: UserResponse


class TokenRequest(ApiModel):
    """Schema carrying a one-time token (e-mail verification)."""

    token: str

    @field_validator("token")
    @classmethod
    def require_token(cls, v: str) -> str:
        """Reject blank tokens."""
        if not v.strip():
            raise ValueError("Token is required")
        return v.strip()


class ForgotPasswordRequest(ApiModel):
    """Schema for requesting a password reset e-mail."""

    email: EmailStr

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        """Compare e-mail addresses in lower case."""
        return v.lower()


class NewPasswordRequest(ApiModel):
    """Schema for a new password when the reset token travels in the path."""

    password: str

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        """Enforce the password policy."""
        return validate_password_strength(v)


class ResetPasswordRequest(NewPasswordRequest, TokenRequest):
    """Schema for resetting a password with the token in the body."""

    pass
