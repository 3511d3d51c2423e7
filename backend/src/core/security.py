"""Password hashing, session JWTs, and one-time tokens."""
import hashlib
import secrets
from datetime import UTC, datetime, timedelta
from typing import Literal
from uuid import UUID

import jwt
from passlib.context import CryptContext

from core.config import Settings

TokenType = Literal["access", "refresh"]

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class InvalidTokenError(Exception):
    """Raised when a session token is malformed, expired, or of the wrong type."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a password against its bcrypt hash."""
    return pwd_context.verify(plain_password, hashed_password)


def hash_token(token: str) -> str:
    """Hash a token for comparison against stored hashes."""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_one_time_token() -> tuple[str, str]:
    """
    Generate a URL-safe single-use token.

    Returns:
        Tuple of (plaintext_token, token_hash). Only the hash is persisted;
        the plaintext goes out by e-mail.
    """
    plaintext = secrets.token_urlsafe(32)
    return plaintext, hash_token(plaintext)


def _secret_for(token_type: TokenType, settings: Settings) -> str:
    return settings.jwt_secret if token_type == "access" else settings.jwt_refresh_secret


def _create_token(
    user_id: UUID,
    token_type: TokenType,
    expires_delta: timedelta,
    settings: Settings,
) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
        # Unique id so two tokens minted in the same second still differ
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, _secret_for(token_type, settings), algorithm=settings.jwt_algorithm)


def create_access_token(user_id: UUID, settings: Settings) -> str:
    """Create a short-lived access token."""
    return _create_token(
        user_id,
        "access",
        timedelta(minutes=settings.access_token_expire_minutes),
        settings,
    )


def create_refresh_token(user_id: UUID, settings: Settings) -> str:
    """Create a long-lived refresh token."""
    return _create_token(
        user_id,
        "refresh",
        timedelta(days=settings.refresh_token_expire_days),
        settings,
    )


def decode_token(token: str, token_type: TokenType, settings: Settings) -> UUID:
    """
    Decode and validate a session token.

    Args:
        token: The encoded JWT.
        token_type: Expected token type ("access" or "refresh").
        settings: Application settings holding the signing secrets.

    Returns:
        The user id carried in the "sub" claim.

    Raises:
        InvalidTokenError: If the token is expired, badly signed, malformed,
            or not of the expected type.
    """
    try:
        payload = jwt.decode(
            token,
            _secret_for(token_type, settings),
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub", "type"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise InvalidTokenError("Token has expired") from e
    except jwt.PyJWTError as e:
        raise InvalidTokenError(f"Invalid token: {e}") from e

    if payload.get("type") != token_type:
        raise InvalidTokenError(f"Expected {token_type} token")

    try:
        return UUID(payload["sub"])
    except (ValueError, TypeError) as e:
        raise InvalidTokenError("Invalid subject claim") from e
