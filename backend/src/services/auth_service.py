"""Service layer for accounts and sessions."""
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.email import send_password_reset_email, send_verification_email
from core.security import (
    InvalidTokenError,
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_one_time_token,
    hash_password,
    hash_token,
    verify_password,
)
from models.user import User
from schemas.user import UserRegister

logger = logging.getLogger(__name__)


class EmailAlreadyRegisteredError(Exception):
    """Raised when registering with an e-mail address that already has an account."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"Email '{email}' already registered")


class InvalidCredentialsError(Exception):
    """Raised when the e-mail/password pair does not match an account."""

    def __init__(self) -> None:
        super().__init__("Invalid credentials")


class EmailNotVerifiedError(Exception):
    """Raised on login when the account has not confirmed its e-mail address."""

    def __init__(self, user: User) -> None:
        self.user = user
        super().__init__("Email address has not been verified")


class InvalidOneTimeTokenError(Exception):
    """Raised when a verification or reset token is unknown, used, or expired."""

    def __init__(self, purpose: str) -> None:
        self.purpose = purpose
        super().__init__(f"Invalid or expired {purpose} token")


@dataclass
class SessionTokens:
    """Access/refresh token pair handed to the client as cookies."""

    access_token: str
    refresh_token: str


def _now() -> datetime:
    return datetime.now(UTC)


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Look up an account by (lower-cased) e-mail address."""
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def issue_session(db: AsyncSession, user: User, settings: Settings) -> SessionTokens:
    """
    Mint a new access/refresh token pair for the user.

    Only the hash of the refresh token is stored; minting a new one
    invalidates the previous refresh token.
    """
    tokens = SessionTokens(
        access_token=create_access_token(user.id, settings),
        refresh_token=create_refresh_token(user.id, settings),
    )
    user.refresh_token_hash = hash_token(tokens.refresh_token)
    await db.flush()
    return tokens


async def register_user(
    db: AsyncSession,
    data: UserRegister,
    settings: Settings,
) -> tuple[User, SessionTokens]:
    """
    Create an account, send the verification e-mail, and open a session.

    E-mail delivery is best effort; a failure is logged and registration
    still succeeds.

    Raises:
        EmailAlreadyRegisteredError: If the e-mail address is taken.
    """
    if await get_user_by_email(db, data.email) is not None:
        raise EmailAlreadyRegisteredError(data.email)

    plaintext, token_hash = generate_one_time_token()
    user = User(
        name=data.name,
        email=data.email,
        password_hash=hash_password(data.password),
        is_email_verified=False,
        email_verification_token_hash=token_hash,
        email_verification_expires_at=_now()
        + timedelta(hours=settings.email_verification_expire_hours),
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as e:
        # Race: a concurrent registration took the address after our check
        raise EmailAlreadyRegisteredError(data.email) from e
    await db.refresh(user)

    await send_verification_email(settings, user.email, plaintext)
    tokens = await issue_session(db, user, settings)
    logger.info("Registered user %s", user.id)
    return user, tokens


async def authenticate_user(
    db: AsyncSession,
    email: str,
    password: str,
    settings: Settings,
) -> User:
    """
    Check credentials.

    Raises:
        InvalidCredentialsError: If the address is unknown or the password is wrong.
        EmailNotVerifiedError: If verification is required and still pending.
    """
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        raise InvalidCredentialsError
    if settings.require_email_verification and not user.is_email_verified:
        raise EmailNotVerifiedError(user)
    return user


async def refresh_session(
    db: AsyncSession,
    refresh_token: str | None,
    settings: Settings,
) -> tuple[User, SessionTokens]:
    """
    Exchange a refresh token for a new token pair (rotation).

    Raises:
        InvalidTokenError: If the token is missing, invalid, expired, or not
            the user's current refresh token.
    """
    if not refresh_token:
        raise InvalidTokenError("Missing refresh token")

    user_id = decode_token(refresh_token, "refresh", settings)
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or user.refresh_token_hash != hash_token(refresh_token):
        logger.warning("Rejected stale or unknown refresh token for user %s", user_id)
        raise InvalidTokenError("Refresh token has been revoked")

    tokens = await issue_session(db, user, settings)
    return user, tokens


async def logout(db: AsyncSession, refresh_token: str | None, settings: Settings) -> None:
    """Revoke the stored refresh token if the presented one is valid."""
    if not refresh_token:
        return
    try:
        user_id = decode_token(refresh_token, "refresh", settings)
    except InvalidTokenError:
        return
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is not None and user.refresh_token_hash == hash_token(refresh_token):
        user.refresh_token_hash = None
        await db.flush()


async def verify_email(db: AsyncSession, token: str) -> User:
    """
    Mark an account's e-mail as verified. The token works once.

    Raises:
        InvalidOneTimeTokenError: If the token is unknown or expired.
    """
    result = await db.execute(
        select(User).where(
            User.email_verification_token_hash == hash_token(token),
            User.email_verification_expires_at > _now(),
        ),
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise InvalidOneTimeTokenError("verification")

    user.is_email_verified = True
    user.email_verification_token_hash = None
    user.email_verification_expires_at = None
    await db.flush()
    await db.refresh(user)
    logger.info("Verified e-mail for user %s", user.id)
    return user


async def request_password_reset(db: AsyncSession, email: str, settings: Settings) -> None:
    """
    Issue a password reset token and e-mail it.

    Unknown addresses are ignored silently so callers cannot probe which
    addresses have accounts.
    """
    user = await get_user_by_email(db, email)
    if user is None:
        logger.info("Password reset requested for unknown address")
        return

    plaintext, token_hash = generate_one_time_token()
    user.password_reset_token_hash = token_hash
    user.password_reset_expires_at = _now() + timedelta(hours=settings.password_reset_expire_hours)
    await db.flush()
    await send_password_reset_email(settings, user.email, plaintext)


async def reset_password(db: AsyncSession, token: str, password: str) -> User:
    """
    Set a new password using a reset token. The token works once.

    Existing sessions lose their refresh token.

    Raises:
        InvalidOneTimeTokenError: If the token is unknown or expired.
    """
    result = await db.execute(
        select(User).where(
            User.password_reset_token_hash == hash_token(token),
            User.password_reset_expires_at > _now(),
        ),
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise InvalidOneTimeTokenError("reset")

    user.password_hash = hash_password(password)
    user.password_reset_token_hash = None
    user.password_reset_expires_at = None
    user.refresh_token_hash = None
    await db.flush()
    await db.refresh(user)
    logger.info("Reset password for user %s", user.id)
    return user
