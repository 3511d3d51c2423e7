"""Account and session endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user, get_settings
from core.auth import REFRESH_TOKEN_COOKIE, clear_auth_cookies, set_auth_cookies
from core.config import Settings
from core.security import InvalidTokenError
from models.user import User
from schemas.common import MessageResponse
from schemas.user import (
    AuthResponse,
    ForgotPasswordRequest,
    NewPasswordRequest,
    ResetPasswordRequest,
    TokenRequest,
    UserLogin,
    UserRegister,
    UserResponse,
)
from services import auth_service
from services.auth_service import (
    EmailAlreadyRegisteredError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidOneTimeTokenError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

PASSWORD_RESET_SENT_MESSAGE = (
    "If an account with that email exists, a password reset link has been sent"
)


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    data: UserRegister,
    response: Response,
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> AuthResponse:
    """
    Create an account and log it in.

    A verification link is e-mailed to the address. Depending on
    REQUIRE_EMAIL_VERIFICATION, later logins may be refused until it is used.
    """
    try:
        user, tokens = await auth_service.register_user(db, data, settings)
    except EmailAlreadyRegisteredError as e:
        raise HTTPException(status_code=400, detail="Email already registered") from e
    set_auth_cookies(response, tokens.access_token, tokens.refresh_token, settings)
    return AuthResponse(user=UserResponse.model_validate(user))


@router.post("/login", response_model=AuthResponse)
async def login(
    data: UserLogin,
    response: Response,
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> AuthResponse:
    """Log in with e-mail and password; session tokens are set as cookies."""
    try:
        user = await auth_service.authenticate_user(db, data.email, data.password, settings)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=400, detail="Invalid credentials") from e
    except EmailNotVerifiedError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "message": "Please verify your email before logging in",
                "isEmailVerified": False,
            },
        ) from e

    tokens = await auth_service.issue_session(db, user, settings)
    set_auth_cookies(response, tokens.access_token, tokens.refresh_token, settings)
    return AuthResponse(user=UserResponse.model_validate(user))


@router.post("/refresh-token", response_model=AuthResponse)
async def refresh_token(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> AuthResponse:
    """Rotate the session: the refresh token cookie is exchanged for a new pair."""
    try:
        user, tokens = await auth_service.refresh_session(
            db, request.cookies.get(REFRESH_TOKEN_COOKIE), settings,
        )
    except InvalidTokenError as e:
        logger.warning("Refresh rejected: %s", e.reason)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
        ) from e
    set_auth_cookies(response, tokens.access_token, tokens.refresh_token, settings)
    return AuthResponse(user=UserResponse.model_validate(user))


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    """Revoke the refresh token and clear both session cookies."""
    await auth_service.logout(db, request.cookies.get(REFRESH_TOKEN_COOKIE), settings)
    clear_auth_cookies(response, settings)
    return MessageResponse(message="Logged out successfully")


async def _verify_email(db: AsyncSession, token: str) -> MessageResponse:
    try:
        await auth_service.verify_email(db, token)
    except InvalidOneTimeTokenError as e:
        raise HTTPException(
            status_code=400, detail="Invalid or expired verification token",
        ) from e
    return MessageResponse(message="Email verified successfully")


@router.get("/verify-email/{token}", response_model=MessageResponse)
async def verify_email_link(
    token: str,
    db: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    """Confirm an e-mail address from the link in the verification e-mail."""
    return await _verify_email(db, token)


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(
    data: TokenRequest,
    db: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    """Confirm an e-mail address with a token in the request body."""
    return await _verify_email(db, data.token)


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    data: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    """
    Request a password reset e-mail.

    The response is identical whether or not the address has an account.
    """
    await auth_service.request_password_reset(db, data.email, settings)
    return MessageResponse(message=PASSWORD_RESET_SENT_MESSAGE)


async def _reset_password(db: AsyncSession, token: str, password: str) -> MessageResponse:
    try:
        await auth_service.reset_password(db, token, password)
    except InvalidOneTimeTokenError as e:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token") from e
    return MessageResponse(message="Password has been reset successfully")


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    data: ResetPasswordRequest,
    db: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    """Set a new password with the token from the reset e-mail."""
    return await _reset_password(db, data.token, data.password)


@router.post("/reset-password/{token}", response_model=MessageResponse)
async def reset_password_link(
    token: str,
    data: NewPasswordRequest,
    db: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    """Set a new password; the reset token travels in the path."""
    return await _reset_password(db, token, data.password)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)) -> User:
    """Get the current authenticated user's info."""
    return current_user
