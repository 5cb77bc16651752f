"""
Authentication router.

Everything here except /auth/me is public; the rest of the API requires a
valid JWT.

Endpoints:
  POST /auth/signup           register a member and open their primary account
  POST /auth/login            exchange credentials for a token
  POST /auth/forgot-password  email a password reset code
  POST /auth/reset-password   redeem the code for a new password
  GET  /auth/me               profile of the signed-in user

Plaintext passwords exist only in memory during request processing; they
are hashed before any database operation and never logged.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.notifications import NotificationSender, get_notification_sender
from app.schemas.auth import (
    ForgotPasswordRequest,
    MessageResponse,
    ResetPasswordRequest,
    SignupResponse,
    TokenResponse,
    UserLoginRequest,
    UserResponse,
    UserSignupRequest,
)
from app.services import auth_service

router = APIRouter()


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def signup(
    request: UserSignupRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Register a new bank member.

    Creates the User and their primary Account in a single transaction and
    returns a JWT token so the user is immediately logged in.
    """
    user, account, token = await auth_service.signup(
        db=db,
        email=request.email,
        password=request.password,
        first_name=request.first_name,
        last_name=request.last_name,
        phone=request.phone,
    )

    return SignupResponse(
        user_id=user.id,
        email=user.email,
        user_type=user.user_type.value,
        account_number=account.account_number,
        token=token,
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Authenticate and get a token",
)
async def login(
    request: UserLoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Authenticate with email and password.

    Send the returned token on every other request:

        Authorization: Bearer <token>
    """
    _, token = await auth_service.login(
        db=db,
        email=request.email,
        password=request.password,
    )
    return TokenResponse(token=token)


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    summary="Request a password reset code",
)
async def forgot_password(
    request: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
):
    """
    Email a 6-digit reset code valid for OTP_EXPIRE_MINUTES.

    The reply is the same whether or not the email is registered.
    """
    await auth_service.forgot_password(db=db, sender=sender, email=request.email)
    return MessageResponse(
        message="If an account exists for that email, a reset code has been sent",
    )


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Set a new password with a reset code",
)
async def reset_password(
    request: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
):
    await auth_service.reset_password(
        db=db,
        sender=sender,
        email=request.email,
        code=request.code,
        new_password=request.new_password,
    )
    return MessageResponse(message="Password has been reset. Please log in.")


@router.get("/me", response_model=UserResponse, summary="Current user profile")
async def me(current_user: User = Depends(get_current_user)):
    return current_user
