"""
Authentication service: signup, login and password reset.

This module contains the core auth logic, separated from HTTP concerns.
The router calls these functions and translates the results into HTTP
responses.

Signup flow:
  1. Check if email is already registered
  2. Hash the password with Argon2id
  3. Create the User and their primary Account in one database transaction
  4. Return a JWT token so the user is immediately logged in

Login flow:
  1. Look up user by email
  2. Verify password against stored hash
  3. Return a JWT token

Password reset flow:
  1. forgot_password() emails a 6-digit code (purpose "password_reset")
     through the OTP store; unknown emails get the same reply
  2. reset_password() redeems the code and stores the new hash

Login returns the same error for "wrong password" and "email not found"
so valid emails can't be enumerated. Blocked users can still log in;
they are stopped at the money-movement endpoints instead.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidOtpError,
    NotificationDeliveryError,
)
from app.models.account import Account
from app.models.user import User, UserType
from app.notifications import NotificationSender, otp_email, password_changed_email
from app.security import hash_password, verify_password, create_access_token
from app.services.account_service import create_account
from app.services.otp_service import clear_challenge, issue_challenge, verify_challenge

logger = logging.getLogger(__name__)


async def signup(
    db: AsyncSession,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    phone: str | None = None,
) -> tuple[User, Account, str]:
    """
    Register a new member and open their primary account.

    Both records are flushed in the request's transaction; if either
    fails, neither is persisted.

    Returns:
        Tuple of (User, primary Account, JWT token string).

    Raises:
        DuplicateEmailError: If the email is already registered.
    """
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise DuplicateEmailError(email)

    user = User(
        email=email,
        hashed_password=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        user_type=UserType.MEMBER,
    )
    db.add(user)
    # Flush to get user.id for the account's FK
    await db.flush()

    account = await create_account(db, user.id)

    token = create_access_token(data={"sub": str(user.id)})
    logger.info("User signed up", extra={"user_id": str(user.id)})
    return user, account, token


async def login(
    db: AsyncSession,
    email: str,
    password: str,
) -> tuple[User, str]:
    """
    Authenticate a user and return a JWT token.

    Raises:
        InvalidCredentialsError: If email doesn't exist or password is wrong.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    # Same error for both cases: no user enumeration
    if not user:
        raise InvalidCredentialsError()

    if not verify_password(password, user.hashed_password):
        raise InvalidCredentialsError()

    if not user.is_active:
        raise InvalidCredentialsError()

    token = create_access_token(data={"sub": str(user.id)})
    return user, token


RESET_PURPOSE = "password_reset"


async def _find_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def forgot_password(
    db: AsyncSession,
    sender: NotificationSender,
    email: str,
) -> None:
    """
    Email a reset code to the account holder, if there is one.

    Returns silently for unknown or deactivated emails, so the reply
    looks the same whether or not the account exists.

    Raises:
        NotificationDeliveryError: The code could not be delivered; the
            challenge is withdrawn.
    """
    user = await _find_by_email(db, email)
    if user is None or not user.is_active:
        logger.info("Password reset requested for unknown email")
        return

    code = await issue_challenge(db, user.id, purpose=RESET_PURPOSE)
    subject, body = otp_email(user.first_name, code, RESET_PURPOSE)

    try:
        delivered = await sender.send(user.email, subject, body)
    except Exception:
        logger.exception("Reset code delivery raised", extra={"user_id": str(user.id)})
        delivered = False

    if not delivered:
        await clear_challenge(db, user.id)
        raise NotificationDeliveryError()

    logger.info("Password reset code sent", extra={"user_id": str(user.id)})


async def reset_password(
    db: AsyncSession,
    sender: NotificationSender,
    email: str,
    code: str,
    new_password: str,
) -> User:
    """
    Swap the password for a new one after checking the emailed code.

    An unknown email fails exactly like a missing challenge.

    Raises:
        InvalidOtpError: No reset pending, code expired, or code wrong.
    """
    user = await _find_by_email(db, email)
    if user is None or not user.is_active:
        raise InvalidOtpError("no_challenge")

    outcome = await verify_challenge(db, user.id, code, purpose=RESET_PURPOSE)
    if not outcome.ok:
        raise InvalidOtpError(outcome.value)

    user.hashed_password = hash_password(new_password)
    await db.flush()
    logger.info("Password reset", extra={"user_id": str(user.id)})

    # The password is already changed; a lost confirmation is only logged
    subject, body = password_changed_email(user.first_name)
    try:
        if not await sender.send(user.email, subject, body):
            logger.warning("Password change notice not delivered", extra={"user_id": str(user.id)})
    except Exception:
        logger.exception("Password change notice raised", extra={"user_id": str(user.id)})

    return user
