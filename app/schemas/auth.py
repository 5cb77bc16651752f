"""
Request and response bodies for /auth.

Emails are normalised by EmailStr; the password rules here apply both at
signup and when a reset code is redeemed.
"""

import uuid
from typing import Annotated

from pydantic import BaseModel, EmailStr, Field

from app.models.user import UserStatus
from app.schemas.common import OtpCode, UtcDatetime

Password = Annotated[str, Field(min_length=8, max_length=128)]


class UserSignupRequest(BaseModel):
    email: EmailStr
    password: Password
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=20)


class UserLoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"


class SignupResponse(TokenResponse):
    """New member id plus the number of the primary account opened for them."""
    user_id: uuid.UUID
    email: str
    user_type: str
    account_number: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Redeem the emailed reset code for a new password."""
    email: EmailStr
    code: OtpCode
    new_password: Password


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class UserResponse(BaseModel):
    """A user's profile as shown to themselves and to admins. No password hash."""
    id: uuid.UUID
    email: EmailStr
    first_name: str
    last_name: str
    phone: str | None
    user_type: str
    status: UserStatus
    is_active: bool
    created_at: UtcDatetime

    model_config = {"from_attributes": True}
