"""
Transfers router — two-phase, OTP-confirmed money transfers.

Endpoints (JWT required, member not blocked):
  POST /transfers/initiate  — Validate and send the OTP email
  POST /transfers           — Re-submit with the OTP to execute

Both take the same body; `transfer_type` selects internal, domestic
(default) or international. When the amount is at or below the OTP
threshold, /initiate answers requires_otp=false and /transfers executes
without a code.

Status codes of the completion call:
  200  completed
  400  OTP missing, expired, wrong or never issued
  403  profile blocked
  404  source or internal recipient account not found
  409  balance changed concurrently; initiate again
  422  validation error or insufficient funds
  500  opaque failure; check GET /transactions/{reference} before retrying
"""

from typing import Annotated

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_transacting_member
from app.models.user import User
from app.notifications import NotificationSender, get_notification_sender
from app.schemas.transfer import InitiateResponse, TransferRequest, TransferResponse
from app.services import transfer_service

router = APIRouter()


@router.post(
    "/initiate",
    response_model=InitiateResponse,
    summary="Start a transfer",
)
async def initiate_transfer(
    request: Annotated[TransferRequest, Body()],
    user: User = Depends(get_transacting_member),
    sender: NotificationSender = Depends(get_notification_sender),
    db: AsyncSession = Depends(get_db),
):
    result = await transfer_service.initiate_transfer(db, user, request.to_order(), sender)
    return InitiateResponse(message=result.message, requires_otp=result.requires_otp)


@router.post(
    "",
    response_model=TransferResponse,
    summary="Complete a transfer",
)
async def complete_transfer(
    request: Annotated[TransferRequest, Body()],
    user: User = Depends(get_transacting_member),
    db: AsyncSession = Depends(get_db),
):
    result = await transfer_service.complete_transfer(db, user, request.to_order(), request.otp)
    return TransferResponse(
        message="Transfer successful",
        reference=result.reference,
        transfer_type=result.transfer_type,
        new_balance=result.new_balance,
        new_balance_cents=result.new_balance_cents,
        currency=result.currency,
    )
