"""
Bill payments router.

Endpoints (JWT required):
  GET  /bill-payments/billers    — The biller catalog
  POST /bill-payments/initiate   — Validate and send the OTP email
  POST /bill-payments            — Re-submit with the OTP to pay

Bill payments always require an OTP, whatever the amount.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_member, get_transacting_member
from app.models.user import User
from app.notifications import NotificationSender, get_notification_sender
from app.schemas.transfer import (
    BillerResponse,
    BillPaymentRequest,
    InitiateResponse,
    TransferResponse,
)
from app.services import transfer_service

router = APIRouter()


@router.get(
    "/billers",
    response_model=list[BillerResponse],
    summary="List billers",
)
async def list_billers(
    user: User = Depends(get_current_member),
):
    return transfer_service.list_billers()


@router.post(
    "/initiate",
    response_model=InitiateResponse,
    summary="Start a bill payment",
)
async def initiate_bill_payment(
    request: BillPaymentRequest,
    user: User = Depends(get_transacting_member),
    sender: NotificationSender = Depends(get_notification_sender),
    db: AsyncSession = Depends(get_db),
):
    result = await transfer_service.initiate_bill_payment(db, user, request.to_order(), sender)
    return InitiateResponse(message=result.message, requires_otp=result.requires_otp)


@router.post(
    "",
    response_model=TransferResponse,
    summary="Complete a bill payment",
)
async def complete_bill_payment(
    request: BillPaymentRequest,
    user: User = Depends(get_transacting_member),
    db: AsyncSession = Depends(get_db),
):
    result = await transfer_service.complete_bill_payment(db, user, request.to_order(), request.otp)
    return TransferResponse(
        message="Bill payment successful",
        reference=result.reference,
        new_balance=result.new_balance,
        new_balance_cents=result.new_balance_cents,
        currency=result.currency,
    )
