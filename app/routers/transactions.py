"""
Transactions router — status and receipt lookup by reference.

Endpoints (JWT required, scoped to the authenticated member):
  GET /transactions/{reference}   — Did this movement complete?
  GET /receipts/{reference}       — The receipt for a transaction

Per-account history is served by GET /accounts/{number}/transactions.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_member
from app.models.user import User
from app.schemas.transaction import ReceiptResponse, TransactionStatusResponse
from app.services import transaction_service

router = APIRouter()


@router.get(
    "/transactions/{reference}",
    response_model=TransactionStatusResponse,
    summary="Look up a transaction's status",
)
async def get_transaction_status(
    reference: str,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """
    Use this after a timeout or an opaque failure to learn whether a
    transfer or payment actually completed before retrying it.
    """
    return await transaction_service.get_transaction_by_reference(db, reference, user.id)


@router.get(
    "/receipts/{reference}",
    response_model=ReceiptResponse,
    summary="Get a receipt",
)
async def get_receipt(
    reference: str,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.get_receipt(db, reference, user.id)
