"""
Pydantic schemas for transaction, status and receipt endpoints.

Amounts are signed integer cents: negative for money leaving the account.
"""

import uuid
from typing import Any

from pydantic import BaseModel

from app.models.transaction import TransactionStatus, TransactionType, TransferType
from app.schemas.common import UtcDatetime


class TransactionResponse(BaseModel):
    """Public representation of a ledger transaction."""
    id: uuid.UUID
    account_number: str
    amount_cents: int
    type: TransactionType
    transfer_type: TransferType | None
    description: str
    balance_after_cents: int
    recipient_account: str | None
    recipient_details: dict[str, Any] | None
    reference: str
    status: TransactionStatus
    currency: str
    created_at: UtcDatetime
    original_date: UtcDatetime | None

    model_config = {"from_attributes": True}


class AdminTransactionResponse(TransactionResponse):
    """Admin view: adds the owner and the modification history."""
    user_id: uuid.UUID
    modification_history: list[dict[str, Any]]


class TransactionStatusResponse(BaseModel):
    """Response body for GET /transactions/{reference}."""
    reference: str
    status: TransactionStatus
    type: TransactionType
    amount_cents: int
    currency: str
    created_at: UtcDatetime

    model_config = {"from_attributes": True}


class ReceiptResponse(BaseModel):
    id: uuid.UUID
    transaction_id: uuid.UUID
    reference: str
    account_number: str
    amount_cents: int
    type: str
    description: str
    balance_after_cents: int
    recipient_details: dict[str, Any] | None
    status: str
    currency: str
    transaction_date: UtcDatetime

    model_config = {"from_attributes": True}
