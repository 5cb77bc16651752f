"""
Pydantic schemas for the /admin endpoints.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.models.user import UserStatus
from app.schemas.common import UtcDatetime
from app.schemas.transfer import Amount


class UserStatusRequest(BaseModel):
    status: UserStatus


class LedgerAdjustmentRequest(BaseModel):
    """Request body for POST /admin/accounts/{number}/credit and /debit."""
    amount: Amount
    description: str | None = Field(None, max_length=255)


class LedgerAdjustmentResponse(BaseModel):
    success: bool = True
    reference: str
    account_number: str
    new_balance_cents: int
    currency: str


class BackdateRequest(BaseModel):
    new_date: datetime = Field(description="New transaction date; must not be in the future")


class DeleteTransactionRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class DeletedTransactionResponse(BaseModel):
    id: uuid.UUID
    original_transaction_id: uuid.UUID
    user_id: uuid.UUID
    account_number: str
    amount_cents: int
    type: str
    transfer_type: str | None
    description: str
    reference: str
    status: str
    currency: str
    original_created_at: UtcDatetime
    original_date: UtcDatetime | None
    modification_history: list[dict[str, Any]]
    deleted_by: uuid.UUID
    deletion_reason: str
    deleted_at: UtcDatetime

    model_config = {"from_attributes": True}


class ReconcileRequest(BaseModel):
    repair_balance: bool = False


class ReconcileResponse(BaseModel):
    account_number: str
    currency: str
    ledger_balance_cents: int
    account_balance_cents: int
    balance_drift_cents: int
    balance_repaired: bool
    new_account_balance_cents: int
    summary_before: dict[str, Any]
    summary_after: dict[str, Any]
    summary_drift: bool
