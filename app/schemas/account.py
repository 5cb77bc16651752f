"""
Pydantic schemas for Account endpoints.

Balances are exposed in integer cents. The account summary mirrors the
AccountSummary row, including the monthly statistics.
"""

import uuid

from pydantic import BaseModel, Field, field_validator

from app.models.account import SUPPORTED_CURRENCIES
from app.schemas.common import UtcDatetime


class AccountCreateRequest(BaseModel):
    """Request body for POST /accounts."""
    account_name: str = Field(default="Checking", min_length=1, max_length=100)
    currency: str | None = Field(
        default=None,
        description="ISO 4217 code; the bank's default currency when omitted",
    )

    @field_validator("currency")
    @classmethod
    def currency_supported(cls, value: str | None) -> str | None:
        if value is None:
            return value
        value = value.upper()
        if value not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Unsupported currency {value}")
        return value


class AccountResponse(BaseModel):
    """Public representation of a bank account."""
    id: uuid.UUID
    user_id: uuid.UUID
    account_number: str
    account_name: str
    balance_cents: int
    currency: str
    is_active: bool
    opened_at: UtcDatetime

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    """
    Balance check response — includes both cached and computed values.

    `match` tells whether the cached balance agrees with the sum of all
    completed transactions. A mismatch is drift that reconciliation fixes.
    """
    account_number: str
    balance_cents: int
    computed_balance_cents: int
    match: bool
    currency: str


class AccountSummaryResponse(BaseModel):
    account_number: str
    current_balance_cents: int
    available_balance_cents: int
    currency: str
    stats_period: str | None
    total_deposits_cents: int
    total_withdrawals_cents: int
    net_change_cents: int
    last_transaction_date: UtcDatetime | None

    model_config = {"from_attributes": True}
