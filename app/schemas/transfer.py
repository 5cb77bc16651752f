"""
Pydantic schemas for transfer and bill payment endpoints.

Transfer requests are a discriminated union on `transfer_type`:

    internal       to another account held by this bank
    domestic       to another bank in the same country (the default)
    international  requires account_name, bank_name and swift_iban

Amounts are decimals with at most two places ("12.34"). Zero, negative
and non-finite values are rejected here; the services work in integer
cents (`to_order()` converts).

The same body is sent twice: once to /initiate (no otp) and once to
complete the operation with the emailed code in `otp`.
"""

from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Discriminator, Field, Tag

from app.models.transaction import TransferType
from app.schemas.common import OtpCode
from app.services.transfer_service import BillPaymentOrder, TransferOrder
from app.utils import to_cents


Amount = Annotated[
    Decimal,
    Field(gt=0, max_digits=15, decimal_places=2, description="Amount, e.g. 12.34"),
]


class _TransferBase(BaseModel):
    to_account: str = Field(min_length=1, max_length=34)
    amount: Amount
    from_account: str | None = Field(
        None, description="Source account number; the primary account when omitted"
    )
    description: str | None = Field(None, max_length=255)
    otp: OtpCode | None = None

    def _order(self, transfer_type: TransferType, **details: Any) -> TransferOrder:
        return TransferOrder(
            transfer_type=transfer_type,
            recipient_account=self.to_account,
            amount_cents=to_cents(self.amount),
            from_account=self.from_account,
            description=self.description,
            **details,
        )


class InternalTransferRequest(_TransferBase):
    transfer_type: Literal["internal"]
    account_name: str | None = Field(None, max_length=100)

    def to_order(self) -> TransferOrder:
        return self._order(TransferType.INTERNAL, account_name=self.account_name)


class DomesticTransferRequest(_TransferBase):
    transfer_type: Literal["domestic"] = "domestic"
    account_name: str | None = Field(None, max_length=100)
    bank_name: str | None = Field(None, max_length=100)

    def to_order(self) -> TransferOrder:
        return self._order(
            TransferType.DOMESTIC,
            account_name=self.account_name,
            bank_name=self.bank_name,
        )


class InternationalTransferRequest(_TransferBase):
    transfer_type: Literal["international"]
    account_name: str = Field(min_length=1, max_length=100)
    bank_name: str = Field(min_length=1, max_length=100)
    swift_iban: str = Field(min_length=8, max_length=34)
    bank_address: str | None = Field(None, max_length=255)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=20)

    def to_order(self) -> TransferOrder:
        return self._order(
            TransferType.INTERNATIONAL,
            account_name=self.account_name,
            bank_name=self.bank_name,
            swift_iban=self.swift_iban,
            bank_address=self.bank_address,
            email=self.email,
            phone=self.phone,
        )


def _transfer_kind(value: Any) -> str:
    """Variant tag; requests without a transfer_type are domestic."""
    if isinstance(value, dict):
        return value.get("transfer_type") or TransferType.DOMESTIC.value
    return getattr(value, "transfer_type", TransferType.DOMESTIC.value)


TransferRequest = Annotated[
    Union[
        Annotated[InternalTransferRequest, Tag("internal")],
        Annotated[DomesticTransferRequest, Tag("domestic")],
        Annotated[InternationalTransferRequest, Tag("international")],
    ],
    Discriminator(_transfer_kind),
]


class InitiateResponse(BaseModel):
    success: bool = True
    message: str
    requires_otp: bool


class TransferResponse(BaseModel):
    success: bool = True
    message: str
    reference: str
    transfer_type: TransferType | None = None
    new_balance: Decimal
    new_balance_cents: int
    currency: str


# ---------------------------------------------------------------------------
# Bill payments
# ---------------------------------------------------------------------------

class BillerResponse(BaseModel):
    id: str
    name: str
    category: str
    account_number: str

    model_config = {"from_attributes": True}


class BillPaymentRequest(BaseModel):
    biller_id: str = Field(min_length=1)
    amount: Amount
    from_account: str | None = None
    biller_reference: str | None = Field(
        None, max_length=64, description="Customer reference at the biller"
    )
    description: str | None = Field(None, max_length=255)
    otp: OtpCode | None = None

    def to_order(self) -> BillPaymentOrder:
        return BillPaymentOrder(
            biller_id=self.biller_id,
            amount_cents=to_cents(self.amount),
            from_account=self.from_account,
            biller_reference=self.biller_reference,
            description=self.description,
        )
