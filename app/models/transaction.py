"""
Transaction model — the immutable ledger row for every money movement.

Every deposit, withdrawal, transfer and bill payment creates exactly one
Transaction per affected account. The transaction log is the source of
truth; Account.balance_cents and AccountSummary are caches derived from it
and can be rebuilt by summary_service.reconcile_account().

Key fields:
  - amount_cents: SIGNED integer cents — negative for outflows (transfer
    out, payment, withdrawal), positive for inflows (deposit, transfer in)
  - type: deposit / withdrawal / transfer / payment
  - transfer_type: internal / domestic / international, only for transfers
  - balance_after_cents: the account balance at the moment of commit
  - reference: globally unique, externally visible key ("TRX-...")
  - status: pending / completed / failed

Immutability:
  A transaction is never edited after commit, with one exception: an
  administrator may backdate it (admin_service.backdate_transaction).
  Backdating keeps the first pre-modification date in `original_date` and
  appends an entry to `modification_history`, which is append-only:

      [{"timestamp": "...", "actor": "<admin user id>",
        "changes": {"created_at": {"from": "...", "to": "..."}}}]
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import String, Integer, DateTime, Enum, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class TransactionType(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"
    PAYMENT = "payment"


class TransferType(str, enum.Enum):
    INTERNAL = "internal"
    DOMESTIC = "domestic"
    INTERNATIONAL = "international"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        Index("ix_transactions_user_created", "user_id", "created_at"),
        Index("ix_transactions_account_created", "account_number", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Weak reference to the owner (no FK); see models/user.py
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False)

    account_number: Mapped[str] = mapped_column(String(20), nullable=False)

    # Signed: negative = money out of the account
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType),
        nullable=False,
    )

    transfer_type: Mapped[TransferType | None] = mapped_column(
        Enum(TransferType),
        nullable=True,
    )

    description: Mapped[str] = mapped_column(String(255), nullable=False)

    balance_after_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    recipient_account: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Free-form recipient data: account name, bank, SWIFT/IBAN, biller, ...
    recipient_details: Mapped[dict[str, Any] | None] = mapped_column(
        JSON,
        nullable=True,
    )

    reference: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
    )

    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus),
        nullable=False,
        default=TransactionStatus.COMPLETED,
    )

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # Set on the first backdate only
    original_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    modification_history: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
