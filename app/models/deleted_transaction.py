"""
DeletedTransaction model — archive of transactions removed by an admin.

Before an administrator deletes a live Transaction, its full record is
copied here together with who deleted it, why, and when. Deletions are
therefore destructive to the live ledger but remain auditable and
recoverable.
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import String, Integer, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class DeletedTransaction(Base):
    __tablename__ = "deleted_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    original_transaction_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)

    # --- Copy of the live record ---
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    account_number: Mapped[str] = mapped_column(String(20), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    transfer_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    balance_after_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    recipient_account: Mapped[str | None] = mapped_column(String(64), nullable=True)
    recipient_details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    reference: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    original_created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    original_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    modification_history: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    # --- Deletion stamp ---
    deleted_by: Mapped[uuid.UUID] = mapped_column(nullable=False)
    deletion_reason: Mapped[str] = mapped_column(String(500), nullable=False)
    deleted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
