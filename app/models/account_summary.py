"""
AccountSummary model — denormalized, query-optimized rollup per account.

One row per (user, account number). Holds the current/available balance
and monthly statistics so the dashboard never scans the full transaction
history. It is updated incrementally on every posted transaction (cheap
write) and can drift under partial failure, so it is treated as an
eventually-exact cache: summary_service.reconcile_account() rebuilds it
from the transaction log.

Monthly statistics:
  stats_period holds the calendar month ("YYYY-MM") the totals belong to.
  The first transaction posted in a new month restarts the totals.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class AccountSummary(Base):
    __tablename__ = "account_summaries"

    __table_args__ = (
        UniqueConstraint("user_id", "account_number", name="uq_account_summaries_user_account"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    account_number: Mapped[str] = mapped_column(String(20), nullable=False)

    current_balance_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available_balance_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # --- Monthly statistics ---
    stats_period: Mapped[str | None] = mapped_column(String(7), nullable=True)
    total_deposits_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_withdrawals_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    net_change_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_transaction_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
