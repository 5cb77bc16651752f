"""
Account model — a bank account owned by a User.

Each account has:
  - A unique account number (randomly generated 10-digit string)
  - A display name ("Primary Checking", "Holiday Savings", ...)
  - A balance in integer cents
  - A currency code (ISO 4217)
  - A version counter used as an optimistic concurrency token

Balance management:
  The balance is a derived cache of the transaction log. It is only ever
  changed through account_service.apply_balance_change(), which issues a
  compare-and-swap UPDATE:

      UPDATE accounts
         SET balance_cents = balance_cents + :delta, version = version + 1
       WHERE id = :id AND version = :expected AND balance_cents + :delta >= 0

  Two concurrent transfers that both read version N can't both debit: the
  second UPDATE matches zero rows and is reported as a conflict.

  The CHECK constraint below is a last line of defense; the application
  code checks before debiting and never relies on the constraint firing.

Why integer cents?
  Floating-point numbers introduce rounding errors in financial
  calculations (0.1 + 0.2 != 0.3). By storing amounts as integer cents,
  all arithmetic is exact. The API accepts and returns decimals and
  converts at the boundary.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Boolean, Integer, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


SUPPORTED_CURRENCIES = ("USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY")


class Account(Base):
    __tablename__ = "accounts"

    __table_args__ = (
        CheckConstraint(
            "balance_cents >= 0",
            name="ck_accounts_non_negative_balance",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    account_number: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
    )

    account_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    balance_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="USD",
    )

    # Bumped on every balance change; see module docstring
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    opened_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # --- Relationships ---
    user: Mapped["User"] = relationship(
        back_populates="accounts",
    )
