"""
Card model — a debit card owned by a User and linked to one of their accounts.

Cards are owned sub-entities addressed by their stable `id`, never by
position in a list: locking or reporting a card lost always targets the
exact card the client named, even if other cards were issued since.

Card numbers and CVVs are encrypted at rest using Fernet (AES-128-CBC +
HMAC-SHA256). Only the last four digits are stored in plaintext for
display purposes.

Status lifecycle:
    active <-> locked
    active/locked -> lost   (terminal; a lost card is never reactivated)
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, ForeignKey, LargeBinary, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class CardType(str, enum.Enum):
    VISA = "VISA"
    MASTERCARD = "MASTERCARD"


class CardStatus(str, enum.Enum):
    ACTIVE = "active"
    LOCKED = "locked"
    LOST = "lost"


class Card(Base):
    __tablename__ = "cards"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    card_type: Mapped[CardType] = mapped_column(
        Enum(CardType),
        nullable=False,
        default=CardType.VISA,
    )

    # Full card number, Fernet-encrypted
    card_number_encrypted: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
    )

    # Last four digits in plaintext for display ("ending in 4242")
    last_four: Mapped[str] = mapped_column(
        String(4),
        nullable=False,
    )

    expiration_month: Mapped[int] = mapped_column(Integer, nullable=False)
    expiration_year: Mapped[int] = mapped_column(Integer, nullable=False)

    # CVV, Fernet-encrypted
    cvv_encrypted: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
    )

    status: Mapped[CardStatus] = mapped_column(
        Enum(CardStatus),
        nullable=False,
        default=CardStatus.ACTIVE,
    )

    created_at: Mapped[datetime] = mapped_column(
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
        back_populates="cards",
    )
