"""
OtpChallenge model — the pending one-time passcode for a user.

At most one challenge exists per user (UNIQUE user_id): issuing a new code
replaces the old one, so the last initiation wins and an earlier emailed
code stops validating. Only the Argon2 hash of the code is stored.

Rows are deleted on successful verification (single use) or when found
expired. The expires_at index lets a periodic job (or a database TTL
feature, where available) sweep abandoned challenges.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class OtpChallenge(Base):
    __tablename__ = "otp_challenges"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        unique=True,
        nullable=False,
    )

    code_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # What the code authorizes ("transfer", "bill_payment"); informational
    purpose: Mapped[str] = mapped_column(String(32), nullable=False)

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
