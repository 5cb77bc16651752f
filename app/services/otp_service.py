"""
OTP challenge service — short-lived, single-use codes gating money movement.

Lifecycle of a challenge:
  1. issue_challenge() generates a 6-digit code, stores ONLY its salted
     hash with an expiry (now + OTP_EXPIRE_MINUTES), and returns the
     plaintext so the caller can email it. Any pending challenge for the
     same user is replaced: one outstanding challenge per user, last
     writer wins.
  2. verify_challenge() fails closed:
       - nothing pending            -> NO_CHALLENGE
       - now > expires_at           -> EXPIRED   (challenge deleted)
       - code doesn't match hash    -> MISMATCH  (challenge kept; retry
                                                  allowed until expiry)
       - code matches               -> VERIFIED  (challenge deleted)
  3. A consumed challenge is never restored, even if whatever it
     authorized fails afterwards.

Challenges live in their own table (not in process memory), so they
survive restarts and work across several API instances.

The `now` parameters exist so callers and tests can pin the clock.
"""

import enum
import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.otp_challenge import OtpChallenge
from app.security import generate_otp, hash_otp, verify_otp
from app.utils import as_utc, utcnow

logger = logging.getLogger(__name__)


class OtpVerification(str, enum.Enum):
    VERIFIED = "verified"
    NO_CHALLENGE = "no_challenge"
    EXPIRED = "expired"
    MISMATCH = "mismatch"

    @property
    def ok(self) -> bool:
        return self is OtpVerification.VERIFIED


async def get_challenge(db: AsyncSession, user_id: uuid.UUID) -> OtpChallenge | None:
    result = await db.execute(
        select(OtpChallenge).where(OtpChallenge.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def clear_challenge(db: AsyncSession, user_id: uuid.UUID) -> None:
    """Remove the user's pending challenge, if any."""
    await db.execute(delete(OtpChallenge).where(OtpChallenge.user_id == user_id))
    await db.flush()


async def issue_challenge(
    db: AsyncSession,
    user_id: uuid.UUID,
    purpose: str = "transfer",
    now: datetime | None = None,
) -> str:
    """
    Create (or replace) the user's pending challenge.

    Returns:
        The plaintext 6-digit code, for out-of-band delivery only.
    """
    now = now or utcnow()
    code = generate_otp()

    # Replace rather than update so the old hash can never match again
    await clear_challenge(db, user_id)
    db.add(
        OtpChallenge(
            user_id=user_id,
            code_hash=hash_otp(code),
            purpose=purpose,
            expires_at=now + timedelta(minutes=settings.OTP_EXPIRE_MINUTES),
            created_at=now,
        )
    )
    await db.flush()

    logger.info("OTP challenge issued", extra={"user_id": str(user_id), "purpose": purpose})
    return code


async def _consume(db: AsyncSession, challenge: OtpChallenge) -> bool:
    """Delete the challenge; False if another request already removed it."""
    result = await db.execute(
        delete(OtpChallenge).where(OtpChallenge.id == challenge.id)
    )
    await db.flush()
    return result.rowcount == 1


async def verify_challenge(
    db: AsyncSession,
    user_id: uuid.UUID,
    code: str,
    now: datetime | None = None,
    purpose: str | None = None,
) -> OtpVerification:
    """
    Check a submitted code against the user's pending challenge.

    When `purpose` is given, a pending challenge issued for something else
    counts as NO_CHALLENGE and is left in place.

    Consumption is a DELETE whose row count decides the outcome: when two
    requests verify the same code at once, only the one that removes the
    row gets VERIFIED; the other sees NO_CHALLENGE.
    """
    now = now or utcnow()
    challenge = await get_challenge(db, user_id)

    if challenge is None or (purpose and challenge.purpose != purpose):
        return OtpVerification.NO_CHALLENGE

    if now > as_utc(challenge.expires_at):
        if not await _consume(db, challenge):
            return OtpVerification.NO_CHALLENGE
        logger.info("OTP challenge expired", extra={"user_id": str(user_id)})
        return OtpVerification.EXPIRED

    if not verify_otp(code, challenge.code_hash):
        logger.warning("OTP mismatch", extra={"user_id": str(user_id)})
        return OtpVerification.MISMATCH

    if not await _consume(db, challenge):
        logger.warning("OTP already consumed", extra={"user_id": str(user_id)})
        return OtpVerification.NO_CHALLENGE
    return OtpVerification.VERIFIED
