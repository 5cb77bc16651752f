"""
Card service — debit card issuance and status changes, encrypted at rest.

When a card is issued:
  1. A 16-digit card number is randomly generated (prefix by card type)
  2. A 3-digit CVV is randomly generated
  3. Expiration is set to 3 years from now
  4. The card number and CVV are encrypted with Fernet before storage
  5. Only the last four digits are stored in plaintext (for display)

Cards are addressed by their id. A user may hold several cards per
account; every status change names the exact card it targets.
"""

import logging
import secrets
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import CardNotFoundError, InvalidCardStatusError
from app.models.card import Card, CardStatus, CardType
from app.security import encrypt_value
from app.services.account_service import get_account
from app.utils import utcnow

logger = logging.getLogger(__name__)

_CARD_PREFIX = {CardType.VISA: "4", CardType.MASTERCARD: "5"}


def _generate_card_number(card_type: CardType) -> str:
    """Random 16-digit number with the network's leading digit.

    Real card numbers are assigned by the network and pass the Luhn check;
    these are demo numbers.
    """
    return _CARD_PREFIX[card_type] + "".join(str(secrets.randbelow(10)) for _ in range(15))


def _generate_cvv() -> str:
    return "".join(str(secrets.randbelow(10)) for _ in range(3))


async def issue_card(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_number: str,
    card_type: CardType = CardType.VISA,
) -> Card:
    """
    Issue a new card linked to one of the user's accounts.

    Raises:
        AccountNotFoundError: If the account doesn't exist.
        UnauthorizedAccessError: If the account belongs to someone else.
    """
    account = await get_account(db, account_number, user_id)

    card_number = _generate_card_number(card_type)
    now = utcnow()

    card = Card(
        user_id=user_id,
        account_id=account.id,
        card_type=card_type,
        card_number_encrypted=encrypt_value(card_number),
        last_four=card_number[-4:],
        expiration_month=now.month,
        expiration_year=now.year + 3,
        cvv_encrypted=encrypt_value(_generate_cvv()),
        status=CardStatus.ACTIVE,
    )
    db.add(card)
    await db.flush()

    logger.info("Card issued", extra={"user_id": str(user_id), "card_id": str(card.id)})
    return card


async def list_cards(db: AsyncSession, user_id: uuid.UUID) -> list[Card]:
    result = await db.execute(
        select(Card)
        .where(Card.user_id == user_id)
        .order_by(Card.created_at.asc())
    )
    return list(result.scalars().all())


async def set_card_status(
    db: AsyncSession,
    user_id: uuid.UUID,
    card_id: uuid.UUID,
    status: CardStatus,
) -> Card:
    """
    Lock, unlock or report lost the card with this id.

    Another user's card is reported as not found.

    Raises:
        CardNotFoundError: No such card for this user.
        InvalidCardStatusError: The card was already reported lost.
    """
    result = await db.execute(
        select(Card).where(Card.id == card_id).where(Card.user_id == user_id)
    )
    card = result.scalar_one_or_none()
    if card is None:
        raise CardNotFoundError(card_id)

    if card.status == CardStatus.LOST and status != CardStatus.LOST:
        raise InvalidCardStatusError("A card reported lost cannot be reactivated")

    card.status = status
    await db.flush()
    await db.refresh(card)

    logger.info(
        "Card status changed",
        extra={"card_id": str(card_id), "status": status.value},
    )
    return card
