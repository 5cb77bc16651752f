"""
Pydantic schemas for Card endpoints.

Card numbers and CVVs are NEVER returned in API responses. Only the
masked representation (last four digits) is exposed.
"""

import uuid

from pydantic import BaseModel

from app.models.card import CardStatus, CardType
from app.schemas.common import UtcDatetime


class CardIssueRequest(BaseModel):
    """Request body for POST /cards."""
    account_number: str
    card_type: CardType = CardType.VISA


class CardStatusRequest(BaseModel):
    """Request body for PATCH /cards/{card_id}/status."""
    status: CardStatus


class CardResponse(BaseModel):
    """Public representation of a card (masked — no full number or CVV)."""
    id: uuid.UUID
    account_id: uuid.UUID
    card_type: CardType
    last_four: str
    expiration_month: int
    expiration_year: int
    status: CardStatus
    created_at: UtcDatetime

    model_config = {"from_attributes": True}
