"""
Cards router — debit card endpoints.

Endpoints (JWT required, scoped to the authenticated member):
  POST  /cards                    — Issue a card for one of your accounts
  GET   /cards                    — List your cards
  PATCH /cards/{card_id}/status   — Lock, unlock or report lost

Card numbers and CVVs are never returned; only the last four digits.
"""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_member
from app.models.user import User
from app.schemas.card import CardIssueRequest, CardResponse, CardStatusRequest
from app.services import card_service

router = APIRouter()


@router.post(
    "",
    response_model=CardResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a card",
)
async def issue_card(
    request: CardIssueRequest,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    return await card_service.issue_card(
        db,
        user_id=user.id,
        account_number=request.account_number,
        card_type=request.card_type,
    )


@router.get(
    "",
    response_model=list[CardResponse],
    summary="List your cards",
)
async def list_cards(
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    return await card_service.list_cards(db, user.id)


@router.patch(
    "/{card_id}/status",
    response_model=CardResponse,
    summary="Change a card's status",
)
async def set_card_status(
    card_id: uuid.UUID,
    request: CardStatusRequest,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """A card reported lost can't be reactivated (409)."""
    return await card_service.set_card_status(db, user.id, card_id, request.status)
