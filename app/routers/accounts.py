"""
Accounts router — the member's own bank accounts.

Endpoints (JWT required, scoped to the authenticated member):
  POST   /accounts                                — Open another account
  GET    /accounts                                — List own accounts
  GET    /accounts/primary                        — The primary account
  GET    /accounts/{account_number}               — Account details
  GET    /accounts/{account_number}/balance       — Cached vs. ledger balance
  GET    /accounts/{account_number}/summary       — Balance and monthly stats
  GET    /accounts/{account_number}/transactions  — Transaction history

Admin equivalents live under /admin (routers/admin.py).
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_member
from app.models.transaction import TransactionStatus, TransactionType
from app.models.user import User
from app.schemas.account import (
    AccountCreateRequest,
    AccountResponse,
    AccountSummaryResponse,
    BalanceResponse,
)
from app.schemas.transaction import TransactionResponse
from app.services import account_service, summary_service, transaction_service

router = APIRouter()


@router.post(
    "",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a new bank account",
)
async def create_account(
    request: AccountCreateRequest,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """Open an additional account with a zero balance."""
    return await account_service.create_account(
        db=db,
        user_id=user.id,
        account_name=request.account_name,
        currency=request.currency,
    )


@router.get(
    "",
    response_model=list[AccountResponse],
    summary="List your accounts",
)
async def list_accounts(
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    return await account_service.get_accounts(db, user.id)


@router.get(
    "/primary",
    response_model=AccountResponse,
    summary="Get your primary account",
)
async def get_primary_account(
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """The first account opened, used when a transfer names no source."""
    return await account_service.get_primary_account(db, user.id)


@router.get(
    "/{account_number}",
    response_model=AccountResponse,
    summary="Get account details",
)
async def get_account(
    account_number: str,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """
    Returns 403 if the account belongs to a different user, or 404 if
    the account doesn't exist.
    """
    return await account_service.get_account(db, account_number, user.id)


@router.get(
    "/{account_number}/balance",
    response_model=BalanceResponse,
    summary="Check account balance",
)
async def get_balance(
    account_number: str,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """
    Get the account balance — both cached and computed from transactions.

    `match` is false when the cached balance has drifted from the ledger.
    """
    return await account_service.get_balance(db, account_number, user.id)


@router.get(
    "/{account_number}/summary",
    response_model=AccountSummaryResponse,
    summary="Get the account summary",
)
async def get_summary(
    account_number: str,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    return await summary_service.get_summary(db, user.id, account_number)


@router.get(
    "/{account_number}/transactions",
    response_model=list[TransactionResponse],
    summary="List account transactions",
)
async def list_transactions(
    account_number: str,
    status_filter: TransactionStatus | None = Query(None, alias="status"),
    type_filter: TransactionType | None = Query(None, alias="type"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """Newest first. Filter with ?status=completed or ?type=transfer."""
    return await transaction_service.get_transactions(
        db,
        account_number=account_number,
        user_id=user.id,
        status_filter=status_filter,
        type_filter=type_filter,
        limit=limit,
        offset=offset,
    )
