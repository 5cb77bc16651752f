"""
Account service — business logic for bank account operations.

This module handles:
  - Account creation (with unique account number generation)
  - Account retrieval, scoped to the owning user or by account number
  - Balance verification (cached vs. computed from the transaction log)
  - The ONLY balance write path: apply_balance_change()

Ownership enforcement:
  Member-facing functions accept the authenticated user's id and refuse
  accounts owned by anyone else. Functions prefixed with `admin_` skip the
  ownership check; the router layer restricts them to ADMIN users.

Balance writes:
  apply_balance_change() performs an atomic compare-and-swap on
  (balance, version). It is called by the transfer orchestrator's commit
  step and by the deposit/withdrawal path; nothing else reads-modifies-
  writes Account.balance_cents.
"""

import logging
import random
import string
import uuid

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import (
    AccountNotFoundError,
    BalanceConflictError,
    InsufficientFundsError,
    UnauthorizedAccessError,
)
from app.models.account import Account
from app.models.transaction import Transaction, TransactionStatus

logger = logging.getLogger(__name__)


def _generate_account_number() -> str:
    """Generate a random 10-digit account number."""
    return "".join(random.choices(string.digits, k=10))


async def create_account(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_name: str = "Primary Checking",
    currency: str | None = None,
) -> Account:
    """
    Open a new bank account for a user with a zero balance.

    Args:
        db: Database session.
        user_id: The owner.
        account_name: Display name.
        currency: ISO 4217 code; defaults to DEFAULT_CURRENCY.

    Returns:
        The newly created Account instance.
    """
    # Generate a unique account number (retry if collision, extremely unlikely)
    for _ in range(10):
        account_number = _generate_account_number()
        existing = await db.execute(
            select(Account).where(Account.account_number == account_number)
        )
        if existing.scalar_one_or_none() is None:
            break
    else:
        raise RuntimeError("Failed to generate a unique account number")

    account = Account(
        user_id=user_id,
        account_number=account_number,
        account_name=account_name,
        currency=currency or settings.DEFAULT_CURRENCY,
        balance_cents=0,
        version=1,
    )
    db.add(account)
    await db.flush()
    return account


async def get_accounts(
    db: AsyncSession,
    user_id: uuid.UUID,
) -> list[Account]:
    """List all accounts belonging to a user, oldest first."""
    result = await db.execute(
        select(Account)
        .where(Account.user_id == user_id)
        .order_by(Account.opened_at.asc())
    )
    return list(result.scalars().all())


async def get_primary_account(
    db: AsyncSession,
    user_id: uuid.UUID,
) -> Account:
    """
    The user's primary account: the first one opened.

    Raises:
        AccountNotFoundError: If the user has no account at all.
    """
    result = await db.execute(
        select(Account)
        .where(Account.user_id == user_id)
        .order_by(Account.opened_at.asc())
        .limit(1)
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise AccountNotFoundError("primary")
    return account


async def find_account_by_number(
    db: AsyncSession,
    account_number: str,
    for_update: bool = False,
) -> Account | None:
    """Look up any account by its number (no ownership check)."""
    query = select(Account).where(Account.account_number == account_number)
    if for_update:
        # Re-read the row even if it is already in the identity map
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_account(
    db: AsyncSession,
    account_number: str,
    user_id: uuid.UUID,
) -> Account:
    """
    Get a single account by number, verifying ownership.

    Raises:
        AccountNotFoundError: If the account doesn't exist.
        UnauthorizedAccessError: If the account belongs to someone else.
    """
    account = await find_account_by_number(db, account_number)

    if account is None:
        raise AccountNotFoundError(account_number)

    if account.user_id != user_id:
        raise UnauthorizedAccessError("You do not have access to this account")

    return account


async def resolve_source_account(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_number: str | None,
) -> Account:
    """The named account if given (ownership checked), else the primary one."""
    if account_number:
        return await get_account(db, account_number, user_id)
    return await get_primary_account(db, user_id)


async def apply_balance_change(
    db: AsyncSession,
    account: Account,
    delta_cents: int,
) -> Account:
    """
    Atomically add `delta_cents` (negative for a debit) to the balance.

    The UPDATE only matches when the row still carries the version this
    session read AND the result stays non-negative. When it matches zero
    rows the current row is re-read to tell the two cases apart.

    Raises:
        InsufficientFundsError: The balance really is too low now.
        BalanceConflictError: Another operation changed the account first.
    """
    expected_version = account.version

    result = await db.execute(
        update(Account)
        .where(Account.id == account.id)
        .where(Account.version == expected_version)
        .where(Account.balance_cents + delta_cents >= 0)
        .values(
            balance_cents=Account.balance_cents + delta_cents,
            version=Account.version + 1,
        )
        .execution_options(synchronize_session=False)
    )

    await db.refresh(account)

    if result.rowcount != 1:
        if account.balance_cents + delta_cents < 0:
            raise InsufficientFundsError(
                account_number=account.account_number,
                requested_cents=-delta_cents,
                available_cents=account.balance_cents,
            )
        logger.warning(
            "Balance compare-and-swap lost a race",
            extra={
                "account_number": account.account_number,
                "expected_version": expected_version,
                "current_version": account.version,
            },
        )
        raise BalanceConflictError(account.account_number)

    return account


async def compute_ledger_balance(
    db: AsyncSession,
    account_number: str,
) -> int:
    """
    Compute the balance by summing all completed transactions.

    Amounts are signed, so this is a plain SUM. This is the integrity-check
    counterpart to Account.balance_cents.
    """
    result = await db.execute(
        select(func.coalesce(func.sum(Transaction.amount_cents), 0))
        .where(Transaction.account_number == account_number)
        .where(Transaction.status == TransactionStatus.COMPLETED)
    )
    return result.scalar()


async def _balance_report(db: AsyncSession, account: Account) -> dict:
    computed_balance_cents = await compute_ledger_balance(db, account.account_number)
    return {
        "account_number": account.account_number,
        "balance_cents": account.balance_cents,
        "computed_balance_cents": computed_balance_cents,
        "match": account.balance_cents == computed_balance_cents,
        "currency": account.currency,
    }


async def get_balance(
    db: AsyncSession,
    account_number: str,
    user_id: uuid.UUID,
) -> dict:
    """
    Get the account balance — both cached and computed from transactions.

    If they don't match, that signals drift that reconciliation must fix.

    Returns:
        Dict with balance_cents, computed_balance_cents, match, currency.
    """
    account = await get_account(db, account_number, user_id)
    return await _balance_report(db, account)


# ---------------------------------------------------------------------------
# Admin read-only functions
# ---------------------------------------------------------------------------

async def admin_get_all_accounts(
    db: AsyncSession,
    limit: int = 50,
    offset: int = 0,
) -> list[Account]:
    """[ADMIN ONLY] List all accounts across all users."""
    result = await db.execute(
        select(Account)
        .order_by(Account.opened_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def admin_get_account(
    db: AsyncSession,
    account_number: str,
) -> Account:
    """
    [ADMIN ONLY] Get any account by number without ownership check.

    Raises:
        AccountNotFoundError: If the account doesn't exist.
    """
    account = await find_account_by_number(db, account_number)
    if account is None:
        raise AccountNotFoundError(account_number)
    return account


async def admin_get_balance(
    db: AsyncSession,
    account_number: str,
) -> dict:
    """[ADMIN ONLY] Get any account's balance without ownership check."""
    account = await admin_get_account(db, account_number)
    return await _balance_report(db, account)
