"""
Transaction service — the ledger recorder and transaction/receipt reads.

Recording:
  record_transaction() writes ONE immutable Transaction and its ONE
  Receipt (linked by the transaction's own id) for a money movement that
  the caller is committing. It never touches balances: the caller has
  already computed balance_after and applies the balance change itself,
  in the same unit of work, right after recording. Writing the ledger row
  first means the durable audit trail always exists before the balance
  write is considered authoritative.

References:
  generate_reference() builds "<PREFIX>-<epoch millis>-<6 hex chars>".
  The UNIQUE constraint on Transaction.reference is the final arbiter;
  a collision surfaces as DuplicateReferenceError and is not retried.

Reads:
  Member reads are scoped to the authenticated user. Functions prefixed
  with `admin_` provide org-wide read access for the admin router.
"""

import secrets
import time
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    DuplicateReferenceError,
    ReceiptNotFoundError,
    TransactionNotFoundError,
)
from app.models.receipt import Receipt
from app.models.transaction import (
    Transaction,
    TransactionStatus,
    TransactionType,
    TransferType,
)
from app.services.account_service import get_account


REFERENCE_PREFIXES = {
    TransactionType.TRANSFER: "TRX",
    TransactionType.PAYMENT: "BILL",
    TransactionType.DEPOSIT: "DEP",
    TransactionType.WITHDRAWAL: "WDL",
}


def generate_reference(txn_type: TransactionType) -> str:
    """Build a process-wide unique reference for a new transaction."""
    prefix = REFERENCE_PREFIXES[txn_type]
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"


async def record_transaction(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_number: str,
    amount_cents: int,
    txn_type: TransactionType,
    description: str,
    balance_after_cents: int,
    reference: str,
    currency: str,
    transfer_type: TransferType | None = None,
    recipient_account: str | None = None,
    recipient_details: dict[str, Any] | None = None,
) -> Transaction:
    """
    Persist a completed Transaction and its Receipt.

    Args:
        amount_cents: Signed amount; negative for money leaving the account.
        balance_after_cents: Account balance once this movement commits.
        reference: Caller-generated unique reference.

    Returns:
        The flushed Transaction (its id is the receipt's transaction_id).

    Raises:
        DuplicateReferenceError: If the reference is already used.
    """
    existing = await db.execute(
        select(Transaction.id).where(Transaction.reference == reference)
    )
    if existing.scalar_one_or_none() is not None:
        raise DuplicateReferenceError(reference)

    txn = Transaction(
        user_id=user_id,
        account_number=account_number,
        amount_cents=amount_cents,
        type=txn_type,
        transfer_type=transfer_type,
        description=description,
        balance_after_cents=balance_after_cents,
        recipient_account=recipient_account,
        recipient_details=recipient_details,
        reference=reference,
        status=TransactionStatus.COMPLETED,
        currency=currency,
        modification_history=[],
    )
    db.add(txn)
    try:
        await db.flush()
    except IntegrityError as exc:
        # Lost a race against a concurrent insert with the same reference
        raise DuplicateReferenceError(reference) from exc

    receipt = Receipt(
        transaction_id=txn.id,
        user_id=user_id,
        account_number=account_number,
        amount_cents=amount_cents,
        type=txn_type.value,
        description=description,
        balance_after_cents=balance_after_cents,
        recipient_details=recipient_details,
        reference=reference,
        status=txn.status.value,
        currency=currency,
        transaction_date=txn.created_at,
    )
    db.add(receipt)
    await db.flush()

    return txn


async def get_transactions(
    db: AsyncSession,
    account_number: str,
    user_id: uuid.UUID,
    status_filter: TransactionStatus | None = None,
    type_filter: TransactionType | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Transaction]:
    """
    List transactions for one of the user's accounts, newest first.

    Raises:
        AccountNotFoundError / UnauthorizedAccessError: via ownership check.
    """
    await get_account(db, account_number, user_id)

    query = (
        select(Transaction)
        .where(Transaction.account_number == account_number)
        .order_by(Transaction.created_at.desc())
        .limit(limit)
        .offset(offset)
    )

    if status_filter:
        query = query.where(Transaction.status == status_filter)
    if type_filter:
        query = query.where(Transaction.type == type_filter)

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_transaction_by_reference(
    db: AsyncSession,
    reference: str,
    user_id: uuid.UUID,
) -> Transaction:
    """
    Status lookup: did the movement with this reference complete?

    Another user's reference is reported as not found rather than
    forbidden, so references can't be guessed at.
    """
    result = await db.execute(
        select(Transaction)
        .where(Transaction.reference == reference)
        .where(Transaction.user_id == user_id)
    )
    txn = result.scalar_one_or_none()
    if txn is None:
        raise TransactionNotFoundError(reference)
    return txn


async def get_receipt(
    db: AsyncSession,
    reference: str,
    user_id: uuid.UUID,
) -> Receipt:
    """Fetch the user's receipt for a transaction reference."""
    result = await db.execute(
        select(Receipt)
        .where(Receipt.reference == reference)
        .where(Receipt.user_id == user_id)
    )
    receipt = result.scalar_one_or_none()
    if receipt is None:
        raise ReceiptNotFoundError(reference)
    return receipt


# ---------------------------------------------------------------------------
# Admin read-only functions
# ---------------------------------------------------------------------------

async def admin_get_all_transactions(
    db: AsyncSession,
    status_filter: TransactionStatus | None = None,
    type_filter: TransactionType | None = None,
    account_number: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Transaction]:
    """[ADMIN ONLY] List ALL transactions, optionally for a single account."""
    query = (
        select(Transaction)
        .order_by(Transaction.created_at.desc())
        .limit(limit)
        .offset(offset)
    )

    if status_filter:
        query = query.where(Transaction.status == status_filter)
    if type_filter:
        query = query.where(Transaction.type == type_filter)
    if account_number:
        query = query.where(Transaction.account_number == account_number)

    result = await db.execute(query)
    return list(result.scalars().all())


async def admin_get_transaction(
    db: AsyncSession,
    transaction_id: uuid.UUID,
) -> Transaction:
    """[ADMIN ONLY] Get any single transaction by ID without ownership check."""
    result = await db.execute(
        select(Transaction).where(Transaction.id == transaction_id)
    )
    txn = result.scalar_one_or_none()

    if txn is None:
        raise TransactionNotFoundError(transaction_id)

    return txn
