"""
Admin service — back-office correction tools and user management.

Every function here is [ADMIN ONLY]; the admin router guards them with
require_admin. None of them commit: each runs inside the request's
session, so all writes of one correction land in a single transaction
(get_db commits on success and rolls back on an unexpected error).

Corrections:
  backdate_transaction()
      Moves a transaction's created_at into the past. The first backdate
      keeps the pre-modification date in original_date; every backdate
      appends an entry to modification_history. The receipt's
      transaction_date follows, and the account summary's
      last_transaction_date is touched.

  delete_transaction()
      Copies the full transaction into deleted_transactions, then removes
      its receipt and the transaction itself. Balances are NOT adjusted;
      an admin reconciles the account afterwards if the deletion should
      change them.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import InvalidDateError, TransactionNotFoundError, UserNotFoundError
from app.models.account_summary import AccountSummary
from app.models.deleted_transaction import DeletedTransaction
from app.models.receipt import Receipt
from app.models.transaction import Transaction
from app.models.user import User, UserStatus
from app.utils import as_utc, utcnow

logger = logging.getLogger(__name__)


async def _get_transaction(db: AsyncSession, transaction_id: uuid.UUID) -> Transaction:
    result = await db.execute(
        select(Transaction).where(Transaction.id == transaction_id)
    )
    txn = result.scalar_one_or_none()
    if txn is None:
        raise TransactionNotFoundError(transaction_id)
    return txn


async def backdate_transaction(
    db: AsyncSession,
    transaction_id: uuid.UUID,
    new_date: datetime,
    actor_id: uuid.UUID,
    now: datetime | None = None,
) -> Transaction:
    """
    Change a transaction's date, keeping an audit trail.

    Args:
        transaction_id: Transaction to modify.
        new_date: The new created_at; naive values are taken as UTC.
        actor_id: The admin performing the change.

    Returns:
        The updated Transaction.

    Raises:
        InvalidDateError: new_date is in the future.
        TransactionNotFoundError: No such transaction.
    """
    now = now or utcnow()
    new_date = as_utc(new_date)
    if new_date > now:
        raise InvalidDateError("Cannot backdate a transaction to a future date")

    txn = await _get_transaction(db, transaction_id)
    previous = as_utc(txn.created_at)

    if txn.original_date is None:
        txn.original_date = previous

    # Assign a new list; in-place appends are not tracked on a plain JSON column
    txn.modification_history = [
        *(txn.modification_history or []),
        {
            "timestamp": now.isoformat(),
            "actor": str(actor_id),
            "changes": {
                "created_at": {
                    "from": previous.isoformat(),
                    "to": new_date.isoformat(),
                }
            },
        },
    ]
    txn.created_at = new_date

    await db.execute(
        update(Receipt)
        .where(Receipt.transaction_id == txn.id)
        .values(transaction_date=new_date)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(AccountSummary)
        .where(AccountSummary.user_id == txn.user_id)
        .where(AccountSummary.account_number == txn.account_number)
        .values(last_transaction_date=now)
        .execution_options(synchronize_session=False)
    )
    await db.flush()

    logger.info(
        "Transaction backdated",
        extra={
            "transaction_id": str(txn.id),
            "reference": txn.reference,
            "actor": str(actor_id),
            "from": previous.isoformat(),
            "to": new_date.isoformat(),
        },
    )
    return txn


async def delete_transaction(
    db: AsyncSession,
    transaction_id: uuid.UUID,
    actor_id: uuid.UUID,
    reason: str,
) -> DeletedTransaction:
    """
    Archive and delete a transaction together with its receipt.

    Returns:
        The DeletedTransaction archive row.

    Raises:
        TransactionNotFoundError: No such transaction.
    """
    txn = await _get_transaction(db, transaction_id)

    archived = DeletedTransaction(
        original_transaction_id=txn.id,
        user_id=txn.user_id,
        account_number=txn.account_number,
        amount_cents=txn.amount_cents,
        type=txn.type.value,
        transfer_type=txn.transfer_type.value if txn.transfer_type else None,
        description=txn.description,
        balance_after_cents=txn.balance_after_cents,
        recipient_account=txn.recipient_account,
        recipient_details=txn.recipient_details,
        reference=txn.reference,
        status=txn.status.value,
        currency=txn.currency,
        original_created_at=txn.created_at,
        original_date=txn.original_date,
        modification_history=list(txn.modification_history or []),
        deleted_by=actor_id,
        deletion_reason=reason,
    )
    db.add(archived)

    receipt = await db.execute(
        select(Receipt).where(Receipt.transaction_id == txn.id)
    )
    receipt = receipt.scalar_one_or_none()
    if receipt is not None:
        # The receipt references the transaction; it must go first
        await db.delete(receipt)
        await db.flush()

    await db.delete(txn)
    await db.flush()

    logger.warning(
        "Transaction deleted",
        extra={
            "transaction_id": str(transaction_id),
            "reference": archived.reference,
            "actor": str(actor_id),
            "reason": reason,
        },
    )
    return archived


async def list_deleted_transactions(
    db: AsyncSession,
    limit: int = 50,
    offset: int = 0,
) -> list[DeletedTransaction]:
    result = await db.execute(
        select(DeletedTransaction)
        .order_by(DeletedTransaction.deleted_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def list_users(
    db: AsyncSession,
    limit: int = 50,
    offset: int = 0,
) -> list[User]:
    result = await db.execute(
        select(User)
        .order_by(User.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def set_user_status(
    db: AsyncSession,
    user_id: uuid.UUID,
    status: UserStatus,
    actor_id: uuid.UUID,
) -> User:
    """
    Block or unblock a user. Blocked users keep read access only.

    Raises:
        UserNotFoundError: No such user.
    """
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFoundError(user_id)

    user.status = status
    await db.flush()
    await db.refresh(user)

    logger.info(
        "User status changed",
        extra={"user_id": str(user_id), "status": status.value, "actor": str(actor_id)},
    )
    return user
