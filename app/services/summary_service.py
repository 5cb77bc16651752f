"""
Account summary service — the denormalized per-account rollup.

apply_to_summary() is called once per affected account in the same unit
of work as the Transaction it describes. It upserts the row and then
applies the change as a single UPDATE with column increments, so two
concurrent postings never overwrite each other's totals.

Classification of a signed amount:
  - amount > 0  -> inflow:  total_deposits += amount
  - amount < 0  -> outflow: total_withdrawals += abs(amount)
  - always      -> net_change += amount, balances += amount

Monthly totals belong to stats_period ("YYYY-MM"). The first posting in a
new month restarts them from that posting.

The summary can drift (a partially failed write, an admin delete). It is
rebuilt from the transaction log by reconcile_account(), which can also
repair Account.balance_cents through the compare-and-swap path.
"""

import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ReconciliationError
from app.models.account_summary import AccountSummary
from app.models.transaction import Transaction, TransactionStatus, TransactionType
from app.services.account_service import (
    admin_get_account,
    apply_balance_change,
    compute_ledger_balance,
    get_account,
)
from app.utils import month_period, month_start, utcnow

logger = logging.getLogger(__name__)


async def _get_or_create_summary(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_number: str,
    currency: str,
) -> AccountSummary:
    result = await db.execute(
        select(AccountSummary)
        .where(AccountSummary.user_id == user_id)
        .where(AccountSummary.account_number == account_number)
    )
    summary = result.scalar_one_or_none()
    if summary is None:
        summary = AccountSummary(
            user_id=user_id,
            account_number=account_number,
            currency=currency,
            current_balance_cents=0,
            available_balance_cents=0,
            total_deposits_cents=0,
            total_withdrawals_cents=0,
            net_change_cents=0,
        )
        db.add(summary)
        await db.flush()
    return summary


async def apply_to_summary(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_number: str,
    amount_cents: int,
    txn_type: TransactionType,
    currency: str,
    now: datetime | None = None,
) -> AccountSummary:
    """
    Fold one posted transaction into the account's summary.

    Args:
        amount_cents: Signed amount of the posted transaction.
        txn_type: Recorded for the log line; classification uses the sign.
        now: Posting time; defaults to the current UTC time.

    Returns:
        The refreshed AccountSummary row.
    """
    now = now or utcnow()
    period = month_period(now)
    summary = await _get_or_create_summary(db, user_id, account_number, currency)

    inflow = max(amount_cents, 0)
    outflow = max(-amount_cents, 0)
    same_period = AccountSummary.stats_period == period

    await db.execute(
        update(AccountSummary)
        .where(AccountSummary.id == summary.id)
        .values(
            current_balance_cents=AccountSummary.current_balance_cents + amount_cents,
            available_balance_cents=AccountSummary.available_balance_cents + amount_cents,
            total_deposits_cents=case(
                (same_period, AccountSummary.total_deposits_cents + inflow),
                else_=inflow,
            ),
            total_withdrawals_cents=case(
                (same_period, AccountSummary.total_withdrawals_cents + outflow),
                else_=outflow,
            ),
            net_change_cents=case(
                (same_period, AccountSummary.net_change_cents + amount_cents),
                else_=amount_cents,
            ),
            stats_period=period,
            last_transaction_date=now,
        )
        .execution_options(synchronize_session=False)
    )
    await db.refresh(summary)

    logger.debug(
        "Summary updated",
        extra={
            "account_number": account_number,
            "amount_cents": amount_cents,
            "type": txn_type.value,
        },
    )
    return summary


async def get_summary(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_number: str,
) -> AccountSummary:
    """
    Return the cached summary for one of the user's accounts.

    An account that has never posted a transaction gets an empty row.

    Raises:
        AccountNotFoundError / UnauthorizedAccessError: via ownership check.
    """
    account = await get_account(db, account_number, user_id)
    return await _get_or_create_summary(db, user_id, account_number, account.currency)


def _summary_snapshot(summary: AccountSummary) -> dict[str, Any]:
    return {
        "current_balance_cents": summary.current_balance_cents,
        "available_balance_cents": summary.available_balance_cents,
        "stats_period": summary.stats_period,
        "total_deposits_cents": summary.total_deposits_cents,
        "total_withdrawals_cents": summary.total_withdrawals_cents,
        "net_change_cents": summary.net_change_cents,
    }


async def reconcile_account(
    db: AsyncSession,
    account_number: str,
    repair_balance: bool = False,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    [ADMIN ONLY] Rebuild an account's summary from its transaction log.

    The summary is always rewritten. Account.balance_cents is only changed
    when repair_balance is set, and then through apply_balance_change().

    Returns:
        Report dict: ledger and account balances, summary before/after,
        the drift found and whether the balance was repaired.

    Raises:
        AccountNotFoundError: Unknown account number.
        ReconciliationError: Repair requested but the ledger sums negative.
    """
    now = now or utcnow()
    account = await admin_get_account(db, account_number)
    ledger_cents = await compute_ledger_balance(db, account_number)

    if repair_balance and ledger_cents < 0:
        raise ReconciliationError(
            f"Ledger for account {account_number} sums to {ledger_cents} cents; "
            "refusing to set a negative balance"
        )

    summary = await _get_or_create_summary(
        db, account.user_id, account_number, account.currency
    )
    before = _summary_snapshot(summary)

    monthly = await db.execute(
        select(
            func.coalesce(func.sum(case((Transaction.amount_cents > 0, Transaction.amount_cents), else_=0)), 0),
            func.coalesce(func.sum(case((Transaction.amount_cents < 0, -Transaction.amount_cents), else_=0)), 0),
            func.coalesce(func.sum(Transaction.amount_cents), 0),
        )
        .where(Transaction.account_number == account_number)
        .where(Transaction.status == TransactionStatus.COMPLETED)
        .where(Transaction.created_at >= month_start(now))
    )
    deposits_cents, withdrawals_cents, net_cents = monthly.one()

    last = await db.execute(
        select(func.max(Transaction.created_at))
        .where(Transaction.account_number == account_number)
        .where(Transaction.status == TransactionStatus.COMPLETED)
    )
    last_transaction_date = last.scalar()

    summary.current_balance_cents = ledger_cents
    summary.available_balance_cents = ledger_cents
    summary.currency = account.currency
    summary.stats_period = month_period(now)
    summary.total_deposits_cents = deposits_cents
    summary.total_withdrawals_cents = withdrawals_cents
    summary.net_change_cents = net_cents
    summary.last_transaction_date = last_transaction_date
    await db.flush()

    after = _summary_snapshot(summary)
    balance_drift_cents = account.balance_cents - ledger_cents
    balance_before_cents = account.balance_cents

    repaired = False
    if repair_balance and balance_drift_cents != 0:
        await apply_balance_change(db, account, ledger_cents - account.balance_cents)
        repaired = True

    logger.info(
        "Account reconciled",
        extra={
            "account_number": account_number,
            "balance_drift_cents": balance_drift_cents,
            "summary_changed": before != after,
            "repaired": repaired,
        },
    )

    return {
        "account_number": account_number,
        "currency": account.currency,
        "ledger_balance_cents": ledger_cents,
        "account_balance_cents": balance_before_cents,
        "balance_drift_cents": balance_drift_cents,
        "balance_repaired": repaired,
        "new_account_balance_cents": account.balance_cents,
        "summary_before": before,
        "summary_after": after,
        "summary_drift": before != after,
    }
