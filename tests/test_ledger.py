"""
Service-level tests for the ledger: recorder, balance compare-and-swap,
account summary and reconciliation.

These tests verify:
  - References follow PREFIX-<millis>-<hex> and are unique
  - Every recorded transaction gets exactly one receipt
  - The balance CAS refuses a stale version and never goes negative
  - Summary totals classify inflows/outflows and restart each month
  - Reconciliation rebuilds the summary and repairs balance drift
"""

import re
import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import func, select, update

from app.exceptions import (
    BalanceConflictError,
    DuplicateReferenceError,
    InsufficientFundsError,
    ReconciliationError,
)
from app.models.account import Account
from app.models.receipt import Receipt
from app.models.transaction import Transaction, TransactionType
from app.models.user import User
from app.security import hash_password
from app.services.account_service import (
    apply_balance_change,
    compute_ledger_balance,
    create_account,
    get_balance,
)
from app.services.summary_service import apply_to_summary, get_summary, reconcile_account
from app.services.transaction_service import generate_reference, record_transaction
from app.services.transfer_service import post_deposit, post_withdrawal


@pytest_asyncio.fixture
async def owner(db_session):
    user = User(
        email="ledger@example.com",
        hashed_password=hash_password("SecurePass123!"),
        first_name="Ledger",
        last_name="Owner",
    )
    db_session.add(user)
    await db_session.flush()
    return user


@pytest_asyncio.fixture
async def account(db_session, owner):
    return await create_account(db_session, owner.id)


class TestReferences:

    @pytest.mark.parametrize(
        "txn_type, prefix",
        [
            (TransactionType.TRANSFER, "TRX"),
            (TransactionType.PAYMENT, "BILL"),
            (TransactionType.DEPOSIT, "DEP"),
            (TransactionType.WITHDRAWAL, "WDL"),
        ],
    )
    def test_reference_format(self, txn_type, prefix):
        reference = generate_reference(txn_type)
        assert re.fullmatch(rf"{prefix}-\d{{13}}-[0-9A-F]{{6}}", reference)

    def test_references_are_distinct(self):
        references = {generate_reference(TransactionType.TRANSFER) for _ in range(200)}
        assert len(references) == 200


class TestRecorder:

    async def test_record_creates_one_receipt(self, db_session, account):
        txn = await record_transaction(
            db_session,
            user_id=account.user_id,
            account_number=account.account_number,
            amount_cents=5000,
            txn_type=TransactionType.DEPOSIT,
            description="Deposit",
            balance_after_cents=5000,
            reference="DEP-1-ABCDEF",
            currency="USD",
        )

        receipts = (
            await db_session.execute(select(Receipt).where(Receipt.transaction_id == txn.id))
        ).scalars().all()
        assert len(receipts) == 1
        receipt = receipts[0]
        assert receipt.reference == txn.reference
        assert receipt.amount_cents == 5000
        assert receipt.balance_after_cents == 5000
        assert receipt.type == "deposit"
        assert receipt.status == "completed"

    async def test_recorder_does_not_touch_balance(self, db_session, account):
        await record_transaction(
            db_session,
            user_id=account.user_id,
            account_number=account.account_number,
            amount_cents=5000,
            txn_type=TransactionType.DEPOSIT,
            description="Deposit",
            balance_after_cents=5000,
            reference="DEP-2-ABCDEF",
            currency="USD",
        )
        await db_session.refresh(account)
        assert account.balance_cents == 0

    async def test_duplicate_reference_rejected(self, db_session, account):
        kwargs = dict(
            user_id=account.user_id,
            account_number=account.account_number,
            amount_cents=100,
            txn_type=TransactionType.DEPOSIT,
            description="Deposit",
            balance_after_cents=100,
            reference="DEP-3-ABCDEF",
            currency="USD",
        )
        await record_transaction(db_session, **kwargs)

        with pytest.raises(DuplicateReferenceError):
            await record_transaction(db_session, **kwargs)

        count = await db_session.execute(
            select(func.count()).select_from(Transaction).where(Transaction.reference == "DEP-3-ABCDEF")
        )
        assert count.scalar() == 1


class TestBalanceCompareAndSwap:

    async def test_apply_increments_version(self, db_session, account):
        assert account.version == 1
        await apply_balance_change(db_session, account, 2500)
        assert account.balance_cents == 2500
        assert account.version == 2

    async def test_debit_below_zero_rejected(self, db_session, account):
        await apply_balance_change(db_session, account, 1000)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await apply_balance_change(db_session, account, -1001)

        assert exc_info.value.available_cents == 1000
        await db_session.refresh(account)
        assert account.balance_cents == 1000

    async def test_stale_version_conflicts(self, db_session, account):
        """A debit based on an outdated read must not apply."""
        await apply_balance_change(db_session, account, 10000)

        # Another writer debits the account behind this session's back
        await db_session.execute(
            update(Account)
            .where(Account.id == account.id)
            .values(balance_cents=Account.balance_cents - 3000, version=Account.version + 1)
            .execution_options(synchronize_session=False)
        )

        stale_version = account.version
        with pytest.raises(BalanceConflictError):
            await apply_balance_change(db_session, account, -5000)

        # The failed attempt refreshed the row; nothing was double-debited
        assert account.balance_cents == 7000
        assert account.version == stale_version + 1

    async def test_conflict_reports_insufficient_funds_when_balance_dropped(self, db_session, account):
        await apply_balance_change(db_session, account, 5000)
        await db_session.execute(
            update(Account)
            .where(Account.id == account.id)
            .values(balance_cents=1000, version=Account.version + 1)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(InsufficientFundsError):
            await apply_balance_change(db_session, account, -4000)


class TestSummary:

    async def test_inflow_and_outflow_totals(self, db_session, account):
        now = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)
        user_id, number = account.user_id, account.account_number

        await apply_to_summary(db_session, user_id, number, 10000, TransactionType.DEPOSIT, "USD", now=now)
        await apply_to_summary(db_session, user_id, number, -2500, TransactionType.TRANSFER, "USD", now=now)
        summary = await apply_to_summary(db_session, user_id, number, -500, TransactionType.PAYMENT, "USD", now=now)

        assert summary.current_balance_cents == 7000
        assert summary.available_balance_cents == 7000
        assert summary.total_deposits_cents == 10000
        assert summary.total_withdrawals_cents == 3000
        assert summary.net_change_cents == 7000
        assert summary.stats_period == "2025-03"

    async def test_monthly_totals_restart(self, db_session, account):
        user_id, number = account.user_id, account.account_number
        march = datetime(2025, 3, 31, 23, 0, tzinfo=timezone.utc)
        april = march + timedelta(hours=2)

        await apply_to_summary(db_session, user_id, number, 10000, TransactionType.DEPOSIT, "USD", now=march)
        summary = await apply_to_summary(db_session, user_id, number, -1000, TransactionType.WITHDRAWAL, "USD", now=april)

        assert summary.stats_period == "2025-04"
        assert summary.total_deposits_cents == 0
        assert summary.total_withdrawals_cents == 1000
        assert summary.net_change_cents == -1000
        # Balances carry over across months
        assert summary.current_balance_cents == 9000

    async def test_get_summary_creates_empty_row(self, db_session, account):
        summary = await get_summary(db_session, account.user_id, account.account_number)
        assert summary.current_balance_cents == 0
        assert summary.stats_period is None


class TestPostingPath:

    async def test_deposit_and_withdrawal_keep_ledger_in_sync(self, db_session, account):
        await post_deposit(db_session, account.account_number, 10000)
        result = await post_withdrawal(db_session, account.account_number, 2550)

        assert result.new_balance_cents == 7450
        assert await compute_ledger_balance(db_session, account.account_number) == 7450

        balance = await get_balance(db_session, account.account_number, account.user_id)
        assert balance["match"] is True

        summary = await get_summary(db_session, account.user_id, account.account_number)
        assert summary.current_balance_cents == 7450
        assert summary.total_deposits_cents == 10000
        assert summary.total_withdrawals_cents == 2550


class TestReconcile:

    async def test_rebuilds_drifted_summary(self, db_session, account):
        await post_deposit(db_session, account.account_number, 10000)
        summary = await get_summary(db_session, account.user_id, account.account_number)
        summary.current_balance_cents = 123
        summary.total_deposits_cents = 0
        await db_session.flush()

        report = await reconcile_account(db_session, account.account_number)

        assert report["summary_drift"] is True
        assert report["summary_after"]["current_balance_cents"] == 10000
        assert report["summary_after"]["total_deposits_cents"] == 10000
        assert report["balance_drift_cents"] == 0
        assert report["balance_repaired"] is False

    async def test_repairs_balance_drift(self, db_session, account):
        await post_deposit(db_session, account.account_number, 10000)
        # Simulate a lost ledger row: balance says 10000, ledger says 4000
        txn = (
            await db_session.execute(
                select(Transaction).where(Transaction.account_number == account.account_number)
            )
        ).scalar_one()
        txn.amount_cents = 4000
        await db_session.flush()

        report = await reconcile_account(db_session, account.account_number)
        assert report["balance_drift_cents"] == 6000
        assert report["new_account_balance_cents"] == 10000

        report = await reconcile_account(db_session, account.account_number, repair_balance=True)
        assert report["balance_repaired"] is True
        assert report["new_account_balance_cents"] == 4000

        balance = await get_balance(db_session, account.account_number, account.user_id)
        assert balance["match"] is True

    async def test_refuses_negative_repair(self, db_session, account):
        await record_transaction(
            db_session,
            user_id=account.user_id,
            account_number=account.account_number,
            amount_cents=-500,
            txn_type=TransactionType.WITHDRAWAL,
            description="Orphaned withdrawal",
            balance_after_cents=0,
            reference=f"WDL-{uuid.uuid4().hex[:6]}",
            currency="USD",
        )

        with pytest.raises(ReconciliationError):
            await reconcile_account(db_session, account.account_number, repair_balance=True)
