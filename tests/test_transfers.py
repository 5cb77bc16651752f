"""
Tests for the two-phase transfer flow (initiate -> OTP -> complete).

These tests verify:
  - An internal transfer with a valid OTP debits the sender, credits the
    recipient, and writes a transaction, receipt and summary for each
  - Insufficient funds are rejected with no side effects
  - Expired, wrong, missing and reused OTPs are rejected
  - Domestic and international transfers and their required fields
  - The OTP threshold and OTP delivery failure
  - Blocked users and admins can't move money
  - A crash during the commit step rolls everything back, returns an
    opaque 500, and leaves the OTP consumed
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select, update

from app.config import settings
from app.models.account_summary import AccountSummary
from app.models.otp_challenge import OtpChallenge
from app.models.receipt import Receipt
from app.models.transaction import Transaction, TransactionType
from app.utils import utcnow


async def _initiate(client, user, body):
    response = await client.post("/transfers/initiate", json=body, headers=user.headers)
    assert response.status_code == 200, response.text
    return response.json()


async def _transactions(session_factory, account_number):
    async with session_factory() as session:
        result = await session.execute(
            select(Transaction).where(Transaction.account_number == account_number)
        )
        return list(result.scalars().all())


async def _transfer_row(session_factory, account_number):
    rows = await _transactions(session_factory, account_number)
    return next(t for t in rows if t.type == TransactionType.TRANSFER)


class TestInternalTransfer:

    async def test_internal_transfer_with_otp(
        self, client, member, second_member, fund, notifier, session_factory
    ):
        """Balance 1000, transfer 300 internal with a valid OTP -> 700."""
        await fund(member.account_number, "1000.00")
        body = {
            "transfer_type": "internal",
            "to_account": second_member.account_number,
            "amount": "300.00",
        }

        initiated = await _initiate(client, member, body)
        assert initiated["requires_otp"] is True
        assert initiated["success"] is True

        code = notifier.last_code(member.email)
        response = await client.post(
            "/transfers", json={**body, "otp": code}, headers=member.headers
        )
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["success"] is True
        assert data["new_balance_cents"] == 70000
        assert data["transfer_type"] == "internal"
        assert data["currency"] == "USD"
        assert data["reference"].startswith("TRX-")

        async with session_factory() as session:
            txn = (
                await session.execute(
                    select(Transaction).where(Transaction.reference == data["reference"])
                )
            ).scalar_one()
            assert txn.amount_cents == -30000
            assert txn.balance_after_cents == 70000
            assert txn.recipient_account == second_member.account_number

            receipt = (
                await session.execute(select(Receipt).where(Receipt.transaction_id == txn.id))
            ).scalar_one()
            assert receipt.reference == txn.reference
            assert receipt.amount_cents == -30000
            assert receipt.balance_after_cents == 70000

            summary = (
                await session.execute(
                    select(AccountSummary).where(
                        AccountSummary.account_number == member.account_number
                    )
                )
            ).scalar_one()
            assert summary.current_balance_cents == 70000
            assert summary.total_withdrawals_cents == 30000

    async def test_internal_transfer_credits_recipient(
        self, client, member, second_member, fund, notifier, session_factory
    ):
        await fund(member.account_number, "1000.00")
        body = {
            "transfer_type": "internal",
            "to_account": second_member.account_number,
            "amount": "300.00",
        }
        await _initiate(client, member, body)
        response = await client.post(
            "/transfers", json={**body, "otp": notifier.last_code()}, headers=member.headers
        )
        assert response.status_code == 200

        balance = await client.get(
            f"/accounts/{second_member.account_number}/balance",
            headers=second_member.headers,
        )
        assert balance.json()["balance_cents"] == 30000
        assert balance.json()["match"] is True

        received = await _transactions(session_factory, second_member.account_number)
        assert len(received) == 1
        assert received[0].amount_cents == 30000
        assert received[0].user_id == second_member.user_id
        assert received[0].reference == f"{response.json()['reference']}-CR"

        receipt = await client.get(
            f"/receipts/{received[0].reference}", headers=second_member.headers
        )
        assert receipt.status_code == 200

    async def test_unknown_recipient_rejected(self, client, member, fund):
        await fund(member.account_number, "100.00")
        response = await client.post(
            "/transfers/initiate",
            json={"transfer_type": "internal", "to_account": "0000000000", "amount": "10.00"},
            headers=member.headers,
        )
        assert response.status_code == 404
        assert response.json()["error_type"] == "recipient_not_found"

    async def test_same_account_rejected(self, client, member, fund):
        await fund(member.account_number, "100.00")
        response = await client.post(
            "/transfers/initiate",
            json={"transfer_type": "internal", "to_account": member.account_number, "amount": "10.00"},
            headers=member.headers,
        )
        assert response.status_code == 422
        assert response.json()["error_type"] == "same_account"

    async def test_currency_mismatch_rejected(self, client, member, second_member, fund):
        await fund(member.account_number, "100.00")
        eur = await client.post(
            "/accounts",
            json={"account_name": "Euro", "currency": "EUR"},
            headers=second_member.headers,
        )
        response = await client.post(
            "/transfers/initiate",
            json={"transfer_type": "internal", "to_account": eur.json()["account_number"], "amount": "10.00"},
            headers=member.headers,
        )
        assert response.status_code == 422
        assert response.json()["error_type"] == "currency_mismatch"

    async def test_transfer_from_named_account(self, client, member, second_member, fund, notifier):
        savings = await client.post(
            "/accounts", json={"account_name": "Savings"}, headers=member.headers
        )
        savings_number = savings.json()["account_number"]
        await fund(savings_number, "50.00")

        body = {
            "transfer_type": "internal",
            "from_account": savings_number,
            "to_account": second_member.account_number,
            "amount": "20.00",
        }
        await _initiate(client, member, body)
        response = await client.post(
            "/transfers", json={**body, "otp": notifier.last_code()}, headers=member.headers
        )
        assert response.status_code == 200
        assert response.json()["new_balance_cents"] == 3000

        primary = await client.get(f"/accounts/{member.account_number}/balance", headers=member.headers)
        assert primary.json()["balance_cents"] == 0


class TestRejections:

    async def test_insufficient_funds_has_no_side_effects(
        self, client, member, fund, notifier, session_factory
    ):
        """Balance 100, transfer 150 -> rejected, nothing written."""
        await fund(member.account_number, "100.00")
        before = await _transactions(session_factory, member.account_number)

        body = {"to_account": "9999999999", "amount": "150.00", "bank_name": "Other Bank"}
        response = await client.post("/transfers/initiate", json=body, headers=member.headers)
        assert response.status_code == 422
        data = response.json()
        assert data["success"] is False
        assert data["error_type"] == "insufficient_funds"
        assert data["available_cents"] == 10000
        assert notifier.messages == []

        response = await client.post(
            "/transfers", json={**body, "otp": "123456"}, headers=member.headers
        )
        assert response.status_code == 422

        after = await _transactions(session_factory, member.account_number)
        assert len(after) == len(before)

        balance = await client.get(f"/accounts/{member.account_number}/balance", headers=member.headers)
        assert balance.json()["balance_cents"] == 10000

        summary = await client.get(f"/accounts/{member.account_number}/summary", headers=member.headers)
        assert summary.json()["current_balance_cents"] == 10000
        assert summary.json()["total_withdrawals_cents"] == 0

    async def test_expired_otp_rejected(self, client, member, fund, notifier, session_factory):
        await fund(member.account_number, "1000.00")
        body = {"to_account": "9999999999", "amount": "10.00"}
        await _initiate(client, member, body)
        code = notifier.last_code()

        # Jump past the expiry
        async with session_factory() as session:
            await session.execute(
                update(OtpChallenge)
                .where(OtpChallenge.user_id == member.user_id)
                .values(expires_at=utcnow() - timedelta(seconds=1))
            )
            await session.commit()

        response = await client.post("/transfers", json={**body, "otp": code}, headers=member.headers)
        assert response.status_code == 400
        assert response.json()["error_type"] == "otp_expired"

        balance = await client.get(f"/accounts/{member.account_number}/balance", headers=member.headers)
        assert balance.json()["balance_cents"] == 100000

        # The expired challenge is gone; the same code now finds nothing
        response = await client.post("/transfers", json={**body, "otp": code}, headers=member.headers)
        assert response.json()["error_type"] == "otp_no_challenge"

    async def test_wrong_otp_then_right_otp(self, client, member, fund, notifier):
        await fund(member.account_number, "1000.00")
        body = {"to_account": "9999999999", "amount": "10.00"}
        await _initiate(client, member, body)
        code = notifier.last_code()
        wrong = "000000" if code != "000000" else "111111"

        response = await client.post("/transfers", json={**body, "otp": wrong}, headers=member.headers)
        assert response.status_code == 400
        assert response.json()["error_type"] == "otp_mismatch"

        response = await client.post("/transfers", json={**body, "otp": code}, headers=member.headers)
        assert response.status_code == 200

    async def test_otp_is_single_use(self, client, member, fund, notifier):
        await fund(member.account_number, "1000.00")
        body = {"to_account": "9999999999", "amount": "10.00"}
        await _initiate(client, member, body)
        code = notifier.last_code()

        first = await client.post("/transfers", json={**body, "otp": code}, headers=member.headers)
        second = await client.post("/transfers", json={**body, "otp": code}, headers=member.headers)

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["error_type"] == "otp_no_challenge"

        balance = await client.get(f"/accounts/{member.account_number}/balance", headers=member.headers)
        assert balance.json()["balance_cents"] == 99000

    async def test_missing_otp(self, client, member, fund):
        await fund(member.account_number, "1000.00")
        response = await client.post(
            "/transfers",
            json={"to_account": "9999999999", "amount": "10.00"},
            headers=member.headers,
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "otp_required"

    async def test_complete_without_initiate(self, client, member, fund):
        await fund(member.account_number, "1000.00")
        response = await client.post(
            "/transfers",
            json={"to_account": "9999999999", "amount": "10.00", "otp": "123456"},
            headers=member.headers,
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "otp_no_challenge"

    async def test_notification_failure_clears_challenge(
        self, client, member, fund, notifier, session_factory
    ):
        await fund(member.account_number, "1000.00")
        notifier.fail = True

        response = await client.post(
            "/transfers/initiate",
            json={"to_account": "9999999999", "amount": "10.00"},
            headers=member.headers,
        )
        assert response.status_code == 503
        assert response.json()["error_type"] == "notification_failed"

        async with session_factory() as session:
            pending = await session.execute(
                select(OtpChallenge).where(OtpChallenge.user_id == member.user_id)
            )
            assert pending.scalar_one_or_none() is None


class TestTransferVariants:

    async def test_domestic_is_default(self, client, member, fund, notifier, session_factory):
        await fund(member.account_number, "100.00")
        body = {"to_account": "12345678", "amount": "25.50", "bank_name": "Other Bank"}
        await _initiate(client, member, body)
        response = await client.post(
            "/transfers", json={**body, "otp": notifier.last_code()}, headers=member.headers
        )
        assert response.status_code == 200
        assert response.json()["transfer_type"] == "domestic"
        assert response.json()["new_balance_cents"] == 7450

        txn = await _transfer_row(session_factory, member.account_number)
        assert txn.description == "Transfer to 12345678"
        assert txn.recipient_details == {
            "account_name": "Other Bank",
            "account_number": "12345678",
            "bank_name": "Other Bank",
        }

    async def test_international_requires_bank_details(self, client, member, fund):
        await fund(member.account_number, "100.00")
        response = await client.post(
            "/transfers/initiate",
            json={"transfer_type": "international", "to_account": "DE89370400440532013000", "amount": "10.00"},
            headers=member.headers,
        )
        assert response.status_code == 422

    async def test_international_transfer(self, client, member, fund, notifier, session_factory):
        await fund(member.account_number, "100.00")
        body = {
            "transfer_type": "international",
            "to_account": "DE89370400440532013000",
            "amount": "40.00",
            "account_name": "Hans Muster",
            "bank_name": "Deutsche Bank",
            "swift_iban": "DEUTDEFFXXX",
            "bank_address": "Frankfurt",
        }
        await _initiate(client, member, body)
        response = await client.post(
            "/transfers", json={**body, "otp": notifier.last_code()}, headers=member.headers
        )
        assert response.status_code == 200

        txn = await _transfer_row(session_factory, member.account_number)
        assert txn.description == "International transfer to Hans Muster"
        assert txn.recipient_details["swift_iban"] == "DEUTDEFFXXX"
        assert txn.recipient_details["bank_name"] == "Deutsche Bank"

    async def test_unknown_transfer_type_rejected(self, client, member):
        response = await client.post(
            "/transfers/initiate",
            json={"transfer_type": "wire", "to_account": "1", "amount": "1.00"},
            headers=member.headers,
        )
        assert response.status_code == 422


class TestOtpPolicy:

    async def test_small_transfer_below_threshold_skips_otp(
        self, client, member, fund, notifier, monkeypatch
    ):
        monkeypatch.setattr(settings, "TRANSFER_OTP_THRESHOLD_CENTS", 5000)
        await fund(member.account_number, "100.00")
        body = {"to_account": "9999999999", "amount": "50.00"}

        initiated = await _initiate(client, member, body)
        assert initiated["requires_otp"] is False
        assert notifier.messages == []

        response = await client.post("/transfers", json=body, headers=member.headers)
        assert response.status_code == 200
        assert response.json()["new_balance_cents"] == 5000

    async def test_transfer_above_threshold_needs_otp(self, client, member, fund, monkeypatch):
        monkeypatch.setattr(settings, "TRANSFER_OTP_THRESHOLD_CENTS", 5000)
        await fund(member.account_number, "100.00")
        body = {"to_account": "9999999999", "amount": "50.01"}

        initiated = await _initiate(client, member, body)
        assert initiated["requires_otp"] is True


class TestAccessControl:

    async def test_blocked_member_cannot_transfer(self, client, member, admin, fund):
        await fund(member.account_number, "100.00")
        await client.patch(
            f"/admin/users/{member.user_id}/status",
            json={"status": "blocked"},
            headers=admin.headers,
        )

        response = await client.post(
            "/transfers/initiate",
            json={"to_account": "9999999999", "amount": "10.00"},
            headers=member.headers,
        )
        assert response.status_code == 403
        assert response.json()["error_type"] == "account_blocked"

        # Reads still work
        balance = await client.get(f"/accounts/{member.account_number}/balance", headers=member.headers)
        assert balance.status_code == 200

    async def test_admin_cannot_transfer(self, client, admin):
        response = await client.post(
            "/transfers/initiate",
            json={"to_account": "9999999999", "amount": "10.00"},
            headers=admin.headers,
        )
        assert response.status_code == 403

    async def test_cannot_transfer_from_someone_elses_account(self, client, member, second_member, fund):
        await fund(second_member.account_number, "100.00")
        response = await client.post(
            "/transfers/initiate",
            json={
                "from_account": second_member.account_number,
                "to_account": "9999999999",
                "amount": "10.00",
            },
            headers=member.headers,
        )
        assert response.status_code == 403


class TestCommitFailure:

    async def test_crash_rolls_back_and_keeps_otp_consumed(
        self, client, member, fund, notifier, session_factory
    ):
        await fund(member.account_number, "100.00")
        body = {"to_account": "9999999999", "amount": "10.00"}
        await _initiate(client, member, body)
        code = notifier.last_code()
        before = await _transactions(session_factory, member.account_number)

        with patch(
            "app.services.transfer_service.apply_to_summary",
            side_effect=RuntimeError("Simulated database crash"),
        ):
            response = await client.post(
                "/transfers", json={**body, "otp": code}, headers=member.headers
            )

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "message": "Transfer failed",
            "detail": "Transfer failed",
            "error_type": "transfer_failed",
        }

        # Neither the ledger row nor the debit survived
        after = await _transactions(session_factory, member.account_number)
        assert len(after) == len(before)
        balance = await client.get(f"/accounts/{member.account_number}/balance", headers=member.headers)
        assert balance.json()["balance_cents"] == 10000
        assert balance.json()["match"] is True

        # The code was used up before the commit step
        retry = await client.post("/transfers", json={**body, "otp": code}, headers=member.headers)
        assert retry.status_code == 400
        assert retry.json()["error_type"] == "otp_no_challenge"


class TestStatusLookup:

    async def test_status_and_receipt_by_reference(self, client, member, second_member, fund, notifier):
        await fund(member.account_number, "100.00")
        body = {"to_account": "9999999999", "amount": "10.00"}
        await _initiate(client, member, body)
        done = await client.post(
            "/transfers", json={**body, "otp": notifier.last_code()}, headers=member.headers
        )
        reference = done.json()["reference"]

        status = await client.get(f"/transactions/{reference}", headers=member.headers)
        assert status.status_code == 200
        assert status.json()["status"] == "completed"
        assert status.json()["amount_cents"] == -1000

        receipt = await client.get(f"/receipts/{reference}", headers=member.headers)
        assert receipt.status_code == 200
        assert receipt.json()["reference"] == reference

        # Other users can't see it
        other = await client.get(f"/transactions/{reference}", headers=second_member.headers)
        assert other.status_code == 404

    async def test_unknown_reference(self, client, member):
        response = await client.get("/transactions/TRX-0-000000", headers=member.headers)
        assert response.status_code == 404
        assert response.json()["error_type"] == "transaction_not_found"
