"""
Transfer service — the orchestrator for every money movement.

Transfers and bill payments are two-phase:

  initiate:  VALIDATING -> AWAITING_OTP
             Validate the order, check the balance, and (when the OTP
             policy applies) issue a challenge and email the code. Nothing
             about the transfer itself is stored; the client re-submits
             the same parameters together with the code.

  complete:  VALIDATING -> VERIFYING -> COMMITTING -> COMPLETED
             Re-validate, consume the OTP (committed on its own so a used
             code stays used whatever happens next), then run the commit
             step as ONE database transaction:
                 lock accounts (id order) and re-validate
                 record Transaction + Receipt
                 compare-and-swap the balance
                 update the AccountSummary
             and repeat the last three for the recipient of an internal
             transfer.

Failure exits:
  - REJECTED: a BankAPIError (client or conflict error). Commit-step writes
    are rolled back and the error is re-raised unchanged.
  - FAILED: anything else during COMMITTING. Writes are rolled back, the
    cause is logged with user, account and reference, and the caller gets
    an opaque TransferFailedError.

Deposits and withdrawals (admin credit/debit) use the same posting
sequence but no OTP, and leave the commit to the request's session.

OTP policy:
  - transfers: TRANSFER_OTP_ENABLED and amount > TRANSFER_OTP_THRESHOLD_CENTS
  - bill payments: always
"""

import enum
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import (
    AccountNotFoundError,
    BankAPIError,
    CurrencyMismatchError,
    InsufficientFundsError,
    InvalidOtpError,
    InvalidTransferError,
    NotificationDeliveryError,
    OtpRequiredError,
    RecipientNotFoundError,
    SameAccountTransferError,
    TransferFailedError,
    UnknownBillerError,
)
from app.models.account import Account
from app.models.transaction import Transaction, TransactionType, TransferType
from app.models.user import User
from app.notifications import NotificationSender, otp_email
from app.services.account_service import (
    admin_get_account,
    apply_balance_change,
    find_account_by_number,
    resolve_source_account,
)
from app.services.otp_service import clear_challenge, issue_challenge, verify_challenge
from app.services.summary_service import apply_to_summary
from app.services.transaction_service import generate_reference, record_transaction
from app.utils import from_cents

logger = logging.getLogger(__name__)


class TransferState(str, enum.Enum):
    VALIDATING = "validating"
    AWAITING_OTP = "awaiting_otp"
    VERIFYING = "verifying"
    COMMITTING = "committing"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

@dataclass
class TransferOrder:
    """
    A validated transfer request, independent of the HTTP schema.

    The international-only fields are ignored for the other variants.
    """

    transfer_type: TransferType
    recipient_account: str
    amount_cents: int
    from_account: str | None = None
    description: str | None = None
    account_name: str | None = None
    bank_name: str | None = None
    bank_address: str | None = None
    swift_iban: str | None = None
    email: str | None = None
    phone: str | None = None

    def check(self) -> None:
        """
        Raises:
            InvalidTransferError: Non-positive amount, no destination, or an
                international transfer without name, bank and SWIFT/IBAN.
        """
        if self.amount_cents <= 0:
            raise InvalidTransferError("Amount must be greater than zero")
        if not self.recipient_account:
            raise InvalidTransferError("Recipient account is required")
        if self.transfer_type == TransferType.INTERNATIONAL:
            if not (self.account_name and self.bank_name and self.swift_iban):
                raise InvalidTransferError(
                    "International transfers require account name, bank name and SWIFT/IBAN"
                )

    def recipient_details(self) -> dict[str, Any]:
        if self.account_name:
            account_name = self.account_name
        elif self.transfer_type == TransferType.INTERNAL:
            account_name = "Internal Recipient"
        else:
            account_name = self.bank_name or "External Recipient"

        details: dict[str, Any] = {
            "account_name": account_name,
            "account_number": self.recipient_account,
        }
        if self.transfer_type == TransferType.INTERNATIONAL:
            details.update(
                bank_name=self.bank_name,
                bank_address=self.bank_address,
                swift_iban=self.swift_iban,
                email=self.email,
                phone=self.phone,
            )
        elif self.bank_name:
            details["bank_name"] = self.bank_name
        return details

    def describe(self) -> str:
        if self.description:
            return self.description
        if self.transfer_type == TransferType.INTERNATIONAL:
            return f"International transfer to {self.account_name}"
        return f"Transfer to {self.recipient_account}"


@dataclass(frozen=True)
class Biller:
    id: str
    name: str
    category: str
    account_number: str


BILLERS: dict[str, Biller] = {
    b.id: b
    for b in (
        Biller("1", "Electricity Company", "Utilities", "ELEC-12345"),
        Biller("2", "Water Corporation", "Utilities", "WATER-67890"),
        Biller("3", "Internet Provider", "Telecom", "NET-54321"),
        Biller("4", "Cable TV", "Entertainment", "TV-98765"),
        Biller("5", "Mobile Carrier", "Telecom", "MOBILE-13579"),
    )
}


def list_billers() -> list[Biller]:
    return list(BILLERS.values())


def get_biller(biller_id: str) -> Biller:
    biller = BILLERS.get(biller_id)
    if biller is None:
        raise UnknownBillerError(biller_id)
    return biller


@dataclass
class BillPaymentOrder:
    biller_id: str
    amount_cents: int
    from_account: str | None = None
    biller_reference: str | None = None
    description: str | None = None

    def check(self) -> Biller:
        if self.amount_cents <= 0:
            raise InvalidTransferError("Amount must be greater than zero")
        return get_biller(self.biller_id)

    def recipient_details(self, biller: Biller) -> dict[str, Any]:
        return {
            "biller_id": biller.id,
            "biller_name": biller.name,
            "category": biller.category,
            "account_number": biller.account_number,
            "biller_reference": self.biller_reference,
        }

    def describe(self, biller: Biller) -> str:
        return self.description or f"Bill payment to {biller.name}"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class InitiateResult:
    requires_otp: bool
    message: str


@dataclass
class TransferResult:
    reference: str
    account_number: str
    new_balance_cents: int
    currency: str
    transfer_type: TransferType | None = None
    transactions: list[Transaction] = field(default_factory=list)

    @property
    def new_balance(self) -> Decimal:
        return from_cents(self.new_balance_cents)


def otp_required_for(amount_cents: int) -> bool:
    """Whether a transfer of this size must be confirmed with an OTP."""
    return (
        settings.TRANSFER_OTP_ENABLED
        and amount_cents > settings.TRANSFER_OTP_THRESHOLD_CENTS
    )


# ---------------------------------------------------------------------------
# Posting
# ---------------------------------------------------------------------------

async def _post(
    db: AsyncSession,
    account: Account,
    amount_cents: int,
    txn_type: TransactionType,
    description: str,
    reference: str,
    transfer_type: TransferType | None = None,
    recipient_account: str | None = None,
    recipient_details: dict[str, Any] | None = None,
) -> Transaction:
    """
    Record, compare-and-swap and summarize one leg of a movement.

    `account` must be freshly read in this transaction; its version is the
    one the balance change is conditioned on.
    """
    if account.balance_cents + amount_cents < 0:
        raise InsufficientFundsError(
            account_number=account.account_number,
            requested_cents=-amount_cents,
            available_cents=account.balance_cents,
        )

    txn = await record_transaction(
        db,
        user_id=account.user_id,
        account_number=account.account_number,
        amount_cents=amount_cents,
        txn_type=txn_type,
        description=description,
        balance_after_cents=account.balance_cents + amount_cents,
        reference=reference,
        currency=account.currency,
        transfer_type=transfer_type,
        recipient_account=recipient_account,
        recipient_details=recipient_details,
    )
    await apply_balance_change(db, account, amount_cents)
    await apply_to_summary(
        db,
        user_id=account.user_id,
        account_number=account.account_number,
        amount_cents=amount_cents,
        txn_type=txn_type,
        currency=account.currency,
    )
    return txn


async def _lock_accounts(db: AsyncSession, *account_numbers: str) -> dict[str, Account | None]:
    """Re-read accounts with row locks, always in the same (id) order."""
    found: dict[str, Account | None] = {}
    for number in account_numbers:
        found[number] = await find_account_by_number(db, number)

    locked: dict[str, Account | None] = {number: None for number in account_numbers}
    present = [a for a in found.values() if a is not None]
    for account in sorted(present, key=lambda a: str(a.id)):
        locked[account.account_number] = await find_account_by_number(
            db, account.account_number, for_update=True
        )
    return locked


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class TransferOrchestrator:
    """
    Drives one request through the transfer state machine.

    One instance per request. The orchestrator commits the session itself
    (OTP consumption, then the commit step) and rolls it back on failure.
    """

    def __init__(
        self,
        db: AsyncSession,
        user: User,
        sender: NotificationSender | None = None,
    ):
        self.db = db
        self.user = user
        self.sender = sender
        self.state = TransferState.VALIDATING
        # Captured up front; a rollback expires the ORM instance
        self.user_id = user.id
        self.sender_name = user.full_name

    def _enter(self, state: TransferState, **context: Any) -> None:
        logger.info(
            "Transfer state change",
            extra={
                "user_id": str(self.user_id),
                "from_state": self.state.value,
                "to_state": state.value,
                **context,
            },
        )
        self.state = state

    # --- validation ---------------------------------------------------------

    async def _validate_transfer(self, order: TransferOrder) -> tuple[Account, Account | None]:
        order.check()
        source = await resolve_source_account(self.db, self.user_id, order.from_account)

        if order.recipient_account == source.account_number:
            raise SameAccountTransferError()

        if source.balance_cents < order.amount_cents:
            raise InsufficientFundsError(
                account_number=source.account_number,
                requested_cents=order.amount_cents,
                available_cents=source.balance_cents,
            )

        recipient = None
        if order.transfer_type == TransferType.INTERNAL:
            recipient = await find_account_by_number(self.db, order.recipient_account)
            if recipient is None:
                raise RecipientNotFoundError(order.recipient_account)
            if recipient.currency != source.currency:
                raise CurrencyMismatchError(source.currency, recipient.currency)

        return source, recipient

    async def _validate_bill(self, order: BillPaymentOrder) -> tuple[Account, Biller]:
        biller = order.check()
        source = await resolve_source_account(self.db, self.user_id, order.from_account)
        if source.balance_cents < order.amount_cents:
            raise InsufficientFundsError(
                account_number=source.account_number,
                requested_cents=order.amount_cents,
                available_cents=source.balance_cents,
            )
        return source, biller

    async def _validated(self, coro):
        try:
            return await coro
        except BankAPIError as exc:
            self._enter(TransferState.REJECTED, error_type=exc.error_type)
            raise

    # --- OTP ------------------------------------------------------------------

    async def _send_challenge(self, purpose: str) -> None:
        code = await issue_challenge(self.db, self.user_id, purpose=purpose)
        subject, body = otp_email(self.user.first_name, code, purpose)

        try:
            delivered = await self.sender.send(self.user.email, subject, body)
        except Exception:
            logger.exception("OTP delivery raised", extra={"user_id": str(self.user_id)})
            delivered = False

        if not delivered:
            await clear_challenge(self.db, self.user_id)
            self._enter(TransferState.REJECTED, error_type="notification_failed")
            raise NotificationDeliveryError()

        self._enter(TransferState.AWAITING_OTP, purpose=purpose)

    async def _consume_otp(self, otp: str | None, purpose: str) -> None:
        self._enter(TransferState.VERIFYING)
        if not otp:
            self._enter(TransferState.REJECTED, error_type="otp_required")
            raise OtpRequiredError()

        outcome = await verify_challenge(self.db, self.user_id, otp, purpose=purpose)
        if not outcome.ok:
            self._enter(TransferState.REJECTED, error_type=f"otp_{outcome.value}")
            raise InvalidOtpError(outcome.value)

        # A consumed code stays consumed even if the commit step fails
        await self.db.commit()

    # --- commit step ----------------------------------------------------------

    async def _commit(self, account_number: str, reference: str, post) -> TransferResult:
        self._enter(
            TransferState.COMMITTING,
            account_number=account_number,
            reference=reference,
        )
        try:
            result = await post()
            await self.db.commit()
        except BankAPIError as exc:
            await self.db.rollback()
            self._enter(TransferState.REJECTED, error_type=exc.error_type, reference=reference)
            raise
        except Exception as exc:
            await self.db.rollback()
            self._enter(TransferState.FAILED, reference=reference)
            logger.exception(
                "Transfer commit failed",
                extra={
                    "user_id": str(self.user_id),
                    "account_number": account_number,
                    "reference": reference,
                },
            )
            raise TransferFailedError() from exc

        self._enter(TransferState.COMPLETED, reference=reference)
        return result

    # --- transfers ------------------------------------------------------------

    async def initiate_transfer(self, order: TransferOrder) -> InitiateResult:
        await self._validated(self._validate_transfer(order))

        if not otp_required_for(order.amount_cents):
            self._enter(TransferState.AWAITING_OTP, otp_required=False)
            return InitiateResult(
                requires_otp=False,
                message="No OTP required. Submit the transfer to complete it.",
            )

        await self._send_challenge("transfer")
        return InitiateResult(
            requires_otp=True,
            message="OTP sent to your registered email address",
        )

    async def complete_transfer(self, order: TransferOrder, otp: str | None) -> TransferResult:
        source, _ = await self._validated(self._validate_transfer(order))
        source_number = source.account_number

        if otp_required_for(order.amount_cents):
            await self._consume_otp(otp, "transfer")

        reference = generate_reference(TransactionType.TRANSFER)

        async def post() -> TransferResult:
            numbers = [source_number]
            if order.transfer_type == TransferType.INTERNAL:
                numbers.append(order.recipient_account)
            locked = await _lock_accounts(self.db, *numbers)

            src = locked[source_number]
            if src is None:
                raise AccountNotFoundError(source_number)
            sent = await _post(
                self.db,
                src,
                -order.amount_cents,
                TransactionType.TRANSFER,
                order.describe(),
                reference,
                transfer_type=order.transfer_type,
                recipient_account=order.recipient_account,
                recipient_details=order.recipient_details(),
            )
            transactions = [sent]

            if order.transfer_type == TransferType.INTERNAL:
                dst = locked[order.recipient_account]
                if dst is None:
                    raise RecipientNotFoundError(order.recipient_account)
                received = await _post(
                    self.db,
                    dst,
                    order.amount_cents,
                    TransactionType.TRANSFER,
                    f"Transfer from {source_number}",
                    f"{reference}-CR",
                    transfer_type=TransferType.INTERNAL,
                    recipient_account=source_number,
                    recipient_details={
                        "account_name": self.sender_name,
                        "account_number": source_number,
                    },
                )
                transactions.append(received)

            return TransferResult(
                reference=reference,
                account_number=source_number,
                new_balance_cents=src.balance_cents,
                currency=src.currency,
                transfer_type=order.transfer_type,
                transactions=transactions,
            )

        return await self._commit(source_number, reference, post)

    # --- bill payments ----------------------------------------------------------

    async def initiate_bill_payment(self, order: BillPaymentOrder) -> InitiateResult:
        await self._validated(self._validate_bill(order))
        await self._send_challenge("bill_payment")
        return InitiateResult(
            requires_otp=True,
            message="OTP sent to your registered email address",
        )

    async def complete_bill_payment(self, order: BillPaymentOrder, otp: str | None) -> TransferResult:
        source, biller = await self._validated(self._validate_bill(order))
        source_number = source.account_number

        await self._consume_otp(otp, "bill_payment")

        reference = generate_reference(TransactionType.PAYMENT)

        async def post() -> TransferResult:
            locked = await _lock_accounts(self.db, source_number)
            src = locked[source_number]
            if src is None:
                raise AccountNotFoundError(source_number)
            paid = await _post(
                self.db,
                src,
                -order.amount_cents,
                TransactionType.PAYMENT,
                order.describe(biller),
                reference,
                recipient_account=biller.account_number,
                recipient_details=order.recipient_details(biller),
            )
            return TransferResult(
                reference=reference,
                account_number=source_number,
                new_balance_cents=src.balance_cents,
                currency=src.currency,
                transactions=[paid],
            )

        return await self._commit(source_number, reference, post)


# ---------------------------------------------------------------------------
# Module-level entry points
# ---------------------------------------------------------------------------

async def initiate_transfer(
    db: AsyncSession,
    user: User,
    order: TransferOrder,
    sender: NotificationSender,
) -> InitiateResult:
    return await TransferOrchestrator(db, user, sender).initiate_transfer(order)


async def complete_transfer(
    db: AsyncSession,
    user: User,
    order: TransferOrder,
    otp: str | None,
) -> TransferResult:
    return await TransferOrchestrator(db, user).complete_transfer(order, otp)


async def initiate_bill_payment(
    db: AsyncSession,
    user: User,
    order: BillPaymentOrder,
    sender: NotificationSender,
) -> InitiateResult:
    return await TransferOrchestrator(db, user, sender).initiate_bill_payment(order)


async def complete_bill_payment(
    db: AsyncSession,
    user: User,
    order: BillPaymentOrder,
    otp: str | None,
) -> TransferResult:
    return await TransferOrchestrator(db, user).complete_bill_payment(order, otp)


async def _post_adjustment(
    db: AsyncSession,
    account_number: str,
    amount_cents: int,
    txn_type: TransactionType,
    description: str,
) -> TransferResult:
    account = await admin_get_account(db, account_number)
    reference = generate_reference(txn_type)
    try:
        txn = await _post(db, account, amount_cents, txn_type, description, reference)
    except BankAPIError:
        # get_db commits on domain errors; drop the half-posted ledger row
        await db.rollback()
        raise

    logger.info(
        "Ledger adjustment posted",
        extra={
            "account_number": account_number,
            "reference": reference,
            "type": txn_type.value,
            "amount_cents": amount_cents,
        },
    )
    return TransferResult(
        reference=reference,
        account_number=account_number,
        new_balance_cents=account.balance_cents,
        currency=account.currency,
        transactions=[txn],
    )


async def post_deposit(
    db: AsyncSession,
    account_number: str,
    amount_cents: int,
    description: str | None = None,
) -> TransferResult:
    """
    [ADMIN ONLY] Credit an account through the ledger.

    The request's session commits; no OTP is involved.
    """
    if amount_cents <= 0:
        raise InvalidTransferError("Amount must be greater than zero")
    return await _post_adjustment(
        db, account_number, amount_cents, TransactionType.DEPOSIT, description or "Deposit"
    )


async def post_withdrawal(
    db: AsyncSession,
    account_number: str,
    amount_cents: int,
    description: str | None = None,
) -> TransferResult:
    """
    [ADMIN ONLY] Debit an account through the ledger.

    Raises:
        InsufficientFundsError: The balance would go negative.
    """
    if amount_cents <= 0:
        raise InvalidTransferError("Amount must be greater than zero")
    return await _post_adjustment(
        db, account_number, -amount_cents, TransactionType.WITHDRAWAL, description or "Withdrawal"
    )
