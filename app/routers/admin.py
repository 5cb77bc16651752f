"""
Admin router — org-wide visibility and audited ledger corrections.

All endpoints require the ADMIN role.

Endpoints:
  GET    /admin/users                                  — List users
  PATCH  /admin/users/{user_id}/status                 — Block / unblock
  GET    /admin/accounts                               — List ALL accounts
  GET    /admin/accounts/{account_number}              — Any account's details
  GET    /admin/accounts/{account_number}/balance      — Any account's balance
  POST   /admin/accounts/{account_number}/credit       — Deposit
  POST   /admin/accounts/{account_number}/debit        — Withdrawal
  POST   /admin/accounts/{account_number}/reconcile    — Rebuild summary / repair balance
  GET    /admin/transactions                           — List ALL transactions
  GET    /admin/transactions/deleted                   — Deletion archive
  GET    /admin/transactions/{transaction_id}          — Any transaction by ID
  PATCH  /admin/transactions/{transaction_id}/date     — Backdate
  DELETE /admin/transactions/{transaction_id}          — Archive and delete
  GET    /admin/loan-applications                      — List loan applications
  PATCH  /admin/loan-applications/{application_id}     — Record a decision

By consolidating all admin routes in one router, we avoid route-ordering
conflicts that arise when multiple routers share a prefix and have
overlapping parameterized paths.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import require_admin
from app.models.loan_application import LoanStatus
from app.models.transaction import TransactionStatus, TransactionType
from app.models.user import User
from app.schemas.account import AccountResponse, BalanceResponse
from app.schemas.admin import (
    BackdateRequest,
    DeletedTransactionResponse,
    DeleteTransactionRequest,
    LedgerAdjustmentRequest,
    LedgerAdjustmentResponse,
    ReconcileRequest,
    ReconcileResponse,
    UserStatusRequest,
)
from app.schemas.auth import UserResponse
from app.schemas.loan import AdminLoanApplicationResponse, LoanReviewRequest
from app.schemas.transaction import AdminTransactionResponse
from app.services import (
    account_service,
    admin_service,
    loan_service,
    summary_service,
    transaction_service,
    transfer_service,
)
from app.utils import to_cents

router = APIRouter()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@router.get(
    "/users",
    response_model=list[UserResponse],
    summary="[Admin] List users",
)
async def admin_list_users(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await admin_service.list_users(db, limit=limit, offset=offset)


@router.patch(
    "/users/{user_id}/status",
    response_model=UserResponse,
    summary="[Admin] Block or unblock a user",
)
async def admin_set_user_status(
    user_id: uuid.UUID,
    request: UserStatusRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """A blocked member keeps read access but can't move money."""
    return await admin_service.set_user_status(db, user_id, request.status, admin.id)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

@router.get(
    "/accounts",
    response_model=list[AccountResponse],
    summary="[Admin] List all accounts",
)
async def admin_list_all_accounts(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await account_service.admin_get_all_accounts(db, limit=limit, offset=offset)


@router.get(
    "/accounts/{account_number}",
    response_model=AccountResponse,
    summary="[Admin] Get any account's details",
)
async def admin_get_account(
    account_number: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await account_service.admin_get_account(db, account_number)


@router.get(
    "/accounts/{account_number}/balance",
    response_model=BalanceResponse,
    summary="[Admin] Get any account's balance",
)
async def admin_get_balance(
    account_number: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Includes both cached and computed balance for integrity verification."""
    return await account_service.admin_get_balance(db, account_number)


@router.post(
    "/accounts/{account_number}/credit",
    response_model=LedgerAdjustmentResponse,
    summary="[Admin] Credit an account",
)
async def admin_credit_account(
    account_number: str,
    request: LedgerAdjustmentRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Posts a deposit transaction; the balance and summary follow."""
    result = await transfer_service.post_deposit(
        db, account_number, to_cents(request.amount), request.description
    )
    return LedgerAdjustmentResponse(
        reference=result.reference,
        account_number=result.account_number,
        new_balance_cents=result.new_balance_cents,
        currency=result.currency,
    )


@router.post(
    "/accounts/{account_number}/debit",
    response_model=LedgerAdjustmentResponse,
    summary="[Admin] Debit an account",
)
async def admin_debit_account(
    account_number: str,
    request: LedgerAdjustmentRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Posts a withdrawal transaction. Fails with 422 if funds are insufficient."""
    result = await transfer_service.post_withdrawal(
        db, account_number, to_cents(request.amount), request.description
    )
    return LedgerAdjustmentResponse(
        reference=result.reference,
        account_number=result.account_number,
        new_balance_cents=result.new_balance_cents,
        currency=result.currency,
    )


@router.post(
    "/accounts/{account_number}/reconcile",
    response_model=ReconcileResponse,
    summary="[Admin] Reconcile an account against its ledger",
)
async def admin_reconcile_account(
    account_number: str,
    request: ReconcileRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Rebuild the account summary from the transaction log and report drift.

    With repair_balance=true the account balance is also reset to the
    ledger sum.
    """
    return await summary_service.reconcile_account(
        db, account_number, repair_balance=request.repair_balance
    )


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

@router.get(
    "/transactions",
    response_model=list[AdminTransactionResponse],
    summary="[Admin] List ALL transactions across the organization",
)
async def admin_list_all_transactions(
    status: TransactionStatus | None = Query(None, description="Filter by status"),
    type: TransactionType | None = Query(None, description="Filter by type"),
    account_number: str | None = Query(None, description="Filter by account"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.admin_get_all_transactions(
        db=db,
        status_filter=status,
        type_filter=type,
        account_number=account_number,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/transactions/deleted",
    response_model=list[DeletedTransactionResponse],
    summary="[Admin] List deleted transactions",
)
async def admin_list_deleted_transactions(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await admin_service.list_deleted_transactions(db, limit=limit, offset=offset)


@router.get(
    "/transactions/{transaction_id}",
    response_model=AdminTransactionResponse,
    summary="[Admin] Get any transaction by ID",
)
async def admin_get_transaction(
    transaction_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.admin_get_transaction(
        db=db,
        transaction_id=transaction_id,
    )


@router.patch(
    "/transactions/{transaction_id}/date",
    response_model=AdminTransactionResponse,
    summary="[Admin] Backdate a transaction",
)
async def admin_backdate_transaction(
    transaction_id: uuid.UUID,
    request: BackdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Move a transaction's date into the past.

    The first pre-modification date is kept in original_date and each
    change is appended to modification_history. The receipt follows.
    """
    return await admin_service.backdate_transaction(
        db, transaction_id, request.new_date, actor_id=admin.id
    )


@router.delete(
    "/transactions/{transaction_id}",
    response_model=DeletedTransactionResponse,
    summary="[Admin] Delete a transaction",
)
async def admin_delete_transaction(
    transaction_id: uuid.UUID,
    request: DeleteTransactionRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Archive the transaction to the deletion log, then delete it and its
    receipt. Balances are not adjusted; reconcile the account if needed.
    """
    return await admin_service.delete_transaction(
        db, transaction_id, actor_id=admin.id, reason=request.reason
    )


# ---------------------------------------------------------------------------
# Loan applications
# ---------------------------------------------------------------------------

@router.get(
    "/loan-applications",
    response_model=list[AdminLoanApplicationResponse],
    summary="[Admin] List loan applications",
)
async def admin_list_loan_applications(
    status: LoanStatus | None = Query(None, description="Filter by status"),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await loan_service.list_applications(db, status=status)


@router.patch(
    "/loan-applications/{application_id}",
    response_model=AdminLoanApplicationResponse,
    summary="[Admin] Review a loan application",
)
async def admin_review_loan_application(
    application_id: str,
    request: LoanReviewRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Approved and rejected applications are final (409)."""
    return await loan_service.review_application(
        db, admin.id, application_id, LoanStatus(request.status), notes=request.notes
    )
