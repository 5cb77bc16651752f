"""
Loans router: member loan applications.

Endpoints (JWT required, scoped to the authenticated member):
  POST /loans/apply                          submit an application
  GET  /loans/my-applications                your applications, newest first
  GET  /loans/application/{application_id}   one of your applications

Staff decisions are recorded through /admin/loan-applications.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_member
from app.models.user import User
from app.notifications import NotificationSender, get_notification_sender
from app.schemas.loan import (
    LoanApplicationRequest,
    LoanApplicationResponse,
    LoanApplyResponse,
)
from app.services import loan_service

router = APIRouter()


@router.post(
    "/apply",
    response_model=LoanApplyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Apply for a loan",
)
async def apply_for_loan(
    request: LoanApplicationRequest,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
):
    """
    The application is saved as pending even if the lending desk
    could not be emailed; `email_sent` says whether it was.
    """
    application, email_sent = await loan_service.apply_for_loan(
        db,
        sender,
        user,
        amount=request.amount,
        term_months=request.term_months,
        employment_type=request.employment_type,
        purpose=request.purpose,
        custom_purpose=request.custom_purpose,
    )
    return LoanApplyResponse(
        application=LoanApplicationResponse.model_validate(application),
        email_sent=email_sent,
    )


@router.get(
    "/my-applications",
    response_model=list[LoanApplicationResponse],
    summary="List your loan applications",
)
async def my_applications(
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    return await loan_service.list_my_applications(db, user.id)


@router.get(
    "/application/{application_id}",
    response_model=LoanApplicationResponse,
    summary="Get one of your loan applications",
)
async def get_application(
    application_id: str,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    return await loan_service.get_application(db, application_id, user_id=user.id)
