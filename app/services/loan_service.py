"""
Loan service: member loan applications and the staff decision on them.

Submitting an application stores it as pending and emails the lending
desk (LOAN_NOTIFY_EMAIL). The email is best effort: a failed delivery is
logged and reported back as email_sent=False, but the application stands.

Members only ever see their own applications; someone else's
application_id is reported as not found.
"""

import logging
import secrets
import string
import uuid
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import LoanApplicationClosedError, LoanApplicationNotFoundError
from app.models.loan_application import EmploymentType, LoanApplication, LoanStatus
from app.models.user import User
from app.notifications import NotificationSender, loan_application_email
from app.utils import to_cents, utcnow

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_uppercase + string.digits
_CLOSED = (LoanStatus.APPROVED, LoanStatus.REJECTED)


def generate_application_id() -> str:
    """LOAN-<epoch ms>-<9 random uppercase letters/digits>."""
    millis = int(utcnow().timestamp() * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"LOAN-{millis}-{suffix}"


async def apply_for_loan(
    db: AsyncSession,
    sender: NotificationSender,
    user: User,
    amount: Decimal,
    term_months: int,
    employment_type: EmploymentType,
    purpose: str,
    custom_purpose: str | None = None,
) -> tuple[LoanApplication, bool]:
    """
    Record a pending application and tell the lending desk about it.

    Returns:
        Tuple of (LoanApplication, whether the desk email was delivered).
    """
    application = LoanApplication(
        application_id=generate_application_id(),
        user_id=user.id,
        amount_cents=to_cents(amount),
        term_months=term_months,
        employment_type=employment_type,
        purpose=purpose,
        custom_purpose=custom_purpose if purpose == "other" else None,
        status=LoanStatus.PENDING,
        submitted_at=utcnow(),
    )
    db.add(application)
    await db.flush()

    logger.info(
        "Loan application submitted",
        extra={"user_id": str(user.id), "application_id": application.application_id},
    )

    subject, body = loan_application_email(application, user)
    try:
        email_sent = await sender.send(settings.LOAN_NOTIFY_EMAIL, subject, body)
    except Exception:
        logger.exception(
            "Loan desk notification raised",
            extra={"application_id": application.application_id},
        )
        email_sent = False

    if not email_sent:
        logger.warning(
            "Loan desk notification not delivered",
            extra={"application_id": application.application_id},
        )
    return application, email_sent


async def list_my_applications(db: AsyncSession, user_id: uuid.UUID) -> list[LoanApplication]:
    """The user's applications, newest first."""
    result = await db.execute(
        select(LoanApplication)
        .where(LoanApplication.user_id == user_id)
        .order_by(LoanApplication.submitted_at.desc())
    )
    return list(result.scalars().all())


async def get_application(
    db: AsyncSession,
    application_id: str,
    user_id: uuid.UUID | None = None,
) -> LoanApplication:
    """
    Look up an application by its public id.

    With user_id, only that user's application matches.

    Raises:
        LoanApplicationNotFoundError: No such application for this user.
    """
    query = select(LoanApplication).where(LoanApplication.application_id == application_id)
    if user_id is not None:
        query = query.where(LoanApplication.user_id == user_id)

    application = (await db.execute(query)).scalar_one_or_none()
    if application is None:
        raise LoanApplicationNotFoundError(application_id)
    return application


async def list_applications(
    db: AsyncSession,
    status: LoanStatus | None = None,
) -> list[LoanApplication]:
    """All applications for staff review, newest first."""
    query = select(LoanApplication).order_by(LoanApplication.submitted_at.desc())
    if status is not None:
        query = query.where(LoanApplication.status == status)
    result = await db.execute(query)
    return list(result.scalars().all())


async def review_application(
    db: AsyncSession,
    admin_id: uuid.UUID,
    application_id: str,
    status: LoanStatus,
    notes: str | None = None,
) -> LoanApplication:
    """
    Record a staff decision.

    Raises:
        LoanApplicationNotFoundError: Unknown application_id.
        LoanApplicationClosedError: Already approved or rejected.
    """
    application = await get_application(db, application_id)
    if application.status in _CLOSED:
        raise LoanApplicationClosedError(application_id, application.status.value)

    application.status = status
    application.reviewed_at = utcnow()
    application.reviewed_by = admin_id
    if notes is not None:
        application.notes = notes
    await db.flush()

    logger.info(
        "Loan application reviewed",
        extra={
            "admin_id": str(admin_id),
            "application_id": application_id,
            "status": status.value,
        },
    )
    return application
