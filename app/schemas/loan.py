"""
Pydantic schemas for the /loans endpoints and the admin loan review.
"""

import uuid
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, Field, model_validator

from app.models.loan_application import EmploymentType, LoanStatus
from app.schemas.common import UtcDatetime


class LoanApplicationRequest(BaseModel):
    """Request body for POST /loans/apply."""
    amount: Annotated[Decimal, Field(ge=100, max_digits=15, decimal_places=2)]
    term_months: Literal[6, 12, 24, 36, 60]
    employment_type: EmploymentType
    purpose: str = Field(min_length=1, max_length=50, description='e.g. "home-improvement", or "other"')
    custom_purpose: str | None = Field(None, max_length=255)

    @model_validator(mode="after")
    def _custom_purpose_only_for_other(self):
        if self.purpose == "other":
            if not (self.custom_purpose and self.custom_purpose.strip()):
                raise ValueError("custom_purpose is required when purpose is 'other'")
        else:
            self.custom_purpose = None
        return self


class LoanApplicationResponse(BaseModel):
    application_id: str
    amount_cents: int
    term_months: int
    employment_type: EmploymentType
    purpose: str
    custom_purpose: str | None
    status: LoanStatus
    submitted_at: UtcDatetime
    reviewed_at: UtcDatetime | None
    notes: str | None

    model_config = {"from_attributes": True}


class LoanApplyResponse(BaseModel):
    success: bool = True
    message: str = "Loan application submitted successfully"
    application: LoanApplicationResponse
    email_sent: bool


class AdminLoanApplicationResponse(LoanApplicationResponse):
    user_id: uuid.UUID
    reviewed_by: uuid.UUID | None


class LoanReviewRequest(BaseModel):
    """Request body for PATCH /admin/loan-applications/{application_id}."""
    status: Literal["under_review", "approved", "rejected"]
    notes: str | None = Field(None, max_length=2000)
