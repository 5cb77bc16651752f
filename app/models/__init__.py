"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all() runs
  2. Other modules can import from app.models directly
"""

from app.models.user import User, UserType, UserStatus  # noqa: F401
from app.models.account import Account  # noqa: F401
from app.models.card import Card, CardStatus, CardType  # noqa: F401
from app.models.transaction import (  # noqa: F401
    Transaction,
    TransactionStatus,
    TransactionType,
    TransferType,
)
from app.models.receipt import Receipt  # noqa: F401
from app.models.account_summary import AccountSummary  # noqa: F401
from app.models.otp_challenge import OtpChallenge  # noqa: F401
from app.models.deleted_transaction import DeletedTransaction  # noqa: F401
from app.models.loan_application import (  # noqa: F401
    EmploymentType,
    LoanApplication,
    LoanStatus,
)
