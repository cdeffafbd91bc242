"""SQLAlchemy models for the Unit Solidarité ledger."""

from solidarite.models.member import Member, MemberRole
from solidarite.models.loan import (
    Loan,
    LoanRepayment,
    LoanStatus,
    LoanDecision,
    RepaymentKind,
    OPEN_LOAN_STATUSES,
)
from solidarite.models.fine import (
    Fine,
    FineType,
    FineStatus,
    FineCategory,
    FineTypeSpec,
    FINE_CATALOG,
)
from solidarite.models.error_log import ErrorLog, ErrorSeverity

__all__ = [
    "Member", "MemberRole",
    "Loan", "LoanRepayment", "LoanStatus", "LoanDecision", "RepaymentKind",
    "OPEN_LOAN_STATUSES",
    "Fine", "FineType", "FineStatus", "FineCategory", "FineTypeSpec", "FINE_CATALOG",
    "ErrorLog", "ErrorSeverity",
]
