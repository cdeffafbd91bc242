"""Loan and repayment models."""

import enum
from datetime import datetime, date

from sqlalchemy import (
    String, Integer, Boolean, Enum, DateTime, Date, ForeignKey, Text,
    CheckConstraint, Index, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from solidarite.database import Base, utcnow


class LoanStatus(str, enum.Enum):
    PENDING = "pending"
    # Never persisted today: approval moves a loan straight to ACTIVE.
    APPROVED = "approved"
    ACTIVE = "active"
    REJECTED = "rejected"
    REPAID = "repaid"
    WITHDRAWN = "withdrawn"


OPEN_LOAN_STATUSES = (LoanStatus.PENDING, LoanStatus.APPROVED, LoanStatus.ACTIVE)


class LoanDecision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class RepaymentKind(str, enum.Enum):
    PRINCIPAL = "principal"
    PENALTY = "penalty"


class Loan(Base):
    __tablename__ = "loans"
    __table_args__ = (
        CheckConstraint("principal > 0", name="ck_loans_principal_positive"),
        CheckConstraint(
            "amount_repaid >= 0 AND amount_repaid <= total_owed",
            name="ck_loans_repaid_within_total",
        ),
        CheckConstraint("penalties_accrued >= 0", name="ck_loans_penalties_non_negative"),
        # At most one open loan per borrower
        Index(
            "uq_loans_open_per_borrower",
            "borrower_id",
            unique=True,
            postgresql_where=text("status IN ('PENDING', 'APPROVED', 'ACTIVE')"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    borrower_id: Mapped[int] = mapped_column(
        ForeignKey("members.id"), index=True, nullable=False,
    )

    # Amounts (smallest currency unit)
    principal: Mapped[int] = mapped_column(Integer, nullable=False)
    interest: Mapped[int] = mapped_column(Integer, nullable=False)
    interest_rate: Mapped[int] = mapped_column(Integer, nullable=False)
    total_owed: Mapped[int] = mapped_column(Integer, nullable=False)
    penalties_accrued: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    amount_repaid: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    motif: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[LoanStatus] = mapped_column(
        Enum(LoanStatus), default=LoanStatus.PENDING, index=True, nullable=False,
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Treasurer decision
    processed_by: Mapped[int | None] = mapped_column(ForeignKey("members.id"), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processing_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    withdrawn_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notification_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False,
    )

    repayments: Mapped[list["LoanRepayment"]] = relationship(
        back_populates="loan",
        order_by="LoanRepayment.id",
        cascade="all, delete-orphan",
    )

    @property
    def remaining_balance(self) -> int:
        return self.total_owed - self.amount_repaid

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_LOAN_STATUSES


class LoanRepayment(Base):
    __tablename__ = "loan_repayments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_loan_repayments_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    loan_id: Mapped[int] = mapped_column(ForeignKey("loans.id"), index=True, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[RepaymentKind] = mapped_column(
        Enum(RepaymentKind), default=RepaymentKind.PRINCIPAL, nullable=False,
    )
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    recorded_by: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False,
    )

    loan: Mapped["Loan"] = relationship(back_populates="repayments")
