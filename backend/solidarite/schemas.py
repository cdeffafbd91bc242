"""Pydantic schemas for request/response validation."""

from datetime import datetime, date
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from solidarite.models.fine import FineType, FineStatus, FineCategory
from solidarite.models.loan import LoanStatus, LoanDecision, RepaymentKind


# ── Loans ─────────────────────────────────────────────

class LoanRequest(BaseModel):
    principal: int = Field(gt=0, description="Amount requested, smallest currency unit")
    motif: str = Field(min_length=1, max_length=1000)

    @field_validator("motif")
    @classmethod
    def _motif_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("motif must not be blank")
        return v.strip()


class LoanProcess(BaseModel):
    decision: LoanDecision
    note: Optional[str] = Field(default=None, max_length=1000)


class RepaymentCreate(BaseModel):
    amount: int = Field(gt=0)
    note: Optional[str] = Field(default=None, max_length=500)


class RepaymentResponse(BaseModel):
    id: int
    amount: int
    kind: RepaymentKind
    note: Optional[str] = None
    recorded_by: int
    recorded_at: datetime

    model_config = {"from_attributes": True}


class LoanResponse(BaseModel):
    id: int
    borrower_id: int
    principal: int
    interest: int
    interest_rate: int
    total_owed: int
    penalties_accrued: int
    amount_repaid: int
    remaining_balance: int
    motif: str
    status: LoanStatus
    due_date: date
    processed_by: Optional[int] = None
    processed_at: Optional[datetime] = None
    processing_note: Optional[str] = None
    withdrawn_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    repayments: list[RepaymentResponse] = []

    model_config = {"from_attributes": True}


class FundSnapshotResponse(BaseModel):
    fines_collected: int
    interest_collected: int
    total_fund: int
    outstanding_principal: int
    available_fund: int
    borrow_ceiling: int


class LoanStatsResponse(BaseModel):
    counts: dict[str, int]
    total_lent: int
    total_outstanding: int
    fund: FundSnapshotResponse


# ── Fines ─────────────────────────────────────────────

class FineTypeInfo(BaseModel):
    fine_type: FineType
    label: str
    amount: Optional[int] = None
    category: FineCategory


class FineCreate(BaseModel):
    member_id: int
    fine_type: FineType
    amount: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = Field(default=None, max_length=1000)
    meeting_id: Optional[int] = None


class FineResponse(BaseModel):
    id: int
    member_id: int
    meeting_id: Optional[int] = None
    loan_id: Optional[int] = None
    fine_type: FineType
    amount: int
    category: FineCategory
    description: Optional[str] = None
    status: FineStatus
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_by: Optional[int] = None
    is_automatic: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MemberFinesResponse(BaseModel):
    fines: list[FineResponse]
    pending_total: int


class FineBucket(BaseModel):
    count: int
    total: int


class FineStatsResponse(BaseModel):
    by_status: dict[str, FineBucket]
    by_category: dict[str, FineBucket]
    total_paid: int
    total_pending: int
