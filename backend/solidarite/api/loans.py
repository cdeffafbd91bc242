"""Loan endpoints: requests, treasurer decisions, repayments and fund figures."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from solidarite.api.errors import ledger_http_error
from solidarite.auth_utils import get_current_member, require_roles, STAFF_ROLES
from solidarite.database import get_db
from solidarite.models.loan import LoanStatus
from solidarite.models.member import Member, MemberRole
from solidarite.schemas import (
    LoanRequest,
    LoanProcess,
    RepaymentCreate,
    LoanResponse,
    FundSnapshotResponse,
    LoanStatsResponse,
)
from solidarite.services import loan_engine
from solidarite.services.error_logger import log_error
from solidarite.services.fund_accounting import compute_fund
from solidarite.services.ledger_errors import LedgerError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=list[LoanResponse])
async def list_loans(
    status: Optional[LoanStatus] = Query(None),
    borrower_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_member: Member = Depends(require_roles(*STAFF_ROLES)),
):
    try:
        return await loan_engine.list_loans(db, borrower_id=borrower_id, status=status)
    except Exception as e:
        await log_error(e, db=db, module="api.loans", function_name="list_loans")
        raise


@router.get("/my", response_model=list[LoanResponse])
async def my_loans(
    db: AsyncSession = Depends(get_db),
    current_member: Member = Depends(get_current_member),
):
    try:
        return await loan_engine.list_loans(db, borrower_id=current_member.id)
    except Exception as e:
        await log_error(e, db=db, module="api.loans", function_name="my_loans")
        raise


@router.get("/fund", response_model=FundSnapshotResponse)
async def fund_snapshot(
    db: AsyncSession = Depends(get_db),
    current_member: Member = Depends(get_current_member),
):
    """Live treasury figures and the current borrowing ceiling."""
    try:
        fund = await compute_fund(db)
        return fund.to_dict()
    except Exception as e:
        await log_error(e, db=db, module="api.loans", function_name="fund_snapshot")
        raise


@router.get("/stats", response_model=LoanStatsResponse)
async def loan_stats(
    db: AsyncSession = Depends(get_db),
    current_member: Member = Depends(require_roles(*STAFF_ROLES)),
):
    try:
        return await loan_engine.loan_statistics(db)
    except Exception as e:
        await log_error(e, db=db, module="api.loans", function_name="loan_stats")
        raise


@router.post("/", response_model=LoanResponse, status_code=201)
async def request_loan(
    data: LoanRequest,
    db: AsyncSession = Depends(get_db),
    current_member: Member = Depends(get_current_member),
):
    try:
        try:
            return await loan_engine.request_loan(
                db, current_member, data.principal, data.motif
            )
        except LedgerError as e:
            raise ledger_http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.loans", function_name="request_loan")
        raise


@router.put("/{loan_id}/process", response_model=LoanResponse)
async def process_loan(
    loan_id: int,
    data: LoanProcess,
    db: AsyncSession = Depends(get_db),
    current_member: Member = Depends(require_roles(MemberRole.TREASURER)),
):
    try:
        try:
            return await loan_engine.process_loan(
                db, loan_id, data.decision, current_member, data.note
            )
        except LedgerError as e:
            raise ledger_http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.loans", function_name="process_loan")
        raise


@router.post("/{loan_id}/repayments", response_model=LoanResponse)
async def record_repayment(
    loan_id: int,
    data: RepaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_member: Member = Depends(require_roles(MemberRole.TREASURER)),
):
    try:
        try:
            return await loan_engine.record_repayment(
                db, loan_id, data.amount, current_member, data.note
            )
        except LedgerError as e:
            raise ledger_http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.loans", function_name="record_repayment")
        raise


@router.post("/{loan_id}/withdraw", response_model=LoanResponse)
async def withdraw_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_member: Member = Depends(get_current_member),
):
    try:
        try:
            return await loan_engine.withdraw_loan(db, loan_id, current_member)
        except LedgerError as e:
            raise ledger_http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.loans", function_name="withdraw_loan")
        raise
