"""Tests for the loan lifecycle engine.

Tests cover:
- Interest and due-date arithmetic
- Request validation (amount, motif, open loan, ceiling, inactive member)
- One-shot processing by the treasurer
- Repayment bounds, ordering of the audit trail and automatic closure
- Withdrawal by the borrower only
"""

import pytest
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

from sqlalchemy.exc import IntegrityError

from solidarite.models.loan import Loan, LoanStatus, LoanDecision, RepaymentKind
from solidarite.models.member import Member, MemberRole
from solidarite.services.fund_accounting import build_fund_snapshot
from solidarite.services.ledger_errors import (
    LedgerValidationError,
    LedgerConflictError,
    LedgerNotFoundError,
    LedgerAuthorizationError,
)
from solidarite.services.loan_engine import (
    compute_interest,
    compute_due_date,
    request_loan,
    process_loan,
    record_repayment,
    withdraw_loan,
    INTEREST_RATE_PERCENT,
)

ENGINE = "solidarite.services.loan_engine"


def _member(member_id: int = 1, role: MemberRole = MemberRole.MEMBER, active: bool = True) -> Member:
    return Member(
        id=member_id,
        first_name="Awa",
        last_name="Diallo",
        email=f"member{member_id}@example.org",
        phone="+15145550100",
        role=role,
        is_active=active,
    )


def _loan(
    loan_id: int = 10,
    borrower_id: int = 1,
    principal: int = 150,
    status: LoanStatus = LoanStatus.PENDING,
    amount_repaid: int = 0,
) -> Loan:
    interest = compute_interest(principal)
    return Loan(
        id=loan_id,
        borrower_id=borrower_id,
        principal=principal,
        interest=interest,
        interest_rate=INTEREST_RATE_PERCENT,
        total_owed=principal + interest,
        penalties_accrued=0,
        amount_repaid=amount_repaid,
        motif="Frais de scolarité",
        status=status,
        due_date=date(2026, 2, 15),
        notification_sent=False,
        repayments=[],
    )


def _db() -> AsyncMock:
    db = AsyncMock()
    db.add = MagicMock()
    return db


TREASURER = _member(99, MemberRole.TREASURER)


# ===================================================================
# Pure arithmetic
# ===================================================================


class TestInterest:

    def test_exact_percentage(self):
        assert compute_interest(100) == 5

    def test_rounds_up(self):
        assert compute_interest(101) == 6
        assert compute_interest(150) == 8

    def test_smallest_loan(self):
        assert compute_interest(1) == 1

    def test_custom_rate(self):
        assert compute_interest(200, 10) == 20


class TestDueDate:

    def test_plain_month(self):
        assert compute_due_date(date(2026, 3, 10)) == date(2026, 4, 10)

    def test_month_end_clamps_to_february(self):
        assert compute_due_date(date(2026, 1, 31)) == date(2026, 2, 28)

    def test_leap_year_february(self):
        assert compute_due_date(date(2028, 1, 31)) == date(2028, 2, 29)

    def test_year_rollover(self):
        assert compute_due_date(date(2026, 12, 15)) == date(2027, 1, 15)


# ===================================================================
# request_loan
# ===================================================================


class TestRequestLoan:

    @pytest.mark.asyncio
    async def test_creates_pending_loan(self):
        db = _db()
        borrower = _member()
        with patch(f"{ENGINE}.get_open_loan", new=AsyncMock(return_value=None)), \
             patch(f"{ENGINE}.compute_fund", new=AsyncMock(return_value=build_fund_snapshot(400, 0, 0))):
            loan = await request_loan(db, borrower, 150, "  Loyer  ", today=date(2026, 1, 31))

        assert loan.status == LoanStatus.PENDING
        assert loan.principal == 150
        assert loan.interest == 8
        assert loan.interest_rate == 5
        assert loan.total_owed == 158
        assert loan.amount_repaid == 0
        assert loan.penalties_accrued == 0
        assert loan.notification_sent is False
        assert loan.motif == "Loyer"
        assert loan.due_date == date(2026, 2, 28)
        assert loan.repayments == []
        db.add.assert_called_once_with(loan)
        db.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_principal_equal_to_ceiling_is_accepted(self):
        db = _db()
        with patch(f"{ENGINE}.get_open_loan", new=AsyncMock(return_value=None)), \
             patch(f"{ENGINE}.compute_fund", new=AsyncMock(return_value=build_fund_snapshot(400, 0, 0))):
            loan = await request_loan(db, _member(), 200, "Voyage")
        assert loan.principal == 200

    @pytest.mark.asyncio
    async def test_over_ceiling_rejected_and_not_persisted(self):
        db = _db()
        with patch(f"{ENGINE}.get_open_loan", new=AsyncMock(return_value=None)), \
             patch(f"{ENGINE}.compute_fund", new=AsyncMock(return_value=build_fund_snapshot(400, 0, 0))):
            with pytest.raises(LedgerValidationError, match="ceiling"):
                await request_loan(db, _member(), 201, "Voyage")
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_negative_fund_refuses_every_request(self):
        db = _db()
        with patch(f"{ENGINE}.get_open_loan", new=AsyncMock(return_value=None)), \
             patch(f"{ENGINE}.compute_fund", new=AsyncMock(return_value=build_fund_snapshot(0, 0, 100))):
            with pytest.raises(LedgerValidationError, match="borrowing ceiling of -50$"):
                await request_loan(db, _member(), 1, "Voyage")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("principal", [0, -10])
    async def test_non_positive_principal(self, principal):
        db = _db()
        with pytest.raises(LedgerValidationError, match="greater than zero"):
            await request_loan(db, _member(), principal, "Voyage")
        db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_blank_motif(self):
        with pytest.raises(LedgerValidationError, match="motif"):
            await request_loan(_db(), _member(), 100, "   ")

    @pytest.mark.asyncio
    async def test_inactive_member(self):
        with pytest.raises(LedgerAuthorizationError):
            await request_loan(_db(), _member(active=False), 100, "Voyage")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [LoanStatus.PENDING, LoanStatus.ACTIVE])
    async def test_existing_open_loan_conflicts(self, status):
        db = _db()
        existing = _loan(status=status)
        fund = AsyncMock()
        with patch(f"{ENGINE}.get_open_loan", new=AsyncMock(return_value=existing)), \
             patch(f"{ENGINE}.compute_fund", new=fund):
            with pytest.raises(LedgerConflictError, match="open loan"):
                await request_loan(db, _member(), 100, "Voyage")
        fund.assert_not_awaited()
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_reported_as_conflict(self):
        db = _db()
        db.flush = AsyncMock(side_effect=IntegrityError("INSERT", {}, Exception("uq_loans_open_per_borrower")))
        with patch(f"{ENGINE}.get_open_loan", new=AsyncMock(return_value=None)), \
             patch(f"{ENGINE}.compute_fund", new=AsyncMock(return_value=build_fund_snapshot(400, 0, 0))):
            with pytest.raises(LedgerConflictError):
                await request_loan(db, _member(), 100, "Voyage")


# ===================================================================
# process_loan
# ===================================================================


class TestProcessLoan:

    @pytest.mark.asyncio
    async def test_approve_activates(self):
        loan = _loan()
        with patch(f"{ENGINE}.get_loan", new=AsyncMock(return_value=loan)):
            result = await process_loan(_db(), loan.id, LoanDecision.APPROVE, TREASURER, "OK")
        assert result.status == LoanStatus.ACTIVE
        assert result.processed_by == TREASURER.id
        assert result.processed_at is not None
        assert result.processing_note == "OK"

    @pytest.mark.asyncio
    async def test_reject(self):
        loan = _loan()
        with patch(f"{ENGINE}.get_loan", new=AsyncMock(return_value=loan)):
            result = await process_loan(_db(), loan.id, LoanDecision.REJECT, TREASURER, "Fonds insuffisants")
        assert result.status == LoanStatus.REJECTED
        assert result.processing_note == "Fonds insuffisants"

    @pytest.mark.asyncio
    async def test_second_processing_fails(self):
        loan = _loan()
        db = _db()
        with patch(f"{ENGINE}.get_loan", new=AsyncMock(return_value=loan)):
            await process_loan(db, loan.id, LoanDecision.APPROVE, TREASURER)
            with pytest.raises(LedgerConflictError, match="already processed"):
                await process_loan(db, loan.id, LoanDecision.REJECT, TREASURER)
        assert loan.status == LoanStatus.ACTIVE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", [MemberRole.MEMBER, MemberRole.PRESIDENT, MemberRole.CENSOR])
    async def test_only_treasurer(self, role):
        loader = AsyncMock()
        with patch(f"{ENGINE}.get_loan", new=loader):
            with pytest.raises(LedgerAuthorizationError):
                await process_loan(_db(), 10, LoanDecision.APPROVE, _member(5, role))
        loader.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_loan(self):
        with patch(f"{ENGINE}.get_loan", new=AsyncMock(return_value=None)):
            with pytest.raises(LedgerNotFoundError):
                await process_loan(_db(), 404, LoanDecision.APPROVE, TREASURER)


# ===================================================================
# record_repayment
# ===================================================================


class TestRecordRepayment:

    @pytest.mark.asyncio
    async def test_partial_repayment(self):
        loan = _loan(status=LoanStatus.ACTIVE)
        with patch(f"{ENGINE}.get_loan", new=AsyncMock(return_value=loan)):
            result = await record_repayment(_db(), loan.id, 50, TREASURER, "Espèces")
        assert result.amount_repaid == 50
        assert result.status == LoanStatus.ACTIVE
        assert len(result.repayments) == 1
        event = result.repayments[0]
        assert event.amount == 50
        assert event.kind == RepaymentKind.PRINCIPAL
        assert event.note == "Espèces"
        assert event.recorded_by == TREASURER.id

    @pytest.mark.asyncio
    async def test_full_repayment_closes_loan(self):
        loan = _loan(status=LoanStatus.ACTIVE)
        with patch(f"{ENGINE}.get_loan", new=AsyncMock(return_value=loan)):
            result = await record_repayment(_db(), loan.id, 158, TREASURER)
        assert result.status == LoanStatus.REPAID
        assert result.remaining_balance == 0

    @pytest.mark.asyncio
    async def test_repayments_keep_submission_order(self):
        loan = _loan(status=LoanStatus.ACTIVE)
        db = _db()
        with patch(f"{ENGINE}.get_loan", new=AsyncMock(return_value=loan)):
            await record_repayment(db, loan.id, 50, TREASURER)
            await record_repayment(db, loan.id, 100, TREASURER)
            await record_repayment(db, loan.id, 8, TREASURER)
        assert [r.amount for r in loan.repayments] == [50, 100, 8]
        assert loan.amount_repaid == 158
        assert loan.status == LoanStatus.REPAID

    @pytest.mark.asyncio
    async def test_exceeding_remaining_balance(self):
        loan = _loan(status=LoanStatus.ACTIVE, amount_repaid=100)
        with patch(f"{ENGINE}.get_loan", new=AsyncMock(return_value=loan)):
            with pytest.raises(LedgerConflictError, match="exceeds remaining balance"):
                await record_repayment(_db(), loan.id, 59, TREASURER)
        assert loan.amount_repaid == 100
        assert loan.repayments == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5])
    async def test_non_positive_amount(self, amount):
        loan = _loan(status=LoanStatus.ACTIVE)
        with patch(f"{ENGINE}.get_loan", new=AsyncMock(return_value=loan)):
            with pytest.raises(LedgerValidationError):
                await record_repayment(_db(), loan.id, amount, TREASURER)

    @pytest.mark.asyncio
    async def test_closed_loan_rejects_further_repayment(self):
        loan = _loan(status=LoanStatus.ACTIVE)
        db = _db()
        with patch(f"{ENGINE}.get_loan", new=AsyncMock(return_value=loan)):
            await record_repayment(db, loan.id, 158, TREASURER)
            with pytest.raises(LedgerConflictError):
                await record_repayment(db, loan.id, 1, TREASURER)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [LoanStatus.PENDING, LoanStatus.REJECTED, LoanStatus.WITHDRAWN]
    )
    async def test_requires_active_loan(self, status):
        loan = _loan(status=status)
        with patch(f"{ENGINE}.get_loan", new=AsyncMock(return_value=loan)):
            with pytest.raises(LedgerConflictError, match="expected active"):
                await record_repayment(_db(), loan.id, 10, TREASURER)

    @pytest.mark.asyncio
    async def test_only_treasurer(self):
        with pytest.raises(LedgerAuthorizationError):
            await record_repayment(_db(), 10, 10, _member(2, MemberRole.CENSOR))


# ===================================================================
# withdraw_loan
# ===================================================================


class TestWithdrawLoan:

    @pytest.mark.asyncio
    async def test_borrower_withdraws_pending(self):
        loan = _loan(borrower_id=1)
        with patch(f"{ENGINE}.get_loan", new=AsyncMock(return_value=loan)):
            result = await withdraw_loan(_db(), loan.id, _member(1))
        assert result.status == LoanStatus.WITHDRAWN
        assert result.withdrawn_at is not None
        assert not result.is_open

    @pytest.mark.asyncio
    async def test_other_member_cannot_withdraw(self):
        loan = _loan(borrower_id=1)
        with patch(f"{ENGINE}.get_loan", new=AsyncMock(return_value=loan)):
            with pytest.raises(LedgerAuthorizationError, match="not yours"):
                await withdraw_loan(_db(), loan.id, _member(2))
        assert loan.status == LoanStatus.PENDING

    @pytest.mark.asyncio
    async def test_processed_loan_cannot_be_withdrawn(self):
        loan = _loan(borrower_id=1, status=LoanStatus.ACTIVE)
        with patch(f"{ENGINE}.get_loan", new=AsyncMock(return_value=loan)):
            with pytest.raises(LedgerConflictError, match="already processed"):
                await withdraw_loan(_db(), loan.id, _member(1))
