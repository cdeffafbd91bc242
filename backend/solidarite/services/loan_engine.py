"""Loan lifecycle engine.

State machine::

    PENDING ──approve──▶ ACTIVE ──fully repaid──▶ REPAID
       │ └────reject───▶ REJECTED
       └──withdraw─────▶ WITHDRAWN

REJECTED, REPAID and WITHDRAWN are terminal. A member holds at most one open
loan (PENDING, APPROVED or ACTIVE); the lookup in ``request_loan`` gives a
readable error and the partial unique index ``uq_loans_open_per_borrower``
rejects whatever slips past it concurrently.

Treasurer-only transitions re-check the actor's role here even though the API
layer already filters on it.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from solidarite.models.loan import (
    Loan,
    LoanRepayment,
    LoanStatus,
    LoanDecision,
    RepaymentKind,
    OPEN_LOAN_STATUSES,
)
from solidarite.models.member import Member, MemberRole
from solidarite.services.fund_accounting import compute_fund
from solidarite.services.ledger_errors import (
    LedgerValidationError,
    LedgerConflictError,
    LedgerNotFoundError,
    LedgerAuthorizationError,
)

logger = logging.getLogger(__name__)

INTEREST_RATE_PERCENT = 5
LOAN_TERM_MONTHS = 1


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def compute_interest(principal: int, rate_percent: int = INTEREST_RATE_PERCENT) -> int:
    """ceil(principal * rate / 100) in integer arithmetic."""
    return -(-principal * rate_percent // 100)


def compute_due_date(start: date, months: int = LOAN_TERM_MONTHS) -> date:
    """Calendar-month offset; Jan 31 + 1 month lands on the last day of February."""
    return start + relativedelta(months=months)


def _require_treasurer(actor: Member, action: str) -> None:
    if actor.role != MemberRole.TREASURER:
        raise LedgerAuthorizationError(f"Only the treasurer can {action}")


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------


async def get_loan(
    db: AsyncSession, loan_id: int, *, for_update: bool = False
) -> Loan | None:
    """Load a loan with its repayment trail."""
    stmt = (
        select(Loan)
        .options(selectinload(Loan.repayments))
        .where(Loan.id == loan_id)
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_open_loan(db: AsyncSession, borrower_id: int) -> Loan | None:
    result = await db.execute(
        select(Loan).where(
            Loan.borrower_id == borrower_id,
            Loan.status.in_(OPEN_LOAN_STATUSES),
        )
    )
    return result.scalars().first()


async def _load_for_transition(db: AsyncSession, loan_id: int) -> Loan:
    loan = await get_loan(db, loan_id, for_update=True)
    if loan is None:
        raise LedgerNotFoundError(f"Loan {loan_id} not found")
    return loan


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


async def request_loan(
    db: AsyncSession,
    borrower: Member,
    principal: int,
    motif: str,
    *,
    today: date | None = None,
) -> Loan:
    """Create a PENDING loan for ``borrower`` if the fund can cover it.

    Borrower and treasurer notifications are sent later by the pending-loan
    notification job, so a delivery failure never affects the request.
    """
    if not borrower.is_active:
        raise LedgerAuthorizationError("Inactive members cannot request loans")
    if principal <= 0:
        raise LedgerValidationError("Loan amount must be greater than zero")
    if not motif or not motif.strip():
        raise LedgerValidationError("A motif is required")

    existing = await get_open_loan(db, borrower.id)
    if existing is not None:
        raise LedgerConflictError(
            f"Member already has an open loan ({existing.status.value}, id {existing.id})"
        )

    fund = await compute_fund(db)
    if principal > fund.borrow_ceiling:
        raise LedgerValidationError(
            f"Requested amount {principal} exceeds the borrowing ceiling "
            f"of {fund.borrow_ceiling}"
        )

    interest = compute_interest(principal)
    today = today or date.today()
    loan = Loan(
        borrower_id=borrower.id,
        principal=principal,
        interest=interest,
        interest_rate=INTEREST_RATE_PERCENT,
        total_owed=principal + interest,
        penalties_accrued=0,
        amount_repaid=0,
        motif=motif.strip(),
        status=LoanStatus.PENDING,
        due_date=compute_due_date(today),
        notification_sent=False,
        repayments=[],
    )
    db.add(loan)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise LedgerConflictError("Member already has an open loan") from exc

    logger.info(
        "Loan %s requested by member %d: principal=%d interest=%d due=%s",
        loan.id, borrower.id, principal, interest, loan.due_date,
    )
    return loan


async def process_loan(
    db: AsyncSession,
    loan_id: int,
    decision: LoanDecision,
    processor: Member,
    note: str | None = None,
) -> Loan:
    """Approve (PENDING → ACTIVE) or reject (PENDING → REJECTED) a loan, once."""
    _require_treasurer(processor, "process loans")
    loan = await _load_for_transition(db, loan_id)
    if loan.status != LoanStatus.PENDING:
        raise LedgerConflictError(
            f"Loan already processed: status is {loan.status.value}"
        )

    loan.status = (
        LoanStatus.ACTIVE if decision == LoanDecision.APPROVE else LoanStatus.REJECTED
    )
    loan.processed_by = processor.id
    loan.processed_at = datetime.now(timezone.utc)
    loan.processing_note = note
    await db.flush()
    logger.info(
        "Loan %d %s by member %d", loan.id, loan.status.value, processor.id
    )
    return loan


async def record_repayment(
    db: AsyncSession,
    loan_id: int,
    amount: int,
    recorder: Member,
    note: str | None = None,
) -> Loan:
    """Append a principal repayment; closes the loan once fully covered.

    The loan row is locked so concurrent repayments apply in submission order.
    """
    _require_treasurer(recorder, "record repayments")
    loan = await _load_for_transition(db, loan_id)
    if loan.status != LoanStatus.ACTIVE:
        raise LedgerConflictError(
            f"Cannot record repayment: loan is {loan.status.value}, expected active"
        )
    if amount <= 0:
        raise LedgerValidationError("Repayment amount must be greater than zero")
    remaining = loan.remaining_balance
    if amount > remaining:
        raise LedgerConflictError(
            f"Repayment of {amount} exceeds remaining balance of {remaining}"
        )

    loan.repayments.append(
        LoanRepayment(
            amount=amount,
            kind=RepaymentKind.PRINCIPAL,
            note=note,
            recorded_by=recorder.id,
            recorded_at=datetime.now(timezone.utc),
        )
    )
    loan.amount_repaid += amount
    if loan.amount_repaid >= loan.total_owed:
        loan.status = LoanStatus.REPAID
    await db.flush()
    logger.info(
        "Repayment of %d on loan %d (repaid %d/%d, status %s)",
        amount, loan.id, loan.amount_repaid, loan.total_owed, loan.status.value,
    )
    return loan


async def withdraw_loan(db: AsyncSession, loan_id: int, requester: Member) -> Loan:
    """Borrower cancels their own request while it is still PENDING."""
    loan = await _load_for_transition(db, loan_id)
    if loan.borrower_id != requester.id:
        raise LedgerAuthorizationError("This loan request is not yours")
    if loan.status != LoanStatus.PENDING:
        raise LedgerConflictError(
            f"Loan already processed: status is {loan.status.value}"
        )
    loan.status = LoanStatus.WITHDRAWN
    loan.withdrawn_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("Loan %d withdrawn by member %d", loan.id, requester.id)
    return loan


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------


async def list_loans(
    db: AsyncSession,
    *,
    borrower_id: int | None = None,
    status: LoanStatus | None = None,
) -> list[Loan]:
    stmt = select(Loan).options(selectinload(Loan.repayments))
    if borrower_id is not None:
        stmt = stmt.where(Loan.borrower_id == borrower_id)
    if status is not None:
        stmt = stmt.where(Loan.status == status)
    result = await db.execute(stmt.order_by(Loan.created_at.desc(), Loan.id.desc()))
    return list(result.scalars().all())


async def loan_statistics(db: AsyncSession) -> dict[str, Any]:
    """Counts per status, amount lent and amount still outstanding."""
    counts_q = await db.execute(
        select(Loan.status, func.count(Loan.id)).group_by(Loan.status)
    )
    counts = {s.value: 0 for s in LoanStatus}
    for status, count in counts_q.all():
        counts[status.value] = count

    lent_q = await db.execute(
        select(func.coalesce(func.sum(Loan.principal), 0)).where(
            Loan.status.in_((LoanStatus.APPROVED, LoanStatus.ACTIVE, LoanStatus.REPAID))
        )
    )
    outstanding_q = await db.execute(
        select(
            func.coalesce(func.sum(Loan.total_owed - Loan.amount_repaid), 0)
        ).where(Loan.status == LoanStatus.ACTIVE)
    )
    fund = await compute_fund(db)
    return {
        "counts": counts,
        "total_lent": int(lent_q.scalar() or 0),
        "total_outstanding": int(outstanding_q.scalar() or 0),
        "fund": fund.to_dict(),
    }
