"""Late-repayment penalties on active loans.

For an active loan overdue by ``d`` days the penalty owed is
``floor(d / 7) * 10``. ``Loan.penalties_accrued`` is the high-water mark of
what has already been charged; only the difference is posted. Re-running the
sweep on the same day, after a missed day, or after a restart therefore
charges each 7-day period exactly once.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from solidarite.models.fine import FineType
from solidarite.models.loan import Loan, LoanStatus
from solidarite.services.error_logger import log_error
from solidarite.services.fine_ledger import create_automatic_fine
from solidarite.services.notifications import NotificationIntent, TemplateKind

logger = logging.getLogger(__name__)

PENALTY_PER_PERIOD = 10
PENALTY_PERIOD_DAYS = 7


@dataclass
class PenaltySweepResult:
    checked: int = 0
    penalised: int = 0
    total_posted: int = 0
    failed: int = 0
    intents: list[NotificationIntent] = field(default_factory=list)

    def summary(self) -> dict[str, int]:
        return {
            "checked": self.checked,
            "penalised": self.penalised,
            "total_posted": self.total_posted,
            "failed": self.failed,
        }


def compute_penalty_owed(due_date: date, today: date) -> tuple[int, int]:
    """Return (days_overdue, penalty_amount_owed) as of ``today``."""
    days_overdue = (today - due_date).days
    if days_overdue <= 0:
        return 0, 0
    return days_overdue, (days_overdue // PENALTY_PERIOD_DAYS) * PENALTY_PER_PERIOD


async def accrue_loan_penalty(
    db: AsyncSession, loan: Loan, today: date
) -> NotificationIntent | None:
    """Bring one loan's penalties up to date.

    Returns the borrower alert to send, or None when nothing new was owed.
    """
    if loan.status != LoanStatus.ACTIVE:
        return None

    days_overdue, owed = compute_penalty_owed(loan.due_date, today)
    if owed <= loan.penalties_accrued:
        return None

    delta = owed - loan.penalties_accrued
    loan.penalties_accrued = owed
    loan.total_owed = loan.principal + loan.interest + loan.penalties_accrued

    await create_automatic_fine(
        db,
        loan.borrower_id,
        FineType.RETARD_REMBOURSEMENT_PRET,
        loan_id=loan.id,
        amount=delta,
        description=(
            f"Pénalité de retard sur le prêt #{loan.id}: {days_overdue} jours de retard "
            f"({owed // PENALTY_PER_PERIOD} semaine(s))"
        ),
    )
    logger.info(
        "Loan %d: %d days overdue, penalty +%d (accrued %d, total owed %d)",
        loan.id, days_overdue, delta, loan.penalties_accrued, loan.total_owed,
    )
    return NotificationIntent(
        recipient_id=loan.borrower_id,
        template_kind=TemplateKind.LOAN_PENALTY_ALERT,
        data={
            "loan_id": loan.id,
            "days_overdue": days_overdue,
            "penalty_delta": delta,
            "penalties_accrued": loan.penalties_accrued,
            "total_owed": loan.total_owed,
            "amount_repaid": loan.amount_repaid,
        },
    )


async def run_penalty_sweep(
    db: AsyncSession, today: date | None = None
) -> PenaltySweepResult:
    """Accrue penalties on every overdue active loan.

    Each loan runs in its own savepoint. A failing loan is rolled back to
    its savepoint and logged before the sweep continues.
    """
    today = today or date.today()
    result = PenaltySweepResult()

    loans_q = await db.execute(
        select(Loan)
        .where(Loan.status == LoanStatus.ACTIVE, Loan.due_date < today)
        .order_by(Loan.id)
        .with_for_update()
    )
    loans = list(loans_q.scalars().all())

    for loan in loans:
        result.checked += 1
        accrued_before = loan.penalties_accrued
        savepoint = await db.begin_nested()
        try:
            intent = await accrue_loan_penalty(db, loan, today)
            await savepoint.commit()
        except Exception as exc:
            await savepoint.rollback()
            result.failed += 1
            await log_error(
                exc,
                db=db,
                module="services.penalty_accrual",
                function_name="run_penalty_sweep",
            )
            continue
        if intent is not None:
            result.penalised += 1
            result.total_posted += loan.penalties_accrued - accrued_before
            result.intents.append(intent)

    logger.info("Penalty sweep %s: %s", today.isoformat(), result.summary())
    return result
