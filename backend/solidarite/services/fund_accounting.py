"""Treasury fund arithmetic.

The fund is never stored. It is derived on every call from the fine and loan
ledgers:

    total_fund      = paid fines + interest on repaid loans
    available_fund  = total_fund - principal of active loans
    borrow_ceiling  = floor(available_fund * 50 / 100)

``available_fund`` can go negative when outstanding loans exceed what has been
collected; the ceiling then goes negative too and every request is refused.
"""

import logging
from dataclasses import dataclass, asdict

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from solidarite.models.fine import Fine, FineStatus
from solidarite.models.loan import Loan, LoanStatus

logger = logging.getLogger(__name__)

BORROW_CEILING_PERCENT = 50


@dataclass(frozen=True)
class FundSnapshot:
    fines_collected: int
    interest_collected: int
    total_fund: int
    outstanding_principal: int
    available_fund: int
    borrow_ceiling: int

    def to_dict(self) -> dict:
        return asdict(self)


def build_fund_snapshot(
    fines_collected: int,
    interest_collected: int,
    outstanding_principal: int,
) -> FundSnapshot:
    """Derive the fund figures from the three ledger aggregates."""
    total_fund = fines_collected + interest_collected
    available_fund = total_fund - outstanding_principal
    # Floor division rounds toward negative infinity, matching floor() for negatives
    borrow_ceiling = available_fund * BORROW_CEILING_PERCENT // 100
    return FundSnapshot(
        fines_collected=fines_collected,
        interest_collected=interest_collected,
        total_fund=total_fund,
        outstanding_principal=outstanding_principal,
        available_fund=available_fund,
        borrow_ceiling=borrow_ceiling,
    )


async def compute_fund(db: AsyncSession) -> FundSnapshot:
    """Aggregate the ledgers and return a fresh snapshot."""
    fines_q = await db.execute(
        select(func.coalesce(func.sum(Fine.amount), 0)).where(
            Fine.status == FineStatus.PAID
        )
    )
    interest_q = await db.execute(
        select(func.coalesce(func.sum(Loan.interest), 0)).where(
            Loan.status == LoanStatus.REPAID
        )
    )
    outstanding_q = await db.execute(
        select(func.coalesce(func.sum(Loan.principal), 0)).where(
            Loan.status == LoanStatus.ACTIVE
        )
    )
    snapshot = build_fund_snapshot(
        fines_collected=int(fines_q.scalar() or 0),
        interest_collected=int(interest_q.scalar() or 0),
        outstanding_principal=int(outstanding_q.scalar() or 0),
    )
    logger.debug("Fund snapshot: %s", snapshot)
    return snapshot
