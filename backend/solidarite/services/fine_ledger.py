"""Fine ledger: issue, settle and report on member fines.

A fine is created PENDING and moves exactly once to PAID or CANCELLED.
Paid fines feed the treasury fund (see ``fund_accounting``).
"""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from solidarite.models.fine import (
    Fine,
    FineType,
    FineStatus,
    FineCategory,
    FINE_CATALOG,
)
from solidarite.models.member import Member, MemberRole
from solidarite.services.ledger_errors import (
    LedgerValidationError,
    LedgerConflictError,
    LedgerNotFoundError,
    LedgerAuthorizationError,
)

logger = logging.getLogger(__name__)


def resolve_fine_terms(fine_type: FineType, amount: int | None) -> tuple[int, FineCategory]:
    """Return (amount, category) for a fine, defaulting from the catalog."""
    entry = FINE_CATALOG[fine_type]
    if amount is None:
        if entry.amount is None:
            raise LedgerValidationError(
                f"An amount is required for fine type '{fine_type.value}'"
            )
        amount = entry.amount
    if amount < 0:
        raise LedgerValidationError("Fine amount cannot be negative")
    return amount, entry.category


def _require_censor(actor: Member, action: str) -> None:
    if actor.role != MemberRole.CENSOR:
        raise LedgerAuthorizationError(f"Only the censor can {action}")


async def get_fine(db: AsyncSession, fine_id: int, *, for_update: bool = False) -> Fine | None:
    stmt = select(Fine).where(Fine.id == fine_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def create_fine(
    db: AsyncSession,
    member_id: int,
    fine_type: FineType,
    *,
    amount: int | None = None,
    description: str | None = None,
    meeting_id: int | None = None,
    loan_id: int | None = None,
    created_by: int | None = None,
    is_automatic: bool = False,
) -> Fine:
    """Insert a PENDING fine. No checks beyond the amount and member existence."""
    amount, category = resolve_fine_terms(fine_type, amount)

    member = await db.get(Member, member_id)
    if member is None:
        raise LedgerNotFoundError(f"Member {member_id} not found")

    fine = Fine(
        member_id=member_id,
        meeting_id=meeting_id,
        loan_id=loan_id,
        fine_type=fine_type,
        amount=amount,
        category=category,
        description=description,
        status=FineStatus.PENDING,
        created_by=created_by,
        is_automatic=is_automatic,
    )
    db.add(fine)
    await db.flush()
    logger.info(
        "Fine %s (%s, %d) posted to member %d%s",
        fine.id, fine_type.value, amount, member_id,
        " [automatic]" if is_automatic else "",
    )
    return fine


async def issue_fine(
    db: AsyncSession,
    actor: Member,
    member_id: int,
    fine_type: FineType,
    *,
    amount: int | None = None,
    description: str | None = None,
    meeting_id: int | None = None,
) -> Fine:
    """Manual fine issued by the censor."""
    _require_censor(actor, "issue fines")
    return await create_fine(
        db,
        member_id,
        fine_type,
        amount=amount,
        description=description,
        meeting_id=meeting_id,
        created_by=actor.id,
    )


async def create_automatic_fine(
    db: AsyncSession,
    member_id: int,
    fine_type: FineType,
    *,
    meeting_id: int | None = None,
    loan_id: int | None = None,
    amount: int | None = None,
    description: str | None = None,
) -> Fine:
    """System-issued fine (attendance lateness, meeting absence, late loan)."""
    return await create_fine(
        db,
        member_id,
        fine_type,
        amount=amount,
        description=description,
        meeting_id=meeting_id,
        loan_id=loan_id,
        is_automatic=True,
    )


async def _load_pending(db: AsyncSession, fine_id: int) -> Fine:
    fine = await get_fine(db, fine_id, for_update=True)
    if fine is None:
        raise LedgerNotFoundError(f"Fine {fine_id} not found")
    if fine.status != FineStatus.PENDING:
        raise LedgerConflictError(f"Fine already finalized: status is {fine.status.value}")
    return fine


async def pay_fine(db: AsyncSession, fine_id: int, actor: Member) -> Fine:
    """PENDING → PAID."""
    _require_censor(actor, "mark fines as paid")
    fine = await _load_pending(db, fine_id)
    fine.status = FineStatus.PAID
    fine.paid_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("Fine %d paid (%d) by member %d", fine.id, fine.amount, fine.member_id)
    return fine


async def cancel_fine(db: AsyncSession, fine_id: int, actor: Member) -> Fine:
    """PENDING → CANCELLED."""
    _require_censor(actor, "cancel fines")
    fine = await _load_pending(db, fine_id)
    fine.status = FineStatus.CANCELLED
    fine.cancelled_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("Fine %d cancelled by member %d", fine.id, actor.id)
    return fine


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------


async def list_fines(
    db: AsyncSession,
    *,
    status: FineStatus | None = None,
    member_id: int | None = None,
) -> list[Fine]:
    stmt = select(Fine)
    if status is not None:
        stmt = stmt.where(Fine.status == status)
    if member_id is not None:
        stmt = stmt.where(Fine.member_id == member_id)
    result = await db.execute(stmt.order_by(Fine.created_at.desc(), Fine.id.desc()))
    return list(result.scalars().all())


async def member_fine_summary(db: AsyncSession, member_id: int) -> dict[str, Any]:
    """A member's fines plus the total still pending."""
    fines = await list_fines(db, member_id=member_id)
    pending_total = sum(f.amount for f in fines if f.status == FineStatus.PENDING)
    return {"fines": fines, "pending_total": pending_total}


async def aggregate_by_status(db: AsyncSession) -> dict[str, dict[str, int]]:
    result = await db.execute(
        select(Fine.status, func.count(Fine.id), func.coalesce(func.sum(Fine.amount), 0))
        .group_by(Fine.status)
    )
    totals = {s.value: {"count": 0, "total": 0} for s in FineStatus}
    for status, count, total in result.all():
        totals[status.value] = {"count": count, "total": int(total)}
    return totals


async def aggregate_by_category(db: AsyncSession) -> dict[str, dict[str, int]]:
    result = await db.execute(
        select(Fine.category, func.count(Fine.id), func.coalesce(func.sum(Fine.amount), 0))
        .group_by(Fine.category)
    )
    totals = {c.value: {"count": 0, "total": 0} for c in FineCategory}
    for category, count, total in result.all():
        totals[category.value] = {"count": count, "total": int(total)}
    return totals


async def fine_statistics(db: AsyncSession) -> dict[str, Any]:
    by_status = await aggregate_by_status(db)
    by_category = await aggregate_by_category(db)
    return {
        "by_status": by_status,
        "by_category": by_category,
        "total_paid": by_status[FineStatus.PAID.value]["total"],
        "total_pending": by_status[FineStatus.PENDING.value]["total"],
    }
