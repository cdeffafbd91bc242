"""Celery periodic tasks: loan penalty accrual and new-loan notifications."""

import asyncio
import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from solidarite.tasks import celery_app
from solidarite.config import settings
from solidarite.services.notifications import dispatch_intents, send_pending_loan_notifications
from solidarite.services.penalty_accrual import run_penalty_sweep

logger = logging.getLogger(__name__)

__all__ = ["accrue_loan_penalties", "send_loan_notifications"]


def _get_async_session():
    # Each task run owns its event loop, so it gets its own engine too.
    engine = create_async_engine(settings.database_url)
    return engine, async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def _run_sync(coro_factory):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro_factory())
    finally:
        loop.close()


async def _accrue_penalties(session_factory, today: date | None = None) -> dict:
    """Run the sweep, commit it, then notify the penalised borrowers."""
    async with session_factory() as db:
        try:
            result = await run_penalty_sweep(db, today)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("accrue_loan_penalties task failed")
            raise

        stats = result.summary()
        stats["notified"] = await dispatch_intents(db, result.intents)
        return stats


async def _send_notifications(session_factory) -> dict:
    async with session_factory() as db:
        try:
            stats = await send_pending_loan_notifications(db)
            await db.commit()
            return stats
        except Exception:
            await db.rollback()
            logger.exception("send_loan_notifications task failed")
            raise


@celery_app.task(name="solidarite.tasks.ledger_tasks.accrue_loan_penalties")
def accrue_loan_penalties() -> dict:
    """Daily: post late-repayment penalties on overdue active loans."""

    async def _run():
        engine, session_factory = _get_async_session()
        try:
            return await _accrue_penalties(session_factory)
        finally:
            await engine.dispose()

    stats = _run_sync(_run)
    logger.info("accrue_loan_penalties: %s", stats)
    return stats


@celery_app.task(name="solidarite.tasks.ledger_tasks.send_loan_notifications")
def send_loan_notifications() -> dict:
    """Every minute: tell the treasurer and borrower about new loan requests."""

    async def _run():
        engine, session_factory = _get_async_session()
        try:
            return await _send_notifications(session_factory)
        finally:
            await engine.dispose()

    stats = _run_sync(_run)
    if stats.get("loans"):
        logger.info("send_loan_notifications: %s", stats)
    return stats
