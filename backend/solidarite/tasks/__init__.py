"""Celery app and beat schedule for the ledger's periodic jobs."""

from celery import Celery
from celery.schedules import crontab

from solidarite.config import settings

celery_app = Celery(
    "solidarite",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.scheduler_timezone,
    enable_utc=True,
)

celery_app.conf.beat_schedule = {
    "accrue-loan-penalties-daily": {
        "task": "solidarite.tasks.ledger_tasks.accrue_loan_penalties",
        "schedule": crontab(
            hour=settings.penalty_sweep_hour,
            minute=settings.penalty_sweep_minute,
        ),
    },
    "send-loan-notifications": {
        "task": "solidarite.tasks.ledger_tasks.send_loan_notifications",
        "schedule": crontab(minute="*"),  # Every minute
    },
}

# Import tasks so they get registered
from solidarite.tasks.ledger_tasks import *  # noqa
