"""Outbound member notifications over WhatsApp (Twilio REST API).

Ledger operations never send messages themselves. They produce
``NotificationIntent`` values which the Celery jobs hand to
``dispatch_intents`` after the ledger transaction has committed. Every send
is fire-and-forget: failures are logged and never propagate.

In non-production environments every recipient is replaced by the configured
sandbox phone so real members are never contacted.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from solidarite.config import settings
from solidarite.models.loan import Loan, LoanStatus
from solidarite.models.member import Member, MemberRole

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = (
    "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
)


class TemplateKind(str, enum.Enum):
    LOAN_REQUEST_CONFIRMATION = "loan_request_confirmation"
    LOAN_REQUEST_TREASURER_ALERT = "loan_request_treasurer_alert"
    LOAN_PENALTY_ALERT = "loan_penalty_alert"


@dataclass(frozen=True)
class NotificationIntent:
    recipient_id: int
    template_kind: TemplateKind
    data: dict[str, Any] = field(default_factory=dict)


MESSAGE_TEMPLATES: dict[TemplateKind, str] = {
    TemplateKind.LOAN_REQUEST_CONFIRMATION: (
        "Bonjour {first_name}, votre demande de prêt a bien été enregistrée. "
        "Montant : {principal}{currency}, intérêts ({interest_rate}%) : {interest}{currency}, "
        "total à rembourser : {total_owed}{currency}, échéance : {due_date}. "
        "\n{association}"
    ),
    TemplateKind.LOAN_REQUEST_TREASURER_ALERT: (
        "Bonjour {first_name}, {borrower_name} a soumis une demande de prêt de "
        "{principal}{currency} (total {total_owed}{currency}). Motif : {motif}. "
        "Connectez-vous pour traiter la demande."
    ),
    TemplateKind.LOAN_PENALTY_ALERT: (
        "Bonjour {first_name}, votre prêt est en retard de {days_overdue} jours. "
        "Une pénalité de {penalty_delta}{currency} a été ajoutée "
        "(total des pénalités : {penalties_accrued}{currency}). "
        "Montant total dû : {total_owed}{currency}, déjà remboursé : {amount_repaid}{currency}. "
        "Merci de régulariser rapidement."
    ),
}


def render_message(intent: NotificationIntent, recipient: Member) -> str:
    """Fill the template for ``intent`` addressed to ``recipient``."""
    template = MESSAGE_TEMPLATES[intent.template_kind]
    return template.format(
        first_name=recipient.first_name,
        currency=settings.currency_symbol,
        association=settings.association_name,
        **intent.data,
    )


async def send_whatsapp_message(to_phone: str, body: str) -> dict[str, Any]:
    """Send a WhatsApp message via Twilio.

    Returns the Twilio response JSON on success or ``{"error": ...}`` on
    failure. Never raises.
    """
    sid = settings.twilio_account_sid
    token = settings.twilio_auth_token

    if not sid or not token:
        logger.warning("Twilio credentials not configured; skipping WhatsApp send")
        return {"error": "Twilio credentials not configured"}

    if settings.environment != "production":
        to_phone = settings.whatsapp_sandbox_phone

    if not to_phone:
        return {"error": "No recipient phone number"}

    if not to_phone.startswith("whatsapp:"):
        to_phone = f"whatsapp:{to_phone}"

    from_number = settings.twilio_whatsapp_number
    if not from_number.startswith("whatsapp:"):
        from_number = f"whatsapp:{from_number}"

    url = TWILIO_MESSAGES_URL.format(sid=sid)

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                url,
                data={"To": to_phone, "From": from_number, "Body": body},
                auth=(sid, token),
                timeout=15.0,
            )

        result = response.json()

        if response.status_code >= 400:
            logger.error(
                "Twilio API error %s: %s",
                response.status_code,
                result.get("message", result),
            )
            return {"error": result.get("message", str(result)), "status_code": response.status_code}

        logger.info("WhatsApp message sent: SID %s, to %s", result.get("sid"), to_phone)
        return result

    except Exception as exc:
        logger.error("Failed to send WhatsApp message: %s", exc)
        return {"error": str(exc)}


async def deliver(intent: NotificationIntent, recipient: Member) -> bool:
    """Render and send one intent. True when the provider accepted it."""
    if not recipient.phone:
        logger.info(
            "Member %d has no phone number; %s not sent",
            recipient.id, intent.template_kind.value,
        )
        return False
    try:
        body = render_message(intent, recipient)
    except (KeyError, ValueError) as exc:
        logger.error("Cannot render %s: %s", intent.template_kind.value, exc)
        return False
    result = await send_whatsapp_message(recipient.phone, body)
    return "error" not in result


async def dispatch_intents(
    db: AsyncSession, intents: Iterable[NotificationIntent]
) -> int:
    """Deliver intents after the ledger change committed. Returns the number sent."""
    delivered = 0
    for intent in intents:
        try:
            recipient = await db.get(Member, intent.recipient_id)
            if recipient is None:
                logger.warning("Notification recipient %d not found", intent.recipient_id)
                continue
            if await deliver(intent, recipient):
                delivered += 1
        except Exception as exc:
            logger.error(
                "Notification %s to member %d failed: %s",
                intent.template_kind.value, intent.recipient_id, exc,
            )
    return delivered


def _loan_data(loan: Loan) -> dict[str, Any]:
    return {
        "loan_id": loan.id,
        "principal": loan.principal,
        "interest": loan.interest,
        "interest_rate": loan.interest_rate,
        "total_owed": loan.total_owed,
        "motif": loan.motif,
        "due_date": loan.due_date.strftime("%d/%m/%Y"),
    }


async def send_pending_loan_notifications(db: AsyncSession) -> dict[str, int]:
    """Notify borrower and treasurer about new loan requests.

    Only PENDING loans are considered. A loan's ``notification_sent`` flag is
    set once at least one of the two messages went out; otherwise the next
    run tries again while the request is still pending. A loan that was
    processed or withdrawn in the meantime is flagged without sending.
    """
    stats = {"loans": 0, "notified": 0, "messages": 0}

    result = await db.execute(
        select(Loan)
        .where(
            Loan.notification_sent.is_(False),
            Loan.status == LoanStatus.PENDING,
        )
        .order_by(Loan.id)
    )
    loans = list(result.scalars().all())
    if not loans:
        return stats

    treasurer_q = await db.execute(
        select(Member).where(
            Member.role == MemberRole.TREASURER,
            Member.is_active.is_(True),
        )
    )
    treasurer = treasurer_q.scalars().first()

    for loan in loans:
        if loan.status != LoanStatus.PENDING:
            loan.notification_sent = True
            continue
        stats["loans"] += 1
        borrower = await db.get(Member, loan.borrower_id)
        if borrower is None:
            logger.warning("Loan %d borrower %d not found", loan.id, loan.borrower_id)
            continue

        data = _loan_data(loan)
        sent = 0
        if treasurer is not None:
            alert = NotificationIntent(
                recipient_id=treasurer.id,
                template_kind=TemplateKind.LOAN_REQUEST_TREASURER_ALERT,
                data={**data, "borrower_name": borrower.full_name},
            )
            if await deliver(alert, treasurer):
                sent += 1

        confirmation = NotificationIntent(
            recipient_id=borrower.id,
            template_kind=TemplateKind.LOAN_REQUEST_CONFIRMATION,
            data=data,
        )
        if await deliver(confirmation, borrower):
            sent += 1

        if sent:
            loan.notification_sent = True
            stats["notified"] += 1
            stats["messages"] += sent

    await db.flush()
    return stats
