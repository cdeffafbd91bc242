"""Fine ledger models and the fine type catalog."""

import enum
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import (
    String, Integer, Boolean, Enum, DateTime, ForeignKey, Text, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from solidarite.database import Base, utcnow


class FineCategory(str, enum.Enum):
    LATENESS = "retard"
    ABSENCE = "absence"
    FINANCIAL = "financier"
    ORGANISATION = "organisation"
    DISCIPLINE = "discipline"
    OTHER = "autre"


class FineStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class FineType(str, enum.Enum):
    RETARD_SIMPLE = "retard_simple"
    GRAND_RETARD = "grand_retard"
    RETARD_HOTE = "retard_hote"
    ABSENCE_JUSTIFIEE = "absence_justifiee"
    ABSENCE_NON_JUSTIFIEE = "absence_non_justifiee"
    ECHEC_COTISATION = "echec_cotisation"
    DEFAILLANCE_COTISATION = "defaillance_cotisation"
    RETARD_ARGENT_NOURRITURE = "retard_argent_nourriture"
    ARGENT_NON_ESPECES = "argent_non_especes"
    RETARD_REMBOURSEMENT_PRET = "retard_remboursement_pret"
    SABOTAGE_CULINAIRE = "sabotage_culinaire"
    VIOLATION_CONFIDENTIALITE = "violation_confidentialite"
    AUTRE = "autre"


@dataclass(frozen=True)
class FineTypeSpec:
    label: str
    amount: int | None
    category: FineCategory


# Canonical amounts are in the smallest currency unit; AUTRE has no default.
FINE_CATALOG: dict[FineType, FineTypeSpec] = {
    FineType.RETARD_SIMPLE: FineTypeSpec("Retard simple", 10, FineCategory.LATENESS),
    FineType.GRAND_RETARD: FineTypeSpec("Grand retard", 20, FineCategory.LATENESS),
    FineType.RETARD_HOTE: FineTypeSpec("Retard de l'hôte", 20, FineCategory.LATENESS),
    FineType.ABSENCE_JUSTIFIEE: FineTypeSpec("Absence justifiée", 10, FineCategory.ABSENCE),
    FineType.ABSENCE_NON_JUSTIFIEE: FineTypeSpec("Absence non justifiée", 50, FineCategory.ABSENCE),
    FineType.ECHEC_COTISATION: FineTypeSpec("Échec de cotisation", 50, FineCategory.FINANCIAL),
    FineType.DEFAILLANCE_COTISATION: FineTypeSpec("Défaillance de cotisation", 100, FineCategory.FINANCIAL),
    FineType.RETARD_ARGENT_NOURRITURE: FineTypeSpec("Retard argent nourriture", 15, FineCategory.FINANCIAL),
    FineType.ARGENT_NON_ESPECES: FineTypeSpec("Argent non remis en espèces", 5, FineCategory.FINANCIAL),
    FineType.RETARD_REMBOURSEMENT_PRET: FineTypeSpec("Retard de remboursement de prêt", 10, FineCategory.FINANCIAL),
    FineType.SABOTAGE_CULINAIRE: FineTypeSpec("Sabotage culinaire", 50, FineCategory.ORGANISATION),
    FineType.VIOLATION_CONFIDENTIALITE: FineTypeSpec("Violation de confidentialité", 90, FineCategory.DISCIPLINE),
    FineType.AUTRE: FineTypeSpec("Autre", None, FineCategory.OTHER),
}


class Fine(Base):
    __tablename__ = "fines"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_fines_amount_non_negative"),
        CheckConstraint(
            "status != 'PAID' OR paid_at IS NOT NULL",
            name="ck_fines_paid_has_timestamp",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id"), index=True, nullable=False,
    )
    # Owned by the meeting service; plain reference, no FK.
    meeting_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    loan_id: Mapped[int | None] = mapped_column(
        ForeignKey("loans.id"), nullable=True, index=True,
    )

    fine_type: Mapped[FineType] = mapped_column(Enum(FineType), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[FineCategory] = mapped_column(Enum(FineCategory), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[FineStatus] = mapped_column(
        Enum(FineStatus), default=FineStatus.PENDING, index=True, nullable=False,
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Null for fines posted by the system
    created_by: Mapped[int | None] = mapped_column(ForeignKey("members.id"), nullable=True)
    is_automatic: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False,
    )
