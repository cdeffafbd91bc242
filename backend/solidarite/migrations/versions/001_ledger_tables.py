"""Ledger tables: members, loans, loan_repayments, fines, error_logs.

Revision ID: 001_ledger_tables
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


revision = "001_ledger_tables"
down_revision = None
branch_labels = None
depends_on = None


_FINE_TYPES = (
    "RETARD_SIMPLE", "GRAND_RETARD", "RETARD_HOTE",
    "ABSENCE_JUSTIFIEE", "ABSENCE_NON_JUSTIFIEE",
    "ECHEC_COTISATION", "DEFAILLANCE_COTISATION", "RETARD_ARGENT_NOURRITURE",
    "ARGENT_NON_ESPECES", "RETARD_REMBOURSEMENT_PRET",
    "SABOTAGE_CULINAIRE", "VIOLATION_CONFIDENTIALITE", "AUTRE",
)


def upgrade() -> None:
    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("role", sa.Enum("PRESIDENT", "TREASURER", "CENSOR", "MEMBER", name="memberrole"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_members_email", "members", ["email"], unique=True)

    op.create_table(
        "loans",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("borrower_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("principal", sa.Integer(), nullable=False),
        sa.Column("interest", sa.Integer(), nullable=False),
        sa.Column("interest_rate", sa.Integer(), nullable=False),
        sa.Column("total_owed", sa.Integer(), nullable=False),
        sa.Column("penalties_accrued", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("amount_repaid", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("motif", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "APPROVED", "ACTIVE", "REJECTED", "REPAID", "WITHDRAWN", name="loanstatus"),
            nullable=False,
        ),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("processed_by", sa.Integer(), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_note", sa.Text(), nullable=True),
        sa.Column("withdrawn_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notification_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("principal > 0", name="ck_loans_principal_positive"),
        sa.CheckConstraint(
            "amount_repaid >= 0 AND amount_repaid <= total_owed",
            name="ck_loans_repaid_within_total",
        ),
        sa.CheckConstraint("penalties_accrued >= 0", name="ck_loans_penalties_non_negative"),
    )
    op.create_index("ix_loans_borrower_id", "loans", ["borrower_id"])
    op.create_index("ix_loans_status", "loans", ["status"])
    op.create_index(
        "uq_loans_open_per_borrower",
        "loans",
        ["borrower_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('PENDING', 'APPROVED', 'ACTIVE')"),
    )

    op.create_table(
        "loan_repayments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("loan_id", sa.Integer(), sa.ForeignKey("loans.id"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("kind", sa.Enum("PRINCIPAL", "PENALTY", name="repaymentkind"), nullable=False),
        sa.Column("note", sa.String(500), nullable=True),
        sa.Column("recorded_by", sa.Integer(), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount > 0", name="ck_loan_repayments_amount_positive"),
    )
    op.create_index("ix_loan_repayments_loan_id", "loan_repayments", ["loan_id"])

    op.create_table(
        "fines",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("meeting_id", sa.Integer(), nullable=True),
        sa.Column("loan_id", sa.Integer(), sa.ForeignKey("loans.id"), nullable=True),
        sa.Column("fine_type", sa.Enum(*_FINE_TYPES, name="finetype"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column(
            "category",
            sa.Enum("LATENESS", "ABSENCE", "FINANCIAL", "ORGANISATION", "DISCIPLINE", "OTHER", name="finecategory"),
            nullable=False,
        ),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Enum("PENDING", "PAID", "CANCELLED", name="finestatus"), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("is_automatic", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount >= 0", name="ck_fines_amount_non_negative"),
        sa.CheckConstraint(
            "status != 'PAID' OR paid_at IS NOT NULL",
            name="ck_fines_paid_has_timestamp",
        ),
    )
    op.create_index("ix_fines_member_id", "fines", ["member_id"])
    op.create_index("ix_fines_meeting_id", "fines", ["meeting_id"])
    op.create_index("ix_fines_loan_id", "fines", ["loan_id"])
    op.create_index("ix_fines_status", "fines", ["status"])

    op.create_table(
        "error_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "severity",
            sa.Enum("INFO", "WARNING", "ERROR", "CRITICAL", name="errorseverity"),
            nullable=False,
        ),
        sa.Column("error_type", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("traceback", sa.Text(), nullable=True),
        sa.Column("module", sa.String(300), nullable=True),
        sa.Column("function_name", sa.String(200), nullable=True),
        sa.Column("line_number", sa.Integer(), nullable=True),
        sa.Column("request_method", sa.String(10), nullable=True),
        sa.Column("request_path", sa.String(500), nullable=True),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("response_time_ms", sa.Float(), nullable=True),
        sa.Column("member_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("error_logs")
    op.drop_table("fines")
    op.drop_table("loan_repayments")
    op.drop_index("uq_loans_open_per_borrower", table_name="loans")
    op.drop_table("loans")
    op.drop_table("members")
    for enum_name in (
        "errorseverity", "finestatus", "finecategory", "finetype",
        "repaymentkind", "loanstatus", "memberrole",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
