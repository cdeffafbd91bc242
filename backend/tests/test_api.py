"""HTTP-level tests for the loan and fine routers.

The database session and the authenticated member are replaced through
FastAPI dependency overrides; service calls are patched.
"""

from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from solidarite.auth_utils import get_current_member
from solidarite.database import get_db
from solidarite.main import app
from solidarite.models.fine import Fine, FineType, FineStatus, FineCategory
from solidarite.models.loan import Loan, LoanStatus
from solidarite.models.member import Member, MemberRole
from solidarite.services.fund_accounting import build_fund_snapshot
from solidarite.services.ledger_errors import (
    LedgerError,
    LedgerValidationError,
    LedgerConflictError,
    LedgerNotFoundError,
    LedgerAuthorizationError,
)


def _member(role: MemberRole) -> Member:
    return Member(
        id=1, first_name="Awa", last_name="Diallo", email="awa@example.org",
        role=role, is_active=True,
    )


def _loan(status: LoanStatus = LoanStatus.PENDING) -> Loan:
    return Loan(
        id=4, borrower_id=1, principal=150, interest=8, interest_rate=5,
        total_owed=158, penalties_accrued=0, amount_repaid=0, motif="Loyer",
        status=status, due_date=date(2026, 2, 15), notification_sent=False,
        repayments=[],
    )


@pytest.fixture
def client_as():
    """Return a factory building a TestClient authenticated with a given role."""
    db = AsyncMock()
    db.add = MagicMock()

    async def _get_db():
        yield db

    def _make(role: MemberRole = MemberRole.MEMBER) -> TestClient:
        member = _member(role)
        app.dependency_overrides[get_db] = _get_db
        app.dependency_overrides[get_current_member] = lambda: member
        return TestClient(app)

    with patch("solidarite.middleware.error_capture.log_error_standalone", new=AsyncMock()), \
         patch("solidarite.api.loans.log_error", new=AsyncMock()), \
         patch("solidarite.api.fines.log_error", new=AsyncMock()):
        yield _make
    app.dependency_overrides.clear()


class TestHealth:

    def test_health(self, client_as):
        resp = client_as().get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"


class TestLoanRoutes:

    def test_request_loan(self, client_as):
        with patch("solidarite.services.loan_engine.request_loan", new=AsyncMock(return_value=_loan())):
            resp = client_as().post("/api/loans/", json={"principal": 150, "motif": "Loyer"})
        assert resp.status_code == 201
        body = resp.json()
        assert body["total_owed"] == 158
        assert body["remaining_balance"] == 158
        assert body["status"] == "pending"

    @pytest.mark.parametrize("error, expected", [
        (LedgerValidationError("exceeds the borrowing ceiling"), 400),
        (LedgerAuthorizationError("nope"), 403),
        (LedgerNotFoundError("missing"), 404),
        (LedgerConflictError("already has an open loan"), 409),
        (LedgerError("unclassified ledger failure"), 400),
    ])
    def test_ledger_errors_map_to_status(self, client_as, error, expected):
        with patch("solidarite.services.loan_engine.request_loan", new=AsyncMock(side_effect=error)):
            resp = client_as().post("/api/loans/", json={"principal": 150, "motif": "Loyer"})
        assert resp.status_code == expected
        assert resp.json()["detail"] == str(error)

    def test_invalid_body(self, client_as):
        resp = client_as().post("/api/loans/", json={"principal": 0, "motif": "Loyer"})
        assert resp.status_code == 422

    def test_process_requires_treasurer(self, client_as):
        resp = client_as(MemberRole.MEMBER).put("/api/loans/4/process", json={"decision": "approve"})
        assert resp.status_code == 403

    def test_process_by_treasurer(self, client_as):
        loan = _loan(LoanStatus.ACTIVE)
        with patch("solidarite.services.loan_engine.process_loan", new=AsyncMock(return_value=loan)):
            resp = client_as(MemberRole.TREASURER).put(
                "/api/loans/4/process", json={"decision": "approve"}
            )
        assert resp.status_code == 200
        assert resp.json()["status"] == "active"

    def test_fund(self, client_as):
        with patch("solidarite.api.loans.compute_fund",
                   new=AsyncMock(return_value=build_fund_snapshot(400, 0, 0))):
            resp = client_as().get("/api/loans/fund")
        assert resp.status_code == 200
        assert resp.json()["borrow_ceiling"] == 200

    def test_list_requires_staff(self, client_as):
        resp = client_as(MemberRole.MEMBER).get("/api/loans/")
        assert resp.status_code == 403


class TestFineRoutes:

    def test_types(self, client_as):
        resp = client_as().get("/api/fines/types")
        assert resp.status_code == 200
        types = {t["fine_type"]: t for t in resp.json()}
        assert types["absence_non_justifiee"]["amount"] == 50
        assert types["autre"]["amount"] is None

    def test_issue_requires_censor(self, client_as):
        resp = client_as(MemberRole.TREASURER).post(
            "/api/fines/", json={"member_id": 3, "fine_type": "retard_simple"}
        )
        assert resp.status_code == 403

    def test_pay_finalized_fine_conflicts(self, client_as):
        with patch("solidarite.services.fine_ledger.pay_fine",
                   new=AsyncMock(side_effect=LedgerConflictError("Fine already finalized: status is paid"))):
            resp = client_as(MemberRole.CENSOR).put("/api/fines/9/pay")
        assert resp.status_code == 409

    def test_issue_fine(self, client_as):
        fine = Fine(
            id=9, member_id=3, fine_type=FineType.RETARD_SIMPLE, amount=10,
            category=FineCategory.LATENESS, status=FineStatus.PENDING, is_automatic=False,
            created_by=1,
        )
        with patch("solidarite.services.fine_ledger.issue_fine", new=AsyncMock(return_value=fine)):
            resp = client_as(MemberRole.CENSOR).post(
                "/api/fines/", json={"member_id": 3, "fine_type": "retard_simple"}
            )
        assert resp.status_code == 201
        assert resp.json()["category"] == "retard"
