"""Tests for all API routes via FastAPI TestClient."""

from collections.abc import Generator
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import app.dependencies
from app.main import create_app
from config import Settings
from db.connection import configure_sqlite, get_db
from db.models import Base, MonthlyReports
from payouts.services.accrual import AccrualStore
from payouts.services.creators import CreatorService
from payouts.services.report_generator import ReportGenerator

# Reports closed here unlock long before the tests run.
PAST_CLOSE: datetime = datetime(2025, 1, 1, tzinfo=UTC)
KEY: dict[str, str] = {"X-API-Key": ""}
PAYPAL: dict[str, str] = {"paypal_email": "alice@example.com"}

# Never entered as a context manager, so the lifespan (init_database) does not run.
_test_app: FastAPI = create_app()


@pytest.fixture()
def _route_engine() -> Generator[Engine, None, None]:
    """In-memory SQLite engine with check_same_thread=False for TestClient."""
    eng: Engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(eng)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def _route_session(_route_engine: Engine) -> Generator[Session, None, None]:
    factory: sessionmaker[Session] = sessionmaker(
        bind=_route_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    sess: Session = factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture()
def client(_route_session: Session) -> Generator[TestClient, None, None]:
    """TestClient with DB dependency overridden to use test session."""

    def _override_db() -> Generator[Session, None, None]:
        yield _route_session

    _test_app.dependency_overrides[get_db] = _override_db
    yield TestClient(_test_app)
    _test_app.dependency_overrides.clear()


@pytest.fixture()
def session(_route_session: Session) -> Session:
    """Alias so seed helpers can use the same session as the client."""
    return _route_session


# ---------- seed helpers ----------


def _seed_creator(session: Session, creator_id: str = "alice", earnings: str = "0") -> None:
    CreatorService(session).register_creator(creator_id.title(), creator_id=creator_id)
    store: AccrualStore = AccrualStore(session)
    store.register_video(f"{creator_id}-v1", creator_id, "First upload")
    if Decimal(earnings) > 0:
        store.record_accrual(f"{creator_id}-v1", Decimal(earnings), 400, 100)


def _seed_unlockable_report(
    session: Session, creator_id: str = "alice", earnings: str = "120"
) -> MonthlyReports:
    _seed_creator(session, creator_id, earnings)
    report: MonthlyReports | None = ReportGenerator(session).generate_for_creator(
        creator_id, "2024-12", now=PAST_CLOSE
    )
    assert report is not None
    return report


def _seed_available(session: Session, client: TestClient, earnings: str = "120") -> None:
    report: MonthlyReports = _seed_unlockable_report(session, earnings=earnings)
    resp = client.post(
        f"/api/reports/{report.report_id}/unlock", json={"operatorId": "op-1"}, headers=KEY
    )
    assert resp.status_code == 200


# ===================================================================
# Health
# ===================================================================


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_api_key_required_when_configured(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(app.dependencies, "get_settings", lambda: Settings(api_key="s3cret"))
        body = {"name": "Alice", "creatorId": "alice"}
        assert client.post("/api/creators", json=body).status_code == 401
        assert client.post("/api/creators", json=body, headers={"X-API-Key": "nope"}).status_code == 401
        resp = client.post("/api/creators", json=body, headers={"X-API-Key": "s3cret"})
        assert resp.status_code == 201


# ===================================================================
# Creators
# ===================================================================


class TestCreatorRoutes:
    def test_list_empty(self, client: TestClient) -> None:
        resp = client.get("/api/creators")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_register_opens_ledger(self, client: TestClient) -> None:
        resp = client.post(
            "/api/creators",
            json={"name": "Alice", "creatorId": "alice", "email": "a@example.com"},
            headers=KEY,
        )
        assert resp.status_code == 201
        assert resp.json()["status"] == "active"

        ledger = client.get("/api/creators/alice/ledger")
        assert ledger.status_code == 200
        data: dict[str, str] = ledger.json()
        assert Decimal(data["lockedBalance"]) == 0
        assert Decimal(data["totalEarnings"]) == 0

    def test_get_not_found(self, client: TestClient) -> None:
        resp = client.get("/api/creators/nobody")
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    def test_set_status(self, client: TestClient, session: Session) -> None:
        _seed_creator(session)
        resp = client.patch(
            "/api/creators/alice/status", json={"status": "inactive"}, headers=KEY
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "inactive"

    def test_videos_and_period_totals(self, client: TestClient, session: Session) -> None:
        _seed_creator(session, earnings="3.25")
        videos = client.get("/api/creators/alice/videos")
        assert videos.status_code == 200
        assert [v["videoId"] for v in videos.json()] == ["alice-v1"]

        totals = client.get("/api/creators/alice/period-totals")
        assert totals.status_code == 200
        assert Decimal(totals.json()["periodEarnings"]) == Decimal("3.25")
        assert totals.json()["videoCount"] == 1


# ===================================================================
# Accruals
# ===================================================================


class TestAccrualRoutes:
    def test_register_and_accrue(self, client: TestClient, session: Session) -> None:
        _seed_creator(session)
        resp = client.post(
            "/api/videos",
            json={"videoId": "alice-v2", "creatorId": "alice", "title": "Second"},
            headers=KEY,
        )
        assert resp.status_code == 201

        resp = client.post(
            "/api/accruals/alice-v2",
            json={"earningsDelta": "1.50", "viewsDelta": 30, "premiumViewsDelta": 5},
            headers=KEY,
        )
        assert resp.status_code == 200
        data: dict[str, object] = resp.json()
        assert Decimal(str(data["periodEarnings"])) == Decimal("1.50")
        assert data["periodViews"] == 30

    def test_premium_over_views_rejected(self, client: TestClient, session: Session) -> None:
        _seed_creator(session)
        resp = client.post(
            "/api/accruals/alice-v1",
            json={"earningsDelta": "1", "viewsDelta": 1, "premiumViewsDelta": 2},
            headers=KEY,
        )
        assert resp.status_code == 422

    def test_video_owned_by_someone_else(self, client: TestClient, session: Session) -> None:
        _seed_creator(session, "alice")
        _seed_creator(session, "bob")
        resp = client.post(
            "/api/videos", json={"videoId": "alice-v1", "creatorId": "bob"}, headers=KEY
        )
        assert resp.status_code == 409

    def test_unknown_video(self, client: TestClient) -> None:
        resp = client.post("/api/accruals/nope", json={"earningsDelta": "1"}, headers=KEY)
        assert resp.status_code == 404


# ===================================================================
# Reports
# ===================================================================


class TestReportRoutes:
    def test_generate_run(self, client: TestClient, session: Session) -> None:
        _seed_creator(session, "alice", "12.50")
        _seed_creator(session, "bob")
        resp = client.post("/api/reports/generate", json={"period": "2026-01"}, headers=KEY)
        assert resp.status_code == 200
        data: dict[str, object] = resp.json()
        assert data["reportsCreated"] == 1
        assert Decimal(str(data["totalPayout"])) == Decimal("12.50")
        assert data["results"]["skipped"] == ["bob"]  # type: ignore[index]

        listed = client.get("/api/reports", params={"creator_id": "alice"})
        assert listed.status_code == 200
        assert [r["reportId"] for r in listed.json()] == ["alice_2026-01"]
        assert listed.json()[0]["status"] == "locked"

    def test_generate_single_twice(self, client: TestClient, session: Session) -> None:
        _seed_creator(session, "alice", "5")
        body: dict[str, str] = {"period": "2026-01", "creatorId": "alice"}
        first = client.post("/api/reports/generate", json=body, headers=KEY)
        assert first.status_code == 200
        assert first.json()["reportsCreated"] == 1

        second = client.post("/api/reports/generate", json=body, headers=KEY)
        assert second.status_code == 409
        assert second.json()["code"] == "duplicate_report"

    def test_generate_bad_period(self, client: TestClient) -> None:
        resp = client.post("/api/reports/generate", json={"period": "January"}, headers=KEY)
        assert resp.status_code == 422

    def test_get_report_detail(self, client: TestClient, session: Session) -> None:
        report: MonthlyReports = _seed_unlockable_report(session)
        resp = client.get(f"/api/reports/{report.report_id}")
        assert resp.status_code == 200
        data: dict[str, object] = resp.json()
        assert data["videoCount"] == 1
        assert data["videoBreakdown"][0]["videoId"] == "alice-v1"  # type: ignore[index]

    def test_ready_to_unlock_and_sweep(self, client: TestClient, session: Session) -> None:
        report: MonthlyReports = _seed_unlockable_report(session)
        ready = client.get("/api/reports/ready-to-unlock")
        assert [r["reportId"] for r in ready.json()] == [report.report_id]

        resp = client.post("/api/reports/sweep", headers=KEY)
        assert resp.status_code == 200
        assert resp.json()["reportsUnlocked"] == 1

        ledger = client.get("/api/creators/alice/ledger").json()
        assert Decimal(ledger["availableBalance"]) == Decimal("120")
        assert Decimal(ledger["lockedBalance"]) == 0

    def test_manual_unlock_still_locked(self, client: TestClient, session: Session) -> None:
        _seed_creator(session, "alice", "5")
        client.post(
            "/api/reports/generate", json={"period": "2026-01", "creatorId": "alice"}, headers=KEY
        )
        resp = client.post(
            "/api/reports/alice_2026-01/unlock", json={"operatorId": "op-1"}, headers=KEY
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "still_locked"

    def test_bulk_unlock(self, client: TestClient, session: Session) -> None:
        report: MonthlyReports = _seed_unlockable_report(session)
        resp = client.post(
            "/api/reports/bulk-unlock",
            json={"reportIds": [report.report_id, "missing"], "operatorId": "op-1"},
            headers=KEY,
        )
        assert resp.status_code == 200
        data: dict[str, object] = resp.json()
        assert data["succeeded"] == [report.report_id]
        assert data["failed"][0]["code"] == "not_found"  # type: ignore[index]

    def test_stats(self, client: TestClient, session: Session) -> None:
        _seed_unlockable_report(session)
        resp = client.get("/api/reports/stats")
        assert resp.status_code == 200
        data: dict[str, object] = resp.json()
        assert data["totalReports"] == 1
        assert data["readyToUnlock"] == 1


# ===================================================================
# Withdrawals
# ===================================================================


class TestWithdrawalRoutes:
    def _request(self, client: TestClient, amount: str = "100") -> str:
        resp = client.post(
            "/api/withdrawals",
            json={"creatorId": "alice", "amount": amount, "method": "paypal", "details": PAYPAL},
        )
        assert resp.status_code == 201, resp.text
        return str(resp.json()["requestId"])

    def test_request_and_approve(self, client: TestClient, session: Session) -> None:
        _seed_available(session, client)
        request_id: str = self._request(client)

        resp = client.post(
            f"/api/withdrawals/{request_id}/approve", json={"operatorId": "op-1"}, headers=KEY
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "approved"

        ledger = client.get("/api/creators/alice/ledger").json()
        assert Decimal(ledger["availableBalance"]) == Decimal("20")
        assert Decimal(ledger["totalWithdrawn"]) == Decimal("100")

        again = client.post(
            f"/api/withdrawals/{request_id}/approve", json={"operatorId": "op-1"}, headers=KEY
        )
        assert again.status_code == 409
        assert again.json()["code"] == "already_processed"

    def test_request_over_balance(self, client: TestClient, session: Session) -> None:
        _seed_available(session, client)
        resp = client.post(
            "/api/withdrawals",
            json={"creatorId": "alice", "amount": "500", "method": "paypal", "details": PAYPAL},
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "insufficient_available"

    def test_request_below_minimum(self, client: TestClient, session: Session) -> None:
        _seed_available(session, client)
        resp = client.post(
            "/api/withdrawals",
            json={"creatorId": "alice", "amount": "1", "method": "paypal", "details": PAYPAL},
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == "invalid_withdrawal"

    def test_reject_then_list(self, client: TestClient, session: Session) -> None:
        _seed_available(session, client)
        request_id: str = self._request(client, "60")
        resp = client.post(
            f"/api/withdrawals/{request_id}/reject",
            json={"operatorId": "op-1", "reason": "wrong email"},
            headers=KEY,
        )
        assert resp.status_code == 200
        assert resp.json()["rejectionReason"] == "wrong email"

        listed = client.get("/api/withdrawals", params={"status": "rejected"})
        assert [w["requestId"] for w in listed.json()] == [request_id]
        mine = client.get("/api/creators/alice/withdrawals")
        assert len(mine.json()) == 1

    def test_bulk_approve(self, client: TestClient, session: Session) -> None:
        _seed_available(session, client)
        ids: list[str] = [self._request(client, "70"), self._request(client, "70")]
        resp = client.post(
            "/api/withdrawals/bulk",
            json={"requestIds": ids, "action": "approve", "operatorId": "op-1"},
            headers=KEY,
        )
        assert resp.status_code == 200
        data: dict[str, object] = resp.json()
        assert data["succeeded"] == [ids[0]]
        assert data["failed"][0]["code"] == "insufficient_available"  # type: ignore[index]

    def test_receipt_and_stats(self, client: TestClient, session: Session) -> None:
        _seed_available(session, client)
        request_id: str = self._request(client)
        client.post(
            f"/api/withdrawals/{request_id}/approve", json={"operatorId": "op-1"}, headers=KEY
        )
        resp = client.post(
            f"/api/withdrawals/{request_id}/receipt",
            json={"operatorId": "op-1", "receiptUrl": "https://files/receipt.pdf"},
            headers=KEY,
        )
        assert resp.status_code == 200
        assert resp.json()["receiptUrl"] == "https://files/receipt.pdf"

        stats = client.get("/api/withdrawals/stats").json()
        assert stats["byStatus"]["approved"]["count"] == 1

    def test_get_not_found(self, client: TestClient) -> None:
        resp = client.get("/api/withdrawals/nope")
        assert resp.status_code == 404


# ===================================================================
# Ledger checks and audit
# ===================================================================


class TestLedgerRoutes:
    def test_reconcile_consistent(self, client: TestClient, session: Session) -> None:
        _seed_available(session, client)
        resp = client.post("/api/reconcile", headers=KEY)
        assert resp.status_code == 200
        data: dict[str, object] = resp.json()
        assert data["consistent"] is True
        assert data["creatorsChecked"] == 1

    def test_audit_trail(self, client: TestClient, session: Session) -> None:
        report: MonthlyReports = _seed_unlockable_report(session)
        resp = client.get("/api/audit", params={"target_id": report.report_id})
        assert resp.status_code == 200
        actions: list[str] = [e["action"] for e in resp.json()]
        assert actions == ["credit_locked", "report_generated"]
