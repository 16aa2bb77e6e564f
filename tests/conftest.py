import os

# Avant l'import de l'app: pas de Redis en tests
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import pytest
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import MagicMock
from fastapi.testclient import TestClient

from backend.app import app as fastapi_app
from backend.pricing.draft import quote_for_draft
from backend.utils.timespan import localize, parse_datetime, to_utc_iso

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

# Aucun accès Supabase réel pendant les tests
@pytest.fixture(scope="function", autouse=True)
def mock_db_dependency(monkeypatch):
    monkeypatch.setattr("backend.infra.supabase_client.get_service_supabase", lambda: MagicMock())

@pytest.fixture(autouse=True)
def _clear_quote_cache():
    quote_for_draft.cache_clear()
    yield
    quote_for_draft.cache_clear()


class FakeReservationStore:
    """
    Repository en mémoire avec la même sémantique que backend.reservations.repository:
    compare-and-swap sur (id, statut attendu), contrainte unique sur le grand livre des acomptes.
    """

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.payments: List[Dict[str, Any]] = []
        self.fail_create = False
        self.fail_overlap = False
        self.calls: Dict[str, int] = {}

    def _hit(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    def add(self, **overrides) -> Dict[str, Any]:
        start = overrides.pop("start", datetime(2025, 6, 1, 20, 0))
        end = overrides.pop("end", datetime(2025, 6, 1, 23, 30))
        row = {
            "id": f"res-{len(self.rows) + 1}",
            "pack_key": "conference",
            "tier": "M",
            "headcount": 40,
            "start_at": to_utc_iso(start),
            "end_at": to_utc_iso(end),
            "zone": "paris",
            "city": "Paris",
            "postal_code": "75011",
            "price_total": 33300,
            "deposit_amount": 9990,
            "balance_amount": 23310,
            "caution_amount": 84000,
            "customer_email": "client@example.com",
            "status": "CONFIRMED",
            "stripe_session_id": "cs_test_existing",
            "hold_expires_at": None,
        }
        row.update(overrides)
        self.rows[row["id"]] = row
        return dict(row)

    # --- API du repository ---

    def create_reservation(self, record):
        self._hit("create_reservation")
        if self.fail_create:
            return None
        self.rows[record["id"]] = dict(record)
        return dict(record)

    def get_reservation(self, reservation_id):
        self._hit("get_reservation")
        row = self.rows.get(str(reservation_id))
        return dict(row) if row else None

    def get_reservation_status(self, reservation_id):
        self._hit("get_reservation_status")
        row = self.rows.get(str(reservation_id))
        if not row:
            return None
        return {"id": row["id"], "status": row["status"], "stripe_session_id": row.get("stripe_session_id")}

    def update_reservation_status(self, reservation_id, status, expected_status, session_ref=None, extra=None):
        self._hit("update_reservation_status")
        row = self.rows.get(str(reservation_id))
        if not row or row["status"] != expected_status:
            return None
        if session_ref and row.get("stripe_session_id") != session_ref:
            return None
        row["status"] = status
        row.update(extra or {})
        return dict(row)

    def query_overlapping(self, span, package_family, statuses):
        self._hit("query_overlapping")
        if self.fail_overlap:
            return None
        statuses = set(statuses)
        start, end = localize(span.start), localize(span.end)
        return [
            dict(r)
            for r in self.rows.values()
            if r["pack_key"] == package_family
            and r["status"] in statuses
            and parse_datetime(r["start_at"]) < end
            and parse_datetime(r["end_at"]) > start
        ]

    def list_expired_holds(self, now):
        self._hit("list_expired_holds")
        return [
            dict(r)
            for r in self.rows.values()
            if r["status"] == "AWAITING_PAYMENT"
            and r.get("hold_expires_at")
            and parse_datetime(r["hold_expires_at"]) <= now
        ]

    def insert_deposit_payment(self, *, reservation_id, session_ref, amount, currency, source):
        self._hit("insert_deposit_payment")
        if any(p["reservation_id"] == reservation_id for p in self.payments):
            return None
        row = {
            "reservation_id": reservation_id,
            "stripe_session_id": session_ref,
            "amount": amount,
            "currency": currency,
            "source": source,
        }
        self.payments.append(row)
        return dict(row)


_REPOSITORY_FUNCTIONS = (
    "create_reservation",
    "get_reservation",
    "get_reservation_status",
    "update_reservation_status",
    "query_overlapping",
    "list_expired_holds",
    "insert_deposit_payment",
)

@pytest.fixture
def store(monkeypatch) -> FakeReservationStore:
    fake = FakeReservationStore()
    for name in _REPOSITORY_FUNCTIONS:
        monkeypatch.setattr(f"backend.reservations.repository.{name}", getattr(fake, name))
    return fake


class FakeStripe:
    """Session Checkout simulée: create/status/expire, avec pannes injectables."""

    def __init__(self):
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.expired: List[str] = []
        self.fail_create = False
        self.fail_status = False
        self.status_calls = 0

    def create_session(self, *, amount, reservation_id, customer_email, success_url, cancel_url, expires_at, description=""):
        if self.fail_create:
            raise RuntimeError("stripe down")
        ref = f"cs_test_{len(self.sessions) + 1}"
        self.sessions[ref] = {
            "amount": amount,
            "reservation_id": reservation_id,
            "customer_email": customer_email,
            "success_url": success_url,
            "expires_at": expires_at,
            "status": "unpaid",
        }
        return {"session_ref": ref, "redirect_url": f"https://checkout.stripe.test/{ref}"}

    def get_session_status(self, session_ref):
        self.status_calls += 1
        if self.fail_status:
            raise ConnectionError("stripe unreachable")
        return self.sessions.get(session_ref, {}).get("status", "unpaid")

    def expire_session(self, session_ref):
        if session_ref:
            self.expired.append(session_ref)
            if session_ref in self.sessions:
                self.sessions[session_ref]["status"] = "expired"
        return True

    def pay(self, session_ref):
        self.sessions.setdefault(session_ref, {})["status"] = "paid"


@pytest.fixture
def fake_stripe(monkeypatch) -> FakeStripe:
    fake = FakeStripe()
    monkeypatch.setattr("backend.payments.stripe_client.create_session", fake.create_session)
    monkeypatch.setattr("backend.payments.stripe_client.get_session_status", fake.get_session_status)
    monkeypatch.setattr("backend.payments.stripe_client.expire_session", fake.expire_session)
    return fake


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 5, 20, 10, 0, tzinfo=timezone.utc)


def _checkout_event(event_type: str, reservation_id: Optional[str], session_ref: str, payment_status: str = "paid") -> Dict[str, Any]:
    metadata = {"type": "client_reservation_deposit"}
    if reservation_id:
        metadata["reservation_id"] = reservation_id
    return {
        "id": "evt_test",
        "type": event_type,
        "data": {"object": {
            "id": session_ref,
            "object": "checkout.session",
            "payment_status": payment_status,
            "status": "expired" if event_type == "checkout.session.expired" else "complete",
            "metadata": metadata,
        }},
    }


@pytest.fixture
def checkout_event():
    """Fabrique d'événements Stripe Checkout (webhook) pour un acompte de réservation."""
    return _checkout_event
