from datetime import datetime, timedelta, timezone

import pytest

from backend.utils.timespan import to_utc_iso


@pytest.fixture
def deliver(client, monkeypatch):
    """Poste un événement au webhook en contournant la vérification de signature."""

    def _deliver(event):
        async def fake_parse_event(request):
            return event

        monkeypatch.setattr("backend.payments.stripe_client.parse_event", fake_parse_event)
        return client.post("/api/v1/payments/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=test"})

    return _deliver


def _awaiting(store):
    hold = datetime.now(timezone.utc) + timedelta(minutes=30)
    return store.add(status="AWAITING_PAYMENT", stripe_session_id="cs_test_hold", hold_expires_at=to_utc_iso(hold))


def test_webhook_completed_marks_paid_once(store, deliver, checkout_event):
    row = _awaiting(store)
    event = checkout_event("checkout.session.completed", row["id"], "cs_test_hold")

    r = deliver(event)
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.json()["reservation_status"] == "PAID"
    assert store.rows[row["id"]]["status"] == "PAID"

    # Relivraison Stripe: aucun second effet
    again = deliver(event)
    assert again.status_code == 200
    assert again.json()["changed"] is False
    assert len(store.payments) == 1
    assert store.payments[0]["source"] == "webhook"


def test_webhook_async_payment_succeeded(store, deliver, checkout_event):
    row = _awaiting(store)
    r = deliver(checkout_event("checkout.session.async_payment_succeeded", row["id"], "cs_test_hold"))
    assert r.json()["reservation_status"] == "PAID"


def test_webhook_expired_event(store, deliver, checkout_event):
    row = _awaiting(store)
    r = deliver(checkout_event("checkout.session.expired", row["id"], "cs_test_hold", payment_status="unpaid"))
    assert r.status_code == 200
    assert store.rows[row["id"]]["status"] == "EXPIRED"


def test_webhook_ignores_other_events(store, deliver, checkout_event):
    r = deliver(checkout_event("payment_intent.created", "res-x", "cs_x"))
    assert r.status_code == 200
    assert r.json()["status"] == "ignored"


def test_webhook_invalid_signature_400(client, monkeypatch):
    async def bad_parse_event(request):
        raise ValueError("No signatures found matching the expected signature for payload")

    monkeypatch.setattr("backend.payments.stripe_client.parse_event", bad_parse_event)
    r = client.post("/api/v1/payments/webhook", content=b"{}")
    assert r.status_code == 400


def test_webhook_processing_error_500(store, deliver, checkout_event, monkeypatch):
    def boom(event):
        raise RuntimeError("db down")

    monkeypatch.setattr("backend.reservations.service.handle_payment_event", boom)
    r = deliver(checkout_event("checkout.session.completed", "res-1", "cs_test_hold"))
    assert r.status_code == 500
