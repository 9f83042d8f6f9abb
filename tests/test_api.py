from datetime import date, datetime, timedelta, timezone

import pytest

from app.config import PAYPAL_MAX_RETRIES
from app.errors import ProviderUnavailable
from app.schemas import ServiceRecord
from tests.conftest import completed_order


def future_date(days=3) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_subscription_status_endpoint(client, make_account):
    barber = make_account(subscription_expires=datetime.now(timezone.utc) + timedelta(days=2, hours=1))

    response = client.get(f"/subscriptions/status/{barber.barber_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["subscriptionStatus"] == "trial"
    assert body["daysUntilExpiry"] == 3
    assert body["isActive"] is True
    assert body["needsRenewal"] is True
    assert body["badge"] == "EXPIRA PRONTO"
    assert "subscriptionExpires" in body


def test_subscription_status_unknown_barber(client):
    response = client.get("/subscriptions/status/BB_NOPE")
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_verify_payment_endpoint_is_idempotent(client, paypal, make_account, storage):
    barber = make_account(email="pay@example.com")
    paypal.orders["O-123"] = completed_order("O-123")

    first = client.post("/paypal/verify-payment", json={"orderID": "O-123", "customerEmail": "pay@example.com"})
    expires = storage.get_account(barber.barber_id).subscription_expires
    second = client.post("/paypal/verify-payment", json={"orderID": "O-123", "customerEmail": "pay@example.com"})

    assert first.status_code == 200
    assert first.json()["success"] is True
    assert "error" not in first.json()
    assert second.json()["success"] is True
    assert second.json()["alreadyProcessed"] is True
    assert storage.get_account(barber.barber_id).subscription_expires == expires


def test_verify_payment_unknown_order(client, make_account):
    make_account(email="pay@example.com")

    response = client.post("/paypal/verify-payment", json={"orderID": "O-404", "customerEmail": "pay@example.com"})

    assert response.status_code == 404
    assert response.json()["success"] is False
    assert response.json()["error"]


def test_verify_payment_retries_transient_failures(client, paypal, make_account):
    make_account(email="retry@example.com")
    paypal.orders["O-R"] = completed_order("O-R")
    paypal.failures["O-R"] = [ProviderUnavailable()] * PAYPAL_MAX_RETRIES

    response = client.post("/paypal/verify-payment", json={"orderID": "O-R", "customerEmail": "retry@example.com"})

    assert response.status_code == 200
    assert paypal.order_calls == PAYPAL_MAX_RETRIES + 1


def test_verify_payment_gives_up_after_bounded_retries(client, paypal, make_account):
    make_account(email="down@example.com")
    paypal.failures["O-D"] = [ProviderUnavailable()] * (PAYPAL_MAX_RETRIES + 5)

    response = client.post("/paypal/verify-payment", json={"orderID": "O-D", "customerEmail": "down@example.com"})

    assert response.status_code == 502
    assert paypal.order_calls == PAYPAL_MAX_RETRIES + 1


def test_verify_payment_requires_order_id(client):
    assert client.post("/paypal/verify-payment", json={"customerEmail": "x@example.com"}).status_code == 422


def test_subscription_config(client, monkeypatch):
    from app.domain.payments import router as payments_router

    monkeypatch.setattr(payments_router, "PAYPAL_PLAN_ID", "P-PLAN")
    monkeypatch.setattr(payments_router, "PAYPAL_BUTTON_ID", "BTN-1")

    assert client.get("/paypal/subscription-config").json() == {"planId": "P-PLAN", "buttonId": "BTN-1"}

    monkeypatch.setattr(payments_router, "PAYPAL_PLAN_ID", None)
    assert client.get("/paypal/subscription-config").status_code == 503


def test_register_and_login(client, storage):
    response = client.post(
        "/auth/register",
        json={"name": "Ana", "shopName": "Barbería Ana", "email": "ana@example.com", "password": "secret123"},
    )
    assert response.status_code == 201
    barber_id = response.json()["account"]["barberId"]

    login = client.post("/auth/login", json={"email": "ana@example.com", "password": "secret123"})
    assert login.status_code == 200
    assert login.json()["account"]["barberId"] == barber_id
    assert login.json()["created"] is False

    again = client.post(
        "/auth/register",
        json={"name": "Ana", "shopName": "Otra", "email": "ana@example.com", "password": "secret123"},
    )
    assert again.status_code == 409
    assert again.json()["code"] == "email_in_use"
    assert len(storage.list_accounts()) == 1


def test_login_with_bad_password(client, identity_provider):
    identity_provider.add_user("uid-x", "x@example.com", password="right-one")
    response = client.post("/auth/login", json={"email": "x@example.com", "password": "wrong"})
    assert response.status_code == 401
    assert response.json()["code"] == "invalid_credentials"


def test_me_requires_bearer_token(client):
    assert client.get("/barbers/me").status_code in (401, 403)
    assert client.get("/barbers/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401
    assert client.get("/barbers/me", headers={"Authorization": "Bearer a.b.c"}).status_code == 401


def test_me_and_settings(client, make_account, auth_headers):
    barber = make_account()
    headers = auth_headers(barber)

    assert client.get("/barbers/me", headers=headers).json()["barberId"] == barber.barber_id

    response = client.put("/barbers/me/settings", headers=headers, json={"startTime": "08:00", "hasBreak": True})
    assert response.status_code == 200
    assert response.json()["startTime"] == "08:00"

    invalid = client.put("/barbers/me/settings", headers=headers, json={"startTime": "8am"})
    assert invalid.status_code == 422


def test_public_profile(client, make_account, storage):
    barber = make_account()
    storage.create_service(ServiceRecord(barber_id=barber.barber_id, name="Corte", price=15))

    body = client.get(f"/barbers/{barber.barber_id}").json()

    assert body["acceptingBookings"] is True
    assert [s["name"] for s in body["services"]] == ["Corte"]


def test_catalog_crud(client, make_account, auth_headers):
    barber = make_account()
    headers = auth_headers(barber)

    created = client.post("/services", headers=headers, json={"name": "Corte", "price": 12, "duration": 30})
    assert created.status_code == 201
    service_id = created.json()["id"]

    updated = client.put(f"/services/{service_id}", headers=headers, json={"price": 14})
    assert updated.json()["price"] == 14

    client.delete(f"/services/{service_id}", headers=headers)
    assert client.get(f"/services/{barber.barber_id}").json() == []
    assert len(client.get("/services/me/all", headers=headers).json()) == 1


def test_expired_barber_is_blocked_from_dashboard_routes(client, make_account, auth_headers):
    barber = make_account(subscription_expires=datetime.now(timezone.utc) - timedelta(days=1))

    response = client.get("/services/me/all", headers=auth_headers(barber))

    assert response.status_code == 403
    assert response.headers["X-Subscription-Required"] == "true"
    assert response.json()["code"] == "subscription_required"


def test_booking_flow(client, make_account, auth_headers):
    barber = make_account()
    payload = {
        "barberId": barber.barber_id,
        "clientName": "Pablo",
        "clientPhone": "600 123 456",
        "date": future_date(),
        "time": "11:00",
        "service": "Corte de cabello",
        "price": 15,
    }

    booked = client.post("/appointments", json=payload)
    assert booked.status_code == 201
    appointment_id = booked.json()["id"]

    assert client.post("/appointments", json=payload).status_code == 409

    headers = auth_headers(barber)
    agenda = client.get(f"/appointments/me?date={payload['date']}", headers=headers).json()
    assert [a["id"] for a in agenda] == [appointment_id]

    assert client.get("/client-appointments/600123456").json()[0]["id"] == appointment_id

    cancelled = client.put(f"/appointments/{appointment_id}/cancel", headers=headers)
    assert cancelled.json()["status"] == "cancelled"

    assert client.delete(f"/appointments/{appointment_id}", headers=headers).status_code == 200
    assert client.get("/appointments/me", headers=headers).json() == []


def test_booking_outside_hours(client, make_account):
    barber = make_account()
    response = client.post(
        "/appointments",
        json={
            "barberId": barber.barber_id,
            "clientName": "Pablo",
            "clientPhone": "600123456",
            "date": future_date(),
            "time": "20:00",
            "service": "Corte",
            "price": 15,
        },
    )
    assert response.status_code == 400
    assert response.json()["code"] == "booking_rejected"


def test_webhook_applies_order_once(client, paypal, make_account, storage):
    barber = make_account()
    paypal.orders["O-W"] = completed_order("O-W", custom_id=barber.barber_id)
    event = {"id": "WH-1", "event_type": "CHECKOUT.ORDER.APPROVED", "resource": {"id": "O-W"}}

    first = client.post("/paypal/webhook", json=event)
    second = client.post("/paypal/webhook", json=event)

    assert first.json()["status"] == "processed"
    assert second.json()["status"] == "already_processed"
    assert storage.get_account(barber.barber_id).subscription_status == "active"
    assert paypal.order_calls == 1


def test_webhook_rejects_bad_signature(client, paypal):
    paypal.signature_valid = False
    assert client.post("/paypal/webhook", json={"id": "WH-2"}).status_code == 401


def test_webhook_asks_for_redelivery_on_outage(client, paypal, make_account):
    make_account()
    paypal.failures["O-X"] = [ProviderUnavailable()]
    event = {"id": "WH-3", "event_type": "CHECKOUT.ORDER.COMPLETED", "resource": {"id": "O-X"}}

    assert client.post("/paypal/webhook", json=event).status_code == 503


@pytest.mark.parametrize("event_type", ["BILLING.SUBSCRIPTION.CANCELLED", "BILLING.SUBSCRIPTION.SUSPENDED"])
def test_webhook_subscription_end(client, make_account, storage, event_type):
    barber = make_account(subscription_status="active", paypal_subscription_id="I-SUB")
    event = {
        "id": f"WH-{event_type}",
        "event_type": event_type,
        "resource": {"id": "I-SUB", "custom_id": barber.barber_id, "status": event_type.rsplit(".", 1)[-1]},
    }

    assert client.post("/paypal/webhook", json=event).json()["status"] == "processed"
    assert storage.get_account(barber.barber_id).subscription_status == "expired"


def test_public_slots_show_times_without_client_details(client, make_account):
    barber = make_account()
    day = future_date()
    for time in ("12:00", "10:00"):
        client.post(
            "/appointments",
            json={
                "barberId": barber.barber_id,
                "clientName": "Pablo",
                "clientPhone": "600123456",
                "date": day,
                "time": time,
                "service": "Corte",
                "price": 15,
            },
        )

    response = client.get(f"/appointments/{barber.barber_id}/slots", params={"date": day})

    assert response.status_code == 200
    assert response.json() == {"barberId": barber.barber_id, "date": day, "takenTimes": ["10:00", "12:00"]}
    assert client.get(f"/appointments/{barber.barber_id}/slots").status_code == 422
    assert client.get("/appointments/BB_NOPE/slots", params={"date": day}).status_code == 404


@pytest.fixture
def admin_emails(monkeypatch):
    from app import auth

    emails = set()
    monkeypatch.setattr(auth, "ADMIN_EMAILS", emails)
    return emails


def test_fleet_endpoints_are_admin_only(client, make_account, auth_headers, admin_emails):
    barber = make_account()
    headers = auth_headers(barber)

    assert client.post("/subscriptions/check", headers=headers).status_code == 403
    assert client.get("/subscriptions/expiring", headers=headers).status_code == 403
    assert client.post("/paypal/sync-all", headers=headers).status_code == 403

    admin_emails.add(barber.email)
    assert client.post("/subscriptions/check", headers=headers).status_code == 200


def test_expiring_subscriptions(client, make_account, auth_headers, admin_emails):
    admin = make_account(email="admin@example.com", subscription_expires=datetime.now(timezone.utc) + timedelta(days=60))
    admin_emails.add(admin.email)
    soon = make_account(subscription_expires=datetime.now(timezone.utc) + timedelta(days=2, hours=1))

    body = client.get("/subscriptions/expiring", params={"days": 7}, headers=auth_headers(admin)).json()

    assert body["count"] == 1
    assert body["subscriptions"][0]["barberId"] == soon.barber_id
    assert body["subscriptions"][0]["daysLeft"] == 3
    assert body["subscriptions"][0]["shopName"] == soon.shop_name


def test_sync_all_is_queued_on_the_worker(client, make_account, auth_headers, admin_emails, monkeypatch):
    from app.domain.payments import router as payments_router

    queued = []

    async def fake_enqueue(function, *args):
        queued.append(function)
        return "job-1"

    monkeypatch.setattr(payments_router, "enqueue_job", fake_enqueue)
    admin = make_account()
    admin_emails.add(admin.email)

    response = client.post("/paypal/sync-all", headers=auth_headers(admin))

    assert response.status_code == 202
    assert response.json() == {"status": "queued", "jobId": "job-1"}
    assert queued == ["sync_paypal_subscriptions_task"]


def test_activate_subscription(client, paypal, make_account, auth_headers, storage):
    barber = make_account()
    other = make_account()
    paypal.subscriptions["I-APPROVED"] = {"status": "APPROVED"}
    body = {"barberId": barber.barber_id, "paypalSubscriptionId": "I-APPROVED"}

    assert client.post("/subscriptions/activate", json=body, headers=auth_headers(other)).status_code == 403

    response = client.post("/subscriptions/activate", json=body, headers=auth_headers(barber))

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["subscriptionId"] == "I-APPROVED"
    stored = storage.get_account(barber.barber_id)
    assert (stored.subscription_status, stored.paypal_subscription_id) == ("active", "I-APPROVED")

    missing = {"barberId": barber.barber_id, "paypalSubscriptionId": " "}
    assert client.post("/subscriptions/activate", json=missing, headers=auth_headers(barber)).status_code == 422


def test_paypal_checkout_order_flow(client, paypal, make_account, auth_headers, storage):
    barber = make_account(subscription_expires=datetime.now(timezone.utc) - timedelta(days=2))
    headers = auth_headers(barber)

    created = client.post("/paypal/order", json={"amount": 9.99, "currency": "eur"}, headers=headers)
    assert created.status_code == 200
    order_id = created.json()["id"]
    assert paypal.created_orders[0]["custom_id"] == barber.barber_id
    assert paypal.created_orders[0]["amount"] == "9.99"
    assert paypal.created_orders[0]["currency"] == "EUR"

    paypal.orders[order_id] = completed_order(order_id, custom_id=barber.barber_id)
    captured = client.post(f"/paypal/order/{order_id}/capture", headers=headers)

    assert captured.status_code == 200
    assert captured.json()["subscriptionActivated"] is True
    assert captured.json()["barberId"] == barber.barber_id
    assert storage.get_account(barber.barber_id).subscription_status == "active"
    assert storage.get_payment(order_id) is not None


@pytest.mark.parametrize("amount", [0, -5, "abc", "NaN"])
def test_paypal_order_rejects_bad_amounts(client, make_account, auth_headers, amount):
    barber = make_account()
    response = client.post("/paypal/order", json={"amount": amount}, headers=auth_headers(barber))
    assert response.status_code == 422


def test_paypal_setup(client, paypal):
    assert client.get("/paypal/setup").json() == {"clientToken": "client-token-123"}

    paypal.available = False
    assert client.get("/paypal/setup").status_code == 503
