from datetime import datetime, timedelta, timezone

import pytest

from app.errors import AlreadyProcessed, NotFound
from app.schemas import AppointmentRecord, PaymentRecord, ServiceRecord
from app.storage import build_storage


def appointment(barber_id, date="2026-03-20", time="10:00", status="confirmed", phone="600111222"):
    return AppointmentRecord(
        barber_id=barber_id,
        client_name="Luis",
        client_phone=phone,
        date=date,
        time=time,
        service="Corte de cabello",
        price=15.0,
        status=status,
    )


def test_timestamps_round_trip_as_aware_utc(storage, make_account):
    expires = datetime(2026, 5, 1, 8, 30, tzinfo=timezone(timedelta(hours=2)))
    barber = make_account(subscription_expires=expires)

    stored = storage.get_account(barber.barber_id)
    assert stored.subscription_expires == expires
    assert stored.subscription_expires.tzinfo is not None


def test_lookup_by_uid_and_email(storage, make_account):
    barber = make_account(email="lookup@example.com")

    assert storage.get_account_by_uid(barber.firebase_uid).barber_id == barber.barber_id
    assert storage.get_account_by_email(" Lookup@Example.com ").barber_id == barber.barber_id
    assert storage.get_account("BB_NOPE") is None


def test_update_unknown_account_or_field(storage, make_account):
    barber = make_account()

    with pytest.raises(NotFound):
        storage.update_account("BB_NOPE", name="x")
    with pytest.raises(ValueError):
        storage.update_account(barber.barber_id, not_a_field=1)


def test_expiring_and_expired_queries(storage, make_account, now):
    soon = make_account(subscription_expires=now + timedelta(days=2))
    make_account(subscription_expires=now + timedelta(days=30))
    lapsed = make_account(subscription_expires=now - timedelta(days=1))
    make_account(subscription_expires=now - timedelta(days=1), subscription_status="expired")

    expiring = storage.list_expiring_accounts(now, now + timedelta(days=5))
    expired = storage.list_expired_accounts(now)

    assert [a.barber_id for a in expiring] == [soon.barber_id]
    assert [a.barber_id for a in expired] == [lapsed.barber_id]


def test_services_ordered_and_filtered(storage, make_account):
    barber = make_account()
    storage.create_service(ServiceRecord(barber_id=barber.barber_id, name="B", price=10, order=2))
    hidden = storage.create_service(
        ServiceRecord(barber_id=barber.barber_id, name="A", price=5, order=1, is_active=False)
    )

    assert [s.name for s in storage.list_services(barber.barber_id)] == ["A", "B"]
    assert [s.name for s in storage.list_services(barber.barber_id, active_only=True)] == ["B"]
    assert hidden.id and hidden.created_at is not None


def test_slot_availability_ignores_cancelled(storage, make_account):
    barber = make_account()
    booked = storage.create_appointment(appointment(barber.barber_id))

    assert storage.is_slot_available(barber.barber_id, "2026-03-20", "10:00") is False
    storage.update_appointment_status(booked.id, "cancelled")
    assert storage.is_slot_available(barber.barber_id, "2026-03-20", "10:00") is True


def test_cleanup_deletes_only_older_appointments(storage, make_account):
    barber = make_account()
    storage.create_appointment(appointment(barber.barber_id, date="2025-08-01"))
    kept = storage.create_appointment(appointment(barber.barber_id, date="2025-10-01"))

    assert storage.cleanup_appointments_before("2025-09-10") == 1
    assert [a.id for a in storage.list_appointments(barber.barber_id)] == [kept.id]


def test_apply_payment_is_once_per_order(storage, make_account, now):
    barber = make_account()
    record = PaymentRecord(order_id="O-9", barber_id=barber.barber_id, confirmed_at=now)

    activated = storage.apply_payment(record, subscription_status="active")
    assert activated.subscription_status == "active"
    assert storage.get_payment("O-9").barber_id == barber.barber_id

    with pytest.raises(AlreadyProcessed):
        storage.apply_payment(record, subscription_status="active")


def test_apply_payment_for_unknown_barber(storage, now):
    with pytest.raises(NotFound):
        storage.apply_payment(PaymentRecord(order_id="O-10", barber_id="BB_NOPE", confirmed_at=now))
    assert storage.get_payment("O-10") is None


def test_build_storage_rejects_unknown_backend():
    with pytest.raises(ValueError):
        build_storage("mongo")
    with pytest.raises(ValueError):
        build_storage("firestore", firebase=None)
