from datetime import timedelta

import pytest

from app.domain.subscriptions.notifications import build_renewal_notice
from app.domain.subscriptions.service import SubscriptionService
from app.errors import NotFound, SubscriptionRequired


@pytest.fixture
def service(storage, notifier):
    return SubscriptionService(storage, notifier, renewal_window_days=5)


async def test_monitor_reminds_expiring_and_expires_lapsed(service, storage, notifier, make_account, now):
    expiring = make_account(subscription_expires=now + timedelta(days=2))
    make_account(subscription_expires=now + timedelta(days=20))
    lapsed = make_account(subscription_expires=now - timedelta(hours=3), subscription_status="active")

    summary = await service.run_monitor(now)

    assert (summary.checked, summary.notified, summary.expired, summary.errors) == (2, 2, 1, 0)
    assert sorted(notifier.sent) == sorted(
        [(expiring.barber_id, "expiring_soon"), (lapsed.barber_id, "expired")]
    )
    assert storage.get_account(lapsed.barber_id).subscription_status == "expired"
    assert storage.get_account(expiring.barber_id).last_notification_type == "expiring_soon"


async def test_reminder_sent_once_per_interval(service, notifier, make_account, now):
    make_account(subscription_expires=now + timedelta(days=3))

    await service.run_monitor(now)
    await service.run_monitor(now + timedelta(hours=6))
    assert len(notifier.sent) == 1

    await service.run_monitor(now + timedelta(hours=25))
    assert len(notifier.sent) == 2


async def test_one_failing_account_does_not_stop_the_run(service, storage, notifier, make_account, now, monkeypatch):
    broken = make_account(subscription_expires=now + timedelta(days=1))
    healthy = make_account(subscription_expires=now + timedelta(days=2))
    real_update = storage.update_account

    def update_account(barber_id, **fields):
        if barber_id == broken.barber_id:
            raise RuntimeError("database is locked")
        return real_update(barber_id, **fields)

    monkeypatch.setattr(storage, "update_account", update_account)

    summary = await service.run_monitor(now)

    assert summary.errors == 1
    assert summary.notified == 1
    assert storage.get_account(healthy.barber_id).last_notification_type == "expiring_soon"


def test_get_status_and_gate(service, make_account, now):
    barber = make_account(subscription_expires=now + timedelta(days=1))

    assert service.get_status(barber.barber_id, now).days_until_expiry == 1
    assert service.require_active(barber, now).is_active is True
    with pytest.raises(SubscriptionRequired):
        service.require_active(barber, now + timedelta(days=2))
    with pytest.raises(NotFound):
        service.get_status("BB_NOPE", now)


def test_renewal_notice_texts(make_account):
    barber = make_account(name="Pedro", shop_name="Barbería Pedro")

    assert build_renewal_notice(barber, 0).notification_type == "expired"
    tomorrow = build_renewal_notice(barber, 1)
    assert "mañana" in tomorrow.message
    assert tomorrow.subject.endswith("1 día")
    assert "3 días" in build_renewal_notice(barber, 3).subject


def test_list_expiring_reports_days_left(service, make_account, now):
    soon = make_account(subscription_expires=now + timedelta(days=2, hours=1))
    later = make_account(subscription_expires=now + timedelta(days=6), subscription_status="active")
    make_account(subscription_expires=now + timedelta(days=30))
    make_account(subscription_expires=now + timedelta(days=1), subscription_status="cancelled")

    result = service.list_expiring(7, now=now)

    assert result.count == 2
    assert [(s.barber_id, s.days_left) for s in result.subscriptions] == [
        (soon.barber_id, 3),
        (later.barber_id, 6),
    ]
