from datetime import datetime, timedelta, timezone

import pytest

from app.domain.payments.schemas import (
    REASON_ALREADY_PROCESSED,
    REASON_NOT_FOUND,
    REASON_PROVIDER_ERROR,
)
from app.domain.payments.verifier import PaymentVerifier
from app.errors import ProviderError, ProviderUnavailable
from tests.conftest import completed_order

CONFIRMED_AT = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def verifier(storage, paypal):
    return PaymentVerifier(storage, paypal)


async def test_successful_payment_activates_one_month_from_confirmation(verifier, paypal, make_account):
    barber = make_account(
        email="lapsed@example.com",
        subscription_status="expired",
        subscription_expires=CONFIRMED_AT - timedelta(days=2),
    )
    paypal.orders["O-123"] = completed_order("O-123", email="other@example.com")

    result = await verifier.verify_payment("O-123", "lapsed@example.com", now=CONFIRMED_AT)

    assert result.success is True
    assert result.error_reason is None
    assert result.account.barber_id == barber.barber_id
    assert result.account.subscription_status == "active"
    assert result.account.subscription_expires == datetime(2026, 4, 10, 12, 0, tzinfo=timezone.utc)
    assert result.account.trial_ends_at is None
    assert result.account.paypal_customer_id == "PAYER123"


async def test_second_verification_is_already_processed_and_does_not_extend(verifier, paypal, storage, make_account):
    barber = make_account(email="twice@example.com")
    paypal.orders["O-1"] = completed_order("O-1")

    first = await verifier.verify_payment("O-1", "twice@example.com", now=CONFIRMED_AT)
    second = await verifier.verify_payment(
        "O-1", "twice@example.com", now=CONFIRMED_AT + timedelta(days=3)
    )

    assert first.success and second.success
    assert second.error_reason == REASON_ALREADY_PROCESSED
    assert second.already_processed is True
    stored = storage.get_account(barber.barber_id)
    assert stored.subscription_expires == first.account.subscription_expires
    # The ledger answers before PayPal is asked again
    assert paypal.order_calls == 1


async def test_unknown_order_is_not_found_and_leaves_account_untouched(verifier, storage, make_account):
    barber = make_account(email="nf@example.com")

    result = await verifier.verify_payment("O-missing", "nf@example.com", now=CONFIRMED_AT)

    assert result.success is False
    assert result.error_reason == REASON_NOT_FOUND
    assert storage.get_account(barber.barber_id) == barber
    assert storage.get_payment("O-missing") is None


async def test_pending_order_is_a_provider_error(verifier, paypal, make_account):
    make_account(email="pending@example.com")
    paypal.orders["O-2"] = {"id": "O-2", "status": "CREATED", "purchase_units": []}

    result = await verifier.verify_payment("O-2", "pending@example.com")

    assert result.success is False
    assert result.error_reason == REASON_PROVIDER_ERROR
    assert result.retryable is False


async def test_provider_outage_is_retryable(verifier, paypal, make_account):
    make_account(email="outage@example.com")
    paypal.failures["O-3"] = [ProviderUnavailable()]

    result = await verifier.verify_payment("O-3", "outage@example.com")

    assert result.error_reason == REASON_PROVIDER_ERROR
    assert result.retryable is True


async def test_provider_rejection_is_not_retryable(verifier, paypal):
    paypal.failures["O-4"] = [ProviderError("bad request")]

    result = await verifier.verify_payment("O-4")

    assert result.error_reason == REASON_PROVIDER_ERROR
    assert result.retryable is False


async def test_unknown_customer_email_is_not_found(verifier, paypal):
    paypal.orders["O-5"] = completed_order("O-5")

    result = await verifier.verify_payment("O-5", "nobody@example.com")

    assert result.success is False
    assert result.error_reason == REASON_NOT_FOUND


async def test_account_resolved_from_custom_id_then_payer_email(verifier, paypal, make_account):
    by_custom = make_account()
    by_payer = make_account(email="payer@example.com")
    paypal.orders["O-6"] = completed_order("O-6", custom_id=by_custom.barber_id)
    paypal.orders["O-7"] = completed_order("O-7", email="Payer@Example.com")

    first = await verifier.verify_payment("O-6")
    second = await verifier.verify_payment("O-7")

    assert first.account.barber_id == by_custom.barber_id
    assert second.account.barber_id == by_payer.barber_id


async def test_calendar_month_clamps_to_end_of_month(verifier, paypal, make_account):
    make_account(email="jan@example.com")
    paypal.orders["O-8"] = completed_order("O-8")
    confirmed = datetime(2026, 1, 31, 9, 0, tzinfo=timezone.utc)

    result = await verifier.verify_payment("O-8", "jan@example.com", now=confirmed)

    assert result.account.subscription_expires == datetime(2026, 2, 28, 9, 0, tzinfo=timezone.utc)
