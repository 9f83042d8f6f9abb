"""PayPal webhook processing"""

import logging
from typing import Optional

from ...cache import Cache
from ...schemas import BarberAccount
from ...storage.base import StorageBackend
from .paypal_client import map_subscription_status
from .schemas import WebhookResponse
from .subscription_sync import SubscriptionSync
from .verifier import PaymentVerifier

logger = logging.getLogger(__name__)

ORDER_EVENTS = {"CHECKOUT.ORDER.COMPLETED", "CHECKOUT.ORDER.APPROVED"}
CAPTURE_EVENTS = {"PAYMENT.CAPTURE.COMPLETED"}
SUBSCRIPTION_ACTIVATED = "BILLING.SUBSCRIPTION.ACTIVATED"
SUBSCRIPTION_ENDED_EVENTS = {
    "BILLING.SUBSCRIPTION.CANCELLED",
    "BILLING.SUBSCRIPTION.SUSPENDED",
    "BILLING.SUBSCRIPTION.EXPIRED",
}

# Processed event ids are remembered for 24 hours
PROCESSED_EVENT_TTL = 86400


def capture_order_id(capture: dict) -> Optional[str]:
    related = (capture.get("supplementary_data") or {}).get("related_ids") or {}
    return related.get("order_id")


class PayPalWebhookService:
    def __init__(
        self,
        storage: StorageBackend,
        verifier: PaymentVerifier,
        sync: SubscriptionSync,
        cache: Cache,
    ):
        self.storage = storage
        self.verifier = verifier
        self.sync = sync
        self.cache = cache

    def _subscription_account(self, subscription: dict) -> Optional[BarberAccount]:
        barber_id = subscription.get("custom_id")
        if barber_id:
            account = self.storage.get_account(barber_id)
            if account:
                return account
        email = (subscription.get("subscriber") or {}).get("email_address")
        if email:
            return self.storage.get_account_by_email(email)
        return None

    async def handle_event(self, event: dict) -> WebhookResponse:
        event_id = event.get("id") or "unknown"
        event_type = event.get("event_type")
        resource = event.get("resource") or {}

        idempotency_key = f"webhook_processed:{event_id}"
        if self.cache.get(idempotency_key):
            logger.info(f"🔄 Webhook {event_id} already processed, skipping (idempotency)")
            return WebhookResponse(status="already_processed", event_type=event_type)

        logger.info(f"🔔 PayPal webhook received id={event_id} type={event_type}")

        if event_type in ORDER_EVENTS or event_type in CAPTURE_EVENTS:
            order_id = resource.get("id") if event_type in ORDER_EVENTS else capture_order_id(resource)
            if not order_id:
                logger.warning(f"⚠️ Webhook {event_id} has no order id; skipping")
                return WebhookResponse(status="ignored", event_type=event_type)
            result = await self.verifier.verify_payment(order_id)
            if not result.success:
                logger.warning(f"⚠️ Webhook {event_id} payment not applied: {result.error_reason} {result.error}")
                if result.retryable:
                    # Leave the event unmarked so PayPal's redelivery can retry it
                    return WebhookResponse(status="retry", event_type=event_type)

        elif event_type == SUBSCRIPTION_ACTIVATED:
            account = self._subscription_account(resource)
            if not account:
                logger.warning(f"❌ No barber found for subscription {resource.get('id')}; skipping")
            else:
                self.storage.update_account(account.barber_id, paypal_subscription_id=resource.get("id"))
                await self.sync.sync_barber(account.barber_id)

        elif event_type in SUBSCRIPTION_ENDED_EVENTS:
            account = self._subscription_account(resource)
            if account:
                status = map_subscription_status(resource.get("status") or event_type.rsplit(".", 1)[-1])
                self.storage.update_account(account.barber_id, subscription_status=status)
                logger.info(f"🔄 Barber {account.barber_id} subscription set to {status} by webhook")

        else:
            logger.info(f"ℹ️ Ignoring PayPal webhook type {event_type}")
            return WebhookResponse(status="ignored", event_type=event_type)

        self.cache.set(idempotency_key, True, ttl=PROCESSED_EVENT_TTL)
        return WebhookResponse(status="processed", event_type=event_type)
