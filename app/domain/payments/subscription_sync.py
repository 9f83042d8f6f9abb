"""Reconcile stored subscription state with PayPal billing subscriptions"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from ...errors import BarberAppError, NotFound, ProviderError
from ...schemas import BarberAccount
from ...shared.dates import add_months, parse_instant, utcnow
from ...storage.base import StorageBackend
from .paypal_client import PayPalClient, map_subscription_status
from .schemas import SyncAllResponse, SyncResponse

logger = logging.getLogger(__name__)


class SubscriptionSync:
    def __init__(self, storage: StorageBackend, paypal: PayPalClient, pause_seconds: float = 1.0):
        self.storage = storage
        self.paypal = paypal
        # Spacing between PayPal calls in sync_all
        self.pause_seconds = pause_seconds

    async def sync_barber(self, barber_id: str) -> SyncResponse:
        """Pull the PayPal subscription of one barber; unchanged states are not rewritten"""
        account = self.storage.get_account(barber_id)
        if not account:
            raise NotFound("Barbero no encontrado")
        if not account.paypal_subscription_id:
            logger.info(f"ℹ️ Barber {barber_id} has no PayPal subscription")
            return SyncResponse(barber_id=barber_id, synced=False, subscription_status=account.subscription_status)

        subscription = await self.paypal.get_subscription(account.paypal_subscription_id)
        new_status = map_subscription_status(subscription.get("status"))

        updates = {}
        if new_status != account.subscription_status:
            logger.info(f"🔄 Updating {barber_id}: {account.subscription_status} → {new_status}")
            updates["subscription_status"] = new_status

        next_billing: Optional[str] = (subscription.get("billing_info") or {}).get("next_billing_time")
        if new_status == "active" and next_billing:
            try:
                expires = parse_instant(next_billing)
            except ValueError:
                logger.warning(f"⚠️ Unparseable next_billing_time for {barber_id}: {next_billing}")
            else:
                if expires != account.subscription_expires:
                    updates["subscription_expires"] = expires
                    updates["trial_ends_at"] = None

        if updates:
            account = self.storage.update_account(barber_id, **updates)
            logger.info(f"✅ Subscription synced for {barber_id}: {account.subscription_status}")
        else:
            logger.info(f"ℹ️ No changes for {barber_id}: already {account.subscription_status}")
        return SyncResponse(barber_id=barber_id, synced=True, subscription_status=account.subscription_status)

    async def activate(
        self, barber_id: str, subscription_id: str, now: Optional[datetime] = None
    ) -> BarberAccount:
        """
        Attach an approved PayPal subscription to a barber and start a paid month.

        The subscription must exist at PayPal in an active or approved state and, when PayPal
        carries a custom_id, it must name this barber. Expiry follows next_billing_time when
        PayPal already knows it, otherwise one calendar month from now.
        """
        now = now or utcnow()
        account = self.storage.get_account(barber_id)
        if not account:
            raise NotFound("Barbero no encontrado")

        subscription = await self.paypal.get_subscription(subscription_id)
        status = map_subscription_status(subscription.get("status"))
        if status == "expired":
            logger.warning(f"⚠️ PayPal subscription {subscription_id} is {subscription.get('status')}, not activating")
            raise ProviderError("La suscripción de PayPal no está activa")
        owner = subscription.get("custom_id")
        if owner and owner != barber_id:
            logger.warning(f"🚫 PayPal subscription {subscription_id} belongs to {owner}, not {barber_id}")
            raise NotFound("Suscripción no encontrada")

        expires = add_months(now, 1)
        next_billing = (subscription.get("billing_info") or {}).get("next_billing_time")
        if next_billing:
            try:
                expires = parse_instant(next_billing)
            except ValueError:
                logger.warning(f"⚠️ Unparseable next_billing_time for {barber_id}: {next_billing}")

        account = self.storage.update_account(
            barber_id,
            subscription_status="active",
            paypal_subscription_id=subscription_id,
            subscription_expires=expires,
            trial_ends_at=None,
            last_notification_sent=None,
            last_notification_type=None,
        )
        logger.info(f"✅ Monthly subscription {subscription_id} activated for {barber_id}, expires {expires.date()}")
        return account

    async def sync_all(self) -> SyncAllResponse:
        """Sync every non-trial barber that has a PayPal subscription id"""
        candidates = [
            a
            for a in self.storage.list_accounts()
            if a.paypal_subscription_id and a.subscription_status != "trial"
        ]
        logger.info(f"🔄 Syncing {len(candidates)} PayPal subscriptions")

        synced = failed = 0
        for index, account in enumerate(candidates):
            if index and self.pause_seconds:
                await asyncio.sleep(self.pause_seconds)
            try:
                result = await self.sync_barber(account.barber_id)
                synced += 1 if result.synced else 0
            except BarberAppError as e:
                failed += 1
                logger.error(f"❌ Sync failed for {account.barber_id}: {e.message}")

        logger.info(f"✅ PayPal sync complete: {synced}/{len(candidates)} synced, {failed} failed")
        return SyncAllResponse(checked=len(candidates), synced=synced, failed=failed)
