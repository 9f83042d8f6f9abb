"""Subscription service - status lookups, access gating and the periodic monitor"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from ...config import NOTIFICATION_INTERVAL_HOURS, RENEWAL_WINDOW_DAYS
from ...errors import NotFound, SubscriptionRequired
from ...schemas import BarberAccount
from ...shared.dates import utcnow
from ...storage.base import StorageBackend
from .evaluator import evaluate
from .notifications import NotificationService, build_renewal_notice
from .schemas import ExpiringSubscription, ExpiringSubscriptions, MonitorSummary, SubscriptionView

logger = logging.getLogger(__name__)


class SubscriptionService:
    """Service for subscription status and renewal reminders"""

    def __init__(
        self,
        storage: StorageBackend,
        notifier: Optional[NotificationService] = None,
        renewal_window_days: int = RENEWAL_WINDOW_DAYS,
        notification_interval: timedelta = timedelta(hours=NOTIFICATION_INTERVAL_HOURS),
    ):
        self.storage = storage
        self.notifier = notifier or NotificationService()
        self.renewal_window_days = renewal_window_days
        self.notification_interval = notification_interval

    def evaluate(self, account: BarberAccount, now: Optional[datetime] = None) -> SubscriptionView:
        return evaluate(account, now or utcnow(), self.renewal_window_days)

    def get_status(self, barber_id: str, now: Optional[datetime] = None) -> SubscriptionView:
        account = self.storage.get_account(barber_id)
        if not account:
            raise NotFound("Barbero no encontrado")
        return self.evaluate(account, now)

    def require_active(self, account: BarberAccount, now: Optional[datetime] = None) -> SubscriptionView:
        view = self.evaluate(account, now)
        if not view.is_active:
            logger.warning(f"⚠️ Barber {account.barber_id} attempted gated access with an expired subscription")
            raise SubscriptionRequired()
        return view

    def list_expiring(self, days: int, now: Optional[datetime] = None) -> ExpiringSubscriptions:
        """Trial and active accounts whose subscription ends within `days` days"""
        now = now or utcnow()
        accounts = self.storage.list_expiring_accounts(now, now + timedelta(days=days))
        subscriptions = [
            ExpiringSubscription(
                barber_id=account.barber_id,
                email=account.email,
                shop_name=account.shop_name,
                subscription_expires=account.subscription_expires,
                days_left=self.evaluate(account, now).days_until_expiry,
            )
            for account in sorted(accounts, key=lambda a: a.subscription_expires)
        ]
        return ExpiringSubscriptions(count=len(subscriptions), subscriptions=subscriptions)

    def _should_notify(self, account: BarberAccount, now: datetime, notification_type: str) -> bool:
        if account.last_notification_sent is None:
            return True
        if account.last_notification_type != notification_type:
            return True
        return now - account.last_notification_sent >= self.notification_interval

    async def _notify(self, account: BarberAccount, now: datetime) -> bool:
        view = self.evaluate(account, now)
        notice = build_renewal_notice(account, view.days_until_expiry if view.is_active else 0)
        if not self._should_notify(account, now, notice.notification_type):
            return False
        if not await self.notifier.send_renewal_notice(account, notice):
            return False
        self.storage.update_account(
            account.barber_id,
            last_notification_sent=now,
            last_notification_type=notice.notification_type,
        )
        return True

    async def run_monitor(self, now: Optional[datetime] = None) -> MonitorSummary:
        """
        Remind barbers whose subscription ends within the renewal window and mark lapsed ones expired.

        Reminders go out at most once per notification interval per notice type. A failure on one
        account is logged and counted; the run continues with the rest.
        """
        now = now or utcnow()
        summary = MonitorSummary()

        expiring = self.storage.list_expiring_accounts(
            now, now + timedelta(days=self.renewal_window_days)
        )
        for account in expiring:
            summary.checked += 1
            try:
                if await self._notify(account, now):
                    summary.notified += 1
            except Exception as e:
                summary.errors += 1
                logger.error(f"❌ Renewal reminder failed for barber {account.barber_id}: {e}")

        for account in self.storage.list_expired_accounts(now):
            summary.checked += 1
            try:
                self.storage.update_account(account.barber_id, subscription_status="expired")
                summary.expired += 1
                logger.info(f"🔄 Barber {account.barber_id} subscription marked as expired")
                if await self._notify(account, now):
                    summary.notified += 1
            except Exception as e:
                summary.errors += 1
                logger.error(f"❌ Failed to expire subscription for barber {account.barber_id}: {e}")

        logger.info(
            f"✅ Subscription check complete: {summary.notified} notified, "
            f"{summary.expired} expired, {summary.errors} errors"
        )
        return summary
