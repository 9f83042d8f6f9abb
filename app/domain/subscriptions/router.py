"""Subscriptions router - status lookups, PayPal activation and admin monitoring"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from ...auth import get_current_admin, get_current_barber
from ...dependencies import get_notifier, get_paypal_client, get_storage
from ...schemas import BarberAccount
from ...storage.base import StorageBackend
from ..payments.paypal_client import PayPalClient
from ..payments.subscription_sync import SubscriptionSync
from .notifications import NotificationService
from .schemas import (
    ActivateSubscriptionRequest,
    ActivateSubscriptionResponse,
    ExpiringSubscriptions,
    MonitorSummary,
    SubscriptionView,
)
from .service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


def get_subscription_service(
    storage: StorageBackend = Depends(get_storage),
    notifier: NotificationService = Depends(get_notifier),
) -> SubscriptionService:
    """Dependency injection for SubscriptionService"""
    return SubscriptionService(storage, notifier)


@router.get("/status/{barber_id}", response_model=SubscriptionView)
async def get_subscription_status(
    barber_id: str,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Subscription status, days left and renewal prompt for a barber"""
    return service.get_status(barber_id)


@router.post("/activate", response_model=ActivateSubscriptionResponse)
async def activate_subscription(
    body: ActivateSubscriptionRequest,
    barber: BarberAccount = Depends(get_current_barber),
    storage: StorageBackend = Depends(get_storage),
    paypal: PayPalClient = Depends(get_paypal_client),
):
    """Attach the PayPal subscription approved on the checkout page to the signed-in barber"""
    if barber.barber_id != body.barber_id:
        raise HTTPException(status_code=403, detail="No autorizado")

    account = await SubscriptionSync(storage, paypal).activate(body.barber_id, body.paypal_subscription_id)
    return ActivateSubscriptionResponse(
        subscription_id=body.paypal_subscription_id,
        subscription_expires=account.subscription_expires,
    )


@router.get("/expiring", response_model=ExpiringSubscriptions)
async def list_expiring_subscriptions(
    days: int = Query(default=7, ge=1, le=90),
    admin: BarberAccount = Depends(get_current_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return service.list_expiring(days)


@router.post("/check", response_model=MonitorSummary)
async def run_subscription_check(
    admin: BarberAccount = Depends(get_current_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Run the renewal reminder / expiry pass now instead of waiting for the worker"""
    logger.info(f"🔄 Manual subscription check requested by {admin.barber_id}")
    return await service.run_monitor()
