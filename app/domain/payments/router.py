"""Payments router - PayPal checkout orders, verification, subscription config, sync and webhooks"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from ...auth import get_current_admin, get_current_barber
from ...cache import Cache
from ...config import PAYPAL_BUTTON_ID, PAYPAL_MAX_RETRIES, PAYPAL_PLAN_ID
from ...dependencies import get_cache, get_paypal_client, get_storage
from ...rate_limiter import create_rate_limiter
from ...schemas import BarberAccount
from ...storage.base import StorageBackend
from ...worker import enqueue_job
from .paypal_client import PayPalClient
from .schemas import (
    REASON_NOT_FOUND,
    CaptureOrderResponse,
    CreateOrderRequest,
    JobQueuedResponse,
    PayPalSetupResponse,
    SubscriptionConfigResponse,
    SyncResponse,
    VerificationResult,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookResponse,
)
from .subscription_sync import SubscriptionSync
from .verifier import PaymentVerifier
from .webhooks import PayPalWebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/paypal", tags=["PayPal"])

rate_limit_verify = create_rate_limiter(limit=30, window_seconds=60, key_prefix="paypal_verify")
rate_limit_webhook = create_rate_limiter(limit=100, window_seconds=60, key_prefix="paypal_webhook", use_ip=False)


def get_payment_verifier(
    storage: StorageBackend = Depends(get_storage),
    paypal: PayPalClient = Depends(get_paypal_client),
) -> PaymentVerifier:
    """Dependency injection for PaymentVerifier"""
    return PaymentVerifier(storage, paypal)


def get_subscription_sync(
    storage: StorageBackend = Depends(get_storage),
    paypal: PayPalClient = Depends(get_paypal_client),
) -> SubscriptionSync:
    return SubscriptionSync(storage, paypal)


def get_webhook_service(
    storage: StorageBackend = Depends(get_storage),
    verifier: PaymentVerifier = Depends(get_payment_verifier),
    sync: SubscriptionSync = Depends(get_subscription_sync),
    cache: Cache = Depends(get_cache),
) -> PayPalWebhookService:
    return PayPalWebhookService(storage, verifier, sync, cache)


async def verify_with_retries(
    verifier: PaymentVerifier, body: VerifyPaymentRequest, max_retries: int = PAYPAL_MAX_RETRIES
) -> VerificationResult:
    """Retry transient provider failures a bounded number of times"""
    result = await verifier.verify_payment(body.order_id, body.customer_email)
    attempt = 0
    while result.retryable and attempt < max_retries:
        attempt += 1
        logger.warning(f"⚠️ Retrying PayPal verification for {body.order_id} ({attempt}/{max_retries})")
        result = await verifier.verify_payment(body.order_id, body.customer_email)
    return result


@router.post("/verify-payment", response_model=VerifyPaymentResponse, response_model_exclude_none=True)
async def verify_payment(
    body: VerifyPaymentRequest,
    verifier: PaymentVerifier = Depends(get_payment_verifier),
    _: None = Depends(rate_limit_verify),
):
    """Confirm a PayPal order and activate one month of subscription (idempotent per orderID)"""
    logger.info(f"💳 Verifying PayPal order {body.order_id} for {body.customer_email or 'unknown email'}")
    result = await verify_with_retries(verifier, body)

    response = VerifyPaymentResponse(
        success=result.success,
        error=result.error,
        error_reason=result.error_reason,
        already_processed=result.already_processed,
        barber_id=result.account.barber_id if result.account else None,
        subscription_expires=result.account.subscription_expires if result.account else None,
    )
    if result.success:
        return response

    status_code = 404 if result.error_reason == REASON_NOT_FOUND else 502
    return JSONResponse(
        status_code=status_code,
        content=response.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


@router.get("/subscription-config", response_model=SubscriptionConfigResponse)
async def get_subscription_config():
    """PayPal plan and hosted button ids used by the checkout page"""
    if not PAYPAL_PLAN_ID:
        logger.error("❌ PAYPAL_PLAN_ID not configured")
        raise HTTPException(status_code=503, detail="PayPal no está configurado")
    return SubscriptionConfigResponse(plan_id=PAYPAL_PLAN_ID, button_id=PAYPAL_BUTTON_ID)


def require_paypal(paypal: PayPalClient = Depends(get_paypal_client)) -> PayPalClient:
    if not paypal.is_available():
        raise HTTPException(status_code=503, detail="PayPal no está configurado")
    return paypal


@router.get("/setup", response_model=PayPalSetupResponse)
async def get_paypal_setup(paypal: PayPalClient = Depends(require_paypal)):
    """Client token for the PayPal JS SDK"""
    return PayPalSetupResponse(client_token=await paypal.generate_client_token())


@router.post("/order")
async def create_paypal_order(
    body: CreateOrderRequest,
    barber: BarberAccount = Depends(get_current_barber),
    paypal: PayPalClient = Depends(require_paypal),
):
    """Create a checkout order tagged with the barber id; returns PayPal's order body"""
    return await paypal.create_order(body.amount, body.currency, body.intent, custom_id=barber.barber_id)


@router.post("/order/{order_id}/capture", response_model=CaptureOrderResponse, response_model_exclude_none=True)
async def capture_paypal_order(
    order_id: str,
    barber: BarberAccount = Depends(get_current_barber),
    paypal: PayPalClient = Depends(require_paypal),
    verifier: PaymentVerifier = Depends(get_payment_verifier),
):
    """Capture an approved order and activate the barber's month through the verifier"""
    capture = await paypal.capture_order(order_id)
    response = CaptureOrderResponse(order_id=order_id, status=capture.get("status"))

    result = await verifier.verify_payment(order_id, barber.email)
    if result.success and result.account:
        response.subscription_activated = True
        response.barber_id = result.account.barber_id
        response.subscription_expires = result.account.subscription_expires
    else:
        logger.warning(f"⚠️ Order {order_id} captured but not applied: {result.error_reason} {result.error}")
    return response


@router.post("/sync/{barber_id}", response_model=SyncResponse)
async def sync_barber_subscription(
    barber_id: str,
    barber: BarberAccount = Depends(get_current_barber),
    sync: SubscriptionSync = Depends(get_subscription_sync),
):
    """Pull the barber's PayPal subscription state"""
    if barber.barber_id != barber_id:
        raise HTTPException(status_code=403, detail="No autorizado")
    return await sync.sync_barber(barber_id)


@router.post("/sync-all", response_model=JobQueuedResponse, status_code=202)
async def sync_all_subscriptions(admin: BarberAccount = Depends(get_current_admin)):
    """Queue a full PayPal sync on the worker; it pauses between accounts"""
    logger.info(f"🔄 Full PayPal sync requested by {admin.barber_id}")
    try:
        job_id = await enqueue_job("sync_paypal_subscriptions_task")
    except Exception as e:
        logger.error(f"❌ Failed to queue PayPal sync: {e}")
        raise HTTPException(status_code=503, detail="No se pudo programar la sincronización") from e
    logger.info(f"📋 PayPal sync job queued: {job_id}")
    return JobQueuedResponse(job_id=job_id)


@router.post("/webhook", response_model=WebhookResponse)
async def handle_paypal_webhook(
    request: Request,
    paypal: PayPalClient = Depends(get_paypal_client),
    service: PayPalWebhookService = Depends(get_webhook_service),
    _: None = Depends(rate_limit_webhook),
):
    """Verify signature and process payment / subscription lifecycle events"""
    raw_body = await request.body()
    try:
        event = json.loads(raw_body.decode("utf-8"))
    except Exception as e:
        logger.error(f"Failed to parse webhook JSON: {e}")
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from e

    if not await paypal.verify_webhook_signature(dict(request.headers), event):
        logger.warning(f"🚫 PayPal webhook signature rejected for event {event.get('id')}")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    result = await service.handle_event(event)
    if result.status == "retry":
        # Non-2xx makes PayPal redeliver the event later
        raise HTTPException(status_code=503, detail="PayPal temporarily unavailable")
    return result
