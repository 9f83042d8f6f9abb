"""Payment verifier - confirms a PayPal order and activates the barber's subscription"""

import logging
from datetime import datetime
from typing import Optional

from ...errors import AlreadyProcessed, NotFound, ProviderError, ProviderUnavailable
from ...schemas import BarberAccount, PaymentRecord
from ...shared.dates import add_months, utcnow
from ...storage.base import StorageBackend
from .paypal_client import (
    PayPalClient,
    get_custom_id,
    get_order_amount,
    get_payer_email,
    get_payer_id,
    is_order_completed,
)
from .schemas import (
    REASON_ALREADY_PROCESSED,
    REASON_NOT_FOUND,
    REASON_PROVIDER_ERROR,
    VerificationResult,
)

logger = logging.getLogger(__name__)

BILLING_PERIOD_MONTHS = 1


class PaymentVerifier:
    """
    Verifies PayPal orders exactly once per order id.

    The order id is the idempotency key: it is checked against the payment ledger before any
    provider call, and the ledger entry is written atomically with the account update so that a
    concurrent duplicate loses with AlreadyProcessed. No retries happen here.
    """

    def __init__(self, storage: StorageBackend, paypal: PayPalClient):
        self.storage = storage
        self.paypal = paypal

    def _already_processed(self, order_id: str) -> VerificationResult:
        payment = self.storage.get_payment(order_id)
        account = self.storage.get_account(payment.barber_id) if payment else None
        logger.info(f"ℹ️ PayPal order {order_id} already processed, skipping")
        return VerificationResult(
            success=True,
            account=account,
            error_reason=REASON_ALREADY_PROCESSED,
        )

    def _resolve_account(self, order: dict, customer_email: Optional[str]) -> Optional[BarberAccount]:
        if customer_email:
            return self.storage.get_account_by_email(customer_email)

        barber_id = get_custom_id(order)
        if barber_id:
            account = self.storage.get_account(barber_id)
            if account:
                return account

        payer_email = get_payer_email(order)
        if payer_email:
            return self.storage.get_account_by_email(payer_email)
        return None

    async def verify_payment(
        self,
        order_id: str,
        customer_email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> VerificationResult:
        if self.storage.get_payment(order_id):
            return self._already_processed(order_id)

        try:
            order = await self.paypal.get_order(order_id)
        except NotFound:
            logger.warning(f"⚠️ PayPal order {order_id} not found")
            return VerificationResult(
                success=False,
                error_reason=REASON_NOT_FOUND,
                error="Pedido no encontrado en PayPal",
            )
        except ProviderUnavailable as e:
            return VerificationResult(
                success=False, error_reason=REASON_PROVIDER_ERROR, error=e.message, retryable=True
            )
        except ProviderError as e:
            return VerificationResult(success=False, error_reason=REASON_PROVIDER_ERROR, error=e.message)

        if not is_order_completed(order):
            logger.warning(f"⚠️ PayPal order {order_id} not completed (status={order.get('status')})")
            return VerificationResult(
                success=False,
                error_reason=REASON_PROVIDER_ERROR,
                error="Pago no verificado o pendiente en PayPal",
            )

        account = self._resolve_account(order, customer_email)
        if not account:
            logger.warning(f"⚠️ No barber matches PayPal order {order_id}")
            return VerificationResult(
                success=False,
                error_reason=REASON_NOT_FOUND,
                error="Barbero no encontrado",
            )

        confirmed_at = now or utcnow()
        amount, currency = get_order_amount(order)
        record = PaymentRecord(
            order_id=order_id,
            barber_id=account.barber_id,
            amount=amount,
            currency=currency,
            payer_email=get_payer_email(order),
            confirmed_at=confirmed_at,
        )
        updates = {
            "subscription_status": "active",
            "subscription_expires": add_months(confirmed_at, BILLING_PERIOD_MONTHS),
            "trial_ends_at": None,
            "is_active": True,
        }
        payer_id = get_payer_id(order)
        if payer_id:
            updates["paypal_customer_id"] = payer_id

        try:
            activated = self.storage.apply_payment(record, **updates)
        except AlreadyProcessed:
            return self._already_processed(order_id)
        except NotFound:
            return VerificationResult(
                success=False, error_reason=REASON_NOT_FOUND, error="Barbero no encontrado"
            )

        logger.info(
            f"✅ 💳 Subscription activated for {activated.barber_id} until "
            f"{activated.subscription_expires.isoformat()} (order {order_id})"
        )
        return VerificationResult(success=True, account=activated)
