"""PayPal service - thin async client over the PayPal REST API"""

import logging
import time
from typing import Optional

import httpx

from ...config import (
    PAYPAL_CLIENT_ID,
    PAYPAL_CLIENT_SECRET,
    PAYPAL_ENVIRONMENT,
    PAYPAL_TIMEOUT_SECONDS,
    PAYPAL_WEBHOOK_ID,
)
from ...errors import NotFound, ProviderError, ProviderUnavailable

logger = logging.getLogger(__name__)

PAYPAL_API_BASE = {
    "production": "https://api-m.paypal.com",
    "sandbox": "https://api-m.sandbox.paypal.com",
}

# Refresh the OAuth token this many seconds before PayPal expires it
TOKEN_EXPIRY_MARGIN = 60

SUBSCRIPTION_STATUS_MAP = {
    "ACTIVE": "active",
    "SUSPENDED": "expired",
    "CANCELLED": "expired",
    "EXPIRED": "expired",
    "APPROVAL_PENDING": "pending",
    "APPROVED": "pending",
}


def normalize_paypal_environment(env: Optional[str]) -> str:
    """Normalize PayPal environment value to expected format"""
    value = (env or "sandbox").strip().lower()
    if value in {"live", "production", "prod"}:
        return "production"
    if value in {"sandbox", "test", "staging", "dev", "development"}:
        return "sandbox"
    logger.warning(f"Unknown PAYPAL environment '{env}', defaulting to sandbox")
    return "sandbox"


def map_subscription_status(paypal_status: Optional[str]) -> str:
    return SUBSCRIPTION_STATUS_MAP.get((paypal_status or "").upper(), "expired")


def is_order_completed(order: dict) -> bool:
    """An order counts as paid when it is COMPLETED/APPROVED or any capture completed"""
    if order.get("status") in ("COMPLETED", "APPROVED"):
        return True
    for unit in order.get("purchase_units") or []:
        captures = (unit.get("payments") or {}).get("captures") or []
        if any(capture.get("status") == "COMPLETED" for capture in captures):
            return True
    return False


def get_payer_email(order: dict) -> Optional[str]:
    email = (order.get("payer") or {}).get("email_address")
    return email.strip().lower() if email else None


def get_payer_id(order: dict) -> Optional[str]:
    return (order.get("payer") or {}).get("payer_id")


def get_custom_id(order: dict) -> Optional[str]:
    units = order.get("purchase_units") or []
    return units[0].get("custom_id") if units else None


def get_order_amount(order: dict) -> tuple[Optional[float], Optional[str]]:
    """Amount and currency of the first purchase unit"""
    units = order.get("purchase_units") or []
    amount = units[0].get("amount") if units else None
    if not amount:
        return None, None
    try:
        return float(amount.get("value")), amount.get("currency_code")
    except (TypeError, ValueError):
        return None, amount.get("currency_code")


class PayPalClient:
    """Client for PayPal REST operations, sharing the application's httpx.AsyncClient"""

    def __init__(
        self,
        http: httpx.AsyncClient,
        client_id: Optional[str] = PAYPAL_CLIENT_ID,
        client_secret: Optional[str] = PAYPAL_CLIENT_SECRET,
        environment: Optional[str] = PAYPAL_ENVIRONMENT,
        webhook_id: Optional[str] = PAYPAL_WEBHOOK_ID,
        timeout: float = PAYPAL_TIMEOUT_SECONDS,
    ):
        self.http = http
        self.client_id = client_id
        self.client_secret = client_secret
        self.environment = normalize_paypal_environment(environment)
        self.base_url = PAYPAL_API_BASE[self.environment]
        self.webhook_id = webhook_id
        self.timeout = timeout
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0

        if not self.is_available():
            logger.warning("PAYPAL_CLIENT_ID/PAYPAL_CLIENT_SECRET not set; payment verification will fail until configured")
        else:
            logger.info(f"PayPal client initialized (env={self.environment})")

    def is_available(self) -> bool:
        """Check if PayPal credentials are configured"""
        return bool(self.client_id and self.client_secret)

    async def _get_access_token(self) -> str:
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token

        try:
            response = await self.http.post(
                f"{self.base_url}/v1/oauth2/token",
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials"},
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.TransportError as e:
            logger.error(f"❌ PayPal authentication request failed: {e}")
            raise ProviderUnavailable("No se pudo conectar con PayPal") from e

        if response.status_code >= 500:
            raise ProviderUnavailable("PayPal no está disponible")
        if response.status_code != 200:
            logger.error(f"❌ PayPal authentication failed: {response.status_code}")
            raise ProviderError("Error de autenticación con PayPal")

        data = response.json()
        self._access_token = data["access_token"]
        self._token_expires_at = time.monotonic() + max(
            int(data.get("expires_in", 0)) - TOKEN_EXPIRY_MARGIN, 0
        )
        return self._access_token

    async def _request(self, method: str, path: str, headers: Optional[dict] = None, **kwargs) -> dict:
        if not self.is_available():
            raise ProviderError("PayPal no está configurado")

        token = await self._get_access_token()
        try:
            response = await self.http.request(
                method,
                f"{self.base_url}{path}",
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                    **(headers or {}),
                },
                timeout=self.timeout,
                **kwargs,
            )
        except httpx.TransportError as e:
            logger.error(f"❌ PayPal request {method} {path} failed: {e}")
            raise ProviderUnavailable("No se pudo conectar con PayPal") from e

        if response.status_code == 404:
            raise NotFound("Pedido no encontrado en PayPal")
        if response.status_code == 401:
            # Token revoked or expired early
            self._access_token = None
            raise ProviderUnavailable("La sesión con PayPal expiró")
        if response.status_code >= 500:
            logger.error(f"❌ PayPal {method} {path} returned {response.status_code}")
            raise ProviderUnavailable("PayPal no está disponible")
        if response.status_code >= 400:
            logger.error(f"❌ PayPal {method} {path} returned {response.status_code}: {response.text[:200]}")
            raise ProviderError(f"PayPal rechazó la solicitud ({response.status_code})")
        return response.json()

    async def get_order(self, order_id: str) -> dict:
        """GET /v2/checkout/orders/{id}"""
        order = await self._request("GET", f"/v2/checkout/orders/{order_id}")
        logger.info(f"💳 PayPal order {order_id} status: {order.get('status')}")
        return order

    async def get_subscription(self, subscription_id: str) -> dict:
        """GET /v1/billing/subscriptions/{id}"""
        subscription = await self._request("GET", f"/v1/billing/subscriptions/{subscription_id}")
        logger.info(f"💳 PayPal subscription {subscription_id} status: {subscription.get('status')}")
        return subscription

    async def verify_webhook_signature(self, headers: dict, event: dict) -> bool:
        """Ask PayPal to validate a webhook delivery against the configured webhook id"""
        if not self.webhook_id:
            logger.warning("⚠️ PAYPAL_WEBHOOK_ID not set; skipping webhook signature verification")
            return True

        lowered = {k.lower(): v for k, v in headers.items()}
        body = {
            "auth_algo": lowered.get("paypal-auth-algo"),
            "cert_url": lowered.get("paypal-cert-url"),
            "transmission_id": lowered.get("paypal-transmission-id"),
            "transmission_sig": lowered.get("paypal-transmission-sig"),
            "transmission_time": lowered.get("paypal-transmission-time"),
            "webhook_id": self.webhook_id,
            "webhook_event": event,
        }
        if not all(body[k] for k in ("auth_algo", "cert_url", "transmission_id", "transmission_sig", "transmission_time")):
            logger.warning("⚠️ PayPal webhook missing transmission headers")
            return False

        result = await self._request("POST", "/v1/notifications/verify-webhook-signature", json=body)
        return result.get("verification_status") == "SUCCESS"

    async def create_order(
        self,
        amount: str,
        currency: str,
        intent: str = "CAPTURE",
        custom_id: Optional[str] = None,
    ) -> dict:
        """POST /v2/checkout/orders; custom_id carries the barber id to the verifier"""
        unit = {"amount": {"currency_code": currency, "value": amount}}
        if custom_id:
            unit["custom_id"] = custom_id
        order = await self._request(
            "POST",
            "/v2/checkout/orders",
            json={"intent": intent, "purchase_units": [unit]},
        )
        logger.info(f"💳 PayPal order {order.get('id')} created ({amount} {currency})")
        return order

    async def capture_order(self, order_id: str) -> dict:
        """POST /v2/checkout/orders/{id}/capture"""
        capture = await self._request(
            "POST",
            f"/v2/checkout/orders/{order_id}/capture",
            headers={"Prefer": "return=representation"},
        )
        logger.info(f"💳 PayPal order {order_id} captured: {capture.get('status')}")
        return capture

    async def generate_client_token(self) -> str:
        """Client token for the JS SDK card fields"""
        data = await self._request("POST", "/v1/identity/generate-token")
        return data["client_token"]
