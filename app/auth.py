import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import ADMIN_EMAILS
from .dependencies import get_identity_provider, get_notifier, get_storage
from .domain.accounts.identity import IdentityProvider
from .domain.accounts.service import AuthSessionManager
from .domain.subscriptions.notifications import NotificationService
from .domain.subscriptions.service import SubscriptionService
from .schemas import BarberAccount
from .storage.base import StorageBackend

logger = logging.getLogger(__name__)

security = HTTPBearer()


async def get_current_barber(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
    storage: StorageBackend = Depends(get_storage),
) -> BarberAccount:
    """Get current barber from a Firebase ID token, provisioning the profile on first use"""

    if not credentials:
        logger.error("❌ No credentials provided")
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    token = credentials.credentials

    # Basic token format validation before processing
    token_parts = token.split(".")
    if len(token_parts) != 3:
        logger.warning(f"⚠️ Malformed token received: {len(token_parts)} parts, token length: {len(token)}")
        raise HTTPException(
            status_code=401, detail="Invalid token format. Expected a valid JWT token."
        )

    # InvalidCredentials / ProviderUnavailable propagate to the app error handler
    identity = await identity_provider.verify_token(token)

    account, created = AuthSessionManager(storage, identity_provider).ensure_account(identity)
    if created:
        logger.info(f"🆕 Barber profile created from token: {account.barber_id}")
    logger.debug(f"✅ Barber authenticated: {account.email}")
    return account


async def get_current_barber_with_subscription(
    barber: BarberAccount = Depends(get_current_barber),
    storage: StorageBackend = Depends(get_storage),
    notifier: NotificationService = Depends(get_notifier),
) -> BarberAccount:
    """
    Get current barber and verify their subscription is active.
    Use this dependency for dashboard routes that require a trial or paid subscription.
    """
    view = SubscriptionService(storage, notifier).require_active(barber)
    logger.debug(f"✅ Barber {barber.email} subscription active ({view.days_until_expiry} days left)")
    return barber


async def get_current_admin(barber: BarberAccount = Depends(get_current_barber)) -> BarberAccount:
    """Barber whose e-mail is listed in ADMIN_EMAILS; guards the fleet-wide endpoints"""
    if barber.email.lower() not in ADMIN_EMAILS:
        logger.warning(f"🚫 Barber {barber.barber_id} attempted an admin-only operation")
        raise HTTPException(status_code=403, detail="Solo administradores")
    return barber
