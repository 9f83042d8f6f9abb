"""Request dependencies resolving the clients built in the application lifespan"""

from fastapi import Request

from .cache import Cache
from .domain.accounts.identity import IdentityProvider
from .domain.payments.paypal_client import PayPalClient
from .domain.subscriptions.notifications import NotificationService
from .storage.base import StorageBackend


def get_storage(request: Request) -> StorageBackend:
    return request.app.state.storage


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider


def get_paypal_client(request: Request) -> PayPalClient:
    return request.app.state.paypal


def get_notifier(request: Request) -> NotificationService:
    return request.app.state.notifier


def get_cache(request: Request) -> Cache:
    return request.app.state.cache
