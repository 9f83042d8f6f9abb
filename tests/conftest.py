from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from app import rate_limiter
from app.cache import Cache
from app.database import Base, create_session_factory
from app.domain.accounts.identity import IdentityProvider
from app.domain.accounts.schemas import Identity
from app.domain.subscriptions.notifications import NotificationService
from app.errors import EmailInUse, InvalidCredentials, NotFound, ProviderUnavailable
from app.main import app
from app.schemas import BarberAccount
from app.storage.sql import SqlStorage

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeIdentityProvider(IdentityProvider):
    """In-memory stand-in for Firebase Authentication"""

    def __init__(self):
        # email -> (password, Identity)
        self.users: dict[str, tuple[str, Identity]] = {}
        self.tokens: dict[str, Identity] = {}
        self.unavailable = False

    def add_user(self, uid: str, email: str, password: str = "secret123") -> Identity:
        identity = Identity(uid=uid, email=email, id_token=f"hdr.{uid}.sig")
        self.users[email] = (password, identity)
        self.tokens[identity.id_token] = identity
        return identity

    async def sign_in(self, email: str, password: str) -> Identity:
        if self.unavailable:
            raise ProviderUnavailable()
        stored = self.users.get(email)
        if not stored or stored[0] != password:
            raise InvalidCredentials()
        return stored[1]

    async def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> Identity:
        if email in self.users:
            raise EmailInUse()
        identity = self.add_user(f"uid-{len(self.users) + 1}", email, password)
        identity.display_name = display_name
        return identity

    async def verify_token(self, id_token: str) -> Identity:
        identity = self.tokens.get(id_token)
        if not identity:
            raise InvalidCredentials("Token inválido")
        return identity


class FakePayPal:
    """Answers get_order / get_subscription from dictionaries and counts calls"""

    def __init__(self):
        self.orders: dict[str, dict] = {}
        self.subscriptions: dict[str, dict] = {}
        # order id -> list of exceptions raised on successive calls
        self.failures: dict[str, list[Exception]] = {}
        self.order_calls = 0
        self.signature_valid = True
        self.available = True
        self.created_orders: list[dict] = []

    def is_available(self) -> bool:
        return self.available

    async def get_order(self, order_id: str) -> dict:
        self.order_calls += 1
        pending = self.failures.get(order_id)
        if pending:
            raise pending.pop(0)
        if order_id not in self.orders:
            raise NotFound("Pedido no encontrado en PayPal")
        return self.orders[order_id]

    async def get_subscription(self, subscription_id: str) -> dict:
        if subscription_id not in self.subscriptions:
            raise NotFound()
        return self.subscriptions[subscription_id]

    async def verify_webhook_signature(self, headers: dict, event: dict) -> bool:
        return self.signature_valid

    async def create_order(self, amount, currency, intent="CAPTURE", custom_id=None) -> dict:
        order_id = f"O-NEW{len(self.created_orders) + 1}"
        self.created_orders.append(
            {"id": order_id, "amount": amount, "currency": currency, "intent": intent, "custom_id": custom_id}
        )
        return {"id": order_id, "status": "CREATED"}

    async def capture_order(self, order_id: str) -> dict:
        if order_id not in self.orders:
            raise NotFound("Pedido no encontrado en PayPal")
        self.orders[order_id]["status"] = "COMPLETED"
        return {"id": order_id, "status": "COMPLETED"}

    async def generate_client_token(self) -> str:
        return "client-token-123"


class FakeRedis:
    def __init__(self):
        self.values: dict[str, str] = {}

    def get(self, key):
        return self.values.get(key)

    def setex(self, key, ttl, value):
        self.values[key] = value


class RecordingNotifier(NotificationService):
    def __init__(self):
        super().__init__(api_key=None)
        self.sent = []

    async def send_renewal_notice(self, account, notice) -> bool:
        self.sent.append((account.barber_id, notice.notification_type))
        return True


def completed_order(order_id: str, email: str = "payer@example.com", custom_id: Optional[str] = None) -> dict:
    unit = {"amount": {"value": "9.99", "currency_code": "EUR"}}
    if custom_id:
        unit["custom_id"] = custom_id
    return {
        "id": order_id,
        "status": "COMPLETED",
        "payer": {"email_address": email, "payer_id": "PAYER123"},
        "purchase_units": [unit],
    }


@pytest.fixture(autouse=True)
def reset_rate_limits():
    rate_limiter.memory_cache.clear()
    yield
    rate_limiter.memory_cache.clear()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def storage():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    backend = SqlStorage(create_session_factory(engine), engine=engine)
    yield backend
    backend.close()


@pytest.fixture
def make_account(storage):
    counter = {"n": 0}

    def _make(**overrides) -> BarberAccount:
        counter["n"] += 1
        n = counter["n"]
        expires = datetime.now(timezone.utc) + timedelta(days=20)
        fields = {
            "barber_id": f"BB_TEST{n:04d}",
            "firebase_uid": f"uid-test-{n}",
            "name": f"Barbero {n}",
            "shop_name": f"Barbería {n}",
            "email": f"barber{n}@example.com",
            "subscription_status": "trial",
            "subscription_expires": expires,
            "trial_ends_at": expires,
        }
        fields.update(overrides)
        return storage.put_account(BarberAccount(**fields))

    return _make


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def paypal():
    return FakePayPal()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(storage, identity_provider, paypal, notifier):
    # Lifespan is not entered; the app state is wired to the fakes instead
    app.state.storage = storage
    app.state.identity_provider = identity_provider
    app.state.paypal = paypal
    app.state.notifier = notifier
    app.state.cache = Cache(client=FakeRedis())
    return TestClient(app)


@pytest.fixture
def auth_headers(identity_provider):
    def _headers(account: BarberAccount) -> dict:
        identity = identity_provider.add_user(account.firebase_uid, account.email)
        return {"Authorization": f"Bearer {identity.id_token}"}

    return _headers
