"""Auth session manager - sign-in/sign-up plus barber provisioning"""

import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Optional

from ...config import TRIAL_DAYS
from ...errors import InvalidCredentials, NotFound
from ...schemas import BarberAccount, ServiceRecord
from ...shared.dates import utcnow
from ...storage.base import StorageBackend
from ..subscriptions.evaluator import evaluate
from .identity import IdentityProvider
from .schemas import Identity, PublicBarberProfile, RegisterRequest, SessionResult, SettingsUpdate

logger = logging.getLogger(__name__)

BARBER_ID_ALPHABET = string.ascii_uppercase + string.digits
BASE36_DIGITS = string.digits + string.ascii_lowercase

# (name, price, duration in minutes)
DEFAULT_SERVICES = (
    ("Corte de cabello", 15.00, 30),
    ("Arreglo de barba", 10.00, 20),
    ("Corte completo", 20.00, 45),
    ("Afeitado", 8.00, 15),
)


def _base36(value: int) -> str:
    digits = ""
    while value:
        value, remainder = divmod(value, 36)
        digits = BASE36_DIGITS[remainder] + digits
    return digits or "0"


def generate_barber_id(now: Optional[datetime] = None) -> str:
    """BB_ + 5 random uppercase alphanumerics + last 3 base-36 digits of the epoch millis"""
    now = now or utcnow()
    random_part = "".join(secrets.choice(BARBER_ID_ALPHABET) for _ in range(5))
    timestamp_part = _base36(int(now.timestamp() * 1000))[-3:].upper()
    return f"BB_{random_part}{timestamp_part}"


class AuthSessionManager:
    """Authenticates barbers and makes sure every identity has exactly one BarberAccount"""

    def __init__(self, storage: StorageBackend, identity_provider: IdentityProvider, trial_days: int = TRIAL_DAYS):
        self.storage = storage
        self.identity_provider = identity_provider
        self.trial_days = trial_days

    def new_account(
        self,
        identity: Identity,
        name: Optional[str] = None,
        shop_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BarberAccount:
        """Default profile for a first sign-in: trial window of trial_days"""
        now = now or utcnow()
        trial_end = now + timedelta(days=self.trial_days)
        local_part = identity.email.split("@")[0] if identity.email else "Barbero"
        display = name or identity.display_name or local_part
        return BarberAccount(
            barber_id=generate_barber_id(now),
            firebase_uid=identity.uid,
            name=display,
            shop_name=shop_name or f"Barbería {display}",
            email=identity.email.lower(),
            subscription_status="trial",
            subscription_expires=trial_end,
            trial_ends_at=trial_end,
            created_at=now,
        )

    def _create_default_services(self, barber_id: str) -> None:
        for order, (name, price, duration) in enumerate(DEFAULT_SERVICES, start=1):
            self.storage.create_service(
                ServiceRecord(barber_id=barber_id, name=name, price=price, duration=duration, order=order)
            )
        logger.info(f"✅ Default services created for {barber_id}")

    def ensure_account(
        self,
        identity: Identity,
        name: Optional[str] = None,
        shop_name: Optional[str] = None,
    ) -> tuple[BarberAccount, bool]:
        """Single read-or-create; concurrent callers for one identity all get the same account"""
        if not (identity.email or "").strip():
            # Accounts are keyed by e-mail as well as uid; phone and anonymous sign-ins have none
            logger.warning(f"⚠️ Identity {identity.uid} has no email, refusing to provision a barber")
            raise InvalidCredentials("La cuenta necesita un correo electrónico")
        account, created = self.storage.get_or_create_account(
            identity.uid, self.new_account(identity, name=name, shop_name=shop_name)
        )
        if created:
            self._create_default_services(account.barber_id)
        return account, created

    async def login(self, email: str, password: str) -> SessionResult:
        identity = await self.identity_provider.sign_in(email, password)
        account, created = self.ensure_account(identity)
        if created:
            logger.info(f"🆕 Barber profile auto-provisioned on login: {account.barber_id}")
        return SessionResult(identity=identity, account=account, created=created)

    async def register(self, profile: RegisterRequest) -> SessionResult:
        # Sign-up errors propagate before anything is persisted
        identity = await self.identity_provider.sign_up(profile.email, profile.password, display_name=profile.name)
        account, created = self.ensure_account(identity, name=profile.name, shop_name=profile.shop_name)
        logger.info(f"✅ Barber registered: {account.barber_id} ({account.email})")
        return SessionResult(identity=identity, account=account, created=created)

    def update_settings(self, barber_id: str, settings: SettingsUpdate) -> BarberAccount:
        fields = settings.model_dump(exclude_unset=True, exclude_none=True)
        if not fields:
            account = self.storage.get_account(barber_id)
            if not account:
                raise NotFound("Barbero no encontrado")
            return account
        logger.info(f"🔄 Updating settings for {barber_id}: {sorted(fields)}")
        return self.storage.update_account(barber_id, **fields)

    def public_profile(self, barber_id: str, now: Optional[datetime] = None) -> PublicBarberProfile:
        account = self.storage.get_account(barber_id)
        if not account:
            raise NotFound("Barbero no encontrado")
        accepting_bookings = evaluate(account, now or utcnow()).is_active
        return PublicBarberProfile(
            barber_id=account.barber_id,
            name=account.name,
            shop_name=account.shop_name,
            start_time=account.start_time,
            end_time=account.end_time,
            break_start=account.break_start,
            break_end=account.break_end,
            has_break=account.has_break,
            accepting_bookings=accepting_bookings,
            services=self.storage.list_services(barber_id, active_only=True),
        )
