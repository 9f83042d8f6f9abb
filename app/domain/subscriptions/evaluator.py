"""Subscription evaluator - derives the access decision from a barber's subscription fields"""

import math
from datetime import datetime
from typing import Any, Optional

from pydantic.alias_generators import to_camel

from ...config import RENEWAL_WINDOW_DAYS
from ...errors import InvalidAccount
from ...shared.dates import ensure_utc, parse_instant
from .schemas import SubscriptionView

SECONDS_PER_DAY = 86400

BADGE_EXPIRED = "EXPIRADA"
BADGE_EXPIRING = "EXPIRA PRONTO"
BADGE_ACTIVE = "ACTIVA"

MESSAGE_EXPIRED = "Tu suscripción ha expirado. Renueva ahora para seguir gestionando tus citas."
MESSAGE_TODAY = "Tu suscripción expira hoy. ¡Renueva ahora para evitar interrupciones!"
MESSAGE_TOMORROW = "Tu suscripción expira mañana. Considera renovar para mantener el servicio activo."
MESSAGE_RENEW_SOON = "Tu suscripción expira en {days} días. Renueva pronto para evitar interrupciones."
MESSAGE_ACTIVE = "Tu suscripción está activa y expira en {days} días."


def _field(account: Any, name: str) -> Any:
    if isinstance(account, dict):
        # Raw documents use camelCase keys
        return account.get(name, account.get(to_camel(name)))
    return getattr(account, name, None)


def days_until(expires: datetime, now: datetime) -> int:
    """Whole days left, rounded up: 1 second left counts as 1 day, 0 means today"""
    return math.ceil((expires - now).total_seconds() / SECONDS_PER_DAY)


def select_message(is_active: bool, days: int, needs_renewal: bool) -> str:
    if not is_active:
        return MESSAGE_EXPIRED
    if days <= 0:
        return MESSAGE_TODAY
    if days == 1:
        return MESSAGE_TOMORROW
    if needs_renewal:
        return MESSAGE_RENEW_SOON.format(days=days)
    return MESSAGE_ACTIVE.format(days=days)


def evaluate(
    account: Any,
    now: datetime,
    renewal_window_days: int = RENEWAL_WINDOW_DAYS,
) -> SubscriptionView:
    """
    Compute the subscription view for a barber at instant `now`.

    Access is decided by `subscription_expires` alone; the status string is reported but never
    consulted. Pure function, safe to call on every request.

    Args:
        account: BarberAccount or any object/dict with subscription_status,
            subscription_expires and trial_ends_at
        now: Evaluation instant, naive values are read as UTC
        renewal_window_days: Days before expiry during which renewal is prompted

    Raises:
        InvalidAccount: If subscription_expires is missing or unparseable
    """
    try:
        expires = parse_instant(_field(account, "subscription_expires"))
    except ValueError as e:
        raise InvalidAccount(f"Fecha de expiración inválida: {e}") from e

    trial_ends_at: Optional[datetime]
    try:
        trial_ends_at = parse_instant(_field(account, "trial_ends_at"))
    except ValueError:
        # Paid accounts carry no trial end
        trial_ends_at = None

    now = ensure_utc(now)
    status = _field(account, "subscription_status") or "trial"

    days = days_until(expires, now)
    is_active = now <= expires
    needs_renewal = is_active and days <= renewal_window_days

    if not is_active:
        badge = BADGE_EXPIRED
    elif needs_renewal:
        badge = BADGE_EXPIRING
    else:
        badge = BADGE_ACTIVE

    return SubscriptionView(
        subscription_status=status,
        subscription_expires=expires,
        trial_ends_at=trial_ends_at,
        days_until_expiry=days,
        is_active=is_active,
        needs_renewal=needs_renewal,
        is_trial=status == "trial" and trial_ends_at is not None and now <= trial_ends_at,
        message=select_message(is_active, days, needs_renewal),
        badge=badge,
    )
