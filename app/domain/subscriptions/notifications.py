"""Renewal reminder e-mails, sent through Resend when configured"""

import logging
from dataclasses import dataclass
from html import escape
from typing import Optional

import resend

from ...config import EMAIL_FROM_ADDRESS, FRONTEND_URL, RESEND_API_KEY
from ...schemas import BarberAccount

logger = logging.getLogger(__name__)


@dataclass
class RenewalNotice:
    notification_type: str  # "expired" | "expiring_soon"
    subject: str
    message: str


def build_renewal_notice(account: BarberAccount, days_left: int) -> RenewalNotice:
    name = account.name or "Barbero"
    shop = account.shop_name or "tu barbería"

    if days_left <= 0:
        return RenewalNotice(
            notification_type="expired",
            subject="Tu suscripción de BarberApp Calendar ha expirado",
            message=(
                f"Hola {name}, tu suscripción de BarberApp Calendar para {shop} ha expirado. "
                "Renueva ahora para seguir gestionando tus citas."
            ),
        )

    plural = "s" if days_left != 1 else ""
    subject = f"Tu suscripción de BarberApp Calendar expira en {days_left} día{plural}"
    if days_left == 1:
        message = (
            f"Hola {name}, tu suscripción de BarberApp Calendar para {shop} expira mañana. "
            "¡Renueva hoy para no perder el acceso!"
        )
    else:
        message = (
            f"Hola {name}, tu suscripción de BarberApp Calendar para {shop} expira en "
            f"{days_left} días. Considera renovar para mantener el servicio activo."
        )
    return RenewalNotice(notification_type="expiring_soon", subject=subject, message=message)


class NotificationService:
    """Delivers renewal notices; without a Resend key the notice is only logged"""

    def __init__(self, api_key: Optional[str] = RESEND_API_KEY, from_address: str = EMAIL_FROM_ADDRESS):
        self.api_key = api_key
        self.from_address = from_address
        if not api_key:
            logger.warning("RESEND_API_KEY not set; renewal notices will only be logged")

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _html(self, account: BarberAccount, notice: RenewalNotice) -> str:
        renew_url = f"{FRONTEND_URL}/subscription?barberId={account.barber_id}"
        return (
            f"<p>{escape(notice.message)}</p>"
            f'<p><a href="{escape(renew_url)}">Renovar suscripción</a></p>'
        )

    async def send_renewal_notice(self, account: BarberAccount, notice: RenewalNotice) -> bool:
        logger.info(f"📧 Renewal notice ({notice.notification_type}) for {account.email}: {notice.subject}")

        if not self.is_available():
            return True

        resend.api_key = self.api_key
        try:
            response = resend.Emails.send(
                {
                    "from": self.from_address,
                    "to": [account.email],
                    "subject": notice.subject,
                    "html": self._html(account, notice),
                }
            )
            logger.info(f"✅ Renewal notice sent via Resend: {response}")
            return True
        except Exception as e:
            logger.error(f"❌ Renewal notice to {account.email} failed: {e}")
            return False
