"""Application errors shared by the services, storage backends and routers"""

from typing import Optional


class BarberAppError(Exception):
    """Base error carrying the HTTP status and machine code it maps to"""

    status_code = 500
    code = "internal_error"
    default_message = "Error interno del servidor"
    headers: Optional[dict] = None

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidAccount(BarberAppError):
    """Malformed subscription data on a barber record"""

    status_code = 422
    code = "invalid_account"
    default_message = "Datos de suscripción inválidos"


class ProviderUnavailable(BarberAppError):
    """Identity or payment provider could not be reached"""

    status_code = 503
    code = "provider_unavailable"
    default_message = "Servicio externo no disponible. Inténtalo de nuevo más tarde."


class ProviderError(BarberAppError):
    """Identity or payment provider answered with an error"""

    status_code = 502
    code = "provider_error"
    default_message = "Error al comunicarse con el proveedor externo"


class NotFound(BarberAppError):
    status_code = 404
    code = "not_found"
    default_message = "No encontrado"


class AlreadyProcessed(BarberAppError):
    """The payment order was already applied; callers treat this as success"""

    status_code = 200
    code = "already_processed"
    default_message = "El pago ya fue procesado"


class EmailInUse(BarberAppError):
    status_code = 409
    code = "email_in_use"
    default_message = "Este email ya está registrado"


class InvalidCredentials(BarberAppError):
    status_code = 401
    code = "invalid_credentials"
    default_message = "Email o contraseña incorrectos"


class ProviderDisabled(BarberAppError):
    """Email/password sign-up is disabled in the identity provider"""

    status_code = 503
    code = "provider_disabled"
    default_message = "El registro por email no está habilitado"
    redirect = "/firebase-setup"


class SlotUnavailable(BarberAppError):
    status_code = 409
    code = "slot_unavailable"
    default_message = "Este horario ya está ocupado"


class BookingRejected(BarberAppError):
    """Booking outside working hours, in the past, or for an unknown service"""

    status_code = 400
    code = "booking_rejected"
    default_message = "No se pudo crear la reserva"


class SubscriptionRequired(BarberAppError):
    status_code = 403
    code = "subscription_required"
    default_message = "Tu suscripción ha expirado. Renueva para continuar."
    headers = {"X-Subscription-Required": "true"}
