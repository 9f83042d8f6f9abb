"""Identity provider - Firebase Authentication"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from firebase_admin import auth as firebase_auth

from ...errors import (
    EmailInUse,
    InvalidCredentials,
    ProviderDisabled,
    ProviderError,
    ProviderUnavailable,
)
from ...firebase_clients import FirebaseClients
from .schemas import Identity

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"

INVALID_CREDENTIAL_CODES = {
    "EMAIL_NOT_FOUND",
    "INVALID_PASSWORD",
    "INVALID_LOGIN_CREDENTIALS",
    "INVALID_EMAIL",
    "USER_DISABLED",
}
DISABLED_PROVIDER_CODES = {"OPERATION_NOT_ALLOWED", "CONFIGURATION_NOT_FOUND", "PASSWORD_LOGIN_DISABLED"}


def map_provider_error(code: str) -> Exception:
    """Translate an Identity Toolkit error code into an application error"""
    # Codes may carry a suffix, e.g. "WEAK_PASSWORD : Password should be at least 6 characters"
    code = (code or "").split(" ", 1)[0].strip().upper()
    if code == "EMAIL_EXISTS":
        return EmailInUse()
    if code in DISABLED_PROVIDER_CODES:
        return ProviderDisabled()
    if code in INVALID_CREDENTIAL_CODES:
        return InvalidCredentials()
    if code == "WEAK_PASSWORD":
        return InvalidCredentials("La contraseña debe tener al menos 6 caracteres")
    if code == "TOO_MANY_ATTEMPTS_TRY_LATER":
        return ProviderUnavailable("Demasiados intentos. Inténtalo más tarde.")
    return ProviderError(f"Error de autenticación: {code or 'desconocido'}")


class IdentityProvider(ABC):
    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Identity: ...

    @abstractmethod
    async def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> Identity: ...

    @abstractmethod
    async def verify_token(self, id_token: str) -> Identity: ...


class FirebaseIdentityProvider(IdentityProvider):
    """Password sign-in/sign-up through the Identity Toolkit REST API, token checks through firebase_admin"""

    def __init__(self, http: httpx.AsyncClient, api_key: Optional[str], firebase: FirebaseClients):
        self.http = http
        self.api_key = api_key
        self.firebase = firebase
        if not api_key:
            logger.warning("FIREBASE_WEB_API_KEY not set; login and registration will fail until configured")

    async def _call(self, endpoint: str, payload: dict) -> dict:
        if not self.api_key:
            raise ProviderDisabled("Firebase Authentication no está configurado")
        try:
            response = await self.http.post(
                f"{IDENTITY_TOOLKIT_URL}/accounts:{endpoint}",
                params={"key": self.api_key},
                json={**payload, "returnSecureToken": True},
                timeout=15.0,
            )
        except httpx.TransportError as e:
            logger.error(f"❌ Firebase {endpoint} request failed: {e}")
            raise ProviderUnavailable() from e

        if response.status_code >= 500:
            logger.error(f"❌ Firebase {endpoint} returned {response.status_code}")
            raise ProviderUnavailable()
        data = response.json()
        if response.status_code != 200:
            code = (data.get("error") or {}).get("message", "")
            logger.warning(f"⚠️ Firebase {endpoint} rejected: {code}")
            raise map_provider_error(code)
        return data

    @staticmethod
    def _identity(data: dict) -> Identity:
        return Identity(
            uid=data["localId"],
            email=(data.get("email") or "").lower(),
            display_name=data.get("displayName") or None,
            id_token=data.get("idToken"),
            refresh_token=data.get("refreshToken"),
            expires_in=int(data["expiresIn"]) if data.get("expiresIn") else None,
        )

    async def sign_in(self, email: str, password: str) -> Identity:
        data = await self._call("signInWithPassword", {"email": email, "password": password})
        logger.info(f"✅ Firebase sign-in for {email}")
        return self._identity(data)

    async def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> Identity:
        payload = {"email": email, "password": password}
        if display_name:
            payload["displayName"] = display_name
        data = await self._call("signUp", payload)
        logger.info(f"🆕 Firebase user created for {email}")
        return self._identity(data)

    async def verify_token(self, id_token: str) -> Identity:
        try:
            # verify_id_token fetches Google's public certificates with a blocking request
            claims = await asyncio.to_thread(firebase_auth.verify_id_token, id_token, self.firebase.app)
        except firebase_auth.ExpiredIdTokenError as e:
            raise InvalidCredentials("Sesión expirada. Inicia sesión de nuevo.") from e
        except firebase_auth.CertificateFetchError as e:
            logger.error(f"❌ Could not fetch Firebase certificates: {e}")
            raise ProviderUnavailable() from e
        except (firebase_auth.InvalidIdTokenError, ValueError) as e:
            logger.warning(f"⚠️ Invalid Firebase token: {e}")
            raise InvalidCredentials("Token inválido") from e

        uid = claims.get("uid") or claims.get("sub") or claims.get("user_id")
        if not uid:
            raise InvalidCredentials("Token inválido")
        return Identity(
            uid=uid,
            email=(claims.get("email") or "").lower(),
            display_name=claims.get("name"),
            id_token=id_token,
        )
