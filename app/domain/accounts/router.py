"""Accounts router - login, registration and barber profile endpoints"""

import logging

from fastapi import APIRouter, Depends

from ...auth import get_current_barber
from ...config import RATE_LIMIT_PER_MINUTE
from ...dependencies import get_identity_provider, get_storage
from ...rate_limiter import create_rate_limiter
from ...schemas import BarberAccount
from ...storage.base import StorageBackend
from .identity import IdentityProvider
from .schemas import LoginRequest, PublicBarberProfile, RegisterRequest, SessionResult, SettingsUpdate
from .service import AuthSessionManager

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/auth", tags=["Auth"])
router = APIRouter(prefix="/barbers", tags=["Barbers"])

rate_limit_auth = create_rate_limiter(limit=20, window_seconds=60, key_prefix="auth")
rate_limit_public = create_rate_limiter(
    limit=RATE_LIMIT_PER_MINUTE, window_seconds=60, key_prefix="public"
)


def get_session_manager(
    storage: StorageBackend = Depends(get_storage),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
) -> AuthSessionManager:
    """Dependency injection for AuthSessionManager"""
    return AuthSessionManager(storage, identity_provider)


@auth_router.post("/login", response_model=SessionResult)
async def login(
    body: LoginRequest,
    manager: AuthSessionManager = Depends(get_session_manager),
    _: None = Depends(rate_limit_auth),
):
    """Sign in with email and password; creates the barber profile if it is missing"""
    return await manager.login(body.email, body.password)


@auth_router.post("/register", response_model=SessionResult, status_code=201)
async def register(
    body: RegisterRequest,
    manager: AuthSessionManager = Depends(get_session_manager),
    _: None = Depends(rate_limit_auth),
):
    """Create the Firebase user and the barber profile with a trial subscription"""
    return await manager.register(body)


@router.get("/me", response_model=BarberAccount)
async def get_me(barber: BarberAccount = Depends(get_current_barber)):
    return barber


@router.put("/me/settings", response_model=BarberAccount)
async def update_settings(
    body: SettingsUpdate,
    barber: BarberAccount = Depends(get_current_barber),
    manager: AuthSessionManager = Depends(get_session_manager),
):
    """Update schedule and legacy prices (last write wins)"""
    return manager.update_settings(barber.barber_id, body)


@router.get("/{barber_id}", response_model=PublicBarberProfile)
async def get_public_profile(
    barber_id: str,
    manager: AuthSessionManager = Depends(get_session_manager),
    _: None = Depends(rate_limit_public),
):
    """Public booking page data: schedule, active services, and whether bookings are open"""
    return manager.public_profile(barber_id)
