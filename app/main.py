import logging
import os
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .cache import Cache
from .config import (
    FIREBASE_CREDENTIALS_PATH,
    FIREBASE_PROJECT_ID,
    FIREBASE_WEB_API_KEY,
    STORAGE_BACKEND,
)
from .domain.accounts.identity import FirebaseIdentityProvider
from .domain.accounts.router import auth_router
from .domain.accounts.router import router as barbers_router
from .domain.appointments.router import client_router as client_appointments_router
from .domain.appointments.router import router as appointments_router
from .domain.catalog.router import router as services_router
from .domain.payments.paypal_client import PayPalClient
from .domain.payments.router import router as paypal_router
from .domain.subscriptions.notifications import NotificationService
from .domain.subscriptions.router import router as subscriptions_router
from .errors import BarberAppError
from .firebase_clients import FirebaseClients
from .storage import build_storage

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    firebase = FirebaseClients(FIREBASE_PROJECT_ID, FIREBASE_CREDENTIALS_PATH)
    http = httpx.AsyncClient()
    storage = build_storage(STORAGE_BACKEND, firebase=firebase)

    app.state.firebase = firebase
    app.state.http = http
    app.state.storage = storage
    app.state.identity_provider = FirebaseIdentityProvider(http, FIREBASE_WEB_API_KEY, firebase)
    app.state.paypal = PayPalClient(http)
    app.state.notifier = NotificationService()
    app.state.cache = Cache()
    logger.info(f"✅ Services ready (storage={STORAGE_BACKEND})")

    yield

    logger.info("Application shutting down...")
    storage.close()
    await http.aclose()
    firebase.close()


app = FastAPI(title="BarberApp Calendar API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(BarberAppError)
async def barber_app_error_handler(request: Request, exc: BarberAppError):
    """Map domain errors to their HTTP status with a stable machine code"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} - {exc.code}: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} - {exc.code}: {exc.message}")

    content = {"detail": exc.message, "code": exc.code}
    redirect = getattr(exc, "redirect", None)
    if redirect:
        content["redirect"] = redirect
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors from HTTPBearer to 401 authentication errors
    when the issue is with the Authorization header
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                },
            )

    # For other validation errors, return 422 as normal
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ctx may hold the raised ValueError, which is not JSON serializable
    return [{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()]


# CORS Configuration
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(auth_router)
app.include_router(barbers_router)
app.include_router(services_router)
app.include_router(appointments_router)
app.include_router(client_appointments_router)
app.include_router(subscriptions_router)
app.include_router(paypal_router)


@app.get("/")
def root():
    return {"message": "BarberApp Calendar API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
