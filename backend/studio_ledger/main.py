# backend/studio_ledger/main.py
"""
Studio Ledger API.

Run locally with ``uvicorn studio_ledger.main:app --reload`` from ``backend/``.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from .core.config import settings
from .database import init_db
from .errors import register_error_handlers
from .routes import health, stripe_webhooks
from .routes.v1 import (
    bookings as bookings_v1,
    classes as classes_v1,
    passes as passes_v1,
    payments as payments_v1,
)

API_TITLE = "Studio Ledger API"
API_VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"{API_TITLE} starting up...")
    logger.info(f"Environment: {settings.environment}")
    if settings.is_sqlite:
        # Local runs have no migrations; create the schema in place
        init_db()
        logger.info("SQLite schema ensured")
    yield
    logger.info(f"{API_TITLE} shutting down...")


app = FastAPI(
    title=API_TITLE,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)
register_error_handlers(app)

api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(bookings_v1.router, prefix="/bookings")
api_v1.include_router(classes_v1.router, prefix="/classes")
api_v1.include_router(passes_v1.router, prefix="/passes")
api_v1.include_router(payments_v1.router, prefix="/payments")
# Signature-verified, no bearer auth
api_v1.include_router(stripe_webhooks.router, prefix="/webhooks/stripe")

app.include_router(api_v1)
app.include_router(health.router)
