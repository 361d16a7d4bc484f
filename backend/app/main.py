"""
FastAPI app entrypoint.

Parking-slot marketplace: users book slots, owners list slots and decide on requests,
admins review owners. Booking housekeeping runs on an in-process scheduler.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from app.api.routes import admin, auth, bookings, notifications, owners, slots
from app.config import settings
from app.core.constants import BOOKING_HOUSEKEEPING_JOB_ID
from app.core.errors import DomainError, domain_error_handler
from app.scheduler.booking_housekeeping_job import run_booking_housekeeping_job

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    if settings.scheduler_enabled:
        scheduler = BackgroundScheduler()
        scheduler.add_job(
            run_booking_housekeeping_job,
            "interval",
            seconds=settings.housekeeping_interval_seconds,
            id=BOOKING_HOUSEKEEPING_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        logger.info("Booking housekeeping every %ss", settings.housekeeping_interval_seconds)
    app.state.scheduler = scheduler
    logger.info("Backend ready (docs at /docs, health at /health)")
    yield
    if scheduler is not None:
        scheduler.shutdown(wait=False)


app = FastAPI(title="Parking Slot Marketplace", version="0.1.0", lifespan=lifespan)

app.add_exception_handler(DomainError, domain_error_handler)

# CORS: dev origins + optional CORS_ORIGINS env (comma-separated) for the production frontend
_cors_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if settings.cors_origins:
    _cors_origins.extend(o.strip() for o in settings.cors_origins.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api", tags=["auth"])
app.include_router(owners.router, prefix="/api", tags=["owners"])
app.include_router(slots.router, prefix="/api", tags=["slots"])
app.include_router(bookings.router, prefix="/api", tags=["bookings"])
app.include_router(notifications.router, prefix="/api", tags=["notifications"])
app.include_router(admin.router, prefix="/api", tags=["admin"])


@app.get("/", include_in_schema=False)
def root():
    """Root: point to API docs and health."""
    return {"message": "Parking Slot Marketplace API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
