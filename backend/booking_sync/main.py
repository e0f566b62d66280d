"""
FastAPI app entrypoint.

Remote booking sync: scheduled tick (gated by operating hours + interval), keep-alive, and the /remote API.
"""
import logging
import os
import threading
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from booking_sync import __version__
from booking_sync.api.routes import remote
from booking_sync.config import settings
from booking_sync.core.constants import KEEPALIVE_JOB_ID, SYNC_JOB_ID
from booking_sync.scheduler.keepalive_job import run_keepalive_job
from booking_sync.scheduler.sync_job import cancel_pending_auto_login, run_sync_job
from booking_sync.services.runtime import get_runtime

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    _scheduler.add_job(
        run_sync_job,
        "interval",
        seconds=settings.sync_tick_seconds,
        id=SYNC_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    _scheduler.add_job(
        run_keepalive_job,
        "interval",
        minutes=settings.keepalive_interval_minutes,
        id=KEEPALIVE_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    _scheduler.start()
    app.state.scheduler = _scheduler

    def startup_background():
        # Adopt a stored session so the first tick does not start cold
        try:
            if get_runtime().sessions.ensure_valid():
                logger.info("Restored remote session from DB")
            else:
                logger.info("No stored remote session; login via POST /remote/login/request-code")
        except Exception as e:
            logger.warning("Restoring remote session on startup failed: %s", e, exc_info=True)

    threading.Thread(target=startup_background, daemon=True).start()
    logger.info(
        "Backend ready: sync tick %ss, keep-alive every %s min, operating hours %s-%s %s",
        settings.sync_tick_seconds,
        settings.keepalive_interval_minutes,
        settings.operating_hours_start.strftime("%H:%M"),
        settings.operating_hours_end.strftime("%H:%M"),
        settings.operating_timezone,
    )
    yield
    cancel_pending_auto_login()
    _scheduler.shutdown(wait=False)


app = FastAPI(title="Booking Sync", version=__version__, lifespan=lifespan)

# CORS: dev origins + optional CORS_ORIGINS env (comma-separated) for the admin frontend
_cors_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_cors_extra = os.getenv("CORS_ORIGINS", "")
if _cors_extra:
    _cors_origins.extend(o.strip() for o in _cors_extra.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(remote.router, prefix="/remote", tags=["remote"])


@app.get("/", include_in_schema=False)
def root():
    return {"message": "Booking Sync API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
