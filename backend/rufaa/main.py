"""
Rufaa - offline-first patient visit capture API.
Records are saved locally first and uploaded to the central patient visit
service by the background sync engine.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .core.config import settings
from .core.logging_config import setup_logging
from .models.base import Base, SessionLocal, engine
from .models import assessment, patient, preference, vitals  # noqa: F401  Ensure tables are registered
from .api import patients, preferences, sync, visits
from .services.offline_sync import build_offline_sync_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    # NOTE: In production, use Alembic migrations instead of create_all()
    Base.metadata.create_all(bind=engine)

    service = build_offline_sync_service(SessionLocal)
    app.state.sync_service = service
    if settings.SYNC_AUTOSTART:
        service.start()
    try:
        yield
    finally:
        service.stop()
        await service.runtime.drain()
        await service.scheduler.wait_idle()
        app.state.sync_service = None
        logger.info("Sync engine shut down")


app = FastAPI(
    title="Rufaa Offline Sync API",
    description=(
        "Offline-first capture of patients, vitals and assessments with "
        "background synchronization to the central patient visit service."
    ),
    version=settings.VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(patients.router, prefix="/api/v1")
app.include_router(visits.router, prefix="/api/v1")
app.include_router(sync.router, prefix="/api/v1")
app.include_router(preferences.router, prefix="/api/v1")


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": settings.APP_NAME, "version": settings.VERSION}
