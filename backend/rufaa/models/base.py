from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from ..core.config import settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {}


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

Base = declarative_base()


class TimestampMixin:
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SyncState:
    """Sync lifecycle of a locally captured record: pending <-> failed -> synced."""
    PENDING = "pending"
    FAILED = "failed"
    SYNCED = "synced"

    UNSYNCED = (PENDING, FAILED)


class SyncMixin(TimestampMixin):
    """Sync bookkeeping shared by every entity the engine uploads."""

    id = Column(Integer, primary_key=True, autoincrement=True)  # local id
    sync_state = Column(String(16), nullable=False, default=SyncState.PENDING, index=True)
    sync_error = Column(Text, nullable=True)
    server_id = Column(String(64), nullable=True)   # set only once synced
    server_ref = Column(String(64), nullable=True)  # secondary server key, e.g. visit id
    attempt_count = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(DateTime, nullable=True)
    synced_at = Column(DateTime, nullable=True)

    # Business columns sent to the remote service, in request order
    PAYLOAD_FIELDS: tuple = ()

    def to_payload(self) -> dict:
        return {name: getattr(self, name) for name in self.PAYLOAD_FIELDS}
