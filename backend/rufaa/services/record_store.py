"""
Local record store: sync bookkeeping for one entity table.

The sync executor is the only writer of sync metadata. The capture path only
inserts new ``pending`` rows through :meth:`RecordStore.add`.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Type

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..models.base import SyncMixin, SyncState

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Local read/write failure while listing or updating records."""


@dataclass(frozen=True)
class SyncableRecord:
    """Detached snapshot of a local row as seen by the sync engine."""
    local_id: int
    entity_type: str
    payload: Dict[str, Any]
    created_at: datetime
    sync_state: str = SyncState.PENDING
    sync_error: Optional[str] = None
    server_id: Optional[str] = None
    server_ref: Optional[str] = None
    attempt_count: int = 0

    @property
    def is_synced(self) -> bool:
        return self.sync_state == SyncState.SYNCED


class RecordStore:
    """SQLAlchemy-backed store for one syncable model.

    Every operation runs in its own short session so snapshots handed to the
    executor never hold a connection open across network calls.
    """

    def __init__(self, entity_type: str, model: Type[SyncMixin], session_factory: sessionmaker):
        self.entity_type = entity_type
        self.model = model
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Sync engine contract
    # ------------------------------------------------------------------

    def list_pending(self) -> List[SyncableRecord]:
        """Pending and failed rows, oldest first."""
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(self.model)
                    .filter(self.model.sync_state.in_(SyncState.UNSYNCED))
                    .order_by(self.model.created_at, self.model.id)
                    .all()
                )
                return [self._snapshot(row) for row in rows]
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not list pending {self.entity_type} records: {exc}") from exc

    def mark_synced(self, local_id: int, server_id: str, server_ref: Optional[str] = None) -> bool:
        """Record the server's acceptance. Returns False when nothing changed."""
        try:
            with self._session_factory() as db:
                row = db.get(self.model, local_id)
                if row is None:
                    logger.warning("mark_synced: %s %s no longer exists", self.entity_type, local_id)
                    return False
                if row.sync_state == SyncState.SYNCED:
                    if row.server_id != str(server_id):
                        logger.warning(
                            "%s %s already synced as %s, ignoring server id %s",
                            self.entity_type, local_id, row.server_id, server_id,
                        )
                    return False
                row.sync_state = SyncState.SYNCED
                row.server_id = str(server_id)
                row.server_ref = str(server_ref) if server_ref is not None else None
                row.sync_error = None
                row.attempt_count = (row.attempt_count or 0) + 1
                row.last_attempt_at = datetime.utcnow()
                row.synced_at = row.last_attempt_at
                db.commit()
                return True
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not mark {self.entity_type} {local_id} synced: {exc}") from exc

    def mark_failed(self, local_id: int, message: str) -> bool:
        """Record a failed attempt. Synced rows are left untouched."""
        try:
            with self._session_factory() as db:
                row = db.get(self.model, local_id)
                if row is None or row.sync_state == SyncState.SYNCED:
                    return False
                row.sync_state = SyncState.FAILED
                row.sync_error = message or "Unknown error"
                row.attempt_count = (row.attempt_count or 0) + 1
                row.last_attempt_at = datetime.utcnow()
                db.commit()
                return True
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not mark {self.entity_type} {local_id} failed: {exc}") from exc

    def count_pending(self) -> int:
        try:
            with self._session_factory() as db:
                return (
                    db.query(self.model)
                    .filter(self.model.sync_state.in_(SyncState.UNSYNCED))
                    .count()
                )
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not count pending {self.entity_type} records: {exc}") from exc

    # ------------------------------------------------------------------
    # Capture path and retention
    # ------------------------------------------------------------------

    def add(self, **fields) -> SyncableRecord:
        """Insert a new locally captured record. It always starts pending."""
        for key in ("id", "sync_state", "sync_error", "server_id", "server_ref", "synced_at"):
            fields.pop(key, None)
        try:
            with self._session_factory() as db:
                row = self.model(sync_state=SyncState.PENDING, **fields)
                db.add(row)
                db.commit()
                db.refresh(row)
                return self._snapshot(row)
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not save {self.entity_type} record: {exc}") from exc

    def get(self, local_id: int) -> Optional[SyncableRecord]:
        with self._session_factory() as db:
            row = db.get(self.model, local_id)
            return self._snapshot(row) if row else None

    def find_by(self, column: str, value: Any) -> Optional[SyncableRecord]:
        with self._session_factory() as db:
            row = db.query(self.model).filter(getattr(self.model, column) == value).first()
            return self._snapshot(row) if row else None

    def list_all(self, skip: int = 0, limit: int = 50) -> List[SyncableRecord]:
        with self._session_factory() as db:
            rows = (
                db.query(self.model)
                .order_by(self.model.created_at.desc(), self.model.id.desc())
                .offset(skip)
                .limit(limit)
                .all()
            )
            return [self._snapshot(row) for row in rows]

    def search(self, term: str, columns: Sequence[str], limit: int = 50) -> List[SyncableRecord]:
        pattern = f"%{term}%"
        with self._session_factory() as db:
            rows = (
                db.query(self.model)
                .filter(or_(*(getattr(self.model, c).ilike(pattern) for c in columns)))
                .order_by(self.model.created_at.desc())
                .limit(limit)
                .all()
            )
            return [self._snapshot(row) for row in rows]

    def purge_synced(self) -> int:
        """Retention: delete rows the server has already accepted."""
        try:
            with self._session_factory() as db:
                deleted = (
                    db.query(self.model)
                    .filter(self.model.sync_state == SyncState.SYNCED)
                    .delete(synchronize_session=False)
                )
                db.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not purge synced {self.entity_type} records: {exc}") from exc
        if deleted:
            logger.info("Purged %d synced %s records", deleted, self.entity_type)
        return deleted

    def _snapshot(self, row: SyncMixin) -> SyncableRecord:
        return SyncableRecord(
            local_id=row.id,
            entity_type=self.entity_type,
            payload=row.to_payload(),
            created_at=row.created_at,
            sync_state=row.sync_state,
            sync_error=row.sync_error,
            server_id=row.server_id,
            server_ref=row.server_ref,
            attempt_count=row.attempt_count or 0,
        )
