"""
Per-entity-type sync executor.
Drains one store's pending queue through the remote client, strictly in
creation order, one record at a time. Store calls run in a worker thread so
the database never blocks the event loop.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .entities import EntityType
from .record_store import RecordStore, StoreError
from .sync_client import Accepted, RemoteSyncClient, TransportFailure

logger = logging.getLogger(__name__)


@dataclass
class EntitySyncResult:
    """Outcome of one entity type's share of a pass."""
    succeeded: int = 0
    failed: int = 0
    error: Optional[str] = None  # set when a store failure aborted the type

    def to_dict(self) -> dict:
        return {"succeeded": self.succeeded, "failed": self.failed, "error": self.error}


class SyncExecutor:
    def __init__(self, entity_type: EntityType, store: RecordStore, client: RemoteSyncClient):
        self.entity_type = EntityType(entity_type)
        self.store = store
        self.client = client

    async def run(self) -> EntitySyncResult:
        """Submit every pending record once. Never raises."""
        result = EntitySyncResult()
        name = self.entity_type.value

        try:
            records = await asyncio.to_thread(self.store.list_pending)
        except StoreError as exc:
            logger.error("Aborting %s sync: %s", name, exc)
            result.error = str(exc)
            return result

        if not records:
            return result
        logger.info("Syncing %d unsynced %s records", len(records), name)

        for record in records:
            try:
                outcome = await self.client.submit(self.entity_type, record)
            except Exception as exc:
                logger.exception("Unexpected error submitting %s %s", name, record.local_id)
                outcome = TransportFailure(str(exc) or exc.__class__.__name__)

            try:
                if isinstance(outcome, Accepted):
                    await asyncio.to_thread(
                        self.store.mark_synced, record.local_id, outcome.server_id, outcome.server_ref
                    )
                    result.succeeded += 1
                    logger.debug("%s %s synced as %s", name, record.local_id, outcome.server_id)
                else:
                    await asyncio.to_thread(self.store.mark_failed, record.local_id, outcome.message)
                    result.failed += 1
                    logger.warning(
                        "%s %s failed (%s): %s",
                        name, record.local_id, type(outcome).__name__, outcome.message,
                    )
            except StoreError as exc:
                # The record keeps its previous state and is picked up next pass
                logger.error("Aborting %s sync after store failure: %s", name, exc)
                result.failed += 1
                result.error = str(exc)
                return result

        return result
