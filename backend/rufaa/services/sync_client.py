"""
Remote sync client.
Maps one local record to one POST against the remote service and classifies
the answer as Accepted, Rejected or TransportFailure. It never touches the
local store and never raises for network conditions.
"""
import json
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

import httpx
from pydantic import ValidationError

from ..core.config import settings
from .entities import ENTITY_BINDINGS, EntityBinding, EntityType, SyncResponse, ValidationErrorResponse
from .record_store import SyncableRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Accepted:
    server_id: str
    server_ref: Optional[str] = None


@dataclass(frozen=True)
class Rejected:
    """Structured ``success=false`` answer; retried verbatim on the next pass."""
    message: str


@dataclass(frozen=True)
class TransportFailure:
    """Timeout, connection error or an unstructured server error."""
    message: str


Outcome = Union[Accepted, Rejected, TransportFailure]


def _default_base_url() -> str:
    return settings.API_BASE_URL


def _default_token() -> Optional[str]:
    return settings.API_TOKEN


class RemoteSyncClient:
    """HTTP client for the record registration endpoints.

    ``base_url_provider`` and ``token_provider`` are called on every submit so
    that a base URL or token changed at runtime applies to the next request.
    """

    def __init__(
        self,
        base_url_provider: Optional[Callable[[], str]] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        bindings: Optional[Dict[EntityType, EntityBinding]] = None,
    ):
        self._base_url_provider = base_url_provider or _default_base_url
        self._token_provider = token_provider or _default_token
        self._timeout = timeout
        self._transport = transport
        self._bindings = bindings or ENTITY_BINDINGS

    async def submit(self, entity_type: EntityType, record: SyncableRecord) -> Outcome:
        binding = self._bindings[EntityType(entity_type)]
        try:
            body = binding.build_request(record.payload)
        except ValidationError as exc:
            return Rejected(f"Local record is incomplete: {exc.errors()[0].get('msg', exc)}")

        base_url = self._base_url_provider().rstrip("/") + "/"
        timeout = self._timeout if self._timeout is not None else settings.SYNC_REQUEST_TIMEOUT_SECONDS
        headers = {"Accept": "application/json"}
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            async with httpx.AsyncClient(
                base_url=base_url, timeout=timeout, transport=self._transport
            ) as client:
                resp = await client.post(binding.endpoint, json=body, headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning("Timeout posting %s %s: %s", binding.entity_type.value, record.local_id, exc)
            return TransportFailure(f"Request timed out after {timeout:.0f}s")
        except httpx.HTTPError as exc:
            logger.warning("Transport error posting %s %s: %s", binding.entity_type.value, record.local_id, exc)
            return TransportFailure(str(exc) or exc.__class__.__name__)

        return self._classify(binding, resp)

    @staticmethod
    def _classify(binding: EntityBinding, resp: httpx.Response) -> Outcome:
        try:
            raw = resp.json()
        except (json.JSONDecodeError, ValueError):
            raw = None

        if resp.is_success:
            if not isinstance(raw, dict):
                return TransportFailure(f"HTTP {resp.status_code}: malformed response body")
            try:
                parsed = SyncResponse.model_validate(raw)
            except ValidationError:
                return TransportFailure(f"HTTP {resp.status_code}: unexpected response shape")
            if not parsed.success:
                return Rejected(parsed.message or "Rejected by server")
            ids = binding.extract_ids(parsed.data)
            if ids is None:
                return TransportFailure(f"Response is missing '{binding.server_id_key}'")
            return Accepted(server_id=ids[0], server_ref=ids[1])

        # Non-2xx: only a structured body counts as a business rejection
        if isinstance(raw, dict):
            if raw.get("success") is False and raw.get("message"):
                return Rejected(str(raw["message"]))
            if "errors" in raw and raw.get("message"):
                try:
                    return Rejected(ValidationErrorResponse.model_validate(raw).summary())
                except ValidationError:
                    pass
        text = resp.text[:200] if resp.text else resp.reason_phrase
        return TransportFailure(f"HTTP {resp.status_code}: {text}")
