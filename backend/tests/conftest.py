"""Shared fixtures: an isolated SQLite database per test and a scripted remote service."""
import json
from typing import Callable, List

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from rufaa.models.base import Base
from rufaa.models import assessment, patient, preference, vitals  # noqa: F401
from rufaa.services.entities import ENTITY_BINDINGS, EntityType
from rufaa.services.record_store import RecordStore

BASE_URL = "http://visits.test/api/"


@pytest.fixture()
def session_factory(tmp_path):
    """Fresh file-backed SQLite; executors reach it from worker threads."""
    test_engine = create_engine(
        f"sqlite:///{tmp_path / 'rufaa-test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=test_engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=test_engine)
    yield factory
    test_engine.dispose()


@pytest.fixture()
def stores(session_factory):
    return {
        entity_type: RecordStore(entity_type.value, binding.model, session_factory)
        for entity_type, binding in ENTITY_BINDINGS.items()
    }


@pytest.fixture()
def patient_store(stores):
    return stores[EntityType.PATIENT]


def make_patient(store: RecordStore, unique_id: str, **overrides):
    fields = dict(
        firstname="Amina",
        lastname="Otieno",
        unique_id=unique_id,
        dob="1990-04-12",
        gender="Female",
        reg_date="2024-03-01",
    )
    fields.update(overrides)
    return store.add(**fields)


class FakeRemote:
    """Scripted stand-in for the patient visit service behind httpx.MockTransport.

    ``responders`` are consumed one per request; once exhausted every request
    gets ``default``. A responder is either an ``httpx.Response`` or an
    exception instance to raise.
    """

    def __init__(self, default: Callable[[httpx.Request], httpx.Response] = None):
        self.requests: List[httpx.Request] = []
        self.responders: list = []
        self._default = default or self.accept
        self._next_id = 100

    def accept(self, request: httpx.Request) -> httpx.Response:
        self._next_id += 1
        if request.url.path.endswith("patients/register"):
            data = {"proceed": self._next_id}
        elif request.url.path.endswith("visits/add"):
            data = {"id": self._next_id, "visit_id": self._next_id + 5000}
        else:
            data = {"id": self._next_id}
        return httpx.Response(200, json={"success": True, "message": "Saved", "code": 200, "data": data})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responders:
            responder = self.responders.pop(0)
            if isinstance(responder, Exception):
                raise responder
            if callable(responder):
                return responder(request)
            return responder
        return self._default(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def bodies(self) -> list:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture()
def remote():
    return FakeRemote()
