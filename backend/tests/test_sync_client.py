"""Tests for the remote sync client's request mapping and response classification."""
import json

import httpx

from rufaa.services.entities import EntityType
from rufaa.services.record_store import SyncableRecord
from rufaa.services.sync_client import Accepted, Rejected, RemoteSyncClient, TransportFailure

from conftest import BASE_URL

PATIENT_PAYLOAD = {
    "firstname": "Amina",
    "lastname": "Otieno",
    "unique_id": "P-001",
    "dob": "1990-04-12",
    "gender": "Female",
    "reg_date": "2024-03-01",
}


def _record(entity_type=EntityType.PATIENT, payload=None):
    return SyncableRecord(
        local_id=1,
        entity_type=entity_type.value,
        payload=payload or dict(PATIENT_PAYLOAD),
        created_at=None,
    )


def _client(remote, **kwargs):
    kwargs.setdefault("base_url_provider", lambda: BASE_URL)
    kwargs.setdefault("token_provider", lambda: None)
    return RemoteSyncClient(transport=remote.transport, timeout=5, **kwargs)


async def test_patient_accepted(remote):
    remote.responders.append(
        httpx.Response(200, json={"success": True, "message": "Registered", "code": 200, "data": {"proceed": 17}})
    )
    outcome = await _client(remote).submit(EntityType.PATIENT, _record())

    assert outcome == Accepted(server_id="17")
    request = remote.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/api/patients/register"
    body = json.loads(request.content)
    assert body["unique"] == "P-001"
    assert "unique_id" not in body


async def test_assessment_keeps_visit_reference(remote):
    payload = {
        "visit_date": "2024-03-01",
        "general_health": "good",
        "on_diet_to_lose_weight": "no",
        "comments": "",
        "patient_id": "P-001",
        "form_type": "A",
    }
    remote.responders.append(
        httpx.Response(200, json={"success": True, "data": {"id": 9, "visit_id": 300}})
    )
    outcome = await _client(remote).submit(
        EntityType.GENERAL_ASSESSMENT, _record(EntityType.GENERAL_ASSESSMENT, payload)
    )
    assert outcome == Accepted(server_id="9", server_ref="300")
    assert remote.requests[0].url.path == "/api/visits/add"
    assert json.loads(remote.requests[0].content)["form_type"] == "A"


async def test_vitals_body_excludes_local_only_fields(remote):
    payload = {
        "visit_date": "2024-03-01", "height": "170", "weight": "65",
        "bmi": "22.49", "bmi_category": "normal", "patient_id": "P-001",
    }
    await _client(remote).submit(EntityType.VITALS, _record(EntityType.VITALS, payload))
    body = json.loads(remote.requests[0].content)
    assert remote.requests[0].url.path == "/api/vital/add"
    assert "bmi_category" not in body
    assert body["bmi"] == "22.49"


async def test_success_false_is_rejected(remote):
    remote.responders.append(
        httpx.Response(200, json={"success": False, "message": "duplicate unique id", "code": 409})
    )
    outcome = await _client(remote).submit(EntityType.PATIENT, _record())
    assert outcome == Rejected("duplicate unique id")


async def test_structured_error_status_is_rejected(remote):
    remote.responders.append(
        httpx.Response(409, json={"success": False, "message": "Patient already exists"})
    )
    outcome = await _client(remote).submit(EntityType.PATIENT, _record())
    assert outcome == Rejected("Patient already exists")


async def test_validation_errors_are_summarised(remote):
    remote.responders.append(
        httpx.Response(422, json={"message": "The given data was invalid.", "errors": {"dob": ["The dob field is required."]}})
    )
    outcome = await _client(remote).submit(EntityType.PATIENT, _record())
    assert isinstance(outcome, Rejected)
    assert outcome.message == "The given data was invalid. (dob: The dob field is required.)"


async def test_unstructured_server_error_is_transport_failure(remote):
    remote.responders.append(httpx.Response(502, text="Bad Gateway"))
    outcome = await _client(remote).submit(EntityType.PATIENT, _record())
    assert outcome == TransportFailure("HTTP 502: Bad Gateway")


async def test_timeout_is_transport_failure(remote):
    remote.responders.append(httpx.ReadTimeout("read timed out"))
    outcome = await _client(remote).submit(EntityType.PATIENT, _record())
    assert outcome == TransportFailure("Request timed out after 5s")


async def test_connection_error_is_transport_failure(remote):
    remote.responders.append(httpx.ConnectError("connection refused"))
    outcome = await _client(remote).submit(EntityType.PATIENT, _record())
    assert isinstance(outcome, TransportFailure)
    assert "connection refused" in outcome.message


async def test_missing_server_id_is_transport_failure(remote):
    remote.responders.append(httpx.Response(200, json={"success": True, "data": {}}))
    outcome = await _client(remote).submit(EntityType.PATIENT, _record())
    assert outcome == TransportFailure("Response is missing 'proceed'")


async def test_non_json_success_body_is_transport_failure(remote):
    remote.responders.append(httpx.Response(200, text="<html>captive portal</html>"))
    outcome = await _client(remote).submit(EntityType.PATIENT, _record())
    assert isinstance(outcome, TransportFailure)


async def test_incomplete_local_record_is_rejected_without_request(remote):
    payload = dict(PATIENT_PAYLOAD)
    del payload["dob"]
    outcome = await _client(remote).submit(EntityType.PATIENT, _record(payload=payload))
    assert isinstance(outcome, Rejected)
    assert remote.requests == []


async def test_base_url_and_token_read_per_request(remote):
    """A changed base URL or token applies to the very next submit."""
    config = {"url": "http://old.test/api/", "token": "t1"}
    client = _client(
        remote,
        base_url_provider=lambda: config["url"],
        token_provider=lambda: config["token"],
    )
    await client.submit(EntityType.PATIENT, _record())
    config.update(url="http://new.test/v2", token="t2")
    await client.submit(EntityType.PATIENT, _record())

    first, second = remote.requests
    assert first.url.host == "old.test"
    assert first.headers["Authorization"] == "Bearer t1"
    assert str(second.url) == "http://new.test/v2/patients/register"
    assert second.headers["Authorization"] == "Bearer t2"


async def test_no_token_sends_no_authorization_header(remote):
    await _client(remote).submit(EntityType.PATIENT, _record())
    assert "Authorization" not in remote.requests[0].headers
