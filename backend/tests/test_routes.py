from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

pytestmark = pytest.mark.unit

from livecall.core.config import settings
from livecall.main import create_app
from livecall.services.livekit_service import LiveKitRequestError
from tests.fakes.fake_clients import FailingCallRecordStore, FakeLiveKitService


def _create(client, **overrides) -> dict:
    payload = {"callType": "web", "metadata": {"first_name": "Ann", "postal_code": "SW1A 1AA"}}
    payload.update(overrides)
    response = client.post("/api/calls", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_call_then_read_detail(client) -> None:
    bundle = _create(client)

    assert bundle["roomName"].startswith("call-")
    assert bundle["participantName"].startswith("user-")
    assert bundle["status"] == "created"
    assert bundle["accessToken"]
    assert bundle["liveKitUrl"] == "wss://livekit.example.test"
    assert bundle["metadata"]["first_name"] == "Ann"
    assert bundle["metadata"]["phone_number"] is None

    response = client.get(f"/api/calls/{bundle['roomName']}/detail")

    assert response.status_code == 200
    detail = response.json()
    assert detail["call_id"] == bundle["roomName"]
    assert detail["input_data"]["first_name"] == "Ann"
    assert detail["input_data"]["postal_code"] == "SW1A 1AA"
    assert detail["status"] == "pending"
    assert detail["output_view"] == {"kind": "none"}


@pytest.mark.parametrize(
    "body, error",
    [
        ({"callType": "fax"}, "Invalid call type"),
        ({}, "Invalid call type"),
        ({"callType": "phone"}, "Phone number required for phone calls"),
    ],
)
def test_create_call_validation(client, fake_livekit, body, error) -> None:
    response = client.post("/api/calls", json=body)

    assert response.status_code == 400
    assert response.json()["error"] == error
    assert fake_livekit.dispatches == []


def test_create_call_without_livekit(store, tmp_path) -> None:
    app = create_app(store=store, livekit=FakeLiveKitService(configured=False), data_root=tmp_path)
    with TestClient(app) as client:
        response = client.post("/api/calls", json={"callType": "web"})
        status = client.get("/api/calls/call-AbCd1234")
        teardown = client.delete("/api/calls/call-AbCd1234")

    assert response.status_code == 500
    assert response.json()["missingVars"] == ["LIVEKIT_URL", "LIVEKIT_API_KEY", "LIVEKIT_API_SECRET"]
    assert status.status_code == 503
    assert status.json()["status"] == "not_available"
    assert teardown.status_code == 503
    assert teardown.json()["status"] == "cleanup_failed"


def test_create_call_dispatch_failure(store, tmp_path) -> None:
    livekit = FakeLiveKitService(dispatch_error=LiveKitRequestError("no agent workers"))
    app = create_app(store=store, livekit=livekit, data_root=tmp_path)
    with TestClient(app) as client:
        response = client.post("/api/calls", json={"callType": "web"})

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Failed to create call"
    assert body["details"] == "no agent workers"
    assert store.list(10) == []


def test_call_status_lifecycle(client, fake_livekit) -> None:
    bundle = _create(client)
    room = bundle["roomName"]

    pending = client.get(f"/api/calls/{room}")
    assert pending.status_code == 200
    assert pending.json()["status"] == "pending"
    assert pending.json()["participantCount"] == 0
    assert pending.json()["creationTime"] is None

    fake_livekit.open_room(room, participants=2)
    active = client.get(f"/api/calls/{room}")
    assert active.json()["status"] == "active"
    assert active.json()["participantCount"] == 2

    first = client.delete(f"/api/calls/{room}")
    second = client.delete(f"/api/calls/{room}")
    assert first.status_code == 200
    assert first.json()["status"] == "ended"
    assert second.status_code == 200
    assert second.json()["status"] == "ended"
    assert second.json()["message"] == "Room was already cleaned up or doesn't exist"


def test_end_call_failure(store, tmp_path) -> None:
    livekit = FakeLiveKitService(delete_error=LiveKitRequestError("forbidden"))
    app = create_app(store=store, livekit=livekit, data_root=tmp_path)
    with TestClient(app) as client:
        response = client.delete("/api/calls/call-AbCd1234")

    assert response.status_code == 500
    assert response.json()["roomName"] == "call-AbCd1234"


def test_output_update_and_read(client) -> None:
    room = _create(client)["roomName"]

    response = client.patch(
        f"/api/calls/{room}/output",
        json={"output_data": {"outcome": "quoted", "collected_data": {"annual_usage": 3100}}},
    )
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["updated_at"].endswith("Z")

    output = client.get(f"/api/calls/{room}/output")
    assert output.status_code == 200
    assert output.json()["output_data"]["outcome"] == "quoted"

    detail = client.get(f"/api/calls/{room}/detail").json()
    assert detail["status"] == "quoted"
    assert detail["output_view"]["kind"] == "collected_data"
    assert detail["output_view"]["entries"][0]["label"] == "Annual Usage"


def test_output_update_accepts_bare_object(client) -> None:
    room = _create(client)["roomName"]

    client.patch(f"/api/calls/{room}/output", json={"notes": "left voicemail"})

    assert client.get(f"/api/calls/{room}/output").json()["output_data"] == {"notes": "left voicemail"}


def test_output_for_unknown_call(client) -> None:
    patch = client.patch("/api/calls/call-missing/output", json={"output_data": {"outcome": "x"}})
    read = client.get("/api/calls/call-missing/output")
    detail = client.get("/api/calls/call-missing/detail")

    for response in (patch, read, detail):
        assert response.status_code == 404
        assert response.json() == {"error": "Call record not found", "call_id": "call-missing"}


def test_list_calls_pagination(client) -> None:
    rooms = [_create(client)["roomName"] for _ in range(3)]

    first = client.get("/api/calls/list", params={"page": 1, "limit": 2}).json()
    second = client.get("/api/calls/list", params={"page": 2, "limit": 2}).json()

    assert [call["call_id"] for call in first["calls"]] == [rooms[2], rooms[1]]
    assert first["pagination"] == {"page": 1, "limit": 2, "hasMore": True, "total": 2}
    assert [call["call_id"] for call in second["calls"]] == [rooms[0]]
    assert second["pagination"]["hasMore"] is False
    assert second["pagination"]["total"] == 3
    assert first["calls"][0]["customer_name"] == "Ann"
    assert first["calls"][0]["postal_code"] == "SW1A 1AA"
    assert first["calls"][0]["status"] == "pending"


@pytest.mark.parametrize("params", [{"page": 0}, {"limit": 0}, {"limit": 500}])
def test_list_calls_rejects_bad_pagination(client, params) -> None:
    response = client.get("/api/calls/list", params=params)

    assert response.status_code == 400


def test_store_failures_surface_as_server_errors(fake_livekit, tmp_path) -> None:
    app = create_app(store=FailingCallRecordStore(), livekit=fake_livekit, data_root=tmp_path)
    with TestClient(app) as client:
        created = client.post("/api/calls", json={"callType": "web"})
        listing = client.get("/api/calls/list")
        detail = client.get("/api/calls/call-AbCd1234/detail")

    assert created.status_code == 201
    assert listing.status_code == 500
    assert listing.json()["error"] == "Failed to fetch calls list"
    assert detail.status_code == 500
    assert detail.json()["call_id"] == "call-AbCd1234"


def test_livekit_status(client, store, tmp_path) -> None:
    ready = client.get("/api/livekit-status")

    assert ready.status_code == 200
    assert ready.json()["configured"] is True
    assert ready.json()["missingVars"] == []

    app = create_app(store=store, livekit=FakeLiveKitService(configured=False), data_root=tmp_path)
    with TestClient(app) as other:
        missing = other.get("/api/livekit-status")

    assert missing.status_code == 503
    assert missing.json()["configured"] is False
    assert missing.json()["setupUrl"].startswith("https://")


def test_create_call_accepts_numeric_metadata(client, fake_livekit) -> None:
    bundle = _create(
        client,
        metadata={"first_name": "Ann", "electricity_quote_annual_cost": 1234.5, "gas_quote_annual_cost": 980},
    )

    assert bundle["metadata"]["electricity_quote_annual_cost"] == 1234.5
    assert fake_livekit.tokens[0]["name"] == "Ann"
    detail = client.get(f"/api/calls/{bundle['roomName']}/detail").json()
    assert detail["input_data"]["gas_quote_annual_cost"] == 980


@pytest.mark.parametrize("params", [{"page": "two"}, {"limit": "ten"}, {"page": "1.5"}])
def test_list_calls_rejects_non_integer_pagination(client, params) -> None:
    response = client.get("/api/calls/list", params=params)

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid pagination parameters")


def test_output_update_rejects_non_object_body(client) -> None:
    room = _create(client)["roomName"]

    response = client.patch(f"/api/calls/{room}/output", json=[{"outcome": "quoted"}])

    assert response.status_code == 400
    assert response.json()["error"] == "Output data must be a JSON object"
    assert client.get(f"/api/calls/{room}/output").json()["output_data"] is None


def test_run_serves_app_on_configured_address(monkeypatch) -> None:
    import livecall.main as main_module

    served = {}
    monkeypatch.setattr(settings, "APP_HOST", "127.0.0.1")
    monkeypatch.setattr(settings, "APP_PORT", 8123)
    monkeypatch.setattr(main_module.uvicorn, "run", lambda app, **kwargs: served.update(app=app, **kwargs))

    main_module.run()

    assert served == {"app": main_module.app, "host": "127.0.0.1", "port": 8123}


def test_numeric_first_name_becomes_token_display_name(client, fake_livekit) -> None:
    _create(client, metadata={"first_name": 42})

    assert fake_livekit.tokens[0]["name"] == "42"
