from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient


# Ensure `backend` package import works regardless of current working directory.
ROOT = Path(__file__).resolve().parents[1]
BACKEND_PATH = ROOT
if str(BACKEND_PATH) not in sys.path:
    sys.path.insert(0, str(BACKEND_PATH))

from livecall.core.config import settings
from livecall.main import create_app
from livecall.services.orchestrator import CallOrchestrator
from livecall.services.storage import SqliteCallRecordStore
from tests.fakes.fake_clients import FakeLiveKitService


@pytest.fixture(autouse=True)
def isolated_data_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data_root = tmp_path / "data"
    monkeypatch.setattr(settings, "DATA_ROOT", data_root)
    monkeypatch.setattr(settings, "SQLITE_PATH", data_root / "calls.db")
    return data_root


@pytest.fixture()
def fake_livekit() -> FakeLiveKitService:
    return FakeLiveKitService()


@pytest.fixture()
def store(isolated_data_root: Path) -> SqliteCallRecordStore:
    return SqliteCallRecordStore(isolated_data_root / "calls.db")


@pytest.fixture()
def orchestrator(fake_livekit: FakeLiveKitService, store: SqliteCallRecordStore) -> CallOrchestrator:
    return CallOrchestrator(fake_livekit, store)


@pytest.fixture()
def app(fake_livekit: FakeLiveKitService, store: SqliteCallRecordStore, isolated_data_root: Path):
    return create_app(store=store, livekit=fake_livekit, data_root=isolated_data_root)


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client
