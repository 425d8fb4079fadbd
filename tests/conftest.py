"""Pytest fixtures for testing."""
import uuid
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from organ_care.main import app
from organ_care.passcode import PasscodeGate
from organ_care.snapshot import LiveSnapshot
from organ_care.store import DocumentStore

# Fixed wall clock: one-year threshold is 2025-10-19
NOW = datetime(2026, 10, 19, 10, 30)

# calculate_expected_passcode("1234") == "2620"
FIXED_HINT = "1234"
FIXED_PASSCODE = "2620"


@pytest.fixture()
def store(tmp_path) -> DocumentStore:
    s = DocumentStore(tmp_path / "test.sqlite")
    s.ensure_schema()
    return s


@pytest.fixture()
def snapshot(store):
    snap = LiveSnapshot(clock=lambda: NOW)
    snap.attach(store)
    yield snap
    snap.detach()


@pytest.fixture()
def organ_factory(store):
    def make(location_id="cps-central", **fields):
        organ = {
            "id": fields.pop("id", None) or str(uuid.uuid4()),
            "model": "Rodgers 538",
            "serialNumber": "SN-001",
            "patrimonyNumber": "PAT-100",
            "churchLocation": "Nave principal",
            "locationId": location_id,
            **fields,
        }
        store.set("organs", organ["id"], organ)
        return organ

    return make


@pytest.fixture()
def maintenance_factory(store):
    def make(organ_id, date="2026-06-01", **fields):
        maintenance = {
            "id": fields.pop("id", None) or str(uuid.uuid4()),
            "organId": organ_id,
            "date": date,
            "technicians": ["Ana"],
            "occurrence": "Afinação geral",
            "hasPartExchange": False,
            "photos": [],
            **fields,
        }
        store.set("maintenances", maintenance["id"], maintenance)
        return maintenance

    return make


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("DB_DIR", str(tmp_path))
    monkeypatch.setenv("DB_FILE", "api.sqlite")
    with TestClient(app) as c:
        app.state.snapshot.clock = lambda: NOW
        app.state.sessions.gate_factory = lambda: PasscodeGate(hint_factory=lambda: FIXED_HINT)
        yield c


@pytest.fixture()
def auth_headers(client) -> dict[str, str]:
    response = client.post("/auth/anonymous")
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}
