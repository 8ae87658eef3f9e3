import pytest
from fastapi.testclient import TestClient

import routers.deps
from conftest import TODAY, FakeProvider, FakeTransport, flat_price
from main import create_app

WATCH_BODY = {
    "origin": "nyc",
    "destination": "lax",
    "start": "2025-12-01",
    "end": "2025-12-10",
    "flexDays": 3,
    "tripType": "roundtrip",
    "targetUsd": 500,
    "maxStops": 1,
    "email": "traveller@example.com",
}


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def client(engine, transport):
    app = create_app(
        engine=engine,
        provider=FakeProvider(flat_price(450.0)),
        transport=transport,
        enable_scheduler=False,
        today=lambda: TODAY,
        sleep=lambda s: None,
    )
    with TestClient(app) as c:
        yield c


def create_watch(client, **overrides):
    body = dict(WATCH_BODY)
    body.update(overrides)
    resp = client.post("/watch", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["database"] == "ok"
    assert resp.json()["scheduler"] is False


def test_create_watch_returns_201(client):
    watch = create_watch(client)

    assert watch["id"]
    assert watch["origin"] == "NYC"
    assert watch["destination"] == "LAX"
    assert watch["userId"] == "anon"
    assert watch["lastBestUsd"] is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"end": "2025-11-20"},
        {"start": "2025-10-01", "end": "2025-10-05"},
        {"cabin": "LUXURY"},
        {"maxStops": -1},
        {"targetUsd": 0},
        {"start": "not-a-date"},
        {"destination": "NYC"},
    ],
)
def test_create_watch_validation_is_400(client, overrides):
    body = dict(WATCH_BODY)
    body.update(overrides)

    resp = client.post("/watch", json=body)

    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["error"] == "Validation failed"
    assert detail["details"]


def test_list_watches_by_user(client):
    create_watch(client, userId="alice")
    create_watch(client, userId="alice", destination="SFO")
    create_watch(client, userId="bob")

    resp = client.get("/watch", params={"userId": "alice"})

    assert resp.status_code == 200
    assert [w["destination"] for w in resp.json()] == ["SFO", "LAX"]


def test_get_missing_watch_is_404(client):
    assert client.get("/watch/does-not-exist").status_code == 404


def test_patch_updates_policy_fields(client):
    watch = create_watch(client)

    resp = client.patch(f"/watch/{watch['id']}", json={"targetUsd": 420, "active": False})

    assert resp.status_code == 200
    assert resp.json()["targetUsd"] == 420
    assert resp.json()["active"] is False


def test_patch_revalidates_window(client):
    watch = create_watch(client)
    resp = client.patch(f"/watch/{watch['id']}", json={"end": "2025-11-15"})
    assert resp.status_code == 400


def test_patch_ignores_price_state_fields(client):
    watch = create_watch(client)
    resp = client.patch(f"/watch/{watch['id']}", json={"lastBestUsd": 1, "id": "other"})
    assert resp.status_code == 200
    assert resp.json()["lastBestUsd"] is None
    assert resp.json()["id"] == watch["id"]


def test_patch_missing_watch_is_404(client):
    assert client.patch("/watch/nope", json={"targetUsd": 100}).status_code == 404


def test_delete_watch(client):
    watch = create_watch(client)

    resp = client.delete(f"/watch/{watch['id']}")
    assert resp.status_code == 200
    assert resp.json() == {"status": "deleted", "id": watch["id"]}
    assert client.delete(f"/watch/{watch['id']}").status_code == 404


def test_trigger_then_alert_history(client, transport):
    watch = create_watch(client)

    resp = client.post(f"/watch/{watch['id']}/trigger")

    assert resp.status_code == 200
    body = resp.json()
    assert body["action"] == "NOTIFY"
    assert body["best"]["total"] == 450.0
    assert body["notification"]["status"] == "sent"
    assert len(transport.sent) == 1

    again = client.post(f"/watch/{watch['id']}/trigger").json()
    assert again["action"] == "NOOP"
    assert again["reason"] == "already notified at this price"

    alerts = client.get(f"/watch/{watch['id']}/alerts").json()
    assert len(alerts) == 1
    assert alerts[0]["newPrice"] == 450.0
    assert alerts[0]["sent"] is True


def test_trigger_missing_watch_is_404(client):
    assert client.post("/watch/nope/trigger").status_code == 404


def test_run_sweep_and_info(client):
    create_watch(client)
    create_watch(client, targetUsd=100)

    resp = client.post("/watch/run")

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["summary"] == {"total": 2, "notified": 1, "noop": 1, "errors": 0}
    assert len(body["results"]) == 2

    info = client.get("/watch/run").json()
    assert info["stats"]["totalWatches"] == 2
    assert info["stats"]["activeWatches"] == 2
    assert info["stats"]["lastSummary"]["notified"] == 1
    assert info["schedule"]["enabled"] is False


def test_sweep_in_progress_is_409(client):
    coordinator = client.app.state.coordinator
    coordinator._lock.acquire()
    try:
        assert client.post("/watch/run").status_code == 409
    finally:
        coordinator._lock.release()


def test_admin_token_guards_sweep(client, monkeypatch):
    monkeypatch.setattr(routers.deps, "ADMIN_API_TOKEN", "secret")

    assert client.post("/watch/run").status_code == 401
    assert client.post("/watch/run", headers={"X-Admin-Token": "Bearer secret"}).status_code == 200
    # Read-only info stays open
    assert client.get("/watch/run").status_code == 200
