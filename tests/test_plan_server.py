"""
Tests for plan_server.py using Flask's test client.
"""
import pytest

import plan_server

KEY = {"X-API-Key": "s3cret"}


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("MINTABI_DB", str(tmp_path / "plans.db"))
    monkeypatch.setattr(plan_server, "API_SECRET", "s3cret")
    plan_server._stores.clear()
    plan_server.app.config["TESTING"] = True
    with plan_server.app.test_client() as c:
        yield c
    plan_server._stores.clear()


def create(client, **body):
    body.setdefault("title", "Kyoto")
    r = client.post("/api/plans", json=body, headers=KEY)
    assert r.status_code == 201
    return r.get_json()["id"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Auth
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_health(client, tmp_path):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.get_json()["db"] == str(tmp_path / "plans.db")


def test_missing_key_is_401(client):
    assert client.post("/api/plans", json={"title": "x"}).status_code == 401


def test_wrong_key_is_403(client):
    r = client.post("/api/plans", json={"title": "x"}, headers={"X-API-Key": "nope"})
    assert r.status_code == 403


def test_unset_secret_is_503(client, monkeypatch):
    monkeypatch.setattr(plan_server, "API_SECRET", "")
    assert client.post("/api/plans", json={"title": "x"}, headers=KEY).status_code == 503


def test_reads_need_no_key(client):
    plan_id = create(client)
    assert client.get(f"/api/plans/{plan_id}").status_code == 200


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Plans
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_create_seeds_plan(client):
    plan_id = create(client, title="Kyoto")
    plan = client.get(f"/api/plans/{plan_id}").get_json()["plan"]
    assert plan["title"] == "Kyoto"
    assert [c["id"] for c in plan["cards"]] == ["c1", "c2", "c3", "c4", "c5"]
    assert [d["id"] for d in plan["days"]] == ["day-0", "day-1"]


def test_create_with_cards(client):
    plan_id = create(client, cards=[{"id": "x1", "title": "嵐山"}])
    plan = client.get(f"/api/plans/{plan_id}").get_json()["plan"]
    assert [c["id"] for c in plan["cards"]] == ["x1"]
    assert plan["cards"][0]["columnId"] == "stock"


def test_create_requires_title(client):
    r = client.post("/api/plans", json={"title": "  "}, headers=KEY)
    assert r.status_code == 400


def test_get_missing(client):
    assert client.get("/api/plans/nope").status_code == 404


def test_patch(client):
    plan_id = create(client)
    r = client.patch(f"/api/plans/{plan_id}", json={"title": "Osaka", "cards": []}, headers=KEY)
    assert r.status_code == 200
    plan = r.get_json()["plan"]
    assert plan["title"] == "Osaka"
    assert plan["cards"] == []
    assert len(plan["days"]) == 2


@pytest.mark.parametrize("body", [
    {},
    {"createdAt": "2020-01-01"},
    {"title": ""},
    {"cards": "not a list"},
    {"cards": [{"id": "", "title": "x"}]},
    {"cards": [{"id": "a", "title": "x", "category": "hotel"}]},
    {"days": [{"id": "day-0"}]},
])
def test_patch_rejects_bad_bodies(client, body):
    plan_id = create(client)
    assert client.patch(f"/api/plans/{plan_id}", json=body, headers=KEY).status_code == 400


def test_patch_missing(client):
    r = client.patch("/api/plans/nope", json={"title": "x"}, headers=KEY)
    assert r.status_code == 404


def test_delete(client):
    plan_id = create(client)
    r = client.delete(f"/api/plans/{plan_id}", headers=KEY)
    assert r.status_code == 200
    assert r.get_json()["deleted"] is True
    assert client.get(f"/api/plans/{plan_id}").status_code == 404
    assert client.delete(f"/api/plans/{plan_id}", headers=KEY).status_code == 404
