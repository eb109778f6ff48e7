from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from sentinelid.core.bootstrap import build_broker
from sentinelid.core.config import SentinelConfig
from sentinelid.core.config.models import AliasesConfig
from sentinelid.web.api import create_app
from .helpers.fakes import FailingStore, ListLogger


@pytest.fixture
def client(broker):
    return TestClient(create_app(broker))


def test_health_and_features(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok" and body["load_warning"] is None
    assert body["breach_breaker"]["state"] == "CLOSED"
    assert client.get("/v1/features").json()["alias_delete_policy"] == "detach"


def test_alias_lifecycle(client):
    r = client.post("/v1/aliases", json={"name": "sales", "domain": "shop.test", "group": "shopping"})
    assert r.status_code == 201
    alias = r.json()
    assert alias["local"] == "sales@shop.test"
    assert len(alias["password"]) == 16

    listed = client.get("/v1/aliases").json()["aliases"]
    assert [a["id"] for a in listed] == [alias["id"]]
    assert "password" not in listed[0]

    assert client.get(f"/v1/aliases/{alias['id']}").json()["password"] == alias["password"]

    s = client.post("/v1/sessions", json={"site": "shop.test", "aliasId": alias["id"]}).json()
    assert s["aliasLocal"] == "sales@shop.test"

    r = client.delete(f"/v1/aliases/{alias['id']}")
    assert r.status_code == 200
    assert r.json() == {"deleted": alias["id"], "detached_sessions": [s["id"]]}
    sessions = client.get("/v1/sessions").json()["sessions"]
    assert sessions[0]["aliasId"] is None
    assert sessions[0]["aliasLocal"] == "sales@shop.test"


def test_ephemeral_session_open_and_destroy(client):
    s = client.post("/v1/sessions", json={"site": "x.test", "aliasId": "nonexistent"}).json()
    assert s["aliasLocal"] == "(ephemeral)"
    assert s["aliasId"] is None

    tok = client.post(f"/v1/sessions/{s['id']}/open").json()
    assert tok["route"] == f"virtual://{s['id']}"

    assert client.delete(f"/v1/sessions/{s['id']}").status_code == 204
    r = client.delete(f"/v1/sessions/{s['id']}")
    assert r.status_code == 404
    assert r.json()["code"] == "not_found"


def test_validation_errors_are_400(client):
    assert client.post("/v1/sessions", json={"site": "  "}).status_code == 400
    assert client.post("/v1/sessions", json={}).status_code == 400
    r = client.post("/v1/passwords", json={"length": 2})
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"
    r = client.post("/v1/breach-checks", json={"email": ""})
    assert r.status_code == 400


def test_passwords(client):
    r = client.post("/v1/passwords", json={"length": 24})
    assert r.status_code == 200
    assert r.json()["length"] == 24 and len(r.json()["password"]) == 24
    assert client.post("/v1/passwords").json()["length"] == 16


def test_breach_check(client):
    assert client.post("/v1/breach-checks", json={"email": "breach@example.com"}).json()["status"] == "breached"
    assert client.post("/v1/breach-checks", json={"email": "ok@example.com"}).json()["status"] == "clear"


def test_reject_policy_is_409(make_broker):
    b = make_broker(SentinelConfig(aliases=AliasesConfig(delete_policy="reject")))
    c = TestClient(create_app(b))
    a = c.post("/v1/aliases", json={"name": "sales", "domain": "shop.test"}).json()
    c.post("/v1/sessions", json={"site": "shop.test", "aliasId": a["id"]})
    r = c.delete(f"/v1/aliases/{a['id']}")
    assert r.status_code == 409
    assert r.json()["code"] == "referential_integrity"


def test_persistence_failure_is_503(broker):
    log = ListLogger()
    broker.store = FailingStore(broker.store)
    c = TestClient(create_app(broker, logger=log))
    r = c.post("/v1/aliases", json={"name": "sales", "domain": "shop.test"})
    assert r.status_code == 503
    assert r.json()["code"] == "persistence_error"
    assert c.get("/v1/aliases").json()["aliases"] == []
    assert log.messages("error")


def test_alias_list_filters_by_local(client):
    a = client.post("/v1/aliases", json={"name": "sales", "domain": "shop.test"}).json()
    client.post("/v1/aliases", json={"name": "news", "domain": "shop.test"})
    found = client.get("/v1/aliases", params={"local": "Sales@Shop.Test"}).json()["aliases"]
    assert [x["id"] for x in found] == [a["id"]]
    assert len(client.get("/v1/aliases").json()["aliases"]) == 2


def test_unstarted_broker_serves_saved_state(make_broker, paths):
    kept = make_broker().create_alias("sales", "shop.test")
    lazy = build_broker(SentinelConfig(), paths=paths)
    try:
        c = TestClient(create_app(lazy))
        c.post("/v1/aliases", json={"name": "news", "domain": "mail.test"})
        ids = [x["id"] for x in c.get("/v1/aliases").json()["aliases"]]
        assert kept.id in ids and len(ids) == 2
    finally:
        lazy.close()
