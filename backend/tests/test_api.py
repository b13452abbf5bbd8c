import pytest
from fastapi.testclient import TestClient

from basketledger.api.deps import db, environment
from basketledger.core.constants import DAY
from basketledger.core.security import create_access_token
from basketledger.main import app

from conftest import OPERATOR, fund


@pytest.fixture()
def client(session, env):
    app.dependency_overrides[db] = lambda: session
    app.dependency_overrides[environment] = lambda: env
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _auth(sub: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(sub)}"}


def _create(client, **overrides) -> dict:
    body = {
        "name": "Treasury Pool",
        "kind": "open_term",
        "stake_fee_rate": 1_000,
        "max_supply": 10_000_000,
        "basket": [{"vault": "vault-a", "weight": 500_000}, {"vault": "vault-b", "weight": 500_000}],
    }
    body.update(overrides)
    r = client.post("/ledgers", json=body, headers=_auth(OPERATOR))
    assert r.status_code == 200, r.text
    return r.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/api/health").status_code == 200


def test_create_requires_operator(client):
    r = client.post(
        "/ledgers",
        json={"name": "x", "kind": "open_term", "max_supply": 1, "basket": []},
        headers=_auth("alice"),
    )
    assert r.status_code == 403
    assert r.json()["detail"] == "operator_only"

    r = client.get("/ledgers", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401


def test_open_term_flow(client, env):
    ledger = _create(client)
    assert ledger["activated"] is True
    assert [a["vault"] for a in ledger["basket"]] == ["vault-a", "vault-b"]

    fund(env, "alice", ledger["address"], 1_000_000)
    r = client.post(f"/ledgers/{ledger['id']}/stake", json={"amount": 1_000_000}, headers=_auth("alice"))
    assert r.status_code == 200, r.text
    assert r.json()["shares"] == 999_000
    assert r.json()["fee"] == 1_000

    r = client.get(f"/ledgers/{ledger['id']}/positions/alice", headers=_auth("alice"))
    assert r.json() == {"owner": "alice", "shares": 999_000, "value": 999_000}

    r = client.get(f"/ledgers/{ledger['id']}", headers=_auth("alice"))
    assert r.json()["basket_value"] == 999_000
    assert r.json()["total_fee"] == 1_000

    r = client.post(f"/ledgers/{ledger['id']}/feed", json={}, headers=_auth(OPERATOR))
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "feed_requires_force"

    env.clock.advance(DAY)
    env.vaults.get("vault-a").accrue(1_000)
    r = client.post(f"/ledgers/{ledger['id']}/feed", json={}, headers=_auth(OPERATOR))
    assert r.status_code == 200, r.text
    assert r.json()["delta"] == 1_000

    r = client.post(f"/ledgers/{ledger['id']}/unstake", json={"amount": 10**9}, headers=_auth("alice"))
    assert r.status_code == 200, r.text
    assert r.json()["paid"] == 1_000_000

    r = client.post(
        f"/ledgers/{ledger['id']}/fees/collect",
        json={"recipient": "treasury"},
        headers=_auth(OPERATOR),
    )
    assert r.json() == {"recipient": "treasury", "amount": 1_000}

    r = client.get("/audit", params={"action": "open.stake"}, headers=_auth(OPERATOR))
    assert [row["actor"] for row in r.json()] == ["alice"]

    r = client.get(f"/ledgers/{ledger['id']}/history", params={"action": "feed"}, headers=_auth(OPERATOR))
    assert [(row["ledger_id"], row["details"]["delta"]) for row in r.json()] == [(ledger["id"], "1000")]
    assert client.get(f"/ledgers/{ledger['id']}/history", headers=_auth("alice")).status_code == 403


def test_errors_map_to_status_codes(client, env):
    ledger = _create(client, max_supply=1_000)
    fund(env, "alice", ledger["address"], 10_000)

    r = client.post(f"/ledgers/{ledger['id']}/stake", json={"amount": 5_000}, headers=_auth("alice"))
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "exceeds_max_supply"

    r = client.post(f"/ledgers/{ledger['id']}/stake", json={"amount": 100}, headers=_auth("mallory"))
    assert r.status_code == 403
    assert r.json()["detail"] == {"code": "not_member", "params": {"address": "mallory"}}

    r = client.get("/ledgers/999", headers=_auth("alice"))
    assert r.status_code == 404

    r = client.put(
        f"/ledgers/{ledger['id']}/settings/fee-rates",
        json={"stake_fee_rate": 60_000, "unstake_fee_rate": 0},
        headers=_auth(OPERATOR),
    )
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "invalid_fee_rate"


def test_fixed_term_flow(client, env):
    ledger = _create(client, name="Term Deposit", kind="fixed_term", lock_period=DAY, stake_fee_rate=0)

    fund(env, "alice", ledger["address"], 1_000_000)
    r = client.post(f"/ledgers/{ledger['id']}/stake", json={"amount": 1_000_000}, headers=_auth("alice"))
    assert r.json()["token_id"] == 1

    r = client.post(f"/ledgers/{ledger['id']}/unstake", json={"token_id": 1}, headers=_auth("alice"))
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "not_matured"

    env.clock.advance(DAY)
    env.vaults.get("vault-b").accrue(700)
    client.post(f"/ledgers/{ledger['id']}/feed", json={}, headers=_auth(OPERATOR))

    r = client.get(f"/ledgers/{ledger['id']}/certificates/1", headers=_auth("alice"))
    assert r.json()["interest"] == 700
    assert r.json()["redeemable"] is True

    r = client.get(f"/ledgers/{ledger['id']}/feed/curve", headers=_auth("alice"))
    assert len(r.json()) == 2

    r = client.post(f"/ledgers/{ledger['id']}/unstake", json={"token_id": 1}, headers=_auth("alice"))
    assert r.json()["paid"] == 1_000_700

    r = client.get(f"/ledgers/{ledger['id']}/report", headers=_auth("alice"))
    assert r.status_code == 200
    assert r.headers["content-disposition"] == 'attachment; filename="Term_Deposit_statement.xlsx"'


def test_unstake_body_needs_exactly_one_target(client):
    ledger = _create(client)
    r = client.post(
        f"/ledgers/{ledger['id']}/unstake",
        json={"amount": 1, "token_id": 1},
        headers=_auth("alice"),
    )
    assert r.status_code == 422
