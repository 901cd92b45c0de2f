from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from annuity.api.app import create_app
from annuity.crypto.sig import pubkey_for, sign_tx_envelope
from annuity.ledger.constants import CONTRACT_ACCOUNT_ID, SECONDS_PER_YEAR
from annuity.ledger.fixed_point import FixedPointError
from annuity.runtime.executor import AnnuityExecutor
from annuity.runtime.genesis_config import GenesisConfig

T0 = 1_700_000_000

SEEDS = {"alice": "11" * 32, "bob": "22" * 32}


@pytest.fixture
def executor(clock, token) -> AnnuityExecutor:
    return AnnuityExecutor(
        contract_id=CONTRACT_ACCOUNT_ID,
        token=token,
        clock=clock,
        genesis=GenesisConfig(
            created_at=T0,
            balances={"alice": 1000, "bob": 1000},
            keys={name: [pubkey_for(seed)] for name, seed in SEEDS.items()},
        ),
    )


@pytest.fixture
def client(executor, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.delenv("ANNUITY_MAX_REQUEST_BYTES", raising=False)
    monkeypatch.delenv("ANNUITY_SIZE_LIMIT_DISABLE", raising=False)
    app = create_app(boot_runtime=False)
    app.state.executor = executor
    return TestClient(app)


def _signed(executor, tx_type: str, signer: str, *, seed: str = "", nonce: int = 0, **payload) -> dict:
    if not nonce:
        nonce = int(executor.read_state().get("nonces", {}).get(signer, 0)) + 1
    tx = {"tx_type": tx_type, "signer": signer, "nonce": nonce, "payload": payload}
    return sign_tx_envelope(tx=tx, contract_id=executor.contract_id, privkey=seed or SEEDS[signer])


def _submit(c: TestClient, tx_type: str, signer: str, **payload):
    ex = c.app.state.executor
    return c.post("/v1/tx/submit", json=_signed(ex, tx_type, signer, **payload))


def test_health_without_executor() -> None:
    app = create_app(boot_runtime=False)
    assert getattr(app.state, "executor", None) is None
    r = TestClient(app).get("/v1/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.json()["executor"] is False


def test_boot_runtime_attaches_built_executor(monkeypatch: pytest.MonkeyPatch) -> None:
    from annuity.api import app as api_app

    # create_app writes the resolved config back into the environment.
    for k in ("ANNUITY_CONFIG_PATH", "ANNUITY_CONTRACT_ID", "ANNUITY_MODE", "ANNUITY_DB_PATH",
              "ANNUITY_GENESIS_PATH", "ANNUITY_API_HOST", "ANNUITY_API_PORT", "ANNUITY_LOG_LEVEL"):
        monkeypatch.setenv(k, "")
    monkeypatch.setattr(api_app, "build_executor", lambda: SimpleNamespace(contract_id="ANNUITY-TEST"))
    app = api_app.create_app(boot_runtime=True)
    assert app.state.executor.contract_id == "ANNUITY-TEST"


def test_submit_and_read_back(client: TestClient, executor, clock) -> None:
    r = _submit(client, "INCREASE_BALANCE_AND_STAKE", "alice", amount=1000)
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["receipt"]["balance"] == 1000
    assert "x-request-id" in r.headers

    clock.advance(SECONDS_PER_YEAR)

    r = client.get("/v1/accounts/alice")
    assert r.status_code == 200
    st = r.json()["state"]
    assert st["balance"] == 1000
    assert st["status"] == 1
    assert st["status_name"] == "STAKE"

    r = client.get("/v1/supply")
    j = r.json()
    assert j["circulating"] == 1000
    assert j["total_staking"] == 2000
    assert j["total_payout"] == 0
    assert j["fully_diluted"] == 3000
    assert j["end_interest_time"] == executor.get_end_interest_time()

    r = client.get("/v1/events", params={"account": "alice"})
    assert [e["event"] for e in r.json()["events"]] == ["STATUS_CHANGE", "BALANCE_INCREASE"]


def test_apply_errors_map_to_400(client: TestClient) -> None:
    r = _submit(client, "COLLECT_PAYOUT", "alice")
    assert r.status_code == 400
    err = r.json()["error"]
    assert (err["code"], err["message"]) == ("nothing_to_payout", "nothing_to_payout")

    r = _submit(client, "START_PAYOUT", "alice")
    assert r.json()["error"]["message"] == "already_in_payout"

    r = _submit(client, "INCREASE_BALANCE_AND_STAKE", "alice", amount="lots")
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "payload_schema_mismatch"


def test_token_errors_map_to_400(client: TestClient) -> None:
    r = _submit(client, "INCREASE_BALANCE_AND_STAKE", "alice", amount=10**6)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "insufficient_funds"


def test_fixed_point_errors_map_to_400(client: TestClient, executor, monkeypatch: pytest.MonkeyPatch) -> None:
    def _overflow(env):
        raise FixedPointError("overflow", "mul_overflow")

    monkeypatch.setattr(executor, "submit_signed_tx", _overflow)
    r = _submit(client, "START_STAKE", "alice")
    assert r.status_code == 400
    err = r.json()["error"]
    assert (err["code"], err["message"]) == ("overflow", "mul_overflow")


def test_unsigned_or_foreign_signed_calls_are_refused(client: TestClient, executor) -> None:
    r = client.post(
        "/v1/tx/submit",
        json={"tx_type": "FORCE_PAYOUT", "signer": "bob", "nonce": 1,
              "payload": {"amount": 100, "amount_type": "FROM_ACCOUNT"}},
    )
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "bad_sig"

    # alice's key cannot act for bob.
    forged = _signed(executor, "START_PAYOUT", "bob", seed=SEEDS["alice"])
    r = client.post("/v1/tx/submit", json=forged)
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "invalid_signature"

    # Tampering with a signed payload breaks the signature.
    tx = _signed(executor, "INCREASE_BALANCE_AND_STAKE", "bob", amount=10)
    tx["payload"]["amount"] = 1000
    r = client.post("/v1/tx/submit", json=tx)
    assert r.json()["error"]["code"] == "bad_sig"

    assert executor.get_account_balance("bob") == 0
    assert executor.read_events() == []


def test_signed_calls_cannot_be_replayed(client: TestClient, executor) -> None:
    tx = _signed(executor, "INCREASE_BALANCE_AND_STAKE", "alice", amount=100)
    assert client.post("/v1/tx/submit", json=tx).status_code == 200

    r = client.post("/v1/tx/submit", json=tx)
    assert r.status_code == 400
    err = r.json()["error"]
    assert (err["code"], err["message"]) == ("bad_nonce", "nonce_must_be_next")
    assert err["details"] == {"expected": 2, "got": 1}
    assert executor.get_account_balance("alice") == 100

    r = client.post("/v1/tx/submit", json=_signed(executor, "START_PAYOUT", "alice", nonce=5))
    assert r.json()["error"]["code"] == "bad_nonce"


def test_rejected_call_does_not_consume_its_nonce(client: TestClient, executor) -> None:
    assert _submit(client, "COLLECT_PAYOUT", "alice").status_code == 400
    assert executor.read_state().get("nonces", {}).get("alice", 0) == 0
    assert _submit(client, "INCREASE_BALANCE_AND_STAKE", "alice", amount=5).status_code == 200
    assert executor.read_state()["nonces"]["alice"] == 1


def test_pubkey_account_ids_sign_for_themselves(client: TestClient, executor) -> None:
    seed = "33" * 32
    carol = pubkey_for(seed)
    executor.port.mint(carol, 50)

    tx = _signed(executor, "INCREASE_BALANCE_AND_STAKE", carol, seed=seed, amount=50)
    r = client.post("/v1/tx/submit", json=tx)
    assert r.status_code == 200
    assert executor.get_account_balance(carol) == 50


def test_envelope_shape_is_validated(client: TestClient) -> None:
    r = client.post("/v1/tx/submit", json={"tx_type": "START_STAKE"})
    assert r.status_code == 422
    r = client.post("/v1/tx/submit", json={"tx_type": "START_STAKE", "signer": "a", "nonce": 1, "ts": 5})
    assert r.status_code == 422
    r = client.post("/v1/tx/submit", json={"tx_type": "START_STAKE", "signer": "a", "nonce": 0})
    assert r.status_code == 422


def test_request_size_limit_returns_413(executor, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANNUITY_MAX_REQUEST_BYTES", "128")
    app = create_app(boot_runtime=False)
    app.state.executor = executor
    c = TestClient(app)

    r = c.post("/v1/tx/submit", json={"tx_type": "START_STAKE", "signer": "alice", "payload": {"pad": "x" * 500}})
    assert r.status_code == 413
    assert r.json()["error"]["code"] == "tx_too_large"


def test_metrics_endpoint_is_opt_in(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ANNUITY_METRICS_ENABLED", raising=False)
    assert client.get("/v1/metrics").status_code == 404

    monkeypatch.setenv("ANNUITY_METRICS_ENABLED", "1")
    _submit(client, "START_STAKE", "alice")
    r = client.get("/v1/metrics")
    assert r.status_code == 200
    assert "annuity_tx_applied_total 1" in r.text


def test_metrics_scrape_reports_supply_gauges(client: TestClient, executor, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANNUITY_METRICS_ENABLED", "1")
    assert _submit(client, "INCREASE_BALANCE_AND_STAKE", "alice", amount=300).status_code == 200

    r = client.get("/v1/metrics")
    assert r.headers["content-type"].startswith("text/plain; version=0.0.4")
    lines = set(r.text.splitlines())
    assert "annuity_circulating_supply 1700" in lines
    assert "annuity_total_staking_supply 300" in lines
    assert "annuity_total_payout_supply 0" in lines
    assert f"annuity_end_interest_time {executor.get_end_interest_time()}" in lines
