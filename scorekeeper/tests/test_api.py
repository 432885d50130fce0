import pytest
from fastapi.testclient import TestClient

from scorekeeper.app.main import app
from scorekeeper.tests.fixtures.findings_factory import (
    UNRELATED_PREDICTION,
    copied_predictions,
    ground_truth,
)


@pytest.fixture
def client(monkeypatch, tmp_path):
    monkeypatch.setenv("SCOREKEEPER_LEDGER_PATH", str(tmp_path / "ledger.sqlite3"))
    with TestClient(app) as test_client:
        yield test_client


def _score(client, **overrides):
    body = {
        "contest_id": "merkl",
        "agent_id": "sol",
        "predicted": copied_predictions() + [UNRELATED_PREDICTION],
        "actual": ground_truth(),
    }
    body.update(overrides)
    return client.post("/audit-runs", json=body)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "scorekeeper"}


def test_create_audit_run(client):
    response = _score(client)
    assert response.status_code == 201

    run = response.json()
    assert run["agent_id"] == "sol"
    assert run["metrics"]["exact"] == 5
    assert run["metrics"]["precision"] == pytest.approx(5 / 6)
    assert run["content_digest"].startswith("SHA-256:")
    assert {m["kind"] for m in run["matches"]} == {"exact", "false_positive"}


def test_history_and_trend(client):
    first = _score(client).json()
    _score(client, predicted=[], supersedes=None)
    _score(client, supersedes=first["audit_run_id"])

    effective = client.get("/agents/sol/history").json()
    everything = client.get("/agents/sol/history", params={"include_superseded": True}).json()
    assert len(everything) == 3
    assert len(effective) == 2
    assert first["audit_run_id"] not in {e["audit_run_id"] for e in effective}

    trend = client.get("/agents/sol/trend", params={"metric": "recall", "window": 5}).json()
    assert trend["metric"] == "recall"
    assert trend["values"] == [0.0, 1.0]
    assert trend["moving_average"] == pytest.approx(0.5)

    by_category = client.get(
        "/agents/sol/trend",
        params={"metric": "recall", "category": "reentrancy"},
    ).json()
    assert by_category["metric"] == "reentrancy.recall"


def test_duplicate_ids_are_a_bad_request(client):
    actual = ground_truth()
    actual[1]["id"] = actual[0]["id"]
    response = _score(client, actual=actual)
    assert response.status_code == 400
    assert "H-01" in response.json()["detail"]


def test_superseding_an_unknown_run_is_rejected(client):
    response = _score(client, supersedes="no-such-run")
    assert response.status_code == 422


def test_unsupported_trend_metric_is_a_bad_request(client):
    response = client.get("/agents/sol/trend", params={"metric": "accuracy"})
    assert response.status_code == 400


def test_unknown_request_fields_are_rejected(client):
    response = _score(client, persona="sol")
    assert response.status_code == 422
