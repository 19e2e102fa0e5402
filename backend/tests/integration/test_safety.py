from fastapi.testclient import TestClient
import pytest

T0 = 1_700_000_100_000_000

RECORD = {"ts_start": T0, "ts_end": T0 + 300_000_000, "site_id": "s1", "cpu_util": 0.5, "energy_j": 1000.0}


@pytest.mark.parametrize("path", ["/enst/compute", "/enst/stream", "/enst/leaderboard", "/replay/stats"])
def test_invalid_work_units_mode_rejected(client: TestClient, path):
    """Only infra and domain may be requested; infra_fallback is an outcome."""
    for mode in ("gpu", "infra_fallback", ""):
        response = client.post(path, json={"records": [RECORD], "work_units_mode": mode})
        assert response.status_code == 422


def test_negative_gpu_weight_rejected(client: TestClient):
    response = client.post("/enst/compute", json={"records": [RECORD], "gpu_weight": -1})
    assert response.status_code == 422


@pytest.mark.parametrize("policy", [
    {"throttle_factor": 2.0},
    {"throttle_factor": -0.1},
    {"energy_cap_w": "high"},
])
def test_bad_policy_rejected(client: TestClient, policy):
    response = client.post("/replay/impact", json={"records": [RECORD], "policy": policy})
    assert response.status_code == 422


def test_missing_policy_rejected(client: TestClient):
    response = client.post("/replay/impact", json={"records": [RECORD]})
    assert response.status_code == 422


def test_malformed_records_never_fail_request(client: TestClient):
    records = [RECORD, {"ts_start": "yesterday"}, {"ts_start": T0, "cpu_util": "NaN"}, "garbage", 42, None]
    response = client.post("/enst/compute", json={"records": records})
    assert response.status_code == 200
    data = response.json()
    assert data["skipped"] == 4
    assert len(data["records"]) == 2
    assert data["records"][1]["cpu_util"] is None


@pytest.mark.parametrize("path", ["/enst/stream", "/enst/leaderboard", "/replay/stats"])
def test_non_object_records_skipped_on_every_route(client: TestClient, path):
    response = client.post(path, json={"records": [RECORD, "garbage", 42]})
    assert response.status_code == 200


def test_stream_reports_skipped_header(client: TestClient):
    response = client.post("/enst/stream", json={"records": [RECORD, [1, 2], "x"]})
    assert response.headers["X-Skipped-Records"] == "2"


def test_request_id_middleware(client: TestClient):
    """Ensure X-Request-ID header is present."""
    response = client.get("/health")
    assert response.status_code == 200
    assert "X-Request-ID" in response.headers
    assert len(response.headers["X-Request-ID"]) > 10


def test_request_id_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "trace-abc-123456"})
    assert response.headers["X-Request-ID"] == "trace-abc-123456"


def test_invalid_mode_env_fails_startup(make_client):
    with pytest.raises(ValueError):
        make_client(ENST_WORK_UNITS_MODE="gpu")
