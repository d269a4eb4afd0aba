import numpy as np
import pytest
from fastapi.testclient import TestClient

from api.app import create_app

from conftest import sine_streams


@pytest.fixture
def client():
    return TestClient(create_app())


def _stream(ts, values) -> dict:
    return {"timestamps_ns": [int(t) for t in ts], "values": [float(v) for v in values]}


def _samples(seconds: float = 30.0, fps: float = 30.0) -> list[dict]:
    out = []
    for i in range(int(seconds * fps)):
        t = i / fps
        out.append({
            "timestamp_ns": 1_000_000_000 + int(round(t * 1e9)),
            "face_luma": 120.0 + float(np.sin(2 * np.pi * 1.2 * t)),
            "finger_luma": 200.0 + 10.0 * float(np.sin(2 * np.pi * 1.2 * (t - 0.1))),
            "face_motion_px": 0.1,
            "inertial_g": 0.01,
        })
    return out


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_analyze_sine_streams(client):
    ts, face, finger = sine_streams()
    body = {"channel_a": _stream(ts, face), "channel_b": _stream(ts, finger)}
    response = client.post("/analyze", json=body)
    assert response.status_code == 200
    data = response.json()
    assert data["is_valid"]
    assert data["ptt"]["lag_ms"] == pytest.approx(100.0, abs=5.0)
    assert data["ptt"]["reportable"]
    assert data["drift"]["is_acceptable"]
    assert "total" in data["timings_ms"]


def test_analyze_empty_streams_is_not_an_http_error(client):
    body = {"channel_a": {"timestamps_ns": [], "values": []}, "channel_b": {"timestamps_ns": [], "values": []}}
    response = client.post("/analyze", json=body)
    assert response.status_code == 200
    data = response.json()
    assert not data["is_valid"]
    assert not data["ptt"]["reportable"]
    assert data["ptt"]["message"]


def test_analyze_rejects_mismatched_lengths(client):
    body = {"channel_a": {"timestamps_ns": [1, 2], "values": [1.0]}, "channel_b": {"timestamps_ns": [], "values": []}}
    assert client.post("/analyze", json=body).status_code == 422


def test_session_endpoints_404_before_data(client):
    assert client.get("/session/quality").status_code == 404
    assert client.get("/session/drift").status_code == 404
    assert client.get("/session/result").status_code == 404


def test_session_flow(client):
    response = client.post("/session/samples", json={"samples": _samples()})
    assert response.status_code == 200
    assert response.json()["accepted"] == 900
    assert response.json()["status"] == "collecting"

    quality = client.get("/session/quality", params={"force": True})
    assert quality.status_code == 200
    assert quality.json()["finger"]["active"]

    drift = client.get("/session/drift")
    assert drift.status_code == 200
    assert drift.json()["is_acceptable"]

    measured = client.post("/session/measure", json={"window_seconds": 25})
    assert measured.status_code == 200
    data = measured.json()
    assert data["disclaimer"]
    assert data["is_valid"]
    assert data["ptt"]["lag_ms"] == pytest.approx(100.0, abs=10.0)

    assert client.get("/session/result").status_code == 200

    assert client.post("/session/reset").status_code == 200
    assert client.get("/session/result").status_code == 404


def test_session_rejects_empty_batch(client):
    assert client.post("/session/samples", json={"samples": []}).status_code == 422


def test_measure_window_is_bounded(client):
    assert client.post("/session/measure", json={"window_seconds": 1}).status_code == 422
