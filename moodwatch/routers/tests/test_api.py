"""HTTP tests for the health, sensor and collection routes."""

from __future__ import annotations

from typing import Iterator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from moodwatch.config import get_settings
from moodwatch.main import create_app
from moodwatch.sampling import config_loader
from moodwatch.sampling.config_loader import ConfigValidationError
from moodwatch.services.sink import InMemoryDocumentSink


@pytest.fixture
def env(monkeypatch) -> Iterator[pytest.MonkeyPatch]:
    monkeypatch.setenv("SINK_BACKEND", "memory")
    monkeypatch.setenv("AUDIO_BACKEND", "none")
    monkeypatch.setenv("ENABLE_PERIODIC_LOOP", "false")
    monkeypatch.setenv("ENABLE_AUDIO_LOOP", "false")
    monkeypatch.setenv("USER_ID", "apiUser")
    monkeypatch.setenv("RANDOM_SEED", "99")
    monkeypatch.delenv("DEVICE_TOKEN", raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


@pytest.fixture
def client(env) -> Iterator[TestClient]:
    with TestClient(create_app()) as c:
        yield c


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        res = client.get("/health")
        assert res.status_code == 200
        body = res.json()
        assert body["status"] == "healthy"
        assert body["sink"] == "memory"
        assert body["sink_reachable"] is True
        assert body["collecting"] is False


class TestSensor:
    def test_no_reading_yet(self, client: TestClient) -> None:
        assert client.get("/api/v1/sensor/heart-rate").status_code == 404

    def test_push_and_read(self, client: TestClient) -> None:
        res = client.post("/api/v1/sensor/heart-rate", json={"bpm": 72, "observed_at": 1000})
        assert res.status_code == 202
        assert res.json() == {"bpm": 72.0, "observed_at": 1000}
        assert client.get("/api/v1/sensor/heart-rate").json()["bpm"] == 72.0

    def test_future_timestamp_rejected(self, client: TestClient) -> None:
        res = client.post(
            "/api/v1/sensor/heart-rate", json={"bpm": 80, "observed_at": 32_503_680_000_000}
        )
        assert res.status_code == 422
        assert client.get("/api/v1/sensor/heart-rate").status_code == 404

    def test_implausible_bpm_rejected(self, client: TestClient) -> None:
        res = client.post("/api/v1/sensor/heart-rate", json={"bpm": 500})
        assert res.status_code == 422

    def test_disabled_sensor(self, env) -> None:
        env.setenv("SENSOR_ENABLED", "false")
        get_settings.cache_clear()
        with TestClient(create_app()) as c:
            res = c.post("/api/v1/sensor/heart-rate", json={"bpm": 72})
        assert res.status_code == 409


class TestCollection:
    def test_periodic_fallback_without_reading(self, client: TestClient) -> None:
        res = client.post("/api/v1/collect/periodic")
        assert res.status_code == 200
        body = res.json()
        assert body["sample"]["is_fallback"] is True
        assert 60 <= body["sample"]["heart_rate_avg"] <= 85
        assert body["write"]["ok"] is True
        assert body["write"]["collection_path"] == "users/apiUser/raw_periodic"
        assert body["write"]["document_id"] == str(body["sample"]["timestamp"])

    def test_periodic_live_after_push(self, client: TestClient) -> None:
        client.post("/api/v1/sensor/heart-rate", json={"bpm": 72})
        sample = client.post("/api/v1/collect/periodic").json()["sample"]
        assert sample["is_fallback"] is False
        assert sample["heart_rate_avg"] == 72
        assert sample["heart_rate_min"] == 67
        assert sample["heart_rate_max"] == 82

    def test_audio_tick_with_denied_microphone(self, client: TestClient) -> None:
        first = client.post("/api/v1/collect/audio").json()
        assert first["action"] == "dummy"
        assert first["is_silent"] is True
        assert first["event"]["is_fallback"] is True
        assert first["event"]["event_dbfs"] == 70
        second = client.post("/api/v1/collect/audio").json()
        assert second["action"] == "skipped"
        assert second["event"] is None

    def test_manual_event(self, client: TestClient) -> None:
        res = client.post("/api/v1/events/dummy", json={"event_type": "sigh"})
        assert res.status_code == 201
        event = res.json()["event"]
        assert event["event_type_guess"] == "sigh"
        assert 50 <= event["event_dbfs"] <= 85
        assert 500 <= event["event_duration_ms"] <= 4000
        assert event["storage_path"].startswith("gs://mood-manager-storage/audio/dummy_sigh_")

    def test_manual_unknown_rejected(self, client: TestClient) -> None:
        res = client.post("/api/v1/events/dummy", json={"event_type": "unknown"})
        assert res.status_code == 422

    def test_status(self, client: TestClient) -> None:
        client.post("/api/v1/collect/periodic")
        body = client.get("/api/v1/status").json()
        assert body["user_id"] == "apiUser"
        assert body["sensor"] == "available"
        assert body["audio"] == "denied"
        loops = {loop["name"]: loop for loop in body["loops"]}
        assert loops["periodic"]["enabled"] is False
        assert loops["periodic"]["running"] is False
        assert loops["periodic"]["last"]["is_fallback"] is True
        assert loops["audio"]["last"]["last_real_event_ms"] == 0


class TestDeviceToken:
    @pytest.fixture
    def secured(self, env) -> Iterator[TestClient]:
        env.setenv("DEVICE_TOKEN", "s3cret")
        get_settings.cache_clear()
        with TestClient(create_app()) as c:
            yield c

    def test_missing_token(self, secured: TestClient) -> None:
        assert secured.get("/api/v1/status").status_code == 401

    def test_wrong_token(self, secured: TestClient) -> None:
        res = secured.get("/api/v1/status", headers={"X-Device-Token": "nope"})
        assert res.status_code == 401

    def test_valid_token(self, secured: TestClient) -> None:
        res = secured.get("/api/v1/status", headers={"X-Device-Token": "s3cret"})
        assert res.status_code == 200

    def test_health_is_public(self, secured: TestClient) -> None:
        assert secured.get("/health").status_code == 200


class TestLifespan:
    def test_sink_opened_before_loops_start(self, env, monkeypatch) -> None:
        sink = InMemoryDocumentSink()
        sink.open = AsyncMock()
        sink.close = AsyncMock()
        monkeypatch.setattr("moodwatch.main.create_sink", lambda settings: sink)
        with TestClient(create_app()) as c:
            assert c.get("/health").status_code == 200
        sink.open.assert_awaited_once()
        sink.close.assert_awaited_once()


class TestConfigReload:
    def test_reload(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(config_loader, "_config", None)
        res = client.post("/api/v1/config/reload")
        assert res.status_code == 200
        assert res.json() == {"previous_version": "1.0", "version": "1.0"}

    def test_invalid_config_keeps_old(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(config_loader, "_config", None)
        current = config_loader.get_sampling_config()

        def broken(path=None):
            raise ConfigValidationError("sampling_config.yaml has 1 validation error(s)")

        monkeypatch.setattr("moodwatch.routers.collection.reload_sampling_config", broken)
        res = client.post("/api/v1/config/reload")
        assert res.status_code == 422
        assert config_loader.get_sampling_config() is current
