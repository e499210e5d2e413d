"""Tests for the local development server."""

import pytest
from fastapi.testclient import TestClient

from libs.common import metrics as metrics_module
from app import main as server
from app.errors import ModelLoadError
from app.runtime.context import ModelContextProvider

from .conftest import make_provider


@pytest.fixture
def client(monkeypatch, tmp_path):
    monkeypatch.setenv("ML_MODEL_DIR", str(tmp_path))
    monkeypatch.setattr(server, "get_context_provider", lambda config: make_provider())
    with TestClient(server.app) as test_client:
        yield test_client


def test_embed_success(client):
    response = client.post("/api/v1/embed", json={"text": "Rust is amazing", "size": 256})

    assert response.status_code == 200
    body = response.json()
    assert body["dimensions"] == 256
    assert len(body["embedding"]) == 256
    assert "X-Process-Time" in response.headers


def test_embed_default_size(client):
    response = client.post("/api/v1/embed", json={"text": "default size"})
    assert response.status_code == 200
    assert response.json()["dimensions"] == 768


def test_embed_invalid_size_is_400(client):
    """Validation errors use the function's payload, not a 422."""
    response = client.post("/api/v1/embed", json={"text": "hello", "size": 999})
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_size"


def test_embed_malformed_json_is_400(client):
    response = client.post(
        "/api/v1/embed",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_json"


def test_models_endpoint(client):
    response = client.get("/api/v1/models")
    assert response.status_code == 200
    assert response.json()["supported_dimensions"] == [768, 512, 256, 128]


def test_probes(client):
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/live").json()["status"] == "alive"

    ready = client.get("/ready")
    assert ready.status_code == 200
    assert ready.json()["model_name"] == "fake-model"
    assert ready.json()["hidden_dim"] == 768


def test_metrics_endpoint(client):
    client.post("/api/v1/embed", json={"text": "counted", "size": 128})
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "ml_embedding_requests_total" in response.text


def test_root_lists_endpoints(client):
    body = client.get("/").json()
    assert body["endpoints"]["embed"] == "/api/v1/embed"


def test_startup_fails_when_model_cannot_load(monkeypatch, tmp_path):
    def loader():
        raise ModelLoadError("Missing model artifacts: model/tokenizer.json")

    monkeypatch.setenv("ML_MODEL_DIR", str(tmp_path))
    monkeypatch.setattr(server, "get_context_provider", lambda config: ModelContextProvider(loader))

    with pytest.raises(ModelLoadError):
        with TestClient(server.app):
            pass


def test_metrics_disabled(monkeypatch, tmp_path):
    """With metrics off, requests still succeed but nothing is recorded or served."""
    monkeypatch.setenv("ML_MODEL_DIR", str(tmp_path))
    monkeypatch.setenv("ML_METRICS_ENABLED", "false")
    monkeypatch.setattr(metrics_module, "_metrics_collector", None)
    monkeypatch.setattr(server, "get_context_provider", lambda config: make_provider())

    with TestClient(server.app) as client:
        response = client.post("/api/v1/embed", json={"text": "not counted", "size": 128})
        assert response.status_code == 200

        assert client.get("/metrics").status_code == 404

        collector = server.app.state.metrics_collector
        assert collector.enabled is False
        assert collector.registry.get_sample_value(
            "ml_embedding_requests_total", {"model_name": "fake-model", "dimensions": "128"}
        ) is None
