"""Tests for common utilities."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from libs.common.config import BaseConfig, EmbeddingConfig, get_config
from libs.common.logging import configure_logging, get_logger, log_performance
from libs.common.metrics import MetricsCollector, measure_time


def test_config_loading():
    """Test configuration loading."""
    config = BaseConfig()
    assert config.ml_env == "local"
    assert config.ml_log_level == "INFO"
    assert config.ml_log_format == "json"


def test_embedding_config():
    """Test embedding configuration defaults."""
    config = EmbeddingConfig()
    assert config.ml_embedding_port == 9006
    assert config.ml_max_text_length == 100_000
    assert config.ml_max_sequence_length == 8192
    assert config.ml_default_dimension == 768
    assert config.ml_intra_op_threads == 1
    assert config.ml_prompt_template == "title: none | text: {text}"
    assert config.model_path == Path("model") / "model_quantized.onnx"
    assert config.tokenizer_path == Path("model") / "tokenizer.json"


def test_embedding_config_from_environment(monkeypatch):
    """Settings are read from ML_* environment variables."""
    monkeypatch.setenv("ML_MODEL_DIR", "/var/task/model")
    monkeypatch.setenv("ML_MAX_TEXT_LENGTH", "500")
    config = EmbeddingConfig()
    assert config.model_path == Path("/var/task/model/model_quantized.onnx")
    assert config.ml_max_text_length == 500


def test_embedding_config_rejects_invalid_limits():
    """Limits must be positive."""
    with pytest.raises(ValidationError):
        EmbeddingConfig(ml_max_sequence_length=0)


def test_get_config():
    """Test config selection by name."""
    assert isinstance(get_config("embedding"), EmbeddingConfig)
    assert type(get_config("unknown")) is BaseConfig


def test_logging_configuration():
    """Test logging configuration."""
    # This should not raise an exception
    configure_logging("test-service", "INFO", "json")
    configure_logging("test-service", "debug", "console", env="test")


def test_log_performance():
    configure_logging("test-service", "INFO", "json")
    assert get_logger("performance") is not None
    log_performance("invocation", 12.5, status_code=200)


def test_metrics_collector():
    """Test metrics collector."""
    collector = MetricsCollector("test-service")
    assert collector.service_name == "test-service"

    collector.record_http_request("POST", "/api/v1/embed", 200, 0.1)
    collector.record_embedding("test-model", 256, 0.05, token_count=12)
    collector.record_error("invalid_size", 400)
    collector.set_model_load_duration("test-model", 1.5)

    metrics = collector.get_metrics()
    assert isinstance(metrics, str)
    assert "http_requests_total" in metrics
    sample = collector.registry.get_sample_value
    assert sample("ml_embedding_requests_total", {"model_name": "test-model", "dimensions": "256"}) == 1.0
    assert sample("ml_embedding_input_tokens_count", {"model_name": "test-model"}) == 1.0
    assert sample("ml_embedding_errors_total", {"code": "invalid_size", "status": "400"}) == 1.0
    assert sample("ml_model_load_duration_seconds", {"model_name": "test-model"}) == 1.5


def test_disabled_metrics_collector_records_nothing():
    collector = MetricsCollector("test-service", enabled=False)

    collector.record_http_request("POST", "/api/v1/embed", 200, 0.1)
    collector.record_embedding("test-model", 256, 0.05, token_count=12)
    collector.record_error("invalid_size", 400)
    collector.set_model_load_duration("test-model", 1.5)

    sample = collector.registry.get_sample_value
    assert sample("http_requests_total", {"method": "POST", "endpoint": "/api/v1/embed", "status": "200"}) is None
    assert sample("ml_embedding_requests_total", {"model_name": "test-model", "dimensions": "256"}) is None
    assert sample("ml_embedding_errors_total", {"code": "invalid_size", "status": "400"}) is None
    assert sample("ml_model_load_duration_seconds", {"model_name": "test-model"}) is None


def test_measure_time_reraises():
    """Decorated functions keep their result and their exceptions."""
    @measure_time("ok")
    def ok():
        return 42

    @measure_time("boom")
    def boom():
        raise RuntimeError("boom")

    assert ok() == 42
    with pytest.raises(RuntimeError):
        boom()
