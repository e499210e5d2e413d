"""Configuration management for the embedding function.

This module centralizes environment-driven configuration. It builds on
``pydantic_settings.BaseSettings`` so configuration can be provided via
environment variables, ``.env`` files, or defaults.

Highlights
- Strongly-typed settings with sensible defaults
- One place to discover the ``ML_*`` environment variables
- A small service-specific subclass to keep concerns clear

Usage
- Inject the config in your entrypoint: ``config = EmbeddingConfig()``
- Or select dynamically: ``config = get_config("embedding")``
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration shared by every entrypoint.

    Field names map to upper-case environment variables (``ml_log_level`` is
    read from ``ML_LOG_LEVEL``). Defaults keep local development convenient
    while still being explicit.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    # Environment
    ml_env: str = Field(default="local", description="Deployment environment name")

    # Logging
    ml_log_level: str = Field(default="INFO")
    ml_log_format: str = Field(default="json")

    # Observability
    ml_metrics_enabled: bool = Field(default=True)


class EmbeddingConfig(BaseConfig):
    """Configuration for the embedding function and its local dev server.

    Model artifacts live under ``ml_model_dir``; both the weights file and the
    tokenizer file must exist there before the model context can be built.
    """

    ml_embedding_port: int = Field(default=9006)

    # Model artifacts
    ml_model_dir: str = Field(default="model")
    ml_model_file: str = Field(default="model_quantized.onnx")
    ml_tokenizer_file: str = Field(default="tokenizer.json")
    ml_model_name: str = Field(default="embeddinggemma-300m-q4")

    # Pipeline
    ml_prompt_template: str = Field(default="title: none | text: {text}")
    ml_max_text_length: int = Field(default=100_000, gt=0)
    ml_max_sequence_length: int = Field(default=8192, gt=0)
    ml_default_dimension: int = Field(default=768)

    # ONNX Runtime
    ml_intra_op_threads: int = Field(default=1, ge=0)

    @property
    def model_path(self) -> Path:
        """Full path of the ONNX weights file."""
        return Path(self.ml_model_dir) / self.ml_model_file

    @property
    def tokenizer_path(self) -> Path:
        """Full path of the tokenizer configuration file."""
        return Path(self.ml_model_dir) / self.ml_tokenizer_file


def get_config(service_name: str) -> BaseConfig:
    """Get configuration for a named entrypoint.

    Parameters
    - service_name: ``embedding`` for the function; anything else yields the
      shared ``BaseConfig``.
    """
    config_map = {
        "embedding": EmbeddingConfig,
    }

    config_class = config_map.get(service_name, BaseConfig)
    return config_class()
