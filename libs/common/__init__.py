"""Common utilities shared by the function handler and the dev server.

Includes:
- ``config``: Pydantic-based configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers and decorators.

Import pattern:
- from libs.common.config import EmbeddingConfig
- from libs.common.logging import configure_logging
"""
