"""Metrics collection for the embedding function.

Provides a thin convenience wrapper around ``prometheus_client`` so the
handler, the pipeline and the local server record HTTP, embedding, error and
model-load metrics consistently.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per collector (can be injected for testing)
- A decorator is provided for quick timing instrumentation
"""

import time
from functools import wraps
from typing import Any, Callable, Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection.

    Parameters
    - service_name: Logical name used for scoping/labels if desired
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    - enabled: When ``False`` every ``record_*``/``set_*`` call is a no-op
    """

    def __init__(
        self,
        service_name: str,
        registry: Optional[CollectorRegistry] = None,
        enabled: bool = True
    ):
        self.service_name = service_name
        self.enabled = enabled
        self.registry = registry or CollectorRegistry()

        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'endpoint'],
            registry=self.registry
        )

        self.embedding_requests = Counter(
            'ml_embedding_requests_total',
            'Total embedding generation requests',
            ['model_name', 'dimensions'],
            registry=self.registry
        )

        self.embedding_duration = Histogram(
            'ml_embedding_duration_seconds',
            'Embedding generation duration',
            ['model_name', 'dimensions'],
            registry=self.registry
        )

        self.embedding_tokens = Histogram(
            'ml_embedding_input_tokens',
            'Number of tokens fed to the model per request',
            ['model_name'],
            buckets=(8, 32, 128, 512, 2048, 8192),
            registry=self.registry
        )

        self.request_errors = Counter(
            'ml_embedding_errors_total',
            'Embedding requests that ended in an error response',
            ['code', 'status'],
            registry=self.registry
        )

        self.model_load_duration = Gauge(
            'ml_model_load_duration_seconds',
            'Time spent loading the model context at cold start',
            ['model_name'],
            registry=self.registry
        )

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        if not self.enabled:
            return
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_embedding(
        self,
        model_name: str,
        dimensions: int,
        duration: float,
        token_count: Optional[int] = None
    ) -> None:
        """Record embedding generation metrics."""
        if not self.enabled:
            return
        self.embedding_requests.labels(model_name=model_name, dimensions=dimensions).inc()
        self.embedding_duration.labels(model_name=model_name, dimensions=dimensions).observe(duration)
        if token_count is not None:
            self.embedding_tokens.labels(model_name=model_name).observe(token_count)

    def record_error(self, code: str, status: int) -> None:
        """Record an error response by reason code."""
        if not self.enabled:
            return
        self.request_errors.labels(code=code, status=status).inc()

    def set_model_load_duration(self, model_name: str, duration: float) -> None:
        """Set the cold-start model load duration."""
        if not self.enabled:
            return
        self.model_load_duration.labels(model_name=model_name).set(duration)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str, enabled: Optional[bool] = None) -> MetricsCollector:
    """Get or create metrics collector for a service.

    Returns a process-wide singleton to avoid duplicate collectors/labels.
    Passing ``enabled`` switches recording on or off for the whole process.
    """
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
    if enabled is not None:
        _metrics_collector.enabled = enabled
    return _metrics_collector


def measure_time(operation: str, **labels: Any) -> Callable:
    """Decorator to measure function execution time.

    Example
    >>> @measure_time("model_load", model="embeddinggemma")
    ... def load():
    ...     ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration = time.time() - start_time
                logger.info(
                    f"Operation {operation} completed",
                    operation=operation,
                    duration_ms=duration * 1000,
                    **labels
                )
                return result
            except Exception as e:
                duration = time.time() - start_time
                logger.error(
                    f"Operation {operation} failed",
                    operation=operation,
                    duration_ms=duration * 1000,
                    error=str(e),
                    **labels
                )
                raise
        return wrapper
    return decorator
