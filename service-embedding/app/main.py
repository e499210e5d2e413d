"""Local development server for the embedding function.

Serves the same ``RequestHandler`` the deployed function uses, over plain
HTTP, with health probes and Prometheus metrics. The model is loaded during
startup; if that fails the server does not start.
"""

import time
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from libs.common.config import EmbeddingConfig
from libs.common.logging import configure_logging
from .api.handler import RequestHandler
from .api.routes import router as api_router
from .runtime.context import get_context_provider
from .runtime.metrics import SERVICE_NAME, get_metrics_collector

logger = structlog.get_logger("embedding_service")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    config = EmbeddingConfig()
    configure_logging(SERVICE_NAME, config.ml_log_level, config.ml_log_format, env=config.ml_env)
    app.state.config = config
    app.state.startup_time = time.time()
    app.state.metrics_collector = get_metrics_collector(SERVICE_NAME, enabled=config.ml_metrics_enabled)

    logger.info("Starting embedding server", model_dir=config.ml_model_dir)

    # ModelLoadError propagates and aborts startup
    provider = get_context_provider(config)
    provider.ensure_ready()
    app.state.provider = provider
    app.state.request_handler = RequestHandler(provider, config, app.state.metrics_collector)

    logger.info("Embedding server started successfully")

    yield

    logger.info("Embedding server shutdown complete")


app = FastAPI(
    title="Embedding Function",
    description="Text to Matryoshka embedding, local development server",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(api_router, prefix="/api/v1")


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Collect metrics and add a processing time header."""
    start_time = time.time()

    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception as e:
        logger.error("Unhandled error", path=request.url.path, error=str(e))
        status_code = 500
        response = JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "code": "internal_error"}
        )

    duration = time.time() - start_time
    response.headers["X-Process-Time"] = str(duration)

    if hasattr(app.state, 'metrics_collector'):
        app.state.metrics_collector.record_http_request(
            method=request.method,
            endpoint=request.url.path,
            status=status_code,
            duration=duration
        )

    return response


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    provider = getattr(app.state, "provider", None)
    if provider is not None and provider.is_ready:
        return {"status": "healthy", "service": SERVICE_NAME}
    return JSONResponse(
        status_code=503,
        content={
            "status": "unhealthy",
            "service": SERVICE_NAME,
            "model_state": provider.state.value if provider else "uninitialized",
        }
    )


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    config = getattr(app.state, "config", None)
    if config is not None and not config.ml_metrics_enabled:
        return JSONResponse(
            status_code=404,
            content={"error": "Metrics are disabled", "code": "metrics_disabled"}
        )

    if hasattr(app.state, 'metrics_collector'):
        metrics_data = app.state.metrics_collector.get_metrics()
        return Response(content=metrics_data, media_type="text/plain")
    else:
        return Response(content="# No metrics available\n", media_type="text/plain")


@app.get("/live")
async def liveness():
    """Liveness probe. Returns quickly if process is responsive."""
    return {
        "status": "alive",
        "service": SERVICE_NAME,
        "uptime_seconds": time.time() - getattr(app.state, "startup_time", time.time())
    }


@app.get("/ready")
async def readiness():
    """Readiness probe. Ready only once the model context is loaded."""
    provider = getattr(app.state, "provider", None)
    if provider is None or not provider.is_ready:
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "service": SERVICE_NAME,
                "model_state": provider.state.value if provider else "uninitialized",
            }
        )

    context = provider.get()
    return {
        "status": "ready",
        "service": SERVICE_NAME,
        "model_name": context.model_name,
        "hidden_dim": context.hidden_dim,
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": SERVICE_NAME,
        "version": "0.1.0",
        "status": "running",
        "endpoints": {
            "embed": "/api/v1/embed",
            "models": "/api/v1/models",
            "metrics": "/metrics",
        },
        "probes": {
            "health": "/health",
            "live": "/live",
            "ready": "/ready"
        }
    }


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=EmbeddingConfig().ml_embedding_port,
        log_level="info"
    )
