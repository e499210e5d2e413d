"""API routes for the local embedding server."""

from typing import Any, Dict

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ..encoders.embedding_manager import EmbeddingManager
from .handler import RequestHandler

logger = structlog.get_logger("embedding_service.api")

router = APIRouter()


def get_request_handler(request: Request) -> RequestHandler:
    """Get request handler from application state."""
    return request.app.state.request_handler


@router.post("/embed")
async def embed(request: Request) -> JSONResponse:
    """Generate an embedding for ``{"text": ..., "size": ...}``.

    The body is validated by ``RequestHandler`` rather than FastAPI so that
    invalid input yields the same 400 payload as the deployed function.
    Inference runs in the threadpool; concurrent requests share one model.
    """
    handler = get_request_handler(request)
    body = await request.body()
    response = await run_in_threadpool(handler.handle, body)
    return JSONResponse(status_code=response.status_code, content=response.body)


@router.get("/models")
async def model_info(request: Request) -> Dict[str, Any]:
    """Describe the loaded model."""
    handler = get_request_handler(request)
    manager = EmbeddingManager(handler.provider.get(), handler.metrics_collector)
    return manager.model_info()
