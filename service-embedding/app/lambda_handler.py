"""Serverless entry point.

The hosting runtime imports this module once per execution environment and
then calls ``lambda_handler`` for every invocation. Logging, configuration
and the request handler are set up on the first call and reused afterwards;
the model context is loaded on that first call and never again.
"""

import base64
import binascii
import threading
import time
from typing import Any, Dict, Optional

import structlog

from libs.common.config import EmbeddingConfig
from libs.common.logging import configure_logging, get_logger, log_performance
from .api.handler import HandlerResponse, RequestHandler
from .errors import InputError
from .runtime.context import get_context_provider
from .runtime.metrics import SERVICE_NAME, get_metrics_collector

logger = get_logger("embedding_service.lambda")

JSON_HEADERS = {"content-type": "application/json"}

_handler: Optional[RequestHandler] = None
_handler_lock = threading.Lock()


def get_request_handler() -> RequestHandler:
    """Build the process-wide ``RequestHandler`` on first use.

    Loads the model context eagerly so a ``ModelLoadError`` surfaces here,
    before any request is served.
    """
    global _handler
    if _handler is None:
        with _handler_lock:
            if _handler is None:
                config = EmbeddingConfig()
                configure_logging(SERVICE_NAME, config.ml_log_level, config.ml_log_format, env=config.ml_env)
                metrics_collector = get_metrics_collector(SERVICE_NAME, enabled=config.ml_metrics_enabled)
                provider = get_context_provider(config)
                provider.ensure_ready()
                _handler = RequestHandler(provider, config, metrics_collector)
                logger.info("Cold start complete", model_name=config.ml_model_name)
    return _handler


def is_http_event(event: Dict[str, Any]) -> bool:
    """True for function URL / API Gateway envelopes, with or without a body."""
    return "body" in event or "requestContext" in event or "version" in event


def extract_body(event: Dict[str, Any]) -> Any:
    """Pull the request body out of an invocation event.

    HTTP events (function URL / API Gateway v2) carry the payload as a string
    in ``body``, base64-encoded when ``isBase64Encoded`` is set, and omit
    ``body`` entirely when the request had none. Direct invocations pass the
    payload itself as the event.
    """
    if not is_http_event(event):
        return event

    body = event.get("body")
    if body is not None and event.get("isBase64Encoded"):
        try:
            return base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InputError.invalid_json(f"body is not valid base64: {e}") from e
    return body


def to_http_response(response: HandlerResponse) -> Dict[str, Any]:
    return {
        "statusCode": response.status_code,
        "headers": dict(JSON_HEADERS),
        "body": response.to_json(),
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Function entry point.

    Args:
        event (dict): HTTP event or direct-invocation payload.
        context: runtime context object; only the request id is used.

    Raises ``ModelLoadError`` when the model cannot be loaded, failing the
    invocation at the platform level instead of returning a response.
    """
    start_time = time.time()
    handler = get_request_handler()

    request_id = getattr(context, "aws_request_id", None)
    structlog.contextvars.bind_contextvars(request_id=request_id)
    try:
        try:
            body = extract_body(event) if isinstance(event, dict) else event
        except InputError as e:
            response = handler.error_response(e)
        else:
            response = handler.handle(body)
        log_performance("invocation", (time.time() - start_time) * 1000, status_code=response.status_code)
    finally:
        structlog.contextvars.unbind_contextvars("request_id")

    return to_http_response(response)
