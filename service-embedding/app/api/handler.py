"""Transport-independent request handling for the embedding function.

``RequestHandler.handle`` takes a raw request body and returns a status code
plus a JSON-serializable body. Both the serverless adapter and the local
FastAPI server go through it, so validation and error mapping live in one
place.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

from libs.common.config import EmbeddingConfig
from ..encoders.embedding_manager import (
    DEFAULT_DIMENSION,
    SUPPORTED_DIMENSIONS,
    EmbeddingManager,
)
from ..errors import EmbeddingError, InputError
from ..runtime.context import ModelContextProvider
from ..runtime.metrics import SERVICE_NAME, MetricsCollector, get_metrics_collector

logger = structlog.get_logger("embedding_service.handler")

RawBody = Union[bytes, bytearray, str, Mapping[str, Any], None]


class EmbedRequest(BaseModel):
    """Parsed request payload. Immutable once validated."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    text: StrictStr = Field(..., description="The text to embed")
    size: StrictInt = Field(DEFAULT_DIMENSION, description="Output dimension: 768, 512, 256, or 128")


class EmbedResponse(BaseModel):
    """Successful response payload."""

    embedding: List[float] = Field(..., description="Unit-length embedding vector")
    dimensions: int = Field(..., description="Number of entries in the embedding")


class ErrorResponse(BaseModel):
    """Error response payload."""

    error: str = Field(..., description="Human-readable reason")
    code: str = Field(..., description="Machine-readable reason")


@dataclass(frozen=True)
class HandlerResponse:
    """Status code and JSON body produced for one request."""

    status_code: int
    body: Dict[str, Any]

    def to_json(self) -> str:
        return json.dumps(self.body)


class RequestHandler:
    """Validates requests and drives the pipeline.

    Parameters
    - provider: the process's ``ModelContextProvider``
    - config: ``EmbeddingConfig`` supplying the text length limit and the
      default dimension
    - metrics_collector: optional collector; defaults to the process-wide one
    """

    def __init__(
        self,
        provider: ModelContextProvider,
        config: Optional[EmbeddingConfig] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self.provider = provider
        self.config = config or EmbeddingConfig()
        self.metrics_collector = metrics_collector or get_metrics_collector(SERVICE_NAME)

        if self.config.ml_default_dimension not in SUPPORTED_DIMENSIONS:
            raise ValueError(
                f"ml_default_dimension {self.config.ml_default_dimension} "
                f"is not one of {list(SUPPORTED_DIMENSIONS)}"
            )

    def parse(self, raw_body: RawBody) -> EmbedRequest:
        """Decode and validate a request body.

        Raises ``InputError`` for anything the caller got wrong.
        """
        if isinstance(raw_body, Mapping):
            payload = dict(raw_body)
        elif isinstance(raw_body, (bytes, bytearray, str)):
            if len(raw_body) == 0:
                raise InputError.invalid_json("request body is empty")
            try:
                payload = json.loads(raw_body)
            except (ValueError, UnicodeDecodeError) as e:
                raise InputError.invalid_json(str(e)) from e
        else:
            reason = "request body is empty" if raw_body is None else "unsupported body type"
            raise InputError.invalid_json(reason)

        if not isinstance(payload, dict):
            raise InputError("Request body must be a JSON object")

        payload.setdefault("size", self.config.ml_default_dimension)
        try:
            request = EmbedRequest.model_validate(payload)
        except ValidationError as e:
            raise self._input_error_from_validation(e) from e

        if not request.text:
            raise InputError.empty_text()
        if len(request.text) > self.config.ml_max_text_length:
            raise InputError.text_too_long(len(request.text), self.config.ml_max_text_length)
        if request.size not in SUPPORTED_DIMENSIONS:
            raise InputError.invalid_size(request.size, SUPPORTED_DIMENSIONS)

        return request

    @staticmethod
    def _input_error_from_validation(error: ValidationError) -> InputError:
        first = error.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "body"
        if field == "size":
            return InputError(
                f"Invalid size: must be one of: {list(SUPPORTED_DIMENSIONS)}",
                code="invalid_size",
            )
        if field == "text" and first.get("type") == "missing":
            return InputError("Missing required field: text", code="empty_text")
        return InputError(f"Invalid field '{field}': {first.get('msg', 'invalid value')}")

    def handle(self, raw_body: RawBody) -> HandlerResponse:
        """Handle one request.

        ``ModelLoadError`` is not converted: it propagates to the caller.
        """
        try:
            request = self.parse(raw_body)
        except InputError as e:
            logger.warning("Rejected invalid request", code=e.code, error=e.message)
            return self.error_response(e)

        manager = EmbeddingManager(self.provider.get(), self.metrics_collector)
        try:
            result = manager.embed(request.text, request.size)
        except EmbeddingError as e:
            return self.error_response(e)

        return HandlerResponse(
            status_code=200,
            body=EmbedResponse(embedding=result.to_list(), dimensions=result.dimensions).model_dump(),
        )

    def error_response(self, error: EmbeddingError) -> HandlerResponse:
        self.metrics_collector.record_error(error.code, error.status_code)
        body = ErrorResponse(error=error.user_message(), code=error.code)
        return HandlerResponse(status_code=error.status_code, body=body.model_dump())
