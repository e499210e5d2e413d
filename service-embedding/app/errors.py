"""Error taxonomy for the embedding pipeline.

Every pipeline stage raises one of these typed errors. The request handler is
the single place where they are turned into responses: client-class errors
become 400s with their message, server-class errors become 500s with a fixed
generic message. ``ModelLoadError`` is never mapped to a response; it is
fatal for the process.
"""

from typing import Optional, Sequence


GENERIC_SERVER_MESSAGE = "An internal error occurred while processing your request"


class EmbeddingError(Exception):
    """Base class for all pipeline errors."""

    status_code: int = 500
    code: str = "internal_error"
    client_error: bool = False

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def user_message(self) -> str:
        """Message safe to return to the caller."""
        if self.client_error:
            return self.message
        return GENERIC_SERVER_MESSAGE


class InputError(EmbeddingError):
    """Request failed validation; never reaches the model."""

    status_code = 400
    code = "invalid_request"
    client_error = True

    @classmethod
    def empty_text(cls) -> "InputError":
        return cls("Text input cannot be empty", code="empty_text")

    @classmethod
    def text_too_long(cls, got: int, maximum: int) -> "InputError":
        return cls(
            f"Text is too long: {got} characters (max: {maximum})",
            code="text_too_long",
        )

    @classmethod
    def invalid_size(cls, size: object, valid: Sequence[int]) -> "InputError":
        return cls(
            f"Invalid size: {size}. Must be one of: {list(valid)}",
            code="invalid_size",
        )

    @classmethod
    def invalid_json(cls, reason: str) -> "InputError":
        return cls(f"Invalid JSON: {reason}", code="invalid_json")


class TokenizationError(EmbeddingError):
    """Input text could not be converted to tokens."""

    status_code = 400
    code = "tokenization_failed"
    client_error = True

    def user_message(self) -> str:
        return "Failed to process text"


class EmptyMaskError(EmbeddingError):
    """Attention mask selects no tokens, so there is nothing to pool."""

    status_code = 400
    code = "empty_input"
    client_error = True


class InferenceError(EmbeddingError):
    """The numerical runtime failed to produce usable output."""

    status_code = 500
    code = "inference_failed"


class DegenerateVectorError(EmbeddingError):
    """Vector norm is zero or non-finite and cannot be normalized."""

    status_code = 500
    code = "degenerate_vector"


class ModelLoadError(EmbeddingError):
    """Model artifacts could not be loaded at cold start.

    Fatal: no request can be served once this has been raised.
    """

    status_code = 503
    code = "model_unavailable"
