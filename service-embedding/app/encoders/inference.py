"""Inference engines producing per-token hidden states.

The rest of the pipeline only sees the ``InferenceEngine`` protocol: given a
tokenized document, return a ``[num_tokens, hidden_dim]`` float32 array. The
ONNX Runtime implementation below is the production backend.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

import numpy as np
import onnxruntime as ort
import structlog

from ..errors import InferenceError, ModelLoadError
from .tokenizer import TokenizedInput

logger = structlog.get_logger("embedding_service.inference")


class InferenceEngine(Protocol):
    """Narrow capability interface over a tensor-execution backend."""

    hidden_dim: Optional[int]

    def run(self, tokens: TokenizedInput) -> np.ndarray:
        ...


class OnnxInferenceEngine:
    """Runs a transformer encoder exported to ONNX.

    ``InferenceSession.run`` is safe to call concurrently on one session, and
    every call builds its own input feed, so a single engine is shared by all
    requests in the process.
    """

    def __init__(self, session: Any, hidden_dim: Optional[int] = None):
        self._session = session
        self.input_names = [i.name for i in session.get_inputs()]
        self.output_name = session.get_outputs()[0].name
        self.hidden_dim = hidden_dim if hidden_dim is not None else self._declared_hidden_dim(session)

        for required in ("input_ids", "attention_mask"):
            if required not in self.input_names:
                raise ModelLoadError(
                    f"Model graph has no '{required}' input (inputs: {self.input_names})"
                )

    @staticmethod
    def _declared_hidden_dim(session: Any) -> Optional[int]:
        shape = session.get_outputs()[0].shape
        if shape and isinstance(shape[-1], int):
            return shape[-1]
        return None

    @classmethod
    def from_file(
        cls,
        model_path: Union[str, Path],
        intra_op_threads: int = 1,
    ) -> "OnnxInferenceEngine":
        """Create an ONNX Runtime session for ``model_path``.

        External weight data (``<model>.onnx_data``) must sit next to the
        model file; ONNX Runtime picks it up automatically.
        Raises ``ModelLoadError`` on a missing or invalid model.
        """
        model_path = Path(model_path)
        if not model_path.is_file():
            raise ModelLoadError(f"Model file not found: {model_path}")

        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_BASIC
        options.intra_op_num_threads = intra_op_threads
        options.inter_op_num_threads = 1

        try:
            session = ort.InferenceSession(
                str(model_path),
                sess_options=options,
                providers=["CPUExecutionProvider"],
            )
        except Exception as e:
            logger.error("Failed to create inference session", model_path=str(model_path), error=str(e))
            raise ModelLoadError(f"Failed to load model from {model_path}: {e}") from e

        engine = cls(session)
        logger.info(
            "Loaded ONNX model",
            model_path=str(model_path),
            inputs=engine.input_names,
            output=engine.output_name,
            hidden_dim=engine.hidden_dim,
            intra_op_threads=intra_op_threads,
        )
        return engine

    def _build_feed(self, tokens: TokenizedInput) -> Dict[str, np.ndarray]:
        # Batch of one: [1, seq_len]
        feed = {
            "input_ids": tokens.ids.reshape(1, -1),
            "attention_mask": tokens.attention_mask.reshape(1, -1),
        }
        if "token_type_ids" in self.input_names:
            feed["token_type_ids"] = np.zeros((1, len(tokens)), dtype=np.int64)
        return feed

    def run(self, tokens: TokenizedInput) -> np.ndarray:
        """Return hidden states of shape ``[num_tokens, hidden_dim]``."""
        try:
            outputs = self._session.run([self.output_name], self._build_feed(tokens))
        except Exception as e:
            logger.error("Inference failed", num_tokens=len(tokens), error=str(e))
            raise InferenceError(f"ONNX Runtime error: {e}") from e

        hidden = np.asarray(outputs[0], dtype=np.float32)
        if hidden.ndim != 3 or hidden.shape[0] != 1 or hidden.shape[1] != len(tokens):
            raise InferenceError(
                f"Unexpected output shape {hidden.shape} for {len(tokens)} tokens"
            )
        if self.hidden_dim is not None and hidden.shape[2] != self.hidden_dim:
            raise InferenceError(
                f"Output hidden dim {hidden.shape[2]} does not match model ({self.hidden_dim})"
            )
        return hidden[0]
