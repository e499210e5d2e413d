"""Embedding manager driving the inference pipeline.

Runs tokenize → infer → mean pool → L2 normalize → Matryoshka selection for
one document against a loaded ``ModelContext``. Holds no per-request state,
so one manager is shared by all concurrent requests.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import structlog

from ..errors import EmbeddingError
from ..runtime.context import ModelContext
from ..runtime.metrics import SERVICE_NAME, MetricsCollector, get_metrics_collector
from .pooling import l2_normalize, mean_pool, select_dimensions

logger = structlog.get_logger("embedding_service.embedding_manager")

# Matryoshka prefixes the model was trained for, largest first.
SUPPORTED_DIMENSIONS = (768, 512, 256, 128)
DEFAULT_DIMENSION = 768


@dataclass(frozen=True)
class EmbeddingResult:
    """One output vector and what it took to produce it."""

    embedding: np.ndarray
    dimensions: int
    token_count: int
    latency_ms: float

    def to_list(self) -> List[float]:
        return self.embedding.tolist()


class EmbeddingManager:
    """Generates embeddings with a shared, read-only model context.

    Parameters
    - context: loaded ``ModelContext``
    - metrics_collector: optional collector; defaults to the process-wide one
    """

    def __init__(self, context: ModelContext, metrics_collector: Optional[MetricsCollector] = None):
        self.context = context
        self.metrics_collector = metrics_collector or get_metrics_collector(SERVICE_NAME)

    def embed(self, text: str, size: int = DEFAULT_DIMENSION) -> EmbeddingResult:
        """Embed ``text`` and return a unit vector with ``size`` entries.

        ``size`` is expected to be validated by the caller; an impossible
        size still fails here with ``InferenceError`` rather than producing
        a ragged vector.
        """
        start_time = time.time()

        try:
            tokens = self.context.codec.encode(text)
            hidden_states = self.context.engine.run(tokens)
            pooled = mean_pool(hidden_states, tokens.attention_mask)
            normalized = l2_normalize(pooled)
            embedding = select_dimensions(normalized, size)
        except EmbeddingError as e:
            logger.error(
                "Embedding generation failed",
                model_name=self.context.model_name,
                text_len=len(text),
                dimensions=size,
                code=e.code,
                error=str(e),
            )
            raise

        duration = time.time() - start_time
        self.metrics_collector.record_embedding(
            model_name=self.context.model_name,
            dimensions=size,
            duration=duration,
            token_count=len(tokens),
        )

        logger.info(
            "Embedding generated",
            model_name=self.context.model_name,
            text_len=len(text),
            token_count=len(tokens),
            dimensions=size,
            latency_ms=duration * 1000,
        )

        return EmbeddingResult(
            embedding=embedding,
            dimensions=size,
            token_count=len(tokens),
            latency_ms=duration * 1000,
        )

    def model_info(self) -> Dict[str, Any]:
        """Describe the loaded model."""
        return {
            "name": self.context.model_name,
            "dimension": self.context.hidden_dim,
            "supported_dimensions": list(SUPPORTED_DIMENSIONS),
            "max_length": self.context.codec.max_sequence_length,
            "loaded_at": self.context.loaded_at,
        }
