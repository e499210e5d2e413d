"""Process-wide model context and its cold-start lifecycle.

The ``ModelContext`` bundles the token codec and the inference engine. It is
built once per process by a ``ModelContextProvider`` and shared read-only by
every request afterwards.

Lifecycle
- ``UNINITIALIZED`` until the first ``get()`` (or an eager ``ensure_ready()``)
- ``LOADING`` while artifacts are read; concurrent callers wait on the lock
- ``READY`` once loaded; terminal, there is no reload path
- ``FATAL`` if loading failed; every later ``get()`` re-raises the same error
"""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

import structlog

from libs.common.config import EmbeddingConfig
from libs.common.metrics import measure_time
from ..encoders.inference import InferenceEngine, OnnxInferenceEngine
from ..encoders.tokenizer import TokenCodec
from ..errors import ModelLoadError
from .metrics import SERVICE_NAME, get_metrics_collector

logger = structlog.get_logger("embedding_service.context")


class ContextState(Enum):
    """Model context lifecycle states."""
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FATAL = "fatal"


@dataclass(frozen=True)
class ModelContext:
    """Loaded model artifacts, immutable after construction."""

    codec: TokenCodec
    engine: InferenceEngine
    model_name: str = "unknown"
    loaded_at: float = field(default_factory=time.time)

    @property
    def hidden_dim(self) -> Optional[int]:
        return self.engine.hidden_dim


@measure_time("model_context_load")
def load_model_context(config: EmbeddingConfig) -> ModelContext:
    """Build a ``ModelContext`` from the artifacts named in ``config``.

    Raises ``ModelLoadError`` if either artifact is missing or invalid.
    """
    model_path = config.model_path
    tokenizer_path = config.tokenizer_path

    missing = [str(p) for p in (model_path, tokenizer_path) if not p.is_file()]
    if missing:
        raise ModelLoadError(f"Missing model artifacts: {', '.join(missing)}")

    codec = TokenCodec.from_file(
        tokenizer_path,
        max_sequence_length=config.ml_max_sequence_length,
        prompt_template=config.ml_prompt_template,
    )
    engine = OnnxInferenceEngine.from_file(
        model_path,
        intra_op_threads=config.ml_intra_op_threads,
    )
    return ModelContext(codec=codec, engine=engine, model_name=config.ml_model_name)


class ModelContextProvider:
    """Exactly-once, lazily initialized holder of the ``ModelContext``.

    Parameters
    - loader: zero-argument callable building the context; any exception it
      raises moves the provider to ``FATAL``
    - model_name: label used in logs and metrics
    """

    def __init__(self, loader: Callable[[], ModelContext], model_name: str = "unknown"):
        self._loader = loader
        self.model_name = model_name
        self._lock = threading.Lock()
        self._state = ContextState.UNINITIALIZED
        self._context: Optional[ModelContext] = None
        self._error: Optional[ModelLoadError] = None

    @property
    def state(self) -> ContextState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ContextState.READY

    def get(self) -> ModelContext:
        """Return the context, loading it on first use."""
        # Fast path: READY is terminal and the context is never replaced.
        context = self._context
        if context is not None:
            return context

        with self._lock:
            if self._state is ContextState.READY:
                return self._context
            if self._state is ContextState.FATAL:
                raise self._error
            return self._load()

    def ensure_ready(self) -> ModelContext:
        """Eagerly initialize; used at process start."""
        return self.get()

    def _load(self) -> ModelContext:
        self._state = ContextState.LOADING
        logger.info("Loading model context", model_name=self.model_name)
        start_time = time.time()

        try:
            context = self._loader()
        except ModelLoadError as e:
            self._fail(e)
            raise
        except Exception as e:
            error = ModelLoadError(f"Model context initialization failed: {e}")
            self._fail(error)
            raise error from e

        duration = time.time() - start_time
        self._context = context
        self._state = ContextState.READY
        get_metrics_collector(SERVICE_NAME).set_model_load_duration(self.model_name, duration)
        logger.info(
            "Model context ready",
            model_name=self.model_name,
            hidden_dim=context.hidden_dim,
            duration_ms=duration * 1000,
        )
        return context

    def _fail(self, error: ModelLoadError) -> None:
        self._error = error
        self._state = ContextState.FATAL
        logger.critical("Model context failed to load", model_name=self.model_name, error=str(error))


_provider: Optional[ModelContextProvider] = None
_provider_lock = threading.Lock()


def get_context_provider(config: Optional[EmbeddingConfig] = None) -> ModelContextProvider:
    """Get or create the process-wide provider.

    The first call fixes the configuration used for loading; later calls
    return the same provider regardless of ``config``.
    """
    global _provider
    if _provider is None:
        with _provider_lock:
            if _provider is None:
                config = config or EmbeddingConfig()
                _provider = ModelContextProvider(
                    lambda: load_model_context(config),
                    model_name=config.ml_model_name,
                )
    return _provider
