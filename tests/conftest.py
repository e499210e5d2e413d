"""Shared fixtures and test doubles.

The doubles stand in for the tokenizer and the ONNX model so the pipeline can
be exercised without model artifacts. Both are deterministic: the same text
always yields the same tokens, and the same token id always yields the same
hidden-state row.
"""

import numpy as np
import pytest
from prometheus_client import CollectorRegistry

from libs.common.config import EmbeddingConfig
from libs.common.metrics import MetricsCollector
from app.api.handler import RequestHandler
from app.encoders.tokenizer import TokenizedInput
from app.errors import InferenceError, TokenizationError
from app.runtime.context import ModelContext, ModelContextProvider

HIDDEN_DIM = 768
CLS_ID = 1


class FakeCodec:
    """Whitespace tokenizer with a leading CLS token."""

    max_sequence_length = 64

    def encode(self, text):
        ids = [CLS_ID] + [10 + sum(ord(c) for c in word) % 5000 for word in text.split()]
        ids = ids[:self.max_sequence_length]
        return TokenizedInput(
            ids=np.asarray(ids, dtype=np.int64),
            attention_mask=np.ones(len(ids), dtype=np.int64),
        )


class FailingCodec(FakeCodec):
    def encode(self, text):
        raise TokenizationError("tokenizer rejected input")


class MaskedOutCodec(FakeCodec):
    """Returns tokens whose attention mask selects nothing."""

    def encode(self, text):
        tokens = super().encode(text)
        return TokenizedInput(
            ids=np.array(tokens.ids),
            attention_mask=np.zeros(len(tokens), dtype=np.int64),
        )


class FakeEngine:
    """Hidden state row for a token is a fixed random vector seeded by its id."""

    hidden_dim = HIDDEN_DIM

    def __init__(self):
        self.calls = 0

    def run(self, tokens):
        self.calls += 1
        return np.stack([
            np.random.default_rng(int(token_id)).standard_normal(self.hidden_dim).astype(np.float32)
            for token_id in tokens.ids
        ])


class ZeroEngine(FakeEngine):
    def run(self, tokens):
        return np.zeros((len(tokens), self.hidden_dim), dtype=np.float32)


class FailingEngine(FakeEngine):
    def run(self, tokens):
        raise InferenceError("ONNX Runtime error: out of memory in /opt/model/model_quantized.onnx")


def make_provider(codec=None, engine=None, model_name="fake-model"):
    context = ModelContext(
        codec=codec or FakeCodec(),
        engine=engine or FakeEngine(),
        model_name=model_name,
    )
    return ModelContextProvider(lambda: context, model_name=model_name)


@pytest.fixture
def metrics_collector():
    """Collector with its own registry."""
    return MetricsCollector("test-service", registry=CollectorRegistry())


@pytest.fixture
def config(tmp_path):
    """Config pointing at an empty model directory."""
    return EmbeddingConfig(ml_model_dir=str(tmp_path))


@pytest.fixture
def provider():
    return make_provider()


@pytest.fixture
def request_handler(provider, config, metrics_collector):
    return RequestHandler(provider, config, metrics_collector)
