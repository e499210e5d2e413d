"""Tests for the ONNX inference engine using a stand-in session."""

import numpy as np
import pytest

from app.encoders.inference import OnnxInferenceEngine
from app.encoders.tokenizer import TokenizedInput
from app.errors import InferenceError, ModelLoadError


class FakeNode:
    def __init__(self, name, shape=None):
        self.name = name
        self.shape = shape


class FakeSession:
    """Mimics ``onnxruntime.InferenceSession`` for a tiny encoder.

    Each output row is the token id repeated across the hidden dimension.
    """

    def __init__(self, inputs=("input_ids", "attention_mask"), hidden_dim=4, output_dim=None, error=None):
        self.inputs = inputs
        self.hidden_dim = hidden_dim
        self.output_dim = output_dim or hidden_dim
        self.error = error
        self.feeds = []

    def get_inputs(self):
        return [FakeNode(name) for name in self.inputs]

    def get_outputs(self):
        return [FakeNode("last_hidden_state", ["batch", "sequence", self.hidden_dim])]

    def run(self, output_names, feed):
        self.feeds.append(feed)
        if self.error is not None:
            raise self.error
        ids = feed["input_ids"]
        hidden = np.repeat(ids[:, :, np.newaxis], self.output_dim, axis=2).astype(np.float32)
        return [hidden]


def make_tokens(ids):
    return TokenizedInput(
        ids=np.asarray(ids, dtype=np.int64),
        attention_mask=np.ones(len(ids), dtype=np.int64),
    )


def test_run_returns_token_major_hidden_states():
    session = FakeSession()
    engine = OnnxInferenceEngine(session)

    hidden = engine.run(make_tokens([5, 6, 7]))

    assert hidden.shape == (3, 4)
    assert hidden.dtype == np.float32
    np.testing.assert_array_equal(hidden[:, 0], [5, 6, 7])


def test_run_feeds_batch_of_one():
    session = FakeSession()
    OnnxInferenceEngine(session).run(make_tokens([5, 6, 7]))

    feed = session.feeds[0]
    assert set(feed) == {"input_ids", "attention_mask"}
    assert feed["input_ids"].shape == (1, 3)
    assert feed["attention_mask"].shape == (1, 3)
    assert feed["input_ids"].dtype == np.int64


def test_run_adds_token_type_ids_when_declared():
    session = FakeSession(inputs=("input_ids", "attention_mask", "token_type_ids"))
    OnnxInferenceEngine(session).run(make_tokens([5, 6]))

    np.testing.assert_array_equal(session.feeds[0]["token_type_ids"], [[0, 0]])


def test_hidden_dim_read_from_graph():
    assert OnnxInferenceEngine(FakeSession(hidden_dim=768)).hidden_dim == 768


def test_runtime_failure_maps_to_inference_error():
    engine = OnnxInferenceEngine(FakeSession(error=RuntimeError("bad allocation")))
    with pytest.raises(InferenceError):
        engine.run(make_tokens([1, 2]))


def test_output_dim_mismatch_is_inference_error():
    engine = OnnxInferenceEngine(FakeSession(hidden_dim=4, output_dim=3))
    with pytest.raises(InferenceError):
        engine.run(make_tokens([1, 2]))


def test_missing_graph_input_is_load_error():
    with pytest.raises(ModelLoadError):
        OnnxInferenceEngine(FakeSession(inputs=("input_ids",)))


def test_engine_is_reusable_across_calls():
    """The engine keeps no per-request state between calls."""
    engine = OnnxInferenceEngine(FakeSession())
    first = engine.run(make_tokens([1, 2, 3]))
    engine.run(make_tokens([9]))
    again = engine.run(make_tokens([1, 2, 3]))
    np.testing.assert_array_equal(first, again)


def test_from_file_missing(tmp_path):
    with pytest.raises(ModelLoadError):
        OnnxInferenceEngine.from_file(tmp_path / "model_quantized.onnx")


def test_from_file_invalid_model(tmp_path):
    path = tmp_path / "model_quantized.onnx"
    path.write_bytes(b"definitely not an onnx graph")
    with pytest.raises(ModelLoadError):
        OnnxInferenceEngine.from_file(path)
