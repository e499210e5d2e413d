"""Tests for the embedding function.

Model artifacts are not required: the pipeline runs against deterministic
stand-ins for the tokenizer and the ONNX model defined in ``conftest``.
"""
