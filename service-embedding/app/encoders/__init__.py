"""Embedding encoders and pipeline stages.

Exports nothing at package level. Keep heavy ML imports (``onnxruntime``,
``tokenizers``) within implementation modules.
"""
