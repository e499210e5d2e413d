"""Pooling, normalization and Matryoshka dimension selection.

Pure numpy functions with no shared state; they operate on request-scoped
arrays only.
"""

import numpy as np

from ..errors import DegenerateVectorError, EmptyMaskError, InferenceError


def mean_pool(hidden_states: np.ndarray, attention_mask: np.ndarray) -> np.ndarray:
    """Masked mean over tokens.

    ``hidden_states`` is ``[num_tokens, hidden_dim]`` and ``attention_mask``
    is ``[num_tokens]`` of 0/1 weights. Returns a ``[hidden_dim]`` float32
    vector. Raises ``EmptyMaskError`` if no token is selected.
    """
    if hidden_states.ndim != 2 or attention_mask.ndim != 1:
        raise InferenceError(
            f"Cannot pool hidden states {hidden_states.shape} with mask {attention_mask.shape}"
        )
    if hidden_states.shape[0] != attention_mask.shape[0]:
        raise InferenceError(
            f"Mask length {attention_mask.shape[0]} does not match {hidden_states.shape[0]} tokens"
        )

    weights = attention_mask.astype(np.float32)
    count = weights.sum()
    if count <= 0:
        raise EmptyMaskError("No unmasked tokens to pool")

    summed = (hidden_states.astype(np.float32) * weights[:, np.newaxis]).sum(axis=0)
    return summed / count


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Scale ``vector`` to unit Euclidean length.

    Raises ``DegenerateVectorError`` when the norm is zero or not finite.
    """
    norm = np.linalg.norm(vector)
    if not np.isfinite(norm) or norm == 0.0:
        raise DegenerateVectorError(f"Cannot normalize vector with norm {norm}")
    return (vector / norm).astype(np.float32)


def select_dimensions(vector: np.ndarray, size: int) -> np.ndarray:
    """Keep the first ``size`` components and re-normalize them.

    Relies on the model's Matryoshka training: prefixes of the full embedding
    are themselves embeddings.
    """
    if size <= 0 or size > vector.shape[0]:
        raise InferenceError(
            f"Cannot select {size} dimensions from a {vector.shape[0]}-dimensional vector"
        )
    return l2_normalize(vector[:size])
