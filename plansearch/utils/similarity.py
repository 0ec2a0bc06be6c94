"""Vector similarity helpers shared by the embedding store and its tests."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return ``dot(a, b) / (|a| * |b|)`` clipped to ``[-1, 1]``.

    A zero-magnitude vector on either side yields ``0.0`` instead of NaN.

    Raises
    ------
    ValueError
        If the vectors differ in length.  Callers that scan stored vectors
        check lengths first and count mismatches instead of raising.
    """
    if len(a) != len(b):
        msg = f"Vector length mismatch: {len(a)} != {len(b)}"
        raise ValueError(msg)

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    if math.isnan(score):
        return 0.0
    # Floating point error can push a self-similarity slightly past 1.0.
    return max(-1.0, min(1.0, score))


def is_valid_vector(vector: object) -> bool:
    """Return ``True`` for a non-empty list of finite numbers."""
    if not isinstance(vector, (list, tuple)) or not vector:
        return False
    for value in vector:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not math.isfinite(value):
            return False
    return True
