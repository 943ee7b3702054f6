"""
Distance and similarity functions between two vectors.

Metric selectors:
- "l2" (alias "euclidean"): Euclidean distance, smaller is closer.
- "cosine": cosine similarity, larger is closer.
"""

from typing import Callable

import numpy as np

from lshsearch.errors import DistanceError

COSINE = "cosine"
EUCLIDEAN = "l2"

DistanceFn = Callable[[np.ndarray, np.ndarray], float]


def l2(a: np.ndarray, b: np.ndarray) -> float:
    """Euclidean (L2) distance between two vectors."""
    return float(np.linalg.norm(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)))


def cosine_sim(a: np.ndarray, b: np.ndarray) -> float:
    """
    Cosine similarity between two vectors.

    Returns 0.0 when either vector has zero norm.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    a_norm = np.linalg.norm(a)
    b_norm = np.linalg.norm(b)
    if a_norm == 0 or b_norm == 0:
        return 0.0
    return float(np.dot(a, b) / (a_norm * b_norm))


DISTANCES: dict[str, DistanceFn] = {
    COSINE: cosine_sim,
    EUCLIDEAN: l2,
    "euclidean": l2,
}


def get_distance(metric: str) -> DistanceFn:
    """
    Resolve a metric selector to its distance function.

    Args:
        metric: Metric name, see DISTANCES.

    Returns:
        Function computing the metric for two vectors.

    Raises:
        DistanceError: If the metric is not supported.
    """
    fn = DISTANCES.get(metric) if isinstance(metric, str) else None
    if fn is None:
        raise DistanceError(f"Distance can't be calculated: unsupported metric {metric!r}")
    return fn
