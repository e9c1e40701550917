"""Canonical metric names and distance kernels shared by all backends."""

from __future__ import annotations

import enum
from typing import Callable, Dict, Tuple, Union

import numpy as np

from .base import InvalidArgument


class Metric(enum.Enum):
    """Closed set of supported distance functions."""

    L1 = "l1"
    L2 = "l2"
    LINF = "linf"

    def __str__(self) -> str:
        return self.value


_CANONICAL_METRICS: Tuple[str, ...] = tuple(m.value for m in Metric)


def canonical_metrics() -> Tuple[str, ...]:
    """Return the tuple of supported canonical metric names."""

    return _CANONICAL_METRICS


def ensure_metric(metric: Union[str, Metric]) -> Metric:
    """Validate and normalise a metric given by name or enum member.

    Only canonical names are accepted (case-insensitive). Synonyms such as
    "euclidean" must be translated by the caller before reaching this layer.
    """

    if isinstance(metric, Metric):
        return metric
    if not isinstance(metric, str):
        raise TypeError("metric must be a string or a Metric")

    normalized = metric.strip().lower()
    if normalized not in _CANONICAL_METRICS:
        raise InvalidArgument(
            f"unsupported metric '{metric}'. Supported metrics: {_CANONICAL_METRICS}"
        )
    return Metric(normalized)


# Reducers map a block of absolute per-axis differences, shape (n, d), to
# n distances. Points and boxes go through the same reducer so that a box
# bound never exceeds the distance of a point inside it.

def _l1(diff: np.ndarray) -> np.ndarray:
    return np.sum(diff, axis=-1)

def _l2(diff: np.ndarray) -> np.ndarray:
    return np.sqrt(np.sum(diff * diff, axis=-1))

def _linf(diff: np.ndarray) -> np.ndarray:
    return np.max(diff, axis=-1)

_REDUCERS: Dict[Metric, Callable[[np.ndarray], np.ndarray]] = {
    Metric.L1: _l1,
    Metric.L2: _l2,
    Metric.LINF: _linf,
}


def pairwise(metric: Metric, points: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Distances from each row of ``points`` (n, d) to ``query`` (d,)."""

    return _REDUCERS[metric](np.abs(points - query))


def box_distance(
    metric: Metric,
    lower: np.ndarray,
    upper: np.ndarray,
    query: np.ndarray,
) -> float:
    """Minimum distance from ``query`` to the box ``[lower, upper]``."""

    gap = np.maximum(np.maximum(lower - query, query - upper), 0.0)
    return float(_REDUCERS[metric](gap[np.newaxis, :])[0])


def distance(metric: Union[str, Metric], a, b) -> float:
    """Distance between two single points."""

    lhs = np.asarray(a, dtype=np.float64).reshape(1, -1)
    rhs = np.asarray(b, dtype=np.float64).reshape(-1)
    if lhs.shape[1] != rhs.shape[0]:
        raise InvalidArgument("points must share the same dimensionality")
    return float(pairwise(ensure_metric(metric), lhs, rhs)[0])
