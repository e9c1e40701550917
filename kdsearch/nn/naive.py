"""Naive nearest neighbour implementation.

This backend is intended for testing and for very small point sets. It keeps
the full point block and answers every query with a brute-force scan, using
the same distance kernels and ordering rules as the KD-tree engine.
"""

from __future__ import annotations

from typing import Union

import numpy as np

from .base import NeighborSearch, Row
from .metrics import Metric, pairwise
from .points import PointSetView


class BruteForceSearch(NeighborSearch):
    """Brute-force search supporting Linf, L2 and L1 distances."""

    def __init__(
        self,
        points,
        *,
        metric: Union[str, Metric] = "l2",
        workers: int = 1,
    ) -> None:
        super().__init__(metric=metric, workers=workers)
        self._points = points if isinstance(points, PointSetView) else PointSetView(points)
        self._all_ids = np.arange(self._points.size, dtype=np.int64)

    @property
    def size(self) -> int:
        return self._points.size

    @property
    def dimension(self) -> int:
        return self._points.dimension

    def _scan(self, query: np.ndarray) -> np.ndarray:
        return pairwise(self._metric, self._points.coordinates, query)

    def _knn_row(self, query: np.ndarray, k: int, radius: float) -> Row:
        dists = self._scan(query)
        ids = self._all_ids
        if np.isfinite(radius):
            within = dists <= radius
            ids, dists = ids[within], dists[within]
        order = np.lexsort((ids, dists))[:k]
        return ids[order], dists[order]

    def _radius_row(self, query: np.ndarray, radius: float) -> Row:
        dists = self._scan(query)
        within = dists <= radius
        ids, dists = self._all_ids[within], dists[within]
        order = np.lexsort((ids, dists))
        return ids[order], dists[order]
