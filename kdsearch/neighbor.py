"""User-facing nearest neighbour search built on top of the KD-tree index."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Tuple, Union

import numpy as np

from kdsearch.nn import (
    DEFAULT_LEAF_SIZE,
    KDTreeIndex,
    Metric,
    NotBuilt,
    PointSetView,
    QueryEngine,
    build_index,
    ensure_metric,
)
from kdsearch.nn.base import Radii, resolve_workers
from kdsearch.nn.kdtree import validate_leaf_size

logger = logging.getLogger(__name__)


class NearestNeighbor:
    """Exact nearest neighbour search over a fixed set of points.

    The data is stored on construction, but no tree exists until one of the
    ``*_index`` methods is called. Searches then run against that tree until
    :meth:`set_data` replaces it.
    """

    def __init__(
        self,
        points,
        *,
        metric: Union[str, Metric] = "l2",
        leaf_size: int = DEFAULT_LEAF_SIZE,
        workers: int = 1,
    ) -> None:
        """Create a search object over ``points``.

        Parameters
        ----------
        points:
            An (n, d) array of reference points with ``d >= 1``. Coordinates
            are held as float64 whatever the input dtype, so float32 input
            yields float64 distances.
        metric:
            One of ``"l1"``, ``"l2"`` or ``"linf"``. Fixed for the lifetime
            of the object since pruning bounds depend on it.
        leaf_size:
            Maximum number of points stored in a tree leaf.
        workers:
            Threads a query batch is split across; ``-1`` uses every CPU.
        """

        self._data = PointSetView(points)
        self._metric = ensure_metric(metric)
        self._leaf_size = validate_leaf_size(leaf_size)
        self._workers = resolve_workers(workers)
        self._engine: Optional[QueryEngine] = None
        self._lock = threading.RLock()

    @property
    def metric(self) -> Metric:
        return self._metric

    @property
    def dimension(self) -> int:
        return self._data.dimension

    @property
    def size(self) -> int:
        return self._data.size

    @property
    def index(self) -> Optional[KDTreeIndex]:
        """The current tree, or None before the first index method call."""
        engine = self._engine
        return engine.index if engine is not None else None

    def _set_index(self) -> bool:
        with self._lock:
            engine = self._engine
            if engine is not None and engine.index.points is self._data:
                return True
            index = build_index(self._data, self._metric, leaf_size=self._leaf_size)
            self._engine = QueryEngine(index, workers=self._workers)
        return True

    def knn_index(self) -> bool:
        """Prepare the index for :meth:`knn_search`."""
        return self._set_index()

    def radius_index(self) -> bool:
        """Prepare the index for :meth:`radius_search`."""
        return self._set_index()

    def fixed_radius_index(self) -> bool:
        """Prepare the index for :meth:`fixed_radius_search`."""
        return self._set_index()

    def hybrid_index(self) -> bool:
        """Prepare the index for :meth:`hybrid_search`."""
        return self._set_index()

    def set_data(self, points) -> bool:
        """Replace the reference points and rebuild the tree.

        Returns False, keeping the current data and tree, when the new points
        have a different dimension. If building fails the previous tree stays
        in place and the error propagates. Queries already running keep
        reading the tree they started with.
        """

        view = PointSetView(points)
        with self._lock:
            if view.dimension != self._data.dimension:
                logger.warning(
                    "rejecting data of dimension %d; index is configured for dimension %d",
                    view.dimension, self._data.dimension,
                )
                return False
            index = build_index(view, self._metric, leaf_size=self._leaf_size)
            self._data = view
            self._engine = QueryEngine(index, workers=self._workers)
        return True

    def _current_engine(self) -> QueryEngine:
        with self._lock:
            engine = self._engine
        if engine is None:
            raise NotBuilt(
                "no index has been built; call knn_index(), radius_index(), "
                "fixed_radius_index() or hybrid_index() first"
            )
        return engine

    def knn_search(self, queries, knn: int) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(indices, distances)`` of shape (m, min(knn, n))."""
        return self._current_engine().search_knn(queries, knn).as_tuple()

    def radius_search(
        self, queries, radii: Radii
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return ``(indices, distances, row_splits)`` with one radius per query."""
        return self._current_engine().search_radius(queries, radii).as_tuple()

    def fixed_radius_search(
        self, queries, radius: float
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return ``(indices, distances, row_splits)`` with a shared radius."""
        return self._current_engine().search_fixed_radius(queries, radius).as_tuple()

    def hybrid_search(
        self, queries, radius: float, max_knn: int
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(indices, distances)`` of shape (m, max_knn), sentinel padded."""
        return self._current_engine().search_hybrid(queries, radius, max_knn).as_tuple()
