"""Foundational classes for kdsearch's nearest neighbour search backends."""

from __future__ import annotations

import logging
import numbers
import os
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

Row = Tuple[np.ndarray, np.ndarray]
Radii = Union[float, Sequence[float], np.ndarray]


class NeighborSearchError(RuntimeError):
    """Base class for every error raised by kdsearch."""


class InvalidArgument(NeighborSearchError, ValueError):
    """Raised when a caller-supplied argument cannot be honoured."""


class NotBuilt(NeighborSearchError):
    """Raised when a query is issued before any index has been built."""


class InternalError(NeighborSearchError):
    """Raised when index construction fails for reasons unrelated to input."""


def resolve_workers(workers: int) -> int:
    """Return the number of worker threads to use for a query batch.

    ``-1`` selects every available CPU; any other value must be positive.
    """

    if isinstance(workers, bool) or not isinstance(workers, numbers.Integral):
        raise TypeError("workers must be an integer")
    if workers == -1:
        return os.cpu_count() or 1
    if workers < 1:
        raise InvalidArgument(f"workers must be positive or -1, got {workers}")
    return int(workers)


def validate_count(value: int, name: str) -> int:
    """Validate a neighbour count such as ``k`` or ``max_knn``."""

    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise InvalidArgument(f"{name} must be an integer, got {value!r}")
    if value < 1:
        raise InvalidArgument(f"{name} must be >= 1, got {value}")
    return int(value)


def resolve_radii(radii: Radii, num_queries: int) -> np.ndarray:
    """Broadcast a scalar radius, or check a per-query radius sequence."""

    try:
        values = np.asarray(radii, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise InvalidArgument("radius must be a number or a sequence of numbers") from exc

    if values.ndim == 0:
        values = np.full(num_queries, float(values))
    elif values.ndim != 1 or values.shape[0] != num_queries:
        raise InvalidArgument(
            f"expected a scalar radius or {num_queries} radii, got shape {values.shape}"
        )

    if np.any(np.isnan(values)):
        raise InvalidArgument("radius must not be NaN")
    if np.any(values < 0):
        raise InvalidArgument(f"radius must be non-negative, got {values.min()}")
    return values


def _chunk_bounds(total: int, workers: int) -> List[Tuple[int, int]]:
    chunks = max(1, min(workers, total))
    edges = np.linspace(0, total, chunks + 1).astype(np.int64)
    return [(int(lo), int(hi)) for lo, hi in zip(edges[:-1], edges[1:]) if hi > lo]


class NeighborSearch(ABC):
    """Abstract interface for exact nearest neighbour search backends.

    Subclasses provide the per-query kernels ``_knn_row`` and ``_radius_row``;
    this class validates arguments, fans query blocks out over a thread pool
    and packs the per-query rows into the output layouts.
    """

    def __init__(self, *, metric, workers: int = 1) -> None:
        from .metrics import ensure_metric  # Local import to avoid cycles.

        self._metric = ensure_metric(metric)
        self._workers = resolve_workers(workers)

    @property
    def metric(self):
        """Distance metric used by the backend."""
        return self._metric

    @property
    def workers(self) -> int:
        """Number of threads a query batch is split across."""
        return self._workers

    @property
    @abstractmethod
    def size(self) -> int:
        """Number of indexed points."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Dimension of the indexed points."""

    @abstractmethod
    def _knn_row(self, query: np.ndarray, k: int, radius: float) -> Row:
        """Return the ``k`` nearest points within ``radius``, ordered."""

    @abstractmethod
    def _radius_row(self, query: np.ndarray, radius: float) -> Row:
        """Return every point within ``radius``, ordered."""

    def _queries(self, queries) -> np.ndarray:
        from .points import as_queries

        return as_queries(queries, self.dimension)

    def _map_rows(
        self,
        kernel: Callable[..., Row],
        queries: np.ndarray,
        *columns: np.ndarray,
    ) -> List[Row]:
        """Evaluate ``kernel`` for every query, preserving query order.

        Each worker owns a contiguous, disjoint slice of the output list.
        """

        rows: List[Row] = [None] * queries.shape[0]  # type: ignore[list-item]

        def _work(lo: int, hi: int) -> None:
            for i in range(lo, hi):
                rows[i] = kernel(queries[i], *(column[i] for column in columns))

        bounds = _chunk_bounds(queries.shape[0], self._workers)
        if len(bounds) <= 1:
            for lo, hi in bounds:
                _work(lo, hi)
            return rows

        with ThreadPoolExecutor(max_workers=len(bounds)) as pool:
            futures = [pool.submit(_work, lo, hi) for lo, hi in bounds]
            for future in futures:
                future.result()
        return rows

    def search_knn(self, queries, k: int):
        """Return the ``min(k, size)`` nearest points for each query.

        The output width is the effective ``k``; it shrinks when fewer than
        ``k`` points are indexed.
        """
        from .packing import ResultPacker

        k = validate_count(k, "k")
        block = self._queries(queries)
        width = min(k, self.size)
        logger.debug(
            "%s: knn k=%d over %d queries (workers=%d)",
            type(self).__name__, width, block.shape[0], self._workers,
        )
        rows = self._map_rows(lambda q: self._knn_row(q, width, np.inf), block)
        return ResultPacker.dense(rows, width)

    def search_radius(self, queries, radii: Radii):
        """Return every point within the radius of each query.

        ``radii`` is either a scalar shared by all queries or one value per
        query.
        """
        from .packing import ResultPacker

        block = self._queries(queries)
        values = resolve_radii(radii, block.shape[0])
        logger.debug(
            "%s: radius search over %d queries (workers=%d)",
            type(self).__name__, block.shape[0], self._workers,
        )
        rows = self._map_rows(self._radius_row, block, values)
        return ResultPacker.ragged(rows)

    def search_fixed_radius(self, queries, radius: float):
        """Radius search with one radius broadcast to every query."""

        if np.ndim(radius) != 0:
            raise InvalidArgument("fixed radius search takes a scalar radius")
        return self.search_radius(queries, radius)

    def search_hybrid(self, queries, radius: float, max_knn: int):
        """Return at most ``max_knn`` nearest points within ``radius``.

        Rows always have ``max_knn`` slots; unused slots hold the sentinel.
        """
        from .packing import ResultPacker

        if np.ndim(radius) != 0:
            raise InvalidArgument("hybrid search takes a scalar radius")
        max_knn = validate_count(max_knn, "max_knn")
        block = self._queries(queries)
        values = resolve_radii(radius, block.shape[0])
        logger.debug(
            "%s: hybrid max_knn=%d over %d queries (workers=%d)",
            type(self).__name__, max_knn, block.shape[0], self._workers,
        )
        k = min(max_knn, self.size)
        rows = self._map_rows(lambda q, r: self._knn_row(q, k, r), block, values)
        return ResultPacker.dense(rows, max_knn)
