"""KD-tree spatial index over a static point set."""

from __future__ import annotations

import logging
import numbers
from typing import Iterator, List, Tuple, Union

import numpy as np

from .base import InternalError, InvalidArgument
from .metrics import Metric, ensure_metric
from .points import PointSetView

logger = logging.getLogger(__name__)

DEFAULT_LEAF_SIZE = 10


def validate_leaf_size(leaf_size: int) -> int:
    if isinstance(leaf_size, bool) or not isinstance(leaf_size, numbers.Integral):
        raise InvalidArgument(f"leaf_size must be an integer, got {leaf_size!r}")
    if leaf_size < 1:
        raise InvalidArgument(f"leaf_size must be > 0, got {leaf_size}")
    return int(leaf_size)


def _frozen(values, dtype) -> np.ndarray:
    arr = np.asarray(values, dtype=dtype)
    arr.flags.writeable = False
    return arr


class KDTreeIndex:
    """Balanced KD-tree over the indices of a :class:`PointSetView`.

    Nodes live in flat arrays; node 0 is the root. For node ``i``:

    - ``split_dim[i]`` / ``split_val[i]``: splitting axis and the coordinate
      of the first point of the right half (``-1`` / NaN for leaves),
    - ``left[i]`` / ``right[i]``: child node ids (``-1`` for leaves),
    - ``start[i]:stop[i]``: the node's range in ``indices``,
    - ``lower[i]`` / ``upper[i]``: tight bounding box of the node's points.

    The split axis is the one with the largest coordinate spread (lowest axis
    on ties). A node's range is ordered by (coordinate, point index) and cut
    at its midpoint, so both halves differ in size by at most one and the
    result never depends on the input order of equal coordinates. Ranges of
    at most ``leaf_size`` points become leaves.

    The index is read-only once constructed and may be shared by any number
    of concurrent readers.
    """

    def __init__(
        self,
        points,
        *,
        metric: Union[str, Metric] = "l2",
        leaf_size: int = DEFAULT_LEAF_SIZE,
    ) -> None:
        view = points if isinstance(points, PointSetView) else PointSetView(points)

        self._points = view
        self._metric = ensure_metric(metric)
        self._leaf_size = validate_leaf_size(leaf_size)

        try:
            self._build()
        except MemoryError as exc:
            raise InternalError(
                f"failed to build KD-tree over {view.size} points"
            ) from exc

        logger.debug(
            "built KD-tree over %d points (dim=%d, metric=%s): "
            "%d nodes, %d leaves, depth %d",
            self.size, self.dimension, self._metric,
            self.node_count, self.leaf_count, self._depth,
        )

    def _build(self) -> None:
        coords = self._points.coordinates
        n, d = coords.shape
        order = np.arange(n, dtype=np.int64)

        split_dim: List[int] = []
        split_val: List[float] = []
        left: List[int] = []
        right: List[int] = []
        start: List[int] = []
        stop: List[int] = []
        lower: List[np.ndarray] = []
        upper: List[np.ndarray] = []

        def _new_node(lo: int, hi: int) -> int:
            block = coords[order[lo:hi]]
            split_dim.append(-1)
            split_val.append(np.nan)
            left.append(-1)
            right.append(-1)
            start.append(lo)
            stop.append(hi)
            lower.append(block.min(axis=0))
            upper.append(block.max(axis=0))
            return len(start) - 1

        depth = 0
        if n > 0:
            stack: List[Tuple[int, int]] = [(_new_node(0, n), 0)]
            while stack:
                node, level = stack.pop()
                depth = max(depth, level)
                lo, hi = start[node], stop[node]
                if hi - lo <= self._leaf_size:
                    continue

                axis = int(np.argmax(upper[node] - lower[node]))
                members = order[lo:hi]
                values = coords[members, axis]
                order[lo:hi] = members[np.lexsort((members, values))]

                mid = lo + (hi - lo) // 2
                split_dim[node] = axis
                split_val[node] = float(coords[order[mid], axis])
                left[node] = _new_node(lo, mid)
                right[node] = _new_node(mid, hi)
                stack.append((right[node], level + 1))
                stack.append((left[node], level + 1))

        self._indices = _frozen(order, np.int64)
        self._split_dim = _frozen(split_dim, np.int64)
        self._split_val = _frozen(split_val, np.float64)
        self._left = _frozen(left, np.int64)
        self._right = _frozen(right, np.int64)
        self._start = _frozen(start, np.int64)
        self._stop = _frozen(stop, np.int64)
        self._lower = _frozen(lower if lower else np.empty((0, d)), np.float64)
        self._upper = _frozen(upper if upper else np.empty((0, d)), np.float64)
        self._depth = depth

    def __repr__(self) -> str:
        return (
            f"KDTreeIndex(size={self.size}, dimension={self.dimension}, "
            f"metric='{self._metric}', leaf_size={self._leaf_size})"
        )

    @property
    def points(self) -> PointSetView:
        return self._points

    @property
    def size(self) -> int:
        return self._points.size

    @property
    def dimension(self) -> int:
        return self._points.dimension

    @property
    def metric(self) -> Metric:
        return self._metric

    @property
    def leaf_size(self) -> int:
        return self._leaf_size

    @property
    def indices(self) -> np.ndarray:
        """Point-index permutation; each leaf owns a contiguous range."""
        return self._indices

    @property
    def split_dim(self) -> np.ndarray:
        return self._split_dim

    @property
    def split_val(self) -> np.ndarray:
        return self._split_val

    @property
    def left(self) -> np.ndarray:
        return self._left

    @property
    def right(self) -> np.ndarray:
        return self._right

    @property
    def start(self) -> np.ndarray:
        return self._start

    @property
    def stop(self) -> np.ndarray:
        return self._stop

    @property
    def lower(self) -> np.ndarray:
        return self._lower

    @property
    def upper(self) -> np.ndarray:
        return self._upper

    @property
    def node_count(self) -> int:
        return self._start.shape[0]

    @property
    def leaf_count(self) -> int:
        return int(np.count_nonzero(self._left < 0))

    @property
    def depth(self) -> int:
        """Length of the longest root-to-leaf path (0 for a single leaf)."""
        return self._depth

    @property
    def bounding_box(self) -> Tuple[np.ndarray, np.ndarray]:
        if self.node_count == 0:
            return self._points.bounding_box()
        return self._lower[0], self._upper[0]

    def is_leaf(self, node: int) -> bool:
        return bool(self._left[node] < 0)

    def leaves(self) -> Iterator[np.ndarray]:
        """Yield the point indices held by each leaf, in tree order."""
        for node in range(self.node_count):
            if self._left[node] < 0:
                yield self._indices[self._start[node]:self._stop[node]]


def build_index(
    points,
    metric: Union[str, Metric] = "l2",
    *,
    leaf_size: int = DEFAULT_LEAF_SIZE,
) -> KDTreeIndex:
    """Build a KD-tree over ``points`` (an (n, d) array or a PointSetView).

    Raises
    ------
    InvalidArgument
        If the points are not a finite 2D block with ``d >= 1``, the metric
        is unknown or ``leaf_size < 1``. An empty block (``n == 0``) is
        accepted and yields an index that matches nothing.
    InternalError
        If memory runs out while building.
    """

    return KDTreeIndex(points, metric=metric, leaf_size=leaf_size)
