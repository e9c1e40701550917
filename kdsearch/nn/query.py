"""Branch-and-bound queries over a :class:`KDTreeIndex`."""

from __future__ import annotations

from heapq import heappush, heapreplace
from typing import List, Tuple

import numpy as np

from .base import NeighborSearch, Row
from .kdtree import KDTreeIndex
from .metrics import box_distance, pairwise

_EMPTY_ROW: Row = (
    np.empty(0, dtype=np.int64),
    np.empty(0, dtype=np.float64),
)


class QueryEngine(NeighborSearch):
    """Exact KNN, radius and hybrid search over a built KD-tree.

    Subtrees are visited nearest-box first and skipped once their bounding
    box cannot hold a better candidate. The engine never mutates the index,
    so one index may back many engines and many threads at once.
    """

    def __init__(self, index: KDTreeIndex, *, workers: int = 1) -> None:
        if not isinstance(index, KDTreeIndex):
            raise TypeError(f"expected a KDTreeIndex, got {type(index).__name__}")
        super().__init__(metric=index.metric, workers=workers)
        self._index = index

    @property
    def index(self) -> KDTreeIndex:
        return self._index

    @property
    def size(self) -> int:
        return self._index.size

    @property
    def dimension(self) -> int:
        return self._index.dimension

    def _bound(self, node: int, query: np.ndarray) -> float:
        tree = self._index
        return box_distance(self._metric, tree.lower[node], tree.upper[node], query)

    def _knn_row(self, query: np.ndarray, k: int, radius: float) -> Row:
        tree = self._index
        if k == 0 or tree.node_count == 0:
            return _EMPTY_ROW

        coords = tree.points.coordinates
        left, right = tree.left, tree.right

        # Max-heap on (distance, index) via negated entries; heap[0] is the
        # current k-th best.
        heap: List[Tuple[float, int]] = []
        stack: List[Tuple[float, int]] = [(self._bound(0, query), 0)]

        while stack:
            bound, node = stack.pop()
            if bound > radius:
                continue
            if len(heap) == k and bound > -heap[0][0]:
                continue

            if left[node] < 0:
                members = tree.indices[tree.start[node]:tree.stop[node]]
                dists = pairwise(self._metric, coords[members], query)
                for point, dist in zip(members.tolist(), dists.tolist()):
                    if dist > radius:
                        continue
                    entry = (-dist, -point)
                    if len(heap) < k:
                        heappush(heap, entry)
                    elif entry > heap[0]:
                        heapreplace(heap, entry)
                continue

            near, far = int(left[node]), int(right[node])
            near_bound, far_bound = self._bound(near, query), self._bound(far, query)
            if far_bound < near_bound:
                near, far = far, near
                near_bound, far_bound = far_bound, near_bound
            stack.append((far_bound, far))
            stack.append((near_bound, near))

        if not heap:
            return _EMPTY_ROW
        ordered = sorted((-d, -p) for d, p in heap)
        ids = np.fromiter((p for _, p in ordered), dtype=np.int64, count=len(ordered))
        dists = np.fromiter((d for d, _ in ordered), dtype=np.float64, count=len(ordered))
        return ids, dists

    def _radius_row(self, query: np.ndarray, radius: float) -> Row:
        tree = self._index
        if tree.node_count == 0:
            return _EMPTY_ROW

        coords = tree.points.coordinates
        found_ids: List[np.ndarray] = []
        found_dists: List[np.ndarray] = []
        stack = [0]

        while stack:
            node = stack.pop()
            if self._bound(node, query) > radius:
                continue
            if tree.left[node] < 0:
                members = tree.indices[tree.start[node]:tree.stop[node]]
                dists = pairwise(self._metric, coords[members], query)
                within = dists <= radius
                if np.any(within):
                    found_ids.append(members[within])
                    found_dists.append(dists[within])
                continue
            stack.append(int(tree.right[node]))
            stack.append(int(tree.left[node]))

        if not found_ids:
            return _EMPTY_ROW
        ids = np.concatenate(found_ids)
        dists = np.concatenate(found_dists)
        order = np.lexsort((ids, dists))
        return ids[order], dists[order]
