"""Containers for neighbour query results and the packer that fills them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Sequence, Tuple

import numpy as np

from .base import InvalidArgument, Row

SENTINEL_INDEX = -1
SENTINEL_DISTANCE = np.inf


@dataclass(frozen=True)
class NeighborList:
    """Neighbours of a single query, ordered by (distance, id)."""

    ids: Tuple[int, ...]
    distances: Tuple[float, ...]

    def __post_init__(self) -> None:
        if len(self.ids) != len(self.distances):
            raise InvalidArgument("ids and distances must have matching lengths")

        if len(self.ids) > 0:
            sorted_pairs = sorted(zip(self.ids, self.distances), key=lambda x: (x[1], x[0]))
            sorted_ids, sorted_distances = zip(*sorted_pairs)
            object.__setattr__(self, "ids", tuple(sorted_ids))
            object.__setattr__(self, "distances", tuple(sorted_distances))

    def __len__(self) -> int:
        return len(self.ids)

    @classmethod
    def from_iterables(
        cls,
        ids: Iterable[int],
        distances: Iterable[float],
    ) -> "NeighborList":
        """Build a result from generic iterables while enforcing tuple storage."""
        return cls(
            ids=tuple(int(i) for i in ids),
            distances=tuple(float(d) for d in distances),
        )

    @classmethod
    def empty(cls) -> "NeighborList":
        return cls(ids=(), distances=())

    @classmethod
    def merging(cls, results: Iterable["NeighborList"]) -> "NeighborList":
        """Merge neighbour lists over disjoint point sets into one list."""
        all_ids = []
        all_distances = []
        seen = set()

        for result in results:
            for id_val in result.ids:
                if id_val in seen:
                    raise InvalidArgument(f"Incompatible results: duplicate ID {id_val}.")
                seen.add(id_val)
            all_ids.extend(result.ids)
            all_distances.extend(result.distances)

        return cls(ids=tuple(all_ids), distances=tuple(all_distances))

    def top_k(self, k: int) -> "NeighborList":
        """Keep the ``k`` nearest entries."""
        if k <= 0:
            return NeighborList.empty()
        return NeighborList(ids=self.ids[:k], distances=self.distances[:k])

    def within(self, radius: float) -> "NeighborList":
        """Keep the entries at distance ``<= radius``."""
        kept = [(i, d) for i, d in zip(self.ids, self.distances) if d <= radius]
        return NeighborList.from_iterables((i for i, _ in kept), (d for _, d in kept))


def _readonly(values, dtype) -> np.ndarray:
    arr = np.array(values, dtype=dtype, copy=True)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class DenseNeighbors:
    """Fixed-width (num_queries, width) table of neighbour ids and distances.

    Unused slots hold ``SENTINEL_INDEX`` / ``SENTINEL_DISTANCE`` and only ever
    follow the real entries of their row.
    """

    indices: np.ndarray
    distances: np.ndarray

    def __post_init__(self) -> None:
        indices = _readonly(self.indices, np.int64)
        distances = _readonly(self.distances, np.float64)
        if indices.ndim != 2 or indices.shape != distances.shape:
            raise InvalidArgument(
                f"indices {indices.shape} and distances {distances.shape} "
                "must be 2D tables of the same shape"
            )
        object.__setattr__(self, "indices", indices)
        object.__setattr__(self, "distances", distances)

    def __len__(self) -> int:
        return self.indices.shape[0]

    def __iter__(self) -> Iterator[NeighborList]:
        for i in range(len(self)):
            yield self.row(i)

    @property
    def num_queries(self) -> int:
        return self.indices.shape[0]

    @property
    def width(self) -> int:
        return self.indices.shape[1]

    def counts(self) -> np.ndarray:
        """Number of real (non-sentinel) entries per row."""
        return np.count_nonzero(self.indices != SENTINEL_INDEX, axis=1).astype(np.int64)

    def row(self, i: int) -> NeighborList:
        valid = self.indices[i] != SENTINEL_INDEX
        return NeighborList.from_iterables(self.indices[i][valid], self.distances[i][valid])

    def as_tuple(self) -> Tuple[np.ndarray, np.ndarray]:
        return self.indices, self.distances


@dataclass(frozen=True, eq=False)
class RaggedNeighbors:
    """Variable-length neighbour rows stored as flat arrays plus row splits.

    Row ``i`` occupies ``indices[row_splits[i]:row_splits[i + 1]]``.
    """

    indices: np.ndarray
    distances: np.ndarray
    row_splits: np.ndarray

    def __post_init__(self) -> None:
        indices = _readonly(self.indices, np.int64)
        distances = _readonly(self.distances, np.float64)
        row_splits = _readonly(self.row_splits, np.int64)

        if indices.ndim != 1 or indices.shape != distances.shape:
            raise InvalidArgument("indices and distances must be flat arrays of equal length")
        if row_splits.ndim != 1 or row_splits.shape[0] < 1:
            raise InvalidArgument("row_splits must be a non-empty flat array")
        if row_splits[0] != 0:
            raise InvalidArgument("row_splits must start at 0")
        if np.any(np.diff(row_splits) < 0):
            raise InvalidArgument("row_splits must be non-decreasing")
        if row_splits[-1] != indices.shape[0]:
            raise InvalidArgument(
                f"row_splits ends at {row_splits[-1]} but there are "
                f"{indices.shape[0]} entries"
            )

        object.__setattr__(self, "indices", indices)
        object.__setattr__(self, "distances", distances)
        object.__setattr__(self, "row_splits", row_splits)

    def __len__(self) -> int:
        return self.row_splits.shape[0] - 1

    def __iter__(self) -> Iterator[NeighborList]:
        for i in range(len(self)):
            yield self.row(i)

    @property
    def num_queries(self) -> int:
        return len(self)

    def counts(self) -> np.ndarray:
        return np.diff(self.row_splits)

    def row(self, i: int) -> NeighborList:
        if not -len(self) <= i < len(self):
            raise IndexError(f"row {i} out of range for {len(self)} queries")
        i %= len(self)
        lo, hi = self.row_splits[i], self.row_splits[i + 1]
        return NeighborList.from_iterables(self.indices[lo:hi], self.distances[lo:hi])

    def to_dense(self, width: Optional[int] = None) -> DenseNeighbors:
        """Pad (or cut) every row to ``width``; defaults to the longest row."""
        counts = self.counts()
        if width is None:
            width = int(counts.max()) if counts.size else 0
        rows = [
            (self.indices[lo:hi], self.distances[lo:hi])
            for lo, hi in zip(self.row_splits[:-1], self.row_splits[1:])
        ]
        return ResultPacker.dense([(ids[:width], d[:width]) for ids, d in rows], width)

    def as_tuple(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        return self.indices, self.distances, self.row_splits


class ResultPacker:
    """Assemble independently computed per-query rows into output layouts.

    Rows are taken in the order given; queries are never reordered.
    """

    @staticmethod
    def dense(rows: Sequence[Row], width: int) -> DenseNeighbors:
        indices = np.full((len(rows), width), SENTINEL_INDEX, dtype=np.int64)
        distances = np.full((len(rows), width), SENTINEL_DISTANCE, dtype=np.float64)
        for i, (ids, dists) in enumerate(rows):
            count = ids.shape[0]
            if count > width:
                raise InvalidArgument(f"row {i} holds {count} entries, more than width {width}")
            indices[i, :count] = ids
            distances[i, :count] = dists
        return DenseNeighbors(indices=indices, distances=distances)

    @staticmethod
    def ragged(rows: Sequence[Row]) -> RaggedNeighbors:
        counts = np.fromiter((ids.shape[0] for ids, _ in rows), dtype=np.int64, count=len(rows))
        row_splits = np.zeros(len(rows) + 1, dtype=np.int64)
        np.cumsum(counts, out=row_splits[1:])
        if rows:
            indices = np.concatenate([ids for ids, _ in rows]).astype(np.int64, copy=False)
            distances = np.concatenate([d for _, d in rows]).astype(np.float64, copy=False)
        else:
            indices = np.empty(0, dtype=np.int64)
            distances = np.empty(0, dtype=np.float64)
        return RaggedNeighbors(indices=indices, distances=distances, row_splits=row_splits)
