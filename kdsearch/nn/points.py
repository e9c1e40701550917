"""Read-only views over contiguous blocks of points."""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from .base import InvalidArgument


def _as_block(data, name: str) -> np.ndarray:
    try:
        block = np.asarray(data, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise InvalidArgument(f"{name} must be numeric") from exc

    if block.ndim != 2:
        raise InvalidArgument(f"{name} must be 2D (n, d), got {block.ndim}D")
    if block.shape[1] < 1:
        raise InvalidArgument(f"{name} must have dimension >= 1")
    if not np.all(np.isfinite(block)):
        raise InvalidArgument(f"{name} must contain only finite values")
    return np.ascontiguousarray(block)


def as_queries(data, dimension: int) -> np.ndarray:
    """Return ``data`` as a contiguous (m, dimension) float64 block.

    A single point of length ``dimension`` is promoted to a 1-row block.
    """

    try:
        arr = np.asarray(data, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise InvalidArgument("queries must be numeric") from exc
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    block = _as_block(arr, "queries")
    if block.shape[1] != dimension:
        raise InvalidArgument(
            f"Query dimension ({block.shape[1]}) must match "
            f"index dimension ({dimension})"
        )
    return block


class PointSetView:
    """Immutable view over an (n, d) block of float64 coordinates.

    The caller's array is referenced, not copied, whenever it already is a
    C-contiguous float64 array. Other dtypes, float32 included, are converted
    to float64, and every distance computed against the view is float64. The
    view itself is never writeable.
    """

    __slots__ = ("_coords",)

    def __init__(self, data) -> None:
        if isinstance(data, PointSetView):
            coords = data._coords
        else:
            coords = _as_block(data, "points").view()
            coords.flags.writeable = False
        self._coords = coords

    def __len__(self) -> int:
        return self._coords.shape[0]

    def __repr__(self) -> str:
        return f"PointSetView(size={self.size}, dimension={self.dimension})"

    @property
    def size(self) -> int:
        return self._coords.shape[0]

    @property
    def dimension(self) -> int:
        return self._coords.shape[1]

    @property
    def coordinates(self) -> np.ndarray:
        return self._coords

    def point(self, index: int) -> np.ndarray:
        return self._coords[index]

    def bounding_box(
        self, indices: Optional[np.ndarray] = None
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Axis-aligned box around all points, or around ``indices``.

        An empty selection yields the empty box ``(+inf, -inf)``.
        """
        block = self._coords if indices is None else self._coords[indices]
        if block.shape[0] == 0:
            return (
                np.full(self.dimension, np.inf),
                np.full(self.dimension, -np.inf),
            )
        return block.min(axis=0), block.max(axis=0)
