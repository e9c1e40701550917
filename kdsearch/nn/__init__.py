"""Exact nearest neighbour search utilities."""

from .base import (
    InternalError,
    InvalidArgument,
    NeighborSearch,
    NeighborSearchError,
    NotBuilt,
)
from .kdtree import DEFAULT_LEAF_SIZE, KDTreeIndex, build_index
from .metrics import Metric, canonical_metrics, distance, ensure_metric
from .naive import BruteForceSearch
from .packing import (
    SENTINEL_DISTANCE,
    SENTINEL_INDEX,
    DenseNeighbors,
    NeighborList,
    RaggedNeighbors,
    ResultPacker,
)
from .points import PointSetView
from .query import QueryEngine

__all__ = [
    "BruteForceSearch",
    "DEFAULT_LEAF_SIZE",
    "DenseNeighbors",
    "InternalError",
    "InvalidArgument",
    "KDTreeIndex",
    "Metric",
    "NeighborList",
    "NeighborSearch",
    "NeighborSearchError",
    "NotBuilt",
    "PointSetView",
    "QueryEngine",
    "RaggedNeighbors",
    "ResultPacker",
    "SENTINEL_DISTANCE",
    "SENTINEL_INDEX",
    "build_index",
    "canonical_metrics",
    "distance",
    "ensure_metric",
]
