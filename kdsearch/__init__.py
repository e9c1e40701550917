"""kdsearch - Exact nearest neighbour search over static point sets."""

__version__ = "1.0.0"

from .neighbor import NearestNeighbor
from .nn import (
    BruteForceSearch,
    InternalError,
    InvalidArgument,
    KDTreeIndex,
    Metric,
    NotBuilt,
    QueryEngine,
    build_index,
)

__all__ = [
    "BruteForceSearch",
    "InternalError",
    "InvalidArgument",
    "KDTreeIndex",
    "Metric",
    "NearestNeighbor",
    "NotBuilt",
    "QueryEngine",
    "build_index",
]
