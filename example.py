"""Minimal usage example for kdsearch's nearest neighbour search."""

import logging

import numpy as np

from kdsearch import NearestNeighbor

logging.basicConfig(level=logging.DEBUG)

num_points = 1000
num_queries = 5
dimension = 3
radius = 0.1

# Generate random reference points and queries in the unit cube
rng = np.random.default_rng(0)
points = rng.random((num_points, dimension))
queries = rng.random((num_queries, dimension))

# Pick the desired metric: "l2", "l1" or "linf". workers=-1 splits each
# query batch over every available CPU.
nn = NearestNeighbor(points, metric="l2", workers=-1)
nn.knn_index()

indices, distances = nn.knn_search(queries, 4)
for row, (ids, dists) in enumerate(zip(indices, distances)):
    print(f"query {row}: nearest {ids.tolist()} at {np.round(dists, 3).tolist()}")

indices, distances, row_splits = nn.fixed_radius_search(queries, radius)
for row in range(num_queries):
    found = indices[row_splits[row]:row_splits[row + 1]]
    print(f"query {row}: {len(found)} points within {radius}")

indices, distances = nn.hybrid_search(queries, radius, 3)
print(f"hybrid rows (-1 marks an unused slot):\n{indices}")
