import logging
import math
import threading

import numpy as np
import pytest

from kdsearch import (
    InternalError,
    InvalidArgument,
    KDTreeIndex,
    Metric,
    NearestNeighbor,
    NotBuilt,
)
from kdsearch.nn import PointSetView

POINTS = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [5.0, 5.0]])
ORIGIN = np.array([[0.0, 0.0]])


def _indexed(**kwargs) -> NearestNeighbor:
    nn = NearestNeighbor(POINTS, **kwargs)
    assert nn.knn_index()
    return nn


def test_knn_scenario_breaks_tie_by_index():
    nn = _indexed(metric="l2")

    indices, distances = nn.knn_search(ORIGIN, 2)

    assert indices.dtype == np.int64
    assert indices.tolist() == [[0, 1]]
    assert distances.tolist() == [[0.0, 1.0]]


def test_knn_scenario_full_order():
    nn = _indexed(metric="l2", leaf_size=1)

    indices, distances = nn.knn_search(ORIGIN, 4)

    assert indices.tolist() == [[0, 1, 2, 3]]
    assert distances[0].tolist() == pytest.approx([0.0, 1.0, 1.0, math.sqrt(50)])


def test_radius_scenario():
    nn = NearestNeighbor(POINTS, metric="l2")
    assert nn.radius_index()

    indices, distances, row_splits = nn.radius_search(ORIGIN, [1.0])

    assert indices.tolist() == [0, 1, 2]
    assert distances.tolist() == [0.0, 1.0, 1.0]
    assert row_splits.tolist() == [0, 3]


def test_fixed_radius_scenario():
    nn = NearestNeighbor(POINTS, metric="l2")
    assert nn.fixed_radius_index()

    indices, _, row_splits = nn.fixed_radius_search(
        np.array([[0.0, 0.0], [3.0, 3.0]]), 1.0
    )

    assert indices.tolist() == [0, 1, 2]
    assert row_splits.tolist() == [0, 3, 3]


def test_hybrid_scenario_pads_with_sentinel():
    nn = NearestNeighbor(POINTS, metric="l2")
    assert nn.hybrid_index()

    indices, distances = nn.hybrid_search(ORIGIN, 0.5, 2)

    assert indices.tolist() == [[0, -1]]
    assert distances[0, 0] == 0.0
    assert distances[0, 1] == np.inf


def test_search_before_index_raises_not_built():
    nn = NearestNeighbor(POINTS)

    assert nn.index is None
    with pytest.raises(NotBuilt):
        nn.knn_search(ORIGIN, 1)
    with pytest.raises(NotBuilt):
        nn.radius_search(ORIGIN, [1.0])


def test_index_methods_reuse_the_tree():
    nn = _indexed()
    first = nn.index

    assert nn.radius_index()
    assert nn.index is first


def test_set_data_rebuilds():
    nn = _indexed(metric="linf")

    assert nn.set_data(np.array([[10.0, 10.0], [11.0, 11.0]]))

    indices, distances = nn.knn_search(ORIGIN, 3)
    assert nn.size == 2
    assert indices.tolist() == [[0, 1]]
    assert distances.tolist() == [[10.0, 11.0]]


def test_set_data_rejects_dimension_change(caplog):
    nn = _indexed()
    before = nn.index

    with caplog.at_level(logging.WARNING, logger="kdsearch.neighbor"):
        assert nn.set_data(np.zeros((3, 3))) is False

    assert nn.index is before
    assert nn.dimension == 2
    assert "dimension 3" in caplog.text


def test_set_data_failure_keeps_previous_index():
    nn = _indexed()
    before = nn.index

    with pytest.raises(InvalidArgument):
        nn.set_data([[0.0, np.nan]])

    assert nn.index is before
    indices, _ = nn.knn_search(ORIGIN, 1)
    assert indices.tolist() == [[0]]


def test_empty_data_matches_nothing():
    nn = NearestNeighbor(np.empty((0, 2)))
    assert nn.hybrid_index()

    indices, distances = nn.hybrid_search(ORIGIN, 1.0, 3)
    assert indices.tolist() == [[-1, -1, -1]]

    _, _, row_splits = nn.radius_search(ORIGIN, [1.0])
    assert row_splits.tolist() == [0, 0]


def test_constructor_validation():
    with pytest.raises(InvalidArgument):
        NearestNeighbor(np.empty((3, 0)))
    with pytest.raises(InvalidArgument):
        NearestNeighbor(POINTS, leaf_size=0)
    with pytest.raises(InvalidArgument):
        NearestNeighbor(POINTS, metric="hamming")

    assert NearestNeighbor(POINTS, metric="LINF").metric is Metric.LINF


def test_workers_produce_same_output():
    rng = np.random.default_rng(0)
    points = rng.random((300, 2))
    queries = rng.random((41, 2))

    serial = NearestNeighbor(points)
    parallel = NearestNeighbor(points, workers=4)
    serial.knn_index()
    parallel.knn_index()

    for a, b in zip(serial.knn_search(queries, 5), parallel.knn_search(queries, 5)):
        assert np.array_equal(a, b)
    for a, b in zip(
        serial.fixed_radius_search(queries, 0.1),
        parallel.fixed_radius_search(queries, 0.1),
    ):
        assert np.array_equal(a, b)


def test_build_logs_debug_record(caplog):
    with caplog.at_level(logging.DEBUG, logger="kdsearch"):
        _indexed()

    assert "built KD-tree over 4 points" in caplog.text


def test_set_data_out_of_memory_keeps_previous_index(monkeypatch):
    nn = _indexed()
    before = nn.index

    def _exhausted(self):
        raise MemoryError("no room for nodes")

    monkeypatch.setattr(KDTreeIndex, "_build", _exhausted)

    with pytest.raises(InternalError) as excinfo:
        nn.set_data(np.array([[2.0, 2.0], [3.0, 3.0]]))

    assert isinstance(excinfo.value.__cause__, MemoryError)
    assert nn.index is before
    assert nn.size == 4

    monkeypatch.undo()
    indices, _ = nn.knn_search(ORIGIN, 1)
    assert indices.tolist() == [[0]]


class _RecordingLock:
    def __init__(self):
        self._lock = threading.RLock()
        self.held = False

    def __enter__(self):
        self._lock.acquire()
        self.held = True
        return self

    def __exit__(self, *exc):
        self.held = False
        self._lock.release()


def test_set_data_dimension_check_runs_under_lock(monkeypatch):
    nn = _indexed()
    lock = _RecordingLock()
    nn._lock = lock
    seen = []

    def _dimension(self):
        seen.append(lock.held)
        return self.coordinates.shape[1]

    monkeypatch.setattr(PointSetView, "dimension", property(_dimension))

    assert nn.set_data(np.zeros((3, 3))) is False
    assert seen and all(seen)
