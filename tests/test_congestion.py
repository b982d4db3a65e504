import pytest

from congestion import CongestionTracker


def test_rebuild_counts_and_bottlenecks():
    tracker = CongestionTracker(cell_size=50, bottleneck_threshold=3)
    grid = tracker.rebuild([(10, 10), (20, 30), (40, 5), (60, 10), (149, 149)])

    assert grid == {(0, 0): 3, (1, 0): 1, (2, 2): 1}
    assert tracker.total == 5
    assert tracker.peak == 3
    assert tracker.bottleneck_count == 1
    b = tracker.bottlenecks[0]
    assert (b.cell, b.x, b.y, b.intensity) == ((0, 0), 25.0, 25.0, 3)
    assert tracker.average_congestion == pytest.approx(5 / 3)


def test_rebuild_replaces_previous_grid():
    tracker = CongestionTracker(cell_size=50, bottleneck_threshold=2)
    tracker.rebuild([(10, 10), (12, 12)])
    tracker.rebuild([(300, 300)])
    assert tracker.grid == {(6, 6): 1}
    assert tracker.bottleneck_count == 0


def test_empty_grid_defaults_to_zero():
    tracker = CongestionTracker()
    tracker.rebuild([])
    assert tracker.average_congestion == 0.0
    assert tracker.peak == 0
    assert tracker.as_key_map() == {}


def test_key_map_and_matrix():
    tracker = CongestionTracker(cell_size=50)
    tracker.rebuild([(75, 120), (80, 110)])
    assert tracker.as_key_map() == {"1,2": 2}

    mat = tracker.to_matrix(200, 150)
    assert mat.shape == (4, 5)
    assert mat[2, 1] == 2
    assert mat.sum() == 2
