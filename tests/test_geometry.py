import math

import pytest

import geometry


def test_point_along_walks_from_start():
    assert geometry.point_along((0, 0), (100, 0), 30) == pytest.approx((30, 0))
    assert geometry.point_along((0, 0), (0, 50), 25) == pytest.approx((0, 25))


def test_point_segment_distance():
    assert geometry.point_segment_distance((5, 5), (0, 0), (10, 0)) == pytest.approx(5)
    # beyond the segment end, distance is to the endpoint
    assert geometry.point_segment_distance((13, 4), (0, 0), (10, 0)) == pytest.approx(5)


def test_segments_intersect():
    assert geometry.segments_intersect((0, 0), (10, 10), (0, 10), (10, 0))
    assert not geometry.segments_intersect((0, 0), (10, 0), (0, 5), (10, 5))


def test_line_of_sight_blocked_by_wall():
    wall = ((50, -20), (50, 20))
    assert not geometry.has_line_of_sight((0, 0), (100, 0), [wall])
    assert geometry.has_line_of_sight((0, 0), (0, 100), [wall])


def test_line_of_sight_from_doorway_is_not_blocked():
    # observer stands on the wall line itself
    wall = ((0, 0), (200, 0))
    assert geometry.has_line_of_sight((90, 0), (130, 130), [wall])


def test_heading_round_trip():
    v = geometry.from_heading(geometry.heading((3, 4)), 5)
    assert v == pytest.approx((3, 4))
    assert geometry.heading((0, 1)) == pytest.approx(math.pi / 2)


def test_clamp_point():
    assert geometry.clamp_point((-5, 900), 1200, 800) == (0, 800)
    assert geometry.clamp_point((10, 20), 1200, 800) == (10, 20)
