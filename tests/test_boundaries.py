import numpy as np
import pytest

from conftest import square_ring
from tidemesh.boundaries import (
    BoundarySet,
    OceanSide,
    close_outer,
    filter_short_segments,
    is_closed,
    join_segments,
    orient_ccw,
    points_in_polygons,
    smooth_segments,
    split_segments,
)
from tidemesh.exceptions import ConfigurationError


def _vertical_coast(n=15):
    """Open north-going segment at lon 0.5 poking out of the unit bbox."""
    return np.column_stack([np.full(n, 0.5), np.linspace(-0.2, 1.2, n)])


def test_split_and_join_segments():
    a = np.array([[0.0, 0.0], [1.0, 0.0]])
    b = np.array([[2.0, 2.0], [3.0, 3.0], [4.0, 4.0]])
    joined = join_segments([a, b])
    assert joined.shape == (6, 2)
    assert np.isnan(joined[2]).all()
    parts = split_segments(joined)
    assert len(parts) == 2
    np.testing.assert_array_equal(parts[1], b)


def test_split_ignores_leading_and_repeated_separators():
    arr = np.array([[np.nan, np.nan], [0.0, 0.0], [1.0, 1.0], [np.nan, np.nan], [np.nan, np.nan], [2.0, 2.0]])
    assert [seg.shape[0] for seg in split_segments(arr)] == [2, 1]


def test_bad_boundary_shape_raises():
    with pytest.raises(ConfigurationError):
        split_segments(np.zeros((4, 3)))


def test_filter_short_segments_counts_vertices():
    short = np.zeros((4, 2))
    exact = np.ones((5, 2))
    long = np.full((9, 2), 2.0)
    kept = split_segments(filter_short_segments(join_segments([short, exact, long]), 5))
    assert [seg.shape[0] for seg in kept] == [5, 9]


def test_smooth_keeps_open_endpoints_and_closes_rings():
    rng = np.random.default_rng(1)
    line = np.column_stack([np.linspace(0, 1, 20), rng.random(20) * 0.1])
    smoothed = smooth_segments(line, 5)
    np.testing.assert_array_equal(smoothed[0], line[0])
    np.testing.assert_array_equal(smoothed[-1], line[-1])
    ring = smooth_segments(square_ring(), 5)
    assert is_closed(ring)


def test_orient_ccw_reverses_clockwise_rings():
    cw = square_ring()[::-1]
    ccw = orient_ccw(cw)
    x, y = ccw[:, 0], ccw[:, 1]
    signed_area = 0.5 * np.sum(x[:-1] * y[1:] - x[1:] * y[:-1])
    assert signed_area > 0


def test_points_in_polygons_treats_nested_rings_as_holes():
    outer = square_ring()
    island = square_ring(0.4, 0.6, 0.4, 0.6, n=5)
    polys = join_segments([outer, island])
    mask = points_in_polygons([[0.2, 0.2], [0.5, 0.5], [1.5, 0.5]], polys)
    assert mask.tolist() == [True, False, False]


def test_close_outer_pushes_corners_toward_ocean_side():
    closed = close_outer(_vertical_coast(), (0.0, 1.0, 0.0, 1.0), OceanSide.RIGHT_TOP)
    assert is_closed(closed)
    mask = points_in_polygons([[0.75, 0.5], [0.25, 0.5]], closed)
    assert mask.tolist() == [True, False]

    closed = close_outer(_vertical_coast(), (0.0, 1.0, 0.0, 1.0), OceanSide.LEFT_BOTTOM)
    mask = points_in_polygons([[0.75, 0.5], [0.25, 0.5]], closed)
    assert mask.tolist() == [False, True]


def test_prepare_open_outer_without_side_raises():
    boundaries = BoundarySet(outer=_vertical_coast())
    with pytest.raises(ConfigurationError):
        boundaries.prepare((0.0, 1.0, 0.0, 1.0))


def test_prepare_asks_side_chooser():
    calls = []

    def chooser(outer, bbox):
        calls.append(bbox)
        return OceanSide.RIGHT_TOP

    prepared = BoundarySet(outer=_vertical_coast()).prepare((0.0, 1.0, 0.0, 1.0), side_chooser=chooser)
    assert calls == [(0.0, 1.0, 0.0, 1.0)]
    assert is_closed(prepared.outer)
    assert prepared.ocean_only


def test_prepare_drops_short_islands():
    boundaries = BoundarySet(
        outer=square_ring(),
        inner=join_segments([square_ring(0.4, 0.6, 0.4, 0.6, n=5), np.array([[0.1, 0.1], [0.2, 0.1], [0.1, 0.1]])]),
    )
    prepared = boundaries.prepare((0.0, 1.0, 0.0, 1.0), min_points=5)
    assert len(split_segments(prepared.inner)) == 1
    assert not prepared.ocean_only


def test_from_dict_round_trip():
    data = {
        "outer": [square_ring().tolist()],
        "mainland": [[[0.0, 0.0], [1.0, 0.0]], [[0.0, 1.0], [1.0, 1.0]]],
    }
    boundaries = BoundarySet.from_dict(data)
    assert len(split_segments(boundaries.mainland)) == 2
    again = BoundarySet.from_dict(boundaries.to_dict())
    np.testing.assert_array_equal(again.outer, boundaries.outer)
    assert not again.is_floodplain


def test_from_dict_rejects_unknown_roles():
    with pytest.raises(ConfigurationError):
        BoundarySet.from_dict({"outer": [], "coast": []})
