import numpy as np
import pytest

from tidemesh.driver import fix_mesh, hex_lattice, point_cloud_mesh
from tidemesh.exceptions import TidemeshError


def disk(p):
    p = np.asarray(p)
    return np.hypot(p[:, 0] - 0.5, p[:, 1] - 0.5) - 0.4


def uniform(h):
    return lambda p: np.full(len(p), h)


def _signed_areas(p, t):
    a, b, c = p[t[:, 0]], p[t[:, 1]], p[t[:, 2]]
    return (b[:, 0] - a[:, 0]) * (c[:, 1] - a[:, 1]) - (b[:, 1] - a[:, 1]) * (c[:, 0] - a[:, 0])


def test_hex_lattice_rows_are_staggered():
    pts = hex_lattice((0.0, 1.0, 0.0, 1.0), 0.25)
    rows = np.unique(np.round(pts[:, 1], 12))
    assert rows[1] == pytest.approx(0.25 * np.sqrt(3) / 2)
    second_row = pts[np.isclose(pts[:, 1], rows[1])]
    assert second_row[:, 0].min() == pytest.approx(0.125)


def test_mesh_stays_inside_domain():
    p, t = point_cloud_mesh(disk, uniform(0.05), 0.05, (0.0, 1.0, 0.0, 1.0))
    assert t.shape[0] > 50
    centroids = p[t].mean(axis=1)
    assert np.all(disk(centroids) < 0)
    assert np.all(_signed_areas(p, t) > 0)


def test_coarser_target_thins_points():
    p_fine, _ = point_cloud_mesh(disk, uniform(0.05), 0.05, (0.0, 1.0, 0.0, 1.0))
    graded = lambda p: 0.05 + 0.2 * np.asarray(p)[:, 0]
    p_graded, _ = point_cloud_mesh(disk, graded, 0.05, (0.0, 1.0, 0.0, 1.0), seed=1)
    assert p_graded.shape[0] < p_fine.shape[0]


def test_fixed_points_are_kept():
    fixed = np.array([[0.5, 0.5], [0.51, 0.5]])
    p, _ = point_cloud_mesh(disk, uniform(0.1), 0.1, (0.0, 1.0, 0.0, 1.0), fixed_points=fixed)
    for pt in fixed:
        assert np.any(np.all(np.isclose(p, pt), axis=1))


def test_quality_triangulation_path():
    p, t = point_cloud_mesh(disk, uniform(0.08), 0.08, (0.0, 1.0, 0.0, 1.0), quality_min_angle=25)
    assert t.shape[0] > 0
    assert np.all(_signed_areas(p, t) > 0)


def test_empty_domain_raises():
    with pytest.raises(TidemeshError):
        point_cloud_mesh(lambda p: np.ones(len(p)), uniform(0.1), 0.1, (0.0, 1.0, 0.0, 1.0))


def test_fix_mesh_orients_and_drops_flat_triangles():
    p = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [2.0, 0.0], [5.0, 5.0]])
    t = np.array([[0, 2, 1], [0, 1, 3], [1, 2, 0]])
    p2, t2 = fix_mesh(p, t)
    assert p2.shape == (3, 2)
    assert t2.tolist() == [[0, 1, 2]]
    assert np.all(_signed_areas(p2, t2) > 0)
