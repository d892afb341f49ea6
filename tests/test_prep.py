import numpy as np
import pytest

from conftest import square_ring
from tidemesh.boundaries import BoundarySet
from tidemesh.config import MeshParameters
from tidemesh.distance import DistanceMode, PolygonDistance
from tidemesh.exceptions import ConfigurationError, RunAborted
from tidemesh.grid import Grid, Raster
from tidemesh.prep import build_size_field, fix_mesh, prepare, run, triangle_quality

BBOX = (0.0, 1.0, 0.0, 1.0)


@pytest.fixture
def grid():
    lon = np.linspace(-0.1, 1.1, 25)
    lat = np.linspace(-0.1, 1.1, 25)
    return Grid.from_raster(Raster(lon, lat, np.full((25, 25), 20.0)), BBOX)


@pytest.fixture
def params():
    return MeshParameters(min_edge_length=0.05, max_edge_length=0.2, dist_param=0.2, feature_size=False)


def test_build_size_field_respects_bounds_and_gradient(coastal_square, grid, params):
    inputs = prepare(coastal_square, grid, params, bbox=BBOX)
    values = inputs.edge_length.values
    assert values.min() >= 0.05 - 1e-12
    assert values.max() <= 0.2 + 1e-12
    step = grid.resolution * params.gradient_limit
    assert np.abs(np.diff(values, axis=0)).max() <= step + 1e-9
    assert np.abs(np.diff(values, axis=1)).max() <= step + 1e-9
    assert inputs.meta["edgefx"]["gradient"]["converged"]
    assert inputs.fixed_points is None


def test_cfl_meta_recorded(coastal_square, grid):
    params = MeshParameters(min_edge_length=0.05, max_edge_length=0.2, dist_param=0.2,
                            feature_size=False, dt=0.0)
    prepared = coastal_square.prepare(BBOX)
    interp, meta = build_size_field(grid, PolygonDistance(prepared, BBOX), params)
    assert meta["dt"] > 0
    assert meta["size"]["min"] >= 0.05 - 1e-12


def test_saved_edge_function_is_reused(coastal_square, grid, params, tmp_path):
    first = prepare(coastal_square, grid, params, bbox=BBOX)
    path = first.edge_length.save(tmp_path / "edgefx.npz")
    second = prepare(coastal_square, grid, params, bbox=BBOX, edgefx_path=path)
    np.testing.assert_array_equal(second.edge_length.values, first.edge_length.values)


def test_run_produces_mesh_inside_domain(coastal_square, grid, params):
    result = run(coastal_square, grid, params, bbox=BBOX)
    assert result.t.shape[0] > 0
    assert result.p.shape[0] == np.unique(result.t).size
    centroids = result.p[result.t].mean(axis=1)
    assert np.all(result.inputs.distance.signed_distance(centroids, DistanceMode.CONTAINMENT) < 0)
    assert 0.0 < result.meta["quality"]["min"] <= result.meta["quality"]["mean"] <= 1.0


def test_accept_gate_aborts(coastal_square, grid, params):
    stages = []

    def accept(stage, payload):
        stages.append(stage)
        return stage != "mesh"

    with pytest.raises(RunAborted) as info:
        run(coastal_square, grid, params, bbox=BBOX, accept=accept)
    assert info.value.stage == "mesh"
    assert stages == ["edgefx", "mesh"]


def test_custom_mesh_driver_receives_inputs(coastal_square, grid, params):
    seen = {}

    def driver(distance, edge_length, h0, bbox, **kwargs):
        seen.update(h0=h0, bbox=bbox, **kwargs)
        p = np.array([[0.2, 0.2], [0.8, 0.2], [0.5, 0.8], [5.0, 5.0]])
        return p, np.array([[0, 1, 2]])

    result = run(coastal_square, grid, params, bbox=BBOX, mesh_driver=driver)
    assert seen["h0"] == 0.05
    assert seen["bbox"] == BBOX
    assert result.p.shape == (3, 2)


def test_floodplain_run_trims_high_ground(grid):
    coast = np.column_stack([np.full(21, 0.5), np.linspace(0.0, 1.0, 21)])
    boundaries = BoundarySet(
        outer=square_ring(0.0, 0.5, 0.0, 1.0, n=11),
        mainland=coast,
        floodplain_limit=square_ring(),
    )
    lon = np.linspace(-0.1, 1.1, 25)
    lon_g, _ = np.meshgrid(lon, lon, indexing="ij")
    # ground rises 10 m per degree east of the coast
    ramp = Grid.from_raster(Raster(lon, lon, -10.0 * (lon_g - 0.5)), BBOX)
    params = MeshParameters(min_edge_length=0.05, max_edge_length=0.1, dist_param=0.2,
                            feature_size=False, bounds=[3.0, 0.5])
    result = run(boundaries, ramp, params, bbox=BBOX)
    assert result.t.shape[0] > 0
    centroids = result.p[result.t].mean(axis=1)
    assert np.all(centroids[:, 0] > 0.5)
    assert np.all(centroids[:, 0] < 0.8 + 0.05)
    assert result.inputs.fixed_points.shape[0] == 21


def test_floodplain_needs_bounds(grid):
    boundaries = BoundarySet(outer=square_ring(0.0, 0.5, 0.0, 1.0, n=11),
                             mainland=np.column_stack([np.full(11, 0.5), np.linspace(0, 1, 11)]),
                             floodplain_limit=square_ring())
    params = MeshParameters(min_edge_length=0.05, max_edge_length=0.1)
    with pytest.raises(ConfigurationError):
        prepare(boundaries, grid, params, bbox=BBOX)


def test_fix_mesh_drops_unused_and_degenerate():
    p = np.array([[0.0, 0.0], [1.0, 0.0], [9.0, 9.0], [0.0, 1.0]])
    t = np.array([[0, 1, 3], [0, 1, 3], [1, 1, 3]])
    p2, t2 = fix_mesh(p, t)
    assert p2.shape == (3, 2)
    assert t2.tolist() == [[0, 1, 2]]


def test_triangle_quality_of_equilateral():
    p = np.array([[0.0, 0.0], [1.0, 0.0], [0.5, np.sqrt(3) / 2], [2.0, 0.0]])
    q = triangle_quality(p, np.array([[0, 1, 2], [0, 1, 3]]))
    assert q[0] == pytest.approx(1.0)
    assert q[1] == 0.0
