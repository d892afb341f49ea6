"""
End-to-end run: clean boundaries, build the size field, mesh, trim.

    inputs = prepare(boundaries, grid, params, bbox=bbox, side=OceanSide.RIGHT_TOP)
    result = run(boundaries, grid, params, bbox=bbox, side=OceanSide.RIGHT_TOP)

`accept(stage, payload)` replaces the interactive accept/abort prompts of a
manual workflow; returning False raises RunAborted.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import numpy as np

from .boundaries import BoundarySet, OceanSide, SideChooser
from .cfl import CFLLimiter
from .config import MeshParameters
from .distance import DistanceMode, PolygonDistance
from .driver import fix_mesh, point_cloud_mesh
from .edgefx import ScalarFieldBuilder
from .exceptions import ConfigurationError, RunAborted
from .geodesy import UnitConverter
from .gradient import GradientLimiter
from .grid import Grid
from .interpolant import EdgeFieldInterpolant

logger = logging.getLogger(__name__)

AcceptGate = Callable[[str, object], bool]


@dataclass
class MeshInputs:
    bbox: tuple
    boundaries: BoundarySet
    distance: PolygonDistance
    edge_length: EdgeFieldInterpolant
    h0: float
    fixed_points: np.ndarray | None = None
    meta: dict = field(default_factory=dict)

    @property
    def is_floodplain(self) -> bool:
        return self.boundaries.is_floodplain

    @property
    def containment(self) -> Callable[[np.ndarray], np.ndarray]:
        return self.distance.as_function(DistanceMode.CONTAINMENT)


@dataclass
class MeshResult:
    p: np.ndarray
    t: np.ndarray
    inputs: MeshInputs
    meta: dict = field(default_factory=dict)


def _size_stats(values: np.ndarray) -> dict:
    return {
        "min": float(np.min(values)),
        "max": float(np.max(values)),
        "mean": float(np.mean(values)),
    }


def build_size_field(grid: Grid,
                     distance: PolygonDistance,
                     params: MeshParameters,
                     converter: UnitConverter | None = None) -> tuple[EdgeFieldInterpolant, dict]:
    """Criteria -> gradient limiting -> CFL control, frozen in an interpolant."""
    converter = converter or UnitConverter(num_workers=params.num_workers)
    result = ScalarFieldBuilder(grid, distance, params, converter).build()
    size = result.values
    meta = {"criteria": result.stats(), "resolution": grid.resolution}

    limiter = GradientLimiter(params.gradient_limit, grid.resolution, max_iter=params.max_iter)
    converged = True
    if limiter.enabled:
        logger.info("Relaxing the gradient...")
        size, converged = limiter(size)
    meta["gradient"] = {"dhdx": limiter.dhdx, "converged": bool(converged)}

    cfl = CFLLimiter(params.dt, params.target_cfl, params.gravity, params.meters_per_degree)
    if params.dt >= 0:
        logger.info("Enforcing CFL condition ...")
    size, dt = cfl.apply(size, grid.depth, result.distance_field, params.min_edge_length)
    meta["dt"] = float(dt)
    meta["size"] = _size_stats(size)
    logger.info("Edge function ready: h in [%.4g, %.4g] deg", meta["size"]["min"], meta["size"]["max"])
    return EdgeFieldInterpolant(grid.lon, grid.lat, size, meta=meta), meta


def _floodplain_fixed_points(boundaries: BoundarySet, bbox) -> np.ndarray:
    pts = boundaries.mainland
    pts = pts[np.isfinite(pts).all(axis=1)]
    lon_min, lon_max, lat_min, lat_max = bbox
    inside = (
        (pts[:, 0] >= lon_min) & (pts[:, 0] <= lon_max)
        & (pts[:, 1] >= lat_min) & (pts[:, 1] <= lat_max)
    )
    return pts[inside]


def prepare(boundaries: BoundarySet,
            grid: Grid,
            params: MeshParameters,
            *,
            bbox=None,
            side: OceanSide | None = None,
            side_chooser: SideChooser | None = None,
            edgefx_path: Path | str | None = None,
            converter: UnitConverter | None = None) -> MeshInputs:
    bbox = tuple(float(v) for v in (bbox if bbox is not None else grid.bbox))
    if boundaries.is_floodplain and params.bounds is None:
        raise ConfigurationError("floodplain runs need bounds [max_elevation, max_distance]")
    prepared = boundaries.prepare(
        bbox,
        min_points=params.min_segment_points,
        smooth_window=params.smooth_window,
        side=side,
        side_chooser=side_chooser,
    )
    distance = PolygonDistance(prepared, bbox, depth_at=grid.depth_at, bounds=params.bounds)

    if edgefx_path is not None:
        edge_length = EdgeFieldInterpolant.load(edgefx_path)
        field_meta = edge_length.meta
    else:
        edge_length, field_meta = build_size_field(grid, distance, params, converter)

    fixed = _floodplain_fixed_points(prepared, bbox) if prepared.is_floodplain else None
    meta = {
        "bbox": list(bbox),
        "boundaries": prepared.summary(),
        "params": params.to_dict(),
        "edgefx": field_meta,
    }
    return MeshInputs(bbox, prepared, distance, edge_length, params.h0, fixed, meta)


def triangle_quality(p: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Radius-ratio style quality, 1 for an equilateral triangle."""
    a = p[t[:, 0]]
    b = p[t[:, 1]]
    c = p[t[:, 2]]
    area = 0.5 * np.abs((b[:, 0] - a[:, 0]) * (c[:, 1] - a[:, 1]) - (b[:, 1] - a[:, 1]) * (c[:, 0] - a[:, 0]))
    edges = ((b - a) ** 2).sum(axis=1) + ((c - b) ** 2).sum(axis=1) + ((a - c) ** 2).sum(axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        q = 4.0 * math.sqrt(3.0) * area / edges
    return np.nan_to_num(q, nan=0.0)


def trim_floodplain(p: np.ndarray, t: np.ndarray, distance: PolygonDistance) -> tuple[np.ndarray, np.ndarray]:
    centroids = p[t].mean(axis=1)
    keep = distance.signed_distance(centroids, DistanceMode.FLOODPLAIN) < 0
    logger.info("Trimming %d of %d floodplain elements", int((~keep).sum()), t.shape[0])
    return p, t[keep]


def _check(accept: AcceptGate | None, stage: str, payload) -> None:
    if accept is not None and not accept(stage, payload):
        logger.warning("Run declined at stage '%s'", stage)
        raise RunAborted(stage)


def run(boundaries: BoundarySet,
        grid: Grid,
        params: MeshParameters,
        *,
        bbox=None,
        side: OceanSide | None = None,
        side_chooser: SideChooser | None = None,
        edgefx_path: Path | str | None = None,
        mesh_driver=point_cloud_mesh,
        accept: AcceptGate | None = None) -> MeshResult:
    inputs = prepare(
        boundaries, grid, params,
        bbox=bbox, side=side, side_chooser=side_chooser, edgefx_path=edgefx_path,
    )
    _check(accept, "edgefx", inputs)

    logger.info("Generating mesh with h0 = %.4g deg", inputs.h0)
    p, t = mesh_driver(
        inputs.containment,
        inputs.edge_length,
        inputs.h0,
        inputs.bbox,
        fixed_points=inputs.fixed_points,
        seed=params.seed,
        quality_min_angle=params.quality_min_angle,
    )
    p = np.asarray(p, dtype=float)
    t = np.asarray(t, dtype=np.int64)
    if inputs.is_floodplain:
        p, t = trim_floodplain(p, t, inputs.distance)
    p, t = fix_mesh(p, t)

    meta = dict(inputs.meta)
    meta["nodes"] = int(p.shape[0])
    meta["elements"] = int(t.shape[0])
    if t.shape[0]:
        q = triangle_quality(p, t)
        meta["quality"] = {"mean": float(q.mean()), "min": float(q.min())}
        logger.info("Mesh quality: mean %.3f, min %.3f", meta["quality"]["mean"], meta["quality"]["min"])
    else:
        logger.warning("Mesh has no elements")
    result = MeshResult(p, t, inputs, meta)
    _check(accept, "mesh", result)
    return result
