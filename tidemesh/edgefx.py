"""
Edge-length criteria evaluated on the bathymetry grid.

Each enabled criterion yields an (nx, ny) array. They are combined by an
element-wise minimum that ignores NaN, converted to degrees and clamped to
``[|min_edge_length|, max_edge_length]``:

  distance    |min| - dist_param*d, or a feature-size variant built from
              the medial axis of the coastline distance (degrees)
  wavelength  T*sqrt(g|H|)/wl_param (metres)
  slope       |2*pi*H / |grad H| / slope_param| (metres)
"""
from __future__ import annotations

import logging
from concurrent.futures import Executor
from dataclasses import dataclass, field

import numpy as np

from .config import MeshParameters
from .distance import DistanceMode, PolygonDistance
from .geodesy import UnitConverter
from .grid import Grid
from .spatial_index import SpatialIndex

logger = logging.getLogger(__name__)


@dataclass
class FieldBuildResult:
    values: np.ndarray
    criteria: dict[str, np.ndarray] = field(default_factory=dict)

    @property
    def distance_field(self) -> np.ndarray | None:
        return self.criteria.get("distance")

    def stats(self) -> dict:
        out = {}
        for name, arr in self.criteria.items():
            finite = arr[np.isfinite(arr)]
            out[name] = {
                "min": float(finite.min()) if finite.size else None,
                "max": float(finite.max()) if finite.size else None,
            }
        out["combined"] = {"min": float(np.min(self.values)), "max": float(np.max(self.values))}
        return out


class ScalarFieldBuilder:
    def __init__(self,
                 grid: Grid,
                 distance: PolygonDistance,
                 params: MeshParameters,
                 converter: UnitConverter | None = None,
                 *,
                 executor: Executor | None = None):
        self.grid = grid
        self.distance = distance
        self.params = params
        self.converter = converter or UnitConverter(num_workers=params.num_workers)
        self.executor = executor

    def _criteria_tasks(self) -> dict:
        p = self.params
        tasks = {}
        if p.dist_param > 0:
            if self.distance.has_land:
                tasks["distance"] = self.distance_criterion
            else:
                logger.info("No mainland or islands; skipping the distance criterion")
        if p.wl_param > 0:
            tasks["wavelength"] = self.wavelength_criterion
        if p.slope_param > 0:
            tasks["slope"] = self.slope_criterion
        return tasks

    def distance_criterion(self) -> np.ndarray:
        logger.info("Building distance edge function...")
        p = self.params
        grid = self.grid
        points = grid.points()
        d = self.distance.signed_distance(points, DistanceMode.LAND).reshape(grid.shape)
        base = abs(p.min_edge_length) - p.dist_param * d
        if not p.use_feature_size:
            return base
        logger.info("Building feature size edge function...")
        gx, gy = np.gradient(d, grid.resolution)
        slope = np.hypot(gx, gy)
        medial = (d < 0) & (slope < p.medial_threshold)
        if not medial.any():
            logger.warning("No medial axis points found; using distance-only sizing")
            return base
        index = SpatialIndex(points[medial.ravel()])
        feature_dist, _ = index.nearest(points)
        feature_dist = feature_dist.reshape(grid.shape)
        logger.debug("Medial axis has %d points", int(medial.sum()))
        return 2.0 * (feature_dist - (1.0 + p.dist_param) * d) / p.feature_divisor

    def wavelength_criterion(self) -> np.ndarray:
        logger.info("Building wavelength edge function...")
        p = self.params
        return p.tidal_period * np.sqrt(p.gravity * np.abs(self.grid.depth)) / p.wl_param

    def slope_criterion(self) -> np.ndarray:
        logger.info("Building slope edge function...")
        p = self.params
        grid = self.grid
        lon_g, lat_g = grid.mesh()
        dx, dy = self.converter.spacing_meters(lon_g, lat_g, grid.resolution, grid.lat_resolution)
        depth = np.asarray(grid.depth, dtype=float)
        with np.errstate(divide="ignore", invalid="ignore"):
            grad = np.hypot(np.gradient(depth, axis=0) / dx, np.gradient(depth, axis=1) / dy)
            hh = np.abs(2.0 * np.pi * depth / grad / p.slope_param)
        hh[~np.isfinite(hh)] = np.nan
        return hh

    def _evaluate(self, tasks: dict) -> dict[str, np.ndarray]:
        if self.executor is None or len(tasks) < 2:
            return {name: func() for name, func in tasks.items()}
        futures = {name: self.executor.submit(func) for name, func in tasks.items()}
        return {name: fut.result() for name, fut in futures.items()}

    def build(self) -> FieldBuildResult:
        p = self.params
        criteria = self._evaluate(self._criteria_tasks())
        if not criteria:
            logger.warning("No sizing criterion enabled; using uniform max_edge_length %.4g", p.max_edge_length)
            values = np.full(self.grid.shape, float(p.max_edge_length))
            return FieldBuildResult(values, criteria)

        combined = np.full(self.grid.shape, np.nan)
        metric = [criteria[name] for name in ("wavelength", "slope") if name in criteria]
        if metric:
            meters = metric[0] if len(metric) == 1 else np.fmin(metric[0], metric[1])
            lon_g, lat_g = self.grid.mesh()
            degrees = self.converter.meters_to_degrees(lon_g, lat_g, meters, azimuth=p.azimuth)
            degrees[~np.isfinite(meters)] = np.nan
            combined = np.fmin(combined, degrees)
        if "distance" in criteria:
            combined = np.fmin(combined, criteria["distance"])

        missing = ~np.isfinite(combined)
        if missing.any():
            logger.debug("%d cells have no finite criterion; using max_edge_length", int(missing.sum()))
            combined[missing] = p.max_edge_length
        values = np.clip(combined, p.h0, p.max_edge_length)
        return FieldBuildResult(values, criteria)
