"""
Signed distance to the meshing region.

Negative inside the region to be meshed, positive outside. Three modes:

  CONTAINMENT  accept/reject points for the mesh driver (full domain,
               outer envelope included)
  LAND         distance to mainland + islands only, drives the coastline
               proximity sizing criterion
  FLOODPLAIN   LAND distance further limited by elevation and by how far
               inland the floodplain may extend
"""
from __future__ import annotations

import enum
import functools
import logging
from typing import Callable

import numpy as np

from .boundaries import BoundarySet, join_segments, points_in_polygons
from .config import FloodplainBounds
from .exceptions import ConfigurationError
from .spatial_index import SpatialIndex

logger = logging.getLogger(__name__)

DepthSampler = Callable[[np.ndarray], np.ndarray]


class DistanceMode(enum.Enum):
    CONTAINMENT = 0
    LAND = 1
    FLOODPLAIN = 2


class PolygonDistance:
    """Signed distance evaluator for one prepared boundary configuration.

    Coastal runs mesh the inside of `outer` minus the `inner` islands.
    Floodplain runs mesh the inside of `floodplain_limit` that is not already
    covered by the existing ocean polygon (`outer`).
    """

    def __init__(self,
                 boundaries: BoundarySet,
                 bbox,
                 *,
                 depth_at: DepthSampler | None = None,
                 bounds: FloodplainBounds | None = None):
        self.boundaries = boundaries
        self.bbox = tuple(float(v) for v in bbox)
        self.depth_at = depth_at
        self.bounds = bounds
        if boundaries.is_floodplain:
            self._region = boundaries.floodplain_limit
            self._excluded = boundaries.containment_polygon()
            containment_pts = join_segments([boundaries.mainland, boundaries.floodplain_limit])
            land_pts = boundaries.mainland
        else:
            if not np.isfinite(boundaries.outer).all(axis=1).any():
                raise ConfigurationError(
                    "coastal runs need an outer boundary; islands and mainland alone "
                    "do not enclose a meshing region"
                )
            self._region = boundaries.containment_polygon()
            self._excluded = None
            containment_pts = self._region
            land_pts = boundaries.land_points()
        if self._region.shape[0] == 0:
            raise ConfigurationError(
                "no boundary points available for point-in-polygon classification; "
                "at least an outer boundary is required"
            )
        logger.debug("Building containment index with %d points", containment_pts.shape[0])
        self._containment_index = SpatialIndex(containment_pts)
        self._land_index = SpatialIndex(land_pts) if land_pts.shape[0] else None
        if self._land_index is not None and self._land_index.empty:
            self._land_index = None

    @property
    def has_land(self) -> bool:
        return self._land_index is not None

    def inside(self, points: np.ndarray) -> np.ndarray:
        """Boolean mask of points lying in the meshing region."""
        pts = np.asarray(points, dtype=float).reshape(-1, 2)
        mask = points_in_polygons(pts, self._region)
        if self._excluded is not None and self._excluded.shape[0]:
            mask &= ~points_in_polygons(pts, self._excluded)
        return mask

    def signed_distance(self, points: np.ndarray, mode: DistanceMode) -> np.ndarray:
        pts = np.asarray(points, dtype=float).reshape(-1, 2)
        if mode is DistanceMode.CONTAINMENT:
            return self._containment(pts)
        if mode is DistanceMode.LAND:
            if self._land_index is None:
                return np.empty(0, dtype=float)
            return self._land(pts)
        if mode is DistanceMode.FLOODPLAIN:
            return self._floodplain(pts)
        raise ValueError(f"unsupported distance mode {mode!r}")

    def as_function(self, mode: DistanceMode) -> Callable[[np.ndarray], np.ndarray]:
        return functools.partial(self.signed_distance, mode=mode)

    def _containment(self, pts: np.ndarray) -> np.ndarray:
        dist, _ = self._containment_index.nearest(pts)
        d = np.where(self.inside(pts), -dist, dist)
        lon_min, lon_max, lat_min, lat_max = self.bbox
        out_of_box = (
            (pts[:, 0] < lon_min) | (pts[:, 0] > lon_max)
            | (pts[:, 1] < lat_min) | (pts[:, 1] > lat_max)
        )
        flip = out_of_box & (d < 0)
        d[flip] = -d[flip]
        return d

    def _land(self, pts: np.ndarray) -> np.ndarray:
        dist, _ = self._land_index.nearest(pts)
        return np.where(self.inside(pts), -dist, dist)

    def _floodplain(self, pts: np.ndarray) -> np.ndarray:
        if not self.boundaries.is_floodplain:
            raise ConfigurationError("FLOODPLAIN distance requested for a coastal configuration")
        if self.depth_at is None or self.bounds is None:
            raise ConfigurationError("FLOODPLAIN distance needs a depth sampler and bounds")
        if self._land_index is None:
            raise ConfigurationError("FLOODPLAIN distance needs mainland segments")
        d = self._land(pts)
        elevation = -np.asarray(self.depth_at(pts), dtype=float).reshape(-1)
        too_far = np.abs(d) > self.bounds.max_distance
        # NaN elevations fail the comparison and count as too high
        too_high = ~(elevation <= self.bounds.max_elevation)
        return np.where(too_far | too_high, np.abs(d), d)
