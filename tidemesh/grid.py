"""Bathymetry rasters cropped to the meshing box."""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass

import numpy as np
from scipy.interpolate import RegularGridInterpolator

from .exceptions import ConfigurationError, DataGapWarning

logger = logging.getLogger(__name__)


@dataclass
class Raster:
    """Structured samples: 1-D `lon` (nx), 1-D `lat` (ny), `values` (nx, ny)."""

    lon: np.ndarray
    lat: np.ndarray
    values: np.ndarray

    def __post_init__(self):
        lon = np.asarray(self.lon, dtype=float).reshape(-1)
        lat = np.asarray(self.lat, dtype=float).reshape(-1)
        values = np.asarray(self.values, dtype=float)
        if values.shape != (lon.size, lat.size):
            if values.shape == (lat.size, lon.size):
                values = values.T
            else:
                raise ConfigurationError(
                    f"raster values have shape {values.shape}, expected ({lon.size}, {lat.size})"
                )
        if lon.size < 2 or lat.size < 2:
            raise ConfigurationError("raster needs at least two nodes along each axis")
        # interpolators want ascending axes
        if lon[0] > lon[-1]:
            lon = lon[::-1]
            values = values[::-1, :]
        if lat[0] > lat[-1]:
            lat = lat[::-1]
            values = values[:, ::-1]
        self.lon = lon
        self.lat = lat
        self.values = np.ascontiguousarray(values)

    def sampler(self) -> RegularGridInterpolator:
        return RegularGridInterpolator(
            (self.lon, self.lat), self.values, method="linear", bounds_error=False, fill_value=np.nan
        )

    def sample(self, points: np.ndarray) -> np.ndarray:
        pts = np.asarray(points, dtype=float).reshape(-1, 2)
        return self.sampler()(pts)


class Grid:
    """Depth raster restricted to the strict interior of a bbox.

    Depth is positive below the datum. `depth` has shape (nx, ny) with
    longitude along axis 0; the array is read-only.
    """

    def __init__(self, lon: np.ndarray, lat: np.ndarray, depth: np.ndarray):
        raster = Raster(lon, lat, depth)
        self.lon = raster.lon.copy()
        self.lat = raster.lat.copy()
        self.depth = raster.values.copy()
        for arr in (self.lon, self.lat, self.depth):
            arr.setflags(write=False)
        self._sampler = None

    @classmethod
    def from_raster(cls,
                    raster: Raster,
                    bbox,
                    *,
                    fallback: Raster | None = None) -> "Grid":
        lon_min, lon_max, lat_min, lat_max = (float(v) for v in bbox)
        keep_lon = (raster.lon > lon_min) & (raster.lon < lon_max)
        keep_lat = (raster.lat > lat_min) & (raster.lat < lat_max)
        if keep_lon.sum() < 2 or keep_lat.sum() < 2:
            raise ConfigurationError(
                f"bathymetry does not cover bbox {bbox} with at least two nodes per axis"
            )
        lon = raster.lon[keep_lon]
        lat = raster.lat[keep_lat]
        depth = raster.values[np.ix_(keep_lon, keep_lat)].copy()
        gaps = np.isnan(depth)
        if gaps.any():
            if fallback is not None:
                lon_g, lat_g = np.meshgrid(lon, lat, indexing="ij")
                pts = np.column_stack([lon_g[gaps], lat_g[gaps]])
                depth[gaps] = fallback.sample(pts)
                logger.info("Filled %d missing depth values from the fallback raster", int(gaps.sum()))
            remaining = int(np.isnan(depth).sum())
            if remaining:
                msg = f"{remaining} depth values are missing inside the bbox"
                logger.warning(msg)
                warnings.warn(msg, DataGapWarning, stacklevel=2)
        logger.debug("Cropped raster to %d x %d nodes", lon.size, lat.size)
        return cls(lon, lat, depth)

    @property
    def shape(self) -> tuple[int, int]:
        return self.depth.shape

    @property
    def resolution(self) -> float:
        """Raster spacing in degrees, read from the longitude axis."""
        return float(abs(self.lon[1] - self.lon[0]))

    @property
    def lat_resolution(self) -> float:
        return float(abs(self.lat[1] - self.lat[0]))

    @property
    def bbox(self) -> tuple[float, float, float, float]:
        return float(self.lon[0]), float(self.lon[-1]), float(self.lat[0]), float(self.lat[-1])

    def mesh(self) -> tuple[np.ndarray, np.ndarray]:
        return np.meshgrid(self.lon, self.lat, indexing="ij")

    def points(self) -> np.ndarray:
        """All nodes as (nx*ny, 2), latitude index varying fastest."""
        lon_g, lat_g = self.mesh()
        return np.column_stack([lon_g.ravel(), lat_g.ravel()])

    def depth_at(self, points: np.ndarray) -> np.ndarray:
        """Bilinear depth; NaN outside the grid."""
        if self._sampler is None:
            self._sampler = RegularGridInterpolator(
                (self.lon, self.lat), self.depth, method="linear", bounds_error=False, fill_value=np.nan
            )
        pts = np.asarray(points, dtype=float).reshape(-1, 2)
        return self._sampler(pts)
