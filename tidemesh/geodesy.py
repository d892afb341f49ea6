"""Metres <-> degrees conversion on the ellipsoid, split into row chunks when asked."""
from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable

import numpy as np
from pyproj import Geod

logger = logging.getLogger(__name__)

CHUNKS_PER_WORKER = 8


def map_row_chunks(func: Callable,
                   arrays: list[np.ndarray],
                   n_chunks: int,
                   executor: Executor | None = None):
    """Apply `func` to matching row-chunks of `arrays` and stitch the results.

    Chunks are cut along axis 0 and reassembled in order, whatever order the
    executor finishes them in. `func` may return one array or a tuple.
    """
    n_rows = arrays[0].shape[0]
    n_chunks = max(1, min(int(n_chunks), n_rows))
    pieces = [np.array_split(arr, n_chunks, axis=0) for arr in arrays]
    chunk_args = list(zip(*pieces))
    if executor is None or n_chunks == 1:
        results = [func(*args) for args in chunk_args]
    else:
        results = list(executor.map(lambda args: func(*args), chunk_args))
    if isinstance(results[0], tuple):
        return tuple(np.concatenate(parts, axis=0) for parts in zip(*results))
    return np.concatenate(results, axis=0)


def fill_missing_linear(values: np.ndarray, axis: int = 0) -> np.ndarray:
    """Fill NaNs by linear interpolation along `axis`, holding end values."""
    arr = np.moveaxis(np.array(values, dtype=float, copy=True), axis, 0)
    index = np.arange(arr.shape[0], dtype=float)
    flat = arr.reshape(arr.shape[0], -1)
    for col in range(flat.shape[1]):
        column = flat[:, col]
        bad = np.isnan(column)
        if not bad.any() or bad.all():
            continue
        column[bad] = np.interp(index[bad], index[~bad], column[~bad])
    return np.moveaxis(flat.reshape(arr.shape), 0, axis)


class UnitConverter:
    """Geodesic distances and projections on a reference ellipsoid."""

    def __init__(self,
                 ellps: str = "WGS84",
                 *,
                 num_workers: int = 1,
                 executor: Executor | None = None):
        self.geod = Geod(ellps=ellps)
        self.num_workers = max(int(num_workers), 1)
        self.executor = executor

    def _map(self, func: Callable, *arrays: np.ndarray):
        arrays = [np.asarray(a, dtype=float) for a in arrays]
        if self.num_workers <= 1 and self.executor is None:
            return func(*arrays)
        n_chunks = self.num_workers * CHUNKS_PER_WORKER
        if self.executor is not None:
            return map_row_chunks(func, arrays, n_chunks, self.executor)
        with ThreadPoolExecutor(max_workers=self.num_workers) as pool:
            return map_row_chunks(func, arrays, n_chunks, pool)

    def _inverse(self, lon1, lat1, lon2, lat2) -> np.ndarray:
        dist = np.full(lon1.shape, np.nan)
        ok = np.isfinite(lon1) & np.isfinite(lat1) & np.isfinite(lon2) & np.isfinite(lat2)
        if ok.any():
            _, _, dist[ok] = self.geod.inv(lon1[ok], lat1[ok], lon2[ok], lat2[ok])
        return dist

    def _forward(self, lon, lat, az, dist) -> tuple[np.ndarray, np.ndarray]:
        lon2 = np.full(lon.shape, np.nan)
        lat2 = np.full(lon.shape, np.nan)
        ok = np.isfinite(lon) & np.isfinite(lat) & np.isfinite(dist)
        if ok.any():
            lon2[ok], lat2[ok], _ = self.geod.fwd(lon[ok], lat[ok], az[ok], dist[ok])
        return lon2, lat2

    def distance(self, lon1, lat1, lon2, lat2) -> np.ndarray:
        """Element-wise geodesic distance in metres."""
        return self._map(self._inverse, lon1, lat1, lon2, lat2)

    def spacing_meters(self,
                       lon_g: np.ndarray,
                       lat_g: np.ndarray,
                       dlon: float | None = None,
                       dlat: float | None = None) -> tuple[np.ndarray, np.ndarray]:
        """Distance from every node to its neighbour along each grid axis.

        The last row/column is pushed one raster step (`dlon`, `dlat`, taken
        from the grid when omitted) past the edge so the result has the
        grid's shape.
        """
        lon_g = np.asarray(lon_g, dtype=float)
        lat_g = np.asarray(lat_g, dtype=float)
        step_lon = lon_g[-1, :] - lon_g[-2, :] if dlon is None else np.full(lon_g.shape[1], float(dlon))
        step_lat = lat_g[:, -1] - lat_g[:, -2] if dlat is None else np.full(lat_g.shape[0], float(dlat))
        lon_next = np.vstack([lon_g[1:, :], lon_g[-1:, :] + step_lon])
        lat_next = np.hstack([lat_g[:, 1:], lat_g[:, -1:] + step_lat[:, None]])
        dx = self.distance(lon_g, lat_g, lon_next, lat_g)
        dy = self.distance(lon_g, lat_g, lon_g, lat_next)
        return dx, dy

    def meters_to_degrees(self,
                          lon_g: np.ndarray,
                          lat_g: np.ndarray,
                          meters: np.ndarray,
                          azimuth: float = 45.0) -> np.ndarray:
        """Length in degrees covered by `meters` when walking along `azimuth`.

        Only the magnitude is used, so the bearing is arbitrary. Cells where
        the projection fails are filled from their neighbours.
        """
        lon_g = np.asarray(lon_g, dtype=float)
        lat_g = np.asarray(lat_g, dtype=float)
        az = np.full(lon_g.shape, float(azimuth))
        lon2, lat2 = self._map(self._forward, lon_g, lat_g, az, meters)
        if np.isnan(lon2).any():
            logger.debug("Filling %d unprojectable cells", int(np.isnan(lon2).sum()))
            lon2 = fill_missing_linear(lon2, axis=0)
            lat2 = fill_missing_linear(lat2, axis=0)
        # fwd answers in [-180, 180]; the grid may be 0-360 or straddle the dateline
        dlon = (lon2 - lon_g + 180.0) % 360.0 - 180.0
        return np.hypot(dlon, lat2 - lat_g)
