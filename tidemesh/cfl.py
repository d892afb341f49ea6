"""Courant number control of the size field."""
from __future__ import annotations

import logging

import numpy as np

from .config import GRAVITY, METERS_PER_DEGREE, TARGET_CFL
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class CFLLimiter:
    """
    Keep the Courant number ``dt*sqrt(g*|depth|)/(h*m_per_deg)`` at or below
    `target` by rewriting the offending cells.

    dt < 0 leaves the field alone, dt == 0 derives the largest stable step
    from the distance criterion, dt > 0 is used as given.
    """

    def __init__(self,
                 dt: float,
                 target: float = TARGET_CFL,
                 g: float = GRAVITY,
                 meters_per_degree: float = METERS_PER_DEGREE):
        self.dt = float(dt)
        self.target = float(target)
        self.g = float(g)
        self.meters_per_degree = float(meters_per_degree)

    def wave_speed(self, depth: np.ndarray) -> np.ndarray:
        return np.sqrt(self.g * np.abs(np.asarray(depth, dtype=float)))

    def courant(self, size: np.ndarray, depth: np.ndarray, dt: float) -> np.ndarray:
        with np.errstate(divide="ignore", invalid="ignore"):
            return dt * self.wave_speed(depth) / (np.asarray(size, dtype=float) * self.meters_per_degree)

    def auto_timestep(self,
                      distance_field: np.ndarray | None,
                      depth: np.ndarray,
                      min_edge_length: float) -> float:
        """Smallest step that keeps the distance-criterion sizes at the target Courant number."""
        if distance_field is None:
            raise ConfigurationError("automatic time step needs the distance criterion (dist_param > 0)")
        hh = np.array(distance_field, dtype=float, copy=True)
        depth = np.asarray(depth, dtype=float)
        hh[hh <= 0] = np.nan
        hh[hh < min_edge_length] = min_edge_length
        if not np.isfinite(hh).any():
            raise ConfigurationError("distance criterion has no valid cells for the automatic time step")
        loc = np.unravel_index(np.nanargmax(hh), hh.shape)
        orient = float(np.sign(depth[loc]))
        if not np.isfinite(orient) or orient == 0:
            orient = 1.0
        bb = np.maximum(orient * depth, 0.0)
        with np.errstate(divide="ignore", invalid="ignore"):
            dt_cells = self.target * hh * self.meters_per_degree / np.sqrt(self.g * bb)
        dt_cells[~np.isfinite(dt_cells)] = np.nan
        if not np.isfinite(dt_cells).any():
            raise ConfigurationError("no finite time step could be derived from the distance criterion")
        return float(np.nanmin(dt_cells))

    def apply(self,
              size: np.ndarray,
              depth: np.ndarray,
              distance_field: np.ndarray | None = None,
              min_edge_length: float = 0.0) -> tuple[np.ndarray, float]:
        size = np.array(size, dtype=float, copy=True)
        if self.dt < 0:
            return size, self.dt
        dt = self.dt
        if dt == 0:
            dt = self.auto_timestep(distance_field, depth, abs(min_edge_length))
            logger.info("Automatic time step dt = %.4g s", dt)
        cfl = self.courant(size, depth, dt)
        hot = cfl > self.target
        if hot.any():
            logger.info("Rewriting %d cells with Courant number above %.3g", int(hot.sum()), self.target)
            speed = self.wave_speed(depth)
            size[hot] = speed[hot] * dt / (self.target * self.meters_per_degree)
        return size, dt
