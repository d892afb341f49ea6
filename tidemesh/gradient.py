"""Relax a size field so neighbouring cells never differ by more than dhdx * edge."""
from __future__ import annotations

import logging
import math
import warnings

import numpy as np

from .exceptions import ConvergenceWarning

logger = logging.getLogger(__name__)

_NEIGHBOR_OFFSETS = (
    (-1, -1), (-1, 0), (-1, 1),
    (0, -1), (0, 1),
    (1, -1), (1, 0), (1, 1),
)


def _spacing_pair(spacing) -> tuple[float, float]:
    if np.ndim(spacing) == 0:
        s = float(spacing)
        return s, s
    dx, dy = (float(v) for v in spacing)
    return dx, dy


def limit_gradient(field: np.ndarray,
                   spacing,
                   dhdx: float,
                   max_iter: int | None = None,
                   tol: float | None = None) -> tuple[np.ndarray, bool]:
    """
    Active-set hill climbing on a structured (nx, ny) field.

    Each sweep visits the nodes changed by the previous sweep, smallest value
    first, and lowers any of the 8 neighbours that exceeds
    ``h[node] + dhdx * edge`` where edge is the axis spacing or the diagonal.
    Values only ever decrease. NaN cells are left alone.

    Returns the relaxed copy and whether the active set emptied before
    `max_iter` sweeps.
    """
    h = np.array(field, dtype=float, copy=True)
    if h.ndim != 2:
        raise ValueError(f"expected a 2-D field, got shape {h.shape}")
    if dhdx <= 0 or h.size == 0 or not np.isfinite(h).any():
        return h, True
    nx, ny = h.shape
    dx, dy = _spacing_pair(spacing)
    diag = math.hypot(dx, dy)
    step = {(oi, oj): dhdx * (diag if oi and oj else (dx if oi else dy)) for oi, oj in _NEIGHBOR_OFFSETS}
    if tol is None:
        tol = float(np.nanmin(h)) * math.sqrt(np.finfo(float).eps)
    if max_iter is None:
        max_iter = max(int(math.sqrt(h.size)), 1)

    # python lists keep the inner loop away from numpy scalar overhead
    flat = h.ravel().tolist()
    active = [k for k, v in enumerate(flat) if math.isfinite(v)]
    sweep = 0
    while active and sweep < max_iter:
        sweep += 1
        active.sort(key=flat.__getitem__)
        changed = set()
        for k in active:
            i, j = divmod(k, ny)
            for oi, oj in _NEIGHBOR_OFFSETS:
                ni = i + oi
                nj = j + oj
                if ni < 0 or ni >= nx or nj < 0 or nj >= ny:
                    continue
                n = ni * ny + nj
                limit = flat[k] + step[(oi, oj)]
                if flat[n] > limit + tol:
                    flat[n] = limit
                    changed.add(n)
                limit = flat[n] + step[(oi, oj)]
                if flat[k] > limit + tol:
                    flat[k] = limit
                    changed.add(k)
        active = list(changed)
        logger.debug("Gradient sweep %d updated %d nodes", sweep, len(active))

    converged = not active
    if not converged:
        msg = f"gradient limiting stopped after {sweep} sweeps with {len(active)} active nodes"
        logger.warning(msg)
        warnings.warn(msg, ConvergenceWarning, stacklevel=2)
    return np.asarray(flat, dtype=float).reshape(nx, ny), converged


class GradientLimiter:
    """Bound `limit_gradient` parameters to reuse them across fields."""

    def __init__(self, dhdx: float, spacing, *, max_iter: int | None = None, tol: float | None = None):
        self.dhdx = float(dhdx)
        self.spacing = spacing
        self.max_iter = max_iter
        self.tol = tol

    @property
    def enabled(self) -> bool:
        return self.dhdx > 0

    def __call__(self, field: np.ndarray) -> tuple[np.ndarray, bool]:
        return limit_gradient(field, self.spacing, self.dhdx, max_iter=self.max_iter, tol=self.tol)
