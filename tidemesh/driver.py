"""
Point-cloud triangulation following an edge-length function.

Not a force-balance mesher: points are seeded on a hex lattice at the
smallest edge length, thinned toward the local target size, and
triangulated once.
"""
from __future__ import annotations

import logging
import math
from typing import Callable

import numpy as np
import triangle
from scipy.spatial import Delaunay

from .exceptions import TidemeshError

logger = logging.getLogger(__name__)

GEPS_FACTOR = 1e-3
MIN_TWO_AREA = 1e-16


def _unique_rows(points: np.ndarray) -> np.ndarray:
    """Remove duplicate 2-D points while preserving order."""
    if points.size == 0:
        return points
    _, unique_idx = np.unique(points, axis=0, return_index=True)
    unique_idx.sort()
    return points[unique_idx]


def fix_mesh(p: np.ndarray, t: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Orient triangles CCW, drop zero-area and duplicate ones, then unused nodes, and renumber."""
    p = np.asarray(p, dtype=float)
    t = np.array(t, dtype=np.int64).reshape(-1, 3)
    if t.size:
        a = p[t[:, 0]]
        b = p[t[:, 1]]
        c = p[t[:, 2]]
        two_area = (b[:, 0] - a[:, 0]) * (c[:, 1] - a[:, 1]) - (b[:, 1] - a[:, 1]) * (c[:, 0] - a[:, 0])
        flip = two_area < 0.0
        t[flip] = t[flip][:, [0, 2, 1]]
        t = t[np.abs(two_area) > MIN_TWO_AREA]
    if t.size:
        _, first = np.unique(np.sort(t, axis=1), axis=0, return_index=True)
        t = t[np.sort(first)]
    used = np.unique(t)
    remap = np.full(p.shape[0], -1, dtype=np.int64)
    remap[used] = np.arange(used.size)
    return p[used], remap[t]


def hex_lattice(bbox, h0: float) -> np.ndarray:
    """Equilateral lattice of pitch `h0` covering `bbox`; odd rows shifted by h0/2."""
    lon_min, lon_max, lat_min, lat_max = (float(v) for v in bbox)
    xs = np.arange(lon_min, lon_max + 0.5 * h0, h0)
    ys = np.arange(lat_min, lat_max + 0.5 * h0, h0 * math.sqrt(3) / 2.0)
    x_g, y_g = np.meshgrid(xs, ys)
    x_g[1::2, :] += 0.5 * h0
    return np.column_stack([x_g.ravel(), y_g.ravel()])


def _quality_triangulation(points: np.ndarray, *, min_angle: float) -> tuple[np.ndarray, np.ndarray]:
    opts = f"Qq{max(float(min_angle), 0.0):.6g}"
    result = triangle.triangulate({"vertices": points}, opts)
    verts = np.asarray(result["vertices"], dtype=float)
    tris = np.asarray(result["triangles"], dtype=np.int64)
    return verts, tris


def point_cloud_mesh(distance: Callable[[np.ndarray], np.ndarray],
                     edge_length: Callable[[np.ndarray], np.ndarray],
                     h0: float,
                     bbox,
                     *,
                     fixed_points: np.ndarray | None = None,
                     seed: int = 0,
                     quality_min_angle: float = 0.0,
                     geps: float | None = None) -> tuple[np.ndarray, np.ndarray]:
    """Return nodes `p` (N, 2) and CCW triangles `t` (M, 3) inside `distance < 0`."""
    h0 = float(h0)
    if h0 <= 0:
        raise TidemeshError(f"initial edge length must be positive, got {h0}")
    if geps is None:
        geps = GEPS_FACTOR * h0

    p = hex_lattice(bbox, h0)
    p = p[distance(p) < geps]
    logger.debug("Lattice has %d points inside the domain", p.shape[0])
    if p.shape[0]:
        h = np.asarray(edge_length(p), dtype=float)
        r0 = 1.0 / h ** 2
        rng = np.random.default_rng(seed)
        p = p[rng.random(p.shape[0]) < r0 / np.max(r0)]
    if fixed_points is not None and len(fixed_points):
        fixed = np.asarray(fixed_points, dtype=float).reshape(-1, 2)
        fixed = fixed[np.isfinite(fixed).all(axis=1)]
        p = np.vstack([fixed, p])
    p = _unique_rows(p)
    if p.shape[0] < 3:
        raise TidemeshError(f"only {p.shape[0]} points fall inside the domain; cannot triangulate")

    if quality_min_angle > 0:
        p, t = _quality_triangulation(p, min_angle=quality_min_angle)
    else:
        t = Delaunay(p).simplices.astype(np.int64)
    centroids = p[t].mean(axis=1)
    p, t = fix_mesh(p, t[distance(centroids) < -geps])
    logger.info("Triangulated %d nodes into %d elements", p.shape[0], t.shape[0])
    return p, t
