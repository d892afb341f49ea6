"""Nearest-boundary-point lookup used by the signed distance functions."""
from __future__ import annotations

import numpy as np
from scipy.spatial import cKDTree

# Below this many points a KD-tree buys nothing and cKDTree gets fussy.
MIN_TREE_POINTS = 3


class SpatialIndex:
    """Static nearest-neighbour index over a set of 2-D points.

    NaN rows (segment separators) are dropped on build. The index is never
    mutated; rebuild it when the boundary configuration changes.
    """

    def __init__(self, points: np.ndarray):
        pts = np.asarray(points, dtype=float).reshape(-1, 2)
        pts = pts[~np.isnan(pts).any(axis=1)]
        self.points = pts
        self.points.setflags(write=False)
        self._tree = cKDTree(pts) if pts.shape[0] >= MIN_TREE_POINTS else None

    def __len__(self) -> int:
        return int(self.points.shape[0])

    @property
    def empty(self) -> bool:
        return self.points.shape[0] == 0

    def nearest(self, query: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Return (distance, index) of the closest indexed point for each query."""
        q = np.asarray(query, dtype=float).reshape(-1, 2)
        if self.empty:
            return np.full(q.shape[0], np.inf), np.full(q.shape[0], -1, dtype=np.int64)
        if self._tree is not None:
            dist, idx = self._tree.query(q, k=1)
            return np.asarray(dist, dtype=float), np.asarray(idx, dtype=np.int64)
        # direct comparison for degenerate point sets
        diff = q[:, None, :] - self.points[None, :, :]
        d2 = np.einsum("ijk,ijk->ij", diff, diff)
        idx = np.argmin(d2, axis=1)
        dist = np.sqrt(d2[np.arange(q.shape[0]), idx])
        return dist, idx.astype(np.int64)
