"""
Boundary polygons in geographic coordinates.

A boundary is an (N, 2) array of (lon, lat) vertices. A NaN row separates
sub-paths, so one array can hold every island or every mainland segment:

    [[lon, lat], ..., [nan, nan], [lon, lat], ...]

BoundarySet groups the roles a run needs (outer envelope, mainland
segments, island polygons and an optional floodplain limit) and knows how
to clean them up before any distance evaluation happens.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable

import numpy as np
from shapely.geometry import LinearRing, LineString

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CLOSE_TOL = 1e-9
SEPARATOR = np.array([[np.nan, np.nan]])
# Rows of query points classified per vectorised ray-crossing pass.
INPOLY_CHUNK = 8192


class OceanSide(enum.Enum):
    """Which side of an open outer coastline segment the ocean lies on."""

    RIGHT_TOP = 1
    LEFT_BOTTOM = 0


SideChooser = Callable[[np.ndarray, tuple], OceanSide]


def as_boundary(data) -> np.ndarray:
    if data is None:
        return np.empty((0, 2), dtype=float)
    arr = np.asarray(data, dtype=float)
    if arr.size == 0:
        return np.empty((0, 2), dtype=float)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ConfigurationError(f"boundary must be (N,2), got shape {arr.shape}")
    return arr


def split_segments(data) -> list[np.ndarray]:
    """Split a NaN separated boundary into its sub-paths."""
    arr = as_boundary(data)
    if arr.shape[0] == 0:
        return []
    breaks = np.flatnonzero(np.isnan(arr).any(axis=1)).tolist()
    segments = []
    start = 0
    for stop in breaks + [arr.shape[0]]:
        if stop > start:
            segments.append(arr[start:stop])
        start = stop + 1
    return segments


def join_segments(segments) -> np.ndarray:
    """Inverse of split_segments."""
    parts: list[np.ndarray] = []
    for seg in segments:
        seg = as_boundary(seg)
        if seg.shape[0] == 0:
            continue
        if parts:
            parts.append(SEPARATOR)
        parts.append(seg)
    if not parts:
        return np.empty((0, 2), dtype=float)
    return np.vstack(parts)


def is_closed(segment, tol: float = CLOSE_TOL) -> bool:
    seg = as_boundary(segment)
    if seg.shape[0] < 3:
        return False
    return float(np.hypot(*(seg[0] - seg[-1]))) <= tol


def all_closed(data, tol: float = CLOSE_TOL) -> bool:
    segments = split_segments(data)
    return bool(segments) and all(is_closed(seg, tol) for seg in segments)


def filter_short_segments(data, min_points: int) -> np.ndarray:
    """Drop sub-paths with fewer than `min_points` vertices (tiny islands, slivers)."""
    segments = split_segments(data)
    kept = [seg for seg in segments if seg.shape[0] >= int(min_points)]
    if len(kept) != len(segments):
        logger.debug("Dropped %d of %d segments shorter than %d points",
                     len(segments) - len(kept), len(segments), min_points)
    return join_segments(kept)


def smooth_segments(data, window: int = 5) -> np.ndarray:
    """Moving-average smoothing of every sub-path.

    Closed rings wrap around; open segments keep their end points so that
    they still meet whatever they were attached to.
    """
    window = int(window)
    if window <= 1:
        return as_boundary(data).copy()
    kernel = np.ones(window, dtype=float) / window
    half = window // 2
    out = []
    for seg in split_segments(data):
        if seg.shape[0] < window:
            out.append(seg.copy())
            continue
        if is_closed(seg):
            ring = seg[:-1]
            padded = np.pad(ring, ((half, half), (0, 0)), mode="wrap")
            smooth = np.column_stack([
                np.convolve(padded[:, k], kernel, mode="valid") for k in range(2)
            ])
            out.append(np.vstack([smooth, smooth[:1]]))
        else:
            padded = np.pad(seg, ((half, half), (0, 0)), mode="edge")
            smooth = np.column_stack([
                np.convolve(padded[:, k], kernel, mode="valid") for k in range(2)
            ])
            smooth[0] = seg[0]
            smooth[-1] = seg[-1]
            out.append(smooth)
    return join_segments(out)


def orient_ccw(data) -> np.ndarray:
    """Return the boundary with every closed ring ordered counter-clockwise."""
    out = []
    for seg in split_segments(data):
        if is_closed(seg) and seg.shape[0] >= 4 and not LinearRing(seg).is_ccw:
            seg = seg[::-1]
        out.append(seg)
    return join_segments(out)


def segment_lengths(data) -> list[float]:
    """Planar length (degrees) of each sub-path."""
    return [float(LineString(seg).length) for seg in split_segments(data) if seg.shape[0] >= 2]


def bbox_polygon(bbox) -> np.ndarray:
    lon_min, lon_max, lat_min, lat_max = (float(v) for v in bbox)
    return np.array([
        [lon_min, lat_min],
        [lon_min, lat_max],
        [lon_max, lat_max],
        [lon_max, lat_min],
        [lon_min, lat_min],
    ])


def points_in_polygons(points: np.ndarray, polygons) -> np.ndarray:
    """Even-odd point-in-polygon test against every ring of a NaN separated boundary.

    Rings nested inside another ring (islands inside the outer envelope)
    therefore act as holes.
    """
    pts = np.asarray(points, dtype=float).reshape(-1, 2)
    inside = np.zeros(pts.shape[0], dtype=bool)
    edges_x0: list[np.ndarray] = []
    edges_y0: list[np.ndarray] = []
    edges_x1: list[np.ndarray] = []
    edges_y1: list[np.ndarray] = []
    for ring in split_segments(polygons):
        if ring.shape[0] < 3:
            continue
        edges_x0.append(ring[:, 0])
        edges_y0.append(ring[:, 1])
        edges_x1.append(np.roll(ring[:, 0], -1))
        edges_y1.append(np.roll(ring[:, 1], -1))
    if not edges_x0 or pts.shape[0] == 0:
        return inside
    x0 = np.concatenate(edges_x0)
    y0 = np.concatenate(edges_y0)
    x1 = np.concatenate(edges_x1)
    y1 = np.concatenate(edges_y1)
    for start in range(0, pts.shape[0], INPOLY_CHUNK):
        stop = min(pts.shape[0], start + INPOLY_CHUNK)
        px = pts[start:stop, 0][:, None]
        py = pts[start:stop, 1][:, None]
        cond = ((y0 > py) != (y1 > py)) & (
            px < (x1 - x0) * (py - y0) / (y1 - y0 + 1e-16) + x0
        )
        inside[start:stop] = (cond.sum(axis=1) % 2) == 1
    return inside


def close_outer(outer, bbox, side: OceanSide) -> np.ndarray:
    """Turn an open outer coastline segment into a closed polygon.

    The vertices that stick out of the bounding box anchor two synthetic
    corners, pushed by the largest bbox extent toward the ocean side. The
    corners are appended in the order that continues from the end of the
    segment so the ring does not cross itself.
    """
    segments = split_segments(outer)
    if not segments:
        raise ConfigurationError("cannot close an empty outer boundary")
    pts = np.vstack(segments)
    outside = pts[~points_in_polygons(pts, bbox_polygon(bbox))]
    if outside.shape[0] == 0:
        outside = pts
    lon_min, lon_max, lat_min, lat_max = (float(v) for v in bbox)
    extent = max(lon_max - lon_min, lat_max - lat_min)
    shift = extent if side is OceanSide.RIGHT_TOP else -extent
    bot = outside.min(axis=0)
    bot[0] += shift
    top = np.array([bot[0], bot[1] + (pts[:, 1].max() - pts[:, 1].min())])
    last = segments[-1]
    if last[-1, 1] >= last[0, 1]:
        corners = np.vstack([top, bot])
    else:
        corners = np.vstack([bot, top])
    logger.info("Closing outer segment with corners at %s and %s", corners[0], corners[1])
    segments[-1] = np.vstack([last, corners, last[:1]])
    return join_segments(segments)


def _empty() -> np.ndarray:
    return np.empty((0, 2), dtype=float)


@dataclass
class BoundarySet:
    """The boundary roles of one meshing run."""

    outer: np.ndarray = field(default_factory=_empty)
    mainland: np.ndarray = field(default_factory=_empty)
    inner: np.ndarray = field(default_factory=_empty)
    floodplain_limit: np.ndarray | None = None

    def __post_init__(self):
        self.outer = as_boundary(self.outer)
        self.mainland = as_boundary(self.mainland)
        self.inner = as_boundary(self.inner)
        if self.floodplain_limit is not None:
            self.floodplain_limit = as_boundary(self.floodplain_limit)
            if self.floodplain_limit.shape[0] == 0:
                self.floodplain_limit = None

    @property
    def is_floodplain(self) -> bool:
        return self.floodplain_limit is not None

    @property
    def has_land(self) -> bool:
        return self.mainland.shape[0] > 0 or self.inner.shape[0] > 0

    @property
    def ocean_only(self) -> bool:
        return self.outer.shape[0] > 0 and not self.has_land and not self.is_floodplain

    def land_points(self) -> np.ndarray:
        return join_segments([self.inner, self.mainland])

    def containment_polygon(self) -> np.ndarray:
        return join_segments([self.outer, self.inner])

    def summary(self) -> dict:
        info = {}
        for name in ("outer", "mainland", "inner"):
            arr = getattr(self, name)
            info[name] = {
                "segments": len(split_segments(arr)),
                "vertices": int(np.count_nonzero(~np.isnan(arr).any(axis=1))) if arr.size else 0,
                "length": float(sum(segment_lengths(arr))),
            }
        info["floodplain"] = self.is_floodplain
        info["ocean_only"] = self.ocean_only
        return info

    def prepare(self,
                bbox,
                *,
                min_points: int = 5,
                smooth_window: int = 5,
                side: OceanSide | None = None,
                side_chooser: SideChooser | None = None) -> "BoundarySet":
        """Filter, smooth and close the boundaries ahead of distance evaluation.

        Floodplain boundaries come from an existing mesh and are only
        filtered; coastal ones are smoothed and the outer segment closed if
        it was supplied open.
        """
        mainland = filter_short_segments(self.mainland, min_points)
        inner = filter_short_segments(self.inner, min_points)
        outer = self.outer.copy()
        if self.is_floodplain:
            return BoundarySet(outer=outer, mainland=mainland, inner=orient_ccw(inner),
                               floodplain_limit=self.floodplain_limit.copy())
        if smooth_window > 1:
            outer = smooth_segments(outer, smooth_window)
            mainland = smooth_segments(mainland, smooth_window)
            inner = smooth_segments(inner, smooth_window)
        inner = orient_ccw(inner)
        if outer.shape[0] and not all_closed(outer):
            if side is None and side_chooser is not None:
                side = side_chooser(outer, tuple(bbox))
            if side is None:
                raise ConfigurationError(
                    "outer boundary is an open segment; pass an ocean side or a "
                    "side chooser so it can be closed"
                )
            outer = close_outer(outer, bbox, side)
        prepared = BoundarySet(outer=outer, mainland=mainland, inner=inner)
        if prepared.ocean_only:
            logger.info("Meshing the open ocean, no land or island segments present within bbox")
        return prepared

    @classmethod
    def from_dict(cls, data: dict) -> "BoundarySet":
        """Build from a JSON-style mapping of role -> list of sub-paths or NaN array."""
        def _role(key: str):
            raw = data.get(key)
            if raw is None:
                return None
            if len(raw) and isinstance(raw[0], (list, tuple)) and len(raw[0]) and \
                    isinstance(raw[0][0], (list, tuple)):
                return join_segments([np.asarray(seg, dtype=float) for seg in raw])
            return np.asarray(raw, dtype=float)

        unknown = set(data) - {"outer", "mainland", "inner", "floodplain_limit"}
        if unknown:
            raise ConfigurationError(f"unknown boundary roles: {sorted(unknown)}")
        return cls(
            outer=_role("outer"),
            mainland=_role("mainland"),
            inner=_role("inner"),
            floodplain_limit=_role("floodplain_limit"),
        )

    def to_dict(self) -> dict:
        out = {
            "outer": [seg.tolist() for seg in split_segments(self.outer)],
            "mainland": [seg.tolist() for seg in split_segments(self.mainland)],
            "inner": [seg.tolist() for seg in split_segments(self.inner)],
        }
        if self.is_floodplain:
            out["floodplain_limit"] = [seg.tolist() for seg in split_segments(self.floodplain_limit)]
        return out
