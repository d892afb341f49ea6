"""Run parameters and case-definition loading."""
from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from .exceptions import ConfigurationError

CASE_DEFINITION_FILENAME = "case_definition.json"
BATHY_FILENAME = "bathy.npz"
EDGEFX_FILENAME = "edgefx.npz"
MESH_FILENAME = "mesh.npz"

GRAVITY = 9.807
M2_PERIOD = 12.42 * 3600.0  # principal lunar semidiurnal period (s)
METERS_PER_DEGREE = 111000.0
TARGET_CFL = 0.5

# camelCase names used by older case files
_ALIASES = {
    "minEdgeLength": "min_edge_length",
    "min_el": "min_edge_length",
    "maxEdgeLength": "max_edge_length",
    "max_el": "max_edge_length",
    "distParam": "dist_param",
    "wlParam": "wl_param",
    "slopeParam": "slope_param",
    "minFeatureLen": "min_segment_points",
    "minL": "min_segment_points",
    "min_feature_len": "min_segment_points",
    "numWorkers": "num_workers",
    "num_p": "num_workers",
}


@dataclass(frozen=True)
class FloodplainBounds:
    """Limits of a floodplain run: highest elevation (m) and furthest distance (deg) inland."""

    max_elevation: float
    max_distance: float

    @classmethod
    def from_value(cls, value) -> "FloodplainBounds | None":
        if value is None or isinstance(value, FloodplainBounds):
            return value
        if isinstance(value, dict):
            return cls(float(value["max_elevation"]), float(value["max_distance"]))
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return cls(float(value[0]), float(value[1]))
        raise ConfigurationError(f"bounds must be [max_elevation, max_distance], got {value!r}")


@dataclass
class MeshParameters:
    min_edge_length: float
    max_edge_length: float
    dist_param: float = 0.0
    wl_param: float = 0.0
    slope_param: float = 0.0
    dt: float = -1.0
    bounds: FloodplainBounds | None = None
    min_segment_points: int = 5  # vertices, not length
    num_workers: int = 1
    grade: float | None = None
    feature_size: bool | None = None
    medial_threshold: float = 0.9
    feature_divisor: float = 4.0
    tidal_period: float = M2_PERIOD
    gravity: float = GRAVITY
    target_cfl: float = TARGET_CFL
    meters_per_degree: float = METERS_PER_DEGREE
    azimuth: float = 45.0
    smooth_window: int = 5
    max_iter: int | None = None
    quality_min_angle: float = 0.0
    seed: int = 0

    def __post_init__(self):
        self.bounds = FloodplainBounds.from_value(self.bounds)
        self.validate()

    @property
    def h0(self) -> float:
        return abs(float(self.min_edge_length))

    @property
    def gradient_limit(self) -> float:
        """Maximum size gradient; defaults to dist_param."""
        return float(self.dist_param if self.grade is None else self.grade)

    @property
    def use_feature_size(self) -> bool:
        if self.feature_size is None:
            return self.min_edge_length > 0
        return bool(self.feature_size)

    def validate(self) -> None:
        bad = []
        if not math.isfinite(self.max_edge_length) or self.max_edge_length <= 0:
            bad.append("max_edge_length")
        if self.min_edge_length == 0 or not math.isfinite(self.min_edge_length):
            bad.append("min_edge_length")
        elif self.max_edge_length < self.h0:
            bad.append("max_edge_length")
        for name in ("dist_param", "wl_param", "slope_param"):
            if getattr(self, name) < 0:
                bad.append(name)
        if self.num_workers < 1:
            bad.append("num_workers")
        if self.target_cfl <= 0:
            bad.append("target_cfl")
        if bad:
            raise ConfigurationError(f"invalid mesh parameters: {sorted(set(bad))}")

    @classmethod
    def from_dict(cls, data: dict) -> "MeshParameters":
        names = {f.name for f in fields(cls)}
        kwargs = {}
        unknown = []
        for key, value in data.items():
            name = _ALIASES.get(key, key)
            if name in names:
                kwargs[name] = value
            else:
                unknown.append(key)
        if unknown:
            raise ConfigurationError(f"unknown mesh parameters: {sorted(unknown)}")
        missing = {"min_edge_length", "max_edge_length"} - set(kwargs)
        if missing:
            raise ConfigurationError(f"missing mesh parameters: {sorted(missing)}")
        return cls(**kwargs)

    def to_dict(self) -> dict:
        return asdict(self)


def load_case_definition(path: Path | str) -> dict:
    path = Path(path).expanduser().resolve()
    if not path.exists():
        raise ConfigurationError(f"case definition '{path}' was not found")
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)
