"""Continuous edge-length function over the finished size field."""
from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np
from scipy.interpolate import RegularGridInterpolator

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

REQUIRED_ARRAYS = ("lon", "lat", "values")


class EdgeFieldInterpolant:
    """
    Bilinear lookup of the target edge length at arbitrary (lon, lat).

    Queries outside the grid box are clipped onto it, so they take the value
    of the nearest boundary cell. The stored values are read-only.
    """

    def __init__(self, lon: np.ndarray, lat: np.ndarray, values: np.ndarray, *, meta: dict | None = None):
        lon = np.array(lon, dtype=float).reshape(-1)
        lat = np.array(lat, dtype=float).reshape(-1)
        values = np.array(values, dtype=float)
        if values.shape != (lon.size, lat.size):
            raise ConfigurationError(
                f"edge field has shape {values.shape}, expected ({lon.size}, {lat.size})"
            )
        for arr in (lon, lat, values):
            arr.setflags(write=False)
        self.lon = lon
        self.lat = lat
        self.values = values
        self.meta = dict(meta or {})
        self._interp = RegularGridInterpolator((lon, lat), values, method="linear")

    @property
    def bbox(self) -> tuple[float, float, float, float]:
        return float(self.lon[0]), float(self.lon[-1]), float(self.lat[0]), float(self.lat[-1])

    def evaluate(self, points: np.ndarray) -> np.ndarray:
        pts = np.array(points, dtype=float).reshape(-1, 2)
        pts[:, 0] = np.clip(pts[:, 0], self.lon[0], self.lon[-1])
        pts[:, 1] = np.clip(pts[:, 1], self.lat[0], self.lat[-1])
        return self._interp(pts)

    __call__ = evaluate

    def save(self, path: Path | str) -> Path:
        path = Path(path)
        # numpy appends .npz itself; return the name it actually writes
        if path.suffix != ".npz":
            path = path.with_name(path.name + ".npz")
        path.parent.mkdir(parents=True, exist_ok=True)
        np.savez_compressed(
            path,
            lon=self.lon,
            lat=self.lat,
            values=self.values,
            meta=json.dumps(self.meta, default=float),
        )
        logger.info("Wrote edge function to %s", path)
        return path

    @classmethod
    def load(cls, path: Path | str) -> "EdgeFieldInterpolant":
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"edge function file '{path}' was not found")
        with np.load(path, allow_pickle=False) as data:
            missing = [key for key in REQUIRED_ARRAYS if key not in data.files]
            if missing:
                raise ConfigurationError(f"edge function file '{path}' is missing arrays {missing}")
            meta = json.loads(str(data["meta"])) if "meta" in data.files else {}
            interp = cls(data["lon"], data["lat"], data["values"], meta=meta)
        logger.info("Loaded edge function from %s", path)
        return interp
