"""
Command line entry point.

    python -m tidemesh cases/galveston --ocean-side right_top

The case directory holds `case_definition.json` (bbox, boundaries,
parameters) and `bathy.npz` (lon, lat, depth and optional fallback_lon,
fallback_lat, fallback_depth). `edgefx.npz` and `mesh.npz` are written
next to them.
"""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

import numpy as np

from .boundaries import BoundarySet, OceanSide
from .config import (
    BATHY_FILENAME,
    CASE_DEFINITION_FILENAME,
    EDGEFX_FILENAME,
    MESH_FILENAME,
    MeshParameters,
    load_case_definition,
)
from .exceptions import ConfigurationError, TidemeshError
from .grid import Grid, Raster
from .logging_config import setup_logging
from .prep import run

logger = logging.getLogger("tidemesh.cli")

SIDE_NAMES = {"right_top": OceanSide.RIGHT_TOP, "left_bottom": OceanSide.LEFT_BOTTOM}


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tidemesh", description="Build a coastal or floodplain mesh")
    parser.add_argument("case_dir", help="Directory holding case_definition.json and bathy.npz")
    parser.add_argument("--case-config",
                        help=f"Path to a JSON case definition (default: CASE_DIR/{CASE_DEFINITION_FILENAME})")
    parser.add_argument("--bathy", help=f"Bathymetry archive (default: CASE_DIR/{BATHY_FILENAME})")
    parser.add_argument("--edgefx", help="Reuse a saved edge function instead of building one")
    parser.add_argument("--ocean-side", choices=sorted(SIDE_NAMES),
                        help="Side of an open outer segment the ocean lies on")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--log-file", help="Also write the log to this file")
    return parser.parse_args(argv)


def _write_case(payload: dict, case_dir: Path, filename: str = MESH_FILENAME) -> Path:
    case_dir.mkdir(parents=True, exist_ok=True)
    outpath = case_dir / filename
    np.savez_compressed(outpath, **payload)
    return outpath


def _load_raster(path: Path, prefix: str = "") -> Raster | None:
    with np.load(path, allow_pickle=False) as data:
        keys = [f"{prefix}lon", f"{prefix}lat", f"{prefix}depth"]
        if not all(key in data.files for key in keys):
            if prefix:
                return None
            raise ConfigurationError(f"bathymetry file '{path}' must contain lon, lat and depth")
        return Raster(data[keys[0]], data[keys[1]], data[keys[2]])


def main(argv=None) -> int:
    args = _parse_args(argv)
    setup_logging(args.log_level, args.log_file)
    case_dir = Path(args.case_dir).expanduser().resolve()
    config_path = Path(args.case_config) if args.case_config else case_dir / CASE_DEFINITION_FILENAME
    bathy_path = Path(args.bathy) if args.bathy else case_dir / BATHY_FILENAME

    try:
        definition = load_case_definition(config_path)
        if "bbox" not in definition:
            raise ConfigurationError("case definition needs a bbox [lon_min, lon_max, lat_min, lat_max]")
        bbox = tuple(float(v) for v in definition["bbox"])
        params = MeshParameters.from_dict(definition.get("parameters", {}))
        boundaries = BoundarySet.from_dict(definition.get("boundaries", {}))
        side_name = args.ocean_side or definition.get("ocean_side")
        if side_name is not None and side_name not in SIDE_NAMES:
            raise ConfigurationError(f"ocean_side must be one of {sorted(SIDE_NAMES)}")
        side = SIDE_NAMES.get(side_name)

        if not bathy_path.exists():
            raise ConfigurationError(f"bathymetry file '{bathy_path}' was not found")
        raster = _load_raster(bathy_path)
        fallback = _load_raster(bathy_path, prefix="fallback_")
        grid = Grid.from_raster(raster, bbox, fallback=fallback)

        result = run(boundaries, grid, params, bbox=bbox, side=side, edgefx_path=args.edgefx)
    except TidemeshError as exc:
        raise SystemExit(f"tidemesh failed: {exc}") from exc

    if args.edgefx is None:
        result.inputs.edge_length.save(case_dir / EDGEFX_FILENAME)
    outpath = _write_case(
        {"p": result.p, "t": result.t, "meta": json.dumps(result.meta, default=float)},
        case_dir,
    )
    logger.info("Wrote %d nodes / %d elements to %s", result.p.shape[0], result.t.shape[0], outpath)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
