"""Edge-length functions and signed distances for coastal and floodplain meshes."""
from .boundaries import BoundarySet, OceanSide
from .cfl import CFLLimiter
from .config import FloodplainBounds, MeshParameters
from .distance import DistanceMode, PolygonDistance
from .edgefx import FieldBuildResult, ScalarFieldBuilder
from .exceptions import (
    ConfigurationError,
    ConvergenceWarning,
    DataGapWarning,
    RunAborted,
    TidemeshError,
)
from .geodesy import UnitConverter
from .gradient import GradientLimiter, limit_gradient
from .grid import Grid, Raster
from .interpolant import EdgeFieldInterpolant
from .prep import MeshInputs, MeshResult, build_size_field, prepare, run
from .spatial_index import SpatialIndex

__version__ = "0.1.0"
