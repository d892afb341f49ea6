"""Errors and warnings raised while building size fields and distance functions."""
from __future__ import annotations


class TidemeshError(RuntimeError):
    """Base class for fatal tidemesh failures."""


class ConfigurationError(TidemeshError):
    """Raised when the boundaries or parameters cannot describe a meshable run.

    Examples: no outer boundary to classify points against, an automatic CFL
    timestep requested without a distance criterion, an open outer segment
    with no way to decide which side the ocean is on.
    """


class RunAborted(TidemeshError):
    """Raised when an accept gate declines to continue a run."""

    def __init__(self, stage: str):
        super().__init__(f"run aborted at stage '{stage}'")
        self.stage = stage


class ConvergenceWarning(RuntimeWarning):
    """Gradient relaxation stopped at its iteration cap before settling."""


class DataGapWarning(RuntimeWarning):
    """Bathymetry has missing values and no fallback raster could fill them."""
