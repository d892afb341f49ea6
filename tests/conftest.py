import numpy as np
import pytest

from tidemesh.boundaries import BoundarySet
from tidemesh.grid import Grid


def square_ring(x0=0.0, x1=1.0, y0=0.0, y1=1.0, n=21) -> np.ndarray:
    """Closed, counter-clockwise square with `n` vertices per side."""
    xs = np.linspace(x0, x1, n)
    ys = np.linspace(y0, y1, n)
    bottom = np.column_stack([xs, np.full(n, y0)])
    right = np.column_stack([np.full(n, x1), ys])[1:]
    top = np.column_stack([xs[::-1], np.full(n, y1)])[1:]
    left = np.column_stack([np.full(n, x0), ys[::-1]])[1:]
    return np.vstack([bottom, right, top, left])


@pytest.fixture
def unit_square():
    return square_ring()


@pytest.fixture
def coastal_square(unit_square):
    """Unit square ocean whose whole rim is coastline."""
    return BoundarySet(outer=unit_square, mainland=unit_square.copy())


@pytest.fixture
def flat_grid():
    lon = np.linspace(0.05, 0.95, 19)
    lat = np.linspace(0.05, 0.95, 19)
    depth = np.full((lon.size, lat.size), 100.0)
    return Grid(lon, lat, depth)
