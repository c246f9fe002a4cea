"""
Grid indexing for grid-based motion statistics

Normalized image coordinates in [0, 1) are partitioned into a regular grid.
The query grid can be shifted by half a cell along x, y or both so that a
match straddling a cell border is caught by at least one of the variants.
"""

import numpy as np
from enum import IntEnum
from functools import lru_cache
from itertools import product
from typing import Tuple

from .errors import ConfigurationError


class GridOffset(IntEnum):
    """Half-cell shifts applied to the query grid"""
    NONE = 1
    SHIFT_X = 2
    SHIFT_Y = 3
    SHIFT_XY = 4


_OFFSET_SHIFTS = {
    GridOffset.NONE: (0.0, 0.0),
    GridOffset.SHIFT_X: (0.5, 0.0),
    GridOffset.SHIFT_Y: (0.0, 0.5),
    GridOffset.SHIFT_XY: (0.5, 0.5),
}

# Slot order of a 3x3 neighbourhood: dy outer, dx inner; slot 4 is the cell itself
NEIGHBOR_STEPS = tuple(product((-1, 0, 1), (-1, 0, 1)))


@lru_cache(maxsize=32)
def _build_neighbor_table(width: int, height: int) -> np.ndarray:
    num_cells = width * height
    cells = np.arange(num_cells, dtype=np.int64)
    cx = cells % max(width, 1)
    cy = cells // max(width, 1)

    table = np.full((num_cells, 9), -1, dtype=np.int64)
    for slot, (dy, dx) in enumerate(NEIGHBOR_STEPS):
        nx = cx + dx
        ny = cy + dy
        inside = (nx >= 0) & (nx < width) & (ny >= 0) & (ny < height)
        table[inside, slot] = nx[inside] + ny[inside] * width

    table.setflags(write=False)
    return table


class Grid:
    """
    A width x height partition of the normalized image plane

    Cell indices are row-major: index = x + y * width. Lookups that fall
    outside the grid return -1; there is no clamping and no wraparound.
    """

    def __init__(self, width: int, height: int, allow_empty: bool = False):
        width, height = int(width), int(height)
        if width < 0 or height < 0 or (not allow_empty and (width == 0 or height == 0)):
            raise ConfigurationError(f"Grid dimensions must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        self.num_cells = width * height

    def __repr__(self) -> str:
        return f"Grid({self.width}x{self.height})"

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @property
    def neighbors(self) -> np.ndarray:
        """(num_cells, 9) table of 3x3 neighbourhoods, -1 for off-grid slots"""
        return _build_neighbor_table(self.width, self.height)

    def scaled(self, ratio: float) -> "Grid":
        """Grid whose resolution is this one's truncated by ratio (may be empty)"""
        return Grid(int(self.width * ratio), int(self.height * ratio), allow_empty=True)

    def cell_index(self, points: np.ndarray, offset: GridOffset = GridOffset.NONE) -> np.ndarray:
        """
        Cell index of every normalized point

        Args:
            points: (N, 2) normalized coordinates
            offset: Half-cell shift of the grid

        Returns:
            (N,) int64 cell indices, -1 where the point is off-grid
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        shift_x, shift_y = _OFFSET_SHIFTS[GridOffset(offset)]

        with np.errstate(invalid="ignore"):
            x = np.floor(points[:, 0] * self.width + shift_x)
            y = np.floor(points[:, 1] * self.height + shift_y)
            valid = (x >= 0) & (x < self.width) & (y >= 0) & (y < self.height)

        index = np.full(len(points), -1, dtype=np.int64)
        index[valid] = x[valid].astype(np.int64) + y[valid].astype(np.int64) * self.width
        return index
