"""
Grid-based motion statistics (GMS) match filtering

Implements the correspondence filter from "GMS: Grid-Based Motion Statistics
for Fast, Ultra-Robust Feature Correspondence" (Bian et al., CVPR 2017).

Both images are divided into grids. Every putative match votes for the pair
of cells it connects; a cell pair is kept when the votes of its 3x3
neighbourhood exceed alpha * sqrt(mean neighbour population). Relative
rotation and scale are handled by brute force over a fixed set of
hypotheses, keeping the one that retains the most matches.
"""

import numpy as np
import logging
from enum import IntEnum
from typing import Tuple, NamedTuple, Sequence

from .errors import ConfigurationError
from .grid import Grid, GridOffset

logger = logging.getLogger(__name__)


# 8 possible rotations, each a 3x3 permutation of neighbourhood slots (1-based).
# Slot j of the query neighbourhood is compared with slot pattern[j] of the
# reference neighbourhood.
ROTATION_PATTERNS = np.array([
    [1, 2, 3,
     4, 5, 6,
     7, 8, 9],

    [4, 1, 2,
     7, 5, 3,
     8, 9, 6],

    [7, 4, 1,
     8, 5, 2,
     9, 6, 3],

    [8, 7, 4,
     9, 5, 1,
     6, 3, 2],

    [9, 8, 7,
     6, 5, 4,
     3, 2, 1],

    [6, 9, 8,
     3, 5, 7,
     2, 1, 4],

    [3, 6, 9,
     2, 5, 8,
     1, 4, 7],

    [2, 3, 6,
     1, 5, 9,
     4, 7, 8],
], dtype=np.int64)
ROTATION_PATTERNS.setflags(write=False)

# Reference grid resolution relative to the query grid
SCALE_RATIOS = (1.0, 1.0 / 2, 1.0 / np.sqrt(2.0), np.sqrt(2.0), 2.0)

NUM_ROTATIONS = len(ROTATION_PATTERNS)


class CellState(IntEnum):
    """Outcome of verifying one query cell"""
    UNASSIGNED = 0  # no votes
    PAIRED = 1      # paired with a reference cell
    REJECTED = 2    # insufficient neighbourhood support


class CellPairing(NamedTuple):
    """Per query cell state and, for PAIRED cells, the chosen reference cell"""
    state: np.ndarray       # (num_left_cells,) CellState values
    right_cell: np.ndarray  # (num_left_cells,) valid only where state == PAIRED


def normalize_points(points: np.ndarray, size: Sequence[int]) -> np.ndarray:
    """Divide pixel coordinates by the image (width, height)"""
    width, height = int(size[0]), int(size[1])
    if width <= 0 or height <= 0:
        raise ConfigurationError(f"Image size must be positive, got {width}x{height}")
    points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    return points / np.array([width, height], dtype=np.float64)


class GMSFilter:
    """
    Grid-based motion statistics filter for one image pair

    The filter owns its vote buffer and per-cell counters, so an instance
    must not be shared between concurrent calls.

    Parameters
    ----------
    query_points : numpy.ndarray
        (N, 2) pixel coordinates of the query (left) keypoints
    query_size : tuple
        (width, height) of the query image
    reference_points : numpy.ndarray
        (M, 2) pixel coordinates of the reference (right) keypoints
    reference_size : tuple
        (width, height) of the reference image
    correspondences : numpy.ndarray
        (L, 2) rows of [query_idx, reference_idx]
    grid_size : tuple
        (width, height) of the query grid (default (20, 20))
    alpha : float
        Support threshold factor (default 6.0)
    """

    def __init__(self,
                 query_points: np.ndarray,
                 query_size: Sequence[int],
                 reference_points: np.ndarray,
                 reference_size: Sequence[int],
                 correspondences: np.ndarray,
                 grid_size: Tuple[int, int] = (20, 20),
                 alpha: float = 6.0):
        if alpha <= 0:
            raise ConfigurationError(f"alpha must be positive, got {alpha}")
        self.alpha = float(alpha)
        self.left_grid = Grid(grid_size[0], grid_size[1])

        query_norm = normalize_points(query_points, query_size)
        reference_norm = normalize_points(reference_points, reference_size)

        correspondences = np.asarray(correspondences, dtype=np.int64).reshape(-1, 2)
        if len(correspondences):
            if correspondences[:, 0].min() < 0 or correspondences[:, 0].max() >= len(query_norm):
                raise ConfigurationError("query index out of range of the query keypoints")
            if correspondences[:, 1].min() < 0 or correspondences[:, 1].max() >= len(reference_norm):
                raise ConfigurationError("reference index out of range of the reference keypoints")
        self.correspondences = correspondences
        self.num_matches = len(correspondences)

        self._left_points = query_norm[correspondences[:, 0]]
        self._right_points = reference_norm[correspondences[:, 1]]

        # The query-side cell of a match depends only on the offset variant
        self._left_cells = {
            offset: self.left_grid.cell_index(self._left_points, offset)
            for offset in GridOffset
        }

        self.right_grid = None
        self._right_cells = None
        self._votes = None
        self._population = np.zeros(self.left_grid.num_cells, dtype=np.int64)
        self.set_scale(SCALE_RATIOS[0])

    def set_scale(self, ratio: float):
        """Resize the reference grid and its vote buffer for a scale hypothesis"""
        self.right_grid = self.left_grid.scaled(ratio)
        self._right_cells = self.right_grid.cell_index(self._right_points, GridOffset.NONE)
        self._votes = np.zeros((self.left_grid.num_cells, self.right_grid.num_cells), dtype=np.int32)

    def inlier_mask(self, with_scale: bool = False, with_rotation: bool = False) -> Tuple[np.ndarray, int]:
        """
        Search the hypothesis space and return the best inlier mask

        Args:
            with_scale: Try all 5 reference grid scales instead of 1.0
            with_rotation: Try all 8 rotation patterns instead of the identity

        Returns:
            (mask, count): boolean mask over the correspondences and its
            number of inliers. Ties keep the first hypothesis found.
        """
        best_mask = np.zeros(self.num_matches, dtype=bool)
        best_count = 0
        if self.num_matches == 0:
            return best_mask, best_count

        scales = SCALE_RATIOS if with_scale else SCALE_RATIOS[:1]
        rotations = range(1, NUM_ROTATIONS + 1) if with_rotation else (1,)

        for ratio in scales:
            self.set_scale(ratio)
            for rotation in rotations:
                mask, count = self.run(rotation)
                logger.debug(f"GMS scale {ratio:.3f} rotation {rotation}: {count} inliers")
                if count > best_count:
                    best_mask, best_count = mask, count

        return best_mask, best_count

    def run(self, rotation: int = 1) -> Tuple[np.ndarray, int]:
        """
        Evaluate one rotation hypothesis at the current scale

        A match is an inlier if it survives under any of the 4 grid offsets.
        """
        if not 1 <= rotation <= NUM_ROTATIONS:
            raise ConfigurationError(f"rotation must be in 1..{NUM_ROTATIONS}, got {rotation}")
        pattern = ROTATION_PATTERNS[rotation - 1] - 1

        mask = np.zeros(self.num_matches, dtype=bool)
        for offset in GridOffset:
            left_cells, right_cells = self.assign_match_pairs(offset)
            pairing = self.verify_cell_pairs(pattern)

            assigned = np.flatnonzero((left_cells >= 0) & (right_cells >= 0))
            cells = left_cells[assigned]
            hit = (pairing.state[cells] == CellState.PAIRED) & (pairing.right_cell[cells] == right_cells[assigned])
            mask[assigned[hit]] = True

        return mask, int(mask.sum())

    def assign_match_pairs(self, offset: GridOffset) -> Tuple[np.ndarray, np.ndarray]:
        """Reset the vote buffer and count the votes of every assignable match"""
        self._votes.fill(0)
        self._population.fill(0)

        left_cells = self._left_cells[offset]
        right_cells = self._right_cells
        assignable = (left_cells >= 0) & (right_cells >= 0)

        np.add.at(self._votes, (left_cells[assignable], right_cells[assignable]), 1)
        self._population += np.bincount(left_cells[assignable], minlength=self.left_grid.num_cells)
        return left_cells, right_cells

    def verify_cell_pairs(self, pattern: np.ndarray) -> CellPairing:
        """
        Pair every voted query cell with its best reference cell and reject
        pairs without enough neighbourhood support

        Args:
            pattern: 0-based rotation pattern, slot j -> reference slot pattern[j]
        """
        num_cells = self.left_grid.num_cells
        state = np.full(num_cells, CellState.UNASSIGNED, dtype=np.int8)
        right_cell = np.full(num_cells, -1, dtype=np.int64)

        cells = np.flatnonzero(self._population > 0)
        if len(cells) == 0:
            return CellPairing(state, right_cell)

        votes = self._votes
        # argmax returns the first maximum, i.e. the lowest reference cell on ties
        best_right = votes[cells].argmax(axis=1)

        nb_left = self.left_grid.neighbors[cells]
        nb_right = self.right_grid.neighbors[best_right][:, pattern]
        valid = (nb_left >= 0) & (nb_right >= 0)

        safe_left = np.where(valid, nb_left, 0)
        safe_right = np.where(valid, nb_right, 0)
        score = np.where(valid, votes[safe_left, safe_right], 0).sum(axis=1)
        population = np.where(valid, self._population[safe_left], 0).sum(axis=1)
        num_pairs = valid.sum(axis=1)

        threshold = np.full(len(cells), np.inf)
        supported = num_pairs > 0
        threshold[supported] = self.alpha * np.sqrt(population[supported] / num_pairs[supported])

        accepted = supported & (score >= threshold)
        state[cells] = np.where(accepted, CellState.PAIRED, CellState.REJECTED)
        right_cell[cells[accepted]] = best_right[accepted]
        return CellPairing(state, right_cell)


def gms_inlier_mask(query_points, query_size, reference_points, reference_size,
                    correspondences, grid_size=(20, 20), alpha=6.0,
                    with_scale=False, with_rotation=False):
    """
    Functional interface to GMSFilter

    Returns:
        mask : numpy.ndarray
            Boolean inlier mask aligned with correspondences
    """
    gms = GMSFilter(query_points, query_size, reference_points, reference_size,
                    correspondences, grid_size=grid_size, alpha=alpha)
    mask, _ = gms.inlier_mask(with_scale=with_scale, with_rotation=with_rotation)
    return mask
