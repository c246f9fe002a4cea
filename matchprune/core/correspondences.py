"""
Correspondence data structures shared by all pruning strategies

PutativeMatches holds the keypoints of both images together with the
k nearest reference candidates of every query keypoint. PruningResult holds
the aligned outputs of one pruning pass.
"""

import numpy as np
import logging
from typing import List, Tuple, Sequence, NamedTuple, Any
from dataclasses import dataclass, field

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class Correspondence(NamedTuple):
    """A (query, reference) keypoint pair and its descriptor distance"""

    query_idx: int
    reference_idx: int
    distance: float


def keypoints_to_array(keypoints: Any) -> np.ndarray:
    """Convert cv2.KeyPoint lists or array-likes into an (N, 2) float array"""
    if isinstance(keypoints, np.ndarray):
        return np.asarray(keypoints, dtype=np.float64).reshape(-1, 2)

    keypoints = list(keypoints)
    if not keypoints:
        return np.zeros((0, 2), dtype=np.float64)
    if hasattr(keypoints[0], "pt"):
        return np.array([kp.pt for kp in keypoints], dtype=np.float64)
    return np.asarray(keypoints, dtype=np.float64).reshape(-1, 2)


def _image_size(size: Sequence[int]) -> Tuple[int, int]:
    width, height = int(size[0]), int(size[1])
    if width <= 0 or height <= 0:
        raise ConfigurationError(f"Image size must be positive, got {width}x{height}")
    return width, height


@dataclass
class PutativeMatches:
    """
    Putative correspondences between a query and a reference image

    Row i of the candidate arrays belongs to query keypoint query_indices[i];
    its k columns are the reference candidates sorted by ascending distance.
    Image sizes are (width, height) in pixels.
    """

    query_keypoints: np.ndarray       # (N, 2) pixel coordinates
    reference_keypoints: np.ndarray   # (M, 2) pixel coordinates
    query_size: Tuple[int, int]
    reference_size: Tuple[int, int]
    candidate_indices: np.ndarray     # (Q, k) reference keypoint indices
    candidate_distances: np.ndarray   # (Q, k) ascending distances
    query_indices: np.ndarray = None  # (Q,) defaults to 0..Q-1

    def __post_init__(self):
        self.query_keypoints = keypoints_to_array(self.query_keypoints)
        self.reference_keypoints = keypoints_to_array(self.reference_keypoints)
        self.query_size = _image_size(self.query_size)
        self.reference_size = _image_size(self.reference_size)

        self.candidate_indices = np.asarray(self.candidate_indices, dtype=np.int64)
        self.candidate_distances = np.asarray(self.candidate_distances, dtype=np.float64)
        if self.candidate_indices.size == 0 and self.candidate_indices.ndim < 2:
            self.candidate_indices = self.candidate_indices.reshape(0, 0)
        if self.candidate_distances.size == 0 and self.candidate_distances.ndim < 2:
            self.candidate_distances = self.candidate_distances.reshape(0, 0)
        if self.candidate_indices.ndim != 2:
            raise ConfigurationError("candidate_indices must be a (Q, k) matrix")
        if self.candidate_indices.shape != self.candidate_distances.shape:
            raise ConfigurationError(
                f"Candidate index and distance shapes differ: "
                f"{self.candidate_indices.shape} vs {self.candidate_distances.shape}"
            )

        if self.query_indices is None:
            self.query_indices = np.arange(len(self.candidate_indices), dtype=np.int64)
        else:
            self.query_indices = np.asarray(self.query_indices, dtype=np.int64)
        if len(self.query_indices) != len(self.candidate_indices):
            raise ConfigurationError("query_indices must have one entry per candidate row")

        if len(self.candidate_indices):
            if self.candidate_indices.shape[1] == 0:
                raise ConfigurationError("Candidate lists must hold at least one candidate")
            if self.query_indices.min() < 0 or self.query_indices.max() >= len(self.query_keypoints):
                raise ConfigurationError("query index out of range of the query keypoints")
            if self.candidate_indices.min() < 0 or self.candidate_indices.max() >= len(self.reference_keypoints):
                raise ConfigurationError("candidate index out of range of the reference keypoints")

    def __len__(self) -> int:
        return len(self.candidate_indices)

    @property
    def k(self) -> int:
        """Number of candidates per query keypoint"""
        return self.candidate_indices.shape[1]

    def best_correspondences(self) -> np.ndarray:
        """(Q, 2) array of (query_idx, reference_idx) using each row's best candidate"""
        if len(self) == 0:
            return np.zeros((0, 2), dtype=np.int64)
        return np.stack([self.query_indices, self.candidate_indices[:, 0]], axis=1)

    def best_points(self) -> Tuple[np.ndarray, np.ndarray]:
        """Pixel coordinates of the best-candidate correspondences"""
        pairs = self.best_correspondences()
        return self.query_keypoints[pairs[:, 0]], self.reference_keypoints[pairs[:, 1]]

    @classmethod
    def from_candidate_lists(cls,
                             query_keypoints: Any,
                             reference_keypoints: Any,
                             query_size: Sequence[int],
                             reference_size: Sequence[int],
                             candidate_lists: Sequence[Sequence[Tuple[int, float]]]) -> "PutativeMatches":
        """
        Build from per-query lists of (reference_idx, distance) pairs

        Args:
            candidate_lists: Entry i holds the candidates of query keypoint i,
                sorted by ascending distance. All lists must have the same length.

        Raises:
            ConfigurationError: If the candidate lists differ in length or are empty.
        """
        candidate_lists = [list(c) for c in candidate_lists]
        if not candidate_lists:
            return cls(query_keypoints, reference_keypoints, query_size, reference_size,
                       np.zeros((0, 0), dtype=np.int64), np.zeros((0, 0), dtype=np.float64))

        lengths = {len(c) for c in candidate_lists}
        if len(lengths) != 1:
            raise ConfigurationError(
                f"Candidate lists must share one length k, got lengths {sorted(lengths)}"
            )
        k = lengths.pop()
        if k == 0:
            raise ConfigurationError("Candidate lists must hold at least one candidate")

        indices = np.array([[int(idx) for idx, _ in c] for c in candidate_lists], dtype=np.int64)
        distances = np.array([[float(d) for _, d in c] for c in candidate_lists], dtype=np.float64)
        return cls(query_keypoints, reference_keypoints, query_size, reference_size, indices, distances)

    @classmethod
    def from_knn_matches(cls,
                         query_keypoints: Any,
                         reference_keypoints: Any,
                         query_size: Sequence[int],
                         reference_size: Sequence[int],
                         knn_matches: Sequence[Sequence[Any]]) -> "PutativeMatches":
        """
        Build from OpenCV knnMatch output (lists of cv2.DMatch)

        Query rows are taken from DMatch.queryIdx, so rows dropped by the
        caller keep their original keypoint index.
        """
        knn_matches = [list(row) for row in knn_matches]
        if not knn_matches:
            return cls.from_candidate_lists(query_keypoints, reference_keypoints,
                                            query_size, reference_size, [])

        lengths = {len(row) for row in knn_matches}
        if len(lengths) != 1:
            raise ConfigurationError(
                f"Candidate lists must share one length k, got lengths {sorted(lengths)}"
            )
        if 0 in lengths:
            raise ConfigurationError("Candidate lists must hold at least one candidate")

        query_indices = np.array([row[0].queryIdx for row in knn_matches], dtype=np.int64)
        indices = np.array([[m.trainIdx for m in row] for row in knn_matches], dtype=np.int64)
        distances = np.array([[m.distance for m in row] for row in knn_matches], dtype=np.float64)
        return cls(query_keypoints, reference_keypoints, query_size, reference_size,
                   indices, distances, query_indices)


@dataclass
class PruningResult:
    """Aligned outputs of one pruning pass"""

    matches: List[Correspondence]
    scores: np.ndarray            # (n,) lower is stronger for ratio/LPM, 1.0 for GMS
    knn_distances: np.ndarray     # (n, k) candidate distances of each accepted query
    query_points: np.ndarray      # (n, 2) float32 pixel coordinates
    reference_points: np.ndarray  # (n, 2) float32 pixel coordinates
    method: str = ""
    rows: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))

    def __len__(self) -> int:
        return len(self.matches)

    @classmethod
    def from_rows(cls,
                  putative: PutativeMatches,
                  rows: Sequence[int],
                  scores: Sequence[float],
                  method: str = "") -> "PruningResult":
        """
        Materialize the accepted best-candidate correspondences

        Args:
            putative: The putative set the rows index into.
            rows: Accepted candidate rows in acceptance order.
            scores: One score per accepted row.
            method: Name of the strategy that accepted them.
        """
        rows = np.asarray(rows, dtype=np.int64).reshape(-1)
        scores = np.asarray(scores, dtype=np.float64).reshape(-1)
        if len(rows) != len(scores):
            raise ConfigurationError(f"Got {len(rows)} accepted rows but {len(scores)} scores")

        query_idx = putative.query_indices[rows]
        reference_idx = putative.candidate_indices[rows, 0] if len(rows) else np.zeros(0, dtype=np.int64)
        best_distances = putative.candidate_distances[rows, 0] if len(rows) else np.zeros(0)

        matches = [
            Correspondence(int(q), int(r), float(d))
            for q, r, d in zip(query_idx, reference_idx, best_distances)
        ]

        return cls(
            matches=matches,
            scores=scores,
            knn_distances=putative.candidate_distances[rows].astype(np.float64).reshape(len(rows), putative.k),
            query_points=putative.query_keypoints[query_idx].astype(np.float32).reshape(-1, 2),
            reference_points=putative.reference_keypoints[reference_idx].astype(np.float32).reshape(-1, 2),
            method=method,
            rows=rows,
        )
