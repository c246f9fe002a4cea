"""
Locality preserving matching (LPM)

Reference implementation of the LPM collaborator used by the LPM pruning
strategy, following "Locality Preserving Matching" (Ma et al., IJCV 2019).
A correspondence is kept when most of its K nearest neighbours in the query
image are also among its K nearest neighbours in the reference image, and
those shared neighbours move consistently with it.

Any object with a compatible ``match`` method can be passed to the pruner
instead.
"""

import numpy as np
import logging
from abc import ABC, abstractmethod
from typing import Optional, Tuple
from scipy.spatial import cKDTree

logger = logging.getLogger(__name__)


class LPMMatcher(ABC):
    """
    Interface of an LPM collaborator

    Costs and labels are aligned one-to-one with the input correspondences.
    """

    @abstractmethod
    def match(
        self,
        query_points: np.ndarray,
        reference_points: np.ndarray,
        num_neighbors: int,
        lambda_: float,
        tau: float,
        prior_labels: Optional[np.ndarray] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Score and label putative correspondences

        Args:
            query_points: (L, 2) query coordinates of the correspondences
            reference_points: (L, 2) reference coordinates, same order
            num_neighbors: Neighbourhood size K
            lambda_: Acceptance threshold on the cost
            tau: Motion consistency threshold
            prior_labels: Optional (L,) labels of a previous pass; only
                correspondences labelled True serve as neighbours

        Returns:
            costs: (L,) float costs, lower is better
            labels: (L,) bool, True for accepted correspondences
        """
        pass


class LocalityPreservingMatcher(LPMMatcher):
    """KD-tree based LPM cost"""

    def match(self, query_points, reference_points, num_neighbors, lambda_, tau, prior_labels=None):
        query_points = np.asarray(query_points, dtype=np.float64).reshape(-1, 2)
        reference_points = np.asarray(reference_points, dtype=np.float64).reshape(-1, 2)
        num_matches = len(query_points)
        if len(reference_points) != num_matches:
            raise ValueError("query_points and reference_points must be aligned")
        if num_matches == 0:
            return np.zeros(0, dtype=np.float64), np.zeros(0, dtype=bool)

        if prior_labels is None:
            candidates = np.arange(num_matches)
        else:
            candidates = np.flatnonzero(np.asarray(prior_labels, dtype=bool))

        neighbors_query = self._nearest_neighbors(query_points, candidates, num_neighbors)
        neighbors_reference = self._nearest_neighbors(reference_points, candidates, num_neighbors)

        motion = reference_points - query_points
        length = np.linalg.norm(motion, axis=1)

        costs = np.ones(num_matches, dtype=np.float64)
        has_neighbors = np.zeros(num_matches, dtype=bool)
        for i in range(num_matches):
            nq = neighbors_query[i][neighbors_query[i] >= 0]
            nr = neighbors_reference[i][neighbors_reference[i] >= 0]
            if len(nq) == 0:
                continue
            has_neighbors[i] = True

            common = np.intersect1d(nq, nr)
            missing = num_neighbors - len(common)

            inconsistent = 0
            if len(common):
                longer = np.maximum(length[common], length[i])
                shorter = np.minimum(length[common], length[i])
                ratio = np.divide(shorter, longer, out=np.ones_like(longer), where=longer > 0)

                denom = length[common] * length[i]
                dot = motion[common] @ motion[i]
                cosine = np.divide(dot, denom, out=np.ones_like(denom), where=denom > 0)

                inconsistent = int(np.sum(ratio * cosine < tau))

            costs[i] = (missing + inconsistent) / num_neighbors

        labels = has_neighbors & (costs <= lambda_)
        logger.debug(f"LPM (K={num_neighbors}, lambda={lambda_}, tau={tau}): "
                     f"{int(labels.sum())}/{num_matches} accepted")
        return costs, labels

    @staticmethod
    def _nearest_neighbors(points: np.ndarray, candidates: np.ndarray, num_neighbors: int) -> np.ndarray:
        """
        K nearest candidates of every point, excluding the point itself

        Returns:
            (L, K) indices into points, padded with -1
        """
        num_points = len(points)
        neighbors = np.full((num_points, num_neighbors), -1, dtype=np.int64)
        if len(candidates) == 0:
            return neighbors

        tree = cKDTree(points[candidates])
        k = min(num_neighbors + 1, len(candidates))
        _, idx = tree.query(points, k=k)
        idx = candidates[np.asarray(idx).reshape(num_points, k)]

        for i in range(num_points):
            row = idx[i][idx[i] != i][:num_neighbors]
            neighbors[i, :len(row)] = row
        return neighbors
