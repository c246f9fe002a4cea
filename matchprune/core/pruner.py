"""
Match pruning dispatcher

Selects one pruning strategy (ratio test, GMS or LPM), runs it on the
putative correspondences and assembles the matched points, scores and
k-NN distance rows of the accepted matches.
"""

import numpy as np
import logging
from enum import Enum
from typing import Dict, Any, Hashable, List, Optional, Tuple, Union
from tqdm import tqdm

from .config import PrunerConfig, RatioTestConfig, GMSConfig, LPMConfig
from .correspondences import Correspondence, PutativeMatches, PruningResult
from .errors import ConfigurationError, EmptyInputError, MatchPruningError
from .gms import GMSFilter
from .lpm import LocalityPreservingMatcher

logger = logging.getLogger(__name__)


class PrunerType(Enum):
    """Available match pruning methods"""
    RATIO = "ratio"
    GMS = "gms"
    LPM = "lpm"


def _require_matches(putative: PutativeMatches):
    if len(putative) == 0:
        raise EmptyInputError("No putative correspondences to prune")


class RatioTestStrategy:
    """Lowe's ratio test on the two nearest candidates"""

    name = PrunerType.RATIO.value

    def __init__(self, config: Optional[RatioTestConfig] = None):
        self.config = config or RatioTestConfig()

    def prune(self, putative: PutativeMatches) -> PruningResult:
        _require_matches(putative)
        if putative.k < 2:
            raise ConfigurationError(f"Ratio test needs k >= 2 candidates per query, got k={putative.k}")

        distances = putative.candidate_distances
        # d2 == 0 gives inf (or nan when d1 == 0 too), both rejected
        with np.errstate(divide="ignore", invalid="ignore"):
            ratios = distances[:, 0] / distances[:, 1]

        rows = np.flatnonzero(ratios < self.config.ratio)
        return PruningResult.from_rows(putative, rows, ratios[rows], self.name)


class GMSStrategy:
    """Grid-based motion statistics with rotation and scale search"""

    name = PrunerType.GMS.value

    def __init__(self, config: Optional[GMSConfig] = None):
        self.config = config or GMSConfig()

    def prune(self, putative: PutativeMatches) -> PruningResult:
        _require_matches(putative)

        gms = GMSFilter(
            putative.query_keypoints, putative.query_size,
            putative.reference_keypoints, putative.reference_size,
            putative.best_correspondences(),
            grid_size=self.config.grid_size,
            alpha=self.config.alpha,
        )
        mask, _ = gms.inlier_mask(with_scale=self.config.with_scale,
                                  with_rotation=self.config.with_rotation)

        rows = np.flatnonzero(mask)
        # GMS makes a binary decision, so every survivor gets the same score
        return PruningResult.from_rows(putative, rows, np.ones(len(rows)), self.name)


class LPMStrategy:
    """Two-pass locality preserving matching"""

    name = PrunerType.LPM.value

    def __init__(self, config: Optional[LPMConfig] = None, matcher: Any = None):
        self.config = config or LPMConfig()
        self.matcher = matcher if matcher is not None else LocalityPreservingMatcher()

    def prune(self, putative: PutativeMatches) -> PruningResult:
        _require_matches(putative)
        query_points, reference_points = putative.best_points()
        first, second = self.config.first, self.config.second

        _, prior_labels = self._run_pass(query_points, reference_points, first, None)
        costs, labels = self._run_pass(query_points, reference_points, second, prior_labels)

        rows = np.flatnonzero(labels)
        return PruningResult.from_rows(putative, rows, costs[rows], self.name)

    def _run_pass(self, query_points, reference_points, params, prior_labels):
        costs, labels = self.matcher.match(
            query_points, reference_points,
            params.num_neighbors, params.lambda_, params.tau,
            prior_labels=prior_labels,
        )
        costs = np.asarray(costs, dtype=np.float64).reshape(-1)
        labels = np.asarray(labels, dtype=bool).reshape(-1)
        if len(costs) != len(query_points) or len(labels) != len(query_points):
            raise MatchPruningError(
                f"LPM matcher returned {len(costs)} costs and {len(labels)} labels "
                f"for {len(query_points)} correspondences"
            )
        return costs, labels


def create_strategy(method: PrunerType, config: PrunerConfig, lpm_matcher: Any = None):
    """Build the strategy object for a pruning method"""
    if method == PrunerType.RATIO:
        return RatioTestStrategy(config.ratio_test)
    if method == PrunerType.GMS:
        return GMSStrategy(config.gms)
    if method == PrunerType.LPM:
        return LPMStrategy(config.lpm, lpm_matcher)
    raise ConfigurationError(f"Unknown pruning method: {method}")


def _resolve(method: Union[PrunerType, str, None],
             config: Union[PrunerConfig, Dict[str, Any], None]) -> Tuple[PrunerType, PrunerConfig]:
    if isinstance(config, dict):
        config = PrunerConfig.from_dict(config)
    config = config or PrunerConfig()

    if method is None:
        method = config.method
    try:
        method = PrunerType(method)
    except ValueError:
        raise ConfigurationError(f"Invalid pruning method: {method}")
    return method, config


class MatchPruner:
    """
    Prunes putative matches with the selected method

    Pruning runs on construction; the getters return the aligned outputs.

    Args:
        putative: Putative correspondences with k candidates per query
        method: PrunerType or its string value; defaults to config.method
        config: PrunerConfig or a dictionary accepted by PrunerConfig.from_dict
        lpm_matcher: Optional LPM collaborator used by the LPM method
    """

    def __init__(self,
                 putative: PutativeMatches,
                 method: Union[PrunerType, str, None] = None,
                 config: Union[PrunerConfig, Dict[str, Any], None] = None,
                 lpm_matcher: Any = None):
        self.method, self.config = _resolve(method, config)
        self.putative = putative
        self.strategy = create_strategy(self.method, self.config, lpm_matcher)

        logger.info(f"Pruning {len(putative)} putative matches with method: {self.method.value}")
        self.result = self.strategy.prune(putative)
        logger.info(f"Kept {len(self.result)}/{len(putative)} matches after {self.method.value} pruning")

    def get_matches(self) -> List[Correspondence]:
        return list(self.result.matches)

    def get_matched_points(self) -> Tuple[np.ndarray, np.ndarray]:
        return self.result.query_points.copy(), self.result.reference_points.copy()

    def get_knn_distances(self) -> np.ndarray:
        return self.result.knn_distances.copy()

    def get_matching_scores(self) -> np.ndarray:
        """Scores aligned with the matches; lower is stronger for ratio and LPM"""
        return self.result.scores.copy()


def prune_matches(putative: PutativeMatches,
                  method: Union[PrunerType, str, None] = None,
                  config: Union[PrunerConfig, Dict[str, Any], None] = None,
                  lpm_matcher: Any = None) -> PruningResult:
    """Prune one putative set (simple functional interface)"""
    return MatchPruner(putative, method, config, lpm_matcher).result


def prune_pairs(pairs: Dict[Hashable, PutativeMatches],
                method: Union[PrunerType, str, None] = None,
                config: Union[PrunerConfig, Dict[str, Any], None] = None,
                lpm_matcher: Any = None) -> Dict[Hashable, PruningResult]:
    """
    Prune the putative matches of many image pairs

    Pairs without putative matches are logged and skipped.

    Args:
        pairs: Mapping from a pair key (e.g. (img1, img2)) to its putative matches

    Returns:
        Mapping from pair key to PruningResult
    """
    method, config = _resolve(method, config)
    strategy = create_strategy(method, config, lpm_matcher)

    results = {}
    logger.info(f"Pruning {len(pairs)} image pairs with method: {method.value}")
    for pair_key, putative in tqdm(pairs.items(), desc="Match Pruning"):
        try:
            results[pair_key] = strategy.prune(putative)
        except EmptyInputError:
            logger.warning(f"Skipping pair {pair_key}: no putative matches")
            continue

    total_in = sum(len(p) for p in pairs.values())
    total_out = sum(len(r) for r in results.values())
    logger.info(f"Pruned {len(results)}/{len(pairs)} pairs, kept {total_out}/{total_in} matches")
    return results
