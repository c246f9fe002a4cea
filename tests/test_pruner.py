"""
Unit tests for the match pruning dispatcher
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from matchprune.core.pruner import (
    PrunerType,
    RatioTestStrategy,
    GMSStrategy,
    LPMStrategy,
    MatchPruner,
    prune_matches,
    prune_pairs,
)
from matchprune.core.config import PrunerConfig, GMSConfig
from matchprune.core.correspondences import PutativeMatches, Correspondence
from matchprune.core.errors import ConfigurationError, EmptyInputError, MatchPruningError
from matchprune.core.lpm import LPMMatcher


IMAGE_SIZE = (400, 400)


def make_ratio_putative():
    """Two queries: one distinctive (1.0 vs 3.0), one ambiguous (2.0 vs 2.2)"""
    query = np.array([[10.0, 20.0], [30.0, 40.0]])
    reference = np.array([[11.0, 21.0], [50.0, 60.0], [31.0, 41.0], [70.0, 80.0]])
    candidates = [
        [(0, 1.0), (1, 3.0)],
        [(2, 2.0), (3, 2.2)],
    ]
    return PutativeMatches.from_candidate_lists(query, reference, IMAGE_SIZE, IMAGE_SIZE, candidates)


def make_cluster_putative(seed=0, k=2):
    """Cluster of 50 consistent matches plus 450 random ones, k candidates each"""
    rng = np.random.default_rng(seed)
    query = np.vstack([rng.uniform(203.0, 207.0, size=(50, 2)),
                       rng.uniform(0.0, 400.0, size=(450, 2))])
    reference = np.vstack([rng.uniform(103.0, 107.0, size=(50, 2)),
                           rng.uniform(0.0, 400.0, size=(450, 2))])

    indices = np.zeros((500, k), dtype=np.int64)
    indices[:, 0] = np.arange(500)
    for j in range(1, k):
        indices[:, j] = (np.arange(500) + 7 * j) % 500
    distances = np.sort(rng.uniform(0.1, 1.0, size=(500, k)), axis=1)
    return PutativeMatches(query, reference, IMAGE_SIZE, IMAGE_SIZE, indices, distances)


class RecordingLPM(LPMMatcher):
    """LPM stand-in that accepts even correspondences and records its calls"""

    def __init__(self):
        self.calls = []

    def match(self, query_points, reference_points, num_neighbors, lambda_, tau, prior_labels=None):
        self.calls.append((num_neighbors, lambda_, tau, None if prior_labels is None else prior_labels.copy()))
        n = len(query_points)
        costs = np.arange(n, dtype=np.float64) / 10.0 + len(self.calls)
        labels = np.arange(n) % 2 == 0
        return costs, labels


class TestRatioTest:
    """Test Lowe's ratio test strategy"""

    def test_ratio_scenario(self):
        """Test (1.0, 3.0) is accepted with score 1/3 and (2.0, 2.2) rejected"""
        result = RatioTestStrategy().prune(make_ratio_putative())

        assert len(result) == 1
        assert result.matches[0] == Correspondence(0, 0, 1.0)
        np.testing.assert_allclose(result.scores, [1.0 / 3.0])
        np.testing.assert_allclose(result.knn_distances, [[1.0, 3.0]])
        np.testing.assert_allclose(result.query_points, [[10.0, 20.0]])
        np.testing.assert_allclose(result.reference_points, [[11.0, 21.0]])

    def test_requires_two_candidates(self):
        """Test k < 2 is a configuration error"""
        putative = PutativeMatches.from_candidate_lists(
            np.zeros((1, 2)), np.zeros((1, 2)), IMAGE_SIZE, IMAGE_SIZE, [[(0, 1.0)]]
        )
        with pytest.raises(ConfigurationError):
            RatioTestStrategy().prune(putative)

    def test_zero_second_distance(self):
        """Test a zero second distance rejects without division errors"""
        putative = PutativeMatches.from_candidate_lists(
            np.zeros((2, 2)), np.zeros((2, 2)), IMAGE_SIZE, IMAGE_SIZE,
            [[(0, 0.0), (1, 0.0)], [(1, 0.5), (0, 0.0)]],
        )
        result = RatioTestStrategy().prune(putative)
        assert len(result) == 0


class TestGMSStrategy:
    """Test the GMS strategy"""

    def test_uniform_scores(self):
        """Test every survivor scores 1.0 and outputs stay aligned"""
        putative = make_cluster_putative(k=3)
        config = GMSConfig(grid_width=20, grid_height=20, alpha=6.0)
        result = GMSStrategy(config).prune(putative)

        assert 45 <= len(result) <= 60
        np.testing.assert_array_equal(result.scores, np.ones(len(result)))
        assert result.knn_distances.shape == (len(result), 3)
        for i, match in enumerate(result.matches):
            np.testing.assert_allclose(result.knn_distances[i], putative.candidate_distances[match.query_idx])
            np.testing.assert_allclose(result.query_points[i], putative.query_keypoints[match.query_idx], rtol=1e-6)
            np.testing.assert_allclose(result.reference_points[i], putative.reference_keypoints[match.reference_idx], rtol=1e-6)

    def test_uses_best_candidate(self):
        """Test only the first candidate of each query is considered"""
        putative = make_cluster_putative(k=2)
        result = GMSStrategy(GMSConfig(grid_width=20, grid_height=20)).prune(putative)

        for match in result.matches:
            assert match.reference_idx == putative.candidate_indices[match.query_idx, 0]


class TestLPMStrategy:
    """Test the LPM strategy contract"""

    def test_two_passes(self):
        """Test pass parameters, prior labels and pass-2 cost scores"""
        matcher = RecordingLPM()
        putative = make_cluster_putative(k=2)
        result = LPMStrategy(matcher=matcher).prune(putative)

        assert len(matcher.calls) == 2
        assert matcher.calls[0][:3] == (8, 0.8, 0.2)
        assert matcher.calls[0][3] is None
        assert matcher.calls[1][:3] == (8, 0.5, 0.2)
        np.testing.assert_array_equal(matcher.calls[1][3], np.arange(500) % 2 == 0)

        assert len(result) == 250
        np.testing.assert_allclose(result.scores, np.arange(0, 500, 2) / 10.0 + 2)

    def test_misaligned_collaborator(self):
        """Test a collaborator returning the wrong number of labels is reported"""

        class ShortLPM(LPMMatcher):
            def match(self, query_points, reference_points, num_neighbors, lambda_, tau, prior_labels=None):
                return np.zeros(1), np.ones(1, dtype=bool)

        with pytest.raises(MatchPruningError):
            LPMStrategy(matcher=ShortLPM()).prune(make_cluster_putative())

    def test_default_matcher(self):
        """Test the built-in LPM keeps a translated point set"""
        rng = np.random.default_rng(4)
        query = rng.uniform(0.0, 300.0, size=(80, 2))
        reference = query + np.array([40.0, 25.0])
        putative = PutativeMatches(query, reference, IMAGE_SIZE, IMAGE_SIZE,
                                   np.arange(80).reshape(-1, 1), np.ones((80, 1)))

        result = MatchPruner(putative, PrunerType.LPM).result

        assert len(result) == 80
        np.testing.assert_allclose(result.scores, 0.0)


class TestMatchPruner:
    """Test the dispatcher"""

    @pytest.mark.parametrize("method", ["ratio", "gms", "lpm"])
    def test_empty_input(self, method):
        """Test zero putative matches raise EmptyInputError for every method"""
        putative = PutativeMatches.from_candidate_lists(
            np.zeros((0, 2)), np.zeros((0, 2)), IMAGE_SIZE, IMAGE_SIZE, []
        )
        with pytest.raises(EmptyInputError):
            MatchPruner(putative, method)

    def test_getters(self):
        """Test getters return the aligned result arrays"""
        pruner = MatchPruner(make_ratio_putative(), PrunerType.RATIO)

        points0, points1 = pruner.get_matched_points()
        assert pruner.get_matches() == [Correspondence(0, 0, 1.0)]
        assert points0.shape == (1, 2) and points1.shape == (1, 2)
        assert points0.dtype == np.float32
        np.testing.assert_allclose(pruner.get_knn_distances(), [[1.0, 3.0]])
        np.testing.assert_allclose(pruner.get_matching_scores(), [1.0 / 3.0])

    def test_method_from_config(self):
        """Test the method defaults to the configured one"""
        config = PrunerConfig(method="ratio")
        pruner = MatchPruner(make_ratio_putative(), config=config)
        assert pruner.method == PrunerType.RATIO

    def test_config_from_dict(self):
        """Test a dictionary configuration is accepted"""
        result = prune_matches(make_ratio_putative(), config={"method": "ratio", "ratio_test": {"ratio": 0.95}})
        assert len(result) == 2

    def test_invalid_method(self):
        """Test unknown method names are rejected"""
        with pytest.raises(ConfigurationError):
            MatchPruner(make_ratio_putative(), "ransac")

    def test_injected_lpm(self):
        """Test an injected LPM collaborator is used"""
        matcher = RecordingLPM()
        result = prune_matches(make_cluster_putative(), PrunerType.LPM, lpm_matcher=matcher)
        assert result.method == "lpm"
        assert len(matcher.calls) == 2


class TestPrunePairs:
    """Test batch pruning"""

    def test_skips_empty_pairs(self):
        """Test pairs without matches are skipped"""
        empty = PutativeMatches.from_candidate_lists(
            np.zeros((0, 2)), np.zeros((0, 2)), IMAGE_SIZE, IMAGE_SIZE, []
        )
        pairs = {("a.jpg", "b.jpg"): make_ratio_putative(), ("b.jpg", "c.jpg"): empty}

        results = prune_pairs(pairs, "ratio")

        assert list(results.keys()) == [("a.jpg", "b.jpg")]
        assert len(results[("a.jpg", "b.jpg")]) == 1
