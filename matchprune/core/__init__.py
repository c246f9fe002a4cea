"""
Core match pruning components
"""

from .errors import MatchPruningError, ConfigurationError, EmptyInputError
from .config import PrunerConfig, RatioTestConfig, GMSConfig, LPMConfig, LPMPassConfig
from .correspondences import Correspondence, PutativeMatches, PruningResult
from .grid import Grid, GridOffset
from .gms import GMSFilter, ROTATION_PATTERNS, SCALE_RATIOS, gms_inlier_mask
from .lpm import LPMMatcher, LocalityPreservingMatcher
from .pruner import (
    PrunerType,
    RatioTestStrategy,
    GMSStrategy,
    LPMStrategy,
    MatchPruner,
    prune_matches,
    prune_pairs,
)

__all__ = [
    # Errors
    "MatchPruningError",
    "ConfigurationError",
    "EmptyInputError",

    # Configuration
    "PrunerConfig",
    "RatioTestConfig",
    "GMSConfig",
    "LPMConfig",
    "LPMPassConfig",

    # Data model
    "Correspondence",
    "PutativeMatches",
    "PruningResult",

    # GMS
    "Grid",
    "GridOffset",
    "GMSFilter",
    "ROTATION_PATTERNS",
    "SCALE_RATIOS",
    "gms_inlier_mask",

    # LPM
    "LPMMatcher",
    "LocalityPreservingMatcher",

    # Dispatcher
    "PrunerType",
    "RatioTestStrategy",
    "GMSStrategy",
    "LPMStrategy",
    "MatchPruner",
    "prune_matches",
    "prune_pairs",
]
