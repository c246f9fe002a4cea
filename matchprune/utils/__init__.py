"""
Correspondence source, I/O and drawing utilities
"""

from .image_matching import ImageMatcher, FeatureType, MatcherType
from .io_utils import save_pruning_results, load_pruning_results, save_pruning_summary
from .visualization import draw_matches

__all__ = [
    "ImageMatcher",
    "FeatureType",
    "MatcherType",
    "save_pruning_results",
    "load_pruning_results",
    "save_pruning_summary",
    "draw_matches",
]
