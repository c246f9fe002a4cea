"""
Match pruning for two-view feature correspondences
Ratio test, grid-based motion statistics (GMS) and locality preserving matching (LPM)
"""

__version__ = "0.1.0"

from .core import *  # noqa: F401,F403
from .core import __all__ as _core_all


# Lazy imports for OpenCV-backed utilities - only import when actually used
def __getattr__(name):
    """Lazy import for module attributes"""
    if name in ("ImageMatcher", "FeatureType", "MatcherType"):
        from .utils import image_matching
        return getattr(image_matching, name)
    elif name == "draw_matches":
        from .utils.visualization import draw_matches
        return draw_matches
    elif name in ("save_pruning_results", "load_pruning_results", "save_pruning_summary"):
        from .utils import io_utils
        return getattr(io_utils, name)

    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = list(_core_all) + [
    # Utilities
    "ImageMatcher",
    "FeatureType",
    "MatcherType",
    "draw_matches",
    "save_pruning_results",
    "load_pruning_results",
    "save_pruning_summary",
]
