"""
Exception types raised by the match pruning subsystem

Only invalid input is reported. Degenerate grid cells (off-grid lookups,
cells without votes, cells without neighbourhood support) are handled
inside the filters and simply produce outliers.
"""


class MatchPruningError(Exception):
    """Base class for all match pruning errors"""


class ConfigurationError(MatchPruningError, ValueError):
    """Invalid strategy parameters or inconsistent candidate lists"""


class EmptyInputError(MatchPruningError, ValueError):
    """No putative correspondences were supplied"""
