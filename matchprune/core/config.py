"""
Configuration management for match pruning

Uses dataclasses for type safety and validation.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Tuple

from .errors import ConfigurationError


@dataclass
class RatioTestConfig:
    """Configuration for Lowe's ratio test"""

    # Accept the best candidate iff d1 / d2 < ratio
    ratio: float = 0.8

    def __post_init__(self):
        if not (0.0 < self.ratio <= 1.0):
            raise ConfigurationError(f"ratio must be in (0, 1], got {self.ratio}")


@dataclass
class GMSConfig:
    """Configuration for grid-based motion statistics"""

    # Resolution of the query (left) grid
    grid_width: int = 15
    grid_height: int = 15

    # Support threshold factor: alpha * sqrt(mean neighbour population)
    alpha: float = 6.0

    # Hypothesis search
    with_scale: bool = True
    with_rotation: bool = True

    def __post_init__(self):
        if self.grid_width <= 0 or self.grid_height <= 0:
            raise ConfigurationError(
                f"Grid dimensions must be positive, got {self.grid_width}x{self.grid_height}"
            )
        if self.alpha <= 0:
            raise ConfigurationError(f"alpha must be positive, got {self.alpha}")

    @property
    def grid_size(self) -> Tuple[int, int]:
        return (self.grid_width, self.grid_height)


@dataclass
class LPMPassConfig:
    """Parameters of one locality preserving matching pass"""

    num_neighbors: int = 8
    lambda_: float = 0.8
    tau: float = 0.2

    def __post_init__(self):
        if self.num_neighbors <= 0:
            raise ConfigurationError(f"num_neighbors must be positive, got {self.num_neighbors}")
        if self.lambda_ < 0:
            raise ConfigurationError(f"lambda_ must be non-negative, got {self.lambda_}")


@dataclass
class LPMConfig:
    """Two-pass locality preserving matching"""

    first: LPMPassConfig = field(default_factory=lambda: LPMPassConfig(8, 0.8, 0.2))
    second: LPMPassConfig = field(default_factory=lambda: LPMPassConfig(8, 0.5, 0.2))

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "LPMConfig":
        config_dict = dict(config_dict)
        kwargs = {}
        if "first" in config_dict:
            kwargs["first"] = LPMPassConfig(**config_dict.pop("first"))
        if "second" in config_dict:
            kwargs["second"] = LPMPassConfig(**config_dict.pop("second"))
        if config_dict:
            raise ConfigurationError(f"Unknown LPM config keys: {sorted(config_dict)}")
        return cls(**kwargs)


@dataclass
class PrunerConfig:
    """Main configuration for the match pruning dispatcher"""

    # Pruning method: "ratio", "gms" or "lpm"
    method: str = "gms"

    # Sub-configurations
    ratio_test: RatioTestConfig = field(default_factory=RatioTestConfig)
    gms: GMSConfig = field(default_factory=GMSConfig)
    lpm: LPMConfig = field(default_factory=LPMConfig)

    # Logging level: "DEBUG", "INFO", "WARNING", "ERROR"
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration"""
        if self.method not in ["ratio", "gms", "lpm"]:
            raise ConfigurationError(f"Invalid method: {self.method}")

        if self.log_level not in ["DEBUG", "INFO", "WARNING", "ERROR"]:
            raise ConfigurationError(f"Invalid log_level: {self.log_level}")

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "PrunerConfig":
        """Create config from dictionary (for CLI/JSON loading)"""
        config_dict = dict(config_dict)
        ratio_test = RatioTestConfig(**config_dict.pop("ratio_test", {}))
        gms = GMSConfig(**config_dict.pop("gms", {}))
        lpm = LPMConfig.from_dict(config_dict.pop("lpm", {}))

        return cls(
            ratio_test=ratio_test,
            gms=gms,
            lpm=lpm,
            **config_dict
        )

    def to_dict(self) -> Dict[str, Any]:
        """Export config to dictionary"""
        return {
            "method": self.method,
            "ratio_test": dict(self.ratio_test.__dict__),
            "gms": dict(self.gms.__dict__),
            "lpm": {
                "first": dict(self.lpm.first.__dict__),
                "second": dict(self.lpm.second.__dict__),
            },
            "log_level": self.log_level,
        }
