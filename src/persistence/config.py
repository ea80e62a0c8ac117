"""
Persistence Configuration
=========================
Defaults for multiscale feature persistence. Single source of truth.

Usage:
    from persistence.config import CONFIG, PersistenceConfig
    cfg = PersistenceConfig.from_yaml('persistence.yaml')
    cfg = PersistenceConfig(scale_values=[0.01, 0.02, 0.04], alpha=1.2)

YAML layout (the top-level `persistence:` key is optional):

    persistence:
      scale_values: [0.01, 0.02, 0.04]
      alpha: 1.2
      distance_metric: euclidean
      persistence_policy: all_scales
      strict: false
      n_workers: 1
"""

import logging
import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

import yaml

from persistence.errors import ConfigurationError
from persistence.metrics import DistanceMetric
from persistence.selection import PersistencePolicy

logger = logging.getLogger(__name__)


CONFIG = {
    'distance_metric': 'manhattan',
    'alpha': 1.0,
    'persistence_policy': 'all_scales',
    # Fail on NaN/Inf distances instead of propagating them
    'strict': False,
    # Threads for per-scale descriptor computation
    'n_workers': 1,
}


@dataclass
class PersistenceConfig:
    """Static configuration of a persistence run."""
    scale_values: List[float] = field(default_factory=list)
    alpha: float = CONFIG['alpha']
    distance_metric: DistanceMetric = DistanceMetric(CONFIG['distance_metric'])
    persistence_policy: PersistencePolicy = PersistencePolicy(CONFIG['persistence_policy'])
    strict: bool = CONFIG['strict']
    n_workers: int = CONFIG['n_workers']

    def __post_init__(self):
        self.scale_values = [float(s) for s in self.scale_values]
        self.alpha = float(self.alpha)
        self.n_workers = int(self.n_workers)
        self.strict = bool(self.strict)
        try:
            self.distance_metric = DistanceMetric.parse(self.distance_metric)
            self.persistence_policy = PersistencePolicy.parse(self.persistence_policy)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    def validate(self) -> None:
        """
        Check the run preconditions that depend on configuration alone.

        Raises ConfigurationError. Non-positive alpha is allowed but warned.
        """
        if not self.scale_values:
            raise ConfigurationError("No scale values were given")
        bad = [s for s in self.scale_values if not math.isfinite(s) or s <= 0]
        if bad:
            raise ConfigurationError(f"Scale values must be positive and finite, got {bad}")
        if not math.isfinite(self.alpha):
            raise ConfigurationError(f"alpha must be finite, got {self.alpha}")
        if self.alpha <= 0:
            logger.warning("alpha=%f is not positive; every point with a nonzero distance is flagged", self.alpha)
        if self.n_workers < 1:
            raise ConfigurationError(f"n_workers must be >= 1, got {self.n_workers}")

    @classmethod
    def from_dict(cls, mapping: Mapping[str, Any]) -> "PersistenceConfig":
        """Build from a mapping merged over CONFIG. Unknown keys are rejected."""
        if 'persistence' in mapping and isinstance(mapping['persistence'], Mapping):
            mapping = mapping['persistence']
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {unknown}. Known: {sorted(known)}")
        merged: Dict[str, Any] = dict(CONFIG)
        merged.update(mapping)
        return cls(**merged)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "PersistenceConfig":
        """Load from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"{path}: expected a mapping, got {type(data).__name__}")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scale_values': list(self.scale_values),
            'alpha': self.alpha,
            'distance_metric': self.distance_metric.value,
            'persistence_policy': self.persistence_policy.value,
            'strict': self.strict,
            'n_workers': self.n_workers,
        }
