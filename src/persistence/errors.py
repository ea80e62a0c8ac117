"""
Error taxonomy for multiscale feature persistence.

Configuration problems abort a run before any descriptor is computed.
Scale mismatches abort during persistence selection.
Non-finite distances only raise in strict mode; otherwise they propagate.
"""


class PersistenceError(Exception):
    """Base class for all persistence errors."""


class ConfigurationError(PersistenceError, ValueError):
    """Missing estimator, empty scale list, empty input cloud, dimension mismatch."""


class ScaleMismatchError(PersistenceError, IndexError):
    """A flagged index falls outside another scale's point range."""


class NonFiniteDistanceError(PersistenceError, FloatingPointError):
    """NaN/Inf in a distance, the mean vector or a sigma (strict mode only)."""
