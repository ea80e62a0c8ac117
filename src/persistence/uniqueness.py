"""
Per-scale uniqueness selection.

At each scale, every point's distance to the pooled mean is computed.
sigma is the population standard deviation of those distances around
zero:

    sigma = sqrt(Σ_p diff[p]² / n_points)

A point is unique at that scale iff diff[p] > alpha * sigma (strict).

The boolean mask is the only stored flag representation; the flagged
index list is derived from it, so the two can never disagree.

A scale with zero points gives sigma = NaN (0/0). NaN distances make
the comparison false, so those points are never flagged.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Union

import numpy as np

from persistence.errors import NonFiniteDistanceError
from persistence.metrics import DistanceMetric, distances_to_reference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScaleUniqueness:
    """Uniqueness outcome for one scale."""
    scale: float
    distances: np.ndarray  # (n_points,) distance to the mean
    sigma: float
    threshold: float       # alpha * sigma
    mask: np.ndarray       # (n_points,) bool

    @property
    def n_points(self) -> int:
        return int(self.mask.shape[0])

    @property
    def indices(self) -> np.ndarray:
        """Flagged point indices, ascending."""
        return np.flatnonzero(self.mask)

    @property
    def n_unique(self) -> int:
        return int(np.count_nonzero(self.mask))

    def is_unique(self, index: int) -> bool:
        """
        Flag lookup for one point.

        Raises IndexError when `index` is outside this scale's points.
        """
        if index < 0 or index >= self.n_points:
            raise IndexError(
                f"Point index {index} out of range for scale {self.scale} "
                f"with {self.n_points} points"
            )
        return bool(self.mask[index])


def extract_unique_features_at_scale(
    vectors: np.ndarray,
    mean_feature: np.ndarray,
    alpha: float,
    metric: Union[str, DistanceMetric] = DistanceMetric.MANHATTAN,
    scale: float = float("nan"),
    strict: bool = False,
) -> ScaleUniqueness:
    """
    Flag the points of one scale whose distance to the mean exceeds alpha * sigma.

    Parameters
    ----------
    vectors : np.ndarray
        (n_points, n_dims) vectorized descriptors of this scale.
    mean_feature : np.ndarray
        (n_dims,) pooled mean over all scales.
    alpha : float
        Threshold multiplier. Larger → fewer, more extreme points.
    metric : DistanceMetric or str
    scale : float
        Radius, for logging and bookkeeping only.
    strict : bool
        Raise NonFiniteDistanceError on NaN/Inf distances or sigma
        instead of letting them propagate.
    """
    vectors = np.asarray(vectors, dtype=np.float64)
    diff = distances_to_reference(vectors, mean_feature, metric)
    n = diff.shape[0]

    with np.errstate(divide="ignore", invalid="ignore"):
        sigma = float(np.sqrt(np.sum(diff * diff) / np.float64(n)))
    logger.info("Standard deviation for scale %f is %f", scale, sigma)

    non_finite = int(np.count_nonzero(~np.isfinite(diff)))
    if strict and (non_finite or not np.isfinite(sigma)):
        raise NonFiniteDistanceError(
            f"Scale {scale}: {non_finite} non-finite distances, sigma={sigma}"
        )
    if non_finite:
        logger.warning(
            "Scale %f: %d of %d distances to the mean are not finite (metric %s)",
            scale, non_finite, n, DistanceMetric.parse(metric).value,
        )

    threshold = alpha * sigma
    with np.errstate(invalid="ignore"):
        mask = diff > threshold

    logger.info("Scale %f: %d of %d points unique", scale, int(np.count_nonzero(mask)), n)
    return ScaleUniqueness(
        scale=float(scale),
        distances=diff,
        sigma=sigma,
        threshold=threshold,
        mask=mask,
    )


def extract_unique_features(
    vectors_at_scale: Sequence[np.ndarray],
    mean_feature: np.ndarray,
    alpha: float,
    metric: Union[str, DistanceMetric] = DistanceMetric.MANHATTAN,
    scales: Sequence[float] = (),
    strict: bool = False,
) -> List[ScaleUniqueness]:
    """
    Run uniqueness selection independently at every scale.

    Parameters
    ----------
    vectors_at_scale : sequence of np.ndarray
        One (n_points_s, n_dims) matrix per scale.
    mean_feature : np.ndarray
        Pooled mean from compute_mean_feature.
    scales : sequence of float, optional
        Radii aligned with vectors_at_scale (bookkeeping only).

    Returns
    -------
    list of ScaleUniqueness, same order as vectors_at_scale.
    """
    mean_feature = np.asarray(mean_feature, dtype=np.float64)
    if strict and not np.all(np.isfinite(mean_feature)):
        raise NonFiniteDistanceError("Mean feature contains non-finite components")

    scales = list(scales) if len(scales) else [float("nan")] * len(vectors_at_scale)
    if len(scales) != len(vectors_at_scale):
        raise ValueError(
            f"{len(scales)} scale values for {len(vectors_at_scale)} vector sets"
        )

    return [
        extract_unique_features_at_scale(v, mean_feature, alpha, metric, scale=s, strict=strict)
        for v, s in zip(vectors_at_scale, scales)
    ]
