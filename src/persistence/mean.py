"""
Pooled mean descriptor.

mean[d] = Σ over all scales, all points of vector[d] / total point count.

Every (scale, point) pair weighs the same, so scales with more points
pull the mean harder.
"""

from typing import Sequence

import numpy as np

from persistence.errors import ConfigurationError


def compute_mean_feature(vectors_at_scale: Sequence[np.ndarray]) -> np.ndarray:
    """
    Mean vector over every descriptor of every scale.

    Parameters
    ----------
    vectors_at_scale : sequence of np.ndarray
        (n_points_s, n_dims) per scale. All must share n_dims.

    Returns
    -------
    np.ndarray (n_dims,)

    Raises
    ------
    ConfigurationError
        No scales, no points at all, or inconsistent dimensionality.
    """
    if len(vectors_at_scale) == 0:
        raise ConfigurationError("Cannot compute mean feature: no scales")

    matrices = [np.asarray(v, dtype=np.float64) for v in vectors_at_scale]
    dims = {m.shape[1] for m in matrices if m.ndim == 2}
    if len(dims) > 1 or any(m.ndim != 2 for m in matrices):
        raise ConfigurationError(
            f"Vectors must be 2D with one shared dimensionality, got shapes {[m.shape for m in matrices]}"
        )

    total = sum(m.shape[0] for m in matrices)
    if total == 0:
        raise ConfigurationError("Cannot compute mean feature: no points at any scale")

    # Plain sum / count (not nanmean): NaN components must propagate.
    pooled_sum = np.zeros(dims.pop(), dtype=np.float64)
    for m in matrices:
        pooled_sum += m.sum(axis=0)
    return pooled_sum / total
