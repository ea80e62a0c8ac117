"""
Per-scale descriptor computation.

compute_feature_at_scale drives the estimator at one radius.
compute_features_at_all_scales runs it over every configured radius
and vectorizes the results, one (cloud, matrix) pair per scale, in
configuration order.

Scales are independent, so with n_workers > 1 they are computed in a
thread pool. Each worker gets its own deep copy of the estimator since
"set radius, then compute" mutates it. Everything downstream waits for
all scales to finish.
"""

import copy
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Sequence, Tuple

import numpy as np

from persistence.cloud import FeatureCloud
from persistence.estimator import FeatureEstimator
from persistence.representation import FeatureRepresentation

logger = logging.getLogger(__name__)


def compute_feature_at_scale(estimator: FeatureEstimator, scale: float) -> FeatureCloud:
    """
    Compute descriptors for every input point at support radius `scale`.

    Returns
    -------
    FeatureCloud index-aligned with the estimator's input cloud.
    """
    logger.debug("Computing features at scale %f", scale)
    estimator.set_radius_search(scale)
    features = estimator.compute()
    logger.debug("Scale %f produced %d descriptors", scale, len(features))
    return features


def _compute_isolated(estimator: FeatureEstimator, scale: float) -> FeatureCloud:
    return compute_feature_at_scale(copy.deepcopy(estimator), scale)


def compute_features_at_all_scales(
    estimator: FeatureEstimator,
    representation: FeatureRepresentation,
    scales: Sequence[float],
    n_workers: int = 1,
) -> Tuple[List[FeatureCloud], List[np.ndarray]]:
    """
    Compute and vectorize descriptors at every scale.

    Parameters
    ----------
    estimator : FeatureEstimator
        Must already hold the reference input cloud.
    representation : FeatureRepresentation
        Descriptor → vector mapping.
    scales : sequence of float
        Support radii, reference scale first.
    n_workers : int
        Threads used for descriptor computation. 1 = sequential.

    Returns
    -------
    (features_at_scale, vectors_at_scale):
        features_at_scale : list of FeatureCloud, one per scale
        vectors_at_scale : list of np.ndarray (n_points_s, n_dims), one per scale
    """
    scales = [float(s) for s in scales]

    if n_workers > 1 and len(scales) > 1:
        with ThreadPoolExecutor(max_workers=min(n_workers, len(scales))) as pool:
            futures = [pool.submit(_compute_isolated, estimator, s) for s in scales]
            features_at_scale = [f.result() for f in futures]
    else:
        features_at_scale = [compute_feature_at_scale(estimator, s) for s in scales]

    # Non-empty scales first: an undeclared representation sizes itself from them.
    vectors = {
        i: representation.vectorize_all(cloud.points)
        for i, cloud in enumerate(features_at_scale) if len(cloud)
    }
    if vectors:
        n_dims = next(iter(vectors.values())).shape[1]
    elif getattr(representation, 'is_declared', True):
        n_dims = representation.n_dimensions
    else:
        n_dims = 0
    vectors_at_scale = [
        vectors.get(i, np.zeros((0, n_dims), dtype=np.float64))
        for i in range(len(features_at_scale))
    ]
    return features_at_scale, vectors_at_scale
