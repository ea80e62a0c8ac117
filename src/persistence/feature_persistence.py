"""
Multiscale feature persistence entry point.

    init check → descriptors at all scales → pooled mean
      → per-scale uniqueness → cross-scale persistence

Usage:
    mfp = MultiscaleFeaturePersistence(
        estimator,
        PersistenceConfig(scale_values=[0.01, 0.02, 0.04], alpha=1.2),
    )
    features, indices = mfp.determine_persistent_features()

Only configuration lives on the object. Descriptor clouds, vectors,
the mean and the masks are rebuilt on every call and returned in a
PersistenceRun from run().
"""

import logging
import dataclasses
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from persistence.cloud import FeatureCloud
from persistence.config import PersistenceConfig
from persistence.errors import ConfigurationError
from persistence.estimator import FeatureEstimator
from persistence.mean import compute_mean_feature
from persistence.metrics import DistanceMetric
from persistence.representation import DefaultFeatureRepresentation, FeatureRepresentation
from persistence.scales import compute_features_at_all_scales
from persistence.selection import PersistencePolicy, select_persistent_features
from persistence.uniqueness import ScaleUniqueness, extract_unique_features

logger = logging.getLogger(__name__)


@dataclass
class PersistenceRun:
    """Everything one determine call produced."""
    scale_values: List[float]
    features_at_scale: List[FeatureCloud]
    vectors_at_scale: List[np.ndarray]
    mean_feature: np.ndarray
    uniques: List[ScaleUniqueness]
    persistent_features: FeatureCloud
    persistent_indices: List[int]

    @property
    def n_persistent(self) -> int:
        return len(self.persistent_indices)

    def summary(self) -> List[dict]:
        """One row per scale: radius, sigma, threshold, unique count."""
        return [
            {
                'scale': u.scale,
                'n_points': u.n_points,
                'sigma': u.sigma,
                'threshold': u.threshold,
                'n_unique': u.n_unique,
            }
            for u in self.uniques
        ]


class MultiscaleFeaturePersistence:
    """
    Finds descriptors that stay distinctive at every analysis radius.

    Parameters
    ----------
    estimator : FeatureEstimator, optional
        Must hold the reference input cloud before a run.
    config : PersistenceConfig, optional
    representation : FeatureRepresentation, optional
        If None, a fresh DefaultFeatureRepresentation is built for every
        run, sized from the current estimator's n_dimensions.
    """

    def __init__(
        self,
        estimator: Optional[FeatureEstimator] = None,
        config: Optional[PersistenceConfig] = None,
        representation: Optional[FeatureRepresentation] = None,
    ):
        self.estimator = estimator
        self.config = dataclasses.replace(config) if config is not None else PersistenceConfig()
        self.representation = representation

    # ------------------------------------------------------------------
    # Configuration surface
    # ------------------------------------------------------------------

    def set_feature_estimator(self, estimator: FeatureEstimator) -> None:
        self.estimator = estimator

    def set_point_representation(self, representation: Optional[FeatureRepresentation]) -> None:
        self.representation = representation

    def set_scales_vector(self, scale_values: Sequence[float]) -> None:
        self.config.scale_values = [float(s) for s in scale_values]

    def get_scales_vector(self) -> List[float]:
        return list(self.config.scale_values)

    def set_alpha(self, alpha: float) -> None:
        self.config.alpha = float(alpha)

    def get_alpha(self) -> float:
        return self.config.alpha

    def set_distance_metric(self, metric: Union[str, DistanceMetric]) -> None:
        try:
            self.config.distance_metric = DistanceMetric.parse(metric)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    def get_distance_metric(self) -> DistanceMetric:
        return self.config.distance_metric

    def set_persistence_policy(self, policy: Union[str, PersistencePolicy]) -> None:
        try:
            self.config.persistence_policy = PersistencePolicy.parse(policy)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _fail(self, message: str) -> ConfigurationError:
        logger.error("[MultiscaleFeaturePersistence] %s", message)
        return ConfigurationError(message)

    def _resolve_representation(self) -> FeatureRepresentation:
        """The configured representation, or a fresh default for this run only."""
        if self.representation is not None:
            return self.representation
        return DefaultFeatureRepresentation(getattr(self.estimator, 'n_dimensions', None))

    def init_compute(self) -> FeatureRepresentation:
        """
        Check every precondition before any descriptor is computed.

        Raises
        ------
        ConfigurationError
            No estimator, no/empty input cloud, no scales, or the
            representation and estimator disagree on dimensionality.

        Returns
        -------
        FeatureRepresentation to use for this run.
        """
        if self.estimator is None:
            raise self._fail("No feature estimator was set")
        cloud = getattr(self.estimator, 'input_cloud', None)
        if cloud is None:
            raise self._fail("No input cloud was given to the feature estimator")
        if len(cloud) == 0:
            raise self._fail("Input cloud is empty")
        if not self.config.scale_values:
            raise self._fail("No scale values were given")
        try:
            self.config.validate()
        except ConfigurationError as e:
            raise self._fail(str(e)) from e

        est_dims = getattr(self.estimator, 'n_dimensions', None)
        representation = self._resolve_representation()
        rep_declared = getattr(representation, 'is_declared', True)
        if est_dims is not None and rep_declared and representation.n_dimensions != est_dims:
            raise self._fail(
                f"Representation declares {representation.n_dimensions} dimensions, "
                f"estimator produces {est_dims}"
            )
        return representation

    def run(self) -> PersistenceRun:
        """Full pipeline with all intermediate results."""
        representation = self.init_compute()
        cfg = self.config
        scales = list(cfg.scale_values)

        features_at_scale, vectors_at_scale = compute_features_at_all_scales(
            self.estimator, representation, scales, n_workers=cfg.n_workers,
        )

        mean_feature = compute_mean_feature(vectors_at_scale)
        logger.debug("Mean feature over %d scales: %d dimensions", len(scales), mean_feature.shape[0])

        uniques = extract_unique_features(
            vectors_at_scale, mean_feature, cfg.alpha, cfg.distance_metric,
            scales=scales, strict=cfg.strict,
        )

        input_cloud = self.estimator.input_cloud
        persistent_features, persistent_indices = select_persistent_features(
            uniques,
            features_at_scale[0],
            header=input_cloud.header,
            is_dense=input_cloud.is_dense,
            policy=cfg.persistence_policy,
        )

        return PersistenceRun(
            scale_values=scales,
            features_at_scale=features_at_scale,
            vectors_at_scale=vectors_at_scale,
            mean_feature=mean_feature,
            uniques=uniques,
            persistent_features=persistent_features,
            persistent_indices=persistent_indices,
        )

    def determine_persistent_features(self) -> Tuple[FeatureCloud, List[int]]:
        """
        Persistent descriptors and their indices into the input cloud.

        Returns
        -------
        (persistent_features, persistent_indices)
        """
        result = self.run()
        return result.persistent_features, result.persistent_indices
