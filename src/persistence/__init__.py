"""
Multiscale feature persistence.

Descriptors are computed at several support radii over one point
cloud. A descriptor is "unique" at a radius when its distance to the
mean descriptor (pooled over all radii) exceeds alpha standard
deviations. It is "persistent" when unique at every radius.

Persistent points make stable keypoints: they do not depend on the
choice of analysis radius.

The descriptor algorithm itself is injected (FeatureEstimator); this
package only orchestrates, vectorizes, measures and selects.
"""

from persistence.cloud import CloudHeader, FeatureCloud
from persistence.config import CONFIG, PersistenceConfig
from persistence.errors import (
    ConfigurationError,
    NonFiniteDistanceError,
    PersistenceError,
    ScaleMismatchError,
)
from persistence.estimator import CallableFeatureEstimator, FeatureEstimator
from persistence.feature_persistence import MultiscaleFeaturePersistence, PersistenceRun
from persistence.mean import compute_mean_feature
from persistence.metrics import DistanceMetric, distance_between_features, distances_to_reference
from persistence.representation import (
    CustomFeatureRepresentation,
    DefaultFeatureRepresentation,
    FeatureRepresentation,
)
from persistence.scales import compute_feature_at_scale, compute_features_at_all_scales
from persistence.selection import PersistencePolicy, select_persistent_features
from persistence.uniqueness import (
    ScaleUniqueness,
    extract_unique_features,
    extract_unique_features_at_scale,
)

__all__ = [
    'CONFIG',
    'CallableFeatureEstimator',
    'CloudHeader',
    'ConfigurationError',
    'CustomFeatureRepresentation',
    'DefaultFeatureRepresentation',
    'DistanceMetric',
    'FeatureCloud',
    'FeatureEstimator',
    'FeatureRepresentation',
    'MultiscaleFeaturePersistence',
    'NonFiniteDistanceError',
    'PersistenceConfig',
    'PersistenceError',
    'PersistencePolicy',
    'PersistenceRun',
    'ScaleMismatchError',
    'ScaleUniqueness',
    'compute_feature_at_scale',
    'compute_features_at_all_scales',
    'compute_mean_feature',
    'distance_between_features',
    'distances_to_reference',
    'extract_unique_features',
    'extract_unique_features_at_scale',
    'select_persistent_features',
]
