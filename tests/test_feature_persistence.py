"""Tests for the multiscale persistence entry point, orchestration and configuration."""
import logging

import numpy as np
import pytest

from persistence import (
    CallableFeatureEstimator,
    CloudHeader,
    ConfigurationError,
    CustomFeatureRepresentation,
    DefaultFeatureRepresentation,
    DistanceMetric,
    FeatureCloud,
    FeatureEstimator,
    MultiscaleFeaturePersistence,
    NonFiniteDistanceError,
    PersistenceConfig,
    PersistencePolicy,
    ScaleMismatchError,
    compute_features_at_all_scales,
)


class TableEstimator(FeatureEstimator):
    """Returns predetermined descriptors per radius."""

    def __init__(self, table, input_cloud, n_dimensions=None):
        super().__init__(input_cloud)
        self.table = {float(k): v for k, v in table.items()}
        self.n_dimensions = n_dimensions
        self.radii_seen = []

    def _compute_descriptors(self, cloud, radius):
        self.radii_seen.append(radius)
        return [np.asarray(v, dtype=np.float64) for v in self.table[radius]]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def lidar_cloud():
    """5 input points, organized 5×1, non-dense, with a header."""
    return FeatureCloud(
        points=[(float(i), 0.0, 0.0) for i in range(5)],
        header=CloudHeader(frame_id='lidar', stamp=1000, seq=7),
        is_dense=False,
        width=5,
        height=1,
    )


@pytest.fixture
def three_scale_estimator(lidar_cloud):
    """Index 3 unique at all three radii, index 4 only at the first two."""
    s01 = [[0.0], [0.0], [0.0], [-10.0], [10.0]]
    s2 = [[0.0], [0.0], [0.0], [-10.0], [0.0]]
    return TableEstimator({0.1: s01, 0.2: s01, 0.4: s2}, lidar_cloud, n_dimensions=1)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

class TestComputeAllScales:
    def test_one_output_per_scale_in_order(self, three_scale_estimator):
        rep = DefaultFeatureRepresentation(1)
        features, vectors = compute_features_at_all_scales(three_scale_estimator, rep, [0.1, 0.2, 0.4])
        assert three_scale_estimator.radii_seen == [0.1, 0.2, 0.4]
        assert len(features) == 3 and len(vectors) == 3
        assert vectors[2].shape == (5, 1)
        assert vectors[2][4, 0] == 0.0
        assert vectors[0][4, 0] == 10.0

    def test_descriptor_cloud_carries_input_metadata(self, three_scale_estimator, lidar_cloud):
        features, _ = compute_features_at_all_scales(
            three_scale_estimator, DefaultFeatureRepresentation(1), [0.1],
        )
        assert features[0].header == lidar_cloud.header
        assert features[0].is_dense is False
        assert features[0].width == 5

    def test_threaded_matches_sequential(self, three_scale_estimator):
        rep = DefaultFeatureRepresentation(1)
        _, seq = compute_features_at_all_scales(three_scale_estimator, rep, [0.1, 0.2, 0.4])
        _, par = compute_features_at_all_scales(three_scale_estimator, rep, [0.1, 0.2, 0.4], n_workers=3)
        for a, b in zip(seq, par):
            np.testing.assert_array_equal(a, b)

    def test_threaded_leaves_estimator_untouched(self, three_scale_estimator):
        compute_features_at_all_scales(
            three_scale_estimator, DefaultFeatureRepresentation(1), [0.1, 0.2], n_workers=2,
        )
        assert three_scale_estimator.radii_seen == []

    def test_empty_first_scale_sized_from_later_scales(self, lidar_cloud):
        est = TableEstimator({1.0: [], 2.0: [[1.0, 2.0]] * 5}, lidar_cloud)
        _, vectors = compute_features_at_all_scales(est, DefaultFeatureRepresentation(), [1.0, 2.0])
        assert vectors[0].shape == (0, 2)
        assert vectors[1].shape == (5, 2)

    def test_callable_estimator(self, lidar_cloud):
        est = CallableFeatureEstimator(
            lambda cloud, r: [np.array([p[0] * r, r]) for p in cloud], lidar_cloud, n_dimensions=2,
        )
        _, vectors = compute_features_at_all_scales(est, DefaultFeatureRepresentation(2), [1.0, 2.0])
        np.testing.assert_allclose(vectors[1][:, 0], [0.0, 2.0, 4.0, 6.0, 8.0])
        np.testing.assert_allclose(vectors[1][:, 1], 2.0)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

class TestMultiscaleFeaturePersistence:
    def test_persistent_excludes_partially_unique(self, three_scale_estimator):
        mfp = MultiscaleFeaturePersistence(
            three_scale_estimator, PersistenceConfig(scale_values=[0.1, 0.2, 0.4], alpha=1.0),
        )
        features, indices = mfp.determine_persistent_features()
        assert indices == [3]
        assert len(features) == 1
        assert features[0][0] == -10.0

    def test_run_exposes_diagnostics(self, three_scale_estimator):
        mfp = MultiscaleFeaturePersistence(
            three_scale_estimator, PersistenceConfig(scale_values=[0.1, 0.2, 0.4], alpha=1.0),
        )
        run = mfp.run()
        assert run.mean_feature[0] == pytest.approx(-10.0 / 15.0)
        assert [u.indices.tolist() for u in run.uniques] == [[3, 4], [3, 4], [3]]
        summary = run.summary()
        assert [row['scale'] for row in summary] == [0.1, 0.2, 0.4]
        assert summary[2]['n_unique'] == 1
        assert run.n_persistent == 1

    def test_at_least_two_scales_option(self, three_scale_estimator):
        cfg = PersistenceConfig(
            scale_values=[0.1, 0.2, 0.4], alpha=1.0,
            persistence_policy=PersistencePolicy.AT_LEAST_TWO_SCALES,
        )
        _, indices = MultiscaleFeaturePersistence(three_scale_estimator, cfg).determine_persistent_features()
        assert indices == [3, 4]

    def test_single_scale_equals_uniqueness(self, lidar_cloud):
        est = TableEstimator({0.5: [[0.0], [1.0], [2.0], [10.0], [-9.0]]}, lidar_cloud)
        mfp = MultiscaleFeaturePersistence(est, PersistenceConfig(scale_values=[0.5], alpha=1.0))
        run = mfp.run()
        assert run.persistent_indices == run.uniques[0].indices.tolist() == [3, 4]

    def test_two_scale_synthetic_dataset(self):
        cloud = FeatureCloud(points=[(0.0, 0.0, 0.0), (1.0, 0.0, 0.0)])
        est = TableEstimator({1.0: [[1, 2], [3, 4]], 2.0: [[5, 6], [7, 8]]}, cloud, n_dimensions=2)
        mfp = MultiscaleFeaturePersistence(est, PersistenceConfig(scale_values=[1.0, 2.0], alpha=1.0))
        run = mfp.run()
        np.testing.assert_allclose(run.mean_feature, [4.0, 5.0])
        assert run.uniques[0].sigma == pytest.approx(np.sqrt(20.0))
        assert run.persistent_indices == []

    def test_empty_result_keeps_metadata(self, three_scale_estimator, lidar_cloud):
        mfp = MultiscaleFeaturePersistence(
            three_scale_estimator, PersistenceConfig(scale_values=[0.1, 0.2, 0.4], alpha=100.0),
        )
        features, indices = mfp.determine_persistent_features()
        assert indices == []
        assert features.header == lidar_cloud.header
        assert features.is_dense == lidar_cloud.is_dense
        assert features.height == 1
        assert features.width == 0

    def test_metric_choice_changes_distances(self, three_scale_estimator):
        mfp = MultiscaleFeaturePersistence(
            three_scale_estimator, PersistenceConfig(scale_values=[0.1, 0.2, 0.4], alpha=1.0),
        )
        mfp.set_distance_metric('Euclidean')
        assert mfp.get_distance_metric() is DistanceMetric.EUCLIDEAN
        # 1-dim vectors: Euclidean and Manhattan agree
        assert mfp.determine_persistent_features()[1] == [3]

    def test_runs_are_independent(self, three_scale_estimator):
        mfp = MultiscaleFeaturePersistence(
            three_scale_estimator, PersistenceConfig(scale_values=[0.1, 0.2, 0.4], alpha=1.0),
        )
        first = mfp.run()
        mfp.set_scales_vector([0.1])
        second = mfp.run()
        assert len(second.uniques) == 1
        assert second.persistent_indices == [3, 4]
        assert first.persistent_indices == [3]

    def test_threaded_run(self, three_scale_estimator):
        cfg = PersistenceConfig(scale_values=[0.1, 0.2, 0.4], alpha=1.0, n_workers=3)
        _, indices = MultiscaleFeaturePersistence(three_scale_estimator, cfg).determine_persistent_features()
        assert indices == [3]

    def test_logs_sigma_per_scale(self, three_scale_estimator, caplog):
        mfp = MultiscaleFeaturePersistence(
            three_scale_estimator, PersistenceConfig(scale_values=[0.1, 0.2, 0.4], alpha=1.0),
        )
        with caplog.at_level(logging.INFO, logger='persistence'):
            mfp.run()
        assert sum('Standard deviation for scale' in r.getMessage() for r in caplog.records) == 3

    def test_swapping_estimator_between_runs(self, lidar_cloud):
        est_2d = CallableFeatureEstimator(lambda cloud, r: [np.array([p[0], r]) for p in cloud], lidar_cloud)
        est_3d = CallableFeatureEstimator(lambda cloud, r: [np.array([p[0], r, 1.0]) for p in cloud], lidar_cloud)
        mfp = MultiscaleFeaturePersistence(est_2d, PersistenceConfig(scale_values=[0.1, 0.2]))
        assert mfp.run().mean_feature.shape == (2,)
        mfp.set_feature_estimator(est_3d)
        assert mfp.run().mean_feature.shape == (3,)

    def test_swapping_declared_estimators_between_runs(self, lidar_cloud):
        est_2d = CallableFeatureEstimator(
            lambda cloud, r: [np.array([p[0], r]) for p in cloud], lidar_cloud, n_dimensions=2,
        )
        est_3d = CallableFeatureEstimator(
            lambda cloud, r: [np.array([p[0], r, 1.0]) for p in cloud], lidar_cloud, n_dimensions=3,
        )
        mfp = MultiscaleFeaturePersistence(est_2d, PersistenceConfig(scale_values=[0.1]))
        mfp.run()
        mfp.set_feature_estimator(est_3d)
        assert mfp.run().vectors_at_scale[0].shape == (5, 3)

    def test_empty_reference_scale_gives_nan_sigma(self):
        cloud = FeatureCloud(points=[(0.0,), (1.0,), (2.0,)])
        est = TableEstimator({1.0: [], 2.0: [[0.0], [0.0], [9.0]]}, cloud)
        run = MultiscaleFeaturePersistence(est, PersistenceConfig(scale_values=[1.0, 2.0], alpha=1.0)).run()
        assert run.vectors_at_scale[0].shape == (0, 1)
        assert np.isnan(run.uniques[0].sigma)
        assert run.uniques[0].n_points == 0
        assert run.uniques[1].indices.tolist() == [2]
        assert run.persistent_indices == []
        assert len(run.persistent_features) == 0

    def test_instances_do_not_share_config(self, three_scale_estimator):
        cfg = PersistenceConfig(scale_values=[0.1, 0.2, 0.4], alpha=1.0)
        first = MultiscaleFeaturePersistence(three_scale_estimator, cfg)
        second = MultiscaleFeaturePersistence(three_scale_estimator, cfg)
        first.set_alpha(3.0)
        first.set_scales_vector([0.1])
        first.set_distance_metric('euclidean')
        assert second.get_alpha() == 1.0
        assert second.get_scales_vector() == [0.1, 0.2, 0.4]
        assert second.get_distance_metric() is DistanceMetric.MANHATTAN
        assert cfg.alpha == 1.0 and cfg.scale_values == [0.1, 0.2, 0.4]

    def test_unknown_names_in_setters(self, three_scale_estimator):
        mfp = MultiscaleFeaturePersistence(three_scale_estimator)
        with pytest.raises(ConfigurationError, match="Unknown distance metric"):
            mfp.set_distance_metric('hamming')
        with pytest.raises(ConfigurationError, match="Unknown persistence policy"):
            mfp.set_persistence_policy('any_scale')


class TestPreconditions:
    def test_no_estimator(self):
        mfp = MultiscaleFeaturePersistence(config=PersistenceConfig(scale_values=[0.1]))
        with pytest.raises(ConfigurationError, match="No feature estimator"):
            mfp.determine_persistent_features()

    def test_no_scales(self, three_scale_estimator):
        mfp = MultiscaleFeaturePersistence(three_scale_estimator)
        with pytest.raises(ConfigurationError, match="No scale values"):
            mfp.determine_persistent_features()
        assert three_scale_estimator.radii_seen == []

    def test_no_input_cloud(self):
        est = TableEstimator({0.1: []}, None)
        mfp = MultiscaleFeaturePersistence(est, PersistenceConfig(scale_values=[0.1]))
        with pytest.raises(ConfigurationError, match="No input cloud"):
            mfp.determine_persistent_features()

    def test_empty_input_cloud(self):
        est = TableEstimator({0.1: []}, FeatureCloud())
        mfp = MultiscaleFeaturePersistence(est, PersistenceConfig(scale_values=[0.1]))
        with pytest.raises(ConfigurationError, match="empty"):
            mfp.determine_persistent_features()

    def test_dimension_mismatch_detected_before_compute(self, three_scale_estimator):
        mfp = MultiscaleFeaturePersistence(
            three_scale_estimator,
            PersistenceConfig(scale_values=[0.1]),
            representation=CustomFeatureRepresentation(max_dim=3),
        )
        with pytest.raises(ConfigurationError, match="dimensions"):
            mfp.determine_persistent_features()
        assert three_scale_estimator.radii_seen == []

    def test_non_positive_scale(self, three_scale_estimator):
        mfp = MultiscaleFeaturePersistence(three_scale_estimator, PersistenceConfig(scale_values=[0.1, -0.2]))
        with pytest.raises(ConfigurationError, match="positive"):
            mfp.determine_persistent_features()

    def test_mismatched_point_counts(self):
        cloud = FeatureCloud(points=[(0.0,), (1.0,), (2.0,)])
        est = TableEstimator({0.1: [[0.0], [0.0], [10.0]], 0.2: [[0.0], [0.0]]}, cloud)
        mfp = MultiscaleFeaturePersistence(est, PersistenceConfig(scale_values=[0.1, 0.2], alpha=1.0))
        with pytest.raises(ScaleMismatchError):
            mfp.determine_persistent_features()

    def test_strict_mode(self, lidar_cloud):
        est = TableEstimator({0.1: [[0.0, 0.0]] * 5, 0.2: [[0.0, 0.0]] * 5}, lidar_cloud)
        cfg = PersistenceConfig(scale_values=[0.1, 0.2], distance_metric='chi_square', strict=True)
        with pytest.raises(NonFiniteDistanceError):
            MultiscaleFeaturePersistence(est, cfg).determine_persistent_features()

    def test_non_strict_propagates_nan(self, lidar_cloud):
        est = TableEstimator({0.1: [[0.0, 0.0]] * 5, 0.2: [[0.0, 0.0]] * 5}, lidar_cloud)
        cfg = PersistenceConfig(scale_values=[0.1, 0.2], distance_metric='chi_square')
        run = MultiscaleFeaturePersistence(est, cfg).run()
        assert all(np.isnan(u.sigma) for u in run.uniques)
        assert run.persistent_indices == []


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class TestConfig:
    def test_defaults(self):
        cfg = PersistenceConfig()
        assert cfg.distance_metric is DistanceMetric.MANHATTAN
        assert cfg.persistence_policy is PersistencePolicy.ALL_SCALES
        assert cfg.alpha == 1.0
        assert cfg.strict is False
        assert cfg.n_workers == 1

    def test_from_dict_merges_defaults(self):
        cfg = PersistenceConfig.from_dict({'scale_values': [1, 2], 'distance_metric': 'KLDivergence'})
        assert cfg.scale_values == [1.0, 2.0]
        assert cfg.distance_metric is DistanceMetric.KL_DIVERGENCE
        assert cfg.alpha == 1.0

    def test_from_yaml(self, tmp_path):
        path = tmp_path / 'persistence.yaml'
        path.write_text(
            "persistence:\n"
            "  scale_values: [0.01, 0.02, 0.04]\n"
            "  alpha: 1.5\n"
            "  distance_metric: JeffriesMatusita\n"
            "  n_workers: 2\n"
        )
        cfg = PersistenceConfig.from_yaml(path)
        assert cfg.scale_values == [0.01, 0.02, 0.04]
        assert cfg.alpha == 1.5
        assert cfg.distance_metric is DistanceMetric.JEFFRIES_MATUSITA
        assert cfg.n_workers == 2
        cfg.validate()

    def test_round_trip_dict(self):
        cfg = PersistenceConfig(scale_values=[0.5], distance_metric='euclidean', strict=True)
        assert PersistenceConfig.from_dict(cfg.to_dict()) == cfg

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="Unknown configuration keys"):
            PersistenceConfig.from_dict({'scales': [1.0]})

    def test_unknown_metric(self):
        with pytest.raises(ConfigurationError, match="Unknown distance metric"):
            PersistenceConfig(distance_metric='hamming')

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            PersistenceConfig.from_yaml(tmp_path / 'missing.yaml')

    def test_validate(self):
        with pytest.raises(ConfigurationError, match="No scale values"):
            PersistenceConfig().validate()
        with pytest.raises(ConfigurationError, match="n_workers"):
            PersistenceConfig(scale_values=[1.0], n_workers=0).validate()
        with pytest.raises(ConfigurationError, match="alpha"):
            PersistenceConfig(scale_values=[1.0], alpha=float('nan')).validate()

    def test_non_positive_alpha_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger='persistence'):
            PersistenceConfig(scale_values=[1.0], alpha=0.0).validate()
        assert any('not positive' in r.getMessage() for r in caplog.records)
