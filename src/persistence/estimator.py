"""
Descriptor estimator capability.

The persistence core never implements a descriptor. It needs exactly
three things from an estimator:

    set_radius_search(radius)  choose the support radius
    compute()                  one descriptor per input point, in input order
    input_cloud                the reference cloud (header, is_dense, size)

Any object with that shape can be used. FeatureEstimator is the ABC;
CallableFeatureEstimator adapts a plain function.
"""

import abc
from typing import Any, Callable, Optional, Sequence

from persistence.cloud import FeatureCloud


class FeatureEstimator(metaclass=abc.ABCMeta):
    """
    Base class for descriptor estimators driven at multiple radii.

    Subclasses implement _compute_descriptors(). The base class owns the
    radius and the input cloud and wraps the output in a FeatureCloud that
    carries the input cloud's metadata.
    """

    #: Dimensionality of the vectors this estimator's descriptors map to.
    #: None means unknown; the dimension check at setup is then skipped.
    n_dimensions: Optional[int] = None

    def __init__(self, input_cloud: Optional[FeatureCloud] = None):
        self.input_cloud = input_cloud
        self.search_radius: float = 0.0

    def set_input_cloud(self, cloud: FeatureCloud) -> None:
        self.input_cloud = cloud

    def set_radius_search(self, radius: float) -> None:
        self.search_radius = float(radius)

    def compute(self) -> FeatureCloud:
        """
        Compute one descriptor per input point at the current radius.

        Returns
        -------
        FeatureCloud with the same header, is_dense, width and height
        as the input cloud.
        """
        if self.input_cloud is None:
            raise ValueError("No input cloud set on the estimator")
        descriptors = list(self._compute_descriptors(self.input_cloud, self.search_radius))
        if len(descriptors) == len(self.input_cloud):
            width, height = self.input_cloud.width, self.input_cloud.height
        else:
            width, height = len(descriptors), 1
        return FeatureCloud(
            points=descriptors,
            header=self.input_cloud.header,
            is_dense=self.input_cloud.is_dense,
            width=width,
            height=height,
        )

    @abc.abstractmethod
    def _compute_descriptors(self, cloud: FeatureCloud, radius: float) -> Sequence[Any]:
        """
        Describe every point of `cloud` using support radius `radius`.

        Returns
        -------
        Sequence of descriptors, index-aligned with cloud.points.
        """


class CallableFeatureEstimator(FeatureEstimator):
    """
    Wrap a function `fn(cloud, radius) -> descriptors` as an estimator.

    Usage:
        est = CallableFeatureEstimator(my_fpfh, cloud, n_dimensions=33)
        est.set_radius_search(0.05)
        features = est.compute()
    """

    def __init__(
        self,
        fn: Callable[[FeatureCloud, float], Sequence[Any]],
        input_cloud: Optional[FeatureCloud] = None,
        n_dimensions: Optional[int] = None,
    ):
        super().__init__(input_cloud)
        self._fn = fn
        self.n_dimensions = n_dimensions

    def _compute_descriptors(self, cloud: FeatureCloud, radius: float) -> Sequence[Any]:
        return self._fn(cloud, radius)
