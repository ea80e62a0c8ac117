"""
Cross-scale persistence selection.

ALL_SCALES (default): walk the reference scale's flagged indices in
order and keep those flagged at every other scale too.

AT_LEAST_TWO_SCALES: keep any index flagged at two or more scales
(or at the single scale, when only one is configured). Requires equal
point counts at every scale. Output is in ascending index order.

Descriptors in the result always come from the reference scale. The
result cloud is unorganized (height 1) and carries the header and
is_dense flag of the reference metadata.
"""

import logging
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from persistence.cloud import CloudHeader, FeatureCloud
from persistence.errors import ScaleMismatchError
from persistence.uniqueness import ScaleUniqueness

logger = logging.getLogger(__name__)


class PersistencePolicy(str, Enum):
    ALL_SCALES = "all_scales"
    AT_LEAST_TWO_SCALES = "at_least_two_scales"

    @classmethod
    def parse(cls, value: Union[str, "PersistencePolicy"]) -> "PersistencePolicy":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_")
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(
            f"Unknown persistence policy: {value!r}. "
            f"Available: {[m.value for m in cls]}"
        )


def _persistent_in_all_scales(uniques: Sequence[ScaleUniqueness]) -> List[int]:
    reference = uniques[0]
    selected = []
    for idx in reference.indices:
        idx = int(idx)
        # Every scale is looked up, so a count mismatch surfaces even after a miss.
        present_in_all = True
        for scale_i, u in enumerate(uniques):
            try:
                flagged = u.is_unique(idx)
            except IndexError as e:
                raise ScaleMismatchError(
                    f"Reference index {idx} has no counterpart at scale #{scale_i} "
                    f"(radius {u.scale}, {u.n_points} points vs {reference.n_points} "
                    f"at the reference scale)"
                ) from e
            present_in_all = present_in_all and flagged
        if present_in_all:
            selected.append(idx)
    return selected


def _persistent_in_at_least_two(uniques: Sequence[ScaleUniqueness]) -> List[int]:
    counts = {u.n_points for u in uniques}
    if len(counts) > 1:
        raise ScaleMismatchError(
            f"Point counts differ across scales: {[u.n_points for u in uniques]}"
        )
    required = min(2, len(uniques))
    votes = np.sum(np.vstack([u.mask for u in uniques]), axis=0)
    return [int(i) for i in np.flatnonzero(votes >= required)]


def select_persistent_features(
    uniques: Sequence[ScaleUniqueness],
    reference_features: FeatureCloud,
    header: Optional[CloudHeader] = None,
    is_dense: Optional[bool] = None,
    policy: Union[str, PersistencePolicy] = PersistencePolicy.ALL_SCALES,
) -> Tuple[FeatureCloud, List[int]]:
    """
    Select the points that are unique across scales.

    Parameters
    ----------
    uniques : sequence of ScaleUniqueness
        One per scale, reference scale first.
    reference_features : FeatureCloud
        Descriptor cloud of the reference scale.
    header, is_dense : optional
        Metadata for the output cloud. Default to the reference cloud's.
    policy : PersistencePolicy or str

    Returns
    -------
    (persistent_features, persistent_indices)
        persistent_features : FeatureCloud, unorganized
        persistent_indices : list of int into the reference input cloud

    Raises
    ------
    ScaleMismatchError
        A flagged index has no counterpart at another scale.
    """
    if len(uniques) == 0:
        raise ValueError("No per-scale uniqueness results to intersect")

    policy = PersistencePolicy.parse(policy)
    if uniques[0].n_points != len(reference_features):
        raise ScaleMismatchError(
            f"Reference scale flags {uniques[0].n_points} points but its "
            f"descriptor cloud holds {len(reference_features)}"
        )

    if policy is PersistencePolicy.ALL_SCALES:
        indices = _persistent_in_all_scales(uniques)
    else:
        indices = _persistent_in_at_least_two(uniques)

    output = FeatureCloud.unorganized(
        [reference_features[i] for i in indices],
        header=reference_features.header if header is None else header,
        is_dense=reference_features.is_dense if is_dense is None else is_dense,
    )
    logger.info(
        "%d persistent features out of %d reference points (%s)",
        len(indices), len(reference_features), policy.value,
    )
    return output, indices
