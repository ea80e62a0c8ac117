"""
Distance metrics between vectorized descriptors.

Six modes. The arithmetic is kept exactly as defined, including the
modes that are not true distances:

    manhattan          Σ |a - b|
    euclidean          sqrt(Σ (a - b)²)
    jeffries_matusita  sqrt(Σ (sqrt|a| - sqrt|b|)²)
    bhattacharyya      -log(Σ sqrt|a - b|)
    chi_square         Σ (a - b)² / (a + b)
    kl_divergence      Σ (a - b) · log(a / b)

The last three produce NaN/Inf on zero or negative components.
Those values are returned, never clipped.
"""

import numpy as np
from enum import Enum
from typing import Union


class DistanceMetric(str, Enum):
    MANHATTAN = "manhattan"
    EUCLIDEAN = "euclidean"
    JEFFRIES_MATUSITA = "jeffries_matusita"
    BHATTACHARYYA = "bhattacharyya"
    CHI_SQUARE = "chi_square"
    KL_DIVERGENCE = "kl_divergence"

    @classmethod
    def parse(cls, value: Union[str, "DistanceMetric"]) -> "DistanceMetric":
        """
        Resolve a metric from its enum, value or a loose spelling.

        'Manhattan', 'JeffriesMatusita', 'jeffries-matusita', 'KLDivergence'
        and 'kl_divergence' all resolve.
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "").replace("_", "").replace(" ", "")
        for member in cls:
            if member.value.replace("_", "") == key:
                return member
        raise ValueError(
            f"Unknown distance metric: {value!r}. "
            f"Available: {[m.value for m in cls]}"
        )


def _row_distances(a: np.ndarray, b: np.ndarray, metric: DistanceMetric) -> np.ndarray:
    """Reduce along the last axis; `b` broadcasts against `a`."""
    if metric is DistanceMetric.MANHATTAN:
        return np.sum(np.abs(a - b), axis=-1)
    if metric is DistanceMetric.EUCLIDEAN:
        return np.sqrt(np.sum((a - b) ** 2, axis=-1))
    if metric is DistanceMetric.JEFFRIES_MATUSITA:
        return np.sqrt(np.sum((np.sqrt(np.abs(a)) - np.sqrt(np.abs(b))) ** 2, axis=-1))
    if metric is DistanceMetric.BHATTACHARYYA:
        return -np.log(np.sum(np.sqrt(np.abs(a - b)), axis=-1))
    if metric is DistanceMetric.CHI_SQUARE:
        return np.sum((a - b) ** 2 / (a + b), axis=-1)
    if metric is DistanceMetric.KL_DIVERGENCE:
        return np.sum((a - b) * np.log(a / b), axis=-1)
    raise ValueError(f"Unhandled distance metric: {metric}")


def distance_between_features(
    a: np.ndarray,
    b: np.ndarray,
    metric: Union[str, DistanceMetric] = DistanceMetric.MANHATTAN,
) -> float:
    """
    Distance between two vectorized descriptors.

    Parameters
    ----------
    a, b : array-like
        1D vectors of equal length.
    metric : DistanceMetric or str

    Returns
    -------
    float — may be NaN or Inf for bhattacharyya, chi_square, kl_divergence.
    """
    metric = DistanceMetric.parse(metric)
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()
    if a.shape != b.shape:
        raise ValueError(f"Vector length mismatch: {a.shape[0]} vs {b.shape[0]}")

    with np.errstate(divide="ignore", invalid="ignore"):
        return float(_row_distances(a, b, metric))


def distances_to_reference(
    vectors: np.ndarray,
    reference: np.ndarray,
    metric: Union[str, DistanceMetric] = DistanceMetric.MANHATTAN,
) -> np.ndarray:
    """
    Distance from every row of `vectors` to a single reference vector.

    Row p gives the same value as
    distance_between_features(vectors[p], reference, metric).

    Parameters
    ----------
    vectors : np.ndarray
        (n_points, n_dims). An empty (0, n_dims) matrix gives an empty result.
    reference : np.ndarray
        (n_dims,) — usually the pooled mean vector.

    Returns
    -------
    np.ndarray (n_points,)
    """
    metric = DistanceMetric.parse(metric)
    reference = np.asarray(reference, dtype=np.float64).ravel()
    vectors = np.asarray(vectors, dtype=np.float64)
    if vectors.size == 0:
        return np.zeros(0, dtype=np.float64)
    if vectors.ndim == 1:
        vectors = vectors.reshape(1, -1)
    if vectors.shape[1] != reference.shape[0]:
        raise ValueError(
            f"Vector length mismatch: vectors have {vectors.shape[1]} dims, "
            f"reference has {reference.shape[0]}"
        )

    with np.errstate(divide="ignore", invalid="ignore"):
        return _row_distances(vectors, reference[None, :], metric)
