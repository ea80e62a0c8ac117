"""
Feature representation: descriptor → fixed-length float vector.

The default representation flattens whatever numeric content a
descriptor carries, in a stable order:

    np.ndarray / list / tuple   → flattened in order
    scalar                      → one component
    dataclass instance          → fields in declaration order, each flattened
    mapping                     → values in insertion order, each flattened
    object with __array__       → np.asarray(obj)

Non-numeric leaves (strings, None) are skipped, the way a field-wise
copy of a point type skips its non-float members.
"""

import abc
import dataclasses
import numbers
from collections.abc import Mapping
from typing import Any, List, Optional, Sequence

import numpy as np

from persistence.errors import ConfigurationError


def _flatten_numeric(value: Any, out: List[float]) -> None:
    if value is None or isinstance(value, (str, bytes)):
        return
    if isinstance(value, (bool, np.bool_)):
        out.append(float(value))
        return
    if isinstance(value, numbers.Number):
        out.append(float(value))
        return
    if isinstance(value, np.ndarray):
        out.extend(value.astype(np.float64).ravel().tolist())
        return
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        for f in dataclasses.fields(value):
            _flatten_numeric(getattr(value, f.name), out)
        return
    if isinstance(value, Mapping):
        for v in value.values():
            _flatten_numeric(v, out)
        return
    if hasattr(value, "__array__"):
        out.extend(np.asarray(value, dtype=np.float64).ravel().tolist())
        return
    if isinstance(value, (list, tuple)):
        for v in value:
            _flatten_numeric(v, out)
        return
    raise TypeError(f"Cannot vectorize descriptor component of type {type(value).__name__}")


class FeatureRepresentation(metaclass=abc.ABCMeta):
    """
    Maps one descriptor to an n_dimensions float vector.

    Optional rescale values multiply the vector component-wise after
    extraction (one value broadcasts to every component).
    """

    def __init__(self):
        self._rescale: Optional[np.ndarray] = None

    @property
    @abc.abstractmethod
    def n_dimensions(self) -> int:
        """Declared output length."""

    @abc.abstractmethod
    def _extract(self, descriptor: Any) -> np.ndarray:
        """Raw float64 vector before rescaling."""

    def set_rescale_values(self, values: Sequence[float]) -> None:
        values = np.asarray(values, dtype=np.float64).ravel()
        if len(values) not in (1, self.n_dimensions):
            raise ConfigurationError(
                f"Rescale values must have length 1 or {self.n_dimensions}, got {len(values)}"
            )
        self._rescale = values

    def vectorize(self, descriptor: Any) -> np.ndarray:
        """
        Vectorize one descriptor.

        Raises
        ------
        ConfigurationError if the descriptor yields a different length
        than n_dimensions (wrong representation for this descriptor type).
        """
        vec = self._extract(descriptor)
        if vec.shape[0] != self.n_dimensions:
            raise ConfigurationError(
                f"Descriptor vectorized to {vec.shape[0]} components, "
                f"representation declares {self.n_dimensions}"
            )
        if self._rescale is not None:
            vec = vec * self._rescale
        return vec

    def vectorize_all(self, descriptors: Sequence[Any]) -> np.ndarray:
        """Stack vectorized descriptors into an (n, n_dimensions) matrix."""
        if len(descriptors) == 0:
            return np.zeros((0, self.n_dimensions), dtype=np.float64)
        return np.vstack([self.vectorize(d) for d in descriptors])

    def is_valid(self, descriptor: Any) -> bool:
        """True if every component is finite."""
        return bool(np.all(np.isfinite(self._extract(descriptor))))


class DefaultFeatureRepresentation(FeatureRepresentation):
    """
    Field-wise numeric flattening of a descriptor.

    Parameters
    ----------
    n_dimensions : int, optional
        Declared length. If None, fixed by the first descriptor seen
        (or by `infer_from`).
    """

    def __init__(self, n_dimensions: Optional[int] = None):
        super().__init__()
        self._n_dimensions = n_dimensions

    @property
    def n_dimensions(self) -> int:
        if self._n_dimensions is None:
            raise ConfigurationError(
                "Representation dimensionality is unknown; pass n_dimensions "
                "or call infer_from() with a sample descriptor"
            )
        return self._n_dimensions

    @property
    def is_declared(self) -> bool:
        return self._n_dimensions is not None

    def infer_from(self, descriptor: Any) -> int:
        """Fix n_dimensions from a sample descriptor."""
        self._n_dimensions = int(self._extract(descriptor).shape[0])
        return self._n_dimensions

    def _extract(self, descriptor: Any) -> np.ndarray:
        out: List[float] = []
        _flatten_numeric(descriptor, out)
        return np.asarray(out, dtype=np.float64)

    def vectorize(self, descriptor: Any) -> np.ndarray:
        if self._n_dimensions is None:
            self.infer_from(descriptor)
        return super().vectorize(descriptor)


class CustomFeatureRepresentation(DefaultFeatureRepresentation):
    """
    Contiguous sub-range [start_dim, start_dim + max_dim) of the default vector.

    Use to drop leading bookkeeping components or compare only part of
    a histogram descriptor.
    """

    def __init__(self, max_dim: int, start_dim: int = 0):
        if max_dim < 1 or start_dim < 0:
            raise ConfigurationError(
                f"Invalid sub-range: max_dim={max_dim}, start_dim={start_dim}"
            )
        super().__init__(n_dimensions=max_dim)
        self.start_dim = start_dim

    def infer_from(self, descriptor: Any) -> int:
        return self.n_dimensions

    def _extract(self, descriptor: Any) -> np.ndarray:
        full = super()._extract(descriptor)
        if full.shape[0] < self.start_dim + self.n_dimensions:
            raise ConfigurationError(
                f"Descriptor has {full.shape[0]} components, sub-range needs "
                f"{self.start_dim + self.n_dimensions}"
            )
        return full[self.start_dim:self.start_dim + self.n_dimensions]
