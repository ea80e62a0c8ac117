"""
Minimal cloud bookkeeping.

A FeatureCloud is an ordered list of points (input points or
descriptors) plus the header/organization metadata that persistence
results have to carry over. Storage and spatial semantics belong to
whatever produced the points.
"""

from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional


@dataclass
class CloudHeader:
    """Acquisition metadata, copied verbatim between clouds."""
    frame_id: str = ""
    stamp: int = 0
    seq: int = 0


@dataclass
class FeatureCloud:
    """
    Ordered point sequence with organization metadata.

    width * height == len(points) for a consistent cloud.
    height == 1 means unorganized.
    """
    points: List[Any] = field(default_factory=list)
    header: CloudHeader = field(default_factory=CloudHeader)
    is_dense: bool = True
    width: Optional[int] = None
    height: int = 1

    def __post_init__(self):
        self.points = list(self.points)
        if self.width is None:
            self.width = len(self.points)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.points)

    def __getitem__(self, index: int) -> Any:
        return self.points[index]

    @property
    def is_organized(self) -> bool:
        return self.height > 1

    def append(self, point: Any) -> None:
        """Append to an unorganized cloud and keep width in sync."""
        self.points.append(point)
        self.width = len(self.points)
        self.height = 1

    @classmethod
    def unorganized(cls, points: List[Any], header: CloudHeader, is_dense: bool) -> "FeatureCloud":
        """Build an unorganized cloud (height 1) carrying the given metadata."""
        points = list(points)
        return cls(points=points, header=header, is_dense=is_dense, width=len(points), height=1)
