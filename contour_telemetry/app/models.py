"""Shared data models for the contour telemetry loop."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Union

import numpy as np

# Boundary of one detected region as produced by cv2.findContours.
RegionOutline = Union[np.ndarray, Sequence[Sequence[int]]]

DEFAULT_TABLE = "GRIP/myContoursReport"
TELEMETRY_KEYS = ("centerX", "centerY", "width", "height")


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned minimal rectangle enclosing a region outline."""

    x: int
    y: int
    width: int
    height: int

    @property
    def midpoint(self) -> tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)


@dataclass(frozen=True)
class Descriptor:
    """Compact description of one region: box midpoint plus box size."""

    center_x: float
    center_y: float
    width: int
    height: int
    box: BoundingBox
    area: float = 0.0


@dataclass
class TelemetryBatch:
    """Four parallel per-cycle sequences, index i always refers to the same region."""

    center_x: List[float] = field(default_factory=list)
    center_y: List[float] = field(default_factory=list)
    width: List[float] = field(default_factory=list)
    height: List[float] = field(default_factory=list)
    descriptors: List[Descriptor] = field(default_factory=list)

    def append(self, descriptor: Descriptor) -> None:
        self.center_x.append(descriptor.center_x)
        self.center_y.append(descriptor.center_y)
        self.width.append(float(descriptor.width))
        self.height.append(float(descriptor.height))
        self.descriptors.append(descriptor)

    def as_table(self) -> Dict[str, List[float]]:
        return dict(zip(TELEMETRY_KEYS, (self.center_x, self.center_y, self.width, self.height)))

    def __len__(self) -> int:
        return len(self.descriptors)
