"""Geometry helper utilities for region outlines."""
from __future__ import annotations

try:  # pragma: no cover - import guarded for optional dependency
    import cv2
    import numpy as np
except ImportError as exc:  # pragma: no cover
    raise ImportError(
        "opencv-python is required for geometry utilities. Install dependencies via "
        "`pip install -e .`."
    ) from exc

from ..models import BoundingBox, RegionOutline


def as_points(outline: RegionOutline) -> np.ndarray:
    """Return the outline as an int32 point array accepted by OpenCV."""

    points = np.asarray(outline, dtype=np.int32)
    if points.size == 0:
        return points.reshape(0, 2)
    return points.reshape(-1, 2)


def bounding_box(outline: RegionOutline) -> BoundingBox:
    """Return the minimal upright rectangle enclosing the outline."""

    points = as_points(outline)
    if len(points) == 0:
        return BoundingBox(x=0, y=0, width=0, height=0)
    x, y, width, height = cv2.boundingRect(points)
    return BoundingBox(x=int(x), y=int(y), width=int(width), height=int(height))


def outline_area(outline: RegionOutline) -> float:
    """Return the polygon area enclosed by the outline (0 for degenerate outlines)."""

    points = as_points(outline)
    if len(points) < 3:
        return 0.0
    return float(cv2.contourArea(points))
