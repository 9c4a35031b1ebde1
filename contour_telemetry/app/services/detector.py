"""Region detector seam and the default HSV contour detector."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Protocol, Sequence, Tuple

import cv2
import numpy as np
import yaml

from ..models import RegionOutline

LOGGER = logging.getLogger(__name__)

Range = Tuple[float, float]


class RegionDetector(Protocol):
    """Anything that turns a frame into candidate region outlines."""

    def process(self, frame: np.ndarray) -> List[RegionOutline]:
        ...


def _as_range(values: Sequence[float], default: Range) -> Range:
    if not isinstance(values, (list, tuple)) or len(values) != 2:
        return default
    low, high = float(values[0]), float(values[1])
    if high < low:
        raise ValueError(f"Invalid range bounds: {values}")
    return low, high


@dataclass
class ContourFilter:
    min_area: float = 0.0
    min_perimeter: float = 0.0
    min_width: float = 0.0
    max_width: float = 1000.0
    min_height: float = 0.0
    max_height: float = 1000.0
    solidity: Range = (0.0, 100.0)
    max_vertices: int = 1000000
    min_vertices: int = 0
    min_ratio: float = 0.0
    max_ratio: float = 1000.0

    def accepts(self, contour: np.ndarray) -> bool:
        _, _, width, height = cv2.boundingRect(contour)
        if width < self.min_width or width > self.max_width:
            return False
        if height < self.min_height or height > self.max_height:
            return False
        area = cv2.contourArea(contour)
        if area < self.min_area:
            return False
        if cv2.arcLength(contour, True) < self.min_perimeter:
            return False
        hull_area = cv2.contourArea(cv2.convexHull(contour))
        solidity = 100.0 * area / hull_area if hull_area > 0 else 0.0
        if solidity < self.solidity[0] or solidity > self.solidity[1]:
            return False
        if len(contour) > self.max_vertices or len(contour) < self.min_vertices:
            return False
        ratio = width / float(height) if height else 0.0
        return self.min_ratio <= ratio <= self.max_ratio


@dataclass
class DetectorConfig:
    hue: Range = (0.0, 180.0)
    saturation: Range = (0.0, 255.0)
    value: Range = (0.0, 255.0)
    blur_radius: int = 0
    external_only: bool = True
    contour_filter: ContourFilter = field(default_factory=ContourFilter)

    @classmethod
    def from_yaml(cls, path: Path) -> "DetectorConfig":
        with path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or {}
        thresholds = payload.get("hsv_threshold", {}) or {}
        raw_filter = payload.get("filter", {}) or {}
        defaults = ContourFilter()
        contour_filter = ContourFilter(
            min_area=float(raw_filter.get("min_area", defaults.min_area)),
            min_perimeter=float(raw_filter.get("min_perimeter", defaults.min_perimeter)),
            min_width=float(raw_filter.get("min_width", defaults.min_width)),
            max_width=float(raw_filter.get("max_width", defaults.max_width)),
            min_height=float(raw_filter.get("min_height", defaults.min_height)),
            max_height=float(raw_filter.get("max_height", defaults.max_height)),
            solidity=_as_range(raw_filter.get("solidity"), defaults.solidity),
            max_vertices=int(raw_filter.get("max_vertices", defaults.max_vertices)),
            min_vertices=int(raw_filter.get("min_vertices", defaults.min_vertices)),
            min_ratio=float(raw_filter.get("min_ratio", defaults.min_ratio)),
            max_ratio=float(raw_filter.get("max_ratio", defaults.max_ratio)),
        )
        return cls(
            hue=_as_range(thresholds.get("hue"), (0.0, 180.0)),
            saturation=_as_range(thresholds.get("saturation"), (0.0, 255.0)),
            value=_as_range(thresholds.get("value"), (0.0, 255.0)),
            blur_radius=max(0, int(payload.get("blur_radius", 0))),
            external_only=bool(payload.get("external_only", True)),
            contour_filter=contour_filter,
        )


class HsvContourDetector:
    """Threshold in HSV space, find contours, keep those passing the filter."""

    def __init__(self, config: DetectorConfig) -> None:
        self.config = config
        self._lower = (config.hue[0], config.saturation[0], config.value[0])
        self._upper = (config.hue[1], config.saturation[1], config.value[1])
        self.last_mask: np.ndarray | None = None

    @classmethod
    def from_yaml(cls, path: Path) -> "HsvContourDetector":
        LOGGER.info("Loading detector thresholds from %s", path)
        return cls(DetectorConfig.from_yaml(path))

    def process(self, frame: np.ndarray) -> List[RegionOutline]:
        source = frame
        if self.config.blur_radius > 0:
            kernel = 2 * self.config.blur_radius + 1
            source = cv2.blur(frame, (kernel, kernel))
        hsv = cv2.cvtColor(source, cv2.COLOR_BGR2HSV)
        mask = cv2.inRange(hsv, self._lower, self._upper)
        self.last_mask = mask
        mode = cv2.RETR_EXTERNAL if self.config.external_only else cv2.RETR_LIST
        contours, _hierarchy = cv2.findContours(mask, mode, cv2.CHAIN_APPROX_SIMPLE)
        accepted = [contour for contour in contours if self.config.contour_filter.accepts(contour)]
        LOGGER.debug("Detector kept %d of %d contours", len(accepted), len(contours))
        return accepted
