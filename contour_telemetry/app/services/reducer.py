"""Reduce detected region outlines to telemetry descriptors."""
from __future__ import annotations

import logging
from itertools import islice
from typing import Iterable

from ..models import Descriptor, RegionOutline, TelemetryBatch
from ..utils.geometry import bounding_box, outline_area

LOGGER = logging.getLogger(__name__)

MAX_DESCRIPTORS = 5


def describe(outline: RegionOutline) -> Descriptor:
    """Return the bounding-box descriptor of a single outline."""

    box = bounding_box(outline)
    center_x, center_y = box.midpoint
    return Descriptor(
        center_x=center_x,
        center_y=center_y,
        width=box.width,
        height=box.height,
        box=box,
        area=outline_area(outline),
    )


class DescriptorReducer:
    """Turn one frame's outlines into a capped TelemetryBatch.

    Outlines are kept in the order the detector emitted them. Anything past
    ``max_descriptors`` is dropped, so the retained regions are the first ones
    found rather than the largest.
    """

    def __init__(self, max_descriptors: int = MAX_DESCRIPTORS) -> None:
        if max_descriptors < 1:
            raise ValueError("max_descriptors must be at least 1")
        self.max_descriptors = max_descriptors

    def reduce(self, outlines: Iterable[RegionOutline]) -> TelemetryBatch:
        batch = TelemetryBatch()
        for outline in islice(outlines, self.max_descriptors):
            batch.append(describe(outline))
        LOGGER.debug("Reduced outlines to %d descriptors", len(batch))
        return batch
