"""Acquire, detect, reduce and publish loop."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

import cv2
import numpy as np

from .models import TelemetryBatch
from .services.detector import RegionDetector
from .services.reducer import DescriptorReducer

LOGGER = logging.getLogger(__name__)

# Acquisition gives up after this many frame periods without a frame.
ACQUIRE_TIMEOUT_PERIODS = 5

# The first good frame arrives before exposure has converged, so the snapshot
# is taken from the second one.
SNAPSHOT_CYCLE_INDEX = 1


class FrameSource(Protocol):
    def grab_frame(self, timeout: float) -> Optional[np.ndarray]:
        ...


class BatchPublisher(Protocol):
    def publish(self, batch: TelemetryBatch) -> None:
        ...


@dataclass
class LoopReport:
    cycles: int
    failed_acquisitions: int
    elapsed_s: float

    @property
    def frames_per_second(self) -> float:
        if self.elapsed_s <= 0:
            return 0.0
        return self.cycles / self.elapsed_s


class AcquisitionLoop:
    """Single-threaded run-to-completion cycle over one camera.

    A cycle only counts once a frame was actually acquired; failed or empty
    grabs (normal while the camera warms up) are retried straight away. The
    frame limit is checked between cycles, never inside one.
    """

    def __init__(
        self,
        source: FrameSource,
        detector: RegionDetector,
        reducer: DescriptorReducer,
        publisher: BatchPublisher,
        *,
        frame_rate: int,
        max_frames: Optional[int] = None,
        snapshot_path: Optional[Path] = None,
        verbose: bool = False,
        clock: Callable[[], float] = time.perf_counter,
        frame_writer: Callable[[str, np.ndarray], bool] = cv2.imwrite,
    ) -> None:
        if frame_rate < 1:
            raise ValueError("frame_rate must be at least 1")
        self.source = source
        self.detector = detector
        self.reducer = reducer
        self.publisher = publisher
        self.acquire_timeout = ACQUIRE_TIMEOUT_PERIODS / float(frame_rate)
        self.max_frames = max_frames
        self.snapshot_path = snapshot_path
        self.verbose = verbose
        self._clock = clock
        self._frame_writer = frame_writer
        self.cycles = 0
        self.failed_acquisitions = 0

    def run_cycle(self) -> Optional[TelemetryBatch]:
        """Run one attempt. Returns the published batch, or None if no frame was acquired."""

        frame = self.source.grab_frame(self.acquire_timeout)
        if frame is None or frame.size == 0:
            self.failed_acquisitions += 1
            return None

        if self.snapshot_path is not None and self.cycles == SNAPSHOT_CYCLE_INDEX:
            self._export_snapshot(frame)

        outlines = self.detector.process(frame)
        batch = self.reducer.reduce(outlines)
        self.publisher.publish(batch)
        self.cycles += 1

        if self.verbose:
            self._report(batch)
        return batch

    def run(self) -> LoopReport:
        """Cycle until the frame limit is reached, or forever when there is none."""

        started = self._clock()
        while self.max_frames is None or self.cycles < self.max_frames:
            self.run_cycle()

        elapsed = self._clock() - started
        report = LoopReport(cycles=self.cycles, failed_acquisitions=self.failed_acquisitions, elapsed_s=elapsed)
        LOGGER.info(
            "Processed %d frames in %.3f seconds (%.2f fps, %d failed grabs)",
            report.cycles,
            report.elapsed_s,
            report.frames_per_second,
            report.failed_acquisitions,
        )
        return report

    def _export_snapshot(self, frame: np.ndarray) -> None:
        target = self.snapshot_path
        self.snapshot_path = None
        try:
            written = self._frame_writer(str(target), frame)
        except cv2.error as exc:
            LOGGER.warning("Unable to write snapshot frame to %s: %s", target, exc)
            return
        if not written:
            LOGGER.warning("Unable to write snapshot frame to %s", target)
            return
        LOGGER.info("Saved snapshot frame to %s", target)

    def _report(self, batch: TelemetryBatch) -> None:
        if not batch.descriptors:
            LOGGER.info("No contours found")
            return
        for index, descriptor in enumerate(batch.descriptors):
            box = descriptor.box
            LOGGER.info(
                "%d: [%d x %d from (%d, %d)], area = %.1f",
                index,
                box.width,
                box.height,
                box.x,
                box.y,
                descriptor.area,
            )
