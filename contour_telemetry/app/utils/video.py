"""USB camera access for the contour telemetry loop."""
from __future__ import annotations

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

LOGGER = logging.getLogger(__name__)

# V4L2 reports manual exposure mode as 1 through CAP_PROP_AUTO_EXPOSURE.
V4L2_MANUAL_EXPOSURE = 1


class CameraUnavailableError(RuntimeError):
    """Raised when the camera cannot be opened or configured."""


class FrameTap:
    """Single-slot holder for the most recent frame.

    The acquisition loop publishes into it and readers (the diagnostic relay)
    take whatever frame is current. Publishing is a reference swap and never
    waits on readers.
    """

    def __init__(self) -> None:
        self._latest: Tuple[int, Optional[np.ndarray]] = (0, None)

    def publish(self, frame: np.ndarray) -> None:
        sequence, _ = self._latest
        self._latest = (sequence + 1, frame)

    def latest(self) -> Tuple[int, Optional[np.ndarray]]:
        return self._latest

    @property
    def sequence(self) -> int:
        return self._latest[0]


class CaptureSource:
    """Blocking frame source wrapping an OpenCV capture device."""

    def __init__(self, camera_index: int = 0, tap: Optional[FrameTap] = None) -> None:
        self.camera_index = camera_index
        self.tap = tap or FrameTap()
        self._capture: Optional[cv2.VideoCapture] = None
        self._read_timeout_ms: Optional[int] = None

    def open(self) -> "CaptureSource":
        capture = cv2.VideoCapture(self.camera_index)
        if not capture.isOpened():
            capture.release()
            raise CameraUnavailableError(f"Unable to open camera {self.camera_index}")
        self._capture = capture
        LOGGER.info("Camera %s opened successfully", self.camera_index)
        return self

    @property
    def capture(self) -> cv2.VideoCapture:
        if self._capture is None:
            raise CameraUnavailableError("Camera has not been opened")
        return self._capture

    def configure(self, width: int, height: int, frame_rate: int, exposure_percent: int) -> bool:
        """Apply video mode and manual exposure.

        Returns False when the driver refuses the video mode (size or rate).
        Refused pixel format or exposure settings are only logged. The
        exposure percentage is handed to the driver as-is; any stepping of
        the value is up to the camera.
        """

        capture = self.capture
        video_mode = [
            (cv2.CAP_PROP_FRAME_WIDTH, float(width)),
            (cv2.CAP_PROP_FRAME_HEIGHT, float(height)),
            (cv2.CAP_PROP_FPS, float(frame_rate)),
        ]
        optional = [
            (cv2.CAP_PROP_FOURCC, float(cv2.VideoWriter_fourcc(*"MJPG"))),
            (cv2.CAP_PROP_AUTO_EXPOSURE, float(V4L2_MANUAL_EXPOSURE)),
            (cv2.CAP_PROP_EXPOSURE, float(exposure_percent)),
        ]
        for prop, value in optional:
            if not capture.set(prop, value):
                LOGGER.warning("Camera ignored property %d=%s", prop, value)
        accepted = True
        for prop, value in video_mode:
            if not capture.set(prop, value):
                LOGGER.error("Camera rejected video mode property %d=%s", prop, value)
                accepted = False
        LOGGER.info(
            "Camera configured: %dx%d @ %d fps, exposure=%d",
            width,
            height,
            frame_rate,
            exposure_percent,
        )
        return accepted

    def grab_frame(self, timeout: float) -> Optional[np.ndarray]:
        """Block until the next frame arrives. Returns None on failure, timeout or an empty frame."""

        capture = self.capture
        self._apply_read_timeout(capture, timeout)
        success, frame = capture.read()
        if not success or frame is None or frame.size == 0:
            LOGGER.debug("Frame acquisition failed on camera %s", self.camera_index)
            return None
        self.tap.publish(frame)
        return frame

    def release(self) -> None:
        if self._capture is not None:
            LOGGER.info("Releasing camera %s", self.camera_index)
            self._capture.release()
            self._capture = None

    def _apply_read_timeout(self, capture: cv2.VideoCapture, timeout: float) -> None:
        timeout_ms = max(1, int(timeout * 1000))
        if timeout_ms == self._read_timeout_ms:
            return
        prop = getattr(cv2, "CAP_PROP_READ_TIMEOUT_MSEC", None)
        if prop is not None:
            capture.set(prop, float(timeout_ms))
        self._read_timeout_ms = timeout_ms
