"""MJPEG diagnostic relay for external tuning tools."""
from __future__ import annotations

import logging
import threading
import time
from typing import Iterator, Optional

import cv2
import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.responses import Response, StreamingResponse

from ..utils.video import FrameTap

LOGGER = logging.getLogger(__name__)

BOUNDARY = "frame"


def encode_jpeg(frame, quality: int) -> Optional[bytes]:
    ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        return None
    return buf.tobytes()


def iter_mjpeg(tap: FrameTap, interval: float, quality: int, limit: Optional[int] = None) -> Iterator[bytes]:
    """Yield multipart JPEG parts for every new frame seen on the tap."""

    last_sequence = 0
    sent = 0
    while limit is None or sent < limit:
        sequence, frame = tap.latest()
        if frame is None or sequence == last_sequence:
            time.sleep(interval)
            continue
        last_sequence = sequence
        payload = encode_jpeg(frame, quality)
        if payload is None:
            continue
        yield (
            f"--{BOUNDARY}\r\nContent-Type: image/jpeg\r\nContent-Length: {len(payload)}\r\n\r\n".encode("ascii")
            + payload
            + b"\r\n"
        )
        sent += 1
        time.sleep(interval)


def create_relay_app(tap: FrameTap, fps: float = 10.0, jpeg_quality: int = 80) -> FastAPI:
    app = FastAPI(title="Contour Telemetry Relay", version="0.1.0")
    interval = 1.0 / max(fps, 0.1)

    @app.get("/")
    def status() -> dict:
        sequence, frame = tap.latest()
        shape = list(frame.shape) if frame is not None else None
        return {"frames_seen": sequence, "frame_shape": shape, "fps": fps}

    @app.get("/snapshot.jpg")
    def snapshot() -> Response:
        _, frame = tap.latest()
        if frame is None:
            raise HTTPException(status_code=503, detail="No frame acquired yet")
        payload = encode_jpeg(frame, jpeg_quality)
        if payload is None:
            raise HTTPException(status_code=500, detail="JPEG encoding failed")
        return Response(content=payload, media_type="image/jpeg", headers={"Cache-Control": "no-store"})

    @app.get("/stream.mjpg")
    def stream() -> StreamingResponse:
        return StreamingResponse(
            iter_mjpeg(tap, interval, jpeg_quality),
            media_type=f"multipart/x-mixed-replace; boundary={BOUNDARY}",
        )

    return app


class DiagnosticRelay:
    """Serve the frame tap over HTTP from a background thread."""

    def __init__(self, fps: float = 10.0, jpeg_quality: int = 80, host: str = "0.0.0.0") -> None:
        self.fps = fps
        self.jpeg_quality = jpeg_quality
        self.host = host
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    def bind(self, tap: FrameTap, port: int, startup_timeout: float = 2.0) -> bool:
        """Start serving ``tap`` on ``port``. Returns False if the server did not come up.

        A relay that fails to start is reported and otherwise ignored; the
        acquisition loop runs without it.
        """

        app = create_relay_app(tap, fps=self.fps, jpeg_quality=self.jpeg_quality)
        config = uvicorn.Config(app, host=self.host, port=port, log_level="warning", access_log=False)
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(target=self._server.run, name="diagnostic-relay", daemon=True)
        self._thread.start()

        deadline = time.monotonic() + startup_timeout
        while self._thread.is_alive() and not self._server.started and time.monotonic() < deadline:
            time.sleep(0.02)
        if not self._server.started:
            LOGGER.warning("Diagnostic relay failed to start on port %d; continuing without it", port)
            self.stop(timeout=0.5)
            return False
        LOGGER.info("Diagnostic relay serving MJPEG on port %d", port)
        return True

    def stop(self, timeout: float = 2.0) -> None:
        if self._server is None:
            return
        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        LOGGER.info("Diagnostic relay stopped")
        self._server = None
        self._thread = None
