"""Entry point for the contour telemetry loop."""
from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Optional, Sequence

import yaml
from pydantic import ValidationError

from .config.settings import RunSettings, load_settings
from .pipeline import AcquisitionLoop
from .services.detector import HsvContourDetector
from .services.reducer import DescriptorReducer
from .services.relay import DiagnosticRelay
from .services.telemetry import TelemetryPublisher, TelemetryUnavailableError
from .utils.video import CameraUnavailableError, CaptureSource

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PIPELINE_FAILURE = 1
EXIT_USAGE = 2
EXIT_STARTUP_FAILURE = 3


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Publish contour reports from a USB camera to NetworkTables")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print one line per contour every frame")
    parser.add_argument("-f", "--fps", type=int, default=None, help="Camera frame rate (default 30)")
    parser.add_argument("-n", "--frames", type=int, default=None, help="Stop after N frames and report the frame rate")
    parser.add_argument(
        "-e",
        "--exposure",
        type=int,
        default=None,
        help="Manual exposure percentage 0-100 (the camera only changes at 0, 8, 16, ...)",
    )
    parser.add_argument("-o", "--output", type=str, default=None, help="Save the second captured frame to this file")
    parser.add_argument("-p", "--relay-port", type=int, default=None, help="Serve an MJPEG stream on this port")
    parser.add_argument("--camera", type=int, default=None, help="USB camera device index")
    parser.add_argument("--server", type=str, default=None, help="NetworkTables server address")
    parser.add_argument("--table", type=str, default=None, help="NetworkTables table name")
    parser.add_argument("--detector-config", type=str, default=None, help="Detector threshold YAML file")
    parser.add_argument("--log-format", choices=["text", "json"], default=None, help="Logging format")
    return parser


def setup_logging(settings: RunSettings) -> None:
    if settings.log_format == "json":
        formatter = logging.Formatter('{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}')
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    logging.basicConfig(level=logging.INFO, handlers=[handler], force=True)


def resolve_settings(args: argparse.Namespace) -> RunSettings:
    overrides = {}
    if args.verbose:
        overrides["verbose"] = True
    if args.fps is not None:
        overrides["frame_rate"] = args.fps
    if args.frames is not None:
        overrides["max_frames"] = args.frames
    if args.exposure is not None:
        overrides["exposure"] = args.exposure
    if args.output:
        overrides["snapshot_path"] = Path(args.output)
    if args.relay_port is not None:
        overrides["relay_port"] = args.relay_port
    if args.camera is not None:
        overrides["camera_index"] = args.camera
    if args.server:
        overrides["telemetry_server"] = args.server
    if args.table:
        overrides["table_name"] = args.table
    if args.detector_config:
        overrides["detector_config_path"] = Path(args.detector_config)
    if args.log_format:
        overrides["log_format"] = args.log_format

    return load_settings(**overrides)


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "settings"
        problems.append(f"{location}: {error.get('msg')}")
    return "; ".join(problems)


def run_pipeline(settings: RunSettings) -> int:
    """Bring up camera, relay and telemetry, then run the loop until it finishes."""

    try:
        detector = HsvContourDetector.from_yaml(settings.detector_config_path)
    except (OSError, yaml.YAMLError, ValueError) as exc:
        LOGGER.error("Unable to load detector configuration %s: %s", settings.detector_config_path, exc)
        return EXIT_STARTUP_FAILURE

    source = CaptureSource(settings.camera_index)
    publisher = TelemetryPublisher(settings.table_name)
    relay: Optional[DiagnosticRelay] = None
    try:
        try:
            source.open()
            if not source.configure(settings.frame_width, settings.frame_height, settings.frame_rate, settings.exposure):
                raise CameraUnavailableError(f"Camera {settings.camera_index} rejected the requested video mode")
            if settings.relay_port is not None:
                relay = DiagnosticRelay(fps=settings.relay_fps, jpeg_quality=settings.jpeg_quality)
                relay.bind(source.tap, settings.relay_port)
            publisher.connect(settings.telemetry_server, timeout=settings.telemetry_connect_timeout)
        except (CameraUnavailableError, TelemetryUnavailableError) as exc:
            LOGGER.error("Startup failed: %s", exc)
            return EXIT_STARTUP_FAILURE

        loop = AcquisitionLoop(
            source,
            detector,
            DescriptorReducer(settings.max_descriptors),
            publisher,
            frame_rate=settings.frame_rate,
            max_frames=settings.max_frames,
            snapshot_path=settings.snapshot_path,
            verbose=settings.verbose,
        )
        try:
            loop.run()
        except Exception:
            LOGGER.exception("Pipeline aborted after %d frames", loop.cycles)
            return EXIT_PIPELINE_FAILURE
        return EXIT_OK
    finally:
        if relay is not None:
            relay.stop()
        publisher.close()
        source.release()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    try:
        settings = resolve_settings(args)
    except ValidationError as exc:
        parser.error(_describe_validation_error(exc))

    setup_logging(settings)
    LOGGER.info("Starting contour telemetry loop")

    def handle_interrupt(signum: int, frame: Optional[object]) -> None:  # pragma: no cover - signal handling
        LOGGER.warning("Received interrupt signal (%d), shutting down", signum)
        sys.exit(EXIT_OK)

    signal.signal(signal.SIGINT, handle_interrupt)
    return run_pipeline(settings)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
