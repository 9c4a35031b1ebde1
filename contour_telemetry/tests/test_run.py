from __future__ import annotations

from pathlib import Path
from typing import List

import numpy as np
import pytest

from contour_telemetry.app import run
from contour_telemetry.app.config.settings import RunSettings
from contour_telemetry.app.services.detector import HsvContourDetector
from contour_telemetry.app.services.telemetry import TelemetryUnavailableError
from contour_telemetry.app.utils.video import CameraUnavailableError, FrameTap


class FakeSource:
    instances: List["FakeSource"] = []
    fail_open = False
    accept_mode = True

    def __init__(self, camera_index: int) -> None:
        self.camera_index = camera_index
        self.tap = FrameTap()
        self.configured = None
        self.released = False
        self.grabs = 0
        FakeSource.instances.append(self)

    def open(self) -> "FakeSource":
        if FakeSource.fail_open:
            raise CameraUnavailableError("no camera")
        return self

    def configure(self, width: int, height: int, frame_rate: int, exposure_percent: int) -> bool:
        self.configured = (width, height, frame_rate, exposure_percent)
        return FakeSource.accept_mode

    def grab_frame(self, timeout: float):
        self.grabs += 1
        if self.grabs == 1:
            return None
        return np.zeros((240, 320, 3), dtype=np.uint8)

    def release(self) -> None:
        self.released = True


class FakePublisher:
    instances: List["FakePublisher"] = []
    unreachable = False

    def __init__(self, table_name: str) -> None:
        self.table_name = table_name
        self.server = None
        self.batches = []
        self.closed = False
        FakePublisher.instances.append(self)

    def connect(self, server: str, timeout: float = 5.0) -> None:
        if FakePublisher.unreachable:
            raise TelemetryUnavailableError("server down")
        self.server = server

    def publish(self, batch) -> None:
        self.batches.append(batch)

    def close(self) -> None:
        self.closed = True


class FakeRelay:
    instances: List["FakeRelay"] = []

    def __init__(self, fps: float, jpeg_quality: int) -> None:
        self.bound = None
        self.stopped = False
        FakeRelay.instances.append(self)

    def bind(self, tap, port: int) -> None:
        self.bound = (tap, port)

    def stop(self) -> None:
        self.stopped = True


class FakeDetector:
    fail = False

    @classmethod
    def from_yaml(cls, path: Path) -> "FakeDetector":
        return cls()

    def process(self, frame):
        if FakeDetector.fail:
            raise RuntimeError("detector crashed")
        return [np.array([[10, 10], [29, 10], [29, 39], [10, 39]], dtype=np.int32)]


@pytest.fixture(autouse=True)
def fakes(monkeypatch: pytest.MonkeyPatch) -> None:
    FakeSource.instances = []
    FakeSource.fail_open = False
    FakeSource.accept_mode = True
    FakePublisher.instances = []
    FakePublisher.unreachable = False
    FakeRelay.instances = []
    FakeDetector.fail = False
    monkeypatch.setattr(run, "CaptureSource", FakeSource)
    monkeypatch.setattr(run, "TelemetryPublisher", FakePublisher)
    monkeypatch.setattr(run, "DiagnosticRelay", FakeRelay)
    monkeypatch.setattr(run, "HsvContourDetector", FakeDetector)


def test_resolve_settings_maps_flags(tmp_path: Path) -> None:
    parser = run.build_arg_parser()
    args = parser.parse_args(
        ["-v", "-f", "15", "-n", "100", "-e", "13", "-o", str(tmp_path / "shot.jpg"), "-p", "1181", "--server", "10.0.0.2"]
    )

    settings = run.resolve_settings(args)

    assert settings.verbose is True
    assert settings.frame_rate == 15
    assert settings.max_frames == 100
    assert settings.exposure == 13
    assert settings.snapshot_path == tmp_path / "shot.jpg"
    assert settings.relay_port == 1181
    assert settings.telemetry_server == "10.0.0.2"


@pytest.mark.parametrize(
    "argv",
    [
        ["--fps", "0"],
        ["--frames", "-2"],
        ["--exposure", "150"],
        ["--relay-port", "0"],
        ["--fps", "fast"],
        ["--bogus"],
    ],
)
def test_invalid_arguments_exit_before_camera(argv: List[str], capsys: pytest.CaptureFixture) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run.main(argv)

    assert excinfo.value.code == run.EXIT_USAGE
    assert "usage:" in capsys.readouterr().err
    assert FakeSource.instances == []
    assert FakePublisher.instances == []


def test_snapshot_directory_is_a_usage_error(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run.main(["--output", str(tmp_path)])

    assert excinfo.value.code == run.EXIT_USAGE
    assert FakeSource.instances == []


def test_run_pipeline_benchmark_run() -> None:
    settings = RunSettings(max_frames=3, exposure=13, frame_rate=15)

    assert run.run_pipeline(settings) == run.EXIT_OK

    source = FakeSource.instances[0]
    publisher = FakePublisher.instances[0]
    assert source.configured == (320, 240, 15, 13)
    assert source.grabs == 4
    assert len(publisher.batches) == 3
    assert publisher.batches[0].center_x == [20.0]
    assert publisher.server == "localhost"
    assert publisher.table_name == "GRIP/myContoursReport"
    assert publisher.closed
    assert source.released
    assert FakeRelay.instances == []


def test_run_pipeline_starts_relay_on_camera_tap() -> None:
    settings = RunSettings(max_frames=1, relay_port=1181)

    assert run.run_pipeline(settings) == run.EXIT_OK

    relay = FakeRelay.instances[0]
    assert relay.bound == (FakeSource.instances[0].tap, 1181)
    assert relay.stopped


def test_camera_unavailable_is_fatal() -> None:
    FakeSource.fail_open = True

    assert run.run_pipeline(RunSettings(max_frames=1)) == run.EXIT_STARTUP_FAILURE
    assert FakePublisher.instances[0].batches == []
    assert FakeSource.instances[0].released


def test_rejected_video_mode_is_fatal() -> None:
    FakeSource.accept_mode = False

    assert run.run_pipeline(RunSettings(max_frames=1)) == run.EXIT_STARTUP_FAILURE
    assert FakeSource.instances[0].grabs == 0


def test_unreachable_telemetry_is_fatal() -> None:
    FakePublisher.unreachable = True

    assert run.run_pipeline(RunSettings(max_frames=1, relay_port=1181)) == run.EXIT_STARTUP_FAILURE
    assert FakeSource.instances[0].grabs == 0
    assert FakeRelay.instances[0].stopped


def test_detector_failure_aborts_run() -> None:
    FakeDetector.fail = True

    assert run.run_pipeline(RunSettings(max_frames=2)) == run.EXIT_PIPELINE_FAILURE
    assert FakePublisher.instances[0].batches == []
    assert FakePublisher.instances[0].closed


def test_missing_detector_config_is_fatal(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(run, "HsvContourDetector", HsvContourDetector)

    settings = RunSettings(max_frames=1, detector_config_path=tmp_path / "missing.yaml")

    assert run.run_pipeline(settings) == run.EXIT_STARTUP_FAILURE
    assert FakeSource.instances == []
