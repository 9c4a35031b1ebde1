from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from contour_telemetry.app.config.settings import RunSettings, load_settings
from contour_telemetry.app.models import DEFAULT_TABLE
from contour_telemetry.app.services.telemetry import TelemetryPublisher


def test_defaults_match_robot_camera() -> None:
    settings = RunSettings()

    assert (settings.frame_width, settings.frame_height, settings.frame_rate) == (320, 240, 30)
    assert settings.exposure == 19
    assert settings.max_frames is None
    assert settings.snapshot_path is None
    assert settings.relay_port is None
    assert settings.telemetry_server == "localhost"
    assert settings.table_name == "GRIP/myContoursReport"
    assert settings.max_descriptors == 5
    assert settings.detector_config_path.exists()


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GRIP_FRAME_RATE", "15")
    monkeypatch.setenv("GRIP_TELEMETRY_SERVER", "10.12.34.2")
    monkeypatch.setenv("GRIP_VERBOSE", "1")

    settings = load_settings(exposure=40)

    assert settings.frame_rate == 15
    assert settings.telemetry_server == "10.12.34.2"
    assert settings.verbose is True
    assert settings.exposure == 40


def test_exposure_is_not_rounded() -> None:
    assert load_settings(exposure=13).exposure == 13


@pytest.mark.parametrize(
    "overrides",
    [
        {"exposure": 101},
        {"exposure": -1},
        {"frame_rate": 0},
        {"max_frames": 0},
        {"relay_port": 70000},
        {"log_format": "xml"},
    ],
)
def test_invalid_values_rejected(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        load_settings(**overrides)


def test_snapshot_path_expands_user(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))

    settings = load_settings(snapshot_path="~/frame.jpg")

    assert settings.snapshot_path == tmp_path / "frame.jpg"


def test_snapshot_path_directory_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        load_settings(snapshot_path=tmp_path)


def test_settings_are_frozen() -> None:
    settings = RunSettings()

    with pytest.raises(ValidationError):
        settings.frame_rate = 60


def test_table_name_shared_with_publisher() -> None:
    assert RunSettings().table_name == DEFAULT_TABLE
    assert TelemetryPublisher(instance=object()).table_name == DEFAULT_TABLE
