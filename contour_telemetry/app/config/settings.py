"""Configuration utilities for the contour telemetry loop."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..models import DEFAULT_TABLE


class RunSettings(BaseSettings):
    """Run configuration sourced from environment variables, CLI overrides or defaults."""

    model_config = SettingsConfigDict(env_prefix="GRIP_", case_sensitive=False, frozen=True)

    camera_index: int = Field(default=0, ge=0)
    frame_width: int = Field(default=320, ge=1)
    frame_height: int = Field(default=240, ge=1)
    frame_rate: int = Field(default=30, ge=1)
    exposure: int = Field(default=19, ge=0, le=100, description="Manual exposure percentage, passed through.")
    max_frames: Optional[int] = Field(default=None, ge=1, description="Stop after this many frames; benchmark mode.")
    snapshot_path: Optional[Path] = Field(default=None, description="Write the second acquired frame here once.")
    relay_port: Optional[int] = Field(default=None, ge=1, le=65535)
    relay_fps: float = Field(default=10.0, gt=0.0)
    jpeg_quality: int = Field(default=80, ge=1, le=100)
    verbose: bool = False
    telemetry_server: str = Field(default="localhost")
    table_name: str = Field(default=DEFAULT_TABLE)
    telemetry_connect_timeout: float = Field(default=5.0, ge=0.0)
    max_descriptors: int = Field(default=5, ge=1)
    detector_config_path: Path = Field(
        default=Path(__file__).resolve().parent / "detector.yaml",
        description="HSV threshold and contour filter for the default detector.",
    )
    log_format: str = Field(default="text", pattern="^(text|json)$")

    @field_validator("detector_config_path", mode="before")
    @classmethod
    def _expand_path(cls, value: str | Path) -> Path:
        return Path(value).expanduser()

    @field_validator("snapshot_path", mode="before")
    @classmethod
    def _expand_optional_path(cls, value: Optional[str | Path]) -> Optional[Path]:
        if value is None or value == "":
            return None
        return Path(value).expanduser()

    @field_validator("snapshot_path")
    @classmethod
    def _reject_directory(cls, value: Optional[Path]) -> Optional[Path]:
        if value is not None and value.is_dir():
            raise ValueError(f"snapshot path {value} is a directory")
        return value


def load_settings(**overrides: object) -> RunSettings:
    """Return run settings, applying optional overrides."""

    return RunSettings(**overrides)
