"""Annotator configuration.

Settings are loaded from YAML defaults and overridden by environment variables
prefixed with `SIFTLENS_`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from siftlens.core.config.presets import preset_patch


class AnnotatorSettings(BaseSettings):
    """Runtime configuration loaded from YAML defaults and `SIFTLENS_` env overrides."""

    # Feature detector
    detector: str = Field("sift", description="sift|orb")
    max_features: int = 0  # 0 = unlimited
    octave_layers: int = 3
    contrast_threshold: float = 0.04
    edge_threshold: float = 10.0
    sigma: float = 1.6
    use_extended_descriptors: bool = False

    # Filtering and proximity
    min_size: float = 20.0
    distance_threshold: float = 50.0
    proximity_index: str = Field("auto", description="auto|pairwise|grid")

    # Region enhancement (0 / False disable each step)
    contrast_percent: float = 0.0
    invert: bool = False

    # Overlay
    box_thickness: int = 1
    font_scale: float = 0.4
    text_thickness: int = 1
    draw_keypoint_markers: bool = False

    # Run
    output_suffix: str = "-annotated"
    # Frames in flight on a thread pool; 1 keeps processing strictly sequential.
    workers: int = 1
    max_frames: int = 0
    log_level: str = "INFO"

    # NaN would pass every `<` check below.
    model_config = SettingsConfigDict(
        env_prefix="SIFTLENS_",
        validate_assignment=True,
        allow_inf_nan=False,
    )

    @field_validator("detector")
    @classmethod
    def _validate_detector(cls, v: str) -> str:
        v2 = str(v).strip().lower()
        if v2 not in {"sift", "orb"}:
            raise ValueError("detector must be sift|orb")
        return v2

    @field_validator("max_features")
    @classmethod
    def _validate_max_features(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_features must be >= 0")
        return v

    @field_validator("octave_layers")
    @classmethod
    def _validate_octave_layers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("octave_layers must be >= 1")
        return v

    @field_validator("contrast_threshold", "edge_threshold", "sigma")
    @classmethod
    def _validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("detector thresholds and sigma must be > 0")
        return float(v)

    @field_validator("min_size")
    @classmethod
    def _validate_min_size(cls, v: float) -> float:
        if v < 0:
            raise ValueError("min_size must be >= 0")
        return float(v)

    @field_validator("distance_threshold")
    @classmethod
    def _validate_distance_threshold(cls, v: float) -> float:
        if v < 0:
            raise ValueError("distance_threshold must be >= 0")
        return float(v)

    @field_validator("proximity_index")
    @classmethod
    def _validate_proximity_index(cls, v: str) -> str:
        v2 = str(v).strip().lower()
        if v2 not in {"auto", "pairwise", "grid"}:
            raise ValueError("proximity_index must be auto|pairwise|grid")
        return v2

    @field_validator("contrast_percent")
    @classmethod
    def _validate_contrast_percent(cls, v: float) -> float:
        if v < -100:
            raise ValueError("contrast_percent must be >= -100")
        return float(v)

    @field_validator("box_thickness", "text_thickness")
    @classmethod
    def _validate_thickness(cls, v: int) -> int:
        if v < 1:
            raise ValueError("thickness must be >= 1")
        return v

    @field_validator("font_scale")
    @classmethod
    def _validate_font_scale(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("font_scale must be > 0")
        return float(v)

    @field_validator("output_suffix")
    @classmethod
    def _validate_output_suffix(cls, v: str) -> str:
        if not v or "/" in v or "\\" in v:
            raise ValueError("output_suffix must be a non-empty file name fragment")
        return v

    @field_validator("workers")
    @classmethod
    def _validate_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("workers must be >= 1")
        return v

    @field_validator("max_frames")
    @classmethod
    def _validate_max_frames(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_frames must be >= 0")
        return v

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        v2 = str(v).strip().upper()
        if v2 not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("log_level must be DEBUG|INFO|WARNING|ERROR|CRITICAL")
        return v2


def settings_to_dict(settings: AnnotatorSettings) -> dict[str, Any]:
    """Convert settings to a plain dict."""

    return cast(dict[str, Any], settings.model_dump())


def _config_path() -> Path:
    """Return the YAML configuration path (defaults to config/siftlens.config.yml)."""

    return Path(os.getenv("SIFTLENS_CONFIG", "config/siftlens.config.yml"))


def load_settings() -> AnnotatorSettings:
    """Load settings from YAML and environment variables.

    YAML provides defaults; environment variables override.
    """

    data: dict[str, Any] = {}
    path = _config_path()
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    env_settings = AnnotatorSettings()
    env_overrides: dict[str, Any] = {
        name: getattr(env_settings, name) for name in env_settings.model_fields_set
    }

    merged = {**data, **env_overrides}
    return AnnotatorSettings(**merged)


def apply_preset(settings: AnnotatorSettings, preset_id: str) -> AnnotatorSettings:
    """Return a copy of `settings` with a named preset applied on top.

    Raises:
        KeyError: for an unknown preset id.
    """

    merged = {**settings_to_dict(settings), **preset_patch(preset_id)}
    return AnnotatorSettings(**merged)
