"""Shared type definitions used across the annotator.

This module intentionally centralizes small, stable types (keypoints, regions,
proximity edges and per-frame summaries) so detector/overlay/pipeline code can
stay strongly typed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

Frame = np.ndarray

Point = tuple[float, float]


@dataclass(frozen=True)
class Keypoint:
    """A detected local feature: sub-pixel position plus scale-derived size."""

    position: Point
    size: float


@dataclass(frozen=True)
class Region:
    """Integer pixel box around a keypoint, already clipped to the frame."""

    x: int
    y: int
    width: int
    height: int

    @property
    def is_degenerate(self) -> bool:
        """True when clipping left nothing to enhance or draw."""

        return self.width <= 0 or self.height <= 0


class ProximityEdge(NamedTuple):
    """Unordered pair of FilteredSet indices, stored with `i < j`."""

    i: int
    j: int


@dataclass(frozen=True)
class StreamInfo:
    """Container metadata the output writer has to reproduce."""

    frame_rate: float
    width: int
    height: int
    codec_id: int
    frame_count: int = 0


@dataclass
class FrameSummary:
    """What the pipeline found and drew on one frame."""

    frame_id: int
    detected: int
    keypoints: list[Keypoint]
    regions: list[Region]
    edges: list[ProximityEdge]
    frame_size: tuple[int, int] = (0, 0)
