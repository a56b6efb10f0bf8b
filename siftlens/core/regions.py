from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from siftlens.core.types import Frame, Keypoint, Region


@dataclass(frozen=True)
class EnhanceConfig:
    # 0 disables the contrast step; negative values flatten the region.
    contrast_percent: float = 0.0
    invert: bool = False

    @property
    def enabled(self) -> bool:
        return self.contrast_percent != 0.0 or self.invert


def _clamp(v: int, lo: int, hi: int) -> int:
    return lo if v < lo else hi if v > hi else v


def clamp_region(keypoint: Keypoint, frame_w: int, frame_h: int) -> Region:
    """Square region centered on `keypoint`, intersected with the frame.

    The side is `2 * floor(size / 2)`. Coordinates left of/above the frame are
    moved to 0 and the extent shrinks by the same amount; extents past the
    right/bottom edge are cut. The result may be degenerate (zero width or
    height); callers check `Region.is_degenerate` instead of catching errors.
    """

    half = int(math.floor(keypoint.size / 2.0))
    side = 2 * half
    x, y = keypoint.position
    x1 = int(round(x)) - half
    y1 = int(round(y)) - half
    x2 = x1 + side
    y2 = y1 + side

    cx1 = _clamp(x1, 0, frame_w)
    cy1 = _clamp(y1, 0, frame_h)
    cx2 = _clamp(x2, 0, frame_w)
    cy2 = _clamp(y2, 0, frame_h)
    return Region(x=cx1, y=cy1, width=max(0, cx2 - cx1), height=max(0, cy2 - cy1))


def clamp_regions(keypoints: list[Keypoint], frame_w: int, frame_h: int) -> list[Region]:
    return [clamp_region(kp, frame_w, frame_h) for kp in keypoints]


def region_view(frame: Frame, region: Region) -> np.ndarray:
    """Writable view of the frame pixels covered by `region`."""

    return frame[region.y : region.y + region.height, region.x : region.x + region.width]


def enhance_region(
    frame: Frame,
    region: Region,
    contrast_percent: float = 0.0,
    invert: bool = False,
) -> None:
    """Apply contrast gain then tonal inversion inside `region`, in place.

    Contrast scales every channel by `1 + contrast_percent / 100` with
    saturation to [0, 255]. Inversion maps `v` to `255 - v` and always runs
    after the contrast step. Pixels outside the region are not touched.

    Raises:
        ValueError: if `contrast_percent` is NaN or infinite.
    """

    if not math.isfinite(contrast_percent):
        raise ValueError(f"contrast_percent must be finite, got {contrast_percent!r}")
    if region.is_degenerate:
        return
    if contrast_percent == 0.0 and not invert:
        return

    roi = region_view(frame, region)
    if roi.size == 0:
        return

    if contrast_percent != 0.0:
        gain = 1.0 + float(contrast_percent) / 100.0
        scaled = np.rint(roi.astype(np.float32) * gain)
        np.clip(scaled, 0.0, 255.0, out=scaled)
        roi[...] = scaled.astype(roi.dtype)

    if invert:
        roi[...] = 255 - roi


def enhance_regions(frame: Frame, regions: list[Region], config: EnhanceConfig) -> int:
    """Enhance every non-degenerate region in index order; return how many were touched.

    Overlapping regions receive the transform once per region.
    """

    if not config.enabled:
        return 0
    touched = 0
    for region in regions:
        if region.is_degenerate:
            continue
        enhance_region(frame, region, config.contrast_percent, config.invert)
        touched += 1
    return touched
