"""Overlay drawing helpers (OpenCV).

Everything here draws straight into the frame it is given; the pipeline owns
the frame for the duration of one step and calls these after region
enhancement so overlays keep their fixed colors.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import cv2

from siftlens.core.types import Frame, Keypoint, ProximityEdge, Region

BOX_COLOR = (0, 255, 0)  # green, same as the keypoint markers
TEXT_COLOR = (255, 255, 255)
EDGE_COLOR = (0, 170, 255)
MARKER_COLOR = (0, 255, 0)

FONT = cv2.FONT_HERSHEY_SIMPLEX
EDGE_THICKNESS = 1


@dataclass(frozen=True)
class OverlayStyle:
    box_thickness: int = 1
    font_scale: float = 0.4
    text_thickness: int = 1
    draw_keypoint_markers: bool = False


def _to_pixel(point: tuple[float, float]) -> tuple[int, int]:
    return int(round(point[0])), int(round(point[1]))


def draw_region_box(frame: Frame, region: Region, style: OverlayStyle) -> bool:
    """Draw an unfilled rectangle on the region bounds. Returns False when skipped."""

    if region.is_degenerate:
        return False
    x1, y1 = region.x, region.y
    # cv2.rectangle corners are inclusive.
    x2 = region.x + region.width - 1
    y2 = region.y + region.height - 1
    cv2.rectangle(frame, (x1, y1), (x2, y2), BOX_COLOR, int(style.box_thickness))
    return True


def draw_label(frame: Frame, index: int, region: Region, style: OverlayStyle) -> bool:
    """Draw `index` as decimal text with its top-left corner on the region's top-left."""

    if region.is_degenerate:
        return False
    text = str(index)
    (_tw, th), _baseline = cv2.getTextSize(
        text, FONT, float(style.font_scale), int(style.text_thickness)
    )
    # putText anchors on the baseline's left end; shift down by the glyph height.
    origin = (region.x, region.y + th)
    cv2.putText(
        frame,
        text,
        origin,
        FONT,
        float(style.font_scale),
        TEXT_COLOR,
        int(style.text_thickness),
        cv2.LINE_AA,
    )
    return True


def draw_regions(
    frame: Frame,
    regions: Sequence[Region],
    style: OverlayStyle,
) -> int:
    """Draw box and label for every non-degenerate region; return how many were drawn.

    The label is the region's position in `regions`, which mirrors the
    FilteredSet order.
    """

    drawn = 0
    for index, region in enumerate(regions):
        if region.is_degenerate:
            continue
        draw_region_box(frame, region, style)
        draw_label(frame, index, region, style)
        drawn += 1
    return drawn


def draw_edges(
    frame: Frame,
    keypoints: Sequence[Keypoint],
    edges: Sequence[ProximityEdge],
) -> None:
    """Draw one straight segment per proximity edge between rounded positions."""

    for i, j in edges:
        cv2.line(
            frame,
            _to_pixel(keypoints[i].position),
            _to_pixel(keypoints[j].position),
            EDGE_COLOR,
            EDGE_THICKNESS,
        )


def draw_keypoint_markers(frame: Frame, keypoints: Sequence[Keypoint]) -> None:
    """Circle of radius size/2 at every keypoint, like OpenCV's rich keypoint drawing."""

    for kp in keypoints:
        radius = max(1, int(round(kp.size / 2.0)))
        cv2.circle(frame, _to_pixel(kp.position), radius, MARKER_COLOR, 1, cv2.LINE_AA)
