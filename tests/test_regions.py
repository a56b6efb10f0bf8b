from __future__ import annotations

import numpy as np
import pytest

from siftlens.core.regions import (
    EnhanceConfig,
    clamp_region,
    clamp_regions,
    enhance_region,
    enhance_regions,
    region_view,
)
from siftlens.core.types import Keypoint, Region

W, H = 100, 80


def _kp(x: float, y: float, size: float) -> Keypoint:
    return Keypoint(position=(x, y), size=size)


def _assert_inside(region: Region, w: int = W, h: int = H) -> None:
    assert region.x >= 0
    assert region.y >= 0
    assert region.x + region.width <= w
    assert region.y + region.height <= h


def test_clamp_region_centered_keypoint():
    region = clamp_region(_kp(50.0, 40.0, 20.0), W, H)
    assert region == Region(x=40, y=30, width=20, height=20)
    assert not region.is_degenerate


def test_clamp_region_side_is_even_floor_of_size():
    region = clamp_region(_kp(50.0, 40.0, 21.9), W, H)
    assert (region.width, region.height) == (20, 20)


def test_clamp_region_rounds_position():
    region = clamp_region(_kp(50.4, 39.6, 10.0), W, H)
    assert (region.x, region.y) == (45, 35)


@pytest.mark.parametrize(
    "x,y,expected",
    [
        (0.0, 0.0, Region(0, 0, 10, 10)),
        (float(W), 0.0, Region(90, 0, 10, 10)),
        (0.0, float(H), Region(0, 70, 10, 10)),
        (float(W), float(H), Region(90, 70, 10, 10)),
    ],
)
def test_clamp_region_at_frame_corners(x, y, expected):
    region = clamp_region(_kp(x, y, 20.0), W, H)
    assert region == expected
    _assert_inside(region)


def test_clamp_region_larger_than_frame_covers_whole_frame():
    region = clamp_region(_kp(50.0, 40.0, 500.0), W, H)
    assert region == Region(0, 0, W, H)


def test_clamp_region_off_frame_is_degenerate():
    assert clamp_region(_kp(-50.0, -50.0, 10.0), W, H).is_degenerate
    assert clamp_region(_kp(W + 50.0, 10.0, 10.0), W, H).is_degenerate


def test_clamp_region_tiny_size_is_degenerate():
    region = clamp_region(_kp(10.0, 10.0, 1.9), W, H)
    assert region.width == 0
    assert region.is_degenerate


def test_clamp_region_bounds_hold_everywhere():
    for x in (-30.0, -0.5, 0.0, 3.3, 49.5, 99.4, 100.0, 130.0):
        for y in (-30.0, 0.0, 7.7, 79.6, 80.0, 110.0):
            for size in (0.0, 2.0, 15.0, 64.0, 300.0):
                region = clamp_region(_kp(x, y, size), W, H)
                assert region.width >= 0 and region.height >= 0
                if not region.is_degenerate:
                    _assert_inside(region)


def test_clamp_regions_keeps_order():
    kps = [_kp(10, 10, 4), _kp(-100, -100, 4), _kp(20, 20, 8)]
    regions = clamp_regions(kps, W, H)
    assert [r.is_degenerate for r in regions] == [False, True, False]


def test_contrast_then_invert_order():
    frame = np.full((10, 10, 3), 100, dtype=np.uint8)
    enhance_region(frame, Region(0, 0, 10, 10), contrast_percent=50.0, invert=True)
    assert np.all(frame == 105)


def test_contrast_saturates_instead_of_wrapping():
    frame = np.full((4, 4, 3), 200, dtype=np.uint8)
    enhance_region(frame, Region(0, 0, 4, 4), contrast_percent=50.0)
    assert np.all(frame == 255)

    frame = np.full((4, 4, 3), 200, dtype=np.uint8)
    enhance_region(frame, Region(0, 0, 4, 4), contrast_percent=-100.0)
    assert np.all(frame == 0)


def test_invert_only():
    frame = np.full((4, 4), 30, dtype=np.uint8)
    enhance_region(frame, Region(0, 0, 4, 4), invert=True)
    assert np.all(frame == 225)


def test_enhance_touches_only_region_pixels():
    frame = np.full((20, 30, 3), 90, dtype=np.uint8)
    before = frame.copy()
    region = Region(5, 4, 10, 6)
    enhance_region(frame, region, contrast_percent=10.0, invert=True)

    mask = np.zeros(frame.shape[:2], dtype=bool)
    mask[4:10, 5:15] = True
    assert np.all(frame[~mask] == before[~mask])
    assert np.all(region_view(frame, region) == 255 - 99)


def test_enhance_degenerate_region_is_noop():
    frame = np.full((10, 10, 3), 50, dtype=np.uint8)
    before = frame.copy()
    enhance_region(frame, Region(3, 3, 0, 5), contrast_percent=50.0, invert=True)
    assert np.array_equal(frame, before)


def test_enhance_disabled_is_noop():
    frame = np.full((10, 10, 3), 50, dtype=np.uint8)
    before = frame.copy()
    enhance_region(frame, Region(0, 0, 10, 10))
    assert np.array_equal(frame, before)


def test_enhance_regions_skips_degenerate_and_counts():
    frame = np.full((10, 10), 10, dtype=np.uint8)
    regions = [Region(0, 0, 2, 2), Region(5, 5, 0, 0), Region(8, 8, 2, 2)]
    touched = enhance_regions(frame, regions, EnhanceConfig(invert=True))
    assert touched == 2
    assert frame[0, 0] == 245
    assert frame[9, 9] == 245
    assert frame[5, 5] == 10


def test_enhance_regions_disabled_config():
    frame = np.zeros((4, 4), dtype=np.uint8)
    assert not EnhanceConfig().enabled
    assert enhance_regions(frame, [Region(0, 0, 4, 4)], EnhanceConfig()) == 0
    assert EnhanceConfig(contrast_percent=5.0).enabled


@pytest.mark.parametrize("percent", [float("nan"), float("inf"), float("-inf")])
def test_enhance_rejects_non_finite_contrast(percent):
    frame = np.full((10, 10, 3), 100, dtype=np.uint8)
    with pytest.raises(ValueError):
        enhance_region(frame, Region(2, 2, 4, 4), contrast_percent=percent)
    assert np.all(frame == 100)
