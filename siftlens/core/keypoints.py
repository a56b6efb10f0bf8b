from __future__ import annotations

from collections.abc import Iterable

from siftlens.core.types import Keypoint


def filter_keypoints(keypoints: Iterable[Keypoint], min_size: float) -> list[Keypoint]:
    """Keep keypoints whose size is at least `min_size`, preserving detector order.

    The position of a survivor in the returned list is its display identifier
    for the current frame only.
    """

    threshold = float(min_size)
    return [kp for kp in keypoints if kp.size >= threshold]
