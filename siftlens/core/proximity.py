"""Proximity graph over the filtered keypoints of one frame.

Two implementations with identical output: a pairwise scan (fine for the tens
of points a filtered frame usually holds) and a uniform-grid index for large
sets. Both consider each unordered pair exactly once and return edges sorted
by `(i, j)`.
"""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Sequence

from siftlens.core.types import Keypoint, Point, ProximityEdge

# Above this many points `auto` switches to the grid index.
GRID_MIN_POINTS = 64

PROXIMITY_INDEXES = ("auto", "pairwise", "grid")


def _within(a: Point, b: Point, threshold: float) -> bool:
    return math.hypot(a[0] - b[0], a[1] - b[1]) <= threshold


def proximity_edges_pairwise(points: Sequence[Point], threshold: float) -> list[ProximityEdge]:
    """O(n^2) scan over every unordered pair."""

    thr = float(threshold)
    if thr < 0.0:
        return []
    edges: list[ProximityEdge] = []
    n = len(points)
    for i in range(n):
        pi = points[i]
        for j in range(i + 1, n):
            if _within(pi, points[j], thr):
                edges.append(ProximityEdge(i, j))
    return edges


def proximity_edges_grid(points: Sequence[Point], threshold: float) -> list[ProximityEdge]:
    """Bucket points into square cells of side `threshold` and only compare neighbours.

    Any pair within `threshold` lies in the same or an adjacent cell.
    """

    thr = float(threshold)
    if thr < 0.0:
        return []
    if thr == 0.0:
        # Zero-sized cells: only coincident points can link.
        return proximity_edges_pairwise(points, thr)

    scaled = [(x / thr, y / thr) for x, y in points]
    if not all(math.isfinite(sx) and math.isfinite(sy) for sx, sy in scaled):
        # Cells too small (or a NaN threshold) to give integer keys.
        return proximity_edges_pairwise(points, thr)

    cells: dict[tuple[int, int], list[int]] = defaultdict(list)
    keys: list[tuple[int, int]] = []
    for idx, (sx, sy) in enumerate(scaled):
        key = (int(math.floor(sx)), int(math.floor(sy)))
        cells[key].append(idx)
        keys.append(key)

    edges: list[ProximityEdge] = []
    for i, (cx, cy) in enumerate(keys):
        pi = points[i]
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for j in cells.get((cx + dx, cy + dy), ()):
                    if j <= i:
                        continue
                    if _within(pi, points[j], thr):
                        edges.append(ProximityEdge(i, j))
    edges.sort()
    return edges


def proximity_edges(
    keypoints: Sequence[Keypoint],
    threshold: float,
    index: str = "auto",
) -> list[ProximityEdge]:
    """Edges between keypoints whose positions are within `threshold` pixels.

    Args:
        keypoints: Filtered keypoints; edge indices refer to this sequence.
        threshold: Maximum Euclidean distance (inclusive).
        index: "pairwise", "grid", or "auto" (grid above `GRID_MIN_POINTS`).
    """

    if index not in PROXIMITY_INDEXES:
        raise ValueError(f"index must be one of: {', '.join(PROXIMITY_INDEXES)}")
    points = [kp.position for kp in keypoints]
    if len(points) < 2:
        return []
    if index == "grid" or (index == "auto" and len(points) > GRID_MIN_POINTS):
        return proximity_edges_grid(points, threshold)
    return proximity_edges_pairwise(points, threshold)
