from __future__ import annotations

from typing import Any


# Named parameter sets for common annotation looks. Each preset is a patch on
# top of the loaded settings; anything it does not mention keeps its value.
#
# Notes:
# - min_size: drop keypoints smaller than this before numbering them
# - distance_threshold: link keypoints closer than this (pixels)
# - contrast_percent / invert: region enhancement, 0 / False disables


PRESETS: dict[str, dict[str, Any]] = {
    # Stock SIFT parameters, every keypoint kept and marked, no enhancement.
    "reference": {
        "detector": "sift",
        "max_features": 0,
        "octave_layers": 3,
        "contrast_threshold": 0.04,
        "edge_threshold": 10.0,
        "sigma": 1.6,
        "min_size": 0.0,
        "distance_threshold": 0.0,
        "contrast_percent": 0.0,
        "invert": False,
        "draw_keypoint_markers": True,
    },
    # Large features only, with boosted and inverted regions.
    "highlight": {
        "detector": "sift",
        "min_size": 20.0,
        "distance_threshold": 60.0,
        "contrast_percent": 40.0,
        "invert": True,
        "draw_keypoint_markers": False,
    },
    # Fewer, stronger features; cheap on busy footage.
    "sparse": {
        "detector": "sift",
        "max_features": 200,
        "contrast_threshold": 0.08,
        "min_size": 30.0,
        "distance_threshold": 80.0,
        "contrast_percent": 0.0,
        "invert": False,
    },
}


PRESET_LABELS: dict[str, str] = {
    "reference": "Reference",
    "highlight": "Highlight",
    "sparse": "Sparse",
}


def list_presets() -> list[dict[str, Any]]:
    return [
        {
            "id": preset_id,
            "label": PRESET_LABELS.get(preset_id, preset_id),
            "settings": PRESETS[preset_id],
        }
        for preset_id in PRESETS.keys()
    ]


def preset_patch(preset_id: str) -> dict[str, Any]:
    if preset_id not in PRESETS:
        raise KeyError(preset_id)
    return dict(PRESETS[preset_id])
