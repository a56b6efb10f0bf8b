"""OpenCV local-feature detector integration.

The pipeline only needs position + size per feature, so any OpenCV
`Feature2D` that fills `KeyPoint.pt` and `KeyPoint.size` can stand in for SIFT.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import cv2
import numpy as np

from siftlens.core.types import Frame, Keypoint

logger = logging.getLogger(__name__)

DETECTOR_NAMES = ("sift", "orb")

# ORB has no "unlimited" mode.
ORB_DEFAULT_FEATURES = 500


class KeypointDetector(Protocol):
    """Minimal detector interface expected by `FramePipeline`."""

    def detect(self, frame: Frame) -> list[Keypoint]:
        """Return keypoints in detector order, full-frame pixel coordinates."""

    def close(self) -> None:
        """Release the underlying OpenCV object."""


@dataclass(frozen=True)
class SiftConfig:
    max_features: int = 0  # 0 = unlimited
    octave_layers: int = 3
    contrast_threshold: float = 0.04
    edge_threshold: float = 10.0
    sigma: float = 1.6
    use_extended_descriptors: bool = False


def to_gray(frame: Frame) -> np.ndarray:
    """Single-channel view of a BGR/BGRA/gray frame for detection."""

    if frame.ndim == 2:
        return frame
    channels = frame.shape[2]
    if channels == 1:
        return frame[:, :, 0]
    if channels == 4:
        return cv2.cvtColor(frame, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)


def keypoints_from_cv(cv_keypoints: Any) -> list[Keypoint]:
    """Convert OpenCV `KeyPoint` objects, keeping their order."""

    return [
        Keypoint(position=(float(kp.pt[0]), float(kp.pt[1])), size=float(kp.size))
        for kp in cv_keypoints
    ]


class _OpenCVDetector:
    """Shared detect/close plumbing around an OpenCV `Feature2D` instance."""

    name = "opencv"

    def __init__(self, feature2d: Any) -> None:
        self._feature2d: Any | None = feature2d

    @property
    def closed(self) -> bool:
        return self._feature2d is None

    def detect(self, frame: Frame) -> list[Keypoint]:
        """Run detection on one frame.

        Raises:
            RuntimeError: if the detector has been closed.
        """

        if self._feature2d is None:
            raise RuntimeError(f"{self.name} detector is closed")
        cv_keypoints = self._feature2d.detect(to_gray(frame), None)
        if cv_keypoints is None:
            return []
        return keypoints_from_cv(cv_keypoints)

    def close(self) -> None:
        if self._feature2d is not None:
            logger.debug("Releasing %s detector", self.name)
        self._feature2d = None


class SiftDetector(_OpenCVDetector):
    """SIFT keypoint detector. Deterministic for identical pixels and config."""

    name = "sift"

    def __init__(self, config: SiftConfig | None = None) -> None:
        self.config = config or SiftConfig()
        kwargs: dict[str, Any] = {
            "nfeatures": int(self.config.max_features),
            "nOctaveLayers": int(self.config.octave_layers),
            "contrastThreshold": float(self.config.contrast_threshold),
            "edgeThreshold": float(self.config.edge_threshold),
            "sigma": float(self.config.sigma),
        }
        if self.config.use_extended_descriptors:
            # Only available on OpenCV >= 4.8; leave older builds on their default.
            kwargs["enable_precise_upscale"] = True
        super().__init__(cv2.SIFT_create(**kwargs))


class OrbDetector(_OpenCVDetector):
    """ORB keypoint detector; sizes come from the pyramid-scaled patch size."""

    name = "orb"

    def __init__(self, config: SiftConfig | None = None) -> None:
        self.config = config or SiftConfig()
        nfeatures = int(self.config.max_features) or ORB_DEFAULT_FEATURES
        super().__init__(cv2.ORB_create(nfeatures=nfeatures))


def create_detector(name: str = "sift", config: SiftConfig | None = None) -> KeypointDetector:
    """Build a detector by name ("sift" or "orb")."""

    key = str(name).strip().lower()
    if key == "sift":
        return SiftDetector(config)
    if key == "orb":
        return OrbDetector(config)
    raise ValueError(f"detector must be one of: {', '.join(DETECTOR_NAMES)}")
