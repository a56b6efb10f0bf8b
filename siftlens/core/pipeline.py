"""Frame pipeline orchestration.

This module ties together feature detection, size filtering, region
enhancement, overlay drawing and the proximity pass into a single per-frame
step. Nothing computed for one frame survives into the next; only the
configuration and the (reusable, stateless) detector instance are kept.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from siftlens.core.detectors.features import KeypointDetector, SiftDetector
from siftlens.core.keypoints import filter_keypoints
from siftlens.core.overlay.draw import OverlayStyle, draw_edges, draw_keypoint_markers, draw_regions
from siftlens.core.proximity import proximity_edges
from siftlens.core.regions import EnhanceConfig, clamp_regions, enhance_regions
from siftlens.core.types import Frame, FrameSummary

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    AWAITING_FRAME = "awaiting_frame"
    DETECTING = "detecting"
    FILTERING = "filtering"
    ANNOTATING = "annotating"
    EMITTING = "emitting"
    DONE = "done"


@dataclass(frozen=True)
class PipelineConfig:
    """Thresholds and drawing options fixed for a whole run."""

    min_size: float = 20.0
    distance_threshold: float = 50.0
    enhance: EnhanceConfig = field(default_factory=EnhanceConfig)
    style: OverlayStyle = field(default_factory=OverlayStyle)
    proximity_index: str = "auto"


class FramePipeline:
    """End-to-end per-frame annotation.

    Responsibilities:
    - run the detector on the frame
    - keep keypoints at or above `min_size` and number them in detector order
    - enhance and outline the region around each surviving keypoint
    - link keypoints that lie within `distance_threshold` of each other

    The frame is mutated in place and returned; its shape never changes.
    """

    def __init__(
        self,
        detector: KeypointDetector | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        """Create a pipeline with an optional injected detector."""

        self.detector: KeypointDetector = detector or SiftDetector()
        self.config = config or PipelineConfig()
        self._state = PipelineState.AWAITING_FRAME

    @property
    def state(self) -> PipelineState:
        return self._state

    def _process_internal(
        self,
        frame: Frame,
        frame_id: int,
        profile: bool,
    ) -> tuple[FrameSummary, Frame, dict[str, float]]:
        """Process one frame and return (summary, annotated_frame, timings).

        A stage that raises propagates its error; the pipeline goes back to
        AWAITING_FRAME so the next frame can still be processed.
        """

        if self._state is PipelineState.DONE:
            raise RuntimeError("FramePipeline is closed")
        try:
            return self._run_stages(frame, frame_id, profile)
        except BaseException:
            if self._state is not PipelineState.DONE:
                self._state = PipelineState.AWAITING_FRAME
            raise

    def _run_stages(
        self,
        frame: Frame,
        frame_id: int,
        profile: bool,
    ) -> tuple[FrameSummary, Frame, dict[str, float]]:
        cfg = self.config
        timings: dict[str, float] = {}
        t_all0 = time.perf_counter() if profile else 0.0
        h, w = frame.shape[:2]

        self._state = PipelineState.DETECTING
        t0 = time.perf_counter() if profile else 0.0
        detected = self.detector.detect(frame)
        if profile:
            timings["detect_ms"] = (time.perf_counter() - t0) * 1000.0

        self._state = PipelineState.FILTERING
        t0 = time.perf_counter() if profile else 0.0
        keypoints = filter_keypoints(detected, cfg.min_size)
        if profile:
            timings["filter_ms"] = (time.perf_counter() - t0) * 1000.0

        self._state = PipelineState.ANNOTATING
        t0 = time.perf_counter() if profile else 0.0
        regions = clamp_regions(keypoints, w, h)
        enhance_regions(frame, regions, cfg.enhance)
        if profile:
            timings["enhance_ms"] = (time.perf_counter() - t0) * 1000.0

        # Overlays go on after every region is enhanced so none of them gets inverted.
        t0 = time.perf_counter() if profile else 0.0
        drawn = draw_regions(frame, regions, cfg.style)
        if profile:
            timings["overlay_ms"] = (time.perf_counter() - t0) * 1000.0

        t0 = time.perf_counter() if profile else 0.0
        edges = proximity_edges(keypoints, cfg.distance_threshold, cfg.proximity_index)
        draw_edges(frame, keypoints, edges)
        if cfg.style.draw_keypoint_markers:
            draw_keypoint_markers(frame, keypoints)
        if profile:
            timings["proximity_ms"] = (time.perf_counter() - t0) * 1000.0

        self._state = PipelineState.EMITTING
        logger.debug(
            "frame=%d detected=%d kept=%d drawn=%d edges=%d",
            frame_id,
            len(detected),
            len(keypoints),
            drawn,
            len(edges),
        )
        summary = FrameSummary(
            frame_id=frame_id,
            detected=len(detected),
            keypoints=keypoints,
            regions=regions,
            edges=edges,
            frame_size=(w, h),
        )

        if profile:
            timings["pipeline_ms"] = (time.perf_counter() - t_all0) * 1000.0
        self._state = PipelineState.AWAITING_FRAME
        return summary, frame, timings

    def process(self, frame: Frame) -> Frame:
        """Annotate `frame` in place and return the same object."""

        _summary, out_frame, _timings = self._process_internal(frame, frame_id=0, profile=False)
        return out_frame

    def process_with_summary(self, frame: Frame, frame_id: int = 0) -> tuple[FrameSummary, Frame]:
        """Annotate `frame` in place and return (summary, frame)."""

        summary, out_frame, _timings = self._process_internal(
            frame, frame_id=frame_id, profile=False
        )
        return summary, out_frame

    def process_with_profile(
        self,
        frame: Frame,
        frame_id: int = 0,
    ) -> tuple[FrameSummary, Frame, dict[str, float]]:
        """Annotate `frame` and return (summary, frame, timings).

        The `timings` dict contains stage durations in milliseconds and can be
        used by the benchmark tooling.
        """

        return self._process_internal(frame, frame_id=frame_id, profile=True)

    def close(self) -> None:
        """Release the detector and enter the terminal state. Idempotent."""

        if self._state is PipelineState.DONE:
            return
        self._state = PipelineState.DONE
        close = getattr(self.detector, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> FramePipeline:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
