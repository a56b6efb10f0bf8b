from __future__ import annotations

import contextlib
import logging
import signal
import threading
from collections import deque
from collections.abc import Callable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from siftlens.core.config.settings import AnnotatorSettings
from siftlens.core.detectors.features import SiftConfig, create_detector
from siftlens.core.overlay.draw import OverlayStyle
from siftlens.core.pipeline import FramePipeline, PipelineConfig
from siftlens.core.regions import EnhanceConfig
from siftlens.core.types import Frame, FrameSummary, StreamInfo
from siftlens.core.video_sinks.writer import OpenCVVideoWriterSink, VideoSink
from siftlens.core.video_sources.base import OpenCVSource, VideoSource

logger = logging.getLogger(__name__)

PipelineFactory = Callable[[], FramePipeline]
FrameCallback = Callable[[FrameSummary], None]


@dataclass
class RunReport:
    frames_read: int = 0
    frames_written: int = 0
    cancelled: bool = False


def sift_config_from_settings(settings: AnnotatorSettings) -> SiftConfig:
    return SiftConfig(
        max_features=int(settings.max_features),
        octave_layers=int(settings.octave_layers),
        contrast_threshold=float(settings.contrast_threshold),
        edge_threshold=float(settings.edge_threshold),
        sigma=float(settings.sigma),
        use_extended_descriptors=bool(settings.use_extended_descriptors),
    )


def pipeline_config_from_settings(settings: AnnotatorSettings) -> PipelineConfig:
    return PipelineConfig(
        min_size=float(settings.min_size),
        distance_threshold=float(settings.distance_threshold),
        enhance=EnhanceConfig(
            contrast_percent=float(settings.contrast_percent),
            invert=bool(settings.invert),
        ),
        style=OverlayStyle(
            box_thickness=int(settings.box_thickness),
            font_scale=float(settings.font_scale),
            text_thickness=int(settings.text_thickness),
            draw_keypoint_markers=bool(settings.draw_keypoint_markers),
        ),
        proximity_index=str(settings.proximity_index),
    )


def build_pipeline(settings: AnnotatorSettings) -> FramePipeline:
    """Create a pipeline (and its detector) from settings."""

    return FramePipeline(
        detector=create_detector(settings.detector, sift_config_from_settings(settings)),
        config=pipeline_config_from_settings(settings),
    )


def output_path_for(input_path: str | Path, suffix: str) -> Path:
    """`<dir>/<stem><suffix><ext>` next to the input file."""

    p = Path(input_path)
    return p.with_name(f"{p.stem}{suffix}{p.suffix}")


@contextlib.contextmanager
def stop_on_signals(
    event: threading.Event,
    signals: tuple[int, ...] = (signal.SIGINT, signal.SIGTERM),
) -> Iterator[threading.Event]:
    """Set `event` on SIGINT/SIGTERM while the block runs; restore handlers afterwards.

    Handlers can only be installed from the main thread; elsewhere this is a no-op.
    """

    if threading.current_thread() is not threading.main_thread():
        yield event
        return

    def _handler(signum: int, _frame: object) -> None:
        logger.warning("Received signal %s, stopping after frames in flight", signum)
        event.set()

    previous = {sig: signal.signal(sig, _handler) for sig in signals}
    try:
        yield event
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


class AnnotationRunner:
    """Runs source → pipeline → sink for one video.

    With `workers == 1` frames are processed strictly one at a time. With more
    workers, frames are processed on a thread pool (one pipeline per worker
    thread) and written back in read order through a bounded window of
    futures. Cancellation through `stop()` (or the shared `stop_event`) stops
    reading; frames already in flight are still written. The source, the sink
    and every pipeline are closed however the run ends.
    """

    def __init__(
        self,
        source: VideoSource,
        sink: VideoSink,
        pipeline_factory: PipelineFactory,
        *,
        workers: int = 1,
        max_frames: int = 0,
        stop_event: threading.Event | None = None,
        on_frame: FrameCallback | None = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.source = source
        self.sink = sink
        self.pipeline_factory = pipeline_factory
        self.workers = int(workers)
        self.max_frames = int(max_frames)
        self.stop_event = stop_event or threading.Event()
        self.on_frame = on_frame
        self._pipelines: list[FramePipeline] = []
        self._pipelines_lock = threading.Lock()

    def stop(self) -> None:
        self.stop_event.set()

    def _new_pipeline(self) -> FramePipeline:
        pipeline = self.pipeline_factory()
        with self._pipelines_lock:
            self._pipelines.append(pipeline)
        return pipeline

    def _frames(self, report: RunReport) -> Iterator[tuple[int, Frame]]:
        """Yield (frame_id, frame) until end of stream, `max_frames`, or stop."""

        while not self.stop_event.is_set():
            if self.max_frames and report.frames_read >= self.max_frames:
                return
            frame = self.source.read()
            if frame is None:
                return
            report.frames_read += 1
            yield report.frames_read - 1, frame
        report.cancelled = True
        logger.info("Run cancelled after reading %d frames", report.frames_read)

    def _emit(self, summary: FrameSummary, frame: Frame, report: RunReport) -> None:
        self.sink.write(frame)
        report.frames_written += 1
        if self.on_frame is not None:
            self.on_frame(summary)

    def _run_sequential(self, report: RunReport) -> None:
        pipeline = self._new_pipeline()
        for frame_id, frame in self._frames(report):
            summary, out = pipeline.process_with_summary(frame, frame_id)
            self._emit(summary, out, report)

    def _run_parallel(self, report: RunReport) -> None:
        local = threading.local()

        def _work(frame_id: int, frame: Frame) -> tuple[FrameSummary, Frame]:
            pipeline = getattr(local, "pipeline", None)
            if pipeline is None:
                pipeline = self._new_pipeline()
                local.pipeline = pipeline
            return pipeline.process_with_summary(frame, frame_id)

        window = self.workers * 2
        pending: deque[Future[tuple[FrameSummary, Frame]]] = deque()
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="siftlens") as pool:
            try:
                for frame_id, frame in self._frames(report):
                    pending.append(pool.submit(_work, frame_id, frame))
                    if len(pending) >= window:
                        self._emit(*pending.popleft().result(), report)
                while pending:
                    self._emit(*pending.popleft().result(), report)
            except BaseException:
                for fut in pending:
                    fut.cancel()
                raise

    def _close_all(self) -> None:
        try:
            for pipeline in self._pipelines:
                pipeline.close()
        finally:
            try:
                self.sink.close()
            finally:
                self.source.close()

    def run(self) -> RunReport:
        """Process the whole stream and return counts."""

        report = RunReport()
        try:
            if self.workers == 1:
                self._run_sequential(report)
            else:
                self._run_parallel(report)
        finally:
            self._close_all()
        logger.info(
            "Run finished: read=%d written=%d cancelled=%s",
            report.frames_read,
            report.frames_written,
            report.cancelled,
        )
        return report


def annotate_file(
    input_path: str | Path,
    settings: AnnotatorSettings,
    *,
    stop_event: threading.Event | None = None,
    on_frame: FrameCallback | None = None,
    on_stream: Callable[[StreamInfo], None] | None = None,
) -> tuple[RunReport, Path]:
    """Annotate a video file and write `<stem><suffix><ext>` next to it.

    Raises:
        VideoSourceError: the input cannot be opened.
        SinkCreateError: the output writer cannot be created.
    """

    source = OpenCVSource(input_path)
    out_path = output_path_for(input_path, settings.output_suffix)
    try:
        if on_stream is not None:
            on_stream(source.info)
        sink = OpenCVVideoWriterSink.for_stream(out_path, source.info)
    except BaseException:
        source.close()
        raise

    runner = AnnotationRunner(
        source,
        sink,
        lambda: build_pipeline(settings),
        workers=settings.workers,
        max_frames=settings.max_frames,
        stop_event=stop_event,
        on_frame=on_frame,
    )
    return runner.run(), out_path
