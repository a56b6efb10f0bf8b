from __future__ import annotations

import signal
import threading
import time
from pathlib import Path

import numpy as np
import pytest

import siftlens.services.runner as runner_mod
from siftlens.core.config.settings import AnnotatorSettings
from siftlens.core.pipeline import FramePipeline, PipelineConfig, PipelineState
from siftlens.core.types import StreamInfo
from siftlens.core.video_sinks.writer import SinkCreateError, VideoSink
from siftlens.core.video_sources.base import VideoSource
from siftlens.services.runner import (
    AnnotationRunner,
    RunReport,
    build_pipeline,
    output_path_for,
    pipeline_config_from_settings,
    sift_config_from_settings,
    stop_on_signals,
)


class _ListSource(VideoSource):
    def __init__(self, n: int, w: int = 16, h: int = 12):
        self.info = StreamInfo(frame_rate=10.0, width=w, height=h, codec_id=0, frame_count=n)
        self._frames = [self._tagged(i, w, h) for i in range(n)]
        self.reads = 0
        self.closed = 0

    @staticmethod
    def _tagged(i: int, w: int, h: int) -> np.ndarray:
        frame = np.zeros((h, w, 3), dtype=np.uint8)
        frame[0, 0, 0] = i
        return frame

    def read(self):
        if not self._frames:
            return None
        self.reads += 1
        return self._frames.pop(0)

    def close(self):
        self.closed += 1


class _ListSink(VideoSink):
    def __init__(self):
        self.frames: list[np.ndarray] = []
        self.closed = 0

    def write(self, frame):
        if self.closed:
            raise RuntimeError("closed")
        self.frames.append(frame)
        self.frames_written = len(self.frames)

    def close(self):
        self.closed += 1


class _SlowEmptyDetector:
    """Returns no keypoints; later frames finish faster to shuffle completion order."""

    def __init__(self, error_at: int | None = None):
        self.error_at = error_at
        self.closed = False

    def detect(self, frame):
        tag = int(frame[0, 0, 0])
        if self.error_at is not None and tag == self.error_at:
            raise RuntimeError("detector failed")
        time.sleep(0.001 * (5 - tag % 5))
        return []

    def close(self):
        self.closed = True


class _Factory:
    def __init__(self, **detector_kwargs):
        self.pipelines: list[FramePipeline] = []
        self._kwargs = detector_kwargs
        self._lock = threading.Lock()

    def __call__(self) -> FramePipeline:
        pipe = FramePipeline(_SlowEmptyDetector(**self._kwargs), PipelineConfig())
        with self._lock:
            self.pipelines.append(pipe)
        return pipe


def _tags(frames):
    return [int(f[0, 0, 0]) for f in frames]


def test_sequential_run_preserves_count_and_order():
    src, sink, factory = _ListSource(7), _ListSink(), _Factory()
    report = AnnotationRunner(src, sink, factory).run()

    assert report == RunReport(frames_read=7, frames_written=7, cancelled=False)
    assert _tags(sink.frames) == list(range(7))
    assert sink.closed == 1
    assert src.closed == 1
    assert len(factory.pipelines) == 1
    assert factory.pipelines[0].state is PipelineState.DONE


def test_parallel_run_writes_in_source_order():
    src, sink, factory = _ListSource(23), _ListSink(), _Factory()
    report = AnnotationRunner(src, sink, factory, workers=3).run()

    assert report.frames_written == 23
    assert _tags(sink.frames) == list(range(23))
    assert 1 <= len(factory.pipelines) <= 3
    assert all(p.state is PipelineState.DONE for p in factory.pipelines)
    assert sink.closed == 1 and src.closed == 1


def test_frames_keep_their_geometry():
    src, sink = _ListSource(4, w=20, h=10), _ListSink()
    AnnotationRunner(src, sink, _Factory()).run()
    assert all(f.shape == (10, 20, 3) for f in sink.frames)


def test_max_frames_limits_reading():
    src, sink = _ListSource(10), _ListSink()
    report = AnnotationRunner(src, sink, _Factory(), max_frames=4).run()
    assert report.frames_read == 4
    assert src.reads == 4
    assert _tags(sink.frames) == [0, 1, 2, 3]


def test_preset_stop_event_cancels_before_reading():
    stop = threading.Event()
    stop.set()
    src, sink = _ListSource(5), _ListSink()
    report = AnnotationRunner(src, sink, _Factory(), stop_event=stop).run()
    assert report.cancelled is True
    assert report.frames_written == 0
    assert src.reads == 0
    assert sink.closed == 1 and src.closed == 1


def test_stop_mid_run_keeps_written_frames_and_closes():
    src, sink = _ListSource(10), _ListSink()
    seen = []

    def _on_frame(summary):
        seen.append(summary.frame_id)
        if len(seen) == 3:
            runner.stop()

    runner = AnnotationRunner(src, sink, _Factory(), on_frame=_on_frame)
    report = runner.run()

    assert report.cancelled is True
    assert _tags(sink.frames) == [0, 1, 2]
    assert seen == [0, 1, 2]
    assert sink.closed == 1 and src.closed == 1


def test_stop_with_workers_drains_frames_in_flight_in_order():
    src, sink = _ListSource(40), _ListSink()

    def _on_frame(summary):
        if summary.frame_id == 5:
            runner.stop()

    runner = AnnotationRunner(src, sink, _Factory(), workers=4, on_frame=_on_frame)
    report = runner.run()

    assert report.cancelled is True
    assert report.frames_written == report.frames_read
    assert _tags(sink.frames) == list(range(report.frames_written))
    assert report.frames_written < 40


@pytest.mark.parametrize("workers", [1, 3])
def test_detector_failure_propagates_and_releases_everything(workers):
    src, sink, factory = _ListSource(8), _ListSink(), _Factory(error_at=4)
    with pytest.raises(RuntimeError, match="detector failed"):
        AnnotationRunner(src, sink, factory, workers=workers).run()

    assert _tags(sink.frames) == list(range(len(sink.frames)))
    assert len(sink.frames) <= 4
    assert sink.closed == 1
    assert src.closed == 1
    assert all(p.state is PipelineState.DONE for p in factory.pipelines)


def test_invalid_worker_count():
    with pytest.raises(ValueError):
        AnnotationRunner(_ListSource(1), _ListSink(), _Factory(), workers=0)


def test_output_path_for_derives_sibling_name():
    assert output_path_for("/videos/clip.mp4", "-annotated") == Path("/videos/clip-annotated.mp4")
    assert output_path_for("clip.tar.avi", "-x") == Path("clip.tar-x.avi")
    assert output_path_for("/videos/clip", "-annotated") == Path("/videos/clip-annotated")


def test_settings_map_onto_pipeline_and_detector_config():
    settings = AnnotatorSettings(
        max_features=10,
        octave_layers=4,
        min_size=12.0,
        distance_threshold=33.0,
        contrast_percent=25.0,
        invert=True,
        box_thickness=2,
        proximity_index="grid",
    )
    sift = sift_config_from_settings(settings)
    assert (sift.max_features, sift.octave_layers) == (10, 4)

    cfg = pipeline_config_from_settings(settings)
    assert cfg.min_size == 12.0
    assert cfg.distance_threshold == 33.0
    assert cfg.enhance.contrast_percent == 25.0
    assert cfg.enhance.invert is True
    assert cfg.style.box_thickness == 2
    assert cfg.proximity_index == "grid"

    pipe = build_pipeline(settings)
    assert pipe.config == cfg
    pipe.close()


def test_stop_on_signals_sets_event_and_restores_handler():
    previous = signal.getsignal(signal.SIGINT)
    event = threading.Event()
    with stop_on_signals(event):
        signal.raise_signal(signal.SIGINT)
        assert event.is_set()
    assert signal.getsignal(signal.SIGINT) is previous


def test_annotate_file_closes_source_when_sink_fails(monkeypatch, tmp_path):
    src = _ListSource(2)
    monkeypatch.setattr(runner_mod, "OpenCVSource", lambda _p: src)

    def _fail(_path, _info):
        raise SinkCreateError("Cannot open output video writer")

    monkeypatch.setattr(runner_mod.OpenCVVideoWriterSink, "for_stream", staticmethod(_fail))
    with pytest.raises(SinkCreateError):
        runner_mod.annotate_file(tmp_path / "in.avi", AnnotatorSettings())
    assert src.closed == 1


def test_annotate_file_runs_with_injected_components(monkeypatch, tmp_path):
    src, sink = _ListSource(3), _ListSink()
    created = {}

    def _for_stream(path, info):
        created["path"] = path
        created["info"] = info
        return sink

    monkeypatch.setattr(runner_mod, "OpenCVSource", lambda _p: src)
    monkeypatch.setattr(runner_mod.OpenCVVideoWriterSink, "for_stream", staticmethod(_for_stream))
    monkeypatch.setattr(runner_mod, "build_pipeline", lambda _s: _Factory()())

    streams = []
    report, out = runner_mod.annotate_file(
        tmp_path / "in.avi",
        AnnotatorSettings(output_suffix="-done"),
        on_stream=streams.append,
    )
    assert out == tmp_path / "in-done.avi"
    assert created["path"] == out
    assert created["info"] is src.info
    assert streams == [src.info]
    assert report.frames_written == 3
    assert sink.closed == 1
