"""Video sink abstractions.

A sink accepts frames strictly in source order and finalizes the container on
`close()`, which must be safe to call more than once and on error paths.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

import cv2

from siftlens.core.types import Frame, StreamInfo

logger = logging.getLogger(__name__)


class SinkCreateError(RuntimeError):
    """The output writer could not be created."""


class VideoSink(ABC):
    """Base interface for anything that persists annotated frames."""

    frames_written: int = 0

    @abstractmethod
    def write(self, frame: Frame) -> None:
        """Append one frame."""

        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Finalize the output. Idempotent."""

        raise NotImplementedError

    def __enter__(self) -> VideoSink:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class OpenCVVideoWriterSink(VideoSink):
    """A `VideoSink` backed by `cv2.VideoWriter`, matching the source's codec and timing."""

    def __init__(
        self,
        path: str | Path,
        codec_id: int,
        frame_rate: float,
        width: int,
        height: int,
        is_color: bool = True,
    ) -> None:
        self.path = str(path)
        self.size = (int(width), int(height))
        self.writer = cv2.VideoWriter(
            self.path,
            int(codec_id),
            float(frame_rate),
            self.size,
            bool(is_color),
        )
        if not self.writer.isOpened():
            self.writer.release()
            raise SinkCreateError(f"Cannot open output video writer: {self.path}")
        self.frames_written = 0
        self._closed = False
        logger.info("Writing %s fps=%.3f size=%dx%d", self.path, frame_rate, width, height)

    @classmethod
    def for_stream(cls, path: str | Path, info: StreamInfo) -> OpenCVVideoWriterSink:
        """Create a writer with the same codec, rate and geometry as `info`."""

        return cls(path, info.codec_id, info.frame_rate, info.width, info.height)

    def write(self, frame: Frame) -> None:
        if self._closed:
            raise RuntimeError(f"Video sink already closed: {self.path}")
        self.writer.write(frame)
        self.frames_written += 1

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.writer.release()
        logger.info("Closed %s after %d frames", self.path, self.frames_written)
