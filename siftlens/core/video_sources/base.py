"""Video source abstractions.

The annotator consumes frames through a small interface (`VideoSource`) so the
container implementation can be swapped without affecting the frame pipeline.
A source is lazy, finite and non-restartable: iterate it once.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from pathlib import Path

import cv2

from siftlens.core.types import Frame, StreamInfo

logger = logging.getLogger(__name__)


class VideoSourceError(RuntimeError):
    """The input video cannot be used."""


class SourceNotFoundError(VideoSourceError):
    pass


class UnsupportedFormatError(VideoSourceError):
    pass


class CorruptSourceError(VideoSourceError):
    pass


def fourcc_to_str(codec_id: int) -> str:
    """Render an OpenCV FOURCC integer as its four-character code."""

    code = int(codec_id) & 0xFFFFFFFF
    chars = [chr((code >> (8 * k)) & 0xFF) for k in range(4)]
    return "".join(c if c.isprintable() else "?" for c in chars)


class VideoSource(ABC):
    """Base interface for anything that can produce video frames."""

    info: StreamInfo

    @abstractmethod
    def read(self) -> Frame | None:
        """Return the next frame, or `None` at end of stream."""

        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Release any underlying resources."""

        raise NotImplementedError

    def __iter__(self) -> Iterator[Frame]:
        while True:
            frame = self.read()
            if frame is None:
                return
            yield frame

    def __enter__(self) -> VideoSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class OpenCVSource(VideoSource):
    """A `VideoSource` backed by `cv2.VideoCapture` on a file path."""

    def __init__(self, path: str | Path) -> None:
        self.path = str(path)
        if not Path(self.path).exists():
            raise SourceNotFoundError(f"Video file not found: {self.path}")

        self.cap = cv2.VideoCapture(self.path)
        if not self.cap.isOpened():
            self.cap.release()
            raise UnsupportedFormatError(f"Cannot open video file: {self.path}")

        self.info = self._read_info()
        if self.info.width <= 0 or self.info.height <= 0:
            self.cap.release()
            raise CorruptSourceError(
                f"Video reports invalid geometry {self.info.width}x{self.info.height}: {self.path}"
            )
        self._closed = False
        self._exhausted = False
        logger.info(
            "Opened %s fps=%.3f size=%dx%d codec=%s",
            self.path,
            self.info.frame_rate,
            self.info.width,
            self.info.height,
            fourcc_to_str(self.info.codec_id),
        )

    def _read_info(self) -> StreamInfo:
        """Read container metadata from the capture."""

        return StreamInfo(
            frame_rate=float(self.cap.get(cv2.CAP_PROP_FPS)),
            width=int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            height=int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            codec_id=int(self.cap.get(cv2.CAP_PROP_FOURCC)),
            frame_count=max(0, int(self.cap.get(cv2.CAP_PROP_FRAME_COUNT))),
        )

    def read(self) -> Frame | None:
        """Read the next frame; once the stream has ended it stays ended."""

        if self._closed or self._exhausted:
            return None
        ok, frame = self.cap.read()
        if not ok or frame is None or frame.size == 0:
            self._exhausted = True
            return None
        return frame

    def close(self) -> None:
        """Release the underlying OpenCV capture."""

        if self._closed:
            return
        self._closed = True
        self.cap.release()
