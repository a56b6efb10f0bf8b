"""CLI: annotate a video with keypoint regions, labels and proximity links.

Writes `<stem><suffix><ext>` next to the input, using the input's codec,
frame rate and resolution.
"""

from __future__ import annotations

import argparse
import logging
import sys
import threading

from pydantic import ValidationError

from siftlens.core.config.presets import PRESETS, list_presets
from siftlens.core.config.settings import AnnotatorSettings, apply_preset, load_settings
from siftlens.core.types import StreamInfo
from siftlens.core.video_sinks.writer import SinkCreateError
from siftlens.core.video_sources.base import VideoSourceError
from siftlens.services.runner import annotate_file, stop_on_signals

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="siftlens-annotate",
        description="Annotate a video with keypoint overlays",
    )
    parser.add_argument("input", nargs="?", help="Path to the input video")
    parser.add_argument(
        "--preset",
        choices=sorted(PRESETS),
        default=None,
        help="Apply a named parameter preset on top of the loaded settings",
    )
    parser.add_argument(
        "--list-presets",
        action="store_true",
        help="Print the available presets and exit",
    )
    return parser


def _print_presets() -> None:
    for item in list_presets():
        patch = ", ".join(f"{k}={v}" for k, v in item["settings"].items())
        print(f"{item['id']:<10} {item['label']}: {patch}")


def _settings_for(args: argparse.Namespace) -> AnnotatorSettings:
    try:
        settings = load_settings()
        if args.preset:
            settings = apply_preset(settings, args.preset)
    except ValidationError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc
    return settings


def run(args: argparse.Namespace) -> int:
    settings = _settings_for(args)
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    logger.info("Annotating %s", args.input)

    def _print_stream(info: StreamInfo) -> None:
        print(f"FPS: {info.frame_rate}, Size: {info.width}x{info.height}")

    stop_event = threading.Event()
    try:
        with stop_on_signals(stop_event):
            report, out_path = annotate_file(
                args.input,
                settings,
                stop_event=stop_event,
                on_stream=_print_stream,
            )
    except VideoSourceError as exc:
        raise SystemExit(str(exc)) from exc
    except SinkCreateError as exc:
        raise SystemExit(str(exc)) from exc

    if report.cancelled:
        print(f"Stopped early after {report.frames_written} frames")
    print(f"Output saved to: {out_path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.list_presets:
        _print_presets()
        return 0
    if args.input is None:
        parser.error("the following arguments are required: input")
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
