"""CLI: benchmark the frame pipeline on one or more videos.

This tool is intentionally print-oriented (human-readable) and also writes a JSON
report suitable for regression tracking. Frames are annotated but not written.
"""

from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path
from typing import Any

import numpy as np

from siftlens.core.config.presets import PRESET_LABELS, PRESETS
from siftlens.core.config.settings import AnnotatorSettings, apply_preset, load_settings
from siftlens.core.video_sources.base import OpenCVSource
from siftlens.services.runner import build_pipeline

STAGES = ("detect_ms", "filter_ms", "enhance_ms", "overlay_ms", "proximity_ms", "pipeline_ms")


def _percentiles(values: list[float]) -> dict[str, float]:
    """Compute a small set of percentiles for a list of timings."""

    if not values:
        return {"min": 0.0, "p50": 0.0, "p95": 0.0, "p99": 0.0, "max": 0.0, "mean": 0.0}
    arr = np.array(values, dtype=np.float64)
    return {
        "min": float(np.min(arr)),
        "p50": float(np.percentile(arr, 50)),
        "p95": float(np.percentile(arr, 95)),
        "p99": float(np.percentile(arr, 99)),
        "max": float(np.max(arr)),
        "mean": float(np.mean(arr)),
    }


def _iter_inputs(input_path: str) -> list[str]:
    """Expand an input path (file or directory) into a list of video file paths."""

    p = Path(input_path)
    if p.is_dir():
        vids = []
        for ext in ("*.mp4", "*.avi", "*.mov", "*.mkv"):
            vids.extend(sorted(str(x) for x in p.glob(ext)))
        if not vids:
            raise SystemExit(f"No video files found under: {p}")
        return vids
    return [str(p)]


def run_once(video_path: str, settings: AnnotatorSettings, warmup_frames: int = 5) -> dict[str, Any]:
    """Run a single benchmark pass over one video path with given settings."""

    try:
        source = OpenCVSource(video_path)
    except RuntimeError as exc:
        raise SystemExit(str(exc)) from exc

    stage_ms: dict[str, list[float]] = {name: [] for name in STAGES}
    kept: list[float] = []
    edges: list[float] = []
    frames = 0

    t_start = time.perf_counter()
    with source, build_pipeline(settings) as pipeline:
        while not (settings.max_frames and frames >= settings.max_frames):
            frame = source.read()
            if frame is None:
                break
            frames += 1
            summary, _annotated, timings = pipeline.process_with_profile(frame, frame_id=frames - 1)
            # warmup (don't record)
            if frames <= warmup_frames:
                continue
            for name in STAGES:
                stage_ms[name].append(float(timings.get(name, 0.0)))
            kept.append(float(len(summary.keypoints)))
            edges.append(float(len(summary.edges)))
    elapsed = time.perf_counter() - t_start

    measured = len(stage_ms["pipeline_ms"])
    busy_s = sum(stage_ms["pipeline_ms"]) / 1000.0
    return {
        "video": video_path,
        "frames": frames,
        "measured_frames": measured,
        "wall_s": elapsed,
        "fps": (measured / busy_s) if busy_s > 0 else 0.0,
        "stages": {name: _percentiles(values) for name, values in stage_ms.items()},
        "keypoints_kept": _percentiles(kept),
        "edges": _percentiles(edges),
    }


def _print_report(result: dict[str, Any], label: str) -> None:
    print(f"\n== {result['video']} [{label}] ==")
    print(f"frames={result['frames']} measured={result['measured_frames']} fps={result['fps']:.1f}")
    for name, stats in result["stages"].items():
        print(f"  {name:<13} p50={stats['p50']:.2f} p95={stats['p95']:.2f} max={stats['max']:.2f}")
    print(f"  keypoints p50={result['keypoints_kept']['p50']:.0f} edges p50={result['edges']['p50']:.0f}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Benchmark the frame pipeline on videos")
    parser.add_argument("--input", required=True, help="Video file or directory of videos")
    parser.add_argument("--preset", choices=sorted(PRESETS), default=None)
    parser.add_argument("--max-frames", type=int, default=0, help="Limit frames per video")
    parser.add_argument("--warmup-frames", type=int, default=5)
    parser.add_argument("--output", default=None, help="Where to save the JSON report")
    args = parser.parse_args(argv)

    settings = load_settings()
    if args.preset:
        settings = apply_preset(settings, args.preset)
    if args.max_frames:
        settings = settings.model_copy(update={"max_frames": int(args.max_frames)})
    logging.basicConfig(level=settings.log_level)

    label = PRESET_LABELS.get(args.preset, args.preset) if args.preset else "settings"
    results = []
    for video in _iter_inputs(args.input):
        result = run_once(video, settings, warmup_frames=max(0, int(args.warmup_frames)))
        _print_report(result, label)
        results.append(result)

    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with open(out_path, "w", encoding="utf-8") as f:
            json.dump({"preset": args.preset, "results": results}, f, indent=2)
        print(f"Wrote report to {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
