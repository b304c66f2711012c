"""Analyze a single cricket delivery video from the command line.

Usage:

    python scripts/analyze_delivery.py path/to/delivery.mp4
    python scripts/analyze_delivery.py path/to/delivery.mp4 --json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

from pitchtrace.core.errors import AnalysisError
from pitchtrace.core.vision import vision_engine
from pitchtrace.detection.pipeline import analyze_video
from pitchtrace.main import configure_logging


def _fmt(value: Optional[float], pattern: str) -> str:
    return pattern.format(value) if value is not None else "-"


def print_report(analysis) -> None:
    summary = analysis.summary

    print(f"\nDetected ball samples: {len(analysis.detections)} of {analysis.samples_taken} frames")
    print(f"{'#':>4} {'Time (s)':>9} {'Dist (m)':>9} {'Lat (m)':>8} {'Ht (m)':>7} {'Conf':>5}")
    for index, point in enumerate(analysis.trajectory, start=1):
        print(
            f"{index:>4} {point.time:>9.2f} {point.distance:>9.2f} "
            f"{point.lateral:>8.2f} {point.height:>7.2f} {round(point.confidence * 100):>4}%"
        )

    print("\nDelivery Insights")
    print(f"  Release Speed:         {_fmt(summary.release_speed, '{:.1f} km/h')}")
    print(f"  Peak Height:           {_fmt(summary.peak_height, '{:.2f} m')}")
    print(f"  Bounce Point:          {_fmt(summary.bounce_distance, '{:.2f} m down the pitch')}")
    print(f"  Lateral Movement:      {_fmt(summary.lateral_movement, '{:.2f} m deviation')}")
    confidence = round(summary.confidence * 100) if summary.confidence is not None else None
    print(f"  Trajectory Confidence: {_fmt(confidence, '{}%')}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Hawk-Eye style analysis of a bowling video")
    parser.add_argument("video", type=Path, help="Path to the delivery video")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    parser.add_argument("--log-level", default="WARNING", help="Loguru level (default WARNING)")
    args = parser.parse_args()

    configure_logging(args.log_level)

    if not args.video.exists():
        print(f"Video not found: {args.video}", file=sys.stderr)
        return 1

    vision_engine.start()

    def progress_callback(progress: float):
        if not args.json:
            print(f"   Progress: {progress * 100:.0f}%", end="\r")

    try:
        analysis = asyncio.run(analyze_video(args.video, progress_callback))
    except AnalysisError as e:
        print(f"\n{e.message}", file=sys.stderr)
        return 2
    finally:
        vision_engine.stop()

    if args.json:
        print(json.dumps(analysis.to_dict(), indent=2))
    else:
        print_report(analysis)
    return 0


if __name__ == "__main__":
    sys.exit(main())
