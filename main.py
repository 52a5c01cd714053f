#!/usr/bin/env python3
"""
Pulse Monitor – main entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --camera-index INT   OpenCV camera index (default: 0)
    --resolution WxH     Capture resolution (default: 320x240)
    --sample-size INT    Side of the square pixel sample (default: 30)
    --max-samples INT    Sample window length (default: 300)
    --start-delay FLOAT  Stabilisation delay in seconds (default: 1.5)
    --graph-size WxH     Waveform canvas size (default: 640x240)
    --graph-width INT    Waveform line width (default: 6)
    --extractor NAME     Brightness strategy: red-green or rgb (default: red-green)
    --headless           Run without display window (log BPM only)
    --debug              Verbose per-frame diagnostics

Keyboard shortcuts (when a window is open)
------------------------------------------
    q / ESC  – quit
    space    – stop / restart monitoring
    s        – save the current graph as PNG
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Optional, Tuple

# Must be set before cv2 is imported so Qt5 uses X11/XWayland instead of
# looking for a Wayland plugin that is not bundled with pip-installed opencv.
import os
os.environ.setdefault("QT_QPA_PLATFORM", "xcb")

from pulse_monitor.brightness import EXTRACTORS, make_extractor
from pulse_monitor.camera import DeviceUnavailableError, FingertipCamera, NullTorch
from pulse_monitor.monitor import HeartRateMonitor, MonitorConfig
from pulse_monitor.visualizer import Visualizer

logger = logging.getLogger("pulse_monitor")

WINDOW_NAME = "Pulse Monitor"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Fingertip heart-rate monitor (camera PPG, zero-crossing BPM)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--camera-index", type=int, default=0,
                        help="OpenCV VideoCapture index")
    parser.add_argument("--resolution", default="320x240",
                        help="Capture resolution, e.g. 320x240")
    parser.add_argument("--sample-size", type=int, default=30,
                        help="Side length of the square pixel sample")
    parser.add_argument("--max-samples", type=int, default=300,
                        help="Number of samples kept in the analysis window")
    parser.add_argument("--start-delay", type=float, default=1.5,
                        help="Seconds to let exposure settle before sampling")
    parser.add_argument("--graph-size", default="640x240",
                        help="Waveform canvas size, e.g. 640x240")
    parser.add_argument("--graph-width", type=int, default=6,
                        help="Waveform line width in pixels")
    parser.add_argument("--extractor", choices=sorted(EXTRACTORS), default="red-green",
                        help="Brightness strategy applied to each pixel sample")
    parser.add_argument("--headless", action="store_true",
                        help="No display window; log BPM only")
    parser.add_argument("--debug", action="store_true",
                        help="Log per-frame signal diagnostics")
    return parser.parse_args(argv)


def parse_size(text: str) -> Tuple[int, int]:
    """Parse ``WxH`` into ``(w, h)``; raises ValueError on bad input."""
    w, h = (int(v) for v in text.lower().split("x"))
    if w <= 0 or h <= 0:
        raise ValueError(f"Size must be positive, got {text!r}")
    return w, h


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace) -> int:
    try:
        resolution = parse_size(args.resolution)
        graph_size = parse_size(args.graph_size)
    except ValueError:
        logger.error("Invalid size format.  Use WxH, e.g. 640x240.")
        return 1

    try:
        camera = FingertipCamera(
            camera_index=args.camera_index,
            sample_size=(args.sample_size, args.sample_size),
            resolution=resolution,
        )
        config = MonitorConfig(max_samples=args.max_samples, start_delay=args.start_delay)
        extractor = make_extractor(args.extractor)
    except ValueError as exc:
        logger.error("Invalid option: %s", exc)
        return 1

    vis = Visualizer(
        size=graph_size,
        stroke_width=args.graph_width,
        window_name=None if args.headless else WINDOW_NAME,
    )
    monitor = HeartRateMonitor(
        camera, vis, torch=NullTorch(), extractor=extractor, config=config,
    )

    quit_requested = False

    def request_quit() -> None:
        nonlocal quit_requested
        logger.info("Quit requested by user.")
        quit_requested = True
        monitor.stop_session()

    def toggle() -> None:
        try:
            monitor.toggle_monitoring()
        except DeviceUnavailableError as exc:
            logger.error("Cannot start monitoring: %s", exc)

    def snapshot() -> None:
        vis.save_snapshot(f"pulse_{int(time.time())}.png")

    if args.headless:
        def log_bpm(bpm: Optional[int]) -> None:
            if bpm is not None:
                logger.info("BPM=%d", bpm)
        monitor.bpm.subscribe(log_bpm)
    else:
        vis.on_key("q", request_quit)
        vis.on_key(27, request_quit)             # ESC
        vis.on_key(" ", toggle)
        vis.on_key("s", snapshot)

    logger.info("Starting pulse monitor.  Cover the camera with a fingertip.")

    try:
        monitor.start_session()
    except DeviceUnavailableError as exc:
        logger.error("%s", exc)
        vis.close()
        return 1

    try:
        while not quit_requested:
            if monitor.is_monitoring:
                monitor.run()
            elif args.headless:
                break
            else:
                vis.poll_keys(50)
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        monitor.stop_session()
        vis.close()

    return 0


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
        datefmt="%H:%M:%S",
    )
    return run(args)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
