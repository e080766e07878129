#!/usr/bin/env python3
"""
Heartbeat Data Flow – main entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --resolution WxH     Frame resolution (default: 960x720)
    --fps INT            Display / video frame rate (default: 60)
    --bpm INT            Starting heart rate (default: 72)
    --seed INT           Seed for reproducible bursts and BPM draws
    --samples INT        Points in the ECG polyline (default: 300)
    --duration FLOAT     Stop after this many seconds (optional)
    --save PATH          Save rendered video to file (optional)
    --headless           Run without display window (log metrics to stdout)
    --no-metrics         Start with the metric cards hidden

Keyboard shortcuts (when a window is open)
------------------------------------------
    q / ESC  – quit
    m        – show / hide metrics
    r        – reset state
    s        – save a single frame as PNG
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

# Must be set before cv2 is imported so Qt5 uses X11/XWayland instead of
# looking for a Wayland plugin that is not bundled with pip-installed opencv.
import os
os.environ.setdefault("QT_QPA_PLATFORM", "xcb")

import cv2

from heartbeat_flow.scheduler import HeartbeatScheduler
from heartbeat_flow.visualizer import Visualizer
from heartbeat_flow.waveform import WaveformGenerator

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("heartbeat_flow")

WINDOW_NAME = "Heartbeat Data Flow"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Animated ECG waveform with heartbeat-synchronised particles",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--resolution", default="960x720",
                        help="Frame resolution, e.g. 960x720")
    parser.add_argument("--fps", type=int, default=60,
                        help="Display / video frame rate")
    parser.add_argument("--bpm", type=int, default=72,
                        help="Starting heart rate")
    parser.add_argument("--seed", type=int, default=None,
                        help="Random seed for reproducible runs")
    parser.add_argument("--samples", type=int, default=300,
                        help="Number of points in the ECG polyline")
    parser.add_argument("--duration", type=float, default=None,
                        help="Stop after this many seconds")
    parser.add_argument("--save", type=Path, default=None,
                        help="Save rendered video to this file path")
    parser.add_argument("--headless", action="store_true",
                        help="No display window; log metrics to stdout only")
    parser.add_argument("--no-metrics", action="store_true",
                        help="Start with the metric cards hidden")
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace) -> int:
    # Parse resolution
    try:
        res_w, res_h = (int(v) for v in args.resolution.lower().split("x"))
    except ValueError:
        logger.error("Invalid --resolution format.  Use WxH, e.g. 960x720.")
        return 1
    if res_w <= 0 or res_h <= 0:
        logger.error("Invalid --resolution %s.  Width and height must be positive.", args.resolution)
        return 1

    resolution = (res_w, res_h)

    # Initialise components
    try:
        generator = WaveformGenerator(samples=args.samples)
        scheduler = HeartbeatScheduler(bpm=args.bpm, seed=args.seed)
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1
    vis = Visualizer(
        resolution=resolution,
        origin=scheduler.origin,
        show_metrics=not args.no_metrics,
        show_fps=not args.headless,
    )

    # Optional video writer
    writer: cv2.VideoWriter | None = None
    if args.save:
        fourcc = cv2.VideoWriter_fourcc(*"mp4v")
        writer = cv2.VideoWriter(str(args.save), fourcc, args.fps, resolution)
        logger.info("Saving video to %s", args.save)

    logger.info("Starting heartbeat data flow.  Press 'q' or ESC to quit.")

    if not args.headless:
        cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_NORMAL)
        cv2.resizeWindow(WINDOW_NAME, res_w, res_h)

    frame_period = 1.0 / max(args.fps, 1)
    started = time.monotonic()
    last_log_second = -1

    try:
        scheduler.start(started)
        while scheduler.running:
            now = time.monotonic()
            if args.duration is not None and now - started >= args.duration:
                logger.info("Duration of %.1fs reached.", args.duration)
                break

            scheduler.update(now)
            st = scheduler.state
            values = scheduler.display_values()

            pts = generator.polyline(
                st.phase, st.amplitude, st.pulse_intensity,
                vis.panel_size, vis.panel_origin,
            )
            frame = vis.render(st, pts, scheduler.particles, values)

            if writer is not None:
                writer.write(frame)

            # Stdout log
            if args.headless and st.elapsed_seconds != last_log_second:
                last_log_second = st.elapsed_seconds
                ts = time.strftime("%H:%M:%S")
                print(
                    f"[{ts}] BPM={values.bpm}  signal={values.signal_percent}%  "
                    f"data={values.data_processed}  particles={values.active_particles}  "
                    f"runtime={values.elapsed}"
                )

            if not args.headless:
                cv2.imshow(WINDOW_NAME, frame)
                key = cv2.waitKey(1) & 0xFF
                if key in (ord("q"), 27):          # q or ESC
                    logger.info("Quit requested by user.")
                    break
                elif key == ord("m"):
                    shown = vis.toggle_metrics()
                    logger.info("Metrics %s.", "shown" if shown else "hidden")
                elif key == ord("r"):
                    scheduler.reset()
                    logger.info("State reset.")
                elif key == ord("s"):
                    fname = f"snapshot_{int(time.time())}.png"
                    cv2.imwrite(fname, frame)
                    logger.info("Saved snapshot: %s", fname)

            # Pace the loop to the requested frame rate
            spare = frame_period - (time.monotonic() - now)
            if spare > 0:
                time.sleep(spare)

    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        scheduler.stop()
        if writer is not None:
            writer.release()
        if not args.headless:
            cv2.destroyAllWindows()

    return 0


def main() -> int:
    return run(parse_args())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
