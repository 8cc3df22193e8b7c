"""Command line entry point.

Usage:
    python -m ultrasonic_proximity listen
    python -m ultrasonic_proximity analyze recording.wav
    python -m ultrasonic_proximity simulate --absent
    python -m ultrasonic_proximity devices
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from ultrasonic_proximity.config import GlobalConfig, SystemConfig
from ultrasonic_proximity.engine import ProximityEngine
from ultrasonic_proximity.errors import ProximityError
from ultrasonic_proximity.generator import ScriptedCapture, transmitter_frames, transmitter_states
from ultrasonic_proximity.listener import WavFileCapture, list_input_devices
from ultrasonic_proximity.models import SessionResult

logger = logging.getLogger("ultrasonic_proximity")


def setup_logging(system: SystemConfig) -> None:
    """Configure root logging from the system settings."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if system.log_file:
        handlers.append(logging.FileHandler(system.log_file))

    logging.basicConfig(
        level=getattr(logging, system.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
        handlers=handlers,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ultrasonic_proximity",
        description="Detect the ultrasonic proximity pattern.",
    )
    parser.add_argument("--config", "-c", help="Path to a YAML configuration file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override the configured log level",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("listen", help="Run one detection session on the microphone")

    analyze = sub.add_parser("analyze", help="Run one detection session over a WAV file")
    analyze.add_argument("wav", help="Mono 16-bit WAV file at the configured sample rate")
    analyze.add_argument("--loop", action="store_true", help="Wrap around at end of file")

    simulate = sub.add_parser("simulate", help="Run a session against a synthetic transmitter")
    simulate.add_argument("--cycles", type=int, default=3, help="Pattern repetitions")
    simulate.add_argument("--gap", type=int, default=4, help="Silent frames between repetitions")
    simulate.add_argument("--noise", type=float, default=10.0, help="Background noise level")
    simulate.add_argument(
        "--absent", action="store_true", help="Transmitter off: expect no detection"
    )

    sub.add_parser("devices", help="List audio input devices")
    return parser


def _report(result: SessionResult) -> int:
    print(
        f"{'DETECTED' if result.matched else 'NOT DETECTED'} "
        f"({result.state.value}, {result.matches} match(es) in {result.iterations} iteration(s))"
    )
    if result.error:
        print(f"  error: {result.error}")
    return 0 if result.matched else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = GlobalConfig.load(args.config) if args.config else GlobalConfig()
    if args.log_level:
        config.system.log_level = args.log_level
    setup_logging(config.system)

    if args.command == "devices":
        try:
            devices = list_input_devices()
        except ImportError as e:
            print(e)
            return 2
        print("\n".join(devices) if devices else "No input devices found")
        return 0

    if args.command == "analyze":
        # Offline replay runs as fast as the file can be read
        config.detector = replace(config.detector, interval=0.0)
        capture = WavFileCapture(Path(args.wav), loop=args.loop)
    elif args.command == "simulate":
        config.detector = replace(config.detector, interval=0.0)
        states = transmitter_states(config.detector.pattern, cycles=args.cycles, gap=args.gap)
        if args.absent:
            states = [False] * len(states)
        capture = ScriptedCapture(
            transmitter_frames(states, config.detector, noise_level=args.noise)
        )
    else:
        capture = None

    try:
        engine = ProximityEngine(config, capture=capture)
    except (ProximityError, ImportError) as e:
        logger.error(f"Cannot start: {e}")
        return 2

    try:
        result = engine.detect()
    except KeyboardInterrupt:
        print("\nStopping...")
        return 130
    except ProximityError as e:
        logger.error(f"Detection failed: {e}")
        return 2
    finally:
        engine.stop()

    return _report(result)


if __name__ == "__main__":
    sys.exit(main())
