"""Command line front end: capture one swipe and print every decode attempt."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional, Sequence

from core import DecoderSettings, DecoderSettingsStore, SwipeDecoder, SwipeReport
from core.settings import AUTO_THRES, SAMPLE_RATE, SILENCE_THRES
from daq.base_source import BaseSource
from daq.registry import create_source, list_drivers
from shared.errors import DeviceError, MagswipeError

from . import __version__

logger = logging.getLogger("magswipe")


def version_text() -> str:
    return f"magswipe - Magnetic stripe card swipe decoder\nVersion {__version__}\n"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="magswipe",
        description="Decode a magnetic stripe card swiped past a sound card input.",
    )
    parser.add_argument(
        "-a", "--auto-thres", type=int, default=AUTO_THRES, metavar="PERCENT",
        help=f"Set auto-thres percentage (default: {AUTO_THRES})",
    )
    parser.add_argument(
        "-d", "--device", default="default",
        help="Device (number) to read audio data from (default: default)",
    )
    parser.add_argument(
        "-f", "--file", default=None, metavar="WAV",
        help="Decode a recorded 16-bit WAV file instead of a live device",
    )
    parser.add_argument(
        "-l", "--list-devices", action="store_true",
        help="List compatible devices (enumerated)",
    )
    parser.add_argument(
        "-m", "--max-level", action="store_true",
        help="Shows the maximum level (use to determine threshold)",
    )
    parser.add_argument(
        "-r", "--rate", type=int, default=SAMPLE_RATE,
        help=f"Capture sample rate in Hz (default: {SAMPLE_RATE})",
    )
    parser.add_argument(
        "-s", "--silent", action="store_true",
        help="No verbose messages",
    )
    parser.add_argument(
        "-t", "--threshold", type=int, default=None,
        help=f"Set silence threshold (default: {SILENCE_THRES}, with automatic detect)",
    )
    parser.add_argument(
        "--timeout", type=float, default=None, metavar="SEC",
        help="Give up after SEC seconds without a swipe",
    )
    parser.add_argument(
        "-v", "--version", action="store_true",
        help="Print version information",
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> DecoderSettings:
    """A fixed threshold disables the automatic re-derivation."""
    if args.threshold is not None:
        return DecoderSettings(
            sample_rate=args.rate,
            silence_threshold=args.threshold,
            auto_threshold_percent=0,
        )
    return DecoderSettings(sample_rate=args.rate, auto_threshold_percent=args.auto_thres)


def list_devices(out=None) -> None:
    out = out or sys.stdout
    for driver in list_drivers():
        try:
            devices = driver.cls.list_available_devices()
        except MagswipeError as exc:
            logger.warning("%s: %s", driver.name, exc)
            continue
        for device in devices:
            print(f"{driver.key}  {device.id:>10}  {device.name}", file=out)


def format_report(report: SwipeReport) -> List[str]:
    lines = []
    for track in report.tracks:
        lines.append(f"{track.encoding} ({track.orientation.value}): {track.describe()}")
    return lines


def _open_source(args: argparse.Namespace) -> tuple[BaseSource, str]:
    key, device_id = ("file", args.file) if args.file is not None else ("soundcard", args.device)
    try:
        return create_source(key), device_id
    except KeyError as exc:
        raise DeviceError(f"capture driver {key!r} is not available") from exc


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING if args.silent else logging.INFO,
        format="%(message)s",
        stream=sys.stderr,
    )

    if args.version:
        sys.stderr.write(version_text())
        return 0
    if not args.silent:
        sys.stderr.write(version_text() + "\n")

    if args.list_devices:
        list_devices()
        return 0

    try:
        settings = settings_from_args(args)
    except MagswipeError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    decoder = SwipeDecoder(DecoderSettingsStore(settings))
    try:
        source, device_id = _open_source(args)
    except MagswipeError as exc:
        logger.error("%s", exc)
        return 1

    if args.max_level:
        try:
            level = decoder.measure_level(
                source,
                device_id,
                on_level=lambda value: logger.info("Maximum level: %d", value),
                timeout=args.timeout,
            )
        except MagswipeError as exc:
            logger.error("%s", exc)
            return 1
        except KeyboardInterrupt:
            return 0
        print(f"Maximum level: {level}")
        return 0

    try:
        report = decoder.capture(source, device_id, timeout=args.timeout)
    except MagswipeError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return 1

    logger.info("Bits: %s", report.bits or "(none)")
    for line in format_report(report):
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
