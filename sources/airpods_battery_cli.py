#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""airpods_battery_cli.py
Command line scanner that listens for AirPods advertisements and prints a
JSON (or text) battery report on stdout.  Log lines go to stderr.

    airpods-battery                 # 4 s scan
    airpods-battery --fast          # 2 s, stop as soon as AirPods are seen
    airpods-battery --continuous    # until found, at most 30 s
    airpods-battery --live          # curses table, Ctrl‑C to quit
"""

import argparse
import asyncio
import curses
import logging
import sys
import threading
from typing import List, Optional, Tuple

from advertisement_watcher import AdvertisementWatcher
from app_logger import configure_logging, logger
from controller import TelemetryController
from curses_view import CursesView
from device_registry import DeviceRegistry
from errors import ScanStartError
from radio import MockAdvertisement, RadioBackend, get_radio
from report import build_error_report, build_report, render_json, render_text
from scan_session import ScanSession
from scanner_config import (
    APPLE_COMPANY_ID,
    DEFAULT_DURATION_S,
    RETRY_INTERVAL_S,
    STALL_TIMEOUT_S,
    ScanOptions,
    ScanPolicy,
    clamp_duration,
)

# ----------------------------------------------------------------------
# Canned advertisements for --mock
# ----------------------------------------------------------------------
DEMO_ADVERTISEMENTS: List[MockAdvertisement] = [
    # AirPods Pro 2: L 90 %, R 60 %, case 50 % charging, right bud in ear
    (0xA1B2C3D4E5F6, -52, {APPLE_COMPANY_ID: bytes.fromhex("07190114205596050000")}),
    # iPhone "nearby info", Apple but not a headset
    (0x5C1DD9A07733, -71, {APPLE_COMPANY_ID: bytes.fromhex("10063b1e4f2d7a18")}),
    # Microsoft beacon, filtered out by company identifier
    (0x0A0B0C0D0E0F, -80, {0x0006: bytes.fromhex("0109200226f5")}),
]


# ----------------------------------------------------------------------
# 1️⃣  Argument handling
# ----------------------------------------------------------------------
def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="airpods-battery",
        description="Read AirPods battery levels from BLE advertisements.",
    )
    parser.add_argument("--duration", type=int, default=None,
                        help=f"scan length in seconds, 1-30 (default {DEFAULT_DURATION_S}); "
                             "overrides the length of --fast/--quick, ignored with --continuous")
    parser.add_argument("-f", "--fast", action="store_true",
                        help="2 second scan, stop as soon as AirPods are found")
    parser.add_argument("-q", "--quick", action="store_true",
                        help="3 second scan, stop as soon as AirPods are found")
    parser.add_argument("-c", "--continuous", action="store_true",
                        help="scan until AirPods are found (30 second ceiling)")
    parser.add_argument("--early-exit", action="store_true",
                        help="stop as soon as AirPods are found")
    parser.add_argument("--format", choices=("json", "text"), default="json")
    parser.add_argument("--min-rssi", type=int, default=None,
                        help="ignore devices weaker than this (dBm)")
    parser.add_argument("--airpods-only", action="store_true",
                        help="only report devices that decoded as AirPods")
    parser.add_argument("--retry-interval", type=float, default=RETRY_INTERVAL_S,
                        help="seconds before restarting a scan the adapter dropped")
    parser.add_argument("--stall-timeout", type=float, default=STALL_TIMEOUT_S,
                        help="treat this many silent seconds as a dropped scan")
    parser.add_argument("--adapter", default=None, help="BlueZ adapter, e.g. hci0")
    parser.add_argument("--mock", action="store_true",
                        help="replay canned advertisements instead of using the radio")
    parser.add_argument("--live", action="store_true",
                        help="show a live table until Ctrl-C instead of a report")
    parser.add_argument("--log-file", default=None, help="also write logs to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def options_from_args(args: argparse.Namespace) -> ScanOptions:
    """
    Map CLI flags onto a ScanOptions.

    --continuous wins over everything; --fast/--quick pick a default length
    and imply early exit; an explicit, valid --duration sets the length.
    """
    if args.continuous:
        options = ScanOptions.continuous()
    elif args.fast:
        options = ScanOptions.fast()
    elif args.quick:
        options = ScanOptions.quick()
    else:
        options = ScanOptions()

    if args.duration is not None and not args.continuous:
        options.duration_s = clamp_duration(args.duration)
    if args.early_exit and options.policy is ScanPolicy.FIXED:
        options.policy = ScanPolicy.EARLY_EXIT

    options.min_rssi = args.min_rssi
    options.airpods_only = args.airpods_only
    return options


# ----------------------------------------------------------------------
# 2️⃣  Wiring
# ----------------------------------------------------------------------
def build_components(
    args: argparse.Namespace,
    view: Optional[CursesView] = None,
    radio: Optional[RadioBackend] = None,
) -> Tuple[DeviceRegistry, AdvertisementWatcher]:
    """Build the whole stack and return the registry and the watcher."""
    if radio is None:
        radio = get_radio(
            use_mock=args.mock,
            advertisements=DEMO_ADVERTISEMENTS,
            adapter=args.adapter,
            stall_timeout=args.stall_timeout,
        )
    registry = DeviceRegistry()
    controller = TelemetryController(registry, view)
    watcher = AdvertisementWatcher(radio, controller, retry_interval=args.retry_interval)
    return registry, watcher


# ----------------------------------------------------------------------
# 3️⃣  Report mode
# ----------------------------------------------------------------------
async def scan(args: argparse.Namespace, radio: Optional[RadioBackend] = None) -> int:
    """Run one scan session, print the report and return the exit code."""
    render = render_text if args.format == "text" else render_json
    try:
        registry, watcher = build_components(args, radio=radio)
        session = ScanSession(watcher, registry, options_from_args(args))
        result = await session.run()
    except ScanStartError as exc:
        logger.error("%s", exc)
        print(render(build_error_report(str(exc))))
        return 1
    except Exception as exc:
        logger.exception("Scan aborted")
        print(render(build_error_report(str(exc))))
        return 1

    logger.info("Scan finished after %.1f s: %d device(s), %d AirPods.",
                result.elapsed_s, len(result.records), len(result.airpods))
    print(render(build_report(result.records)))
    return 0


# ----------------------------------------------------------------------
# 4️⃣  Live mode
# ----------------------------------------------------------------------
async def _live_scan(args: argparse.Namespace, view: CursesView) -> int:
    _, watcher = build_components(args, view)
    async with watcher:
        if not await watcher.start():
            return 1
        while True:
            await asyncio.sleep(0.2)   # keep the event loop alive


def live(stdscr: "curses.window", args: argparse.Namespace) -> int:
    view = CursesView(stdscr)
    # curses blocks, so the UI loop gets its own thread
    ui_thread = threading.Thread(target=view.run, daemon=True)
    ui_thread.start()
    try:
        return asyncio.run(_live_scan(args, view))
    except KeyboardInterrupt:
        return 0
    finally:
        view.close()
        ui_thread.join(timeout=1.0)


# ----------------------------------------------------------------------
# 5️⃣  Main entry point
# ----------------------------------------------------------------------
def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.INFO

    if args.live:
        # the terminal belongs to curses: logs go to the view and the file only
        configure_logging(level, log_file=args.log_file)
        exit_code = curses.wrapper(live, args)
        if exit_code:
            print("Failed to start BLE scan", file=sys.stderr)
        return exit_code

    configure_logging(level, log_file=args.log_file, stream=sys.stderr)
    logger.info("AirPods Battery CLI v5.0 - Standalone Battery Monitor")
    try:
        return asyncio.run(scan(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user – no report.")
        return 130


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
