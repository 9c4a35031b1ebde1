#!/usr/bin/env python3
"""Print the contours report whenever it changes on the NetworkTables server."""
from __future__ import annotations

import argparse
import time
from typing import Dict, Tuple

from networktables import NetworkTables

from contour_telemetry.app.models import DEFAULT_TABLE, TELEMETRY_KEYS


def read_report(table) -> Dict[str, Tuple[float, ...]]:
    return {key: tuple(table.getNumberArray(key, [])) for key in TELEMETRY_KEYS}


def format_report(report: Dict[str, Tuple[float, ...]]) -> str:
    rows = zip(*(report[key] for key in TELEMETRY_KEYS))
    lines = [f"  {idx}: center=({cx:.1f}, {cy:.1f}) size={w:.0f}x{h:.0f}" for idx, (cx, cy, w, h) in enumerate(rows)]
    return "\n".join(lines) if lines else "  (no contours)"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch the contours report table")
    parser.add_argument("--server", type=str, default="localhost", help="NetworkTables server address")
    parser.add_argument("--table", type=str, default=DEFAULT_TABLE, help="Table to watch")
    parser.add_argument("--interval", type=float, default=0.1, help="Polling interval in seconds")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    NetworkTables.initialize(server=args.server)
    table = NetworkTables.getTable(args.table)
    print(f"Watching {args.table} on {args.server}. Ctrl+C to stop.")
    previous = None
    try:
        while True:
            report = read_report(table)
            if report != previous:
                print(time.strftime("%H:%M:%S"))
                print(format_report(report))
                previous = report
            time.sleep(args.interval)
    except KeyboardInterrupt:
        print("Stopped.")
    finally:
        NetworkTables.shutdown()


if __name__ == "__main__":
    main()
