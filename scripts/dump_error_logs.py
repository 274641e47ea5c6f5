#!/usr/bin/env python3
"""Print or export the persisted diagnostic error log.

Usage
-----
::

    python scripts/dump_error_logs.py                 # human-readable summary
    python scripts/dump_error_logs.py --json -o logs.json
    python scripts/dump_error_logs.py --clear         # delete after printing
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from medtrack import ErrorLogEntry, MedtrackConfig, ResilienceService  # noqa: E402


def _format_entry(index: int, entry: ErrorLogEntry) -> str:
    lines = [f"[{index:>3}] {entry.timestamp}  {entry.context}", f"      {entry.error.message}"]
    if entry.error.code:
        lines.append(f"      code: {entry.error.code}")
    if entry.error.hint:
        lines.append(f"      hint: {entry.error.hint}")
    if entry.metadata is not None:
        lines.append(f"      metadata: {entry.metadata}")
    return "\n".join(lines)


async def main() -> None:
    parser = argparse.ArgumentParser(description="Dump the persisted medtrack error log.")
    parser.add_argument("--storage", help="Store file (default: MEDTRACK_STORAGE_PATH)")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output the raw JSON export")
    parser.add_argument("--output", "-o", help="Write output to FILE instead of stdout")
    parser.add_argument("--clear", action="store_true", help="Clear the log after dumping it")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING)

    overrides = {"storage_path": args.storage} if args.storage else {}
    service = ResilienceService(MedtrackConfig.from_env(**overrides))

    if args.json_mode:
        payload = await service.export_logs_as_string()
    else:
        entries = await service.get_error_logs()
        header = f"{len(entries)} error log entries (oldest first)"
        payload = "\n".join([header, *(_format_entry(i, e) for i, e in enumerate(entries, start=1))])

    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        print(f"Written to {args.output}", file=sys.stderr)
    else:
        print(payload)

    if args.clear:
        await service.clear_error_logs()


if __name__ == "__main__":
    asyncio.run(main())
