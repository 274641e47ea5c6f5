#!/usr/bin/env python3
"""Resolve the medication catalog the way the app does and show where it came from.

Set ``MEDTRACK_BACKEND_URL`` / ``MEDTRACK_BACKEND_KEY`` to include the
remote tier; without them only cache and fallback are used.

Options::

    --refresh     Bypass the cache (forced remote refresh)
    --verbose     Enable debug logging (shows cache hit / miss / fallback)
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

from medtrack import MedtrackConfig, ResilienceService  # noqa: E402


async def main() -> None:
    parser = argparse.ArgumentParser(description="Resolve the medication catalog.")
    parser.add_argument("--storage", help="Store file (default: MEDTRACK_STORAGE_PATH)")
    parser.add_argument("--refresh", action="store_true", help="Force a remote refresh")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    overrides = {"storage_path": args.storage} if args.storage else {}
    async with ResilienceService(MedtrackConfig.from_env(**overrides)) as service:
        if args.refresh:
            configs = await service.refresh_medication_configs()
        else:
            configs = await service.resolve_medication_configs()
        await service.wait_for_background()

        entry = await service.catalog.cache.load_cached()

    for med in configs:
        doses = ", ".join(f"{dose:g}" for dose in med.available_doses)
        flags = " ".join(f for f, on in (("featured", med.featured), ("disabled", not med.enabled)) if on)
        print(f"  {med.id:<14} {med.name:<12} {med.frequency.value:<7} [{doses}] {med.unit.value} {flags}")
    if entry is not None:
        print(f"cached at epoch ms {entry.fetched_at_epoch_ms}")


if __name__ == "__main__":
    asyncio.run(main())
