#!/usr/bin/env python3
"""Drop persisted feature flag overrides so the compiled-in defaults apply.

Usage
-----
::

    export MEDTRACK_STORAGE_PATH=~/.medtrack/store.json
    python scripts/reset_feature_flags.py
    python scripts/reset_feature_flags.py --show   # print effective flags only
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
    parser = argparse.ArgumentParser(description="Reset persisted feature flags to their defaults.")
    parser.add_argument("--storage", help="Store file (default: MEDTRACK_STORAGE_PATH)")
    parser.add_argument("--show", action="store_true", help="Only print the effective flags")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    overrides = {"storage_path": args.storage} if args.storage else {}
    service = ResilienceService(MedtrackConfig.from_env(**overrides))

    if not args.show:
        await service.reset_flags()
        print("Feature flags reset. Restart the app to pick up the defaults.")

    for flag, enabled in (await service.flags.get_all()).items():
        print(f"  {flag.value:<32} {'on' if enabled else 'off'}")


if __name__ == "__main__":
    asyncio.run(main())
