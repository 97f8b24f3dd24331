#!/usr/bin/env python
"""Run a SoftOne item sync from the command line.

Pulls the catalogue (delta since the last successful run unless --full is
given) and applies it batch by batch, then sweeps stale products after a
full import.

Usage:
    python scripts/run_item_sync.py
    python scripts/run_item_sync.py --full --refresh-taxonomy --batch-size 50
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.append(str(Path(__file__).resolve().parents[1]))

from api.services.runtime import build_runtime  # noqa: E402
from connectors.softone.so_errors import SoftOneError  # noqa: E402
from core.observability.logging import configure_logging  # noqa: E402
from item_import.runner import ItemSyncRunner  # noqa: E402


async def run_sync(full: bool, refresh_taxonomy: bool, batch_size: int) -> bool:
    runtime = build_runtime()
    runner = ItemSyncRunner(runtime.imports, batch_size=batch_size or runtime.batch_size)
    try:
        result = await runner.run(
            force_full_import=True if full else None,
            force_taxonomy_refresh=refresh_taxonomy,
        )
    except SoftOneError as e:
        print(f"Item sync failed: {e}")
        return False
    finally:
        await runtime.close()

    stats = result.state.stats
    print("=" * 60)
    print("SoftOne item sync complete")
    print("=" * 60)
    print(f"  Mode:      {'full' if result.state.is_full_import else f'delta ({result.state.delta_minutes} min)'}")
    print(f"  Processed: {stats.processed}")
    print(f"  Created:   {stats.created}")
    print(f"  Updated:   {stats.updated}")
    print(f"  Skipped:   {stats.skipped}")
    print(f"  Stale:     {result.stale_processed}")
    for warning in result.warnings:
        print(f"  ! {warning}")
    return True


def main():
    parser = argparse.ArgumentParser(description="Run the SoftOne item sync")
    parser.add_argument("--full", action="store_true", help="Ignore the last run and import the whole catalogue")
    parser.add_argument("--refresh-taxonomy", action="store_true", help="Re-apply categories and attributes")
    parser.add_argument("--batch-size", type=int, default=0, help="Rows per batch (default: SOFTONE_IMPORT_BATCH_SIZE)")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()
    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO, json_format=args.json_logs)

    success = asyncio.run(run_sync(args.full, args.refresh_taxonomy, args.batch_size))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
