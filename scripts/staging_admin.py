#!/usr/bin/env python3
"""
Operator script for staging maintenance outside the API server.

Stop the server before purging: chunk sessions and run state live in the
server process, so this script only sees what is persisted (staging items,
their blobs and temp artifacts).

Usage:
    python scripts/staging_admin.py purge [--dry-run] [-y]
    python scripts/staging_admin.py reconcile [--target pending|error]
    python scripts/staging_admin.py sync-readiness

Commands:
    purge            Delete every staging item, its blob and temp artifacts
    reconcile        Reset items stuck in 'uploading' after a crash
    sync-readiness   Refresh slug readiness of published records
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.application.services.maintenance import (  # noqa: E402
    StagingMaintenanceService,
)
from src.application.services.published import PublishedRecordService  # noqa: E402
from src.commons.settings.loader import get_settings  # noqa: E402
from src.commons.telemetry import configure_logging  # noqa: E402
from src.domain.models import StagingStatus  # noqa: E402
from src.infrastructure.factory import get_factory, reset_factory  # noqa: E402


@dataclass
class AdminArgs:
    """Parsed command line arguments."""

    command: str
    dry_run: bool
    skip_confirm: bool
    target: StagingStatus


def parse_args() -> AdminArgs:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Staging maintenance (purge, reconcile, readiness sync)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    purge = subparsers.add_parser("purge", help="Delete all staging data")
    purge.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without actually deleting",
    )
    purge.add_argument(
        "-y", "--yes", action="store_true", help="Skip confirmation prompt"
    )

    reconcile = subparsers.add_parser("reconcile", help="Reset stale uploads")
    reconcile.add_argument(
        "--target",
        choices=[StagingStatus.PENDING.value, StagingStatus.ERROR.value],
        default=StagingStatus.PENDING.value,
        help="Status given to items stuck in 'uploading' (default: pending)",
    )

    subparsers.add_parser("sync-readiness", help="Refresh published slug readiness")

    args = parser.parse_args()
    return AdminArgs(
        command=args.command,
        dry_run=getattr(args, "dry_run", False),
        skip_confirm=getattr(args, "yes", False),
        target=StagingStatus(getattr(args, "target", StagingStatus.PENDING.value)),
    )


def _maintenance() -> StagingMaintenanceService:
    factory = get_factory(get_settings())
    return StagingMaintenanceService(
        ledger=factory.get_staging_ledger(),
        assembler=factory.get_chunk_assembler(),
        run_state=factory.get_run_state_store(),
        upload_state=factory.get_upload_state_store(),
        settings=get_settings(),
    )


async def purge(args: AdminArgs) -> None:
    """Delete every staging item and temp artifact."""
    print("\n=== Purging staging ===")
    settings = get_settings()
    service = _maintenance()

    if args.dry_run:
        document_db = get_factory().get_document_db()
        items = await document_db.count(settings.document_db.collections.staging_items)
        artifacts = await service.list_temp_artifacts()
        print(f"  [DRY-RUN] Would delete {items} staging items and their blobs")
        print(f"  [DRY-RUN] Would delete {len(artifacts)} temp artifacts")
        for path in artifacts:
            print(f"    {path}")
        return

    summary = await service.purge()
    print(f"  Deleted {summary.items_deleted} staging items")
    print(f"  Deleted {summary.temp_files_deleted} temp artifacts")


async def reconcile(args: AdminArgs) -> None:
    """Reset items left in 'uploading'."""
    print("\n=== Reconciling stale uploads ===")
    summary = await _maintenance().reconcile(args.target)
    print(f"  Reset {summary.reset_count} items to '{summary.target_status.value}'")


async def sync_readiness(_args: AdminArgs) -> None:
    """Ask the host about every not-ready published record."""
    print("\n=== Syncing slug readiness ===")
    settings = get_settings()
    factory = get_factory(settings)
    service = PublishedRecordService(
        document_db=factory.get_document_db(),
        video_host=factory.get_video_host(),
        settings=settings,
    )
    summary = await service.sync_readiness()
    print(
        f"  Checked {summary.checked}, ready {summary.became_ready}, "
        f"failed {summary.failed}"
    )


COMMANDS = {
    "purge": purge,
    "reconcile": reconcile,
    "sync-readiness": sync_readiness,
}


async def run(args: AdminArgs) -> None:
    """Run one command and close every connection afterwards."""
    try:
        await COMMANDS[args.command](args)
    finally:
        await get_factory().close_all()
        reset_factory()


def main() -> None:
    """Main entry point."""
    args = parse_args()
    settings = get_settings()
    configure_logging(
        level=settings.telemetry.log_level,
        format_type="text",
        logger_name="src",
    )

    print("=" * 50)
    print("  STAGING ADMIN")
    print("=" * 50)
    print(f"\nCommand: {args.command}")
    if args.command == "purge":
        print(f"Mode: {'DRY-RUN' if args.dry_run else 'DESTRUCTIVE'}")

    if args.command == "purge" and not args.skip_confirm and not args.dry_run:
        response = input("\nAre you sure you want to continue? [y/N]: ")
        if response.lower() not in ("y", "yes"):
            print("Aborted.")
            sys.exit(0)

    try:
        asyncio.run(run(args))
    except Exception as e:
        print(f"\nFailed: {e}")
        sys.exit(1)

    print("\n" + "=" * 50)
    print("Done.")
    print("=" * 50)


if __name__ == "__main__":
    main()
