"""CLI for snapshot backup, restore, and consistency checks.

Usage:
    flock-backup --tenant 1 export --output snapshot.json
    flock-backup --tenant 1 backup
    flock-backup list
    flock-backup --tenant 1 restore backups/backup-2026-01-15T09-30-00-123Z.json --dry-run
    flock-backup --tenant 1 restore-member "Jane Doe" --strategy earliest
    flock-backup --tenant 1 check
    flock-backup schedule

Commands:
    export          - Export a snapshot to stdout or a file
    backup          - Export and persist a snapshot into the backup directory
    list            - List persisted snapshots, newest first
    restore         - Restore a snapshot file non-destructively
    restore-member  - Find a member in the catalog and restore from that file
    check           - Report dangling references in the live store
    schedule        - Run periodic backups (or a single tick with --once)
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from flock_backup import service
from flock_backup.backup.catalog import load_snapshot
from flock_backup.config.loader import load_settings
from flock_backup.config.models import BackupSettings
from flock_backup.errors import BackupError
from flock_backup.factory import get_store
from flock_backup.scheduler import BackupScheduler

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _settings(args: argparse.Namespace) -> BackupSettings:
    config = getattr(args, "config", None)
    return load_settings(Path(config) if config else None)


def _require_tenant(args: argparse.Namespace) -> int | None:
    if args.tenant is None:
        console.print("[red]Error: --tenant is required for this command.[/red]")
    return args.tenant


def _print_summary(summary: dict[str, int], title: str = "Restore Summary") -> None:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Collection", style="dim")
    table.add_column("Reconciled", justify="right")
    for name, count in summary.items():
        table.add_row(name, str(count))
    console.print(table)


def _print_skipped(skipped: list[dict]) -> None:
    if not skipped:
        return
    console.print(f"\n[yellow]Skipped {len(skipped)} rows:[/yellow]")
    for row in skipped:
        console.print(f"  - {row['collection']}[{row['index']}]: {row['reason']}")


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_export(args: argparse.Namespace) -> int:
    settings = _settings(args)
    store = get_store(settings)
    try:
        document = await service.export_backup(store, args.tenant)
    finally:
        await store.close()

    text = json.dumps(document, indent=2)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        console.print(f"[green]v[/green] Exported to {args.output}")
    else:
        sys.stdout.write(text + "\n")
    return 0


async def _async_backup(args: argparse.Namespace) -> int:
    settings = _settings(args)
    store = get_store(settings)
    try:
        result = await service.create_backup(store, settings, args.tenant)
    finally:
        await store.close()

    lock = " [dim](encrypted)[/dim]" if result["encrypted"] else ""
    console.print(f"[bold green]v[/bold green] Backup written: {result['file']}{lock}")
    console.print(f"  Size: {result['size']} bytes")
    return 0


async def _async_restore(args: argparse.Namespace) -> int:
    tenant_id = _require_tenant(args)
    if tenant_id is None:
        return 1
    settings = _settings(args)

    try:
        payload = load_snapshot(args.backup_path, settings.encryption_key)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Error: cannot read {args.backup_path}: {e}[/red]")
        return 1

    if not args.yes and not args.dry_run:
        console.print(f"This will restore data from: {args.backup_path}")
        console.print(f"  Tenant: {tenant_id}")
        response = input("Continue? [y/N] ")
        if response.lower() not in ["y", "yes"]:
            console.print("Cancelled.")
            return 0

    store = get_store(settings)
    try:
        result = await service.restore_backup(
            store, payload, tenant_id, dry_run=args.dry_run
        )
    finally:
        await store.close()

    title = "Dry Run (rolled back)" if result["dryRun"] else "Restore Summary"
    _print_summary(result["summary"], title=title)
    _print_skipped(result["skipped"])
    return 0


async def _async_restore_member(args: argparse.Namespace) -> int:
    tenant_id = _require_tenant(args)
    if tenant_id is None:
        return 1
    settings = _settings(args)
    include = [c.strip() for c in args.include.split(",")] if args.include else None

    store = get_store(settings)
    try:
        result = await service.restore_member(
            store,
            settings,
            args.name,
            tenant_id,
            strategy=args.strategy,
            include=include,
        )
    finally:
        await store.close()

    if not result["found"]:
        console.print(f"[yellow]{result['message']}[/yellow]")
        return 1

    console.print(
        f"[bold green]v[/bold green] Restored [bold]{result['restoredFor']}[/bold] "
        f"from {result['sourceFile']}"
    )
    _print_summary(result["summary"])
    return 0


async def _async_check(args: argparse.Namespace) -> int:
    settings = _settings(args)
    store = get_store(settings)
    try:
        result = await service.check_consistency(store, args.tenant)
    finally:
        await store.close()

    if result["healthy"]:
        console.print("[bold green]v[/bold green] No consistency issues found")
        return 0

    console.print(f"[bold red]x[/bold red] Found {len(result['issues'])} issues:")
    for issue in result["issues"]:
        console.print(f"  - {issue}")
    return 1


async def _async_schedule(args: argparse.Namespace) -> int:
    settings = _settings(args)
    store = get_store(settings)
    scheduler = BackupScheduler(store, settings)
    try:
        if args.once:
            outcome = await scheduler.run_once()
            return 0 if outcome is not None else 1
        await scheduler.start()
        return 0
    finally:
        await scheduler.stop()
        await store.close()


# ============================================================================
# Command wrappers
# ============================================================================


def _run(coro_fn, args: argparse.Namespace) -> int:
    """Run an async command, reporting backup and config errors as a short message."""
    try:
        return asyncio.run(coro_fn(args))
    except BackupError as e:
        console.print(f"[bold red]x[/bold red] {e.message}")
        return 1
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1


def cmd_list(args: argparse.Namespace) -> int:
    """List persisted snapshots (no database access)."""
    try:
        settings = _settings(args)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    try:
        result = service.list_backups(settings)
    except BackupError as e:
        console.print(f"[bold red]x[/bold red] {e.message}")
        return 1

    if not result["files"]:
        console.print(f"[dim]No backups in {settings.backup_dir}[/dim]")
        return 0

    table = Table(title="Backups", show_header=True, header_style="bold")
    table.add_column("File")
    table.add_column("Modified", style="dim")
    table.add_column("Size", justify="right")
    for entry in result["files"]:
        table.add_row(Path(entry["file"]).name, entry["createdAt"], str(entry["size"]))
    console.print(table)
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    return _run(_async_export, args)


def cmd_backup(args: argparse.Namespace) -> int:
    return _run(_async_backup, args)


def cmd_restore(args: argparse.Namespace) -> int:
    return _run(_async_restore, args)


def cmd_restore_member(args: argparse.Namespace) -> int:
    return _run(_async_restore_member, args)


def cmd_check(args: argparse.Namespace) -> int:
    return _run(_async_check, args)


def cmd_schedule(args: argparse.Namespace) -> int:
    try:
        return _run(_async_schedule, args)
    except KeyboardInterrupt:
        console.print("Stopped.")
        return 0


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="flock-backup",
        description="Snapshot backup, non-destructive restore, and consistency checks",
    )
    parser.add_argument(
        "--config",
        "-c",
        help="Path to TOML config file (default: environment variables only)",
    )
    parser.add_argument(
        "--tenant",
        "-t",
        type=int,
        default=None,
        help="Tenant id (omit for all tenants where allowed)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_export = subparsers.add_parser("export", help="Export a snapshot as JSON")
    p_export.add_argument("--output", "-o", help="Write to file instead of stdout")
    p_export.set_defaults(func=cmd_export)

    p_backup = subparsers.add_parser("backup", help="Export and persist a snapshot")
    p_backup.set_defaults(func=cmd_backup)

    p_list = subparsers.add_parser("list", help="List persisted snapshots")
    p_list.set_defaults(func=cmd_list)

    p_restore = subparsers.add_parser("restore", help="Restore from a snapshot file")
    p_restore.add_argument("backup_path", help="Path to snapshot file (.json or .enc)")
    p_restore.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the restore and roll it back, reporting counts and skipped rows",
    )
    p_restore.add_argument(
        "--yes", "-y",
        action="store_true",
        help="Skip confirmation prompt",
    )
    p_restore.set_defaults(func=cmd_restore)

    p_member = subparsers.add_parser(
        "restore-member",
        help="Restore from the first snapshot containing a member",
    )
    p_member.add_argument("name", help='Member name, e.g. "Jane Doe"')
    p_member.add_argument(
        "--strategy",
        choices=["latest", "earliest"],
        default="latest",
        help="Scan newest-first (latest) or oldest-first (earliest)",
    )
    p_member.add_argument(
        "--include",
        help="Comma-separated collections to restore (default: users,members,departments)",
    )
    p_member.set_defaults(func=cmd_restore_member)

    p_check = subparsers.add_parser("check", help="Report dangling references")
    p_check.set_defaults(func=cmd_check)

    p_schedule = subparsers.add_parser("schedule", help="Run periodic backups")
    p_schedule.add_argument(
        "--once",
        action="store_true",
        help="Run a single backup tick and exit",
    )
    p_schedule.set_defaults(func=cmd_schedule)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
