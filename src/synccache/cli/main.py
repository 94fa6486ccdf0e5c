"""Main CLI entry point for synccache.

Provides command-line inspection and maintenance of a sync cache root.
"""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from synccache.cache import (
    CacheConfig,
    LegacySyncRequest,
    SyncCache,
    SyncRequest,
    fingerprint,
)
from synccache.cache.keys import is_fingerprint
from synccache.cache.storage import age_in_hours

# Global console for Rich output
console = Console()


def build_cache(ctx_cache_dir: Optional[str] = None) -> SyncCache:
    """Build the cache service from CLI and environment settings.

    Priority for the cache directory:
    1. Explicit --cache-dir/-C flag
    2. SYNCCACHE_DIR environment variable
    3. Default temp-directory location

    Args:
        ctx_cache_dir: Cache directory from CLI context

    Returns:
        SyncCache for the selected root
    """
    config = CacheConfig.from_env()
    if ctx_cache_dir:
        config.cache_dir = Path(ctx_cache_dir).expanduser()
    return SyncCache(config)


def require_fingerprint(key: str) -> str:
    """Reject anything that is not a fingerprint before touching the disk.

    Raises:
        click.BadParameter: If key is not 16 lowercase hex characters
    """
    if not is_fingerprint(key):
        raise click.BadParameter(
            f"'{key}' is not a cache fingerprint (16 lowercase hex characters)"
        )
    return key


def format_size(size_bytes: int) -> str:
    """Format a byte count for display."""
    size = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024


@click.group()
@click.option(
    "--cache-dir",
    "-C",
    type=click.Path(),
    help="Cache root directory (default: SYNCCACHE_DIR env var or temp directory)",
)
@click.pass_context
def cli(ctx, cache_dir):
    """synccache CLI - Inspect and maintain the remote sync cache.

    Use --cache-dir/-C to select the cache root, or set SYNCCACHE_DIR.
    """
    ctx.ensure_object(dict)
    ctx.obj["cache_dir"] = cache_dir


@cli.command("key")
@click.option("--host", required=True, help="Remote host")
@click.option("--port", default=22, show_default=True, help="Remote SSH port")
@click.option("--user", default="", help="Remote user")
@click.option("--path", "remote_path", help="Single remote path (legacy key)")
@click.option("--dir", "directories", multiple=True, help="Remote directory")
@click.option("--file", "files", multiple=True, help="Remote file")
@click.option("--recursive/--no-recursive", default=True, help="Recursive sync")
@click.option("--exclude-pattern", multiple=True, help="Excluded glob pattern")
@click.option("--exclude-ext", multiple=True, help="Excluded file extension")
@click.option("--exclude-dir", multiple=True, help="Excluded directory name")
def key(
    host,
    port,
    user,
    remote_path,
    directories,
    files,
    recursive,
    exclude_pattern,
    exclude_ext,
    exclude_dir,
):
    """Print the cache fingerprint of a sync request.

    Example:
        synccache key --host build01 --user ci --path /srv/app
        synccache key --host build01 --dir /srv/app --dir /srv/lib --exclude-ext .log
    """
    if remote_path and (directories or files):
        raise click.UsageError("--path cannot be combined with --dir/--file")

    filters = dict(
        recursive=recursive,
        exclude_patterns=exclude_pattern,
        exclude_extensions=exclude_ext,
        exclude_directories=exclude_dir,
    )
    if remote_path:
        request = LegacySyncRequest(
            host, port, user, remote_path=remote_path, **filters
        )
    else:
        request = SyncRequest(
            host, port, user, directories=directories, files=files, **filters
        )

    click.echo(fingerprint(request))


@cli.command("list")
@click.pass_context
def list_entries(ctx):
    """List all entries in the cache.

    Example:
        synccache list
    """
    try:
        cache = build_cache(ctx.obj.get("cache_dir"))
        entries = cache.list_entries()

        if not entries:
            console.print("[yellow]No cache entries found[/yellow]")
            return

        table = Table(title=f"Cache entries ({len(entries)})")
        table.add_column("Fingerprint", style="cyan", no_wrap=True)
        table.add_column("Last sync", style="blue")
        table.add_column("Age (h)", justify="right")
        table.add_column("Size", justify="right", style="green")
        table.add_column("Files", justify="right", style="green")
        table.add_column("State", style="magenta")

        for entry in entries:
            if entry.last_sync is not None:
                time_str = entry.last_sync.strftime("%Y-%m-%d %H:%M")
                age_str = f"{age_in_hours(entry.last_sync):.1f}"
            else:
                time_str = age_str = ""

            if entry.locked:
                state = "locked"
            elif entry.is_expired:
                state = "expired"
            else:
                state = "fresh"

            table.add_row(
                entry.fingerprint,
                time_str,
                age_str,
                format_size(entry.size_bytes),
                str(entry.file_count),
                state,
            )

        console.print(table)

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("status")
@click.argument("fingerprint_arg", metavar="FINGERPRINT")
@click.pass_context
def status(ctx, fingerprint_arg):
    """Show the status of one cache entry.

    Example:
        synccache status 3f2a9c0d1e4b5a6f
    """
    key = require_fingerprint(fingerprint_arg)
    try:
        cache = build_cache(ctx.obj.get("cache_dir"))
        entry = cache.status(key)

        console.print(f"\n[bold cyan]Cache entry: {entry.fingerprint}[/bold cyan]")
        console.print(f"  Path: {entry.path}")

        if not entry.exists:
            console.print("  [yellow]Not cached[/yellow]")
        else:
            if entry.last_sync is not None:
                console.print(
                    f"  Last sync: {entry.last_sync.strftime('%Y-%m-%d %H:%M:%S')}"
                )
            console.print(f"  Size: {format_size(entry.size_bytes)}")
            console.print(f"  Files: {entry.file_count}")
            if entry.is_expired:
                console.print("  [yellow]Expired[/yellow]")

        if entry.locked:
            holder = cache.locks.read(key)
            if holder is not None:
                console.print(
                    f"  [magenta]Locked[/magenta] by sync {holder.sync_id} "
                    f"(pid {holder.pid})"
                )
            else:
                console.print("  [magenta]Locked[/magenta]")

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("cleanup")
@click.option(
    "--max-age",
    type=float,
    default=None,
    help="Maximum entry age in hours (default: configured TTL)",
)
@click.option(
    "--dry-run", is_flag=True, help="Show what would be deleted without deleting"
)
@click.pass_context
def cleanup(ctx, max_age, dry_run):
    """Remove expired, unlocked cache entries.

    Example:
        synccache cleanup --dry-run
        synccache cleanup --max-age 24
    """
    try:
        cache = build_cache(ctx.obj.get("cache_dir"))
        report = cache.cleanup_expired(max_age, dry_run=dry_run)

        removed = report.removed_entries
        if not removed:
            console.print("[green]No expired cache entries found[/green]")
        elif dry_run:
            console.print(f"[yellow]Would remove {len(removed)} entry(ies):[/yellow]")
            for entry in removed[:10]:
                console.print(
                    f"  • {entry.fingerprint} ({entry.age_hours:.1f}h, "
                    f"{format_size(entry.size_bytes)})"
                )
            if len(removed) > 10:
                console.print(f"  ... and {len(removed) - 10} more")
        else:
            console.print(
                f"[green]✓[/green] Removed {len(removed)} entry(ies), "
                f"reclaimed {format_size(report.total_bytes_reclaimed)} "
                f"in {report.total_files_reclaimed} file(s)"
            )

        if not dry_run:
            pruned = cache.prune_stale_locks()
            if pruned:
                console.print(f"  Cleared {len(pruned)} abandoned lock(s)")

        for failure in report.errors:
            console.print(f"[red]✗[/red] {failure.fingerprint}: {failure.message}")

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("unlock")
@click.argument("fingerprint_arg", metavar="FINGERPRINT")
@click.pass_context
def unlock(ctx, fingerprint_arg):
    """Force-remove the lock on a cache entry.

    Example:
        synccache unlock 3f2a9c0d1e4b5a6f
    """
    key = require_fingerprint(fingerprint_arg)
    try:
        cache = build_cache(ctx.obj.get("cache_dir"))
        if cache.force_unlock(key):
            console.print(f"[green]✓[/green] Removed lock on '{key}'")
        else:
            console.print(f"[yellow]No lock found for '{key}'[/yellow]")

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("remove")
@click.argument("fingerprint_arg", metavar="FINGERPRINT")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def remove(ctx, fingerprint_arg, yes):
    """Remove a cache entry and its lock.

    Example:
        synccache remove 3f2a9c0d1e4b5a6f -y
    """
    key = require_fingerprint(fingerprint_arg)
    try:
        cache = build_cache(ctx.obj.get("cache_dir"))

        if not yes:
            if not click.confirm(f"Remove cache entry '{key}'?"):
                console.print("[yellow]Cancelled[/yellow]")
                return

        cache.invalidate(key)
        console.print(f"[green]✓[/green] Removed cache entry '{key}'")

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


if __name__ == "__main__":
    cli()
