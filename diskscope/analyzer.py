#!/usr/bin/env python3
"""
diskscope — main CLI entry point.

Usage:
  diskscope scan                    # Full scan with colored report
  diskscope scan --path ~/Projects  # Scan a specific root instead of the granted one
  diskscope scan --json             # Output JSON
  diskscope report                  # Show the cached scan without rescanning
  diskscope items downloads         # Reload and list one category
  diskscope trash downloads a.zip   # Move an entry of a category to the Trash
  diskscope grant                   # Choose the folder diskscope may scan
  diskscope access                  # Show the access check
  diskscope disk                    # Show volume usage
"""

import argparse
import json
import logging
import os
import sys
from dataclasses import dataclass
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from diskscope import config
from diskscope.access import AccessBroker, Chooser, PreferenceStore
from diskscope.cache import ResultCache
from diskscope.categories import CATEGORY_IDS
from diskscope.orchestrator import ScanOrchestrator
from diskscope.scanner import disk_overview

logger = logging.getLogger(__name__)


@dataclass
class Services:
    broker: AccessBroker
    cache: ResultCache
    orchestrator: ScanOrchestrator

    def close(self) -> None:
        self.orchestrator.close()
        self.broker.release()


def setup_logging(verbose: bool = False) -> None:
    # stderr keeps --json output on stdout parseable
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose, rich_tracebacks=True)],
        force=True,
    )


def build_services(
    path: Optional[str] = None,
    chooser: Optional[Chooser] = None,
    cache_dir: str = config.CACHE_DIR,
    config_dir: str = config.CONFIG_DIR,
) -> Services:
    """
    Wire the broker, cache and orchestrator together.

    An explicit path pins the scan root; otherwise the persisted grant is
    restored and the default home is used when there is none.
    """
    broker = AccessBroker(
        chooser=chooser,
        preferences=PreferenceStore(config_dir),
        default_home=os.path.expanduser(path) if path else config.HOME,
    )
    if not path:
        broker.restore_access()
    cache = ResultCache(cache_dir)
    orchestrator = ScanOrchestrator(broker, cache)
    orchestrator.load_cached()
    return Services(broker=broker, cache=cache, orchestrator=orchestrator)


def _item_json(item) -> dict:
    return {
        "name": item.name,
        "path": item.path,
        "size": item.size,
        "is_directory": item.is_directory,
    }


def scan_json(orchestrator: ScanOrchestrator) -> dict:
    disk = disk_overview(orchestrator.broker.current_root)
    return {
        "scan_path": orchestrator.broker.current_root,
        "disk": {"total": disk.total, "used": disk.used, "free": disk.free, "used_pct": disk.used_pct},
        "categories": [
            {
                "id": c.id,
                "name": c.name,
                "path": c.root_path,
                "size": c.size,
                "count": len(c.items),
                "top_items": [_item_json(i) for i in c.items[:10]],
            }
            for c in orchestrator.categories
        ],
        "largest_files": [_item_json(i) for i in orchestrator.largest_files],
        "last_scan": orchestrator.last_scan_date.isoformat() if orchestrator.last_scan_date else None,
        "cache_valid": orchestrator.has_valid_cache,
        "access_required": orchestrator.access_required,
    }


def cmd_scan(args: argparse.Namespace, services: Services) -> int:
    """Run a full storage scan and display results."""
    from diskscope.display import console, render_full_report, run_scan_with_progress

    root = services.broker.current_root
    if not os.path.isdir(root):
        print(f"Error: '{root}' is not a valid directory.", file=sys.stderr)
        return 1

    orchestrator = services.orchestrator
    if args.json:
        orchestrator.full_scan()
        print(json.dumps(scan_json(orchestrator), indent=2))
        return 0

    console.print(f"\n[cyan]Scanning [bold]{root}[/bold] — this may take a minute...[/cyan]\n")
    run_scan_with_progress(orchestrator)
    render_full_report(orchestrator, disk_overview(root))
    return 0


def cmd_report(args: argparse.Namespace, services: Services) -> int:
    """Display the cached scan without rescanning."""
    from diskscope.display import render_cache_status, render_category_table

    orchestrator = services.orchestrator
    if args.json:
        print(json.dumps(scan_json(orchestrator), indent=2))
        return 0

    render_category_table(orchestrator.categories)
    render_cache_status(orchestrator.last_scan_date, orchestrator.has_valid_cache)
    return 0


def cmd_items(args: argparse.Namespace, services: Services) -> int:
    """Reload one category and list its contents."""
    from diskscope.display import render_items

    orchestrator = services.orchestrator
    category = orchestrator.category(args.category)
    if category is None:
        print(
            f"Error: unknown category '{args.category}'. Choose from: {', '.join(CATEGORY_IDS)}",
            file=sys.stderr,
        )
        return 1

    items = orchestrator.load_items(category) or []
    if args.json:
        print(json.dumps([_item_json(i) for i in items], indent=2))
    else:
        render_items(category.name, items, limit=args.limit)
    return 0


def cmd_trash(args: argparse.Namespace, services: Services) -> int:
    """Move chosen entries of one category to the Trash."""
    from diskscope.display import confirm_trash, console

    orchestrator = services.orchestrator
    category = orchestrator.category(args.category)
    if category is None:
        print(
            f"Error: unknown category '{args.category}'. Choose from: {', '.join(CATEGORY_IDS)}",
            file=sys.stderr,
        )
        return 1

    listed = category.items or orchestrator.load_items(category) or []
    by_name = {i.name: i for i in listed}
    by_path = {i.path: i for i in listed}
    chosen, missing = [], []
    for name in args.names:
        item = by_name.get(name) or by_path.get(os.path.abspath(os.path.expanduser(name)))
        (chosen if item is not None else missing).append(item or name)
    if missing:
        print(f"Error: not found in {category.name}: {', '.join(missing)}", file=sys.stderr)
        return 1

    if not args.yes:
        try:
            approved = confirm_trash(chosen)
        except EOFError:
            approved = False
        if not approved:
            console.print("[yellow]Nothing was moved.[/yellow]")
            return 0

    trashed = orchestrator.trash_items(category, chosen)
    if args.json:
        print(json.dumps([_item_json(i) for i in trashed], indent=2))
    else:
        for item in trashed:
            console.print(f"[green]Moved to Trash:[/green] {item.path}")
    return 0 if len(trashed) == len(chosen) else 1


def cmd_grant(args: argparse.Namespace, services: Services) -> int:
    """Ask for a folder to scan and remember it."""
    from diskscope.display import console

    broker = services.broker
    if not broker.request_access(args.initial):
        console.print("[red]Access was not granted.[/red]")
        return 2

    services.orchestrator.rebuild_catalog()
    console.print(f"[green]Access granted to {broker.current_root}[/green]")
    if not broker.has_full_access:
        console.print(
            f"[yellow]{broker.current_root} is readable, but its Library folder is not. "
            f"Some categories will be empty.[/yellow]"
        )
    return 0


def cmd_access(args: argparse.Namespace, services: Services) -> int:
    from diskscope.display import render_access

    broker = services.broker
    ok = broker.check_access()
    if args.json:
        print(json.dumps({
            "root": broker.current_root,
            "readable": broker.root_readable,
            "full_access": broker.has_full_access,
        }))
    else:
        render_access(broker.current_root, broker.root_readable, broker.has_full_access)
    return 0 if ok else 2


def cmd_disk(args: argparse.Namespace, services: Services) -> int:
    from diskscope.display import render_disk_overview

    root = services.broker.current_root
    disk = disk_overview(root)
    if args.json:
        print(json.dumps({"total": disk.total, "used": disk.used, "free": disk.free, "used_pct": disk.used_pct}))
    else:
        render_disk_overview(disk, root)
    return 0


COMMANDS = {
    "scan": cmd_scan,
    "report": cmd_report,
    "status": cmd_report,
    "items": cmd_items,
    "trash": cmd_trash,
    "grant": cmd_grant,
    "access": cmd_access,
    "disk": cmd_disk,
}


def _add_common(parser: argparse.ArgumentParser, suppress: bool = False) -> None:
    # Subparsers suppress defaults so they don't clobber options given before the command
    default = argparse.SUPPRESS if suppress else None
    parser.add_argument(
        "--path",
        default=default,
        help="Root path to scan (default: the granted folder, else ~)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        default=argparse.SUPPRESS if suppress else False,
        help="Output results as JSON instead of rich terminal display",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=argparse.SUPPRESS if suppress else False,
        help="Show debug logging",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="diskscope",
        description="diskscope — see where your disk space went",
    )
    _add_common(parser)

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    scan_parser = subparsers.add_parser("scan", help="Scan disk and show report")
    _add_common(scan_parser, suppress=True)

    for name, help_text in (("report", "Show the cached scan"), ("status", "Alias for report")):
        report_parser = subparsers.add_parser(name, help=help_text)
        _add_common(report_parser, suppress=True)

    items_parser = subparsers.add_parser("items", help="List the contents of one category")
    items_parser.add_argument("category", help=f"One of: {', '.join(CATEGORY_IDS)}")
    items_parser.add_argument("--limit", type=int, default=25, help="Rows to show (default: 25)")
    _add_common(items_parser, suppress=True)

    trash_parser = subparsers.add_parser("trash", help="Move category entries to the Trash")
    trash_parser.add_argument("category", help=f"One of: {', '.join(CATEGORY_IDS)}")
    trash_parser.add_argument("names", nargs="+", help="Entry names or paths as listed by 'items'")
    trash_parser.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    _add_common(trash_parser, suppress=True)

    grant_parser = subparsers.add_parser("grant", help="Choose the folder diskscope may scan")
    grant_parser.add_argument("--initial", default=None, help="Directory to suggest")
    _add_common(grant_parser, suppress=True)

    access_parser = subparsers.add_parser("access", help="Check read access to the scan root")
    _add_common(access_parser, suppress=True)

    disk_parser = subparsers.add_parser("disk", help="Show volume usage")
    _add_common(disk_parser, suppress=True)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "scan"

    setup_logging(args.verbose)

    from diskscope.display import prompt_for_directory

    services = build_services(path=args.path, chooser=prompt_for_directory)
    logger.debug(f"Running '{command}' on {services.broker.current_root}")
    try:
        return COMMANDS[command](args, services)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130
    finally:
        services.close()


if __name__ == "__main__":
    sys.exit(main())
