"""
Terminal display module using Rich for colored output.
"""

from datetime import datetime
from typing import Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text

from diskscope.categories import CATEGORIES
from diskscope.models import Category, DiskUsage, Item
from diskscope.orchestrator import ScanOrchestrator

console = Console()

UNITS = ("B", "KB", "MB", "GB", "TB")


def format_size(size: int) -> str:
    """Format a byte count with a binary unit."""
    value = float(size)
    for unit in UNITS:
        if value < 1024 or unit == UNITS[-1]:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def format_date(ts: Optional[datetime]) -> str:
    return ts.strftime("%Y-%m-%d %H:%M") if ts else "-"


def _disk_bar(used: int, total: int, width: int = 40) -> str:
    """Return a bar string for disk usage."""
    if total <= 0:
        return "-" * width
    ratio = min(used / total, 1.0)
    filled = int(ratio * width)
    return "█" * filled + "░" * (width - filled)


def render_disk_overview(disk: DiskUsage, root: str) -> None:
    """Render the disk overview panel."""
    pct = disk.used_pct

    # green < 60%, yellow 60-80%, red > 80%
    if pct < 60:
        bar_style = "green"
    elif pct < 80:
        bar_style = "yellow"
    else:
        bar_style = "red"

    text = Text()
    text.append("  Disk Usage: ", style="bold")
    text.append(format_size(disk.used), style="bold white")
    text.append(" used of ", style="dim")
    text.append(format_size(disk.total), style="bold white")
    text.append(" total\n", style="dim")
    text.append("  Free: ", style="bold")
    text.append(format_size(disk.free), style="bold green")
    text.append(f"  ({100 - pct:.0f}% free)\n\n", style="dim")
    text.append("  [", style="dim")
    text.append(_disk_bar(disk.used, disk.total, width=36), style=bar_style)
    text.append(f"]  {pct:.0f}% used", style="dim")

    console.print(
        Panel(
            text,
            title=f"[bold cyan]diskscope[/bold cyan] [dim]{root}[/dim]",
            border_style="cyan",
            padding=(0, 1),
        )
    )


def render_category_table(categories: list[Category]) -> None:
    """Render a table of storage categories and their sizes, largest first."""
    table = Table(
        title="[bold]Category Breakdown[/bold]",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta",
        border_style="bright_black",
        padding=(0, 1),
    )
    table.add_column("Category", style="bold", min_width=20)
    table.add_column("Size", justify="right", min_width=10)
    table.add_column("Items", justify="right")
    table.add_column("Path", style="dim", min_width=30)

    for category in sorted(categories, key=lambda c: c.size, reverse=True):
        emoji = CATEGORIES.get(category.id, {}).get("emoji", "📁")
        table.add_row(
            f"{emoji} {category.name}",
            Text(format_size(category.size), style=f"#{category.color_tag}"),
            str(len(category.items)),
            category.root_path,
        )

    console.print()
    console.print(table)


def render_items(title: str, items: list[Item], limit: int = 15) -> None:
    """Render a list of items (category contents or largest files)."""
    if not items:
        console.print(f"\n[dim]{title}: nothing found.[/dim]")
        return

    table = Table(
        title=f"[bold]{title}[/bold]",
        box=box.SIMPLE,
        show_header=True,
        header_style="bold blue",
        border_style="bright_black",
        padding=(0, 1),
    )
    table.add_column("#", justify="right", min_width=3)
    table.add_column("Name", min_width=30)
    table.add_column("Size", justify="right", min_width=10)
    table.add_column("Modified", min_width=16)

    for i, item in enumerate(items[:limit], start=1):
        name = f"{item.name}/" if item.is_directory else item.name
        table.add_row(str(i), name, format_size(item.size), format_date(item.modification_time))

    console.print()
    console.print(table)


def render_cache_status(last_scan: Optional[datetime], valid: bool) -> None:
    if last_scan is None:
        console.print("\n[yellow]No previous scan found.[/yellow]")
    elif valid:
        console.print(f"\n[green]Last scan: {format_date(last_scan)} (up to date)[/green]")
    else:
        console.print(
            f"\n[yellow]Last scan: {format_date(last_scan)} (stale, run 'diskscope scan')[/yellow]"
        )


def render_access(root: str, readable: bool, full: bool) -> None:
    line = Text()
    line.append("Scan root: ", style="bold")
    line.append(root + "\n")
    line.append("Readable: ", style="bold")
    line.append("yes" if readable else "no", style="green" if readable else "red")
    line.append("   Full access: ", style="bold")
    line.append("yes" if full else "no", style="green" if full else "yellow")
    console.print(Panel(line, title="[bold]Access[/bold]", border_style="cyan"))


def run_scan_with_progress(orchestrator: ScanOrchestrator) -> None:
    """Drive a full scan behind a live progress bar."""
    with Progress(
        TextColumn("[cyan]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Initializing...", total=1.0)

        def on_progress(event):
            progress.update(task, completed=event.fraction, description=f"Scanned {event.label}")

        orchestrator.full_scan(on_progress=on_progress)


def render_full_report(orchestrator: ScanOrchestrator, disk: DiskUsage) -> None:
    """Render the complete report to the terminal."""
    render_disk_overview(disk, orchestrator.broker.current_root)
    render_category_table(orchestrator.categories)
    largest = max(orchestrator.categories, key=lambda c: c.size, default=None)
    if largest is not None and largest.items:
        render_items(f"Largest in {largest.name}", largest.items)
    render_items("Largest Files", orchestrator.largest_files)
    render_cache_status(orchestrator.last_scan_date, orchestrator.has_valid_cache)
    if orchestrator.access_required:
        console.print(
            "\n[yellow]Some locations could not be read. Run 'diskscope grant' to choose a folder.[/yellow]"
        )
    console.print()


def prompt_for_directory(initial_dir: Optional[str] = None) -> Optional[str]:
    """Interactive chooser: ask the user which directory to grant access to."""
    answer = Prompt.ask(
        "[bold]Grant access to which folder?[/bold] (leave empty to cancel)",
        default=initial_dir or "",
        console=console,
    )
    return answer.strip() or None


def confirm_trash(items: list[Item]) -> bool:
    """List the items about to be moved to the Trash and ask for confirmation."""
    total = sum(i.size for i in items)
    for item in items:
        suffix = "/" if item.is_directory else ""
        console.print(f"  [red]✗[/red] {item.name}{suffix}  [dim]{format_size(item.size)}[/dim]")
    return Confirm.ask(
        f"Move {len(items)} item(s), {format_size(total)}, to the Trash?",
        default=False,
        console=console,
    )
