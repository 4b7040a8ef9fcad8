from __future__ import annotations

from typing import List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from pinmap.domain.models import Pin, PinStats


def _shorten(text: Optional[str], width: int = 40) -> str:
    if not text:
        return ""
    return text if len(text) <= width else text[: width - 1] + "…"


def print_pins(pins: List[Pin], console: Optional[Console] = None) -> None:
    """
    Render pins as a rich table, in the order given (most recently updated first).
    """
    console = console or Console()

    if not pins:
        console.print("[yellow]No pins to display.[/yellow]")
        return

    table = Table(
        title="Pins",
        box=box.ROUNDED,
        caption="Sorted by last update (descending)",
    )
    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Title", style="bold")
    table.add_column("Category", style="magenta")
    table.add_column("Lat, Lng", justify="right", style="green")
    table.add_column("Visits", justify="right", style="yellow")
    table.add_column("Version", justify="right", style="blue")
    table.add_column("Updated (UTC)", style="dim")

    for pin in pins:
        table.add_row(
            str(pin.id),
            _shorten(pin.title),
            pin.category,
            f"{pin.lat:.5f}, {pin.lng:.5f}",
            f"{pin.visits_count:,}",
            str(pin.version),
            pin.updated_at,
        )

    console.print(table)


def print_stats(stats: PinStats, console: Optional[Console] = None) -> None:
    """
    Render per-day pin statistics followed by the per-category totals.
    """
    console = console or Console()

    if not stats.daily:
        console.print("[yellow]No activity recorded yet.[/yellow]")
        return

    title = f"Pin activity\n[dim]{stats.total:,} pins │ {stats.total_updates:,} visits[/dim]"
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Date", style="cyan", no_wrap=True)
    table.add_column("New pins", justify="right", style="magenta")
    table.add_column("Cumulative", justify="right", style="bold green")
    table.add_column("Visits", justify="right", style="yellow")
    table.add_column("Categories", style="dim")

    for day in stats.daily:
        categories = ", ".join(f"{name}={n}" for name, n in sorted(day.categories.items()))
        table.add_row(
            day.date,
            f"{day.count:,}",
            f"{day.cumulative:,}",
            f"{day.updates:,}",
            categories,
        )
    console.print(table)

    totals = Table(
        title="Pins per category",
        box=box.ROUNDED,
        caption=f"First pin {stats.first_pin or '-'} │ last pin {stats.last_pin or '-'}",
    )
    totals.add_column("Category", style="magenta")
    totals.add_column("Pins", justify="right", style="bold green")
    for name, n in sorted(stats.categories.items(), key=lambda item: (-item[1], item[0])):
        totals.add_row(name, f"{n:,}")
    console.print(totals)


__all__ = ["print_pins", "print_stats"]
