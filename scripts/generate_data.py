"""
Demo data generator for pinmap.

Implements deterministic pseudo-random pin and visit generation and writes the
result through the persistence facade, so it works against whichever backend
the environment selects.
"""

from __future__ import annotations

import asyncio
import random
import sys
import time
from dataclasses import dataclass, field
from typing import List

import typer

from pinmap.domain.models import CategoryUpsert, PinCreate, VisitCreate
from pinmap.store import get_store, reset_store
from pinmap.utils.logging import configure_logging

app = typer.Typer(help="Generate deterministic demo pins and visits.")

CATEGORIES = {
    "shelter": "#22c55e",
    "squat": "#3b82f6",
    "camp": "#ef4444",
    "station": "#eab308",
    "other": "#a855f7",
}
NAMES = ["Ania", "Bartek", "Ewa", "Kuba", "Ola", "Piotr", "Zosia"]
CENTER = (52.2297, 21.0122)


@dataclass
class PinSeed:
    pin: PinCreate
    visits: List[VisitCreate] = field(default_factory=list)


def _generate_pins(rows: int, max_visits: int, seed: int) -> List[PinSeed]:
    """Build `rows` pins scattered around the map centre, each with 0..max_visits visits."""
    rng = random.Random(seed)
    categories = sorted(CATEGORIES)
    seeds: List[PinSeed] = []
    for i in range(rows):
        category = rng.choice(categories)
        pin = PinCreate(
            title=f"{category.title()} #{i + 1}",
            description=rng.choice([None, "Reported by outreach team", "Seasonal location"]),
            lat=round(CENTER[0] + rng.uniform(-0.15, 0.15), 6),
            lng=round(CENTER[1] + rng.uniform(-0.25, 0.25), 6),
            category=category,
        )
        visits = [
            VisitCreate(
                name=rng.choice(NAMES),
                note=rng.choice([None, "All good", "Needs supplies", "Nobody present"]),
            )
            for _ in range(rng.randint(0, max_visits))
        ]
        seeds.append(PinSeed(pin=pin, visits=visits))
    return seeds


async def _load(seeds: List[PinSeed]) -> int:
    store = get_store()
    visits = 0
    try:
        for name, color in CATEGORIES.items():
            await store.upsert_category(CategoryUpsert(name=name, color=color))
        for item in seeds:
            pin = await store.create_pin(item.pin)
            for visit in item.visits:
                await store.add_visit(pin.id, visit)
                visits += 1
    finally:
        await reset_store()
    return visits


@app.command()
def main(
    rows: int = typer.Option(
        50,
        "--rows",
        "-r",
        help="Number of pins to generate.",
    ),
    max_visits: int = typer.Option(
        5,
        "--max-visits",
        "-v",
        help="Upper bound of visits generated per pin.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Only generate data; skip writing it.",
    ),
) -> None:
    """
    Generate demo pins and visits and store them in the selected backend.
    """
    configure_logging(level="WARNING")
    start = time.perf_counter()
    seeds = _generate_pins(rows, max_visits=max_visits, seed=seed)
    planned = sum(len(item.visits) for item in seeds)
    typer.echo(f"Generated {len(seeds):,} pins with {planned:,} visits (seed={seed})")

    if dry_run:
        typer.echo("Skipping load (dry-run flag set).")
        return

    visits = asyncio.run(_load(seeds))
    duration = time.perf_counter() - start
    typer.echo(f"Stored {len(seeds):,} pins and {visits:,} visits in {duration:.2f}s.")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
