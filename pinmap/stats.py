"""
Aggregation of pin and visit activity into per-day statistics.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from typing import Dict, Iterable, Mapping

from pinmap.domain.models import DailyPinStats, Pin, PinStats


def build_pin_stats(pins: Iterable[Pin], daily_visits: Mapping[str, int]) -> PinStats:
    """
    Summarize pin creation and visit activity per UTC day.

    Parameters
    ----------
    pins : iterable of Pin
        Every pin; order does not matter.
    daily_visits : mapping
        Visits per day keyed by `YYYY-MM-DD`, as returned by
        `PinBackend.daily_visit_counts`.

    Returns
    -------
    PinStats
        One row per day on which a pin was created or a visit recorded, in
        date order, with `cumulative` the running total of pins created.
    """
    ordered = sorted(pins, key=lambda pin: (pin.created_at, pin.id))

    created: Counter = Counter()
    per_day_categories: Dict[str, Counter] = defaultdict(Counter)
    categories: Counter = Counter()
    for pin in ordered:
        # Canonical timestamps start with the UTC date.
        day = pin.created_at[:10]
        created[day] += 1
        per_day_categories[day][pin.category] += 1
        categories[pin.category] += 1

    daily = []
    cumulative = 0
    for day in sorted(set(created) | set(daily_visits)):
        cumulative += created[day]
        daily.append(
            DailyPinStats(
                date=day,
                count=created[day],
                cumulative=cumulative,
                categories=dict(per_day_categories.get(day, {})),
                updates=int(daily_visits.get(day, 0)),
            )
        )

    return PinStats(
        daily=daily,
        total=len(ordered),
        categories=dict(categories),
        first_pin=ordered[0].created_at if ordered else None,
        last_pin=ordered[-1].created_at if ordered else None,
        total_updates=sum(int(n) for n in daily_visits.values()),
    )


__all__ = ["build_pin_stats"]
