"""Sampling grid construction and the default interval policy."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import List

# Ticks are kept near this count on multi-day jobs
MAX_DATA_POINTS = 1000


def build_tick_grid(start: datetime, end: datetime, interval: timedelta) -> List[datetime]:
    """Ticks from ``start`` every ``interval`` while <= ``end``.

    The last tick may fall short of ``end`` when the interval does not divide
    the job duration.
    """
    if interval <= timedelta(0):
        raise ValueError(f"sampling interval must be positive, got {interval}")
    if end < start:
        return []

    ticks: List[datetime] = []
    current = start
    while current <= end:
        ticks.append(current)
        current = current + interval
    return ticks


def choose_sample_interval(start: datetime, end: datetime) -> timedelta:
    """Coarsen the grid on long jobs to bound the number of ticks.

    - up to 8 h: 1 minute
    - up to 1 day: 2 minutes
    - longer: at least 5 minutes, about MAX_DATA_POINTS ticks in total
    """
    total_minutes = int((end - start).total_seconds() // 60)
    if total_minutes > 1440:
        return timedelta(minutes=max(5, math.ceil(total_minutes / MAX_DATA_POINTS)))
    if total_minutes > 480:
        return timedelta(minutes=2)
    return timedelta(minutes=1)
