"""Domain models for the OEE time-series engine."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class CounterKind(str, Enum):
    """Semantics of the production counter tag."""
    CASE_COUNT = "case_count"      # cases, multiplied by containers per pack
    BOTTLE_COUNT = "bottle_count"  # already in base units


@dataclass(frozen=True)
class Tag:
    id: int
    taggable_type: str
    taggable_id: int
    ref: str


@dataclass(frozen=True)
class TagSample:
    """One reading of a tag.

    The store keeps values as strings, so ``value`` may be numeric or a
    numeric string. Samples are only guaranteed to be ordered by
    ``created_at``; gaps and duplicates within a minute are expected.
    """
    tag_id: int
    value: Union[float, int, str]
    created_at: datetime

    @property
    def numeric_value(self) -> float:
        v = float(self.value)
        if math.isnan(v):
            raise ValueError(f"tag {self.tag_id} sample at {self.created_at} is NaN")
        return v

    @property
    def state_code(self) -> int:
        return int(self.numeric_value)


@dataclass(frozen=True)
class Job:
    """Closed production job, owned by the job lifecycle manager."""
    id: int
    line_id: int
    machine_id: Optional[int]  # bottleneck machine of the line
    sku_id: Optional[int]
    actual_start_time: datetime
    actual_end_time: Optional[datetime]

    @property
    def is_closed(self) -> bool:
        return self.actual_end_time is not None


@dataclass(frozen=True)
class StateRun:
    """Contiguous stretch of time in one machine state.

    ``end_time`` is where the next run begins (or the last sample for the
    final run); ``last_sample_at`` is the last sample seen in this state.
    """
    state: int
    start_time: datetime
    end_time: datetime
    last_sample_at: datetime

    @property
    def duration_minutes(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 60.0


@dataclass(frozen=True)
class MetricSnapshot:
    """All metrics for one tick, evaluated over [job start, timestamp]."""
    timestamp: datetime
    net_production_units: float
    design_speed: float
    window_minutes: float
    vot: float
    ql: float
    not_: float
    udt: float
    got: float
    slt: float
    sl: float
    availability: float
    performance: float
    quality: float
    oee: float
