"""Layered OEE metric chain.

Each layer consumes the one below it:

    VOT -> QL -> NOT -> UDT -> GOT -> SLT -> SL -> Availability/Performance/Quality -> OEE

All durations are in minutes. Ratio metrics are percentages (0-100 for a
healthy line; values above 100 are kept as-is).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Union

from .domain.models import MetricSnapshot
from .errors import SkipReason, TickSkip


def value_operating_time(net_production: float, design_speed: float) -> float:
    """Production expressed as minutes at design speed; NaN if speed <= 0."""
    if design_speed <= 0:
        return math.nan
    return net_production / (design_speed / 60.0)


def quality_loss(lost_units: float, net_production: float) -> float:
    if net_production == 0:
        return 0.0
    return (lost_units / net_production) * 100.0


def net_operating_time(vot: float, ql: float) -> float:
    return vot + ql


def gross_operating_time(window_minutes: float, udt: float) -> float:
    return window_minutes - udt


def speed_loss_time(got: float, not_: float) -> float:
    return got - not_


def speed_loss(slt: float, tailback_minutes: float, lack_minutes: float) -> float:
    return slt - tailback_minutes - lack_minutes


def availability(got: float, window_minutes: float) -> float:
    return (got / window_minutes) * 100.0 if window_minutes > 0 else 0.0


def performance(not_: float, got: float) -> float:
    return (not_ / got) * 100.0 if got > 0 else 0.0


def quality(vot: float, not_: float) -> float:
    return (vot / not_) * 100.0 if not_ > 0 else 0.0


def oee(availability_pct: float, performance_pct: float, quality_pct: float) -> float:
    return (availability_pct * performance_pct * quality_pct) / 10000.0


def _invalid(value: float) -> bool:
    return not math.isfinite(value) or value < 0


@dataclass(frozen=True)
class TickInputs:
    """Everything one tick needs, already resolved from the sample arrays."""
    timestamp: datetime
    net_production: float
    lost_units: float
    design_speed: float
    window_minutes: float
    udt: float
    tailback_minutes: float
    lack_minutes: float
    # Containers per unit the counter reports (1 for a bottle counter)
    pack_multiplier: float = 1.0


def compute_snapshot(inputs: TickInputs) -> Union[MetricSnapshot, TickSkip]:
    """Run the metric chain for one tick.

    Returns a ``TickSkip`` instead of a snapshot when the tick cannot be
    trusted; callers drop skipped ticks rather than zero-filling them.
    """
    ts = inputs.timestamp

    if inputs.design_speed <= 0:
        return TickSkip(ts, SkipReason.INVALID_DESIGN_SPEED,
                        f"design speed is {inputs.design_speed} (must be > 0)")
    if inputs.pack_multiplier <= 0:
        return TickSkip(ts, SkipReason.INVALID_PACK_MULTIPLIER,
                        f"containers per pack is {inputs.pack_multiplier} (must be > 0)")
    if inputs.net_production < 0:
        return TickSkip(ts, SkipReason.NEGATIVE_PRODUCTION,
                        f"net production {inputs.net_production} < 0, counter reset suspected")

    vot = value_operating_time(inputs.net_production, inputs.design_speed)
    if _invalid(vot):
        return TickSkip(ts, SkipReason.INVALID_VOT, f"VOT is {vot}")

    ql = quality_loss(inputs.lost_units, inputs.net_production)
    not_ = net_operating_time(vot, ql)
    got = gross_operating_time(inputs.window_minutes, inputs.udt)
    slt = speed_loss_time(got, not_)
    sl = speed_loss(slt, inputs.tailback_minutes, inputs.lack_minutes)

    a = availability(got, inputs.window_minutes)
    p = performance(not_, got)
    q = quality(vot, not_)
    o = oee(a, p, q)

    # Any broken component makes the whole tick untrustworthy
    if _invalid(o) or any(_invalid(v) for v in (a, p, q)):
        return TickSkip(ts, SkipReason.INVALID_OEE,
                        f"oee={o} availability={a} performance={p} quality={q}")

    return MetricSnapshot(
        timestamp=ts,
        net_production_units=inputs.net_production,
        design_speed=inputs.design_speed,
        window_minutes=inputs.window_minutes,
        vot=vot,
        ql=ql,
        not_=not_,
        udt=inputs.udt,
        got=got,
        slt=slt,
        sl=sl,
        availability=a,
        performance=p,
        quality=q,
        oee=o,
    )
