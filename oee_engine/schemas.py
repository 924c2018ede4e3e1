from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .domain.models import MetricSnapshot
from .errors import TickSkip
from .orchestrator import SeriesResult


class SeriesPointOut(BaseModel):
    minute: int = Field(..., ge=0)
    timestamp: datetime
    oee: float
    availability: float
    performance: float
    quality: float
    bottle_count: int

    # Full metric chain; absent when read back from storage
    vot: Optional[float] = None
    ql: Optional[float] = None
    not_: Optional[float] = Field(default=None, alias="not")
    udt: Optional[float] = None
    got: Optional[float] = None
    slt: Optional[float] = None
    sl: Optional[float] = None

    model_config = {"populate_by_name": True}

    @classmethod
    def from_snapshot(cls, minute: int, snap: MetricSnapshot) -> "SeriesPointOut":
        return cls(
            minute=minute,
            timestamp=snap.timestamp,
            oee=round(snap.oee, 2),
            availability=round(snap.availability, 2),
            performance=round(snap.performance, 2),
            quality=round(snap.quality, 2),
            bottle_count=int(round(snap.net_production_units)),
            vot=snap.vot,
            ql=snap.ql,
            not_=snap.not_,
            udt=snap.udt,
            got=snap.got,
            slt=snap.slt,
            sl=snap.sl,
        )

    @classmethod
    def from_row(cls, row: dict) -> "SeriesPointOut":
        return cls(
            minute=row["minute"],
            timestamp=row["timestamp"],
            oee=row["oee"],
            availability=row["availability"],
            performance=row["performance"],
            quality=row["quality"],
            bottle_count=row["bottleCount"],
        )


class TickSkipOut(BaseModel):
    timestamp: datetime
    reason: str
    detail: str = ""

    @classmethod
    def from_skip(cls, skip: TickSkip) -> "TickSkipOut":
        return cls(timestamp=skip.timestamp, reason=skip.reason.value, detail=skip.detail)


class SkipSummaryOut(BaseModel):
    skipped: int = 0
    by_reason: Dict[str, int] = Field(default_factory=dict)


class SeriesResultOut(BaseModel):
    job_id: int
    grid_size: int
    valid_ticks: int
    complete: bool
    sample_interval_minutes: float
    counter_kind: str
    design_speed: float
    reject_tracking: str
    elapsed_ms: float
    skip_summary: SkipSummaryOut
    warnings: List[str] = Field(default_factory=list)
    points: List[SeriesPointOut] = Field(default_factory=list)
    skipped: List[TickSkipOut] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: SeriesResult, include_skips: bool = False) -> "SeriesResultOut":
        return cls(
            job_id=result.job_id,
            grid_size=result.grid_size,
            valid_ticks=result.valid_ticks,
            complete=result.is_complete,
            sample_interval_minutes=result.sample_interval.total_seconds() / 60.0,
            counter_kind=result.counter_kind.value,
            design_speed=result.design_speed,
            reject_tracking=result.reject_tracking.value,
            elapsed_ms=round(result.elapsed_ms, 1),
            skip_summary=SkipSummaryOut(
                skipped=len(result.skipped), by_reason=result.skip_summary(),
            ),
            warnings=list(result.warnings),
            points=[SeriesPointOut.from_snapshot(i, s) for i, s in enumerate(result.snapshots)],
            skipped=[TickSkipOut.from_skip(s) for s in result.skipped] if include_skips else [],
        )
