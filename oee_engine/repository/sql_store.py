"""SQL implementations of the store and series repository.

All queries are centralized here. No business logic.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import DateTime, Float, Integer, String, bindparam, text
from sqlalchemy.engine import Engine

from ..domain.models import Job, MetricSnapshot, Tag, TagSample
from .retry import run_with_deadlock_retry

logger = logging.getLogger(__name__)


_SAMPLE_COLUMNS = {"tagId": Integer, "value": String, "createdAt": DateTime}

_SELECT_SAMPLES = text(
    """
    SELECT tagId, value, createdAt
    FROM TagValues
    WHERE tagId = :tag_id AND createdAt >= :start AND createdAt <= :end
    ORDER BY createdAt ASC, id ASC
    """
).bindparams(
    bindparam("start", type_=DateTime), bindparam("end", type_=DateTime)
).columns(**_SAMPLE_COLUMNS)

_SELECT_FIRST_AT_OR_AFTER = text(
    """
    SELECT tagId, value, createdAt
    FROM TagValues
    WHERE tagId = :tag_id AND createdAt >= :t
    ORDER BY createdAt ASC, id ASC
    LIMIT 1
    """
).bindparams(bindparam("t", type_=DateTime)).columns(**_SAMPLE_COLUMNS)

_SELECT_LAST_AT_OR_BEFORE = text(
    """
    SELECT tagId, value, createdAt
    FROM TagValues
    WHERE tagId = :tag_id AND createdAt <= :t
    ORDER BY createdAt DESC, id DESC
    LIMIT 1
    """
).bindparams(bindparam("t", type_=DateTime)).columns(**_SAMPLE_COLUMNS)

_SELECT_JOB = text(
    """
    SELECT j.id, j.lineId, l.bottleneckMachineId, j.skuId,
           j.actualStartTime, j.actualEndTime
    FROM Jobs j
    LEFT JOIN `Lines` l ON l.id = j.lineId
    WHERE j.id = :job_id
    """
).columns(
    id=Integer,
    lineId=Integer,
    bottleneckMachineId=Integer,
    skuId=Integer,
    actualStartTime=DateTime,
    actualEndTime=DateTime,
)

_SELECT_DESIGN_SPEED = text(
    """
    SELECT ds.value
    FROM LineRecipies lr
    JOIN Recipes r ON r.id = lr.recipieId
    JOIN DesignSpeeds ds ON ds.id = lr.designSpeedId
    WHERE lr.lineId = :line_id AND r.skuId = :sku_id
    LIMIT 1
    """
).columns(value=Float)


def _to_sample(row) -> TagSample:
    return TagSample(tag_id=int(row.tagId), value=row.value, created_at=row.createdAt)


class SqlTagValueStore:
    """TagValueStore over the production schema (``Tags``/``TagValues`` ...)."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get_tag(self, taggable_type: str, taggable_id: int, ref: str) -> Optional[Tag]:
        with self._engine.connect() as conn:
            row = conn.execute(
                text(
                    """
                    SELECT id, taggableType, taggableId, ref
                    FROM Tags
                    WHERE taggableType = :taggable_type
                      AND taggableId = :taggable_id
                      AND ref = :ref
                    ORDER BY id ASC
                    LIMIT 1
                    """
                ),
                {"taggable_type": taggable_type, "taggable_id": taggable_id, "ref": ref},
            ).fetchone()
        if not row:
            return None
        return Tag(
            id=int(row.id),
            taggable_type=str(row.taggableType),
            taggable_id=int(row.taggableId),
            ref=str(row.ref),
        )

    def get_samples(self, tag_id: int, start: datetime, end: datetime) -> List[TagSample]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                _SELECT_SAMPLES, {"tag_id": tag_id, "start": start, "end": end}
            ).fetchall()
        return [_to_sample(r) for r in rows]

    def get_first_sample_at_or_after(self, tag_id: int, t: datetime) -> Optional[TagSample]:
        with self._engine.connect() as conn:
            row = conn.execute(_SELECT_FIRST_AT_OR_AFTER, {"tag_id": tag_id, "t": t}).fetchone()
        return _to_sample(row) if row else None

    def get_last_sample_at_or_before(self, tag_id: int, t: datetime) -> Optional[TagSample]:
        with self._engine.connect() as conn:
            row = conn.execute(_SELECT_LAST_AT_OR_BEFORE, {"tag_id": tag_id, "t": t}).fetchone()
        return _to_sample(row) if row else None

    def get_job(self, job_id: int) -> Optional[Job]:
        with self._engine.connect() as conn:
            row = conn.execute(_SELECT_JOB, {"job_id": job_id}).fetchone()
        if not row:
            return None
        return Job(
            id=int(row.id),
            line_id=int(row.lineId),
            machine_id=int(row.bottleneckMachineId) if row.bottleneckMachineId is not None else None,
            sku_id=int(row.skuId) if row.skuId is not None else None,
            actual_start_time=row.actualStartTime,
            actual_end_time=row.actualEndTime,
        )

    def get_sku_pack_multiplier(self, sku_id: int) -> float:
        with self._engine.connect() as conn:
            row = conn.execute(
                text("SELECT numberOfContainersPerPack FROM Skus WHERE id = :sku_id"),
                {"sku_id": sku_id},
            ).fetchone()
        if not row or row[0] is None:
            return 0.0
        return float(row[0])

    def get_design_speed(self, job: Job, line_id: int) -> float:
        if job.sku_id is None:
            logger.warning("[DesignSpeed] job=%s has no sku, returning 0", job.id)
            return 0.0
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    _SELECT_DESIGN_SPEED, {"line_id": line_id, "sku_id": job.sku_id}
                ).fetchone()
        except Exception:
            logger.exception("[DesignSpeed] lookup failed job=%s line=%s", job.id, line_id)
            return 0.0
        if not row or row.value is None:
            logger.warning(
                "[DesignSpeed] no design speed for line=%s sku=%s", line_id, job.sku_id,
            )
            return 0.0
        return float(row.value)

    def list_jobs_closed_between(self, start: datetime, end: datetime) -> List[int]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                text(
                    """
                    SELECT id FROM Jobs
                    WHERE actualEndTime IS NOT NULL
                      AND actualEndTime >= :start AND actualEndTime <= :end
                    ORDER BY actualEndTime ASC
                    """
                ).bindparams(
                    bindparam("start", type_=DateTime), bindparam("end", type_=DateTime)
                ),
                {"start": start, "end": end},
            ).fetchall()
        return [int(r[0]) for r in rows]


_INSERT_POINT = text(
    """
    INSERT INTO OEETimeSeries
        (jobId, minute, timestamp, oee, availability, performance, quality, bottleCount)
    VALUES
        (:job_id, :minute, :ts, :oee, :availability, :performance, :quality, :bottle_count)
    """
).bindparams(bindparam("ts", type_=DateTime))


def snapshot_to_row(job_id: int, minute: int, snap: MetricSnapshot) -> dict:
    return {
        "job_id": job_id,
        "minute": minute,
        "ts": snap.timestamp,
        "oee": round(snap.oee, 2),
        "availability": round(snap.availability, 2),
        "performance": round(snap.performance, 2),
        "quality": round(snap.quality, 2),
        "bottle_count": int(round(snap.net_production_units)),
    }


class SqlSeriesRepository:
    """``OEETimeSeries`` table access."""

    def __init__(self, engine: Engine, max_retries: int = 3) -> None:
        self._engine = engine
        self._max_retries = max_retries

    def replace_series(self, job_id: int, snapshots: Sequence[MetricSnapshot]) -> int:
        rows = [snapshot_to_row(job_id, i, s) for i, s in enumerate(snapshots)]

        def _tx() -> int:
            with self._engine.begin() as conn:
                deleted = conn.execute(
                    text("DELETE FROM OEETimeSeries WHERE jobId = :job_id"),
                    {"job_id": job_id},
                ).rowcount
                if rows:
                    conn.execute(_INSERT_POINT, rows)
            logger.info(
                "oee_series_replaced job=%d deleted=%s inserted=%d", job_id, deleted, len(rows),
            )
            return len(rows)

        return run_with_deadlock_retry(_tx, max_retries=self._max_retries)

    def get_series(self, job_id: int) -> List[dict]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                text(
                    """
                    SELECT minute, timestamp, oee, availability, performance, quality, bottleCount
                    FROM OEETimeSeries
                    WHERE jobId = :job_id
                    ORDER BY minute ASC
                    """
                ).columns(
                    minute=Integer,
                    timestamp=DateTime,
                    oee=Float,
                    availability=Float,
                    performance=Float,
                    quality=Float,
                    bottleCount=Integer,
                ),
                {"job_id": job_id},
            ).mappings().all()
        return [dict(r) for r in rows]
