from __future__ import annotations

import threading
from bisect import bisect_left, bisect_right
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from ..domain.models import Job, MetricSnapshot, Tag, TagSample
from .sql_store import snapshot_to_row


class InMemoryTagValueStore:
    """Simple in-memory TagValueStore.

    - Samples are kept sorted per tag (stable for equal timestamps).
    - Intended for local runs and tests; no persistence.
    """

    def __init__(self) -> None:
        self._tags: Dict[Tuple[str, int, str], Tag] = {}
        self._samples: Dict[int, List[TagSample]] = {}
        self._jobs: Dict[int, Job] = {}
        self._pack_multipliers: Dict[int, float] = {}
        self._design_speeds: Dict[Tuple[int, int], float] = {}
        self._next_tag_id = 1

    # -- setup helpers -------------------------------------------------------

    def add_tag(self, taggable_type: str, taggable_id: int, ref: str) -> Tag:
        tag = Tag(id=self._next_tag_id, taggable_type=taggable_type,
                  taggable_id=taggable_id, ref=ref)
        self._next_tag_id += 1
        self._tags[(taggable_type, taggable_id, ref)] = tag
        self._samples[tag.id] = []
        return tag

    def add_samples(self, tag: Tag, points: Sequence[Tuple[datetime, object]]) -> None:
        samples = self._samples.setdefault(tag.id, [])
        for created_at, value in points:
            samples.append(TagSample(tag_id=tag.id, value=value, created_at=created_at))
        samples.sort(key=lambda s: s.created_at)

    def add_job(self, job: Job) -> None:
        self._jobs[job.id] = job

    def set_pack_multiplier(self, sku_id: int, multiplier: float) -> None:
        self._pack_multipliers[sku_id] = multiplier

    def set_design_speed(self, line_id: int, sku_id: int, speed: float) -> None:
        self._design_speeds[(line_id, sku_id)] = speed

    # -- TagValueStore -------------------------------------------------------

    def get_tag(self, taggable_type: str, taggable_id: int, ref: str) -> Optional[Tag]:
        return self._tags.get((taggable_type, taggable_id, ref))

    def get_samples(self, tag_id: int, start: datetime, end: datetime) -> List[TagSample]:
        samples = self._samples.get(tag_id, [])
        times = [s.created_at for s in samples]
        return samples[bisect_left(times, start):bisect_right(times, end)]

    def get_first_sample_at_or_after(self, tag_id: int, t: datetime) -> Optional[TagSample]:
        samples = self._samples.get(tag_id, [])
        idx = bisect_left([s.created_at for s in samples], t)
        return samples[idx] if idx < len(samples) else None

    def get_last_sample_at_or_before(self, tag_id: int, t: datetime) -> Optional[TagSample]:
        samples = self._samples.get(tag_id, [])
        idx = bisect_right([s.created_at for s in samples], t) - 1
        return samples[idx] if idx >= 0 else None

    def get_job(self, job_id: int) -> Optional[Job]:
        return self._jobs.get(job_id)

    def get_sku_pack_multiplier(self, sku_id: int) -> float:
        return self._pack_multipliers.get(sku_id, 0.0)

    def get_design_speed(self, job: Job, line_id: int) -> float:
        if job.sku_id is None:
            return 0.0
        return self._design_speeds.get((line_id, job.sku_id), 0.0)

    def list_jobs_closed_between(self, start: datetime, end: datetime) -> List[int]:
        return [
            j.id for j in sorted(self._jobs.values(), key=lambda j: j.actual_end_time or end)
            if j.actual_end_time is not None and start <= j.actual_end_time <= end
        ]


class InMemorySeriesRepository:
    """SeriesRepository keeping rows in a dict; replace is atomic under a lock."""

    def __init__(self) -> None:
        self._rows: Dict[int, List[dict]] = {}
        self._lock = threading.Lock()

    def replace_series(self, job_id: int, snapshots: Sequence[MetricSnapshot]) -> int:
        rows = [snapshot_to_row(job_id, i, s) for i, s in enumerate(snapshots)]
        with self._lock:
            self._rows[job_id] = rows
        return len(rows)

    def get_series(self, job_id: int) -> List[dict]:
        with self._lock:
            rows = list(self._rows.get(job_id, []))
        return [
            {
                "minute": r["minute"],
                "timestamp": r["ts"],
                "oee": r["oee"],
                "availability": r["availability"],
                "performance": r["performance"],
                "quality": r["quality"],
                "bottleCount": r["bottle_count"],
            }
            for r in rows
        ]
