from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from ..domain.models import Job, MetricSnapshot, Tag, TagSample


class TagValueStore(Protocol):
    """Read side of the tag value log plus the job lookups the engine needs.

    The engine only depends on this interface, never on a concrete database.
    """

    def get_tag(self, taggable_type: str, taggable_id: int, ref: str) -> Optional[Tag]:
        ...

    def get_samples(self, tag_id: int, start: datetime, end: datetime) -> List[TagSample]:
        """Samples with ``start <= created_at <= end``, ordered by ``created_at``."""
        ...

    def get_first_sample_at_or_after(self, tag_id: int, t: datetime) -> Optional[TagSample]:
        ...

    def get_last_sample_at_or_before(self, tag_id: int, t: datetime) -> Optional[TagSample]:
        ...

    def get_job(self, job_id: int) -> Optional[Job]:
        ...

    def get_sku_pack_multiplier(self, sku_id: int) -> float:
        ...

    def get_design_speed(self, job: Job, line_id: int) -> float:
        """Design speed in units/minute, 0 when it cannot be resolved."""
        ...


class SeriesRepository(Protocol):
    """Write side: the persisted OEE series of a job."""

    def replace_series(self, job_id: int, snapshots: Sequence[MetricSnapshot]) -> int:
        """Atomically delete the job's previous series and insert the new one.

        Returns the number of rows written.
        """
        ...

    def get_series(self, job_id: int) -> List[dict]:
        ...
