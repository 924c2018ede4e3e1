"""Production counter reconstruction.

Counters are cumulative and never reset per job, so production at a tick is
the counter reading at that tick minus a *virtual zero*: the first reading
at or after job start.
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from datetime import datetime
from typing import Sequence

from .domain.models import CounterKind, TagSample
from .errors import CounterAnchorError

logger = logging.getLogger(__name__)


class CounterReconstructor:
    """Maps grid ticks to cumulative net production in base units (bottles).

    Lookups are a binary search per tick over immutable arrays, so any
    number of threads may query one instance concurrently.
    """

    def __init__(
        self,
        samples: Sequence[TagSample],
        job_start: datetime,
        kind: CounterKind,
        virtual_zero: float,
        end_value: float,
        pack_multiplier: float = 1.0,
    ) -> None:
        usable = [s for s in samples if s.created_at >= job_start]
        self._times = [s.created_at for s in usable]
        self._values = [s.numeric_value for s in usable]
        self.kind = kind
        self.virtual_zero = float(virtual_zero)
        self.end_value = float(end_value)
        self.pack_multiplier = float(pack_multiplier)

    @classmethod
    def from_store(
        cls,
        store,
        job_id: int,
        tag_id: int,
        samples: Sequence[TagSample],
        job_start: datetime,
        job_end: datetime,
        kind: CounterKind,
        pack_multiplier: float,
    ) -> "CounterReconstructor":
        """Resolve both counter anchors from the store and build the reconstructor.

        A case counter without a positive pack multiplier is still built; its
        ticks are skipped downstream (see ``factor``).
        """
        first = store.get_first_sample_at_or_after(tag_id, job_start)
        if first is None:
            raise CounterAnchorError(
                job_id, "no production counter sample at or after job start", tag_id=tag_id,
            )
        last = store.get_last_sample_at_or_before(tag_id, job_end)
        if last is None:
            raise CounterAnchorError(
                job_id, "no production counter sample at or before job end", tag_id=tag_id,
            )

        rec = cls(
            samples,
            job_start,
            kind,
            virtual_zero=first.numeric_value,
            end_value=last.numeric_value,
            pack_multiplier=pack_multiplier,
        )
        total = rec.net_production_at(job_end, is_last=True)
        logger.info(
            "counter_anchors job=%s kind=%s zero=%s end=%s multiplier=%s total=%s",
            job_id, kind.value, rec.virtual_zero, rec.end_value, rec.factor, total,
        )
        if rec.factor <= 0:
            logger.warning(
                "pack_multiplier_invalid job=%s tag=%s multiplier=%s, every tick will be skipped",
                job_id, tag_id, rec.factor,
            )
        elif total < 0:
            logger.warning("counter_reset_suspected job=%s total=%s", job_id, total)
        return rec

    @property
    def factor(self) -> float:
        return self.pack_multiplier if self.kind is CounterKind.CASE_COUNT else 1.0

    def raw_value_at(self, tick: datetime, is_last: bool = False) -> float:
        if is_last:
            # Final tick always reports the authoritative end-of-job reading
            return self.end_value
        idx = bisect_right(self._times, tick) - 1
        if idx < 0:
            return self.virtual_zero
        return self._values[idx]

    def net_production_at(self, tick: datetime, is_last: bool = False) -> float:
        return (self.raw_value_at(tick, is_last) - self.virtual_zero) * self.factor
