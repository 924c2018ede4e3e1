"""Rejected-unit loss from the reject counter."""

from __future__ import annotations

import logging
from bisect import bisect_right
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence

from .domain.models import TagSample

logger = logging.getLogger(__name__)


class RejectTracking(str, Enum):
    """How much the reject stream of a job can be trusted.

    NOT_CONFIGURED and TRACKED are normal. NO_BASELINE and EMPTY_IN_RANGE
    both yield zero losses but are reported, since they cannot be told apart
    from a line that genuinely rejected nothing.
    """
    NOT_CONFIGURED = "not_configured"
    TRACKED = "tracked"
    NO_BASELINE = "no_baseline"
    EMPTY_IN_RANGE = "empty_in_range"


class RejectLossCalculator:
    def __init__(
        self,
        samples: Sequence[TagSample],
        job_start: datetime,
        baseline: Optional[TagSample] = None,
        configured: bool = True,
    ) -> None:
        self._times = [s.created_at for s in samples]
        self._values = [s.numeric_value for s in samples]
        self.job_start = job_start

        if baseline is None:
            idx = bisect_right(self._times, job_start) - 1
            baseline_value = self._values[idx] if idx >= 0 else None
        else:
            baseline_value = baseline.numeric_value
        self.baseline_value: Optional[float] = baseline_value

        if not configured:
            self.tracking = RejectTracking.NOT_CONFIGURED
        elif not self._times:
            self.tracking = RejectTracking.EMPTY_IN_RANGE
        elif baseline_value is None:
            self.tracking = RejectTracking.NO_BASELINE
        else:
            self.tracking = RejectTracking.TRACKED

    @classmethod
    def not_configured(cls, job_start: datetime) -> "RejectLossCalculator":
        return cls([], job_start, configured=False)

    def lost_units_until(self, cutoff: datetime) -> float:
        """Rejected units between job start and ``cutoff``; 0 when unresolvable."""
        if self.baseline_value is None:
            return 0.0
        idx = bisect_right(self._times, cutoff) - 1
        if idx < 0:
            return 0.0
        return self._values[idx] - self.baseline_value
