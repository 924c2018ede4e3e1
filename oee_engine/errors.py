"""Error and outcome types of the OEE engine.

Two classes of failure exist:

- fatal, job-level: an ``OEEComputationError`` is raised and no series is
  produced or persisted;
- per-tick: the tick is dropped and recorded as a ``TickSkip``, the rest of
  the series is still computed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class OEEComputationError(Exception):
    """Fatal failure computing a job's time series."""

    code = "OEE_COMPUTATION_FAILED"

    def __init__(self, job_id: Optional[int], reason: str, **context: Any) -> None:
        super().__init__(f"job {job_id}: {reason}")
        self.job_id = job_id
        self.reason = reason
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "job_id": self.job_id,
            "reason": self.reason,
            "context": dict(self.context),
        }


class JobNotFoundError(OEEComputationError):
    code = "JOB_NOT_FOUND"

    def __init__(self, job_id: int) -> None:
        super().__init__(job_id, f"Job not found: {job_id}")


class JobNotClosedError(OEEComputationError):
    code = "JOB_NOT_CLOSED"


class ProductionTagNotFoundError(OEEComputationError):
    code = "PRODUCTION_TAG_NOT_FOUND"


class MachineStateTagNotFoundError(OEEComputationError):
    code = "MACHINE_STATE_TAG_NOT_FOUND"


class NoProductionSamplesError(OEEComputationError):
    code = "NO_PRODUCTION_SAMPLES"


class CounterAnchorError(OEEComputationError):
    """Virtual zero or end-of-job value could not be resolved."""
    code = "COUNTER_ANCHOR_NOT_FOUND"


class ComputationCancelledError(OEEComputationError):
    code = "COMPUTATION_CANCELLED"


class SkipReason(str, Enum):
    INVALID_DESIGN_SPEED = "invalid_design_speed"
    INVALID_PACK_MULTIPLIER = "invalid_pack_multiplier"
    NEGATIVE_PRODUCTION = "negative_production"
    INVALID_VOT = "invalid_vot"
    INVALID_OEE = "invalid_oee"


@dataclass(frozen=True)
class TickSkip:
    """A tick excluded from the series, with the reason it was dropped."""
    timestamp: datetime
    reason: SkipReason
    detail: str = ""
