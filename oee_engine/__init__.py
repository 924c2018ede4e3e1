"""OEE time-series engine.

Modules:
- domain: TagSample, Job, StateRun, MetricSnapshot, machine states, tag refs
- sequences: machine-state run extraction + time-in-state aggregation
- counter: production counter reconstruction (virtual zero, end pin)
- losses: reject counter losses
- metrics: VOT -> QL -> NOT -> UDT -> GOT -> SLT -> SL -> A/P/Q -> OEE
- grid: sampling grid + interval policy
- orchestrator: per-job computation (state machine, batching, cancellation)
- repository: store/series interfaces, SQL and in-memory implementations
- service: recalculate + persist
"""

from .config import EngineConfig
from .orchestrator import (
    CancellationToken,
    ComputationState,
    SeriesResult,
    TimeSeriesOrchestrator,
)
from .service import OEETimeSeriesService

__all__ = [
    "EngineConfig",
    "CancellationToken",
    "ComputationState",
    "SeriesResult",
    "TimeSeriesOrchestrator",
    "OEETimeSeriesService",
]
