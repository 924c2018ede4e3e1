"""Domain layer - models, machine states and tag refs."""

from .models import CounterKind, Job, MetricSnapshot, StateRun, Tag, TagSample
from .states import (
    LACK_STATES,
    MachineState,
    TAILBACK_STATES,
    UNPLANNED_DOWN_STATES,
    state_label,
)

__all__ = [
    "CounterKind",
    "Job",
    "MetricSnapshot",
    "StateRun",
    "Tag",
    "TagSample",
    "MachineState",
    "LACK_STATES",
    "TAILBACK_STATES",
    "UNPLANNED_DOWN_STATES",
    "state_label",
]
