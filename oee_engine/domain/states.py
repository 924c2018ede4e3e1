"""Machine-state codes reported by the bottleneck machine's state tag."""

from __future__ import annotations

from enum import IntEnum
from typing import FrozenSet


class MachineState(IntEnum):
    NO_BATCH = 0
    STOPPED = 1
    STARTING = 2
    PREPARED = 4
    LACK = 8
    TAILBACK = 16
    LACK_BRANCH_LINE = 32
    TAILBACK_BRANCH_LINE = 64
    OPERATING = 128
    STOPPING = 256
    ABORTING = 512
    EQUIPMENT_FAILURE = 1024
    EXTERNAL_FAILURE = 2048
    EMERGENCY_STOP = 4096
    HOLDING = 8192
    HELD = 16384
    IDLE = 32768


_LABELS = {
    MachineState.NO_BATCH: "No batch",
    MachineState.STOPPED: "Stopped",
    MachineState.STARTING: "Starting",
    MachineState.PREPARED: "Prepared",
    MachineState.LACK: "Lack",
    MachineState.TAILBACK: "Tailback",
    MachineState.LACK_BRANCH_LINE: "Lack Branch Line",
    MachineState.TAILBACK_BRANCH_LINE: "Tailback Branch Line",
    MachineState.OPERATING: "Operating",
    MachineState.STOPPING: "Stopping",
    MachineState.ABORTING: "Aborting",
    MachineState.EQUIPMENT_FAILURE: "Equipment Failure",
    MachineState.EXTERNAL_FAILURE: "External Failure",
    MachineState.EMERGENCY_STOP: "Emergency Stop",
    MachineState.HOLDING: "Holding",
    MachineState.HELD: "Held",
    MachineState.IDLE: "Idle",
}

# Counted as Unplanned Down Time
UNPLANNED_DOWN_STATES: FrozenSet[int] = frozenset(
    {MachineState.STOPPED, MachineState.EQUIPMENT_FAILURE}
)

# Subtracted from SLT to obtain SL, each group on its own
TAILBACK_STATES: FrozenSet[int] = frozenset({MachineState.TAILBACK})
LACK_STATES: FrozenSet[int] = frozenset({MachineState.LACK})


def state_label(code: int) -> str:
    try:
        return _LABELS[MachineState(code)]
    except ValueError:
        return f"Unknown State ({code})"
