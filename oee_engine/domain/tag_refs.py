"""``ref`` values of the ``Tags`` table used by the engine."""

from __future__ import annotations

LINE = "line"
MACHINE = "machine"

CASE_COUNT = "csct"
BOTTLES_COUNT = "bc"
REJECTED_BOTTLES = "lost"
MACHINE_STATE = "mchnst"
