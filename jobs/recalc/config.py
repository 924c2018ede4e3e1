"""Recalculation runner configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple


@dataclass(frozen=True)
class RunnerConfig:
    """Settings of the OEE recalculation runner.

    ``job_ids`` set: recalculate exactly those jobs. Empty: pick the jobs
    closed within the last ``lookback_minutes``.
    """
    job_ids: Tuple[int, ...] = field(default_factory=tuple)
    lookback_minutes: int = 60
    workers: int = 2
    sleep_seconds: float = 60.0
    once: bool = False
    dry_run: bool = False
