"""Per-run engine configuration."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from common.config import Settings


@dataclass(frozen=True)
class EngineConfig:
    """Knobs of one time-series computation.

    Attributes
    ----------
    batch_size: int
        Ticks per batch. Batches run one after the other; ticks inside a
        batch are evaluated concurrently.
    max_workers: int
        Thread pool size used inside a batch (1 = sequential).
    sample_interval: timedelta | None
        Fixed grid step. ``None`` lets the caller's interval policy decide.
    """

    batch_size: int = 100
    max_workers: int = 8
    sample_interval: Optional[timedelta] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        return cls(
            batch_size=max(1, settings.batch_size),
            max_workers=max(1, settings.max_workers),
        )
