"""OEE recalculation runner.

Modules:
- config: RunnerConfig dataclass
- runner: job selection + parallel recalculation (run_once)
- cli: CLI entry point (main)
"""

from .config import RunnerConfig
from .runner import RunSummary, run_once
from .cli import main

__all__ = ["RunnerConfig", "RunSummary", "run_once", "main"]
