"""Machine-state run extraction and time-in-state aggregation."""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from datetime import datetime
from typing import AbstractSet, Dict, List, Optional, Sequence

from .domain.models import StateRun, TagSample


def extract_state_runs(
    samples: Sequence[TagSample],
    window_start: Optional[datetime] = None,
    window_end: Optional[datetime] = None,
) -> List[StateRun]:
    """Run-length encode ordered machine-state samples.

    A new run starts whenever the value changes; the previous run ends at
    the timestamp of the sample that changed it, so runs are contiguous.
    The final run ends at the final sample, whatever its value.
    """
    if window_start is not None or window_end is not None:
        samples = [
            s for s in samples
            if (window_start is None or s.created_at >= window_start)
            and (window_end is None or s.created_at <= window_end)
        ]
    if not samples:
        return []

    runs: List[StateRun] = []
    state = samples[0].state_code
    run_start = samples[0].created_at
    last_seen = run_start

    for sample in samples[1:]:
        code = sample.state_code
        if code != state:
            runs.append(StateRun(
                state=state,
                start_time=run_start,
                end_time=sample.created_at,
                last_sample_at=last_seen,
            ))
            state = code
            run_start = sample.created_at
        last_seen = sample.created_at

    runs.append(StateRun(
        state=state,
        start_time=run_start,
        end_time=samples[-1].created_at,
        last_sample_at=last_seen,
    ))
    return runs


def _overlap_minutes(run: StateRun, start: datetime, end: datetime) -> float:
    lo = max(run.start_time, start)
    hi = min(run.end_time, end)
    if hi <= lo:
        return 0.0
    return (hi - lo).total_seconds() / 60.0


def minutes_in_states(
    runs: Sequence[StateRun],
    states: AbstractSet[int],
    start: datetime,
    end: datetime,
) -> float:
    """Minutes spent in any of ``states`` within [start, end], runs clipped."""
    return sum(
        _overlap_minutes(run, start, end)
        for run in runs
        if run.state in states
    )


class StateTimeline:
    """Indexed run list answering time-in-state queries in O(log n).

    Built once per computation and shared read-only by every tick.
    """

    def __init__(self, runs: Sequence[StateRun]) -> None:
        self._runs = list(runs)
        self._starts = [r.start_time for r in self._runs]
        self._ends = [r.end_time for r in self._runs]

        # state -> cumulative minutes of runs[:i] in that state
        self._prefix: Dict[int, List[float]] = {}
        for state in {r.state for r in self._runs}:
            acc = [0.0]
            for r in self._runs:
                acc.append(acc[-1] + (r.duration_minutes if r.state == state else 0.0))
            self._prefix[state] = acc

    def minutes_in(self, states: AbstractSet[int], start: datetime, end: datetime) -> float:
        if not self._runs or end <= start:
            return 0.0

        # Runs overlapping the window are runs[lo:hi]
        lo = bisect_right(self._ends, start)
        hi = bisect_left(self._starts, end)
        if lo >= hi:
            return 0.0

        total = 0.0
        for idx in {lo, hi - 1}:
            run = self._runs[idx]
            if run.state in states:
                total += _overlap_minutes(run, start, end)

        if hi - lo > 2:
            for state in states:
                acc = self._prefix.get(state)
                if acc is not None:
                    total += acc[hi - 1] - acc[lo + 1]
        return total
