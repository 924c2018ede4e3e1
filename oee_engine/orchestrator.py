"""Time-series orchestrator: drives the metric chain across a job's grid.

    INITIALIZING -> RESOLVING_INPUTS -> BUILDING_GRID -> EVALUATING_TICKS
        -> ASSEMBLING -> DONE

Any fatal condition moves to FAILED and raises an ``OEEComputationError``;
no partial series is ever returned in that case. All samples are fetched
once, up front, so tick evaluation never touches the store.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from .cache import TagMetadataCache
from .config import EngineConfig
from .counter import CounterReconstructor
from .domain import tag_refs
from .domain.models import CounterKind, Job, MetricSnapshot, Tag
from .domain.states import LACK_STATES, TAILBACK_STATES, UNPLANNED_DOWN_STATES, state_label
from .errors import (
    ComputationCancelledError,
    JobNotClosedError,
    JobNotFoundError,
    MachineStateTagNotFoundError,
    NoProductionSamplesError,
    OEEComputationError,
    ProductionTagNotFoundError,
    TickSkip,
)
from .grid import build_tick_grid, choose_sample_interval
from .losses import RejectLossCalculator, RejectTracking
from .metrics import TickInputs, compute_snapshot
from .repository.store import TagValueStore
from .sequences import StateTimeline, extract_state_runs

logger = logging.getLogger(__name__)


class ComputationState(str, Enum):
    INITIALIZING = "initializing"
    RESOLVING_INPUTS = "resolving_inputs"
    BUILDING_GRID = "building_grid"
    EVALUATING_TICKS = "evaluating_ticks"
    ASSEMBLING = "assembling"
    DONE = "done"
    FAILED = "failed"


class CancellationToken:
    """External cancel signal plus an optional deadline (seconds from now)."""

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._event = threading.Event()
        self._clock = clock
        self._deadline = clock() + timeout_seconds if timeout_seconds is not None else None
        self.timeout_seconds = timeout_seconds

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and self._clock() >= self._deadline

    def raise_if_cancelled(self, job_id: int) -> None:
        if not self.cancelled:
            return
        if self._event.is_set():
            raise ComputationCancelledError(job_id, "computation cancelled")
        raise ComputationCancelledError(
            job_id,
            f"computation timed out after {self.timeout_seconds}s",
            timeout_seconds=self.timeout_seconds,
        )


@dataclass(frozen=True)
class ResolvedInputs:
    job: Job
    job_start: datetime
    job_end: datetime
    design_speed: float
    counter_kind: CounterKind
    counter: CounterReconstructor
    losses: RejectLossCalculator
    timeline: StateTimeline


@dataclass
class SeriesResult:
    """Outcome of one computation.

    ``snapshots`` are sorted by timestamp. ``skipped`` lists every grid tick
    that was dropped; a result with skips is still a valid series, only
    shorter than the grid.
    """

    job_id: int
    snapshots: List[MetricSnapshot]
    skipped: List[TickSkip]
    grid_size: int
    sample_interval: timedelta
    counter_kind: CounterKind
    design_speed: float
    reject_tracking: RejectTracking
    elapsed_ms: float = 0.0
    warnings: List[str] = field(default_factory=list)

    @property
    def valid_ticks(self) -> int:
        return len(self.snapshots)

    @property
    def is_complete(self) -> bool:
        return not self.skipped

    def skip_summary(self) -> Dict[str, int]:
        return dict(Counter(s.reason.value for s in self.skipped))


def _floor_minute(t: datetime) -> datetime:
    return t.replace(second=0, microsecond=0)


def _ceil_minute(t: datetime) -> datetime:
    floored = _floor_minute(t)
    return floored if floored == t else floored + timedelta(minutes=1)


class TimeSeriesOrchestrator:
    """Computes the OEE series of one job.

    Use one instance per computation (``state`` tracks that computation);
    the tag metadata cache can be shared between instances.
    """

    def __init__(
        self,
        store: TagValueStore,
        config: Optional[EngineConfig] = None,
        tag_cache: Optional[TagMetadataCache] = None,
    ) -> None:
        self._store = store
        self._config = config or EngineConfig()
        self._tag_cache = tag_cache or TagMetadataCache()
        self.state = ComputationState.INITIALIZING

    def _transition(self, job_id: int, new_state: ComputationState) -> None:
        logger.debug("oee_state job=%s %s -> %s", job_id, self.state.value, new_state.value)
        self.state = new_state

    def compute(
        self,
        job_id: int,
        sample_interval: Optional[timedelta] = None,
        cancel: Optional[CancellationToken] = None,
        until: Optional[datetime] = None,
        timeout_for: Optional[Callable[[datetime, datetime], float]] = None,
    ) -> SeriesResult:
        """Compute the series for ``job_id``.

        ``until`` bounds the window of a job that is still open (or caps a
        closed one); without it an open job is rejected. Without a ``cancel``
        token one is created once the job is loaded, with the deadline
        ``timeout_for(start, end)`` gives for the job's window (none if unset).
        """
        t0 = time.monotonic()
        self.state = ComputationState.INITIALIZING
        try:
            job, job_end, design_speed, pack_multiplier = self._initialize(job_id, until)
            if cancel is None:
                timeout = timeout_for(job.actual_start_time, job_end) if timeout_for else None
                cancel = CancellationToken(timeout_seconds=timeout)
            cancel.raise_if_cancelled(job_id)

            self._transition(job_id, ComputationState.RESOLVING_INPUTS)
            inputs = self._resolve_inputs(job, job_end, design_speed, pack_multiplier)
            cancel.raise_if_cancelled(job_id)

            self._transition(job_id, ComputationState.BUILDING_GRID)
            interval = (
                sample_interval
                or self._config.sample_interval
                or choose_sample_interval(inputs.job_start, inputs.job_end)
            )
            ticks = build_tick_grid(inputs.job_start, inputs.job_end, interval)
            logger.info(
                "oee_grid job=%d ticks=%d interval_min=%.2f batch_size=%d workers=%d",
                job_id, len(ticks), interval.total_seconds() / 60.0,
                self._config.batch_size, self._config.max_workers,
            )

            self._transition(job_id, ComputationState.EVALUATING_TICKS)
            outcomes = self._evaluate_ticks(inputs, ticks, cancel)

            self._transition(job_id, ComputationState.ASSEMBLING)
            result = self._assemble(inputs, outcomes, len(ticks), interval)
        except OEEComputationError as e:
            self._transition(job_id, ComputationState.FAILED)
            logger.error("oee_series_failed job=%s code=%s reason=%s", job_id, e.code, e.reason)
            raise
        except Exception:
            self._transition(job_id, ComputationState.FAILED)
            logger.exception("oee_series_failed job=%s unexpected error", job_id)
            raise

        result.elapsed_ms = (time.monotonic() - t0) * 1000
        self._transition(job_id, ComputationState.DONE)
        logger.info(
            "oee_series_done job=%d counter=%s ticks=%d valid=%d skipped=%d ms=%.1f",
            job_id, result.counter_kind.value, result.grid_size, result.valid_ticks,
            len(result.skipped), result.elapsed_ms,
        )
        if result.skipped:
            logger.warning("oee_ticks_skipped job=%d summary=%s", job_id, result.skip_summary())
        return result

    # -- stages ---------------------------------------------------------------

    def _initialize(self, job_id: int, until: Optional[datetime]):
        job = self._store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if not job.is_closed:
            if until is None:
                raise JobNotClosedError(job_id, "job has no actual end time")
            job_end = until
        else:
            job_end = min(job.actual_end_time, until) if until is not None else job.actual_end_time
        if job_end < job.actual_start_time:
            raise JobNotClosedError(
                job_id, f"job end {job_end} is before job start {job.actual_start_time}",
            )

        design_speed = self._store.get_design_speed(job, job.line_id)
        if design_speed <= 0:
            logger.warning(
                "design_speed_invalid job=%d line=%d sku=%s value=%s, every tick will be skipped",
                job_id, job.line_id, job.sku_id, design_speed,
            )

        pack_multiplier = 0.0
        if job.sku_id is not None:
            pack_multiplier = self._store.get_sku_pack_multiplier(job.sku_id)

        logger.info(
            "oee_series_start job=%d line=%d machine=%s sku=%s design_speed=%s start=%s end=%s",
            job_id, job.line_id, job.machine_id, job.sku_id, design_speed,
            job.actual_start_time.isoformat(), job_end.isoformat(),
        )
        return job, job_end, design_speed, pack_multiplier

    def _tag(self, taggable_type: str, taggable_id: int, ref: str) -> Optional[Tag]:
        key = (taggable_type, taggable_id, ref)
        return self._tag_cache.get_or_load(
            key, lambda: self._store.get_tag(taggable_type, taggable_id, ref),
        )

    def _resolve_inputs(
        self, job: Job, job_end: datetime, design_speed: float, pack_multiplier: float,
    ) -> ResolvedInputs:
        job_start = job.actual_start_time
        fetch_start = _floor_minute(job_start)
        fetch_end = _ceil_minute(job_end)

        # Production counter: case counter preferred, bottle counter as fallback
        kind = CounterKind.CASE_COUNT
        production_tag = self._tag(tag_refs.LINE, job.line_id, tag_refs.CASE_COUNT)
        if production_tag is None:
            kind = CounterKind.BOTTLE_COUNT
            production_tag = self._tag(tag_refs.LINE, job.line_id, tag_refs.BOTTLES_COUNT)
        if production_tag is None:
            raise ProductionTagNotFoundError(
                job.id,
                f"no production counter tag for line {job.line_id} "
                f"(expected '{tag_refs.CASE_COUNT}' or '{tag_refs.BOTTLES_COUNT}')",
                line_id=job.line_id,
            )
        logger.info(
            "production_counter job=%d line=%d tag=%d kind=%s",
            job.id, job.line_id, production_tag.id, kind.value,
        )

        production_samples = self._store.get_samples(production_tag.id, fetch_start, fetch_end)
        if not production_samples:
            raise NoProductionSamplesError(
                job.id,
                f"no {kind.value} samples between {fetch_start} and {fetch_end}",
                tag_id=production_tag.id,
            )
        counter = CounterReconstructor.from_store(
            self._store,
            job.id,
            production_tag.id,
            production_samples,
            job_start,
            job_end,
            kind,
            pack_multiplier,
        )

        reject_tag = self._tag(tag_refs.LINE, job.line_id, tag_refs.REJECTED_BOTTLES)
        if reject_tag is None:
            losses = RejectLossCalculator.not_configured(job_start)
        else:
            losses = RejectLossCalculator(
                self._store.get_samples(reject_tag.id, fetch_start, fetch_end),
                job_start,
                baseline=self._store.get_last_sample_at_or_before(reject_tag.id, job_start),
            )
            if losses.tracking is not RejectTracking.TRACKED:
                logger.warning(
                    "reject_counter_untrusted job=%d tag=%d tracking=%s, losses reported as 0",
                    job.id, reject_tag.id, losses.tracking.value,
                )

        if job.machine_id is None:
            raise MachineStateTagNotFoundError(
                job.id, f"line {job.line_id} has no bottleneck machine", line_id=job.line_id,
            )
        state_tag = self._tag(tag_refs.MACHINE, job.machine_id, tag_refs.MACHINE_STATE)
        if state_tag is None:
            raise MachineStateTagNotFoundError(
                job.id,
                f"no machine state tag for machine {job.machine_id}",
                machine_id=job.machine_id,
            )
        runs = extract_state_runs(self._store.get_samples(state_tag.id, fetch_start, fetch_end))
        timeline = StateTimeline(runs)
        if logger.isEnabledFor(logging.DEBUG):
            minutes = {
                state_label(state): round(timeline.minutes_in({state}, job_start, job_end), 2)
                for state in sorted({r.state for r in runs})
            }
            logger.debug(
                "machine_state_runs job=%d runs=%d minutes=%s", job.id, len(runs), minutes,
            )

        return ResolvedInputs(
            job=job,
            job_start=job_start,
            job_end=job_end,
            design_speed=design_speed,
            counter_kind=kind,
            counter=counter,
            losses=losses,
            timeline=timeline,
        )

    def _evaluate_tick(
        self, inputs: ResolvedInputs, tick: datetime, is_last: bool, cancel: CancellationToken,
    ) -> Union[MetricSnapshot, TickSkip]:
        cancel.raise_if_cancelled(inputs.job.id)
        start = inputs.job_start
        timeline = inputs.timeline
        return compute_snapshot(TickInputs(
            timestamp=tick,
            net_production=inputs.counter.net_production_at(tick, is_last=is_last),
            lost_units=inputs.losses.lost_units_until(tick),
            design_speed=inputs.design_speed,
            window_minutes=(tick - start).total_seconds() / 60.0,
            udt=timeline.minutes_in(UNPLANNED_DOWN_STATES, start, tick),
            tailback_minutes=timeline.minutes_in(TAILBACK_STATES, start, tick),
            lack_minutes=timeline.minutes_in(LACK_STATES, start, tick),
            pack_multiplier=inputs.counter.factor,
        ))

    def _evaluate_ticks(
        self,
        inputs: ResolvedInputs,
        ticks: List[datetime],
        cancel: CancellationToken,
    ) -> List[Union[MetricSnapshot, TickSkip]]:
        job_id = inputs.job.id
        batch_size = max(1, self._config.batch_size)
        workers = max(1, self._config.max_workers)
        last_index = len(ticks) - 1
        n_batches = (len(ticks) + batch_size - 1) // batch_size
        outcomes: List[Union[MetricSnapshot, TickSkip]] = []

        with ThreadPoolExecutor(max_workers=workers) as pool:
            for b, offset in enumerate(range(0, len(ticks), batch_size), start=1):
                cancel.raise_if_cancelled(job_id)
                batch = ticks[offset:offset + batch_size]
                futures = [
                    pool.submit(self._evaluate_tick, inputs, tick, offset + i == last_index, cancel)
                    for i, tick in enumerate(batch)
                ]
                batch_skips = 0
                for fut in as_completed(futures):
                    outcome = fut.result()
                    if isinstance(outcome, TickSkip):
                        batch_skips += 1
                    outcomes.append(outcome)
                logger.debug(
                    "oee_batch job=%d batch=%d/%d ticks=%d skipped=%d",
                    job_id, b, n_batches, len(batch), batch_skips,
                )
        return outcomes

    def _assemble(
        self,
        inputs: ResolvedInputs,
        outcomes: List[Union[MetricSnapshot, TickSkip]],
        grid_size: int,
        interval: timedelta,
    ) -> SeriesResult:
        snapshots = sorted(
            (o for o in outcomes if isinstance(o, MetricSnapshot)), key=lambda s: s.timestamp,
        )
        skipped = sorted(
            (o for o in outcomes if isinstance(o, TickSkip)), key=lambda s: s.timestamp,
        )
        warnings: List[str] = []
        if inputs.losses.tracking in (RejectTracking.NO_BASELINE, RejectTracking.EMPTY_IN_RANGE):
            warnings.append(f"reject counter {inputs.losses.tracking.value}: losses reported as 0")
        if inputs.design_speed <= 0:
            warnings.append(f"design speed is {inputs.design_speed}: no tick can be evaluated")
        if inputs.counter.factor <= 0:
            warnings.append(
                f"containers per pack is {inputs.counter.factor}: no tick can be evaluated",
            )
        return SeriesResult(
            job_id=inputs.job.id,
            snapshots=snapshots,
            skipped=skipped,
            grid_size=grid_size,
            sample_interval=interval,
            counter_kind=inputs.counter_kind,
            design_speed=inputs.design_speed,
            reject_tracking=inputs.losses.tracking,
            warnings=warnings,
        )
