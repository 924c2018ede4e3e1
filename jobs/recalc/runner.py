"""Recalculation runner: selects closed jobs and rebuilds their OEE series in parallel."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from common.db import get_engine
from oee_engine.errors import OEEComputationError
from oee_engine.orchestrator import SeriesResult
from oee_engine.repository.sql_store import SqlSeriesRepository, SqlTagValueStore
from oee_engine.service import OEETimeSeriesService

from .config import RunnerConfig

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    # Job timestamps are stored as naive UTC DATETIME columns.
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class RunSummary:
    ok: int = 0
    failed: int = 0
    results: Dict[int, SeriesResult] = field(default_factory=dict)
    errors: Dict[int, str] = field(default_factory=dict)
    elapsed_ms: float = 0.0

    @property
    def total(self) -> int:
        return self.ok + self.failed


def select_jobs(cfg: RunnerConfig, store, now: Optional[datetime] = None) -> List[int]:
    if cfg.job_ids:
        return list(dict.fromkeys(cfg.job_ids))
    now = now or utc_now()
    start = now - timedelta(minutes=cfg.lookback_minutes)
    return store.list_jobs_closed_between(start, now)


def _process_job(service: OEETimeSeriesService, job_id: int, dry_run: bool) -> SeriesResult:
    if dry_run:
        return service.compute(job_id)
    return service.recalculate(job_id)


def run_once(
    cfg: RunnerConfig,
    service: Optional[OEETimeSeriesService] = None,
    store=None,
    now: Optional[datetime] = None,
    on_result: Optional[Callable[[SeriesResult], None]] = None,
) -> RunSummary:
    """One runner cycle. Each job is its own transaction; one failing job
    never stops the others."""
    if service is None:
        engine = get_engine()
        store = store or SqlTagValueStore(engine)
        service = OEETimeSeriesService(store, SqlSeriesRepository(engine))
    elif store is None:
        raise ValueError("store is required when service is injected")

    job_ids = select_jobs(cfg, store, now=now)
    summary = RunSummary()
    if not job_ids:
        logger.info("recalc_cycle jobs=0 nothing to do")
        return summary

    t0 = time.monotonic()
    workers = max(1, cfg.workers)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {
            pool.submit(_process_job, service, job_id, cfg.dry_run): job_id
            for job_id in job_ids
        }
        for fut in as_completed(futures):
            job_id = futures[fut]
            try:
                result = fut.result()
            except OEEComputationError as exc:
                summary.failed += 1
                summary.errors[job_id] = f"{exc.code}: {exc.reason}"
                logger.error("recalc_job_failed job=%d code=%s reason=%s", job_id, exc.code, exc.reason)
                continue
            except Exception as exc:
                summary.failed += 1
                summary.errors[job_id] = str(exc)
                logger.error("recalc_job_failed job=%d err=%s", job_id, exc)
                continue
            summary.ok += 1
            summary.results[job_id] = result
            if on_result is not None:
                on_result(result)

    summary.elapsed_ms = (time.monotonic() - t0) * 1000
    logger.info(
        "recalc_cycle ms=%.1f jobs=%d ok=%d fail=%d workers=%d dry_run=%s",
        summary.elapsed_ms, len(job_ids), summary.ok, summary.failed, workers, cfg.dry_run,
    )
    return summary
