"""Recalculation entry point: compute a job's OEE series and replace the stored one."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import List, Optional

from common.config import Settings, get_settings

from .cache import TagMetadataCache
from .config import EngineConfig
from .errors import OEEComputationError
from .orchestrator import CancellationToken, SeriesResult, TimeSeriesOrchestrator
from .repository.store import SeriesRepository, TagValueStore
from .schemas import SeriesPointOut

logger = logging.getLogger(__name__)

LONG_JOB_MINUTES = 1440


class OEETimeSeriesService:
    """Owns the tag cache shared by every recalculation it runs.

    Thread-safe: each call builds its own orchestrator.
    """

    def __init__(
        self,
        store: TagValueStore,
        repository: SeriesRepository,
        config: Optional[EngineConfig] = None,
        settings: Optional[Settings] = None,
        tag_cache: Optional[TagMetadataCache] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._repository = repository
        self._config = config or EngineConfig.from_settings(self._settings)
        self._tag_cache = tag_cache or TagMetadataCache(
            ttl_seconds=self._settings.tag_cache_ttl_seconds,
            max_size=self._settings.tag_cache_max_size,
        )

    @property
    def tag_cache(self) -> TagMetadataCache:
        return self._tag_cache

    def timeout_for(self, start: datetime, end: datetime) -> float:
        total_minutes = (end - start).total_seconds() / 60.0
        if total_minutes > LONG_JOB_MINUTES:
            return self._settings.long_job_timeout_seconds
        return self._settings.timeout_seconds

    def compute(
        self,
        job_id: int,
        sample_interval: Optional[timedelta] = None,
        until: Optional[datetime] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> SeriesResult:
        """Compute without persisting (on-demand path).

        Without a ``cancel`` token the deadline follows ``timeout_for``.
        """
        orchestrator = TimeSeriesOrchestrator(self._store, self._config, self._tag_cache)
        return orchestrator.compute(
            job_id,
            sample_interval=sample_interval,
            cancel=cancel,
            until=until,
            timeout_for=self.timeout_for,
        )

    def recalculate(
        self,
        job_id: int,
        sample_interval: Optional[timedelta] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> SeriesResult:
        """Recompute the series of a closed job and replace the stored one.

        Fatal errors (including cancellation and timeout) are raised and
        leave the stored series untouched.
        """
        t0 = time.monotonic()
        logger.info("oee_recalc_start job=%d", job_id)
        try:
            result = self.compute(job_id, sample_interval=sample_interval, cancel=cancel)
            if cancel is not None:
                cancel.raise_if_cancelled(job_id)
            written = self._repository.replace_series(job_id, result.snapshots)
        except OEEComputationError as e:
            logger.error(
                "oee_recalc_failed job=%d code=%s reason=%s ms=%.1f",
                job_id, e.code, e.reason, (time.monotonic() - t0) * 1000,
            )
            raise

        logger.info(
            "oee_recalc_done job=%d written=%d grid=%d skipped=%d ms=%.1f",
            job_id, written, result.grid_size, len(result.skipped), (time.monotonic() - t0) * 1000,
        )
        for warning in result.warnings:
            logger.warning("oee_recalc_warning job=%d %s", job_id, warning)
        return result

    def get_series(self, job_id: int) -> List[SeriesPointOut]:
        """Stored series of a job, ordered by minute."""
        return [SeriesPointOut.from_row(row) for row in self._repository.get_series(job_id)]
