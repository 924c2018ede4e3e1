"""CLI entry point for the OEE recalculation runner."""

from __future__ import annotations

import argparse
import logging
import time
from typing import List, Optional

from oee_engine.orchestrator import SeriesResult
from oee_engine.schemas import SeriesResultOut

from .config import RunnerConfig
from .runner import run_once

logger = logging.getLogger(__name__)


def _print_result(result: SeriesResult) -> None:
    print(SeriesResultOut.from_result(result, include_skips=True).model_dump_json(by_alias=True))


def parse_args(argv: Optional[List[str]] = None) -> RunnerConfig:
    p = argparse.ArgumentParser(description="OEE time-series recalculation runner")
    p.add_argument("--job-id", type=int, action="append", default=[],
                   help="job to recalculate (repeatable); default: recently closed jobs")
    p.add_argument("--lookback-minutes", type=int, default=60)
    p.add_argument("--workers", type=int, default=2)
    p.add_argument("--sleep-seconds", type=float, default=60.0)
    p.add_argument("--once", action="store_true", help="run a single iteration and exit")
    p.add_argument("--dry-run", action="store_true",
                   help="compute and print results as JSON without writing")
    args = p.parse_args(argv)

    return RunnerConfig(
        job_ids=tuple(args.job_id),
        lookback_minutes=args.lookback_minutes,
        workers=args.workers,
        sleep_seconds=args.sleep_seconds,
        # explicit job ids have nothing to poll for
        once=bool(args.once or args.job_id),
        dry_run=bool(args.dry_run),
    )


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )
    cfg = parse_args(argv)

    logger.info("OEE recalculation runner started")
    logger.info(
        "Config: jobs=%s lookback=%dmin workers=%d sleep=%.1fs dry_run=%s",
        list(cfg.job_ids) or "auto", cfg.lookback_minutes, cfg.workers,
        cfg.sleep_seconds, cfg.dry_run,
    )
    on_result = _print_result if cfg.dry_run else None

    while True:
        try:
            summary = run_once(cfg, on_result=on_result)
            if cfg.once:
                if summary.failed:
                    raise SystemExit(1)
                return
            logger.info("Cycle done, sleeping %.1fs...", cfg.sleep_seconds)
            time.sleep(cfg.sleep_seconds)
        except SystemExit:
            raise
        except Exception as e:
            logger.error("Cycle failed: %s", e)
            if cfg.once:
                raise
            time.sleep(cfg.sleep_seconds)


if __name__ == "__main__":
    main()
