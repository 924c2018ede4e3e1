"""Shared fixtures: a one-hour bottling job on an in-memory store.

Scenario (``line_job``):
- job 1 on line 10, bottleneck machine 20, sku 30, 08:00 -> 09:00
- case counter 'csct': 1000 + 8 cases/min, 12 bottles per case
- reject counter 'lost': 50 + 1 bottle/min
- machine state 'mchnst': operating, stopped 08:10-08:15, tailback 08:30-08:35
- design speed 6000 bottles/h
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from common.config import Settings
from oee_engine.domain import tag_refs
from oee_engine.domain.models import Job, Tag, TagSample
from oee_engine.domain.states import MachineState
from oee_engine.repository.memory import InMemorySeriesRepository, InMemoryTagValueStore

JOB_START = datetime(2024, 3, 4, 8, 0, 0)
JOB_END = JOB_START + timedelta(minutes=60)

JOB_ID = 1
LINE_ID = 10
MACHINE_ID = 20
SKU_ID = 30

CASES_PER_MINUTE = 8
PACK_MULTIPLIER = 12
DESIGN_SPEED = 6000.0


def at(minute: float) -> datetime:
    return JOB_START + timedelta(minutes=minute)


def samples(points: List[Tuple[float, object]], tag_id: int = 1) -> List[TagSample]:
    """TagSamples from (minute offset, value) pairs."""
    return [TagSample(tag_id=tag_id, value=v, created_at=at(m)) for m, v in points]


def machine_state_at(minute: int) -> int:
    if 10 <= minute < 15:
        return MachineState.STOPPED
    if 30 <= minute < 35:
        return MachineState.TAILBACK
    return MachineState.OPERATING


class CountingTagValueStore(InMemoryTagValueStore):
    """In-memory store that records how often each lookup reaches it."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: Dict[str, int] = {}

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    def get_tag(self, taggable_type: str, taggable_id: int, ref: str) -> Optional[Tag]:
        self._count("get_tag")
        return super().get_tag(taggable_type, taggable_id, ref)

    def get_samples(self, tag_id: int, start: datetime, end: datetime) -> List[TagSample]:
        self._count("get_samples")
        return super().get_samples(tag_id, start, end)

    def get_job(self, job_id: int) -> Optional[Job]:
        self._count("get_job")
        return super().get_job(job_id)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        db_host="localhost",
        db_port=3306,
        db_user="root",
        db_password="",
        db_name="fouro",
        odbc_driver="MySQL ODBC 8.0 Unicode Driver",
        batch_size=10,
        max_workers=4,
        timeout_seconds=60.0,
        long_job_timeout_seconds=180.0,
        tag_cache_ttl_seconds=300.0,
        tag_cache_max_size=100,
    )


@pytest.fixture
def store() -> CountingTagValueStore:
    return CountingTagValueStore()


@pytest.fixture
def repository() -> InMemorySeriesRepository:
    return InMemorySeriesRepository()


@pytest.fixture
def line_job(store) -> Callable[..., Dict[str, object]]:
    """Builder for the standard scenario; keyword flags drop or alter parts of it."""

    def _build(
        job_id: int = JOB_ID,
        production_ref: str = tag_refs.CASE_COUNT,
        with_rejects: bool = True,
        with_states: bool = True,
        design_speed: float = DESIGN_SPEED,
        pack_multiplier: float = PACK_MULTIPLIER,
        end: datetime = JOB_END,
        closed: bool = True,
    ) -> Dict[str, object]:
        store.add_job(Job(
            id=job_id,
            line_id=LINE_ID,
            machine_id=MACHINE_ID,
            sku_id=SKU_ID,
            actual_start_time=JOB_START,
            actual_end_time=end if closed else None,
        ))
        store.set_design_speed(LINE_ID, SKU_ID, design_speed)
        store.set_pack_multiplier(SKU_ID, pack_multiplier)

        tags: Dict[str, object] = {}
        minutes = range(0, 61)
        if production_ref:
            prod = store.add_tag(tag_refs.LINE, LINE_ID, production_ref)
            per_minute = CASES_PER_MINUTE
            if production_ref == tag_refs.BOTTLES_COUNT:
                per_minute = CASES_PER_MINUTE * PACK_MULTIPLIER
            store.add_samples(prod, [(at(m), str(1000 + per_minute * m)) for m in minutes])
            tags["production"] = prod
        if with_rejects:
            lost = store.add_tag(tag_refs.LINE, LINE_ID, tag_refs.REJECTED_BOTTLES)
            store.add_samples(lost, [(at(m), str(50 + m)) for m in minutes])
            tags["rejects"] = lost
        if with_states:
            state = store.add_tag(tag_refs.MACHINE, MACHINE_ID, tag_refs.MACHINE_STATE)
            store.add_samples(state, [(at(m), str(int(machine_state_at(m)))) for m in minutes])
            tags["state"] = state
        return tags

    return _build
