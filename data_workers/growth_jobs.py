"""
Batch jobs for feature recomputation and segment evaluation.

Each person gets its own session via get_db_context, so the per-person work
can fan out on a bounded thread pool.
"""

import asyncio
import logging
from datetime import timedelta
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Iterable, Optional

from data_models.base import utcnow
from data_services.features_service import FeaturesService
from data_services.segment_engine import SegmentEngine
from data_utils.db_factory import get_db_context
from data_workers.batch_runner import BatchReport, run_per_person
from data_workers.event_repository import EventRepository
from data_workers.person_repository import PersonRepository
from main_configs import GrowthConfigs

logger = logging.getLogger(__name__)

# Global executor for offloading batch jobs from async callers
_DEFAULT_EXECUTOR = ThreadPoolExecutor(max_workers=2)


def _compute_one(person_id: str) -> None:
    with get_db_context() as session:
        FeaturesService(session).compute_person_features(person_id)


def _evaluate_one(person_id: str) -> None:
    with get_db_context() as session:
        SegmentEngine(session).evaluate_segments_after_event(person_id)


# ==============================================================================
# 1. Synchronous Entry Points (Blocking)
# ==============================================================================
def recompute_features(person_ids: Iterable[str], max_workers: Optional[int] = None) -> BatchReport:
    return run_per_person(
        person_ids,
        _compute_one,
        max_workers=max_workers or GrowthConfigs.BATCH_MAX_WORKERS,
        label="recompute_features",
    )


def recompute_recent_features(days_back: Optional[int] = None, max_workers: Optional[int] = None) -> BatchReport:
    days_back = days_back or GrowthConfigs.RECENT_ACTIVITY_DAYS
    with get_db_context() as session:
        person_ids = EventRepository(session).person_ids_active_since(utcnow() - timedelta(days=days_back))

    logger.info("Recent activity job: %d persons in the last %d days", len(person_ids), days_back)
    return recompute_features(person_ids, max_workers=max_workers)


def evaluate_segments(person_ids: Optional[Iterable[str]] = None, max_workers: Optional[int] = None) -> BatchReport:
    if person_ids is None:
        with get_db_context() as session:
            person_ids = PersonRepository(session).list_ids()

    return run_per_person(
        person_ids,
        _evaluate_one,
        max_workers=max_workers or GrowthConfigs.BATCH_MAX_WORKERS,
        label="evaluate_segments",
    )


# ==============================================================================
# 2. Asynchronous Entry Point (Non-Blocking)
# ==============================================================================
async def run_job_async(job, *args, executor: Optional[ThreadPoolExecutor] = None, **kwargs) -> BatchReport:
    """
    Async wrapper. Use this in FastAPI routes or asyncio loops.
    It offloads the blocking job to a thread pool.
    """
    loop = asyncio.get_running_loop()
    actual_executor = executor or _DEFAULT_EXECUTOR

    func = partial(job, *args, **kwargs)

    logger.info("Offloading %s to thread pool...", getattr(job, "__name__", job))
    return await loop.run_in_executor(actual_executor, func)
