import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

import redis
import requests
from celery import shared_task

from data_services.automation_queue import AutomationWorkItem
from data_services.errors import AutomationError, GrowthError, IntegrationNotConfigured
from data_services.features_service import FeaturesService
from data_services.growth_pipeline import GrowthPipeline
from data_services.segment_engine import SegmentEngine
from data_utils.db_factory import get_db_context
from data_workers import growth_jobs
from data_workers.celery_app import worker  # noqa: F401
from main_configs import CELERY_REDIS_URL, GrowthConfigs

# Setup Logger
logger = logging.getLogger(__name__)

# Redis for per-person locks
redis_client = redis.from_url(CELERY_REDIS_URL)
PERSON_LOCK_PREFIX = "growth:person_lock:"
PERSON_LOCK_TTL_SECONDS = 120
PERSON_LOCK_WAIT_SECONDS = 30


class PersonLockTimeout(GrowthError):
    pass


@contextmanager
def person_lock(person_id: str):
    """Serialize per-person feature/segment writes across workers."""
    lock = redis_client.lock(
        f"{PERSON_LOCK_PREFIX}{person_id}",
        timeout=PERSON_LOCK_TTL_SECONDS,
        blocking_timeout=PERSON_LOCK_WAIT_SECONDS,
    )
    if not lock.acquire():
        raise PersonLockTimeout(f"could not lock person {person_id}")
    try:
        yield
    finally:
        try:
            lock.release()
        except redis.exceptions.LockError:
            logger.warning("Lock for person %s expired before release", person_id)


# ---------------------------------------------------------
# Event pipeline
# ---------------------------------------------------------
@shared_task
def handle_event_task(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Ingest one event and run derive/evaluate/act for its person."""
    with get_db_context() as session:
        result = GrowthPipeline(session).handle_event(payload)
        return result.to_dict()


@shared_task
def sync_subscription_task(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    """Store a payment-system subscription snapshot and re-evaluate segments."""
    with get_db_context() as session:
        return GrowthPipeline(session).handle_subscription(snapshot).to_dict()


# ---------------------------------------------------------
# Per-person tasks
# ---------------------------------------------------------
@shared_task(autoretry_for=(PersonLockTimeout,), retry_backoff=True, max_retries=5)
def compute_person_features_task(person_id: str) -> Dict[str, Any]:
    with person_lock(person_id):
        with get_db_context() as session:
            return FeaturesService(session).compute_person_features(person_id).as_dict()


@shared_task(autoretry_for=(PersonLockTimeout,), retry_backoff=True, max_retries=5)
def evaluate_person_segments_task(person_id: str) -> Dict[str, Any]:
    with person_lock(person_id):
        with get_db_context() as session:
            return SegmentEngine(session).evaluate_segments_after_event(person_id).to_dict()


@shared_task(
    autoretry_for=(AutomationError, requests.exceptions.RequestException),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    max_retries=GrowthConfigs.AUTOMATION_MAX_RETRIES,
)
def run_segment_automation(item: Dict[str, Any]) -> Dict[str, Any]:
    """Run one automation work item. Downstream failures are retried with backoff."""
    work_item = AutomationWorkItem.from_dict(item)
    try:
        with get_db_context() as session:
            return SegmentEngine(session).run_automation(work_item)
    except IntegrationNotConfigured as exc:
        # Retrying cannot fix missing credentials
        logger.error("Automation %s not configured: %s", item, exc)
        return {"status": "error", "channel": work_item.channel, "message": str(exc)}


# ---------------------------------------------------------
# Scheduled batch jobs
# ---------------------------------------------------------
@shared_task
def recompute_recent_features_task(days_back: Optional[int] = None) -> Dict[str, Any]:
    logger.info("Starting recent-activity feature recomputation...")
    return growth_jobs.recompute_recent_features(days_back=days_back).to_dict()


@shared_task
def evaluate_all_segments_task() -> Dict[str, Any]:
    logger.info("Starting full segment evaluation...")
    return growth_jobs.evaluate_segments().to_dict()
