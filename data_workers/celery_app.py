from celery import Celery
from celery.schedules import crontab

from main_configs import (
    CELERY_EVALUATE_SEGMENTS_CRON,
    CELERY_RECOMPUTE_FEATURES_CRON,
    CELERY_REDIS_URL,
)


def cron_from_expr(expr: str):
    """
    Convert standard 5-field cron string into celery crontab.
    Example: "*/5 * * * *"
    """
    minute, hour, day, month, weekday = expr.split()
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day,
        month_of_year=month,
        day_of_week=weekday,
    )


RECOMPUTE_FEATURES_CRON = cron_from_expr(CELERY_RECOMPUTE_FEATURES_CRON)
EVALUATE_SEGMENTS_CRON = cron_from_expr(CELERY_EVALUATE_SEGMENTS_CRON)

# ---------------------------------------------------------
# Celery Worker Instance
# ---------------------------------------------------------
worker = Celery(
    "growth_worker",
    broker=CELERY_REDIS_URL,
    backend=CELERY_REDIS_URL,
    include=["data_workers.tasks"],
)

# ---------------------------------------------------------
# Core Configuration
# ---------------------------------------------------------
worker.conf.update(
    timezone="UTC",
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # Automations must survive a worker crash mid-task
    task_acks_late=True,
)

# ---------------------------------------------------------
# Beat Schedule
# ---------------------------------------------------------
worker.conf.beat_schedule = {
    "recompute-recent-activity-features": {
        "task": "data_workers.tasks.recompute_recent_features_task",
        "schedule": RECOMPUTE_FEATURES_CRON,
    },
    "evaluate-all-segments": {
        "task": "data_workers.tasks.evaluate_all_segments_task",
        "schedule": EVALUATE_SEGMENTS_CRON,
    },
}
