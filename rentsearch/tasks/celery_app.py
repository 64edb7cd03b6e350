"""
Celery Application Configuration
"""

from celery import Celery
from celery.schedules import crontab

from ..config import get_settings

settings = get_settings()

# Create Celery app
app = Celery(
    "rentsearch",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "rentsearch.tasks.indexing",
    ],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

# Configure periodic tasks with Celery Beat
app.conf.beat_schedule = {
    # Full reindex weekly (every Sunday at 3 AM)
    "reindex-listings-weekly": {
        "task": "tasks.reindex_all",
        "schedule": crontab(hour=3, minute=0, day_of_week=0),
    },
}

if __name__ == "__main__":
    app.start()
