"""
Celery application configuration.

The API process runs the queues itself. The Celery worker hosts the
operator cleanup for tasks left RUNNING by a crashed API process; it is
sent by hand and has no beat schedule. Redis is both broker and result
backend.
"""

from celery import Celery
from app.core.config import settings

# Create Celery instance
celery_app = Celery(
    "talent_pipeline_worker",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL
)

# Configure Celery
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task behavior
    task_track_started=True,
    task_time_limit=300,  # 5 minutes max per task
    task_soft_time_limit=240,  # Warn at 4 minutes

    # Result backend
    result_expires=3600,  # Results expire after 1 hour

    # Worker behavior
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=50,
)

# Auto-discover tasks from app.tasks module
celery_app.autodiscover_tasks(['app'])
