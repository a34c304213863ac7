"""
Celery application configuration.

Redis is both the message broker and the result backend. Celery beat drives
the periodic notification jobs; their schedule comes from the job registry,
whose enabled flags are shared with the API process through Redis.
"""

from celery import Celery
from celery.signals import beat_init, setup_logging as celery_setup_logging
from app.core.config import settings
from app.core.logging_config import setup_logging
from app.services.scheduler import RedisJobState, build_job_registry

# Create Celery instance
celery_app = Celery(
    "candi_tracker_worker",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL
)

job_registry = build_job_registry(state=RedisJobState())

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
    task_soft_time_limit=240,

    # Result backend
    result_expires=3600,

    # Worker behavior
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=50,

    beat_schedule=job_registry.beat_schedule(),
)

# Auto-discover tasks from app.tasks module
celery_app.autodiscover_tasks(['app'])


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    """Workers log through the same formatter as the API."""
    setup_logging(log_level=settings.LOG_LEVEL, json_logs=settings.JSON_LOGS)


@beat_init.connect
def start_jobs_on_beat_init(sender=None, **kwargs):
    """Every job starts enabled when beat boots."""
    job_registry.start_all()
