"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend, plus the
beat schedule for nightly housekeeping.
"""

from celery import Celery
from celery.schedules import crontab

from qrdine.core.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    'qrdine_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['qrdine.tasks']  # Module containing our tasks
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=2,

    # Result settings
    result_expires=3600,  # Results expire after 1 hour

    # Task execution settings
    task_acks_late=True,  # Acknowledge task after completion
    task_reject_on_worker_lost=True,  # Requeue task if worker dies

    broker_connection_retry_on_startup=True,

    beat_schedule={
        'reset-daily-table-counters': {
            'task': 'qrdine.tasks.reset_daily_counters',
            'schedule': crontab(hour=0, minute=0),
        },
    },
)


if __name__ == '__main__':
    celery_app.start()
