"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend.

Start a worker with the beat scheduler embedded:
    celery -A chatbot.celery_worker worker --beat --loglevel=info
"""

from celery import Celery
from celery.schedules import crontab

from chatbot.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    'chatbot_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['chatbot.tasks']  # Module containing our tasks
)

celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,  # Process one task at a time
    worker_concurrency=2,

    # Result settings
    result_expires=3600,  # Results expire after 1 hour

    # Task execution settings
    task_acks_late=True,  # Acknowledge task after completion
    task_reject_on_worker_lost=True,  # Requeue task if worker dies

    broker_connection_retry_on_startup=True,

    beat_schedule={
        'purge-stale-sessions': {
            'task': 'chatbot.tasks.purge_stale_sessions',
            'schedule': crontab(hour=3, minute=0),
        },
    },
)


if __name__ == '__main__':
    celery_app.start()
