from celery import Celery

from app.core.config import get_settings
from app.core.log import setup_logging

settings = get_settings()
setup_logging()

# Use dedicated Celery URLs or fallback to REDIS_URL
broker_url = settings.CELERY_BROKER_URL or settings.REDIS_URL
result_backend = settings.CELERY_RESULT_BACKEND or settings.REDIS_URL

celery_app = Celery(
    "image_studio",
    broker=broker_url,
    backend=result_backend,
    include=["app.workers.tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    task_soft_time_limit=240,  # 4 minutes
    worker_concurrency=settings.CELERY_WORKER_CONCURRENCY,
    task_routes={
        "settle_webhook_event": {"queue": "webhooks"},
    },
    # jobs of a crashed worker are re-delivered
    task_acks_late=True,
)
