from celery import Celery
from core.config import settings

celery_app = Celery(
    "ecohaat",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["tasks.email_tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Asia/Dhaka",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    # A broker outage must fail fast instead of blocking the request that queued mail
    task_publish_retry=False,
    task_always_eager=settings.CELERY_ALWAYS_EAGER,
    task_eager_propagates=False,
    task_ignore_result=True,
)
