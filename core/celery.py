from celery import Celery

from core.config import settings

celery_app = Celery(
    "bakery",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["tasks.email_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Emails are fire-and-forget; nothing reads their results
    task_ignore_result=True,
    task_acks_late=True,
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    task_default_queue="bakery-email",
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    # Tests run tasks inline instead of talking to Redis
    task_always_eager=settings.TESTING,
    task_eager_propagates=False,
)
