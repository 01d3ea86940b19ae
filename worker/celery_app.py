from celery import Celery

from marketmate.core.config import settings

celery = Celery(
    "marketmate-worker",
    broker=settings.rabbitmq_url,
    backend=settings.redis_url,
    include=["worker.tasks"],
)

celery.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=3600,
    # a task is acknowledged only after it ran; outbox leases make reruns safe
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={
        "worker.tasks.process_outbox_event": {"queue": "outbox"},
        "worker.tasks.expire_overdue_listings": {"queue": "default"},
    },
)
