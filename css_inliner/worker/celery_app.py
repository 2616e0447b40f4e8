"""Celery application configuration."""

from celery import Celery

from css_inliner.core.config import settings

celery_app = Celery("css_inliner")

broker_url = settings.celery_broker_url or settings.redis_url
result_backend = settings.celery_result_backend or settings.redis_url

celery_app.conf.update(
    broker_url=broker_url,
    result_backend=result_backend,
    task_default_queue="css_inliner",
    task_soft_time_limit=30,
    task_time_limit=60,
    worker_max_tasks_per_child=500,
    task_track_started=True,
    task_always_eager=settings.debug,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
)

celery_app.autodiscover_tasks(["css_inliner.tasks"], related_name="render_tasks")
