"""Celery application used to publish notification tasks.

The tasks themselves run in the notification worker; this process only
sends them by name.
"""

from celery import Celery

from app.config import settings

celery_app = Celery("careflow", broker=settings.broker_url)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
)
