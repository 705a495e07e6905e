"""Notification service that publishes appointment emails as Celery tasks."""

import asyncio
from datetime import datetime

import structlog
from celery import Celery
from pydantic import BaseModel

from app.schemas.notifications import AppointmentCancellation, AppointmentReminder

logger = structlog.get_logger(__name__)

REMINDER_TASK = "appointment-reminder-email"
CANCELLATION_TASK = "appointment-cancellation-email"


class NotificationService:
    """
    Producer side of appointment emails.

    Tasks are sent by name; rendering and delivery belong to the
    notification worker that registers them. A reminder carries its send
    time as the task ETA, so the broker holds it until then.
    """

    def __init__(self, celery: Celery, max_retries: int = 3):
        """Initialize with the Celery app and the publish retry budget."""
        self.celery = celery
        self.max_retries = max_retries

    @property
    def retry_policy(self) -> dict:
        """Kombu publish retry policy."""
        return {
            "max_retries": self.max_retries,
            "interval_start": 0,
            "interval_step": 0.2,
            "interval_max": 1,
        }

    async def dispatch(
        self,
        name: str,
        payload: BaseModel,
        eta: datetime | None = None,
    ) -> str:
        """
        Publish a task to the broker.

        Args:
            name: Task name registered by the worker
            payload: Task data
            eta: Earliest execution time, None to run immediately

        Returns:
            Celery task ID

        Raises:
            Exception: Any broker error once publish retries are spent, after logging it
        """
        try:
            # send_task blocks while publishing
            result = await asyncio.to_thread(
                self.celery.send_task,
                name,
                kwargs={"payload": payload.model_dump(mode="json")},
                eta=eta,
                retry=True,
                retry_policy=self.retry_policy,
            )
        except Exception as e:
            logger.error("email_enqueue_failed", task=name, error=str(e))
            raise

        logger.info(
            "email_queued",
            task=name,
            task_id=result.id,
            to=payload.model_dump().get("to"),
            eta=eta.isoformat() if eta else None,
        )
        return result.id

    async def schedule_appointment_reminder(self, reminder: AppointmentReminder) -> str:
        """Queue a reminder to run at ``reminder.send_at``."""
        return await self.dispatch(REMINDER_TASK, reminder, eta=reminder.send_at)

    async def send_cancellation_notice(self, cancellation: AppointmentCancellation) -> str:
        """Queue a cancellation notice for immediate delivery."""
        return await self.dispatch(CANCELLATION_TASK, cancellation)
