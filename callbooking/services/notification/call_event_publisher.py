# callbooking/services/notification/call_event_publisher.py
"""Hands committed call status changes to the notification workers"""
import logging
from typing import Optional

from celery import Celery

from callbooking.config.celery_config import celery_app as default_celery_app
from callbooking.config.settings import get_settings
from callbooking.schemas.task_payloads import CallStatusChangedPayload
from callbooking.services.call_request.collaborators import CallEventPublisher

logger = logging.getLogger(__name__)


class CeleryCallEventPublisher(CallEventPublisher):
    """Sends each event as a Celery task addressed by name"""

    def __init__(
            self,
            celery_app: Optional[Celery] = None,
            task_name: Optional[str] = None,
            queue: Optional[str] = None,
    ):
        settings = get_settings()
        self.celery_app = celery_app if celery_app is not None else default_celery_app
        self.task_name = task_name or settings.CALL_STATUS_EVENT_TASK
        self.queue = queue or settings.CALL_STATUS_EVENT_QUEUE

    def publish(self, event: CallStatusChangedPayload) -> None:
        result = self.celery_app.send_task(
            self.task_name,
            kwargs={"payload": event.model_dump(mode="json")},
            queue=self.queue,
        )
        logger.info(
            f"Queued {self.task_name} for call {event.call_request_id} "
            f"({event.from_status} -> {event.to_status}), task {getattr(result, 'id', None)}"
        )
