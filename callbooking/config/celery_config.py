# callbooking/config/celery_config.py
"""Celery configuration for outbound call events"""
from celery import Celery
from kombu import Queue

from callbooking.config.settings import get_settings

settings = get_settings()


def create_celery_app() -> Celery:
    """Create and configure the Celery application used to emit events.

    The booking engine only produces messages; the consuming tasks live in the
    notification component and are addressed by name.
    """

    celery_app = Celery(
        "callbooking",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )

    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,

        # Task routing
        task_routes={
            settings.CALL_STATUS_EVENT_TASK: {"queue": settings.CALL_STATUS_EVENT_QUEUE},
        },

        # Queue definitions
        task_queues=(
            Queue(settings.CALL_STATUS_EVENT_QUEUE, routing_key=settings.CALL_STATUS_EVENT_QUEUE),
        ),

        # Fire-and-forget: nothing in the engine waits on results
        task_ignore_result=True,
        broker_connection_retry_on_startup=True,
    )

    return celery_app


# Create the Celery app instance
celery_app = create_celery_app()
