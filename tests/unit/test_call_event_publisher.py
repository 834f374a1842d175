"""
Unit tests for the Celery event publisher and the wiring around it
"""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from callbooking import bootstrap
from callbooking.config.settings import Settings, get_settings
from callbooking.schemas.task_payloads import CallStatusChangedPayload
from callbooking.services.call_request.collaborators import NullCallEventPublisher
from callbooking.services.notification.call_event_publisher import CeleryCallEventPublisher


@pytest.fixture
def event():
    return CallStatusChangedPayload(
        call_request_id="call-1",
        request_number="CALL-ABC-1234",
        subscriber_id="subscriber-1",
        provider_id="provider-1",
        from_status="assigned",
        to_status="scheduled",
        scheduled_at=datetime(2024, 1, 10, 10, 0, tzinfo=timezone.utc),
        scheduled_duration=30,
        occurred_at=datetime(2024, 1, 9, 9, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestCeleryCallEventPublisher:

    def test_sends_task_by_name_with_json_payload(self, event):
        celery_app = MagicMock()
        publisher = CeleryCallEventPublisher(celery_app=celery_app, task_name="calls.changed", queue="calls")

        publisher.publish(event)

        celery_app.send_task.assert_called_once()
        args, kwargs = celery_app.send_task.call_args
        assert args == ("calls.changed",)
        assert kwargs["queue"] == "calls"
        payload = kwargs["kwargs"]["payload"]
        assert payload["call_request_id"] == "call-1"
        assert payload["to_status"] == "scheduled"
        assert payload["scheduled_at"].startswith("2024-01-10T10:00:00")

    def test_defaults_come_from_settings(self):
        publisher = CeleryCallEventPublisher(celery_app=MagicMock())
        settings = get_settings()

        assert publisher.task_name == settings.CALL_STATUS_EVENT_TASK
        assert publisher.queue == settings.CALL_STATUS_EVENT_QUEUE

    def test_broker_errors_propagate(self, event):
        celery_app = MagicMock()
        celery_app.send_task.side_effect = ConnectionError("broker down")

        with pytest.raises(ConnectionError):
            CeleryCallEventPublisher(celery_app=celery_app).publish(event)


class TestBootstrap:

    def test_disabled_notifications_use_null_publisher(self, monkeypatch, fresh_settings):
        monkeypatch.setenv("NOTIFICATIONS_ENABLED", "false")
        assert isinstance(bootstrap.build_event_publisher(), NullCallEventPublisher)

    def test_enabled_notifications_use_celery(self, monkeypatch, fresh_settings):
        monkeypatch.setenv("NOTIFICATIONS_ENABLED", "true")
        assert isinstance(bootstrap.build_event_publisher(), CeleryCallEventPublisher)

    def test_service_wiring_uses_given_session_factory(self, session_factory, publisher):
        service = bootstrap.build_call_request_service(session_factory, publisher=publisher)

        assert service.publisher is publisher
        assert service.uow.session_factory is session_factory


class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("TX_MAX_RETRIES", "MAX_CALL_DURATION_MINUTES", "SCHEDULING_ISOLATION_LEVEL"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)

        assert settings.TX_MAX_RETRIES == 3
        assert settings.MAX_CALL_DURATION_MINUTES == 120
        assert settings.BILLING_UNIT_MINUTES == 15
        assert settings.SCHEDULING_ISOLATION_LEVEL == "SERIALIZABLE"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("TX_MAX_RETRIES", "7")
        monkeypatch.setenv("UPCOMING_CALLS_LIMIT", "3")
        settings = Settings(_env_file=None)

        assert settings.TX_MAX_RETRIES == 7
        assert settings.UPCOMING_CALLS_LIMIT == 3
