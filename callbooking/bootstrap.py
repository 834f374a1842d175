# callbooking/bootstrap.py
"""Explicit wiring of the booking engine from settings"""
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from callbooking.config.settings import get_settings
from callbooking.repositories.unit_of_work import SqlAlchemyCallRequestUnitOfWork
from callbooking.services.call_request.call_request_query_service import CallRequestQueryService
from callbooking.services.call_request.call_request_service import CallRequestService
from callbooking.services.call_request.collaborators import (
    CallEventPublisher,
    NullCallEventPublisher,
    ProviderValidator,
    QuotaChecker,
)
from callbooking.services.notification.call_event_publisher import CeleryCallEventPublisher

logger = logging.getLogger(__name__)


def _default_session_factory() -> Callable[[], Session]:
    # config.database builds the engine on import
    from callbooking.config.database import SessionLocal
    return SessionLocal


def build_unit_of_work(
        session_factory: Optional[Callable[[], Session]] = None,
) -> SqlAlchemyCallRequestUnitOfWork:
    return SqlAlchemyCallRequestUnitOfWork(session_factory or _default_session_factory())


def build_event_publisher() -> CallEventPublisher:
    settings = get_settings()
    if not settings.NOTIFICATIONS_ENABLED:
        logger.info("Call notifications disabled, events will not be published")
        return NullCallEventPublisher()

    return CeleryCallEventPublisher()


def build_call_request_service(
        session_factory: Optional[Callable[[], Session]] = None,
        provider_validator: Optional[ProviderValidator] = None,
        quota_checker: Optional[QuotaChecker] = None,
        publisher: Optional[CallEventPublisher] = None,
) -> CallRequestService:
    return CallRequestService(
        uow=build_unit_of_work(session_factory),
        provider_validator=provider_validator,
        quota_checker=quota_checker,
        publisher=publisher or build_event_publisher(),
    )


def build_call_request_query_service(
        session_factory: Optional[Callable[[], Session]] = None,
) -> CallRequestQueryService:
    return CallRequestQueryService(uow=build_unit_of_work(session_factory))
