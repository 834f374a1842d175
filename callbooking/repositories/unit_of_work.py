# ============================================================================
# callbooking/repositories/unit_of_work.py
# ============================================================================
"""SQLAlchemy unit of work for call requests and their status history"""
import logging
import time
from contextvars import ContextVar
from typing import Callable, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from callbooking.domain.exceptions import RetryableTransactionError, SchedulingConflictError
from callbooking.repositories.base import (
    CallRequestScope,
    CallRequestUnitOfWork,
    IsolationLevel,
    TransactionOptions,
    default_transaction_options,
)
from callbooking.repositories.call_request_repository import SqlAlchemyCallRequestRepository
from callbooking.repositories.call_status_history_repository import SqlAlchemyCallStatusHistoryRepository

logger = logging.getLogger(__name__)

R = TypeVar("R")

# PostgreSQL SQLSTATE codes
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"
LOCK_NOT_AVAILABLE = "55P03"  # lock_timeout hit
QUERY_CANCELED = "57014"  # statement_timeout hit
EXCLUSION_VIOLATION = "23P01"

RETRYABLE_SQLSTATES = frozenset({SERIALIZATION_FAILURE, DEADLOCK_DETECTED, LOCK_NOT_AVAILABLE})

_ISOLATION_STRENGTH = {
    IsolationLevel.READ_COMMITTED: 0,
    IsolationLevel.REPEATABLE_READ: 1,
    IsolationLevel.SERIALIZABLE: 2,
}


def sqlstate_of(exc: DBAPIError) -> Optional[str]:
    """SQLSTATE of the driver error wrapped by SQLAlchemy (psycopg2 or psycopg 3)"""
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


class SqlAlchemyCallRequestUnitOfWork(CallRequestUnitOfWork):
    """
    Opens one session per transaction and hands out repositories bound to it.

    The work callback may run more than once: transient failures
    (serialization failure, deadlock, lock wait timeout, a row another
    transaction updated after it was loaded) are retried with a
    linear backoff up to ``options.max_retries`` times, and only at the
    outermost transaction. Each attempt starts from a fresh session, so the
    callback must load whatever it needs through the scope it is given.
    """

    def __init__(
            self,
            session_factory: Callable[[], Session],
            default_options: Optional[TransactionOptions] = None,
            sleep: Callable[[float], None] = time.sleep,
            monotonic: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.default_options = default_options or default_transaction_options()
        self._sleep = sleep
        self._monotonic = monotonic
        self._active_scope: ContextVar[Optional[CallRequestScope]] = ContextVar(
            f"call_request_uow_scope_{id(self)}", default=None
        )
        self._active_options: ContextVar[Optional[TransactionOptions]] = ContextVar(
            f"call_request_uow_options_{id(self)}", default=None
        )

    def transaction(
            self,
            work: Callable[[CallRequestScope], R],
            options: Optional[TransactionOptions] = None,
    ) -> R:
        active = self._active_scope.get()
        if active is not None:
            self._check_nested_options(options)
            return work(active)

        options = options or self.default_options
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._run_once(work, options)
            except StaleDataError as exc:
                # Another transaction updated the row after we loaded it
                self._backoff_or_raise(exc, attempt, options, "stale row")
            except DBAPIError as exc:
                sqlstate = sqlstate_of(exc)

                if sqlstate == EXCLUSION_VIOLATION:
                    raise SchedulingConflictError(
                        provider_id=None,
                        message="Provider already has a booking overlapping this slot",
                    ) from exc

                if sqlstate == QUERY_CANCELED:
                    raise RetryableTransactionError(
                        f"Transaction exceeded its {options.timeout_ms} ms limit", sqlstate
                    ) from exc

                if sqlstate not in RETRYABLE_SQLSTATES:
                    raise

                self._backoff_or_raise(exc, attempt, options, f"sqlstate {sqlstate}", sqlstate)

    def _backoff_or_raise(
            self,
            exc: Exception,
            attempt: int,
            options: TransactionOptions,
            cause: str,
            sqlstate: Optional[str] = None,
    ) -> None:
        if attempt > options.max_retries:
            logger.error(f"Transaction failed after {attempt} attempts ({cause})")
            raise RetryableTransactionError(
                f"Transaction could not complete after {attempt} attempts", sqlstate
            ) from exc

        delay = options.retry_backoff_ms * attempt / 1000
        logger.warning(f"Transient failure ({cause}) on attempt {attempt}, retrying in {delay:.3f}s")
        self._sleep(delay)

    def _check_nested_options(self, requested: Optional[TransactionOptions]) -> None:
        """A nested call runs with the outer transaction's settings"""
        outer = self._active_options.get()
        if requested is None or outer is None:
            return
        if _ISOLATION_STRENGTH[requested.isolation_level] > _ISOLATION_STRENGTH[outer.isolation_level]:
            logger.warning(
                f"Nested transaction asked for {requested.isolation_level.value} isolation "
                f"but joins an outer {outer.isolation_level.value} transaction"
            )

    def _run_once(self, work: Callable[[CallRequestScope], R], options: TransactionOptions) -> R:
        session = self.session_factory()
        scope = CallRequestScope(
            call_requests=SqlAlchemyCallRequestRepository(session),
            status_histories=SqlAlchemyCallStatusHistoryRepository(session),
        )
        token = self._active_scope.set(scope)
        options_token = self._active_options.set(options)
        started = self._monotonic()
        try:
            self._begin(session, options)
            result = work(scope)
            session.flush()

            elapsed_ms = (self._monotonic() - started) * 1000
            if elapsed_ms > options.timeout_ms:
                raise RetryableTransactionError(
                    f"Transaction took {elapsed_ms:.0f} ms, limit is {options.timeout_ms} ms"
                )

            session.commit()
            return result
        except Exception:
            session.rollback()
            raise
        finally:
            self._active_options.reset(options_token)
            self._active_scope.reset(token)
            session.close()

    @staticmethod
    def _begin(session: Session, options: TransactionOptions) -> None:
        """Apply isolation and lock/statement bounds. Other dialects keep their defaults."""
        if session.get_bind().dialect.name != "postgresql":
            return

        session.connection(execution_options={"isolation_level": options.isolation_level.value})
        # SET LOCAL takes no bind parameters; values are ints from TransactionOptions
        session.execute(text(f"SET LOCAL lock_timeout = {int(options.max_wait_ms)}"))
        session.execute(text(f"SET LOCAL statement_timeout = {int(options.timeout_ms)}"))
