"""
Unit tests for logging setup
"""
import logging

import pytest

from callbooking.utils.my_logging import QUIET_LOGGERS, setup_logging


@pytest.fixture
def restore_loggers():
    names = list(QUIET_LOGGERS) + ["callbooking"]
    saved = {name: (logging.getLogger(name).level, logging.getLogger(name).propagate) for name in names}
    yield
    for name, (level, propagate) in saved.items():
        logging.getLogger(name).setLevel(level)
        logging.getLogger(name).propagate = propagate


class TestSetupLogging:

    def test_quiet_mode_silences_library_loggers(self, restore_loggers):
        setup_logging(verbose=False)

        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.ERROR
            assert logging.getLogger(name).propagate is False
        assert logging.getLogger("callbooking").level == logging.WARNING

    def test_quiet_list_covers_only_libraries_in_use(self):
        assert set(QUIET_LOGGERS) == {"sqlalchemy.engine", "sqlalchemy.pool", "alembic", "kombu"}

    def test_verbose_mode_leaves_library_loggers_alone(self, restore_loggers):
        logging.getLogger("kombu").setLevel(logging.NOTSET)

        setup_logging(verbose=True)

        assert logging.getLogger("kombu").level == logging.NOTSET
        assert logging.getLogger("callbooking").level == logging.INFO
