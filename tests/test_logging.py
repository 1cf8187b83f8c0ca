"""
Tests for the structlog pipeline setup.
"""

import logging

from tourbook.core.config import get_settings
from tourbook.core.logging import QUIET_LOGGERS, add_app_context, build_processors, setup_logging


def test_app_context_is_stamped_without_overwriting():
    settings = get_settings()

    event = add_app_context(None, "info", {"event": "hold_created"})
    assert event["service"] == settings.APP_NAME
    assert event["env"] == settings.ENVIRONMENT

    event = add_app_context(None, "info", {"event": "hold_created", "service": "worker"})
    assert event["service"] == "worker"


def test_app_context_only_in_production():
    assert add_app_context in build_processors(production=True)
    assert add_app_context not in build_processors(production=False)


def test_setup_logging_installs_one_handler():
    setup_logging()
    setup_logging()

    assert len(logging.getLogger().handlers) == 1
    for name in QUIET_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING
