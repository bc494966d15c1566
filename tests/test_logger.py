import logging

from utils.logger import (
    ROOT_LOGGER_NAME,
    get_executor_logger,
    get_fetch_logger,
    get_logger,
    get_scheduler_logger,
    get_storage_logger,
    setup_logger,
)


def test_namespace_loggers_propagate_to_package_root():
    for logger in (get_scheduler_logger(), get_executor_logger(), get_storage_logger(), get_fetch_logger()):
        assert logger.name.startswith(f"{ROOT_LOGGER_NAME}.")
        assert logger.handlers == []
        assert logger.propagate is True


def test_setup_logger_does_not_duplicate_handlers():
    name = "daily_web_scanner_test_setup"
    first = setup_logger(name, level=logging.DEBUG, use_rich=False)
    count = len(first.handlers)
    second = setup_logger(name, level=logging.DEBUG, use_rich=False)

    assert first is second
    assert count == 1 and len(second.handlers) == 1
    assert second.level == logging.DEBUG


def test_get_logger_reuses_configured_ancestor():
    parent = setup_logger("daily_web_scanner_test_parent", use_rich=False)
    child = get_logger("daily_web_scanner_test_parent.child")

    assert child.handlers == []
    assert child.hasHandlers()
    assert parent.handlers
