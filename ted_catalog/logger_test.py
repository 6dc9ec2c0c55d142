import logging

from ted_catalog.logger import LOG_FORMAT, setup_logging


def test_setup_logging_installs_one_handler():
    first = setup_logging("DEBUG")
    second = setup_logging("WARNING")

    assert first is second is logging.getLogger("ted_catalog")
    assert len(second.handlers) == 1
    assert second.handlers[0].formatter._fmt == LOG_FORMAT
    assert second.level == logging.WARNING
    setup_logging("INFO")
