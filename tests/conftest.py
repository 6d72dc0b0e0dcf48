"""
Root conftest.py - fixtures shared across all tests.
"""

import logging

import pytest

from worldgen.logging_setup import PACKAGE_LOGGER


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo handler changes made by configure_logging so caplog keeps working."""
    yield
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
