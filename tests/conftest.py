"""Pytest configuration for gadget-guard tests."""

import logging
import sys
from pathlib import Path

import pytest

# Ensure src/gadgetguard is importable
src_path = str(Path(__file__).parent.parent / "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)


@pytest.fixture(autouse=True)
def _reset_gadgetguard_logger():
    """Undo configure_logging() so caplog keeps seeing gadgetguard records."""
    yield
    logger = logging.getLogger("gadgetguard")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
