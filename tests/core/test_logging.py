"""Tests for orchestra.core.utils.logging."""

import logging
import sys

import pytest
from loguru import logger

from orchestra.core.utils.logging import setup_logging


@pytest.fixture
def restore_logger():
    yield
    logger.remove()
    logger.configure(extra={})
    logger.add(sys.stderr)


def test_file_sink_records_agent(tmp_path, restore_logger):
    log_file = tmp_path / "orchestra.log"
    setup_logging(level="info", log_file=str(log_file))

    logger.bind(agent="Orchestrator").info("Directive: WAIT")
    logger.info("System ready")
    logger.debug("not written")
    logger.remove()

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert "| Orchestrator |" in lines[0]
    assert lines[0].endswith("Directive: WAIT")
    assert "| system |" in lines[1]


def test_library_loggers_quieted_unless_debug(restore_logger):
    setup_logging(level="INFO")
    assert logging.getLogger("LiteLLM").level == logging.WARNING

    setup_logging(level="DEBUG")
    assert logging.getLogger("LiteLLM").level == logging.DEBUG
