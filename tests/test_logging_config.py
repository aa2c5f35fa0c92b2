import logging

import pytest

from graphsnap.logging_config import LOG_LEVEL_ENV, configure_logging


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    saved = (root.level, list(root.handlers))
    yield root
    root.setLevel(saved[0])
    root.handlers[:] = saved[1]


def test_installs_single_stdout_handler(root_logger, monkeypatch):
    monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
    configure_logging(logging.WARNING)
    configure_logging(logging.WARNING)
    assert root_logger.level == logging.WARNING
    assert len(root_logger.handlers) == 1


def test_env_var_overrides_level(root_logger, monkeypatch):
    monkeypatch.setenv(LOG_LEVEL_ENV, "debug")
    configure_logging(logging.ERROR)
    assert root_logger.level == logging.DEBUG
