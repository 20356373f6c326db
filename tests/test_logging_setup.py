"""Tests for root logger configuration."""

import logging

import pytest

from globetiles import logging_setup


@pytest.fixture
def clean_root():
    root = logging.getLogger()
    saved = (list(root.handlers), root.level)
    if hasattr(root, "_globetiles_configured"):
        del root._globetiles_configured
    yield root
    if hasattr(root, "_globetiles_configured"):
        del root._globetiles_configured
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])


class TestSetupLogging:

    def test_explicit_level(self, clean_root):
        logging_setup.setup_logging("debug")
        assert clean_root.level == logging.DEBUG
        assert len(clean_root.handlers) == 1

    def test_env_level(self, clean_root, monkeypatch):
        monkeypatch.setenv(logging_setup.LOG_LEVEL_ENV, "WARNING")
        logging_setup.setup_logging()
        assert clean_root.level == logging.WARNING

    def test_bad_level_falls_back_to_info(self, clean_root, monkeypatch):
        monkeypatch.delenv(logging_setup.LOG_LEVEL_ENV, raising=False)
        logging_setup.setup_logging("chatty")
        assert clean_root.level == logging.INFO

    def test_idempotent(self, clean_root):
        logging_setup.setup_logging(logging.ERROR)
        logging_setup.setup_logging(logging.DEBUG)
        assert clean_root.level == logging.ERROR
        assert len(clean_root.handlers) == 1

    def test_get_logger(self, clean_root):
        logger = logging_setup.get_logger("globetiles.test")
        assert logger.name == "globetiles.test"
        assert getattr(clean_root, "_globetiles_configured", False)
