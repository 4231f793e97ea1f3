#!/usr/bin/env python3
"""
Tests for protoview.core.logging_config
"""

import logging

import pytest

from protoview.core.logging_config import LoggingManager


@pytest.mark.unit
class TestLoggingManager:

    def test_configure_replaces_handlers(self):
        LoggingManager.configure(component="cli")
        LoggingManager.configure(component="cli")
        package_logger = logging.getLogger("protoview")
        assert len(package_logger.handlers) == 1
        assert package_logger.propagate is False

    def test_level_from_config(self):
        LoggingManager.configure(config={'logging': {'level': 'warning'}})
        assert logging.getLogger("protoview").level == logging.WARNING

    def test_verbose_overrides_config(self):
        LoggingManager.configure(verbose=True, config={'logging': {'level': 'ERROR'}})
        assert logging.getLogger("protoview").level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        LoggingManager.configure(config={'logging': {'level': 'chatty'}})
        assert logging.getLogger("protoview").level == logging.INFO

    def test_log_dir_creates_timestamped_file(self, tmp_path):
        log_dir = tmp_path / "logs"
        LoggingManager.configure(component="cleanup", log_dir=str(log_dir))
        files = list(log_dir.iterdir())
        assert len(files) == 1
        assert files[0].name.startswith("cleanup_")
        assert files[0].suffix == ".log"

    def test_explicit_log_file(self, tmp_path):
        log_file = tmp_path / "run.log"
        logger = LoggingManager.configure(component="cli", log_file=str(log_file))
        logger.warning("written to file")
        for handler in logging.getLogger("protoview").handlers:
            handler.flush()
        assert "written to file" in log_file.read_text()

    @pytest.mark.parametrize("name,expected", [
        ("cli", "protoview.cli"),
        ("protoview", "protoview"),
        ("protoview.db", "protoview.db"),
    ])
    def test_get_logger_prefix(self, name, expected):
        assert LoggingManager.get_logger(name).name == expected
