"""
Unit tests for the logging setup.

Tests the record format, token masking, the rotating log file, and
reconfiguration.
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler

from petshop.config_schema import LoggingConfig
from petshop.utils.custom_logger import LOG_FILE_NAME, CustomFormatter, configure_logging, mask_tokens


def make_record(name: str, msg: str, level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, msg, None, None)


class TestFormatter:
    def test_drops_package_prefix(self):
        line = CustomFormatter().format(make_record("petshop.services.catalog_store", "Synced 3 products"))

        assert line.endswith(" - services.catalog_store - INFO: Synced 3 products")
        assert line[8:11] in (" AM", " PM")

    def test_masks_tokens_in_message(self):
        line = CustomFormatter().format(make_record("petshop.cli", "Using token ghp_abcDEF123456", logging.WARNING))

        assert "ghp_***" in line
        assert "abcDEF123456" not in line

    def test_masks_tokens_in_traceback(self):
        try:
            raise RuntimeError("Authorization: Bearer s3cr3t-value")
        except RuntimeError:
            record = make_record("petshop.services.remote_store", "Request failed", logging.ERROR)
            record.exc_info = sys.exc_info()

        line = CustomFormatter().format(record)

        assert "RuntimeError" in line
        assert "s3cr3t-value" not in line


class TestMaskTokens:
    def test_fine_grained_token(self):
        assert mask_tokens("token=github_pat_11ABC_xyz789") == "token=github_pat_***"

    def test_plain_text_unchanged(self):
        assert mask_tokens("Sync companies/ABC/products.json") == "Sync companies/ABC/products.json"


class TestConfigureLogging:
    def test_file_handler_rotates_daily(self, package_logger, tmp_path):
        configure_logging(LoggingConfig(log_to_console=False, retention_days=3), log_dir=tmp_path / "logs")

        (handler,) = package_logger.handlers
        assert isinstance(handler, TimedRotatingFileHandler)
        assert handler.backupCount == 3
        assert handler.when == "MIDNIGHT"

    def test_writes_module_records_to_file(self, package_logger, tmp_path):
        configure_logging(LoggingConfig(log_to_console=False), log_dir=tmp_path)

        logging.getLogger("petshop.services.encryption").warning("Token ghp_abcdef was rejected")
        logging.getLogger("petshop.services.encryption").debug("not written at INFO")
        for handler in package_logger.handlers:
            handler.flush()

        content = (tmp_path / LOG_FILE_NAME).read_text(encoding="utf-8")
        assert "services.encryption - WARNING: Token ghp_*** was rejected" in content
        assert "not written" not in content

    def test_no_file_when_disabled(self, package_logger, tmp_path):
        configure_logging(LoggingConfig(log_to_file=False), log_dir=tmp_path / "logs")

        assert [type(h) for h in package_logger.handlers] == [logging.StreamHandler]
        assert not (tmp_path / "logs").exists()

    def test_reconfigure_updates_level_without_new_handlers(self, package_logger):
        configure_logging(LoggingConfig(level="WARNING", log_to_file=False))

        configure_logging(LoggingConfig(level="ERROR", log_to_file=False))

        (handler,) = package_logger.handlers
        assert package_logger.level == logging.ERROR
        assert handler.level == logging.ERROR

    def test_debug_overrides_level(self, package_logger):
        configure_logging(LoggingConfig(level="ERROR", log_to_file=False), debug=True)

        assert package_logger.level == logging.DEBUG
