"""Tests for structured logging configuration."""

import logging

from account_service.core.logging_config import _redact_secrets, configure_logging


class TestRedactSecrets:
    """Tests for the secret-masking processor."""

    def test_masks_sensitive_keys(self):
        event = _redact_secrets(
            None,
            "info",
            {"event": "x", "password": "hunter2", "auth_token": "abcdefgh", "user_id": "u1"},
        )
        assert event["password"] == "hu***"
        assert event["auth_token"] == "ab***"
        assert event["user_id"] == "u1"

    def test_short_values_fully_masked(self):
        event = _redact_secrets(None, "info", {"secret": "abc"})
        assert event["secret"] == "***"


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_sets_root_level_and_single_handler(self):
        configure_logging("WARNING", json_output=True)
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1

    def test_unknown_level_falls_back_to_info(self):
        configure_logging("NOT-A-LEVEL")
        assert logging.getLogger().level == logging.INFO
