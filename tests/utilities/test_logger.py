"""
Tests for the logging setup.
"""

import logging

import pytest

from utilities.logger import get_logger, redact_secrets, setup_logging


class TestRedactSecrets:
    """Test cases for the credential redaction processor."""

    def test_masks_credential_keys(self):
        event = {
            "event": "User logged in",
            "password": "s3cret",
            "Authorization": "Bearer abc",
            "token": "abc",
            "user_id": 7,
        }

        result = redact_secrets(None, "info", event)

        assert result["password"] == "***"
        assert result["Authorization"] == "***"
        assert result["token"] == "***"
        assert result["user_id"] == 7
        assert result["event"] == "User logged in"


class TestSetupLogging:
    """Test cases for setup_logging."""

    @pytest.fixture
    def restore_root_handlers(self):
        root = logging.getLogger()
        handlers = list(root.handlers)
        yield
        for handler in root.handlers:
            if handler not in handlers:
                root.removeHandler(handler)
                handler.close()

    def test_file_logging(self, tmp_path, restore_root_handlers):
        log_file = tmp_path / "logs" / "api.log"

        setup_logging(log_level="INFO", log_format="json", log_file=log_file)
        get_logger("bookstore.test").info("Book created", book_id=1, password="s3cret")

        content = log_file.read_text()
        assert "Logging system initialized" in content
        assert "Book created" in content
        assert "s3cret" not in content

    def test_console_format(self, restore_root_handlers):
        setup_logging(log_level="warning", log_format="console", debug=True)

        assert logging.getLogger().level == logging.WARNING
