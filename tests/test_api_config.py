"""Tests for API configuration."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from receipt_mailer.api.config import Settings


class TestApiConfig:
    def test_config_loads_from_env(self):
        env = {
            "DATABASE_URL": "postgresql://u:p@localhost/receipts",
            "WORKER_API_KEY": "worker-secret-123",
            "MAX_UPLOAD_BYTES": "1024",
        }
        with patch.dict(os.environ, env, clear=False):
            settings = Settings(_env_file=None)
            assert settings.DATABASE_URL == "postgresql://u:p@localhost/receipts"
            assert settings.WORKER_API_KEY == "worker-secret-123"
            assert settings.MAX_UPLOAD_BYTES == 1024

    def test_config_defaults(self):
        env = {
            "DATABASE_URL": "postgresql://u:p@localhost/receipts",
            "WORKER_API_KEY": "worker-key",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = Settings(_env_file=None)
            assert settings.MAX_UPLOAD_BYTES == 10 * 1024 * 1024
            assert settings.ALLOWED_EXTENSIONS == (".xls", ".xlsx", ".xlsm")
            assert settings.LOG_JSON is True

    def test_missing_required_keys(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)
