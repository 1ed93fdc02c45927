"""
Configuration management for the Receipt Mailer pipeline.

Loads settings from environment variables with sensible defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / '.env'
if _env_file.exists():
    load_dotenv(_env_file)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Configuration settings loaded from environment."""

    # SMTP
    SMTP_HOST: str = os.getenv('SMTP_HOST', '')
    SMTP_PORT: int = int(os.getenv('SMTP_PORT', '465'))
    SMTP_EMAIL: str = os.getenv('SMTP_EMAIL', '')
    SMTP_PASSWORD: str = os.getenv('SMTP_PASSWORD', '')
    SMTP_USE_TLS: bool = _env_bool('SMTP_USE_TLS', 'true')
    SMTP_TIMEOUT: float = float(os.getenv('SMTP_TIMEOUT', '30'))
    # The SMTP server does not keep sent messages, so the sender gets a copy
    SMTP_COPY_TO_SENDER: bool = _env_bool('SMTP_COPY_TO_SENDER', 'true')

    # Dispatch
    MAX_PARALLEL_SENDS: int = int(os.getenv('MAX_PARALLEL_SENDS', '10'))
    MAIL_SUBJECT: str = os.getenv('MAIL_SUBJECT', 'Квитанция об оплате')
    MAIL_BODY: str = os.getenv('MAIL_BODY', '')

    # Postgres (settings + history)
    DATABASE_URL: str = os.getenv('DATABASE_URL', '')

    # Files
    TMP_DIR: str = os.getenv('TMP_DIR', './tmp')
    RECEIPT_TEMPLATE_PATH: str = os.getenv(
        'RECEIPT_TEMPLATE_PATH', './assets/pdf/blank_receipt.pdf'
    )
    RECEIPT_FONT_PATH: str = os.getenv('RECEIPT_FONT_PATH', '')

    # Logging
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')

    @classmethod
    def validate(cls) -> list[str]:
        """
        Validate that required configuration is present.

        Returns:
            List of missing required configuration keys
        """
        missing = []
        if not cls.SMTP_HOST:
            missing.append('SMTP_HOST')
        if not cls.SMTP_EMAIL:
            missing.append('SMTP_EMAIL')
        if not cls.SMTP_PASSWORD:
            missing.append('SMTP_PASSWORD')
        if not cls.DATABASE_URL:
            missing.append('DATABASE_URL')
        return missing


# Singleton config instance
config = Config()
