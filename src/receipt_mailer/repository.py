"""
Settings and history repositories backed by PostgresClient.

SettingsRepository satisfies RecipientMappingStore: ``get()`` returns an
immutable SenderSettings snapshot, so a batch keeps reading the mapping it
started with even if a new emails file is uploaded mid-batch.
"""

from __future__ import annotations

import asyncio

from .clients.postgres_client import PostgresClient
from .logging import get_logger
from .models import HistoryRecord, RecipientMapping, SenderSettings

logger = get_logger(__name__)


class SettingsRepository:
    """Recipient mapping and sender address, cached between writes."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres
        self._snapshot: SenderSettings | None = None
        self._lock = asyncio.Lock()

    async def get(self) -> SenderSettings:
        """Return the current settings snapshot, loading it on first use."""
        if self._snapshot is not None:
            return self._snapshot

        async with self._lock:
            if self._snapshot is None:
                row = await self.postgres.fetch_settings()
                if row is None:
                    self._snapshot = SenderSettings(mapping=None, sender_email='')
                else:
                    emails = row['emails']
                    self._snapshot = SenderSettings(
                        mapping=RecipientMapping.from_dict(emails) if emails is not None else None,
                        sender_email=row['sender_email'],
                    )
                logger.debug('settings.loaded', mapped=len(self._snapshot.mapping or ()))
        return self._snapshot

    def invalidate(self) -> None:
        self._snapshot = None

    async def upload_emails(self, emails: dict[str, str]) -> int:
        """
        Replace the recipient mapping.

        Returns:
            Number of entries stored

        Raises:
            ValueError: If the mapping is empty
        """
        if not emails:
            raise ValueError('emails map cannot be empty')
        await self.postgres.upsert_recipient_mapping(emails)
        self.invalidate()
        logger.info('settings.emails_uploaded', count=len(emails))
        return len(emails)

    async def set_sender_email(self, email: str) -> None:
        email = email.strip()
        if not email:
            raise ValueError('sender email cannot be empty')
        await self.postgres.set_sender_email(email)
        self.invalidate()
        logger.info('settings.sender_updated')


class HistoryRepository:
    """Append-only log of processed payers files."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    async def append(self, file_name: str, file_data: bytes) -> None:
        await self.postgres.insert_history(file_name, file_data)
        logger.info('history.appended', file_name=file_name, size_bytes=len(file_data))

    async def list_records(self, limit: int | None = None) -> list[HistoryRecord]:
        return await self.postgres.list_history(limit=limit)
