"""
Postgres client for service settings and upload history.

SQLAlchemy 2.0 async engine + asyncpg, raw SQL via ``text()``.

Tables:
- settings: single row (id = 1) with the e-mail mapping (JSONB) and sender address
- files: every processed payers file with its body, newest first on read
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..errors import wrap_database_error
from ..models import HistoryRecord

logger = structlog.get_logger(__name__)

SETTINGS_ROW_ID = 1

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS settings (
        id INTEGER PRIMARY KEY,
        emails JSONB,
        sender_email TEXT NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS files (
        id SERIAL PRIMARY KEY,
        file_name TEXT NOT NULL,
        file_data BYTEA NOT NULL,
        created_at TIMESTAMP NOT NULL DEFAULT now()
    )
    """,
)


def _sanitize_url(url: str) -> str:
    """Remove libpq-only query params that asyncpg rejects."""
    strip_params = {'channel_binding', 'sslmode'}
    parsed = urlparse(url)
    if not parsed.query:
        return url
    params = parse_qs(parsed.query)
    filtered = {k: v for k, v in params.items() if k not in strip_params}
    return urlunparse(parsed._replace(query=urlencode(filtered, doseq=True)))


def _to_asyncpg_url(url: str) -> str:
    url = _sanitize_url(url)
    if url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql+asyncpg://', 1)
    if url.startswith('postgresql://') and '+asyncpg' not in url:
        return url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return url


def _load_emails(value: Any) -> dict[str, str] | None:
    # asyncpg hands JSONB back as text unless a codec is registered
    if value is None:
        return None
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


class PostgresClient:
    """
    Async Postgres client for the settings row and the files history.

    Every query method raises DatabaseError on failure; callers decide
    whether the failure is fatal.
    """

    def __init__(self, database_url: str | None = None, require_ssl: bool = False):
        self._engine: AsyncEngine | None = None
        self._database_url = database_url
        self._require_ssl = require_ssl

    async def connect(self, database_url: str | None = None) -> None:
        """Create the async engine. No-op if already connected."""
        if self._engine is not None:
            return

        url = database_url or self._database_url
        if not url:
            raise ValueError('database_url is required')

        connect_args: dict[str, Any] = {}
        if self._require_ssl:
            connect_args['ssl'] = 'require'

        self._engine = create_async_engine(
            _to_asyncpg_url(url),
            pool_size=5,
            max_overflow=5,
            pool_pre_ping=True,
            pool_timeout=30,
            connect_args=connect_args,
        )
        logger.info('postgres_client.connected')

    async def close(self) -> None:
        """Dispose of the engine and connection pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info('postgres_client.closed')

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError('PostgresClient not connected, call connect() first')
        return self._engine

    async def verify_connectivity(self) -> bool:
        """Return True if we can execute a simple query."""
        try:
            async with self.engine.begin() as conn:
                await conn.execute(text('SELECT 1'))
            return True
        except Exception:
            logger.exception('postgres_client.connectivity_check_failed')
            return False

    async def setup_schema(self) -> None:
        """Create the settings and files tables if they do not exist."""
        try:
            async with self.engine.begin() as conn:
                for statement in SCHEMA_STATEMENTS:
                    await conn.execute(text(statement))
        except Exception as e:
            raise wrap_database_error(e, context={'operation': 'setup_schema'}) from e
        logger.info('postgres_client.schema_ready')

    # =========================================================================
    # Settings
    # =========================================================================

    async def fetch_settings(self) -> dict[str, Any] | None:
        """
        Read the settings row.

        Returns:
            ``{'emails': dict | None, 'sender_email': str}`` or None when the
            row has never been written
        """
        sql = text('SELECT emails, sender_email FROM settings WHERE id = :id')
        try:
            async with self.engine.connect() as conn:
                row = (await conn.execute(sql, {'id': SETTINGS_ROW_ID})).first()
        except Exception as e:
            raise wrap_database_error(e, context={'operation': 'fetch_settings'}) from e

        if row is None:
            return None
        return {
            'emails': _load_emails(row.emails),
            'sender_email': row.sender_email or '',
        }

    async def upsert_recipient_mapping(self, emails: dict[str, str]) -> None:
        """Replace the stored e-mail mapping, keeping the sender address."""
        sql = text("""
            INSERT INTO settings (id, emails)
            VALUES (:id, CAST(:emails AS jsonb))
            ON CONFLICT (id) DO UPDATE SET emails = EXCLUDED.emails
        """)
        try:
            async with self.engine.begin() as conn:
                await conn.execute(
                    sql,
                    {'id': SETTINGS_ROW_ID, 'emails': json.dumps(emails, ensure_ascii=False)},
                )
        except Exception as e:
            raise wrap_database_error(
                e, context={'operation': 'upsert_recipient_mapping', 'count': len(emails)}
            ) from e
        logger.info('postgres_client.mapping_saved', count=len(emails))

    async def set_sender_email(self, email: str) -> None:
        """Replace the stored sender address, keeping the mapping."""
        sql = text("""
            INSERT INTO settings (id, sender_email)
            VALUES (:id, :sender_email)
            ON CONFLICT (id) DO UPDATE SET sender_email = EXCLUDED.sender_email
        """)
        try:
            async with self.engine.begin() as conn:
                await conn.execute(sql, {'id': SETTINGS_ROW_ID, 'sender_email': email})
        except Exception as e:
            raise wrap_database_error(e, context={'operation': 'set_sender_email'}) from e
        logger.info('postgres_client.sender_saved')

    # =========================================================================
    # History
    # =========================================================================

    async def insert_history(self, file_name: str, file_data: bytes) -> None:
        sql = text("""
            INSERT INTO files (file_name, file_data, created_at)
            VALUES (:file_name, :file_data, :created_at)
        """)
        try:
            async with self.engine.begin() as conn:
                await conn.execute(
                    sql,
                    {
                        'file_name': file_name,
                        'file_data': file_data,
                        'created_at': datetime.now(),
                    },
                )
        except Exception as e:
            raise wrap_database_error(
                e, context={'operation': 'insert_history', 'file_name': file_name}
            ) from e

    async def list_history(self, limit: int | None = None) -> list[HistoryRecord]:
        """Return processed files, newest first."""
        query = (
            'SELECT id, file_name, octet_length(file_data) AS size_bytes, created_at '
            'FROM files ORDER BY created_at DESC'
        )
        params: dict[str, Any] = {}
        if limit is not None:
            query += ' LIMIT :limit'
            params['limit'] = limit
        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(text(query), params)).all()
        except Exception as e:
            raise wrap_database_error(e, context={'operation': 'list_history'}) from e

        return [
            HistoryRecord(
                id=row.id,
                file_name=row.file_name,
                size_bytes=row.size_bytes or 0,
                created_at=row.created_at,
            )
            for row in rows
        ]
