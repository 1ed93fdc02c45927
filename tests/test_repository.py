"""
Tests for SettingsRepository and HistoryRepository over a mocked PostgresClient.
"""

from unittest.mock import AsyncMock

import pytest

from receipt_mailer.models import HistoryRecord
from receipt_mailer.repository import HistoryRepository, SettingsRepository


@pytest.fixture
def postgres():
    pg = AsyncMock()
    pg.fetch_settings = AsyncMock(
        return_value={'emails': {'Иванов Иван': 'ivanov@example.com'}, 'sender_email': 'org@x.com'}
    )
    return pg


class TestSettingsRepository:
    @pytest.mark.asyncio
    async def test_get_builds_snapshot(self, postgres):
        repo = SettingsRepository(postgres)

        settings = await repo.get()

        assert settings.sender_email == 'org@x.com'
        assert settings.mapping.resolve('иванов иван') == 'ivanov@example.com'

    @pytest.mark.asyncio
    async def test_snapshot_cached_until_write(self, postgres):
        repo = SettingsRepository(postgres)

        first = await repo.get()
        second = await repo.get()
        await repo.upload_emails({'Петров Петр': 'petrov@example.com'})
        await repo.get()

        assert first is second
        assert postgres.fetch_settings.await_count == 2

    @pytest.mark.asyncio
    async def test_snapshot_survives_later_upload(self, postgres):
        repo = SettingsRepository(postgres)
        snapshot = await repo.get()

        postgres.fetch_settings.return_value = {
            'emails': {'Петров Петр': 'petrov@example.com'},
            'sender_email': 'org@x.com',
        }
        await repo.upload_emails({'Петров Петр': 'petrov@example.com'})

        # A batch holding the old snapshot still sees the old mapping
        assert snapshot.mapping.resolve('Иванов Иван') == 'ivanov@example.com'
        assert (await repo.get()).mapping.resolve('Иванов Иван') is None

    @pytest.mark.asyncio
    async def test_absent_row_means_nothing_configured(self, postgres):
        postgres.fetch_settings.return_value = None

        settings = await SettingsRepository(postgres).get()

        assert settings.mapping is None
        assert settings.sender_email == ''

    @pytest.mark.asyncio
    async def test_null_emails_means_no_mapping(self, postgres):
        postgres.fetch_settings.return_value = {'emails': None, 'sender_email': 'org@x.com'}

        settings = await SettingsRepository(postgres).get()

        assert settings.mapping is None

    @pytest.mark.asyncio
    async def test_upload_emails_rejects_empty(self, postgres):
        with pytest.raises(ValueError):
            await SettingsRepository(postgres).upload_emails({})

        postgres.upsert_recipient_mapping.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_set_sender_email_strips(self, postgres):
        await SettingsRepository(postgres).set_sender_email('  org@x.com ')

        postgres.set_sender_email.assert_awaited_once_with('org@x.com')

    @pytest.mark.asyncio
    async def test_set_sender_email_rejects_blank(self, postgres):
        with pytest.raises(ValueError):
            await SettingsRepository(postgres).set_sender_email('   ')


class TestHistoryRepository:
    @pytest.mark.asyncio
    async def test_append(self, postgres):
        await HistoryRepository(postgres).append('payers.xlsx', b'data')

        postgres.insert_history.assert_awaited_once_with('payers.xlsx', b'data')

    @pytest.mark.asyncio
    async def test_list_records(self, postgres):
        postgres.list_history = AsyncMock(return_value=[HistoryRecord(file_name='a.xlsx')])

        records = await HistoryRepository(postgres).list_records(limit=5)

        assert records[0].file_name == 'a.xlsx'
        postgres.list_history.assert_awaited_once_with(limit=5)
