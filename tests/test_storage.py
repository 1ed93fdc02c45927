"""
Tests for LocalFileStorage.
"""

import re
from concurrent.futures import ThreadPoolExecutor

import pytest

from receipt_mailer.storage import LocalFileStorage


class TestStore:
    def test_store_writes_timestamped_file(self, tmp_path):
        storage = LocalFileStorage(tmp_path)

        path = storage.store('payers.xlsx', b'data')

        assert path.parent == tmp_path / 'payers'
        assert re.fullmatch(r'\d+_payers\.xlsx', path.name)
        assert path.read_bytes() == b'data'

    def test_store_strips_directories(self, tmp_path):
        storage = LocalFileStorage(tmp_path, uploads_subdir='emails')

        path = storage.store('../../etc/emails.xlsx', b'x')

        assert path.parent == tmp_path / 'emails'
        assert path.name.endswith('_emails.xlsx')

    def test_store_rejects_empty_name(self, tmp_path):
        with pytest.raises(ValueError):
            LocalFileStorage(tmp_path).store('', b'x')


class TestRunDirs:
    def test_run_dir_is_timestamped(self, tmp_path):
        path = LocalFileStorage(tmp_path).make_run_dir('sent')

        assert path.parent == tmp_path / 'sent'
        assert re.fullmatch(r'\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}(_\d+)?', path.name)
        assert path.is_dir()

    def test_run_dirs_never_collide(self, tmp_path):
        storage = LocalFileStorage(tmp_path)

        first = storage.make_run_dir('patterns')
        second = storage.make_run_dir('patterns')

        assert first != second
        assert first.is_dir() and second.is_dir()

    def test_concurrent_run_dirs_are_distinct(self, tmp_path):
        storage = LocalFileStorage(tmp_path)

        with ThreadPoolExecutor(max_workers=16) as pool:
            paths = list(pool.map(lambda _: storage.make_run_dir('sent'), range(32)))

        assert len(set(paths)) == 32
        assert all(p.is_dir() for p in paths)
