"""
Unit Tests for backend selection
"""

import pytest

from src.interview.blob_store import BlobStore
from src.interview.config import StorageConfig
from src.interview.kv_client import RestKeyValueClient, SQLiteKeyValueClient
from src.interview.kv_store import KeyValueStore
from src.interview.local_store import LocalStore
from src.interview.store_factory import create_store


class TestCreateStore:
    @pytest.mark.asyncio
    async def test_local_is_the_fallback(self, tmp_path):
        store = create_store(StorageConfig(data_dir=str(tmp_path)))

        assert isinstance(store, LocalStore)
        assert store.backend_name == "local"

    @pytest.mark.asyncio
    async def test_blob_token_selects_blob(self, tmp_path):
        store = create_store(StorageConfig(
            data_dir=str(tmp_path), blob_token="vercel_blob_rw_x", blob_retry_attempts=5, blob_retry_base_delay=0.1,
        ))
        try:
            assert isinstance(store, BlobStore)
            assert store._policy.max_attempts == 5
            assert store._policy.base_delay == 0.1
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_kv_wins_over_blob(self, tmp_path):
        store = create_store(StorageConfig(
            kv_url="https://kv.example.com", kv_token="t", blob_token="vercel_blob_rw_x",
        ))
        try:
            assert isinstance(store, KeyValueStore)
            assert isinstance(store._client, RestKeyValueClient)
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_sqlite_kv_url(self, tmp_path):
        path = tmp_path / "kv.db"
        store = create_store(StorageConfig(kv_url=f"sqlite:///{path}"))
        try:
            assert isinstance(store, KeyValueStore)
            assert isinstance(store._client, SQLiteKeyValueClient)
            assert store._client._db_path == str(path)
        finally:
            await store.close()

    def test_unsupported_kv_scheme(self):
        with pytest.raises(ValueError):
            create_store(StorageConfig(kv_url="redis://localhost:6379"))

    def test_settings_cache_window_is_passed_through(self, tmp_path):
        store = create_store(StorageConfig(data_dir=str(tmp_path), settings_cache_seconds=0.5))

        assert store._settings_cache.ttl == 0.5
