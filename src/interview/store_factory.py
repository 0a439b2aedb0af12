"""
Backend selection.

Exactly one DurableStore per process, picked from a StorageConfig in fixed
priority order: key-value > blob > local.
"""

import logging
from typing import Optional

from . import config
from .blob_client import HttpBlobClient
from .blob_store import BlobStore, RetryPolicy
from .config import StorageConfig
from .kv_client import RestKeyValueClient, SQLiteKeyValueClient
from .kv_store import KeyValueStore
from .local_store import LocalStore
from .store import DurableStore

logger = logging.getLogger(__name__)


def create_store(storage: StorageConfig) -> DurableStore:
    if storage.kv_url:
        if storage.kv_url.startswith("sqlite:///"):
            client = SQLiteKeyValueClient.from_url(storage.kv_url)
        elif storage.kv_url.startswith(("http://", "https://")):
            client = RestKeyValueClient(storage.kv_url, storage.kv_token)
        else:
            raise ValueError(f"Unsupported KV_URL scheme: {storage.kv_url}")
        logger.info("Using key-value store")
        return KeyValueStore(client, settings_cache_seconds=storage.settings_cache_seconds)

    if storage.blob_token:
        logger.info("Using blob store")
        return BlobStore(
            HttpBlobClient(storage.blob_token, storage.blob_api_url),
            retry_policy=RetryPolicy(
                max_attempts=storage.blob_retry_attempts,
                base_delay=storage.blob_retry_base_delay,
            ),
            settings_cache_seconds=storage.settings_cache_seconds,
        )

    logger.info(f"Using local store at {storage.data_dir}")
    return LocalStore(storage.data_dir, settings_cache_seconds=storage.settings_cache_seconds)


# Singleton instance
_store: Optional[DurableStore] = None


def get_store() -> DurableStore:
    """Get the process-wide store, creating it on first use."""
    global _store
    if _store is None:
        _store = create_store(config.load_storage_config())
    return _store
