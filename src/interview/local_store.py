"""
Filesystem-backed store.

One JSON file per entity under DATA_DIR, laid out by codec.record_path().
Strongest consistency of the three backends; meant for single-process use
and local development.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from . import codec
from .codec import Entity, EntityKind
from .errors import CodecError
from .store import DurableStore

logger = logging.getLogger(__name__)


class LocalStore(DurableStore):
    backend_name = "local"

    def __init__(self, data_dir: str, settings_cache_seconds: float = 5.0):
        super().__init__(settings_cache_seconds=settings_cache_seconds)
        self._root = Path(data_dir)

    def _path(self, relative: str) -> Path:
        return self._root / relative

    def _write_atomic(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _read(self, path: Path) -> Optional[bytes]:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def _read_dir(self, directory: Path) -> List[tuple]:
        if not directory.is_dir():
            return []
        entries = []
        for child in sorted(directory.iterdir()):
            if child.suffix != ".json" or child.name.startswith(".tmp-") or not child.is_file():
                continue
            try:
                entries.append((child.name, child.read_bytes()))
            except OSError as e:
                logger.warning(f"Skipping unreadable file {child}: {e}")
        return entries

    def _unlink(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass

    async def _put(self, entity: Entity) -> None:
        path = self._path(codec.path_for(entity))
        await asyncio.to_thread(self._write_atomic, path, codec.encode(entity))

    async def _get(self, kind: EntityKind, entity_id: str, scope: Optional[str]) -> Optional[Entity]:
        path = self._path(codec.record_path(kind, entity_id, scope))
        data = await asyncio.to_thread(self._read, path)
        if data is None:
            return None
        return codec.decode(kind, data)

    async def _list(self, kind: EntityKind, scope: Optional[str]) -> List[Entity]:
        directory = self._path(codec.collection_prefix(kind, scope))
        entities = []
        for name, data in await asyncio.to_thread(self._read_dir, directory):
            try:
                entities.append(codec.decode(kind, data))
            except CodecError as e:
                # Partial corruption must not hide the rest of the collection
                logger.warning(f"Skipping invalid {kind.value} file {name}: {e}")
        return entities

    async def _delete(self, kind: EntityKind, entity_id: str, scope: Optional[str]) -> None:
        path = self._path(codec.record_path(kind, entity_id, scope))
        await asyncio.to_thread(self._unlink, path)
