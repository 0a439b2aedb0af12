"""
Key-value clients used by KeyValueStore.

Only the handful of Redis-style commands the store needs are exposed:
strings (GET/SET/DEL), sets (SADD/SREM/SMEMBERS) and sorted sets
(ZADD/ZREM/ZRANGE ... REV).

- RestKeyValueClient: Upstash-compatible REST endpoint over HTTPS
- SQLiteKeyValueClient: the same command set on a local SQLite file, for
  single-node deployments and tests
"""

import asyncio
import logging
import os
from typing import Any, List, Optional, Protocol

import aiosqlite
import httpx

logger = logging.getLogger(__name__)


class KeyValueError(Exception):
    """The key-value backend rejected a command."""


class KeyValueClient(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def sadd(self, key: str, member: str) -> None: ...

    async def srem(self, key: str, member: str) -> None: ...

    async def smembers(self, key: str) -> List[str]: ...

    async def zadd(self, key: str, score: float, member: str) -> None: ...

    async def zrem(self, key: str, member: str) -> None: ...

    async def zrevrange(self, key: str) -> List[str]: ...

    async def aclose(self) -> None: ...


class RestKeyValueClient:
    """Each command is POSTed as a JSON array, e.g. ["SET", "k", "v"]."""

    def __init__(self, url: str, token: str, http: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        if not token:
            raise ValueError("A token is required for the REST key-value backend")
        self._url = url.rstrip("/")
        self._token = token
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def _command(self, *args: Any) -> Any:
        response = await self._http.post(
            self._url,
            json=[str(a) for a in args],
            headers={"authorization": f"Bearer {self._token}"},
        )
        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.status_code >= 400 or "error" in data:
            raise KeyValueError(f"{args[0]} failed: {data.get('error') or f'HTTP {response.status_code}'}")
        return data.get("result")

    async def get(self, key: str) -> Optional[str]:
        return await self._command("GET", key)

    async def set(self, key: str, value: str) -> None:
        await self._command("SET", key, value)

    async def delete(self, key: str) -> None:
        await self._command("DEL", key)

    async def sadd(self, key: str, member: str) -> None:
        await self._command("SADD", key, member)

    async def srem(self, key: str, member: str) -> None:
        await self._command("SREM", key, member)

    async def smembers(self, key: str) -> List[str]:
        return list(await self._command("SMEMBERS", key) or [])

    async def zadd(self, key: str, score: float, member: str) -> None:
        await self._command("ZADD", key, score, member)

    async def zrem(self, key: str, member: str) -> None:
        await self._command("ZREM", key, member)

    async def zrevrange(self, key: str) -> List[str]:
        return list(await self._command("ZRANGE", key, 0, -1, "REV") or [])

    async def aclose(self) -> None:
        await self._http.aclose()


class SQLiteKeyValueClient:
    """Local SQLite implementation of the key-value command set."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @classmethod
    def from_url(cls, url: str) -> "SQLiteKeyValueClient":
        if not url.startswith("sqlite:///"):
            raise ValueError(f"Not a sqlite URL: {url}")
        return cls(url[len("sqlite:///"):])

    async def _ensure_initialized(self):
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            directory = os.path.dirname(self._db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS kv_strings (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                """)
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS kv_sets (
                        key TEXT NOT NULL,
                        member TEXT NOT NULL,
                        PRIMARY KEY (key, member)
                    )
                """)
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS kv_zsets (
                        key TEXT NOT NULL,
                        member TEXT NOT NULL,
                        score REAL NOT NULL,
                        PRIMARY KEY (key, member)
                    )
                """)
                await db.execute("CREATE INDEX IF NOT EXISTS idx_zsets_score ON kv_zsets(key, score)")
                await db.commit()
            self._initialized = True

    def _conn(self) -> aiosqlite.Connection:
        """Return an aiosqlite connection context manager (do NOT await here)."""
        return aiosqlite.connect(self._db_path)

    async def _write(self, sql: str, params: tuple) -> None:
        await self._ensure_initialized()
        async with self._conn() as db:
            await db.execute(sql, params)
            await db.commit()

    async def _read_column(self, sql: str, params: tuple) -> List[str]:
        await self._ensure_initialized()
        async with self._conn() as db:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
            return [r[0] for r in rows]

    async def get(self, key: str) -> Optional[str]:
        values = await self._read_column("SELECT value FROM kv_strings WHERE key = ?", (key,))
        return values[0] if values else None

    async def set(self, key: str, value: str) -> None:
        await self._write(
            "INSERT INTO kv_strings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value)
        )

    async def delete(self, key: str) -> None:
        await self._write("DELETE FROM kv_strings WHERE key = ?", (key,))

    async def sadd(self, key: str, member: str) -> None:
        await self._write("INSERT OR IGNORE INTO kv_sets (key, member) VALUES (?, ?)", (key, member))

    async def srem(self, key: str, member: str) -> None:
        await self._write("DELETE FROM kv_sets WHERE key = ? AND member = ?", (key, member))

    async def smembers(self, key: str) -> List[str]:
        return await self._read_column("SELECT member FROM kv_sets WHERE key = ?", (key,))

    async def zadd(self, key: str, score: float, member: str) -> None:
        await self._write(
            "INSERT INTO kv_zsets (key, member, score) VALUES (?, ?, ?) "
            "ON CONFLICT(key, member) DO UPDATE SET score = excluded.score",
            (key, member, score)
        )

    async def zrem(self, key: str, member: str) -> None:
        await self._write("DELETE FROM kv_zsets WHERE key = ? AND member = ?", (key, member))

    async def zrevrange(self, key: str) -> List[str]:
        return await self._read_column(
            "SELECT member FROM kv_zsets WHERE key = ? ORDER BY score DESC, member DESC", (key,)
        )

    async def aclose(self) -> None:
        """Connections are opened per command; nothing to release."""
