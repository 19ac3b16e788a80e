"""
Load/save adapters for client-side state, keyed by user id.

Adapters move raw JSON-compatible lists only. Turning those into typed records
(and rejecting what does not parse) is the store's job. Every adapter is async
and raises PersistenceError when the medium fails, so callers never block the
event loop or have to know which medium is in use.
"""

import asyncio
import json
from pathlib import Path
from typing import Protocol

import httpx
from loguru import logger

from chatbot.core.errors import PersistenceError


class Persistence(Protocol):
    async def load_conversations(self, user_id: str) -> list: ...

    async def save_conversations(self, user_id: str, payload: list) -> None: ...

    async def load_memories(self, user_id: str) -> list: ...

    async def save_memories(self, user_id: str, payload: list) -> None: ...


class JsonFilePersistence:
    """One JSON file per user and kind, the desktop equivalent of browser local storage."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, kind: str, user_id: str) -> Path:
        return self.directory / f"chatbot-{kind}-{user_id}.json"

    def _read(self, path: Path) -> list:
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"[persistence] unreadable {path.name}: {e}")
            return []
        except OSError as e:
            raise PersistenceError(f"Cannot read {path.name}") from e
        if not isinstance(data, list):
            logger.warning(f"[persistence] {path.name} does not hold a list, ignoring")
            return []
        return data

    def _write(self, path: Path, payload: list) -> None:
        tmp = path.with_suffix(".tmp")
        try:
            tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise PersistenceError(f"Cannot write {path.name}") from e

    async def load_conversations(self, user_id: str) -> list:
        return await asyncio.to_thread(self._read, self._path("conversations", user_id))

    async def save_conversations(self, user_id: str, payload: list) -> None:
        await asyncio.to_thread(self._write, self._path("conversations", user_id), payload)

    async def load_memories(self, user_id: str) -> list:
        return await asyncio.to_thread(self._read, self._path("memories", user_id))

    async def save_memories(self, user_id: str, payload: list) -> None:
        await asyncio.to_thread(self._write, self._path("memories", user_id), payload)


class ApiPersistence:
    """Stores state through the backend's /api/users endpoints."""

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def _get(self, path: str) -> list:
        try:
            resp = await self.client.get(path)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as e:
            raise PersistenceError(f"GET {path} failed: {e}") from e

    async def _put(self, path: str, payload: list) -> None:
        try:
            resp = await self.client.put(path, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise PersistenceError(f"PUT {path} failed: {e}") from e

    async def load_conversations(self, user_id: str) -> list:
        return await self._get(f"/api/users/{user_id}/conversations")

    async def save_conversations(self, user_id: str, payload: list) -> None:
        await self._put(f"/api/users/{user_id}/conversations", payload)

    async def load_memories(self, user_id: str) -> list:
        return await self._get(f"/api/users/{user_id}/memories")

    async def save_memories(self, user_id: str, payload: list) -> None:
        await self._put(f"/api/users/{user_id}/memories", payload)
