"""
Local persistence for conversations and settings.

The desktop client keeps everything in one JSON key-value document:

    {"conversations": [...], "settings": {...}}

Key Components:
- ConversationStore / SettingsStore: Protocols the chat layer depends on
- JsonFileStore: aiofiles-backed implementation with cross-process locking

Writes replace the whole document atomically (temp file + rename), so a crash
mid-write leaves the previous version intact.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager, suppress
from typing import Any, Protocol

import aiofiles
from filelock import FileLock
from filelock import Timeout as FileLockTimeout
from pydantic import ValidationError

from ..logging_utils import log_operation
from .models import Conversation, Settings

logger = logging.getLogger(__name__)

CONVERSATIONS_KEY = "conversations"
SETTINGS_KEY = "settings"


@asynccontextmanager
async def async_file_lock(
    file_path: str, timeout: float = 30.0
) -> AsyncGenerator[None]:
    """
    Async context manager for cross-process file locking with timeout.

    The blocking acquire runs in the default executor so the event loop
    keeps serving the stream while another process holds the lock.

    Raises:
        TimeoutError: If the lock cannot be acquired within the timeout period
    """
    # Acquire and release may run on different executor threads
    file_lock = FileLock(f"{file_path}.lock", timeout=timeout, thread_local=False)
    loop = asyncio.get_running_loop()

    try:
        await loop.run_in_executor(None, file_lock.acquire)
    except FileLockTimeout as e:
        raise TimeoutError(f"Failed to acquire file lock within {timeout}s") from e

    try:
        yield
    finally:
        # Ignore release errors - lock will be cleaned up by system
        with suppress(OSError):
            await loop.run_in_executor(None, file_lock.release)


class ConversationStore(Protocol):
    """Ordered conversation history."""

    async def list_conversations(self) -> list[Conversation]:
        """Return all conversations, most recently updated first."""
        ...

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        ...

    async def upsert_conversation(self, conversation: Conversation) -> bool:
        """Insert or replace a conversation by id."""
        ...


class SettingsStore(Protocol):
    """The singleton settings record."""

    async def get_settings(self) -> Settings:
        ...

    async def save_settings(self, settings: Settings) -> bool:
        ...


class JsonFileStore(ConversationStore, SettingsStore):
    """
    JSON document store shared by conversations and settings.

    Every operation reads the document under the file lock, so several
    processes (or a second window) see each other's writes.
    """

    def __init__(
        self,
        path: str,
        *,
        default_settings: Settings | None = None,
        lock_timeout: float = 30.0,
        fsync_enabled: bool = True,
    ):
        self.path = path
        self.default_settings = default_settings or Settings()
        self.lock_timeout = lock_timeout
        self.fsync_enabled = fsync_enabled
        self._lock = asyncio.Lock()

    async def _read_document(self) -> dict[str, Any]:
        """Read the whole document. Must be called with both locks held."""
        try:
            async with aiofiles.open(self.path, encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            return {}

        if not raw.strip():
            return {}

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            # FAIL FAST: rewriting a corrupted store would drop the history
            raise ValueError(f"Store file {self.path} is not valid JSON: {e}") from e

        if not isinstance(document, dict):
            raise ValueError(
                f"Store file {self.path} must hold a JSON object, "
                f"got {type(document).__name__}"
            )
        return document

    async def _write_document(self, document: dict[str, Any]) -> None:
        """Atomically replace the document. Must be called with both locks held."""
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        tmp_path = f"{self.path}.tmp"
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(document, ensure_ascii=False, indent=2))
            await f.flush()
            if self.fsync_enabled:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, os.fsync, f.fileno())
        os.replace(tmp_path, self.path)

    async def _read(self) -> dict[str, Any]:
        async with self._lock, async_file_lock(self.path, self.lock_timeout):
            return await self._read_document()

    async def _update(self, mutate: Callable[[dict[str, Any]], Any]) -> Any:
        """Read-modify-write the document and return `mutate`'s result."""
        async with self._lock, async_file_lock(self.path, self.lock_timeout):
            document = await self._read_document()
            result = mutate(document)
            await self._write_document(document)
            return result

    def _parse_conversations(self, document: dict[str, Any]) -> list[Conversation]:
        conversations = []
        for entry in document.get(CONVERSATIONS_KEY, []):
            try:
                conversations.append(Conversation.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Skipping invalid conversation in {self.path}: {e}")
        return conversations

    async def list_conversations(self) -> list[Conversation]:
        """Return all conversations, most recently updated first."""
        document = await self._read()
        conversations = self._parse_conversations(document)
        conversations.sort(key=lambda c: c.updated_at, reverse=True)
        return conversations

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        for conversation in await self.list_conversations():
            if conversation.id == conversation_id:
                return conversation
        return None

    async def search_conversations(self, term: str) -> list[Conversation]:
        """Conversations whose title or any message contains `term`."""
        conversations = await self.list_conversations()
        if not term:
            return conversations
        return [c for c in conversations if c.matches(term)]

    @log_operation("upsert_conversation")
    async def upsert_conversation(self, conversation: Conversation) -> bool:
        """Replace the stored conversation with the same id, or prepend it."""
        stored = conversation.to_store()

        def mutate(document: dict[str, Any]) -> bool:
            entries = document.setdefault(CONVERSATIONS_KEY, [])
            for index, entry in enumerate(entries):
                if isinstance(entry, dict) and entry.get("id") == conversation.id:
                    entries[index] = stored
                    return True
            entries.insert(0, stored)
            return True

        return await self._update(mutate)

    @log_operation("delete_conversation")
    async def delete_conversation(self, conversation_id: str) -> bool:
        """Remove a conversation. Returns False if it did not exist."""

        def mutate(document: dict[str, Any]) -> bool:
            entries = document.get(CONVERSATIONS_KEY, [])
            kept = [
                e for e in entries
                if not (isinstance(e, dict) and e.get("id") == conversation_id)
            ]
            document[CONVERSATIONS_KEY] = kept
            return len(kept) != len(entries)

        return await self._update(mutate)

    async def get_settings(self) -> Settings:
        """Stored settings, or the defaults when none were saved."""
        document = await self._read()
        stored = document.get(SETTINGS_KEY)
        if not stored:
            return self.default_settings.model_copy()
        try:
            return Settings.model_validate(stored)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid settings in {self.path}: {e}")
            return self.default_settings.model_copy()

    @log_operation("save_settings")
    async def save_settings(self, settings: Settings) -> bool:
        stored = settings.to_store()

        def mutate(document: dict[str, Any]) -> bool:
            document[SETTINGS_KEY] = stored
            return True

        return await self._update(mutate)
