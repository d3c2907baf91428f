# desktop_chat/history/models.py
from __future__ import annotations

import time
import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant"]

DEFAULT_TITLE = "New conversation"
TITLE_MAX_LENGTH = 50


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_id() -> str:
    return uuid.uuid4().hex


def generate_title(content: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    """
    Derive a conversation title from the first message: its first line, cut
    to `max_length` characters with a trailing ellipsis.
    """
    first_line = content.split("\n")[0] if content else ""
    if len(first_line) > max_length:
        return first_line[:max_length] + "..."
    return first_line


class _StoredModel(BaseModel):
    """Stored with the camelCase keys the desktop store has always used."""
    model_config = ConfigDict(populate_by_name=True)

    def to_store(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Message(_StoredModel):
    """
    One chat message. Assistant content starts empty and grows by appended
    deltas while its reply streams.
    """
    id: str = Field(default_factory=generate_id)
    role: Role
    content: str = ""
    timestamp: int = Field(default_factory=now_ms)

    def to_api(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class Conversation(_StoredModel):
    id: str = Field(default_factory=generate_id)
    title: str = DEFAULT_TITLE
    messages: list[Message] = Field(default_factory=list)
    created_at: int = Field(default_factory=now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=now_ms, alias="updatedAt")

    def matches(self, term: str) -> bool:
        """Case-insensitive match on the title or any message content."""
        needle = term.lower()
        if needle in self.title.lower():
            return True
        return any(needle in m.content.lower() for m in self.messages)


class Settings(_StoredModel):
    """Process-wide client settings, overwritten wholesale on save."""
    credential: str = Field(default="", alias="apiKey", repr=False)
    endpoint: str = "https://api.anthropic.com"
    model: str = "claude-3-opus-20240229"
    # When set, requests are served by the simulated stream instead
    alternate_endpoint: str | None = Field(default=None, alias="alternateEndpoint")
