"""
Request-side models for the Messages API.

This module provides the dataclasses used to build outbound requests:
- API message validation
- Request payload assembly
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


class ApiMessage(BaseModel):
    """A single `{role, content}` pair sent to the API."""
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


def normalize_messages(
    messages: Sequence[ApiMessage | Mapping[str, Any]],
) -> list[ApiMessage]:
    """
    Validate an outbound message list.

    Raises:
        ValueError: If the list is empty or an entry has an unknown role.
            pydantic's ValidationError is a ValueError subclass.
    """
    if not messages:
        raise ValueError("messages must contain at least one message")

    normalized = []
    for message in messages:
        if isinstance(message, ApiMessage):
            normalized.append(message)
        else:
            normalized.append(
                ApiMessage.model_validate(
                    {"role": message.get("role"), "content": message.get("content")}
                )
            )
    return normalized


@dataclass(frozen=True)
class MessagesRequest:
    """Complete streaming request body."""
    model: str
    messages: list[ApiMessage]
    max_tokens: int = 4000
    stream: bool = True

    # Optional sampling controls, only sent when configured
    system: str | None = None
    temperature: float | None = None
    top_p: float | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.model_dump() for m in self.messages],
            "max_tokens": self.max_tokens,
            "stream": self.stream,
        }
        if self.system is not None:
            payload["system"] = self.system
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.top_p is not None:
            payload["top_p"] = self.top_p
        return payload
