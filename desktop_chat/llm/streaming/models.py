"""
Streaming event models for the Messages API event stream.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class StreamEventType(Enum):
    """Known event kinds. Anything else maps to UNKNOWN and passes through."""
    MESSAGE_START = "message_start"
    CONTENT_BLOCK_START = "content_block_start"
    CONTENT_BLOCK_DELTA = "content_block_delta"
    CONTENT_BLOCK_STOP = "content_block_stop"
    MESSAGE_DELTA = "message_delta"
    MESSAGE_STOP = "message_stop"
    PING = "ping"
    ERROR = "error"
    UNKNOWN = "unknown"

    @classmethod
    def from_wire(cls, value: str) -> StreamEventType:
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class TokenUsage(BaseModel):
    """Token usage reported by message_start / message_delta."""
    model_config = ConfigDict(extra="allow")

    input_tokens: int = 0
    output_tokens: int = 0


class StreamMessage(BaseModel):
    """The `message` object carried by message_start."""
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    role: str | None = None
    content: str | list[Any] | None = None
    model: str | None = None
    stop_reason: str | None = None
    stop_sequence: str | None = None
    usage: TokenUsage | None = None


class StreamDelta(BaseModel):
    """The `delta` object of content_block_delta and message_delta."""
    model_config = ConfigDict(extra="allow")

    type: str | None = None
    text: str | None = None
    stop_reason: str | None = None
    stop_sequence: str | None = None


class StreamError(BaseModel):
    """The `error` object of an in-stream error event."""
    model_config = ConfigDict(extra="allow")

    type: str | None = None
    message: str | None = None


class StreamEvent(BaseModel):
    """
    One parsed frame of the event stream.

    `type` keeps the wire value so unknown kinds survive untouched; `kind`
    is the closed variant used for dispatch.
    """
    model_config = ConfigDict(extra="allow", frozen=True)

    type: str
    index: int | None = None
    message: StreamMessage | None = None
    delta: StreamDelta | None = None
    usage: TokenUsage | None = None
    error: StreamError | None = None

    @property
    def kind(self) -> StreamEventType:
        return StreamEventType.from_wire(self.type)

    @property
    def text(self) -> str | None:
        """Delta text for content_block_delta events, else None."""
        if self.kind is StreamEventType.CONTENT_BLOCK_DELTA and self.delta:
            return self.delta.text
        return None

    @property
    def stop_reason(self) -> str | None:
        if self.delta and self.delta.stop_reason:
            return self.delta.stop_reason
        if self.message:
            return self.message.stop_reason
        return None

    @property
    def token_usage(self) -> TokenUsage | None:
        if self.usage is not None:
            return self.usage
        if self.message is not None:
            return self.message.usage
        return None
