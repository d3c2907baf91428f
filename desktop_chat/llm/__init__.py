"""
Streaming LLM integration for the desktop chat client.

This package provides:
- A direct HTTP streaming client for the Messages API
- A simulated client for the alternate routing path
- Incremental event-stream parsing with per-frame recovery
- Cooperative cancellation
"""

from __future__ import annotations

from ..exceptions import (
    ApiError,
    LLMError,
    ParseError,
    RequestCancelledError,
    TransportError,
)
from .base import StreamingClientBase
from .client import StreamingClient
from .models import ApiMessage, MessagesRequest
from .router import create_streaming_client
from .simulation import SimulatedStreamingClient
from .streaming import StreamAccumulator, StreamEvent, StreamEventType

__all__ = [
    "ApiError",
    "ApiMessage",
    "LLMError",
    "MessagesRequest",
    "ParseError",
    "RequestCancelledError",
    "SimulatedStreamingClient",
    "StreamAccumulator",
    "StreamEvent",
    "StreamEventType",
    "StreamingClient",
    "StreamingClientBase",
    "TransportError",
    "create_streaming_client",
]
