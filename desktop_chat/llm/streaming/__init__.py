"""
Streaming functionality for LLM clients.

- Incremental byte decoding and line assembly
- Frame parsing with per-frame recovery
- Per-turn delta accumulation
"""

from .models import StreamEvent, StreamEventType, TokenUsage
from .parser import FrameParser, StreamAccumulator

__all__ = [
    "FrameParser",
    "StreamAccumulator",
    "StreamEvent",
    "StreamEventType",
    "TokenUsage",
]
