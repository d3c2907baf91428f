"""
Simulated streaming for the alternate routing path.

When an alternate endpoint is configured, replies are manufactured locally:
the same event sequence the Messages API emits, with the reply text cut into
chunks of 1-3 characters delivered at a fixed cadence.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import AsyncGenerator

from ..logging_utils import ContextualLogger
from .base import StreamingClientBase
from .cancellation import CancellationHandle
from .models import ApiMessage
from .streaming.models import StreamEvent

STOP_REASON = "end_turn"


class SimulatedStreamingClient(StreamingClientBase):
    """Manufactures StreamEvents instead of fetching them."""

    def __init__(
        self,
        *,
        endpoint: str,
        model: str,
        chunk_min_chars: int = 1,
        chunk_max_chars: int = 3,
        interval_ms: float = 50,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(model)
        if chunk_min_chars < 1 or chunk_max_chars < chunk_min_chars:
            raise ValueError(
                "chunk sizes must satisfy 1 <= chunk_min_chars <= chunk_max_chars"
            )
        self.endpoint = endpoint
        self.chunk_min_chars = chunk_min_chars
        self.chunk_max_chars = chunk_max_chars
        self.interval = interval_ms / 1000
        self._rng = rng or random.Random()
        self._reply_count = 0

    def compose_reply(self, messages: list[ApiMessage]) -> str:
        """Reply text for a request: echoes the latest user message."""
        last_user = next(
            (m.content for m in reversed(messages) if m.role == "user"), ""
        )
        return f"[simulated via {self.endpoint}] You said: {last_user}"

    def split_chunks(self, text: str) -> list[str]:
        chunks = []
        position = 0
        while position < len(text):
            size = self._rng.randint(self.chunk_min_chars, self.chunk_max_chars)
            chunks.append(text[position:position + size])
            position += size
        return chunks

    async def _generate(
        self,
        messages: list[ApiMessage],
        handle: CancellationHandle,
        log: ContextualLogger,
    ) -> AsyncGenerator[StreamEvent]:
        self._reply_count += 1
        message_id = f"msg_sim_{self._reply_count:06d}"
        reply = self.compose_reply(messages)
        input_tokens = sum(len(m.content.split()) for m in messages)

        log.debug("Simulating reply", endpoint=self.endpoint, length=len(reply))

        yield StreamEvent.model_validate({
            "type": "message_start",
            "message": {
                "id": message_id,
                "role": "assistant",
                "content": [],
                "model": self.model,
                "stop_reason": None,
                "stop_sequence": None,
                "usage": {"input_tokens": input_tokens, "output_tokens": 0},
            },
        })
        yield StreamEvent.model_validate({
            "type": "content_block_start",
            "index": 0,
            "content_block": {"type": "text", "text": ""},
        })

        chunks = self.split_chunks(reply)
        for chunk in chunks:
            await handle.race(asyncio.sleep(self.interval))
            yield StreamEvent.model_validate({
                "type": "content_block_delta",
                "index": 0,
                "delta": {"type": "text_delta", "text": chunk},
            })

        yield StreamEvent.model_validate({"type": "content_block_stop", "index": 0})
        yield StreamEvent.model_validate({
            "type": "message_delta",
            "delta": {"stop_reason": STOP_REASON, "stop_sequence": None},
            "usage": {"output_tokens": len(chunks)},
        })
        yield StreamEvent.model_validate({"type": "message_stop"})
