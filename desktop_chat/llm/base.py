"""
Shared contract for streaming chat clients.

Both the direct HTTP client and the simulated client deliver events through
the same `send` / `stream` / `abort` surface, so the consumer never needs to
know which path produced the events.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, Callable, Mapping, Sequence
from contextlib import aclosing
from typing import Any

from ..exceptions import LLMError, RequestCancelledError
from ..logging_utils import ContextualLogger
from .cancellation import CancellationHandle
from .models import ApiMessage, normalize_messages
from .streaming.models import StreamEvent

EventCallback = Callable[[StreamEvent], None]
CompleteCallback = Callable[[], None]
ErrorCallback = Callable[[LLMError], None]

MessageInput = Sequence[ApiMessage | Mapping[str, Any]]


class StreamingClientBase(ABC):
    """
    One in-flight request per instance.

    Subclasses implement `_generate`, yielding events and checking the
    handle at each suspension point.
    """

    def __init__(self, model: str) -> None:
        self.model = model
        self._handle: CancellationHandle | None = None
        # Whether the most recent request ended through abort()
        self.last_request_cancelled = False
        self._logger = ContextualLogger({"client": type(self).__name__})

    @property
    def is_streaming(self) -> bool:
        return self._handle is not None

    @abstractmethod
    def _generate(
        self,
        messages: list[ApiMessage],
        handle: CancellationHandle,
        log: ContextualLogger,
    ) -> AsyncGenerator[StreamEvent]:
        """Produce events for one request."""
        ...

    async def stream(self, messages: MessageInput) -> AsyncGenerator[StreamEvent]:
        """
        Stream events for `messages` as an async iterator.

        Ends normally at end of stream or when `abort()` is called.

        Raises:
            ValueError: If `messages` is empty or holds an unknown role.
            TransportError: On connection failure.
            ApiError: On a non-2xx response.
        """
        normalized = normalize_messages(messages)

        handle = CancellationHandle()
        self._handle = handle
        self.last_request_cancelled = False
        log = self._logger.bind(request_id=uuid.uuid4().hex[:12])
        log.debug("Stream started", message_count=len(normalized))

        try:
            async with aclosing(self._generate(normalized, handle, log)) as events:
                async for event in events:
                    # Events parsed from the same read must not leak past abort()
                    handle.raise_if_cancelled()
                    yield event
        except RequestCancelledError:
            self.last_request_cancelled = True
            log.info("Request was aborted")
        finally:
            if self._handle is handle:
                self._handle = None

    async def send(
        self,
        messages: MessageInput,
        on_event: EventCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
    ) -> None:
        """
        Run one request, reporting through callbacks.

        Exactly one of `on_complete` (normal end or cancellation) and
        `on_error` (transport or API failure) is invoked.
        """
        try:
            async with aclosing(self.stream(messages)) as events:
                async for event in events:
                    on_event(event)
        except LLMError as e:
            self._logger.error(
                "API request failed",
                error_type=type(e).__name__,
                error_message=e.message,
                status_code=e.status_code,
            )
            on_error(e)
            return

        on_complete()

    def abort(self) -> None:
        """Cancel the in-flight request, if any."""
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.cancel()

    async def close(self) -> None:
        """Release transport resources."""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
