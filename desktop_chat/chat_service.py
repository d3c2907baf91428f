"""
Chat session controller.

ChatService plays the part of the presentation layer without rendering
anything: it turns user input into a turn, streams the assistant reply into
the trailing message, and keeps the conversation store current.

Only the trailing assistant message ever changes after it is created, and it
only grows.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from .exceptions import ApiError, LLMError
from .history.models import (
    DEFAULT_TITLE,
    TITLE_MAX_LENGTH,
    Conversation,
    Message,
    generate_title,
    now_ms,
)
from .history.store import ConversationStore
from .llm.base import StreamingClientBase
from .llm.streaming.models import StreamEvent, TokenUsage
from .llm.streaming.parser import StreamAccumulator
from .logging_utils import ErrorHandler, operation_context

logger = structlog.get_logger(__name__)


class TurnOutcome(Enum):
    """How a streamed reply ended."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class TurnResult:
    outcome: TurnOutcome
    message: Message
    error: LLMError | None = None
    stop_reason: str | None = None
    usage: TokenUsage | None = None


class ChatService:
    """
    Drives one conversation at a time against a streaming client.

    Callers render `conversation.messages`; an optional `on_delta` hook sees
    each text fragment as it is appended.
    """

    def __init__(
        self,
        client: StreamingClientBase,
        store: ConversationStore,
        *,
        default_title: str = DEFAULT_TITLE,
        title_max_length: int = TITLE_MAX_LENGTH,
    ) -> None:
        self.client = client
        self.store = store
        self.default_title = default_title
        self.title_max_length = title_max_length
        self.conversation = self._empty_conversation()
        self._generating = False
        self._stop_requested = False

    def _empty_conversation(self) -> Conversation:
        return Conversation(title=self.default_title)

    @property
    def is_generating(self) -> bool:
        return self._generating

    def new_conversation(self) -> Conversation:
        """Start a fresh, unsaved conversation."""
        if self._generating:
            raise RuntimeError("Cannot start a new conversation while generating")
        self.conversation = self._empty_conversation()
        return self.conversation

    async def load_conversation(self, conversation_id: str) -> Conversation:
        """
        Resume a stored conversation.

        Raises:
            KeyError: If no conversation has that id.
        """
        if self._generating:
            raise RuntimeError("Cannot switch conversations while generating")

        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None:
            raise KeyError(conversation_id)
        self.conversation = conversation
        return conversation

    async def save(self) -> None:
        """Upsert the current conversation, deriving its title on first save."""
        conversation = self.conversation
        if not conversation.messages:
            return

        if conversation.title == self.default_title:
            conversation.title = generate_title(
                conversation.messages[0].content, self.title_max_length
            )
        conversation.updated_at = now_ms()
        await self.store.upsert_conversation(conversation)

    def _api_messages(self) -> list[dict[str, str]]:
        # Earlier failed turns leave empty assistant messages behind
        return [m.to_api() for m in self.conversation.messages if m.content]

    async def send_message(
        self,
        content: str,
        on_delta: Callable[[str], None] | None = None,
    ) -> TurnResult | None:
        """
        Send user input and stream the reply into the conversation.

        Returns None for blank input.

        Raises:
            RuntimeError: If a reply is already being generated.
        """
        text = content.strip()
        if not text:
            return None
        if self._generating:
            raise RuntimeError("A reply is already being generated")

        messages = self.conversation.messages
        messages.append(Message(role="user", content=text))
        api_messages = self._api_messages()
        assistant = Message(role="assistant", content="")
        messages.append(assistant)

        self._generating = True
        self._stop_requested = False
        accumulator = StreamAccumulator()
        failure: list[LLMError] = []
        cancelled = False

        def handle_event(event: StreamEvent) -> None:
            delta = accumulator.apply(event)
            if delta:
                assistant.content += delta
                if on_delta is not None:
                    on_delta(delta)

        try:
            async with operation_context(
                "chat_turn",
                context={"conversation_id": self.conversation.id},
            ):
                await self.save()
                # stop() during the first save has no request to abort yet
                if self._stop_requested:
                    cancelled = True
                else:
                    await self.client.send(
                        api_messages,
                        on_event=handle_event,
                        on_complete=lambda: None,
                        on_error=failure.append,
                    )
                    cancelled = self.client.last_request_cancelled
                await self.save()
        finally:
            self._generating = False

        error: LLMError | None = None
        if failure:
            error = failure[0]
        elif accumulator.error_message is not None:
            error = ApiError(
                accumulator.error_message,
                model=self.client.model,
                response_data={"error": {"message": accumulator.error_message}},
            )

        if error is not None:
            ErrorHandler.log_error(
                error, "chat_turn", {"conversation_id": self.conversation.id}
            )
            outcome = TurnOutcome.FAILED
        elif cancelled:
            outcome = TurnOutcome.CANCELLED
        else:
            outcome = TurnOutcome.COMPLETED

        logger.info(
            "Turn finished",
            outcome=outcome.value,
            chars=len(assistant.content),
            stop_reason=accumulator.stop_reason,
        )
        return TurnResult(
            outcome=outcome,
            message=assistant,
            error=error,
            stop_reason=accumulator.stop_reason,
            usage=accumulator.usage,
        )

    def stop(self) -> None:
        """Abort the reply being generated, if any."""
        if self._generating:
            self._stop_requested = True
            self.client.abort()
