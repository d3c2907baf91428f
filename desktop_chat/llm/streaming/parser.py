"""
Incremental event-stream parser with per-frame error recovery.

Bytes are decoded with a stateful decoder so multi-byte characters split
across reads survive, assembled into newline-terminated lines, and each
`data: <json>` line is validated into a StreamEvent. A malformed frame is
logged and dropped; it never aborts the stream.
"""

from __future__ import annotations

import codecs
import json

import structlog
from pydantic import ValidationError

from ...exceptions import ParseError
from .models import StreamEvent, StreamEventType, TokenUsage

logger = structlog.get_logger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "data: [DONE]"
# SSE field lines that carry no JSON payload
IGNORED_FIELD_PREFIXES = ("event:", "id:", "retry:", ":")


class FrameParser:
    """Turns raw response bytes into StreamEvents, in arrival order."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self.stats = {
            'total_frames': 0,
            'parse_errors': 0,
            'skipped_lines': 0,
            'bytes_received': 0,
        }

    def feed(self, data: bytes) -> list[StreamEvent]:
        """
        Consume one read from the byte stream.

        Returns the events completed by this read. The trailing partial line
        stays buffered until a later read terminates it.
        """
        self.stats['bytes_received'] += len(data)
        self._buffer += self._decoder.decode(data)

        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._parse_lines(lines)

    def flush(self) -> list[StreamEvent]:
        """Drain the decoder and parse any unterminated final line."""
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        if not remainder:
            return []
        return self._parse_lines(remainder.split("\n"))

    def _parse_lines(self, lines: list[str]) -> list[StreamEvent]:
        events = []
        for line in lines:
            try:
                event = self.parse_line(line)
            except ParseError as e:
                self.stats['parse_errors'] += 1
                logger.warning(
                    "Discarding malformed stream frame",
                    error=e.message,
                    line=e.line[:200],
                )
                continue

            if event is None:
                self.stats['skipped_lines'] += 1
                continue

            self.stats['total_frames'] += 1
            events.append(event)
        return events

    def parse_line(self, raw_line: str) -> StreamEvent | None:
        """
        Parse one complete line.

        Returns None for lines that carry no event (blank, sentinel, SSE
        field lines).

        Raises:
            ParseError: If the payload is not a JSON object shaped like an event.
        """
        line = raw_line.removesuffix("\r")

        if not line.strip():
            return None
        if line == DONE_SENTINEL:
            return None
        if line.startswith(IGNORED_FIELD_PREFIXES):
            return None

        payload = line.removeprefix(DATA_PREFIX)
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ParseError(f"JSON decode error: {e}", line=line) from e

        try:
            return StreamEvent.model_validate(data)
        except ValidationError as e:
            raise ParseError(
                f"Invalid event shape: {e.error_count()} error(s)", line=line
            ) from e

    def get_stats(self) -> dict[str, int]:
        """Get parser statistics for monitoring."""
        return self.stats.copy()


class StreamAccumulator:
    """
    Folds a turn's events into the final reply text and terminal metadata.
    """

    def __init__(self):
        self.content = ""
        self.message_id: str | None = None
        self.model: str | None = None
        self.stop_reason: str | None = None
        self.usage = TokenUsage()
        self.error_message: str | None = None

    def apply(self, event: StreamEvent) -> str | None:
        """Record an event and return its delta text, if it carries any."""
        kind = event.kind

        if kind is StreamEventType.CONTENT_BLOCK_DELTA:
            text = event.text
            if text:
                self.content += text
            return text or None

        if kind is StreamEventType.MESSAGE_START and event.message:
            self.message_id = event.message.id
            self.model = event.message.model
        elif kind is StreamEventType.MESSAGE_DELTA and event.stop_reason:
            self.stop_reason = event.stop_reason
        elif kind is StreamEventType.ERROR:
            error = event.error
            self.error_message = (
                (error.message or error.type) if error else None
            ) or "Stream reported an error"

        usage = event.token_usage
        if usage is not None:
            # message_start reports input tokens; message_delta a running output count
            if kind is StreamEventType.MESSAGE_START:
                self.usage.input_tokens = usage.input_tokens
            self.usage.output_tokens = usage.output_tokens
        return None
